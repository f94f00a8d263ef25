"""ECOMMIND — Market Dataset Models.

Uploaded market observations. Records are immutable once loaded and are
consumed read-only by the market-intelligence engine.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field

CHANNELS = ("meli", "shopee", "amazon", "site")
SCOPES = ("niche", "category")
RECORD_TYPES = ("listing", "keyword", "category")


class MarketDataset(SQLModel, table=True):
    __tablename__ = "market_datasets"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    period_start: str = Field(description="YYYY-MM-DD")
    period_end: str = Field(description="YYYY-MM-DD")
    scope: str = Field(description="niche | category")
    source_filename: Optional[str] = None
    total_rows: int = 0
    valid_rows: int = 0
    error_rows: int = 0
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MarketRecord(SQLModel, table=True):
    """One listing / keyword / category observation."""

    __tablename__ = "market_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    dataset_id: int = Field(index=True, foreign_key="market_datasets.id")
    company_id: str = Field(index=True)
    channel: str = Field(description="meli | shopee | amazon | site | unknown")
    category: str
    record_type: str = Field(description="listing | keyword | category")
    identifier: str
    title: Optional[str] = None
    price: Optional[float] = None
    price_median: Optional[float] = None
    demand_index: Optional[float] = Field(default=None, description="0..100")
    growth_rate: Optional[float] = Field(default=None, description="-1..5")
    sellers_top: Optional[int] = None
    units_sold_est: Optional[float] = None
    revenue_est: Optional[float] = None
    attributes: dict = Field(default_factory=dict, sa_column=Column(JSON))
