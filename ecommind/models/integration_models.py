"""ECOMMIND — Integration Credential Models.

One row per company × vendor. Tokens are stored only as AES-GCM
{cipher, iv, tag} hex payloads.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint

VENDORS = ("bling", "meli", "shopee")


class Integration(SQLModel, table=True):
    """OAuth credential + sync state for one vendor account of a company."""

    __tablename__ = "integrations"
    __table_args__ = (
        UniqueConstraint("company_id", "vendor", name="uq_integration_company_vendor"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    vendor: str = Field(index=True, description="bling | meli | shopee")

    access_token_enc: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    refresh_token_enc: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    expires_at: Optional[str] = Field(default=None, description="ISO-8601")
    scope: Optional[str] = None
    external_account_id: Optional[str] = Field(
        default=None, index=True, description="Meli user_id / Shopee shop_id"
    )

    sync_enabled: bool = True
    webhook_enabled: bool = True
    webhook_secret: Optional[str] = None

    error_count: int = 0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    last_sync: Optional[dict] = Field(
        default=None, sa_column=Column(JSON), description="resource -> ISO timestamp"
    )

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CompanySettings(SQLModel, table=True):
    """Per-company preferences consumed by the market-intelligence engine."""

    __tablename__ = "company_settings"

    company_id: str = Field(primary_key=True)
    focus_categories: list = Field(default_factory=list, sa_column=Column(JSON))
    active_channels: Optional[list] = Field(default=None, sa_column=Column(JSON))
    commissions: dict = Field(default_factory=dict, sa_column=Column(JSON))
    margins: dict = Field(default_factory=dict, sa_column=Column(JSON))
