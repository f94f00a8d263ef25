"""ECOMMIND — Insight & Mission Models."""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint

INSIGHT_TYPES = (
    "trend_opportunity",
    "gap_portfolio",
    "price_gap",
    "variation_opportunity",
    "bundle_opportunity",
)
MISSION_STATUSES = ("backlog", "planned", "in_progress", "done", "dismissed")
PRIORITIES = ("P0", "P1", "P2", "P3")


# ─────────────────────────────────────────────
# DATABASE MODELS
# ─────────────────────────────────────────────


class Insight(SQLModel, table=True):
    """Persisted insight. dedupe_key is unique per company; rows are immutable."""

    __tablename__ = "insights"
    __table_args__ = (
        UniqueConstraint("company_id", "dedupe_key", name="uq_insight_dedupe"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    agent: str = "market"
    module: str = "market"
    type: str = Field(index=True)
    title: str
    summary: str = ""
    evidence: dict = Field(default_factory=dict, sa_column=Column(JSON))
    scope: dict = Field(default_factory=dict, sa_column=Column(JSON))
    confidence: float = 0.5
    impact: str = ""
    impact_estimate: dict = Field(default_factory=dict, sa_column=Column(JSON))
    dedupe_key: str
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Mission(SQLModel, table=True):
    """Actionable task, spawned from an insight or seeded at onboarding."""

    __tablename__ = "missions"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    origin_insight_id: Optional[int] = Field(default=None, foreign_key="insights.id")
    module: str = "market"
    title: str
    summary: str = ""
    status: str = Field(default="backlog", index=True)
    priority: str = "P2"
    tags: list = Field(default_factory=list, sa_column=Column(JSON))
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
    due_date: Optional[date] = None
    assignee_id: Optional[str] = None
    estimated_hours: Optional[float] = None
    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Engine I/O
# ─────────────────────────────────────────────


class ContextProduct(BaseModel):
    sku: str
    title: str = ""
    category: Optional[str] = None
    price: Optional[float] = None
    variations: List[str] = []


class CompanyContext(BaseModel):
    """Everything the market-intelligence engine knows about a company."""

    company_id: str
    focus_categories: List[str] = []
    active_channels: List[str] = ["meli", "shopee", "amazon", "site"]
    products: List[ContextProduct] = []
    commissions: Dict[str, float] = {}
    margins: Dict[str, float] = {}


class InsightPayload(BaseModel):
    """Engine output before persistence."""

    agent: str = "market"
    module: str = "market"
    type: str
    title: str
    summary: str
    evidence: Dict[str, Any] = {}
    scope: Dict[str, Any] = {}
    confidence: float = PydanticField(ge=0.0, le=1.0)
    impact: str
    impact_estimate: Dict[str, Any] = {}
    dedupe_key: str
    create_mission: bool = True
    priority: str = "P2"
    sla_days: int = 14


class InsightSummary(BaseModel):
    total_records: int
    insights_generated: int
    insights_saved: int
    insights_duplicated: int
    missions_created: int


class SavedInsight(BaseModel):
    id: int
    type: str
    title: str
    summary: str
    confidence: float
    impact: str
    mission_id: Optional[int] = None


class DuplicatedInsight(BaseModel):
    dedupe_key: str
    type: str
    title: str


class InsightGenerationResult(BaseModel):
    summary: InsightSummary
    insights: List[SavedInsight] = []
    duplicated: List[DuplicatedInsight] = []
