"""ECOMMIND — ETL Run & Checkpoint Models."""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint


class EtlRun(SQLModel, table=True):
    """One row per extraction attempt. Created before any I/O, finalized once."""

    __tablename__ = "etl_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    source: str = Field(index=True, description="e.g. bling.products")
    status: str = Field(default="running", description="running | completed | failed")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    ok: bool = False
    pages: int = 0
    rows: int = 0
    inserted: int = 0
    updated: int = 0
    error: Optional[str] = None
    summary: Optional[list] = Field(default=None, sa_column=Column(JSON))
    triggered_by: str = Field(default="manual", description="manual | scheduler | webhook")


class EtlCheckpoint(SQLModel, table=True):
    """Incremental sync boundary per (company, source). Only moves forward."""

    __tablename__ = "etl_checkpoints"
    __table_args__ = (
        UniqueConstraint("company_id", "source", name="uq_etl_checkpoint"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    source: str
    last_run_at: datetime


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS — Run results
# ─────────────────────────────────────────────


class UpsertStats(BaseModel):
    inserted: int = 0
    updated: int = 0


class EtlResult(BaseModel):
    """Outcome of a single-source sync."""

    success: bool
    etl_run_id: int
    source: str
    pages: int = 0
    rows: int = 0
    inserted: int = 0
    updated: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


class ResourceResult(BaseModel):
    resource: str
    processed: int = 0
    inserted: int = 0
    updated: int = 0


class TriggerResult(BaseModel):
    """Outcome of a multi-resource sync trigger."""

    success: bool
    etl_run_id: int
    results: List[ResourceResult] = []
    error: Optional[str] = None
