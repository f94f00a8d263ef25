"""ECOMMIND — Webhook Event Model.

Single table for all vendors. The natural key is
(vendor, company_id, topic, external_id, disambiguator); the disambiguator
is Meli `sent`, Shopee `timestamp` and Bling event `date`.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint


class WebhookEvent(SQLModel, table=True):
    """Durable record of one inbound webhook delivery. Never deleted."""

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint(
            "vendor",
            "company_id",
            "topic",
            "external_id",
            "disambiguator",
            name="uq_webhook_event",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    vendor: str = Field(index=True)
    company_id: str = Field(index=True)
    topic: str
    external_id: str = Field(description="Resource / order_sn / item_id / data.id")
    disambiguator: str = ""
    payload: dict = Field(default_factory=dict, sa_column=Column(JSON))
    processed: bool = False
    processed_at: Optional[datetime] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
