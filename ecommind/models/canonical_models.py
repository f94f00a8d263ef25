"""ECOMMIND — Canonical Commerce Models (Vendor-agnostic Schema).

Every adapter maps into these tables. Unique constraints on the natural
keys make replays of the same external record idempotent.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field, UniqueConstraint


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Product(SQLModel, table=True):
    """Catalog item keyed by (company_id, sku)."""

    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("company_id", "sku", name="uq_product_sku"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    sku: str = Field(index=True)
    title: str = ""
    description: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = Field(default=None, index=True)
    price: Optional[float] = None
    stock: Optional[int] = None
    weight_kg: Optional[float] = None
    gtin: Optional[str] = None
    ncm: Optional[str] = None
    active: bool = True
    channel: str = Field(default="bling", description="Source system of the record")
    external_id: Optional[str] = None
    variations: list = Field(default_factory=list, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=_now)


class Order(SQLModel, table=True):
    """Sales order keyed by (company_id, order_id)."""

    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("company_id", "order_id", name="uq_order_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    order_id: str = Field(index=True)
    channel: str = Field(default="site", index=True)
    status: str = "pending"
    order_date: Optional[datetime] = None
    total_amount: float = 0.0
    shipping_cost: float = 0.0
    discount: float = 0.0
    buyer_name: Optional[str] = None
    buyer_email: Optional[str] = None
    buyer_document: Optional[str] = None
    payment_method: Optional[str] = None
    external_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=_now)


class OrderItem(SQLModel, table=True):
    """Order line keyed by (company_id, order_id, item_seq)."""

    __tablename__ = "order_items"
    __table_args__ = (
        UniqueConstraint("company_id", "order_id", "item_seq", name="uq_order_item"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    order_id: str = Field(index=True)
    item_seq: int
    sku: Optional[str] = None
    title: Optional[str] = None
    quantity: float = 0
    unit_price: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    external_item_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=_now)


class StockSnapshot(SQLModel, table=True):
    """Daily stock level per channel × sku."""

    __tablename__ = "stock_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "channel", "sku", "snapshot_date", name="uq_stock_snapshot"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    channel: str
    sku: str
    snapshot_date: str = Field(description="YYYY-MM-DD")
    available_quantity: int = 0
    reserved_quantity: int = 0
    external_id: Optional[str] = None
    updated_at: datetime = Field(default_factory=_now)


class OrderFee(SQLModel, table=True):
    """Marketplace fee charged on an order."""

    __tablename__ = "order_fees"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "channel", "order_id", "fee_type", name="uq_order_fee"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True)
    channel: str
    order_id: str
    fee_type: str = Field(description="sale_fee | commission | service_fee | shipping_fee")
    amount: float = 0.0
    updated_at: datetime = Field(default_factory=_now)


# Natural keys used by the loader's upsert
NATURAL_KEYS = {
    Product: ("company_id", "sku"),
    Order: ("company_id", "order_id"),
    OrderItem: ("company_id", "order_id", "item_seq"),
    StockSnapshot: ("company_id", "channel", "sku", "snapshot_date"),
    OrderFee: ("company_id", "channel", "order_id", "fee_type"),
}
