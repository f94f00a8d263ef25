"""ECOMMIND — Mercado Livre Payload Schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class _MeliModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class MeliVariationAttribute(_MeliModel):
    name: Optional[str] = None
    value_name: Optional[str] = None


class MeliOrderItemRef(_MeliModel):
    id: str
    title: Optional[str] = None
    category_id: Optional[str] = None
    seller_custom_field: Optional[str] = None
    seller_sku: Optional[str] = None
    variation_attributes: List[MeliVariationAttribute] = []


class MeliOrderItem(_MeliModel):
    item: MeliOrderItemRef
    quantity: float = 0
    unit_price: float = 0
    sale_fee: Optional[float] = None


class MeliBuyer(_MeliModel):
    id: Optional[int] = None
    nickname: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class MeliPayment(_MeliModel):
    payment_type: Optional[str] = None
    payment_method_id: Optional[str] = None
    shipping_cost: Optional[float] = None
    coupon_amount: Optional[float] = None


class MeliOrder(_MeliModel):
    id: int
    status: Optional[str] = None
    date_created: Optional[str] = None
    date_closed: Optional[str] = None
    total_amount: Optional[float] = None
    paid_amount: Optional[float] = None
    order_items: List[MeliOrderItem] = []
    payments: List[MeliPayment] = []
    buyer: Optional[MeliBuyer] = None


class MeliPaging(_MeliModel):
    total: int = 0
    offset: int = 0
    limit: int = 50


class MeliOrderSearch(_MeliModel):
    results: List[dict] = []
    paging: MeliPaging = MeliPaging()


class MeliItemSearch(_MeliModel):
    results: List[str] = []
    paging: MeliPaging = MeliPaging()


class MeliAttribute(_MeliModel):
    id: Optional[str] = None
    value_name: Optional[str] = None


class MeliVariation(_MeliModel):
    id: Optional[int] = None
    available_quantity: Optional[int] = None
    seller_custom_field: Optional[str] = None
    attribute_combinations: List[MeliVariationAttribute] = []


class MeliListing(_MeliModel):
    id: str
    title: Optional[str] = None
    category_id: Optional[str] = None
    price: Optional[float] = None
    available_quantity: Optional[int] = None
    sold_quantity: Optional[int] = None
    status: Optional[str] = None
    seller_custom_field: Optional[str] = None
    attributes: List[MeliAttribute] = []
    variations: List[MeliVariation] = []


# ── Webhooks ──

MeliWebhookTopic = Literal["orders", "items", "questions", "claims"]


class MeliWebhook(BaseModel):
    """Notification body. Mercado Livre does not sign notifications."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, alias="_id")
    resource: str
    user_id: int
    topic: MeliWebhookTopic
    application_id: int
    attempts: int = 1
    sent: str
    received: Optional[str] = None
