"""ECOMMIND — Shopee Open Platform v2 Payload Schemas."""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


class _ShopeeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ShopeePriceInfo(_ShopeeModel):
    current_price: Optional[float] = None
    original_price: Optional[float] = None


class ShopeeStockInfo(_ShopeeModel):
    current_stock: Optional[int] = None
    normal_stock: Optional[int] = None
    reserved_stock: Optional[int] = None


class ShopeeTierVariation(_ShopeeModel):
    name: Optional[str] = None
    option_list: List[dict] = []


class ShopeeBrand(_ShopeeModel):
    brand_id: Optional[int] = None
    original_brand_name: Optional[str] = None


class ShopeeItem(_ShopeeModel):
    item_id: int
    category_id: Optional[int] = None
    item_name: Optional[str] = None
    item_sku: Optional[str] = None
    item_status: Optional[str] = None
    price_info: List[ShopeePriceInfo] = []
    stock_info: List[ShopeeStockInfo] = []
    tier_variation: List[ShopeeTierVariation] = []
    brand: Optional[ShopeeBrand] = None
    weight: Optional[float] = None


class ShopeeOrderLine(_ShopeeModel):
    item_id: Optional[int] = None
    item_name: Optional[str] = None
    item_sku: Optional[str] = None
    model_sku: Optional[str] = None
    model_quantity_purchased: float = 0
    model_discounted_price: float = 0
    model_original_price: Optional[float] = None
    order_item_id: Optional[int] = None


class ShopeeOrder(_ShopeeModel):
    order_sn: str
    order_status: Optional[str] = None
    create_time: Optional[int] = None
    update_time: Optional[int] = None
    total_amount: Optional[float] = None
    payment_method: Optional[str] = None
    actual_shipping_fee: Optional[float] = None
    buyer_username: Optional[str] = None
    item_list: List[ShopeeOrderLine] = []


class ShopeeIncomeLine(_ShopeeModel):
    commission_fee: float = 0
    service_fee: float = 0
    transaction_fee: float = 0
    actual_shipping_fee: float = 0


class ShopeeOrderIncome(_ShopeeModel):
    order_sn: str
    order_income_list: List[ShopeeIncomeLine] = []


# ── Webhooks ──

ShopeeWebhookTopic = Literal["order_status", "item_update"]


class ShopeeWebhookData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    order_sn: Optional[str] = None
    item_id: Optional[int] = None
    status: Optional[str] = None
    update_time: Optional[int] = None


class ShopeeWebhook(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shop_id: int
    timestamp: int
    data: ShopeeWebhookData
