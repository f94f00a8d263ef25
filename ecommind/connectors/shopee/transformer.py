"""ECOMMIND — Shopee → Canonical Transformer."""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from ecommind.connectors.shopee.schemas import ShopeeItem, ShopeeOrder, ShopeeOrderIncome

CHANNEL = "shopee"

STATUS_MAP = {
    "UNPAID": "pending",
    "INVOICE_PENDING": "pending",
    "READY_TO_SHIP": "ready_to_ship",
    "PROCESSED": "processing",
    "RETRY_SHIP": "processing",
    "SHIPPED": "shipped",
    "TO_CONFIRM_RECEIVE": "shipped",
    "COMPLETED": "delivered",
    "IN_CANCEL": "cancelled",
    "CANCELLED": "cancelled",
    "TO_RETURN": "returned",
}


def _from_epoch(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


def map_order(order: ShopeeOrder, company_id: str) -> Dict[str, Any]:
    return {
        "company_id": company_id,
        "order_id": order.order_sn,
        "channel": CHANNEL,
        "status": STATUS_MAP.get(order.order_status or "", "pending"),
        "order_date": _from_epoch(order.create_time),
        "total_amount": order.total_amount or 0.0,
        "shipping_cost": order.actual_shipping_fee or 0.0,
        "discount": 0.0,
        "buyer_name": order.buyer_username,
        "payment_method": order.payment_method,
        "external_id": order.order_sn,
    }


def map_order_items(order: ShopeeOrder, company_id: str) -> List[Dict[str, Any]]:
    items = []
    for index, line in enumerate(order.item_list):
        original = line.model_original_price or line.model_discounted_price
        qty = line.model_quantity_purchased
        items.append(
            {
                "company_id": company_id,
                "order_id": order.order_sn,
                "item_seq": index + 1,
                "sku": line.model_sku or line.item_sku or (str(line.item_id) if line.item_id else None),
                "title": line.item_name,
                "quantity": qty,
                "unit_price": line.model_discounted_price,
                "discount": round(max(original - line.model_discounted_price, 0.0) * qty, 2),
                "total": round(qty * line.model_discounted_price, 2),
                "external_item_id": str(line.order_item_id or line.item_id or ""),
            }
        )
    return items


def map_order_fees(income: ShopeeOrderIncome, company_id: str) -> List[Dict[str, Any]]:
    totals = {"commission": 0.0, "service_fee": 0.0, "transaction_fee": 0.0}
    for line in income.order_income_list:
        totals["commission"] += line.commission_fee
        totals["service_fee"] += line.service_fee
        totals["transaction_fee"] += line.transaction_fee
    return [
        {
            "company_id": company_id,
            "channel": CHANNEL,
            "order_id": income.order_sn,
            "fee_type": fee_type,
            "amount": round(amount, 2),
        }
        for fee_type, amount in totals.items()
    ]


def _item_sku(item: ShopeeItem) -> str:
    return item.item_sku or str(item.item_id)


def map_item(item: ShopeeItem, company_id: str) -> Dict[str, Any]:
    price = item.price_info[0].current_price if item.price_info else None
    stock = item.stock_info[0].current_stock if item.stock_info else None
    variations = [
        str(option.get("option"))
        for tier in item.tier_variation
        for option in tier.option_list
        if option.get("option")
    ]
    return {
        "company_id": company_id,
        "sku": _item_sku(item),
        "title": item.item_name or "",
        "brand": item.brand.original_brand_name if item.brand else None,
        "category": str(item.category_id) if item.category_id else None,
        "price": price,
        "stock": stock,
        "weight_kg": item.weight,
        "active": item.item_status == "NORMAL",
        "channel": CHANNEL,
        "external_id": str(item.item_id),
        "variations": variations,
    }


def map_stock(
    item: ShopeeItem, company_id: str, snapshot_date: Optional[date] = None
) -> Dict[str, Any]:
    snapshot_date = snapshot_date or date.today()
    info = item.stock_info[0] if item.stock_info else None
    return {
        "company_id": company_id,
        "channel": CHANNEL,
        "sku": _item_sku(item),
        "snapshot_date": snapshot_date.isoformat(),
        "available_quantity": (info.current_stock or info.normal_stock or 0) if info else 0,
        "reserved_quantity": (info.reserved_stock or 0) if info else 0,
        "external_id": str(item.item_id),
    }
