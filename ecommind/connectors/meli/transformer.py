"""ECOMMIND — Mercado Livre → Canonical Transformer."""

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ecommind.connectors.meli.schemas import MeliListing, MeliOrder

CHANNEL = "meli"

STATUS_MAP = {
    "confirmed": "pending",
    "payment_required": "pending",
    "payment_in_process": "processing",
    "partially_paid": "processing",
    "paid": "paid",
    "partially_refunded": "returned",
    "pending_cancel": "cancelled",
    "cancelled": "cancelled",
    "invalid": "cancelled",
}


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _listing_sku(listing: MeliListing) -> str:
    if listing.seller_custom_field:
        return listing.seller_custom_field
    for attr in listing.attributes:
        if attr.id == "SELLER_SKU" and attr.value_name:
            return attr.value_name
    return listing.id


def map_order(order: MeliOrder, company_id: str) -> Dict[str, Any]:
    payment = order.payments[0] if order.payments else None
    buyer = order.buyer
    buyer_name = None
    if buyer:
        full = " ".join(p for p in (buyer.first_name, buyer.last_name) if p)
        buyer_name = full or buyer.nickname
    return {
        "company_id": company_id,
        "order_id": str(order.id),
        "channel": CHANNEL,
        "status": STATUS_MAP.get(order.status or "", "pending"),
        "order_date": _parse_date(order.date_created),
        "total_amount": order.total_amount or 0.0,
        "shipping_cost": (payment.shipping_cost if payment else None) or 0.0,
        "discount": (payment.coupon_amount if payment else None) or 0.0,
        "buyer_name": buyer_name,
        "buyer_email": buyer.email if buyer else None,
        "payment_method": (payment.payment_type or payment.payment_method_id) if payment else None,
        "external_id": str(order.id),
    }


def map_order_items(order: MeliOrder, company_id: str) -> List[Dict[str, Any]]:
    items = []
    for index, line in enumerate(order.order_items):
        items.append(
            {
                "company_id": company_id,
                "order_id": str(order.id),
                "item_seq": index + 1,
                "sku": line.item.seller_sku or line.item.seller_custom_field or line.item.id,
                "title": line.item.title,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "discount": 0.0,
                "total": round(line.quantity * line.unit_price, 2),
                "external_item_id": line.item.id,
            }
        )
    return items


def map_order_fees(order: MeliOrder, company_id: str) -> List[Dict[str, Any]]:
    """Sum per-line sale_fee into one sale_fee row per order."""
    total = sum((line.sale_fee or 0.0) * line.quantity for line in order.order_items)
    if not any(line.sale_fee is not None for line in order.order_items):
        return []
    return [
        {
            "company_id": company_id,
            "channel": CHANNEL,
            "order_id": str(order.id),
            "fee_type": "sale_fee",
            "amount": round(total, 2),
        }
    ]


def map_listing(listing: MeliListing, company_id: str) -> Dict[str, Any]:
    variations = []
    for variation in listing.variations:
        label = " / ".join(
            a.value_name for a in variation.attribute_combinations if a.value_name
        )
        if label:
            variations.append(label)
    return {
        "company_id": company_id,
        "sku": _listing_sku(listing),
        "title": listing.title or "",
        "category": listing.category_id,
        "price": listing.price,
        "stock": listing.available_quantity,
        "active": listing.status == "active",
        "channel": CHANNEL,
        "external_id": listing.id,
        "variations": variations,
    }


def map_inventory(
    listing: MeliListing, company_id: str, snapshot_date: Optional[date] = None
) -> Dict[str, Any]:
    snapshot_date = snapshot_date or date.today()
    return {
        "company_id": company_id,
        "channel": CHANNEL,
        "sku": _listing_sku(listing),
        "snapshot_date": snapshot_date.isoformat(),
        "available_quantity": listing.available_quantity or 0,
        "reserved_quantity": 0,
        "external_id": listing.id,
    }
