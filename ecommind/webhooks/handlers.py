"""ECOMMIND — Webhook Topic Handlers.

Incremental sync for a single record: fetch it through the adapter and
upsert the canonical rows. Handlers raise on failure; the ingestor records
the outcome on the event row.
"""

from typing import Awaitable, Callable, Dict

from sqlmodel import Session

from ecommind.connectors.base import BaseAdapter
from ecommind.connectors.bling import transformer as bling_tf
from ecommind.connectors.bling.schemas import BlingWebhook
from ecommind.connectors.meli import transformer as meli_tf
from ecommind.connectors.meli.schemas import MeliWebhook
from ecommind.connectors.shopee import transformer as shopee_tf
from ecommind.connectors.shopee.schemas import ShopeeWebhook
from ecommind.core.errors import ValidationFailedError
from ecommind.core.logging import get_logger
from ecommind.etl.loader import upsert_rows
from ecommind.models.canonical_models import (
    Order,
    OrderFee,
    OrderItem,
    Product,
    StockSnapshot,
)
from ecommind.models.integration_models import Integration

logger = get_logger("webhooks.handlers")

Handler = Callable[[Session, Integration, object, BaseAdapter], Awaitable[None]]


# ── Bling ──


async def bling_order(session: Session, integration: Integration, event: BlingWebhook, adapter) -> None:
    order = await adapter.get_order(event.data.id)
    upsert_rows(session, Order, [bling_tf.map_order(order, integration.company_id)])
    upsert_rows(session, OrderItem, bling_tf.map_order_items(order, integration.company_id))


async def bling_product(session: Session, integration: Integration, event: BlingWebhook, adapter) -> None:
    product = await adapter.get_product(event.data.id)
    upsert_rows(session, Product, [bling_tf.map_product(product, integration.company_id)])


# ── Mercado Livre ──


def _resource_id(resource: str) -> str:
    """'/orders/2000003508' -> '2000003508'."""
    resource_id = resource.rstrip("/").rsplit("/", 1)[-1]
    if not resource_id:
        raise ValidationFailedError(f"Cannot parse resource id from '{resource}'")
    return resource_id


async def meli_order(session: Session, integration: Integration, event: MeliWebhook, adapter) -> None:
    order = await adapter.get_order(_resource_id(event.resource))
    company_id = integration.company_id
    upsert_rows(session, Order, [meli_tf.map_order(order, company_id)])
    upsert_rows(session, OrderItem, meli_tf.map_order_items(order, company_id))
    upsert_rows(session, OrderFee, meli_tf.map_order_fees(order, company_id))


async def meli_item(session: Session, integration: Integration, event: MeliWebhook, adapter) -> None:
    listing = await adapter.get_item(_resource_id(event.resource))
    upsert_rows(session, Product, [meli_tf.map_listing(listing, integration.company_id)])
    upsert_rows(session, StockSnapshot, [meli_tf.map_inventory(listing, integration.company_id)])


async def meli_acknowledge(session: Session, integration: Integration, event: MeliWebhook, adapter) -> None:
    # questions / claims have no canonical table; the stored event is the record
    logger.info(
        f"Meli {event.topic} notification stored for {event.resource}",
        extra={"company_id": integration.company_id, "vendor": "meli", "topic": event.topic},
    )


# ── Shopee ──


async def shopee_order(session: Session, integration: Integration, event: ShopeeWebhook, adapter) -> None:
    if not event.data.order_sn:
        raise ValidationFailedError("order_status event without data.order_sn")
    company_id = integration.company_id
    for order in await adapter.get_order_detail([event.data.order_sn]):
        upsert_rows(session, Order, [shopee_tf.map_order(order, company_id)])
        upsert_rows(session, OrderItem, shopee_tf.map_order_items(order, company_id))


async def shopee_item(session: Session, integration: Integration, event: ShopeeWebhook, adapter) -> None:
    if not event.data.item_id:
        raise ValidationFailedError("item_update event without data.item_id")
    company_id = integration.company_id
    for item in await adapter.get_item_base_info([event.data.item_id]):
        upsert_rows(session, Product, [shopee_tf.map_item(item, company_id)])
        upsert_rows(session, StockSnapshot, [shopee_tf.map_stock(item, company_id)])


HANDLERS: Dict[str, Dict[str, Handler]] = {
    "bling": {
        "orders": bling_order,
        "status": bling_order,
        "products": bling_product,
        "stock": bling_product,
    },
    "meli": {
        "orders": meli_order,
        "items": meli_item,
        "questions": meli_acknowledge,
        "claims": meli_acknowledge,
    },
    "shopee": {
        "order_status": shopee_order,
        "item_update": shopee_item,
    },
}
