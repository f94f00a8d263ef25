"""ECOMMIND — Resource Extractors.

An extractor pairs a paged fetch with a pure mapping step for one
vendor resource. The orchestrator drives it; extractors never write.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, Field
from sqlmodel import SQLModel

from ecommind.connectors.base import BaseAdapter, Page
from ecommind.connectors.bling import transformer as bling_tf
from ecommind.connectors.bling.schemas import BlingOrder, BlingProduct
from ecommind.connectors.meli import transformer as meli_tf
from ecommind.connectors.meli.schemas import MeliListing, MeliOrder
from ecommind.connectors.shopee import transformer as shopee_tf
from ecommind.connectors.shopee.client import ORDER_WINDOW_DAYS
from ecommind.connectors.shopee.schemas import ShopeeItem, ShopeeOrder, ShopeeOrderIncome
from ecommind.config import settings
from ecommind.core.errors import ValidationFailedError
from ecommind.models.canonical_models import (
    Order,
    OrderFee,
    OrderItem,
    Product,
    StockSnapshot,
)

Batch = List[Tuple[Type[SQLModel], List[Dict[str, Any]]]]

SHOPEE_FULL_SYNC_DAYS = 90

RESOURCES = {
    "bling": ("products", "orders"),
    "meli": ("orders", "listings", "inventory", "fees"),
    "shopee": ("orders", "listings", "stock", "fees"),
}


class SyncFilters(BaseModel):
    """Optional trigger filters. Vendors ignore what they don't support."""

    model_config = {"populate_by_name": True}

    date_from: Optional[datetime] = Field(default=None, alias="dateFrom")
    date_to: Optional[datetime] = Field(default=None, alias="dateTo")
    status: Optional[str] = None
    offset: Optional[int] = Field(default=None, ge=0)
    cursor: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1, le=100)
    page_size: Optional[int] = Field(default=None, ge=1, le=100)

    @property
    def size(self) -> int:
        return self.page_size or self.limit or settings.sync_page_limit


@dataclass
class Extractor:
    resource: str
    fetch: Callable[[Optional[str], Optional[datetime]], Awaitable[Page]]
    map: Callable[[List[Dict[str, Any]], str], Batch]
    start_cursor: Optional[str] = None


def expand_resources(vendor: str, resource: str) -> List[str]:
    """'all' expands to every resource of the vendor, in sync order."""
    supported = RESOURCES.get(vendor)
    if supported is None:
        raise ValidationFailedError(f"Unknown vendor: {vendor}")
    if resource == "all":
        return list(supported)
    if resource not in supported:
        raise ValidationFailedError(
            f"Unsupported {vendor} resource '{resource}'",
            details=[f"resource must be one of {', '.join(supported + ('all',))}"],
        )
    return [resource]


# ── Mapping helpers ──


def _map_orders(model, to_order, to_items) -> Callable[[List[Dict[str, Any]], str], Batch]:
    def _map(items: List[Dict[str, Any]], company_id: str) -> Batch:
        orders, lines = [], []
        for raw in items:
            parsed = model.model_validate(raw)
            orders.append(to_order(parsed, company_id))
            lines.extend(to_items(parsed, company_id))
        return [(Order, orders), (OrderItem, lines)]

    return _map


def _map_single(model, to_row, target) -> Callable[[List[Dict[str, Any]], str], Batch]:
    def _map(items: List[Dict[str, Any]], company_id: str) -> Batch:
        return [(target, [to_row(model.model_validate(raw), company_id) for raw in items])]

    return _map


def _map_multi(model, to_rows, target) -> Callable[[List[Dict[str, Any]], str], Batch]:
    def _map(items: List[Dict[str, Any]], company_id: str) -> Batch:
        rows: List[Dict[str, Any]] = []
        for raw in items:
            rows.extend(to_rows(model.model_validate(raw), company_id))
        return [(target, rows)]

    return _map


def _epoch(dt: Optional[datetime]) -> Optional[int]:
    return int(dt.timestamp()) if dt else None


def _window_cursor(window_from: int, cursor: str = "") -> str:
    return f"{window_from}:{cursor}"


def _parse_window_cursor(cursor: Optional[str]) -> Tuple[Optional[int], str]:
    """'<window_from>:<vendor cursor>' into its parts; anything else is a bare vendor cursor."""
    if cursor:
        head, sep, rest = cursor.partition(":")
        if sep and head.isdigit():
            return int(head), rest
    return None, cursor or ""


# ── Vendor extractor sets ──


def bling_extractors(adapter: BaseAdapter, filters: SyncFilters) -> Dict[str, Extractor]:
    def since_str(since: Optional[datetime]) -> Optional[str]:
        return since.strftime("%Y-%m-%d %H:%M:%S") if since else None

    async def products(cursor, since):
        return await adapter.get_products(int(cursor or 1), since_str(since), filters.size)

    async def orders(cursor, since):
        return await adapter.get_orders(int(cursor or 1), since_str(since), filters.size)

    return {
        "products": Extractor(
            "products", products, _map_single(BlingProduct, bling_tf.map_product, Product)
        ),
        "orders": Extractor(
            "orders",
            orders,
            _map_orders(BlingOrder, bling_tf.map_order, bling_tf.map_order_items),
        ),
    }


def meli_extractors(adapter: BaseAdapter, filters: SyncFilters) -> Dict[str, Extractor]:
    order_filters: Dict[str, Any] = {"order.status": filters.status}
    if filters.date_to:
        order_filters["order.date_last_updated.to"] = filters.date_to.isoformat()
    start = str(filters.offset) if filters.offset is not None else None

    async def orders(cursor, since):
        return await adapter.search_orders(
            int(cursor or 0), filters.size, since.isoformat() if since else None, order_filters
        )

    async def listings(cursor, since):
        return await adapter.get_user_items(int(cursor or 0), filters.size)

    return {
        "orders": Extractor(
            "orders",
            orders,
            _map_orders(MeliOrder, meli_tf.map_order, meli_tf.map_order_items),
            start,
        ),
        "listings": Extractor(
            "listings", listings, _map_single(MeliListing, meli_tf.map_listing, Product), start
        ),
        "inventory": Extractor(
            "inventory",
            listings,
            _map_single(MeliListing, meli_tf.map_inventory, StockSnapshot),
            start,
        ),
        "fees": Extractor(
            "fees", orders, _map_multi(MeliOrder, meli_tf.map_order_fees, OrderFee), start
        ),
    }


def shopee_extractors(adapter: BaseAdapter, filters: SyncFilters) -> Dict[str, Extractor]:
    until = _epoch(filters.date_to) or int(datetime.now(timezone.utc).timestamp())
    window = int(timedelta(days=ORDER_WINDOW_DAYS).total_seconds())

    async def orders(cursor, since):
        """Walk [since, until] in windows no wider than get_order_list accepts.

        Without a lower bound the walk starts SHOPEE_FULL_SYNC_DAYS back.
        The cursor carries the current window start, so a window with no
        orders moves straight on to the next one.
        """
        window_from, vendor_cursor = _parse_window_cursor(cursor)
        if window_from is None:
            window_from = _epoch(since) or until - SHOPEE_FULL_SYNC_DAYS * 86400
        while window_from < until:
            window_to = min(window_from + window, until)
            page = await adapter.get_order_list(
                vendor_cursor, window_from, window_to, filters.size, filters.status
            )
            if page.has_more and page.next_cursor:
                return Page(
                    items=page.items,
                    has_more=True,
                    next_cursor=_window_cursor(window_from, page.next_cursor),
                )
            more_windows = window_to < until
            if page.items or not more_windows:
                return Page(
                    items=page.items,
                    has_more=more_windows,
                    next_cursor=_window_cursor(window_to) if more_windows else None,
                )
            window_from, vendor_cursor = window_to, ""
        return Page(items=[])

    async def items(cursor, since):
        return await adapter.get_item_list(int(cursor or 0), filters.size, _epoch(since))

    async def fees(cursor, since):
        page = await orders(cursor, since)
        incomes = await adapter.get_order_income([o["order_sn"] for o in page.items])
        return Page(
            items=[i.model_dump() for i in incomes],
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

    item_start = str(filters.offset) if filters.offset is not None else None
    return {
        "orders": Extractor(
            "orders",
            orders,
            _map_orders(ShopeeOrder, shopee_tf.map_order, shopee_tf.map_order_items),
            filters.cursor,
        ),
        "listings": Extractor(
            "listings", items, _map_single(ShopeeItem, shopee_tf.map_item, Product), item_start
        ),
        "stock": Extractor(
            "stock", items, _map_single(ShopeeItem, shopee_tf.map_stock, StockSnapshot), item_start
        ),
        "fees": Extractor(
            "fees",
            fees,
            _map_multi(ShopeeOrderIncome, shopee_tf.map_order_fees, OrderFee),
            filters.cursor,
        ),
    }


EXTRACTOR_FACTORIES = {
    "bling": bling_extractors,
    "meli": meli_extractors,
    "shopee": shopee_extractors,
}


def build_extractors(
    vendor: str, adapter: BaseAdapter, filters: Optional[SyncFilters] = None
) -> Dict[str, Extractor]:
    return EXTRACTOR_FACTORIES[vendor](adapter, filters or SyncFilters())
