"""Tests for the Shopee order extractor's time-window walk."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlmodel import select

from ecommind.connectors.base import Page
from ecommind.connectors.shopee.client import ShopeeClient
from ecommind.core.errors import ValidationFailedError
from ecommind.etl.extractors import SyncFilters, build_extractors
from ecommind.etl.service import EtlService
from ecommind.models.canonical_models import Order

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
FIFTEEN_DAYS = 15 * 86400


def _ts(dt: datetime) -> int:
    return int(dt.timestamp())


class FakeShopeeOrders:
    """Serves order pages of two from (update_time, order_sn) pairs."""

    def __init__(self, orders):
        self.orders = orders
        self.calls = []

    async def get_order_list(self, cursor="", time_from=None, time_to=None, page_size=50, status=None):
        self.calls.append((cursor, time_from, time_to))
        matching = [sn for ts, sn in self.orders if time_from <= ts <= time_to]
        start = int(cursor or 0)
        more = start + 2 < len(matching)
        return Page(
            items=[{"order_sn": sn} for sn in matching[start:start + 2]],
            has_more=more,
            next_cursor=str(start + 2) if more else None,
        )


def _orders_extractor(adapter):
    return build_extractors("shopee", adapter, SyncFilters(date_to=T0))["orders"]


@pytest.mark.asyncio
async def test_full_sync_walks_ninety_days_in_fifteen_day_windows(session):
    adapter = FakeShopeeOrders(
        [
            (_ts(T0 - timedelta(days=80)), "A1"),
            (_ts(T0 - timedelta(days=80, hours=1)), "A2"),
            (_ts(T0 - timedelta(days=80, hours=2)), "A3"),
            (_ts(T0 - timedelta(days=2)), "B1"),
        ]
    )
    service = EtlService(session, clock=lambda: T0)

    result = await service.sync("company-1", "shopee.orders", _orders_extractor(adapter), force=True)

    assert result.success is True
    assert result.rows == 4
    windows = [(time_from, time_to) for _, time_from, time_to in adapter.calls]
    assert windows[0][0] == _ts(T0 - timedelta(days=90))
    assert windows[-1][1] == _ts(T0)
    assert all(time_to - time_from <= FIFTEEN_DAYS for time_from, time_to in windows)
    # the first window is paged by the vendor cursor, the empty ones are skipped over
    assert [cursor for cursor, _, _ in adapter.calls] == ["", "2", "", "", "", "", ""]
    stored = session.exec(select(Order)).all()
    assert {o.order_id for o in stored} == {"A1", "A2", "A3", "B1"}


@pytest.mark.asyncio
async def test_stale_checkpoint_is_split_into_valid_windows(session):
    adapter = FakeShopeeOrders([(_ts(T0 - timedelta(days=39)), "OLD"), (_ts(T0 - timedelta(hours=3)), "NEW")])
    service = EtlService(session, clock=lambda: T0)
    service.advance_checkpoint("company-1", "shopee.orders", T0 - timedelta(days=40))

    result = await service.sync("company-1", "shopee.orders", _orders_extractor(adapter))

    assert result.success is True
    assert result.rows == 2
    since = _ts(T0 - timedelta(days=40, minutes=30))
    assert adapter.calls[0][1] == since
    assert len(adapter.calls) == 3
    assert all(time_to - time_from <= FIFTEEN_DAYS for _, time_from, time_to in adapter.calls)
    assert service.get_checkpoint("company-1", "shopee.orders").last_run_at.replace(tzinfo=timezone.utc) == T0


@pytest.mark.asyncio
async def test_client_rejects_ranges_wider_than_fifteen_days(sleeper):
    client = ShopeeClient(
        partner_id="1001",
        partner_key="pkey",
        base_url="https://shopee.test",
        access_token="tok",
        refresh_token="ref",
        expires_at=T0 + timedelta(days=3650),
        external_account_id="555",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        sleep=sleeper,
    )
    with pytest.raises(ValidationFailedError):
        await client.get_order_list("", _ts(T0 - timedelta(days=40)), _ts(T0))
    await client.close()
