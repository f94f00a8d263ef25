"""Tests for order-fee and stock-snapshot mapping and loading."""

from datetime import date

from sqlmodel import select

from ecommind.connectors.meli import transformer as meli_tf
from ecommind.connectors.meli.schemas import MeliOrder
from ecommind.connectors.shopee import transformer as shopee_tf
from ecommind.connectors.shopee.schemas import ShopeeItem
from ecommind.etl.loader import upsert_rows
from ecommind.models.canonical_models import OrderFee, StockSnapshot


def _meli_order(sale_fee=12.5):
    return MeliOrder.model_validate(
        {
            "id": 2000001,
            "status": "paid",
            "order_items": [
                {"item": {"id": "MLB1"}, "quantity": 2, "unit_price": 50.0, "sale_fee": sale_fee},
                {"item": {"id": "MLB2"}, "quantity": 1, "unit_price": 30.0, "sale_fee": None},
            ],
        }
    )


def test_meli_sale_fee_summed_per_order():
    rows = meli_tf.map_order_fees(_meli_order(), "company-1")
    assert rows == [
        {
            "company_id": "company-1",
            "channel": "meli",
            "order_id": "2000001",
            "fee_type": "sale_fee",
            "amount": 25.0,
        }
    ]


def test_meli_order_without_fees_maps_to_nothing():
    assert meli_tf.map_order_fees(_meli_order(sale_fee=None), "company-1") == []


def test_shopee_stock_snapshot_falls_back_to_item_id():
    item = ShopeeItem.model_validate(
        {"item_id": 777, "stock_info": [{"current_stock": 9, "reserved_stock": 2}]}
    )
    row = shopee_tf.map_stock(item, "company-1", snapshot_date=date(2026, 3, 1))
    assert row["sku"] == "777"
    assert row["snapshot_date"] == "2026-03-01"
    assert row["available_quantity"] == 9
    assert row["reserved_quantity"] == 2


def test_fee_replay_updates_in_place(session):
    rows = meli_tf.map_order_fees(_meli_order(), "company-1")
    first = upsert_rows(session, OrderFee, rows)
    second = upsert_rows(session, OrderFee, meli_tf.map_order_fees(_meli_order(sale_fee=10.0), "company-1"))

    assert (first.inserted, second.updated) == (1, 1)
    stored = session.exec(select(OrderFee)).all()
    assert len(stored) == 1
    assert stored[0].amount == 20.0


def test_one_snapshot_per_day(session):
    item = ShopeeItem.model_validate({"item_id": 1, "item_sku": "KIT", "stock_info": [{"current_stock": 3}]})
    upsert_rows(session, StockSnapshot, [shopee_tf.map_stock(item, "company-1", date(2026, 3, 1))])
    upsert_rows(session, StockSnapshot, [shopee_tf.map_stock(item, "company-1", date(2026, 3, 1))])
    upsert_rows(session, StockSnapshot, [shopee_tf.map_stock(item, "company-1", date(2026, 3, 2))])

    dates = sorted(s.snapshot_date for s in session.exec(select(StockSnapshot)).all())
    assert dates == ["2026-03-01", "2026-03-02"]
