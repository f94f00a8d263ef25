"""Tests for the checkpointed ETL orchestrator."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlmodel import select

from ecommind.connectors.base import Page
from ecommind.connectors.bling import transformer as bling_tf
from ecommind.connectors.bling.schemas import BlingProduct
from ecommind.core.errors import IntegrationDisabledError, VendorAPIError
from ecommind.etl.extractors import Extractor, SyncFilters, expand_resources
from ecommind.etl.service import EtlService
from ecommind.models.canonical_models import Product
from ecommind.models.etl_models import EtlCheckpoint, EtlRun

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _product(n: int, price: float = 10.0) -> dict:
    return {"id": n, "codigo": f"SKU-{n}", "descricao": f"Produto {n}", "preco": price, "situacao": "Ativo"}


def _map_products(items, company_id):
    return [(Product, [bling_tf.map_product(BlingProduct.model_validate(i), company_id) for i in items])]


class FakeSource:
    """Page-numbered source; optionally fails on a given page."""

    def __init__(self, pages, fail_on=None):
        self.pages = pages
        self.fail_on = fail_on
        self.calls = []

    async def fetch(self, cursor, since):
        number = int(cursor or 1)
        self.calls.append((number, since))
        if number == self.fail_on:
            raise VendorAPIError("bling", "upstream exploded", 500)
        items = self.pages[number - 1]
        return Page(items=items, has_more=number < len(self.pages), next_cursor=str(number + 1))

    def extractor(self) -> Extractor:
        return Extractor("products", self.fetch, _map_products)


def _service(session, at=T0, **kwargs) -> EtlService:
    return EtlService(session, clock=lambda: at, **kwargs)


class TestCheckpoints:
    def test_no_checkpoint_means_full_extraction(self, session):
        assert _service(session).compute_since("company-1", "bling.products") is None

    def test_since_subtracts_overlap(self, session):
        service = _service(session)
        service.advance_checkpoint("company-1", "bling.products", T0)
        assert service.compute_since("company-1", "bling.products") == T0 - timedelta(minutes=30)

    def test_custom_overlap(self, session):
        service = _service(session, overlap_minutes=5)
        service.advance_checkpoint("company-1", "bling.products", T0)
        assert service.compute_since("company-1", "bling.products") == T0 - timedelta(minutes=5)

    def test_checkpoint_never_moves_backwards(self, session):
        service = _service(session)
        service.advance_checkpoint("company-1", "bling.orders", T0)
        service.advance_checkpoint("company-1", "bling.orders", T0 - timedelta(hours=2))
        checkpoint = service.get_checkpoint("company-1", "bling.orders")
        assert checkpoint.last_run_at.replace(tzinfo=timezone.utc) == T0

    def test_checkpoints_are_per_company_and_source(self, session):
        service = _service(session)
        service.advance_checkpoint("company-1", "bling.orders", T0)
        assert service.get_checkpoint("company-2", "bling.orders") is None
        assert service.get_checkpoint("company-1", "bling.products") is None


class TestSync:
    @pytest.mark.asyncio
    async def test_successful_run_walks_all_pages(self, session):
        source = FakeSource([[_product(1), _product(2)], [_product(3)]])
        result = await _service(session).sync("company-1", "bling.products", source.extractor())

        assert result.success is True
        assert result.pages == 2
        assert result.rows == 3
        assert result.inserted == 3
        assert [call[0] for call in source.calls] == [1, 2]
        assert source.calls[0][1] is None

        run = session.get(EtlRun, result.etl_run_id)
        assert run.status == "completed"
        assert run.ok is True
        assert run.finished_at is not None

    @pytest.mark.asyncio
    async def test_failure_keeps_partial_counts_and_checkpoint(self, session):
        pages = [[_product(1)], [_product(2)], [_product(3)], [_product(4)]]
        source = FakeSource(pages, fail_on=4)
        result = await _service(session).sync("company-1", "bling.products", source.extractor())

        assert result.success is False
        assert result.pages == 3
        assert "upstream exploded" in result.error
        assert session.exec(select(EtlCheckpoint)).first() is None

        run = session.get(EtlRun, result.etl_run_id)
        assert run.status == "failed"
        assert run.pages == 3
        # pages committed before the failure stay
        assert len(session.exec(select(Product)).all()) == 3

    @pytest.mark.asyncio
    async def test_failed_run_does_not_move_existing_checkpoint(self, session):
        service = _service(session, at=T0 + timedelta(hours=1))
        service.advance_checkpoint("company-1", "bling.products", T0)
        source = FakeSource([[_product(1)]], fail_on=1)
        await service.sync("company-1", "bling.products", source.extractor())
        checkpoint = service.get_checkpoint("company-1", "bling.products")
        assert checkpoint.last_run_at.replace(tzinfo=timezone.utc) == T0

    @pytest.mark.asyncio
    async def test_incremental_run_uses_overlapped_since(self, session):
        service = _service(session, at=T0 + timedelta(hours=1))
        service.advance_checkpoint("company-1", "bling.products", T0)
        source = FakeSource([[_product(1)]])
        await service.sync("company-1", "bling.products", source.extractor())
        assert source.calls[0][1] == T0 - timedelta(minutes=30)

    @pytest.mark.asyncio
    async def test_force_ignores_checkpoint(self, session):
        service = _service(session, at=T0 + timedelta(hours=1))
        service.advance_checkpoint("company-1", "bling.products", T0)
        source = FakeSource([[_product(1)]])
        await service.sync("company-1", "bling.products", source.extractor(), force=True)
        assert source.calls[0][1] is None

    @pytest.mark.asyncio
    async def test_replaying_a_run_updates_instead_of_duplicating(self, session):
        service = _service(session)
        await service.sync("company-1", "bling.products", FakeSource([[_product(1), _product(2)]]).extractor())
        second = await service.sync(
            "company-1", "bling.products", FakeSource([[_product(1, price=12.5), _product(2)]]).extractor()
        )

        assert second.inserted == 0
        assert second.updated == 2
        products = session.exec(select(Product).order_by(Product.sku)).all()
        assert len(products) == 2
        assert products[0].price == 12.5

    @pytest.mark.asyncio
    async def test_empty_first_page_is_a_successful_no_op(self, session):
        result = await _service(session).sync("company-1", "bling.products", FakeSource([[]]).extractor())
        assert result.success is True
        assert result.pages == 0


class TestTrigger:
    @pytest.mark.asyncio
    async def test_trigger_syncs_through_vault_adapter(self, session, make_integration, sleeper):
        make_integration("bling")

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer bling-access"
            if request.url.path.endswith("/produtos"):
                return httpx.Response(
                    200, json={"data": [_product(1), _product(2)], "pagina": 1, "totalPaginas": 1}
                )
            return httpx.Response(404)

        service = _service(
            session,
            adapter_kwargs={"transport": httpx.MockTransport(handler), "sleep": sleeper},
        )
        result = await service.trigger("company-1", "bling", "products")

        assert result.success is True
        assert [r.resource for r in result.results] == ["products"]
        assert result.results[0].processed == 2
        assert service.get_checkpoint("company-1", "bling.products") is not None

    @pytest.mark.asyncio
    async def test_trigger_failure_returns_partial_results(self, session, make_integration, sleeper):
        make_integration("bling")

        def handler(request):
            if request.url.path.endswith("/produtos"):
                return httpx.Response(200, json={"data": [_product(1)], "pagina": 1, "totalPaginas": 1})
            return httpx.Response(400, json={"error": {"type": "VALIDATION_ERROR", "description": "bad"}})

        service = _service(
            session,
            adapter_kwargs={"transport": httpx.MockTransport(handler), "sleep": sleeper},
        )
        result = await service.trigger("company-1", "bling", "all")

        assert result.success is False
        assert [r.resource for r in result.results] == ["products"]
        assert service.get_checkpoint("company-1", "bling.products") is not None
        assert service.get_checkpoint("company-1", "bling.orders") is None
        run = session.get(EtlRun, result.etl_run_id)
        assert run.status == "failed"

    @pytest.mark.asyncio
    async def test_disabled_integration_is_rejected(self, session, make_integration):
        make_integration("bling", sync_enabled=False)
        with pytest.raises(IntegrationDisabledError):
            await _service(session).trigger("company-1", "bling", "all")


def test_all_expands_in_sync_order():
    assert expand_resources("meli", "all") == ["orders", "listings", "inventory", "fees"]


def test_sync_filters_accept_camel_case_aliases():
    filters = SyncFilters.model_validate({"dateFrom": "2026-01-01T00:00:00Z", "limit": 20})
    assert filters.date_from.year == 2026
    assert filters.size == 20
