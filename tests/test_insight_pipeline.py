"""Tests for dataset upload and insight persistence."""

from datetime import date, datetime, timezone

import pytest
from sqlmodel import select

from ecommind.analyzer.insight_pipeline import (
    build_company_context,
    generate_insights,
    mission_tags,
    mission_title,
    store_dataset,
)
from ecommind.core.errors import NotFoundError, ValidationFailedError
from ecommind.models.canonical_models import Product
from ecommind.models.insight_models import Insight, InsightPayload, Mission
from ecommind.models.integration_models import CompanySettings
from ecommind.models.market_models import MarketRecord

NOW = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)
START = date(2026, 2, 1)
END = date(2026, 2, 28)


def _rows():
    return [
        {
            "channel": "meli",
            "category": "Moda",
            "record_type": "listing",
            "identifier": "vestido-midi",
            "title": "Vestido Midi",
            "demand_index": "85",
            "growth_rate": "0.3",
            "revenue_est": "42000",
        },
        {
            "channel": "shopee",
            "category": "Moda",
            "record_type": "keyword",
            "identifier": "kit-meias",
            "title": "Kit Meias",
            "demand_index": "20",
            "revenue_est": "15000",
        },
        {"channel": "meli", "category": "", "record_type": "listing", "identifier": "broken"},
    ]


def _upload(session, company_id="company-1", rows=None):
    return store_dataset(session, company_id, "user-1", START, END, "niche", rows or _rows(), "mercado.csv")


class TestStoreDataset:
    def test_valid_rows_stored_and_errors_reported(self, session):
        result = _upload(session)
        assert result.total_rows == 3
        assert result.valid_rows == 2
        assert result.error_rows == 1
        assert result.validation_errors[0].row == 3
        stored = session.exec(select(MarketRecord).where(MarketRecord.dataset_id == result.dataset_id)).all()
        assert {r.identifier for r in stored} == {"vestido-midi", "kit-meias"}
        assert all(r.company_id == "company-1" for r in stored)

    def test_period_must_be_ordered(self, session):
        with pytest.raises(ValidationFailedError):
            store_dataset(session, "company-1", "user-1", END, START, "niche", _rows())

    def test_empty_upload_rejected(self, session):
        with pytest.raises(ValidationFailedError):
            store_dataset(session, "company-1", "user-1", START, END, "niche", [])

    def test_all_invalid_rows_rejected_with_details(self, session):
        with pytest.raises(ValidationFailedError) as exc:
            _upload(session, rows=[{"channel": "meli"}])
        assert exc.value.details[0]["row"] == 1


class TestGenerateInsights:
    def test_insights_and_missions_created(self, session):
        upload = _upload(session)
        result = generate_insights(session, "company-1", "user-1", upload.dataset_id, clock=lambda: NOW)

        types = {i.type for i in result.insights}
        assert "trend_opportunity" in types
        assert "bundle_opportunity" in types
        assert result.summary.total_records == 2
        assert result.summary.insights_saved == len(result.insights)
        assert result.summary.missions_created == len(result.insights)
        missions = session.exec(select(Mission)).all()
        assert {m.origin_insight_id for m in missions} == {i.id for i in result.insights}
        assert all(m.status == "backlog" for m in missions)

    def test_second_run_only_reports_duplicates(self, session):
        upload = _upload(session)
        first = generate_insights(session, "company-1", "user-1", upload.dataset_id, clock=lambda: NOW)
        second = generate_insights(session, "company-1", "user-1", upload.dataset_id, clock=lambda: NOW)

        assert second.summary.insights_saved == 0
        assert second.summary.missions_created == 0
        assert second.summary.insights_duplicated == first.summary.insights_saved
        assert len(session.exec(select(Insight)).all()) == first.summary.insights_saved

    def test_missions_can_be_skipped(self, session):
        upload = _upload(session)
        result = generate_insights(
            session, "company-1", "user-1", upload.dataset_id, auto_create_missions=False, clock=lambda: NOW
        )
        assert result.summary.missions_created == 0
        assert session.exec(select(Mission)).all() == []

    def test_other_companys_dataset_is_not_found(self, session):
        upload = _upload(session)
        with pytest.raises(NotFoundError):
            generate_insights(session, "company-2", "user-2", upload.dataset_id)


class TestContext:
    def test_context_merges_settings_and_active_catalog(self, session):
        session.add(CompanySettings(company_id="company-1", focus_categories=["Moda"], commissions={"meli": 0.14}))
        session.add(Product(company_id="company-1", sku="A", title="Ativo", active=True))
        session.add(Product(company_id="company-1", sku="B", title="Inativo", active=False))
        session.commit()

        context = build_company_context(session, "company-1")
        assert context.focus_categories == ["Moda"]
        assert context.commissions["meli"] == 0.14
        assert context.commissions["shopee"] == 0.08
        assert [p.sku for p in context.products] == ["A"]


def test_mission_title_and_tags_follow_insight_scope():
    payload = InsightPayload(
        type="price_gap",
        title="Gap de preço: CAM-01",
        summary="Preço acima do mercado em 20.0%",
        scope={"sku": "CAM-01", "category": "Moda Praia", "channel": "meli"},
        confidence=0.8,
        impact="pricing",
        dedupe_key="market:price_gap:CAM-01:meli:2026-03",
    )
    assert mission_title(payload) == "Revisar preço: CAM-01"
    assert mission_tags(payload) == [
        "market:price_gap",
        "channel:meli",
        "category:moda_praia",
        "sku:CAM-01",
    ]
