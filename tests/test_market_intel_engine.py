"""Tests for the market-intelligence rule passes."""

from datetime import datetime, timezone

import pytest

from ecommind.analyzer.market_intel_engine import (
    MarketIntelEngine,
    calculate_confidence,
    format_brl,
    is_similar,
)
from ecommind.models.insight_models import CompanyContext, ContextProduct
from ecommind.models.market_models import MarketRecord

NOW = datetime(2026, 3, 15, 9, 0, tzinfo=timezone.utc)


def _record(**overrides) -> MarketRecord:
    fields = dict(
        dataset_id=1,
        company_id="company-1",
        channel="meli",
        category="Moda",
        record_type="listing",
        identifier="camiseta-basica",
        title="Camiseta Básica",
        attributes={},
    )
    fields.update(overrides)
    return MarketRecord(**fields)


def _engine(records, products=(), focus=()) -> MarketIntelEngine:
    context = CompanyContext(
        company_id="company-1",
        focus_categories=list(focus),
        products=list(products),
    )
    return MarketIntelEngine(context, records, clock=lambda: NOW)


def _types(insights):
    return [i.type for i in insights]


class TestTrend:
    def test_focus_category_trend_is_p0(self):
        record = _record(growth_rate=0.25, demand_index=70)
        [insight] = _engine([record], focus=["Moda"]).trend_opportunities("2026-03")

        assert insight.priority == "P0"
        assert insight.sla_days == 2
        assert insight.title == "Tendência em alta: camiseta-basica"
        assert insight.summary == "Moda apresenta crescimento de 25.0% com demanda 70/100"
        assert insight.dedupe_key == "market:trend_opportunity:camiseta-basica:2026-03"

    def test_non_focus_trend_is_p1(self):
        record = _record(growth_rate=0.25, demand_index=70)
        [insight] = _engine([record]).trend_opportunities("2026-03")
        assert insight.priority == "P1"
        assert insight.sla_days == 5

    @pytest.mark.parametrize("growth,demand", [(0.10, 90), (0.5, 59), (None, 80), (0.3, None)])
    def test_below_thresholds_emit_nothing(self, growth, demand):
        record = _record(growth_rate=growth, demand_index=demand)
        assert _engine([record]).trend_opportunities("2026-03") == []


class TestPortfolioGap:
    def test_uncovered_demand_is_a_gap(self):
        record = _record(demand_index=55, title="Mochila Impermeável", identifier="mochila-imp")
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica Algodão")]
        insights = _engine([record], products=products).gap_portfolio("2026-03")
        assert _types(insights) == ["gap_portfolio"]
        assert insights[0].priority == "P1"

    def test_similar_product_closes_the_gap(self):
        record = _record(demand_index=80, title="Camiseta Básica")
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica Algodão")]
        assert _engine([record], products=products).gap_portfolio("2026-03") == []


class TestPriceGap:
    def test_market_below_own_price_is_flagged(self):
        record = _record(price_median=80.0)
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", category="Moda", price=100.0)]
        [insight] = _engine([record], products=products).price_gaps("2026-03")

        assert insight.type == "price_gap"
        assert insight.summary == "Preço acima do mercado em 20.0%"
        assert insight.evidence["gap_percent"] == pytest.approx(-20.0)
        assert insight.dedupe_key == "market:price_gap:CAM-01:meli:2026-03"
        assert insight.priority == "P2"

    def test_market_above_own_price_reads_abaixo(self):
        record = _record(price_median=130.0)
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", price=100.0)]
        [insight] = _engine([record], products=products).price_gaps("2026-03")
        assert insight.summary == "Preço abaixo do mercado em 30.0%"

    def test_small_gap_is_ignored(self):
        record = _record(price_median=95.0)
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", price=100.0)]
        assert _engine([record], products=products).price_gaps("2026-03") == []

    def test_products_without_price_are_skipped(self):
        record = _record(price_median=50.0)
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", price=0)]
        assert _engine([record], products=products).price_gaps("2026-03") == []


class TestVariations:
    def test_missing_market_variations(self):
        record = _record(attributes={"colors": ["Azul", "Verde"], "sizes": ["M"]})
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", variations=["Azul / M"])]
        [insight] = _engine([record], products=products).variation_opportunities("2026-03")
        assert insight.evidence["missing_variations"] == ["Verde"]
        assert insight.summary == "1 variações populares não disponíveis"

    def test_all_variations_carried(self):
        record = _record(attributes={"variations": ["azul"]})
        products = [ContextProduct(sku="CAM-01", title="Camiseta Básica", variations=["Azul"])]
        assert _engine([record], products=products).variation_opportunities("2026-03") == []


class TestBundles:
    def test_high_revenue_kit(self):
        record = _record(title="Kit 3 Camisetas", identifier="kit-camisetas", revenue_est=15000)
        [insight] = _engine([record]).bundle_opportunities("2026-03")
        assert insight.summary == "Kit com receita estimada de R$ 15.000"

    def test_low_revenue_kit_ignored(self):
        record = _record(title="Combo Meias", identifier="combo-meias", revenue_est=9999)
        assert _engine([record]).bundle_opportunities("2026-03") == []

    def test_bundle_attribute_flag(self):
        record = _record(identifier="pack-x", title="Pack X", revenue_est=20000, attributes={"bundle": True})
        assert _types(_engine([record]).bundle_opportunities("2026-03")) == ["bundle_opportunity"]


class TestEngine:
    def test_generate_uses_current_month_period(self):
        record = _record(growth_rate=0.4, demand_index=90)
        insights = _engine([record]).generate_insights()
        assert all(i.dedupe_key.endswith(":2026-03") for i in insights)
        assert "trend_opportunity" in _types(insights)

    def test_dedupe_keys_are_stable_across_runs(self):
        records = [_record(growth_rate=0.4, demand_index=90, revenue_est=50000, title="Kit Camiseta")]
        first = [i.dedupe_key for i in _engine(records).generate_insights()]
        second = [i.dedupe_key for i in _engine(records).generate_insights()]
        assert first == second

    def test_confidence_stays_in_bounds(self):
        bare = _record(channel="site")
        full = _record(
            demand_index=90, growth_rate=0.3, revenue_est=1, sellers_top=3, price_median=10
        )
        assert calculate_confidence(bare) == 0.5
        assert calculate_confidence(full) == 0.95
        for insight in _engine([full]).generate_insights():
            assert 0.0 <= insight.confidence <= 1.0


def test_similarity_rules():
    assert is_similar("Camiseta Básica", "camiseta básica algodão")
    assert not is_similar("Tênis Corrida", "Mochila")
    assert not is_similar(None, "x")


def test_format_brl_grouping():
    assert format_brl(15000) == "15.000"
    assert format_brl(1234.5) == "1.234,5"
