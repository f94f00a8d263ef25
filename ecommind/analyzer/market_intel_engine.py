"""ECOMMIND — Market Intelligence Engine.

Five independent rule passes over one dataset's market records:
- High growth + high demand        → trend_opportunity
- Demand not covered by portfolio  → gap_portfolio
- Own price far from market median → price_gap
- Market variations we don't carry → variation_opportunity
- High-revenue kits / combos       → bundle_opportunity

Pure: reads the company context and records, returns InsightPayloads.
Persistence lives in insight_pipeline.
"""

import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ecommind.core.logging import get_logger
from ecommind.models.insight_models import CompanyContext, ContextProduct, InsightPayload
from ecommind.models.market_models import MarketRecord

logger = get_logger("analyzer.market_intel")

# Thresholds
TREND_MIN_GROWTH = 0.15
TREND_MIN_DEMAND = 60
GAP_MIN_DEMAND = 50
PRICE_GAP_MIN_PERCENT = 15.0
BUNDLE_MIN_REVENUE = 10000
SIMILARITY_THRESHOLD = 0.7

ESTABLISHED_CHANNELS = ("meli", "shopee")
CONFIDENCE_BASE = 0.5
CONFIDENCE_CAP = 0.95

BUNDLE_TITLE_PATTERN = re.compile(r"kit|combo|conjunto", re.IGNORECASE)
BUNDLE_IDENTIFIER_PATTERN = re.compile(r"kit|combo", re.IGNORECASE)

MODULE = "market"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _num(value: Optional[float]) -> str:
    """70.0 → '70', 72.5 → '72.5'."""
    if value is None:
        return "null"
    return f"{value:g}"


def format_brl(value: float) -> str:
    """pt-BR grouping: 15000 → '15.000', 1234.5 → '1.234,5'."""
    text = f"{value:,.3f}".rstrip("0").rstrip(".")
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def calculate_confidence(record: MarketRecord) -> float:
    """0.5 + 0.1 per present data point + 0.1 for established channels, capped."""
    confidence = CONFIDENCE_BASE
    for value in (
        record.demand_index,
        record.growth_rate,
        record.revenue_est,
        record.sellers_top,
        record.price_median,
    ):
        if value is not None:
            confidence += 0.1
    if record.channel in ESTABLISHED_CHANNELS:
        confidence += 0.1
    return round(min(confidence, CONFIDENCE_CAP), 2)


# ── Similarity ──


def word_overlap(a: str, b: str) -> float:
    words_a = a.split()
    words_b = b.split()
    total = len(set(words_a) | set(words_b))
    if total == 0:
        return 0.0
    common = [w for w in words_a if w in words_b]
    return len(common) / total


def is_similar(text1: Optional[str], text2: Optional[str]) -> bool:
    """Substring either way, or shared-word ratio above threshold."""
    if not text1 or not text2:
        return False
    a = text1.lower().strip()
    b = text2.lower().strip()
    if not a or not b:
        return False
    return a in b or b in a or word_overlap(a, b) > SIMILARITY_THRESHOLD


class MarketIntelEngine:
    """Generate insight payloads for one company from one dataset."""

    def __init__(
        self,
        context: CompanyContext,
        records: Sequence[MarketRecord],
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.context = context
        self.records = list(records)
        self.clock = clock

    def period_key(self) -> str:
        now = self.clock()
        return f"{now.year}-{now.month:02d}"

    def generate_insights(self) -> List[InsightPayload]:
        period = self.period_key()
        insights: List[InsightPayload] = []
        insights.extend(self.trend_opportunities(period))
        insights.extend(self.gap_portfolio(period))
        insights.extend(self.price_gaps(period))
        insights.extend(self.variation_opportunities(period))
        insights.extend(self.bundle_opportunities(period))
        logger.info(
            f"🔎 Market engine produced {len(insights)} insights from {len(self.records)} records",
            extra={"company_id": self.context.company_id},
        )
        return insights

    # ── Matching helpers ──

    def is_in_portfolio(self, record: MarketRecord) -> bool:
        target = record.title or record.identifier
        return any(
            is_similar(p.title, target) or is_similar(p.sku, record.identifier)
            for p in self.context.products
        )

    def find_similar_product(self, record: MarketRecord) -> Optional[ContextProduct]:
        target = record.title or record.identifier
        for product in self.context.products:
            if is_similar(product.title, target) or (
                product.category is not None and product.category == record.category
            ):
                return product
        return None

    @staticmethod
    def extract_variations(attributes: Dict[str, Any]) -> List[str]:
        variations: List[str] = []
        for key in ("variations", "colors", "sizes"):
            value = attributes.get(key)
            if not value:
                continue
            if isinstance(value, (list, tuple)):
                variations.extend(str(v) for v in value if v not in (None, ""))
            else:
                variations.append(str(value))
        return variations

    @staticmethod
    def has_variation(product: ContextProduct, variation: str) -> bool:
        """Case-insensitive; 'Azul' matches a combined label like 'Azul / M'."""
        wanted = variation.lower().strip()
        for label in product.variations:
            parts = [p.strip() for p in label.lower().split("/")]
            if wanted == label.lower().strip() or wanted in parts:
                return True
        return False

    # ── Rule passes ──

    def trend_opportunities(self, period: str) -> List[InsightPayload]:
        insights = []
        for record in self.records:
            growth = record.growth_rate or 0
            demand = record.demand_index or 0
            if growth < TREND_MIN_GROWTH or demand < TREND_MIN_DEMAND:
                continue

            is_focus = record.category in self.context.focus_categories
            priority = "P0" if is_focus else "P1"
            insights.append(
                InsightPayload(
                    type="trend_opportunity",
                    title=f"Tendência em alta: {record.identifier}",
                    summary=(
                        f"{record.category} apresenta crescimento de {growth * 100:.1f}% "
                        f"com demanda {_num(record.demand_index)}/100"
                    ),
                    evidence={
                        "growth_rate": record.growth_rate,
                        "demand_index": record.demand_index,
                        "price_median": record.price_median,
                        "revenue_est": record.revenue_est,
                        "sellers_top": record.sellers_top,
                    },
                    scope={
                        "category": record.category,
                        "channel": record.channel,
                        "identifier": record.identifier,
                        "record_type": record.record_type,
                    },
                    confidence=calculate_confidence(record),
                    impact="revenue",
                    impact_estimate={
                        "potential_revenue": record.revenue_est or 0,
                        "market_size": record.units_sold_est or 0,
                    },
                    dedupe_key=f"{MODULE}:trend_opportunity:{record.identifier}:{period}",
                    priority=priority,
                    sla_days=2 if priority == "P0" else 5,
                )
            )
        return insights

    def gap_portfolio(self, period: str) -> List[InsightPayload]:
        insights = []
        for record in self.records:
            if (record.demand_index or 0) < GAP_MIN_DEMAND or self.is_in_portfolio(record):
                continue
            insights.append(
                InsightPayload(
                    type="gap_portfolio",
                    title=f"Gap no portfólio: {record.identifier}",
                    summary=(
                        f"Oportunidade com demanda {_num(record.demand_index)}/100 "
                        f"não coberta pelo portfólio atual"
                    ),
                    evidence={
                        "demand_index": record.demand_index,
                        "sellers_top": record.sellers_top,
                        "price_median": record.price_median,
                        "category": record.category,
                    },
                    scope={
                        "category": record.category,
                        "channel": record.channel,
                        "identifier": record.identifier,
                        "record_type": record.record_type,
                    },
                    confidence=calculate_confidence(record),
                    impact="portfolio",
                    impact_estimate={
                        "potential_revenue": record.revenue_est or 0,
                        "competition_level": record.sellers_top or 0,
                    },
                    dedupe_key=f"{MODULE}:gap_portfolio:{record.identifier}:{period}",
                    priority="P1",
                    sla_days=5,
                )
            )
        return insights

    def price_gaps(self, period: str) -> List[InsightPayload]:
        insights = []
        for record in self.records:
            if not record.price_median:
                continue
            product = self.find_similar_product(record)
            if product is None or not product.price or product.price <= 0:
                continue

            gap = (record.price_median - product.price) / product.price * 100
            if abs(gap) < PRICE_GAP_MIN_PERCENT:
                continue

            insights.append(
                InsightPayload(
                    type="price_gap",
                    title=f"Gap de preço: {product.sku}",
                    summary=(
                        f"Preço {'abaixo' if gap > 0 else 'acima'} do mercado "
                        f"em {abs(gap):.1f}%"
                    ),
                    evidence={
                        "current_price": product.price,
                        "market_median": record.price_median,
                        "gap_percent": gap,
                        "channel": record.channel,
                    },
                    scope={
                        "sku": product.sku,
                        "category": record.category,
                        "channel": record.channel,
                        "identifier": record.identifier,
                    },
                    confidence=0.8,
                    impact="pricing",
                    impact_estimate={
                        "price_adjustment": record.price_median,
                        "revenue_impact": (record.revenue_est or 0) * 0.1,
                    },
                    dedupe_key=f"{MODULE}:price_gap:{product.sku}:{record.channel}:{period}",
                    priority="P2",
                    sla_days=14,
                )
            )
        return insights

    def variation_opportunities(self, period: str) -> List[InsightPayload]:
        insights = []
        for record in self.records:
            attributes = record.attributes or {}
            if not (
                attributes.get("variations") or attributes.get("colors") or attributes.get("sizes")
            ):
                continue
            product = self.find_similar_product(record)
            if product is None:
                continue

            market_variations = self.extract_variations(attributes)
            missing = [v for v in market_variations if not self.has_variation(product, v)]
            if not missing:
                continue

            insights.append(
                InsightPayload(
                    type="variation_opportunity",
                    title=f"Variações ausentes: {product.sku}",
                    summary=f"{len(missing)} variações populares não disponíveis",
                    evidence={
                        "missing_variations": missing,
                        "market_variations": market_variations,
                        "demand_index": record.demand_index,
                    },
                    scope={
                        "sku": product.sku,
                        "category": record.category,
                        "channel": record.channel,
                    },
                    confidence=0.7,
                    impact="portfolio",
                    impact_estimate={
                        "additional_skus": len(missing),
                        "revenue_potential": (record.revenue_est or 0) * 0.2,
                    },
                    dedupe_key=f"{MODULE}:variation_opportunity:{product.sku}:{period}",
                    priority="P2",
                    sla_days=14,
                )
            )
        return insights

    def bundle_opportunities(self, period: str) -> List[InsightPayload]:
        insights = []
        for record in self.records:
            attributes = record.attributes or {}
            is_bundle = (
                bool(attributes.get("bundle"))
                or bool(record.title and BUNDLE_TITLE_PATTERN.search(record.title))
                or bool(record.identifier and BUNDLE_IDENTIFIER_PATTERN.search(record.identifier))
            )
            if not is_bundle:
                continue
            revenue = record.revenue_est or 0
            if revenue < BUNDLE_MIN_REVENUE:
                continue

            insights.append(
                InsightPayload(
                    type="bundle_opportunity",
                    title=f"Oportunidade de kit: {record.identifier}",
                    summary=f"Kit com receita estimada de R$ {format_brl(revenue)}",
                    evidence={
                        "revenue_est": record.revenue_est,
                        "units_sold_est": record.units_sold_est,
                        "price_median": record.price_median,
                        "pattern": "kit",
                    },
                    scope={
                        "category": record.category,
                        "channel": record.channel,
                        "identifier": record.identifier,
                    },
                    confidence=0.6,
                    impact="portfolio",
                    impact_estimate={
                        "bundle_revenue": revenue,
                        "market_size": record.units_sold_est or 0,
                    },
                    dedupe_key=f"{MODULE}:bundle_opportunity:{record.identifier}:{period}",
                    priority="P2",
                    sla_days=14,
                )
            )
        return insights
