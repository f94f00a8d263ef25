"""ECOMMIND — Market Insight Pipeline.

Runs the full market flow for one company:
  upload → normalize → store dataset → context → engine → dedupe → persist → missions

Insights and missions are independently durable: a failed mission never
rolls back the insight it came from.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ecommind.analyzer.market_intel_engine import MarketIntelEngine
from ecommind.analyzer.normalizers import MarketDatasetNormalizer, RowError
from ecommind.config import settings
from ecommind.core.errors import NotFoundError, StorageError, ValidationFailedError
from ecommind.core.logging import create_timer, get_logger
from ecommind.models.canonical_models import Product
from ecommind.models.insight_models import (
    CompanyContext,
    ContextProduct,
    DuplicatedInsight,
    Insight,
    InsightGenerationResult,
    InsightPayload,
    InsightSummary,
    SavedInsight,
)
from ecommind.models.integration_models import CompanySettings
from ecommind.models.market_models import CHANNELS, MarketDataset, MarketRecord
from ecommind.services.missions import CreateMission, MissionService

logger = get_logger("analyzer.insight_pipeline")

MISSION_TITLES = {
    "trend_opportunity": "Investigar tendência: {identifier}",
    "gap_portfolio": "Avaliar adição ao portfólio: {identifier}",
    "price_gap": "Revisar preço: {sku_or_identifier}",
    "variation_opportunity": "Criar variações: {sku}",
    "bundle_opportunity": "Desenvolver kit: {identifier}",
}
MISSION_NOTE = "Gerado automaticamente a partir de análise de mercado."
RECORD_BATCH_SIZE = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ─────────────────────────────────────────────
# Dataset upload
# ─────────────────────────────────────────────


class UploadResult(BaseModel):
    dataset_id: int
    period_start: str
    period_end: str
    scope: str
    total_rows: int
    valid_rows: int
    error_rows: int
    validation_errors: List[RowError] = []


def store_dataset(
    session: Session,
    company_id: str,
    user_id: Optional[str],
    period_start: date,
    period_end: date,
    scope: str,
    rows: List[Dict[str, Any]],
    file_name: Optional[str] = None,
) -> UploadResult:
    """Normalize uploaded rows and persist them as a new dataset."""
    if period_start >= period_end:
        raise ValidationFailedError("End date must be after start date")
    if not rows:
        raise ValidationFailedError("Data array cannot be empty")

    # dataset-level period/scope apply to rows that don't carry their own
    defaults = {
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "scope": scope,
    }
    valid, errors = MarketDatasetNormalizer.normalize(
        [{**defaults, **row} if isinstance(row, dict) else row for row in rows]
    )
    if not valid:
        raise ValidationFailedError(
            "No valid records found",
            details=[e.model_dump() for e in errors[:10]],
        )

    try:
        dataset = MarketDataset(
            company_id=company_id,
            period_start=period_start.isoformat(),
            period_end=period_end.isoformat(),
            scope=scope,
            source_filename=file_name or "upload.csv",
            total_rows=len(rows),
            valid_rows=len(valid),
            error_rows=len(errors),
            created_by=user_id,
        )
        session.add(dataset)
        session.flush()

        for start in range(0, len(valid), RECORD_BATCH_SIZE):
            for record in valid[start:start + RECORD_BATCH_SIZE]:
                session.add(
                    MarketRecord(
                        dataset_id=dataset.id,
                        company_id=company_id,
                        **record.model_dump(exclude={"period_start", "period_end", "scope"}),
                    )
                )
            session.flush()
        session.commit()
        session.refresh(dataset)
    except SQLAlchemyError as e:
        session.rollback()
        raise StorageError(f"Failed to store market dataset: {e}")

    logger.info(
        f"📥 Market dataset {dataset.id} stored: {len(valid)} valid / {len(errors)} invalid rows",
        extra={"company_id": company_id, "dataset_id": dataset.id, "rows": len(valid)},
    )
    return UploadResult(
        dataset_id=dataset.id,
        period_start=dataset.period_start,
        period_end=dataset.period_end,
        scope=dataset.scope,
        total_rows=len(rows),
        valid_rows=len(valid),
        error_rows=len(errors),
        validation_errors=errors[:10],
    )


# ─────────────────────────────────────────────
# Company context
# ─────────────────────────────────────────────


def build_company_context(session: Session, company_id: str) -> CompanyContext:
    """Focus categories, channels, fees and active catalog for the engine."""
    prefs = session.get(CompanySettings, company_id)
    products = session.exec(
        select(Product).where(Product.company_id == company_id, Product.active == True)  # noqa: E712
    ).all()

    return CompanyContext(
        company_id=company_id,
        focus_categories=list(prefs.focus_categories or []) if prefs else [],
        active_channels=list(prefs.active_channels) if prefs and prefs.active_channels else list(CHANNELS),
        products=[
            ContextProduct(
                sku=p.sku,
                title=p.title or "",
                category=p.category,
                price=p.price,
                variations=[str(v) for v in (p.variations or [])],
            )
            for p in products
        ],
        commissions={**settings.default_commissions, **(prefs.commissions if prefs else {})},
        margins={**settings.default_margins, **(prefs.margins if prefs else {})},
    )


# ─────────────────────────────────────────────
# Missions from insights
# ─────────────────────────────────────────────


def mission_title(insight: InsightPayload) -> str:
    scope = insight.scope
    template = MISSION_TITLES.get(insight.type, "Ação de mercado: {identifier}")
    return template.format(
        identifier=scope.get("identifier"),
        sku=scope.get("sku"),
        sku_or_identifier=scope.get("sku") or scope.get("identifier"),
    )


def mission_tags(insight: InsightPayload) -> List[str]:
    scope = insight.scope
    tags = [f"market:{insight.type}", f"channel:{scope.get('channel')}"]
    if scope.get("category"):
        tags.append(f"category:{'_'.join(str(scope['category']).lower().split())}")
    if scope.get("sku"):
        tags.append(f"sku:{scope['sku']}")
    return tags


def create_mission_from_insight(
    missions: MissionService,
    company_id: str,
    user_id: Optional[str],
    saved: Insight,
    insight: InsightPayload,
    today: date,
):
    return missions.create(
        company_id,
        CreateMission(
            module="market",
            title=mission_title(insight),
            summary=f"{insight.summary}\n\n{MISSION_NOTE}",
            priority=insight.priority,
            origin_insight_id=saved.id,
            due_date=today + timedelta(days=insight.sla_days),
            payload={
                "insight_id": saved.id,
                "insight_type": insight.type,
                "scope": insight.scope,
                "evidence": insight.evidence,
            },
            tags=mission_tags(insight),
        ),
        created_by=user_id,
    )


# ─────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────


def generate_insights(
    session: Session,
    company_id: str,
    user_id: Optional[str],
    dataset_id: int,
    auto_create_missions: bool = True,
    clock: Callable[[], datetime] = _utcnow,
) -> InsightGenerationResult:
    timer = create_timer("market_insights_generation")

    dataset = session.get(MarketDataset, dataset_id)
    if dataset is None or dataset.company_id != company_id:
        raise NotFoundError("Dataset not found or access denied")

    records = session.exec(
        select(MarketRecord).where(
            MarketRecord.dataset_id == dataset_id,
            MarketRecord.company_id == company_id,
        )
    ).all()
    if not records:
        raise ValidationFailedError("No records found in dataset")

    context = build_company_context(session, company_id)
    payloads = MarketIntelEngine(context, records, clock=clock).generate_insights()

    missions = MissionService(session, clock=clock)
    today = clock().date()
    saved: List[SavedInsight] = []
    duplicated: List[DuplicatedInsight] = []
    missions_created = 0

    for payload in payloads:
        existing = session.exec(
            select(Insight.id).where(
                Insight.company_id == company_id,
                Insight.dedupe_key == payload.dedupe_key,
            )
        ).first()
        if existing is not None:
            duplicated.append(
                DuplicatedInsight(dedupe_key=payload.dedupe_key, type=payload.type, title=payload.title)
            )
            continue

        row = Insight(
            company_id=company_id,
            created_by=user_id,
            **payload.model_dump(exclude={"create_mission", "priority", "sla_days"}),
        )
        try:
            session.add(row)
            session.commit()
            session.refresh(row)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(
                f"Failed to save insight {payload.dedupe_key}: {e}",
                extra={"company_id": company_id, "dataset_id": dataset_id},
            )
            continue

        mission_id = None
        if auto_create_missions and payload.create_mission:
            try:
                mission = create_mission_from_insight(
                    missions, company_id, user_id, row, payload, today
                )
                mission_id = mission.id
                missions_created += 1
            except Exception as e:
                session.rollback()
                logger.error(
                    f"Failed to create mission from insight {row.id}: {e}",
                    extra={"company_id": company_id, "dataset_id": dataset_id},
                )

        saved.append(
            SavedInsight(
                id=row.id,
                type=row.type,
                title=row.title,
                summary=row.summary,
                confidence=row.confidence,
                impact=row.impact,
                mission_id=mission_id,
            )
        )

    summary = InsightSummary(
        total_records=len(records),
        insights_generated=len(payloads),
        insights_saved=len(saved),
        insights_duplicated=len(duplicated),
        missions_created=missions_created,
    )
    timer.end(company_id=company_id, dataset_id=dataset_id, rows=len(records))
    logger.info(
        f"💡 Market insights for dataset {dataset_id}: {summary.insights_saved} saved, "
        f"{summary.insights_duplicated} duplicated, {summary.missions_created} missions",
        extra={"company_id": company_id, "dataset_id": dataset_id},
    )
    return InsightGenerationResult(summary=summary, insights=saved, duplicated=duplicated)
