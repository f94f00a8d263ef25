"""ECOMMIND — Market Intelligence & Mission Routes."""

from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlmodel import Session

from ecommind.analyzer.insight_pipeline import (
    UploadResult,
    build_company_context,
    generate_insights,
    store_dataset,
)
from ecommind.analyzer.pricing import PriceSuggestion, calculate_price_suggestion
from ecommind.api.deps import RequestContext, get_request_context, to_http
from ecommind.core.errors import EcommindError, ValidationFailedError
from ecommind.database import get_session
from ecommind.models.insight_models import InsightGenerationResult
from ecommind.services.missions import MissionService

router = APIRouter(tags=["Market"])


# ── Request Models ──


class MarketUploadRequest(BaseModel):
    period_start: date
    period_end: date
    scope: str = Field(pattern="^(niche|category)$")
    file_name: Optional[str] = None
    data: List[Dict[str, Any]] = Field(min_length=1)


class GenerateInsightsRequest(BaseModel):
    dataset_id: int
    auto_create_missions: bool = True


class PriceSuggestionRequest(BaseModel):
    cost_price: float
    channel: Optional[str] = None
    """Resolves commission from company settings when `commission` is omitted."""
    commission: Optional[float] = None
    fixed_fee: float = 0.0
    target_margin_pct: float = 25.0
    shipping: float = 0.0
    tax_rate: Optional[float] = None


class MissionStatusRequest(BaseModel):
    status: str


# ── Market ──


@router.post("/market/upload", response_model=UploadResult)
async def upload_market_dataset(
    body: MarketUploadRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Normalize and store an uploaded market dataset (CSV rows as JSON)."""
    try:
        return store_dataset(
            session,
            ctx.company_id,
            ctx.user_id,
            body.period_start,
            body.period_end,
            body.scope,
            body.data,
            file_name=body.file_name,
        )
    except EcommindError as e:
        raise to_http(e)


@router.post("/market/insights", response_model=InsightGenerationResult)
async def generate_market_insights(
    body: GenerateInsightsRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Run the market-intelligence engine over one dataset."""
    try:
        return generate_insights(
            session,
            ctx.company_id,
            ctx.user_id,
            body.dataset_id,
            auto_create_missions=body.auto_create_missions,
        )
    except EcommindError as e:
        raise to_http(e)


@router.post("/market/price-suggestion", response_model=PriceSuggestion)
async def price_suggestion(
    body: PriceSuggestionRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    try:
        commission = body.commission
        if commission is None:
            if not body.channel:
                raise ValidationFailedError("Provide either commission or channel")
            commissions = build_company_context(session, ctx.company_id).commissions
            if body.channel not in commissions:
                raise ValidationFailedError(f"No commission configured for channel '{body.channel}'")
            commission = commissions[body.channel]
        return calculate_price_suggestion(
            cost_price=body.cost_price,
            commission=commission,
            fixed_fee=body.fixed_fee,
            target_margin_pct=body.target_margin_pct,
            shipping=body.shipping,
            tax_rate=body.tax_rate,
        )
    except EcommindError as e:
        raise to_http(e)


# ── Missions ──


@router.get("/missions")
async def list_missions(
    status: Optional[str] = Query(default=None),
    module: Optional[str] = Query(default=None),
    assignee_id: Optional[str] = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    missions = MissionService(session).list(ctx.company_id, status, module, assignee_id)
    return {"missions": [m.model_dump(mode="json") for m in missions]}


@router.get("/missions/stats")
async def mission_stats(
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    return MissionService(session).stats(ctx.company_id)


@router.post("/missions/seed")
async def seed_missions(
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    """Create the onboarding mission set for the caller's company."""
    missions = MissionService(session).create_seed_missions(ctx.company_id, ctx.user_id)
    return {"missions": [m.model_dump(mode="json") for m in missions]}


@router.patch("/missions/{mission_id}/status")
async def update_mission_status(
    mission_id: int,
    body: MissionStatusRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
):
    try:
        mission = MissionService(session).transition(ctx.company_id, mission_id, body.status)
    except EcommindError as e:
        raise to_http(e)
    return mission.model_dump(mode="json")
