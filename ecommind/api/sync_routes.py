"""ECOMMIND — Sync Trigger Routes."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlmodel import Session

from ecommind.api.deps import (
    VENDOR_PREFIXES,
    RequestContext,
    get_adapter_kwargs,
    get_request_context,
    to_http,
)
from ecommind.core.errors import EcommindError
from ecommind.core.logging import get_logger
from ecommind.database import get_session
from ecommind.etl.extractors import SyncFilters
from ecommind.etl.service import EtlService

logger = get_logger("api.sync")

router = APIRouter(tags=["Sync"])


# ── Request Models ──


class SyncTriggerRequest(BaseModel):
    """Body for POST /{vendor}/sync/trigger."""

    resource: str = "all"
    """orders | listings | inventory | fees | stock | products | all (vendor-dependent)."""
    force: bool = False
    """Ignore the checkpoint and run a full extraction."""
    filters: Optional[SyncFilters] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"resource": "orders", "force": False},
                {"resource": "all", "filters": {"dateFrom": "2026-01-01T00:00:00Z"}},
            ]
        }
    }


async def _trigger(
    vendor: str,
    body: SyncTriggerRequest,
    ctx: RequestContext,
    session: Session,
    adapter_kwargs: Dict[str, Any],
):
    service = EtlService(session, adapter_kwargs=adapter_kwargs)
    try:
        result = await service.trigger(
            ctx.company_id,
            vendor,
            body.resource,
            force=body.force,
            filters=body.filters,
            triggered_by=ctx.user_id,
        )
    except EcommindError as e:
        level = logger.error if e.status_code >= 500 else logger.warning
        level(
            f"{vendor} sync trigger rejected: {e}",
            extra={"company_id": ctx.company_id, "vendor": vendor},
        )
        raise to_http(e)

    results = [r.model_dump() for r in result.results]
    if not result.success:
        return JSONResponse(
            status_code=500,
            content={
                "error": "Sync failed",
                "message": result.error,
                "etlRunId": result.etl_run_id,
                "partialResults": results,
            },
        )
    return {"success": True, "etlRunId": result.etl_run_id, "results": results}


@router.post(f"{VENDOR_PREFIXES['bling']}/sync/trigger")
async def bling_sync_trigger(
    body: SyncTriggerRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    """Run an incremental (or forced full) Bling sync for the caller's company."""
    return await _trigger("bling", body, ctx, session, adapter_kwargs)


@router.post(f"{VENDOR_PREFIXES['meli']}/sync/trigger")
async def meli_sync_trigger(
    body: SyncTriggerRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    return await _trigger("meli", body, ctx, session, adapter_kwargs)


@router.post(f"{VENDOR_PREFIXES['shopee']}/sync/trigger")
async def shopee_sync_trigger(
    body: SyncTriggerRequest,
    ctx: RequestContext = Depends(get_request_context),
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    return await _trigger("shopee", body, ctx, session, adapter_kwargs)
