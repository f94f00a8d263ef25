"""ECOMMIND — Vendor Webhook Routes.

No gateway auth: the vendor is identified by its signature or
signature-bound account id, never by gateway headers.
"""

from functools import partial
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlmodel import Session

from ecommind.api.deps import VENDOR_PREFIXES, get_adapter_kwargs
from ecommind.database import get_session
from ecommind.services.token_vault import TokenVault
from ecommind.webhooks.ingestor import WebhookIngestor

router = APIRouter(tags=["Webhooks"])


async def _ingest(
    vendor: str,
    topic: str,
    request: Request,
    session: Session,
    adapter_kwargs: Dict[str, Any],
) -> JSONResponse:
    raw_body = await request.body()
    vault = TokenVault(session)
    ingestor = WebhookIngestor(
        session,
        vendor,
        adapter_factory=partial(vault.build_adapter, **adapter_kwargs),
        vault=vault,
    )
    headers = {k.lower(): v for k, v in request.headers.items()}
    result = await ingestor.ingest(topic, raw_body, headers)
    return JSONResponse(status_code=result.status_code, content=result.body)


@router.post(f"{VENDOR_PREFIXES['bling']}/webhook/{{topic}}")
async def bling_webhook(
    topic: str,
    request: Request,
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    """Bling ERP notifications (orders, products, status, stock)."""
    return await _ingest("bling", topic, request, session, adapter_kwargs)


@router.post(f"{VENDOR_PREFIXES['meli']}/webhook/{{topic}}")
async def meli_webhook(
    topic: str,
    request: Request,
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    """Mercado Livre notifications (orders, items, questions, claims)."""
    return await _ingest("meli", topic, request, session, adapter_kwargs)


@router.post(f"{VENDOR_PREFIXES['shopee']}/webhook/{{topic}}")
async def shopee_webhook(
    topic: str,
    request: Request,
    session: Session = Depends(get_session),
    adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
):
    """Shopee push notifications (order_status, item_update)."""
    return await _ingest("shopee", topic, request, session, adapter_kwargs)
