"""ECOMMIND — Integration Routes (OAuth connect/callback, health, settings).

The OAuth state parameter is HMAC-signed and carries the company id, so
the callback never trusts a client-supplied company.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session

from ecommind.api.deps import (
    VENDOR_PREFIXES,
    RequestContext,
    get_adapter_kwargs,
    get_request_context,
    to_http,
)
from ecommind.connectors.registry import adapter_class
from ecommind.core.crypto import create_oauth_state, verify_oauth_state
from ecommind.core.errors import EcommindError, ValidationFailedError
from ecommind.core.logging import get_logger
from ecommind.database import get_session
from ecommind.services.token_vault import TokenVault

logger = get_logger("api.integrations")

router = APIRouter(tags=["Integrations"])


class IntegrationSettingsRequest(BaseModel):
    sync_enabled: Optional[bool] = None
    webhook_enabled: Optional[bool] = None
    webhook_secret: Optional[str] = None


def _connect(vendor: str, ctx: RequestContext, adapter_kwargs: Dict[str, Any]) -> Dict[str, str]:
    state = create_oauth_state(ctx.company_id, vendor)
    adapter = adapter_class(vendor)(**adapter_kwargs)
    logger.info(f"🔗 {vendor} OAuth flow started", extra={"company_id": ctx.company_id, "vendor": vendor})
    return {"authorization_url": adapter.get_authorization_url(state), "state": state}


async def _callback(
    vendor: str,
    session: Session,
    adapter_kwargs: Dict[str, Any],
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    shop_id: Optional[str] = None,
) -> Dict[str, Any]:
    adapter = None
    try:
        if error:
            raise ValidationFailedError(f"Authorization denied: {error}")
        if not code or not state:
            raise ValidationFailedError("Missing code or state")
        company_id = verify_oauth_state(state, vendor)

        adapter = adapter_class(vendor)(**adapter_kwargs)
        if vendor == "shopee":
            tokens = await adapter.exchange_code_for_tokens(code, shop_id=shop_id)
        else:
            tokens = await adapter.exchange_code_for_tokens(code)
        integration = TokenVault(session).save(company_id, vendor, tokens)
    except EcommindError as e:
        logger.warning(f"{vendor} OAuth callback failed: {e}", extra={"vendor": vendor})
        raise to_http(e)
    finally:
        if adapter is not None:
            await adapter.close()

    logger.info(f"✅ {vendor} connected", extra={"company_id": company_id, "vendor": vendor})
    return {
        "success": True,
        "vendor": vendor,
        "external_account_id": integration.external_account_id,
        "expires_at": integration.expires_at,
    }


async def _health(vendor: str, ctx: RequestContext, session: Session, adapter_kwargs: Dict[str, Any]):
    vault = TokenVault(session)
    adapter = None
    try:
        integration = vault.get(ctx.company_id, vendor)
        adapter = vault.build_adapter(integration, **adapter_kwargs)
        result = await adapter.health_check()
    except EcommindError as e:
        raise to_http(e)
    finally:
        if adapter is not None:
            await adapter.close()
    return {
        "vendor": vendor,
        "sync_enabled": integration.sync_enabled,
        "webhook_enabled": integration.webhook_enabled,
        "last_sync": integration.last_sync,
        "last_error": integration.last_error,
        **result,
    }


def _update_settings(vendor: str, body: IntegrationSettingsRequest, ctx: RequestContext, session: Session):
    try:
        integration = TokenVault(session).get(ctx.company_id, vendor)
    except EcommindError as e:
        raise to_http(e)
    for name, value in body.model_dump(exclude_unset=True).items():
        setattr(integration, name, value)
    integration.updated_at = datetime.now(timezone.utc)
    session.add(integration)
    session.commit()
    session.refresh(integration)
    return {
        "vendor": vendor,
        "sync_enabled": integration.sync_enabled,
        "webhook_enabled": integration.webhook_enabled,
        "has_webhook_secret": bool(integration.webhook_secret),
    }


def _register(vendor: str) -> None:
    prefix = VENDOR_PREFIXES[vendor]

    @router.get(f"{prefix}/connect", name=f"{vendor}_connect")
    async def connect(
        ctx: RequestContext = Depends(get_request_context),
        adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
    ):
        return _connect(vendor, ctx, adapter_kwargs)

    @router.get(f"{prefix}/callback", name=f"{vendor}_callback")
    async def callback(
        code: Optional[str] = Query(default=None),
        state: Optional[str] = Query(default=None),
        error: Optional[str] = Query(default=None),
        shop_id: Optional[str] = Query(default=None),
        session: Session = Depends(get_session),
        adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
    ):
        return await _callback(vendor, session, adapter_kwargs, code, state, error, shop_id)

    @router.get(f"{prefix}/health", name=f"{vendor}_health")
    async def health(
        ctx: RequestContext = Depends(get_request_context),
        session: Session = Depends(get_session),
        adapter_kwargs: Dict[str, Any] = Depends(get_adapter_kwargs),
    ):
        return await _health(vendor, ctx, session, adapter_kwargs)

    @router.patch(f"{prefix}/integration", name=f"{vendor}_integration_settings")
    async def update_settings(
        body: IntegrationSettingsRequest,
        ctx: RequestContext = Depends(get_request_context),
        session: Session = Depends(get_session),
    ):
        return _update_settings(vendor, body, ctx, session)


for _vendor in VENDOR_PREFIXES:
    _register(_vendor)
