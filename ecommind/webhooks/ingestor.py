"""ECOMMIND — Webhook Ingestor.

One pipeline for every vendor, parameterized by a WebhookSpec:
  topic → JSON → schema → tenant → signature → dedupe → persist → dispatch

Tenants are resolved only from signature-bound vendor account ids (Meli
user_id, Shopee shop_id) or, for Bling, by matching the signature against
the secrets of enabled Bling integrations. Never from client input.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ecommind.connectors.base import BaseAdapter
from ecommind.connectors.bling.schemas import BlingWebhook
from ecommind.connectors.meli.schemas import MeliWebhook
from ecommind.connectors.shopee.schemas import ShopeeWebhook
from ecommind.core.crypto import validate_webhook_signature
from ecommind.core.logging import get_logger
from ecommind.models.integration_models import Integration
from ecommind.models.webhook_models import WebhookEvent
from ecommind.services.token_vault import TokenVault
from ecommind.webhooks.handlers import HANDLERS

logger = get_logger("webhooks.ingestor")


@dataclass
class WebhookSpec:
    vendor: str
    topics: Tuple[str, ...]
    schema: Type[BaseModel]
    signature_header: Optional[str]
    natural_key: Callable[[Any], Tuple[str, str]]
    account_id: Optional[Callable[[Any], str]] = None
    check_topic: Optional[Callable[[Any, str], Optional[str]]] = None


@dataclass
class WebhookResult:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


def _meli_topic_matches(event: MeliWebhook, topic: str) -> Optional[str]:
    if event.topic != topic:
        return f"Payload topic '{event.topic}' does not match URL topic '{topic}'"
    return None


def _shopee_key(event: ShopeeWebhook) -> Tuple[str, str]:
    data = event.data
    if data.order_sn:
        return f"order:{data.order_sn}", str(event.timestamp)
    if data.item_id:
        return f"item:{data.item_id}", str(event.timestamp)
    return "shop", str(event.timestamp)


SPECS: Dict[str, WebhookSpec] = {
    "bling": WebhookSpec(
        vendor="bling",
        topics=("orders", "products", "status", "stock"),
        schema=BlingWebhook,
        signature_header="x-bling-signature",
        natural_key=lambda e: (f"{e.data.type}:{e.data.id}", f"{e.event}:{e.data.date}"),
    ),
    "meli": WebhookSpec(
        vendor="meli",
        topics=("orders", "items", "questions", "claims"),
        schema=MeliWebhook,
        signature_header=None,
        natural_key=lambda e: (e.resource, f"{e.application_id}:{e.sent}"),
        account_id=lambda e: str(e.user_id),
        check_topic=_meli_topic_matches,
    ),
    "shopee": WebhookSpec(
        vendor="shopee",
        topics=("order_status", "item_update"),
        schema=ShopeeWebhook,
        signature_header="x-shopee-signature",
        natural_key=_shopee_key,
        account_id=lambda e: str(e.shop_id),
    ),
}


class WebhookIngestor:
    """Validate, dedupe, persist and dispatch one inbound webhook."""

    def __init__(
        self,
        session: Session,
        vendor: str,
        adapter_factory: Optional[Callable[[Integration], BaseAdapter]] = None,
        vault: Optional[TokenVault] = None,
    ):
        self.session = session
        self.spec = SPECS[vendor]
        self.vault = vault or TokenVault(session)
        self.adapter_factory = adapter_factory or self.vault.build_adapter
        self.handlers = HANDLERS[vendor]

    # ── Tenant resolution ──

    def _resolve_by_signature(
        self, raw_body: bytes, signature: Optional[str]
    ) -> Tuple[Optional[Integration], int]:
        if not signature:
            return None, 401
        candidates = self.session.exec(
            select(Integration).where(
                Integration.vendor == self.spec.vendor,
                Integration.webhook_enabled == True,  # noqa: E712
                Integration.webhook_secret != None,  # noqa: E711
            )
        ).all()
        for integration in candidates:
            if validate_webhook_signature(raw_body, signature, integration.webhook_secret):
                return integration, 200
        return None, 404

    # ── Dedupe ──

    def _find_event(self, company_id: str, topic: str, key: Tuple[str, str]) -> Optional[WebhookEvent]:
        return self.session.exec(
            select(WebhookEvent).where(
                WebhookEvent.vendor == self.spec.vendor,
                WebhookEvent.company_id == company_id,
                WebhookEvent.topic == topic,
                WebhookEvent.external_id == key[0],
                WebhookEvent.disambiguator == key[1],
            )
        ).first()

    # ── Pipeline ──

    async def ingest(
        self, topic: str, raw_body: bytes, headers: Dict[str, str]
    ) -> WebhookResult:
        vendor = self.spec.vendor
        log_extra = {"vendor": vendor, "topic": topic}

        if topic not in self.spec.topics:
            return WebhookResult(400, {"error": "Invalid topic", "topic": topic})

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            logger.warning(f"{vendor} webhook with unparseable body", extra=log_extra)
            return WebhookResult(400, {"error": "Invalid JSON"})

        try:
            event = self.spec.schema.model_validate(payload)
        except ValidationError as e:
            details = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            ]
            logger.warning(f"{vendor} webhook failed schema validation", extra=log_extra)
            return WebhookResult(400, {"error": "Validation failed", "details": details})

        if self.spec.check_topic is not None:
            mismatch = self.spec.check_topic(event, topic)
            if mismatch:
                return WebhookResult(400, {"error": "Topic mismatch", "details": [mismatch]})

        signature = None
        if self.spec.signature_header:
            signature = headers.get(self.spec.signature_header) or getattr(event, "signature", None)

        if self.spec.account_id is not None:
            integration = self.vault.find_by_account(vendor, self.spec.account_id(event))
            if integration is None:
                return WebhookResult(404, {"error": "Integration not found"})
        else:
            integration, status = self._resolve_by_signature(raw_body, signature)
            if integration is None:
                if status == 401:
                    return WebhookResult(401, {"error": "Missing signature"})
                return WebhookResult(404, {"error": "Integration not found"})

        company_id = integration.company_id
        log_extra["company_id"] = company_id

        if not integration.webhook_enabled:
            return WebhookResult(400, {"error": "Webhooks disabled for integration"})

        if integration.webhook_secret and self.spec.signature_header:
            if not validate_webhook_signature(raw_body, signature, integration.webhook_secret):
                logger.warning(f"{vendor} webhook signature mismatch", extra=log_extra)
                return WebhookResult(401, {"error": "Invalid signature"})

        key = self.spec.natural_key(event)
        existing = self._find_event(company_id, topic, key)
        if existing is not None:
            logger.info(
                f"Duplicate {vendor} webhook ignored",
                extra={**log_extra, "event_id": existing.id},
            )
            return WebhookResult(200, {"success": True, "eventId": existing.id, "duplicate": True})

        stored = WebhookEvent(
            vendor=vendor,
            company_id=company_id,
            topic=topic,
            external_id=key[0],
            disambiguator=key[1],
            payload=payload,
        )
        try:
            self.session.add(stored)
            self.session.commit()
            self.session.refresh(stored)
        except IntegrityError:
            # Concurrent delivery won the insert
            self.session.rollback()
            existing = self._find_event(company_id, topic, key)
            event_id = existing.id if existing else None
            return WebhookResult(200, {"success": True, "eventId": event_id, "duplicate": True})
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to store {vendor} webhook: {e}", extra=log_extra)
            return WebhookResult(500, {"error": "Failed to store event"})

        log_extra["event_id"] = stored.id
        adapter = None
        try:
            adapter = self.adapter_factory(integration)
            await self.handlers[topic](self.session, integration, event, adapter)
        except Exception as e:
            self.session.rollback()
            stored.retry_count += 1
            stored.error_message = str(e)[:1000]
            self.session.add(stored)
            self.session.commit()
            logger.error(f"{vendor} webhook handler failed: {e}", extra=log_extra)
            return WebhookResult(500, {"error": "Processing failed", "eventId": stored.id})
        finally:
            if adapter is not None:
                await adapter.close()

        stored.processed = True
        stored.processed_at = datetime.now(timezone.utc)
        stored.error_message = None
        self.session.add(stored)
        self.session.commit()
        logger.info(f"{vendor} webhook processed", extra=log_extra)
        return WebhookResult(200, {"success": True, "eventId": stored.id})
