"""ECOMMIND — Token Vault.

Stores OAuth credentials per company × vendor, encrypted with AES-256-GCM.
Plaintext tokens live only in memory on the adapter instance.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlmodel import Session, select

from ecommind.connectors.base import BaseAdapter, TokenSet, as_utc
from ecommind.connectors.registry import adapter_class
from ecommind.core.crypto import decrypt_token, encrypt_token
from ecommind.core.errors import IntegrationNotFoundError
from ecommind.core.logging import get_logger
from ecommind.models.integration_models import Integration

logger = get_logger("services.token_vault")


class TokenVault:
    """Encrypt/decrypt/store OAuth credentials for integrations."""

    def __init__(self, session: Session, secret: Optional[str] = None):
        self.session = session
        self.secret = secret

    # ── Lookup ──

    def get(self, company_id: str, vendor: str) -> Integration:
        integration = self.session.exec(
            select(Integration).where(
                Integration.company_id == company_id,
                Integration.vendor == vendor,
            )
        ).first()
        if integration is None:
            raise IntegrationNotFoundError(f"No {vendor} integration for company")
        return integration

    def find_by_account(self, vendor: str, external_account_id: str) -> Optional[Integration]:
        """Resolve the integration that owns an inbound vendor account id."""
        return self.session.exec(
            select(Integration).where(
                Integration.vendor == vendor,
                Integration.external_account_id == str(external_account_id),
            )
        ).first()

    def list_sync_enabled(self) -> list[Integration]:
        return list(
            self.session.exec(
                select(Integration).where(
                    Integration.sync_enabled == True,  # noqa: E712
                    Integration.access_token_enc != None,  # noqa: E711
                )
            ).all()
        )

    # ── Write ──

    def save(self, company_id: str, vendor: str, tokens: TokenSet) -> Integration:
        """Encrypt and upsert tokens on (company_id, vendor)."""
        integration = self.session.exec(
            select(Integration).where(
                Integration.company_id == company_id,
                Integration.vendor == vendor,
            )
        ).first()
        if integration is None:
            integration = Integration(company_id=company_id, vendor=vendor)

        integration.access_token_enc = encrypt_token(tokens.access_token, self.secret)
        if tokens.refresh_token:
            integration.refresh_token_enc = encrypt_token(tokens.refresh_token, self.secret)
        integration.expires_at = as_utc(tokens.expires_at).isoformat()
        integration.scope = tokens.scope
        if tokens.external_account_id:
            integration.external_account_id = tokens.external_account_id
        integration.updated_at = datetime.now(timezone.utc)

        self.session.add(integration)
        self.session.commit()
        self.session.refresh(integration)
        logger.info(
            f"Stored {vendor} tokens (expires {integration.expires_at})",
            extra={"company_id": company_id, "vendor": vendor},
        )
        return integration

    # ── Read ──

    def access_token(self, integration: Integration) -> str:
        if not integration.access_token_enc:
            raise IntegrationNotFoundError(f"{integration.vendor} integration has no tokens")
        return decrypt_token(integration.access_token_enc, self.secret)

    def refresh_token(self, integration: Integration) -> Optional[str]:
        if not integration.refresh_token_enc:
            return None
        return decrypt_token(integration.refresh_token_enc, self.secret)

    @staticmethod
    def expires_at(integration: Integration) -> Optional[datetime]:
        if not integration.expires_at:
            return None
        return as_utc(datetime.fromisoformat(integration.expires_at))

    # ── Adapter wiring ──

    def build_adapter(self, integration: Integration, **adapter_kwargs: Any) -> BaseAdapter:
        """Construct a vendor adapter with decrypted tokens.

        Refreshed tokens are written back through save().
        """

        async def _persist(tokens: TokenSet) -> None:
            self.save(integration.company_id, integration.vendor, tokens)

        cls = adapter_class(integration.vendor)
        return cls(
            access_token=self.access_token(integration),
            refresh_token=self.refresh_token(integration),
            expires_at=self.expires_at(integration),
            external_account_id=integration.external_account_id,
            on_token_refresh=_persist,
            **adapter_kwargs,
        )

    async def refresh_if_needed(self, adapter: BaseAdapter) -> bool:
        """Refresh proactively when the token is inside the expiry buffer."""
        if not adapter.token_expired():
            return False
        await adapter.refresh_tokens()
        return True
