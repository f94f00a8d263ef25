"""Tests for encrypted token storage."""

from datetime import datetime, timedelta, timezone

from ecommind.connectors.base import TokenSet
from ecommind.services.token_vault import TokenVault


def _tokens(access, refresh):
    return TokenSet(
        access_token=access,
        refresh_token=refresh,
        expires_at=datetime.now(timezone.utc) + timedelta(hours=6),
        external_account_id="4242",
    )


def test_tokens_stored_encrypted(session):
    vault = TokenVault(session)
    integration = vault.save("company-1", "meli", _tokens("acc-1", "ref-1"))

    assert "acc-1" not in str(integration.access_token_enc)
    assert vault.access_token(integration) == "acc-1"
    assert vault.refresh_token(integration) == "ref-1"
    assert integration.external_account_id == "4242"


def test_missing_refresh_token_keeps_stored_one(session):
    vault = TokenVault(session)
    vault.save("company-1", "meli", _tokens("acc-1", "ref-1"))
    integration = vault.save("company-1", "meli", _tokens("acc-2", ""))

    assert vault.access_token(integration) == "acc-2"
    assert vault.refresh_token(integration) == "ref-1"
