"""Shared pytest fixtures.

In-memory SQLite (StaticPool so every session sees the same database),
a FastAPI TestClient with the session dependency overridden, and helpers
for seeding integrations with encrypted tokens.
"""

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from ecommind.api.deps import get_adapter_kwargs
from ecommind.config import settings
from ecommind.connectors.base import TokenSet
from ecommind.database import get_session
from ecommind.main import app
from ecommind.models import (  # noqa: F401
    canonical_models,
    etl_models,
    insight_models,
    integration_models,
    market_models,
    webhook_models,
)
from ecommind.services.token_vault import TokenVault

TEST_SECRET = "test-encryption-key-0123456789abcdef"


@pytest.fixture(autouse=True)
def encryption_key(monkeypatch):
    """Every test runs with a valid server secret."""
    monkeypatch.setattr(settings, "encryption_key", TEST_SECRET)
    monkeypatch.setattr(settings, "oauth_state_secret", None)
    return TEST_SECRET


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


class RecordingSleep:
    """Async no-op sleep that remembers requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def adapter_kwargs():
    """Overridable kwargs injected into every adapter the API builds."""
    return {}


@pytest.fixture
def client(session: Session, adapter_kwargs) -> Generator[TestClient, None, None]:
    def override_get_session():
        yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_adapter_kwargs] = lambda: adapter_kwargs
    # No context manager: skip the lifespan (real DB + scheduler)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"x-user-id": "user-1", "x-company-id": "company-1"}


@pytest.fixture
def make_integration(session: Session):
    """Create an integration with encrypted tokens and return it."""

    def _make(
        vendor: str = "bling",
        company_id: str = "company-1",
        external_account_id: str = "acct-1",
        expires_in: timedelta = timedelta(hours=6),
        **fields,
    ):
        tokens = TokenSet(
            access_token=f"{vendor}-access",
            refresh_token=f"{vendor}-refresh",
            expires_at=datetime.now(timezone.utc) + expires_in,
            external_account_id=external_account_id,
        )
        integration = TokenVault(session).save(company_id, vendor, tokens)
        for name, value in fields.items():
            setattr(integration, name, value)
        session.add(integration)
        session.commit()
        session.refresh(integration)
        return integration

    return _make
