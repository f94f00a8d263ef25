"""ECOMMIND — Marketplace Adapter Base.

Shared request executor for all vendor adapters: proactive token refresh,
429 handling with Retry-After, a single refresh-and-retry on 401, and
exponential backoff for transient failures.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel

from ecommind.config import settings
from ecommind.core.crypto import validate_webhook_signature
from ecommind.core.errors import RateLimitError, VendorAPIError
from ecommind.core.logging import get_logger
from ecommind.core.retry import RetryPolicy

logger = get_logger("connectors.base")

IDEMPOTENT_METHODS = ("GET", "HEAD", "OPTIONS")


class TokenSet(BaseModel):
    """Vendor-neutral OAuth token response."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    external_account_id: Optional[str] = None
    scope: Optional[str] = None

    @classmethod
    def from_expires_in(cls, expires_in: Any, **kwargs) -> "TokenSet":
        seconds = int(expires_in or 0)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        return cls(expires_at=expires_at, **kwargs)


class Page(BaseModel):
    """Normalized page across page/offset/cursor pagination schemes."""

    items: List[Dict[str, Any]] = []
    has_more: bool = False
    next_cursor: Optional[str] = None


TokenRefreshCallback = Callable[[TokenSet], Awaitable[None]]


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class BaseAdapter:
    """Async HTTP adapter for one vendor account."""

    vendor = "base"
    base_url = ""

    def __init__(
        self,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        external_account_id: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        on_token_refresh: Optional[TokenRefreshCallback] = None,
        timeout: Optional[float] = None,
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = as_utc(expires_at)
        self.external_account_id = external_account_id
        self.policy = policy or RetryPolicy.from_settings()
        self.on_token_refresh = on_token_refresh
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._timeout = timeout or settings.http_timeout
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ── Vendor hooks ──

    def _authorize(
        self, path: str, params: Dict[str, Any], headers: Dict[str, str]
    ) -> None:
        """Attach credentials to an outgoing request. Bearer by default."""
        headers["Authorization"] = f"Bearer {self.access_token}"

    def _error_message(self, resp: httpx.Response) -> tuple[str, Optional[str]]:
        """Extract (message, error_code) from a vendor error body."""
        body = json_or_empty(resp)
        message = body.get("message") or body.get("error") or resp.reason_phrase
        return str(message), None

    def _check_body(self, body: Dict[str, Any]) -> None:
        """Raise when a 2xx body still encodes a vendor error."""

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        raise NotImplementedError

    async def _health_probe(self) -> None:
        raise NotImplementedError

    # ── Token Lifecycle ──

    def token_expired(self, buffer_minutes: Optional[int] = None) -> bool:
        if self.expires_at is None:
            return False
        buffer = timedelta(
            minutes=settings.token_refresh_buffer_minutes
            if buffer_minutes is None
            else buffer_minutes
        )
        return datetime.now(timezone.utc) + buffer >= self.expires_at

    async def refresh_tokens(self) -> TokenSet:
        if not self.refresh_token:
            raise VendorAPIError(self.vendor, "No refresh token available", 401)
        logger.info(f"Refreshing {self.vendor} access token", extra={"vendor": self.vendor})
        tokens = await self.refresh_access_token(self.refresh_token)
        if not tokens.refresh_token:
            # not rotated: the current refresh token stays valid
            tokens = tokens.model_copy(update={"refresh_token": self.refresh_token})
        self.access_token = tokens.access_token
        self.refresh_token = tokens.refresh_token
        self.expires_at = as_utc(tokens.expires_at)
        if tokens.external_account_id:
            self.external_account_id = tokens.external_account_id
        if self.on_token_refresh is not None:
            await self.on_token_refresh(tokens)
        return tokens

    # ── Core Request Method ──

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        authenticated: bool = True,
        idempotent: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit + token-refresh handling.

        - expired token: refreshed before the first attempt
        - 429: waits on Retry-After (or backoff), up to max_retries
        - 401: exactly one refresh, then retry
        - 5xx / transport errors / timeouts: backoff up to max_retries,
          idempotent calls only
        - other 4xx: raised immediately
        """
        method = method.upper()
        if idempotent is None:
            idempotent = method in IDEMPOTENT_METHODS
        url = path if path.startswith("http") else f"{self.base_url}{path}"

        if authenticated and self.token_expired():
            await self.refresh_tokens()

        client = await self._get_client()
        retries = 0
        refreshed = False

        while True:
            req_params = dict(params or {})
            req_headers = {"Accept": "application/json", **(headers or {})}
            if authenticated:
                self._authorize(path, req_params, req_headers)

            try:
                resp = await client.request(
                    method,
                    url,
                    params=req_params or None,
                    json=json,
                    data=data,
                    headers=req_headers,
                )
            except httpx.TransportError as e:
                if idempotent and retries < self.policy.max_retries:
                    wait = self.policy.delay(retries)
                    logger.warning(
                        f"{self.vendor} request error: {type(e).__name__}. "
                        f"Retrying in {wait}s ({retries + 1}/{self.policy.max_retries})",
                        extra={"vendor": self.vendor, "attempt": retries + 1, "delay": wait},
                    )
                    await self._sleep(wait)
                    retries += 1
                    continue
                raise VendorAPIError(
                    self.vendor, f"Connection failed after {retries} retries: {e}"
                ) from e

            # Rate limited
            if resp.status_code == 429:
                if retries < self.policy.max_retries:
                    wait = self.policy.retry_after(resp.headers.get("Retry-After"), retries)
                    logger.warning(
                        f"{self.vendor} rate limited (429). Retrying in {wait}s "
                        f"({retries + 1}/{self.policy.max_retries})",
                        extra={"vendor": self.vendor, "attempt": retries + 1, "delay": wait},
                    )
                    await self._sleep(wait)
                    retries += 1
                    continue
                raise RateLimitError(self.vendor, "Rate limit retries exhausted", 429)

            if resp.status_code == 401 and authenticated and not refreshed:
                refreshed = True
                logger.info(
                    f"{self.vendor} returned 401, refreshing token once",
                    extra={"vendor": self.vendor, "status_code": 401},
                )
                await self.refresh_tokens()
                continue

            if resp.status_code >= 500 and idempotent and retries < self.policy.max_retries:
                wait = self.policy.delay(retries)
                logger.warning(
                    f"{self.vendor} server error {resp.status_code}. Retrying in {wait}s",
                    extra={"vendor": self.vendor, "status_code": resp.status_code, "delay": wait},
                )
                await self._sleep(wait)
                retries += 1
                continue

            if resp.status_code >= 400:
                message, code = self._error_message(resp)
                raise VendorAPIError(self.vendor, message, resp.status_code, code)

            body = json_or_empty(resp)
            self._check_body(body)
            return body

    # ── Webhooks / Health ──

    @staticmethod
    def validate_webhook_signature(
        raw_body: bytes, signature: Optional[str], secret: Optional[str]
    ) -> bool:
        return validate_webhook_signature(raw_body, signature, secret)

    async def health_check(self) -> Dict[str, Any]:
        """Probe a cheap authenticated endpoint."""
        checked_at = datetime.now(timezone.utc).isoformat()
        try:
            await self._health_probe()
            return {
                "status": "healthy",
                "message": f"{self.vendor} API reachable",
                "token_valid": True,
                "last_check": checked_at,
            }
        except VendorAPIError as e:
            return {
                "status": "unhealthy",
                "message": str(e),
                "token_valid": e.http_status not in (401, 403),
                "last_check": checked_at,
            }


def json_or_empty(resp: httpx.Response) -> Dict[str, Any]:
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {"data": body}
