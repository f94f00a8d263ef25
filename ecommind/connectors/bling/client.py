"""ECOMMIND — Bling ERP API v3 Client.

OAuth2 authorization-code flow, page+limit pagination
(has_more = pagina < totalPaginas).
"""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ecommind.config import settings
from ecommind.connectors.base import BaseAdapter, Page, TokenSet, json_or_empty
from ecommind.connectors.bling.schemas import BlingOrder, BlingPage, BlingProduct
from ecommind.core.errors import VendorAPIError
from ecommind.core.logging import get_logger

logger = get_logger("bling.client")


class BlingClient(BaseAdapter):
    """Async client for the Bling v3 REST API."""

    vendor = "bling"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id or settings.bling_client_id
        self.client_secret = client_secret or settings.bling_client_secret
        self.redirect_uri = redirect_uri or settings.bling_redirect_uri
        self.base_url = (base_url or settings.bling_base_url).rstrip("/")

    def _error_message(self, resp: httpx.Response) -> tuple[str, Optional[str]]:
        body = json_or_empty(resp)
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("description") or error.get("message") or error.get("type")
            return str(message or resp.reason_phrase), error.get("type")
        message = body.get("error_description") or error or resp.reason_phrase
        return str(message), str(error) if error else None

    # ── OAuth ──

    def get_authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": "read write",
            "state": state,
        }
        return f"{self.base_url}/oauth/authorize?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str]) -> TokenSet:
        body = await self._request(
            "POST",
            "/oauth/token",
            data={"client_id": self.client_id, "client_secret": self.client_secret, **form},
            authenticated=False,
        )
        if not body.get("access_token"):
            raise VendorAPIError(self.vendor, "Token response missing access_token")
        return TokenSet.from_expires_in(
            body.get("expires_in"),
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token", ""),
            scope=body.get("scope"),
        )

    async def exchange_code_for_tokens(self, code: str) -> TokenSet:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "code": code,
            }
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    # ── Paged Fetchers ──

    async def _get_page(
        self, path: str, page: int, since: Optional[str], limit: int
    ) -> Page:
        params: Dict[str, Any] = {"pagina": page, "limite": limit}
        if since:
            params["dataInclusao"] = since
        result = BlingPage.model_validate(await self._request("GET", path, params))
        current = result.pagina or page
        if result.totalPaginas is None:
            # Older responses omit totals; a short page is the last one
            has_more = len(result.data) >= limit
        else:
            has_more = current < result.totalPaginas
        logger.info(
            f"Fetched {len(result.data)} records from {path} (page {current}/{result.totalPaginas or '?'})",
            extra={"vendor": self.vendor},
        )
        return Page(
            items=result.data,
            has_more=has_more and bool(result.data),
            next_cursor=str(current + 1),
        )

    async def get_products(
        self, page: int = 1, since: Optional[str] = None, limit: int = 100
    ) -> Page:
        return await self._get_page("/produtos", page, since, limit)

    async def get_orders(
        self, page: int = 1, since: Optional[str] = None, limit: int = 100
    ) -> Page:
        return await self._get_page("/pedidos/vendas", page, since, limit)

    # ── Single-record Fetchers ──

    async def get_product(self, product_id: int | str) -> BlingProduct:
        body = await self._request("GET", f"/produtos/{product_id}")
        return BlingProduct.model_validate(body.get("data", body))

    async def get_order(self, order_id: int | str) -> BlingOrder:
        body = await self._request("GET", f"/pedidos/vendas/{order_id}")
        return BlingOrder.model_validate(body.get("data", body))

    async def _health_probe(self) -> None:
        await self._request("GET", "/produtos", {"pagina": 1, "limite": 1})
