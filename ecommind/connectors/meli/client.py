"""ECOMMIND — Mercado Livre API Client.

Offset+limit pagination (has_more = offset + limit < total).
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from ecommind.config import settings
from ecommind.connectors.base import BaseAdapter, Page, TokenSet, json_or_empty
from ecommind.connectors.meli.schemas import (
    MeliItemSearch,
    MeliListing,
    MeliOrder,
    MeliOrderSearch,
)
from ecommind.core.errors import VendorAPIError
from ecommind.core.logging import get_logger

logger = get_logger("meli.client")

MAX_IDS_PER_MULTIGET = 20


class MeliClient(BaseAdapter):
    """Async client for the Mercado Livre REST API."""

    vendor = "meli"

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        base_url: Optional[str] = None,
        auth_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.client_id = client_id or settings.meli_client_id
        self.client_secret = client_secret or settings.meli_client_secret
        self.redirect_uri = redirect_uri or settings.meli_redirect_uri
        self.base_url = (base_url or settings.meli_base_url).rstrip("/")
        self.auth_url = auth_url or settings.meli_auth_url

    def _error_message(self, resp: httpx.Response) -> tuple[str, Optional[str]]:
        body = json_or_empty(resp)
        message = body.get("message") or body.get("error") or resp.reason_phrase
        code = body.get("error") or body.get("status")
        return str(message), str(code) if code else None

    @property
    def seller_id(self) -> str:
        if not self.external_account_id:
            raise VendorAPIError(self.vendor, "Seller ID not available")
        return self.external_account_id

    # ── OAuth ──

    def get_authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str]) -> TokenSet:
        body = await self._request(
            "POST",
            "/oauth/token",
            data={"client_id": self.client_id, "client_secret": self.client_secret, **form},
            authenticated=False,
        )
        if not body.get("access_token"):
            raise VendorAPIError(self.vendor, "Token response missing access_token")
        user_id = body.get("user_id")
        return TokenSet.from_expires_in(
            body.get("expires_in"),
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token", ""),
            scope=body.get("scope"),
            external_account_id=str(user_id) if user_id is not None else None,
        )

    async def exchange_code_for_tokens(self, code: str) -> TokenSet:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )

    # ── Orders ──

    async def search_orders(
        self,
        offset: int = 0,
        limit: int = 50,
        since: Optional[str] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Page:
        params: Dict[str, Any] = {"seller": self.seller_id, "offset": offset, "limit": limit}
        if since:
            params["order.date_last_updated.from"] = since
        params.update({k: v for k, v in (filters or {}).items() if v is not None})
        result = MeliOrderSearch.model_validate(
            await self._request("GET", "/orders/search", params)
        )
        paging = result.paging
        has_more = paging.offset + paging.limit < paging.total
        logger.info(
            f"Fetched {len(result.results)} orders (offset {paging.offset}/{paging.total})",
            extra={"vendor": self.vendor},
        )
        return Page(
            items=result.results,
            has_more=has_more and bool(result.results),
            next_cursor=str(paging.offset + paging.limit),
        )

    async def get_order(self, order_id: int | str) -> MeliOrder:
        return MeliOrder.model_validate(await self._request("GET", f"/orders/{order_id}"))

    # ── Listings ──

    async def get_user_items(
        self,
        offset: int = 0,
        limit: int = 50,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Page:
        """Page of item ids, hydrated with full listing payloads."""
        params: Dict[str, Any] = {"offset": offset, "limit": limit}
        params.update({k: v for k, v in (filters or {}).items() if v is not None})
        result = MeliItemSearch.model_validate(
            await self._request("GET", f"/users/{self.seller_id}/items/search", params)
        )
        listings = await self.get_items(result.results)
        paging = result.paging
        return Page(
            items=[listing.model_dump() for listing in listings],
            has_more=paging.offset + paging.limit < paging.total and bool(result.results),
            next_cursor=str(paging.offset + paging.limit),
        )

    async def get_items(self, item_ids: List[str]) -> List[MeliListing]:
        listings: List[MeliListing] = []
        for start in range(0, len(item_ids), MAX_IDS_PER_MULTIGET):
            chunk = item_ids[start:start + MAX_IDS_PER_MULTIGET]
            body = await self._request("GET", "/items", {"ids": ",".join(chunk)})
            # Multiget wraps each result as {code, body}
            for entry in body.get("data", []):
                if isinstance(entry, dict) and entry.get("code", 200) == 200:
                    listings.append(MeliListing.model_validate(entry.get("body", entry)))
        return listings

    async def get_item(self, item_id: str) -> MeliListing:
        return MeliListing.model_validate(await self._request("GET", f"/items/{item_id}"))

    async def _health_probe(self) -> None:
        await self._request("GET", f"/users/{self.seller_id}")
