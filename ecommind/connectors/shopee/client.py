"""ECOMMIND — Shopee Open Platform v2 Client.

Every call is signed with HMAC-SHA256 over
partner_id + path + timestamp [+ access_token + shop_id].
Orders paginate by opaque cursor + `more`; items by offset + `has_next_page`.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx

from ecommind.config import settings
from ecommind.connectors.base import BaseAdapter, Page, TokenSet, json_or_empty
from ecommind.connectors.shopee.schemas import ShopeeItem, ShopeeOrder, ShopeeOrderIncome
from ecommind.core.crypto import sign_partner_request
from ecommind.core.errors import ValidationFailedError, VendorAPIError
from ecommind.core.logging import get_logger

logger = get_logger("shopee.client")

AUTH_PARTNER_PATH = "/api/v2/shop/auth_partner"
TOKEN_GET_PATH = "/api/v2/auth/token/get"
TOKEN_REFRESH_PATH = "/api/v2/auth/access_token/get"
ORDER_LIST_PATH = "/api/v2/order/get_order_list"
ORDER_DETAIL_PATH = "/api/v2/order/get_order_detail"
ITEM_LIST_PATH = "/api/v2/product/get_item_list"
ITEM_BASE_INFO_PATH = "/api/v2/product/get_item_base_info"
ORDER_INCOME_PATH = "/api/v2/payment/get_order_income"
SHOP_INFO_PATH = "/api/v2/shop/get_shop_info"

ORDER_WINDOW_DAYS = 15  # get_order_list rejects wider time ranges
MAX_BATCH = 50
ORDER_DETAIL_FIELDS = "item_list,total_amount,payment_method,actual_shipping_fee,buyer_username"


class ShopeeClient(BaseAdapter):
    """Async client for the Shopee Open Platform v2 API."""

    vendor = "shopee"

    def __init__(
        self,
        partner_id: Optional[str] = None,
        partner_key: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        base_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.partner_id = str(partner_id or settings.shopee_partner_id)
        self.partner_key = partner_key or settings.shopee_partner_key
        self.redirect_uri = redirect_uri or settings.shopee_redirect_uri
        self.base_url = (base_url or settings.shopee_base_url).rstrip("/")

    # ── Signing ──

    def _sign(self, path: str, timestamp: int, with_token: bool = False) -> str:
        base = f"{self.partner_id}{path}{timestamp}"
        if with_token:
            base += f"{self.access_token}{self.external_account_id}"
        return sign_partner_request(self.partner_key, base)

    def _public_params(self, path: str) -> Dict[str, Any]:
        ts = int(time.time())
        return {"partner_id": self.partner_id, "timestamp": ts, "sign": self._sign(path, ts)}

    def _authorize(
        self, path: str, params: Dict[str, Any], headers: Dict[str, str]
    ) -> None:
        if not self.external_account_id:
            raise VendorAPIError(self.vendor, "Shop ID not available")
        ts = int(time.time())
        params.update(
            {
                "partner_id": self.partner_id,
                "timestamp": ts,
                "access_token": self.access_token,
                "shop_id": self.external_account_id,
                "sign": self._sign(path, ts, with_token=True),
            }
        )

    def _error_message(self, resp: httpx.Response) -> tuple[str, Optional[str]]:
        body = json_or_empty(resp)
        message = body.get("message") or body.get("error") or resp.reason_phrase
        return str(message), body.get("error") or None

    def _check_body(self, body: Dict[str, Any]) -> None:
        if body.get("error"):
            raise VendorAPIError(
                self.vendor, str(body.get("message") or body["error"]), 200, body["error"]
            )

    # ── OAuth ──

    def get_authorization_url(self, state: str) -> str:
        params = self._public_params(AUTH_PARTNER_PATH)
        redirect = self.redirect_uri
        if state:
            sep = "&" if "?" in redirect else "?"
            redirect = f"{redirect}{sep}{urlencode({'state': state})}"
        params["redirect"] = redirect
        return f"{self.base_url}{AUTH_PARTNER_PATH}?{urlencode(params)}"

    def _parse_tokens(self, body: Dict[str, Any], shop_id: Any) -> TokenSet:
        if not body.get("access_token"):
            raise VendorAPIError(self.vendor, "Token response missing access_token")
        return TokenSet.from_expires_in(
            body.get("expire_in", body.get("expires_in")),
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token", ""),
            external_account_id=str(body.get("shop_id") or shop_id),
        )

    async def exchange_code_for_tokens(self, code: str, shop_id: Optional[str] = None) -> TokenSet:
        shop_id = shop_id or self.external_account_id
        if not shop_id:
            raise VendorAPIError(self.vendor, "shop_id is required to exchange the code")
        body = await self._request(
            "POST",
            TOKEN_GET_PATH,
            params=self._public_params(TOKEN_GET_PATH),
            json={"code": code, "shop_id": int(shop_id), "partner_id": int(self.partner_id)},
            authenticated=False,
        )
        return self._parse_tokens(body, shop_id)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        if not self.external_account_id:
            raise VendorAPIError(self.vendor, "Shop ID not available")
        body = await self._request(
            "POST",
            TOKEN_REFRESH_PATH,
            params=self._public_params(TOKEN_REFRESH_PATH),
            json={
                "refresh_token": refresh_token,
                "shop_id": int(self.external_account_id),
                "partner_id": int(self.partner_id),
            },
            authenticated=False,
        )
        return self._parse_tokens(body, self.external_account_id)

    # ── Orders ──

    async def get_order_list(
        self,
        cursor: str = "",
        time_from: Optional[int] = None,
        time_to: Optional[int] = None,
        page_size: int = 50,
        status: Optional[str] = None,
    ) -> Page:
        """Cursor page of order_sn values, hydrated with order details."""
        now = datetime.now(timezone.utc)
        time_to = time_to or int(now.timestamp())
        time_from = time_from or int((now - timedelta(days=ORDER_WINDOW_DAYS)).timestamp())
        if time_to - time_from > ORDER_WINDOW_DAYS * 86400:
            raise ValidationFailedError(
                f"Shopee order range exceeds {ORDER_WINDOW_DAYS} days",
                details=[f"time_from={time_from}", f"time_to={time_to}"],
            )
        params: Dict[str, Any] = {
            "time_range_field": "update_time",
            "time_from": time_from,
            "time_to": time_to,
            "page_size": min(page_size, 100),
            "cursor": cursor,
        }
        if status:
            params["order_status"] = status
        body = await self._request("GET", ORDER_LIST_PATH, params)
        response = body.get("response") or {}
        order_sns = [o["order_sn"] for o in response.get("order_list", []) if o.get("order_sn")]
        orders = await self.get_order_detail(order_sns)
        logger.info(f"Fetched {len(orders)} Shopee orders", extra={"vendor": self.vendor})
        return Page(
            items=[o.model_dump() for o in orders],
            has_more=bool(response.get("more")) and bool(order_sns),
            next_cursor=response.get("next_cursor") or None,
        )

    async def get_order_detail(self, order_sn_list: List[str]) -> List[ShopeeOrder]:
        orders: List[ShopeeOrder] = []
        for start in range(0, len(order_sn_list), MAX_BATCH):
            chunk = order_sn_list[start:start + MAX_BATCH]
            body = await self._request(
                "GET",
                ORDER_DETAIL_PATH,
                {
                    "order_sn_list": ",".join(chunk),
                    "response_optional_fields": ORDER_DETAIL_FIELDS,
                },
            )
            for raw in (body.get("response") or {}).get("order_list", []):
                orders.append(ShopeeOrder.model_validate(raw))
        return orders

    async def get_order_income(self, order_sn_list: List[str]) -> List[ShopeeOrderIncome]:
        incomes: List[ShopeeOrderIncome] = []
        for start in range(0, len(order_sn_list), MAX_BATCH):
            chunk = order_sn_list[start:start + MAX_BATCH]
            body = await self._request(
                "GET", ORDER_INCOME_PATH, {"order_sn_list": ",".join(chunk)}
            )
            for raw in (body.get("response") or {}).get("order_income_list", []):
                incomes.append(ShopeeOrderIncome.model_validate(raw))
        return incomes

    # ── Items ──

    async def get_item_list(
        self,
        offset: int = 0,
        page_size: int = 50,
        update_time_from: Optional[int] = None,
        item_status: str = "NORMAL",
    ) -> Page:
        params: Dict[str, Any] = {
            "offset": offset,
            "page_size": min(page_size, 100),
            "item_status": item_status,
        }
        if update_time_from:
            params["update_time_from"] = update_time_from
        body = await self._request("GET", ITEM_LIST_PATH, params)
        response = body.get("response") or {}
        item_ids = [i["item_id"] for i in response.get("item", []) if i.get("item_id")]
        items = await self.get_item_base_info(item_ids)
        return Page(
            items=[i.model_dump() for i in items],
            has_more=bool(response.get("has_next_page")) and bool(item_ids),
            next_cursor=str(response.get("next_offset", offset + len(item_ids))),
        )

    async def get_item_base_info(self, item_ids: List[int]) -> List[ShopeeItem]:
        items: List[ShopeeItem] = []
        for start in range(0, len(item_ids), MAX_BATCH):
            chunk = item_ids[start:start + MAX_BATCH]
            body = await self._request(
                "GET",
                ITEM_BASE_INFO_PATH,
                {"item_id_list": ",".join(str(i) for i in chunk)},
            )
            for raw in (body.get("response") or {}).get("item_list", []):
                items.append(ShopeeItem.model_validate(raw))
        return items

    async def _health_probe(self) -> None:
        await self._request("GET", SHOP_INFO_PATH)
