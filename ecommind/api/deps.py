"""ECOMMIND — Shared route dependencies."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Header, HTTPException

from ecommind.core.errors import EcommindError

# URL prefix per vendor; Bling is the ERP, the others are marketplaces
VENDOR_PREFIXES = {
    "bling": "/erp/bling",
    "meli": "/meli",
    "shopee": "/shopee",
}


@dataclass
class RequestContext:
    user_id: str
    company_id: str


def get_request_context(
    x_user_id: Optional[str] = Header(default=None),
    x_company_id: Optional[str] = Header(default=None),
) -> RequestContext:
    """Identity forwarded by the upstream auth gateway."""
    if not x_user_id or not x_company_id:
        raise HTTPException(status_code=401, detail={"error": "Authentication required"})
    return RequestContext(user_id=x_user_id, company_id=x_company_id)


def get_adapter_kwargs() -> Dict[str, Any]:
    """Extra constructor kwargs for vendor adapters (transport, sleep, policy)."""
    return {}


def error_detail(error: EcommindError, **extra: Any) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"error": error.error, "message": str(error)}
    if error.details:
        detail["details"] = error.details
    detail.update(extra)
    return detail


def to_http(error: EcommindError, **extra: Any) -> HTTPException:
    return HTTPException(status_code=error.status_code, detail=error_detail(error, **extra))
