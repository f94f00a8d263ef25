"""ECOMMIND — Vendor → Adapter class lookup."""

from typing import Dict, Type

from ecommind.connectors.base import BaseAdapter
from ecommind.connectors.bling.client import BlingClient
from ecommind.connectors.meli.client import MeliClient
from ecommind.connectors.shopee.client import ShopeeClient
from ecommind.core.errors import ValidationFailedError

ADAPTERS: Dict[str, Type[BaseAdapter]] = {
    "bling": BlingClient,
    "meli": MeliClient,
    "shopee": ShopeeClient,
}


def adapter_class(vendor: str) -> Type[BaseAdapter]:
    try:
        return ADAPTERS[vendor]
    except KeyError:
        raise ValidationFailedError(f"Unknown vendor: {vendor}")
