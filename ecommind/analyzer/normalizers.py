"""ECOMMIND — Market Dataset Normalizer.

Turns uploaded rows (CSV / JSON, all values possibly strings) into
validated market records. Invalid rows are reported, never coerced.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator

from ecommind.core.logging import get_logger
from ecommind.models.market_models import CHANNELS

logger = get_logger("analyzer.normalizers")

NUMERIC_FIELDS = (
    "price",
    "price_median",
    "demand_index",
    "growth_rate",
    "sellers_top",
    "units_sold_est",
    "revenue_est",
)


def parse_numeric(value: Any) -> Optional[float]:
    """Empty or unparseable → None."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    try:
        return float(str(value).strip().replace(",", "."))
    except ValueError:
        return None


def parse_attributes(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {"raw": raw}
    return parsed if isinstance(parsed, dict) else {"raw": raw}


def _iso_date(value: str) -> str:
    return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date().isoformat()


class MarketRow(BaseModel):
    """One uploaded row after numeric coercion."""

    period_start: str
    period_end: str
    scope: Literal["niche", "category"]
    channel: str = Field(min_length=1)
    category: str = Field(min_length=1, max_length=100)
    record_type: Literal["listing", "keyword", "category"]
    identifier: str = Field(min_length=1, max_length=100)
    title: Optional[str] = None
    price: Optional[float] = None
    price_median: Optional[float] = None
    demand_index: Optional[float] = Field(default=None, ge=0, le=100)
    growth_rate: Optional[float] = Field(default=None, ge=-1, le=5)
    sellers_top: Optional[int] = Field(default=None, ge=0)
    units_sold_est: Optional[float] = Field(default=None, ge=0)
    revenue_est: Optional[float] = Field(default=None, ge=0)
    attributes: Optional[str] = None

    @field_validator("period_start", "period_end")
    @classmethod
    def _valid_date(cls, v: str) -> str:
        try:
            return _iso_date(v)
        except ValueError:
            raise ValueError("Invalid date format")

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_as_text(cls, v: Any) -> Optional[str]:
        if isinstance(v, (dict, list)):
            return json.dumps(v)
        return v


class NormalizedMarketRecord(BaseModel):
    period_start: str
    period_end: str
    scope: str
    channel: str
    category: str
    record_type: str
    identifier: str
    title: Optional[str] = None
    price: Optional[float] = None
    price_median: Optional[float] = None
    demand_index: Optional[float] = None
    growth_rate: Optional[float] = None
    sellers_top: Optional[int] = None
    units_sold_est: Optional[float] = None
    revenue_est: Optional[float] = None
    attributes: Dict[str, Any] = {}


class RowError(BaseModel):
    row: int
    errors: List[str]


class MarketDatasetNormalizer:
    """Validate and clean a batch of uploaded market rows."""

    @staticmethod
    def normalize_row(row: Dict[str, Any]) -> NormalizedMarketRecord:
        processed = dict(row)
        for name in NUMERIC_FIELDS:
            processed[name] = parse_numeric(processed.get(name))

        parsed = MarketRow.model_validate(processed)

        channel = parsed.channel.lower().strip()
        if channel not in CHANNELS:
            channel = "unknown"

        title = parsed.title.strip()[:200] if parsed.title else None

        return NormalizedMarketRecord(
            period_start=parsed.period_start,
            period_end=parsed.period_end,
            scope=parsed.scope,
            channel=channel,
            category=parsed.category.strip()[:100],
            record_type=parsed.record_type,
            identifier=parsed.identifier.strip()[:100],
            title=title or None,
            price=parsed.price,
            price_median=parsed.price_median,
            demand_index=parsed.demand_index,
            growth_rate=parsed.growth_rate,
            sellers_top=parsed.sellers_top,
            units_sold_est=parsed.units_sold_est,
            revenue_est=parsed.revenue_est,
            attributes=parse_attributes(parsed.attributes),
        )

    @classmethod
    def normalize(
        cls, raw_rows: List[Dict[str, Any]]
    ) -> Tuple[List[NormalizedMarketRecord], List[RowError]]:
        valid: List[NormalizedMarketRecord] = []
        errors: List[RowError] = []

        for index, row in enumerate(raw_rows):
            if not isinstance(row, dict):
                errors.append(RowError(row=index + 1, errors=["Row must be an object"]))
                continue
            try:
                valid.append(cls.normalize_row(row))
            except ValidationError as e:
                errors.append(
                    RowError(
                        row=index + 1,
                        errors=[
                            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                            for err in e.errors()
                        ],
                    )
                )

        logger.info(f"Normalized market upload: {len(valid)} valid, {len(errors)} invalid rows")
        return valid, errors
