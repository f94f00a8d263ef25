"""ECOMMIND — Price Suggestion.

Iteratively solves for the sale price that yields a target net margin
once percentage fees (commission, taxes) are charged on that same price.
"""

from typing import Optional

from pydantic import BaseModel

from ecommind.config import settings
from ecommind.core.errors import ValidationFailedError

MAX_ITERATIONS = 10
TOLERANCE_PCT = 0.1


class PriceBreakdown(BaseModel):
    cost_price: float
    channel_fees: float
    shipping: float
    taxes: float
    target_margin: float


class PriceSuggestion(BaseModel):
    suggested_price: float
    expected_margin: float
    expected_margin_pct: float
    iterations: int
    converged: bool
    breakdown: PriceBreakdown


def calculate_price_suggestion(
    cost_price: float,
    commission: float,
    fixed_fee: float = 0.0,
    target_margin_pct: float = 25.0,
    shipping: float = 0.0,
    tax_rate: Optional[float] = None,
) -> PriceSuggestion:
    """Suggest a price for `target_margin_pct` (0..100) net margin.

    `commission` and `tax_rate` are fractions of the sale price; `fixed_fee`
    and `shipping` are absolute per-unit amounts.
    """
    tax_rate = settings.default_tax_rate if tax_rate is None else tax_rate

    errors = []
    if cost_price <= 0:
        errors.append("cost_price must be positive")
    if not 0 <= commission < 1:
        errors.append("commission must be a fraction in [0, 1)")
    if not 0 <= tax_rate < 1:
        errors.append("tax_rate must be a fraction in [0, 1)")
    if fixed_fee < 0 or shipping < 0:
        errors.append("fixed_fee and shipping must not be negative")
    if not 0 <= target_margin_pct < 100:
        errors.append("target_margin_pct must be in [0, 100)")
    if not errors and commission + tax_rate + target_margin_pct / 100 >= 1:
        errors.append("commission + tax_rate + target margin leave no room for cost")
    if errors:
        raise ValidationFailedError("Invalid pricing input", details=errors)

    def margin_at(price: float) -> float:
        return price - (cost_price + price * commission + fixed_fee + shipping + price * tax_rate)

    price = cost_price * 2
    iterations = 0
    converged = False
    while iterations < MAX_ITERATIONS:
        current_pct = margin_at(price) / price * 100
        if abs(current_pct - target_margin_pct) < TOLERANCE_PCT:
            converged = True
            break
        price = price * (1 + (target_margin_pct - current_pct) / 100)
        # never suggest below the absolute costs
        price = max(price, cost_price + fixed_fee + shipping)
        iterations += 1

    channel_fees = price * commission + fixed_fee
    taxes = price * tax_rate
    margin = margin_at(price)

    return PriceSuggestion(
        suggested_price=round(price, 2),
        expected_margin=round(margin, 2),
        expected_margin_pct=round(margin / price * 100, 2),
        iterations=iterations,
        converged=converged,
        breakdown=PriceBreakdown(
            cost_price=cost_price,
            channel_fees=round(channel_fees, 2),
            shipping=shipping,
            taxes=round(taxes, 2),
            target_margin=round(margin, 2),
        ),
    )
