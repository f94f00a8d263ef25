"""Tests for the iterative price-suggestion solver."""

import pytest

from ecommind.analyzer.pricing import calculate_price_suggestion
from ecommind.core.errors import ValidationFailedError


def test_converges_on_target_margin():
    result = calculate_price_suggestion(
        cost_price=50.0, commission=0.16, target_margin_pct=25.0, tax_rate=0.06
    )
    assert result.converged is True
    assert result.suggested_price == pytest.approx(50 / 0.53, abs=0.5)
    assert abs(result.expected_margin_pct - 25.0) < 0.1
    assert result.iterations <= 10


def test_breakdown_accounts_for_every_cost():
    result = calculate_price_suggestion(
        cost_price=40.0, commission=0.12, fixed_fee=5.0, shipping=10.0, tax_rate=0.04
    )
    b = result.breakdown
    total = b.cost_price + b.channel_fees + b.shipping + b.taxes + b.target_margin
    assert total == pytest.approx(result.suggested_price, abs=0.05)


def test_zero_margin_target_covers_costs():
    result = calculate_price_suggestion(cost_price=30.0, commission=0.1, target_margin_pct=0, tax_rate=0)
    assert result.suggested_price >= 30.0
    assert result.expected_margin_pct == pytest.approx(0.0, abs=0.1)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"cost_price": 0, "commission": 0.1},
        {"cost_price": 10, "commission": 1.2},
        {"cost_price": 10, "commission": 0.1, "tax_rate": -0.1},
        {"cost_price": 10, "commission": 0.1, "shipping": -1},
        {"cost_price": 10, "commission": 0.1, "target_margin_pct": 120},
    ],
)
def test_invalid_inputs_rejected(kwargs):
    with pytest.raises(ValidationFailedError):
        calculate_price_suggestion(**kwargs)


def test_unreachable_margin_rejected_with_details():
    with pytest.raises(ValidationFailedError) as exc:
        calculate_price_suggestion(cost_price=10, commission=0.5, target_margin_pct=45, tax_rate=0.1)
    assert exc.value.details == ["commission + tax_rate + target margin leave no room for cost"]
