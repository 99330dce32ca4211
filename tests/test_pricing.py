"""
Unit tests for token pricing.

Tests cost accuracy, ceiling rounding and error handling.
"""

from decimal import Decimal

import pytest

from cost_governance.core.errors import UnknownModelError
from cost_governance.core.pricing import (
    DEFAULT_PRICING,
    CostCalculator,
    PricingConfig,
    calculate_cost_usd,
    format_minor_units,
    to_minor_units,
)
from tests.support import FixedRates

UNIT_PRICING = {"unit": PricingConfig(model="unit", input_per_1m=1.0, output_per_1m=2.0)}


class TestCalculateCostUsd:
    """USD cost from the pricing table."""

    def test_default_model_prices(self):
        input_cost, output_cost, total = calculate_cost_usd("gemini-2.5-flash", 1_000_000, 1_000_000)
        assert input_cost == Decimal("0.3")
        assert output_cost == Decimal("2.5")
        assert total == Decimal("2.8")

    def test_models_prefix_is_stripped(self):
        _, _, total = calculate_cost_usd("models/gemini-2.5-flash-lite", 1_000_000, 0)
        assert total == Decimal("0.1")

    def test_unknown_model_raises(self):
        with pytest.raises(UnknownModelError, match="Unsupported model: gpt-unknown"):
            calculate_cost_usd("gpt-unknown", 10, 10)

    def test_unknown_model_is_a_key_error(self):
        with pytest.raises(KeyError):
            calculate_cost_usd("gpt-unknown", 10, 10)

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValueError):
            calculate_cost_usd("gemini-2.5-flash", -1, 0)


class TestRounding:
    """Billed amounts are always rounded up to the next minor unit."""

    def test_fraction_of_a_minor_unit_rounds_up(self):
        # 2_400_200 tokens at $1/M = $2.4002; at 5.0 that is exactly 12.001 local.
        calculator = CostCalculator(FixedRates(5.0), default_model="unit", pricing=UNIT_PRICING)
        estimate = calculator.estimate(2_400_200, 0)
        assert estimate.local == pytest.approx(12.001)
        assert estimate.minor_units == 1201

    def test_exact_amount_is_not_bumped(self):
        calculator = CostCalculator(FixedRates(5.0), default_model="unit", pricing=UNIT_PRICING)
        assert calculator.estimate(2_400_000, 0).minor_units == 1200

    def test_tiny_cost_bills_one_minor_unit(self):
        assert to_minor_units(Decimal("0.0000001")) == 1

    def test_zero_cost_bills_nothing(self):
        assert to_minor_units(Decimal(0)) == 0


class TestCostCalculator:
    """Estimates combine the pricing table with the exchange rate."""

    def test_estimate_default_model(self, calculator):
        estimate = calculator.estimate(1_000, 500)
        # $0.0003 + $0.00125 = $0.00155 -> R$ 0.00775 -> 1 centavo
        assert estimate.model == "gemini-2.5-flash"
        assert estimate.usd == pytest.approx(0.00155)
        assert estimate.local == pytest.approx(0.00775)
        assert estimate.minor_units == 1
        assert estimate.currency == "BRL"
        assert estimate.formatted == "R$ 0.01"

    def test_estimate_breakdown(self):
        calculator = CostCalculator(FixedRates(5.0), default_model="unit", pricing=UNIT_PRICING)
        estimate = calculator.estimate(1_000_000, 500_000)
        # input $1 -> R$5, output $1 -> R$5
        assert estimate.input_minor_units == 500
        assert estimate.output_minor_units == 500
        assert estimate.minor_units == 1000

    def test_one_rate_read_per_estimate(self, calculator, fixed_rates):
        calculator.estimate(10_000, 10_000)
        assert fixed_rates.calls == 1

    def test_zero_tokens(self, calculator):
        estimate = calculator.estimate(0, 0)
        assert estimate.minor_units == 0
        assert estimate.usd == 0.0

    def test_monotonic_in_both_token_counts(self, calculator):
        sizes = [0, 1, 999, 1_000, 25_000, 333_333, 1_000_000]
        for fixed in sizes:
            by_input = [calculator.estimate(n, fixed).minor_units for n in sizes]
            by_output = [calculator.estimate(fixed, n).minor_units for n in sizes]
            assert by_input == sorted(by_input)
            assert by_output == sorted(by_output)
            assert all(isinstance(v, int) and v >= 0 for v in by_input + by_output)

    def test_unknown_default_model_rejected_at_construction(self):
        with pytest.raises(UnknownModelError):
            CostCalculator(FixedRates(), default_model="nope")

    def test_estimate_as_dict(self, calculator):
        data = calculator.estimate(1_000, 500).as_dict()
        assert data["minorUnits"] == 1
        assert set(data["breakdown"]) == {"inputMinorUnits", "outputMinorUnits"}


class TestCurrentPricing:
    """Diagnostic pricing view."""

    def test_current_pricing_view(self, calculator):
        pricing = calculator.current_pricing()

        assert pricing["model"] == "gemini-2.5-flash"
        assert pricing["usdPrices"] == {"inputPer1M": 0.30, "outputPer1M": 2.50}
        assert pricing["localPrices"]["currency"] == "BRL"
        assert pricing["localPrices"]["inputPer1M"] == pytest.approx(1.5)
        assert pricing["localPrices"]["outputPer1M"] == pytest.approx(12.5)
        assert pricing["rateInfo"]["source"] == "test"
        assert [e["operation"] for e in pricing["examples"]] == [
            "short_chat",
            "essay_analysis",
            "long_document",
        ]

    def test_current_pricing_reads_rate_once(self, calculator, fixed_rates):
        calculator.current_pricing()
        assert fixed_rates.calls == 1

    def test_default_table_models(self):
        assert {"gemini-2.5-flash", "gemini-2.5-flash-lite"} <= set(DEFAULT_PRICING)


class TestFormatting:
    def test_format_minor_units(self):
        assert format_minor_units(875) == "R$ 8.75"
        assert format_minor_units(5) == "R$ 0.05"
        assert format_minor_units(0, "€") == "€ 0.00"
