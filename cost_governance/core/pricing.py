from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

from cost_governance.config.logger import get_logger

from .errors import UnknownModelError
from .fx import ExchangeRateProvider

LOGGER = get_logger("cost_governance.pricing")

MILLION = Decimal(1_000_000)
MINOR_UNITS_PER_MAJOR = Decimal(100)


@dataclass(frozen=True)
class PricingConfig:
    """Pricing configuration for a single model in USD per 1M tokens."""

    model: str
    input_per_1m: float
    output_per_1m: float
    currency: str = "USD"


DEFAULT_PRICING: Dict[str, PricingConfig] = {
    # Google Gemini (Flash family), token pricing per 1M (USD)
    "gemini-2.5-flash": PricingConfig(
        model="gemini-2.5-flash",
        input_per_1m=0.30,
        output_per_1m=2.50,
    ),
    "gemini-2.5-flash-lite": PricingConfig(
        model="gemini-2.5-flash-lite",
        input_per_1m=0.10,
        output_per_1m=0.40,
    ),
    # Legacy entry kept for cost entries recorded before the 2.5 migration
    "gemini-1.5-flash": PricingConfig(
        model="gemini-1.5-flash",
        input_per_1m=0.075,
        output_per_1m=0.30,
    ),
}

# (label, input tokens, output tokens) shown on pricing pages.
PRICING_EXAMPLES: Tuple[Tuple[str, int, int], ...] = (
    ("short_chat", 1_000, 500),
    ("essay_analysis", 4_000, 2_000),
    ("long_document", 20_000, 4_000),
)


@dataclass(frozen=True)
class CostEstimate:
    model: str
    input_tokens: int
    output_tokens: int
    usd: float
    local: float
    minor_units: int
    input_minor_units: int
    output_minor_units: int
    rate: float
    currency: str
    formatted: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "usd": self.usd,
            "local": self.local,
            "minorUnits": self.minor_units,
            "breakdown": {
                "inputMinorUnits": self.input_minor_units,
                "outputMinorUnits": self.output_minor_units,
            },
            "rate": self.rate,
            "currency": self.currency,
            "formatted": self.formatted,
        }


def normalize_model_name(model: str) -> str:
    return model.replace("models/", "", 1)


def to_minor_units(local_amount: Decimal) -> int:
    """Ceil a local-currency amount to whole minor units (never under-charge)."""
    return int((local_amount * MINOR_UNITS_PER_MAJOR).to_integral_value(rounding=ROUND_CEILING))


def format_minor_units(minor_units: int, symbol: str = "R$") -> str:
    return f"{symbol} {Decimal(minor_units) / MINOR_UNITS_PER_MAJOR:.2f}"


def calculate_cost_usd(
    model: str,
    input_tokens: int,
    output_tokens: int,
    pricing: Optional[Mapping[str, PricingConfig]] = None,
) -> Tuple[Decimal, Decimal, Decimal]:
    """Return (input_cost_usd, output_cost_usd, total_cost_usd).

    Raises:
        UnknownModelError: if the model does not exist in pricing config.
        ValueError: if a token count is negative.
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("token counts must be >= 0")
    config = get_pricing(model, pricing)
    input_cost = Decimal(input_tokens) / MILLION * Decimal(str(config.input_per_1m))
    output_cost = Decimal(output_tokens) / MILLION * Decimal(str(config.output_per_1m))
    return input_cost, output_cost, input_cost + output_cost


def get_pricing(model: str, pricing: Optional[Mapping[str, PricingConfig]] = None) -> PricingConfig:
    pricing = DEFAULT_PRICING if pricing is None else pricing
    normalized = normalize_model_name(model)
    if normalized not in pricing:
        LOGGER.warning(
            "Pricing model missing",
            extra={"model": model, "normalized": normalized, "available": list(pricing.keys())},
        )
        raise UnknownModelError(model)
    return pricing[normalized]


class CostCalculator:
    """Token counts to local-currency minor units.

    Floats only appear for the exchange rate itself; the arithmetic runs in
    ``Decimal`` and the ceiling is applied once, where the amount becomes an
    integer.
    """

    def __init__(
        self,
        rates: ExchangeRateProvider,
        default_model: str = "gemini-2.5-flash",
        pricing: Optional[Mapping[str, PricingConfig]] = None,
        currency_symbol: str = "R$",
    ):
        self._rates = rates
        self._pricing = dict(DEFAULT_PRICING if pricing is None else pricing)
        self._symbol = currency_symbol
        self.default_model = normalize_model_name(default_model)
        get_pricing(self.default_model, self._pricing)

    def estimate(
        self,
        input_tokens: int,
        output_tokens: int,
        model: Optional[str] = None,
    ) -> CostEstimate:
        model = normalize_model_name(model or self.default_model)
        # Validate before touching the rate source.
        get_pricing(model, self._pricing)
        # One rate read per estimate so both sides use the same snapshot.
        return self._estimate_at(self._rates.get_rate(), model, input_tokens, output_tokens)

    def _estimate_at(self, rate: float, model: str, input_tokens: int, output_tokens: int) -> CostEstimate:
        input_usd, output_usd, total_usd = calculate_cost_usd(
            model, input_tokens, output_tokens, self._pricing
        )
        rate_dec = Decimal(str(rate))
        local = total_usd * rate_dec
        minor_units = to_minor_units(local)

        estimate = CostEstimate(
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            usd=float(total_usd),
            local=float(local),
            minor_units=minor_units,
            input_minor_units=to_minor_units(input_usd * rate_dec),
            output_minor_units=to_minor_units(output_usd * rate_dec),
            rate=rate,
            currency=self._rates.quote,
            formatted=format_minor_units(minor_units, self._symbol),
        )
        LOGGER.debug(
            "Cost estimated",
            extra={
                "model": model,
                "inputTokens": input_tokens,
                "outputTokens": output_tokens,
                "usd": estimate.usd,
                "local": estimate.local,
                "minorUnits": minor_units,
                "rate": rate,
            },
        )
        return estimate

    def current_pricing(self, model: Optional[str] = None) -> Dict[str, Any]:
        config = get_pricing(model or self.default_model, self._pricing)
        rate_info = self._rates.get_rate_info()
        rate = Decimal(str(rate_info.rate))
        examples = []
        for label, input_tokens, output_tokens in PRICING_EXAMPLES:
            estimate = self._estimate_at(rate_info.rate, config.model, input_tokens, output_tokens)
            examples.append(
                {
                    "operation": label,
                    "inputTokens": input_tokens,
                    "outputTokens": output_tokens,
                    "minorUnits": estimate.minor_units,
                    "formatted": estimate.formatted,
                }
            )
        return {
            "model": config.model,
            "usdPrices": {
                "inputPer1M": config.input_per_1m,
                "outputPer1M": config.output_per_1m,
            },
            "localPrices": {
                "currency": self._rates.quote,
                "inputPer1M": float(Decimal(str(config.input_per_1m)) * rate),
                "outputPer1M": float(Decimal(str(config.output_per_1m)) * rate),
            },
            "rateInfo": rate_info.as_dict(),
            "examples": examples,
        }
