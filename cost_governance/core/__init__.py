"""AI usage cost governance: exchange rates, pricing, weekly quotas, ledger."""

from .errors import (
    CostGovernanceError,
    OutOfBandRate,
    RateFetchFailure,
    RecordNotFound,
    StoreError,
    UnknownModelError,
)
from .fx import ExchangeRate, ExchangeRateProvider, RateInfo, RateProvider
from .governor import Preflight, Settlement, UsageGovernor
from .periods import week_end, week_start
from .pricing import CostCalculator, CostEstimate, PricingConfig, calculate_cost_usd
from .usage_ledger import CostSummary, UsageLedger
from .weekly_quota import QuotaCheck, RecordResult, UsageHistory, UsageStats, WeeklyQuotaTracker

__all__ = [
    "CostGovernanceError",
    "OutOfBandRate",
    "RateFetchFailure",
    "RecordNotFound",
    "StoreError",
    "UnknownModelError",
    "ExchangeRate",
    "ExchangeRateProvider",
    "RateInfo",
    "RateProvider",
    "Preflight",
    "Settlement",
    "UsageGovernor",
    "week_end",
    "week_start",
    "CostCalculator",
    "CostEstimate",
    "PricingConfig",
    "calculate_cost_usd",
    "CostSummary",
    "UsageLedger",
    "QuotaCheck",
    "RecordResult",
    "UsageHistory",
    "UsageStats",
    "WeeklyQuotaTracker",
]
