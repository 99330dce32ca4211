"""FastAPI dependencies - process-wide service instances."""

from functools import lru_cache

from cost_governance.config.logger import get_logger
from cost_governance.config.settings import Settings, load_settings
from cost_governance.core.fx import ExchangeRateProvider
from cost_governance.core.governor import UsageGovernor
from cost_governance.core.pricing import CostCalculator
from cost_governance.core.usage_ledger import UsageLedger
from cost_governance.core.weekly_quota import WeeklyQuotaTracker
from cost_governance.db.memory import InMemoryUsageStore
from cost_governance.db.store import UsageStore

LOGGER = get_logger("cost_governance.dependencies")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


@lru_cache(maxsize=1)
def get_usage_store() -> UsageStore:
    settings = get_settings()
    if settings.usage_store == "firestore":
        from cost_governance.db.firestore import FirestoreUsageStore, get_firestore_client

        return FirestoreUsageStore(get_firestore_client())
    if settings.usage_store != "memory":
        raise ValueError(f"Unknown USAGE_STORE: {settings.usage_store}")
    LOGGER.warning("Using in-memory usage store; quota state is lost on restart")
    return InMemoryUsageStore()


@lru_cache(maxsize=1)
def get_exchange_rates() -> ExchangeRateProvider:
    return ExchangeRateProvider(get_settings().fx)


@lru_cache(maxsize=1)
def get_cost_calculator() -> CostCalculator:
    settings = get_settings()
    return CostCalculator(
        get_exchange_rates(),
        default_model=settings.billing_model,
        currency_symbol=settings.currency_symbol,
    )


@lru_cache(maxsize=1)
def get_quota_tracker() -> WeeklyQuotaTracker:
    settings = get_settings()
    return WeeklyQuotaTracker(
        get_usage_store(),
        calculator=get_cost_calculator(),
        timezone=settings.quota_timezone,
        currency_symbol=settings.currency_symbol,
    )


@lru_cache(maxsize=1)
def get_usage_ledger() -> UsageLedger:
    return UsageLedger(
        get_usage_store(),
        calculator=get_cost_calculator(),
        timezone=get_settings().quota_timezone,
    )


@lru_cache(maxsize=1)
def get_governor() -> UsageGovernor:
    return UsageGovernor(
        get_cost_calculator(),
        get_quota_tracker(),
        get_usage_ledger(),
        get_settings().plans,
    )
