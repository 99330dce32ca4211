"""Environment-driven configuration.

Settings are read once into an immutable object and handed to the services
that need them; nothing here is mutated after load.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .logger import get_logger

LOGGER = get_logger("cost_governance.settings")

DEFAULT_PROVIDERS: Tuple[Tuple[str, str], ...] = (
    ("Frankfurter", "https://api.frankfurter.dev/v1/latest"),
    ("ExchangeRate-Host", "https://api.exchangerate.host/latest"),
)


@dataclass(frozen=True)
class ProviderConfig:
    """A remote exchange-rate source queried with ``base``/``symbols``."""

    name: str
    url: str


@dataclass(frozen=True)
class PlanTier:
    name: str
    weekly_limit_minor_units: int


@dataclass(frozen=True)
class FxSettings:
    base_currency: str = "USD"
    local_currency: str = "BRL"
    cache_ttl_seconds: float = 3600.0
    fallback_rate: float = 5.33
    min_rate: float = 3.0
    max_rate: float = 10.0
    timeout_seconds: float = 5.0
    user_agent: str = "ai-cost-governance/1.0"
    providers: Tuple[ProviderConfig, ...] = tuple(
        ProviderConfig(name=name, url=url) for name, url in DEFAULT_PROVIDERS
    )


@dataclass(frozen=True)
class Settings:
    fx: FxSettings = field(default_factory=FxSettings)
    currency_symbol: str = "R$"
    billing_model: str = "gemini-2.5-flash"
    quota_timezone: str = "America/Sao_Paulo"
    plans: Mapping[str, PlanTier] = field(
        default_factory=lambda: {
            "free": PlanTier(name="free", weekly_limit_minor_units=90),
            "pro": PlanTier(name="pro", weekly_limit_minor_units=500),
        }
    )
    usage_store: str = "memory"
    internal_key: Optional[str] = None

    def plan(self, name: str) -> PlanTier:
        try:
            return self.plans[name.lower()]
        except KeyError:
            raise ValueError(f"Unknown plan tier: {name}") from None

    def weekly_limit(self, plan_name: str) -> int:
        return self.plan(plan_name).weekly_limit_minor_units


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from environment variables.

    Args:
        env: Mapping to read from; defaults to ``os.environ``.

    Raises:
        ValueError: If a numeric variable cannot be parsed or the FX band is
            inverted.
    """
    env = os.environ if env is None else env

    fx = FxSettings(
        local_currency=env.get("LOCAL_CURRENCY", "BRL").upper(),
        cache_ttl_seconds=_float(env, "FX_CACHE_TTL_SECONDS", 3600.0),
        fallback_rate=_float(env, "FX_FALLBACK_RATE", 5.33),
        min_rate=_float(env, "FX_MIN_RATE", 3.0),
        max_rate=_float(env, "FX_MAX_RATE", 10.0),
        timeout_seconds=_float(env, "FX_TIMEOUT_SECONDS", 5.0),
        providers=_providers(env.get("FX_PROVIDERS")),
    )
    if fx.min_rate > fx.max_rate:
        raise ValueError(f"FX_MIN_RATE ({fx.min_rate}) must not exceed FX_MAX_RATE ({fx.max_rate})")

    plans: Dict[str, PlanTier] = {
        "free": PlanTier("free", _int(env, "FREE_WEEKLY_LIMIT_MINOR_UNITS", 90)),
        "pro": PlanTier("pro", _int(env, "PRO_WEEKLY_LIMIT_MINOR_UNITS", 500)),
    }

    settings = Settings(
        fx=fx,
        currency_symbol=env.get("CURRENCY_SYMBOL", "R$"),
        billing_model=env.get("BILLING_MODEL", "gemini-2.5-flash"),
        quota_timezone=env.get("QUOTA_TIMEZONE", "America/Sao_Paulo"),
        plans=plans,
        usage_store=env.get("USAGE_STORE", "memory").lower(),
        internal_key=env.get("COST_GOVERNANCE_INTERNAL_KEY") or None,
    )
    LOGGER.info(
        "Settings loaded",
        extra={
            "localCurrency": fx.local_currency,
            "providers": [p.name for p in fx.providers],
            "billingModel": settings.billing_model,
            "usageStore": settings.usage_store,
        },
    )
    return settings


def _providers(raw: Optional[str]) -> Tuple[ProviderConfig, ...]:
    if not raw:
        return FxSettings().providers
    providers = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, url = chunk.partition("=")
        if not sep or not url.strip():
            raise ValueError(f"FX_PROVIDERS entry must look like name=url: {chunk!r}")
        providers.append(ProviderConfig(name=name.strip(), url=url.strip()))
    return tuple(providers)


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}") from None


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{key} must be >= 0")
    return value
