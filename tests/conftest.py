"""Pytest fixtures and configuration."""

import httpx
import pytest

from cost_governance.config.settings import FxSettings
from cost_governance.core.fx import ExchangeRateProvider
from cost_governance.core.pricing import CostCalculator
from cost_governance.core.usage_ledger import UsageLedger
from cost_governance.core.weekly_quota import WeeklyQuotaTracker
from cost_governance.db.memory import InMemoryUsageStore
from tests.support import FakeClock, FixedRates, ProviderStub


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryUsageStore()


@pytest.fixture
def make_rates(clock):
    """Build an ExchangeRateProvider whose HTTP calls hit a ``ProviderStub``."""
    clients = []

    def _make(stub: ProviderStub, **fx_overrides) -> ExchangeRateProvider:
        client = httpx.Client(transport=httpx.MockTransport(stub))
        clients.append(client)
        return ExchangeRateProvider(FxSettings(**fx_overrides), client=client, clock=clock)

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def fixed_rates():
    return FixedRates(rate=5.0)


@pytest.fixture
def calculator(fixed_rates):
    return CostCalculator(fixed_rates, default_model="gemini-2.5-flash")


@pytest.fixture
def tracker(store, calculator, clock):
    return WeeklyQuotaTracker(store, calculator=calculator, timezone="UTC", clock=clock)


@pytest.fixture
def ledger(store, calculator, clock):
    return UsageLedger(store, calculator=calculator, clock=clock)
