class CostGovernanceError(Exception):
    """Base class for errors raised by this package."""


class RateFetchFailure(CostGovernanceError):
    """A single exchange-rate provider could not supply a usable rate."""

    def __init__(self, provider: str, reason: str):
        super().__init__(f"{provider}: {reason}")
        self.provider = provider
        self.reason = reason


class OutOfBandRate(RateFetchFailure):
    """A provider answered with a rate outside the accepted band."""

    def __init__(self, provider: str, rate: float, min_rate: float, max_rate: float):
        super().__init__(provider, f"rate {rate} outside [{min_rate}, {max_rate}]")
        self.rate = rate


class UnknownModelError(CostGovernanceError, KeyError):
    def __init__(self, model: str):
        super().__init__(model)
        self.model = model

    def __str__(self) -> str:
        return f"Unsupported model: {self.model}"


class StoreError(CostGovernanceError):
    """Persistence failure. Never swallowed; callers must see it."""


class RecordNotFound(StoreError):
    pass
