import datetime as dt
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

import httpx

from cost_governance.config.logger import get_logger
from cost_governance.config.settings import FxSettings, ProviderConfig

from .errors import OutOfBandRate, RateFetchFailure

LOGGER = get_logger("cost_governance.fx")

Clock = Callable[[], dt.datetime]


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class ExchangeRate:
    """A fetched rate. Replaced wholesale on refresh, never edited."""

    base: str
    quote: str
    rate: float
    source: str
    date: str
    fetched_at: dt.datetime


@dataclass(frozen=True)
class RateInfo:
    rate: float
    source: str
    date: str
    cached: bool
    age_ms: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "source": self.source,
            "date": self.date,
            "cached": self.cached,
            "ageMs": self.age_ms,
        }


class RateProvider:
    """One remote source answering ``GET url?base=USD&symbols=BRL``."""

    def __init__(self, config: ProviderConfig):
        self.name = config.name
        self.url = config.url

    def fetch(
        self,
        client: httpx.Client,
        base: str,
        quote: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Return ``{"rate": float, "date": str}``.

        ``timeout`` is a total deadline for the whole exchange. httpx only
        bounds each socket operation, so the body is streamed and the
        deadline is checked between chunks.

        Raises:
            RateFetchFailure: On timeout, transport error, non-2xx status or a
                body that does not carry the requested rate.
        """
        deadline = time.monotonic() + timeout
        try:
            with client.stream(
                "GET",
                self.url,
                params={"base": base, "symbols": quote},
                headers=headers,
                timeout=timeout,
            ) as response:
                response.raise_for_status()
                body = bytearray()
                for chunk in response.iter_bytes():
                    if time.monotonic() > deadline:
                        raise RateFetchFailure(self.name, f"deadline of {timeout}s exceeded")
                    body.extend(chunk)
            if time.monotonic() > deadline:
                raise RateFetchFailure(self.name, f"deadline of {timeout}s exceeded")
            payload = json.loads(body)
        except httpx.TimeoutException as exc:
            raise RateFetchFailure(self.name, f"timed out after {timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise RateFetchFailure(self.name, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise RateFetchFailure(self.name, str(exc) or exc.__class__.__name__) from exc
        except ValueError as exc:
            raise RateFetchFailure(self.name, "response is not JSON") from exc
        return self.parse(payload, quote)

    def parse(self, payload: Any, quote: str) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise RateFetchFailure(self.name, "unexpected payload shape")
        rates = payload.get("rates")
        if not isinstance(rates, dict) or quote not in rates:
            raise RateFetchFailure(self.name, f"missing rates.{quote}")
        value = rates[quote]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise RateFetchFailure(self.name, f"rates.{quote} is not a number")
        return {"rate": float(value), "date": str(payload.get("date") or "")}


class ExchangeRateProvider:
    """USD to local-currency rate with TTL cache and provider fallback.

    ``get_rate`` never raises: a failed refresh falls back to the last good
    snapshot regardless of age, then to the configured constant.
    """

    def __init__(
        self,
        settings: Optional[FxSettings] = None,
        providers: Optional[Sequence[RateProvider]] = None,
        client: Optional[httpx.Client] = None,
        clock: Clock = utc_now,
    ):
        self._settings = settings or FxSettings()
        self._providers = list(
            providers
            if providers is not None
            else (RateProvider(p) for p in self._settings.providers)
        )
        self._owns_client = client is None
        self._client = client or httpx.Client()
        self._clock = clock
        self._ttl = dt.timedelta(seconds=self._settings.cache_ttl_seconds)
        self._cached: Optional[ExchangeRate] = None

    @property
    def base(self) -> str:
        return self._settings.base_currency

    @property
    def quote(self) -> str:
        return self._settings.local_currency

    @property
    def snapshot(self) -> Optional[ExchangeRate]:
        return self._cached

    def get_rate(self) -> float:
        cached = self._cached
        if cached is not None and self._is_fresh(cached):
            LOGGER.debug(
                "FX rate cache hit",
                extra={"quote": self.quote, "rate": cached.rate, "source": cached.source},
            )
            return cached.rate

        fresh = self._fetch_fresh_rate()
        if fresh is not None:
            self._cached = fresh
            LOGGER.info(
                "FX rate refreshed",
                extra={
                    "quote": self.quote,
                    "rate": fresh.rate,
                    "source": fresh.source,
                    "date": fresh.date,
                },
            )
            return fresh.rate

        # Re-read: another caller may have published a snapshot meanwhile.
        cached = self._cached
        if cached is not None:
            LOGGER.warning(
                "FX refresh failed; serving stale rate",
                extra={"quote": self.quote, "rate": cached.rate, "source": cached.source},
            )
            return cached.rate

        LOGGER.error(
            "FX refresh failed and no cached rate; using fallback",
            extra={"quote": self.quote, "rate": self._settings.fallback_rate},
        )
        return self._settings.fallback_rate

    def convert(self, usd_amount: float) -> float:
        """Convert a USD amount at the current rate. Rounding is left to callers."""
        return usd_amount * self.get_rate()

    def get_rate_info(self) -> RateInfo:
        return self.describe(self.get_rate())

    def describe(self, rate: float) -> RateInfo:
        """``RateInfo`` for a rate the caller already read, without another lookup."""
        cached = self._cached
        if cached is None:
            return RateInfo(
                rate=rate,
                source="fallback",
                date=self._clock().date().isoformat(),
                cached=False,
                age_ms=0,
            )
        return RateInfo(
            rate=rate,
            source=cached.source,
            date=cached.date,
            cached=self._is_fresh(cached),
            age_ms=self._age_ms(cached),
        )

    def force_refresh(self) -> float:
        LOGGER.info("FX forced refresh", extra={"quote": self.quote})
        self._cached = None
        return self.get_rate()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def _is_fresh(self, rate: ExchangeRate) -> bool:
        return self._clock() - rate.fetched_at < self._ttl

    def _age_ms(self, rate: ExchangeRate) -> int:
        return max(0, int((self._clock() - rate.fetched_at).total_seconds() * 1000))

    def _fetch_fresh_rate(self) -> Optional[ExchangeRate]:
        headers = {"User-Agent": self._settings.user_agent}
        for provider in self._providers:
            try:
                parsed = provider.fetch(
                    self._client,
                    self.base,
                    self.quote,
                    timeout=self._settings.timeout_seconds,
                    headers=headers,
                )
                rate = parsed["rate"]
                if not self._settings.min_rate <= rate <= self._settings.max_rate:
                    raise OutOfBandRate(
                        provider.name, rate, self._settings.min_rate, self._settings.max_rate
                    )
            except RateFetchFailure as exc:
                LOGGER.warning(
                    "FX provider failed",
                    extra={"provider": provider.name, "reason": exc.reason},
                )
                continue
            return ExchangeRate(
                base=self.base,
                quote=self.quote,
                rate=rate,
                source=provider.name,
                date=parsed["date"] or self._clock().date().isoformat(),
                fetched_at=self._clock(),
            )
        LOGGER.warning(
            "FX providers exhausted",
            extra={"providers": [p.name for p in self._providers]},
        )
        return None
