"""Test doubles shared across the suite."""

import datetime as dt
import json
import time
from typing import Callable, Dict, List

import httpx

from cost_governance.core.fx import RateInfo

# Wednesday of the ISO week that starts Monday 2025-09-15.
WEDNESDAY_NOON = dt.datetime(2025, 9, 17, 12, 0, tzinfo=dt.timezone.utc)

FRANKFURTER = "api.frankfurter.dev"
EXCHANGERATE_HOST = "api.exchangerate.host"


class FakeClock:
    """Controllable replacement for ``datetime.now``."""

    def __init__(self, start: dt.datetime = WEDNESDAY_NOON):
        self.current = start

    def __call__(self) -> dt.datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += dt.timedelta(**kwargs)


class FixedRates:
    """Exchange-rate stand-in for calculator tests."""

    def __init__(self, rate: float = 5.0, quote: str = "BRL"):
        self.rate = rate
        self.quote = quote
        self.calls = 0

    def get_rate(self) -> float:
        self.calls += 1
        return self.rate

    def convert(self, usd_amount: float) -> float:
        return usd_amount * self.get_rate()

    def get_rate_info(self) -> RateInfo:
        return RateInfo(rate=self.get_rate(), source="test", date="2025-09-17", cached=True, age_ms=0)


class ProviderStub:
    """httpx handler answering per host, recording every request."""

    def __init__(self, responses: Dict[str, Callable[[httpx.Request], httpx.Response]]):
        self.responses = responses
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses[request.url.host](request)

    def hosts(self) -> List[str]:
        return [r.url.host for r in self.requests]


def rate_response(rate, date: str = "2025-09-17", quote: str = "BRL"):
    def _respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"amount": 1.0, "base": "USD", "date": date, "rates": {quote: rate}}
        )

    return _respond


def status_response(status: int):
    def _respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"error": "unavailable"})

    return _respond


def timeout_response(request: httpx.Request) -> httpx.Response:
    raise httpx.ReadTimeout("timed out", request=request)


class TrickleStream(httpx.SyncByteStream):
    """Response body that arrives a few bytes at a time."""

    def __init__(self, body: bytes, chunk_size: int = 4, delay: float = 0.1):
        self.body = body
        self.chunk_size = chunk_size
        self.delay = delay

    def __iter__(self):
        for start in range(0, len(self.body), self.chunk_size):
            time.sleep(self.delay)
            yield self.body[start : start + self.chunk_size]


def trickle_response(rate, delay: float = 0.1, quote: str = "BRL"):
    body = json.dumps({"date": "2025-09-17", "rates": {quote: rate}}).encode()

    def _respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrickleStream(body, delay=delay))

    return _respond
