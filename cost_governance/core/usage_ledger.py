import datetime as dt
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

from cost_governance.config.logger import get_logger
from cost_governance.db.models import COST_SOURCES, CostEntry, DailyUsage
from cost_governance.db.store import UsageStore

from .pricing import CostCalculator

LOGGER = get_logger("cost_governance.usage_ledger")

Clock = Callable[[], dt.datetime]


@dataclass(frozen=True)
class CostSummary:
    identifier: str
    days: int
    total_cost: int
    total_operations: int
    operation_breakdown: Dict[str, int]
    cost_breakdown: Dict[str, int]
    average_daily_cost: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "days": self.days,
            "totalCost": self.total_cost,
            "totalOperations": self.total_operations,
            "operationBreakdown": dict(self.operation_breakdown),
            "costBreakdown": dict(self.cost_breakdown),
            "averageDailyCost": self.average_daily_cost,
        }


class UsageLedger:
    """Append-only cost entries plus per-day roll-ups.

    Independent of the weekly quota: it records what was billed, not what is
    allowed. Days follow the calendar of ``timezone``.
    """

    def __init__(
        self,
        store: UsageStore,
        calculator: Optional[CostCalculator] = None,
        timezone: str = "UTC",
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._calculator = calculator
        self._tz = ZoneInfo(timezone)
        self._clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))

    def now(self) -> dt.datetime:
        return self._clock().astimezone(self._tz)

    def append(
        self,
        *,
        ip_address: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        cost_minor_units: int,
        model: str,
        source: str = "ai",
        processing_time_ms: int = 0,
        user_id: Optional[str] = None,
    ) -> CostEntry:
        if source not in COST_SOURCES:
            raise ValueError(f"source must be one of {COST_SOURCES}, got {source!r}")
        if min(input_tokens, output_tokens, cost_minor_units, processing_time_ms) < 0:
            raise ValueError("token counts, cost and processing time must be >= 0")
        if not operation:
            raise ValueError("operation is required")

        now = self.now()
        identifier = user_id or ip_address
        entry = self._store.insert_cost_entry(
            CostEntry(
                identifier=identifier,
                user_id=user_id,
                ip_address=ip_address,
                operation=operation,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_minor_units=cost_minor_units,
                model=model,
                source=source,
                processing_time_ms=processing_time_ms,
                created_at=now,
            )
        )
        self._store.increment_daily_usage(identifier, now.date(), operation, cost_minor_units, now)
        LOGGER.info(
            "Cost entry appended",
            extra={
                "entryId": entry.id,
                "identifier": identifier,
                "operation": operation,
                "costMinorUnits": cost_minor_units,
                "source": source,
            },
        )
        return entry

    def track_operation(
        self,
        *,
        ip_address: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        source: str = "ai",
        processing_time_ms: int = 0,
        user_id: Optional[str] = None,
        model: Optional[str] = None,
    ) -> CostEntry:
        """Price the tokens with the calculator, then ``append``.

        Cache hits and fallbacks spent no tokens upstream and are logged at
        zero cost.
        """
        if self._calculator is None:
            raise RuntimeError("track_operation needs a CostCalculator")
        model = model or self._calculator.default_model
        if source == "ai":
            cost = self._calculator.estimate(input_tokens, output_tokens, model).minor_units
        else:
            cost = 0
        return self.append(
            ip_address=ip_address,
            operation=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_minor_units=cost,
            model=model,
            source=source,
            processing_time_ms=processing_time_ms,
            user_id=user_id,
        )

    def daily_usage(self, identifier: str, day: Optional[dt.date] = None) -> Optional[DailyUsage]:
        return self._store.find_daily_usage(identifier, day or self.now().date())

    def cost_summary(self, identifier: str, days: int = 30) -> CostSummary:
        if days <= 0:
            raise ValueError("days must be > 0")
        end = self.now().date()
        start = end - dt.timedelta(days=days)
        rows = self._store.list_daily_usage(identifier, start, end)

        operations: Dict[str, int] = {}
        costs: Dict[str, int] = {}
        for row in rows:
            for name, count in row.operation_breakdown.items():
                operations[name] = operations.get(name, 0) + count
            for name, cost in row.cost_breakdown.items():
                costs[name] = costs.get(name, 0) + cost
        total_cost = sum(r.total_cost_minor_units for r in rows)
        return CostSummary(
            identifier=identifier,
            days=days,
            total_cost=total_cost,
            total_operations=sum(r.total_operations for r in rows),
            operation_breakdown=operations,
            cost_breakdown=costs,
            average_daily_cost=round(total_cost / days),
        )
