"""Weekly spending quota per identifier (user id or client IP).

Each identifier gets one aggregate row per calendar week, keyed by the Monday
00:00 that opens the week in the quota time zone. A new week simply starts a
new row; unused budget does not roll over and no reset write ever happens.

``check`` and ``record`` are deliberately separate: callers check before the
paid call and record its actual cost afterwards. Two concurrent requests can
both pass ``check`` and push the week past its limit; only the counters
themselves are protected, through the store's atomic increment.
"""

import datetime as dt
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from cost_governance.config.logger import get_logger
from cost_governance.db.models import WeeklyUsage
from cost_governance.db.store import UsageStore

from .periods import days_until, week_end, week_start
from .pricing import CostCalculator, format_minor_units

LOGGER = get_logger("cost_governance.weekly_quota")

Clock = Callable[[], dt.datetime]


@dataclass(frozen=True)
class QuotaCheck:
    allowed: bool
    current_usage: int
    limit: int
    remaining: int
    remaining_percent: float
    week_start: dt.datetime
    week_end: dt.datetime
    days_until_reset: int
    estimated_cost: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "currentUsage": self.current_usage,
            "limit": self.limit,
            "remaining": self.remaining,
            "remainingPercent": self.remaining_percent,
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "daysUntilReset": self.days_until_reset,
            "estimatedCost": self.estimated_cost,
        }


@dataclass(frozen=True)
class UsageStats:
    current_usage: int
    limit: int
    remaining: int
    usage_percent: float
    remaining_percent: float
    operation_count: int
    operation_breakdown: Dict[str, int]
    cost_breakdown: Dict[str, int]
    week_start: dt.datetime
    week_end: dt.datetime
    days_until_reset: int
    formatted: Dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "currentUsage": self.current_usage,
            "limit": self.limit,
            "remaining": self.remaining,
            "usagePercent": self.usage_percent,
            "remainingPercent": self.remaining_percent,
            "operationCount": self.operation_count,
            "operationBreakdown": dict(self.operation_breakdown),
            "costBreakdown": dict(self.cost_breakdown),
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "daysUntilReset": self.days_until_reset,
            "formatted": dict(self.formatted),
        }


@dataclass(frozen=True)
class RecordResult:
    success: bool
    usage: WeeklyUsage
    stats: Optional[UsageStats]
    cost: int


@dataclass(frozen=True)
class WeekSummary:
    week_start: dt.datetime
    week_end: dt.datetime
    total_cost: int
    operation_count: int
    cost_display: str
    utilization_percent: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "weekStart": self.week_start.isoformat(),
            "weekEnd": self.week_end.isoformat(),
            "totalCost": self.total_cost,
            "operationCount": self.operation_count,
            "costDisplay": self.cost_display,
            "utilizationPercent": self.utilization_percent,
        }


@dataclass(frozen=True)
class UsageHistory:
    weeks: List[WeekSummary]
    average_weekly_cost: float
    peak_usage_week: Optional[WeekSummary]
    total_cost_period: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "weeks": [w.as_dict() for w in self.weeks],
            "averageWeeklyCost": self.average_weekly_cost,
            "peakUsageWeek": self.peak_usage_week.as_dict() if self.peak_usage_week else None,
            "totalCostPeriod": self.total_cost_period,
        }


def usage_percent(usage: int, limit: int) -> float:
    if limit <= 0:
        return 100.0 if usage > 0 else 0.0
    return min(100.0, usage / limit * 100)


class WeeklyQuotaTracker:
    def __init__(
        self,
        store: UsageStore,
        calculator: Optional[CostCalculator] = None,
        timezone: str = "UTC",
        currency_symbol: str = "R$",
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._calculator = calculator
        self._tz = ZoneInfo(timezone)
        self._symbol = currency_symbol
        self._clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))

    def now(self) -> dt.datetime:
        return self._clock().astimezone(self._tz)

    def current_week_start(self) -> dt.datetime:
        return week_start(self.now())

    def check(self, identifier: str, estimated_cost: int, limit: int) -> QuotaCheck:
        """Would spending ``estimated_cost`` more keep ``identifier`` within ``limit``?

        Read-only: a missing row counts as zero usage and is not created.
        """
        if estimated_cost < 0:
            raise ValueError("estimated_cost must be >= 0")
        now = self.now()
        start = week_start(now)
        end = week_end(start)
        row = self._store.find_weekly_usage(identifier, start)
        current = row.total_cost_minor_units if row else 0

        result = QuotaCheck(
            allowed=current + estimated_cost <= limit,
            current_usage=current,
            limit=limit,
            remaining=max(0, limit - current),
            remaining_percent=max(0.0, 100.0 - usage_percent(current, limit)),
            week_start=start,
            week_end=end,
            days_until_reset=days_until(end, now),
            estimated_cost=estimated_cost,
        )
        if not result.allowed:
            LOGGER.info(
                "Weekly quota would be exceeded",
                extra={
                    "identifier": identifier,
                    "currentUsage": current,
                    "estimatedCost": estimated_cost,
                    "limit": limit,
                },
            )
        return result

    def record(
        self,
        identifier: str,
        operation: str,
        cost: int,
        limit: Optional[int] = None,
    ) -> RecordResult:
        """Add an operation's actual cost to this week's row.

        Never enforces the limit. ``limit`` only feeds the returned stats.
        Store failures propagate.
        """
        if cost < 0:
            raise ValueError("cost must be >= 0")
        if not operation:
            raise ValueError("operation is required")
        now = self.now()
        start = week_start(now)
        usage = self._store.increment_weekly_usage(identifier, start, operation, cost, now)
        LOGGER.info(
            "Weekly usage recorded",
            extra={
                "identifier": identifier,
                "operation": operation,
                "cost": cost,
                "totalCost": usage.total_cost_minor_units,
                "operationCount": usage.operation_count,
            },
        )
        stats = self._build_stats(usage, limit, now) if limit is not None else None
        return RecordResult(success=True, usage=usage, stats=stats, cost=cost)

    def record_with_tokens(
        self,
        identifier: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        limit: Optional[int] = None,
        model: Optional[str] = None,
    ) -> RecordResult:
        if self._calculator is None:
            raise RuntimeError("record_with_tokens needs a CostCalculator")
        estimate = self._calculator.estimate(input_tokens, output_tokens, model)
        return self.record(identifier, operation, estimate.minor_units, limit)

    def stats(self, identifier: str, limit: int) -> UsageStats:
        now = self.now()
        start = week_start(now)
        row = self._store.find_weekly_usage(identifier, start)
        if row is None:
            row = WeeklyUsage(identifier=identifier, week_start=start)
        return self._build_stats(row, limit, now)

    def history(self, identifier: str, weeks: int, limit: int) -> UsageHistory:
        rows = self._store.get_weekly_usage_history(identifier, weeks)
        summaries = [
            WeekSummary(
                week_start=row.week_start,
                week_end=week_end(row.week_start),
                total_cost=row.total_cost_minor_units,
                operation_count=row.operation_count,
                cost_display=format_minor_units(row.total_cost_minor_units, self._symbol),
                utilization_percent=(row.total_cost_minor_units / limit * 100) if limit > 0 else 0.0,
            )
            for row in rows
        ]
        total = sum(s.total_cost for s in summaries)
        peak = None
        for summary in summaries:
            if peak is None or summary.total_cost > peak.total_cost:
                peak = summary
        return UsageHistory(
            weeks=summaries,
            average_weekly_cost=total / len(summaries) if summaries else 0.0,
            peak_usage_week=peak,
            total_cost_period=total,
        )

    def _build_stats(self, row: WeeklyUsage, limit: int, now: dt.datetime) -> UsageStats:
        start = week_start(now)
        end = week_end(start)
        current = row.total_cost_minor_units
        remaining = max(0, limit - current)
        used_percent = usage_percent(current, limit)
        return UsageStats(
            current_usage=current,
            limit=limit,
            remaining=remaining,
            usage_percent=used_percent,
            remaining_percent=max(0.0, 100.0 - used_percent),
            operation_count=row.operation_count,
            operation_breakdown=dict(row.operation_breakdown),
            cost_breakdown=dict(row.cost_breakdown),
            week_start=start,
            week_end=end,
            days_until_reset=days_until(end, now),
            formatted={
                "current": format_minor_units(current, self._symbol),
                "limit": format_minor_units(limit, self._symbol),
                "remaining": format_minor_units(remaining, self._symbol),
            },
        )
