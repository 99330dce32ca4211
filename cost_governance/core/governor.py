from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from cost_governance.config.logger import get_logger
from cost_governance.config.settings import PlanTier
from cost_governance.db.models import CostEntry

from .pricing import CostCalculator, CostEstimate
from .usage_ledger import UsageLedger
from .weekly_quota import QuotaCheck, RecordResult, WeeklyQuotaTracker

LOGGER = get_logger("cost_governance.governor")


@dataclass(frozen=True)
class Preflight:
    estimate: CostEstimate
    check: QuotaCheck

    @property
    def allowed(self) -> bool:
        return self.check.allowed

    def as_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "estimate": self.estimate.as_dict(),
            "quota": self.check.as_dict(),
        }


@dataclass(frozen=True)
class Settlement:
    record: RecordResult
    entry: CostEntry


class UsageGovernor:
    """What a request handler calls around a paid model call.

    ``preflight`` before the call, ``settle`` after it. The two are not
    atomic; see ``WeeklyQuotaTracker``.
    """

    def __init__(
        self,
        calculator: CostCalculator,
        tracker: WeeklyQuotaTracker,
        ledger: UsageLedger,
        plans: Mapping[str, PlanTier],
    ):
        self.calculator = calculator
        self.tracker = tracker
        self.ledger = ledger
        self._plans = plans

    def limit_for(self, plan: str) -> int:
        try:
            return self._plans[plan.lower()].weekly_limit_minor_units
        except KeyError:
            raise ValueError(f"Unknown plan tier: {plan}") from None

    def preflight(
        self,
        identifier: str,
        plan: str,
        input_tokens: int,
        output_tokens: int,
        model: Optional[str] = None,
    ) -> Preflight:
        limit = self.limit_for(plan)
        estimate = self.calculator.estimate(input_tokens, output_tokens, model)
        check = self.tracker.check(identifier, estimate.minor_units, limit)
        return Preflight(estimate=estimate, check=check)

    def settle(
        self,
        identifier: str,
        plan: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        *,
        ip_address: str,
        user_id: Optional[str] = None,
        source: str = "ai",
        processing_time_ms: int = 0,
        model: Optional[str] = None,
    ) -> Settlement:
        limit = self.limit_for(plan)
        entry = self.ledger.track_operation(
            ip_address=ip_address,
            user_id=user_id,
            operation=operation,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            source=source,
            processing_time_ms=processing_time_ms,
            model=model,
        )
        record = self.tracker.record(identifier, operation, entry.cost_minor_units, limit)
        LOGGER.info(
            "Operation settled",
            extra={
                "identifier": identifier,
                "plan": plan,
                "operation": operation,
                "costMinorUnits": entry.cost_minor_units,
                "weeklyTotal": record.usage.total_cost_minor_units,
            },
        )
        return Settlement(record=record, entry=entry)
