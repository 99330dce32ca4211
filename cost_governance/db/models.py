"""Records persisted by a ``UsageStore``."""

import datetime as dt
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

COST_SOURCES = ("ai", "cache", "fallback")


@dataclass
class WeeklyUsage:
    """Aggregate spend for one identifier in one calendar week.

    ``total_cost_minor_units`` always equals ``sum(cost_breakdown.values())``
    and ``operation_count`` equals ``sum(operation_breakdown.values())``.
    """

    identifier: str
    week_start: dt.datetime
    total_cost_minor_units: int = 0
    operation_count: int = 0
    operation_breakdown: Dict[str, int] = field(default_factory=dict)
    cost_breakdown: Dict[str, int] = field(default_factory=dict)
    last_operation_at: Optional[dt.datetime] = None
    id: Optional[str] = None

    def copy(self) -> "WeeklyUsage":
        return replace(
            self,
            operation_breakdown=dict(self.operation_breakdown),
            cost_breakdown=dict(self.cost_breakdown),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "weekStart": self.week_start,
            "totalCostMinorUnits": self.total_cost_minor_units,
            "operationCount": self.operation_count,
            "operationBreakdown": dict(self.operation_breakdown),
            "costBreakdown": dict(self.cost_breakdown),
            "lastOperationAt": self.last_operation_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], id: Optional[str] = None) -> "WeeklyUsage":
        return cls(
            id=id or data.get("id"),
            identifier=data["identifier"],
            week_start=data["weekStart"],
            total_cost_minor_units=int(data.get("totalCostMinorUnits") or 0),
            operation_count=int(data.get("operationCount") or 0),
            operation_breakdown={k: int(v) for k, v in (data.get("operationBreakdown") or {}).items()},
            cost_breakdown={k: int(v) for k, v in (data.get("costBreakdown") or {}).items()},
            last_operation_at=data.get("lastOperationAt"),
        )


@dataclass(frozen=True)
class CostEntry:
    """Immutable record of one billed AI operation."""

    identifier: str
    ip_address: str
    operation: str
    input_tokens: int
    output_tokens: int
    cost_minor_units: int
    model: str
    source: str
    processing_time_ms: int
    created_at: dt.datetime
    user_id: Optional[str] = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "identifier": self.identifier,
            "userId": self.user_id,
            "ipAddress": self.ip_address,
            "operation": self.operation,
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "costMinorUnits": self.cost_minor_units,
            "model": self.model,
            "source": self.source,
            "processingTimeMs": self.processing_time_ms,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], id: Optional[str] = None) -> "CostEntry":
        return cls(
            id=id or data.get("id"),
            identifier=data["identifier"],
            user_id=data.get("userId"),
            ip_address=data.get("ipAddress") or "",
            operation=data["operation"],
            input_tokens=int(data.get("inputTokens") or 0),
            output_tokens=int(data.get("outputTokens") or 0),
            cost_minor_units=int(data.get("costMinorUnits") or 0),
            model=data.get("model") or "",
            source=data.get("source") or "ai",
            processing_time_ms=int(data.get("processingTimeMs") or 0),
            created_at=data["createdAt"],
        )


@dataclass
class DailyUsage:
    identifier: str
    usage_date: dt.date
    total_operations: int = 0
    total_cost_minor_units: int = 0
    operation_breakdown: Dict[str, int] = field(default_factory=dict)
    cost_breakdown: Dict[str, int] = field(default_factory=dict)
    updated_at: Optional[dt.datetime] = None
    id: Optional[str] = None

    def copy(self) -> "DailyUsage":
        return replace(
            self,
            operation_breakdown=dict(self.operation_breakdown),
            cost_breakdown=dict(self.cost_breakdown),
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any], id: Optional[str] = None) -> "DailyUsage":
        usage_date = data["usageDate"]
        if isinstance(usage_date, str):
            usage_date = dt.date.fromisoformat(usage_date)
        return cls(
            id=id or data.get("id"),
            identifier=data["identifier"],
            usage_date=usage_date,
            total_operations=int(data.get("totalOperations") or 0),
            total_cost_minor_units=int(data.get("totalCostMinorUnits") or 0),
            operation_breakdown={k: int(v) for k, v in (data.get("operationBreakdown") or {}).items()},
            cost_breakdown={k: int(v) for k, v in (data.get("costBreakdown") or {}).items()},
            updated_at=data.get("updatedAt"),
        )
