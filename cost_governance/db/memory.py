import datetime as dt
import threading
import uuid
from dataclasses import fields as dataclass_fields
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from cost_governance.config.logger import get_logger
from cost_governance.core.errors import RecordNotFound, StoreError

from .models import CostEntry, DailyUsage, WeeklyUsage
from .store import UsageStore

LOGGER = get_logger("cost_governance.store.memory")

_WEEKLY_FIELDS = {f.name for f in dataclass_fields(WeeklyUsage)} - {"id", "identifier", "week_start"}


class InMemoryUsageStore(UsageStore):
    """Process-local store for development and tests.

    One lock serialises every mutation; rows are copied on the way in and
    out so callers never hold a reference to stored state.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._weekly: Dict[Tuple[str, dt.datetime], WeeklyUsage] = {}
        self._weekly_ids: Dict[str, Tuple[str, dt.datetime]] = {}
        self._entries: List[CostEntry] = []
        self._daily: Dict[Tuple[str, dt.date], DailyUsage] = {}

    def find_weekly_usage(self, identifier: str, week_start: dt.datetime) -> Optional[WeeklyUsage]:
        with self._lock:
            row = self._weekly.get((identifier, week_start))
            return row.copy() if row else None

    def insert_weekly_usage(self, row: WeeklyUsage) -> WeeklyUsage:
        with self._lock:
            return self._insert_weekly(row).copy()

    def update_weekly_usage(self, usage_id: str, fields: Dict[str, Any]) -> WeeklyUsage:
        unknown = set(fields) - _WEEKLY_FIELDS
        if unknown:
            raise StoreError(f"Cannot update weekly usage fields: {sorted(unknown)}")
        with self._lock:
            key = self._weekly_ids.get(usage_id)
            if key is None:
                raise RecordNotFound(f"Weekly usage {usage_id} not found")
            updated = replace(self._weekly[key], **fields)
            self._weekly[key] = updated.copy()
            return updated.copy()

    def increment_weekly_usage(
        self,
        identifier: str,
        week_start: dt.datetime,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> WeeklyUsage:
        with self._lock:
            row = self._weekly.get((identifier, week_start))
            if row is None:
                row = self._insert_weekly(WeeklyUsage(identifier=identifier, week_start=week_start))
            row.total_cost_minor_units += cost_minor_units
            row.operation_count += 1
            row.operation_breakdown[operation] = row.operation_breakdown.get(operation, 0) + 1
            row.cost_breakdown[operation] = row.cost_breakdown.get(operation, 0) + cost_minor_units
            row.last_operation_at = at
            return row.copy()

    def get_weekly_usage_history(self, identifier: str, week_count: int) -> List[WeeklyUsage]:
        with self._lock:
            rows = [row.copy() for (ident, _), row in self._weekly.items() if ident == identifier]
        rows.sort(key=lambda r: r.week_start, reverse=True)
        return rows[: max(0, week_count)]

    def insert_cost_entry(self, entry: CostEntry) -> CostEntry:
        stored = replace(entry, id=entry.id or str(uuid.uuid4()))
        with self._lock:
            self._entries.append(stored)
        return stored

    def list_cost_entries(
        self,
        identifier: str,
        since: Optional[dt.datetime] = None,
        limit: int = 100,
    ) -> List[CostEntry]:
        with self._lock:
            entries = [
                e
                for e in self._entries
                if e.identifier == identifier and (since is None or e.created_at >= since)
            ]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        return entries[:limit]

    def find_daily_usage(self, identifier: str, usage_date: dt.date) -> Optional[DailyUsage]:
        with self._lock:
            row = self._daily.get((identifier, usage_date))
            return row.copy() if row else None

    def increment_daily_usage(
        self,
        identifier: str,
        usage_date: dt.date,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> DailyUsage:
        with self._lock:
            key = (identifier, usage_date)
            row = self._daily.get(key)
            if row is None:
                row = DailyUsage(identifier=identifier, usage_date=usage_date, id=str(uuid.uuid4()))
                self._daily[key] = row
            row.total_operations += 1
            row.total_cost_minor_units += cost_minor_units
            row.operation_breakdown[operation] = row.operation_breakdown.get(operation, 0) + 1
            row.cost_breakdown[operation] = row.cost_breakdown.get(operation, 0) + cost_minor_units
            row.updated_at = at
            return row.copy()

    def list_daily_usage(self, identifier: str, start: dt.date, end: dt.date) -> List[DailyUsage]:
        with self._lock:
            rows = [
                row.copy()
                for (ident, day), row in self._daily.items()
                if ident == identifier and start <= day <= end
            ]
        rows.sort(key=lambda r: r.usage_date)
        return rows

    def _insert_weekly(self, row: WeeklyUsage) -> WeeklyUsage:
        key = (row.identifier, row.week_start)
        if key in self._weekly:
            raise StoreError(f"Weekly usage already exists for {row.identifier} @ {row.week_start.isoformat()}")
        stored = row.copy()
        stored.id = stored.id or str(uuid.uuid4())
        self._weekly[key] = stored
        self._weekly_ids[stored.id] = key
        LOGGER.debug(
            "Weekly usage row created",
            extra={"identifier": row.identifier, "weekStart": row.week_start.isoformat()},
        )
        return stored
