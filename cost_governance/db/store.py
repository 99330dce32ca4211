import abc
import datetime as dt
from typing import Any, Dict, List, Optional

from .models import CostEntry, DailyUsage, WeeklyUsage


class UsageStore(abc.ABC):
    """Persistence operations the quota tracker and ledger rely on.

    Implementations must make ``increment_weekly_usage`` and
    ``increment_daily_usage`` atomic per row: two concurrent increments for
    the same key both land. Failures propagate; nothing is retried or dropped
    silently.
    """

    @abc.abstractmethod
    def find_weekly_usage(self, identifier: str, week_start: dt.datetime) -> Optional[WeeklyUsage]:
        ...

    @abc.abstractmethod
    def insert_weekly_usage(self, row: WeeklyUsage) -> WeeklyUsage:
        ...

    @abc.abstractmethod
    def update_weekly_usage(self, usage_id: str, fields: Dict[str, Any]) -> WeeklyUsage:
        """Overwrite the given fields of an existing row.

        Raises:
            RecordNotFound: If no row has ``usage_id``.
        """

    @abc.abstractmethod
    def increment_weekly_usage(
        self,
        identifier: str,
        week_start: dt.datetime,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> WeeklyUsage:
        """Add one operation to the week's row, creating it if absent.

        Returns the row as it stands after this increment.
        """

    @abc.abstractmethod
    def get_weekly_usage_history(self, identifier: str, week_count: int) -> List[WeeklyUsage]:
        """Up to ``week_count`` rows, most recent week first."""

    @abc.abstractmethod
    def insert_cost_entry(self, entry: CostEntry) -> CostEntry:
        ...

    @abc.abstractmethod
    def list_cost_entries(
        self,
        identifier: str,
        since: Optional[dt.datetime] = None,
        limit: int = 100,
    ) -> List[CostEntry]:
        """Entries for ``identifier``, newest first."""

    @abc.abstractmethod
    def find_daily_usage(self, identifier: str, usage_date: dt.date) -> Optional[DailyUsage]:
        ...

    @abc.abstractmethod
    def increment_daily_usage(
        self,
        identifier: str,
        usage_date: dt.date,
        operation: str,
        cost_minor_units: int,
        at: dt.datetime,
    ) -> DailyUsage:
        ...

    @abc.abstractmethod
    def list_daily_usage(self, identifier: str, start: dt.date, end: dt.date) -> List[DailyUsage]:
        """Daily rows with ``start <= usage_date <= end``, oldest first."""
