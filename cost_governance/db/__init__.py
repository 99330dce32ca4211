from .memory import InMemoryUsageStore
from .models import COST_SOURCES, CostEntry, DailyUsage, WeeklyUsage
from .store import UsageStore

__all__ = [
    "InMemoryUsageStore",
    "COST_SOURCES",
    "CostEntry",
    "DailyUsage",
    "WeeklyUsage",
    "UsageStore",
]
