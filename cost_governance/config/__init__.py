from .logger import get_logger, setup_logging
from .settings import FxSettings, PlanTier, ProviderConfig, Settings, load_settings

__all__ = [
    "get_logger",
    "setup_logging",
    "FxSettings",
    "PlanTier",
    "ProviderConfig",
    "Settings",
    "load_settings",
]
