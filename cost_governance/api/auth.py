import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException

from cost_governance.config.logger import get_logger
from cost_governance.config.settings import Settings
from cost_governance.dependencies import get_settings

LOGGER = get_logger("cost_governance.routes.auth")


def require_internal_key(
    x_internal_key: Optional[str] = Header(default=None, alias="X-Internal-Key"),
    settings: Settings = Depends(get_settings),
) -> None:
    if not _is_valid_internal_key(settings.internal_key, x_internal_key):
        LOGGER.warning("Internal key rejected")
        raise HTTPException(status_code=401, detail="Unauthorized")


def _is_valid_internal_key(expected: Optional[str], header_key: Optional[str]) -> bool:
    if not expected:
        return True
    if header_key is None:
        return False
    return hmac.compare_digest(header_key, expected)
