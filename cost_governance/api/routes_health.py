from fastapi import APIRouter

from cost_governance.config.logger import get_logger

router = APIRouter()
LOGGER = get_logger("cost_governance.routes.health")


@router.get("/health")
async def health_check() -> dict:
    LOGGER.debug("Health check requested")
    return {"ok": True}
