from fastapi import APIRouter, Depends, HTTPException, Query

from cost_governance.config.logger import get_logger
from cost_governance.core.errors import UnknownModelError
from cost_governance.core.governor import UsageGovernor
from cost_governance.dependencies import get_governor
from cost_governance.schemas.requests import QuotaCheckRequest, QuotaRecordRequest
from cost_governance.schemas.responses import (
    PreflightResponse,
    RecordResponse,
    UsageHistoryResponse,
    UsageStatsResponse,
)

from .auth import require_internal_key

router = APIRouter(prefix="/v1/quota", dependencies=[Depends(require_internal_key)])
LOGGER = get_logger("cost_governance.routes.quota")


def _limit(governor: UsageGovernor, plan: str) -> int:
    try:
        return governor.limit_for(plan)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/{identifier}/stats", response_model=UsageStatsResponse)
def usage_stats(
    identifier: str,
    plan: str = "free",
    governor: UsageGovernor = Depends(get_governor),
) -> dict:
    return governor.tracker.stats(identifier, _limit(governor, plan)).as_dict()


@router.post("/{identifier}/check", response_model=PreflightResponse)
def check_quota(
    identifier: str,
    payload: QuotaCheckRequest,
    governor: UsageGovernor = Depends(get_governor),
) -> dict:
    _limit(governor, payload.plan)
    try:
        preflight = governor.preflight(
            identifier,
            payload.plan,
            payload.estimatedInputTokens,
            payload.estimatedOutputTokens,
            payload.model,
        )
    except UnknownModelError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return preflight.as_dict()


@router.post("/{identifier}/record", response_model=RecordResponse)
def record_usage(
    identifier: str,
    payload: QuotaRecordRequest,
    governor: UsageGovernor = Depends(get_governor),
) -> dict:
    limit = _limit(governor, payload.plan)
    result = governor.tracker.record(identifier, payload.operation, payload.costMinorUnits, limit)
    return {"success": result.success, "usageStats": result.stats.as_dict()}


@router.get("/{identifier}/history", response_model=UsageHistoryResponse)
def usage_history(
    identifier: str,
    plan: str = "free",
    weeks: int = Query(4, ge=1, le=52),
    governor: UsageGovernor = Depends(get_governor),
) -> dict:
    return governor.tracker.history(identifier, weeks, _limit(governor, plan)).as_dict()
