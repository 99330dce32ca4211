from fastapi import APIRouter, Depends, HTTPException

from cost_governance.config.logger import get_logger
from cost_governance.core.errors import UnknownModelError
from cost_governance.core.fx import ExchangeRateProvider
from cost_governance.core.pricing import CostCalculator
from cost_governance.dependencies import get_cost_calculator, get_exchange_rates
from cost_governance.schemas.requests import ConvertRequest, EstimateRequest
from cost_governance.schemas.responses import (
    ConversionResponse,
    EstimateResponse,
    PricingResponse,
    RateInfoResponse,
)

from .auth import require_internal_key

router = APIRouter(prefix="/v1")
LOGGER = get_logger("cost_governance.routes.pricing")


@router.get("/pricing/current", response_model=PricingResponse)
def current_pricing(calculator: CostCalculator = Depends(get_cost_calculator)) -> dict:
    return calculator.current_pricing()


@router.post("/pricing/estimate", response_model=EstimateResponse)
def estimate_cost(
    payload: EstimateRequest,
    calculator: CostCalculator = Depends(get_cost_calculator),
) -> dict:
    try:
        estimate = calculator.estimate(payload.inputTokens, payload.outputTokens, payload.model)
    except UnknownModelError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return estimate.as_dict()


@router.get("/currency/rate", response_model=RateInfoResponse)
def rate_info(rates: ExchangeRateProvider = Depends(get_exchange_rates)) -> dict:
    return rates.get_rate_info().as_dict()


@router.post(
    "/currency/refresh",
    response_model=RateInfoResponse,
    dependencies=[Depends(require_internal_key)],
)
def refresh_rate(rates: ExchangeRateProvider = Depends(get_exchange_rates)) -> dict:
    info = rates.describe(rates.force_refresh())
    LOGGER.info("Exchange rate refreshed by operator", extra=info.as_dict())
    return info.as_dict()


@router.post("/currency/convert", response_model=ConversionResponse)
def convert(
    payload: ConvertRequest,
    rates: ExchangeRateProvider = Depends(get_exchange_rates),
) -> dict:
    info = rates.get_rate_info()
    return {
        "usd": payload.amount,
        "local": round(payload.amount * info.rate, 4),
        "currency": rates.quote,
        "exchangeRate": info.as_dict(),
    }
