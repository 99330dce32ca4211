from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class RateInfoResponse(BaseModel):
    rate: float
    source: str
    date: str
    cached: bool
    ageMs: int


class ConversionResponse(BaseModel):
    usd: float
    local: float
    currency: str
    exchangeRate: RateInfoResponse


class EstimateBreakdown(BaseModel):
    inputMinorUnits: int
    outputMinorUnits: int


class EstimateResponse(BaseModel):
    model: str
    inputTokens: int
    outputTokens: int
    usd: float
    local: float
    minorUnits: int
    breakdown: EstimateBreakdown
    rate: float
    currency: str
    formatted: str


class QuotaCheckResponse(BaseModel):
    allowed: bool
    currentUsage: int
    limit: int
    remaining: int
    remainingPercent: float
    weekStart: str
    weekEnd: str
    daysUntilReset: int
    estimatedCost: int


class PreflightResponse(BaseModel):
    allowed: bool
    estimate: EstimateResponse
    quota: QuotaCheckResponse


class UsageStatsResponse(BaseModel):
    currentUsage: int
    limit: int
    remaining: int
    usagePercent: float
    remainingPercent: float
    operationCount: int
    operationBreakdown: Dict[str, int]
    costBreakdown: Dict[str, int]
    weekStart: str
    weekEnd: str
    daysUntilReset: int
    formatted: Dict[str, str]


class RecordResponse(BaseModel):
    success: bool
    usageStats: UsageStatsResponse


class WeekSummaryResponse(BaseModel):
    weekStart: str
    weekEnd: str
    totalCost: int
    operationCount: int
    costDisplay: str
    utilizationPercent: float


class UsageHistoryResponse(BaseModel):
    weeks: List[WeekSummaryResponse]
    averageWeeklyCost: float
    peakUsageWeek: Optional[WeekSummaryResponse]
    totalCostPeriod: int


class PricingResponse(BaseModel):
    model: str
    usdPrices: Dict[str, float]
    localPrices: Dict[str, Any]
    rateInfo: RateInfoResponse
    examples: List[Dict[str, Any]]
