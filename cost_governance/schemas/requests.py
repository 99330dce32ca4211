from typing import Optional

from pydantic import BaseModel, Field


class EstimateRequest(BaseModel):
    inputTokens: int = Field(..., ge=0, description="Prompt tokens")
    outputTokens: int = Field(..., ge=0, description="Completion tokens")
    model: Optional[str] = Field(None, description="Pricing model (defaults to the billing model)")


class ConvertRequest(BaseModel):
    amount: float = Field(..., ge=0, description="Amount in USD")


class QuotaCheckRequest(BaseModel):
    plan: str = "free"
    estimatedInputTokens: int = Field(1000, ge=0)
    estimatedOutputTokens: int = Field(500, ge=0)
    model: Optional[str] = None


class QuotaRecordRequest(BaseModel):
    plan: str = "free"
    operation: str = Field(..., min_length=1)
    costMinorUnits: int = Field(..., ge=0, description="Actual cost in minor currency units")
