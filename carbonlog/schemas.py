from pydantic import BaseModel, Field
from typing import Dict
from .models import ActivityCategory, EstimateSource


class EstimationResult(BaseModel):
    """The only thing the estimator hands back to callers."""
    carbon_impact: float = Field(alias="carbonImpact", ge=0, le=1000)
    category: ActivityCategory
    details: str = ""
    source: EstimateSource

    class Config:
        populate_by_name = True


class CarbonCalculateRequest(BaseModel):
    activity_description: str = Field(alias="activityDescription")

    class Config:
        populate_by_name = True


class FactorEntry(BaseModel):
    factor: float
    unit: str
    default_quantity: float = Field(alias="defaultQuantity")

    class Config:
        populate_by_name = True


class FactorTableResponse(BaseModel):
    transportation: Dict[str, FactorEntry]
    food: Dict[str, FactorEntry]
    energy: Dict[str, FactorEntry]
    shopping_estimate: float = Field(alias="shoppingEstimate")
    default_estimate: float = Field(alias="defaultEstimate")

    class Config:
        populate_by_name = True
