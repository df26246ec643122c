"""
Carbon estimate endpoints.

POST /api/carbon/calculate: estimate one activity description.
GET  /api/carbon/factors: the rule engine emission factor tables.

Storage of results is the caller's job; nothing is persisted here.
"""

from fastapi import APIRouter, Depends

from .. import schemas
from ..estimator import CarbonImpactEstimator, get_estimator
from ..estimator.factors import factor_table

router = APIRouter(prefix="/carbon", tags=["carbon"])


@router.post("/calculate", response_model=schemas.EstimationResult)
def calculate(request: schemas.CarbonCalculateRequest,
              estimator: CarbonImpactEstimator = Depends(get_estimator)):
    """
    Estimate an activity. Falls back to rules if Gemini is unavailable.

    A missing or non-string activityDescription is rejected with 422 by
    request validation. An empty string is a valid description and gets the
    generic default estimate rather than an error.
    """
    return estimator.estimate(request.activity_description)


@router.get("/factors", response_model=schemas.FactorTableResponse)
def factors():
    return factor_table()
