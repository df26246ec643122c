"""
Last pass before a result leaves the estimator.

Whatever an upstream stage produced, the caller gets a well-formed
EstimationResult: known category, impact inside [MIN_IMPACT, MAX_IMPACT],
string details, a valid source tag.
"""

import logging
import math

from ..models import ActivityCategory, EstimateSource, VALID_CATEGORIES
from ..schemas import EstimationResult

logger = logging.getLogger(__name__)

MIN_IMPACT = 0.0
MAX_IMPACT = 1000.0


def clamp_impact(value: float) -> float:
    """Clamp into [MIN_IMPACT, MAX_IMPACT]."""
    return max(MIN_IMPACT, min(MAX_IMPACT, value))


def _coerce_impact(value) -> float:
    if isinstance(value, bool):
        return MIN_IMPACT
    try:
        impact = float(value)
    except OverflowError:
        return MAX_IMPACT if value > 0 else MIN_IMPACT
    except (TypeError, ValueError):
        return MIN_IMPACT
    if math.isnan(impact):
        return MIN_IMPACT
    # clamp maps +inf to MAX_IMPACT and -inf to MIN_IMPACT
    return clamp_impact(impact)


def sanitize_result(raw: dict, source=EstimateSource.DEFAULT) -> EstimationResult:
    """
    Build the public result from a raw estimate dict.

    Args:
        raw: {"carbonImpact", "category", "details"}; any field may be
             missing or the wrong type.
        source: EstimateSource (or its string value) of the producing stage.
    """
    if not isinstance(raw, dict):
        raw = {}

    category = raw.get("category")
    if isinstance(category, ActivityCategory):
        category = category.value
    if category not in VALID_CATEGORIES:
        logger.warning("Unknown category %r in estimate — using 'other'", category)
        category = ActivityCategory.OTHER.value

    details = raw.get("details")
    if details is None:
        details = ""
    elif not isinstance(details, str):
        details = str(details)

    try:
        source = EstimateSource(source)
    except ValueError:
        source = EstimateSource.DEFAULT

    return EstimationResult(
        carbon_impact=_coerce_impact(raw.get("carbonImpact")),
        category=ActivityCategory(category),
        details=details,
        source=source,
    )
