"""
Hybrid estimator: Gemini first, rule engine as the guaranteed fallback.

    description
        -> GeminiEstimator    (source=model, if it answers with a valid estimate)
        -> RuleEngine         (source=rule or default, always answers)
        -> sanitize_result    (public contract)

No retries and no loops. estimate() never raises.
"""

import logging
import threading
from typing import Optional

from ..models import ActivityCategory, EstimateSource
from ..schemas import EstimationResult
from .factors import DEFAULT_ESTIMATE
from .gemini_client import GeminiEstimator
from .normalizer import normalize_description
from .rules import RuleEngine
from .validator import sanitize_result

logger = logging.getLogger(__name__)


class CarbonImpactEstimator:
    """Turns one activity description into one EstimationResult."""

    def __init__(self, gemini: Optional[GeminiEstimator] = None,
                 rules: Optional[RuleEngine] = None):
        self.gemini = gemini if gemini is not None else GeminiEstimator()
        self.rules = rules if rules is not None else RuleEngine()

    def estimate(self, description, timeout: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None) -> EstimationResult:
        """
        Estimate the carbon impact of a free-text activity.

        Args:
            description: Raw user text. Not modified.
            timeout: Seconds allowed for the Gemini call.
            cancel_event: Set to abandon the Gemini call and use rules.
        """
        text = description if isinstance(description, str) else ""

        try:
            model_estimate = self.gemini.estimate(text.strip(), timeout=timeout,
                                                  cancel_event=cancel_event)
            if model_estimate is not None:
                return sanitize_result(model_estimate, EstimateSource.MODEL)
        except Exception:
            logger.exception("Model estimate step failed — using rules")

        logger.debug("Falling back to rule-based calculation")
        return self._estimate_with_rules(text)

    def _estimate_with_rules(self, text: str) -> EstimationResult:
        try:
            raw = self.rules.estimate(normalize_description(text))
            return sanitize_result(raw, raw.get("source", EstimateSource.RULE))
        except Exception:
            logger.exception("Rule-based estimate failed — using generic default")
            return sanitize_result({
                "carbonImpact": DEFAULT_ESTIMATE,
                "category": ActivityCategory.OTHER,
                "details": "Rule-based: General activity estimate",
            }, EstimateSource.DEFAULT)


_default_estimator: Optional[CarbonImpactEstimator] = None


def get_estimator() -> CarbonImpactEstimator:
    """Process-wide estimator built from settings on first use."""
    global _default_estimator
    if _default_estimator is None:
        _default_estimator = CarbonImpactEstimator()
    return _default_estimator


def calculate_carbon_impact(description, timeout: Optional[float] = None,
                            cancel_event: Optional[threading.Event] = None) -> EstimationResult:
    """Estimate one activity with the process-wide estimator."""
    return get_estimator().estimate(description, timeout=timeout, cancel_event=cancel_event)
