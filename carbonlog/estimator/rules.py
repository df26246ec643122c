"""
Rule-based estimator: deterministic, offline, no I/O.

Category priority is fixed: transportation, food, energy, the shopping
keyword heuristic, then a generic default. The first rule that matches
decides the estimate. This stage always returns an estimate.
"""

import logging
from typing import Tuple

from ..models import ActivityCategory, EstimateSource, FoodType
from .factors import (
    RULES, EMISSION_FACTORS, DEFAULT_QUANTITIES,
    SHOPPING_KEYWORDS, SHOPPING_ESTIMATE, DEFAULT_ESTIMATE,
    PatternRule,
)

logger = logging.getLogger(__name__)


def format_quantity(value: float) -> str:
    """Plain decimal, no exponent, no trailing zeros: 10.0 -> '10', 0.25 -> '0.25'."""
    return ("%f" % value).rstrip("0").rstrip(".")


class RuleEngine:
    """Pattern-table estimator used when Gemini is unavailable."""

    def estimate(self, normalized: str) -> dict:
        """
        Estimate from already-normalized text (see normalize_description).

        Returns a raw estimate dict:
            {"carbonImpact", "category", "details", "source"}
        """
        for rule in RULES:
            match = rule.search(normalized)
            if match is None:
                continue
            quantity, shown = self._quantity(rule, match)
            return self._from_rule(rule, quantity, shown)

        if any(keyword in normalized for keyword in SHOPPING_KEYWORDS):
            return self.make_estimate(
                SHOPPING_ESTIMATE, ActivityCategory.SHOPPING,
                "Rule-based: General shopping estimate", EstimateSource.RULE,
            )

        return self.make_estimate(
            DEFAULT_ESTIMATE, ActivityCategory.OTHER,
            "Rule-based: General activity estimate", EstimateSource.DEFAULT,
        )

    def _quantity(self, rule: PatternRule, match) -> Tuple[float, str]:
        """
        Captured number if the pattern has one, else the subtype default.

        Returns (value, text for details). A captured number is shown as the
        user wrote it, even when it is too large to represent as a float.
        """
        if match.re.groups and match.group(1) is not None:
            captured = match.group(1)
            try:
                return float(captured), captured
            except ValueError:
                pass
        default = DEFAULT_QUANTITIES[rule.subtype]
        return default, format_quantity(default)

    def _from_rule(self, rule: PatternRule, quantity: float, shown: str) -> dict:
        factor = EMISSION_FACTORS[rule.subtype]
        category = rule.category

        if category == ActivityCategory.TRANSPORTATION:
            impact = factor * quantity
            details = "Rule-based: %s travel for %s km" % (rule.label, shown)
        elif category == ActivityCategory.FOOD:
            if rule.subtype == FoodType.MEAL:
                impact = factor  # flat average meal
            else:
                impact = factor * quantity
            details = "Rule-based: %s consumption (%s %s)" % (rule.label, shown, rule.unit)
        elif category == ActivityCategory.ENERGY:
            impact = factor * quantity
            details = "Rule-based: %s usage for %s hours" % (rule.label, shown)
        else:
            raise ValueError("No rule handling for category %s" % category.value)

        logger.debug("Rule match %s/%s quantity=%s", category.value, rule.subtype.value, shown)
        return self.make_estimate(impact, category, details, EstimateSource.RULE)

    def make_estimate(self, impact: float, category: ActivityCategory,
                      details: str, source: EstimateSource) -> dict:
        """Build a raw estimate dict. Impact rounded to 2 dp."""
        return {
            "carbonImpact": round(impact, 2),
            "category": category.value,
            "details": details,
            "source": source.value,
        }
