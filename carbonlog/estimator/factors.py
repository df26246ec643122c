"""
Static estimation tables: emission factors, default quantities, pattern rules.

Built once at import and never mutated. The mappings are read-only proxies
and the rule collections are tuples, so concurrent requests share them
without locking.

Factors are illustrative kg CO2e values, not life-cycle-assessment data.
"""

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional, Tuple, Union

from ..models import ActivityCategory, TransportMode, FoodType, EnergyUse

Subtype = Union[TransportMode, FoodType, EnergyUse]

# Quantity capture: "10", "2.5"
_NUM = r"(\d+(?:\.\d+)?)"
_HOURS = r"\s*(?:hour|hr|h)"

# kg CO2e per unit
EMISSION_FACTORS = MappingProxyType({
    # per km
    TransportMode.CAR: 0.192,
    TransportMode.BUS: 0.105,
    TransportMode.TRAIN: 0.041,
    TransportMode.PLANE: 0.255,
    TransportMode.BIKE: 0.0,
    TransportMode.WALK: 0.0,
    # per kg, except MEAL which is a flat average-meal figure
    FoodType.MEAL: 3.5,
    FoodType.BEEF: 27.0,
    FoodType.CHICKEN: 6.9,
    FoodType.PORK: 12.1,
    FoodType.FISH: 6.1,
    FoodType.VEGETABLES: 2.0,
    FoodType.FRUITS: 1.1,
    # per hour
    EnergyUse.ELECTRICITY: 0.309,
    EnergyUse.HEATING: 0.25,
    EnergyUse.AIR_CONDITIONING: 0.35,
})

# Assumed quantity when a rule matches without a number in the text
DEFAULT_QUANTITIES = MappingProxyType({
    TransportMode.CAR: 10.0,
    TransportMode.BUS: 10.0,
    TransportMode.TRAIN: 20.0,
    TransportMode.PLANE: 500.0,
    TransportMode.BIKE: 5.0,
    TransportMode.WALK: 2.0,
    FoodType.MEAL: 1.0,
    FoodType.BEEF: 0.2,
    FoodType.CHICKEN: 0.2,
    FoodType.PORK: 0.2,
    FoodType.FISH: 0.2,
    FoodType.VEGETABLES: 0.3,
    FoodType.FRUITS: 0.2,
    EnergyUse.ELECTRICITY: 5.0,
    EnergyUse.HEATING: 3.0,
    EnergyUse.AIR_CONDITIONING: 4.0,
})

SHOPPING_KEYWORDS = ("bought", "purchased", "shopping")
SHOPPING_ESTIMATE = 8.0
DEFAULT_ESTIMATE = 2.0


@dataclass(frozen=True)
class PatternRule:
    """One subtype's regexes. Tried in order; the first hit wins."""
    category: ActivityCategory
    subtype: Subtype
    unit: str
    patterns: Tuple[re.Pattern, ...]

    def search(self, text: str) -> Optional[re.Match]:
        for pattern in self.patterns:
            match = pattern.search(text)
            if match:
                return match
        return None

    @property
    def label(self) -> str:
        """Human-readable subtype name for details strings."""
        return self.subtype.value.replace("_", " ")


def _rule(category, subtype, unit, *patterns) -> PatternRule:
    return PatternRule(
        category=category,
        subtype=subtype,
        unit=unit,
        patterns=tuple(re.compile(p) for p in patterns),
    )


_T = ActivityCategory.TRANSPORTATION
_F = ActivityCategory.FOOD
_E = ActivityCategory.ENERGY

# Quantity-capturing patterns come before the bare keyword ones.
TRANSPORT_RULES = (
    _rule(_T, TransportMode.CAR, "km",
          r"drove\s+" + _NUM + r"\s*km",
          r"driving\s+" + _NUM + r"\s*km",
          r"car\s+" + _NUM + r"\s*km",
          r"\b(?:drove|driving)\b",
          r"\bby\s+car\b"),
    _rule(_T, TransportMode.BUS, "km",
          r"bus\s+(?:for\s+)?" + _NUM + r"\s*km",
          r"\b(?:took|rode|caught)\s+(?:a|the)\s+bus\b"),
    _rule(_T, TransportMode.TRAIN, "km",
          r"train\s+(?:for\s+)?" + _NUM + r"\s*km",
          r"\b(?:took|rode|caught)\s+(?:a|the)\s+train\b"),
    _rule(_T, TransportMode.PLANE, "km",
          r"flew\s+" + _NUM + r"\s*km",
          r"flight\s+" + _NUM + r"\s*km",
          r"plane\s+" + _NUM + r"\s*km",
          r"\bflew\b",
          r"\b(?:took|caught)\s+(?:a|the)\s+(?:flight|plane)\b"),
    _rule(_T, TransportMode.BIKE, "km",
          r"biked\s+" + _NUM + r"\s*km",
          r"cycled\s+" + _NUM + r"\s*km",
          r"bicycle\s+" + _NUM + r"\s*km",
          r"\b(?:biked|cycled)\b",
          r"\bby\s+bike\b"),
    _rule(_T, TransportMode.WALK, "km",
          r"walked\s+" + _NUM + r"\s*km",
          r"walking\s+" + _NUM + r"\s*km",
          r"\bwalked\b"),
)

FOOD_RULES = (
    _rule(_F, FoodType.MEAL, "meal",
          r"(?:ate|had|consumed)\s+(?:a|an)\s+meal"),
    _rule(_F, FoodType.BEEF, "kg", r"beef", r"steak", r"hamburger"),
    _rule(_F, FoodType.CHICKEN, "kg", r"chicken", r"poultry"),
    _rule(_F, FoodType.PORK, "kg", r"pork", r"\bham\b", r"bacon"),
    _rule(_F, FoodType.FISH, "kg", r"fish", r"seafood", r"salmon", r"tuna"),
    _rule(_F, FoodType.VEGETABLES, "kg", r"vegetables?", r"salad", r"plant-based"),
    _rule(_F, FoodType.FRUITS, "kg", r"fruits?", r"apple", r"banana", r"berries"),
)

ENERGY_RULES = (
    _rule(_E, EnergyUse.ELECTRICITY, "hours",
          r"used\s+electricity\s+(?:for\s+)?" + _NUM + _HOURS,
          r"power\s+" + _NUM + _HOURS,
          r"\bused\s+electricity\b"),
    _rule(_E, EnergyUse.HEATING, "hours",
          r"heating\s+(?:for\s+)?" + _NUM + _HOURS,
          r"heated\s+(?:for\s+)?" + _NUM + _HOURS,
          r"\b(?:heating|heated)\b"),
    _rule(_E, EnergyUse.AIR_CONDITIONING, "hours",
          r"air\s*conditioning\s+(?:for\s+)?" + _NUM + _HOURS,
          r"a/c\s+(?:for\s+)?" + _NUM + _HOURS,
          r"\bair\s*conditioning\b",
          r"\ba/c\b"),
)

# Category priority: transportation, then food, then energy
RULES = TRANSPORT_RULES + FOOD_RULES + ENERGY_RULES


def _check_tables():
    """Every subtype needs a factor, a default quantity and exactly one rule."""
    ruled = [rule.subtype for rule in RULES]
    problems = []
    for enum_cls in (TransportMode, FoodType, EnergyUse):
        for subtype in enum_cls:
            if subtype not in EMISSION_FACTORS:
                problems.append("no emission factor for %s" % subtype.value)
            if subtype not in DEFAULT_QUANTITIES:
                problems.append("no default quantity for %s" % subtype.value)
            if ruled.count(subtype) != 1:
                problems.append("%d rules for %s" % (ruled.count(subtype), subtype.value))
    if problems:
        raise RuntimeError("Estimation tables are inconsistent: " + "; ".join(problems))


_check_tables()


def factor_table() -> dict:
    """Factors and defaults grouped by category, for display."""
    grouped = {}
    for rule in RULES:
        grouped.setdefault(rule.category.value, {})[rule.subtype.value] = {
            "factor": EMISSION_FACTORS[rule.subtype],
            "unit": rule.unit,
            "default_quantity": DEFAULT_QUANTITIES[rule.subtype],
        }
    grouped["shopping_estimate"] = SHOPPING_ESTIMATE
    grouped["default_estimate"] = DEFAULT_ESTIMATE
    return grouped
