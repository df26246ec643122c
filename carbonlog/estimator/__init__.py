"""
Carbon impact estimation engine.

Gemini when configured, deterministic pattern rules otherwise.
Always returns an EstimationResult, never raises.
"""

from .engine import CarbonImpactEstimator, calculate_carbon_impact, get_estimator

__all__ = ["CarbonImpactEstimator", "calculate_carbon_impact", "get_estimator"]
