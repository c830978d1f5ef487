"""
Eligibility Package

Turns per-requirement check results into per-student verdicts.
"""

from src.eligibility.aggregator import EligibilityAggregator, aggregate_eligibility

__all__ = [
    "EligibilityAggregator",
    "aggregate_eligibility",
]
