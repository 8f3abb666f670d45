"""
Retention Analysis.

Aggregate views over review history: how much is retained, whether that is
trending up or down, and which domains are lagging.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Mapping, Sequence

from orto_scheduler.core.enums import Domain

TREND_TOLERANCE = 0.1
WEAK_DOMAIN_THRESHOLD = 0.7


class RetentionTrend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


def calculate_retention_rate(outcomes: Iterable[bool]) -> float:
    """Share of correct recalls (0.0 without reviews)."""
    outcomes = list(outcomes)
    if not outcomes:
        return 0.0
    return sum(1 for correct in outcomes if correct) / len(outcomes)


def analyze_retention_trend(
    correct_rates: Sequence[float],
    tolerance: float = TREND_TOLERANCE,
) -> RetentionTrend:
    """
    Compare the last session's correct rate with the first.

    Args:
        correct_rates: Per-session correct rates, oldest first
        tolerance: Change that counts as a real trend

    Returns:
        RetentionTrend (STABLE with fewer than two sessions)
    """
    if len(correct_rates) < 2:
        return RetentionTrend.STABLE

    change = correct_rates[-1] - correct_rates[0]
    if change > tolerance:
        return RetentionTrend.IMPROVING
    if change < -tolerance:
        return RetentionTrend.DECLINING
    return RetentionTrend.STABLE


def identify_weak_domains(
    retention_by_domain: Mapping[Domain, float],
    threshold: float = WEAK_DOMAIN_THRESHOLD,
) -> list[Domain]:
    """Domains whose retention rate is below the threshold, weakest first."""
    weak = [domain for domain, rate in retention_by_domain.items() if rate < threshold]
    return sorted(weak, key=lambda domain: retention_by_domain[domain])


def retention_by_domain(reviews: Iterable[tuple[Domain, bool]]) -> dict[Domain, float]:
    """Retention rate per domain from (domain, correct) review outcomes."""
    grouped: dict[Domain, list[bool]] = {}
    for domain, correct in reviews:
        grouped.setdefault(domain, []).append(correct)
    return {domain: calculate_retention_rate(outcomes) for domain, outcomes in grouped.items()}
