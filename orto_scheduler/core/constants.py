"""
Scheduler Constants.

All tunable thresholds of the scheduling core in one place. Each group is a
frozen dataclass with evidence-based defaults; `from_settings` builds a group
from the application Settings so deployments can override values through the
environment without touching the algorithms.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from orto_scheduler.core.enums import Band, Domain
from orto_scheduler.core.errors import ConfigurationError


# =============================================================================
# SRS
# =============================================================================


@dataclass(frozen=True)
class SRSConstants:
    """Spaced repetition parameters (SM-2 inspired)."""

    initial_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    max_ease_factor: float = 2.5
    initial_interval: int = 1  # days
    initial_stability: float = 0.3
    min_stability: float = 0.1
    max_stability: float = 1.0
    new_card_intervals: tuple[int, ...] = (1, 3, 7)  # days, indexed by review_count
    leech_threshold: int = 8  # failures before a card is flagged

    # Stability deltas per grade bucket
    stability_gain_strong: float = 0.15  # grade >= 4
    stability_gain_good: float = 0.08  # grade == 3
    stability_gain_weak: float = 0.03  # grade == 2
    stability_loss: float = 0.15  # grade < 2
    durable_recall_bonus: float = 0.05  # grade >= 3 after an interval of 7+ days
    durable_recall_interval: int = 7

    # Urgency scoring
    overdue_cap_days: float = 7.0
    primary_domain_recency: float = 1.0
    recent_domain_recency: float = 0.7
    other_domain_recency: float = 0.5

    @property
    def new_card_steps(self) -> int:
        """Number of reviews governed by the fixed ladder."""
        return len(self.new_card_intervals)

    @classmethod
    def from_settings(cls, settings: Any) -> SRSConstants:
        return cls(
            initial_ease_factor=settings.srs_initial_ease_factor,
            min_ease_factor=settings.srs_min_ease_factor,
            max_ease_factor=settings.srs_max_ease_factor,
            new_card_intervals=tuple(settings.srs_new_card_intervals),
            leech_threshold=settings.srs_leech_threshold,
        )


# =============================================================================
# Band Controller
# =============================================================================


@dataclass(frozen=True)
class BandThresholds:
    """Band promotion/demotion thresholds. All comparisons are inclusive."""

    # Promotion (move up)
    promotion_streak: int = 3  # days at the current band
    promotion_correct_rate: float = 0.75
    promotion_max_hint_usage: float = 1.5  # average hints per item

    # Demotion (move down)
    demotion_difficult_days: int = 2
    demotion_correct_rate: float = 0.5

    # A day counts as difficult below this correct rate
    difficult_day_correct_rate: float = 0.6

    # Number of most recent days inspected per adjustment
    adjustment_window_days: int = 3

    # EMA smoothing factor for rolling performance
    performance_smoothing: float = 0.3

    @classmethod
    def from_settings(cls, settings: Any) -> BandThresholds:
        return cls(
            promotion_streak=settings.band_promotion_streak,
            promotion_correct_rate=settings.band_promotion_correct_rate,
            promotion_max_hint_usage=settings.band_promotion_max_hint_usage,
            demotion_difficult_days=settings.band_demotion_difficult_days,
            demotion_correct_rate=settings.band_demotion_correct_rate,
            performance_smoothing=settings.band_performance_smoothing,
        )


# =============================================================================
# Domain Gate
# =============================================================================


@dataclass(frozen=True)
class GateThresholds:
    """Domain gate requirements."""

    mini_assessment_passing_score: float = 0.8
    retention_min_stability: float = 0.7
    retention_min_cards: int = 10
    retention_sample_size: int = 10
    retention_delay_days: int = 7
    stability_window: int = 10  # most recently reviewed cards inspected
    gate_completion_ratio: float = 0.7  # content share before the capstone
    complication_case_min_band: Band = Band.E

    @classmethod
    def from_settings(cls, settings: Any) -> GateThresholds:
        return cls(
            mini_assessment_passing_score=settings.gate_mini_assessment_passing_score,
            retention_min_stability=settings.gate_retention_min_stability,
            retention_min_cards=settings.gate_retention_min_cards,
            retention_delay_days=settings.gate_retention_delay_days,
            complication_case_min_band=Band.parse(settings.gate_complication_case_min_band),
        )


# =============================================================================
# Daily Mix
# =============================================================================


def _check_split(name: str, parts: tuple[float, ...]) -> None:
    if any(p < 0 for p in parts):
        raise ConfigurationError(f"{name} must not contain negative shares: {parts}")
    if not math.isclose(sum(parts), 1.0, abs_tol=1e-6):
        raise ConfigurationError(f"{name} must sum to 1.0, got {sum(parts):.3f}")


@dataclass(frozen=True)
class DailyMixRatios:
    """Time split of a daily session."""

    new_content: float = 0.6  # new material in the primary domain
    interleaving: float = 0.2  # neighbour or recall domain
    srs_review: float = 0.2  # due spaced-repetition cards
    minutes_per_item: float = 2.0  # converts a time budget into an item count

    def __post_init__(self):
        _check_split("DailyMixRatios", (self.new_content, self.interleaving, self.srs_review))
        if self.minutes_per_item <= 0:
            raise ConfigurationError("minutes_per_item must be positive")

    @classmethod
    def from_settings(cls, settings: Any) -> DailyMixRatios:
        return cls(
            new_content=settings.mix_new_content_ratio,
            interleaving=settings.mix_interleaving_ratio,
            srs_review=settings.mix_srs_review_ratio,
            minutes_per_item=settings.minutes_per_item,
        )


@dataclass(frozen=True)
class DomainSelectionWeights:
    """
    Probability mass for picking the next domain.

    neighbor: an open domain adjacent to the current one
    other: any other open domain
    recall: a completed domain, for long-term recall
    """

    neighbor: float = 0.7
    other: float = 0.2
    recall: float = 0.1

    def __post_init__(self):
        _check_split("DomainSelectionWeights", (self.neighbor, self.other, self.recall))

    @classmethod
    def from_settings(cls, settings: Any) -> DomainSelectionWeights:
        return cls(
            neighbor=settings.domain_weight_neighbor,
            other=settings.domain_weight_other,
            recall=settings.domain_weight_recall,
        )


# =============================================================================
# Static topic map
# =============================================================================

DOMAIN_NEIGHBORS: dict[Domain, tuple[Domain, ...]] = {
    Domain.TRAUMA: (Domain.SHOULDER_ELBOW, Domain.FOOT_ANKLE, Domain.KNEE),
    Domain.SHOULDER_ELBOW: (Domain.HAND_WRIST, Domain.SPORTS),
    Domain.HAND_WRIST: (Domain.SHOULDER_ELBOW, Domain.SPORTS),
    Domain.HIP: (Domain.KNEE, Domain.SPINE),
    Domain.KNEE: (Domain.HIP, Domain.SPORTS, Domain.FOOT_ANKLE),
    Domain.FOOT_ANKLE: (Domain.SPORTS, Domain.TRAUMA),
    Domain.SPINE: (Domain.HIP, Domain.TUMOR),
    Domain.SPORTS: (Domain.SHOULDER_ELBOW, Domain.KNEE, Domain.FOOT_ANKLE),
    Domain.TUMOR: (Domain.SPINE, Domain.HIP),
}

ALL_DOMAINS: tuple[Domain, ...] = tuple(Domain)


# Module-level defaults used when callers pass no override
SRS = SRSConstants()
BAND_THRESHOLDS = BandThresholds()
GATE_THRESHOLDS = GateThresholds()
DAILY_MIX_RATIOS = DailyMixRatios()
DOMAIN_SELECTION_WEIGHTS = DomainSelectionWeights()
