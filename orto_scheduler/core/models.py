"""
Core Value Objects.

Every object here is a frozen dataclass. Scheduler functions never mutate
their inputs: they return new values built with `dataclasses.replace`, and
the caller hands the result to whatever persistence layer it uses.

Design:
- ReviewCard / ReviewResult: spaced repetition state and its audit record
- BandStatus / BandAdjustment: difficulty band state and decisions
- DomainStatus / GateProgress / RetentionCheck: domain progression
- ContentItem / DailyMix: catalog input and the composed session plan
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

from orto_scheduler.core.constants import SRS
from orto_scheduler.core.enums import Band, Domain, DomainState, ItemType


# =============================================================================
# SRS
# =============================================================================


@dataclass(frozen=True)
class ReviewCard:
    """A reviewable item scheduled by the SRS engine."""

    id: str
    domain: Domain
    item_type: ItemType
    content_id: str

    # Scheduling parameters
    ease_factor: float = SRS.initial_ease_factor
    stability: float = SRS.initial_stability  # 0.1-1.0, how durably retained
    interval: int = SRS.initial_interval  # days
    due_date: datetime = field(default_factory=datetime.now)
    difficulty: float = 0.5  # 0-1, intrinsic difficulty

    # History
    last_grade: int | None = None
    last_reviewed: datetime | None = None
    review_count: int = 0
    fail_count: int = 0
    is_leech: bool = False

    # Links
    competencies: tuple[str, ...] = ()
    goal_ids: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def is_new(self) -> bool:
        """Still governed by the fixed new-card ladder."""
        return self.review_count < SRS.new_card_steps

    def days_overdue(self, now: datetime) -> float:
        """Days past the due date (0 when not yet due)."""
        return max(0.0, (now - self.due_date).total_seconds() / 86400)


@dataclass(frozen=True)
class NextReview:
    """Outcome of the scheduling formula for one grade."""

    ease_factor: float
    interval: int
    due_date: datetime
    stability: float


@dataclass(frozen=True)
class ReviewResult:
    """Immutable audit record of one review."""

    card_id: str
    grade: int
    time_spent_seconds: float
    hints_used: int
    timestamp: datetime
    new_ease_factor: float
    new_interval: int
    new_due_date: datetime


# =============================================================================
# Bands
# =============================================================================


@dataclass(frozen=True)
class BandDefinition:
    """Static description of a difficulty band."""

    band: Band
    label: str
    description: str
    decision_points: int
    hints: str  # many | some | few | minimal
    pitfalls: str  # none | obvious | subtle | multiple
    time_constraint: str  # none | relaxed | moderate | tight
    support_level: str  # high | medium | low


@dataclass(frozen=True)
class PerformanceSnapshot:
    """Rolling performance used for band tuning."""

    correct_rate: float = 0.7  # 0-1
    hint_usage: float = 1.5  # average hints per item
    time_efficiency: float = 0.8  # 0-1
    confidence: float = 0.6  # 0-1


@dataclass(frozen=True)
class DayPerformance:
    """Performance of one study day, most recent day first in lists."""

    day: date
    correct_rate: float
    hint_usage: float = 0.0
    difficult: bool = False


@dataclass(frozen=True)
class BandHistoryEntry:
    band: Band
    date: datetime
    reason: str


@dataclass(frozen=True)
class BandStatus:
    """
    A learner's band state.

    Versioned: every transformation returns a copy with `version + 1`, so a
    caller can detect and reconcile concurrent updates of the same learner.
    """

    current_band: Band
    history: tuple[BandHistoryEntry, ...] = ()
    streak_at_band: int = 0  # days at the current band
    recent_performance: PerformanceSnapshot = field(default_factory=PerformanceSnapshot)
    last_promotion: datetime | None = None
    last_demotion: datetime | None = None
    version: int = 0
    updated_at: datetime | None = None


@dataclass(frozen=True)
class BandMetrics:
    """Performance figures that justified an adjustment."""

    streak: int
    avg_correct_rate: float
    avg_hint_usage: float


@dataclass(frozen=True)
class BandAdjustment:
    """A one-step band change decision."""

    from_band: Band
    to_band: Band
    reason: str
    date: datetime
    metrics: BandMetrics

    @property
    def is_promotion(self) -> bool:
        return self.to_band > self.from_band


@dataclass(frozen=True)
class RecoveryPlan:
    """Easier session recommended after sustained poor performance."""

    target_band: Band
    extra_hints: bool
    encouragement: str


# =============================================================================
# Domains
# =============================================================================


@dataclass(frozen=True)
class GateProgress:
    """The four-part domain gate."""

    mini_assessment_passed: bool = False
    mini_assessment_score: float | None = None
    mini_assessment_date: datetime | None = None

    retention_check_passed: bool = False
    retention_check_date: datetime | None = None

    srs_cards_stable: bool = False  # recent cards average stability >= floor
    avg_stability: float | None = None

    complication_case_passed: bool = False  # hardest-band complication case

    @property
    def all_passed(self) -> bool:
        return (
            self.mini_assessment_passed
            and self.retention_check_passed
            and self.srs_cards_stable
            and self.complication_case_passed
        )

    @property
    def missing(self) -> list[str]:
        """Names of the requirements still open."""
        names = []
        if not self.mini_assessment_passed:
            names.append("Mini-OSCE")
        if not self.retention_check_passed:
            names.append("Retention check")
        if not self.srs_cards_stable:
            names.append("SRS stability")
        if not self.complication_case_passed:
            names.append("Complication case")
        return names


@dataclass(frozen=True)
class DomainStatus:
    """Progress of a learner through one domain."""

    domain: Domain
    state: DomainState = DomainState.LOCKED
    items_completed: int = 0
    total_items: int = 0
    gate_progress: GateProgress = field(default_factory=GateProgress)
    unlocked_at: datetime | None = None
    completed_at: datetime | None = None
    next_suggested_domain: Domain | None = None

    @property
    def completion_ratio(self) -> float:
        if self.total_items <= 0:
            return 0.0
        return self.items_completed / self.total_items


@dataclass(frozen=True)
class RetentionCheck:
    """A delayed re-test of a sample of a domain's cards."""

    domain: Domain
    card_ids: tuple[str, ...]
    scheduled_for: datetime
    required_avg_stability: float
    completed_at: datetime | None = None
    actual_avg_stability: float | None = None


# =============================================================================
# Daily Mix
# =============================================================================


@dataclass(frozen=True)
class ContentItem:
    """Catalog entry: an opaque content id and the band it was written for."""

    id: str
    band: Band | None = None


@dataclass(frozen=True)
class MixSlice:
    """A block of content ids from one domain."""

    domain: Domain
    item_ids: tuple[str, ...]
    estimated_minutes: float
    reasoning: str = ""


@dataclass(frozen=True)
class ReviewSlice:
    """Due SRS cards for the session."""

    card_ids: tuple[str, ...]
    estimated_minutes: float


@dataclass(frozen=True)
class DailyMix:
    """One day's session plan. Derived state, recomputed daily."""

    date: datetime
    new_content: MixSlice
    interleaving: MixSlice | None
    srs_reviews: ReviewSlice
    total_estimated_minutes: float
    target_band: Band
    is_recovery_day: bool = False
    extra_hints: bool = False
    encouragement: str | None = None
    difficult_follow_up: bool = False
    weak_domains: tuple[Domain, ...] = ()

    @property
    def item_count(self) -> int:
        interleaved = len(self.interleaving.item_ids) if self.interleaving else 0
        return len(self.new_content.item_ids) + interleaved + len(self.srs_reviews.card_ids)
