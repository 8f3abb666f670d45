"""
Session Processor.

Runs the end-of-session data flow across the scheduling core:

    item outcomes
      -> SRS engine (grade, create or update cards)
      -> band controller (rolling performance, promotion/demotion)
      -> domain gate (items, complication cases, stability, retention checks)
      -> completion of the primary domain and unlock of the next

The learner state goes in as a value and comes out as a new value; the
caller persists it. Sessions of one learner must be processed one at a time.
"""

from __future__ import annotations

import random
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Mapping, Optional, Sequence

from loguru import logger

from orto_scheduler.adaptive.band_controller import (
    apply_band_adjustment,
    calculate_band_adjustment,
    create_initial_band_status,
    has_two_difficult_days_in_row,
    is_difficult_day,
    record_session_day,
)
from orto_scheduler.adaptive.domain_progression import (
    DomainCompletion,
    DomainStatuses,
    advance_to_gate,
    complete_domain_and_unlock_next,
    create_initial_domain_statuses,
    create_retention_check,
    is_gate_requirement_met,
    record_complication_case,
    record_items_completed,
    record_retention_check,
    record_retention_result,
    update_domain_srs_stability,
)
from orto_scheduler.core.constants import (
    ALL_DOMAINS,
    BAND_THRESHOLDS,
    DOMAIN_SELECTION_WEIGHTS,
    GATE_THRESHOLDS,
    SRS,
    BandThresholds,
    DomainSelectionWeights,
    GateThresholds,
    SRSConstants,
)
from orto_scheduler.core.enums import Band, Domain, DomainState, EducationLevel, ItemType
from orto_scheduler.core.errors import InvariantViolation
from orto_scheduler.core.models import (
    BandAdjustment,
    BandStatus,
    DayPerformance,
    PerformanceSnapshot,
    RetentionCheck,
    ReviewCard,
    ReviewResult,
)
from orto_scheduler.study.card_manager import create_review_card, difficulty_from_band
from orto_scheduler.study.srs_engine import behavior_to_grade, detect_leeches, process_review

# Daily performance entries kept on the learner state
RECENT_DAY_HISTORY = 7

DEFAULT_EXPECTED_SECONDS = 120.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ItemOutcome:
    """Telemetry for one answered item."""

    content_id: str
    domain: Domain
    correct: bool
    time_spent_seconds: float
    hints_used: int = 0
    expected_seconds: float = DEFAULT_EXPECTED_SECONDS
    confidence: float = 0.5  # 0-1, self-reported or inferred
    item_type: ItemType = ItemType.QUIZ
    band: Optional[Band] = None
    is_complication_case: bool = False

    @property
    def time_ratio(self) -> float:
        """Actual time / expected time (1.0 without a baseline)."""
        if self.expected_seconds <= 0:
            return 1.0
        return self.time_spent_seconds / self.expected_seconds

    @property
    def time_efficiency(self) -> float:
        if self.time_spent_seconds <= 0:
            return 1.0
        return min(1.0, self.expected_seconds / self.time_spent_seconds)


@dataclass(frozen=True)
class DaySummary:
    """Aggregated performance of one session."""

    day: date
    items: int
    correct_rate: float
    hint_usage: float  # average hints per item
    time_efficiency: float
    confidence: float
    difficult: bool

    def to_snapshot(self) -> PerformanceSnapshot:
        return PerformanceSnapshot(
            correct_rate=self.correct_rate,
            hint_usage=self.hint_usage,
            time_efficiency=self.time_efficiency,
            confidence=self.confidence,
        )

    def to_day_performance(self) -> DayPerformance:
        return DayPerformance(
            day=self.day,
            correct_rate=self.correct_rate,
            hint_usage=self.hint_usage,
            difficult=self.difficult,
        )


@dataclass(frozen=True)
class LearnerState:
    """Everything the scheduler knows about one learner."""

    primary_domain: Domain
    band_status: BandStatus
    domain_statuses: DomainStatuses
    cards: tuple[ReviewCard, ...] = ()
    recent_days: tuple[DayPerformance, ...] = ()  # most recent first
    retention_checks: tuple[RetentionCheck, ...] = ()
    user_domains: tuple[Domain, ...] = ()
    is_recovery_mode: bool = False

    @property
    def completed_domains(self) -> list[Domain]:
        return [d for d, s in self.domain_statuses.items() if s.state == DomainState.COMPLETED]

    @classmethod
    def new(
        cls,
        education_level: EducationLevel | str,
        primary_domain: Domain,
        total_items: Mapping[Domain, int],
        all_domains: Sequence[Domain] = ALL_DOMAINS,
        user_domains: Sequence[Domain] = (),
        now: Optional[datetime] = None,
    ) -> LearnerState:
        """
        State of a learner who just finished onboarding.

        `total_items` is the catalog size per domain. A domain whose size is
        missing can never reach its gate, since its completion ratio stays 0.
        """
        now = now or datetime.now()
        return cls(
            primary_domain=primary_domain,
            band_status=create_initial_band_status(education_level, now),
            domain_statuses=create_initial_domain_statuses(primary_domain, all_domains, total_items, now),
            user_domains=tuple(user_domains),
        )


@dataclass(frozen=True)
class SessionUpdate:
    """Result of processing one session."""

    state: LearnerState
    summary: Optional[DaySummary]
    review_results: tuple[ReviewResult, ...] = ()
    new_card_ids: tuple[str, ...] = ()
    adjustment: Optional[BandAdjustment] = None
    recovery_recommended: bool = False
    completion: Optional[DomainCompletion] = None
    new_leech_ids: tuple[str, ...] = ()
    events: tuple[str, ...] = ()


# =============================================================================
# Processing
# =============================================================================


def summarize_session(
    outcomes: Sequence[ItemOutcome],
    now: Optional[datetime] = None,
    thresholds: BandThresholds = BAND_THRESHOLDS,
) -> DaySummary:
    """
    Aggregate item outcomes into one day of performance.

    Raises:
        InvariantViolation: If there are no outcomes
    """
    if not outcomes:
        raise InvariantViolation("Cannot summarize a session without outcomes")

    now = now or datetime.now()
    n = len(outcomes)
    correct_rate = sum(1 for o in outcomes if o.correct) / n
    return DaySummary(
        day=now.date(),
        items=n,
        correct_rate=correct_rate,
        hint_usage=sum(o.hints_used for o in outcomes) / n,
        time_efficiency=sum(o.time_efficiency for o in outcomes) / n,
        confidence=sum(o.confidence for o in outcomes) / n,
        difficult=is_difficult_day(correct_rate, thresholds),
    )


def _merge_day(
    recent_days: Sequence[DayPerformance],
    today: DayPerformance,
) -> tuple[DayPerformance, ...]:
    older = [day for day in recent_days if day.day != today.day]
    return (today, *older)[:RECENT_DAY_HISTORY]


def _review_items(
    cards: Sequence[ReviewCard],
    outcomes: Sequence[ItemOutcome],
    now: datetime,
    srs: SRSConstants,
) -> tuple[list[ReviewCard], list[ReviewResult], list[ReviewCard]]:
    by_content = {card.content_id: card for card in cards}
    order = [card.content_id for card in cards]
    results: list[ReviewResult] = []
    created: list[ReviewCard] = []

    for outcome in outcomes:
        card = by_content.get(outcome.content_id)
        if card is None:
            card = create_review_card(
                outcome.content_id,
                outcome.domain,
                item_type=outcome.item_type,
                difficulty=difficulty_from_band(outcome.band),
                now=now,
                constants=srs,
            )
            created.append(card)
            order.append(card.content_id)

        grade = behavior_to_grade(
            outcome.correct,
            outcome.hints_used,
            outcome.time_ratio,
            outcome.confidence,
        )
        updated, result = process_review(
            card,
            grade,
            outcome.time_spent_seconds,
            outcome.hints_used,
            now=now,
            constants=srs,
        )
        by_content[outcome.content_id] = updated
        results.append(result)

    return [by_content[content_id] for content_id in order], results, created


def _update_domains(
    state: LearnerState,
    cards: Sequence[ReviewCard],
    outcomes: Sequence[ItemOutcome],
    created: Sequence[ReviewCard],
    now: datetime,
    rng: random.Random,
    gate: GateThresholds,
    events: list[str],
) -> tuple[DomainStatuses, tuple[RetentionCheck, ...]]:
    statuses = dict(state.domain_statuses)

    for domain, count in Counter(card.domain for card in created).items():
        if domain in statuses:
            statuses[domain] = record_items_completed(statuses[domain], count)
        else:
            logger.warning(f"Outcome for untracked domain {domain.value} ignored by the gate")

    for outcome in outcomes:
        if outcome.is_complication_case and outcome.band is not None and outcome.domain in statuses:
            statuses[outcome.domain] = record_complication_case(
                statuses[outcome.domain], outcome.band, outcome.correct, gate
            )

    # Resolve retention checks that have come due
    checks: list[RetentionCheck] = []
    for check in state.retention_checks:
        if check.completed_at is None and check.scheduled_for <= now and check.domain in statuses:
            check = record_retention_result(check, cards, now)
            statuses[check.domain] = record_retention_check(statuses[check.domain], check)
            events.append(
                f"Retention check for {check.domain.value}: "
                f"{check.actual_avg_stability:.2f} (needs {check.required_avg_stability:.2f})"
            )
        checks.append(check)

    pending = {check.domain for check in checks if check.completed_at is None}
    for domain, status in list(statuses.items()):
        if status.state not in (DomainState.ACTIVE, DomainState.GATED):
            continue
        status = update_domain_srs_stability(status, cards, gate)
        advanced = advance_to_gate(status, gate)
        if advanced.state != status.state:
            events.append(f"Domain {domain.value} is ready for the Mini-OSCE")
        if (
            advanced.state == DomainState.GATED
            and not advanced.gate_progress.retention_check_passed
            and domain not in pending
        ):
            check = create_retention_check(domain, cards, now=now, rng=rng, thresholds=gate)
            checks.append(check)
            events.append(f"Retention check for {domain.value} scheduled for {check.scheduled_for:%Y-%m-%d}")
        statuses[domain] = advanced

    return statuses, tuple(checks)


def process_session(
    state: LearnerState,
    outcomes: Sequence[ItemOutcome],
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    srs: SRSConstants = SRS,
    band_thresholds: BandThresholds = BAND_THRESHOLDS,
    gate_thresholds: GateThresholds = GATE_THRESHOLDS,
    weights: DomainSelectionWeights = DOMAIN_SELECTION_WEIGHTS,
) -> SessionUpdate:
    """
    Fold a completed session into the learner state.

    Args:
        state: Learner state before the session
        outcomes: Per-item telemetry in answer order
        now: Session end time
        rng: Random source for retention samples and domain selection
        srs: SRS parameters
        band_thresholds: Band promotion/demotion thresholds
        gate_thresholds: Domain gate thresholds
        weights: Next-domain selection weights

    Returns:
        SessionUpdate with the new state and what changed
    """
    now = now or datetime.now()
    rng = rng or random.Random()

    if not outcomes:
        return SessionUpdate(state=state, summary=None)

    events: list[str] = []
    summary = summarize_session(outcomes, now, band_thresholds)

    # 1. SRS
    cards, results, created = _review_items(state.cards, outcomes, now, srs)
    previous_leeches = {card.id for card in detect_leeches(state.cards)}
    new_leeches = [card for card in detect_leeches(cards) if card.id not in previous_leeches]
    if new_leeches:
        logger.warning(f"{len(new_leeches)} new leech card(s) need focused review")

    # 2. Band
    recent_days = _merge_day(state.recent_days, summary.to_day_performance())
    band_status = record_session_day(state.band_status, summary.to_snapshot(), now, band_thresholds)
    adjustment = calculate_band_adjustment(band_status, recent_days, now, band_thresholds)
    if adjustment is not None:
        band_status = apply_band_adjustment(band_status, adjustment)
        events.append(f"Band {adjustment.from_band} -> {adjustment.to_band}: {adjustment.reason}")

    recovery = has_two_difficult_days_in_row(recent_days)
    if recovery and not state.is_recovery_mode:
        logger.info("Two difficult days in a row, enabling recovery mode")
    elif not recovery and state.is_recovery_mode:
        logger.info("Performance improved, leaving recovery mode")

    # 3. Domains
    statuses, checks = _update_domains(
        state, cards, outcomes, created, now, rng, gate_thresholds, events
    )

    primary = state.primary_domain
    completion = None
    primary_status = statuses.get(primary)
    if (
        primary_status is not None
        and primary_status.state != DomainState.COMPLETED
        and is_gate_requirement_met(primary_status, cards, gate_thresholds)
    ):
        completion = complete_domain_and_unlock_next(
            primary, statuses, list(statuses), now=now, rng=rng, weights=weights,
            cards=cards, thresholds=gate_thresholds,
        )
        statuses = completion.statuses
        if completion.next_domain is not None:
            primary = completion.next_domain
        events.append(
            f"Domain {state.primary_domain.value} completed"
            + (f", next: {completion.next_domain.value}" if completion.next_domain else ", all domains done")
        )

    new_state = replace(
        state,
        primary_domain=primary,
        band_status=band_status,
        domain_statuses=statuses,
        cards=tuple(cards),
        recent_days=recent_days,
        retention_checks=checks,
        is_recovery_mode=recovery,
    )

    logger.info(
        f"Session processed: {summary.items} items, {summary.correct_rate:.0%} correct, "
        f"{len(created)} new cards, band {band_status.current_band}"
    )

    return SessionUpdate(
        state=new_state,
        summary=summary,
        review_results=tuple(results),
        new_card_ids=tuple(card.id for card in created),
        adjustment=adjustment,
        recovery_recommended=recovery,
        completion=completion,
        new_leech_ids=tuple(card.id for card in new_leeches),
        events=tuple(events),
    )
