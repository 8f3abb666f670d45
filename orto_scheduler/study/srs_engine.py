"""
SRS Engine - SM-2 inspired spaced repetition for review cards.

Implements:
- Next interval, ease factor and stability for a graded review
- Leech detection (repeated failures)
- Due-card selection and urgency-based prioritisation
- Conversion of session telemetry into a 0-5 grade

Grade Scale:
0 - No idea, wrong response
1 - Wrong, but learned something from the hints
2 - Wrong, but close
3 - Correct, but struggled
4 - Correct, with at most one hint
5 - Correct, fast and without hints

All functions are pure: cards are returned as new values, never mutated.
"""

from __future__ import annotations

import math
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from loguru import logger

from orto_scheduler.core.constants import SRS, SRSConstants
from orto_scheduler.core.enums import Domain
from orto_scheduler.core.errors import InvariantViolation
from orto_scheduler.core.models import NextReview, ReviewCard, ReviewResult

MIN_GRADE = 0
MAX_GRADE = 5
PASSING_GRADE = 3


def _check_grade(grade: int) -> None:
    if isinstance(grade, bool) or not MIN_GRADE <= grade <= MAX_GRADE:
        raise InvariantViolation(f"SRS grade must be within 0-5, got {grade!r}")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# =============================================================================
# Scheduling
# =============================================================================


def calculate_next_review(
    card: ReviewCard,
    grade: int,
    now: Optional[datetime] = None,
    constants: SRSConstants = SRS,
) -> NextReview:
    """
    Calculate next interval, ease factor and stability for a grade.

    Algorithm:
    1. EF' = clamp(EF + (0.1 - (5 - g) * (0.08 + (5 - g) * 0.02)))
    2. New cards (review_count < 3) follow the fixed ladder [1, 3, 7];
       any failing grade restarts at the first rung
    3. Established cards: g >= 3 -> I * EF', g == 2 -> I, g < 2 -> 1
    4. Stability moves by grade bucket, with a bonus for recall after
       an interval of a week or more

    Args:
        card: Card being reviewed
        grade: Grade 0-5
        now: Review time (defaults to now)
        constants: SRS parameters

    Returns:
        NextReview with the new scheduling values
    """
    _check_grade(grade)
    now = now or datetime.now()

    ef_delta = 0.1 - (5 - grade) * (0.08 + (5 - grade) * 0.02)
    new_ef = _clamp(
        card.ease_factor + ef_delta,
        constants.min_ease_factor,
        constants.max_ease_factor,
    )

    if card.review_count < constants.new_card_steps:
        if grade >= PASSING_GRADE:
            new_interval = constants.new_card_intervals[card.review_count]
        else:
            new_interval = constants.new_card_intervals[0]
    elif grade >= PASSING_GRADE:
        new_interval = _round_half_up(card.interval * new_ef)
    elif grade == 2:
        new_interval = card.interval
    else:
        new_interval = 1

    new_interval = max(1, new_interval)

    if grade >= 4:
        new_stability = card.stability + constants.stability_gain_strong
    elif grade == 3:
        new_stability = card.stability + constants.stability_gain_good
    elif grade == 2:
        new_stability = card.stability + constants.stability_gain_weak
    else:
        new_stability = card.stability - constants.stability_loss

    if grade >= PASSING_GRADE and card.interval >= constants.durable_recall_interval:
        new_stability += constants.durable_recall_bonus

    new_stability = _clamp(new_stability, constants.min_stability, constants.max_stability)

    return NextReview(
        ease_factor=new_ef,
        interval=new_interval,
        due_date=now + timedelta(days=new_interval),
        stability=new_stability,
    )


def process_review(
    card: ReviewCard,
    grade: int,
    time_spent_seconds: float,
    hints_used: int = 0,
    now: Optional[datetime] = None,
    constants: SRSConstants = SRS,
) -> tuple[ReviewCard, ReviewResult]:
    """
    Apply a graded review to a card.

    Args:
        card: Card being reviewed
        grade: Grade 0-5
        time_spent_seconds: Time spent on the item
        hints_used: Hints opened while answering
        now: Review time (defaults to now)
        constants: SRS parameters

    Returns:
        Tuple of (updated card, review result)
    """
    now = now or datetime.now()
    schedule = calculate_next_review(card, grade, now=now, constants=constants)

    fail_count = card.fail_count
    is_leech = card.is_leech

    if grade < 2:
        fail_count += 1
        if fail_count >= constants.leech_threshold:
            if not is_leech:
                logger.info(f"Card {card.id} flagged as leech after {fail_count} failures")
            is_leech = True
    elif grade >= PASSING_GRADE:
        fail_count = 0
        is_leech = False

    updated = replace(
        card,
        ease_factor=schedule.ease_factor,
        stability=schedule.stability,
        interval=schedule.interval,
        due_date=schedule.due_date,
        last_grade=grade,
        last_reviewed=now,
        review_count=card.review_count + 1,
        fail_count=fail_count,
        is_leech=is_leech,
    )

    result = ReviewResult(
        card_id=card.id,
        grade=grade,
        time_spent_seconds=time_spent_seconds,
        hints_used=hints_used,
        timestamp=now,
        new_ease_factor=schedule.ease_factor,
        new_interval=schedule.interval,
        new_due_date=schedule.due_date,
    )

    logger.debug(
        f"Reviewed {card.id}: grade={grade} interval {card.interval}->{schedule.interval}d "
        f"EF {card.ease_factor:.2f}->{schedule.ease_factor:.2f} "
        f"stability {card.stability:.2f}->{schedule.stability:.2f}"
    )

    return updated, result


# =============================================================================
# Selection
# =============================================================================


def get_due_cards(cards: Iterable[ReviewCard], now: Optional[datetime] = None) -> list[ReviewCard]:
    """
    Cards due today or earlier, oldest due date first.

    Comparison is by calendar day, so a card due later today is included.
    """
    today = (now or datetime.now()).date()
    due = [card for card in cards if card.due_date.date() <= today]
    return sorted(due, key=lambda card: card.due_date)


def calculate_urgency(
    card: ReviewCard,
    primary_domain: Domain,
    recent_domains: Sequence[Domain] = (),
    now: Optional[datetime] = None,
    constants: SRSConstants = SRS,
) -> float:
    """
    Urgency = dueSoon * lowStability * domainRecency.

    dueSoon caps at one week overdue; domainRecency favours the primary
    domain, then recently studied domains.
    """
    now = now or datetime.now()

    due_soon = min(1.0, card.days_overdue(now) / constants.overdue_cap_days)
    low_stability = 1.0 - card.stability

    if card.domain == primary_domain:
        recency = constants.primary_domain_recency
    elif card.domain in recent_domains:
        recency = constants.recent_domain_recency
    else:
        recency = constants.other_domain_recency

    return due_soon * low_stability * recency


def prioritize_cards(
    cards: Iterable[ReviewCard],
    primary_domain: Domain,
    recent_domains: Sequence[Domain] = (),
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
    constants: SRSConstants = SRS,
) -> list[ReviewCard]:
    """
    Sort cards by urgency, most urgent first.

    Args:
        cards: Cards to rank
        primary_domain: Learner's current primary domain
        recent_domains: Recently studied domains
        limit: Keep at most this many (ignored unless positive)
        now: Reference time
        constants: SRS parameters

    Returns:
        Ranked (and possibly truncated) list of cards
    """
    now = now or datetime.now()
    ranked = sorted(
        cards,
        key=lambda card: calculate_urgency(card, primary_domain, recent_domains, now, constants),
        reverse=True,
    )
    if limit is not None and limit > 0:
        ranked = ranked[:limit]
    return ranked


def get_cards_by_domain(cards: Iterable[ReviewCard], domain: Domain) -> list[ReviewCard]:
    return [card for card in cards if card.domain == domain]


def get_last_reviewed_cards(
    cards: Iterable[ReviewCard],
    domain: Domain,
    count: int = 10,
) -> list[ReviewCard]:
    """Most recently reviewed cards of a domain, newest first."""
    reviewed = [
        card for card in cards
        if card.domain == domain and card.last_reviewed is not None
    ]
    reviewed.sort(key=lambda card: card.last_reviewed, reverse=True)
    return reviewed[:count]


def get_average_stability(cards: Sequence[ReviewCard]) -> float:
    if not cards:
        return 0.0
    return sum(card.stability for card in cards) / len(cards)


def detect_leeches(cards: Iterable[ReviewCard]) -> list[ReviewCard]:
    return [card for card in cards if card.is_leech]


# =============================================================================
# Grading
# =============================================================================


def behavior_to_grade(
    correct: bool,
    hints_used: int,
    time_ratio: float,
    confidence: float = 0.5,
) -> int:
    """
    Convert answer telemetry to an SRS grade.

    Args:
        correct: Whether the answer was correct
        hints_used: Hints opened
        time_ratio: Actual time / expected time (0.5 = fast, 2.0 = slow)
        confidence: 0-1, self-reported or inferred

    Returns:
        Grade 0-5
    """
    if not correct:
        if confidence < 0.3:
            return 0  # No idea
        elif hints_used >= 2:
            return 1  # Wrong, but learned from hints
        else:
            return 2  # Wrong, but close

    if hints_used == 0 and time_ratio < 0.8:
        return 5  # Fast, no hints
    elif hints_used <= 1 and time_ratio < 1.2:
        return 4
    else:
        return 3  # Correct but struggled
