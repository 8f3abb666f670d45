"""
Domain Progression Gate.

Controls when a learner may leave one orthopaedic domain for the next.

Lifecycle:
    locked -> active -> gated -> completed

A domain becomes gated once enough of its content is done and a complication
case is passed, and it can only be completed when all four gate requirements
hold:
1. Mini-OSCE passed (score >= 80%)
2. Retention check passed (sampled cards re-tested after >= 7 days)
3. SRS stability: last 10 reviewed cards average stability >= 0.7
4. At least one complication case passed at the hardest band

Domain statuses are handled as `dict[Domain, DomainStatus]`; every function
returns new values and leaves its inputs untouched.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from loguru import logger

from orto_scheduler.core.constants import (
    ALL_DOMAINS,
    DOMAIN_NEIGHBORS,
    DOMAIN_SELECTION_WEIGHTS,
    GATE_THRESHOLDS,
    DomainSelectionWeights,
    GateThresholds,
)
from orto_scheduler.core.enums import Band, Domain, DomainState
from orto_scheduler.core.errors import InvariantViolation
from orto_scheduler.core.models import DomainStatus, GateProgress, ReviewCard, RetentionCheck
from orto_scheduler.study.srs_engine import get_average_stability, get_last_reviewed_cards

DomainStatuses = dict[Domain, DomainStatus]


@dataclass(frozen=True)
class DomainCompletion:
    """Outcome of completing a domain and unlocking the next one."""

    statuses: DomainStatuses
    next_domain: Optional[Domain]
    all_completed: bool


# =============================================================================
# Lookup
# =============================================================================


def get_neighbor_domains(domain: Domain) -> list[Domain]:
    """Topically adjacent domains (empty when the map has no entry)."""
    return list(DOMAIN_NEIGHBORS.get(domain, ()))


def get_completed_domains(statuses: Mapping[Domain, DomainStatus]) -> list[Domain]:
    return [domain for domain, status in statuses.items() if status.state == DomainState.COMPLETED]


def _warn_unknown_total(status: DomainStatus) -> None:
    if status.total_items <= 0:
        logger.warning(
            f"Catalog size of {status.domain.value} is unknown; it cannot reach the gate until total_items is set"
        )


def create_initial_domain_statuses(
    primary_domain: Domain,
    all_domains: Sequence[Domain] = ALL_DOMAINS,
    total_items: Optional[Mapping[Domain, int]] = None,
    now: Optional[datetime] = None,
) -> DomainStatuses:
    """
    Initial statuses for a new learner.

    Only the primary domain starts active; everything else is locked.

    Args:
        primary_domain: Domain chosen at onboarding
        all_domains: Domains offered to the learner
        total_items: Catalog size per domain (0 when unknown)
        now: Unlock time of the primary domain

    Returns:
        Mapping of domain to its initial status
    """
    now = now or datetime.now()
    total_items = total_items or {}
    statuses: DomainStatuses = {}
    for domain in all_domains:
        is_primary = domain == primary_domain
        statuses[domain] = DomainStatus(
            domain=domain,
            state=DomainState.ACTIVE if is_primary else DomainState.LOCKED,
            total_items=total_items.get(domain, 0),
            unlocked_at=now if is_primary else None,
        )
    if primary_domain in statuses:
        _warn_unknown_total(statuses[primary_domain])
    return statuses


# =============================================================================
# Gate Requirements
# =============================================================================


def _recent_stability(
    domain: Domain,
    cards: Iterable[ReviewCard],
    thresholds: GateThresholds,
) -> tuple[bool, Optional[float]]:
    recent = get_last_reviewed_cards(cards, domain, thresholds.stability_window)
    if len(recent) < thresholds.retention_min_cards:
        return False, None
    avg_stability = get_average_stability(recent)
    return avg_stability >= thresholds.retention_min_stability, avg_stability


def update_domain_srs_stability(
    status: DomainStatus,
    cards: Iterable[ReviewCard],
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> DomainStatus:
    """Recompute the SRS-stability flag from the most recently reviewed cards."""
    stable, avg_stability = _recent_stability(status.domain, cards, thresholds)
    return replace(
        status,
        gate_progress=replace(
            status.gate_progress,
            srs_cards_stable=stable,
            avg_stability=avg_stability,
        ),
    )


def is_gate_requirement_met(
    status: DomainStatus,
    cards: Iterable[ReviewCard],
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> bool:
    """
    Check all four gate requirements.

    A stored stability flag is trusted; when it is unset the stability is
    computed from the domain's last reviewed cards, and fewer cards than the
    required minimum fail the check.
    """
    gate = status.gate_progress

    if not gate.mini_assessment_passed:
        return False
    if not gate.retention_check_passed:
        return False
    if not gate.srs_cards_stable:
        stable, _ = _recent_stability(status.domain, cards, thresholds)
        if not stable:
            return False
    return gate.complication_case_passed


def record_mini_assessment(
    status: DomainStatus,
    score: float,
    now: Optional[datetime] = None,
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> DomainStatus:
    """
    Record a Mini-OSCE attempt (score 0-1).

    A pass is kept; a later failed attempt only updates the score.

    Raises:
        InvariantViolation: If the score is outside 0-1
    """
    if not 0.0 <= score <= 1.0:
        raise InvariantViolation(f"Mini-OSCE score must be within 0-1, got {score!r}")

    now = now or datetime.now()
    passed = score >= thresholds.mini_assessment_passing_score
    if passed:
        logger.info(f"Mini-OSCE passed for {status.domain.value} ({score:.0%})")
    return replace(
        status,
        gate_progress=replace(
            status.gate_progress,
            mini_assessment_passed=status.gate_progress.mini_assessment_passed or passed,
            mini_assessment_score=score,
            mini_assessment_date=now,
        ),
    )


def record_complication_case(
    status: DomainStatus,
    band: Band,
    passed: bool,
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> DomainStatus:
    """Count a passed complication case if it was served at the required band."""
    band = Band.parse(band)
    if not passed or band < thresholds.complication_case_min_band:
        return status
    if status.gate_progress.complication_case_passed:
        return status
    logger.info(f"Complication case passed for {status.domain.value} at band {band}")
    return replace(
        status,
        gate_progress=replace(status.gate_progress, complication_case_passed=True),
    )


def record_items_completed(status: DomainStatus, count: int) -> DomainStatus:
    """Add completed content items, capped at the catalog size when known."""
    if count <= 0:
        return status
    completed = status.items_completed + count
    if status.total_items > 0:
        completed = min(completed, status.total_items)
    return replace(status, items_completed=completed)


# =============================================================================
# Retention Checks
# =============================================================================


def create_retention_check(
    domain: Domain,
    cards: Iterable[ReviewCard],
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> RetentionCheck:
    """
    Sample up to 10 of the domain's cards for a re-test a week out.

    Args:
        domain: Domain to check
        cards: Learner's cards (other domains are ignored)
        now: Creation time
        rng: Random source for the sample
        thresholds: Gate thresholds (sample size, delay, stability floor)

    Returns:
        RetentionCheck scheduled `retention_delay_days` from now
    """
    now = now or datetime.now()
    rng = rng or random.Random()

    domain_cards = [card for card in cards if card.domain == domain]
    sample = rng.sample(domain_cards, min(thresholds.retention_sample_size, len(domain_cards)))

    return RetentionCheck(
        domain=domain,
        card_ids=tuple(card.id for card in sample),
        scheduled_for=now + timedelta(days=thresholds.retention_delay_days),
        required_avg_stability=thresholds.retention_min_stability,
    )


def record_retention_result(
    check: RetentionCheck,
    cards: Iterable[ReviewCard],
    now: Optional[datetime] = None,
) -> RetentionCheck:
    """Complete a check with the observed average stability of its sampled cards."""
    now = now or datetime.now()
    wanted = set(check.card_ids)
    sampled = [card for card in cards if card.id in wanted]
    return replace(
        check,
        completed_at=now,
        actual_avg_stability=get_average_stability(sampled),
    )


def is_retention_check_passed(check: RetentionCheck) -> bool:
    if check.completed_at is None or check.actual_avg_stability is None:
        return False
    return check.actual_avg_stability >= check.required_avg_stability


def record_retention_check(status: DomainStatus, check: RetentionCheck) -> DomainStatus:
    """
    Copy a completed retention check onto the domain's gate progress.

    Raises:
        InvariantViolation: If the check belongs to another domain
    """
    if check.domain != status.domain:
        raise InvariantViolation(
            f"Retention check for {check.domain.value} applied to {status.domain.value}"
        )
    passed = is_retention_check_passed(check)
    return replace(
        status,
        gate_progress=replace(
            status.gate_progress,
            retention_check_passed=status.gate_progress.retention_check_passed or passed,
            retention_check_date=check.completed_at,
        ),
    )


# =============================================================================
# Transitions
# =============================================================================


def is_ready_for_gate(status: DomainStatus, thresholds: GateThresholds = GATE_THRESHOLDS) -> bool:
    """Enough content done and a complication case passed."""
    if not status.gate_progress.complication_case_passed:
        return False
    return status.completion_ratio >= thresholds.gate_completion_ratio


def advance_to_gate(status: DomainStatus, thresholds: GateThresholds = GATE_THRESHOLDS) -> DomainStatus:
    """Move an active domain to gated once it is ready for the capstone."""
    if status.state != DomainState.ACTIVE or not is_ready_for_gate(status, thresholds):
        return status
    logger.info(f"Domain {status.domain.value} is ready for the Mini-OSCE")
    return replace(status, state=DomainState.GATED)


def select_next_domain(
    current_domain: Domain,
    completed_domains: Sequence[Domain],
    all_domains: Sequence[Domain] = ALL_DOMAINS,
    weights: DomainSelectionWeights = DOMAIN_SELECTION_WEIGHTS,
    rng: Optional[random.Random] = None,
) -> Optional[Domain]:
    """
    Weighted random choice of the domain to suggest next.

    One draw r in [0, 1) decides the pool:
        r < neighbor                  -> open neighbour of the current domain
        r < neighbor + other          -> open non-neighbour domain
        otherwise                     -> completed domain (long-term recall)
    An empty pool falls through to the next one, ending with any open domain.

    Returns:
        Suggested domain, or None when no open domain is left
    """
    rng = rng or random.Random()

    completed = set(completed_domains)
    open_domains = [d for d in all_domains if d not in completed and d != current_domain]
    if not open_domains:
        return None

    neighbors = [d for d in get_neighbor_domains(current_domain) if d in open_domains]
    others = [d for d in open_domains if d not in neighbors]

    recall = [d for d in completed_domains if d != current_domain]

    r = rng.random()
    if r < weights.neighbor and neighbors:
        return rng.choice(neighbors)
    if r < weights.neighbor + weights.other:
        return rng.choice(others or open_domains)
    if recall:
        return rng.choice(recall)
    return rng.choice(open_domains)


def complete_domain(
    status: DomainStatus,
    all_domains: Sequence[Domain] = ALL_DOMAINS,
    completed_domains: Sequence[Domain] = (),
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    weights: DomainSelectionWeights = DOMAIN_SELECTION_WEIGHTS,
    cards: Optional[Iterable[ReviewCard]] = None,
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> DomainStatus:
    """
    Mark a domain completed and pre-compute the next suggestion.

    When cards are given and the stored stability flag is unset, the flag is
    recomputed from them first, matching `is_gate_requirement_met`.

    Raises:
        InvariantViolation: If any of the four gate flags is still false
    """
    if cards is not None and not status.gate_progress.srs_cards_stable:
        status = update_domain_srs_stability(status, cards, thresholds)
    if not status.gate_progress.all_passed:
        raise InvariantViolation(
            f"Cannot complete {status.domain.value}: missing {', '.join(status.gate_progress.missing)}"
        )

    now = now or datetime.now()
    next_domain = select_next_domain(status.domain, completed_domains, all_domains, weights, rng)
    logger.info(f"Domain {status.domain.value} completed, next suggestion: {next_domain.value if next_domain else None}")
    return replace(
        status,
        state=DomainState.COMPLETED,
        completed_at=now,
        next_suggested_domain=next_domain,
    )


def unlock_domain(
    statuses: Mapping[Domain, DomainStatus],
    domain: Domain,
    now: Optional[datetime] = None,
) -> DomainStatuses:
    """Activate a locked domain; any other state is left as is."""
    updated = dict(statuses)
    status = updated.get(domain)
    if status is None or status.state != DomainState.LOCKED:
        return updated
    updated[domain] = replace(status, state=DomainState.ACTIVE, unlocked_at=now or datetime.now())
    logger.info(f"Domain {domain.value} unlocked")
    _warn_unknown_total(updated[domain])
    return updated


def complete_domain_and_unlock_next(
    current_domain: Domain,
    statuses: Mapping[Domain, DomainStatus],
    all_domains: Sequence[Domain] = ALL_DOMAINS,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None,
    weights: DomainSelectionWeights = DOMAIN_SELECTION_WEIGHTS,
    cards: Optional[Iterable[ReviewCard]] = None,
    thresholds: GateThresholds = GATE_THRESHOLDS,
) -> DomainCompletion:
    """
    Complete a domain and open the next one.

    When the suggestion is a recall domain (already completed), the domain
    unlocked is the first open neighbour, or else the first open domain, so
    the learner always has somewhere to go while domains remain.
    """
    now = now or datetime.now()
    completed = get_completed_domains(statuses)

    updated = dict(statuses)
    finished = complete_domain(
        statuses[current_domain],
        all_domains,
        completed + [current_domain],
        now=now,
        rng=rng,
        weights=weights,
        cards=cards,
        thresholds=thresholds,
    )
    updated[current_domain] = finished

    done = set(completed) | {current_domain}
    open_domains = [d for d in all_domains if d not in done]
    if not open_domains:
        return DomainCompletion(statuses=updated, next_domain=None, all_completed=True)

    next_domain = finished.next_suggested_domain
    if next_domain is None or next_domain in done:
        open_neighbors = [d for d in get_neighbor_domains(current_domain) if d in open_domains]
        next_domain = (open_neighbors or open_domains)[0]

    updated = unlock_domain(updated, next_domain, now)
    return DomainCompletion(statuses=updated, next_domain=next_domain, all_completed=False)


# =============================================================================
# Messages
# =============================================================================


def get_domain_progress_message(status: DomainStatus) -> str:
    """User-facing one-line summary of where a domain stands."""
    if status.state == DomainState.COMPLETED:
        return "Domain completed! Excellent work!"
    if status.state == DomainState.LOCKED:
        return "Locked - complete earlier domains to unlock"
    if status.state == DomainState.GATED:
        return "Ready for the Mini-OSCE! Take the test when you feel ready."

    progress = round(status.completion_ratio * 100)
    missing = status.gate_progress.missing
    if not missing:
        return f"Progress: {progress}% - all gate requirements met"
    return f"Progress: {progress}% - remaining: {', '.join(missing)}"


def gate_summary(progress: GateProgress) -> dict[str, bool]:
    """Gate flags keyed by display name, in gate order."""
    return {
        "Mini-OSCE": progress.mini_assessment_passed,
        "Retention check": progress.retention_check_passed,
        "SRS stability": progress.srs_cards_stable,
        "Complication case": progress.complication_case_passed,
    }
