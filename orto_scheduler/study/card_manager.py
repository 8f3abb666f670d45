"""
Review Card Manager.

Turns completed content (questions, micro-cases, teaching pearls) into
review cards and answers collection-level questions about a learner's cards.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional, Sequence

from orto_scheduler.core.constants import SRS, SRSConstants
from orto_scheduler.core.enums import Band, Domain, ItemType
from orto_scheduler.core.models import ReviewCard

BAND_DIFFICULTY: dict[Band, float] = {
    Band.A: 0.2,
    Band.B: 0.4,
    Band.C: 0.6,
    Band.D: 0.8,
    Band.E: 1.0,
}

LEVEL_DIFFICULTY: dict[str, float] = {
    "student": 0.2,
    "at": 0.3,
    "st1": 0.4,
    "st2": 0.5,
    "st3": 0.6,
    "st4": 0.7,
    "st5": 0.8,
    "specialist": 0.9,
}

DEFAULT_DIFFICULTY = 0.5


def difficulty_from_band(band: Optional[Band]) -> float:
    """Map a content band to a 0-1 difficulty score."""
    if band is None:
        return DEFAULT_DIFFICULTY
    return BAND_DIFFICULTY[Band.parse(band)]


def difficulty_from_level(level: str) -> float:
    """Map the education level a case was written for to a 0-1 difficulty."""
    return LEVEL_DIFFICULTY.get(str(level), DEFAULT_DIFFICULTY)


def make_card_id(item_type: ItemType, content_id: str) -> str:
    return f"card-{item_type.value}-{content_id}"


def create_review_card(
    content_id: str,
    domain: Domain,
    item_type: ItemType = ItemType.QUIZ,
    difficulty: float = DEFAULT_DIFFICULTY,
    competencies: Sequence[str] = (),
    goal_ids: Sequence[str] = (),
    card_id: Optional[str] = None,
    now: Optional[datetime] = None,
    constants: SRSConstants = SRS,
) -> ReviewCard:
    """
    Create a fresh card for a content item completed for the first time.

    New cards are due immediately and start on the first ladder rung.
    """
    now = now or datetime.now()
    return ReviewCard(
        id=card_id or make_card_id(item_type, content_id),
        domain=domain,
        item_type=item_type,
        content_id=content_id,
        ease_factor=constants.initial_ease_factor,
        stability=constants.initial_stability,
        interval=constants.initial_interval,
        due_date=now,
        difficulty=max(0.0, min(1.0, difficulty)),
        competencies=tuple(competencies),
        goal_ids=tuple(goal_ids),
        created_at=now,
    )


def should_create_card(content_id: str, existing_cards: Iterable[ReviewCard]) -> bool:
    """A content item gets at most one card."""
    return all(card.content_id != content_id for card in existing_cards)


def get_reviewed_content_ids(cards: Iterable[ReviewCard]) -> set[str]:
    return {card.content_id for card in cards}


def get_cards_by_goals(cards: Iterable[ReviewCard], goal_ids: Sequence[str]) -> list[ReviewCard]:
    wanted = set(goal_ids)
    return [card for card in cards if wanted.intersection(card.goal_ids)]


@dataclass
class CardStatistics:
    """Summary of a learner's card collection."""

    total: int = 0
    by_domain: dict[Domain, int] = field(default_factory=dict)
    by_type: dict[ItemType, int] = field(default_factory=dict)
    avg_stability: float = 0.0
    avg_interval: float = 0.0
    leeches: int = 0


def get_card_statistics(cards: Sequence[ReviewCard]) -> CardStatistics:
    """
    Count cards by domain and type and average their scheduling values.

    Args:
        cards: Learner's cards

    Returns:
        CardStatistics (all zero for an empty collection)
    """
    if not cards:
        return CardStatistics()

    return CardStatistics(
        total=len(cards),
        by_domain=dict(Counter(card.domain for card in cards)),
        by_type=dict(Counter(card.item_type for card in cards)),
        avg_stability=sum(card.stability for card in cards) / len(cards),
        avg_interval=sum(card.interval for card in cards) / len(cards),
        leeches=sum(1 for card in cards if card.is_leech),
    )
