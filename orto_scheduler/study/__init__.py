"""
Study Module - Spaced repetition for orthopaedic review cards.

Provides:
- SRS engine: next interval / ease / stability, due cards, urgency ranking
- Card manager: card creation from completed content and collection stats
"""

from orto_scheduler.study.card_manager import (
    CardStatistics,
    create_review_card,
    difficulty_from_band,
    get_card_statistics,
    should_create_card,
)
from orto_scheduler.study.srs_engine import (
    behavior_to_grade,
    calculate_next_review,
    calculate_urgency,
    detect_leeches,
    get_average_stability,
    get_due_cards,
    get_last_reviewed_cards,
    prioritize_cards,
    process_review,
)

__all__ = [
    # SRS engine
    "calculate_next_review",
    "process_review",
    "get_due_cards",
    "calculate_urgency",
    "prioritize_cards",
    "get_last_reviewed_cards",
    "get_average_stability",
    "detect_leeches",
    "behavior_to_grade",
    # Card manager
    "create_review_card",
    "difficulty_from_band",
    "should_create_card",
    "get_card_statistics",
    "CardStatistics",
]
