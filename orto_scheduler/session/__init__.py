"""
Session Module - Daily planning and end-of-session processing.

Ties the study and adaptive modules together:
- daily_mix: compose today's new / interleaved / review slices
- session_processor: fold a finished session into the learner state
"""

from orto_scheduler.session.daily_mix import DailyMixComposer, generate_daily_mix
from orto_scheduler.session.session_processor import (
    DaySummary,
    ItemOutcome,
    LearnerState,
    SessionUpdate,
    process_session,
    summarize_session,
)

__all__ = [
    "DailyMixComposer",
    "generate_daily_mix",
    "ItemOutcome",
    "DaySummary",
    "LearnerState",
    "SessionUpdate",
    "summarize_session",
    "process_session",
]
