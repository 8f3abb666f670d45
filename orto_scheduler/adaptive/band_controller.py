"""
Difficulty Band Controller (A-E).

Auto-tunes challenge level without damaging confidence:
- Static band definitions (A = supportive, E = complex under time pressure)
- Promotion after a sustained streak of strong, low-hint days
- Demotion after difficult days, with a recovery mix
- Never more than one band change per calendar day, one step at a time
- Day one is always delivered one band easier

Band status is a versioned value object: every function returns a new
status and never mutates its input.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from typing import Optional, Sequence

from loguru import logger

from orto_scheduler.core.constants import BAND_THRESHOLDS, BandThresholds
from orto_scheduler.core.enums import Band, EducationLevel
from orto_scheduler.core.errors import ConfigurationError, InvariantViolation, StaleStateError
from orto_scheduler.core.models import (
    BandAdjustment,
    BandDefinition,
    BandHistoryEntry,
    BandMetrics,
    BandStatus,
    DayPerformance,
    PerformanceSnapshot,
    RecoveryPlan,
)

# =============================================================================
# Band Definitions
# =============================================================================

BAND_DEFINITIONS: dict[Band, BandDefinition] = {
    Band.A: BandDefinition(
        band=Band.A,
        label="Foundational",
        description="Supportive guidance, clear hints, 1 decision point",
        decision_points=1,
        hints="many",
        pitfalls="none",
        time_constraint="none",
        support_level="high",
    ),
    Band.B: BandDefinition(
        band=Band.B,
        label="Developing",
        description="1-2 decision points, obvious pitfalls, explicit pearl",
        decision_points=2,
        hints="some",
        pitfalls="obvious",
        time_constraint="relaxed",
        support_level="medium",
    ),
    Band.C: BandDefinition(
        band=Band.C,
        label="Intermediate",
        description="2-3 decision points, subtle pitfalls, short dictation",
        decision_points=3,
        hints="few",
        pitfalls="subtle",
        time_constraint="moderate",
        support_level="medium",
    ),
    Band.D: BandDefinition(
        band=Band.D,
        label="Advanced",
        description="3-4 decision points, prioritising under uncertainty, imaging twist",
        decision_points=4,
        hints="minimal",
        pitfalls="multiple",
        time_constraint="moderate",
        support_level="low",
    ),
    Band.E: BandDefinition(
        band=Band.E,
        label="Expert",
        description="4-5 decision points, conflicting data, complications, time pressure",
        decision_points=5,
        hints="minimal",
        pitfalls="multiple",
        time_constraint="tight",
        support_level="low",
    ),
}

BAND_ENCOURAGEMENT: dict[Band, str] = {
    Band.A: "You are building a strong foundation. Every step forward counts!",
    Band.B: "Good work! You are developing steadily and safely.",
    Band.C: "You are at the right level and making real progress!",
    Band.D: "Impressive! You handle advanced situations with confidence.",
    Band.E: "Exceptional! You are working at expert level.",
}

STARTING_BANDS: dict[EducationLevel, Band] = {
    EducationLevel.STUDENT: Band.A,
    EducationLevel.INTERN: Band.B,
    EducationLevel.ST1: Band.C,
    EducationLevel.ST2: Band.C,
    EducationLevel.ST3: Band.D,
    EducationLevel.ST4: Band.D,
    EducationLevel.ST5: Band.E,
    EducationLevel.ST_GENERAL_PRACTICE: Band.B,
    EducationLevel.ST_EMERGENCY: Band.C,
    EducationLevel.SPECIALIST: Band.E,
    EducationLevel.SPECIALIST_ORTHOPAEDICS: Band.E,
    EducationLevel.SPECIALIST_GENERAL_PRACTICE: Band.C,
    EducationLevel.SPECIALIST_EMERGENCY: Band.D,
}

PROMOTION_REASON = "Strong performance over several days - ready for the next level!"
DEMOTION_REASON = "Let's take a step back and strengthen the fundamentals"
STARTING_REASON = "Starting point based on your education level"
RECOVERY_ENCOURAGEMENT = (
    "We'll take it a bit easier today. Focus on building confidence and "
    "reviewing what you already know. You've got this!"
)


# =============================================================================
# Band Ladder
# =============================================================================


def get_starting_band(level: EducationLevel | str) -> Band:
    """
    Starting band for a declared education level.

    Raises:
        ConfigurationError: If the level has no entry in the table
    """
    try:
        key = EducationLevel(level)
    except ValueError:
        raise ConfigurationError(f"No starting band for education level {level!r}") from None
    return STARTING_BANDS[key]


def get_easier_band(band: Band) -> Band:
    """One band easier, or the same band at A."""
    band = Band.parse(band)
    return Band(band - 1) if band > Band.A else band


def get_harder_band(band: Band) -> Band:
    """One band harder, or the same band at E."""
    band = Band.parse(band)
    return Band(band + 1) if band < Band.E else band


def get_day_one_band(calculated_band: Band) -> Band:
    """Day one is always delivered one notch easier."""
    return get_easier_band(calculated_band)


def get_band_description(band: Band) -> str:
    """User-facing description with encouragement."""
    band = Band.parse(band)
    definition = BAND_DEFINITIONS[band]
    return f"{definition.label}: {definition.description}\n\n{BAND_ENCOURAGEMENT[band]}"


# =============================================================================
# Promotion / Demotion
# =============================================================================


def should_promote_band(status: BandStatus, thresholds: BandThresholds = BAND_THRESHOLDS) -> bool:
    """Streak, correct rate and hint usage all at or past their thresholds."""
    performance = status.recent_performance
    return (
        status.streak_at_band >= thresholds.promotion_streak
        and performance.correct_rate >= thresholds.promotion_correct_rate
        and performance.hint_usage <= thresholds.promotion_max_hint_usage
    )


def should_demote_band(
    recent_days: Sequence[DayPerformance],
    thresholds: BandThresholds = BAND_THRESHOLDS,
) -> bool:
    """Enough difficult days, or a window average below the correct-rate floor."""
    if not recent_days:
        return False

    difficult_days = sum(1 for day in recent_days if day.difficult)
    if difficult_days >= thresholds.demotion_difficult_days:
        return True

    avg_correct_rate = sum(day.correct_rate for day in recent_days) / len(recent_days)
    return avg_correct_rate < thresholds.demotion_correct_rate


def has_two_difficult_days_in_row(recent_days: Sequence[DayPerformance]) -> bool:
    """The two most recent days were both difficult."""
    if len(recent_days) < 2:
        return False
    return recent_days[0].difficult and recent_days[1].difficult


def is_difficult_day(correct_rate: float, thresholds: BandThresholds = BAND_THRESHOLDS) -> bool:
    return correct_rate < thresholds.difficult_day_correct_rate


def _on_day(moment: Optional[datetime], day: date) -> bool:
    return moment is not None and moment.date() == day


def _window_metrics(
    status: BandStatus,
    window: Sequence[DayPerformance],
    streak: int,
) -> BandMetrics:
    if not window:
        performance = status.recent_performance
        return BandMetrics(
            streak=streak,
            avg_correct_rate=performance.correct_rate,
            avg_hint_usage=performance.hint_usage,
        )
    return BandMetrics(
        streak=streak,
        avg_correct_rate=sum(day.correct_rate for day in window) / len(window),
        avg_hint_usage=sum(day.hint_usage for day in window) / len(window),
    )


def calculate_band_adjustment(
    status: BandStatus,
    recent_days: Sequence[DayPerformance],
    now: Optional[datetime] = None,
    thresholds: BandThresholds = BAND_THRESHOLDS,
) -> Optional[BandAdjustment]:
    """
    Decide whether the band should move today.

    Promotion is evaluated first (never past E), then demotion over the
    most recent days (never below A). Nothing moves twice in one day.

    Args:
        status: Current band status
        recent_days: Daily performance, most recent first
        now: Decision time (defaults to now)
        thresholds: Promotion/demotion thresholds

    Returns:
        BandAdjustment, or None when the band stays
    """
    now = now or datetime.now()
    today = now.date()

    if _on_day(status.last_promotion, today) or _on_day(status.last_demotion, today):
        logger.debug("Band already adjusted today, skipping evaluation")
        return None

    window = list(recent_days[: thresholds.adjustment_window_days])
    current = status.current_band

    if current < Band.E and should_promote_band(status, thresholds):
        adjustment = BandAdjustment(
            from_band=current,
            to_band=get_harder_band(current),
            reason=PROMOTION_REASON,
            date=now,
            metrics=_window_metrics(status, window, status.streak_at_band),
        )
        logger.info(f"Band promotion {adjustment.from_band} -> {adjustment.to_band}")
        return adjustment

    if current > Band.A and should_demote_band(window, thresholds):
        adjustment = BandAdjustment(
            from_band=current,
            to_band=get_easier_band(current),
            reason=DEMOTION_REASON,
            date=now,
            metrics=_window_metrics(status, window, 0),
        )
        logger.info(f"Band demotion {adjustment.from_band} -> {adjustment.to_band}")
        return adjustment

    return None


def apply_band_adjustment(status: BandStatus, adjustment: BandAdjustment) -> BandStatus:
    """
    Move the band and record the change.

    Raises:
        InvariantViolation: If the adjustment does not start at the current
            band or moves more than one step
    """
    if adjustment.from_band != status.current_band:
        raise InvariantViolation(
            f"Adjustment starts at {adjustment.from_band} but status is at {status.current_band}"
        )
    if abs(int(adjustment.to_band) - int(adjustment.from_band)) != 1:
        raise InvariantViolation(
            f"Band must move exactly one step, got {adjustment.from_band} -> {adjustment.to_band}"
        )

    promoted = adjustment.is_promotion
    return replace(
        status,
        current_band=adjustment.to_band,
        history=status.history
        + (BandHistoryEntry(band=adjustment.to_band, date=adjustment.date, reason=adjustment.reason),),
        streak_at_band=0,
        last_promotion=adjustment.date if promoted else status.last_promotion,
        last_demotion=adjustment.date if not promoted else status.last_demotion,
        version=status.version + 1,
        updated_at=adjustment.date,
    )


def generate_recovery_mix(current_band: Band) -> RecoveryPlan:
    """Easier band plus rescue hints after difficult days."""
    return RecoveryPlan(
        target_band=get_easier_band(current_band),
        extra_hints=True,
        encouragement=RECOVERY_ENCOURAGEMENT,
    )


# =============================================================================
# Rolling Performance
# =============================================================================


def update_performance_metrics(
    current: PerformanceSnapshot,
    today: PerformanceSnapshot,
    alpha: float = BAND_THRESHOLDS.performance_smoothing,
) -> PerformanceSnapshot:
    """Exponential moving average of each metric, weighting today by alpha."""

    def ema(new: float, old: float) -> float:
        return alpha * new + (1 - alpha) * old

    return PerformanceSnapshot(
        correct_rate=ema(today.correct_rate, current.correct_rate),
        hint_usage=ema(today.hint_usage, current.hint_usage),
        time_efficiency=ema(today.time_efficiency, current.time_efficiency),
        confidence=ema(today.confidence, current.confidence),
    )


def record_session_day(
    status: BandStatus,
    today: PerformanceSnapshot,
    now: Optional[datetime] = None,
    thresholds: BandThresholds = BAND_THRESHOLDS,
) -> BandStatus:
    """
    Fold a finished session into the band status.

    The streak counts days, so a second session on the same day updates the
    rolling metrics without extending the streak.
    """
    now = now or datetime.now()
    same_day = status.updated_at is not None and status.updated_at.date() == now.date()
    return replace(
        status,
        recent_performance=update_performance_metrics(
            status.recent_performance, today, thresholds.performance_smoothing
        ),
        streak_at_band=status.streak_at_band if same_day else status.streak_at_band + 1,
        version=status.version + 1,
        updated_at=now,
    )


def create_initial_band_status(
    level: EducationLevel | str,
    now: Optional[datetime] = None,
) -> BandStatus:
    """Band status for a new learner, starting from their education level."""
    now = now or datetime.now()
    band = get_starting_band(level)
    return BandStatus(
        current_band=band,
        history=(BandHistoryEntry(band=band, date=now, reason=STARTING_REASON),),
        streak_at_band=0,
        recent_performance=PerformanceSnapshot(),
        version=0,
        updated_at=None,
    )


def reconcile_band_status(stored: BandStatus, candidate: BandStatus) -> BandStatus:
    """
    Resolve two snapshots of the same learner's band status.

    The higher version wins. Equal versions mean two sessions raced from the
    same base: the later `updated_at` wins. An older candidate is rejected.

    Raises:
        StaleStateError: If the candidate is older than the stored snapshot
    """
    if candidate.version > stored.version:
        return candidate
    if candidate.version < stored.version:
        raise StaleStateError(
            f"Band status version {candidate.version} is older than stored {stored.version}"
        )

    stored_at = stored.updated_at or datetime.min
    candidate_at = candidate.updated_at or datetime.min
    if candidate_at >= stored_at:
        logger.warning(f"Concurrent band update at version {stored.version}, last writer wins")
        return candidate
    return stored
