"""
Core Module - Shared value objects, enums, thresholds and errors.

All domain-specific modules (orto_scheduler.study, orto_scheduler.adaptive)
import from here rather than redefining shared concepts.
"""

from orto_scheduler.core.constants import (
    ALL_DOMAINS,
    BAND_THRESHOLDS,
    DAILY_MIX_RATIOS,
    DOMAIN_NEIGHBORS,
    DOMAIN_SELECTION_WEIGHTS,
    GATE_THRESHOLDS,
    SRS,
    BandThresholds,
    DailyMixRatios,
    DomainSelectionWeights,
    GateThresholds,
    SRSConstants,
)
from orto_scheduler.core.enums import Band, Domain, DomainState, EducationLevel, ItemType
from orto_scheduler.core.errors import (
    ConfigurationError,
    InvariantViolation,
    SchedulerError,
    StaleStateError,
)
from orto_scheduler.core.models import (
    BandAdjustment,
    BandDefinition,
    BandHistoryEntry,
    BandMetrics,
    BandStatus,
    ContentItem,
    DailyMix,
    DayPerformance,
    DomainStatus,
    GateProgress,
    MixSlice,
    NextReview,
    PerformanceSnapshot,
    RecoveryPlan,
    RetentionCheck,
    ReviewCard,
    ReviewResult,
    ReviewSlice,
)

__all__ = [
    # Enums
    "Band",
    "Domain",
    "DomainState",
    "EducationLevel",
    "ItemType",
    # Thresholds
    "SRSConstants",
    "BandThresholds",
    "GateThresholds",
    "DailyMixRatios",
    "DomainSelectionWeights",
    "SRS",
    "BAND_THRESHOLDS",
    "GATE_THRESHOLDS",
    "DAILY_MIX_RATIOS",
    "DOMAIN_SELECTION_WEIGHTS",
    "DOMAIN_NEIGHBORS",
    "ALL_DOMAINS",
    # Errors
    "SchedulerError",
    "ConfigurationError",
    "InvariantViolation",
    "StaleStateError",
    # Models
    "ReviewCard",
    "NextReview",
    "ReviewResult",
    "BandDefinition",
    "PerformanceSnapshot",
    "DayPerformance",
    "BandHistoryEntry",
    "BandStatus",
    "BandMetrics",
    "BandAdjustment",
    "RecoveryPlan",
    "GateProgress",
    "DomainStatus",
    "RetentionCheck",
    "ContentItem",
    "MixSlice",
    "ReviewSlice",
    "DailyMix",
]
