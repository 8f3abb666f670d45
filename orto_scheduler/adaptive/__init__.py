"""
Adaptive Module - Difficulty bands and domain progression.

Components:
- band_controller: A-E bands, promotion/demotion, recovery days
- domain_progression: four-part domain gate and next-domain selection
- retention_analysis: retention rates, trends and weak domains
"""

from orto_scheduler.adaptive.band_controller import (
    BAND_DEFINITIONS,
    apply_band_adjustment,
    calculate_band_adjustment,
    create_initial_band_status,
    generate_recovery_mix,
    get_day_one_band,
    get_starting_band,
    reconcile_band_status,
    should_demote_band,
    should_promote_band,
)
from orto_scheduler.adaptive.domain_progression import (
    DomainCompletion,
    complete_domain,
    complete_domain_and_unlock_next,
    create_retention_check,
    is_gate_requirement_met,
    select_next_domain,
)
from orto_scheduler.adaptive.retention_analysis import (
    RetentionTrend,
    analyze_retention_trend,
    calculate_retention_rate,
    identify_weak_domains,
)

__all__ = [
    # Bands
    "BAND_DEFINITIONS",
    "get_starting_band",
    "should_promote_band",
    "should_demote_band",
    "calculate_band_adjustment",
    "apply_band_adjustment",
    "get_day_one_band",
    "generate_recovery_mix",
    "create_initial_band_status",
    "reconcile_band_status",
    # Domains
    "DomainCompletion",
    "is_gate_requirement_met",
    "select_next_domain",
    "create_retention_check",
    "complete_domain",
    "complete_domain_and_unlock_next",
    # Retention
    "RetentionTrend",
    "calculate_retention_rate",
    "analyze_retention_trend",
    "identify_weak_domains",
]
