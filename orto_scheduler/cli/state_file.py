"""
Learner state file for the `orto` CLI.

A JSON snapshot of one learner, validated with pydantic and converted into
the scheduler's value objects. The core never reads files itself; this
module is the boundary.

Example:
    {
      "education_level": "st2",
      "primary_domain": "knä",
      "band": {"current_band": "C", "streak_at_band": 2},
      "recent_days": [{"day": "2026-10-18", "correct_rate": 0.8, "hint_usage": 1.0}],
      "cards": [{"id": "card-quiz-q1", "domain": "knä", "content_id": "q1",
                 "due_date": "2026-10-17T09:00:00"}],
      "catalog": {"knä": [{"id": "q2", "band": "C"}, "q3"]}
    }
"""
from __future__ import annotations

from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from orto_scheduler.adaptive.band_controller import create_initial_band_status, is_difficult_day
from orto_scheduler.adaptive.domain_progression import create_initial_domain_statuses
from orto_scheduler.core.constants import ALL_DOMAINS, SRS
from orto_scheduler.core.enums import Band, Domain, DomainState, EducationLevel, ItemType
from orto_scheduler.core.errors import ConfigurationError
from orto_scheduler.core.models import (
    BandStatus,
    ContentItem,
    DayPerformance,
    DomainStatus,
    GateProgress,
    PerformanceSnapshot,
    ReviewCard,
)
from orto_scheduler.session.session_processor import LearnerState
from orto_scheduler.study.card_manager import get_reviewed_content_ids


def _band_letter(value: str) -> str:
    try:
        return Band.parse(value).name
    except ConfigurationError as exc:
        raise ValueError(str(exc)) from exc


def _naive_local(value: Optional[datetime]) -> Optional[datetime]:
    """Aware timestamps become naive local time, like `datetime.now()`."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


# ========================================
# File Schema
# ========================================


class PerformanceModel(BaseModel):
    """Rolling performance snapshot."""

    correct_rate: float = Field(0.7, ge=0, le=1)
    hint_usage: float = Field(1.5, ge=0)
    time_efficiency: float = Field(0.8, ge=0, le=1)
    confidence: float = Field(0.6, ge=0, le=1)


class BandModel(BaseModel):
    """Stored band status."""

    current_band: str
    streak_at_band: int = Field(0, ge=0)
    recent_performance: PerformanceModel = Field(default_factory=PerformanceModel)
    last_promotion: Optional[datetime] = None
    last_demotion: Optional[datetime] = None
    version: int = Field(0, ge=0)
    updated_at: Optional[datetime] = None

    @field_validator("current_band")
    @classmethod
    def _known_band(cls, value: str) -> str:
        return _band_letter(value)

    @field_validator("last_promotion", "last_demotion", "updated_at", mode="after")
    @classmethod
    def _local_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_local(value)

    def to_core(self) -> BandStatus:
        return BandStatus(
            current_band=Band.parse(self.current_band),
            streak_at_band=self.streak_at_band,
            recent_performance=PerformanceSnapshot(**self.recent_performance.model_dump()),
            last_promotion=self.last_promotion,
            last_demotion=self.last_demotion,
            version=self.version,
            updated_at=self.updated_at,
        )


class DayModel(BaseModel):
    """One day of performance. `difficult` is derived when omitted."""

    day: date
    correct_rate: float = Field(..., ge=0, le=1)
    hint_usage: float = Field(0.0, ge=0)
    difficult: Optional[bool] = None

    def to_core(self) -> DayPerformance:
        difficult = self.difficult if self.difficult is not None else is_difficult_day(self.correct_rate)
        return DayPerformance(
            day=self.day,
            correct_rate=self.correct_rate,
            hint_usage=self.hint_usage,
            difficult=difficult,
        )


class GateModel(BaseModel):
    """Four-part gate progress."""

    mini_assessment_passed: bool = False
    mini_assessment_score: Optional[float] = Field(None, ge=0, le=1)
    retention_check_passed: bool = False
    srs_cards_stable: bool = False
    avg_stability: Optional[float] = None
    complication_case_passed: bool = False


class DomainModel(BaseModel):
    """Stored domain status."""

    state: DomainState = DomainState.LOCKED
    items_completed: int = Field(0, ge=0)
    total_items: int = Field(0, ge=0)
    gate: GateModel = Field(default_factory=GateModel)
    unlocked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("unlocked_at", "completed_at", mode="after")
    @classmethod
    def _local_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_local(value)

    def to_core(self, domain: Domain) -> DomainStatus:
        return DomainStatus(
            domain=domain,
            state=self.state,
            items_completed=self.items_completed,
            total_items=self.total_items,
            gate_progress=GateProgress(**self.gate.model_dump()),
            unlocked_at=self.unlocked_at,
            completed_at=self.completed_at,
        )


class CardModel(BaseModel):
    """Stored review card."""

    id: str
    domain: Domain
    content_id: str
    item_type: ItemType = ItemType.QUIZ
    ease_factor: float = Field(SRS.initial_ease_factor, ge=SRS.min_ease_factor, le=SRS.max_ease_factor)
    stability: float = Field(0.3, ge=0.1, le=1.0)
    interval: int = Field(1, ge=1)
    due_date: datetime
    difficulty: float = Field(0.5, ge=0, le=1)
    last_grade: Optional[int] = Field(None, ge=0, le=5)
    last_reviewed: Optional[datetime] = None
    review_count: int = Field(0, ge=0)
    fail_count: int = Field(0, ge=0)
    is_leech: bool = False

    @field_validator("due_date", "last_reviewed", mode="after")
    @classmethod
    def _local_time(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _naive_local(value)

    def to_core(self) -> ReviewCard:
        return ReviewCard(
            id=self.id,
            domain=self.domain,
            item_type=self.item_type,
            content_id=self.content_id,
            ease_factor=self.ease_factor,
            stability=self.stability,
            interval=self.interval,
            due_date=self.due_date,
            difficulty=self.difficulty,
            last_grade=self.last_grade,
            last_reviewed=self.last_reviewed,
            review_count=self.review_count,
            fail_count=self.fail_count,
            is_leech=self.is_leech,
            created_at=self.last_reviewed or self.due_date,
        )


class CatalogItemModel(BaseModel):
    """Catalog entry; a bare string is accepted as an id without band."""

    id: str
    band: Optional[str] = None

    @field_validator("band")
    @classmethod
    def _known_band(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _band_letter(value)

    def to_core(self) -> ContentItem:
        return ContentItem(id=self.id, band=Band.parse(self.band) if self.band else None)


class StateFile(BaseModel):
    """Complete learner snapshot."""

    education_level: EducationLevel
    primary_domain: Domain
    user_domains: List[Domain] = Field(default_factory=list)
    is_first_day: bool = False
    is_recovery_mode: bool = False
    target_minutes: Optional[int] = Field(None, gt=0)
    band: Optional[BandModel] = None
    recent_days: List[DayModel] = Field(default_factory=list)
    domains: Dict[Domain, DomainModel] = Field(default_factory=dict)
    cards: List[CardModel] = Field(default_factory=list)
    catalog: Dict[Domain, List[Union[CatalogItemModel, str]]] = Field(default_factory=dict)

    def to_learner_state(self, now: Optional[datetime] = None) -> LearnerState:
        """
        Convert to the scheduler's learner state.

        Missing band or domain records are filled with the initial values for
        the learner's education level and primary domain.
        """
        now = now or datetime.now()
        band_status = self.band.to_core() if self.band else create_initial_band_status(self.education_level, now)

        statuses = create_initial_domain_statuses(
            self.primary_domain,
            ALL_DOMAINS,
            {domain: len(items) for domain, items in self.catalog.items()},
            now,
        )
        for domain, model in self.domains.items():
            statuses[domain] = model.to_core(domain)

        days = sorted((day.to_core() for day in self.recent_days), key=lambda d: d.day, reverse=True)

        return LearnerState(
            primary_domain=self.primary_domain,
            band_status=band_status,
            domain_statuses=statuses,
            cards=tuple(card.to_core() for card in self.cards),
            recent_days=tuple(days),
            user_domains=tuple(self.user_domains),
            is_recovery_mode=self.is_recovery_mode,
        )

    def available_content(self) -> dict[Domain, list[ContentItem]]:
        """Catalog entries that do not have a review card yet."""
        seen = get_reviewed_content_ids(card.to_core() for card in self.cards)
        available: dict[Domain, list[ContentItem]] = {}
        for domain, entries in self.catalog.items():
            items = [
                ContentItem(id=entry) if isinstance(entry, str) else entry.to_core()
                for entry in entries
            ]
            available[domain] = [item for item in items if item.id not in seen]
        return available


def load_state_file(path: Path) -> StateFile:
    """
    Read and validate a learner state file.

    Raises:
        FileNotFoundError: If the file does not exist
        pydantic.ValidationError: If the content does not match the schema
    """
    return StateFile.model_validate_json(Path(path).read_text(encoding="utf-8"))
