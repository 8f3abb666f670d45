"""
Enumerations shared by the scheduling core.

Design:
- Band: ordinal difficulty ladder (A easiest .. E hardest)
- Domain: fixed orthopaedic topic set, values are the catalog ids
- ItemType: kinds of reviewable content
- DomainState: domain lifecycle (locked -> active -> gated -> completed)
- EducationLevel: declared seniority used to pick a starting band
"""

from __future__ import annotations

from enum import Enum, IntEnum

from orto_scheduler.core.errors import ConfigurationError


class Band(IntEnum):
    """
    Difficulty band.

    Ordinal so "harder"/"easier" comparisons are plain integer comparisons.
    """

    A = 0
    B = 1
    C = 2
    D = 3
    E = 4

    @classmethod
    def parse(cls, value: Band | str) -> Band:
        """
        Resolve a band identifier.

        Args:
            value: Band member or its letter ("A".."E")

        Returns:
            Matching Band

        Raises:
            ConfigurationError: If the identifier is not a known band
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
        raise ConfigurationError(f"Unknown difficulty band: {value!r}")

    @property
    def letter(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __format__(self, format_spec: str) -> str:
        return format(self.name, format_spec)


class Domain(str, Enum):
    """Orthopaedic topic areas."""

    TRAUMA = "trauma"
    SHOULDER_ELBOW = "axel-armbåge"
    HAND_WRIST = "hand-handled"
    SPINE = "rygg"
    HIP = "höft"
    KNEE = "knä"
    FOOT_ANKLE = "fot-fotled"
    SPORTS = "sport"
    TUMOR = "tumör"

    @classmethod
    def parse(cls, value: Domain | str) -> Domain:
        """Resolve a domain id, raising ConfigurationError when unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unknown domain: {value!r}") from None


class ItemType(str, Enum):
    """Kind of content behind a review card."""

    QUIZ = "quiz"
    MICRO_CASE = "microcase"
    TEACHING_PEARL = "pearl"


class DomainState(str, Enum):
    """Domain lifecycle state."""

    LOCKED = "locked"
    ACTIVE = "active"
    GATED = "gated"  # Eligible for the capstone assessment
    COMPLETED = "completed"


class EducationLevel(str, Enum):
    """Declared education / seniority level."""

    STUDENT = "student"
    INTERN = "at"
    ST1 = "st1"
    ST2 = "st2"
    ST3 = "st3"
    ST4 = "st4"
    ST5 = "st5"
    ST_GENERAL_PRACTICE = "st-allmänmedicin"
    ST_EMERGENCY = "st-akutsjukvård"
    SPECIALIST = "specialist"
    SPECIALIST_ORTHOPAEDICS = "specialist-ortopedi"
    SPECIALIST_GENERAL_PRACTICE = "specialist-allmänmedicin"
    SPECIALIST_EMERGENCY = "specialist-akutsjukvård"
