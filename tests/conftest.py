"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from orto_scheduler.core.enums import Band, Domain, DomainState, ItemType  # noqa: E402
from orto_scheduler.core.models import (  # noqa: E402
    BandStatus,
    DomainStatus,
    GateProgress,
    PerformanceSnapshot,
    ReviewCard,
)

FIXED_NOW = datetime(2026, 3, 10, 9, 0, 0)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests across scheduler components")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def now():
    """Fixed reference time (a Tuesday morning)."""
    return FIXED_NOW


@pytest.fixture
def log_messages():
    """Collect loguru messages at WARNING and above."""
    from loguru import logger

    messages = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")

    yield messages

    logger.remove(handler_id)


@pytest.fixture
def rng():
    """Seeded random source."""
    return random.Random(42)


@pytest.fixture
def make_card(now):
    """Factory for review cards with sensible defaults."""
    counter = {"n": 0}

    def _make(
        domain=Domain.KNEE,
        *,
        stability=0.5,
        interval=1,
        ease_factor=2.5,
        review_count=0,
        due_in_days=0.0,
        reviewed_days_ago=None,
        **overrides,
    ):
        counter["n"] += 1
        n = counter["n"]
        last_reviewed = None
        if reviewed_days_ago is not None:
            last_reviewed = now - timedelta(days=reviewed_days_ago)
        fields = dict(
            id=f"card-{n}",
            domain=domain,
            item_type=ItemType.QUIZ,
            content_id=f"q{n}",
            ease_factor=ease_factor,
            stability=stability,
            interval=interval,
            due_date=now + timedelta(days=due_in_days),
            review_count=review_count,
            last_reviewed=last_reviewed,
            created_at=now - timedelta(days=30),
        )
        fields.update(overrides)
        return ReviewCard(**fields)

    return _make


@pytest.fixture
def make_band_status():
    """Factory for band statuses."""

    def _make(band=Band.C, streak=0, correct_rate=0.7, hint_usage=1.5, **overrides):
        return BandStatus(
            current_band=band,
            streak_at_band=streak,
            recent_performance=PerformanceSnapshot(correct_rate=correct_rate, hint_usage=hint_usage),
            **overrides,
        )

    return _make


@pytest.fixture
def make_domain_status():
    """Factory for domain statuses with individually settable gate flags."""

    def _make(
        domain=Domain.KNEE,
        state=DomainState.ACTIVE,
        mini=False,
        retention=False,
        stable=False,
        complication=False,
        **overrides,
    ):
        return DomainStatus(
            domain=domain,
            state=state,
            gate_progress=GateProgress(
                mini_assessment_passed=mini,
                retention_check_passed=retention,
                srs_cards_stable=stable,
                complication_case_passed=complication,
            ),
            **overrides,
        )

    return _make
