"""
Unit tests for end-of-session processing.
"""

import random
from dataclasses import replace
from datetime import timedelta

import pytest

from orto_scheduler.core.enums import Band, Domain, DomainState
from orto_scheduler.core.errors import InvariantViolation
from orto_scheduler.core.models import DayPerformance, RetentionCheck
from orto_scheduler.session.session_processor import (
    ItemOutcome,
    LearnerState,
    process_session,
    summarize_session,
)


def outcome(content_id, correct=True, domain=Domain.KNEE, hints=0, seconds=60.0, **kwargs):
    """Fast, hint-free answers grade 5 when correct."""
    return ItemOutcome(
        content_id=content_id,
        domain=domain,
        correct=correct,
        time_spent_seconds=seconds,
        hints_used=hints,
        **kwargs,
    )


@pytest.fixture
def learner(now):
    return LearnerState.new("st2", Domain.KNEE, total_items={Domain.KNEE: 10}, now=now)


def with_gate(state, domain=Domain.KNEE, **flags):
    status = state.domain_statuses[domain]
    statuses = dict(state.domain_statuses)
    statuses[domain] = replace(status, gate_progress=replace(status.gate_progress, **flags))
    return replace(state, domain_statuses=statuses)


class TestItemOutcome:
    def test_time_ratio(self):
        item = outcome("q", seconds=180, expected_seconds=120)
        assert item.time_ratio == pytest.approx(1.5)
        assert item.time_efficiency == pytest.approx(120 / 180)

    def test_fast_answer_is_fully_efficient(self):
        assert outcome("q", seconds=30).time_efficiency == 1.0

    def test_no_baseline(self):
        assert outcome("q", expected_seconds=0).time_ratio == 1.0


class TestSummarize:
    def test_aggregates(self, now):
        summary = summarize_session(
            [
                outcome("a", hints=0),
                outcome("b", hints=1),
                outcome("c", hints=2, seconds=240),
                outcome("d", correct=False, hints=1),
            ],
            now,
        )
        assert summary.day == now.date()
        assert summary.items == 4
        assert summary.correct_rate == pytest.approx(0.75)
        assert summary.hint_usage == pytest.approx(1.0)
        assert summary.time_efficiency == pytest.approx(0.875)
        assert not summary.difficult

    def test_difficult_below_sixty_percent(self, now):
        summary = summarize_session([outcome("a"), outcome("b", correct=False)], now)
        assert summary.difficult
        assert summary.to_day_performance().difficult

    def test_empty_session(self, now):
        with pytest.raises(InvariantViolation):
            summarize_session([], now)


class TestNewLearner:
    def test_onboarding_state(self, learner, now):
        assert learner.band_status.current_band == Band.C
        assert learner.domain_statuses[Domain.KNEE].state == DomainState.ACTIVE
        assert learner.cards == ()
        assert learner.completed_domains == []

    def test_empty_session_changes_nothing(self, learner, now):
        update = process_session(learner, [], now=now)
        assert update.state is learner
        assert update.summary is None


class TestProcessSession:
    def test_first_session_creates_cards(self, learner, now):
        update = process_session(
            learner,
            [outcome("q1"), outcome("q2", correct=False, confidence=0.2)],
            now=now,
            rng=random.Random(1),
        )
        state = update.state
        cards = {card.content_id: card for card in state.cards}

        assert update.new_card_ids == ("card-quiz-q1", "card-quiz-q2")
        assert [r.grade for r in update.review_results] == [5, 0]

        assert cards["q1"].review_count == 1
        assert cards["q1"].last_grade == 5
        assert cards["q1"].interval == 1
        assert cards["q1"].due_date == now + timedelta(days=1)
        assert cards["q1"].stability == pytest.approx(0.45)
        assert cards["q2"].fail_count == 1
        assert cards["q2"].stability == pytest.approx(0.15)

        assert state.domain_statuses[Domain.KNEE].items_completed == 2
        assert state.band_status.streak_at_band == 1
        assert state.band_status.version == 1
        assert state.band_status.updated_at == now
        assert update.summary.correct_rate == pytest.approx(0.5)
        assert len(state.recent_days) == 1
        assert update.adjustment is None
        assert not update.recovery_recommended

    def test_existing_card_is_reviewed_not_duplicated(self, learner, make_card, now):
        card = make_card(content_id="q1", review_count=1, interval=1)
        state = replace(learner, cards=(card,))

        update = process_session(state, [outcome("q1"), outcome("q9")], now=now)

        assert update.new_card_ids == ("card-quiz-q9",)
        assert [c.content_id for c in update.state.cards] == ["q1", "q9"]
        assert update.state.cards[0].id == card.id
        assert update.state.cards[0].review_count == 2
        assert update.state.cards[0].interval == 3
        assert update.state.domain_statuses[Domain.KNEE].items_completed == 1

    def test_second_session_same_day(self, learner, now):
        first = process_session(learner, [outcome("q1")], now=now).state
        second = process_session(first, [outcome("q2")], now=now + timedelta(hours=4)).state

        assert len(second.recent_days) == 1
        assert second.band_status.streak_at_band == 1
        assert second.band_status.version == 2

    def test_demotion_and_recovery(self, learner, now):
        yesterday = DayPerformance(day=(now - timedelta(days=1)).date(), correct_rate=0.4, difficult=True)
        state = replace(learner, recent_days=(yesterday,))

        update = process_session(
            state, [outcome("q1", correct=False), outcome("q2", correct=False)], now=now
        )

        assert update.adjustment is not None
        assert update.adjustment.to_band == Band.B
        assert update.state.band_status.current_band == Band.B
        assert update.recovery_recommended
        assert update.state.is_recovery_mode
        assert any("Band C -> B" in event for event in update.events)

    def test_good_day_leaves_recovery(self, learner, now):
        bad = [
            DayPerformance(day=(now - timedelta(days=i)).date(), correct_rate=0.4, difficult=True)
            for i in (1, 2)
        ]
        state = replace(learner, recent_days=tuple(bad), is_recovery_mode=True)

        update = process_session(state, [outcome("q1"), outcome("q2")], now=now)

        assert not update.state.is_recovery_mode
        assert update.state.recent_days[0].day == now.date()

    def test_promotion(self, learner, make_band_status, now):
        status = make_band_status(
            band=Band.C, streak=2, correct_rate=0.9, hint_usage=0.5, updated_at=now - timedelta(days=1)
        )
        state = replace(learner, band_status=status)

        update = process_session(state, [outcome("q1"), outcome("q2"), outcome("q3")], now=now)

        assert update.adjustment.to_band == Band.D
        assert update.state.band_status.current_band == Band.D
        assert update.state.band_status.streak_at_band == 0
        assert update.state.band_status.version == status.version + 2

    @pytest.mark.parametrize("band,expected", [(Band.E, True), (Band.D, False)])
    def test_complication_case(self, learner, now, band, expected):
        update = process_session(
            learner, [outcome("cc1", band=band, is_complication_case=True)], now=now
        )
        gate = update.state.domain_statuses[Domain.KNEE].gate_progress
        assert gate.complication_case_passed is expected

    def test_new_leech(self, learner, make_card, now):
        card = make_card(content_id="q1", fail_count=7, review_count=5, interval=2)
        state = replace(learner, cards=(card,))

        update = process_session(state, [outcome("q1", correct=False, confidence=0.1)], now=now)

        assert update.new_leech_ids == (card.id,)
        assert update.state.cards[0].is_leech

    def test_untracked_domain(self, now):
        state = LearnerState.new(
            "st1", Domain.KNEE, {Domain.KNEE: 10}, all_domains=[Domain.KNEE, Domain.HIP], now=now
        )
        update = process_session(state, [outcome("t1", domain=Domain.TUMOR)], now=now)

        assert update.new_card_ids == ("card-quiz-t1",)
        assert Domain.TUMOR not in update.state.domain_statuses


class TestDomainGateFlow:
    def test_gated_domain_gets_retention_check(self, learner, now):
        state = with_gate(learner, complication_case_passed=True)
        statuses = dict(state.domain_statuses)
        statuses[Domain.KNEE] = replace(statuses[Domain.KNEE], items_completed=5)
        state = replace(state, domain_statuses=statuses)

        update = process_session(state, [outcome("q1"), outcome("q2")], now=now, rng=random.Random(2))

        knee = update.state.domain_statuses[Domain.KNEE]
        assert knee.state == DomainState.GATED
        assert len(update.state.retention_checks) == 1
        check = update.state.retention_checks[0]
        assert check.domain == Domain.KNEE
        assert check.scheduled_for == now + timedelta(days=7)
        assert set(check.card_ids) == {"card-quiz-q1", "card-quiz-q2"}
        assert any("Mini-OSCE" in event for event in update.events)

        # No second check while one is pending
        later = process_session(update.state, [outcome("q3")], now=now + timedelta(days=1))
        assert len(later.state.retention_checks) == 1

    def test_due_retention_check_resolves(self, learner, make_card, now):
        sampled = [make_card(content_id=f"r{i}", stability=0.9, reviewed_days_ago=8) for i in range(2)]
        check = RetentionCheck(
            domain=Domain.KNEE,
            card_ids=tuple(card.id for card in sampled),
            scheduled_for=now - timedelta(hours=1),
            required_avg_stability=0.7,
        )
        state = replace(learner, cards=tuple(sampled), retention_checks=(check,))

        update = process_session(state, [outcome("n1")], now=now)

        resolved = update.state.retention_checks[0]
        assert resolved.completed_at == now
        assert resolved.actual_avg_stability == pytest.approx(0.9)
        assert update.state.domain_statuses[Domain.KNEE].gate_progress.retention_check_passed
        assert any("Retention check for" in event for event in update.events)

    def test_future_retention_check_waits(self, learner, make_card, now):
        check = RetentionCheck(
            domain=Domain.KNEE,
            card_ids=("card-1",),
            scheduled_for=now + timedelta(days=3),
            required_avg_stability=0.7,
        )
        update = process_session(replace(learner, retention_checks=(check,)), [outcome("n1")], now=now)
        assert update.state.retention_checks[0].completed_at is None

    def test_primary_domain_completes(self, learner, make_card, now):
        cards = [make_card(stability=0.8, reviewed_days_ago=i + 1) for i in range(10)]
        state = with_gate(
            replace(learner, cards=tuple(cards)),
            mini_assessment_passed=True,
            retention_check_passed=True,
            complication_case_passed=True,
        )

        update = process_session(state, [outcome(cards[0].content_id)], now=now, rng=random.Random(4))

        assert update.completion is not None
        next_domain = update.completion.next_domain
        assert next_domain is not None
        assert update.state.domain_statuses[Domain.KNEE].state == DomainState.COMPLETED
        assert update.state.domain_statuses[next_domain].state == DomainState.ACTIVE
        assert update.state.primary_domain == next_domain
        assert update.state.completed_domains == [Domain.KNEE]

    def test_too_few_reviewed_cards_blocks_completion(self, learner, make_card, now):
        cards = [make_card(stability=0.95, reviewed_days_ago=i + 1) for i in range(8)]
        state = with_gate(
            replace(learner, cards=tuple(cards)),
            mini_assessment_passed=True,
            retention_check_passed=True,
            complication_case_passed=True,
        )

        update = process_session(state, [outcome(cards[0].content_id)], now=now)

        assert update.completion is None
        knee = update.state.domain_statuses[Domain.KNEE]
        assert knee.state == DomainState.ACTIVE
        assert not knee.gate_progress.srs_cards_stable
        assert update.state.primary_domain == Domain.KNEE
