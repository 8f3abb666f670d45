"""
Unit tests for the SRS engine.

Covers interval/ease/stability updates, the new-card ladder, leech
detection, due-card selection, urgency ranking and telemetry grading.
"""

from datetime import timedelta

import pytest

from orto_scheduler.core.constants import SRS, SRSConstants
from orto_scheduler.core.enums import Domain
from orto_scheduler.core.errors import InvariantViolation
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


class TestEaseFactor:
    """EF' = EF + (0.1 - (5 - g) * (0.08 + (5 - g) * 0.02)), clamped."""

    @pytest.mark.parametrize(
        "grade,expected",
        [(5, 2.5), (4, 2.5), (3, 2.36), (2, 2.18), (1, 1.96), (0, 1.7)],
    )
    def test_update_from_full_ease(self, make_card, now, grade, expected):
        card = make_card(ease_factor=2.5, review_count=3, interval=5)
        result = calculate_next_review(card, grade, now=now)
        assert result.ease_factor == pytest.approx(min(expected, 2.5))

    def test_grade_three_from_lower_ease(self, make_card, now):
        card = make_card(ease_factor=2.0, review_count=3, interval=5)
        result = calculate_next_review(card, 3, now=now)
        assert result.ease_factor == pytest.approx(1.86)

    def test_repeated_failures_stay_above_minimum(self, make_card, now):
        card = make_card(ease_factor=2.5)
        for _ in range(20):
            card, _ = process_review(card, 0, 30, now=now)
            assert SRS.min_ease_factor <= card.ease_factor <= SRS.max_ease_factor
        assert card.ease_factor == pytest.approx(SRS.min_ease_factor)

    def test_repeated_perfect_grades_stay_below_maximum(self, make_card, now):
        card = make_card(ease_factor=1.3)
        for _ in range(20):
            card, _ = process_review(card, 5, 10, now=now)
            assert SRS.min_ease_factor <= card.ease_factor <= SRS.max_ease_factor
        assert card.ease_factor == pytest.approx(SRS.max_ease_factor)


class TestNewCardLadder:
    """Cards with fewer than three reviews follow [1, 3, 7]."""

    @pytest.mark.parametrize("review_count,expected", [(0, 1), (1, 3), (2, 7)])
    @pytest.mark.parametrize("grade", [3, 4, 5])
    def test_ladder_for_passing_grades(self, make_card, now, review_count, expected, grade):
        card = make_card(review_count=review_count, interval=expected)
        assert calculate_next_review(card, grade, now=now).interval == expected

    @pytest.mark.parametrize("ease_factor", [1.3, 1.8, 2.5])
    def test_ladder_ignores_ease_factor(self, make_card, now, ease_factor):
        card = make_card(review_count=2, interval=3, ease_factor=ease_factor)
        assert calculate_next_review(card, 5, now=now).interval == 7

    @pytest.mark.parametrize("grade", [0, 1, 2])
    def test_failing_grade_returns_to_first_rung(self, make_card, now, grade):
        card = make_card(review_count=2, interval=3)
        assert calculate_next_review(card, grade, now=now).interval == 1

    def test_brand_new_card_perfect_recall(self, make_card, now):
        """New card, stability 0.5, EF 2.5, grade 5 -> 1 day, stability up."""
        card = make_card(review_count=0, stability=0.5, ease_factor=2.5)
        result = calculate_next_review(card, 5, now=now)

        assert result.interval == 1
        assert result.due_date == now + timedelta(days=1)
        assert result.stability == pytest.approx(0.65)
        assert result.stability <= 1.0


class TestEstablishedCards:
    """Cards with three or more reviews use the ease factor."""

    @pytest.mark.parametrize("grade", [3, 4, 5])
    @pytest.mark.parametrize("interval", [1, 4, 10, 60])
    @pytest.mark.parametrize("ease_factor", [1.3, 2.0, 2.5])
    def test_interval_never_shrinks_on_success(self, make_card, now, grade, interval, ease_factor):
        card = make_card(review_count=3, interval=interval, ease_factor=ease_factor)
        result = calculate_next_review(card, grade, now=now)
        assert result.interval >= interval
        if grade >= 4:
            assert result.ease_factor >= ease_factor - 1e-9

    def test_interval_multiplied_by_new_ease(self, make_card, now):
        card = make_card(review_count=5, interval=10, ease_factor=2.5)
        assert calculate_next_review(card, 5, now=now).interval == 25
        # EF' = 2.36 -> 23.6 rounds to 24
        assert calculate_next_review(card, 3, now=now).interval == 24

    def test_half_rounds_up(self, make_card, now):
        # 5 * 2.5 = 12.5
        card = make_card(review_count=4, interval=5, ease_factor=2.5)
        assert calculate_next_review(card, 5, now=now).interval == 13

    def test_grade_two_keeps_interval(self, make_card, now):
        card = make_card(review_count=4, interval=12)
        assert calculate_next_review(card, 2, now=now).interval == 12

    @pytest.mark.parametrize("grade", [0, 1])
    @pytest.mark.parametrize("interval", [1, 7, 45])
    def test_failure_resets_to_one_day(self, make_card, now, grade, interval):
        card = make_card(review_count=6, interval=interval, stability=0.6)
        result = calculate_next_review(card, grade, now=now)
        assert result.interval == 1
        assert result.stability < 0.6

    def test_due_date_is_interval_days_ahead(self, make_card, now):
        card = make_card(review_count=3, interval=4, ease_factor=2.5)
        result = calculate_next_review(card, 5, now=now)
        assert result.due_date == now + timedelta(days=result.interval)


class TestStability:
    @pytest.mark.parametrize(
        "grade,expected",
        [(5, 0.55), (4, 0.55), (3, 0.48), (2, 0.43), (1, 0.25), (0, 0.25)],
    )
    def test_delta_per_grade(self, make_card, now, grade, expected):
        card = make_card(review_count=3, interval=3, stability=0.4)
        assert calculate_next_review(card, grade, now=now).stability == pytest.approx(expected)

    def test_durable_recall_bonus(self, make_card, now):
        card = make_card(review_count=3, interval=7, stability=0.5)
        assert calculate_next_review(card, 4, now=now).stability == pytest.approx(0.7)

    def test_no_bonus_below_a_week(self, make_card, now):
        card = make_card(review_count=3, interval=6, stability=0.5)
        assert calculate_next_review(card, 4, now=now).stability == pytest.approx(0.65)

    def test_capped_at_one(self, make_card, now):
        card = make_card(review_count=3, interval=20, stability=0.95)
        assert calculate_next_review(card, 5, now=now).stability == 1.0

    def test_floored_at_minimum(self, make_card, now):
        card = make_card(review_count=3, interval=20, stability=0.2)
        result = calculate_next_review(card, 0, now=now)
        assert result.stability == pytest.approx(0.1)
        assert result.stability < 0.2


class TestGradeValidation:
    @pytest.mark.parametrize("grade", [-1, 6, 10, True])
    def test_out_of_range_grade_raises(self, make_card, now, grade):
        with pytest.raises(InvariantViolation):
            calculate_next_review(make_card(), grade, now=now)


class TestProcessReview:
    def test_records_history(self, make_card, now):
        card = make_card(review_count=1)
        updated, result = process_review(card, 4, 42.0, hints_used=1, now=now)

        assert updated.review_count == 2
        assert updated.last_grade == 4
        assert updated.last_reviewed == now
        assert updated.interval == 3
        assert result.card_id == card.id
        assert result.grade == 4
        assert result.time_spent_seconds == 42.0
        assert result.hints_used == 1
        assert result.timestamp == now
        assert result.new_interval == updated.interval
        assert result.new_due_date == updated.due_date
        assert result.new_ease_factor == updated.ease_factor

    def test_input_card_is_not_mutated(self, make_card, now):
        card = make_card()
        process_review(card, 5, 10, now=now)
        assert card.review_count == 0
        assert card.last_grade is None

    def test_leech_flag_at_threshold(self, make_card, now):
        card = make_card(fail_count=SRS.leech_threshold - 2)
        card, _ = process_review(card, 1, 30, now=now)
        assert not card.is_leech
        card, _ = process_review(card, 0, 30, now=now)
        assert card.fail_count == SRS.leech_threshold
        assert card.is_leech

    def test_default_leech_threshold_is_eight(self):
        assert SRS.leech_threshold == 8

    def test_custom_leech_threshold(self, make_card, now):
        constants = SRSConstants(leech_threshold=2)
        card, _ = process_review(make_card(fail_count=1), 0, 30, now=now, constants=constants)
        assert card.is_leech

    def test_passing_grade_clears_leech(self, make_card, now):
        card = make_card(fail_count=9, is_leech=True)
        updated, _ = process_review(card, 3, 30, now=now)
        assert updated.fail_count == 0
        assert not updated.is_leech

    def test_grade_two_leaves_failures(self, make_card, now):
        card = make_card(fail_count=4)
        updated, _ = process_review(card, 2, 30, now=now)
        assert updated.fail_count == 4
        assert not updated.is_leech

    def test_detect_leeches(self, make_card):
        cards = [make_card(is_leech=True), make_card(), make_card(is_leech=True)]
        assert [c.is_leech for c in detect_leeches(cards)] == [True, True]


class TestDueCards:
    def test_only_today_or_earlier_sorted(self, make_card, now):
        future = make_card(due_in_days=1)
        later_today = make_card(due_in_days=0.4)
        overdue = make_card(due_in_days=-2)
        due_now = make_card(due_in_days=0)

        due = get_due_cards([future, later_today, overdue, due_now], now)

        assert [c.id for c in due] == [overdue.id, due_now.id, later_today.id]
        assert future not in due

    def test_empty_input(self, now):
        assert get_due_cards([], now) == []


class TestPrioritization:
    def test_urgency_formula(self, make_card, now):
        card = make_card(domain=Domain.KNEE, stability=0.2, due_in_days=-7)
        assert calculate_urgency(card, Domain.KNEE, (), now) == pytest.approx(0.8)
        assert calculate_urgency(card, Domain.HIP, (Domain.KNEE,), now) == pytest.approx(0.56)
        assert calculate_urgency(card, Domain.HIP, (), now) == pytest.approx(0.4)

    def test_overdue_capped_at_one_week(self, make_card, now):
        card = make_card(stability=0.0, due_in_days=-30)
        assert calculate_urgency(card, card.domain, (), now) == pytest.approx(1.0)

    def test_not_yet_overdue_scores_zero(self, make_card, now):
        card = make_card(due_in_days=2)
        assert calculate_urgency(card, card.domain, (), now) == 0.0

    def test_sorted_by_urgency_and_limited(self, make_card, now):
        primary = make_card(domain=Domain.KNEE, stability=0.2, due_in_days=-7)  # 0.8
        other = make_card(domain=Domain.TUMOR, stability=0.2, due_in_days=-3.5)  # 0.2
        recent = make_card(domain=Domain.HIP, stability=0.5, due_in_days=-14)  # 0.35

        ranked = prioritize_cards([other, recent, primary], Domain.KNEE, [Domain.HIP], now=now)
        assert [c.id for c in ranked] == [primary.id, recent.id, other.id]

        limited = prioritize_cards([other, recent, primary], Domain.KNEE, [Domain.HIP], limit=2, now=now)
        assert [c.id for c in limited] == [primary.id, recent.id]


class TestDomainQueries:
    def test_last_reviewed_newest_first(self, make_card):
        cards = [
            make_card(reviewed_days_ago=5),
            make_card(reviewed_days_ago=1),
            make_card(),  # never reviewed
            make_card(domain=Domain.HIP, reviewed_days_ago=0),
            make_card(reviewed_days_ago=3),
        ]
        recent = get_last_reviewed_cards(cards, Domain.KNEE, count=2)
        assert [c.id for c in recent] == [cards[1].id, cards[4].id]

    def test_average_stability(self, make_card):
        assert get_average_stability([]) == 0.0
        cards = [make_card(stability=0.4), make_card(stability=0.8)]
        assert get_average_stability(cards) == pytest.approx(0.6)


class TestBehaviorToGrade:
    @pytest.mark.parametrize(
        "correct,hints,time_ratio,confidence,expected",
        [
            (False, 0, 1.0, 0.1, 0),
            (False, 3, 1.0, 0.1, 0),
            (False, 2, 1.0, 0.5, 1),
            (False, 1, 1.0, 0.5, 2),
            (False, 0, 0.5, 0.9, 2),
            (True, 0, 0.5, 0.5, 5),
            (True, 0, 0.8, 0.5, 4),
            (True, 1, 1.1, 0.5, 4),
            (True, 1, 1.2, 0.5, 3),
            (True, 2, 0.5, 0.5, 3),
        ],
    )
    def test_grade_table(self, correct, hints, time_ratio, confidence, expected):
        assert behavior_to_grade(correct, hints, time_ratio, confidence) == expected
