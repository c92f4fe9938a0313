from datetime import date

import pytest

from technique_review.errors import InvalidScoreError
from technique_review.srs import (
    REVIEW_SCORE_LABELS,
    ReviewScore,
    days_until_review,
    is_review_due,
    next_interval,
    next_review_date,
    round_half_away,
    validate_score,
)


@pytest.mark.parametrize("ease", [1.3, 1.35, 2.5, 4.9, 5.0])
@pytest.mark.parametrize("score", [0, 3, 4, 5])
def test_ease_stays_within_bounds(ease, score):
    for interval in (0, 1, 2, 7, 40):
        result = next_interval(interval, ease, score)
        assert 1.3 <= result.ease_factor <= 5.0
        assert result.interval_days >= 1


@pytest.mark.parametrize("interval", [0, 1, 3, 10, 120])
def test_forgot_always_resets_to_one_day(interval):
    assert next_interval(interval, 3.0, 0).interval_days == 1


def test_forgot_lowers_ease_but_not_below_floor():
    assert next_interval(10, 2.5, 0).ease_factor == pytest.approx(2.3)
    assert next_interval(10, 1.4, 0).ease_factor == 1.3
    assert next_interval(10, 1.3, 0).ease_factor == 1.3


def test_first_successful_review_keeps_default_ease():
    assert next_interval(0, 2.5, 4) == (1, 2.5)


def test_second_review_is_fixed_at_three_days():
    assert next_interval(1, 2.5, 4) == (3, 2.5)
    # ease does not influence the second step
    assert next_interval(1, 4.0, 4).interval_days == 3


def test_easy_review_applies_growth_bonus():
    result = next_interval(3, 2.5, 5)
    assert result.interval_days == 10
    assert result.ease_factor == pytest.approx(2.65)


def test_easy_bonus_on_early_steps():
    assert next_interval(0, 2.5, 5).interval_days == 1
    assert next_interval(1, 2.5, 5).interval_days == 4


def test_hard_review_reduces_ease():
    result = next_interval(10, 2.5, 3)
    assert result.ease_factor == pytest.approx(2.35)
    assert result.interval_days == 24


def test_hard_review_at_floor_and_easy_at_ceiling():
    assert next_interval(10, 1.3, 3) == (13, 1.3)
    assert next_interval(10, 5.0, 5) == (65, 5.0)


def test_ties_round_away_from_zero():
    # 5 * 2.5 = 12.5 -> 13 (banker's rounding would give 12)
    assert next_interval(5, 2.5, 4).interval_days == 13


def test_identical_inputs_give_identical_results():
    assert next_interval(7, 2.2, 3) == next_interval(7, 2.2, 3)


def test_accepts_review_score_enum():
    assert next_interval(0, 2.5, ReviewScore.GOOD) == (1, 2.5)


@pytest.mark.parametrize("score", [1, 2, 6, -1, True, 4.0, "4", None])
def test_invalid_scores_are_rejected(score):
    with pytest.raises(InvalidScoreError) as excinfo:
        next_interval(1, 2.5, score)
    assert excinfo.value.score == score


def test_invalid_score_is_a_value_error():
    with pytest.raises(ValueError):
        validate_score(2)


@pytest.mark.parametrize("interval", [-1, 1.5, None])
def test_invalid_interval_is_rejected(interval):
    with pytest.raises(ValueError):
        next_interval(interval, 2.5, 4)


def test_round_half_away():
    assert round_half_away(2.5) == 3
    assert round_half_away(3.5) == 4
    assert round_half_away(2.49) == 2
    assert round_half_away(-2.5) == -3
    assert round_half_away(0.0) == 0


def test_date_helpers():
    today = date(2024, 2, 28)
    assert next_review_date(3, today) == date(2024, 3, 2)
    assert is_review_due(today, today)
    assert is_review_due(date(2024, 2, 1), today)
    assert not is_review_due(date(2024, 2, 29), today)
    assert days_until_review(date(2024, 3, 1), today) == 2
    assert days_until_review(date(2024, 2, 25), today) == -3


def test_score_labels():
    assert [REVIEW_SCORE_LABELS[score] for score in ReviewScore] == ["Forgot", "Hard", "Good", "Easy"]
