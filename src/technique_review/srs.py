from __future__ import annotations

import math
from datetime import date, timedelta
from enum import IntEnum
from typing import NamedTuple

from .config import MAX_EASE_FACTOR, MIN_EASE_FACTOR
from .errors import InvalidScoreError


class ReviewScore(IntEnum):
    """Self-assessed recall quality for one review.

    - FORGOT: 要点を思い出せなかった
    - HARD: 思い出せたが苦労した
    - GOOD: 問題なく思い出せた
    - EASY: 即座に思い出せた
    """

    FORGOT = 0
    HARD = 3
    GOOD = 4
    EASY = 5


REVIEW_SCORE_LABELS: dict[int, str] = {
    ReviewScore.FORGOT: "Forgot",
    ReviewScore.HARD: "Hard",
    ReviewScore.GOOD: "Good",
    ReviewScore.EASY: "Easy",
}

PASSING_SCORE = 3
EASY_BONUS = 1.3
_FAIL_EASE_PENALTY = 0.2
_EASE_DELTAS: dict[int, float] = {
    ReviewScore.HARD: -0.15,
    ReviewScore.GOOD: 0.0,
    ReviewScore.EASY: 0.15,
}


class ScheduleResult(NamedTuple):
    interval_days: int
    ease_factor: float


def validate_score(score: object) -> ReviewScore:
    """Return the score as a ReviewScore or raise InvalidScoreError.

    bool は int のサブクラスだが採点値としては受け付けない。
    """
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidScoreError(score)
    try:
        return ReviewScore(score)
    except ValueError:
        raise InvalidScoreError(score) from None


def is_passing(score: int) -> bool:
    return score >= PASSING_SCORE


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_ease(ease: float) -> float:
    return max(MIN_EASE_FACTOR, min(MAX_EASE_FACTOR, ease))


def next_interval(current_interval: int, ease_factor: float, score: int) -> ScheduleResult:
    """Calculate the next review interval and ease factor (fixed SM-2 variant).

    - score 0: interval は 1 日にリセット、ease は 0.2 減少
    - score 3/4/5: ease を -0.15 / 0 / +0.15 調整した後に interval を伸ばす
      (0 -> 1 日, 1 -> 3 日, 以降は round(interval * ease))
    - score 5 は interval にさらに 1.3 倍のボーナス

    ease は全経路で [1.3, 5.0] に収められる。
    """
    checked = validate_score(score)
    if isinstance(current_interval, bool) or not isinstance(current_interval, int) or current_interval < 0:
        raise ValueError(f"current_interval must be a non-negative int, got {current_interval!r}")

    if not is_passing(checked):
        return ScheduleResult(interval_days=1, ease_factor=clamp_ease(ease_factor - _FAIL_EASE_PENALTY))

    ease = clamp_ease(ease_factor + _EASE_DELTAS[checked])

    if current_interval == 0:
        interval = 1
    elif current_interval == 1:
        interval = 3
    else:
        interval = round_half_away(current_interval * ease)

    if checked == ReviewScore.EASY:
        interval = round_half_away(interval * EASY_BONUS)

    return ScheduleResult(interval_days=max(1, interval), ease_factor=ease)


# --- date helpers ---
def next_review_date(interval_days: int, today: date) -> date:
    return today + timedelta(days=interval_days)


def is_review_due(due_date: date, today: date) -> bool:
    """True if the review is due today or overdue."""
    return due_date <= today


def days_until_review(due_date: date, today: date) -> int:
    """Days until the review; negative when overdue."""
    return (due_date - today).days
