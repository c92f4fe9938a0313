from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Optional


class MasteryLevel(IntEnum):
    NOT_STARTED = 0
    LEARNED = 1
    REVIEWED = 2
    PRACTICED = 3
    PROFICIENT = 4
    MASTERED = 5


MASTERY_LABELS: dict[int, str] = {
    MasteryLevel.NOT_STARTED: "Not Started",
    MasteryLevel.LEARNED: "Learned",
    MasteryLevel.REVIEWED: "Reviewed",
    MasteryLevel.PRACTICED: "Practiced",
    MasteryLevel.PROFICIENT: "Proficient",
    MasteryLevel.MASTERED: "Mastered",
}

_MASTERED_MIN_REVIEWS = 10
_PROFICIENT_MIN_REVIEWS = 5
_PRACTICED_MIN_REVIEWS = 3
_GOOD_AVERAGE = 4.0
_MASTERED_MIN_INTERVAL = 30


def classify_mastery(
    total_reviews: int,
    avg_review_score: float,
    current_interval_days: int,
    completed_at: Optional[datetime],
) -> MasteryLevel:
    """Determine the mastery level from review statistics.

    上から順に評価し、最初に一致した規則のレベルを返す。
    - 0 Not Started: レッスン未完了
    - 1 Learned: 完了済みだが成功レビューなし
    - 5 Mastered: 成功 10 回以上 / 平均 4.0 以上 / interval 30 日超
    - 4 Proficient: 成功 5 回以上 / 平均 4.0 以上
    - 3 Practiced: 成功 3 回以上
    - 2 Reviewed: 成功 1 回以上

    レベルは毎回再計算される値であり、平均点が下がれば下位に戻ることもある。
    """
    if completed_at is None:
        return MasteryLevel.NOT_STARTED
    if total_reviews == 0:
        return MasteryLevel.LEARNED
    if (
        total_reviews >= _MASTERED_MIN_REVIEWS
        and avg_review_score >= _GOOD_AVERAGE
        and current_interval_days > _MASTERED_MIN_INTERVAL
    ):
        return MasteryLevel.MASTERED
    if total_reviews >= _PROFICIENT_MIN_REVIEWS and avg_review_score >= _GOOD_AVERAGE:
        return MasteryLevel.PROFICIENT
    if total_reviews >= _PRACTICED_MIN_REVIEWS:
        return MasteryLevel.PRACTICED
    if total_reviews >= 1:
        return MasteryLevel.REVIEWED
    return MasteryLevel.LEARNED


def running_average(previous_avg: float, previous_count: int, score: int) -> float:
    """Mean of `previous_count` scores averaging `previous_avg`, plus one new score."""
    count = previous_count + 1
    return (previous_avg * previous_count + score) / count
