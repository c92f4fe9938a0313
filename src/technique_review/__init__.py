"""Spaced-repetition review scheduling for technique nodes."""

from .errors import (
    AlreadyScheduledError,
    InvalidLessonError,
    InvalidScoreError,
    NotCompletedError,
    NotFoundError,
    PersistenceError,
    ReviewError,
)
from .mastery import MASTERY_LABELS, MasteryLevel, classify_mastery
from .review_queue import ReviewQueueManager
from .srs import REVIEW_SCORE_LABELS, ReviewScore, ScheduleResult, next_interval

__version__ = "0.1.0"

__all__ = [
    "MASTERY_LABELS",
    "REVIEW_SCORE_LABELS",
    "AlreadyScheduledError",
    "InvalidLessonError",
    "InvalidScoreError",
    "MasteryLevel",
    "NotCompletedError",
    "NotFoundError",
    "PersistenceError",
    "ReviewError",
    "ReviewQueueManager",
    "ReviewScore",
    "ScheduleResult",
    "classify_mastery",
    "next_interval",
]
