"""
Exceptions raised by the review core.

Every error propagates to the caller; nothing here is retried internally.
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base exception for all review scheduling errors."""
    pass


class InvalidScoreError(ReviewError, ValueError):
    """Raised when a review score is not one of 0, 3, 4 or 5."""

    def __init__(self, score: object) -> None:
        self.score = score
        super().__init__(f"invalid review score: {score!r} (expected one of 0, 3, 4, 5)")


class InvalidLessonError(ReviewError, ValueError):
    """Raised when a lesson number is not 1, 2 or 3."""

    def __init__(self, lesson_number: object) -> None:
        self.lesson_number = lesson_number
        super().__init__(f"invalid lesson number: {lesson_number!r} (expected 1, 2 or 3)")


class NotFoundError(ReviewError, LookupError):
    """Raised when no progress or queue item exists for a (learner, node) pair."""

    def __init__(self, what: str, learner_id: str, node_id: str) -> None:
        self.what = what
        self.learner_id = learner_id
        self.node_id = node_id
        super().__init__(f"{what} not found for learner={learner_id!r} node={node_id!r}")


class AlreadyScheduledError(ReviewError):
    """Raised when a queue item already exists for the pair."""

    def __init__(self, learner_id: str, node_id: str) -> None:
        self.learner_id = learner_id
        self.node_id = node_id
        super().__init__(f"review already scheduled for learner={learner_id!r} node={node_id!r}")


class NotCompletedError(ReviewError):
    """Raised when a review is scheduled before all lessons of the node are complete."""

    def __init__(self, learner_id: str, node_id: str) -> None:
        self.learner_id = learner_id
        self.node_id = node_id
        super().__init__(f"lessons not completed for learner={learner_id!r} node={node_id!r}")


class PersistenceError(ReviewError):
    """Wraps a failure of the storage layer. The original error is kept as __cause__."""
    pass
