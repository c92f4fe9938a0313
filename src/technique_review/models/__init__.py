from .learn import LESSONS_PER_NODE, Difficulty, Node, Progress
from .review import (
    LearningStats,
    LessonCompletionResult,
    QueueItem,
    QueueItemWithNode,
    QueueStatus,
    ReviewOutcome,
)

__all__ = [
    "LESSONS_PER_NODE",
    "Difficulty",
    "LearningStats",
    "LessonCompletionResult",
    "Node",
    "Progress",
    "QueueItem",
    "QueueItemWithNode",
    "QueueStatus",
    "ReviewOutcome",
]
