from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .learn import Node, Progress


class QueueStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    skipped = "skipped"


class QueueItem(BaseModel):
    """Review queue entry for one (learner, node) pair.

    status は表示用の情報であり、再スケジュールを妨げない。
    """

    learner_id: str
    node_id: str
    due_date: date
    interval_days: int = Field(default=0, ge=0)
    ease_factor: float = Field(default=2.5, ge=1.3, le=5.0)
    status: QueueStatus = QueueStatus.pending
    last_review_score: Optional[int] = None
    next_review_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QueueItemWithNode(BaseModel):
    """A queue item joined with its node's display attributes."""

    item: QueueItem
    node: Node


class ReviewOutcome(BaseModel):
    progress: Progress
    item: QueueItem
    points_awarded: int = 0
    next_review_date: date


class LessonCompletionResult(BaseModel):
    progress: Progress
    all_lessons_complete: bool
    xp_awarded: int = 0
    queue_item: Optional[QueueItem] = None


class LearningStats(BaseModel):
    """Read-time aggregates for one learner.

    - reviews_due_count: as_of 時点で due の件数（残数）
    - next_review_date: due でない項目の最小 due_date（無ければ None）
    - review_streak: レビューを行った連続日数
    - mastery_breakdown: レベル 1〜5 ごとのノード数
    """

    total_nodes_completed: int = 0
    mastery_breakdown: dict[int, int] = Field(default_factory=dict)
    reviews_due_count: int = 0
    next_review_date: Optional[date] = None
    review_streak: int = 0
