from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


LESSONS_PER_NODE = (1, 2, 3)


class Difficulty(str, Enum):
    beginner = "Beginner"
    intermediate = "Intermediate"
    advanced = "Advanced"


class Node(BaseModel):
    """A learnable technique. Owned by content authoring; read-only here."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    difficulty: Difficulty = Difficulty.beginner
    order_index: int = 0
    xp_reward: int = Field(default=0, ge=0)
    discipline: Optional[str] = None


class Progress(BaseModel):
    """Per (learner, node) progress record.

    - lessons_completed: 完了済みレッスン番号（{1,2,3} の部分集合、昇順）
    - completed_at: 3 レッスンが初めて揃った時刻。一度設定されたら変更しない
    - total_reviews / avg_review_score: 成功レビュー（score >= 3）のみ集計
    """

    learner_id: str
    node_id: str
    lessons_completed: list[int] = Field(default_factory=list)
    completed_at: Optional[datetime] = None
    mastery_level: int = Field(default=0, ge=0, le=5)
    total_reviews: int = Field(default=0, ge=0)
    avg_review_score: float = Field(default=0.0, ge=0.0)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("lessons_completed", mode="after")
    @classmethod
    def _normalise_lessons(cls, value: list[int]) -> list[int]:
        unknown = [n for n in value if n not in LESSONS_PER_NODE]
        if unknown:
            raise ValueError(f"unknown lesson numbers: {unknown}")
        return sorted(set(value))

    @property
    def all_lessons_complete(self) -> bool:
        return tuple(self.lessons_completed) == LESSONS_PER_NODE

