"""External collaborators consumed by the review queue.

- NodeCatalog: ノード（テクニック）メタデータの読み取り専用ストア
- PointsPolicy: レビュー成功時に付与する XP のビジネスルール

どちらもアプリ側が実装を差し替えられるよう Protocol として定義し、
テストや単一プロセス運用向けの簡易実装を同梱する。
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from .config import settings
from .models import Node
from .srs import is_passing


class NodeCatalog(Protocol):
    def get_node(self, node_id: str) -> Optional[Node]: ...


class PointsPolicy(Protocol):
    def points_for_review(self, score: int) -> int: ...


class InMemoryNodeCatalog:
    """Dict-backed node catalog."""

    def __init__(self, nodes: Iterable[Node] = ()) -> None:
        self._nodes: dict[str, Node] = {node.id: node for node in nodes}

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)


class FixedPointsPolicy:
    """Award a fixed number of points per review.

    既定では成功レビュー（score >= 3）のみに付与する。
    """

    def __init__(self, points: Optional[int] = None, award_on_failure: Optional[bool] = None) -> None:
        self.points = settings.review_xp_award if points is None else points
        self.award_on_failure = (
            settings.award_xp_on_failed_review if award_on_failure is None else award_on_failure
        )

    def points_for_review(self, score: int) -> int:
        if is_passing(score) or self.award_on_failure:
            return self.points
        return 0
