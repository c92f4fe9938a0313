"""Fixtures for store and review queue tests."""

from datetime import UTC, datetime, timedelta

import pytest

from technique_review.catalog import FixedPointsPolicy, InMemoryNodeCatalog
from technique_review.models import Difficulty, Node
from technique_review.review_queue import ReviewQueueManager
from technique_review.store import SQLiteReviewStore


class FakeClock:
    """Manually advanced clock returning timezone-aware UTC datetimes."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: int) -> None:
        self.now = self.now + timedelta(days=days)

    @property
    def today(self):
        return self.now.date()


@pytest.fixture()
def store(tmp_path):
    return SQLiteReviewStore(db_path=str(tmp_path / "review.sqlite3"))


@pytest.fixture()
def clock():
    return FakeClock(datetime(2024, 3, 1, 9, 30, tzinfo=UTC))


@pytest.fixture()
def catalog():
    return InMemoryNodeCatalog(
        [
            Node(id="armbar", name="Armbar from Guard", difficulty=Difficulty.beginner, order_index=1, xp_reward=50),
            Node(id="triangle", name="Triangle Choke", difficulty=Difficulty.intermediate, order_index=2, xp_reward=75),
            Node(id="kimura", name="Kimura", difficulty=Difficulty.beginner, order_index=3, xp_reward=60),
        ]
    )


@pytest.fixture()
def manager(store, catalog, clock):
    return ReviewQueueManager(
        store=store,
        catalog=catalog,
        points_policy=FixedPointsPolicy(points=10, award_on_failure=False),
        clock=clock,
    )


@pytest.fixture()
def complete_node(manager):
    """Complete all three lessons of a node and return the last completion result."""

    def _complete(learner_id: str, node_id: str):
        result = None
        for lesson_number in (1, 2, 3):
            result = manager.complete_lesson(learner_id, node_id, lesson_number)
        return result

    return _complete
