from __future__ import annotations

import threading
import weakref
from datetime import UTC, date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .catalog import FixedPointsPolicy, NodeCatalog, PointsPolicy
from .config import settings
from .errors import AlreadyScheduledError, InvalidLessonError, NotCompletedError, NotFoundError
from .logging import logger
from .mastery import MasteryLevel, classify_mastery, running_average
from .models import (
    LESSONS_PER_NODE,
    LearningStats,
    LessonCompletionResult,
    Progress,
    QueueItem,
    QueueItemWithNode,
    QueueStatus,
    ReviewOutcome,
)
from .srs import is_passing, is_review_due, next_interval, next_review_date, validate_score
from .store import ReviewStore, ReviewTransaction


def _utcnow() -> datetime:
    return datetime.now(UTC)


class PairLocks:
    """One lock per (learner_id, node_id) pair.

    同じペアへの更新だけを直列化し、別ペア・別学習者の更新は互いに待たない。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # 保持者・待機者がいなくなったロックは自動的に破棄される
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], threading.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def for_pair(self, learner_id: str, node_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get((learner_id, node_id))
            if lock is None:
                lock = threading.Lock()
                self._locks[(learner_id, node_id)] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class ReviewQueueManager:
    """Review queue lifecycle for learners and technique nodes.

    - complete_lesson: レッスン完了を記録し、3 つ揃った時点で初回レビューを登録
    - schedule_initial_review: interval=0 / ease=既定値 / due=今日 でキュー項目を作成
    - list_due: due_date <= as_of の項目をノード情報付きで返す（読み取りのみ）
    - submit_review: SM-2 で次回間隔を計算し、キュー項目と進捗を同一トランザクションで更新
    - skip_review: 翌日に再スケジュール（統計は変更しない）

    書き込み系の操作は (learner_id, node_id) ごとのロックと store.transaction() の
    両方の内側で実行される。
    """

    def __init__(
        self,
        store: ReviewStore,
        catalog: NodeCatalog,
        points_policy: Optional[PointsPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self.points_policy = points_policy if points_policy is not None else FixedPointsPolicy()
        self._clock = clock
        self._locks = PairLocks()

    def _today(self) -> date:
        return self._clock().date()

    # --- write operations ---
    def complete_lesson(self, learner_id: str, node_id: str, lesson_number: int) -> LessonCompletionResult:
        """Record a completed lesson; the third distinct lesson completes the node."""
        if isinstance(lesson_number, bool) or lesson_number not in LESSONS_PER_NODE:
            raise InvalidLessonError(lesson_number)

        now = self._clock()
        with self._locks.for_pair(learner_id, node_id):
            with self.store.transaction() as tx:
                progress = tx.get_progress(learner_id, node_id)
                if progress is None:
                    progress = Progress(learner_id=learner_id, node_id=node_id, created_at=now)
                was_complete = progress.completed_at is not None
                lessons = sorted(set(progress.lessons_completed) | {lesson_number})
                progress = progress.model_copy(update={"lessons_completed": lessons, "updated_at": now})

                newly_complete = not was_complete and tuple(lessons) == LESSONS_PER_NODE
                xp_awarded = 0
                queue_item: Optional[QueueItem] = None
                if newly_complete:
                    # completed_at は一度だけ設定する
                    progress = progress.model_copy(
                        update={
                            "completed_at": now,
                            "mastery_level": int(
                                classify_mastery(
                                    progress.total_reviews, progress.avg_review_score, 0, now
                                )
                            ),
                        }
                    )
                    node = self.catalog.get_node(node_id)
                    xp_awarded = node.xp_reward if node is not None else 0
                tx.save_progress(progress)
                if newly_complete:
                    queue_item = self._schedule(tx, learner_id, node_id, now)

        logger.info(
            "lesson_completed",
            learner_id=learner_id,
            node_id=node_id,
            lesson_number=lesson_number,
            node_completed=newly_complete,
            xp_awarded=xp_awarded,
        )
        return LessonCompletionResult(
            progress=progress,
            all_lessons_complete=progress.all_lessons_complete,
            xp_awarded=xp_awarded,
            queue_item=queue_item,
        )

    def schedule_initial_review(self, learner_id: str, node_id: str) -> QueueItem:
        """Create the first queue item for a completed node.

        二重登録は AlreadyScheduledError、未完了ノードは NotCompletedError。
        """
        now = self._clock()
        with self._locks.for_pair(learner_id, node_id):
            with self.store.transaction() as tx:
                item = self._schedule(tx, learner_id, node_id, now)
        logger.info("review_scheduled", learner_id=learner_id, node_id=node_id, due_date=item.due_date.isoformat())
        return item

    def _schedule(self, tx: ReviewTransaction, learner_id: str, node_id: str, now: datetime) -> QueueItem:
        progress = tx.get_progress(learner_id, node_id)
        if progress is None or progress.completed_at is None:
            raise NotCompletedError(learner_id, node_id)
        if tx.get_queue_item(learner_id, node_id) is not None:
            raise AlreadyScheduledError(learner_id, node_id)
        item = QueueItem(
            learner_id=learner_id,
            node_id=node_id,
            due_date=now.date(),
            interval_days=0,
            ease_factor=settings.default_ease_factor,
            status=QueueStatus.pending,
            created_at=now,
            updated_at=now,
        )
        tx.insert_queue_item(item)
        return item

    def submit_review(self, learner_id: str, node_id: str, score: int) -> ReviewOutcome:
        """Apply one review score to the pair's queue item and progress.

        失敗（score < 3）の場合 total_reviews / avg_review_score は変更しないが、
        mastery_level は新しい interval で毎回再計算する。
        """
        checked = validate_score(score)
        now = self._clock()
        today = now.date()

        with self._locks.for_pair(learner_id, node_id):
            with self.store.transaction() as tx:
                item = tx.get_queue_item(learner_id, node_id)
                if item is None:
                    raise NotFoundError("queue item", learner_id, node_id)
                progress = tx.get_progress(learner_id, node_id)
                if progress is None:
                    raise NotFoundError("progress", learner_id, node_id)

                result = next_interval(item.interval_days, item.ease_factor, checked)
                due = next_review_date(result.interval_days, today)
                item = item.model_copy(
                    update={
                        "interval_days": result.interval_days,
                        "ease_factor": result.ease_factor,
                        "due_date": due,
                        "status": QueueStatus.completed,
                        "last_review_score": int(checked),
                        "next_review_date": due,
                        "updated_at": now,
                    }
                )
                tx.save_queue_item(item)

                total = progress.total_reviews
                avg = progress.avg_review_score
                if is_passing(checked):
                    total += 1
                    avg = running_average(progress.avg_review_score, progress.total_reviews, int(checked))
                # mastery follows the new interval on failures too
                level = classify_mastery(total, avg, result.interval_days, progress.completed_at)
                progress = progress.model_copy(
                    update={
                        "total_reviews": total,
                        "avg_review_score": avg,
                        "mastery_level": int(level),
                        "updated_at": now,
                    }
                )
                tx.save_progress(progress)

                tx.append_review_log(item, int(checked), now, today)

        points = self.points_policy.points_for_review(int(checked))
        logger.info(
            "review_submitted",
            learner_id=learner_id,
            node_id=node_id,
            score=int(checked),
            interval_days=item.interval_days,
            ease_factor=item.ease_factor,
            due_date=due.isoformat(),
            mastery_level=progress.mastery_level,
            points_awarded=points,
        )
        return ReviewOutcome(progress=progress, item=item, points_awarded=points, next_review_date=due)

    def skip_review(self, learner_id: str, node_id: str) -> QueueItem:
        """Push the item to tomorrow without touching interval, ease or statistics."""
        now = self._clock()
        with self._locks.for_pair(learner_id, node_id):
            with self.store.transaction() as tx:
                item = tx.get_queue_item(learner_id, node_id)
                if item is None:
                    raise NotFoundError("queue item", learner_id, node_id)
                item = item.model_copy(
                    update={
                        "due_date": next_review_date(1, now.date()),
                        "status": QueueStatus.skipped,
                        "updated_at": now,
                    }
                )
                tx.save_queue_item(item)
        logger.info("review_skipped", learner_id=learner_id, node_id=node_id, due_date=item.due_date.isoformat())
        return item

    # --- read operations ---
    def _join(self, items: List[QueueItem]) -> List[QueueItemWithNode]:
        joined: List[QueueItemWithNode] = []
        for item in items:
            node = self.catalog.get_node(item.node_id)
            if node is None:
                logger.warning("review_node_missing", learner_id=item.learner_id, node_id=item.node_id)
                continue
            joined.append(QueueItemWithNode(item=item, node=node))
        return joined

    def _due_items(self, learner_id: str, as_of: date) -> List[QueueItem]:
        return [item for item in self.store.list_queue_items(learner_id) if is_review_due(item.due_date, as_of)]

    def list_due(self, learner_id: str, as_of: Optional[date] = None) -> List[QueueItemWithNode]:
        """Return every item due on or before `as_of`, oldest due date first.

        一覧取得は項目を消費しない。同じ状態なら何度呼んでも同じ結果を返す。
        """
        as_of = as_of or self._today()
        return self._join(self._due_items(learner_id, as_of))

    def list_upcoming(
        self,
        learner_id: str,
        as_of: Optional[date] = None,
        days: Optional[int] = None,
    ) -> List[QueueItemWithNode]:
        """Items due after `as_of` and within the next `days` days."""
        as_of = as_of or self._today()
        horizon = as_of + timedelta(days=days if days is not None else settings.upcoming_window_days)
        items = [
            item for item in self.store.list_queue_items(learner_id) if as_of < item.due_date <= horizon
        ]
        return self._join(items)

    def reviews_due_count(self, learner_id: str, as_of: Optional[date] = None) -> int:
        """Number of entries list_due would return for the same arguments."""
        return len(self.list_due(learner_id, as_of))

    def next_review_date(self, learner_id: str, as_of: Optional[date] = None) -> Optional[date]:
        """Earliest due date among items that are not yet due, or None."""
        as_of = as_of or self._today()
        upcoming = [item.due_date for item in self.store.list_queue_items(learner_id) if item.due_date > as_of]
        return min(upcoming) if upcoming else None

    def review_streak(self, learner_id: str, as_of: Optional[date] = None) -> int:
        """Consecutive days with at least one review, ending today or yesterday."""
        as_of = as_of or self._today()
        days = set(self.store.review_dates(learner_id))
        if as_of in days:
            cursor = as_of
        elif as_of - timedelta(days=1) in days:
            cursor = as_of - timedelta(days=1)
        else:
            return 0
        streak = 0
        while cursor in days:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    def learning_stats(self, learner_id: str, as_of: Optional[date] = None) -> LearningStats:
        as_of = as_of or self._today()
        records = self.store.list_progress(learner_id)
        breakdown = {int(level): 0 for level in MasteryLevel if level != MasteryLevel.NOT_STARTED}
        for record in records:
            if record.mastery_level in breakdown:
                breakdown[record.mastery_level] += 1
        return LearningStats(
            total_nodes_completed=sum(1 for record in records if record.completed_at is not None),
            mastery_breakdown=breakdown,
            reviews_due_count=self.reviews_due_count(learner_id, as_of),
            next_review_date=self.next_review_date(learner_id, as_of),
            review_streak=self.review_streak(learner_id, as_of),
        )
