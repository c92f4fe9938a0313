from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import ContextManager, Iterator, List, Optional, Protocol

from .config import settings
from .errors import PersistenceError
from .models import Progress, QueueItem, QueueStatus


class ReviewTransaction(Protocol):
    """Read/write access to one atomic unit of work."""

    def get_progress(self, learner_id: str, node_id: str) -> Optional[Progress]: ...

    def save_progress(self, progress: Progress) -> None: ...

    def get_queue_item(self, learner_id: str, node_id: str) -> Optional[QueueItem]: ...

    def insert_queue_item(self, item: QueueItem) -> None: ...

    def save_queue_item(self, item: QueueItem) -> None: ...

    def append_review_log(
        self,
        item: QueueItem,
        score: int,
        reviewed_at: datetime,
        reviewed_on: date,
    ) -> None: ...


class ReviewStore(Protocol):
    """Persistence port for progress records, queue items and review history."""

    def transaction(self) -> ContextManager[ReviewTransaction]: ...

    def get_progress(self, learner_id: str, node_id: str) -> Optional[Progress]: ...

    def get_queue_item(self, learner_id: str, node_id: str) -> Optional[QueueItem]: ...

    def list_queue_items(self, learner_id: str) -> List[QueueItem]: ...

    def list_progress(self, learner_id: str) -> List[Progress]: ...

    def review_dates(self, learner_id: str) -> List[date]: ...


_PROGRESS_COLUMNS = (
    "learner_id, node_id, lessons_completed, completed_at, mastery_level, "
    "total_reviews, avg_review_score, created_at, updated_at"
)
_QUEUE_COLUMNS = (
    "learner_id, node_id, due_date, interval_days, ease_factor, status, "
    "last_review_score, next_review_date, created_at, updated_at"
)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _row_to_progress(row: sqlite3.Row) -> Progress:
    return Progress(
        learner_id=row["learner_id"],
        node_id=row["node_id"],
        lessons_completed=json.loads(row["lessons_completed"] or "[]"),
        completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
        mastery_level=int(row["mastery_level"]),
        total_reviews=int(row["total_reviews"]),
        avg_review_score=float(row["avg_review_score"]),
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
    )


def _row_to_item(row: sqlite3.Row) -> QueueItem:
    return QueueItem(
        learner_id=row["learner_id"],
        node_id=row["node_id"],
        due_date=date.fromisoformat(row["due_date"]),
        interval_days=int(row["interval_days"]),
        ease_factor=float(row["ease_factor"]),
        status=QueueStatus(row["status"]),
        last_review_score=int(row["last_review_score"]) if row["last_review_score"] is not None else None,
        next_review_date=date.fromisoformat(row["next_review_date"]) if row["next_review_date"] else None,
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
    )


class SQLiteReviewTransaction:
    """Statements executed inside one BEGIN IMMEDIATE ... COMMIT block."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get_progress(self, learner_id: str, node_id: str) -> Optional[Progress]:
        row = self._conn.execute(
            f"SELECT {_PROGRESS_COLUMNS} FROM node_progress WHERE learner_id = ? AND node_id = ?;",
            (learner_id, node_id),
        ).fetchone()
        return _row_to_progress(row) if row is not None else None

    def save_progress(self, progress: Progress) -> None:
        self._conn.execute(
            f"""
            INSERT INTO node_progress({_PROGRESS_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(learner_id, node_id) DO UPDATE SET
                lessons_completed = excluded.lessons_completed,
                completed_at = excluded.completed_at,
                mastery_level = excluded.mastery_level,
                total_reviews = excluded.total_reviews,
                avg_review_score = excluded.avg_review_score,
                updated_at = excluded.updated_at;
            """,
            (
                progress.learner_id,
                progress.node_id,
                json.dumps(sorted(progress.lessons_completed)),
                _iso(progress.completed_at),
                int(progress.mastery_level),
                progress.total_reviews,
                progress.avg_review_score,
                _iso(progress.created_at),
                _iso(progress.updated_at),
            ),
        )

    def get_queue_item(self, learner_id: str, node_id: str) -> Optional[QueueItem]:
        row = self._conn.execute(
            f"SELECT {_QUEUE_COLUMNS} FROM review_queue WHERE learner_id = ? AND node_id = ?;",
            (learner_id, node_id),
        ).fetchone()
        return _row_to_item(row) if row is not None else None

    def insert_queue_item(self, item: QueueItem) -> None:
        self._conn.execute(
            f"INSERT INTO review_queue({_QUEUE_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
            self._item_params(item),
        )

    def save_queue_item(self, item: QueueItem) -> None:
        cur = self._conn.execute(
            """
            UPDATE review_queue
            SET due_date = ?, interval_days = ?, ease_factor = ?, status = ?,
                last_review_score = ?, next_review_date = ?, updated_at = ?
            WHERE learner_id = ? AND node_id = ?;
            """,
            (
                item.due_date.isoformat(),
                item.interval_days,
                item.ease_factor,
                item.status.value,
                item.last_review_score,
                _iso(item.next_review_date),
                _iso(item.updated_at),
                item.learner_id,
                item.node_id,
            ),
        )
        if cur.rowcount != 1:
            raise PersistenceError(
                f"queue item vanished during update: learner={item.learner_id!r} node={item.node_id!r}"
            )

    def append_review_log(
        self,
        item: QueueItem,
        score: int,
        reviewed_at: datetime,
        reviewed_on: date,
    ) -> None:
        self._conn.execute(
            """
            INSERT INTO review_log(
                learner_id, node_id, reviewed_at, reviewed_on, score, interval_days, ease_factor, due_date
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                item.learner_id,
                item.node_id,
                reviewed_at.isoformat(),
                reviewed_on.isoformat(),
                score,
                item.interval_days,
                item.ease_factor,
                item.due_date.isoformat(),
            ),
        )

    @staticmethod
    def _item_params(item: QueueItem) -> tuple:
        return (
            item.learner_id,
            item.node_id,
            item.due_date.isoformat(),
            item.interval_days,
            item.ease_factor,
            item.status.value,
            item.last_review_score,
            _iso(item.next_review_date),
            _iso(item.created_at),
            _iso(item.updated_at),
        )


class SQLiteReviewStore:
    """SQLite-backed persistence for learner progress and the review queue.

    - (learner_id, node_id) ごとに node_progress と review_queue を 1 行ずつ保持
    - 書き込みは transaction() 内で BEGIN IMMEDIATE により直列化される
    - sqlite3.Error は PersistenceError に包んで送出し、トランザクションはロールバック
    """

    def __init__(self, db_path: str, timeout_ms: Optional[int] = None) -> None:
        self.db_path = db_path
        self.timeout_ms = settings.review_db_timeout_ms if timeout_ms is None else timeout_ms
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(
                self.db_path,
                timeout=self.timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            with conn:  # autocommit on PRAGMA
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys=ON;")
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not open review database {self.db_path!r}: {exc}") from exc
        return conn

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        if p.parent and not p.parent.exists():
            p.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS node_progress (
                        learner_id TEXT NOT NULL,
                        node_id TEXT NOT NULL,
                        lessons_completed TEXT NOT NULL DEFAULT '[]',
                        completed_at TEXT,
                        mastery_level INTEGER NOT NULL DEFAULT 0,
                        total_reviews INTEGER NOT NULL DEFAULT 0,
                        avg_review_score REAL NOT NULL DEFAULT 0,
                        created_at TEXT,
                        updated_at TEXT,
                        PRIMARY KEY (learner_id, node_id)
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS review_queue (
                        learner_id TEXT NOT NULL,
                        node_id TEXT NOT NULL,
                        due_date TEXT NOT NULL,
                        interval_days INTEGER NOT NULL DEFAULT 0,
                        ease_factor REAL NOT NULL DEFAULT 2.5,
                        status TEXT NOT NULL DEFAULT 'pending',
                        last_review_score INTEGER,
                        next_review_date TEXT,
                        created_at TEXT,
                        updated_at TEXT,
                        PRIMARY KEY (learner_id, node_id),
                        FOREIGN KEY(learner_id, node_id)
                            REFERENCES node_progress(learner_id, node_id) ON DELETE CASCADE
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS review_log (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        learner_id TEXT NOT NULL,
                        node_id TEXT NOT NULL,
                        reviewed_at TEXT NOT NULL,
                        reviewed_on TEXT NOT NULL,
                        score INTEGER NOT NULL,
                        interval_days INTEGER NOT NULL,
                        ease_factor REAL NOT NULL,
                        due_date TEXT NOT NULL
                    );
                    """
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_review_queue_due ON review_queue(learner_id, due_date);"
                )
                conn.execute(
                    "CREATE INDEX IF NOT EXISTS idx_review_log_day ON review_log(learner_id, reviewed_on);"
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not initialise review database: {exc}") from exc
        finally:
            conn.close()

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    # --- transactions ---
    @contextmanager
    def transaction(self) -> Iterator[SQLiteReviewTransaction]:
        """Run the enclosed statements atomically.

        例外が発生した場合は全体をロールバックし、途中までの更新は観測されない。
        """
        conn = self._connect()
        try:
            # BEGIN IMMEDIATE to avoid concurrent writers on the same row
            conn.execute("BEGIN IMMEDIATE;")
            yield SQLiteReviewTransaction(conn)
            conn.execute("COMMIT;")
        except sqlite3.Error as exc:
            self._rollback(conn)
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            conn.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")

    # --- reads ---
    def get_progress(self, learner_id: str, node_id: str) -> Optional[Progress]:
        with self._reading() as conn:
            return SQLiteReviewTransaction(conn).get_progress(learner_id, node_id)

    def get_queue_item(self, learner_id: str, node_id: str) -> Optional[QueueItem]:
        with self._reading() as conn:
            return SQLiteReviewTransaction(conn).get_queue_item(learner_id, node_id)

    def list_queue_items(self, learner_id: str) -> List[QueueItem]:
        """Return every queue item of the learner ordered by due date."""
        with self._reading() as conn:
            cur = conn.execute(
                f"SELECT {_QUEUE_COLUMNS} FROM review_queue WHERE learner_id = ? ORDER BY due_date ASC, node_id ASC;",
                (learner_id,),
            )
            return [_row_to_item(row) for row in cur.fetchall()]

    def list_progress(self, learner_id: str) -> List[Progress]:
        with self._reading() as conn:
            cur = conn.execute(
                f"SELECT {_PROGRESS_COLUMNS} FROM node_progress WHERE learner_id = ? ORDER BY node_id ASC;",
                (learner_id,),
            )
            return [_row_to_progress(row) for row in cur.fetchall()]

    def review_dates(self, learner_id: str) -> List[date]:
        """Distinct days on which the learner submitted reviews, newest first."""
        with self._reading() as conn:
            cur = conn.execute(
                "SELECT DISTINCT reviewed_on FROM review_log WHERE learner_id = ? ORDER BY reviewed_on DESC;",
                (learner_id,),
            )
            return [date.fromisoformat(row["reviewed_on"]) for row in cur.fetchall()]

    def review_history(self, learner_id: str, node_id: str) -> List[tuple[date, int]]:
        """(reviewed_on, score) pairs of one node, oldest first."""
        with self._reading() as conn:
            cur = conn.execute(
                """
                SELECT reviewed_on, score FROM review_log
                WHERE learner_id = ? AND node_id = ?
                ORDER BY id ASC;
                """,
                (learner_id, node_id),
            )
            return [(date.fromisoformat(row["reviewed_on"]), int(row["score"])) for row in cur.fetchall()]


@lru_cache(maxsize=1)
def default_store() -> SQLiteReviewStore:
    """Process-wide store wired to settings.review_db_path."""
    return SQLiteReviewStore(db_path=settings.review_db_path)
