"""SQLite database layer for activities."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import NotFound, StorageFailure
from .models import Activity, ActivityKind, ActivityStatus, ActivityUpdate
from .store import ActivityStore, StorageKind

logger = logging.getLogger(__name__)

TAG_SEPARATOR = "\x1f"

_SELECT_ACTIVITIES = """
    SELECT
        a.id,
        a.kind,
        a.category,
        a.description,
        a.begin_time,
        a.end_time,
        a.duration,
        a.status,
        a.parent_id,
        GROUP_CONCAT(t.tag, char(31)) AS tags
    FROM activities AS a
    LEFT JOIN activity_tags AS t ON t.activity_id = a.id
"""


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS activities (
            id TEXT PRIMARY KEY,
            kind TEXT NOT NULL CHECK (kind IN ('work', 'intermission')),
            category TEXT NOT NULL,
            description TEXT NOT NULL,
            begin_time TEXT NOT NULL,
            begin_ts INTEGER NOT NULL,
            end_time TEXT,
            duration INTEGER CHECK (duration IS NULL OR duration >= 0),
            status TEXT NOT NULL CHECK (status IN ('active', 'held', 'ended')),
            parent_id TEXT REFERENCES activities(id)
        );

        CREATE TABLE IF NOT EXISTS activity_tags (
            activity_id TEXT NOT NULL REFERENCES activities(id),
            tag TEXT NOT NULL,
            PRIMARY KEY (activity_id, tag)
        );

        CREATE INDEX IF NOT EXISTS idx_activities_begin_ts
            ON activities(begin_ts);

        CREATE INDEX IF NOT EXISTS idx_activities_status
            ON activities(kind, status);

        CREATE INDEX IF NOT EXISTS idx_activities_parent
            ON activities(parent_id);
        """
    )


@contextmanager
def _backend_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise StorageFailure(f"SQLite error while {action}: {exc}") from exc


def _timestamp(value: datetime) -> int:
    return int(value.timestamp())


class SqliteActivityStore(ActivityStore):
    """Relational backend; each transaction is one ``BEGIN IMMEDIATE`` block."""

    kind = StorageKind.SQLITE

    def __init__(self, path: Path, *, check_same_thread: bool = False) -> None:
        self.path = Path(path)
        self._depth = 0
        with _backend_errors(f"opening {self.path}"):
            self._conn = open_database(self.path, check_same_thread=check_same_thread)

    def close(self) -> None:
        self._conn.close()

    def insert(self, activity: Activity) -> str:
        with _backend_errors(f"inserting activity {activity.id}"):
            try:
                self._conn.execute(
                    """
                    INSERT INTO activities (
                        id,
                        kind,
                        category,
                        description,
                        begin_time,
                        begin_ts,
                        end_time,
                        duration,
                        status,
                        parent_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        activity.id,
                        activity.kind.value,
                        activity.category,
                        activity.description,
                        activity.begin.isoformat(),
                        _timestamp(activity.begin),
                        activity.end.isoformat() if activity.end else None,
                        activity.duration,
                        activity.status.value,
                        activity.parent,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise StorageFailure(
                    f"Could not insert activity {activity.id}: {exc}"
                ) from exc
            self._write_tags(activity.id, activity.tags)
        return activity.id

    def get(self, activity_id: str) -> Activity:
        rows = self._select("WHERE a.id = ?", (activity_id,), f"reading {activity_id}")
        if not rows:
            raise NotFound(activity_id)
        return rows[0]

    def update(self, activity_id: str, mutation: ActivityUpdate) -> Activity:
        """Update the columns set on ``mutation``."""
        changes = mutation.changes()
        fields: list[str] = []
        params: list[object] = []

        if "category" in changes:
            fields.append("category = ?")
            params.append(changes["category"])
        if "description" in changes:
            fields.append("description = ?")
            params.append(changes["description"])
        if "begin" in changes:
            fields.append("begin_time = ?")
            params.append(changes["begin"].isoformat())
            fields.append("begin_ts = ?")
            params.append(_timestamp(changes["begin"]))
        if "end" in changes:
            fields.append("end_time = ?")
            params.append(changes["end"].isoformat() if changes["end"] else None)
        if "duration" in changes:
            fields.append("duration = ?")
            params.append(changes["duration"])
        if "status" in changes:
            fields.append("status = ?")
            params.append(changes["status"].value if changes["status"] else None)

        with _backend_errors(f"updating activity {activity_id}"):
            if fields:
                params.append(activity_id)
                cur = self._conn.execute(
                    f"UPDATE activities SET {', '.join(fields)} WHERE id = ?",
                    params,
                )
                if cur.rowcount == 0:
                    raise NotFound(activity_id)
            else:
                exists = self._conn.execute(
                    "SELECT 1 FROM activities WHERE id = ?", (activity_id,)
                ).fetchone()
                if exists is None:
                    raise NotFound(activity_id)
            if "tags" in changes:
                self._conn.execute(
                    "DELETE FROM activity_tags WHERE activity_id = ?", (activity_id,)
                )
                self._write_tags(activity_id, changes["tags"] or ())
        return self.get(activity_id)

    def find_active_work(self) -> Optional[Activity]:
        rows = self._select(
            "WHERE a.kind = 'work' AND a.status = 'active'",
            (),
            "looking up the active activity",
            order="DESC",
            limit=1,
        )
        return rows[0] if rows else None

    def find_open_intermission(self, parent_id: str) -> Optional[Activity]:
        rows = self._select(
            "WHERE a.kind = 'intermission' AND a.status = 'active' AND a.parent_id = ?",
            (parent_id,),
            f"looking up the open intermission of {parent_id}",
            order="DESC",
            limit=1,
        )
        return rows[0] if rows else None

    def list_held_work(self) -> List[Activity]:
        return self._select(
            "WHERE a.kind = 'work' AND a.status = 'held'",
            (),
            "listing held activities",
            order="DESC",
        )

    def list_intermissions(self, parent_id: str) -> List[Activity]:
        return self._select(
            "WHERE a.kind = 'intermission' AND a.parent_id = ?",
            (parent_id,),
            f"listing intermissions of {parent_id}",
        )

    def scan_range(self, start: datetime, end: datetime) -> Iterator[Activity]:
        rows = self._select(
            "WHERE a.begin_ts >= ? AND a.begin_ts < ?",
            (_timestamp(start), _timestamp(end)),
            "scanning activities",
        )
        yield from rows

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth:
            self._depth += 1
            try:
                yield
            finally:
                self._depth -= 1
            return

        with _backend_errors("starting a transaction"):
            self._conn.execute("BEGIN IMMEDIATE")
        self._depth = 1
        try:
            yield
        except BaseException:
            self._depth = 0
            with _backend_errors("rolling back"):
                self._conn.execute("ROLLBACK")
            raise
        self._depth = 0
        with _backend_errors("committing"):
            self._conn.execute("COMMIT")

    def _write_tags(self, activity_id: str, tags: object) -> None:
        self._conn.executemany(
            "INSERT OR IGNORE INTO activity_tags (activity_id, tag) VALUES (?, ?)",
            [(activity_id, tag) for tag in tags],  # type: ignore[union-attr]
        )

    def _select(
        self,
        where: str,
        params: tuple,
        action: str,
        *,
        order: str = "ASC",
        limit: Optional[int] = None,
    ) -> List[Activity]:
        query = (
            f"{_SELECT_ACTIVITIES} {where} GROUP BY a.id "
            f"ORDER BY a.begin_ts {order}, a.id {order}"
        )
        if limit is not None:
            query += f" LIMIT {int(limit)}"
        with _backend_errors(action):
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_activity(row) for row in rows]


def _row_to_activity(row: sqlite3.Row) -> Activity:
    tags = tuple(sorted(row["tags"].split(TAG_SEPARATOR))) if row["tags"] else ()
    return Activity(
        id=row["id"],
        kind=ActivityKind(row["kind"]),
        category=row["category"],
        description=row["description"],
        tags=tags,
        begin=datetime.fromisoformat(row["begin_time"]),
        end=datetime.fromisoformat(row["end_time"]) if row["end_time"] else None,
        duration=row["duration"],
        status=ActivityStatus(row["status"]),
        parent=row["parent_id"],
    )
