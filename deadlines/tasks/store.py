"""TaskStore: libsql persistence for tasks, with a post-commit change stream."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from deadlines.config import settings
from deadlines.db import get_connection
from deadlines.scheduling.timing import format_timestamp
from deadlines.tasks.models import TERMINAL_STATUSES, Task, TaskStatus
from deadlines.tasks.stream import ChangeListener, EventName, StreamRecord

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

# Column order for every SELECT / INSERT, paired with the wire attribute name.
_COLUMNS = (
    ("task_id", "taskId"),
    ("name", "name"),
    ("description", "description"),
    ("status", "status"),
    ("deadline", "deadline"),
    ("user_id", "userId"),
    ("created_at", "createdAt"),
    ("completed_at", "completedAt"),
    ("expired_at", "expiredAt"),
    ("responsibility", "responsibility"),
    ("user_comment", "userComment"),
)
_COLUMN_LIST = ", ".join(col for col, _ in _COLUMNS)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS {table} (
    task_id        TEXT PRIMARY KEY,
    name           TEXT NOT NULL,
    description    TEXT NOT NULL DEFAULT '',
    status         TEXT NOT NULL,
    deadline       TEXT,
    user_id        TEXT NOT NULL,
    created_at     TEXT,
    completed_at   TEXT,
    expired_at     TEXT,
    responsibility TEXT NOT NULL DEFAULT '',
    user_comment   TEXT NOT NULL DEFAULT ''
)
"""


def _row_to_image(row: tuple) -> dict[str, str]:
    return {
        wire: str(value)
        for (_, wire), value in zip(_COLUMNS, row, strict=True)
        if value is not None and value != ""
    }


def _task_to_row(task: Task) -> tuple:
    data = task.to_dict()
    return tuple(data[wire] for _, wire in _COLUMNS)


class TaskStore:
    """Persists tasks in SQLite / Turso.

    Every successful write is reported to subscribed listeners as a
    ``StreamRecord`` after commit. Listener failures are logged and never
    undo or fail the write.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None, table: str | None = None) -> None:
        self._db_path = db_path
        self._table = table or settings.tasks_table
        if not self._table.isidentifier():
            msg = f"Invalid table name: {self._table!r}"
            raise ValueError(msg)
        self._initialised = False
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> None:
        """Register an async callable that receives stream records after each write."""
        self._listeners.append(listener)

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self):  # noqa: ANN202
        db = await get_connection(local_path_override=self._db_path)
        if not self._initialised:
            await db.execute(_CREATE_TABLE.format(table=self._table))
            await db.commit()
            self._initialised = True
        return db

    async def _fetch_image(self, db, task_id: str) -> dict[str, str] | None:  # noqa: ANN001
        cursor = await db.execute(
            f"SELECT {_COLUMN_LIST} FROM {self._table} WHERE task_id = ?",  # noqa: S608
            (task_id,),
        )
        row = await cursor.fetchone()
        return _row_to_image(row) if row else None

    async def _emit(self, records: list[StreamRecord]) -> None:
        for listener in self._listeners:
            try:
                await listener(records)
            except Exception:
                logger.exception(
                    "Change listener failed for %d record(s) (first taskId=%s)",
                    len(records),
                    records[0].task_id if records else "none",
                )

    # -- Reads -----------------------------------------------------------------

    async def get_image(self, task_id: str) -> dict[str, str] | None:
        """Fetch the raw attribute map for a task, or None if not found."""
        db = await self._connect()
        try:
            return await self._fetch_image(db, task_id)
        finally:
            await db.close()

    async def get_task(self, task_id: str) -> Task | None:
        """Fetch a task by ID, or None if not found."""
        image = await self.get_image(task_id)
        return Task.from_image(image) if image else None

    async def scan_images(self) -> list[dict[str, str]]:
        """Return the raw attribute map of every task (full, unindexed scan)."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_COLUMN_LIST} FROM {self._table} ORDER BY created_at"  # noqa: S608
            )
            rows = await cursor.fetchall()
            return [_row_to_image(row) for row in rows]
        finally:
            await db.close()

    # -- Writes ----------------------------------------------------------------

    async def add_task(self, task: Task) -> Task:
        """Insert a new task. Emits an INSERT record."""
        db = await self._connect()
        try:
            placeholders = ", ".join("?" for _ in _COLUMNS)
            await db.execute(
                f"INSERT INTO {self._table} ({_COLUMN_LIST}) VALUES ({placeholders})",  # noqa: S608
                _task_to_row(task),
            )
            await db.commit()
            new_image = await self._fetch_image(db, task.task_id) or task.to_image()
        finally:
            await db.close()
        logger.info("Added task: %s (%s)", task.name, task.task_id)
        await self._emit([StreamRecord(EventName.INSERT, new_image=new_image)])
        return task

    async def put_task(self, task: Task) -> bool:
        """Rewrite every attribute of an existing task. Emits a MODIFY record.

        Returns False when the task does not exist.
        """
        assignments = ", ".join(f"{col} = ?" for col, _ in _COLUMNS[1:])
        row = _task_to_row(task)
        db = await self._connect()
        try:
            old_image = await self._fetch_image(db, task.task_id)
            if old_image is None:
                return False
            await db.execute(
                f"UPDATE {self._table} SET {assignments} WHERE task_id = ?",  # noqa: S608
                (*row[1:], task.task_id),
            )
            await db.commit()
            new_image = await self._fetch_image(db, task.task_id) or {}
        finally:
            await db.close()
        await self._emit([StreamRecord(EventName.MODIFY, new_image=new_image, old_image=old_image)])
        return True

    async def mark_expired(self, task_id: str, expired_at: datetime) -> bool:
        """Targeted status update to EXPIRED. Emits a MODIFY record.

        Only ``status`` and ``expired_at`` are written, and only while the
        task is still non-terminal, so concurrent edits to other attributes
        survive and duplicate deliveries cannot expire a task twice.
        Returns True when this call performed the transition.
        """
        terminal = tuple(str(s) for s in TERMINAL_STATUSES)
        db = await self._connect()
        try:
            old_image = await self._fetch_image(db, task_id)
            if old_image is None:
                return False
            changed = await db.execute_write(
                f"UPDATE {self._table} SET status = ?, expired_at = ? "  # noqa: S608
                f"WHERE task_id = ? AND UPPER(status) NOT IN (?, ?, ?)",
                (str(TaskStatus.EXPIRED), format_timestamp(expired_at), task_id, *terminal),
            )
            if changed <= 0:
                return False
            new_image = await self._fetch_image(db, task_id) or {}
        finally:
            await db.close()
        logger.info("Task %s marked EXPIRED in store", task_id)
        await self._emit([StreamRecord(EventName.MODIFY, new_image=new_image, old_image=old_image)])
        return True
