# src/learning_companion/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..errors import FormatError, NetworkError
from .task_channel import ChangeHub
from .task_codec import task_from_row, task_to_row
from .task_models import ChangeEvent, ChangeKind, Task

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "user_id",
    "title",
    "category",
    "completed",
    "completed_at",
    "created_at",
    "notes",
    "due_date",
)
_UPDATABLE = frozenset(_COLUMNS) - {"id", "user_id", "created_at"}


class SqliteTaskCollection:
    """
    SQLite-backed remote task collection.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection

    After every successful write the change is published to `hub` (if any),
    which makes this collection usable as a live channel source.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3", *, hub: ChangeHub | None = None) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._hub = hub
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except NetworkError:
            total = -1
        logger.info("SqliteTaskCollection ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        except sqlite3.Error as e:
            raise NetworkError(f"cannot open task database: {e}") from e
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'daily',
                    completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    created_at TEXT NOT NULL,
                    notes TEXT,
                    due_date TEXT
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("SqliteTaskCollection migration: added column %s", name)

            add_col("notes", "TEXT")
            add_col("due_date", "TEXT")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_user_created ON tasks(user_id, created_at)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        data = {k: row[k] for k in row.keys()}
        data["completed"] = bool(data.get("completed"))
        return task_from_row(data)

    @staticmethod
    def _task_params(task: Task) -> tuple[Any, ...]:
        row = task_to_row(task)
        row["completed"] = 1 if task.completed else 0
        return tuple(row[c] for c in _COLUMNS)

    def _publish(self, owner_id: str, event: ChangeEvent) -> None:
        if self._hub is not None:
            self._hub.publish(owner_id, event)

    def _fetch_one(self, conn: sqlite3.Connection, task_id: str) -> Task | None:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            return None
        try:
            return self._row_to_task(row)
        except FormatError:
            logger.exception("Corrupt task row id=%s", task_id)
            return None

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        except sqlite3.Error as e:
            raise NetworkError(str(e)) from e
        finally:
            conn.close()

    def list_tasks(self, owner_id: str) -> list[Task]:
        """All tasks of one owner, newest first. Corrupt rows are skipped with a log line."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """
                SELECT *
                FROM tasks
                WHERE user_id = ?
                ORDER BY created_at DESC, id DESC
                """,
                (owner_id,),
            ).fetchall()
        except sqlite3.Error as e:
            raise NetworkError(str(e)) from e
        finally:
            conn.close()

        out: list[Task] = []
        for r in rows:
            try:
                out.append(self._row_to_task(r))
            except FormatError:
                logger.exception("Skipping corrupt task row id=%s", r["id"])
        return out

    def insert_task(self, task: Task) -> None:
        placeholders = ", ".join("?" for _ in _COLUMNS)
        conn = self._get_conn()
        try:
            conn.execute(
                f"INSERT INTO tasks({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                self._task_params(task),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise NetworkError(f"insert failed id={task.id}: {e}") from e
        finally:
            conn.close()

        logger.debug("Task inserted id=%s owner=%s", task.id, task.owner_id)
        self._publish(task.owner_id, ChangeEvent(kind=ChangeKind.INSERT, task=task))

    def update_task(self, task_id: str, fields: dict[str, Any]) -> None:
        """Update selected columns. Unknown ids are a no-op (nothing is published)."""
        cols = [k for k in fields if k in _UPDATABLE]
        if not cols:
            return

        params: list[Any] = []
        for c in cols:
            v = fields[c]
            params.append((1 if v else 0) if c == "completed" else v)
        params.append(task_id)

        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"UPDATE tasks SET {', '.join(f'{c} = ?' for c in cols)} WHERE id = ?",
                params,
            )
            conn.commit()
            updated = self._fetch_one(conn, task_id) if cur.rowcount == 1 else None
        except sqlite3.Error as e:
            raise NetworkError(f"update failed id={task_id}: {e}") from e
        finally:
            conn.close()

        if updated is not None:
            logger.debug("Task updated id=%s cols=%s", task_id, cols)
            self._publish(updated.owner_id, ChangeEvent(kind=ChangeKind.UPDATE, task=updated))

    def delete_task(self, task_id: str) -> None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT user_id FROM tasks WHERE id = ?", (task_id,)).fetchone()
            conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
            conn.commit()
        except sqlite3.Error as e:
            raise NetworkError(f"delete failed id={task_id}: {e}") from e
        finally:
            conn.close()

        if row is not None:
            logger.debug("Task deleted id=%s", task_id)
            self._publish(row["user_id"], ChangeEvent(kind=ChangeKind.DELETE, old_id=task_id))

    def upsert_task(self, task: Task) -> None:
        """Insert, or overwrite every column of an existing row with the same id."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        assignments = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c != "id")
        conn = self._get_conn()
        try:
            existed = conn.execute("SELECT 1 FROM tasks WHERE id = ?", (task.id,)).fetchone() is not None
            conn.execute(
                f"""
                INSERT INTO tasks({', '.join(_COLUMNS)}) VALUES ({placeholders})
                ON CONFLICT(id) DO UPDATE SET {assignments}
                """,
                self._task_params(task),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise NetworkError(f"upsert failed id={task.id}: {e}") from e
        finally:
            conn.close()

        kind = ChangeKind.UPDATE if existed else ChangeKind.INSERT
        logger.debug("Task upserted id=%s kind=%s", task.id, kind.value)
        self._publish(task.owner_id, ChangeEvent(kind=kind, task=task))
