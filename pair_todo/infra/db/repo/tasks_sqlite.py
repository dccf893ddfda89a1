from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Mapping, Optional, Sequence

import aiosqlite

from pair_todo.domain.common.errors import ConflictError, StoreUnavailableError
from pair_todo.domain.common.time import from_iso, to_iso
from pair_todo.domain.tasks.models import Comment, Partnership, Task
from pair_todo.domain.tasks.ports import TaskStore, TaskStoreSession
from pair_todo.infra.db.connection import Database
from pair_todo.infra.db.schema_version import apply_migrations

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "sqlite"

TASK_COLUMNS = (
    "task_id, user_id, title, is_completed, is_active, sort_key, created_at, completed_at, activated_at"
)

COMMENT_SELECT = """
    SELECT c.comment_id, c.task_id, t.user_id AS task_owner_id, c.author_id,
           c.content, c.created_at, c.updated_at, c.read_at
    FROM comments c
    JOIN tasks t ON t.task_id = c.task_id
"""


def _row_to_task(row) -> Task:
    return Task(
        id=row["task_id"],
        owner_id=row["user_id"],
        title=row["title"],
        completed=bool(row["is_completed"]),
        active=bool(row["is_active"]),
        sort_key=float(row["sort_key"]),
        created_at=from_iso(row["created_at"]),
        completed_at=from_iso(row["completed_at"]) if row["completed_at"] else None,
        activated_at=from_iso(row["activated_at"]) if row["activated_at"] else None,
    )


def _row_to_comment(row) -> Comment:
    return Comment(
        id=row["comment_id"],
        task_id=row["task_id"],
        task_owner_id=row["task_owner_id"],
        author_id=row["author_id"],
        content=row["content"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        read_at=from_iso(row["read_at"]) if row["read_at"] else None,
    )


def _iso_or_none(dt) -> Optional[str]:
    return to_iso(dt) if dt is not None else None


class SqliteTaskSession(TaskStoreSession):
    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def _fetchone(self, sql: str, params=()):
        cur = await self._conn.execute(sql, params)
        return await cur.fetchone()

    async def _fetchall(self, sql: str, params=()):
        cur = await self._conn.execute(sql, params)
        return await cur.fetchall()

    async def ensure_user(self, owner_id: str, now_iso: str) -> None:
        row = await self._fetchone("SELECT user_id FROM users WHERE user_id = ?;", (owner_id,))
        if row:
            await self._conn.execute("UPDATE users SET last_seen_at = ? WHERE user_id = ?;", (now_iso, owner_id))
            return
        await self._conn.execute(
            "INSERT INTO users(user_id, created_at, last_seen_at) VALUES (?, ?, ?);",
            (owner_id, now_iso, now_iso),
        )

    async def delete_user(self, owner_id: str) -> bool:
        cur = await self._conn.execute("DELETE FROM users WHERE user_id = ?;", (owner_id,))
        return cur.rowcount > 0

    async def get_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        row = await self._fetchone(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE user_id = ? AND task_id = ?;",
            (owner_id, task_id),
        )
        return _row_to_task(row) if row else None

    async def insert_task(self, task: Task) -> None:
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({TASK_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                task.id,
                task.owner_id,
                task.title,
                int(task.completed),
                int(task.active),
                task.sort_key,
                to_iso(task.created_at),
                _iso_or_none(task.completed_at),
                _iso_or_none(task.activated_at),
            ),
        )

    async def update_task(self, task: Task) -> None:
        # owner_id and created_at are never rewritten
        await self._conn.execute(
            """
            UPDATE tasks
            SET title = ?,
                is_completed = ?,
                is_active = ?,
                sort_key = ?,
                completed_at = ?,
                activated_at = ?
            WHERE task_id = ? AND user_id = ?;
            """,
            (
                task.title,
                int(task.completed),
                int(task.active),
                task.sort_key,
                _iso_or_none(task.completed_at),
                _iso_or_none(task.activated_at),
                task.id,
                task.owner_id,
            ),
        )

    async def delete_task(self, owner_id: str, task_id: str) -> bool:
        cur = await self._conn.execute(
            "DELETE FROM tasks WHERE user_id = ? AND task_id = ?;", (owner_id, task_id)
        )
        return cur.rowcount > 0

    async def list_partition(self, owner_id: str, active: bool) -> Sequence[Task]:
        rows = await self._fetchall(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE user_id = ? AND is_active = ?
            ORDER BY sort_key ASC, created_at ASC;
            """,
            (owner_id, int(active)),
        )
        return [_row_to_task(r) for r in rows]

    async def set_sort_keys(self, owner_id: str, keys: Mapping[str, float]) -> None:
        await self._conn.executemany(
            "UPDATE tasks SET sort_key = ? WHERE user_id = ? AND task_id = ?;",
            [(key, owner_id, task_id) for task_id, key in keys.items()],
        )

    async def count_open_active(self, owner_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS cnt FROM tasks WHERE user_id = ? AND is_active = 1 AND is_completed = 0;",
            (owner_id,),
        )
        return int(row["cnt"]) if row else 0

    async def count_completed_active_between(self, owner_id: str, start_iso: str, end_iso: str) -> int:
        row = await self._fetchone(
            """
            SELECT COUNT(*) AS cnt
            FROM tasks
            WHERE user_id = ? AND is_active = 1 AND is_completed = 1
              AND completed_at >= ? AND completed_at < ?;
            """,
            (owner_id, start_iso, end_iso),
        )
        return int(row["cnt"]) if row else 0

    async def list_completed(self, owner_id: str) -> Sequence[Task]:
        rows = await self._fetchall(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE user_id = ? AND is_completed = 1
            ORDER BY completed_at DESC;
            """,
            (owner_id,),
        )
        return [_row_to_task(r) for r in rows]

    async def get_partnership(self, owner_id: str) -> Optional[Partnership]:
        row = await self._fetchone(
            "SELECT user_id, partner_id, partnership_id, created_at FROM partners WHERE user_id = ?;",
            (owner_id,),
        )
        if not row:
            return None
        return Partnership(
            partnership_id=row["partnership_id"],
            user_a=row["user_id"],
            user_b=row["partner_id"],
            created_at=from_iso(row["created_at"]),
        )

    async def insert_partnership(self, partnership: Partnership) -> None:
        created = to_iso(partnership.created_at)
        try:
            await self._conn.executemany(
                "INSERT INTO partners(user_id, partner_id, partnership_id, created_at) VALUES (?, ?, ?, ?);",
                [
                    (partnership.user_a, partnership.user_b, partnership.partnership_id, created),
                    (partnership.user_b, partnership.user_a, partnership.partnership_id, created),
                ],
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("One of you already has a partner.") from e

    async def delete_partnership(self, owner_id: str) -> bool:
        cur = await self._conn.execute(
            """
            DELETE FROM partners
            WHERE partnership_id IN (SELECT partnership_id FROM partners WHERE user_id = ?);
            """,
            (owner_id,),
        )
        return cur.rowcount > 0

    # ---- comments ----

    async def insert_comment(self, comment: Comment) -> None:
        try:
            await self._conn.execute(
                """
                INSERT INTO comments(comment_id, task_id, author_id, content, created_at, updated_at, read_at)
                VALUES (?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    comment.id,
                    comment.task_id,
                    comment.author_id,
                    comment.content,
                    to_iso(comment.created_at),
                    to_iso(comment.updated_at),
                    _iso_or_none(comment.read_at),
                ),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError("You already commented on this task; edit your comment instead.") from e

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        row = await self._fetchone(f"{COMMENT_SELECT} WHERE c.comment_id = ?;", (comment_id,))
        return _row_to_comment(row) if row else None

    async def find_comment(self, task_id: str, author_id: str) -> Optional[Comment]:
        row = await self._fetchone(
            f"{COMMENT_SELECT} WHERE c.task_id = ? AND c.author_id = ?;", (task_id, author_id)
        )
        return _row_to_comment(row) if row else None

    async def update_comment(self, comment: Comment) -> None:
        await self._conn.execute(
            "UPDATE comments SET content = ?, updated_at = ?, read_at = ? WHERE comment_id = ?;",
            (comment.content, to_iso(comment.updated_at), _iso_or_none(comment.read_at), comment.id),
        )

    async def delete_comment(self, comment_id: str) -> bool:
        cur = await self._conn.execute("DELETE FROM comments WHERE comment_id = ?;", (comment_id,))
        return cur.rowcount > 0

    async def list_task_comments(
        self, task_id: str, unread_only: bool = False, author_id: Optional[str] = None
    ) -> Sequence[Comment]:
        sql = f"{COMMENT_SELECT} WHERE c.task_id = ?"
        params: list = [task_id]
        if unread_only:
            sql += " AND c.read_at IS NULL"
        if author_id is not None:
            sql += " AND c.author_id = ?"
            params.append(author_id)
        rows = await self._fetchall(sql + " ORDER BY c.created_at DESC;", params)
        return [_row_to_comment(r) for r in rows]

    async def list_unread_comments(self, owner_id: str) -> Sequence[Comment]:
        rows = await self._fetchall(
            f"{COMMENT_SELECT} WHERE t.user_id = ? AND c.read_at IS NULL ORDER BY c.created_at DESC;",
            (owner_id,),
        )
        return [_row_to_comment(r) for r in rows]

    async def count_unread_comments(self, owner_id: str) -> Mapping[str, int]:
        rows = await self._fetchall(
            """
            SELECT c.task_id, COUNT(*) AS cnt
            FROM comments c
            JOIN tasks t ON t.task_id = c.task_id
            WHERE t.user_id = ? AND c.read_at IS NULL
            GROUP BY c.task_id;
            """,
            (owner_id,),
        )
        return {r["task_id"]: int(r["cnt"]) for r in rows}


class SqliteTaskStore(TaskStore):
    """TaskStore on a local SQLite file (development backend)."""

    def __init__(self, db: Database, migrations_dir: Path = MIGRATIONS_DIR) -> None:
        self._db = db
        self._migrations_dir = migrations_dir

    async def init(self) -> None:
        try:
            await apply_migrations(
                db=self._db,
                migrations_dir=str(self._migrations_dir),
                now_iso=to_iso(datetime.now(timezone.utc)),
            )
        except sqlite3.OperationalError as e:
            logger.error("SQLite init failed: path=%s", self._db.path, exc_info=True)
            raise StoreUnavailableError("Task store is unavailable.") from e
        logger.info("SqliteTaskStore ready db=%s", self._db.path)

    async def close(self) -> None:
        # connections are per transaction
        return

    @asynccontextmanager
    async def transaction(
        self, owner_id: Optional[str] = None, read_only: bool = False
    ) -> AsyncIterator[TaskStoreSession]:
        # the single-file write lock already covers the per-owner serialization
        try:
            async with self._db.transaction(immediate=not read_only) as conn:
                yield SqliteTaskSession(conn)
        except sqlite3.OperationalError as e:
            msg = str(e).lower()
            if "locked" in msg or "busy" in msg:
                logger.warning("SQLite busy: owner=%s error=%s", owner_id, e)
                raise ConflictError("The task list was changed concurrently; please retry.") from e
            logger.error("SQLite error: owner=%s", owner_id, exc_info=True)
            raise StoreUnavailableError("Task store is unavailable.") from e
