from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import dict_row

from pair_todo.domain.common.errors import ConflictError, StoreUnavailableError
from pair_todo.domain.common.time import from_iso, to_iso
from pair_todo.domain.tasks.models import Comment, Partnership, Task
from pair_todo.domain.tasks.ports import TaskStore, TaskStoreSession
from pair_todo.infra.db.schema_version import apply_migrations

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "postgres"

TASK_COLUMNS = (
    "task_id, user_id, title, is_completed, is_active, sort_key, created_at, completed_at, activated_at"
)

COMMENT_SELECT = """
    SELECT c.comment_id, c.task_id, t.user_id AS task_owner_id, c.author_id,
           c.content, c.created_at, c.updated_at, c.read_at
    FROM comments c
    JOIN tasks t ON t.task_id = c.task_id
"""

_CONFLICT_ERRORS = (pg_errors.SerializationFailure, pg_errors.DeadlockDetected, pg_errors.LockNotAvailable)


def _as_utc(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        return from_iso(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_task(row: Mapping[str, Any]) -> Task:
    return Task(
        id=row["task_id"],
        owner_id=row["user_id"],
        title=row["title"],
        completed=bool(row["is_completed"]),
        active=bool(row["is_active"]),
        sort_key=float(row["sort_key"]),
        created_at=_as_utc(row["created_at"]),
        completed_at=_as_utc(row["completed_at"]),
        activated_at=_as_utc(row["activated_at"]),
    )


def _row_to_comment(row: Mapping[str, Any]) -> Comment:
    return Comment(
        id=row["comment_id"],
        task_id=row["task_id"],
        task_owner_id=row["task_owner_id"],
        author_id=row["author_id"],
        content=row["content"],
        created_at=_as_utc(row["created_at"]),
        updated_at=_as_utc(row["updated_at"]),
        read_at=_as_utc(row["read_at"]),
    )


class PgDatabase:
    """
    Async Postgres helper with the same surface as the SQLite Database:
    - one connection per operation / transaction
    - rows as dicts
    """

    placeholder = "%s"

    def __init__(self, url: str, connect_timeout_s: int = 10) -> None:
        self._url = url
        self._timeout = connect_timeout_s

    async def _connect(self) -> psycopg.AsyncConnection:
        return await psycopg.AsyncConnection.connect(
            self._url,
            row_factory=dict_row,
            autocommit=True,
            connect_timeout=self._timeout,
        )

    async def executescript(self, sql: str) -> None:
        async with await self._connect() as conn:
            async with conn.transaction():
                await conn.execute(sql)

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        async with await self._connect() as conn:
            await conn.execute(sql, params)

    async def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[dict]:
        async with await self._connect() as conn:
            cur = await conn.execute(sql, params)
            return await cur.fetchone()

    @asynccontextmanager
    async def transaction(
        self, lock_key: Optional[str] = None, read_only: bool = False
    ) -> AsyncIterator[psycopg.AsyncConnection]:
        """
        SERIALIZABLE transaction. With lock_key, a transaction-scoped
        advisory lock serializes writers sharing that key.
        """
        conn = await self._connect()
        try:
            await conn.set_isolation_level(psycopg.IsolationLevel.SERIALIZABLE)
            await conn.set_read_only(read_only)
            async with conn.transaction():
                if lock_key is not None and not read_only:
                    await conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (lock_key,))
                yield conn
        finally:
            await conn.close()


class PostgresTaskSession(TaskStoreSession):
    def __init__(self, conn: psycopg.AsyncConnection) -> None:
        self._conn = conn

    async def _fetchone(self, sql: str, params: Sequence[Any] = ()):
        cur = await self._conn.execute(sql, params)
        return await cur.fetchone()

    async def _fetchall(self, sql: str, params: Sequence[Any] = ()):
        cur = await self._conn.execute(sql, params)
        return await cur.fetchall()

    async def ensure_user(self, owner_id: str, now_iso: str) -> None:
        await self._conn.execute(
            """
            INSERT INTO users(user_id, created_at, last_seen_at)
            VALUES (%s, %s::timestamptz, %s::timestamptz)
            ON CONFLICT (user_id) DO UPDATE SET last_seen_at = EXCLUDED.last_seen_at;
            """,
            (owner_id, now_iso, now_iso),
        )

    async def delete_user(self, owner_id: str) -> bool:
        cur = await self._conn.execute("DELETE FROM users WHERE user_id = %s;", (owner_id,))
        return cur.rowcount > 0

    async def get_task(self, owner_id: str, task_id: str) -> Optional[Task]:
        row = await self._fetchone(
            f"SELECT {TASK_COLUMNS} FROM tasks WHERE user_id = %s AND task_id = %s;",
            (owner_id, task_id),
        )
        return _row_to_task(row) if row else None

    async def insert_task(self, task: Task) -> None:
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({TASK_COLUMNS})
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s);
            """,
            (
                task.id,
                task.owner_id,
                task.title,
                task.completed,
                task.active,
                task.sort_key,
                task.created_at,
                task.completed_at,
                task.activated_at,
            ),
        )

    async def update_task(self, task: Task) -> None:
        await self._conn.execute(
            """
            UPDATE tasks
            SET title = %s,
                is_completed = %s,
                is_active = %s,
                sort_key = %s,
                completed_at = %s,
                activated_at = %s
            WHERE task_id = %s AND user_id = %s;
            """,
            (
                task.title,
                task.completed,
                task.active,
                task.sort_key,
                task.completed_at,
                task.activated_at,
                task.id,
                task.owner_id,
            ),
        )

    async def delete_task(self, owner_id: str, task_id: str) -> bool:
        cur = await self._conn.execute(
            "DELETE FROM tasks WHERE user_id = %s AND task_id = %s;", (owner_id, task_id)
        )
        return cur.rowcount > 0

    async def list_partition(self, owner_id: str, active: bool) -> Sequence[Task]:
        rows = await self._fetchall(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE user_id = %s AND is_active = %s
            ORDER BY sort_key ASC, created_at ASC;
            """,
            (owner_id, active),
        )
        return [_row_to_task(r) for r in rows]

    async def set_sort_keys(self, owner_id: str, keys: Mapping[str, float]) -> None:
        async with self._conn.cursor() as cur:
            await cur.executemany(
                "UPDATE tasks SET sort_key = %s WHERE user_id = %s AND task_id = %s;",
                [(key, owner_id, task_id) for task_id, key in keys.items()],
            )

    async def count_open_active(self, owner_id: str) -> int:
        row = await self._fetchone(
            "SELECT COUNT(*) AS cnt FROM tasks WHERE user_id = %s AND is_active AND NOT is_completed;",
            (owner_id,),
        )
        return int(row["cnt"]) if row else 0

    async def count_completed_active_between(self, owner_id: str, start_iso: str, end_iso: str) -> int:
        row = await self._fetchone(
            """
            SELECT COUNT(*) AS cnt
            FROM tasks
            WHERE user_id = %s AND is_active AND is_completed
              AND completed_at >= %s::timestamptz AND completed_at < %s::timestamptz;
            """,
            (owner_id, start_iso, end_iso),
        )
        return int(row["cnt"]) if row else 0

    async def list_completed(self, owner_id: str) -> Sequence[Task]:
        rows = await self._fetchall(
            f"""
            SELECT {TASK_COLUMNS}
            FROM tasks
            WHERE user_id = %s AND is_completed
            ORDER BY completed_at DESC;
            """,
            (owner_id,),
        )
        return [_row_to_task(r) for r in rows]

    async def get_partnership(self, owner_id: str) -> Optional[Partnership]:
        row = await self._fetchone(
            "SELECT user_id, partner_id, partnership_id, created_at FROM partners WHERE user_id = %s;",
            (owner_id,),
        )
        if not row:
            return None
        return Partnership(
            partnership_id=row["partnership_id"],
            user_a=row["user_id"],
            user_b=row["partner_id"],
            created_at=_as_utc(row["created_at"]),
        )

    async def insert_partnership(self, partnership: Partnership) -> None:
        try:
            async with self._conn.cursor() as cur:
                await cur.executemany(
                    "INSERT INTO partners(user_id, partner_id, partnership_id, created_at) VALUES (%s, %s, %s, %s);",
                    [
                        (partnership.user_a, partnership.user_b, partnership.partnership_id, partnership.created_at),
                        (partnership.user_b, partnership.user_a, partnership.partnership_id, partnership.created_at),
                    ],
                )
        except pg_errors.UniqueViolation as e:
            raise ConflictError("One of you already has a partner.") from e

    async def delete_partnership(self, owner_id: str) -> bool:
        cur = await self._conn.execute(
            """
            DELETE FROM partners
            WHERE partnership_id IN (SELECT partnership_id FROM partners WHERE user_id = %s);
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
                VALUES (%s, %s, %s, %s, %s, %s, %s);
                """,
                (
                    comment.id,
                    comment.task_id,
                    comment.author_id,
                    comment.content,
                    comment.created_at,
                    comment.updated_at,
                    comment.read_at,
                ),
            )
        except pg_errors.UniqueViolation as e:
            raise ConflictError("You already commented on this task; edit your comment instead.") from e

    async def get_comment(self, comment_id: str) -> Optional[Comment]:
        row = await self._fetchone(f"{COMMENT_SELECT} WHERE c.comment_id = %s;", (comment_id,))
        return _row_to_comment(row) if row else None

    async def find_comment(self, task_id: str, author_id: str) -> Optional[Comment]:
        row = await self._fetchone(
            f"{COMMENT_SELECT} WHERE c.task_id = %s AND c.author_id = %s;", (task_id, author_id)
        )
        return _row_to_comment(row) if row else None

    async def update_comment(self, comment: Comment) -> None:
        await self._conn.execute(
            "UPDATE comments SET content = %s, updated_at = %s, read_at = %s WHERE comment_id = %s;",
            (comment.content, comment.updated_at, comment.read_at, comment.id),
        )

    async def delete_comment(self, comment_id: str) -> bool:
        cur = await self._conn.execute("DELETE FROM comments WHERE comment_id = %s;", (comment_id,))
        return cur.rowcount > 0

    async def list_task_comments(
        self, task_id: str, unread_only: bool = False, author_id: Optional[str] = None
    ) -> Sequence[Comment]:
        sql = f"{COMMENT_SELECT} WHERE c.task_id = %s"
        params: list = [task_id]
        if unread_only:
            sql += " AND c.read_at IS NULL"
        if author_id is not None:
            sql += " AND c.author_id = %s"
            params.append(author_id)
        rows = await self._fetchall(sql + " ORDER BY c.created_at DESC;", params)
        return [_row_to_comment(r) for r in rows]

    async def list_unread_comments(self, owner_id: str) -> Sequence[Comment]:
        rows = await self._fetchall(
            f"{COMMENT_SELECT} WHERE t.user_id = %s AND c.read_at IS NULL ORDER BY c.created_at DESC;",
            (owner_id,),
        )
        return [_row_to_comment(r) for r in rows]

    async def count_unread_comments(self, owner_id: str) -> Mapping[str, int]:
        rows = await self._fetchall(
            """
            SELECT c.task_id, COUNT(*) AS cnt
            FROM comments c
            JOIN tasks t ON t.task_id = c.task_id
            WHERE t.user_id = %s AND c.read_at IS NULL
            GROUP BY c.task_id;
            """,
            (owner_id,),
        )
        return {r["task_id"]: int(r["cnt"]) for r in rows}


class PostgresTaskStore(TaskStore):
    """TaskStore on Postgres (production backend)."""

    def __init__(self, db: PgDatabase, migrations_dir: Path = MIGRATIONS_DIR) -> None:
        self._db = db
        self._migrations_dir = migrations_dir

    async def init(self) -> None:
        try:
            await apply_migrations(
                db=self._db,
                migrations_dir=str(self._migrations_dir),
                now_iso=to_iso(datetime.now(timezone.utc)),
            )
        except psycopg.OperationalError as e:
            logger.error("Postgres init failed", exc_info=True)
            raise StoreUnavailableError("Task store is unavailable.") from e
        logger.info("PostgresTaskStore ready")

    async def close(self) -> None:
        return

    @asynccontextmanager
    async def transaction(
        self, owner_id: Optional[str] = None, read_only: bool = False
    ) -> AsyncIterator[TaskStoreSession]:
        try:
            async with self._db.transaction(lock_key=owner_id, read_only=read_only) as conn:
                yield PostgresTaskSession(conn)
        except _CONFLICT_ERRORS as e:
            logger.warning("Postgres conflict: owner=%s error=%s", owner_id, e)
            raise ConflictError("The task list was changed concurrently; please retry.") from e
        except psycopg.OperationalError as e:
            logger.error("Postgres error: owner=%s", owner_id, exc_info=True)
            raise StoreUnavailableError("Task store is unavailable.") from e
