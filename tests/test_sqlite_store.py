"""
SQLite adapter: migrations, transaction rollback, cascade at the SQL level.
"""
from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone

import pytest

from pair_todo.domain.common.errors import ConflictError, StoreUnavailableError, ValidationError
from pair_todo.domain.common.time import to_iso
from pair_todo.domain.tasks.models import Comment, Task
from pair_todo.infra.db.connection import Database
from pair_todo.infra.db.repo.tasks_sqlite import SqliteTaskStore

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


def _task(task_id: str, key: float, active: bool = False) -> Task:
    return Task(
        id=task_id,
        owner_id="u1",
        title=task_id,
        completed=False,
        active=active,
        sort_key=key,
        created_at=NOW,
        completed_at=None,
        activated_at=NOW if active else None,
    )


async def _store(tmp_path) -> tuple[Database, SqliteTaskStore]:
    db = Database(str(tmp_path / "store.db"))
    store = SqliteTaskStore(db)
    await store.init()
    return db, store


def test_migrations_apply_once(tmp_path):
    async def run():
        db, store = await _store(tmp_path)
        await store.init()
        rows = await db.fetchall("SELECT version FROM schema_migrations ORDER BY version;")
        assert [r["version"] for r in rows] == [1, 2, 3]

    asyncio.run(run())


def test_partition_scan_is_ordered_by_key(tmp_path):
    async def run():
        _, store = await _store(tmp_path)
        async with store.transaction("u1") as tx:
            await tx.ensure_user("u1", to_iso(NOW))
            for task_id, key in (("c", 3.0), ("a", -1.0), ("b", 0.5)):
                await tx.insert_task(_task(task_id, key))
            await tx.insert_task(_task("x", 0.0, active=True))
        async with store.transaction("u1", read_only=True) as tx:
            master = await tx.list_partition("u1", False)
            active = await tx.list_partition("u1", True)
            assert await tx.count_open_active("u1") == 1
        assert [t.id for t in master] == ["a", "b", "c"]
        assert [t.id for t in active] == ["x"]
        assert active[0].activated_at == NOW

    asyncio.run(run())


def test_exception_inside_transaction_rolls_back(tmp_path):
    async def run():
        _, store = await _store(tmp_path)
        with pytest.raises(ValidationError):
            async with store.transaction("u1") as tx:
                await tx.ensure_user("u1", to_iso(NOW))
                await tx.insert_task(_task("a", 0.0))
                raise ValidationError("abort")
        async with store.transaction("u1", read_only=True) as tx:
            assert await tx.list_partition("u1", False) == []
            assert await tx.get_task("u1", "a") is None

    asyncio.run(run())


def test_set_sort_keys_and_delete_user_cascade(tmp_path):
    async def run():
        db, store = await _store(tmp_path)
        async with store.transaction("u1") as tx:
            await tx.ensure_user("u1", to_iso(NOW))
            await tx.insert_task(_task("a", 0.0))
            await tx.insert_task(_task("b", 1.0))
            await tx.set_sort_keys("u1", {"a": 2000.0, "b": 1000.0})
        async with store.transaction("u1", read_only=True) as tx:
            assert [t.id for t in await tx.list_partition("u1", False)] == ["b", "a"]

        async with store.transaction("u1") as tx:
            assert await tx.delete_user("u1") is True
        row = await db.fetchone("SELECT COUNT(*) AS cnt FROM tasks;")
        assert row["cnt"] == 0

    asyncio.run(run())


def test_flag_and_timestamp_must_agree(tmp_path):
    async def run():
        _, store = await _store(tmp_path)
        bad = Task(
            id="bad",
            owner_id="u1",
            title="bad",
            completed=True,
            active=False,
            sort_key=0.0,
            created_at=NOW,
            completed_at=None,
            activated_at=None,
        )
        with pytest.raises(sqlite3.IntegrityError):
            async with store.transaction("u1") as tx:
                await tx.ensure_user("u1", to_iso(NOW))
                await tx.insert_task(bad)

    asyncio.run(run())


def test_busy_database_is_a_conflict(tmp_path):
    async def run():
        path = str(tmp_path / "store.db")
        db = Database(path, busy_timeout_s=0.05)
        store = SqliteTaskStore(db)
        await store.init()
        # another writer holds the write lock
        async with db.transaction():
            with pytest.raises(ConflictError):
                async with store.transaction("u1") as tx:
                    await tx.count_open_active("u1")
        # lock released: writes go through again
        async with store.transaction("u1") as tx:
            assert await tx.count_open_active("u1") == 0

    asyncio.run(run())


def test_unopenable_file_is_unavailable(tmp_path):
    async def run():
        # a directory cannot be opened as a database
        store = SqliteTaskStore(Database(str(tmp_path)))
        with pytest.raises(StoreUnavailableError):
            await store.init()

    asyncio.run(run())


def test_second_comment_by_same_author_is_a_conflict(tmp_path):
    async def run():
        _, store = await _store(tmp_path)
        async with store.transaction("u1") as tx:
            await tx.ensure_user("u1", to_iso(NOW))
            await tx.ensure_user("u2", to_iso(NOW))
            await tx.insert_task(_task("a", 0.0))
            await tx.insert_comment(
                Comment(id="c1", task_id="a", task_owner_id="u1", author_id="u2",
                        content="hi", created_at=NOW, updated_at=NOW)
            )
        with pytest.raises(ConflictError):
            async with store.transaction("u2") as tx:
                await tx.insert_comment(
                    Comment(id="c2", task_id="a", task_owner_id="u1", author_id="u2",
                            content="again", created_at=NOW, updated_at=NOW)
                )
        async with store.transaction("u1", read_only=True) as tx:
            (only,) = await tx.list_task_comments("a")
            assert only.id == "c1"
            assert only.task_owner_id == "u1"
            assert await tx.count_unread_comments("u1") == {"a": 1}

    asyncio.run(run())
