"""
Postgres adapter without a server: row decoding and error translation.
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import psycopg
import pytest
from psycopg import errors as pg_errors

from pair_todo.domain.common.errors import ConflictError, StoreUnavailableError
from pair_todo.infra.db.repo.tasks_postgres import (
    PostgresTaskStore,
    _as_utc,
    _row_to_comment,
    _row_to_task,
)

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class FailingDb:
    """Stands in for PgDatabase; every transaction fails with `error`."""

    placeholder = "%s"

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls: list[tuple] = []

    @asynccontextmanager
    async def transaction(self, lock_key=None, read_only=False):
        self.calls.append((lock_key, read_only))
        raise self.error
        yield  # pragma: no cover


def test_as_utc_normalizes_values():
    assert _as_utc(None) is None
    # naive values from the driver are UTC
    assert _as_utc(datetime(2024, 1, 10, 12, 0)) == NOW
    est = timezone(timedelta(hours=-5))
    converted = _as_utc(datetime(2024, 1, 10, 7, 0, tzinfo=est))
    assert converted == NOW
    assert converted.utcoffset() == timedelta(0)
    assert _as_utc("2024-01-10T12:00:00+00:00") == NOW


def test_row_to_task_reads_dict_rows():
    task = _row_to_task(
        {
            "task_id": "t1",
            "user_id": "u1",
            "title": "ship",
            "is_completed": 1,
            "is_active": True,
            "sort_key": 1500,
            "created_at": datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
            "completed_at": NOW,
            "activated_at": datetime(2024, 1, 2, 9, 0),
        }
    )
    assert task.id == "t1" and task.owner_id == "u1"
    assert task.completed is True and task.active is True
    assert task.sort_key == 1500.0 and isinstance(task.sort_key, float)
    assert task.completed_at == NOW
    assert task.activated_at == datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)


def test_row_to_comment_reads_dict_rows():
    comment = _row_to_comment(
        {
            "comment_id": "c1",
            "task_id": "t1",
            "task_owner_id": "u2",
            "author_id": "u1",
            "content": "nice",
            "created_at": NOW,
            "updated_at": NOW,
            "read_at": None,
        }
    )
    assert comment.task_owner_id == "u2"
    assert comment.is_read is False


@pytest.mark.parametrize(
    "error",
    [
        pg_errors.SerializationFailure("could not serialize access"),
        pg_errors.DeadlockDetected("deadlock detected"),
        pg_errors.LockNotAvailable("lock not available"),
    ],
)
def test_serialization_failures_are_conflicts(error):
    async def run():
        db = FailingDb(error)
        store = PostgresTaskStore(db)
        with pytest.raises(ConflictError):
            async with store.transaction("u1") as tx:
                await tx.count_open_active("u1")
        assert db.calls == [("u1", False)]

    asyncio.run(run())


def test_connection_failure_is_unavailable():
    async def run():
        store = PostgresTaskStore(FailingDb(psycopg.OperationalError("connection refused")))
        with pytest.raises(StoreUnavailableError):
            async with store.transaction("u1", read_only=True) as tx:
                await tx.count_open_active("u1")

    asyncio.run(run())
