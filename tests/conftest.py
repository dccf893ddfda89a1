"""
Shared test doubles: a settable clock, sequential ids, and a TaskService
over a throwaway SQLite file.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pair_todo.domain.tasks.ports import Clock, IdGenerator
from pair_todo.domain.tasks.service import TaskService
from pair_todo.domain.tasks.week import WeekClock
from pair_todo.infra.db.connection import Database
from pair_todo.infra.db.repo.tasks_sqlite import SqliteTaskStore

# Wednesday 2024-01-10 07:00 in New York; the week began 2024-01-03 18:00 local
DEFAULT_NOW = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


class FixedClock(Clock):
    def __init__(self, now: datetime = DEFAULT_NOW) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now

    def advance(self, **kwargs) -> None:
        self._now = self._now + timedelta(**kwargs)


class SequentialIds(IdGenerator):
    def __init__(self, prefix: str = "t") -> None:
        self._prefix = prefix
        self._n = 0

    def new_id(self) -> str:
        self._n += 1
        return f"{self._prefix}{self._n:04d}"


@pytest.fixture
def make_service(tmp_path):
    """Async factory: `service, clock = await make_service()`."""

    async def _make(now: datetime = DEFAULT_NOW):
        store = SqliteTaskStore(Database(str(tmp_path / "tasks.db")))
        await store.init()
        clock = FixedClock(now)
        service = TaskService(store=store, clock=clock, ids=SequentialIds(), week_clock=WeekClock())
        return service, clock

    return _make
