from __future__ import annotations

from datetime import datetime

from pair_todo.domain.common.time import to_iso
from pair_todo.domain.tasks.ports import TaskStoreSession
from pair_todo.domain.tasks.week import WeekClock


class AnalyticsAggregator:
    """Weekly completion count, recomputed on every read and never stored."""

    def __init__(self, week_clock: WeekClock) -> None:
        self._week = week_clock

    async def completed_this_week(self, tx: TaskStoreSession, owner_id: str, now: datetime) -> int:
        # active partition only; completed_at in [week start, next week start)
        start, end = self._week.window(now)
        return await tx.count_completed_active_between(owner_id, to_iso(start), to_iso(end))

    async def completed_last_week(self, tx: TaskStoreSession, owner_id: str, now: datetime) -> int:
        start = self._week.previous_week_start(now)
        end = self._week.current_week_start(now)
        return await tx.count_completed_active_between(owner_id, to_iso(start), to_iso(end))
