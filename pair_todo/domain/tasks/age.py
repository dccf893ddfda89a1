from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from pair_todo.constants import TASK_AGE_AGING_DAYS, TASK_AGE_FRESH_DAYS
from pair_todo.domain.common.time import ensure_aware

TaskAgeCategory = Literal["fresh", "aging", "stale"]


@dataclass(frozen=True)
class TaskAge:
    days_old: int
    category: TaskAgeCategory

    @property
    def icon(self) -> str:
        return {"fresh": "🔥", "aging": "⏳", "stale": "💀"}[self.category]


def task_age(activated_at: Optional[datetime], now: datetime) -> TaskAge:
    """How long a task has been sitting in the active list."""
    if activated_at is None:
        return TaskAge(days_old=0, category="fresh")
    delta = ensure_aware(now) - ensure_aware(activated_at)
    days_old = max(0, delta.days)
    if days_old <= TASK_AGE_FRESH_DAYS:
        return TaskAge(days_old=days_old, category="fresh")
    if days_old <= TASK_AGE_AGING_DAYS:
        return TaskAge(days_old=days_old, category="aging")
    return TaskAge(days_old=days_old, category="stale")
