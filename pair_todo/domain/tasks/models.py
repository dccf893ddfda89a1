from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Partition(str, Enum):
    """Drop targets; values match the drag-and-drop container ids."""

    ACTIVE = "active-tasks"
    MASTER = "master-tasks"

    @property
    def is_active(self) -> bool:
        return self is Partition.ACTIVE

    @classmethod
    def of(cls, active: bool) -> "Partition":
        return cls.ACTIVE if active else cls.MASTER

    @classmethod
    def parse(cls, raw: "str | Partition") -> "Partition":
        if isinstance(raw, Partition):
            return raw
        value = (raw or "").strip().lower()
        aliases = {"active": cls.ACTIVE, "master": cls.MASTER, "a": cls.ACTIVE, "m": cls.MASTER}
        if value in aliases:
            return aliases[value]
        return cls(value)


@dataclass(frozen=True)
class Task:
    id: str
    owner_id: str
    title: str
    completed: bool
    active: bool
    sort_key: float
    created_at: datetime
    completed_at: Optional[datetime]
    activated_at: Optional[datetime]

    @property
    def partition(self) -> Partition:
        return Partition.of(self.active)

    @property
    def is_open(self) -> bool:
        return not self.completed


@dataclass(frozen=True)
class TaskBoard:
    """Result of listing an owner's tasks."""

    active: list[Task]
    active_open: list[Task]
    master: list[Task]
    completed_this_week: int
    needs_top_off: bool
    # task id -> unread partner comments
    unread_comments: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class PartnerBoard:
    partner_id: Optional[str]
    active_tasks: list[Task] = field(default_factory=list)
    completed_this_week: int = 0


@dataclass(frozen=True)
class Partnership:
    partnership_id: str
    user_a: str
    user_b: str
    created_at: datetime

    def other(self, owner_id: str) -> str:
        return self.user_b if self.user_a == owner_id else self.user_a


@dataclass(frozen=True)
class Comment:
    """A partner's note on one of the owner's tasks."""

    id: str
    task_id: str
    task_owner_id: str
    author_id: str
    content: str
    created_at: datetime
    updated_at: datetime
    read_at: Optional[datetime] = None

    @property
    def is_read(self) -> bool:
        return self.read_at is not None
