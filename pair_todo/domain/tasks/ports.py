from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Mapping, Optional, Sequence

from pair_todo.domain.tasks.models import Comment, Partnership, Task


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime: ...


class IdGenerator(ABC):
    @abstractmethod
    def new_id(self) -> str: ...


class TaskStoreSession(ABC):
    """
    Operations available inside one store transaction.

    Every read and write is scoped by owner. Partition scans return tasks
    ordered by sort_key ascending.
    """

    @abstractmethod
    async def ensure_user(self, owner_id: str, now_iso: str) -> None: ...

    @abstractmethod
    async def delete_user(self, owner_id: str) -> bool: ...

    @abstractmethod
    async def get_task(self, owner_id: str, task_id: str) -> Optional[Task]: ...

    @abstractmethod
    async def insert_task(self, task: Task) -> None: ...

    @abstractmethod
    async def update_task(self, task: Task) -> None: ...

    @abstractmethod
    async def delete_task(self, owner_id: str, task_id: str) -> bool: ...

    @abstractmethod
    async def list_partition(self, owner_id: str, active: bool) -> Sequence[Task]: ...

    @abstractmethod
    async def set_sort_keys(self, owner_id: str, keys: Mapping[str, float]) -> None: ...

    @abstractmethod
    async def count_open_active(self, owner_id: str) -> int: ...

    @abstractmethod
    async def count_completed_active_between(self, owner_id: str, start_iso: str, end_iso: str) -> int: ...

    @abstractmethod
    async def list_completed(self, owner_id: str) -> Sequence[Task]: ...

    @abstractmethod
    async def get_partnership(self, owner_id: str) -> Optional[Partnership]: ...

    @abstractmethod
    async def insert_partnership(self, partnership: Partnership) -> None: ...

    @abstractmethod
    async def delete_partnership(self, owner_id: str) -> bool: ...

    # comments

    @abstractmethod
    async def insert_comment(self, comment: Comment) -> None: ...

    @abstractmethod
    async def get_comment(self, comment_id: str) -> Optional[Comment]: ...

    @abstractmethod
    async def find_comment(self, task_id: str, author_id: str) -> Optional[Comment]: ...

    @abstractmethod
    async def update_comment(self, comment: Comment) -> None: ...

    @abstractmethod
    async def delete_comment(self, comment_id: str) -> bool: ...

    @abstractmethod
    async def list_task_comments(
        self, task_id: str, unread_only: bool = False, author_id: Optional[str] = None
    ) -> Sequence[Comment]: ...

    @abstractmethod
    async def list_unread_comments(self, owner_id: str) -> Sequence[Comment]: ...

    @abstractmethod
    async def count_unread_comments(self, owner_id: str) -> Mapping[str, int]: ...


class TaskStore(ABC):
    """Persistence backend. Adapters own the dialect and column mapping."""

    @abstractmethod
    async def init(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    def transaction(
        self, owner_id: Optional[str] = None, read_only: bool = False
    ) -> AbstractAsyncContextManager[TaskStoreSession]:
        """
        Open an atomic unit of work. Commits on normal exit, rolls back on
        any exception. Writing transactions for the same owner are serialized.
        """
