from __future__ import annotations

import logging

from pair_todo.constants import ACTIVE_TASK_LIMIT
from pair_todo.domain.common.errors import CapacityExceededError
from pair_todo.domain.tasks.ports import TaskStoreSession

logger = logging.getLogger(__name__)


class CapacityGuard:
    """
    Ceiling on open (incomplete) tasks in the active partition.

    Completed tasks that are still active do not occupy a slot.
    Must be consulted inside the same transaction as the write it guards.
    """

    def __init__(self, limit: int = ACTIVE_TASK_LIMIT) -> None:
        self._limit = limit

    @property
    def limit(self) -> int:
        return self._limit

    async def can_activate(self, tx: TaskStoreSession, owner_id: str) -> bool:
        count = await tx.count_open_active(owner_id)
        return count < self._limit

    async def ensure_can_activate(self, tx: TaskStoreSession, owner_id: str) -> None:
        if not await self.can_activate(tx, owner_id):
            logger.info("Capacity rejected: owner=%s limit=%s", owner_id, self._limit)
            raise CapacityExceededError(limit=self._limit)
