"""
Sort-key assignment for drag-and-drop across the active and master lists.

Each owner has two independently ordered partitions. A moved task gets a
key strictly between its new neighbours:

- index 0              -> first key - 1 (0 when the partition is empty)
- index >= len(others) -> last key + 1  (0 when the partition is empty)
- otherwise            -> mean of the keys before and after the slot

Repeated midpoint insertion halves the gap each time. When the gap to a
neighbour drops below SORT_KEY_MIN_GAP the destination partition is
renumbered to evenly spaced keys in the same transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional, Sequence

from pair_todo.constants import SORT_KEY_MIN_GAP, SORT_KEY_STEP
from pair_todo.domain.tasks.capacity import CapacityGuard
from pair_todo.domain.tasks.models import Partition, Task
from pair_todo.domain.tasks.ports import TaskStoreSession

logger = logging.getLogger(__name__)


def key_for_index(keys: Sequence[float], index: int) -> float:
    """Candidate key for inserting at index into ascending keys."""
    if not keys:
        return 0.0
    if index <= 0:
        return keys[0] - 1
    if index >= len(keys):
        return keys[-1] + 1
    return (keys[index - 1] + keys[index]) / 2


def renumbered_keys(ordered_ids: Sequence[str], step: float = SORT_KEY_STEP) -> dict[str, float]:
    return {task_id: (i + 1) * step for i, task_id in enumerate(ordered_ids)}


@dataclass(frozen=True)
class Placement:
    sort_key: float
    # keys for the other tasks of the partition; empty unless it was renumbered
    renumbered: dict[str, float] = field(default_factory=dict)

    @property
    def was_renumbered(self) -> bool:
        return bool(self.renumbered)


class OrderingEngine:
    def __init__(
        self,
        guard: CapacityGuard,
        step: float = SORT_KEY_STEP,
        min_gap: float = SORT_KEY_MIN_GAP,
    ) -> None:
        self._guard = guard
        self._step = step
        self._min_gap = min_gap

    def _is_safe(self, keys: Sequence[float], index: int, key: float) -> bool:
        before: Optional[float] = keys[index - 1] if 0 < index <= len(keys) else None
        after: Optional[float] = keys[index] if index < len(keys) else None
        if before is not None and not key - before >= self._min_gap:
            return False
        if after is not None and not after - key >= self._min_gap:
            return False
        return True

    def place(self, siblings: Sequence[Task], index: int, task_id: str) -> Placement:
        """
        Key for task_id inserted at index among siblings (ordered, without task_id).
        """
        slot = max(0, min(index, len(siblings)))
        keys = [t.sort_key for t in siblings]
        key = key_for_index(keys, slot)
        if self._is_safe(keys, slot, key):
            return Placement(sort_key=key)

        ordered_ids = [t.id for t in siblings]
        ordered_ids.insert(slot, task_id)
        new_keys = renumbered_keys(ordered_ids, self._step)
        moved_key = new_keys.pop(task_id)
        changed = {t.id: new_keys[t.id] for t in siblings if new_keys[t.id] != t.sort_key}
        return Placement(sort_key=moved_key, renumbered=changed)

    def tail(self, siblings: Sequence[Task], task_id: str) -> Placement:
        return self.place(siblings, len(siblings), task_id)

    async def reorder(
        self,
        tx: TaskStoreSession,
        task: Task,
        destination: Partition,
        index: int,
        now: datetime,
    ) -> Task:
        """
        Move task to index within destination and persist it.

        Moving into the active partition passes the capacity guard first; a
        rejection leaves the task untouched.
        """
        partition_tasks = list(await tx.list_partition(task.owner_id, destination.is_active))
        siblings = [t for t in partition_tasks if t.id != task.id]

        if task.partition is destination:
            current = next(i for i, t in enumerate(partition_tasks) if t.id == task.id)
            if min(index, len(siblings)) == current:
                return task
            moved = task
        else:
            if destination.is_active:
                await self._guard.ensure_can_activate(tx, task.owner_id)
            moved = replace(
                task,
                active=destination.is_active,
                activated_at=now if destination.is_active else None,
            )

        placement = self.place(siblings, index, task.id)
        moved = replace(moved, sort_key=placement.sort_key)
        await tx.update_task(moved)
        if placement.was_renumbered:
            logger.info(
                "Renumbered partition: owner=%s partition=%s tasks=%s",
                task.owner_id, destination.value, len(placement.renumbered) + 1,
            )
            await tx.set_sort_keys(task.owner_id, placement.renumbered)
        return moved

    async def rebalance(self, tx: TaskStoreSession, owner_id: str) -> int:
        """Renumber both partitions to evenly spaced keys. Returns tasks rewritten."""
        changed_total = 0
        for active in (True, False):
            tasks = list(await tx.list_partition(owner_id, active))
            new_keys = renumbered_keys([t.id for t in tasks], self._step)
            changed = {t.id: new_keys[t.id] for t in tasks if new_keys[t.id] != t.sort_key}
            if changed:
                await tx.set_sort_keys(owner_id, changed)
            changed_total += len(changed)
        return changed_total
