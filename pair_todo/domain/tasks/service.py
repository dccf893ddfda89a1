from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Optional

from pair_todo.domain.common.errors import ConflictError, NotFoundError, ValidationError
from pair_todo.domain.common.time import to_iso, to_utc
from pair_todo.domain.tasks.analytics import AnalyticsAggregator
from pair_todo.domain.tasks.capacity import CapacityGuard
from pair_todo.domain.tasks.models import Comment, Partition, PartnerBoard, Partnership, Task, TaskBoard
from pair_todo.domain.tasks.ordering import OrderingEngine
from pair_todo.domain.tasks.ports import Clock, IdGenerator, TaskStore, TaskStoreSession
from pair_todo.domain.tasks.rules import validate_comment, validate_destination_index, validate_title
from pair_todo.domain.tasks.week import WeekClock

logger = logging.getLogger(__name__)


class TaskService:
    """
    Task partition and ordering logic. No aiogram. No SQL.

    Every operation runs in one store transaction; a domain error raised
    half-way rolls the whole operation back.
    """

    def __init__(
        self,
        store: TaskStore,
        clock: Clock,
        ids: IdGenerator,
        week_clock: Optional[WeekClock] = None,
        guard: Optional[CapacityGuard] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._ids = ids
        self._week = week_clock or WeekClock()
        self._guard = guard or CapacityGuard()
        self._ordering = OrderingEngine(self._guard)
        self._analytics = AnalyticsAggregator(self._week)

    @property
    def week_clock(self) -> WeekClock:
        return self._week

    def _now(self) -> datetime:
        return to_utc(self._clock.now())

    async def _require_task(self, tx: TaskStoreSession, owner_id: str, task_id: str) -> Task:
        task = await tx.get_task(owner_id, task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    # ---- tasks ----

    async def create_task(self, owner_id: str, title: str, want_active: bool = False) -> Task:
        clean_title = validate_title(title)
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            await tx.ensure_user(owner_id, to_iso(now))
            if want_active:
                await self._guard.ensure_can_activate(tx, owner_id)
            task_id = self._ids.new_id()
            siblings = await tx.list_partition(owner_id, want_active)
            placement = self._ordering.tail(siblings, task_id)
            task = Task(
                id=task_id,
                owner_id=owner_id,
                title=clean_title,
                completed=False,
                active=want_active,
                sort_key=placement.sort_key,
                created_at=now,
                completed_at=None,
                activated_at=now if want_active else None,
            )
            await tx.insert_task(task)
            if placement.was_renumbered:
                await tx.set_sort_keys(owner_id, placement.renumbered)
        logger.info("Task created: owner=%s task=%s active=%s", owner_id, task.id, want_active)
        return task

    async def _apply_completed(
        self, tx: TaskStoreSession, task: Task, completed: bool, now: datetime
    ) -> Task:
        if task.completed == completed:
            return task
        if not completed and task.active:
            # reopening an active task takes a slot again
            await self._guard.ensure_can_activate(tx, task.owner_id)
        updated = replace(task, completed=completed, completed_at=now if completed else None)
        await tx.update_task(updated)
        return updated

    async def set_completed(self, task_id: str, owner_id: str, completed: bool) -> Task:
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            task = await self._require_task(tx, owner_id, task_id)
            updated = await self._apply_completed(tx, task, completed, now)
        logger.info("Task completion set: owner=%s task=%s completed=%s", owner_id, task_id, completed)
        return updated

    async def toggle_completed(self, task_id: str, owner_id: str) -> Task:
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            task = await self._require_task(tx, owner_id, task_id)
            updated = await self._apply_completed(tx, task, not task.completed, now)
        logger.info("Task completion toggled: owner=%s task=%s completed=%s", owner_id, task_id, updated.completed)
        return updated

    async def rename(self, task_id: str, owner_id: str, new_title: str) -> Task:
        clean_title = validate_title(new_title)
        async with self._store.transaction(owner_id) as tx:
            task = await self._require_task(tx, owner_id, task_id)
            updated = replace(task, title=clean_title)
            await tx.update_task(updated)
        logger.info("Task renamed: owner=%s task=%s", owner_id, task_id)
        return updated

    async def set_active(self, task_id: str, owner_id: str, active: bool) -> Task:
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            task = await self._require_task(tx, owner_id, task_id)
            if task.active == active:
                return task
            if active:
                await self._guard.ensure_can_activate(tx, owner_id)
            siblings = await tx.list_partition(owner_id, active)
            placement = self._ordering.tail(siblings, task.id)
            updated = replace(
                task,
                active=active,
                activated_at=now if active else None,
                sort_key=placement.sort_key,
            )
            await tx.update_task(updated)
            if placement.was_renumbered:
                await tx.set_sort_keys(owner_id, placement.renumbered)
        logger.info("Task active set: owner=%s task=%s active=%s", owner_id, task_id, active)
        return updated

    async def reorder(
        self,
        task_id: str,
        owner_id: str,
        source: "Partition | str",
        destination: "Partition | str",
        destination_index: int,
    ) -> float:
        """Drag-and-drop move. Returns the task's new sort key."""
        try:
            source_p = Partition.parse(source)
            dest_p = Partition.parse(destination)
        except ValueError:
            raise ValidationError("Unknown list; use active-tasks or master-tasks.")
        index = validate_destination_index(destination_index)
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            task = await self._require_task(tx, owner_id, task_id)
            if task.partition is not source_p:
                raise ValidationError("Task is not in the source list; refresh and try again.")
            moved = await self._ordering.reorder(tx, task, dest_p, index, now)
        logger.info(
            "Task reordered: owner=%s task=%s %s->%s index=%s",
            owner_id, task_id, source_p.value, dest_p.value, index,
        )
        return moved.sort_key

    async def delete_task(self, task_id: str, owner_id: str) -> None:
        async with self._store.transaction(owner_id) as tx:
            if not await tx.delete_task(owner_id, task_id):
                raise NotFoundError("Task not found.")
        logger.info("Task deleted: owner=%s task=%s", owner_id, task_id)

    async def delete_owner(self, owner_id: str) -> None:
        """Remove the owner; their tasks and partnership go with them."""
        async with self._store.transaction(owner_id) as tx:
            await tx.delete_user(owner_id)
        logger.info("Owner deleted: owner=%s", owner_id)

    async def rebalance(self, owner_id: str) -> int:
        async with self._store.transaction(owner_id) as tx:
            changed = await self._ordering.rebalance(tx, owner_id)
        logger.info("Sort keys rebalanced: owner=%s changed=%s", owner_id, changed)
        return changed

    # ---- reads ----

    async def can_activate(self, owner_id: str) -> bool:
        async with self._store.transaction(owner_id, read_only=True) as tx:
            return await self._guard.can_activate(tx, owner_id)

    async def list_tasks(self, owner_id: str) -> TaskBoard:
        now = self._now()
        async with self._store.transaction(owner_id, read_only=True) as tx:
            active = list(await tx.list_partition(owner_id, True))
            master = list(await tx.list_partition(owner_id, False))
            completed_this_week = await self._analytics.completed_this_week(tx, owner_id, now)
            unread = dict(await tx.count_unread_comments(owner_id))
        active_open = [t for t in active if t.is_open]
        return TaskBoard(
            active=active,
            active_open=active_open,
            master=master,
            completed_this_week=completed_this_week,
            needs_top_off=len(active_open) < self._guard.limit,
            unread_comments=unread,
        )

    async def completed_this_week(self, owner_id: str, now: Optional[datetime] = None) -> int:
        at = to_utc(now) if now is not None else self._now()
        async with self._store.transaction(owner_id, read_only=True) as tx:
            return await self._analytics.completed_this_week(tx, owner_id, at)

    async def completed_last_week(self, owner_id: str, now: Optional[datetime] = None) -> int:
        at = to_utc(now) if now is not None else self._now()
        async with self._store.transaction(owner_id, read_only=True) as tx:
            return await self._analytics.completed_last_week(tx, owner_id, at)

    async def list_completed(self, owner_id: str) -> list[Task]:
        async with self._store.transaction(owner_id, read_only=True) as tx:
            return list(await tx.list_completed(owner_id))

    # ---- partners ----

    async def link_partners(self, owner_id: str, partner_id: str) -> Partnership:
        if owner_id == partner_id:
            raise ValidationError("You cannot partner with yourself.")
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            for uid in (owner_id, partner_id):
                if await tx.get_partnership(uid) is not None:
                    raise ConflictError("One of you already has a partner.")
                await tx.ensure_user(uid, to_iso(now))
            partnership = Partnership(
                partnership_id=self._ids.new_id(),
                user_a=owner_id,
                user_b=partner_id,
                created_at=now,
            )
            await tx.insert_partnership(partnership)
        logger.info("Partners linked: %s <-> %s", owner_id, partner_id)
        return partnership

    async def unlink_partner(self, owner_id: str) -> None:
        async with self._store.transaction(owner_id) as tx:
            if not await tx.delete_partnership(owner_id):
                raise NotFoundError("No partner linked.")
        logger.info("Partner unlinked: owner=%s", owner_id)

    async def partner_board(self, owner_id: str) -> PartnerBoard:
        """Read-only view of the partner's active list and weekly count."""
        now = self._now()
        async with self._store.transaction(owner_id, read_only=True) as tx:
            partnership = await tx.get_partnership(owner_id)
            if partnership is None:
                return PartnerBoard(partner_id=None)
            partner_id = partnership.other(owner_id)
            active = list(await tx.list_partition(partner_id, True))
            completed_this_week = await self._analytics.completed_this_week(tx, partner_id, now)
        # open first, each group in list order
        active.sort(key=lambda t: t.completed)
        return PartnerBoard(
            partner_id=partner_id,
            active_tasks=active,
            completed_this_week=completed_this_week,
        )

    # ---- comments ----

    async def _visible_task(self, tx: TaskStoreSession, viewer_id: str, task_id: str) -> Task:
        """The viewer's own task or one of their partner's; NotFoundError otherwise."""
        task = await tx.get_task(viewer_id, task_id)
        if task is not None:
            return task
        partnership = await tx.get_partnership(viewer_id)
        if partnership is not None:
            task = await tx.get_task(partnership.other(viewer_id), task_id)
            if task is not None:
                return task
        raise NotFoundError("Task not found.")

    async def _visible_comment(self, tx: TaskStoreSession, viewer_id: str, comment_id: str) -> Comment:
        comment = await tx.get_comment(comment_id)
        if comment is None or viewer_id not in (comment.author_id, comment.task_owner_id):
            raise NotFoundError("Comment not found.")
        return comment

    async def add_comment(self, task_id: str, author_id: str, content: str) -> Comment:
        clean = validate_comment(content)
        now = self._now()
        async with self._store.transaction(author_id) as tx:
            task = await self._visible_task(tx, author_id, task_id)
            if task.owner_id == author_id:
                raise ValidationError("You cannot comment on your own tasks.")
            if await tx.find_comment(task_id, author_id) is not None:
                raise ConflictError("You already commented on this task; edit your comment instead.")
            comment = Comment(
                id=self._ids.new_id(),
                task_id=task_id,
                task_owner_id=task.owner_id,
                author_id=author_id,
                content=clean,
                created_at=now,
                updated_at=now,
            )
            await tx.insert_comment(comment)
        logger.info("Comment added: author=%s task=%s comment=%s", author_id, task_id, comment.id)
        return comment

    async def edit_comment(self, comment_id: str, author_id: str, content: str) -> Comment:
        """Replace the text; the owner sees it as unread again."""
        clean = validate_comment(content)
        now = self._now()
        async with self._store.transaction(author_id) as tx:
            comment = await self._visible_comment(tx, author_id, comment_id)
            if comment.author_id != author_id:
                raise ValidationError("Only the author can edit a comment.")
            updated = replace(comment, content=clean, updated_at=now, read_at=None)
            await tx.update_comment(updated)
        logger.info("Comment edited: author=%s comment=%s", author_id, comment_id)
        return updated

    async def delete_comment(self, comment_id: str, author_id: str) -> None:
        async with self._store.transaction(author_id) as tx:
            comment = await self._visible_comment(tx, author_id, comment_id)
            if comment.author_id != author_id:
                raise ValidationError("Only the author can delete a comment.")
            await tx.delete_comment(comment_id)
        logger.info("Comment deleted: author=%s comment=%s", author_id, comment_id)

    async def list_comments(self, task_id: str, viewer_id: str) -> list[Comment]:
        """Owner: unread comments on the task. Partner: their own comments."""
        async with self._store.transaction(viewer_id, read_only=True) as tx:
            task = await self._visible_task(tx, viewer_id, task_id)
            if task.owner_id == viewer_id:
                return list(await tx.list_task_comments(task_id, unread_only=True))
            return list(await tx.list_task_comments(task_id, author_id=viewer_id))

    async def list_unread_comments(self, owner_id: str) -> list[Comment]:
        async with self._store.transaction(owner_id, read_only=True) as tx:
            return list(await tx.list_unread_comments(owner_id))

    async def mark_comment_read(self, comment_id: str, owner_id: str) -> Comment:
        now = self._now()
        async with self._store.transaction(owner_id) as tx:
            comment = await self._visible_comment(tx, owner_id, comment_id)
            if comment.task_owner_id != owner_id:
                raise ValidationError("Only the task owner can mark a comment as read.")
            if comment.is_read:
                return comment
            updated = replace(comment, read_at=now)
            await tx.update_comment(updated)
        logger.info("Comment read: owner=%s comment=%s", owner_id, comment_id)
        return updated
