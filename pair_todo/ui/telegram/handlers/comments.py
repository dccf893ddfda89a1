from __future__ import annotations

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from pair_todo.domain.common.errors import DomainError, NotFoundError, ValidationError
from pair_todo.domain.tasks.models import Task
from pair_todo.domain.tasks.service import TaskService
from pair_todo.ui.telegram import texts
from pair_todo.ui.telegram.handlers._common import (
    answer_error,
    command_args,
    error_text,
    owner_id_of,
    resolve_partner_ref,
)
from pair_todo.ui.telegram.keyboards.comments import CB_PREFIX, inbox_kb

router = Router()

NO_PARTNER = "No partner linked yet. Use /link &lt;telegram id&gt;."
NO_PARTNER_TASK = "No such partner task. Use /partner to see the refs."


async def _partner_task(task_service: TaskService, owner_id: str, ref: str) -> Task:
    board = await task_service.partner_board(owner_id)
    if board.partner_id is None:
        raise ValidationError(NO_PARTNER)
    task = resolve_partner_ref(board, ref)
    if task is None:
        raise NotFoundError(NO_PARTNER_TASK)
    return task


async def _inbox(task_service: TaskService, owner_id: str, timezone: str):
    comments = await task_service.list_unread_comments(owner_id)
    board = await task_service.list_tasks(owner_id)
    titles = {t.id: t.title for t in (*board.active, *board.master)}
    return texts.tasks.render_comment_inbox(comments, titles, timezone), inbox_kb(comments)


@router.message(Command("comment"))
async def comment_cmd(message: Message, task_service: TaskService):
    """/comment p<N> <text>: add a comment, or replace the one already there."""
    me = owner_id_of(message.from_user.id)
    parts = command_args(message).split(maxsplit=1)
    try:
        if len(parts) < 2:
            raise ValidationError("Usage: /comment p&lt;N&gt; &lt;text&gt;")
        task = await _partner_task(task_service, me, parts[0])
        mine = await task_service.list_comments(task.id, me)
        if mine:
            await task_service.edit_comment(mine[0].id, me, parts[1])
            await message.answer("Comment updated.")
        else:
            await task_service.add_comment(task.id, me, parts[1])
            await message.answer("Comment added.")
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("uncomment"))
async def uncomment_cmd(message: Message, task_service: TaskService):
    me = owner_id_of(message.from_user.id)
    try:
        task = await _partner_task(task_service, me, command_args(message))
        mine = await task_service.list_comments(task.id, me)
        if not mine:
            raise NotFoundError("You have no comment on that task.")
        await task_service.delete_comment(mine[0].id, me)
        await message.answer("Comment removed.")
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("comments"))
async def comments_cmd(message: Message, task_service: TaskService, timezone: str):
    try:
        text, kb = await _inbox(task_service, owner_id_of(message.from_user.id), timezone)
        await message.answer(text, reply_markup=kb)
    except Exception as e:
        await answer_error(message, e)


@router.callback_query(F.data.startswith(f"{CB_PREFIX}:"))
async def inbox_cb(cb: CallbackQuery, task_service: TaskService, timezone: str):
    owner_id = owner_id_of(cb.from_user.id)
    try:
        _, action, comment_id = (cb.data or "").split(":", 2)
    except ValueError:
        await cb.answer()
        return
    if action != "read":
        await cb.answer()
        return

    try:
        await task_service.mark_comment_read(comment_id, owner_id)
    except DomainError as e:
        await cb.answer(error_text(e), show_alert=True)
        return

    await cb.answer("Marked as read.")
    text, kb = await _inbox(task_service, owner_id, timezone)
    try:
        await cb.message.edit_text(text, reply_markup=kb)
    except TelegramBadRequest:
        await cb.message.answer(text, reply_markup=kb)
