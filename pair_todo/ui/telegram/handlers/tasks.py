from __future__ import annotations

from aiogram import F, Router
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Command
from aiogram.types import CallbackQuery, Message

from pair_todo.domain.common.errors import DomainError, NotFoundError, ValidationError
from pair_todo.domain.tasks.models import Partition, Task
from pair_todo.domain.tasks.ports import Clock
from pair_todo.domain.tasks.service import TaskService
from pair_todo.ui.telegram import texts
from pair_todo.ui.telegram.handlers._common import (
    answer_error,
    command_args,
    error_text,
    owner_id_of,
    resolve_ref,
)
from pair_todo.ui.telegram.keyboards.tasks import CB_PREFIX, board_kb

router = Router()


async def send_board(message: Message, task_service: TaskService, clock: Clock, owner_id: str) -> None:
    board = await task_service.list_tasks(owner_id)
    await message.answer(texts.tasks.render_board(board, clock.now()), reply_markup=board_kb(board))


async def _task_from_ref(task_service: TaskService, owner_id: str, ref: str) -> Task:
    board = await task_service.list_tasks(owner_id)
    task = resolve_ref(board, ref)
    if task is None:
        raise NotFoundError(texts.tasks.NOT_FOUND)
    return task


@router.message(Command(commands=["list", "ls"]))
async def list_cmd(message: Message, task_service: TaskService, clock: Clock):
    try:
        await send_board(message, task_service, clock, owner_id_of(message.from_user.id))
    except Exception as e:
        await answer_error(message, e)


async def _add(message: Message, task_service: TaskService, clock: Clock, want_active: bool) -> None:
    owner_id = owner_id_of(message.from_user.id)
    try:
        task = await task_service.create_task(owner_id, command_args(message), want_active=want_active)
    except Exception as e:
        await answer_error(message, e)
        return
    where = "active" if task.active else "the master list"
    await message.answer(f"Added to {where}.")
    await send_board(message, task_service, clock, owner_id)


@router.message(Command("add"))
async def add_cmd(message: Message, task_service: TaskService, clock: Clock):
    await _add(message, task_service, clock, want_active=False)


@router.message(Command("addactive"))
async def add_active_cmd(message: Message, task_service: TaskService, clock: Clock):
    await _add(message, task_service, clock, want_active=True)


@router.message(Command(commands=["done", "undo"]))
async def done_cmd(message: Message, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(message.from_user.id)
    completed = (message.text or "").lstrip("/").lower().startswith("done")
    try:
        task = await _task_from_ref(task_service, owner_id, command_args(message))
        await task_service.set_completed(task.id, owner_id, completed)
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("toggle"))
async def toggle_cmd(message: Message, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(message.from_user.id)
    try:
        task = await _task_from_ref(task_service, owner_id, command_args(message))
        await task_service.toggle_completed(task.id, owner_id)
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("rename"))
async def rename_cmd(message: Message, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(message.from_user.id)
    parts = command_args(message).split(maxsplit=1)
    try:
        if len(parts) < 2:
            raise ValidationError("Usage: /rename <ref> <new title>")
        task = await _task_from_ref(task_service, owner_id, parts[0])
        await task_service.rename(task.id, owner_id, parts[1])
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command(commands=["activate", "deactivate"]))
async def activate_cmd(message: Message, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(message.from_user.id)
    active = (message.text or "").lstrip("/").lower().startswith("activate")
    try:
        task = await _task_from_ref(task_service, owner_id, command_args(message))
        await task_service.set_active(task.id, owner_id, active)
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("move"))
async def move_cmd(message: Message, task_service: TaskService, clock: Clock):
    """/move <ref> <active|master> <position>, position is 1-based."""
    owner_id = owner_id_of(message.from_user.id)
    parts = command_args(message).split()
    try:
        if len(parts) != 3 or not parts[2].isdigit() or int(parts[2]) < 1:
            raise ValidationError("Usage: /move <ref> <active|master> <position>")
        try:
            destination = Partition.parse(parts[1])
        except ValueError:
            raise ValidationError("Usage: /move <ref> <active|master> <position>")
        task = await _task_from_ref(task_service, owner_id, parts[0])
        await task_service.reorder(task.id, owner_id, task.partition, destination, int(parts[2]) - 1)
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command(commands=["delete", "del"]))
async def delete_cmd(message: Message, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(message.from_user.id)
    try:
        task = await _task_from_ref(task_service, owner_id, command_args(message))
        await task_service.delete_task(task.id, owner_id)
        await message.answer(f"Deleted: {task.title}")
        await send_board(message, task_service, clock, owner_id)
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("completed"))
async def completed_cmd(message: Message, task_service: TaskService, timezone: str):
    try:
        owner_id = owner_id_of(message.from_user.id)
        tasks = await task_service.list_completed(owner_id)
        this_week = await task_service.completed_this_week(owner_id)
        last_week = await task_service.completed_last_week(owner_id)
        await message.answer(texts.tasks.render_completed(tasks, timezone, this_week, last_week))
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("rebalance"))
async def rebalance_cmd(message: Message, task_service: TaskService):
    try:
        changed = await task_service.rebalance(owner_id_of(message.from_user.id))
        await message.answer(f"Ordering tidied ({changed} tasks renumbered).")
    except Exception as e:
        await answer_error(message, e)


@router.callback_query(F.data.startswith(f"{CB_PREFIX}:"))
async def board_cb(cb: CallbackQuery, task_service: TaskService, clock: Clock):
    owner_id = owner_id_of(cb.from_user.id)
    try:
        _, action, task_id = (cb.data or "").split(":", 2)
    except ValueError:
        await cb.answer()
        return

    try:
        if action == "done":
            await task_service.set_completed(task_id, owner_id, True)
        elif action == "undo":
            await task_service.set_completed(task_id, owner_id, False)
        elif action == "act":
            await task_service.set_active(task_id, owner_id, True)
        elif action == "deact":
            await task_service.set_active(task_id, owner_id, False)
        elif action == "del":
            await task_service.delete_task(task_id, owner_id)
        else:
            await cb.answer()
            return
    except DomainError as e:
        await cb.answer(error_text(e), show_alert=True)
        return

    await cb.answer()
    board = await task_service.list_tasks(owner_id)
    text = texts.tasks.render_board(board, clock.now())
    try:
        await cb.message.edit_text(text, reply_markup=board_kb(board))
    except TelegramBadRequest:
        # old message or identical content: fall back to a new message
        await cb.message.answer(text, reply_markup=board_kb(board))
