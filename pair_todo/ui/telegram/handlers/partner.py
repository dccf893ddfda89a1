from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command
from aiogram.types import Message

from pair_todo.domain.common.errors import ValidationError
from pair_todo.domain.tasks.ports import Clock
from pair_todo.domain.tasks.service import TaskService
from pair_todo.ui.telegram import texts
from pair_todo.ui.telegram.handlers._common import answer_error, command_args, owner_id_of

router = Router()


@router.message(Command("partner"))
async def partner_cmd(message: Message, task_service: TaskService, clock: Clock):
    try:
        board = await task_service.partner_board(owner_id_of(message.from_user.id))
        await message.answer(texts.tasks.render_partner_board(board, clock.now()))
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("link"))
async def link_cmd(message: Message, task_service: TaskService):
    raw = command_args(message)
    try:
        if not raw.isdigit():
            raise ValidationError("Usage: /link <telegram id>")
        await task_service.link_partners(owner_id_of(message.from_user.id), owner_id_of(int(raw)))
        await message.answer(f"Linked with {raw}. Use /partner to see their list.")
    except Exception as e:
        await answer_error(message, e)


@router.message(Command("unlink"))
async def unlink_cmd(message: Message, task_service: TaskService):
    try:
        await task_service.unlink_partner(owner_id_of(message.from_user.id))
        await message.answer("Partner unlinked.")
    except Exception as e:
        await answer_error(message, e)
