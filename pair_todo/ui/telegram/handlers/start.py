from __future__ import annotations

from aiogram import Router
from aiogram.filters import Command, CommandStart
from aiogram.types import Message

from pair_todo.ui.telegram import texts

router = Router()


@router.message(CommandStart())
async def start_cmd(message: Message):
    await message.answer(
        "Shared todo list: up to 3 active tasks each, everything else on the master list.\n\n"
        + texts.tasks.HELP
    )


@router.message(Command("help"))
async def help_cmd(message: Message):
    await message.answer(texts.tasks.HELP)
