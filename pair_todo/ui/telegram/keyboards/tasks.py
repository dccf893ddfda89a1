from __future__ import annotations

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from pair_todo.domain.tasks.models import TaskBoard

# callback_data: tk:<action>:<task_id>
CB_PREFIX = "tk"


def board_kb(board: TaskBoard) -> InlineKeyboardMarkup:
    """
    Active tasks: done/undo + move down to master.
    Master tasks: move up to active + delete.
    """
    kb = InlineKeyboardBuilder()
    for i, task in enumerate(board.active, start=1):
        if task.completed:
            kb.button(text=f"↩️ a{i}", callback_data=f"{CB_PREFIX}:undo:{task.id}")
        else:
            kb.button(text=f"✅ a{i}", callback_data=f"{CB_PREFIX}:done:{task.id}")
        kb.button(text="⬇️", callback_data=f"{CB_PREFIX}:deact:{task.id}")
    for i, task in enumerate(board.master, start=1):
        kb.button(text=f"⬆️ m{i}", callback_data=f"{CB_PREFIX}:act:{task.id}")
        kb.button(text="🗑️", callback_data=f"{CB_PREFIX}:del:{task.id}")
    kb.adjust(2)
    return kb.as_markup()
