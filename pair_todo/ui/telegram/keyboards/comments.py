from __future__ import annotations

from typing import Sequence

from aiogram.types import InlineKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder

from pair_todo.domain.tasks.models import Comment

# callback_data: cm:read:<comment_id>
CB_PREFIX = "cm"


def inbox_kb(comments: Sequence[Comment]) -> InlineKeyboardMarkup:
    kb = InlineKeyboardBuilder()
    for i, comment in enumerate(comments, start=1):
        kb.button(text=f"👁 c{i}", callback_data=f"{CB_PREFIX}:read:{comment.id}")
    kb.adjust(3)
    return kb.as_markup()
