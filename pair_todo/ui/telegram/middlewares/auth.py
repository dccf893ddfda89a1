from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message

logger = logging.getLogger(__name__)


class AllowedUsersMiddleware(BaseMiddleware):
    """Only the configured partners may use the bot."""

    def __init__(self, allowed_ids: Iterable[int]):
        self._allowed = frozenset(allowed_ids)

    async def __call__(self, handler: Callable, event, data: Dict[str, Any]):
        user_id = None
        chat_id = None

        if isinstance(event, Message):
            user_id = event.from_user.id if event.from_user else None
            chat_id = event.chat.id
        elif isinstance(event, CallbackQuery):
            user_id = event.from_user.id
            chat_id = event.message.chat.id if event.message else None

        if user_id not in self._allowed:
            logger.warning("Blocked user_id=%s chat_id=%s", user_id, chat_id)
            if isinstance(event, Message):
                await event.answer("Not authorized.")
            elif isinstance(event, CallbackQuery):
                await event.answer("Not authorized.", show_alert=True)
            return

        return await handler(event, data)
