from __future__ import annotations

import logging
import re
from typing import Optional

from aiogram.types import Message

from pair_todo.domain.common.errors import CapacityExceededError, DomainError
from pair_todo.domain.tasks.models import PartnerBoard, Task, TaskBoard
from pair_todo.ui.telegram import texts

logger = logging.getLogger(__name__)

_REF_RE = re.compile(r"^([am])(\d+)$", re.IGNORECASE)
_PARTNER_REF_RE = re.compile(r"^p(\d+)$", re.IGNORECASE)


def owner_id_of(user_id: int) -> str:
    # the Telegram user id is the owner identity
    return str(user_id)


def command_args(message: Message) -> str:
    text = (message.text or "").strip()
    if not text:
        return ""
    parts = text.split(maxsplit=1)
    if len(parts) < 2:
        return ""
    return parts[1].strip()


def resolve_ref(board: TaskBoard, ref: str) -> Optional[Task]:
    """a<N> / m<N> -> task at 1-based position N of the active / master list."""
    m = _REF_RE.match((ref or "").strip())
    if not m:
        return None
    items = board.active if m.group(1).lower() == "a" else board.master
    pos = int(m.group(2))
    if pos < 1 or pos > len(items):
        return None
    return items[pos - 1]


def resolve_partner_ref(board: PartnerBoard, ref: str) -> Optional[Task]:
    """p<N> -> task at 1-based position N of the partner board."""
    m = _PARTNER_REF_RE.match((ref or "").strip())
    if not m:
        return None
    pos = int(m.group(1))
    if pos < 1 or pos > len(board.active_tasks):
        return None
    return board.active_tasks[pos - 1]


def error_text(exc: Exception) -> str:
    if isinstance(exc, CapacityExceededError):
        return f"{exc.message}\n{texts.tasks.CAPACITY_HINT}"
    if isinstance(exc, DomainError):
        return exc.message
    return texts.tasks.GENERIC_FAILURE


async def answer_error(message: Message, exc: Exception) -> None:
    if not isinstance(exc, DomainError):
        logger.error("Handler failed: %s", exc, exc_info=exc)
    await message.answer(error_text(exc))
