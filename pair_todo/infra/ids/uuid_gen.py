from __future__ import annotations

import uuid

from pair_todo.domain.tasks.ports import IdGenerator


class UuidGenerator(IdGenerator):
    """Random task and partnership ids: 32 hex chars, short enough for callback_data (64 bytes)."""

    def new_id(self) -> str:
        return uuid.uuid4().hex
