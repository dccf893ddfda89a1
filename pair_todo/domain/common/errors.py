from __future__ import annotations

from pair_todo.constants import ACTIVE_TASK_LIMIT, CAPACITY_EXCEEDED_MESSAGE


class DomainError(Exception):
    """Base for errors that carry a message safe to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    pass


class NotFoundError(DomainError):
    pass


class CapacityExceededError(DomainError):
    def __init__(self, message: str = CAPACITY_EXCEEDED_MESSAGE, limit: int = ACTIVE_TASK_LIMIT) -> None:
        super().__init__(message)
        self.limit = limit


class ConflictError(DomainError):
    """Concurrent modification or uniqueness clash; the caller may retry."""


class StoreUnavailableError(DomainError):
    pass
