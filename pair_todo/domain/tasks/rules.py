from __future__ import annotations

from pair_todo.constants import COMMENT_MAX_LENGTH, TITLE_MAX_LENGTH
from pair_todo.domain.common.errors import ValidationError


def validate_title(title: str) -> str:
    """Return the trimmed title or raise ValidationError."""
    if not isinstance(title, str):
        raise ValidationError("Title is required.")
    clean = title.strip()
    if not clean:
        raise ValidationError("Title is required.")
    if len(clean) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title too long (max {TITLE_MAX_LENGTH} chars).")
    return clean


def validate_destination_index(index: int) -> int:
    if isinstance(index, bool) or not isinstance(index, int):
        raise ValidationError("Destination index must be an integer.")
    if index < 0:
        raise ValidationError("Destination index cannot be negative.")
    return index


def validate_comment(content: str) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Comment cannot be empty.")
    clean = content.strip()
    if len(clean) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comment too long (max {COMMENT_MAX_LENGTH} chars).")
    return clean
