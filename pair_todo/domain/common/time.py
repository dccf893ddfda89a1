from __future__ import annotations

from datetime import datetime, timezone


def ensure_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt


def to_utc(dt: datetime) -> datetime:
    return ensure_aware(dt).astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    # fixed-width UTC so stored values compare lexically in chronological order
    return to_utc(dt).isoformat(timespec="microseconds")


def from_iso(s: str) -> datetime:
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
