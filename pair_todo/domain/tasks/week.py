"""
Week boundaries for the weekly completion count.

A week starts every Wednesday at 18:00 civil time in America/New_York.
Boundaries are computed with the zone's real offset on that date and
returned as UTC instants, so storage and comparisons stay zone-free.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from pair_todo.constants import WEEK_START_HOUR, WEEK_START_WEEKDAY, WEEK_TIMEZONE
from pair_todo.domain.common.time import ensure_aware


class WeekClock:
    def __init__(
        self,
        tz_name: str = WEEK_TIMEZONE,
        weekday: int = WEEK_START_WEEKDAY,
        hour: int = WEEK_START_HOUR,
    ) -> None:
        if not 0 <= weekday <= 6:
            raise ValueError("weekday must be 0..6 (Monday=0)")
        if not 0 <= hour <= 23:
            raise ValueError("hour must be 0..23")
        self._tz = ZoneInfo(tz_name)
        self._weekday = weekday
        self._hour = hour

    @property
    def tz_name(self) -> str:
        return self._tz.key

    def _boundary_utc(self, local_date) -> datetime:
        local = datetime.combine(local_date, time(self._hour), tzinfo=self._tz)
        return local.astimezone(timezone.utc)

    def current_week_start(self, now: datetime) -> datetime:
        local_now = ensure_aware(now).astimezone(self._tz)
        days_since = (local_now.weekday() - self._weekday) % 7
        start_date = local_now.date() - timedelta(days=days_since)
        start = self._boundary_utc(start_date)
        if start > local_now:
            # boundary day, but before the boundary hour
            start = self._boundary_utc(start_date - timedelta(days=7))
        return start

    def next_week_start(self, now: datetime) -> datetime:
        """
        Same weekday and hour seven civil days later.

        Not a fixed 168 h step: across a DST change the UTC gap is 167 h or
        169 h, so consecutive windows always start at 18:00 local time.
        """
        start_local = self.current_week_start(now).astimezone(self._tz)
        return self._boundary_utc(start_local.date() + timedelta(days=7))

    def previous_week_start(self, now: datetime) -> datetime:
        start_local = self.current_week_start(now).astimezone(self._tz)
        return self._boundary_utc(start_local.date() - timedelta(days=7))

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """Half-open [start, end) window containing now."""
        return self.current_week_start(now), self.next_week_start(now)
