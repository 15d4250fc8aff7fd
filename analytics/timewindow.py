"""
Timezone-pinned calendar helpers.

Every "today", "last N days" and hour-of-day question the engine asks goes
through a ``TimeWindow``, which holds the business's reference timezone and
a fixed "now" for the duration of one snapshot build. Results therefore do
not depend on the host's local timezone or on when during the build a
predicate happens to run.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from analytics.lib.errors import ConfigError
from analytics.records import parse_ts

SECONDS_PER_DAY = 86400
WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def hour_label(hour: Optional[int]) -> str:
    """Format an hour bucket as ``"HH:00"``; ``"--"`` for no hour."""
    if hour is None:
        return "--"
    return f"{hour:02d}:00"


class TimeWindow:
    """Calendar arithmetic in a fixed reference timezone."""

    def __init__(self, reference_timezone: str = "Asia/Kolkata", now: Optional[datetime] = None):
        try:
            self.tz = ZoneInfo(reference_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ConfigError(f"Unknown reference timezone '{reference_timezone}'") from e
        now = now or datetime.now(timezone.utc)
        self.now = now if now.tzinfo else now.replace(tzinfo=timezone.utc)

    def _local(self, ts: Any) -> Optional[datetime]:
        dt = parse_ts(ts)
        return dt.astimezone(self.tz) if dt else None

    def calendar_day_key(self, ts: Any) -> Optional[str]:
        local = self._local(ts)
        return local.strftime("%Y-%m-%d") if local else None

    def today_key(self) -> str:
        return self.now.astimezone(self.tz).strftime("%Y-%m-%d")

    def is_today(self, ts: Any) -> bool:
        key = self.calendar_day_key(ts)
        return key is not None and key == self.today_key()

    def is_within_last_days(self, ts: Any, days: float) -> bool:
        dt = parse_ts(ts)
        if dt is None:
            return False
        return (self.now - dt).total_seconds() <= days * SECONDS_PER_DAY

    def hour_of_day(self, ts: Any) -> Optional[int]:
        local = self._local(ts)
        return local.hour if local else None

    def current_hour(self) -> int:
        return self.now.astimezone(self.tz).hour

    def weekday_index(self, ts: Any) -> Optional[int]:
        """Monday = 0 ... Sunday = 6 in the reference timezone."""
        local = self._local(ts)
        return local.weekday() if local else None

    def minutes_since(self, ts: Any) -> Optional[int]:
        dt = parse_ts(ts)
        if dt is None:
            return None
        return int((self.now - dt).total_seconds() // 60)

    def days_since(self, ts: Any) -> Optional[float]:
        dt = parse_ts(ts)
        if dt is None:
            return None
        return max(0.0, (self.now - dt).total_seconds() / SECONDS_PER_DAY)
