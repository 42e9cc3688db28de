from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional, Protocol
from zoneinfo import ZoneInfo

from flask import current_app

from .extensions import CLOCK_EXTENSION_KEY


"""
Business time rules (authoritative)

- Every business date is a LOCAL calendar date in the configured timezone.
- Timestamps are stored as local naive wall-clock values; they are never
  normalized to UTC, so a transaction entered at 00:30 local belongs to that
  local day.
- "Today" always comes from a Clock so tests can pin it.
"""


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock in the business timezone (naive local values)."""

    def __init__(self, tz_name: str = "Asia/Karachi"):
        self.tz_name = tz_name
        self._tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self._tz).replace(tzinfo=None, microsecond=0)

    def today(self) -> date:
        return self.now().date()

    def __repr__(self) -> str:
        return f"SystemClock({self.tz_name!r})"


class FixedClock:
    """Clock pinned to a given local datetime; used by tests and replays."""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def today(self) -> date:
        return self._at.date()

    def set(self, at: datetime) -> None:
        self._at = at

    def advance(self, **kwargs) -> None:
        self._at = self._at + timedelta(**kwargs)

    def __repr__(self) -> str:
        return f"FixedClock({self._at.isoformat()!r})"


def get_clock(clock: Optional[Clock] = None) -> Clock:
    """Return the explicit clock, else the one installed on the current app."""
    if clock is not None:
        return clock
    installed = current_app.extensions.get(CLOCK_EXTENSION_KEY)
    if installed is None:
        installed = SystemClock(current_app.config.get("BUSINESS_TIMEZONE", "Asia/Karachi"))
        current_app.extensions[CLOCK_EXTENSION_KEY] = installed
    return installed


def parse_local_date(value) -> Optional[date]:
    """
    Parse a YYYY-MM-DD business date.

    - None / "" -> None
    - date / datetime instances pass through (datetime is truncated)
    - anything else raises ValueError
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    # Accept full timestamps too; only the local calendar date matters
    return date.fromisoformat(s[:10])


def format_local_date(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def to_local_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a local wall-clock datetime without any offset."""
    if dt is None:
        return None
    return dt.replace(tzinfo=None, microsecond=0).isoformat()


def previous_day(value: date) -> date:
    return value - timedelta(days=1)


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days
