from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from flask import current_app, has_app_context


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SystemClock:
    """Wall-clock time source."""

    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """
    Clock pinned to a given instant.

    Used by tests and by tooling that replays an event at a known time.
    The instant only moves through advance() or set().
    """

    def __init__(self, at: datetime):
        self._at = normalize_datetime(at)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = normalize_datetime(at)

    def advance(self, **kwargs) -> datetime:
        self._at = self._at + timedelta(**kwargs)
        return self._at


def current_clock(clock=None):
    """
    Resolve the clock for an operation.

    Explicit argument first, then the app's CLOCK setting, then wall-clock.
    """
    if clock is not None:
        return clock
    if has_app_context():
        configured = current_app.config.get("CLOCK")
        if configured is not None:
            return configured
    return SystemClock()


def normalize_datetime(value) -> datetime:
    """
    Normalize a datetime or ISO string to canonical UTC-naive.

    - aware datetime -> converted to UTC, tzinfo stripped
    - naive datetime -> treated as UTC-naive
    - str -> parse_iso_datetime
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    if isinstance(value, str):
        dt = parse_iso_datetime(value)
        if dt is None:
            raise ValueError("invalid datetime")
        return dt

    raise ValueError("invalid datetime")


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
