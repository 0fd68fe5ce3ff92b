"""Wall clock and user-local dates."""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tasklane.models.constants import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware."""


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Settable clock for tests and simulations."""

    def __init__(self, instant: datetime):
        self._lock = threading.Lock()
        self._now = _aware(instant)

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._now = _aware(instant)

    def advance(self, **kwargs) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now


def _aware(instant: datetime) -> datetime:
    """Aware UTC instant (naive input is taken as UTC)."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        ZoneInfo(name)
        return True
    except (ZoneInfoNotFoundError, ValueError):
        return False


def get_zone(name: Optional[str]) -> ZoneInfo:
    """ZoneInfo for a stored timezone name; unknown names fall back to UTC."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {name!r}, falling back to {DEFAULT_TIMEZONE}")
        return ZoneInfo(DEFAULT_TIMEZONE)


def local_date(timezone_name: Optional[str], instant: datetime) -> date:
    """Calendar date of `instant` in the given IANA zone."""
    return _aware(instant).astimezone(get_zone(timezone_name)).date()
