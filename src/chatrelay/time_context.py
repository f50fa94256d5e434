"""Clock helpers backing the ``getCurrentTime`` tool."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError, available_timezones

UTC_NAME = "UTC"


def is_known_timezone(timezone_name: str) -> bool:
    """Return True when ``timezone_name`` is a loadable IANA zone."""

    if not timezone_name:
        return False
    if timezone_name == UTC_NAME or timezone_name in available_timezones():
        return True
    try:
        ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def resolve_timezone(timezone_name: Optional[str]) -> _dt.tzinfo:
    """Resolve ``timezone_name`` to a tzinfo; ``None`` means UTC."""

    if not timezone_name or timezone_name == UTC_NAME:
        return _dt.timezone.utc
    return ZoneInfo(timezone_name)


@dataclass(slots=True)
class TimeSnapshot:
    """Snapshot of the current moment in UTC and a target timezone."""

    timezone_name: str
    now_utc: _dt.datetime
    now_local: _dt.datetime

    @property
    def iso_utc(self) -> str:
        return self.now_utc.isoformat().replace("+00:00", "Z")

    @property
    def unix_millis(self) -> int:
        return int(self.now_utc.timestamp() * 1000)

    def formatted(self) -> str:
        """Return a human readable rendering in the target zone."""

        return self.now_local.strftime("%A, %B %d, %Y at %I:%M:%S %p %Z")

    def as_payload(self) -> dict[str, object]:
        local = self.now_local
        return {
            "timezone": self.timezone_name,
            "datetime": self.iso_utc,
            "formatted": self.formatted(),
            "timestamp": self.unix_millis,
            "year": local.year,
            "month": local.month,
            "day": local.day,
            "hour": local.hour,
            "minute": local.minute,
            "second": local.second,
        }


def create_time_snapshot(
    timezone_name: Optional[str] = None,
    *,
    now: Optional[_dt.datetime] = None,
) -> TimeSnapshot:
    """Return a TimeSnapshot for ``timezone_name``."""

    name = timezone_name or UTC_NAME
    tzinfo = resolve_timezone(name)
    now_utc = (now or _dt.datetime.now(_dt.timezone.utc)).astimezone(
        _dt.timezone.utc
    )
    return TimeSnapshot(
        timezone_name=name,
        now_utc=now_utc,
        now_local=now_utc.astimezone(tzinfo),
    )


__all__ = [
    "TimeSnapshot",
    "create_time_snapshot",
    "is_known_timezone",
    "resolve_timezone",
]
