from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from ..errors import InvalidConfiguration

_ISO_WEEK_RE = re.compile(r"^(\d{4})-?W(\d{2})$", re.IGNORECASE)


def get_week_start_date(now: datetime, tz: str = "America/New_York") -> date:
    local_now = now.astimezone(ZoneInfo(tz))
    return local_now.date() - timedelta(days=local_now.weekday())


def week_start(value: date) -> date:
    return value - timedelta(days=value.weekday())


def cycle_label(cycle_date: date) -> str:
    year, week, _ = cycle_date.isocalendar()
    return f"{year}-W{week:02d}"


def cycle_start(cycle_date: date, tz: str = "America/New_York") -> datetime:
    return datetime.combine(cycle_date, time.min, tzinfo=ZoneInfo(tz))


def resolve_cycle_date(value: Any, now: datetime, tz: str = "America/New_York") -> date:
    if value is None or (isinstance(value, str) and not value.strip()):
        return get_week_start_date(now, tz)
    if isinstance(value, datetime):
        return get_week_start_date(value, tz) if value.tzinfo else week_start(value.date())
    if isinstance(value, date):
        return week_start(value)
    if not isinstance(value, str):
        raise InvalidConfiguration(f"Unsupported cycle date: {value!r}")

    raw = value.strip()
    m = _ISO_WEEK_RE.match(raw)
    if m:
        try:
            return date.fromisocalendar(int(m.group(1)), int(m.group(2)), 1)
        except ValueError as exc:
            raise InvalidConfiguration(f"Invalid ISO week: {raw}", cause=exc)
    try:
        return week_start(date.fromisoformat(raw))
    except ValueError as exc:
        raise InvalidConfiguration(f"Invalid cycle date: {raw}", cause=exc)
