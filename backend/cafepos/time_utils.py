from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds (the persisted timestamp unit)."""
    return int(time.time() * 1000)


def parse_iso_to_ms(value: Optional[str]) -> Optional[int]:
    """
    Parse an ISO-8601 datetime string into epoch milliseconds.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def ms_to_iso(ms: Optional[int]) -> Optional[str]:
    """Serializes epoch milliseconds to ISO-8601 UTC with a trailing 'Z'."""
    if ms is None:
        return None
    dt = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def day_bounds_ms(ms: int, tz_name: str = "UTC") -> tuple[int, int, datetime]:
    """
    Return (start_ms, end_ms, local_dt) of the business day containing `ms`.

    Both bounds are inclusive; end_ms is the last millisecond of the day.
    """
    tz = ZoneInfo(tz_name)
    local = datetime.fromtimestamp(ms / 1000, tz=tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return int(start.timestamp() * 1000), int(end.timestamp() * 1000) - 1, local
