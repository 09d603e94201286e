# utils/time.py
from datetime import datetime, timezone
from typing import Optional

MINUTE_FMT = "%Y-%m-%d %H:%M"


def local_now() -> datetime:
    """Timezone-aware wall clock in the machine's local zone."""
    return datetime.now().astimezone()


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def fmt_minute(dt: Optional[datetime]) -> str:
    if dt is None:
        return ""
    return dt.strftime(MINUTE_FMT)


def rfc3339(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")
