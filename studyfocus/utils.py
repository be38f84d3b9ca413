import math
from datetime import datetime
import pytz

from studyfocus.config import TIMEZONE

LOCAL_TZ = pytz.timezone(TIMEZONE)


def to_local(dt: datetime) -> datetime:
    """Convert a naive or aware datetime to the configured local timezone.
    If naive, assume it's already local time.
    """
    if dt.tzinfo is None:
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def now_local() -> datetime:
    """Get current time in the configured timezone."""
    return datetime.now(pytz.UTC).astimezone(LOCAL_TZ)


def round_half_up(value: float) -> int:
    # round() would give banker's rounding: 82.5 -> 82
    return int(math.floor(float(value) + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def format_duration(seconds: int) -> str:
    """MM:SS, or HH:MM:SS once an hour is reached."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"
