"""Clock-time helpers for HH:MM strings and minutes-since-midnight."""
import re
from typing import Optional

_CLOCK = re.compile(r"^\s*(\d{1,2})[:：](\d{1,2})\s*$")

# A plan never runs past the day it starts on.
LAST_MINUTE_OF_DAY = 23 * 60 + 59


def to_minutes(value: Optional[str]) -> Optional[int]:
    """Parse "HH:MM" into minutes since midnight. Returns None when unparsable."""
    if not value or not isinstance(value, str):
        return None
    match = _CLOCK.match(value)
    if not match:
        return None
    return int(match.group(1)) * 60 + int(match.group(2))


def to_clock(minutes: int) -> str:
    """Format minutes since midnight as "HH:MM", clamped to 00:00..23:59."""
    minutes = min(max(0, int(minutes)), LAST_MINUTE_OF_DAY)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def round_up_to_10(minutes: int) -> int:
    """Round up to the next 10-minute boundary."""
    return -(-int(minutes) // 10) * 10
