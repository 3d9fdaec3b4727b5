"""
Opening-hours evaluation for venue weekday descriptions.

Input is the per-weekday text list returned by the Places detail lookup, e.g.

    ["月曜日: 11時00分～15時00分、17時00分～22時00分", "火曜日: 定休日", ...]
    ["Monday: 11:00 AM – 3:00 PM, 5:00 – 10:00 PM", "Tuesday: Closed", ...]

Missing data never blocks a plan: an empty list, a missing weekday entry or
an unparsable query time all count as open.

Usage:
    from services.opening_hours import is_open_at

    if not is_open_at(venue.opening_hours, "19:30"):
        ...
"""

import logging
import re
from datetime import date
from typing import List, Optional, Sequence, Tuple

from utils.time_utils import to_minutes

logger = logging.getLogger(__name__)

# date.weekday() order: Monday == 0
WEEKDAY_NAMES: Sequence[Tuple[str, ...]] = (
    ("monday", "月曜日", "月曜"),
    ("tuesday", "火曜日", "火曜"),
    ("wednesday", "水曜日", "水曜"),
    ("thursday", "木曜日", "木曜"),
    ("friday", "金曜日", "金曜"),
    ("saturday", "土曜日", "土曜"),
    ("sunday", "日曜日", "日曜"),
)

_CLOSED = re.compile(r"定休日|休業|closed", re.IGNORECASE)
_OPEN_24H = re.compile(r"24\s*時間営業|open\s*24\s*hours", re.IGNORECASE)

_SPAN_SEPARATOR = re.compile(r"[,、，]")
_RANGE_SEPARATOR = re.compile(r"\s*[–—\-~〜～]\s*")
_TIME_TOKEN = re.compile(
    r"(?P<pre>午前|午後)?\s*"
    r"(?P<hour>\d{1,2})"
    r"(?:[:：](?P<minute>\d{2})|時(?:\s*(?P<kminute>\d{1,2})\s*分)?)"
    r"\s*(?P<meridiem>[AaPp]\.?\s?[Mm]\.?)?"
)


def is_open_at(
    opening_hours: Optional[List[str]],
    time_str: str,
    weekday: Optional[int] = None,
) -> bool:
    """
    Answer whether a venue is open at ``time_str`` on the given weekday.

    Args:
        opening_hours: Per-weekday description strings (may be empty/None).
        time_str: Query time as "HH:MM".
        weekday: 0=Monday .. 6=Sunday. Defaults to today's weekday.

    Returns:
        True when open, or when the data cannot tell.
    """
    if not opening_hours:
        return True

    minutes = to_minutes(time_str)
    if minutes is None:
        return True

    if weekday is None:
        weekday = date.today().weekday()

    body = _entry_for_weekday(opening_hours, weekday)
    if body is None:
        return True
    if _OPEN_24H.search(body):
        return True
    if _CLOSED.search(body):
        return False

    for opens, closes in parse_spans(body):
        if closes < opens:
            # crosses midnight
            if minutes >= opens or minutes <= closes:
                return True
        elif opens <= minutes <= closes:
            return True
    return False


def parse_spans(body: str) -> List[Tuple[int, int]]:
    """Parse "open–close" spans from one weekday body. Unparsable spans are skipped."""
    spans: List[Tuple[int, int]] = []
    for piece in _SPAN_SEPARATOR.split(body):
        parts = _RANGE_SEPARATOR.split(piece.strip())
        if len(parts) != 2:
            continue
        opens = _parse_token(parts[0])
        closes = _parse_token(parts[1])
        if opens is None or closes is None:
            logger.debug("Skipping unparsable opening-hours span: %r", piece)
            continue

        open_min, open_mer = opens
        close_min, close_mer = closes
        if open_mer is None and close_mer == "pm":
            # "5:00 – 10:00 PM" shares the trailing meridiem
            shifted = _apply_meridiem(open_min, "pm")
            if shifted <= close_min:
                open_min = shifted
        spans.append((open_min, close_min))
    return spans


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _entry_for_weekday(opening_hours: List[str], weekday: int) -> Optional[str]:
    names = WEEKDAY_NAMES[weekday % 7]
    for entry in opening_hours:
        if not entry:
            continue
        text = entry.strip()
        lowered = text.lower()
        for name in names:
            if lowered.startswith(name):
                return text[len(name):].lstrip(":： \t")
    return None


def _parse_token(text: str) -> Optional[Tuple[int, Optional[str]]]:
    match = _TIME_TOKEN.search(text)
    if not match:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or match.group("kminute") or 0)
    if hour > 24 or minute > 59:
        return None

    meridiem = None
    if match.group("meridiem"):
        meridiem = "pm" if match.group("meridiem")[0].lower() == "p" else "am"
    elif match.group("pre"):
        meridiem = "pm" if match.group("pre") == "午後" else "am"

    total = hour * 60 + minute
    if meridiem:
        total = _apply_meridiem(total, meridiem)
    return total, meridiem


def _apply_meridiem(minutes: int, meridiem: str) -> int:
    hour, minute = divmod(minutes, 60)
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    return hour * 60 + minute
