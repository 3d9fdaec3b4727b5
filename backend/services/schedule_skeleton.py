"""
Slot skeletons: which slots a plan has, in which order, for how long and at
what nominal clock time.

The slot pattern is a lookup table keyed by date phase.  Clock times come
from ``settings.TIME_SLOT_TABLE`` (named time slots) or, when the conditions
carry an explicit start + duration window, from proportional offsets inside
that window.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from config.settings import settings
from models.conditions import Conditions
from models.venue import Venue
from utils.time_utils import LAST_MINUTE_OF_DAY, to_clock, to_minutes

logger = logging.getLogger(__name__)

VISIT_SLOT_TYPES = ("lunch", "activity", "cafe", "dinner", "walk")


@dataclass(frozen=True)
class SlotTemplate:
    slot_type: str
    duration_minutes: int
    time_key: str                      # key into the time-slot table row
    fixed_time: Optional[str] = None   # overrides the table (second-date morning activity)


@dataclass
class SkeletonSlot:
    """One slot with its resolved nominal time."""

    slot_type: str
    time: str
    duration_minutes: int
    venue_hint: Optional[Venue] = None


PHASE_SKELETONS: Dict[str, List[SlotTemplate]] = {
    "first": [
        SlotTemplate("lunch", 60, "lunch"),
        SlotTemplate("activity", 90, "activity"),
        SlotTemplate("cafe", 45, "cafe"),
        SlotTemplate("dinner", 90, "dinner"),
    ],
    "second": [
        SlotTemplate("activity", 120, "activity", fixed_time="10:00"),
        SlotTemplate("lunch", 60, "lunch"),
        SlotTemplate("walk", 60, "activity"),
        SlotTemplate("cafe", 45, "cafe"),
    ],
    "anniversary": [
        SlotTemplate("lunch", 90, "lunch"),
        SlotTemplate("activity", 120, "activity"),
        SlotTemplate("dinner", 120, "dinner"),
    ],
    "casual": [
        SlotTemplate("lunch", 60, "lunch"),
        SlotTemplate("activity", 90, "activity"),
        SlotTemplate("cafe", 45, "cafe"),
    ],
}

CASUAL_EVENING_SKELETON: List[SlotTemplate] = [
    SlotTemplate("activity", 60, "activity"),
    SlotTemplate("cafe", 45, "cafe"),
    SlotTemplate("dinner", 90, "dinner"),
]

# Share of an explicit window elapsed before each slot type starts
WINDOW_OFFSETS = {
    "lunch": 0.0,
    "activity": 0.30,
    "walk": 0.45,
    "cafe": 0.60,
    "dinner": 0.80,
}


def templates_for(conditions: Conditions) -> List[SlotTemplate]:
    if conditions.date_phase == "casual" and conditions.time_slot == "dinner":
        return CASUAL_EVENING_SKELETON
    return PHASE_SKELETONS.get(conditions.date_phase, PHASE_SKELETONS["casual"])


def slot_clock(time_slot: str, key: str) -> str:
    """Nominal time for a slot key; keys missing from the row fall back to the lunch row."""
    row = settings.TIME_SLOT_TABLE.get(time_slot, settings.TIME_SLOT_TABLE["lunch"])
    return row.get(key) or settings.TIME_SLOT_TABLE["lunch"].get(key) or "12:00"


def build_skeleton(conditions: Conditions) -> List[SkeletonSlot]:
    """Ordered slots for the conditions, each with a nominal start time."""
    templates = templates_for(conditions)
    if conditions.has_explicit_window:
        return _window_skeleton(templates, conditions.start_time, conditions.duration_minutes)

    return [
        SkeletonSlot(
            slot_type=t.slot_type,
            time=t.fixed_time or slot_clock(conditions.time_slot, t.time_key),
            duration_minutes=t.duration_minutes,
        )
        for t in templates
    ]


def _window_skeleton(templates: List[SlotTemplate], start_time: str, duration: int) -> List[SkeletonSlot]:
    start = to_minutes(start_time)
    # windows that run past midnight are cut at the end of the day
    duration = max(0, min(duration, LAST_MINUTE_OF_DAY - start))
    slots: List[SkeletonSlot] = []
    previous_start: Optional[int] = None
    previous_duration = 0
    for index, template in enumerate(templates):
        if index == 0:
            minute = start
        else:
            minute = start + round(duration * WINDOW_OFFSETS.get(template.slot_type, 0.5))
            if minute <= previous_start:
                minute = previous_start + previous_duration
            minute = min(minute, LAST_MINUTE_OF_DAY)
        slots.append(SkeletonSlot(template.slot_type, to_clock(minute), template.duration_minutes))
        previous_start, previous_duration = minute, template.duration_minutes
    return slots


def skeleton_from_model(schedule: List[Dict[str, Any]]) -> List[SkeletonSlot]:
    """
    Convert a model-generated schedule into skeleton slots.

    Entries with an unknown type or an unparsable time are dropped.  A named
    entry with coordinates becomes a venue hint for its slot.
    """
    slots: List[SkeletonSlot] = []
    for entry in schedule or []:
        slot_type = (entry.get("type") or "").strip().lower()
        if slot_type not in VISIT_SLOT_TYPES or to_minutes(entry.get("time")) is None:
            logger.debug("Dropping model schedule entry: %r", entry)
            continue

        duration = _parse_duration(entry.get("duration_minutes") or entry.get("duration"))
        hint = None
        name = entry.get("place_name")
        if name and entry.get("lat") is not None and entry.get("lng") is not None:
            try:
                hint = Venue(
                    name=name,
                    lat=float(entry["lat"]),
                    lng=float(entry["lng"]),
                    category=entry.get("category"),
                    address=entry.get("address"),
                    source="model",
                )
            except (TypeError, ValueError):
                hint = None
        slots.append(SkeletonSlot(slot_type, to_clock(to_minutes(entry["time"])), duration, hint))
    return slots


def _parse_duration(value: Any) -> int:
    if isinstance(value, (int, float)):
        return max(0, int(value))
    digits = "".join(ch for ch in str(value or "") if ch.isdigit())
    return int(digits) if digits else settings.DEFAULT_VISIT_MINUTES
