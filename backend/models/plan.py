"""
Plan data models: the time-stamped schedule returned to the caller.

Defines ScheduleItem, TravelLeg and Plan dataclasses.  A Plan is built per
request and never persisted.

Usage:
    plan = Plan(plan_summary="...", schedule=[...])
    json_data = plan.to_dict()
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from utils.time_utils import to_minutes

# Kinds that frame the itinerary or connect stops, never venues themselves
BOOKEND_TYPES = ("meeting", "farewell")
NON_VISIT_TYPES = ("meeting", "farewell", "travel")


@dataclass
class TravelLeg:
    """Transport choice for one hop between consecutive stops."""

    distance_m: int = 0
    mode: str = "walk"                  # walk|train|car|taxi
    label: str = "徒歩"
    travel_minutes: int = 0
    duration_text: str = ""
    reason: str = ""
    capped: bool = False


@dataclass
class ScheduleItem:
    """Single entry in the date schedule."""

    time: str = ""                      # HH:MM start
    type: str = ""                      # meeting|travel|lunch|activity|cafe|dinner|walk|custom|farewell
    place_name: str = ""
    end_time: Optional[str] = None

    # Location
    lat: Optional[float] = None
    lng: Optional[float] = None
    area: Optional[str] = None
    address: Optional[str] = None

    # Details
    category: Optional[str] = None
    price_range: Optional[str] = None
    duration_minutes: Optional[int] = None
    reason: str = ""
    reason_tags: List[str] = field(default_factory=list)
    info_url: Optional[str] = None
    official_url: Optional[str] = None
    rating: Optional[float] = None
    place_id: Optional[str] = None
    venue_identity: Optional[str] = None

    # Media / hydration
    photos: Optional[List[str]] = None
    reviews: Optional[List[Dict[str, Any]]] = None
    opening_hours: List[str] = field(default_factory=list)
    closure_warning: bool = False

    # Custom request
    is_custom: bool = False
    preferred_start_minutes: Optional[int] = None

    # Travel-only
    walking_distance_m: Optional[int] = None
    travel_time_min: Optional[int] = None
    transport_mode: Optional[str] = None
    transport_label: Optional[str] = None
    directions_url: Optional[str] = None
    directions_note: Optional[str] = None
    transit_route: Optional[Dict[str, Any]] = None

    @property
    def is_visit(self) -> bool:
        return self.type not in NON_VISIT_TYPES

    @property
    def is_travel(self) -> bool:
        return self.type == "travel"

    @property
    def start_minutes(self) -> Optional[int]:
        return to_minutes(self.time)

    @property
    def effective_start_minutes(self) -> int:
        """Ordering key: a custom item's preferred minute wins over its slot time."""
        if self.preferred_start_minutes is not None:
            return self.preferred_start_minutes
        return self.start_minutes or 0

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["duration"] = f"{self.duration_minutes or 0}min"
        return data


@dataclass
class Plan:
    """Complete date plan returned by the builder."""

    plan_id: str = ""
    plan_summary: str = ""
    plan_reason: str = ""
    total_estimated_cost: str = ""
    schedule: List[ScheduleItem] = field(default_factory=list)
    adjustable_points: List[str] = field(default_factory=list)
    risk_flags: List[str] = field(default_factory=list)
    conversation_topics: List[str] = field(default_factory=list)
    next_step_phrase: str = ""

    # Metadata
    offline: bool = False
    source: str = "rules"               # rules|model

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def visits(self) -> List[ScheduleItem]:
        return [item for item in self.schedule if item.is_visit]

    def travel_items(self) -> List[ScheduleItem]:
        return [item for item in self.schedule if item.is_travel]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        return {
            "plan_id": self.plan_id,
            "plan_summary": self.plan_summary,
            "plan_reason": self.plan_reason,
            "total_estimated_cost": self.total_estimated_cost,
            "schedule": [item.to_dict() for item in self.schedule],
            "adjustable_points": list(self.adjustable_points),
            "risk_flags": list(self.risk_flags),
            "conversation_topics": list(self.conversation_topics),
            "next_step_phrase": self.next_step_phrase,
            "offline": self.offline,
            "source": self.source,
        }
