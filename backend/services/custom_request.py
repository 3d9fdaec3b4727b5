"""
Free-text request handling.

Two kinds of free text reach the plan builder:

* the ``custom_request`` condition ("19時に浅草寺に行きたい", "新宿駅で集合"),
  resolved here into either a schedule insertion or a meeting/farewell
  override;
* the ``adjustment`` sent with a re-generation ("もう少し安く"), classified
  into a closed set of ``AdjustmentIntent`` values.

Usage:
    resolver = CustomRequestResolver(places_service)
    resolution = await resolver.resolve(text, "14:00", "渋谷", (35.65, 139.70))
    if resolution.kind == AdjustmentIntent.INSERTION:
        schedule = merge_insertion(schedule, build_custom_item(resolution, ...))
"""

import asyncio
import functools
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Set, Tuple

from config.settings import settings
from models.plan import ScheduleItem
from models.venue import google_search_url
from services.places_service import PlacesService
from utils.media import placeholder_photos
from utils.time_utils import to_minutes

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]


class AdjustmentIntent(str, Enum):
    """Closed set of intents recognised in free text."""

    BUDGET_UP = "budget-up"
    BUDGET_DOWN = "budget-down"
    PHASE_FIRST = "phase-first"
    PHASE_ANNIVERSARY = "phase-anniversary"
    PHASE_CASUAL = "phase-casual"
    MEETING = "meeting"
    FAREWELL = "farewell"
    INSERTION = "insertion"
    NONE = "none"


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------
MEETING_PATTERN = re.compile(r"集合|待ち合わせ|待合せ|meet", re.IGNORECASE)
FAREWELL_PATTERN = re.compile(r"解散|終わり|別れ|バイバイ|帰る|farewell|goodbye", re.IGNORECASE)

ADJUSTMENT_PATTERNS = [
    (AdjustmentIntent.BUDGET_DOWN, re.compile(r"安く|安い|節約|リーズナブル|お金|予算")),
    (AdjustmentIntent.BUDGET_UP, re.compile(r"高級|贅沢|豪華|特別|リッチ")),
    (AdjustmentIntent.PHASE_FIRST, re.compile(r"初|初めて|初デート|1回目")),
    (AdjustmentIntent.PHASE_ANNIVERSARY, re.compile(r"記念日|特別|アニバーサリー")),
    (AdjustmentIntent.PHASE_CASUAL, re.compile(r"カジュアル|気軽")),
]

_EXPLICIT_TIME = re.compile(r"(\d{1,2})[:：](\d{2})")
_HOUR_ONLY = re.compile(r"(\d{1,2})時")
_MORNING = re.compile(r"朝|午前|morning", re.IGNORECASE)
_AFTERNOON = re.compile(r"昼|ランチ|午後|afternoon", re.IGNORECASE)
_EVENING = re.compile(r"夕方|夜|ディナー|dinner|night", re.IGNORECASE)

_ROLE_WORDS = re.compile(
    r"に行きたい|へ行きたい|に行く|行きたい|で集合|集合|待ち合わせ|待合せ|"
    r"で解散|解散|終わり|別れ|帰る",
    re.IGNORECASE,
)

CUSTOM_VISIT_MINUTES = 60


def classify_request(text: Optional[str]) -> AdjustmentIntent:
    """Meeting vocabulary wins over farewell vocabulary; anything else is an insertion."""
    if not text or not text.strip():
        return AdjustmentIntent.NONE
    if MEETING_PATTERN.search(text):
        return AdjustmentIntent.MEETING
    if FAREWELL_PATTERN.search(text):
        return AdjustmentIntent.FAREWELL
    return AdjustmentIntent.INSERTION


def classify_adjustment(text: Optional[str]) -> Set[AdjustmentIntent]:
    """Every budget/phase intent the adjustment text mentions ({NONE} when none)."""
    if not text:
        return {AdjustmentIntent.NONE}
    intents = {intent for intent, pattern in ADJUSTMENT_PATTERNS if pattern.search(text)}
    return intents or {AdjustmentIntent.NONE}


def parse_preferred_time(
    text: Optional[str],
    default_time: str,
    lunch_time: Optional[str] = None,
    dinner_time: Optional[str] = None,
) -> str:
    """
    Extract a clock time from free text.

    Priority: "HH:MM" > "N時" > period words > ``default_time``.
    """
    if not text:
        return default_time

    match = _EXPLICIT_TIME.search(text)
    if match:
        hour = min(23, int(match.group(1)))
        minute = min(59, int(match.group(2)))
        return f"{hour:02d}:{minute:02d}"

    match = _HOUR_ONLY.search(text)
    if match:
        return f"{min(23, int(match.group(1))):02d}:00"

    if _MORNING.search(text):
        return "10:00"
    if _AFTERNOON.search(text):
        return lunch_time or "13:00"
    if _EVENING.search(text):
        return dinner_time or "19:00"
    return default_time


def extract_place_name(text: str) -> str:
    """Strip times and role/verb words; an empty remainder yields ''."""
    stripped = _EXPLICIT_TIME.sub("", text or "")
    stripped = _HOUR_ONLY.sub("", stripped)
    stripped = MEETING_PATTERN.sub("", stripped)
    stripped = FAREWELL_PATTERN.sub("", stripped)
    stripped = _ROLE_WORDS.sub("", stripped)
    # leftover particles at the edges ("に", "で", "へ", "から")
    stripped = re.sub(r"^(?:から|に|で|へ|を)+|(?:から|に|で|へ|を)+$", "", stripped.strip())
    return stripped.strip()


@dataclass
class CustomResolution:
    """Outcome of resolving a custom request."""

    kind: AdjustmentIntent
    text: str
    query: str
    name: str
    time: str
    preferred_start_minutes: int
    lat: Optional[float] = None
    lng: Optional[float] = None
    place_id: Optional[str] = None
    map_url: Optional[str] = None
    address: Optional[str] = None

    @property
    def coordinate(self) -> Optional[LatLng]:
        if self.lat is None or self.lng is None:
            return None
        return (self.lat, self.lng)


class CustomRequestResolver:
    """Turns a custom request into a located, timed resolution."""

    def __init__(self, places_service: Optional[PlacesService] = None, allow_external_calls: bool = True):
        self.places_service = places_service
        self.allow_external_calls = allow_external_calls

    async def resolve(
        self,
        text: Optional[str],
        default_time: str,
        area_label: str,
        center: LatLng,
        lunch_time: Optional[str] = None,
        dinner_time: Optional[str] = None,
    ) -> Optional[CustomResolution]:
        """
        Resolve free text into a meeting/farewell override or an insertion.

        Returns:
            CustomResolution, or None for empty text. Never raises on lookup failures.
        """
        kind = classify_request(text)
        if kind == AdjustmentIntent.NONE:
            return None

        preferred = parse_preferred_time(text, default_time, lunch_time, dinner_time)
        query = extract_place_name(text)
        title = query or text.strip()

        resolution = CustomResolution(
            kind=kind,
            text=text.strip(),
            query=query,
            name=title,
            time=preferred,
            preferred_start_minutes=to_minutes(preferred),
            lat=center[0],
            lng=center[1],
            map_url=google_search_url(title),
        )

        if query and self._external_enabled():
            venue = await self._search(query, area_label)
            if venue is None and area_label != settings.CITYWIDE_AREA_NAME:
                venue = await self._search(query, settings.CITYWIDE_AREA_NAME)
            if venue is not None:
                resolution.name = venue.name or resolution.name
                if venue.has_coordinates:
                    resolution.lat, resolution.lng = venue.lat, venue.lng
                resolution.place_id = venue.place_id
                resolution.map_url = venue.url or resolution.map_url
                resolution.address = venue.address

        logger.info(
            "Custom request resolved as %s: %s at %s",
            kind.value, resolution.name, resolution.time,
        )
        return resolution

    def _external_enabled(self) -> bool:
        return (
            self.allow_external_calls
            and self.places_service is not None
            and self.places_service.is_available()
        )

    async def _search(self, query: str, area_name: str):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, functools.partial(self.places_service.search_venue, query, area_name)
            )
        except Exception:
            logger.warning("Custom request search failed for %r in %s", query, area_name, exc_info=True)
            return None


def build_custom_item(resolution: CustomResolution, area: str, price_range: Optional[str]) -> ScheduleItem:
    """Schedule item for an insertion-kind resolution."""
    return ScheduleItem(
        time=resolution.time,
        type="custom",
        place_name=resolution.name,
        lat=resolution.lat,
        lng=resolution.lng,
        area=area,
        address=resolution.address,
        price_range=price_range,
        duration_minutes=CUSTOM_VISIT_MINUTES,
        reason=f"ユーザーリクエスト: {resolution.text}",
        reason_tags=["リクエスト反映"],
        info_url=resolution.map_url,
        place_id=resolution.place_id,
        venue_identity=resolution.place_id or resolution.name,
        photos=placeholder_photos(resolution.name),
        reviews=[],
        is_custom=True,
        preferred_start_minutes=resolution.preferred_start_minutes,
    )


def merge_insertion(schedule: List[ScheduleItem], item: ScheduleItem) -> List[ScheduleItem]:
    """Insert before the first item starting at or after the item's time, else append."""
    target = to_minutes(item.time)
    merged: List[ScheduleItem] = []
    inserted = False
    for existing in schedule:
        existing_start = existing.start_minutes
        if not inserted and target is not None and existing_start is not None and target <= existing_start:
            merged.append(item)
            inserted = True
        merged.append(existing)
    if not inserted:
        merged.append(item)
    return merged
