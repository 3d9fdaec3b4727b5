"""
Schedule assembler: turns slot items into the final, time-stamped timeline.

Pipeline (after venues are filled and the custom request is merged):
    1. stable sort by effective start (custom preferred time, else slot time)
    2. per-item walking estimates from the previous stop (first: area center)
    3. meeting bookend, travel items between stops, visit blocks
    4. farewell bookend
    5. opening-hours re-validation at the final times

Hydration (place detail for visit items) and transit enrichment (route
summaries for train legs) are separate async stages that only run when
external calls are allowed.
"""

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from config.settings import settings
from models.conditions import Conditions
from models.plan import ScheduleItem
from services.opening_hours import is_open_at
from services.places_service import PlacesService, SearchOptions
from services.travel_planner import choose_travel_mode, compute_leg_estimates
from utils.geo import build_directions_link, haversine_m
from utils.time_utils import LAST_MINUTE_OF_DAY, round_up_to_10, to_clock, to_minutes

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

HYDRATED_TYPES = ("lunch", "activity", "cafe", "dinner", "custom")
DIRECTIONS_TRAVEL_MODES = {"walk": "walking", "train": "transit", "car": "driving", "taxi": "driving"}
NO_VISIT_FAREWELL_TIME = "18:00"
FAR_CUSTOM_MEETING_LEAD_MIN = 10


@dataclass
class BookendOverride:
    """User-chosen (or far-custom-derived) meeting or farewell point."""

    name: str
    time: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    map_url: Optional[str] = None


def station_for(area: str, area_label: Optional[str] = None) -> Tuple[str, str]:
    """(station name, exit) used for the default meeting and farewell points."""
    if "駅" in area:
        return area, "改札"
    if area in settings.AREA_STATIONS:
        return settings.AREA_STATIONS[area]
    area_id = settings.AREA_IDS_BY_LABEL.get(area)
    if area_id in settings.AREA_STATIONS:
        return settings.AREA_STATIONS[area_id]
    return f"{area_label or area}駅", "改札"


def revalidate_opening_hours(schedule: List[ScheduleItem], weekday: Optional[int] = None) -> List[str]:
    """
    Re-check every visit against its opening hours at its final time.

    Sets or clears ``closure_warning`` on each item and returns the risk flags
    for the items that are (probably) closed.
    """
    flags: List[str] = []
    for item in schedule:
        if not item.is_visit:
            continue
        item.closure_warning = not is_open_at(item.opening_hours, item.time, weekday)
        if item.closure_warning:
            flags.append(f"{item.place_name}は{item.time}時点で営業時間外の可能性があります")
    return flags


class ScheduleAssembler:
    """Builds the detailed timeline and runs the optional external enrichment stages."""

    def __init__(
        self,
        places_service: Optional[PlacesService] = None,
        allow_external_calls: bool = True,
        clock: Callable[[], float] = time.monotonic,
        hydration_budget_seconds: Optional[float] = None,
    ):
        self.places_service = places_service
        self.allow_external_calls = allow_external_calls
        self.clock = clock
        self.hydration_budget_seconds = (
            hydration_budget_seconds
            if hydration_budget_seconds is not None
            else settings.HYDRATION_BUDGET_SECONDS
        )

    @property
    def external_enabled(self) -> bool:
        return (
            self.allow_external_calls
            and self.places_service is not None
            and self.places_service.is_available()
        )

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def assemble(
        self,
        slot_items: List[ScheduleItem],
        conditions: Conditions,
        center: LatLng,
        meeting_override: Optional[BookendOverride] = None,
        farewell_override: Optional[BookendOverride] = None,
    ) -> List[ScheduleItem]:
        """Sort, expand with travel and bookends, and return the final schedule."""
        movement = conditions.movement_preferences
        items = sorted(slot_items, key=lambda item: item.effective_start_minutes)
        compute_leg_estimates(items, center, movement.max_leg_minutes if movement else None)

        station, exit_name = station_for(conditions.area, conditions.area_label)
        meeting_override, farewell_override = self._far_custom_overrides(
            items, center, station, meeting_override, farewell_override
        )

        first_minutes = to_minutes(items[0].time) if items else to_minutes("12:00")
        if first_minutes is None:
            first_minutes = to_minutes("12:00")

        schedule: List[ScheduleItem] = [
            self._meeting_item(conditions, center, station, exit_name, first_minutes, meeting_override)
        ]

        clock = first_minutes
        override_minutes = to_minutes(meeting_override.time) if meeting_override else None
        if override_minutes is not None and override_minutes > clock:
            clock = override_minutes

        previous: Optional[ScheduleItem] = None
        placed = 0
        for item in items:
            preferred = item.preferred_start_minutes
            travel = None
            arrival = clock
            if previous is not None:
                travel = self._travel_item(previous, item, conditions, clock)
                arrival = to_minutes(travel.end_time)

            start = round_up_to_10(max(arrival, preferred if preferred is not None else arrival))
            if start > LAST_MINUTE_OF_DAY:
                logger.warning(
                    "Dropping %s %s: cannot start before midnight", item.type, item.place_name
                )
                continue

            if travel is not None:
                schedule.append(travel)
            duration = item.duration_minutes if item.duration_minutes is not None else settings.DEFAULT_VISIT_MINUTES
            end = min(start + max(0, duration), LAST_MINUTE_OF_DAY)
            item.duration_minutes = end - start
            item.time = to_clock(start)
            item.end_time = to_clock(end)
            schedule.append(item)
            clock = end
            previous = item
            placed += 1

        schedule.append(
            self._farewell_item(conditions, center, station, clock if items else None, farewell_override)
        )
        logger.debug("Assembled %d schedule items (%d visits)", len(schedule), placed)
        return schedule

    def _travel_item(
        self, previous: ScheduleItem, item: ScheduleItem, conditions: Conditions, clock: int
    ) -> ScheduleItem:
        leg = choose_travel_mode(
            item.walking_distance_m or 0,
            conditions.movement_preferences,
            conditions.transportation,
        )
        start = clock
        preferred = item.preferred_start_minutes
        if preferred is not None and preferred - leg.travel_minutes > clock:
            start = preferred - leg.travel_minutes

        note = None
        if leg.mode == "train":
            note = (
                f"{previous.place_name or '出発地'} から {item.place_name or '目的地'} は"
                f"公共交通機関（{leg.label}）を推奨します。"
                "Googleマップのルート案内で路線と乗換を確認してください。"
            )
        return ScheduleItem(
            time=to_clock(start),
            end_time=to_clock(start + leg.travel_minutes),
            type="travel",
            place_name=f"移動（{leg.label}）",
            area=conditions.area,
            duration_minutes=leg.travel_minutes,
            reason=leg.reason,
            walking_distance_m=leg.distance_m,
            travel_time_min=leg.travel_minutes,
            transport_mode=leg.mode,
            transport_label=leg.label,
            directions_url=build_directions_link(
                (previous.lat, previous.lng),
                (item.lat, item.lng),
                DIRECTIONS_TRAVEL_MODES.get(leg.mode, "transit"),
            ),
            directions_note=note,
        )

    # ------------------------------------------------------------------
    # Bookends
    # ------------------------------------------------------------------

    @staticmethod
    def _far_custom_overrides(
        items: List[ScheduleItem],
        center: LatLng,
        station: str,
        meeting_override: Optional[BookendOverride],
        farewell_override: Optional[BookendOverride],
    ) -> Tuple[Optional[BookendOverride], Optional[BookendOverride]]:
        """Move the meeting/farewell to a custom stop far from the area center."""
        if not items:
            return meeting_override, farewell_override

        def _is_far(item: ScheduleItem) -> bool:
            if not item.is_custom or not item.has_coordinates:
                return False
            if item.effective_start_minutes > LAST_MINUTE_OF_DAY:
                return False
            return haversine_m(center[0], center[1], item.lat, item.lng) > settings.CUSTOM_FAR_THRESHOLD_M

        first, last = items[0], items[-1]
        if _is_far(first):
            start = first.effective_start_minutes
            meeting_override = BookendOverride(
                name=first.place_name,
                time=to_clock(max(0, start - FAR_CUSTOM_MEETING_LEAD_MIN)),
                lat=first.lat,
                lng=first.lng,
                map_url=first.info_url,
            )
        if _is_far(last):
            end = last.effective_start_minutes + (last.duration_minutes or settings.DEFAULT_VISIT_MINUTES)
            farewell_override = BookendOverride(
                name=last.place_name or f"{station}付近",
                time=to_clock(end),
                lat=last.lat,
                lng=last.lng,
                map_url=last.info_url,
            )
        return meeting_override, farewell_override

    @staticmethod
    def _meeting_item(
        conditions: Conditions,
        center: LatLng,
        station: str,
        exit_name: str,
        first_minutes: int,
        override: Optional[BookendOverride],
    ) -> ScheduleItem:
        if override:
            return ScheduleItem(
                time=override.time,
                type="meeting",
                place_name=override.name,
                lat=override.lat if override.lat is not None else center[0],
                lng=override.lng if override.lng is not None else center[1],
                area=conditions.area,
                duration_minutes=0,
                reason=f"ユーザー指定の集合場所: {override.name}",
                info_url=override.map_url,
            )
        return ScheduleItem(
            time=to_clock(max(0, first_minutes - settings.MEETING_LEAD_MINUTES)),
            type="meeting",
            place_name=f"{station} {exit_name}",
            lat=center[0],
            lng=center[1],
            area=conditions.area,
            duration_minutes=0,
            reason="デートのスタート地点。待ち合わせ場所は目立つ場所を選びましょう。",
        )

    @staticmethod
    def _farewell_item(
        conditions: Conditions,
        center: LatLng,
        station: str,
        last_end: Optional[int],
        override: Optional[BookendOverride],
    ) -> ScheduleItem:
        if last_end is None:
            return ScheduleItem(
                time=NO_VISIT_FAREWELL_TIME,
                type="farewell",
                place_name=f"{station}付近",
                lat=center[0],
                lng=center[1],
                area=conditions.area,
                duration_minutes=0,
                reason="今日はありがとうございました。また別のエリアでもデートしましょう！",
            )
        if override:
            override_minutes = to_minutes(override.time)
            minutes = max(override_minutes, last_end) if override_minutes is not None else last_end
            return ScheduleItem(
                time=to_clock(minutes),
                type="farewell",
                place_name=override.name,
                lat=override.lat if override.lat is not None else center[0],
                lng=override.lng if override.lng is not None else center[1],
                area=conditions.area,
                duration_minutes=0,
                reason=f"ユーザー指定の解散場所: {override.name}",
                info_url=override.map_url,
            )
        return ScheduleItem(
            time=to_clock(last_end),
            type="farewell",
            place_name=f"{station}付近",
            lat=center[0],
            lng=center[1],
            area=conditions.area,
            duration_minutes=0,
            reason="楽しい一日の終わり。次のデートの約束もここで。",
        )

    # ------------------------------------------------------------------
    # External enrichment
    # ------------------------------------------------------------------

    async def hydrate(
        self, items: List[ScheduleItem], area_label: str, started_at: float, request_id: str = ""
    ) -> None:
        """
        Attach place detail (photos, reviews, hours, rating, site) to visit items.

        Skipped entirely when external calls are off or the hydration budget
        has already been spent.
        """
        if not self.external_enabled:
            return
        elapsed = self.clock() - started_at
        if elapsed > self.hydration_budget_seconds:
            logger.info(
                "Skipping hydration: %.2fs elapsed (budget %.2fs)",
                elapsed, self.hydration_budget_seconds,
                extra={"request_id": request_id},
            )
            return

        targets = [item for item in items if item.type in HYDRATED_TYPES]
        await asyncio.gather(*(self._hydrate_item(item, area_label) for item in targets))

    async def _hydrate_item(self, item: ScheduleItem, area_label: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            place_id = item.place_id
            if not place_id:
                options = SearchOptions(
                    center=(item.lat, item.lng) if item.has_coordinates else None,
                    random_pick=False,
                )
                venue = await loop.run_in_executor(
                    None,
                    functools.partial(self.places_service.search_venue, item.place_name, area_label, options),
                )
                if venue is None:
                    return
                place_id = venue.place_id
                if not item.has_coordinates and venue.has_coordinates:
                    item.lat, item.lng = venue.lat, venue.lng

            detail = await loop.run_in_executor(None, self.places_service.get_venue_detail, place_id)
        except Exception:
            logger.warning("Hydration failed for %s", item.place_name, exc_info=True)
            return
        if detail is None:
            return

        item.place_id = place_id
        item.address = detail.address or item.address
        item.rating = detail.rating or item.rating
        item.official_url = detail.website or item.official_url
        if detail.opening_hours:
            item.opening_hours = list(detail.opening_hours)
        if detail.photos:
            item.photos = list(detail.photos)
        if detail.reviews:
            item.reviews = list(detail.reviews)

    async def enrich_transit(self, schedule: List[ScheduleItem]) -> None:
        """Attach a transit route summary to each train leg."""
        if not self.external_enabled:
            return
        loop = asyncio.get_running_loop()

        async def _enrich(index: int) -> None:
            origin, destination = schedule[index - 1], schedule[index + 1]
            if not origin.has_coordinates or not destination.has_coordinates:
                return
            try:
                schedule[index].transit_route = await loop.run_in_executor(
                    None,
                    self.places_service.get_transit_summary,
                    (origin.lat, origin.lng),
                    (destination.lat, destination.lng),
                )
            except Exception:
                logger.warning("Transit enrichment failed", exc_info=True)

        await asyncio.gather(*(
            _enrich(i)
            for i, item in enumerate(schedule)
            if item.is_travel and item.transport_mode == "train" and 0 < i < len(schedule) - 1
        ))
