"""
Plan builder: the core entry point that turns Conditions into a Plan.

Stages:
    1. apply the adjustment text (budget / phase overrides)
    2. slot skeleton (phase lookup table, or a model-provided skeleton)
    3. area center
    4. venue fill in two concurrent batches (lunch + activity, then cafe +
       dinner anchored near lunch), de-duplicated by identity
    5. custom request → insertion or meeting/farewell override
    6. hydration (external only, time-budgeted)
    7. timeline assembly, opening-hours re-check, transit enrichment
    8. narration

Collaborators are injected; the builder never constructs HTTP clients.

Usage:
    builder = PlanBuilder(SpotStore(), PlacesService())
    plan = await builder.build_plan(Conditions(area="shibuya", date_phase="first"))
"""

import asyncio
import logging
import random
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from config.settings import settings
from models.conditions import Conditions
from models.plan import Plan, ScheduleItem
from models.venue import Venue, resolve_display_url
from services.custom_request import (
    AdjustmentIntent,
    CustomRequestResolver,
    CustomResolution,
    build_custom_item,
    classify_adjustment,
    classify_request,
    merge_insertion,
)
from services.places_service import PlacesService
from services.plan_narrator import (
    ADJUSTABLE_POINTS,
    CONVERSATION_TOPICS,
    NarrationFacts,
    evaluate_custom_outcome,
    narrate,
    next_step_phrase,
    plan_summary,
    reason_and_tags,
)
from services.schedule_assembler import BookendOverride, ScheduleAssembler, revalidate_opening_hours
from services.schedule_skeleton import SkeletonSlot, build_skeleton, slot_clock
from services.spot_store import SpotStore
from services.venue_selector import SlotSpec, VenueSelector, placeholder_venue
from utils.geo import centroid, haversine_m
from utils.id_generator import generate_plan_id
from utils.media import placeholder_photos
from utils.time_utils import to_clock, to_minutes

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

BUDGET_ORDER = ["low", "medium", "high"]
FIRST_BATCH = ("lunch", "activity")
SECOND_BATCH = ("cafe", "dinner")
DEFAULT_CATEGORIES = {"lunch": "restaurant", "activity": "museum", "cafe": "cafe", "dinner": "restaurant"}


def apply_adjustment(conditions: Conditions, adjustment: Optional[str]) -> Conditions:
    """
    Apply budget/phase intents found in the adjustment text.

    Budget moves one level per intent (down first, then up); for the phase
    the last matching intent wins (first, anniversary, casual).
    """
    intents = classify_adjustment(adjustment)
    if intents == {AdjustmentIntent.NONE}:
        return conditions

    budget_index = BUDGET_ORDER.index(conditions.budget_level)
    if AdjustmentIntent.BUDGET_DOWN in intents:
        budget_index = max(0, budget_index - 1)
    if AdjustmentIntent.BUDGET_UP in intents:
        budget_index = min(len(BUDGET_ORDER) - 1, budget_index + 1)

    phase = conditions.date_phase
    for intent, value in (
        (AdjustmentIntent.PHASE_FIRST, "first"),
        (AdjustmentIntent.PHASE_ANNIVERSARY, "anniversary"),
        (AdjustmentIntent.PHASE_CASUAL, "casual"),
    ):
        if intent in intents:
            phase = value

    logger.info(
        "Adjustment %r → budget=%s phase=%s",
        adjustment, BUDGET_ORDER[budget_index], phase,
    )
    return conditions.with_changes(budget_level=BUDGET_ORDER[budget_index], date_phase=phase)


class PlanBuilder:
    """Builds one Plan per request from injected collaborators."""

    def __init__(
        self,
        spot_store: Optional[SpotStore] = None,
        places_service: Optional[PlacesService] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        weekday: Optional[int] = None,
    ):
        """
        Args:
            spot_store: Curated spot store (a CSV-backed store by default).
            places_service: Places collaborator; None means local data only.
            rng: Random source for venue picks (inject a seeded one in tests).
            clock: Monotonic clock used for the hydration budget.
            weekday: Weekday for opening-hours checks (today when None).
        """
        self.spot_store = spot_store or SpotStore()
        self.places_service = places_service
        self.rng = rng or random.Random()
        self.clock = clock
        self.weekday = weekday

    async def build_plan(
        self,
        conditions: Conditions,
        adjustment: Optional[str] = None,
        allow_external_calls: bool = True,
        skeleton: Optional[List[SkeletonSlot]] = None,
        request_id: Optional[str] = None,
    ) -> Plan:
        """Assemble a complete plan. Collaborator failures degrade, never raise."""
        started_at = self.clock()
        plan_id = request_id or generate_plan_id()
        log_extra = {"request_id": plan_id}

        conditions = apply_adjustment(conditions, adjustment)
        external = allow_external_calls and self.places_service is not None and self.places_service.is_available()
        logger.info(
            "Building plan: area=%s phase=%s budget=%s slot=%s external=%s",
            conditions.area, conditions.date_phase, conditions.budget_level,
            conditions.time_slot, external,
            extra=log_extra,
        )

        slots = list(skeleton) if skeleton else build_skeleton(conditions)
        center = await self._resolve_area_center(conditions, external)

        # ===== Venue fill =====
        selector = VenueSelector(self.spot_store, self.places_service, allow_external_calls, self.rng)
        venues: Dict[int, Venue] = {}
        exclude: Set[str] = set()
        for index, slot in enumerate(slots):
            hint = slot.venue_hint
            if hint is not None and hint.identity not in exclude and hint.name not in exclude:
                venues[index] = hint
                exclude.update((hint.identity, hint.name))

        await self._fill_batch(selector, slots, FIRST_BATCH, conditions, venues, exclude, anchor=None)
        lunch = next(
            (venues[i] for i, s in enumerate(slots) if s.slot_type == "lunch" and i in venues),
            None,
        )
        anchor = (lunch.lat, lunch.lng) if lunch and lunch.has_coordinates else None
        await self._fill_batch(selector, slots, SECOND_BATCH, conditions, venues, exclude, anchor=anchor)

        if center is None:
            center = centroid(
                (v.lat, v.lng) for v in venues.values() if v.has_coordinates
            ) or settings.FALLBACK_CENTER
            logger.info("Area center derived as %s", center, extra=log_extra)

        items = [
            self._slot_item(slot, venues.get(index), conditions, center, exclude)
            for index, slot in enumerate(slots)
        ]

        # ===== Custom request =====
        meeting_override: Optional[BookendOverride] = None
        farewell_override: Optional[BookendOverride] = None
        resolution: Optional[CustomResolution] = None
        if conditions.custom_request:
            resolver = CustomRequestResolver(self.places_service, allow_external_calls)
            resolution = await resolver.resolve(
                conditions.custom_request,
                self._custom_default_time(conditions.custom_request, slots),
                conditions.area_label,
                center,
                lunch_time=slot_clock(conditions.time_slot, "lunch"),
                dinner_time=slot_clock(conditions.time_slot, "dinner"),
            )
        if resolution is not None:
            if resolution.kind == AdjustmentIntent.MEETING:
                meeting_override = self._override(resolution)
            elif resolution.kind == AdjustmentIntent.FAREWELL:
                farewell_override = self._override(resolution)
            elif self._within_reach(resolution, conditions, center):
                custom_item = build_custom_item(
                    resolution, conditions.area, self._prices(conditions).get("activity")
                )
                items = [i for i in items if i.venue_identity != custom_item.venue_identity]
                items = merge_insertion(items, custom_item)
            else:
                logger.info("Custom request %r is out of reach, not inserted", resolution.name, extra=log_extra)

        # ===== Hydration / assembly =====
        assembler = ScheduleAssembler(self.places_service, allow_external_calls, self.clock)
        await assembler.hydrate(items, conditions.area_label, started_at, plan_id)
        for item in items:
            if not item.photos:
                item.photos = placeholder_photos(item.place_name)
            if item.reviews is None:
                item.reviews = []

        schedule = assembler.assemble(items, conditions, center, meeting_override, farewell_override)
        risk_flags = revalidate_opening_hours(schedule, self.weekday)
        await assembler.enrich_transit(schedule)

        # ===== Narration =====
        bookend_applied = resolution is not None and resolution.kind in (
            AdjustmentIntent.MEETING, AdjustmentIntent.FAREWELL
        )
        facts = NarrationFacts(
            phase=conditions.date_phase,
            time_slot=conditions.time_slot,
            mood=conditions.mood,
            movement=conditions.movement_preferences,
            budget=conditions.budget_level,
            ng_conditions=conditions.ng_conditions,
            custom_request=conditions.custom_request,
            custom_outcome=(
                evaluate_custom_outcome(schedule, bookend_applied=bookend_applied)
                if conditions.custom_request
                else None
            ),
            adjustment=adjustment,
        )

        plan = Plan(
            plan_id=plan_id,
            plan_summary=plan_summary(conditions.date_phase),
            plan_reason=narrate(facts),
            total_estimated_cost=settings.PLAN_COST_RANGES.get(conditions.budget_level, ""),
            schedule=schedule,
            adjustable_points=list(ADJUSTABLE_POINTS),
            risk_flags=risk_flags,
            conversation_topics=list(CONVERSATION_TOPICS),
            next_step_phrase=next_step_phrase(conditions.date_phase),
            offline=not external,
            source="model" if skeleton else "rules",
        )
        logger.info(
            "Plan built: %d items, %d risk flags in %.2fs",
            len(schedule), len(risk_flags), self.clock() - started_at,
            extra=log_extra,
        )
        return plan

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    async def _resolve_area_center(self, conditions: Conditions, external: bool) -> Optional[LatLng]:
        """Known table, then the geocoder. None when neither knows the area."""
        if conditions.area in settings.AREA_CENTERS:
            return settings.AREA_CENTERS[conditions.area]
        if not external:
            return None
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                None, self.places_service.get_area_coordinate, conditions.area_label
            )
        except Exception:
            logger.warning("Area lookup failed for %s", conditions.area, exc_info=True)
            return None

    async def _fill_batch(
        self,
        selector: VenueSelector,
        slots: List[SkeletonSlot],
        slot_types: Tuple[str, ...],
        conditions: Conditions,
        venues: Dict[int, Venue],
        exclude: Set[str],
        anchor: Optional[LatLng],
    ) -> None:
        indices = [i for i, s in enumerate(slots) if s.slot_type in slot_types and i not in venues]
        if not indices:
            return

        specs = [
            SlotSpec(
                slot_type=slots[i].slot_type,
                area=conditions.area,
                area_label=conditions.area_label,
                budget=conditions.budget_level,
                phase=conditions.date_phase,
                desired_time=slots[i].time,
                mood=conditions.mood,
                ng_conditions=list(conditions.ng_conditions),
                exclude=set(exclude),
                anchor=anchor,
                weekday=self.weekday,
            )
            for i in indices
        ]
        results = await asyncio.gather(*(selector.select_venue(spec) for spec in specs))

        # Lookups in one batch run concurrently, so duplicates are resolved here
        for index, venue in zip(indices, results):
            if venue is None:
                continue
            if venue.identity in exclude or venue.name in exclude:
                logger.debug("Dropping duplicate venue %s for slot %d", venue.name, index)
                continue
            venues[index] = venue
            # curated spots are keyed by spot id, so names catch the same venue from Places
            exclude.update((venue.identity, venue.name))

    def _slot_item(
        self,
        slot: SkeletonSlot,
        venue: Optional[Venue],
        conditions: Conditions,
        center: LatLng,
        exclude: Set[str],
    ) -> ScheduleItem:
        reason, tags = reason_and_tags(
            slot.slot_type, conditions.date_phase, conditions.mood, conditions.budget_level
        )
        if slot.slot_type == "walk":
            return ScheduleItem(
                time=slot.time,
                type="walk",
                category="walk",
                place_name=f"{conditions.area_label} 街歩き",
                lat=center[0],
                lng=center[1],
                area=conditions.area,
                price_range="0",
                duration_minutes=slot.duration_minutes,
                reason=reason,
                reason_tags=tags,
            )

        if venue is None:
            venue = placeholder_venue(slot.slot_type, conditions.area, conditions.area_label, center, exclude)
            suffix = 2
            base_name = venue.name
            while venue.identity in exclude:
                venue.name = f"{base_name}（{suffix}）"
                suffix += 1
            exclude.add(venue.identity)

        return ScheduleItem(
            time=slot.time,
            type=slot.slot_type,
            place_name=venue.name,
            lat=venue.lat,
            lng=venue.lng,
            area=conditions.area,
            address=venue.address,
            category=venue.category or DEFAULT_CATEGORIES.get(slot.slot_type),
            price_range=self._prices(conditions).get(slot.slot_type),
            duration_minutes=venue.stay_minutes or slot.duration_minutes,
            reason=reason,
            reason_tags=tags,
            info_url=resolve_display_url(venue),
            official_url=venue.official_url,
            rating=venue.rating,
            place_id=venue.place_id,
            venue_identity=venue.identity,
            photos=list(venue.photos) or None,
            reviews=list(venue.reviews) or None,
            opening_hours=list(venue.opening_hours),
        )

    @staticmethod
    def _custom_default_time(text: str, slots: List[SkeletonSlot]) -> str:
        """Time used when the request names none: meeting before the first slot,
        farewell at the last slot, insertions at the activity slot."""
        if not slots:
            return "12:00"
        kind = classify_request(text)
        if kind == AdjustmentIntent.MEETING:
            first = to_minutes(slots[0].time) or to_minutes("12:00")
            return to_clock(max(0, first - settings.MEETING_LEAD_MINUTES))
        if kind == AdjustmentIntent.FAREWELL:
            return slots[-1].time
        return next((s.time for s in slots if s.slot_type == "activity"), slots[0].time)

    @staticmethod
    def _prices(conditions: Conditions) -> Dict[str, str]:
        return settings.BUDGET_PRICE_RANGES.get(
            conditions.budget_level, settings.BUDGET_PRICE_RANGES["medium"]
        )

    @staticmethod
    def _override(resolution: CustomResolution) -> BookendOverride:
        return BookendOverride(
            name=resolution.name,
            time=resolution.time,
            lat=resolution.lat,
            lng=resolution.lng,
            map_url=resolution.map_url,
        )

    @staticmethod
    def _within_reach(resolution: CustomResolution, conditions: Conditions, center: LatLng) -> bool:
        """Single-area plans keep custom stops near the area; other styles accept any stop."""
        movement = conditions.movement_preferences
        if movement is None or movement.max_areas > 1 or resolution.coordinate is None:
            return True
        distance = haversine_m(center[0], center[1], resolution.lat, resolution.lng)
        return distance <= settings.CUSTOM_FAR_THRESHOLD_M
