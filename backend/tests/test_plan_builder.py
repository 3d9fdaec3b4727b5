"""
End-to-end plan building with injected collaborators (no network).

Covers the plan-wide properties: bookends, monotonic times, unique venues,
leg caps, placeholder degradation, custom requests, adjustments and the
hydration time budget.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import itertools
import json
import random
from unittest.mock import MagicMock

import pytest

from config.settings import settings
from models.conditions import Conditions
from models.venue import Venue, VenueDetail
from services.plan_builder import PlanBuilder, apply_adjustment
from services.schedule_skeleton import SkeletonSlot
from services.spot_store import SpotStore
from utils.time_utils import to_minutes

MONDAY = 0
WEDNESDAY = 2

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _sensoji():
    return Venue(
        name="浅草寺", lat=35.7148, lng=139.7967, place_id="places/sensoji",
        url="https://maps.google.com/?cid=sensoji", source="places",
    )


def _places_stub():
    """Places service that only knows 浅草寺."""
    places = MagicMock()
    places.is_available.return_value = True
    places.search_venue.side_effect = lambda query, *args, **kwargs: _sensoji() if query == "浅草寺" else None
    places.get_venue_detail.return_value = None
    places.get_transit_summary.return_value = None
    return places


def _builder(places=None, store=None, seed=7, **kwargs):
    return PlanBuilder(
        store if store is not None else SpotStore(),
        places,
        rng=random.Random(seed),
        weekday=kwargs.pop("weekday", WEDNESDAY),
        **kwargs,
    )


def _assert_well_formed(plan, cap=None):
    schedule = plan.schedule
    assert schedule[0].type == "meeting", "Plan must start with the meeting"
    assert schedule[-1].type == "farewell", "Plan must end with the farewell"

    starts = [to_minutes(item.time) for item in schedule]
    assert starts == sorted(starts), f"Times go backwards: {[i.time for i in schedule]}"

    identities = [i.venue_identity for i in plan.visits() if i.venue_identity]
    assert len(identities) == len(set(identities)), f"Duplicate venues: {identities}"

    if cap:
        for leg in plan.travel_items():
            assert leg.travel_time_min <= cap, f"Leg of {leg.travel_time_min} min exceeds cap {cap}"

    for item in plan.visits():
        assert item.photos, f"{item.place_name} has no photos"
        assert item.reviews is not None


# ---------------------------------------------------------------------------
# Offline plans
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("phase, time_slot", [
    ("first", "lunch"), ("second", "lunch"), ("anniversary", "fullday"),
    ("casual", "dinner"), ("casual", "halfday"),
])
async def test_offline_plans_are_well_formed(phase, time_slot):
    conditions = Conditions(area="shibuya", date_phase=phase, time_slot=time_slot)
    for seed in range(5):
        plan = await _builder(seed=seed).build_plan(conditions, allow_external_calls=False)
        _assert_well_formed(plan, cap=25)
        assert plan.offline
        assert plan.source == "rules"


@pytest.mark.asyncio
async def test_plan_fields_and_serialisation():
    plan = await _builder().build_plan(
        Conditions(area="shibuya", date_phase="first", budget_level="medium"),
        allow_external_calls=False,
        request_id="req-123",
    )

    assert plan.plan_id == "req-123"
    assert plan.plan_summary == "落ち着いて会話しやすい初デート向けプラン"
    assert plan.total_estimated_cost == "7000-10000"
    assert plan.next_step_phrase == "今日は本当に楽しかった。また会いたい。"
    assert plan.adjustable_points and plan.conversation_topics
    assert [i.type for i in plan.visits()] == ["lunch", "activity", "cafe", "dinner"]

    data = json.loads(json.dumps(plan.to_dict(), ensure_ascii=False))
    assert data["schedule"][0]["type"] == "meeting"
    assert data["schedule"][1]["duration"] == f"{plan.visits()[0].duration_minutes}min"


@pytest.mark.asyncio
async def test_single_area_caps_every_leg():
    conditions = Conditions(area="shibuya", date_phase="second", movement_style="single_area")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)
    _assert_well_formed(plan, cap=15)
    assert "移動方針は「ひとつの街でゆっくり」" in plan.plan_reason


@pytest.mark.asyncio
async def test_walk_slot_is_synthetic():
    plan = await _builder().build_plan(Conditions(date_phase="second"), allow_external_calls=False)
    walk = next(i for i in plan.schedule if i.type == "walk")
    assert walk.place_name == "渋谷 街歩き"
    assert walk.price_range == "0"
    assert walk.venue_identity is None


@pytest.mark.asyncio
async def test_empty_store_and_unknown_area_degrade_to_placeholders():
    plan = await _builder(store=SpotStore.from_records([])).build_plan(
        Conditions(area="nakano", date_phase="first"), allow_external_calls=False
    )

    _assert_well_formed(plan)
    names = [i.place_name for i in plan.visits()]
    assert names == ["nakano レストラン", "nakano散策", "nakano カフェ", "nakano ディナー"]
    meeting = plan.schedule[0]
    assert (meeting.lat, meeting.lng) == settings.FALLBACK_CENTER
    assert meeting.place_name == "nakano駅 改札"


@pytest.mark.asyncio
async def test_repeated_placeholders_get_numbered():
    skeleton = [SkeletonSlot("cafe", "14:00", 45), SkeletonSlot("cafe", "16:00", 45)]
    plan = await _builder(store=SpotStore.from_records([])).build_plan(
        Conditions(), allow_external_calls=False, skeleton=skeleton
    )

    assert [i.place_name for i in plan.visits()] == ["渋谷 カフェ", "渋谷 カフェ（2）"]
    assert plan.source == "model"


@pytest.mark.asyncio
async def test_model_skeleton_hints_are_used():
    hint = Venue(name="銀座 煉瓦亭", lat=35.6728, lng=139.7661, source="model")
    skeleton = [SkeletonSlot("lunch", "11:30", 60, hint), SkeletonSlot("cafe", "13:30", 45)]
    plan = await _builder().build_plan(Conditions(area="ginza"), allow_external_calls=False, skeleton=skeleton)

    lunch = plan.visits()[0]
    assert lunch.place_name == "銀座 煉瓦亭"
    assert lunch.time == "11:30"


@pytest.mark.asyncio
async def test_closed_store_venue_is_flagged():
    conditions = Conditions(area="shibuya", date_phase="anniversary", budget_level="high")
    plan = await _builder(weekday=MONDAY).build_plan(conditions, allow_external_calls=False)

    dinner = next(i for i in plan.visits() if i.type == "dinner")
    assert dinner.place_name == "渋谷ビストロ・ル・シエル"
    assert dinner.closure_warning
    assert f"渋谷ビストロ・ル・シエルは{dinner.time}時点で営業時間外の可能性があります" in plan.risk_flags


def _riverside_spot():
    return {
        "spot_name": "川沿いダイニング", "area_id": "shibuya", "area_name": "渋谷",
        "category": "restaurant", "budget_level": "medium", "recommended_for": "all",
        "best_time_slot": "lunch", "stay_minutes": "90", "lat": "35.6573", "lng": "139.7026",
    }


@pytest.mark.asyncio
async def test_curated_stay_minutes_set_the_visit_length():
    skeleton = [SkeletonSlot("lunch", "12:00", 60), SkeletonSlot("cafe", "14:00", 45)]
    plan = await _builder(store=SpotStore.from_records([_riverside_spot()])).build_plan(
        Conditions(area="shibuya", budget_level="medium"), allow_external_calls=False, skeleton=skeleton
    )

    _assert_well_formed(plan)
    lunch, cafe = plan.visits()
    assert lunch.place_name == "川沿いダイニング"
    assert (lunch.time, lunch.duration_minutes, lunch.end_time) == ("12:00", 90, "13:30")
    assert cafe.duration_minutes == 45, "Placeholders keep the slot length"


@pytest.mark.asyncio
async def test_curated_venue_is_not_repeated_from_places():
    places = MagicMock()
    places.is_available.return_value = True
    places.search_venue.return_value = Venue(
        name="川沿いダイニング", lat=35.6573, lng=139.7026, place_id="places/riverside", source="places",
    )
    places.get_venue_detail.return_value = None
    places.get_transit_summary.return_value = None
    skeleton = [SkeletonSlot("lunch", "12:00", 60), SkeletonSlot("dinner", "18:00", 90)]

    plan = await _builder(places, store=SpotStore.from_records([_riverside_spot()])).build_plan(
        Conditions(area="shibuya", budget_level="medium"), skeleton=skeleton
    )

    lunch, dinner = plan.visits()
    assert lunch.place_name == "川沿いダイニング"
    assert dinner.place_name != "川沿いダイニング", "The same venue must not come back from Places"


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------

def test_apply_adjustment():
    base = Conditions(budget_level="medium", date_phase="casual")
    assert apply_adjustment(base, None) is base
    assert apply_adjustment(base, "もう少し安く").budget_level == "low"
    assert apply_adjustment(Conditions(budget_level="low"), "安くして").budget_level == "low"
    assert apply_adjustment(base, "豪華にしたい").budget_level == "high"

    changed = apply_adjustment(base, "記念日なので特別に")
    assert changed.date_phase == "anniversary"
    assert changed.budget_level == "high"


@pytest.mark.asyncio
async def test_adjustment_is_reflected_in_plan():
    plan = await _builder().build_plan(
        Conditions(budget_level="medium"), adjustment="もう少し安くしてほしい", allow_external_calls=False
    )
    assert plan.total_estimated_cost == "3000-5000"
    assert plan.plan_reason.endswith("✨ 調整内容「もう少し安くしてほしい」を反映しました！")


# ---------------------------------------------------------------------------
# Custom requests
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_custom_insertion_at_requested_time():
    places = _places_stub()
    conditions = Conditions(area="shibuya", custom_request="19時に浅草寺に行きたい")
    plan = await _builder(places).build_plan(conditions)

    queries = [c.args[0] for c in places.search_venue.call_args_list]
    assert "浅草寺" in queries

    custom = next(i for i in plan.schedule if i.type == "custom")
    assert custom.place_name == "浅草寺"
    assert custom.time == "19:00"
    assert custom.reason == "ユーザーリクエスト: 19時に浅草寺に行きたい"

    farewell = plan.schedule[-1]
    assert farewell.place_name == "浅草寺", "A far custom stop at the end moves the farewell"
    assert farewell.time == "20:00"

    assert "をスケジュール内に反映しています" in plan.plan_reason
    assert not plan.offline
    _assert_well_formed(plan, cap=25)


@pytest.mark.asyncio
async def test_far_custom_request_excluded_for_single_area():
    places = _places_stub()
    conditions = Conditions(
        area="shibuya", movement_style="single_area", custom_request="浅草寺に行きたい"
    )
    plan = await _builder(places).build_plan(conditions)

    assert not any(i.is_custom for i in plan.schedule)
    assert "今回はプランに含められませんでした" in plan.plan_reason


@pytest.mark.asyncio
async def test_offline_custom_request_lands_at_area_center():
    conditions = Conditions(area="shibuya", custom_request="19時に東京タワー")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)

    custom = next(i for i in plan.schedule if i.is_custom)
    assert custom.place_name == "東京タワー"
    assert custom.time == "19:00"
    assert (custom.lat, custom.lng) == settings.AREA_CENTERS["shibuya"]
    assert custom.info_url.startswith("https://www.google.com/search?q=")


@pytest.mark.asyncio
async def test_late_custom_request_keeps_the_day_in_order():
    conditions = Conditions(time_slot="dinner", date_phase="first", custom_request="23:30に渋谷のバーに行きたい")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)

    _assert_well_formed(plan)
    custom = next(i for i in plan.schedule if i.is_custom)
    assert (custom.time, custom.end_time) == ("23:30", "23:59")
    assert plan.schedule[-1].time == "23:59"


@pytest.mark.asyncio
async def test_late_explicit_window_keeps_slot_order():
    conditions = Conditions(start_time="20:00", duration_minutes=300, date_phase="first")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)

    _assert_well_formed(plan)
    visit_types = [i.type for i in plan.visits()]
    assert visit_types == ["lunch", "activity", "cafe", "dinner"][:len(visit_types)]
    assert plan.schedule[1].time == "20:00"
    assert all(to_minutes(i.time) >= 20 * 60 for i in plan.schedule[1:])


@pytest.mark.asyncio
async def test_meeting_request_overrides_meeting_point():
    conditions = Conditions(area="shibuya", custom_request="ハチ公前で集合")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)

    meeting = plan.schedule[0]
    assert meeting.place_name == "ハチ公前"
    assert meeting.time == "11:45"
    assert meeting.reason == "ユーザー指定の集合場所: ハチ公前"
    assert plan.visits()[0].time == "12:00"
    assert "をスケジュール内に反映しています" in plan.plan_reason


@pytest.mark.asyncio
async def test_farewell_request_overrides_farewell_point():
    conditions = Conditions(area="shibuya", custom_request="渋谷駅で解散")
    plan = await _builder().build_plan(conditions, allow_external_calls=False)

    farewell = plan.schedule[-1]
    assert farewell.place_name == "渋谷駅"
    assert to_minutes(farewell.time) >= to_minutes(plan.schedule[-2].end_time)


# ---------------------------------------------------------------------------
# Hydration budget
# ---------------------------------------------------------------------------

def _hydrating_places():
    places = MagicMock()
    places.is_available.return_value = True
    places.search_venue.return_value = Venue(name="x", lat=35.66, lng=139.70, place_id="places/x")
    places.get_venue_detail.return_value = VenueDetail(photos=["https://img/1"], rating=4.1)
    places.get_transit_summary.return_value = None
    return places


# Low-budget casual lunch in Shibuya is filled entirely from the spot store
STORE_ONLY = dict(area="shibuya", date_phase="casual", budget_level="low", time_slot="lunch")


@pytest.mark.asyncio
async def test_hydration_attaches_place_detail():
    places = _hydrating_places()
    plan = await _builder(places, clock=lambda: 0.0).build_plan(Conditions(**STORE_ONLY))

    for item in plan.visits():
        assert item.photos == ["https://img/1"], f"{item.place_name} was not hydrated"
        assert item.rating == 4.1
    assert places.search_venue.call_count == len(plan.visits())


@pytest.mark.asyncio
async def test_hydration_skipped_after_budget():
    places = _hydrating_places()
    ticks = itertools.count(0, 60)
    plan = await _builder(places, clock=lambda: next(ticks)).build_plan(Conditions(**STORE_ONLY))

    places.search_venue.assert_not_called()
    places.get_venue_detail.assert_not_called()
    for item in plan.visits():
        assert item.photos[0].startswith("data:image/svg+xml"), "Unhydrated items get placeholder photos"
        assert item.reviews == []
