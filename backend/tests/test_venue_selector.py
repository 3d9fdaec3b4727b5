"""Venue selection tiers: spot store, places fallback with open-hours retry, placeholders."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import random
from unittest.mock import MagicMock

import pytest

from models.venue import Venue, VenueDetail
from services.spot_store import SpotStore
from services.venue_selector import (
    SlotSpec,
    VenueSelector,
    placeholder_venue,
    search_keywords,
)

SHIBUYA = (35.6595, 139.7004)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _spot(name, category, budget="medium", slot="lunch|evening|afternoon", **extra):
    row = {
        "spot_name": name, "area_id": "shibuya", "area_name": "渋谷",
        "category": category, "budget_level": budget, "recommended_for": "all",
        "best_time_slot": slot, "lat": "35.66", "lng": "139.70",
    }
    row.update(extra)
    return row


def _slot(slot_type="lunch", area="shibuya", **kwargs):
    defaults = dict(area_label="渋谷", budget="medium", phase="casual", desired_time="12:00", weekday=0)
    defaults.update(kwargs)
    return SlotSpec(slot_type=slot_type, area=area, **defaults)


def _places(venues, details=None):
    """Places stub returning the given venues in order (None = miss)."""
    places = MagicMock()
    places.is_available.return_value = True
    places.search_venue.side_effect = list(venues)
    places.get_venue_detail.side_effect = list(details) if details else lambda place_id: None
    return places


def _venue(name, place_id):
    return Venue(name=name, lat=35.66, lng=139.70, place_id=place_id, source="places")


# ---------------------------------------------------------------------------
# Spot store tier
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_store_hit_skips_places():
    store = SpotStore.from_records([_spot("ランチA", "restaurant")])
    places = _places([])
    selector = VenueSelector(store, places, rng=random.Random(0))

    venue = await selector.select_venue(_slot("lunch"))

    assert venue.name == "ランチA"
    assert venue.source == "spot_db"
    places.search_venue.assert_not_called()


@pytest.mark.asyncio
async def test_activity_ignores_budget_and_falls_through_categories():
    store = SpotStore.from_records([_spot("公園P", "park", budget="high", slot="morning")])
    selector = VenueSelector(store, None, rng=random.Random(0))

    venue = await selector.select_venue(_slot("activity", budget="low"))
    assert venue.name == "公園P"


@pytest.mark.asyncio
async def test_store_respects_exclusions():
    store = SpotStore.from_records([_spot("ランチA", "restaurant")])
    selector = VenueSelector(store, None)
    assert await selector.select_venue(_slot("lunch", exclude={"ランチA"})) is None


# ---------------------------------------------------------------------------
# Places tier
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_area_missing_from_store_uses_places():
    store = SpotStore.from_records([_spot("ランチA", "restaurant")])
    places = _places([_venue("銀座ランチ", "places/g")])
    selector = VenueSelector(store, places, rng=random.Random(0))

    venue = await selector.select_venue(_slot("lunch", area="ginza", area_label="銀座"))

    assert venue.name == "銀座ランチ"
    args = places.search_venue.call_args.args
    assert args[1] == "銀座"
    assert args[2].category == "restaurant"
    assert args[2].time_slot == "lunch"


@pytest.mark.asyncio
async def test_closed_venue_triggers_retry_with_other_keyword():
    closed = VenueDetail(opening_hours=["月曜日: 定休日"])
    open_ = VenueDetail(opening_hours=["月曜日: 11時00分～22時00分"])
    places = _places(
        [_venue("休みの店", "places/1"), _venue("営業中の店", "places/2")],
        details=[closed, open_],
    )
    selector = VenueSelector(SpotStore.from_records([]), places, rng=random.Random(0))

    venue = await selector.select_venue(_slot("lunch"))

    assert venue.name == "営業中の店"
    assert places.search_venue.call_count == 2
    first_kw = places.search_venue.call_args_list[0].args[0]
    second_kw = places.search_venue.call_args_list[1].args[0]
    assert first_kw != second_kw, "Each retry uses a different keyword"


@pytest.mark.asyncio
async def test_all_closed_returns_first_candidate():
    closed = VenueDetail(opening_hours=["月曜日: 定休日"])
    places = _places(
        [_venue("休みA", "places/a"), _venue("休みB", "places/b"), None],
        details=[closed, closed],
    )
    selector = VenueSelector(SpotStore.from_records([]), places, max_attempts=3)

    venue = await selector.select_venue(_slot("dinner", desired_time="19:00"))
    assert venue.name == "休みA"


@pytest.mark.asyncio
async def test_places_failures_are_swallowed():
    places = MagicMock()
    places.is_available.return_value = True
    places.search_venue.side_effect = RuntimeError("quota")
    selector = VenueSelector(SpotStore.from_records([]), places, max_attempts=2)

    assert await selector.select_venue(_slot("cafe")) is None
    assert places.search_venue.call_count == 2


@pytest.mark.asyncio
async def test_external_calls_disabled():
    places = _places([_venue("X", "places/x")])
    selector = VenueSelector(SpotStore.from_records([]), places, allow_external_calls=False)

    assert not selector.external_enabled
    assert await selector.select_venue(_slot("lunch")) is None
    places.search_venue.assert_not_called()


@pytest.mark.asyncio
async def test_excluded_identity_from_places_is_skipped():
    places = _places([_venue("既出", "places/dup"), _venue("新規", "places/new")])
    selector = VenueSelector(SpotStore.from_records([]), places)

    venue = await selector.select_venue(_slot("lunch", exclude={"places/dup"}))
    assert venue.name == "新規"


@pytest.mark.asyncio
async def test_curated_name_from_places_is_skipped():
    places = _places([_venue("ランチA", "places/lunch-a"), _venue("新規", "places/new")])
    selector = VenueSelector(SpotStore.from_records([]), places)

    venue = await selector.select_venue(_slot("lunch", exclude={"ランチA"}))
    assert venue.name == "新規"


# ---------------------------------------------------------------------------
# Keywords / placeholders
# ---------------------------------------------------------------------------

def test_search_keywords_tables():
    assert "高級寿司" in search_keywords(_slot("dinner", budget="high"))
    assert "定食屋評判" in search_keywords(_slot("lunch", budget="low"))
    assert "展望台有名" in search_keywords(_slot("activity", mood="romantic"))
    assert "デートスポット" in search_keywords(_slot("activity"))
    assert "スペシャリティコーヒー" in search_keywords(_slot("cafe", budget="high", mood="romantic"))
    assert "テラスカフェ" in search_keywords(_slot("cafe", mood="romantic"))
    assert "スイーツカフェ" in search_keywords(_slot("cafe", mood="relax"))


def test_placeholder_from_area_table():
    venue = placeholder_venue("lunch", "shibuya", "渋谷", SHIBUYA)
    assert venue.name == "渋谷モディ"
    assert venue.source == "placeholder"
    assert venue.address == "東京都渋谷区神南1-21-3"


def test_placeholder_generic_when_area_unknown_or_excluded():
    cafe = placeholder_venue("cafe", "shibuya", "渋谷", SHIBUYA)
    assert cafe.name == "渋谷 カフェ"
    assert cafe.lat == pytest.approx(SHIBUYA[0] + 0.0015)

    lunch = placeholder_venue("lunch", "shibuya", "渋谷", SHIBUYA, exclude={"渋谷モディ"})
    assert lunch.name == "渋谷 レストラン"

    dinner = placeholder_venue("dinner", "nakano", "nakano", (35.70, 139.66))
    assert dinner.name == "nakano ディナー"
    assert dinner.address == "nakano"
