"""Condition normalisation: defaults, synonyms, wizard and flat payloads."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from models.conditions import Conditions, MovementPreference


def test_defaults():
    c = Conditions()
    assert c.area == "shibuya"
    assert c.date_phase == "casual"
    assert c.budget_level == "medium"
    assert c.time_slot == "lunch"
    assert c.mood is None
    assert c.movement_preferences.key == "balanced"
    assert c.movement_preferences.max_leg_minutes == 25
    assert c.area_label == "渋谷"


def test_synonyms_and_unknown_values():
    c = Conditions(date_phase="初デート", budget_level="no_limit", time_slot="evening", mood="sleepy")
    assert c.date_phase == "first"
    assert c.budget_level == "high"
    assert c.time_slot == "dinner"
    assert c.mood is None, "Unknown moods are dropped"

    c = Conditions(date_phase="third", budget_level="???", time_slot="brunch")
    assert (c.date_phase, c.budget_level, c.time_slot) == ("casual", "medium", "lunch")


def test_unknown_movement_style_falls_back_to_balanced():
    assert Conditions(movement_style="teleport").movement_preferences.key == "balanced"
    single = MovementPreference.for_style("single_area")
    assert single.max_leg_minutes == 15 and single.max_areas == 1


def test_transportation_normalised_and_deduplicated():
    c = Conditions(transportation=["電車", "train", "Car", "rocket"])
    assert c.transportation == ["train", "car"]


def test_explicit_window():
    assert Conditions(start_time="13:00", duration_minutes=240).has_explicit_window
    assert not Conditions(start_time="13:00").has_explicit_window
    assert Conditions(start_time="25:00", duration_minutes=60).start_time is None


def test_from_dict_aliases_and_unknown_keys():
    c = Conditions.from_dict({
        "area": "ginza",
        "date_budget_level": "low",
        "ng_conditions": ["Outdoor ", ""],
        "custom_request": "   ",
        "unexpected": 1,
    })
    assert c.area == "ginza"
    assert c.budget_level == "low"
    assert c.ng_conditions == ["outdoor"]
    assert c.custom_request is None


def test_from_dict_rebuilds_movement_bundle_from_key():
    c = Conditions.from_dict({"movement_preferences": {"key": "day_trip", "max_leg_minutes": 999}})
    assert c.movement_preferences.key == "day_trip"
    assert c.movement_preferences.max_leg_minutes == 90


def test_from_wizard():
    c = Conditions.from_wizard({
        "start_location": "浅草",
        "date_phase": "first",
        "time_slot": "half_day",
        "budget_level": "no_limit",
        "movement_style": "single_area",
        "transportation": ["walk"],
        "preferred_areas": ["上野", "Kichijoji"],
    })
    assert c.area == "asakusa"
    assert c.area_label == "浅草"
    assert c.time_slot == "halfday"
    assert c.budget_level == "high"
    assert c.movement_preferences.max_areas == 1
    assert c.transportation == ["walk"]
    assert c.preferred_areas == ["ueno", "kichijoji"]


def test_from_wizard_undecided_and_unknown_location():
    c = Conditions.from_wizard({"start_location": "Nakano", "time_slot": "undecided"})
    assert c.area == "nakano"
    assert c.area_label == "nakano", "Unknown areas display their id"
    assert c.time_slot == "lunch"


def test_round_trip_through_dict():
    original = Conditions(area="odaiba", date_phase="anniversary", movement_style="nearby_areas")
    copy = Conditions.from_dict(original.to_dict())
    assert copy == original
