"""
Travel legs between consecutive stops: distance, transport mode, duration.

Mode selection is distance-banded (walk up to 1.8 km, then train bands),
narrowed by the user's transportation restriction and clamped to the
movement preference's per-leg cap.
"""

import math
from typing import List, Optional, Sequence, Tuple

from models.conditions import MovementPreference
from models.plan import ScheduleItem, TravelLeg
from utils.geo import estimate_walking_minutes, haversine_m

LatLng = Tuple[float, float]

TRAIN_LABEL = "電車/地下鉄"
WALK_MAX_M = 1800

# upper distance bound, duration text, minutes, reason
TRAIN_BANDS = [
    (4500, "8-12min", 10, "中距離なので電車/地下鉄移動が便利です"),
    (7500, "12-18min", 15, "少し距離があるため電車移動を推奨します"),
    (12000, "18-28min", 22, "長距離のため電車移動が現実的です"),
    (math.inf, "25-40min", 30, "長距離のため電車移動が現実的です"),
]

ROAD_SPEED_KMH = 30
CAR_OVERHEAD_MIN = 5      # parking
TAXI_OVERHEAD_MIN = 3     # pick-up


def _walk_leg(distance_m: float, reason: str = "近距離なので徒歩移動が最適です") -> TravelLeg:
    minutes = estimate_walking_minutes(distance_m)
    return TravelLeg(
        distance_m=int(round(distance_m)),
        mode="walk",
        label="徒歩",
        travel_minutes=minutes,
        duration_text=f"{minutes}min",
        reason=reason,
    )


def _road_minutes(distance_m: float, overhead: int) -> int:
    return math.ceil(distance_m / 1000 / ROAD_SPEED_KMH * 60) + overhead


def _restricted_leg(distance_m: float, transportation: Sequence[str]) -> Optional[TravelLeg]:
    """Leg for users who ruled out trains; None when trains are allowed."""
    modes = set(transportation or ())
    if not modes or "train" in modes:
        return None

    if "car" in modes:
        minutes = _road_minutes(distance_m, CAR_OVERHEAD_MIN)
        return TravelLeg(int(round(distance_m)), "car", "車", minutes, f"{minutes}min", "車での移動を想定しています")
    if "taxi" in modes:
        minutes = _road_minutes(distance_m, TAXI_OVERHEAD_MIN)
        return TravelLeg(int(round(distance_m)), "taxi", "タクシー", minutes, f"{minutes}min", "タクシーでの移動を想定しています")
    if "walk" in modes:
        return _walk_leg(distance_m, reason="徒歩での移動を希望されているため徒歩で移動します")
    return None


def choose_travel_mode(
    distance_m: float,
    movement: Optional[MovementPreference] = None,
    transportation: Optional[Sequence[str]] = None,
) -> TravelLeg:
    """Pick a transport mode for one leg and apply the movement cap."""
    leg = _restricted_leg(distance_m, transportation or ())
    if leg is None:
        if distance_m <= WALK_MAX_M:
            leg = _walk_leg(distance_m)
        else:
            for bound, text, minutes, reason in TRAIN_BANDS:
                if distance_m <= bound:
                    leg = TravelLeg(int(round(distance_m)), "train", TRAIN_LABEL, minutes, text, reason)
                    break

    if movement is None:
        return leg

    cap = movement.max_leg_minutes
    if cap and leg.travel_minutes > cap:
        leg.travel_minutes = cap
        leg.duration_text = f"{cap}min以内"
        leg.reason = f"{leg.reason}（移動方針: {movement.label}に合わせて上限{cap}分）"
        leg.capped = True
    elif movement.label:
        leg.reason = f"{leg.reason}（移動方針: {movement.label}）"
    return leg


def compute_leg_estimates(
    items: List[ScheduleItem], center: LatLng, cap: Optional[int] = None
) -> None:
    """
    Fill walking distance and walking time on each item, measured from the
    previous item (the first one from the area center).

    Items without coordinates are placed at the center.
    """
    previous: Optional[LatLng] = None
    for item in items:
        if not item.has_coordinates:
            item.lat, item.lng = center
        origin = previous or center
        distance = int(round(haversine_m(origin[0], origin[1], item.lat, item.lng)))
        item.walking_distance_m = distance
        minutes = estimate_walking_minutes(distance)
        item.travel_time_min = min(minutes, cap) if cap else minutes
        previous = (item.lat, item.lng)
