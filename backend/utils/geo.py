"""Geographic helpers: great-circle distance, walking estimates, map links."""
import math
from typing import Iterable, Optional, Tuple
from urllib.parse import quote_plus

EARTH_RADIUS_M = 6371000
WALKING_SPEED_M_PER_MIN = 5000 / 60  # ~83.3 m/min

LatLng = Tuple[float, float]


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Straight-line distance in meters between two coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def estimate_walking_minutes(distance_m: float) -> int:
    """Walking time at ~83.3 m/min, never below one minute."""
    return max(1, round(distance_m / WALKING_SPEED_M_PER_MIN))


def build_directions_link(
    origin: Optional[LatLng], destination: Optional[LatLng], mode: str = "transit"
) -> Optional[str]:
    """Shareable Google Maps directions URL between two coordinates."""
    if not origin or not destination or None in origin or None in destination:
        return None
    return (
        "https://www.google.com/maps/dir/?api=1"
        f"&origin={quote_plus(f'{origin[0]},{origin[1]}')}"
        f"&destination={quote_plus(f'{destination[0]},{destination[1]}')}"
        f"&travelmode={mode}"
    )


def build_maps_search_link(query: str) -> str:
    """Google Maps search URL for a free-text place query."""
    return f"https://www.google.com/maps/search/?api=1&query={quote_plus(query)}"


def centroid(points: Iterable[LatLng]) -> Optional[LatLng]:
    """Mean of the given coordinates, or None if there are none."""
    points = [p for p in points if p and None not in p]
    if not points:
        return None
    return (
        sum(p[0] for p in points) / len(points),
        sum(p[1] for p in points) / len(points),
    )
