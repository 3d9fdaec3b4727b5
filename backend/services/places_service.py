"""
Places service: fail-soft venue search, detail, geocoding and transit lookups.

Wraps ``clients.places_client.PlacesClient``.  Every public method catches
collaborator failures, logs them and returns ``None`` so callers can drop to
their next fallback tier.

Usage:
    from services.places_service import PlacesService, SearchOptions

    service = PlacesService()
    venue = service.search_venue(
        "おしゃれカフェ", "渋谷",
        SearchOptions(category="cafe", budget="medium", phase="first"),
    )
"""

import logging
import random
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import quote_plus

from clients.places_client import PlacesClient
from config.settings import settings
from models.venue import Venue, VenueDetail
from utils.geo import build_maps_search_link

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

# ---------------------------------------------------------------------------
# Known area reference points (Japanese names as used in search queries)
# ---------------------------------------------------------------------------
KNOWN_AREA_CENTERS: Dict[str, LatLng] = {
    "東京都": (35.6812, 139.7671),
    "東京": (35.6812, 139.7671),
    "丸の内": (35.6812, 139.7671),
    "渋谷": (35.6595, 139.7004),
    "新宿": (35.6938, 139.7034),
    "銀座": (35.6715, 139.7656),
    "表参道": (35.6657, 139.7125),
    "原宿": (35.6702, 139.7027),
    "恵比寿": (35.6467, 139.7100),
    "代官山": (35.6502, 139.7048),
    "中目黒": (35.6417, 139.6979),
    "六本木": (35.6627, 139.7291),
    "品川": (35.6284, 139.7387),
    "池袋": (35.7295, 139.7109),
    "上野": (35.7141, 139.7774),
    "浅草": (35.7148, 139.7967),
    "秋葉原": (35.6984, 139.7731),
    "お台場": (35.6272, 139.7744),
    "吉祥寺": (35.7033, 139.5797),
    "下北沢": (35.6613, 139.6681),
    "自由が丘": (35.6079, 139.6681),
    "横浜": (35.4437, 139.6380),
}

# Query suffixes reflecting the user's conditions
BUDGET_QUERY_KEYWORDS = {
    "low": "カジュアル リーズナブル",
    "medium": "人気 おすすめ",
    "high": "高級 上質 ハイクラス",
}
PHASE_QUERY_KEYWORDS = {
    "first": "落ち着いた 個室 静か",
    "second": "おしゃれ 雰囲気",
    "casual": "人気 話題",
    "anniversary": "特別 記念日 高級",
}
TIME_QUERY_KEYWORDS = {
    "lunch": "ランチ",
    "dinner": "ディナー",
    "evening": "夜",
}

SEARCH_RADIUS_M = 2500.0
MIN_RATING_WITH_BUDGET = 3.5
MAX_MEDIA_ITEMS = 3


class AreaCoordinateCache:
    """Area-name → coordinate cache shared by all requests in the process.

    Seeded with the known areas; geocoded results are added on first use.
    """

    def __init__(self, seed: Optional[Dict[str, LatLng]] = None):
        self._lock = threading.Lock()
        self._entries: Dict[str, LatLng] = dict(KNOWN_AREA_CENTERS if seed is None else seed)

    def get(self, area_name: str) -> Optional[LatLng]:
        with self._lock:
            return self._entries.get(area_name)

    def put(self, area_name: str, coordinate: LatLng) -> None:
        with self._lock:
            self._entries[area_name] = coordinate

    def __contains__(self, area_name: str) -> bool:
        with self._lock:
            return area_name in self._entries


@dataclass
class SearchOptions:
    """Optional filters for ``PlacesService.search_venue``."""

    category: Optional[str] = None        # Places includedType
    budget: Optional[str] = None
    phase: Optional[str] = None
    time_slot: Optional[str] = None
    center: Optional[LatLng] = None       # overrides the area's reference point
    exclude: Set[str] = field(default_factory=set)
    random_pick: bool = True
    top_n: int = 5


class PlacesService:
    """Fail-soft access to the places collaborator."""

    def __init__(
        self,
        client: Optional[PlacesClient] = None,
        area_cache: Optional[AreaCoordinateCache] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Args:
            client: Optional PlacesClient for dependency injection.
            area_cache: Shared coordinate cache (a fresh seeded cache by default).
            rng: Random source for picking among the top results.
        """
        self.area_cache = area_cache or AreaCoordinateCache()
        self.rng = rng or random.Random()
        try:
            self.client = client or PlacesClient()
            self._available = True
        except ValueError as exc:
            logger.warning("Places client unavailable: %s", exc)
            self._available = False
            self.client = None

    def is_available(self) -> bool:
        """Check if the Places API is configured."""
        return self._available

    # ------------------------------------------------------------------
    # Search / detail
    # ------------------------------------------------------------------

    def search_venue(
        self,
        query: str,
        area_name: str = settings.CITYWIDE_AREA_NAME,
        options: Optional[SearchOptions] = None,
    ) -> Optional[Venue]:
        """
        Text-search a venue near an area.

        Returns:
            A Venue picked among the top results, or None.
        """
        if not self._available or not query:
            return None
        options = options or SearchOptions()

        try:
            body = self._build_search_body(query, area_name, options)
            places = self.client.search_text(body)
        except Exception:
            logger.warning("Places search failed for %r in %s", query, area_name, exc_info=True)
            return None

        candidates = [
            p for p in places
            if p.get("name") not in options.exclude and self._display_name(p) not in options.exclude
        ][: max(1, options.top_n)]
        if not candidates:
            return None

        picked = self.rng.choice(candidates) if options.random_pick else candidates[0]
        return self._to_venue(picked, query, area_name)

    def get_venue_detail(self, place_id: Optional[str]) -> Optional[VenueDetail]:
        """Fetch opening hours, website, rating, photos and reviews for a place."""
        if not self._available or not place_id:
            return None
        try:
            raw = self.client.get_place(place_id)
        except Exception:
            logger.warning("Places detail failed for %s", place_id, exc_info=True)
            return None

        name = self._display_name(raw) or "このスポット"
        return VenueDetail(
            name=self._display_name(raw),
            address=raw.get("formattedAddress"),
            opening_hours=list((raw.get("regularOpeningHours") or {}).get("weekdayDescriptions") or []),
            website=raw.get("websiteUri"),
            rating=raw.get("rating"),
            phone=raw.get("internationalPhoneNumber"),
            photos=[u for u in map(build_photo_url, raw.get("photos") or []) if u][:MAX_MEDIA_ITEMS],
            reviews=map_reviews(raw.get("reviews") or [], name)[:MAX_MEDIA_ITEMS],
            parking_info=_describe_parking(raw.get("parkingOptions")),
        )

    # ------------------------------------------------------------------
    # Geocoding / transit
    # ------------------------------------------------------------------

    def get_area_coordinate(self, area_name: str) -> Optional[LatLng]:
        """
        Resolve an area name to its reference point.

        Returns:
            (lat, lng), or None when the area could not be resolved.
        """
        if not area_name:
            return None
        cached = self.area_cache.get(area_name)
        if cached:
            return cached
        if not self._available:
            return None

        try:
            location = self.client.geocode(area_name)
        except Exception:
            logger.warning("Geocoding failed for %s", area_name, exc_info=True)
            return None
        if not location or location.get("lat") is None or location.get("lng") is None:
            logger.info("Geocoding returned no result for %s", area_name)
            return None

        coordinate = (float(location["lat"]), float(location["lng"]))
        self.area_cache.put(area_name, coordinate)
        return coordinate

    def get_transit_summary(
        self, origin: Optional[LatLng], destination: Optional[LatLng]
    ) -> Optional[Dict[str, Any]]:
        """
        Public-transit summary between two coordinates.

        Returns:
            {"summary", "duration_minutes", "steps"} or None.
        """
        if not self._available or not origin or not destination:
            return None
        try:
            route = self.client.get_transit_route(
                {"lat": origin[0], "lng": origin[1]},
                {"lat": destination[0], "lng": destination[1]},
            )
        except Exception:
            logger.warning("Transit directions failed", exc_info=True)
            return None
        if not route or not route.get("legs"):
            return None

        leg = route["legs"][0]
        duration = (leg.get("duration") or {}).get("value")
        return {
            "summary": route.get("summary"),
            "duration_minutes": round(duration / 60) if duration else None,
            "steps": [
                _parse_transit_step(step)
                for step in leg.get("steps") or []
                if step.get("travel_mode") == "TRANSIT" or "transit_details" in step
            ],
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_search_body(
        self, query: str, area_name: str, options: SearchOptions
    ) -> Dict[str, Any]:
        terms = [query]
        if options.budget:
            terms.append(BUDGET_QUERY_KEYWORDS.get(options.budget, ""))
        if options.phase:
            terms.append(PHASE_QUERY_KEYWORDS.get(options.phase, ""))
        if options.time_slot:
            terms.append(TIME_QUERY_KEYWORDS.get(options.time_slot, ""))
        text_query = " ".join(t for t in terms if t)

        body: Dict[str, Any] = {
            "textQuery": f"{text_query} {area_name}",
            "languageCode": "ja",
            "maxResultCount": 10,
            "rankPreference": "RELEVANCE",
        }

        center = options.center or self.get_area_coordinate(area_name)
        if center:
            body["locationBias"] = {
                "circle": {
                    "center": {"latitude": center[0], "longitude": center[1]},
                    "radius": SEARCH_RADIUS_M,
                }
            }
        if options.category:
            body["includedType"] = options.category
        if options.budget:
            body["minRating"] = MIN_RATING_WITH_BUDGET
        return body

    @staticmethod
    def _display_name(place: Dict[str, Any]) -> Optional[str]:
        return (place.get("displayName") or {}).get("text")

    def _to_venue(self, place: Dict[str, Any], query: str, area_name: str) -> Venue:
        location = place.get("location") or {}
        lat = location.get("latitude")
        lng = location.get("longitude")
        name = self._display_name(place) or query

        url = place.get("googleMapsUri")
        if not url and lat is not None and lng is not None:
            url = build_maps_search_link(f"{lat},{lng}")
        elif not url:
            url = build_maps_search_link(f"{name} {area_name}")

        return Venue(
            name=name,
            lat=lat,
            lng=lng,
            address=place.get("formattedAddress"),
            rating=place.get("rating"),
            url=url,
            place_id=place.get("name"),
            category=(place.get("types") or [None])[0],
            photos=[u for u in map(build_photo_url, place.get("photos") or []) if u][:MAX_MEDIA_ITEMS],
            source="places",
        )


def build_photo_url(photo: Dict[str, Any]) -> Optional[str]:
    """Photo URL served through the app's photo proxy (keeps the API key server-side)."""
    if not photo or not photo.get("name"):
        return None
    return f"{settings.PUBLIC_API_BASE}/api/photo?name={quote_plus(photo['name'])}"


def map_reviews(raw_reviews: List[Dict[str, Any]], place_name: str = "このスポット") -> List[Dict[str, Any]]:
    """Map Places reviews to {author, rating, text}, Japanese reviews first."""

    def _language(review: Dict[str, Any]) -> Optional[str]:
        text = review.get("text")
        if isinstance(text, dict):
            return text.get("languageCode")
        return review.get("languageCode")

    def _text(review: Dict[str, Any]) -> str:
        text = review.get("text")
        if isinstance(text, dict):
            return text.get("text") or ""
        return text or review.get("reviewText") or ""

    japanese = [r for r in raw_reviews if _language(r) == "ja"]
    chosen = japanese or raw_reviews
    return [
        {
            "author": (r.get("authorAttribution") or {}).get("displayName") or r.get("author") or "匿名",
            "rating": r.get("rating"),
            "text": _text(r),
        }
        for r in chosen
    ]


def _describe_parking(options: Optional[Dict[str, Any]]) -> Optional[str]:
    if not options:
        return None
    labels = {
        "freeParkingLot": "無料駐車場",
        "paidParkingLot": "有料駐車場",
        "freeStreetParking": "路上駐車（無料）",
        "paidStreetParking": "路上駐車（有料）",
        "valetParking": "バレーパーキング",
        "freeGarageParking": "無料ガレージ",
        "paidGarageParking": "有料ガレージ",
    }
    available = [label for key, label in labels.items() if options.get(key)]
    return "、".join(available) or None


def _parse_transit_step(step: Dict[str, Any]) -> Dict[str, Any]:
    details = step.get("transit_details") or {}
    line = details.get("line") or {}
    agencies = line.get("agencies") or []
    return {
        "mode": "transit" if step.get("travel_mode") == "TRANSIT" else (step.get("travel_mode") or "").lower(),
        "line_name": line.get("short_name") or line.get("name"),
        "agency": agencies[0].get("name") if agencies else None,
        "vehicle": (line.get("vehicle") or {}).get("type"),
        "headsign": details.get("headsign"),
        "num_stops": details.get("num_stops"),
        "departure_stop": (details.get("departure_stop") or {}).get("name"),
        "arrival_stop": (details.get("arrival_stop") or {}).get("name"),
        "departure_time": (details.get("departure_time") or {}).get("text"),
        "arrival_time": (details.get("arrival_time") or {}).get("text"),
        "instructions": step.get("html_instructions"),
    }
