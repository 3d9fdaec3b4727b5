"""
Venue selector: picks one venue per itinerary slot.

Tiers, in order:
    1. curated spot store (area, category, budget, phase, mood, NG tags)
    2. places text search with condition-derived keywords, retried with
       alternate keywords until a result is open at the slot's time
    3. ``None``, the caller substitutes ``placeholder_venue``

Selection never raises on collaborator failures; they are logged and treated
as "no result".
"""

import asyncio
import functools
import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from config.settings import settings
from models.venue import Venue
from services.opening_hours import is_open_at
from services.places_service import PlacesService, SearchOptions
from services.spot_store import SpotStore

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]

# ---------------------------------------------------------------------------
# Keyword tables for the places fallback
# ---------------------------------------------------------------------------
LUNCH_KEYWORDS = {
    "low": ["カフェランチ人気", "カジュアル和食おすすめ", "ラーメン店おしゃれ", "パスタランチ", "定食屋評判"],
    "medium": ["イタリアンランチ有名", "レストランランチおすすめ", "ビストロランチ", "カフェレストラン人気", "和食ランチ個室"],
    "high": ["高級レストランランチ", "フレンチランチ有名", "懐石料理ランチ", "高級イタリアン", "寿司ランチ高級"],
}
DINNER_KEYWORDS = {
    "low": ["居酒屋おしゃれ人気", "カジュアルダイニング", "焼肉カジュアルおすすめ", "イタリアン気軽", "バル人気"],
    "medium": ["おしゃれディナーおすすめ", "イタリアン人気", "フレンチビストロ", "和食個室ディナー", "焼肉おしゃれ"],
    "high": ["高級ディナー有名", "フレンチレストラン高級", "高級寿司", "会席料理", "鉄板焼き高級おすすめ"],
}
ACTIVITY_KEYWORDS = {
    "active": ["スポーツ施設", "アミューズメント", "体験施設"],
    "romantic": ["絶景スポット", "展望台有名", "インスタ映え人気"],
    "relax": ["公園人気", "庭園有名", "美術館人気"],
    None: ["観光スポット", "人気スポット", "デートスポット"],
}
CAFE_KEYWORDS = {
    "high": ["高級カフェ", "スペシャリティコーヒー", "パティスリー併設カフェ"],
    "romantic": ["雰囲気カフェ", "隠れ家カフェ", "テラスカフェ"],
    None: ["おしゃれカフェ", "スイーツカフェ", "隠れ家カフェ"],
}

# Curated-store categories tried per slot, in order (None = any category)
STORE_CATEGORIES: Dict[str, List[Optional[str]]] = {
    "lunch": ["restaurant"],
    "cafe": ["cafe"],
    "dinner": ["restaurant", "bar"],
    "activity": ["museum", "theater", "shopping", "park", None],
}
# Places includedType per slot (activity is searched without a type)
PLACES_CATEGORIES: Dict[str, Optional[str]] = {
    "lunch": "restaurant",
    "cafe": "cafe",
    "dinner": "restaurant",
    "activity": None,
}
SLOT_TIME_OF_DAY = {"lunch": "lunch", "cafe": "afternoon", "dinner": "evening"}

# ---------------------------------------------------------------------------
# Placeholder venues
# ---------------------------------------------------------------------------
AREA_PLACEHOLDERS: Dict[str, Dict[str, Dict]] = {
    "shibuya": {
        "lunch": {"name": "渋谷モディ", "lat": 35.6604, "lng": 139.7017, "address": "東京都渋谷区神南1-21-3"},
        "activity": {"name": "渋谷センター街", "lat": 35.6597, "lng": 139.7006},
        "dinner": {"name": "渋谷スクランブルスクエア", "lat": 35.6591, "lng": 139.7006, "address": "東京都渋谷区渋谷2-24-12"},
    },
    "shinjuku": {
        "lunch": {"name": "新宿ミロード", "lat": 35.6894, "lng": 139.7023, "address": "東京都新宿区西新宿1-1-3"},
        "activity": {"name": "新宿御苑周辺", "lat": 35.6852, "lng": 139.7101},
        "dinner": {"name": "新宿ルミネ口エリア", "lat": 35.6895, "lng": 139.7004, "address": "東京都新宿区新宿3-38-2"},
    },
    "ginza": {
        "lunch": {"name": "GINZA SIX", "lat": 35.6702, "lng": 139.7636, "address": "東京都中央区銀座6-10-1"},
        "activity": {"name": "銀座通り散策", "lat": 35.6717, "lng": 139.7650},
        "dinner": {"name": "銀座コースレストラン", "lat": 35.6705, "lng": 139.7640, "address": "東京都中央区銀座4-1"},
    },
    "harajuku": {
        "lunch": {"name": "表参道カフェ", "lat": 35.6654, "lng": 139.7120, "address": "東京都渋谷区神宮前4-12-10"},
        "activity": {"name": "竹下通り散策", "lat": 35.6702, "lng": 139.7020},
        "dinner": {"name": "原宿イタリアン", "lat": 35.6700, "lng": 139.7034, "address": "東京都渋谷区神宮前1-8-8"},
    },
    "odaiba": {
        "lunch": {"name": "お台場ヴィーナスフォート", "lat": 35.6251, "lng": 139.7754, "address": "東京都江東区青海1-3-15"},
        "activity": {"name": "お台場海浜公園", "lat": 35.6298, "lng": 139.7766},
        "dinner": {"name": "お台場デックス", "lat": 35.6272, "lng": 139.7757, "address": "東京都港区台場1-6-1"},
    },
    "ueno": {
        "lunch": {"name": "上野の森さくらテラス", "lat": 35.7156, "lng": 139.7745, "address": "東京都台東区上野公園1-54"},
        "activity": {"name": "国立西洋美術館", "lat": 35.7188, "lng": 139.7769},
        "dinner": {"name": "アメ横の居酒屋", "lat": 35.7138, "lng": 139.7755, "address": "東京都台東区上野4-7-8"},
    },
    "asakusa": {
        "lunch": {"name": "浅草雷門周辺", "lat": 35.7148, "lng": 139.7967, "address": "東京都台東区浅草2-3-1"},
        "activity": {"name": "浅草寺散策", "lat": 35.7140, "lng": 139.7967},
        "dinner": {"name": "仲見世通りグルメ", "lat": 35.7146, "lng": 139.7967, "address": "東京都台東区浅草1-18-1"},
    },
    "ikebukuro": {
        "lunch": {"name": "池袋サンシャイン", "lat": 35.7296, "lng": 139.7193, "address": "東京都豊島区東池袋3-1-1"},
        "activity": {"name": "サンシャイン水族館", "lat": 35.7289, "lng": 139.7188},
        "dinner": {"name": "池袋グルメ街", "lat": 35.7310, "lng": 139.7101, "address": "東京都豊島区西池袋1-1-25"},
    },
}

# name template, lat offset, lng offset
GENERIC_PLACEHOLDERS: Dict[str, Tuple[str, float, float]] = {
    "lunch": ("{area} レストラン", 0.0, 0.0),
    "activity": ("{area}散策", 0.001, 0.001),
    "cafe": ("{area} カフェ", 0.0015, 0.0015),
    "dinner": ("{area} ディナー", 0.002, -0.001),
}
PLACEHOLDER_CATEGORIES = {"lunch": "restaurant", "activity": "museum", "cafe": "cafe", "dinner": "restaurant"}


@dataclass
class SlotSpec:
    """Everything the selector needs to fill one slot."""

    slot_type: str                          # lunch|activity|cafe|dinner
    area: str
    area_label: str
    budget: str
    phase: str
    desired_time: str = "12:00"
    mood: Optional[str] = None
    ng_conditions: List[str] = field(default_factory=list)
    exclude: Set[str] = field(default_factory=set)
    anchor: Optional[LatLng] = None         # search near this point instead of the area center
    weekday: Optional[int] = None

    @property
    def time_of_day(self) -> Optional[str]:
        return SLOT_TIME_OF_DAY.get(self.slot_type)

    @property
    def store_categories(self) -> List[Optional[str]]:
        return STORE_CATEGORIES.get(self.slot_type, [None])


def search_keywords(slot: SlotSpec, rng: Optional[random.Random] = None) -> List[str]:
    """Candidate search keywords for a slot, shuffled so retries vary."""
    if slot.slot_type == "lunch":
        options = LUNCH_KEYWORDS.get(slot.budget, LUNCH_KEYWORDS["medium"])
    elif slot.slot_type == "dinner":
        options = DINNER_KEYWORDS.get(slot.budget, DINNER_KEYWORDS["medium"])
    elif slot.slot_type == "cafe":
        if slot.budget == "high":
            options = CAFE_KEYWORDS["high"]
        else:
            options = CAFE_KEYWORDS.get(slot.mood if slot.mood == "romantic" else None)
    else:
        options = ACTIVITY_KEYWORDS.get(slot.mood, ACTIVITY_KEYWORDS[None])
    keywords = list(options)
    (rng or random).shuffle(keywords)
    return keywords


def placeholder_venue(
    slot_type: str,
    area: str,
    area_label: str,
    center: LatLng,
    exclude: Optional[Set[str]] = None,
) -> Venue:
    """Synthetic venue for a slot no data source could fill."""
    exclude = exclude or set()
    mock = AREA_PLACEHOLDERS.get(area, {}).get(slot_type)
    if mock and mock["name"] not in exclude:
        return Venue(
            name=mock["name"],
            lat=mock["lat"],
            lng=mock["lng"],
            address=mock.get("address"),
            category=PLACEHOLDER_CATEGORIES.get(slot_type),
            source="placeholder",
        )

    template, d_lat, d_lng = GENERIC_PLACEHOLDERS.get(slot_type, ("{area} スポット", 0.0005, 0.0005))
    return Venue(
        name=template.format(area=area_label),
        lat=center[0] + d_lat,
        lng=center[1] + d_lng,
        address=area_label if slot_type in ("lunch", "dinner") else None,
        category=PLACEHOLDER_CATEGORIES.get(slot_type),
        source="placeholder",
    )


class VenueSelector:
    """Resolves a SlotSpec to a Venue from the store or the places fallback."""

    def __init__(
        self,
        spot_store: SpotStore,
        places_service: Optional[PlacesService] = None,
        allow_external_calls: bool = True,
        rng: Optional[random.Random] = None,
        max_attempts: Optional[int] = None,
    ):
        self.spot_store = spot_store
        self.places_service = places_service
        self.allow_external_calls = allow_external_calls
        self.rng = rng or random.Random()
        self.max_attempts = max_attempts or settings.VENUE_SEARCH_MAX_ATTEMPTS

    @property
    def external_enabled(self) -> bool:
        return (
            self.allow_external_calls
            and self.places_service is not None
            and self.places_service.is_available()
        )

    async def select_venue(self, slot: SlotSpec) -> Optional[Venue]:
        """Best-effort venue for the slot, or None when every tier came up empty."""
        venue = self._select_from_store(slot)
        if venue:
            logger.debug("Slot %s filled from spot store: %s", slot.slot_type, venue.name)
            return venue
        if not self.external_enabled:
            return None
        return await self._select_from_places(slot)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _select_from_store(self, slot: SlotSpec) -> Optional[Venue]:
        if not self.spot_store.ensure_loaded() or not self.spot_store.has_area(slot.area):
            return None

        is_activity = slot.slot_type == "activity"
        for category in slot.store_categories:
            spot = self.spot_store.random_spot(
                rng=self.rng,
                area=slot.area,
                category=category,
                budget=None if is_activity else slot.budget,
                phase=slot.phase,
                time_slot=None if is_activity else slot.time_of_day,
                mood=slot.mood,
                ng_conditions=slot.ng_conditions,
                require_coordinates=True,
                exclude=slot.exclude,
            )
            if spot:
                return SpotStore.to_venue(spot)
        return None

    async def _select_from_places(self, slot: SlotSpec) -> Optional[Venue]:
        loop = asyncio.get_running_loop()
        keywords = search_keywords(slot, self.rng)
        fallback: Optional[Venue] = None

        for attempt in range(self.max_attempts):
            keyword = keywords[attempt % len(keywords)]
            options = SearchOptions(
                category=PLACES_CATEGORIES.get(slot.slot_type),
                budget=slot.budget,
                phase=slot.phase,
                time_slot=slot.slot_type if slot.slot_type in ("lunch", "dinner") else None,
                center=slot.anchor,
                exclude=set(slot.exclude),
            )
            try:
                venue = await loop.run_in_executor(
                    None,
                    functools.partial(
                        self.places_service.search_venue, keyword, slot.area_label, options
                    ),
                )
                if venue is None or venue.identity in slot.exclude or venue.name in slot.exclude:
                    continue
                detail = await loop.run_in_executor(
                    None, self.places_service.get_venue_detail, venue.place_id
                )
            except Exception as exc:
                logger.warning("Places lookup for %s failed: %s", slot.slot_type, exc)
                continue

            venue.attach_detail(detail)
            if is_open_at(venue.opening_hours, slot.desired_time, slot.weekday):
                logger.debug("Slot %s filled from places: %s", slot.slot_type, venue.name)
                return venue

            logger.info(
                "%s is closed at %s, retrying with another keyword (attempt %d/%d)",
                venue.name, slot.desired_time, attempt + 1, self.max_attempts,
            )
            fallback = fallback or venue

        return fallback
