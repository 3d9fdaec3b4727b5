"""
Curated spot store: a read-only, in-memory collection of hand-picked venues.

The CSV at ``settings.SPOT_DB_PATH`` is loaded lazily on first access, once
per process, under a lock.  After loading, the records are never mutated,
so concurrent requests can read them without coordination.

Usage:
    from services.spot_store import SpotStore

    store = SpotStore()
    spot = store.random_spot(area="shibuya", category="cafe", budget="medium")
    venue = SpotStore.to_venue(spot) if spot else None
"""

import csv
import logging
import random
import threading
from collections import Counter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from config.settings import settings
from models.venue import Venue
from utils.geo import build_maps_search_link

logger = logging.getLogger(__name__)

BUDGET_ALIASES = {"mid": "medium", "middle": "medium", "中": "medium", "free": "low"}
LIST_FIELDS = ("recommended_for", "best_time_slot", "interest_tags")
LONG_STAY_MINUTES = 120


def normalize_budget_level(level: Optional[str]) -> str:
    """Map spreadsheet budget spellings onto low/medium/high."""
    lowered = (level or "").strip().lower()
    return BUDGET_ALIASES.get(lowered, lowered)


def _parse_list(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    text = (value or "").strip()
    if not text:
        return []
    separator = "|" if "|" in text else ","
    return [part.strip() for part in text.split(separator) if part.strip()]


def _parse_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def _normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    spot = {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in raw.items() if k}
    spot["spot_id"] = spot.get("spot_id") or spot.get("spot_name")
    spot["lat"] = _parse_float(spot.get("lat"))
    spot["lng"] = _parse_float(spot.get("lng"))
    try:
        spot["stay_minutes"] = int(spot.get("stay_minutes") or 60)
    except (TypeError, ValueError):
        spot["stay_minutes"] = 60
    weather_ok = spot.get("weather_ok")
    spot["weather_ok"] = weather_ok is True or str(weather_ok).lower() == "true"
    spot["budget_level"] = normalize_budget_level(spot.get("budget_level"))
    for name in LIST_FIELDS:
        spot[name] = _parse_list(spot.get(name))
    hours = spot.get("opening_hours")
    spot["opening_hours"] = hours if isinstance(hours, list) else [
        h.strip() for h in (hours or "").split("|") if h.strip()
    ]
    spot["mood_tags"] = spot.get("mood_tags") or ""
    return spot


class SpotStore:
    """Read-only access to the curated spot CSV."""

    def __init__(self, csv_path: Optional[str] = None, records: Optional[Iterable[Dict[str, Any]]] = None):
        self.csv_path = Path(csv_path or settings.SPOT_DB_PATH)
        self._lock = threading.Lock()
        self._spots: List[Dict[str, Any]] = []
        self._loaded = False
        if records is not None:
            self._spots = [_normalize_record(r) for r in records]
            self._loaded = True

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "SpotStore":
        """Build a store from in-memory rows (same columns as the CSV)."""
        return cls(records=records)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def ensure_loaded(self) -> bool:
        """Load the CSV on first use. Returns True when any spots are available."""
        if self._loaded:
            return bool(self._spots)
        with self._lock:
            if not self._loaded:
                self._spots = self._read_csv()
                self._loaded = True
        return bool(self._spots)

    def _read_csv(self) -> List[Dict[str, Any]]:
        if not self.csv_path.exists():
            logger.warning("Spot CSV not found: %s", self.csv_path)
            return []
        try:
            with self.csv_path.open(encoding="utf-8-sig", newline="") as fh:
                spots = [_normalize_record(row) for row in csv.DictReader(fh)]
        except (OSError, csv.Error):
            logger.warning("Could not read spot CSV %s", self.csv_path, exc_info=True)
            return []
        logger.info("Loaded %d spots from %s", len(spots), self.csv_path)
        return spots

    @property
    def spots(self) -> List[Dict[str, Any]]:
        self.ensure_loaded()
        return self._spots

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def has_area(self, area: str) -> bool:
        """True when the store holds at least one spot for the area."""
        return area in self.stats()["by_area"]

    def search(
        self,
        area: Optional[str] = None,
        category: Optional[str] = None,
        budget: Optional[str] = None,
        phase: Optional[str] = None,
        time_slot: Optional[str] = None,
        mood: Optional[str] = None,
        ng_conditions: Optional[List[str]] = None,
        require_coordinates: bool = False,
        exclude: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Return spots matching every given criterion (None = no filter)."""
        excluded = set(exclude or ())
        budget = normalize_budget_level(budget) if budget else None
        results = []
        for spot in self.spots:
            if area and spot.get("area_id") != area:
                continue
            if category and spot.get("category") != category:
                continue
            if budget and spot["budget_level"] != budget:
                continue
            if phase and not ({phase, "all"} & set(spot["recommended_for"])):
                continue
            if time_slot and not ({time_slot, "anytime"} & set(spot["best_time_slot"])):
                continue
            if mood and mood.lower() not in spot["mood_tags"].lower():
                continue
            if ng_conditions and self._violates_ng(spot, ng_conditions):
                continue
            if require_coordinates and (spot["lat"] is None or spot["lng"] is None):
                continue
            if excluded and (spot["spot_id"] in excluded or spot.get("spot_name") in excluded):
                continue
            results.append(spot)
        return results

    def random_spot(self, rng: Optional[random.Random] = None, **criteria) -> Optional[Dict[str, Any]]:
        """Pick one matching spot at random."""
        matches = self.search(**criteria)
        if not matches:
            return None
        return (rng or random).choice(matches)

    def alternatives(
        self,
        category: Optional[str],
        area: str,
        budget: Optional[str] = None,
        phase: Optional[str] = None,
        ng_conditions: Optional[List[str]] = None,
        exclude: Optional[Iterable[str]] = None,
        limit: int = 3,
    ) -> List[Dict[str, Any]]:
        """
        Suggest substitute spots of the same category in the area.

        Ranked by budget match (+10) then phase match (+5).
        """
        candidates = self.search(
            area=area,
            category=category,
            ng_conditions=ng_conditions,
            require_coordinates=True,
            exclude=exclude,
        )
        budget = normalize_budget_level(budget) if budget else None

        def _score(spot: Dict[str, Any]) -> int:
            score = 0
            if budget and spot["budget_level"] == budget:
                score += 10
            if phase and ({phase, "all"} & set(spot["recommended_for"])):
                score += 5
            return score

        return sorted(candidates, key=_score, reverse=True)[:limit]

    def stats(self) -> Dict[str, Any]:
        spots = self.spots
        with_coords = sum(1 for s in spots if s["lat"] is not None and s["lng"] is not None)
        return {
            "total": len(spots),
            "by_area": dict(Counter(s.get("area_id") for s in spots)),
            "by_category": dict(Counter(s.get("category") for s in spots)),
            "by_budget": dict(Counter(s["budget_level"] for s in spots)),
            "with_coordinates": with_coords,
            "without_coordinates": len(spots) - with_coords,
        }

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _violates_ng(spot: Dict[str, Any], ng_conditions: List[str]) -> bool:
        mood_tags = spot["mood_tags"]
        for ng in ng_conditions:
            if ng == "outdoor" and spot.get("indoor_outdoor") == "outdoor":
                return True
            if ng == "indoor" and spot.get("indoor_outdoor") == "indoor":
                return True
            if ng == "crowd" and "賑やか" in mood_tags:
                return True
            if ng == "quiet" and "静か" in mood_tags:
                return True
            if ng == "walk" and spot["stay_minutes"] > LONG_STAY_MINUTES:
                return True
            if ng == "rain" and not spot["weather_ok"]:
                return True
        return False

    @staticmethod
    def to_venue(spot: Dict[str, Any]) -> Venue:
        """Convert a spot record into a Venue."""
        name = spot.get("spot_name") or "スポット"
        description = " ".join(
            part for part in (spot.get("short_description"), spot.get("tips")) if part
        ) or None
        return Venue(
            name=name,
            lat=spot.get("lat"),
            lng=spot.get("lng"),
            category=spot.get("category"),
            address=spot.get("address") or None,
            url=build_maps_search_link(f"{name} {spot.get('area_name') or ''}".strip()),
            official_url=spot.get("official_url") or spot.get("source_url") or None,
            spot_id=spot.get("spot_id"),
            opening_hours=list(spot.get("opening_hours") or []),
            stay_minutes=spot.get("stay_minutes"),
            description=description,
            source="spot_db",
        )
