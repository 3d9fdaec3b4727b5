"""
Client for the Google Places (New), Geocoding and Directions APIs.

Thin HTTP layer only: it builds requests, raises on HTTP errors and returns
the decoded payload fragments.  Fallback behaviour lives in
``services.places_service``.
"""

from typing import Any, Dict, List, Optional

import httpx

from config.settings import settings


PLACES_SEARCH_URL = "https://places.googleapis.com/v1/places:searchText"
PLACES_DETAIL_URL = "https://places.googleapis.com/v1/{place_id}"
GEOCODE_API_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DIRECTIONS_API_URL = "https://maps.googleapis.com/maps/api/directions/json"

SEARCH_FIELD_MASK = (
    "places.displayName,places.formattedAddress,places.location,places.rating,"
    "places.name,places.googleMapsUri,places.types,places.photos"
)
DETAIL_FIELD_MASK = (
    "displayName,formattedAddress,regularOpeningHours,websiteUri,rating,"
    "photos,internationalPhoneNumber,reviews,parkingOptions"
)


class PlacesClient:
    """Client for text search, place detail, geocoding and transit routes."""

    def __init__(self, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.api_key = api_key or settings.GOOGLE_MAPS_API_KEY
        if not self.api_key:
            raise ValueError(
                "GOOGLE_MAPS_API_KEY is required. "
                "Get one at https://console.cloud.google.com/apis/credentials"
            )
        self.timeout = timeout if timeout is not None else settings.PLACES_TIMEOUT

    def search_text(self, body: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Run a Places text search.

        Args:
            body: searchText request body (textQuery, locationBias, ...).

        Returns:
            List of raw place dicts (possibly empty).
        """
        resp = httpx.post(
            PLACES_SEARCH_URL,
            json=body,
            headers=self._headers(SEARCH_FIELD_MASK),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json().get("places") or []

    def get_place(self, place_id: str) -> Dict[str, Any]:
        """Fetch the detail record for a place resource name ("places/XXXX")."""
        resp = httpx.get(
            PLACES_DETAIL_URL.format(place_id=place_id),
            params={"languageCode": "ja"},
            headers=self._headers(DETAIL_FIELD_MASK),
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json() or {}

    def geocode(self, address: str) -> Optional[Dict[str, float]]:
        """Resolve an address to {"lat", "lng"}; None when nothing matched."""
        resp = httpx.get(
            GEOCODE_API_URL,
            params={"address": f"{address} 日本", "key": self.api_key, "language": "ja"},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        results = resp.json().get("results") or []
        if not results:
            return None
        return results[0].get("geometry", {}).get("location")

    def get_transit_route(
        self, origin: Dict[str, float], destination: Dict[str, float]
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch the first public-transit route between two coordinates.

        Returns:
            The raw route dict, or None when the API found no route.
        """
        params = {
            "origin": f"{origin['lat']},{origin['lng']}",
            "destination": f"{destination['lat']},{destination['lng']}",
            "mode": "transit",
            "language": "ja",
            "alternatives": "false",
            "key": self.api_key,
        }
        resp = httpx.get(DIRECTIONS_API_URL, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()
        if data.get("status") != "OK" or not data.get("routes"):
            return None
        return data["routes"][0]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _headers(self, field_mask: str) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": field_mask,
            # Must match the referrer allow-list on the API key
            "Referer": settings.PLACES_REFERER,
        }
