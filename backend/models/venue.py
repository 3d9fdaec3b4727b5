"""
Venue value objects produced by the selector and the places lookup.

A Venue is created fresh per request.  After a schedule item is derived from
it, the only later change is attaching hydrated detail fields.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus


@dataclass
class VenueDetail:
    """Place detail returned by the places collaborator."""

    name: Optional[str] = None
    address: Optional[str] = None
    opening_hours: List[str] = field(default_factory=list)   # per-weekday text
    website: Optional[str] = None
    rating: Optional[float] = None
    phone: Optional[str] = None
    photos: List[str] = field(default_factory=list)          # photo URLs
    reviews: List[Dict[str, Any]] = field(default_factory=list)
    parking_info: Optional[str] = None


@dataclass
class Venue:
    """A concrete place chosen for a slot."""

    name: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    category: Optional[str] = None
    address: Optional[str] = None
    rating: Optional[float] = None

    url: Optional[str] = None                 # maps / search link
    official_url: Optional[str] = None

    place_id: Optional[str] = None            # identity for external venues
    spot_id: Optional[str] = None             # identity for curated venues

    opening_hours: List[str] = field(default_factory=list)
    photos: List[str] = field(default_factory=list)
    reviews: List[Dict[str, Any]] = field(default_factory=list)

    stay_minutes: Optional[int] = None
    description: Optional[str] = None
    source: str = "placeholder"               # spot_db|places|placeholder|model

    @property
    def identity(self) -> str:
        """Key used in exclusion lists."""
        return self.place_id or self.spot_id or self.name

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def attach_detail(self, detail: Optional[VenueDetail]) -> None:
        """Copy hydrated fields onto the venue, keeping existing values on gaps."""
        if not detail:
            return
        self.address = detail.address or self.address
        self.rating = detail.rating or self.rating
        self.official_url = detail.website or self.official_url
        if detail.opening_hours:
            self.opening_hours = list(detail.opening_hours)
        if detail.photos:
            self.photos = list(detail.photos)
        if detail.reviews:
            self.reviews = list(detail.reviews)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def google_search_url(query: str) -> str:
    """Generic web-search link used when nothing better is known."""
    return "https://www.google.com/search?q=" + quote_plus(query or "")


def resolve_display_url(venue: Venue) -> str:
    """Display link for a venue: maps/search link, then official site, then a web search."""
    for candidate in (venue.url, venue.official_url):
        if candidate:
            return candidate
    return google_search_url(venue.name)
