"""
Data models for the date-plan request conditions.

Conditions arrive either as a flat dict (``Conditions.from_dict``) or as the
step-by-step wizard payload (``Conditions.from_wizard``).  Every enumerated
field is normalised in ``__post_init__`` so downstream code can rely on the
values being one of the documented options.
"""
from dataclasses import dataclass, field, asdict, replace, fields
from typing import Any, Dict, List, Optional

from config.settings import settings


@dataclass(frozen=True)
class MovementPreference:
    """Travel policy bundle: per-leg duration cap and number of areas."""

    key: str
    label: str
    description: str
    max_leg_minutes: int
    max_areas: int
    focus: str

    @classmethod
    def for_style(cls, style: Optional[str]) -> "MovementPreference":
        """Resolve a movement-style key; unknown keys fall back to ``balanced``."""
        key = style if style in settings.MOVEMENT_STYLES else settings.DEFAULT_MOVEMENT_STYLE
        return cls(key=key, **settings.MOVEMENT_STYLES[key])

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Conditions:
    """User preferences for a single date plan."""

    area: str = settings.DEFAULT_AREA
    date_phase: str = settings.DEFAULT_PHASE
    budget_level: str = settings.DEFAULT_BUDGET
    time_slot: str = settings.DEFAULT_TIME_SLOT

    # Explicit window, takes precedence over time_slot when both are set
    start_time: Optional[str] = None         # HH:MM
    duration_minutes: Optional[int] = None

    mood: Optional[str] = None               # relax|active|romantic|casual
    ng_conditions: List[str] = field(default_factory=list)
    custom_request: Optional[str] = None

    movement_style: Optional[str] = None
    movement_preferences: Optional[MovementPreference] = None
    transportation: List[str] = field(default_factory=list)
    preferred_areas: List[str] = field(default_factory=list)

    PHASE_SYNONYMS = {
        "first": "first", "first_date": "first", "初デート": "first",
        "初めて": "first", "1回目": "first",
        "second": "second", "second_third": "second", "2回目": "second",
        "3回目": "second", "2〜3回目": "second",
        "casual": "casual", "カジュアル": "casual", "dating": "casual",
        "anniversary": "anniversary", "記念日": "anniversary",
    }

    BUDGET_SYNONYMS = {
        "low": "low", "free": "low", "cheap": "low", "安め": "low",
        "medium": "medium", "mid": "medium", "middle": "medium", "中": "medium",
        "high": "high", "no_limit": "high", "luxury": "high", "高め": "high",
    }

    TIME_SLOT_SYNONYMS = {
        "lunch": "lunch", "undecided": "lunch",
        "dinner": "dinner", "evening": "dinner", "night": "dinner",
        "halfday": "halfday", "half_day": "halfday",
        "fullday": "fullday", "full_day": "fullday", "day": "fullday",
    }

    TRANSPORT_SYNONYMS = {
        "car": "car", "車": "car", "drive": "car", "driving": "car",
        "taxi": "taxi", "タクシー": "taxi",
        "walk": "walk", "walking": "walk", "徒歩": "walk",
        "train": "train", "transit": "train", "電車": "train", "地下鉄": "train",
    }

    # Wizard key → canonical key for the flat payload
    FIELD_ALIASES = {
        "date_budget_level": "budget_level",
        "budget": "budget_level",
        "phase": "date_phase",
    }

    def __post_init__(self):
        """Resolve every enumerated field to a documented value."""
        self.area = (self.area or settings.DEFAULT_AREA).strip()
        self.date_phase = self._normalize(
            self.date_phase, self.PHASE_SYNONYMS, settings.DEFAULT_PHASE
        )
        self.budget_level = self._normalize(
            self.budget_level, self.BUDGET_SYNONYMS, settings.DEFAULT_BUDGET
        )
        self.time_slot = self._normalize(
            self.time_slot, self.TIME_SLOT_SYNONYMS, settings.DEFAULT_TIME_SLOT
        )
        if self.mood not in settings.VALID_MOODS:
            self.mood = None
        self.ng_conditions = [
            ng.strip().lower() for ng in (self.ng_conditions or []) if ng and ng.strip()
        ]
        self.custom_request = (self.custom_request or "").strip() or None
        self.transportation = self._normalize_transportation(self.transportation)
        self.preferred_areas = list(self.preferred_areas or [])

        if not isinstance(self.movement_preferences, MovementPreference):
            self.movement_preferences = MovementPreference.for_style(self.movement_style)

        if self.duration_minutes is not None:
            self.duration_minutes = max(0, int(self.duration_minutes))
        if self.start_time is not None and not _is_clock(self.start_time):
            self.start_time = None

    @staticmethod
    def _normalize(value: Optional[str], synonyms: Dict[str, str], default: str) -> str:
        if not value:
            return default
        return synonyms.get(str(value).strip().lower(), synonyms.get(str(value).strip(), default))

    def _normalize_transportation(self, modes: Optional[List[str]]) -> List[str]:
        normalized: List[str] = []
        for mode in modes or []:
            canonical = self.TRANSPORT_SYNONYMS.get(str(mode).strip().lower())
            if canonical and canonical not in normalized:
                normalized.append(canonical)
        return normalized

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def area_label(self) -> str:
        """Japanese display name for the area (the id itself for unknown areas)."""
        return settings.AREA_LABELS.get(self.area, self.area)

    @property
    def has_explicit_window(self) -> bool:
        return bool(self.start_time and self.duration_minutes)

    def with_changes(self, **changes) -> "Conditions":
        return replace(self, **changes)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serialisable dictionary."""
        data = asdict(self)
        data["movement_preferences"] = self.movement_preferences.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conditions":
        """Create Conditions from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in (data or {}).items():
            key = cls.FIELD_ALIASES.get(key, key)
            if key not in known or key in kwargs:
                continue
            kwargs[key] = value
        movement = kwargs.get("movement_preferences")
        if isinstance(movement, dict):
            # Only the style key is trusted; the bundle is rebuilt from settings
            kwargs["movement_style"] = kwargs.get("movement_style") or movement.get("key")
            kwargs["movement_preferences"] = None
        return cls(**kwargs)

    @classmethod
    def from_wizard(cls, wizard_data: Dict[str, Any]) -> "Conditions":
        """Convert the step-by-step wizard payload into Conditions."""
        wizard_data = wizard_data or {}
        start_location = wizard_data.get("start_location")
        if start_location:
            area = settings.AREA_IDS_BY_LABEL.get(start_location, start_location.lower())
        else:
            area = settings.DEFAULT_AREA

        preferred = [
            settings.AREA_IDS_BY_LABEL.get(a, a.lower())
            for a in wizard_data.get("preferred_areas") or []
        ]

        return cls(
            area=area,
            date_phase=wizard_data.get("date_phase"),
            budget_level=wizard_data.get("budget_level"),
            time_slot=wizard_data.get("time_slot"),
            movement_style=wizard_data.get("movement_style"),
            transportation=wizard_data.get("transportation") or [],
            preferred_areas=preferred,
        )


def _is_clock(value: str) -> bool:
    parts = str(value).split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        return False
    return 0 <= int(parts[0]) <= 23 and 0 <= int(parts[1]) <= 59
