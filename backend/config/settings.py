"""
Centralized configuration management for the DatePlan backend.

Loads environment variables from .env file and provides typed settings
to all backend modules, plus the static lookup tables the plan builder
relies on (movement styles, price bands, area reference points).

Usage:
    from config.settings import settings
    api_key = settings.GOOGLE_MAPS_API_KEY
"""

import os
import logging
from typing import Dict, List, Tuple
from pathlib import Path

from dotenv import load_dotenv

# Load .env from backend directory
_backend_dir = Path(__file__).resolve().parent.parent
load_dotenv(_backend_dir / ".env")

logger = logging.getLogger(__name__)


class Settings:
    """Centralized configuration singleton for all backend services."""

    # ===== Google Maps / Places API Configuration =====
    GOOGLE_MAPS_API_KEY: str = os.getenv("GOOGLE_MAPS_API_KEY", "")
    PLACES_TIMEOUT: float = float(os.getenv("PLACES_TIMEOUT", "4"))
    PLACES_REFERER: str = os.getenv("PLACES_REFERER", "http://localhost:3001")
    PUBLIC_API_BASE: str = os.getenv("PUBLIC_API_BASE", "http://localhost:3001").rstrip("/")

    # ===== Gemini API Configuration (optional model-generated itineraries) =====
    GEMINI_KEY: str = os.getenv("GEMINI_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_ITINERARY_TEMPERATURE: float = float(
        os.getenv("ITINERARY_TEMPERATURE", "0.7")
    )
    GEMINI_ITINERARY_MAX_TOKENS: int = int(
        os.getenv("ITINERARY_MAX_TOKENS", "4096")
    )
    GEMINI_TIMEOUT: int = int(os.getenv("GEMINI_TIMEOUT", "4"))
    GEMINI_MAX_RETRIES: int = int(os.getenv("GEMINI_MAX_RETRIES", "1"))
    USE_MODEL_GENERATION: bool = os.getenv("USE_MODEL_GENERATION", "False").lower() == "true"

    # ===== Curated spot store =====
    SPOT_DB_PATH: str = os.getenv(
        "SPOT_DB_PATH", str(_backend_dir / "data" / "spots.csv")
    )

    # ===== Time budgets =====
    PLAN_TIMEOUT_SECONDS: float = float(os.getenv("PLAN_TIMEOUT_SECONDS", "5"))
    HYDRATION_BUDGET_SECONDS: float = float(os.getenv("HYDRATION_BUDGET_SECONDS", "3"))
    VENUE_SEARCH_MAX_ATTEMPTS: int = int(os.getenv("VENUE_SEARCH_MAX_ATTEMPTS", "3"))

    # ===== Plan defaults =====
    DEFAULT_AREA: str = os.getenv("DEFAULT_AREA", "shibuya")
    DEFAULT_PHASE: str = "casual"
    DEFAULT_BUDGET: str = "medium"
    DEFAULT_TIME_SLOT: str = "lunch"
    DEFAULT_MOVEMENT_STYLE: str = "balanced"
    DEFAULT_VISIT_MINUTES: int = 60
    MEETING_LEAD_MINUTES: int = 15
    CUSTOM_FAR_THRESHOLD_M: float = 2500.0
    CUSTOM_TIME_TOLERANCE_MIN: int = 20

    VALID_MOODS: List[str] = ["relax", "active", "romantic", "casual"]

    # ===== Movement styles (per-leg cap and area count) =====
    MOVEMENT_STYLES: Dict[str, Dict] = {
        "balanced": {
            "label": "バランス",
            "description": "移動と滞在のバランスを取る標準プラン",
            "max_leg_minutes": 25,
            "max_areas": 2,
            "focus": "移動時間は25分程度まで、主要エリア2つ以内で構成",
        },
        "single_area": {
            "label": "ひとつの街でゆっくり",
            "description": "徒歩中心・同一エリア内で移動少なめ",
            "max_leg_minutes": 15,
            "max_areas": 1,
            "focus": "半径1km/徒歩10〜15分以内を目安に、滞在時間を長めに確保",
        },
        "nearby_areas": {
            "label": "近くのエリアを少し回る",
            "description": "徒歩＋短距離移動で2エリア程度",
            "max_leg_minutes": 30,
            "max_areas": 2,
            "focus": "隣接エリアまで、移動20〜30分以内を優先",
        },
        "multiple_areas": {
            "label": "いくつかの街を巡りたい",
            "description": "電車移動を含めて複数エリアを巡る",
            "max_leg_minutes": 45,
            "max_areas": 3,
            "focus": "最大3エリア・1区間30〜45分を上限にルートを最適化",
        },
        "day_trip": {
            "label": "遠出したい（日帰り）",
            "description": "片道1〜1.5時間の遠出も許容し、現地滞在を重視",
            "max_leg_minutes": 90,
            "max_areas": 3,
            "focus": "長距離移動を含めるが、現地では移動30分以内で目玉スポットを優先",
        },
    }

    # ===== Budget-dependent price bands (JPY per person) =====
    BUDGET_PRICE_RANGES: Dict[str, Dict[str, str]] = {
        "low": {"lunch": "1000-1500", "activity": "1000-1500", "dinner": "1500-2000", "cafe": "600-1000"},
        "medium": {"lunch": "1500-2500", "activity": "2000-3000", "dinner": "3000-5000", "cafe": "1000-1500"},
        "high": {"lunch": "2500-4000", "activity": "3000-5000", "dinner": "5000-10000", "cafe": "1500-2500"},
    }
    PLAN_COST_RANGES: Dict[str, str] = {
        "low": "3000-5000",
        "medium": "7000-10000",
        "high": "15000-25000",
    }

    # ===== Named time slots → nominal slot clock times =====
    TIME_SLOT_TABLE: Dict[str, Dict[str, str]] = {
        "lunch": {"start": "12:00", "lunch": "12:00", "activity": "14:00", "cafe": "16:30", "dinner": "18:00"},
        "dinner": {"start": "17:00", "activity": "17:00", "cafe": "18:30", "dinner": "20:00"},
        "halfday": {"start": "12:00", "lunch": "12:00", "activity": "14:00", "cafe": "16:30", "dinner": "18:00"},
        "fullday": {"start": "09:00", "lunch": "11:30", "activity": "13:30", "cafe": "15:30", "dinner": "17:30"},
    }

    # ===== Area reference data (Tokyo) =====
    AREA_CENTERS: Dict[str, Tuple[float, float]] = {
        "ueno": (35.7138, 139.7770),
        "shibuya": (35.6595, 139.7004),
        "shinjuku": (35.6895, 139.6917),
        "ginza": (35.6719, 139.7645),
        "harajuku": (35.6704, 139.7028),
        "odaiba": (35.6270, 139.7769),
        "asakusa": (35.7148, 139.7967),
        "ikebukuro": (35.7296, 139.7160),
    }
    AREA_LABELS: Dict[str, str] = {
        "shibuya": "渋谷",
        "shinjuku": "新宿",
        "ginza": "銀座",
        "harajuku": "原宿",
        "odaiba": "お台場",
        "ueno": "上野",
        "asakusa": "浅草",
        "ikebukuro": "池袋",
    }
    AREA_STATIONS: Dict[str, Tuple[str, str]] = {
        "shibuya": ("渋谷駅", "ハチ公口"),
        "shinjuku": ("新宿駅", "東口"),
        "ginza": ("銀座駅", "A1出口"),
        "harajuku": ("原宿駅", "竹下口"),
        "odaiba": ("お台場海浜公園駅", "改札"),
        "ueno": ("上野駅", "公園口"),
        "asakusa": ("浅草駅", "1番出口"),
        "ikebukuro": ("池袋駅", "東口"),
    }
    # Wizard start locations (Japanese) → area ids
    AREA_IDS_BY_LABEL: Dict[str, str] = {
        "渋谷": "shibuya", "新宿": "shinjuku", "表参道": "omotesando",
        "原宿": "harajuku", "恵比寿": "ebisu", "代官山": "daikanyama",
        "中目黒": "nakameguro", "六本木": "roppongi", "銀座": "ginza",
        "丸の内": "marunouchi", "東京": "tokyo", "品川": "shinagawa",
        "池袋": "ikebukuro", "上野": "ueno", "浅草": "asakusa",
        "秋葉原": "akihabara", "お台場": "odaiba", "吉祥寺": "kichijoji",
        "下北沢": "shimokitazawa", "自由が丘": "jiyugaoka",
    }
    CITYWIDE_AREA_NAME: str = "東京都"
    # Tokyo Station, used when neither the table, the geocoder nor any venue yields a center
    FALLBACK_CENTER: Tuple[float, float] = (35.6812, 139.7671)

    # ===== Logging =====
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def validate(cls) -> List[str]:
        """Validate configuration. Returns list of errors (empty = valid)."""
        errors = []

        if cls.USE_MODEL_GENERATION and not cls.GEMINI_KEY:
            errors.append(
                "USE_MODEL_GENERATION is enabled but GEMINI_KEY is missing, "
                "set it in backend/.env"
            )

        if not 0 <= cls.GEMINI_ITINERARY_TEMPERATURE <= 2:
            errors.append(
                f"ITINERARY_TEMPERATURE must be 0-2, got {cls.GEMINI_ITINERARY_TEMPERATURE}"
            )

        if cls.PLAN_TIMEOUT_SECONDS <= 0:
            errors.append(f"PLAN_TIMEOUT_SECONDS must be positive, got {cls.PLAN_TIMEOUT_SECONDS}")

        if cls.HYDRATION_BUDGET_SECONDS > cls.PLAN_TIMEOUT_SECONDS:
            errors.append(
                "HYDRATION_BUDGET_SECONDS must not exceed PLAN_TIMEOUT_SECONDS "
                f"({cls.HYDRATION_BUDGET_SECONDS} > {cls.PLAN_TIMEOUT_SECONDS})"
            )

        if cls.VENUE_SEARCH_MAX_ATTEMPTS < 1:
            errors.append(
                f"VENUE_SEARCH_MAX_ATTEMPTS must be >= 1, got {cls.VENUE_SEARCH_MAX_ATTEMPTS}"
            )

        if cls.DEFAULT_MOVEMENT_STYLE not in cls.MOVEMENT_STYLES:
            errors.append(f"Unknown DEFAULT_MOVEMENT_STYLE '{cls.DEFAULT_MOVEMENT_STYLE}'")

        return errors


def redact_api_key(key: str) -> str:
    """Redact API key to show only last 4 characters."""
    if not key or len(key) < 8:
        return "***INVALID***"
    return f"***...{key[-4:]}"


def configure_logging(level: str = None) -> None:
    """Apply LOG_LEVEL to the root logger (used by the self-test entry points)."""
    logging.basicConfig(
        level=getattr(logging, (level or Settings.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Singleton instance, import this everywhere
settings = Settings()
