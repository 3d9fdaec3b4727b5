"""Configuration checks and key redaction."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.settings import Settings, redact_api_key, settings


def test_redact_api_key():
    assert redact_api_key("AIzaSyExample1234") == "***...1234"
    assert redact_api_key("short") == "***INVALID***"
    assert redact_api_key("") == "***INVALID***"


def test_validate_flags_bad_time_budgets(monkeypatch):
    monkeypatch.setattr(Settings, "PLAN_TIMEOUT_SECONDS", 2.0)
    monkeypatch.setattr(Settings, "HYDRATION_BUDGET_SECONDS", 3.0)
    monkeypatch.setattr(Settings, "VENUE_SEARCH_MAX_ATTEMPTS", 0)

    errors = settings.validate()

    assert any("HYDRATION_BUDGET_SECONDS" in e for e in errors)
    assert any("VENUE_SEARCH_MAX_ATTEMPTS" in e for e in errors)


def test_validate_requires_gemini_key_when_model_enabled(monkeypatch):
    monkeypatch.setattr(Settings, "USE_MODEL_GENERATION", True)
    monkeypatch.setattr(Settings, "GEMINI_KEY", "")
    assert any("GEMINI_KEY" in e for e in settings.validate())

    monkeypatch.setattr(Settings, "GEMINI_KEY", "test-key-1234")
    assert not any("GEMINI_KEY" in e for e in settings.validate())


def test_static_tables_are_consistent():
    assert settings.DEFAULT_MOVEMENT_STYLE in settings.MOVEMENT_STYLES
    assert settings.DEFAULT_AREA in settings.AREA_CENTERS
    for style in settings.MOVEMENT_STYLES.values():
        assert style["max_leg_minutes"] > 0
        assert style["max_areas"] >= 1
