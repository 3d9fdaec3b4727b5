"""Model itinerary prompts, JSON extraction and the Gemini client retry loop."""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from unittest.mock import AsyncMock, MagicMock

import pytest

from clients.gemini_client import ExternalAPIError, GeminiClient
from config.settings import settings
from models.conditions import Conditions
from services.model_itinerary_service import (
    ItineraryModelService,
    build_prompt,
    parse_model_json,
)

# ---------------------------------------------------------------------------
# JSON extraction
# ---------------------------------------------------------------------------

def test_parse_plain_and_fenced_json():
    assert parse_model_json('{"schedule": []}') == {"schedule": []}

    fenced = '```json\n{"plan_summary": "x", "schedule": [{"time": "12:00"}]}\n```'
    assert parse_model_json(fenced)["schedule"][0]["time"] == "12:00"

    chatty = 'はい、こちらです: {"schedule": [1, 2,],} 以上です'
    assert parse_model_json(chatty) == {"schedule": [1, 2]}


def test_parse_rejects_non_json():
    with pytest.raises(ValueError):
        parse_model_json("no braces here")
    with pytest.raises(ValueError):
        parse_model_json("{not: valid json")
    with pytest.raises(ValueError):
        parse_model_json("")


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

def test_prompt_mentions_conditions_and_adjustment():
    conditions = Conditions(
        area="asakusa", date_phase="first", mood="relax", ng_conditions=["crowd"],
        custom_request="人力車に乗りたい", start_time="13:00", duration_minutes=240,
    )
    prompt = build_prompt(conditions, adjustment="もう少し安く")

    assert "- エリア: 浅草" in prompt
    assert "- 開始時刻: 13:00（240分間）" in prompt
    assert "- NG条件: crowd" in prompt
    assert "人力車に乗りたい" in prompt
    assert "【ユーザーからの調整リクエスト】" in prompt
    assert "【出力形式" in prompt


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

def _service(text):
    client = MagicMock()
    client.generate_content = AsyncMock(return_value=text)
    return ItineraryModelService(gemini_client=client), client


@pytest.mark.asyncio
async def test_generate_itinerary_returns_parsed_schedule():
    service, client = _service('{"schedule": [{"time": "12:00", "type": "lunch"}]}')
    data = await service.generate_itinerary(Conditions(), request_id="req-1")

    assert data["schedule"][0]["type"] == "lunch"
    kwargs = client.generate_content.call_args.kwargs
    assert kwargs["response_mime_type"] == "application/json"
    assert kwargs["request_id"] == "req-1"


@pytest.mark.asyncio
async def test_generate_itinerary_rejects_bad_output():
    service, _ = _service("申し訳ありません")
    with pytest.raises(ExternalAPIError):
        await service.generate_itinerary(Conditions())

    service, _ = _service('{"schedule": []}')
    with pytest.raises(ExternalAPIError):
        await service.generate_itinerary(Conditions())


# ---------------------------------------------------------------------------
# Gemini client
# ---------------------------------------------------------------------------

def test_client_requires_key(monkeypatch):
    monkeypatch.setattr(settings, "GEMINI_KEY", "")
    with pytest.raises(ValueError):
        GeminiClient()


def _bare_client(max_retries=2):
    client = GeminiClient.__new__(GeminiClient)
    client.api_key = "test-key"
    client.model_name = "gemini-test"
    client.max_retries = max_retries
    client.timeout = 1
    client.client = MagicMock()
    return client


@pytest.mark.asyncio
async def test_client_retries_then_succeeds(monkeypatch):
    monkeypatch.setattr("clients.gemini_client.RETRY_BACKOFF_SECONDS", 0)
    client = _bare_client()
    client.client.models.generate_content.side_effect = [RuntimeError("503"), MagicMock(text='{"ok": true}')]

    text = await client.generate_content("prompt", response_mime_type="application/json")

    assert text == '{"ok": true}'
    assert client.client.models.generate_content.call_count == 2


@pytest.mark.asyncio
async def test_client_raises_after_all_attempts(monkeypatch):
    monkeypatch.setattr("clients.gemini_client.RETRY_BACKOFF_SECONDS", 0)
    client = _bare_client(max_retries=3)
    client.client.models.generate_content.return_value = MagicMock(text="")

    with pytest.raises(ExternalAPIError) as excinfo:
        await client.generate_content("prompt")

    assert excinfo.value.retry_count == 3
    assert "empty response" in str(excinfo.value)
