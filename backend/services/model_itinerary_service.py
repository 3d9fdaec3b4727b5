"""
Model-generated itinerary skeletons via Google Gemini.

The model proposes slot types, times and (optionally) named places.  Its
output is never returned to the caller as-is: ``PlanService`` converts it
into skeleton slots and runs it through ``PlanBuilder.build_plan`` so the
result gets the same travel legs, bookends and opening-hours checks as a
rule-based plan.

Usage:
    service = ItineraryModelService()
    data = await service.generate_itinerary(conditions, adjustment=None)
    skeleton = skeleton_from_model(data["schedule"])
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from clients.gemini_client import ExternalAPIError, GeminiClient
from models.conditions import Conditions

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = "あなたはデートプラン生成の専門家です。必ず有効なJSONのみを返してください。"

OUTPUT_FORMAT = """
【出力形式（必ず以下のJSON形式で返してください）】
{
  "plan_summary": "このプランの説明（1文）",
  "schedule": [
    {
      "time": "時刻（HH:MM形式）",
      "type": "lunch|activity|walk|cafe|dinner",
      "place_name": "場所の名前",
      "lat": 35.0,
      "lng": 139.0,
      "duration": "所要時間（例：60min）"
    }
  ]
}

【ルール】
1. 初デートの場合は、密室や長時間拘束を避けてください
2. 予算レベルを超えないようにしてください
3. 指定されたエリア周辺で現実的な移動範囲内にしてください
4. スケジュールは時間帯に応じて自然な流れで構成してください
5. NG条件を避けたスポットを選んでください
6. ユーザーの自由入力があれば、その意図が伝わるようにしてください"""


class ItineraryModelService:
    """Asks the model for a plan skeleton and parses its JSON reply."""

    def __init__(self, gemini_client: Optional[GeminiClient] = None):
        """
        Args:
            gemini_client: Injected client (useful for testing).

        Raises:
            ValueError: If no client is given and GEMINI_KEY is not configured.
        """
        self.gemini_client = gemini_client or GeminiClient()

    async def generate_itinerary(
        self,
        conditions: Conditions,
        adjustment: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Returns:
            Parsed model output with a non-empty "schedule" list.

        Raises:
            ExternalAPIError: If the model call failed or returned unusable JSON.
        """
        prompt = build_prompt(conditions, adjustment)
        text = await self.gemini_client.generate_content(
            prompt=prompt,
            system_instruction=SYSTEM_INSTRUCTION,
            response_mime_type="application/json",
            request_id=request_id,
        )
        try:
            data = parse_model_json(text)
        except ValueError as exc:
            logger.warning(
                "Unusable model output: %s", exc,
                extra={"request_id": request_id, "preview": text[:300]},
            )
            raise ExternalAPIError(service="Gemini", error=f"invalid JSON: {exc}") from exc

        if not isinstance(data.get("schedule"), list) or not data["schedule"]:
            raise ExternalAPIError(service="Gemini", error="response has no schedule")
        return data


def build_prompt(conditions: Conditions, adjustment: Optional[str] = None) -> str:
    lines = [
        "以下の条件に基づいて、デートプランをJSON形式で生成してください。",
        "",
        "【ユーザーの条件】",
        f"- エリア: {conditions.area_label}",
        f"- デートの段階: {conditions.date_phase}",
        f"- 時間帯: {conditions.time_slot}",
        f"- デート予算レベル: {conditions.budget_level}",
    ]
    if conditions.has_explicit_window:
        lines.append(f"- 開始時刻: {conditions.start_time}（{conditions.duration_minutes}分間）")
    if conditions.mood:
        lines.append(f"- 今日の気分: {conditions.mood}")
    if conditions.ng_conditions:
        lines.append(f"- NG条件: {', '.join(conditions.ng_conditions)}")
    if conditions.custom_request:
        lines.append(f"- ユーザーの自由入力リクエスト: {conditions.custom_request}")

    movement = conditions.movement_preferences
    if movement:
        lines.append(f"- 移動方針: {movement.label}（{movement.description}）。{movement.focus}")
    if conditions.preferred_areas:
        lines.append(
            f"- 途中で立ち寄りたいエリア: {', '.join(conditions.preferred_areas)}（可能な範囲で経路に組み込む）"
        )
    if adjustment:
        lines += ["", "【ユーザーからの調整リクエスト】", adjustment,
                  "前回のプランを基に、このリクエストを反映して修正したプランを生成してください。"]
    return "\n".join(lines) + "\n" + OUTPUT_FORMAT


def parse_model_json(text: str) -> Dict[str, Any]:
    """Extract the JSON object from a model reply (code fences and trailing commas tolerated)."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        fence = re.search(r"```(?:json)?\s*(.*?)```", cleaned, re.DOTALL)
        if fence:
            cleaned = fence.group(1).strip()

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("no JSON object found")
    cleaned = cleaned[start:end + 1]

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            data = json.loads(re.sub(r",(\s*[}\]])", r"\1", cleaned))
        except json.JSONDecodeError as exc:
            raise ValueError(str(exc)) from exc

    if not isinstance(data, dict):
        raise ValueError("top-level JSON is not an object")
    return data
