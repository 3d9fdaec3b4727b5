"""
Plan service: the caller-facing entry point for date-plan generation.

Owns the request-level policies the core builder does not know about:
    - payload validation (pydantic schemas) and conversion to Conditions
    - optional model-generated skeleton (Gemini), falling back to rules
    - the overall time budget: when the build exceeds
      ``settings.PLAN_TIMEOUT_SECONDS`` it is abandoned and rebuilt with
      external calls disabled, so a plan is always returned

Usage:
    from services.plan_service import PlanService

    service = PlanService()
    response = await service.generate_plan_from_payload({
        "conditions": {"area": "shibuya", "date_phase": "first"},
    })
"""

import asyncio
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

# Add backend directory to path so imports work both when run directly and when imported
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from clients.gemini_client import ExternalAPIError
from config.settings import settings
from models.conditions import Conditions
from models.plan import Plan
from models.venue import Venue
from schemas.api_models import (
    AlternativesRequest,
    AlternativesResponse,
    PlanRequest,
    PlanRequestError,
    PlanResponse,
)
from services.model_itinerary_service import ItineraryModelService
from services.places_service import PlacesService
from services.plan_builder import PlanBuilder
from services.schedule_skeleton import skeleton_from_model
from services.spot_store import SpotStore
from utils.id_generator import generate_plan_id

logger = logging.getLogger(__name__)


def parse_plan_request(payload: Optional[Dict[str, Any]]) -> PlanRequest:
    """Validate a raw request payload. Raises PlanRequestError on invalid input."""
    try:
        return PlanRequest.model_validate(payload or {})
    except ValidationError as exc:
        raise PlanRequestError(f"Invalid plan request: {exc.error_count()} error(s): {exc}") from exc


class PlanService:
    """Generates plans under the request time budget."""

    def __init__(
        self,
        builder: Optional[PlanBuilder] = None,
        places_service: Optional[PlacesService] = None,
        spot_store: Optional[SpotStore] = None,
        model_service: Optional[ItineraryModelService] = None,
        use_model: Optional[bool] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            builder: Injected builder (useful for testing). Created from the
                     places service and spot store if omitted.
            places_service: Places collaborator (created automatically if omitted;
                            unavailable without GOOGLE_MAPS_API_KEY).
            spot_store: Curated spot store (CSV-backed by default).
            model_service: Model skeleton generator; only used when model
                           generation is enabled.
            use_model: Overrides settings.USE_MODEL_GENERATION.
            timeout_seconds: Overrides settings.PLAN_TIMEOUT_SECONDS.
        """
        spot_store = spot_store or getattr(builder, "spot_store", None) or SpotStore()
        if builder is None:
            builder = PlanBuilder(spot_store, places_service or PlacesService())
        self.builder = builder
        self.spot_store = spot_store
        self.timeout_seconds = timeout_seconds or settings.PLAN_TIMEOUT_SECONDS

        enabled = settings.USE_MODEL_GENERATION if use_model is None else use_model
        self.model_service: Optional[ItineraryModelService] = None
        if enabled:
            try:
                self.model_service = model_service or ItineraryModelService()
            except ValueError as exc:
                logger.warning("Model generation disabled: %s", exc)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_plan(
        self,
        conditions: Conditions,
        adjustment: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Plan:
        """Build a plan; on timeout, rebuild offline from local data only."""
        request_id = request_id or generate_plan_id()
        try:
            return await asyncio.wait_for(
                self._generate(conditions, adjustment, request_id),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Plan generation exceeded %.1fs, rebuilding without external calls",
                self.timeout_seconds,
                extra={"request_id": request_id},
            )
            return await self.builder.build_plan(
                conditions, adjustment, allow_external_calls=False, request_id=request_id
            )

    async def generate_plan_from_payload(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Validate a request payload and return the response envelope as a dict.

        Invalid payloads yield ``success=False`` with the validation message.
        """
        try:
            request = parse_plan_request(payload)
        except PlanRequestError as exc:
            logger.info("Rejected plan request: %s", exc)
            return PlanResponse(success=False, error=str(exc)).model_dump()

        conditions = request.to_conditions()
        plan = await self.generate_plan(conditions, request.adjustment)
        return PlanResponse(
            success=True,
            plan=plan.to_dict(),
            conditions=conditions.to_dict(),
        ).model_dump()

    def get_alternatives(
        self,
        category: str,
        area: str,
        budget: Optional[str] = None,
        phase: Optional[str] = None,
        ng_conditions: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
        limit: int = 5,
    ) -> List[Venue]:
        """
        Substitute venues for one slot, from the curated store only.

        ``area`` may be an area id or its Japanese label; ``exclude`` holds the
        spot names already used in the plan.
        """
        area_id = settings.AREA_IDS_BY_LABEL.get(area, area)
        spots = self.spot_store.alternatives(
            category,
            area_id,
            budget=budget,
            phase=phase,
            ng_conditions=ng_conditions,
            exclude=exclude,
            limit=limit,
        )
        logger.info("Found %d alternatives for %s in %s", len(spots), category, area_id)
        return [SpotStore.to_venue(spot) for spot in spots]

    def get_alternatives_from_payload(self, payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Validate an alternatives payload and return the response envelope as a dict."""
        try:
            request = AlternativesRequest.model_validate(payload or {})
        except ValidationError as exc:
            logger.info("Rejected alternatives request: %s", exc)
            return AlternativesResponse(
                success=False, error=f"Invalid alternatives request: {exc.error_count()} error(s)"
            ).model_dump()

        venues = self.get_alternatives(
            request.category,
            request.area,
            budget=request.budget_level,
            phase=request.date_phase,
            ng_conditions=request.ng_conditions,
            exclude=request.exclude_spots,
            limit=request.limit,
        )
        return AlternativesResponse(
            success=True,
            alternatives=[venue.to_dict() for venue in venues],
            count=len(venues),
        ).model_dump()

    def store_stats(self) -> Dict[str, Any]:
        """Curated store coverage: totals by area, category and budget."""
        return self.spot_store.stats()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _generate(self, conditions: Conditions, adjustment: Optional[str], request_id: str) -> Plan:
        skeleton = None
        if self.model_service is not None:
            try:
                data = await self.model_service.generate_itinerary(conditions, adjustment, request_id)
                skeleton = skeleton_from_model(data.get("schedule") or []) or None
                if skeleton is None:
                    logger.warning(
                        "Model schedule had no usable slots, using rule-based skeleton",
                        extra={"request_id": request_id},
                    )
            except ExternalAPIError as exc:
                logger.warning(
                    "Model itinerary unavailable, using rule-based skeleton: %s", exc,
                    extra={"request_id": request_id},
                )
        return await self.builder.build_plan(
            conditions, adjustment, allow_external_calls=True, skeleton=skeleton, request_id=request_id
        )


# ---------------------------------------------------------------------------
# Self-test
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import json

    from config.settings import configure_logging, redact_api_key

    async def _self_test():
        print("=" * 72)
        print("  PLAN SERVICE - SELF-TEST")
        print("=" * 72)
        print(f"  Places key: {redact_api_key(settings.GOOGLE_MAPS_API_KEY)}")
        print(f"  Gemini key: {redact_api_key(settings.GEMINI_KEY)}  (model={settings.USE_MODEL_GENERATION})")

        payload = {
            "conditions": {
                "area": "shibuya",
                "date_phase": "first",
                "date_budget_level": "medium",
                "time_slot": "lunch",
                "mood": "relax",
                "custom_request": "19時に浅草寺に行きたい",
            }
        }
        print("\n[INPUT]")
        print(json.dumps(payload, ensure_ascii=False, indent=2))

        errors = settings.validate()
        for err in errors:
            print(f"    ! {err}")

        service = PlanService()
        stats = service.store_stats()
        print(f"  Spot store: {stats['total']} spots in {len(stats['by_area'])} areas")
        response = await service.generate_plan_from_payload(payload)
        plan = response["plan"]

        print(f"\n    ✓ {plan['plan_summary']}  (offline={plan['offline']})")
        for item in plan["schedule"]:
            print(f"      {item['time']}  [{item['type']:>8}] {item['place_name']}")
        print(f"\n    {plan['plan_reason']}")
        for flag in plan["risk_flags"]:
            print(f"    ! {flag}")

        print("\n" + "=" * 72)
        print("  SELF-TEST PASSED ✓")
        print("=" * 72)

    configure_logging()
    asyncio.run(_self_test())
