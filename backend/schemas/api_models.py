"""
Pydantic models for plan request/response validation.

These are boundary schemas only.  Internal business logic uses the
dataclasses in models/conditions.py and models/plan.py; the payloads are
converted with ``to_conditions()`` once validated.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional

from models.conditions import Conditions


class PlanRequestError(ValueError):
    """Raised when a plan request payload fails validation."""


# ── Request Models ─────────────────────────────────────────────


class WizardData(BaseModel):
    """Step-by-step wizard answers (Japanese area names, wizard option keys)."""

    start_location: Optional[str] = Field(
        None,
        description="Japanese area name where the date starts",
        json_schema_extra={"examples": ["渋谷"]},
    )
    date_phase: Optional[str] = Field(None, json_schema_extra={"examples": ["first"]})
    time_slot: Optional[str] = Field(
        None,
        description="lunch | evening | half_day | undecided",
        json_schema_extra={"examples": ["evening"]},
    )
    budget_level: Optional[str] = Field(
        None,
        description="low | medium | high | no_limit",
        json_schema_extra={"examples": ["no_limit"]},
    )
    movement_style: Optional[str] = Field(None, json_schema_extra={"examples": ["single_area"]})
    transportation: List[str] = []
    preferred_areas: List[str] = []

    def to_conditions(self) -> Conditions:
        return Conditions.from_wizard(self.model_dump())


class ConditionsPayload(BaseModel):
    """Flat plan conditions, as sent by the classic form."""

    area: Optional[str] = Field(None, json_schema_extra={"examples": ["shibuya"]})
    date_phase: Optional[str] = None
    date_budget_level: Optional[str] = Field(
        None, description="low | medium | high (alias: budget_level)"
    )
    budget_level: Optional[str] = None
    time_slot: Optional[str] = None
    start_time: Optional[str] = Field(
        None, pattern=r"^\d{1,2}:\d{2}$", json_schema_extra={"examples": ["13:00"]}
    )
    duration_minutes: Optional[int] = Field(None, ge=0, le=24 * 60)
    mood: Optional[str] = None
    ng_conditions: List[str] = []
    custom_request: Optional[str] = Field(
        None, max_length=200, json_schema_extra={"examples": ["19時に浅草寺に行きたい"]}
    )
    movement_style: Optional[str] = None
    transportation: List[str] = []
    preferred_areas: List[str] = []

    def to_conditions(self) -> Conditions:
        data = self.model_dump(exclude_none=True)
        alias = data.pop("date_budget_level", None)
        if alias and "budget_level" not in data:
            data["budget_level"] = alias
        return Conditions.from_dict(data)


class PlanRequest(BaseModel):
    """Plan generation request: either flat conditions or wizard data."""

    conditions: Optional[ConditionsPayload] = None
    wizard_data: Optional[WizardData] = None
    adjustment: Optional[str] = Field(
        None, max_length=200, json_schema_extra={"examples": ["もう少し安くしてほしい"]}
    )

    @model_validator(mode="after")
    def _require_conditions(self) -> "PlanRequest":
        if self.conditions is None and self.wizard_data is None:
            raise ValueError("either conditions or wizard_data is required")
        return self

    def to_conditions(self) -> Conditions:
        """Wizard data wins when both are present."""
        if self.wizard_data is not None:
            return self.wizard_data.to_conditions()
        return self.conditions.to_conditions()


class AlternativesRequest(BaseModel):
    """Substitute-spot lookup for one slot of an existing plan."""

    category: str = Field(..., json_schema_extra={"examples": ["restaurant"]})
    area: str = Field(
        ..., description="Area id or Japanese area name", json_schema_extra={"examples": ["shibuya"]}
    )
    budget_level: Optional[str] = None
    date_phase: Optional[str] = None
    ng_conditions: List[str] = []
    exclude_spots: List[str] = Field([], description="Spot names already in the plan")
    limit: int = Field(5, ge=1, le=20)


# ── Response Models ────────────────────────────────────────────


class PlanResponse(BaseModel):
    """Plan generation response envelope."""

    success: bool
    plan: Optional[Dict[str, Any]] = None
    conditions: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class AlternativesResponse(BaseModel):
    """Alternatives lookup response envelope."""

    success: bool
    alternatives: List[Dict[str, Any]] = []
    count: int = 0
    error: Optional[str] = None
