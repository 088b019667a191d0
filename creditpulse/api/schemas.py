"""Request bodies for the /v1 scoring routes."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class ComputeRequest(BaseModel):
    persona_id: str = Field(..., min_length=1)
    model_id: str | None = Field(None, description="Defaults to scoring.default_model_id")


class SimulateRequest(BaseModel):
    persona_id: str = Field(..., min_length=1)
    model_id: str | None = None
    feature_overrides: dict[str, Any] = Field(default_factory=dict)


class BatchSimulateRequest(BaseModel):
    persona_id: str = Field(..., min_length=1)
    model_id: str | None = None
    scenarios: dict[str, dict[str, Any]] = Field(
        ..., description="Scenario name -> feature overrides"
    )


class RunRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    persona_id: str = Field(..., min_length=1)
    model_id: str | None = None
