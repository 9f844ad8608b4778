"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from typing import Dict

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Liveness of the HTTP server and the supervised pipelines."""

    status: str = "ok"
    pipelines: Dict[str, bool] = Field(
        default_factory=dict,
        description="Whether each pipeline loop thread is currently alive.",
    )
