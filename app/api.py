"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from app.schemas import HealthResponse
from metrics.registry import MetricsRegistry
from services.runner import Supervisor

router = APIRouter()


def get_registry(request: Request) -> MetricsRegistry:
    return request.app.state.registry


def get_supervisor(request: Request) -> Optional[Supervisor]:
    return getattr(request.app.state, "supervisor", None)


@router.get(
    "/metrics",
    summary="Current metric samples in the Prometheus text exposition format.",
    response_class=Response,
)
def metrics(registry: MetricsRegistry = Depends(get_registry)) -> Response:
    return Response(content=registry.export(), media_type=registry.content_type)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
    response_model=HealthResponse,
)
def healthcheck(supervisor: Optional[Supervisor] = Depends(get_supervisor)) -> HealthResponse:
    pipelines = supervisor.status() if supervisor is not None else {}
    return HealthResponse(pipelines=pipelines)
