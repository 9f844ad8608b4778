from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from metrics.registry import MetricsRegistry
from services.runner import Supervisor, build_supervisor
from settings import Settings, get_settings

logger = logging.getLogger(__name__)

SupervisorFactory = Callable[[Settings, MetricsRegistry], Supervisor]


def create_app(
    registry: Optional[MetricsRegistry] = None,
    settings: Optional[Settings] = None,
    supervisor_factory: Optional[SupervisorFactory] = None,
) -> FastAPI:
    configure_logging()
    app_settings = settings or get_settings()
    app_registry = registry if registry is not None else MetricsRegistry()
    factory = supervisor_factory or build_supervisor

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        supervisor: Optional[Supervisor] = None
        if app_settings.pipelines_enabled:
            supervisor = factory(app_settings, app_registry)
            supervisor.start()
        else:
            logger.info("Pipelines disabled; serving metrics only")
        app.state.supervisor = supervisor
        try:
            yield
        finally:
            if supervisor is not None:
                supervisor.stop()
            app.state.supervisor = None

    app = FastAPI(
        title="RTL Telemetry Bridge",
        description="Republishes rtlamr meter readings and rtl_433 sensor events as MQTT and Prometheus metrics.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.registry = app_registry
    app.state.supervisor = None
    app.include_router(router)
    return app

app = create_app()
