import threading
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from prometheus_client import CONTENT_TYPE_LATEST

from app.main import create_app
from metrics.registry import METER_CONSUMPTION, RTL433_TEMPERATURE, MetricsRegistry
from services.runner import PipelineLoop, Supervisor
from settings import Settings


@pytest.fixture
def api_client(registry: MetricsRegistry, make_settings) -> Iterator[TestClient]:
    app = create_app(registry=registry, settings=make_settings(pipelines_enabled=False))
    with TestClient(app) as client:
        yield client


def test_metrics_endpoint_renders_registry(api_client: TestClient, registry: MetricsRegistry, exposed) -> None:
    registry.set(METER_CONSUMPTION, {"message_type": "scm", "type": "5", "id": "123"}, 4567)

    response = api_client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"] == CONTENT_TYPE_LATEST
    assert exposed(
        response.text, "meter_consumption", {"message_type": "scm", "type": "5", "id": "123"}
    ) == 4567


def test_metrics_endpoint_is_not_cached(api_client: TestClient, registry: MetricsRegistry, exposed) -> None:
    labels = {"id": "7", "model": "X"}
    registry.set(RTL433_TEMPERATURE, labels, 21.5)
    first = api_client.get("/metrics").text

    registry.set(RTL433_TEMPERATURE, labels, 22.0)
    second = api_client.get("/metrics").text

    assert exposed(first, "rtl433_temperature", labels) == 21.5
    assert exposed(second, "rtl433_temperature", labels) == 22.0


def test_health_without_pipelines(api_client: TestClient) -> None:
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "pipelines": {}}


def test_lifespan_starts_and_stops_supervisor(registry: MetricsRegistry, make_settings) -> None:
    gate = threading.Event()
    built = {}

    def factory(settings: Settings, injected: MetricsRegistry) -> Supervisor:
        built["registry"] = injected
        loop = PipelineLoop("meter", lambda: gate.wait(1.0), on_stop=gate.set)
        built["supervisor"] = Supervisor([loop])
        return built["supervisor"]

    app = create_app(
        registry=registry,
        settings=make_settings(pipelines_enabled=True),
        supervisor_factory=factory,
    )

    with TestClient(app) as client:
        assert built["registry"] is registry
        payload = client.get("/health").json()
        assert payload["pipelines"] == {"meter": True}

    assert built["supervisor"].status() == {"meter": False}
