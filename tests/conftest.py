from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union

import pytest
from prometheus_client.parser import text_string_to_metric_families

from metrics.registry import MetricsRegistry
from settings import Settings


class RecordingPublisher:
    """Stands in for a broker session; records every publish in order."""

    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def publish(self, topic: str, payload) -> None:
        self.messages.append((topic, payload))


@pytest.fixture()
def registry() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture()
def recorder() -> RecordingPublisher:
    return RecordingPublisher()


def build_settings(**overrides) -> Settings:
    values = dict(
        rtl_host="radio",
        rtl_port=1234,
        mqtt_host="broker",
        mqtt_port=1883,
        meter_ids=None,
        sensor_time=30,
        meter_time=30,
        rtlamr_path="rtlamr",
        rtl433_path="rtl_433",
        r900_canonical_topic=False,
        retry_backoff=0.01,
        pipelines_enabled=False,
        metrics_host="127.0.0.1",
        metrics_port=9100,
        log_level="INFO",
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def make_settings():
    return build_settings


def exposed_value(body: Union[bytes, str], name: str, labels: Dict[str, str]) -> Optional[float]:
    """Find one sample in exposition text, whatever order its labels render in."""
    text = body.decode("utf-8") if isinstance(body, bytes) else body
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if sample.name == name and sample.labels == labels:
                return sample.value
    return None


@pytest.fixture()
def exposed():
    return exposed_value
