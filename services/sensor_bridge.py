"""Republishes rtl_433 MQTT events as gauges."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from metrics.registry import (
    RTL433_BATTERY,
    RTL433_HUMIDITY,
    RTL433_TEMPERATURE,
    MetricsRegistry,
)
from models.records import SensorEvent

logger = logging.getLogger(__name__)

SENSOR_EVENTS_TOPIC = "rtl_433/+/events"


def _as_number(value: Any) -> Optional[float]:
    # rtl_433 reports flags as 0/1; a literal false means the field is absent.
    if value is None or value is False:
        return None
    if value is True:
        return 1.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_label(value: Any) -> str:
    return "" if value is None else str(value)


def extract_event(payload: dict) -> SensorEvent:
    return SensorEvent(
        model=_as_label(payload.get("model")),
        sensor_id=_as_label(payload.get("id")),
        temperature=_as_number(payload.get("temperature_C")),
        humidity=_as_number(payload.get("humidity")),
        battery=_as_number(payload.get("battery_ok")),
    )


class SensorBridge:
    """Handles one subscribed message at a time."""

    def __init__(self, registry: MetricsRegistry) -> None:
        self.registry = registry

    def handle_message(self, topic: str, payload: Union[bytes, str]) -> Optional[SensorEvent]:
        """Write the gauges for one event; return ``None`` if it was dropped."""
        logger.debug("Captured event: %r", payload, extra={"topic": topic})
        try:
            data = json.loads(payload)
        except (ValueError, RecursionError):
            # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting recurses.
            data = None
        if not isinstance(data, dict):
            self.registry.record_drop("sensor", "malformed_json")
            logger.warning(
                "Dropping malformed sensor payload",
                extra={"topic": topic, "reason": "malformed_json"},
            )
            return None

        event = extract_event(data)
        self.publish_event(event, topic=topic)
        return event

    def publish_event(self, event: SensorEvent, topic: Optional[str] = None) -> None:
        labels = {"id": event.sensor_id, "model": event.model}

        if event.temperature is None:
            self.registry.record_drop("sensor", "missing_temperature")
            logger.debug(
                "Sensor event without temperature",
                extra={"topic": topic, "reason": "missing_temperature"},
            )
        else:
            self.registry.set(RTL433_TEMPERATURE, labels, event.temperature)

        if event.humidity is not None:
            self.registry.set(RTL433_HUMIDITY, labels, event.humidity)

        if event.battery is not None:
            self.registry.set(RTL433_BATTERY, labels, event.battery)
