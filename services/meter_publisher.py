"""Classification of rtlamr records and their fan-out to MQTT and metrics."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Tuple, Type

from pydantic import ValidationError

from metrics.registry import METER_CONSUMPTION, MetricsRegistry
from models.messages import MeterMessage, R900Message, ScmMessage, ScmPlusMessage
from models.records import MeterReading
from services.meter_collector import RtlamrCollector
from services.mqtt import MessagePublisher, MqttPublisher

logger = logging.getLogger(__name__)

TOPIC_PREFIX = "rtlamr"

_VARIANTS: Dict[str, Tuple[str, Type[MeterMessage]]] = {
    "SCM": ("scm", ScmMessage),
    "SCM+": ("scm+", ScmPlusMessage),
    "R900": ("r900", R900Message),
}


class UnrecognizedReadingError(ValueError):
    """A record that does not match any supported meter protocol."""

    def __init__(self, reason: str, detail: str) -> None:
        super().__init__(detail)
        self.reason = reason


def classify(record: Any) -> MeterReading:
    """Map a raw rtlamr record onto a :class:`MeterReading`."""
    if not isinstance(record, dict):
        raise UnrecognizedReadingError("invalid_message", "record is not a JSON object")

    discriminator = record.get("Type")
    variant = _VARIANTS.get(discriminator) if isinstance(discriminator, str) else None
    if variant is None:
        raise UnrecognizedReadingError(
            "unknown_type", f"unsupported message type {discriminator!r}"
        )

    message_type, schema = variant
    try:
        message = schema.model_validate(record.get("Message"))
    except ValidationError as exc:
        raise UnrecognizedReadingError(
            "invalid_message", f"{discriminator} message failed validation: {exc.error_count()} error(s)"
        ) from exc

    return MeterReading(
        message_type=message_type,
        meter_id=message.meter_id,
        meter_type=message.meter_type,
        consumption=message.consumption,
    )


class MeterPublisher:
    """Writes the consumption gauge and the ``rtlamr/<id>/...`` topics."""

    def __init__(self, registry: MetricsRegistry, canonical_r900_topic: bool = False) -> None:
        self.registry = registry
        self.canonical_r900_topic = canonical_r900_topic

    def classify_records(self, records: Iterable[Any]) -> List[MeterReading]:
        """Classify records in order; unrecognized ones are counted and skipped."""
        readings: List[MeterReading] = []
        for record in records:
            try:
                readings.append(classify(record))
            except UnrecognizedReadingError as exc:
                self.registry.record_drop("meter", exc.reason)
                logger.debug(
                    "Skipping meter record: %s", exc, extra={"pipeline": "meter", "reason": exc.reason}
                )
        return readings

    def publish(self, records: Iterable[Any], client: MessagePublisher) -> int:
        """Classify and publish every record; return how many were published.

        Broker failures are not handled here.
        """
        readings = self.classify_records(records)
        self.publish_readings(readings, client)
        return len(readings)

    def publish_readings(self, readings: Iterable[MeterReading], client: MessagePublisher) -> None:
        for reading in readings:
            self.publish_reading(reading, client)

    def publish_reading(self, reading: MeterReading, client: MessagePublisher) -> None:
        self.registry.set(
            METER_CONSUMPTION,
            {
                "message_type": reading.message_type,
                "type": reading.meter_type,
                "id": reading.meter_id,
            },
            reading.consumption,
        )

        base = f"{TOPIC_PREFIX}/{reading.meter_id}"
        client.publish(f"{base}/message_type", reading.message_type)
        if reading.meter_type is not None:
            client.publish(f"{base}/type", reading.meter_type)
        client.publish(self.consumption_topic(reading), str(reading.consumption))
        logger.debug(
            "Published meter reading",
            extra={"meter_id": reading.meter_id, "message_type": reading.message_type},
        )

    def consumption_topic(self, reading: MeterReading) -> str:
        topic = f"{TOPIC_PREFIX}/{reading.meter_id}/consumption"
        # Existing R900 subscribers listen on the trailing-slash topic.
        if reading.message_type == "r900" and not self.canonical_r900_topic:
            return f"{topic}/"
        return topic


class MeterPipeline:
    """One meter iteration: collect a window, then publish what was decoded."""

    def __init__(
        self,
        collector: RtlamrCollector,
        publisher: MeterPublisher,
        mqtt: MqttPublisher,
    ) -> None:
        self.collector = collector
        self.publisher = publisher
        self.mqtt = mqtt

    def run_once(self) -> int:
        readings = self.publisher.classify_records(self.collector.collect())
        if not readings:
            return 0
        with self.mqtt.session() as session:
            self.publisher.publish_readings(readings, session)
        published = len(readings)
        logger.info(
            "Published meter readings",
            extra={"pipeline": "meter", "reading_count": published},
        )
        return published
