"""Process-wide metric state rendered on the exposition endpoint."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

METER_CONSUMPTION = "meter_consumption"
RTL433_TEMPERATURE = "rtl433_temperature"
RTL433_HUMIDITY = "rtl433_humidity"
RTL433_BATTERY = "rtl433_battery"
DROPPED_RECORDS = "rtl_bridge_dropped_records"

_GAUGE_DEFINITIONS: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    RTL433_TEMPERATURE: ("433 mhz device temperature", ("id", "model")),
    RTL433_HUMIDITY: ("433 mhz device humidity", ("id", "model")),
    RTL433_BATTERY: ("433 mhz device battery status", ("id", "model")),
    METER_CONSUMPTION: ("Electric meter consumption", ("message_type", "type", "id")),
}


def _label_value(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


class MetricsRegistry:
    """Owns the bridge gauges and renders them in the Prometheus text format.

    Every gauge is registered upfront so concurrent writers never race on
    first use. Label names a gauge declares but a write omits are rendered as
    empty strings, which scrapers treat the same as an absent label.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self._registry = registry if registry is not None else CollectorRegistry()
        self._gauges: Dict[str, Gauge] = {}
        self._labelnames: Dict[str, Tuple[str, ...]] = {}
        for name, (documentation, labelnames) in _GAUGE_DEFINITIONS.items():
            self._gauges[name] = Gauge(
                name, documentation, labelnames=labelnames, registry=self._registry
            )
            self._labelnames[name] = labelnames
        self._dropped = Counter(
            DROPPED_RECORDS,
            "Records ignored because they could not be parsed or classified",
            labelnames=("pipeline", "reason"),
            registry=self._registry,
        )

    @property
    def metric_names(self) -> Tuple[str, ...]:
        return tuple(self._gauges)

    def set(self, metric_name: str, labels: Mapping[str, Any], value: float) -> None:
        """Overwrite the sample identified by ``metric_name`` and ``labels``."""
        gauge = self._gauges.get(metric_name)
        if gauge is None:
            raise KeyError(f"Unknown metric {metric_name!r}.")
        labelnames = self._labelnames[metric_name]
        unexpected = sorted(set(labels) - set(labelnames))
        if unexpected:
            raise ValueError(
                f"Unexpected labels for {metric_name}: {', '.join(unexpected)}"
            )
        values = {name: _label_value(labels.get(name)) for name in labelnames}
        gauge.labels(**values).set(value)

    def record_drop(self, pipeline: str, reason: str) -> None:
        self._dropped.labels(pipeline=pipeline, reason=reason).inc()

    def get_value(self, metric_name: str, labels: Mapping[str, Any]) -> Optional[float]:
        """Return the current sample value, or ``None`` if never written."""
        labelnames = self._labelnames.get(metric_name)
        if labelnames is None:
            raise KeyError(f"Unknown metric {metric_name!r}.")
        values = {name: _label_value(labels.get(name)) for name in labelnames}
        return self._registry.get_sample_value(metric_name, values)

    def dropped_count(self, pipeline: str, reason: str) -> float:
        value = self._registry.get_sample_value(
            f"{DROPPED_RECORDS}_total", {"pipeline": pipeline, "reason": reason}
        )
        return value or 0.0

    def export(self) -> bytes:
        return generate_latest(self._registry)
