"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class MeterReading:
    """A classified utility meter transmission."""

    message_type: str
    meter_id: str
    consumption: int | float
    meter_type: Optional[str] = None


@dataclass(slots=True)
class SensorEvent:
    """Values extracted from one rtl_433 event payload."""

    model: str
    sensor_id: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    battery: Optional[float] = None
