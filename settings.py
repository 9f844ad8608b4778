from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_RTL_HOST_ENV = "RTL_HOST"
_RTL_PORT_ENV = "RTL_PORT"
_MQTT_HOST_ENV = "MQTT_HOST"
_MQTT_PORT_ENV = "MQTT_PORT"
_METER_IDS_ENV = "METER_IDS"
_SENSOR_TIME_ENV = "SENSOR_TIME"
_METER_TIME_ENV = "METER_TIME"
_RTLAMR_PATH_ENV = "RTLAMR_PATH"
_RTL433_PATH_ENV = "RTL433_PATH"
_R900_CANONICAL_ENV = "R900_CANONICAL_TOPIC"
_BACKOFF_ENV = "RETRY_BACKOFF_SECONDS"
_PIPELINES_ENV = "PIPELINES_ENABLED"
_METRICS_HOST_ENV = "METRICS_HOST"
_METRICS_PORT_ENV = "METRICS_PORT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    rtl_host: str
    rtl_port: int
    mqtt_host: str
    mqtt_port: int
    meter_ids: Optional[str]
    sensor_time: int
    meter_time: int
    rtlamr_path: str
    rtl433_path: str
    r900_canonical_topic: bool
    retry_backoff: float
    pipelines_enabled: bool
    metrics_host: str
    metrics_port: int
    log_level: str

    @property
    def rtl_address(self) -> str:
        return f"{self.rtl_host}:{self.rtl_port}"

    @property
    def mqtt_address(self) -> str:
        return f"{self.mqtt_host}:{self.mqtt_port}"


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        rtl_host=_read_str_env(_RTL_HOST_ENV, "127.0.0.1"),
        rtl_port=_read_positive_int(_RTL_PORT_ENV, 1234),
        mqtt_host=_read_str_env(_MQTT_HOST_ENV, "localhost"),
        mqtt_port=_read_positive_int(_MQTT_PORT_ENV, 1883),
        meter_ids=_read_optional_env(_METER_IDS_ENV, None),
        sensor_time=_read_positive_int(_SENSOR_TIME_ENV, 30),
        meter_time=_read_positive_int(_METER_TIME_ENV, 30),
        rtlamr_path=_read_str_env(_RTLAMR_PATH_ENV, "rtlamr"),
        rtl433_path=_read_str_env(_RTL433_PATH_ENV, "rtl_433"),
        r900_canonical_topic=_read_bool(_R900_CANONICAL_ENV, False),
        retry_backoff=_read_positive_float(_BACKOFF_ENV, 5.0),
        pipelines_enabled=_read_bool(_PIPELINES_ENV, True),
        metrics_host=_read_str_env(_METRICS_HOST_ENV, "0.0.0.0"),
        metrics_port=_read_positive_int(_METRICS_PORT_ENV, 9100),
        log_level=_read_log_level("INFO"),
    )
