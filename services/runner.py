"""Supervision of the long-running collection and subscription loops."""

from __future__ import annotations

import logging
import threading
from collections import deque
from contextlib import contextmanager
from typing import Callable, Deque, Dict, Iterator, List, Optional

from metrics.registry import MetricsRegistry
from services.meter_collector import RtlamrCollector
from services.meter_publisher import MeterPipeline, MeterPublisher
from services.mqtt import MqttPublisher, MqttSubscriber
from services.sensor_bridge import SENSOR_EVENTS_TOPIC, SensorBridge
from services.sensor_collector import Rtl433Collector
from settings import Settings

logger = logging.getLogger(__name__)


class RadioLease:
    """Hands the rtl_tcp radio to one collector at a time, in arrival order.

    rtl_tcp serves a single client, so the meter and sensor windows must not
    overlap even though they run on separate loops.
    """

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._waiting: Deque[object] = deque()

    @contextmanager
    def hold(self) -> Iterator[None]:
        token = object()
        with self._condition:
            self._waiting.append(token)
            self._condition.wait_for(lambda: self._waiting[0] is token)
        try:
            yield
        finally:
            with self._condition:
                self._waiting.popleft()
                self._condition.notify_all()

    def wrap(self, step: Callable[[], object]) -> Callable[[], object]:
        def exclusive_step() -> object:
            with self.hold():
                return step()

        return exclusive_step


class PipelineLoop:
    """Runs ``step`` repeatedly on its own thread until stopped.

    A failing iteration is logged and followed by a ``backoff`` pause; the
    next iteration starts from scratch.
    """

    def __init__(
        self,
        name: str,
        step: Callable[[], object],
        backoff: float = 5.0,
        on_stop: Optional[Callable[[], None]] = None,
    ) -> None:
        self.name = name
        self.backoff = backoff
        self.iterations = 0
        self.failures = 0
        self._step = step
        self._on_stop = on_stop
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def run(self) -> None:
        logger.info("Pipeline started", extra={"pipeline": self.name})
        while not self._stop_event.is_set():
            try:
                self._step()
            except Exception:
                self.failures += 1
                logger.exception(
                    "Pipeline iteration failed",
                    extra={"pipeline": self.name, "backoff_s": self.backoff},
                )
                self._stop_event.wait(self.backoff)
            else:
                self.iterations += 1
        logger.info("Pipeline stopped", extra={"pipeline": self.name})

    def start(self) -> threading.Thread:
        if self.is_alive:
            raise RuntimeError(f"Pipeline {self.name!r} is already running.")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name=f"pipeline-{self.name}", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._on_stop is not None:
            self._on_stop()
        if self._thread is not None:
            self._thread.join(timeout)


class Supervisor:
    """Owns the independent pipeline loops for the lifetime of the process."""

    def __init__(self, loops: List[PipelineLoop]) -> None:
        self.loops = loops

    def start(self) -> None:
        for loop in self.loops:
            loop.start()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        for loop in self.loops:
            loop.stop(timeout)

    def status(self) -> Dict[str, bool]:
        return {loop.name: loop.is_alive for loop in self.loops}


def build_supervisor(settings: Settings, registry: MetricsRegistry) -> Supervisor:
    """Wire the meter, sensor collection and sensor subscription loops."""
    meter_pipeline = MeterPipeline(
        collector=RtlamrCollector(
            server=settings.rtl_address,
            duration=settings.meter_time,
            meter_ids=settings.meter_ids,
            binary=settings.rtlamr_path,
            registry=registry,
        ),
        publisher=MeterPublisher(registry, canonical_r900_topic=settings.r900_canonical_topic),
        mqtt=MqttPublisher(settings.mqtt_host, settings.mqtt_port),
    )
    sensor_collector = Rtl433Collector(
        server=settings.rtl_address,
        broker=settings.mqtt_address,
        duration=settings.sensor_time,
        binary=settings.rtl433_path,
    )
    radio = RadioLease()
    bridge = SensorBridge(registry)
    subscriber = MqttSubscriber(
        settings.mqtt_host,
        SENSOR_EVENTS_TOPIC,
        bridge.handle_message,
        port=settings.mqtt_port,
    )

    return Supervisor(
        [
            PipelineLoop(
                "meter", radio.wrap(meter_pipeline.run_once), backoff=settings.retry_backoff
            ),
            PipelineLoop(
                "sensor", radio.wrap(sensor_collector.run), backoff=settings.retry_backoff
            ),
            PipelineLoop(
                "subscription",
                subscriber.run,
                backoff=settings.retry_backoff,
                on_stop=subscriber.stop,
            ),
        ]
    )
