"""Thin paho-mqtt adapters used by the pipelines."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, Protocol, Union

import paho.mqtt.client as mqtt
from paho.mqtt.enums import CallbackAPIVersion

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, int, float]
ClientFactory = Callable[[], Any]
MessageHandler = Callable[[str, bytes], None]


class PublishError(RuntimeError):
    """Raised when the broker cannot be reached or refuses a publish."""


class MessagePublisher(Protocol):
    def publish(self, topic: str, payload: Payload) -> None: ...


def _default_client() -> mqtt.Client:
    return mqtt.Client(CallbackAPIVersion.VERSION2)


class PublishSession:
    """An open broker connection that publishes unretained QoS 0 messages."""

    def __init__(self, client: Any, timeout: float) -> None:
        self._client = client
        self._timeout = timeout

    def publish(self, topic: str, payload: Payload) -> None:
        info = self._client.publish(topic, payload, qos=0, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(
                f"Publish to {topic!r} failed: {mqtt.error_string(info.rc)}"
            )
        try:
            info.wait_for_publish(timeout=self._timeout)
        except (RuntimeError, ValueError) as exc:
            raise PublishError(f"Publish to {topic!r} failed: {exc}") from exc


class MqttPublisher:
    """Opens a short-lived broker connection per pipeline iteration."""

    def __init__(
        self,
        host: str,
        port: int = 1883,
        client_factory: Optional[ClientFactory] = None,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self._client_factory = client_factory or _default_client
        self._timeout = timeout

    @contextmanager
    def session(self) -> Iterator[PublishSession]:
        client = self._client_factory()
        try:
            client.connect(self.host, self.port)
        except OSError as exc:
            raise PublishError(
                f"Could not connect to MQTT broker at {self.host}:{self.port}: {exc}"
            ) from exc
        client.loop_start()
        try:
            yield PublishSession(client, self._timeout)
        finally:
            client.disconnect()
            client.loop_stop()


class MqttSubscriber:
    """Standing subscription that hands every message to ``handler``.

    ``run`` blocks until ``stop`` is called. Subscriptions are renewed on every
    (re)connect so a broker restart does not silently end the stream.
    """

    def __init__(
        self,
        host: str,
        topic: str,
        handler: MessageHandler,
        port: int = 1883,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.topic = topic
        self._handler = handler
        self._client_factory = client_factory or _default_client
        self._client: Any = None

    def run(self) -> None:
        client = self._client_factory()
        client.on_connect = self._on_connect
        client.on_message = self._on_message
        self._client = client
        try:
            client.connect(self.host, self.port)
        except OSError as exc:
            raise PublishError(
                f"Could not connect to MQTT broker at {self.host}:{self.port}: {exc}"
            ) from exc
        try:
            client.loop_forever()
        except Exception:
            self._disconnect_after_failure(client)
            raise
        finally:
            self._client = None

    def stop(self) -> None:
        client = self._client
        if client is not None:
            client.disconnect()

    def _disconnect_after_failure(self, client: Any) -> None:
        try:
            client.disconnect()
        except OSError:
            logger.warning(
                "Could not close MQTT connection after a failed subscription",
                extra={"topic": self.topic},
                exc_info=True,
            )

    def _on_connect(self, client: Any, _userdata: Any, _flags: Any, reason_code: Any, _properties: Any = None) -> None:
        if getattr(reason_code, "is_failure", False):
            logger.warning(
                "MQTT connection refused",
                extra={"topic": self.topic, "reason": str(reason_code)},
            )
            return
        client.subscribe(self.topic)
        logger.info("Subscribed to sensor events", extra={"topic": self.topic})

    def _on_message(self, _client: Any, _userdata: Any, message: Any) -> None:
        self._handler(message.topic, message.payload)
