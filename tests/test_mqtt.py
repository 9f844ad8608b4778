from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List, Optional, Tuple

import paho.mqtt.client as mqtt
import pytest

from services.mqtt import MqttPublisher, MqttSubscriber, PublishError


class FakeInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc
        self.waited = False

    def wait_for_publish(self, timeout: Optional[float] = None) -> None:
        self.waited = True


class FakeClient:
    def __init__(self, publish_rc: int = mqtt.MQTT_ERR_SUCCESS, refuse: bool = False) -> None:
        self.publish_rc = publish_rc
        self.refuse = refuse
        self.published: List[Tuple[str, Any, int, bool]] = []
        self.subscribed: List[str] = []
        self.events: List[str] = []
        self.incoming: List[SimpleNamespace] = []
        self.on_connect = None
        self.on_message = None

    def connect(self, host: str, port: int) -> int:
        if self.refuse:
            raise ConnectionRefusedError("refused")
        self.events.append(f"connect {host}:{port}")
        return mqtt.MQTT_ERR_SUCCESS

    def loop_start(self) -> None:
        self.events.append("loop_start")

    def loop_stop(self) -> None:
        self.events.append("loop_stop")

    def disconnect(self) -> None:
        self.events.append("disconnect")

    def publish(self, topic: str, payload: Any, qos: int = 0, retain: bool = False) -> FakeInfo:
        self.published.append((topic, payload, qos, retain))
        return FakeInfo(self.publish_rc)

    def subscribe(self, topic: str) -> None:
        self.subscribed.append(topic)

    def loop_forever(self) -> None:
        self.on_connect(self, None, {}, SimpleNamespace(is_failure=False), None)
        for message in self.incoming:
            self.on_message(self, None, message)


def test_session_publishes_unretained_qos0_and_disconnects() -> None:
    client = FakeClient()
    publisher = MqttPublisher("broker", 1884, client_factory=lambda: client)

    with publisher.session() as session:
        session.publish("rtlamr/1/message_type", "scm")

    assert client.published == [("rtlamr/1/message_type", "scm", 0, False)]
    assert client.events == ["connect broker:1884", "loop_start", "disconnect", "loop_stop"]


def test_session_connect_failure_raises_publish_error() -> None:
    publisher = MqttPublisher("broker", client_factory=lambda: FakeClient(refuse=True))

    with pytest.raises(PublishError):
        with publisher.session():
            pass


def test_rejected_publish_raises_and_still_disconnects() -> None:
    client = FakeClient(publish_rc=mqtt.MQTT_ERR_NO_CONN)
    publisher = MqttPublisher("broker", client_factory=lambda: client)

    with pytest.raises(PublishError):
        with publisher.session() as session:
            session.publish("rtlamr/1/consumption", "5")

    assert client.events[-2:] == ["disconnect", "loop_stop"]


def test_subscriber_subscribes_on_connect_and_dispatches_messages() -> None:
    client = FakeClient()
    client.incoming = [
        SimpleNamespace(topic="rtl_433/X/events", payload=b'{"id": 1}'),
        SimpleNamespace(topic="rtl_433/Y/events", payload=b'{"id": 2}'),
    ]
    received: List[Tuple[str, bytes]] = []
    subscriber = MqttSubscriber(
        "broker",
        "rtl_433/+/events",
        lambda topic, payload: received.append((topic, payload)),
        client_factory=lambda: client,
    )

    subscriber.run()

    assert client.subscribed == ["rtl_433/+/events"]
    assert received == [
        ("rtl_433/X/events", b'{"id": 1}'),
        ("rtl_433/Y/events", b'{"id": 2}'),
    ]


def test_subscriber_does_not_subscribe_when_connection_refused() -> None:
    client = FakeClient()
    subscriber = MqttSubscriber("broker", "rtl_433/+/events", lambda *_: None, client_factory=lambda: client)
    subscriber._on_connect(client, None, {}, SimpleNamespace(is_failure=True), None)

    assert client.subscribed == []


def test_subscriber_connect_failure_raises() -> None:
    subscriber = MqttSubscriber(
        "broker", "rtl_433/+/events", lambda *_: None, client_factory=lambda: FakeClient(refuse=True)
    )

    with pytest.raises(PublishError):
        subscriber.run()


def test_subscriber_disconnects_when_loop_fails() -> None:
    class FailingLoopClient(FakeClient):
        def loop_forever(self) -> None:
            raise RuntimeError("handler blew up")

    client = FailingLoopClient()
    subscriber = MqttSubscriber("broker", "rtl_433/+/events", lambda *_: None, client_factory=lambda: client)

    with pytest.raises(RuntimeError, match="handler blew up"):
        subscriber.run()

    assert "disconnect" in client.events
    assert subscriber._client is None


def test_subscriber_failed_disconnect_keeps_original_error() -> None:
    class BrokenClient(FakeClient):
        def loop_forever(self) -> None:
            raise RuntimeError("handler blew up")

        def disconnect(self) -> None:
            raise OSError("socket already gone")

    subscriber = MqttSubscriber(
        "broker", "rtl_433/+/events", lambda *_: None, client_factory=lambda: BrokenClient()
    )

    with pytest.raises(RuntimeError, match="handler blew up"):
        subscriber.run()
