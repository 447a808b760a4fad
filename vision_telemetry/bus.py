"""Key-value telemetry bus the sensor publishes into.

Keys are ``"<table>/<entry>"`` strings. Values are float arrays, scalars or
strings; every stored value carries the microsecond timestamp at which the
bus received it.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

import paho.mqtt.client as mqtt

from .types import RawSample

log = logging.getLogger(__name__)


def now_us() -> int:
    return time.time_ns() // 1000


class TelemetryBus(ABC):
    @abstractmethod
    def read_array(self, key: str) -> RawSample: ...

    @abstractmethod
    def read_scalar(self, key: str, default: float = 0.0) -> float: ...

    @abstractmethod
    def read_string(self, key: str, default: str = "") -> str: ...

    @abstractmethod
    def write_array(self, key: str, values: Sequence[float]) -> None: ...

    @abstractmethod
    def write_scalar(self, key: str, value: float) -> None: ...

    @abstractmethod
    def write_string(self, key: str, value: str) -> None: ...

    @abstractmethod
    def contains(self, key: str) -> bool: ...

    def flush(self) -> None:
        return None

    def close(self) -> None:
        return None


class InMemoryBus(TelemetryBus):
    """Thread-safe dict-backed bus for dry runs, replay and tests."""

    def __init__(self):
        self._values: dict[str, tuple[Any, int]] = {}
        self._lock = threading.Lock()

    def _store(self, key: str, value: Any, timestamp_us: Optional[int] = None) -> None:
        ts = now_us() if timestamp_us is None else int(timestamp_us)
        with self._lock:
            self._values[key] = (value, ts)

    def _load(self, key: str) -> Optional[tuple[Any, int]]:
        with self._lock:
            return self._values.get(key)

    def read_array(self, key: str) -> RawSample:
        item = self._load(key)
        if item is None:
            return RawSample()
        value, ts = item
        if isinstance(value, tuple):
            return RawSample(value, ts)
        if isinstance(value, (int, float)):
            return RawSample((float(value),), ts)
        return RawSample((), ts)

    def read_scalar(self, key: str, default: float = 0.0) -> float:
        item = self._load(key)
        if item is None:
            return default
        value = item[0]
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, tuple) and value:
            return float(value[0])
        return default

    def read_string(self, key: str, default: str = "") -> str:
        item = self._load(key)
        if item is None or not isinstance(item[0], str):
            return default
        return item[0]

    def write_array(self, key: str, values: Sequence[float], timestamp_us: Optional[int] = None) -> None:
        self._store(key, tuple(float(v) for v in values), timestamp_us)

    def write_scalar(self, key: str, value: float, timestamp_us: Optional[int] = None) -> None:
        self._store(key, float(value), timestamp_us)

    def write_string(self, key: str, value: str, timestamp_us: Optional[int] = None) -> None:
        self._store(key, str(value), timestamp_us)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._values)


def _coerce_payload(value: Any) -> Any:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, (int, float)) for v in value):
        return tuple(float(v) for v in value)
    raise ValueError(f"unsupported payload type: {type(value).__name__}")


class MqttTelemetryBus(InMemoryBus):
    """
    Bus backed by an MQTT broker.

    Each key maps to the topic ``<topic_root>/<key>`` carrying a retained JSON
    payload (number, string or list of numbers). Incoming messages refresh a
    local cache so reads never block on the network.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1883,
        topic_root: str = "nt",
        client_id: str = "vision_telemetry",
        keepalive: int = 60,
        client: Optional[Any] = None,
    ):
        super().__init__()
        self.host = host
        self.port = port
        self.topic_root = topic_root.strip("/")
        self.keepalive = keepalive
        self.connected = threading.Event()
        self.client = client or mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

    def topic_for(self, key: str) -> str:
        return f"{self.topic_root}/{key.strip('/')}"

    def key_for(self, topic: str) -> Optional[str]:
        prefix = self.topic_root + "/"
        if not topic.startswith(prefix):
            return None
        return topic[len(prefix):]

    def start(self, timeout: float = 5.0) -> None:
        log.info("connecting to broker %s:%d", self.host, self.port)
        self.client.connect(self.host, self.port, self.keepalive)
        self.client.loop_start()
        if not self.connected.wait(timeout):
            self.client.loop_stop()
            raise RuntimeError(f"MQTT broker {self.host}:{self.port} did not accept the connection")

    def close(self) -> None:
        self.client.loop_stop()
        self.client.disconnect()
        self.connected.clear()

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if getattr(reason_code, "is_failure", False):
            log.error("broker refused connection: %s", reason_code)
            return
        client.subscribe(f"{self.topic_root}/#")
        self.connected.set()
        log.info("connected, subscribed to %s/#", self.topic_root)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self.connected.clear()
        log.warning("disconnected from broker: %s", reason_code)

    def _on_message(self, client, userdata, message):
        key = self.key_for(message.topic)
        if key is None:
            return
        try:
            value = _coerce_payload(json.loads(message.payload))
        except ValueError as e:
            log.warning("ignoring malformed payload on %s: %s", message.topic, e)
            return
        self._store(key, value)

    def _publish(self, key: str, value: Any) -> None:
        self.client.publish(self.topic_for(key), json.dumps(value), qos=0, retain=True)

    def write_array(self, key: str, values: Sequence[float], timestamp_us: Optional[int] = None) -> None:
        super().write_array(key, values, timestamp_us)
        self._publish(key, [float(v) for v in values])

    def write_scalar(self, key: str, value: float, timestamp_us: Optional[int] = None) -> None:
        super().write_scalar(key, value, timestamp_us)
        self._publish(key, float(value))

    def write_string(self, key: str, value: str, timestamp_us: Optional[int] = None) -> None:
        super().write_string(key, value, timestamp_us)
        self._publish(key, str(value))
