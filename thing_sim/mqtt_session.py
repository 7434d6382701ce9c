# thing_sim/mqtt_session.py

import json
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import paho.mqtt.client as mqtt

from .errors import TransportError
from .payload import encode


def _topic(base: str, suffix: str) -> str:
    base = base.rstrip("/")
    suffix = suffix.lstrip("/")
    return f"{base}/{suffix}" if suffix else base


def parse_connection_string(conn: str) -> Dict[str, str]:
    """Split ``HostName=...;DeviceId=...;Port=...`` into a dict."""
    parts: Dict[str, str] = {}
    for item in conn.split(";"):
        item = item.strip()
        if not item:
            continue
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"malformed connection string segment: {item!r}")
        parts[key.strip()] = value.strip()
    if not parts.get("HostName") or not parts.get("DeviceId"):
        raise ValueError("connection string needs HostName and DeviceId")
    return parts


@dataclass(frozen=True)
class Message:
    topic: str
    payload: bytes
    mid: int = 0
    qos: int = 0

    def text(self) -> str:
        return self.payload.decode("utf-8", errors="ignore")


@dataclass(frozen=True)
class MethodRequest:
    name: str
    request_id: str
    payload: bytes = b""


@dataclass(frozen=True)
class MethodResponse:
    payload: bytes
    status: int


class MqttSession:
    """Device side of the management channel, carried over MQTT.

    Topics, all under ``<base>/<device_id>/``:
      telemetry                   device -> service events
      messages/#                  service -> device messages (queued)
      methods/<name>/<rid>        command invocation
      methods/res/<status>/<rid>  command response
      desired, desired/patch      desired configuration (full / delta)
      reported                    reported state (retained)
      status                      online/offline (last will)
    """

    def __init__(
        self,
        host: str,
        port: int,
        device_id: str,
        base_topic: str,
        keepalive_sec: int = 30,
        desired_wait_sec: float = 2.0,
        logger: Callable[[str], None] = print,
    ):
        self._host = host
        self._port = port
        self._keepalive = keepalive_sec
        self.device_id = device_id
        self._root = _topic(base_topic, device_id)
        self._desired_wait = desired_wait_sec
        self._log = logger

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"{device_id}-device",
            manual_ack=True,
        )
        self._client.enable_logger()
        self._client.will_set(self.topic("status"), payload="offline", retain=True)
        self._client.on_connect = self._on_connect
        self._client.on_message = self._on_message
        self._client.on_disconnect = self._on_disconnect
        self._client.reconnect_delay_set(min_delay=1, max_delay=10)

        self._on_command: Optional[Callable[[MethodRequest], MethodResponse]] = None
        self._on_desired: Optional[Callable[[dict], None]] = None

        self._inbox: "queue.Queue[Message]" = queue.Queue()
        self._desired: Dict[str, object] = {}
        self._desired_seen = threading.Event()
        self._reported: Dict[str, object] = {}

        self._opened = False
        self._lock = threading.Lock()

    @classmethod
    def from_connection_string(cls, conn: str, base_topic: str, port: int = 1883, **kwargs) -> "MqttSession":
        parts = parse_connection_string(conn)
        return cls(
            host=parts["HostName"],
            port=int(parts.get("Port", port)),
            device_id=parts["DeviceId"],
            base_topic=base_topic,
            **kwargs,
        )

    def topic(self, suffix: str) -> str:
        return _topic(self._root, suffix)

    def set_command_handler(self, handler: Callable[[MethodRequest], MethodResponse]) -> None:
        self._on_command = handler

    def set_config_update_handler(self, handler: Callable[[dict], None]) -> None:
        self._on_desired = handler

    def open(self) -> None:
        with self._lock:
            if self._opened:
                return
            try:
                self._client.connect(self._host, self._port, self._keepalive)
            except OSError as e:
                raise TransportError(f"cannot connect to broker {self._host}:{self._port}: {e}") from e
            self._client.loop_start()
            self._opened = True

    def close(self) -> None:
        with self._lock:
            if not self._opened:
                return
            self._opened = False
            self._client.publish(self.topic("status"), payload="offline", retain=True)

        # Outside the lock: loop_stop joins the network thread, whose callbacks take it.
        try:
            self._client.disconnect()
        finally:
            self._client.loop_stop()
        self._log("[MQTT] Closed")

    def publish(self, body: bytes) -> None:
        with self._lock:
            if not self._opened:
                raise TransportError("session is not open")
            info = self._client.publish(self.topic("telemetry"), body, qos=1, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"publish failed rc={info.rc}")

    def receive_next(self, timeout: Optional[float] = None) -> Optional[Message]:
        try:
            return self._inbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def acknowledge(self, message: Message) -> None:
        if message.qos > 0:
            self._client.ack(message.mid, message.qos)

    def get_desired_config(self) -> dict:
        # The retained desired document arrives shortly after subscribe.
        self._desired_seen.wait(timeout=self._desired_wait)
        with self._lock:
            return dict(self._desired)

    def report_state(self, props: dict) -> None:
        with self._lock:
            self._reported.update(props)
            body = encode(self._reported)
            if not self._opened:
                raise TransportError("session is not open")
            info = self._client.publish(self.topic("reported"), body, qos=1, retain=True)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"report failed rc={info.rc}")

    def _on_connect(self, _client, _userdata, _flags, reason_code, _properties=None):
        if reason_code.is_failure:
            self._log(f"[MQTT] Connect failed rc={reason_code}")
            return
        self._log(f"[MQTT] Connected as {self.device_id}")
        self._client.publish(self.topic("status"), payload="online", retain=True)
        self._client.subscribe(
            [
                (self.topic("messages/#"), 1),
                (self.topic("methods/+/+"), 0),
                (self.topic("desired"), 1),
                (self.topic("desired/patch"), 1),
            ]
        )

    def _on_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None):
        if reason_code != 0:
            self._log(f"[MQTT] Disconnected rc={reason_code} (will retry)")

    def _on_message(self, _client, _userdata, msg):
        topic = msg.topic
        payload = bytes(msg.payload)

        if topic.startswith(self.topic("messages/")):
            # Acked by the receive loop once observers have seen it.
            self._inbox.put(Message(topic=topic, payload=payload, mid=msg.mid, qos=msg.qos))
            return

        try:
            if topic.startswith(self.topic("methods/")):
                self._handle_method(topic, payload)
            elif topic == self.topic("desired"):
                self._handle_desired(payload, full=True)
            elif topic == self.topic("desired/patch"):
                self._handle_desired(payload, full=False)
        except Exception as e:
            # Never let a handler crash the network thread.
            self._log(f"[MQTT] Handler error on {topic}: {e}")
        finally:
            if msg.qos > 0:
                self._client.ack(msg.mid, msg.qos)

    def _handle_method(self, topic: str, payload: bytes) -> None:
        path = topic[len(self.topic("methods/")) :].strip("/")
        name, _, rid = path.partition("/")
        if not name or not rid or name == "res":
            return

        if self._on_command is None:
            response = MethodResponse(payload=encode({"message": "no handler"}), status=501)
        else:
            response = self._on_command(MethodRequest(name=name, request_id=rid, payload=payload))
        self._client.publish(self.topic(f"methods/res/{response.status}/{rid}"), response.payload, qos=0)

    def _handle_desired(self, payload: bytes, full: bool) -> None:
        try:
            doc = json.loads(payload.decode("utf-8", errors="ignore") or "{}")
        except json.JSONDecodeError:
            self._log(f"[MQTT] Malformed desired document: {payload[:200]!r}")
            return
        if not isinstance(doc, dict):
            return

        with self._lock:
            if full:
                self._desired.clear()
            self._desired.update(doc)
        self._desired_seen.set()

        # The retained full document is state, not a change notification.
        if not full and self._on_desired is not None:
            self._on_desired(doc)
