"""
paho-mqtt transport driver.

Runs the paho network loop in its own thread (``loop_start``) and turns the
asynchronous CONNACK/SUBACK callbacks into blocking connect/subscribe calls.
Subscription handles are the topic strings themselves.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

import paho.mqtt.client as mqtt

from tagwatch.core.exceptions import DriverError
from tagwatch.models.subscription_models import SubscriptionOptions
from tagwatch.protocols.base_client import TransportDriver

logger = logging.getLogger(__name__)


def _reason_value(reason_code) -> int:
    # paho v2 hands over ReasonCode objects; plain ints are accepted as well
    value = getattr(reason_code, "value", reason_code)
    return int(value)


class PahoMqttDriver(TransportDriver):
    """MQTT broker connection backed by paho.mqtt.client.Client."""

    def __init__(self, host: str = "127.0.0.1", port: int = 1883, username: str = "",
                 password: str = "", protocol: str = "mqtt", keepalive: int = 60,
                 timeout: float = 5.0, client_factory=None):
        super().__init__()
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.protocol = protocol
        self.keepalive = keepalive
        self.timeout = timeout
        self._client_factory = client_factory or mqtt.Client

        self._client = None
        self._closing = False
        self._connected = threading.Event()
        self._connect_rc: Optional[Any] = None
        self._acks: Dict[int, List[Any]] = {}
        self._acks_cond = threading.Condition()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _create_client(self):
        transport = "websockets" if self.protocol == "ws" else "tcp"
        client = self._client_factory(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.client_id,
            transport=transport
        )
        if self.username:
            client.username_pw_set(self.username, self.password or None)
        client.on_connect = self._on_connect
        client.on_disconnect = self._on_disconnect
        client.on_subscribe = self._on_subscribe
        client.on_message = self._on_message
        return client

    def connect(self):
        self._closing = False
        self._connected.clear()
        self._connect_rc = None

        client = self._create_client()
        try:
            client.connect(self.host, self.port, keepalive=self.keepalive)
        except (OSError, ValueError) as e:
            raise DriverError(f"Unable to connect to {self.host}:{self.port}: {e}") from e

        client.loop_start()
        if not self._connected.wait(self.timeout):
            self._abort(client)
            raise DriverError(f"No answer from broker {self.host}:{self.port} within {self.timeout}s")

        rc = _reason_value(self._connect_rc)
        if rc != 0:
            self._abort(client)
            raise DriverError(f"Broker refused connection: {self._connect_rc}", rc)

        self._client = client
        logger.debug(f"MQTT session open to {self.host}:{self.port} as {self.client_id}")

    def _abort(self, client):
        self._closing = True
        try:
            client.disconnect()
        finally:
            client.loop_stop()

    def disconnect(self):
        client, self._client = self._client, None
        if client is None:
            return
        self._closing = True
        try:
            rc = client.disconnect()
        finally:
            client.loop_stop()
        if rc is not None and rc != mqtt.MQTT_ERR_SUCCESS:
            raise DriverError(f"Disconnect failed: {mqtt.error_string(rc)}", rc)

    def _require_client(self):
        if self._client is None:
            raise DriverError("MQTT client not connected")
        return self._client

    def subscribe(self, key: str, options: SubscriptionOptions) -> str:
        client = self._require_client()
        with self._acks_cond:
            rc, mid = client.subscribe(key, qos=options.qos)
            if rc != mqtt.MQTT_ERR_SUCCESS:
                raise DriverError(f"Subscribe '{key}' rejected: {mqtt.error_string(rc)}", rc)
            if not self._acks_cond.wait_for(lambda: mid in self._acks, self.timeout):
                raise DriverError(f"No SUBACK for '{key}' within {self.timeout}s")
            reason_codes = self._acks.pop(mid)

        for code in reason_codes:
            if _reason_value(code) >= 0x80:
                raise DriverError(f"Broker refused subscription to '{key}': {code}", _reason_value(code))
        return key

    def unsubscribe(self, handle: Any):
        if self._client is None:
            return
        rc, _mid = self._client.unsubscribe(handle)
        if rc != mqtt.MQTT_ERR_SUCCESS:
            raise DriverError(f"Unsubscribe '{handle}' failed: {mqtt.error_string(rc)}", rc)

    def publish(self, key: str, value: Any):
        client = self._require_client()
        payload = value if isinstance(value, (bytes, bytearray)) else str(value)
        info = client.publish(key, payload)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise DriverError(f"Publish to '{key}' failed: {mqtt.error_string(info.rc)}", info.rc)

    # --- paho callbacks (network thread) ---

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        self._connect_rc = reason_code
        self._connected.set()

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties=None):
        if self._closing or self._client is not client:
            return
        # Stop paho's automatic reconnect; the owning client decides what happens next
        self._client = None
        client.loop_stop()
        self._emit_connection_lost(str(reason_code))

    def _on_subscribe(self, client, userdata, mid, reason_code_list, properties=None):
        with self._acks_cond:
            self._acks[mid] = list(reason_code_list)
            self._acks_cond.notify_all()

    def _on_message(self, client, userdata, msg):
        self._emit_change(msg.topic, msg.payload, datetime.now())
