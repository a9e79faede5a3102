import logging
from typing import Callable, Optional

from tagwatch.models.subscription_models import OperationResult, SubscriptionOptions
from tagwatch.protocols.base_client import BaseClient
from tagwatch.protocols.mqtt.driver import PahoMqttDriver

logger = logging.getLogger(__name__)


class MQTTClient(BaseClient):
    """
    MQTT broker client.

    Topics are subscribed exactly (no wildcard matching). Every accepted
    payload change is handed to the topic's callback as (topic, payload).
    """
    component = "MQTT Client"

    def __init__(self, host: str = "127.0.0.1", port: int = 1883, username: str = "",
                 password: str = "", protocol: str = "mqtt", autostart: bool = False,
                 name: Optional[str] = None, driver: Optional[PahoMqttDriver] = None,
                 sink_factory=None):
        driver = driver or PahoMqttDriver(host, port, username, password, protocol)
        super().__init__(driver, name, sink_factory)
        if autostart:
            self.connect()

    @property
    def host(self) -> str:
        return self.driver.host

    @property
    def port(self) -> int:
        return self.driver.port

    @property
    def base_url(self) -> str:
        return f"{self.driver.protocol}://{self.driver.host}:{self.driver.port}"

    def subscribe_topic(self, path: str, callback: Optional[Callable[[str, str], None]] = None,
                        qos: int = 0) -> OperationResult:
        """Subscribe to ``path``; ``callback(topic, payload)`` fires on every change."""
        return self.registry.subscribe(path, callback=callback, options=SubscriptionOptions(qos=qos))

    def unsubscribe_topic(self, path: str) -> OperationResult:
        return self.registry.unsubscribe(path)

    def publish_topic(self, path: str, payload, callback: Optional[Callable[[str, str], None]] = None,
                      force: bool = False) -> OperationResult:
        """
        Publish ``payload`` to a subscribed topic. Re-publishing the current
        value is skipped unless ``force`` is set.
        """
        result = self.registry.publish(path, payload, callback=callback, force=force)
        if result:
            self.log.debug(f"Published: {path} => {payload}")
        return result
