import logging
import json
import os
from typing import Callable, Dict, List, Optional

from tagwatch.core.events import EventEmitter
from tagwatch.core.exceptions import ConfigurationError
from tagwatch.core.value_sinks import SQLiteSinkFactory
from tagwatch.models.client_models import ClientConfig, ClientType
from tagwatch.protocols.base_client import BaseClient

logger = logging.getLogger(__name__)


def create_client(config: ClientConfig, sink_factory=None) -> BaseClient:
    """Instantiate the client class matching ``config.client_type``."""
    if config.client_type == ClientType.MQTT:
        from tagwatch.protocols.mqtt.client import MQTTClient
        return MQTTClient(
            host=config.host,
            port=config.port,
            username=config.username,
            password=config.password,
            protocol=config.protocol,
            name=config.name,
            sink_factory=sink_factory
        )
    if config.client_type == ClientType.ADS:
        from tagwatch.protocols.ads.client import ADSClient
        return ADSClient(
            host=config.host,
            port=config.port,
            ams_net_id=config.ams_net_id,
            add_route=config.add_route,
            name=config.name,
            sink_factory=sink_factory
        )
    raise ConfigurationError(f"Unsupported client type for '{config.name}': {config.client_type.value}")


class ClientManager(EventEmitter):
    """
    Manages the configured clients.
    Framework-agnostic; GUI code listens to the events below.

    Events:
        client_added(name), client_removed(name)
        client_event(name, event)              "connected" | "disconnected" | "error"
        value_changed(name, key, value)
    """
    def __init__(self, config_path="clients.json", log_directory="logs",
                 client_factory: Optional[Callable[..., BaseClient]] = None):
        super().__init__()
        self.config_path = config_path
        self._configs: Dict[str, ClientConfig] = {}
        self._clients: Dict[str, BaseClient] = {}
        self._client_factory = client_factory or create_client
        self._sink_factory = SQLiteSinkFactory(log_directory)

    def add_client(self, config: ClientConfig, save: bool = True) -> Optional[BaseClient]:
        """Create a client from config and register it."""
        if config.name in self._clients:
            logger.warning(f"Client '{config.name}' already exists.")
            return None

        client = self._client_factory(config, sink_factory=self._sink_factory)
        name = config.name
        client.registry.on("value_changed", lambda key, value, ts: self.emit("value_changed", name, key, value))
        client.on("client_event", lambda event: self.emit("client_event", name, event))

        self._configs[name] = config
        self._clients[name] = client
        logger.info(f"Client added: {name} ({config.client_type.value})")
        self.emit("client_added", name)
        if save:
            self.save_configuration()
        return client

    def remove_client(self, name: str, save: bool = True):
        client = self._clients.pop(name, None)
        self._configs.pop(name, None)
        if client is None:
            return
        if client.connected:
            client.disconnect()
        client.clear()
        logger.info(f"Client removed: {name}")
        self.emit("client_removed", name)
        if save:
            self.save_configuration()

    def get_client(self, name: str) -> Optional[BaseClient]:
        return self._clients.get(name)

    def get_config(self, name: str) -> Optional[ClientConfig]:
        return self._configs.get(name)

    def list_clients(self) -> List[str]:
        return list(self._clients.keys())

    # --- Connection ---

    def connect_client(self, name: str) -> bool:
        """Connect a client and apply its configured subscriptions."""
        client = self._clients.get(name)
        if client is None:
            logger.warning(f"Unknown client '{name}'")
            return False
        if client.connected:
            logger.debug(f"Client '{name}' already connected")
            return True
        if not client.connect():
            return False
        self._apply_subscriptions(self._configs[name], client)
        return True

    def _apply_subscriptions(self, config: ClientConfig, client: BaseClient):
        for sub in config.subscriptions:
            result = client.registry.subscribe(sub.key, options=sub.to_options())
            if not result:
                logger.warning(f"{config.name}: subscription to '{sub.key}' not applied ({result.message})")
                continue
            if sub.logging:
                client.registry.enable_logging(sub.key)

    def disconnect_client(self, name: str) -> bool:
        client = self._clients.get(name)
        if client is None:
            logger.warning(f"Unknown client '{name}'")
            return False
        try:
            return client.disconnect()
        except Exception as e:
            logger.error(f"Error disconnecting {name}: {e}")
            return False

    def connect_all(self) -> Dict[str, bool]:
        """Connect every enabled client. Returns name -> connected."""
        return {
            name: self.connect_client(name)
            for name, config in self._configs.items() if config.enabled
        }

    def disconnect_all(self):
        for name in list(self._clients):
            self.disconnect_client(name)

    # --- Persistence ---

    def save_configuration(self, path: Optional[str] = None):
        """Saves current client configs to a JSON file."""
        target_path = path or self.config_path
        try:
            data = {'clients': [c.to_dict() for c in self._configs.values()]}
            with open(target_path, 'w') as f:
                json.dump(data, f, indent=4)
            logger.info(f"Configuration saved to {target_path}")
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save configuration: {e}")

    def load_configuration(self, path: Optional[str] = None) -> int:
        """Loads client configs from a JSON file. Returns the number of clients added."""
        target_path = path or self.config_path
        if not os.path.exists(target_path):
            logger.info(f"No configuration file found at {target_path}")
            return 0

        try:
            with open(target_path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load configuration: {e}")
            return 0

        configs = data if isinstance(data, list) else data.get('clients', [])
        added = 0
        for config_data in configs:
            try:
                config = ClientConfig.from_dict(config_data)
                if self.add_client(config, save=False) is not None:
                    added += 1
            except (KeyError, TypeError, ValueError, ConfigurationError) as e:
                logger.error(f"Failed to load client config: {e}")

        logger.info(f"Configuration loaded from {target_path} ({added} clients)")
        return added
