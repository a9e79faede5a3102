import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from tagwatch.core.events import EventEmitter
from tagwatch.core.exceptions import ConfigurationError, DriverError
from tagwatch.core.log import ClientLogAdapter
from tagwatch.core.subscription_registry import SubscriptionRegistry
from tagwatch.models.subscription_models import ConnectionState, SubscriptionOptions

logger = logging.getLogger(__name__)


class TransportDriver(ABC):
    """
    Abstract Base Class for transport drivers (MQTT broker, ADS router, ...).
    Drivers raise DriverError on failure and push value changes through the
    change handler from their own threads.
    """

    def __init__(self):
        self.client_id = ""
        self._change_handler: Optional[Callable[..., Any]] = None
        self._connection_lost_handler: Optional[Callable[[str], None]] = None

    def set_change_handler(self, handler: Callable[..., Any]):
        """Sets the function receiving (handle_or_key, raw_value, timestamp)."""
        self._change_handler = handler

    def set_connection_lost_handler(self, handler: Callable[[str], None]):
        """Sets the function called when the transport drops unexpectedly."""
        self._connection_lost_handler = handler

    @abstractmethod
    def connect(self) -> None:
        """Open the transport. Blocks until connected or raises DriverError."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the transport."""
        pass

    @abstractmethod
    def subscribe(self, key: str, options: SubscriptionOptions) -> Any:
        """Register for changes of ``key``. Returns the handle used to unsubscribe."""
        pass

    @abstractmethod
    def unsubscribe(self, handle: Any) -> None:
        """Release a handle returned by subscribe."""
        pass

    def publish(self, key: str, value: Any) -> None:
        """Send a value (pub/sub transports only)."""
        raise DriverError(f"{self.__class__.__name__} does not support publish")

    def _emit_change(self, handle_or_key: Any, raw: Any, timestamp=None):
        """Helper to invoke the change handler."""
        if self._change_handler:
            self._change_handler(handle_or_key, raw, timestamp)

    def _emit_connection_lost(self, reason: str = ""):
        if self._connection_lost_handler:
            self._connection_lost_handler(reason)


class BaseClient(EventEmitter):
    """
    A connection to one remote endpoint together with its subscriptions.

    Events (EventEmitter):
        client_event(str)                 "connected" | "disconnected" | "error"
        state_changed(ConnectionState)
    """
    component = "Client"

    def __init__(self, driver: TransportDriver, name: Optional[str] = None, sink_factory=None):
        super().__init__()
        self.name = name or self.component
        self.client_id = ""
        self.log = ClientLogAdapter(logger, self.component)
        self._renew_client_id()

        self.driver = driver
        self._state = ConnectionState.DISCONNECTED
        self._state_lock = threading.Lock()

        self.registry = SubscriptionRegistry(
            driver, lambda: self.connected, log=self.log, sink_factory=sink_factory
        )
        driver.set_change_handler(self.registry.on_driver_event)
        driver.set_connection_lost_handler(self._on_connection_lost)
        driver.client_id = self.client_id

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def base_url(self) -> str:
        return ""

    def _renew_client_id(self):
        self.client_id = str(uuid.uuid4())
        self.log.correlation_id = self.client_id
        if getattr(self, 'driver', None) is not None:
            self.driver.client_id = self.client_id

    def _set_state(self, state: ConnectionState):
        with self._state_lock:
            if self._state == state:
                return
            self._state = state
        self.emit("state_changed", state)

    def _notify(self, event: str):
        self.emit("client_event", event)

    def connect(self) -> bool:
        """Open the connection. Returns True when connected."""
        with self._state_lock:
            if self._state == ConnectionState.CONNECTED:
                self.log.warning(f"Connection already established on {self.base_url}")
                return True
            if self._state != ConnectionState.DISCONNECTED:
                self.log.warning(f"Cannot connect while {self._state.value.lower()}")
                return False
            self._state = ConnectionState.CONNECTING
        self.emit("state_changed", ConnectionState.CONNECTING)

        try:
            self.driver.connect()
        except Exception as e:
            self.log.error(f"Error connecting to {self.base_url}: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            self._notify("disconnected")
            return False

        self._set_state(ConnectionState.CONNECTED)
        self.log.success(f"Connected to {self.base_url}")
        self._notify("connected")
        return True

    def disconnect(self) -> bool:
        """Drop every subscription and close the connection."""
        with self._state_lock:
            if self._state != ConnectionState.CONNECTED:
                self.log.warning("Client already disconnected")
                return True
            self._state = ConnectionState.DISCONNECTING
        self.emit("state_changed", ConnectionState.DISCONNECTING)

        self.registry.teardown_all()
        try:
            self.driver.disconnect()
        except Exception as e:
            self.log.error(f"Error closing connection to {self.base_url}: {e}")
            self._set_state(ConnectionState.DISCONNECTED)
            self._notify("error")
            return False

        self._set_state(ConnectionState.DISCONNECTED)
        self.log.info(f"Disconnected from {self.base_url}")
        self._notify("disconnected")
        return True

    def _on_connection_lost(self, reason: str = ""):
        with self._state_lock:
            # Our own disconnect() also ends here on some drivers
            if self._state in (ConnectionState.DISCONNECTED, ConnectionState.DISCONNECTING):
                return
            self._state = ConnectionState.DISCONNECTED
        self.log.warning(f"Connection to {self.base_url} lost" + (f": {reason}" if reason else ""))
        self.registry.teardown_all(release_handles=False)
        self.emit("state_changed", ConnectionState.DISCONNECTED)
        self._notify("disconnected")

    def update_settings(self, restart: bool = True, **settings) -> bool:
        """
        Change connection settings (host, port, ...). With ``restart`` the
        client is stopped before and started again after the change.
        """
        unknown = [name for name in settings if not hasattr(self.driver, name)]
        if unknown:
            raise ConfigurationError(f"Unknown setting(s) for {self.component}: {', '.join(unknown)}")

        if restart:
            self.disconnect()
        for name, value in settings.items():
            setattr(self.driver, name, value)
        self._renew_client_id()

        result = self.connect() if restart else True
        self.log.info(f"Updated settings. Base URL: {self.base_url}")
        return result

    def __repr__(self):
        return f"<{self.__class__.__name__} {self.name} {self.base_url} {self._state.value}>"
