import logging
from typing import Any, Callable, Dict, List, Optional

from tagwatch.core.exceptions import DriverError
from tagwatch.core.formatting import format_value
from tagwatch.models.subscription_models import ErrorKind, OperationResult, SubscriptionOptions
from tagwatch.protocols.ads.driver import PyadsDriver
from tagwatch.protocols.base_client import BaseClient

logger = logging.getLogger(__name__)


class ADSClient(BaseClient):
    """
    Beckhoff TwinCAT PLC client.

    Variables are read by name and watched through on-change notifications.
    Values reach callbacks already formatted for their PLC datatype
    (see tagwatch.core.formatting).
    """
    component = "ADS Client"

    def __init__(self, host: str = "127.0.0.1", port: int = 851, ams_net_id: str = "127.0.0.1.1.1",
                 add_route: bool = False, autostart: bool = False, name: Optional[str] = None,
                 driver: Optional[PyadsDriver] = None, sink_factory=None):
        driver = driver or PyadsDriver(host, port, ams_net_id, add_route)
        super().__init__(driver, name, sink_factory)
        self._symbols: Optional[List[Dict[str, str]]] = None
        if autostart:
            self.connect()

    @property
    def host(self) -> str:
        return self.driver.host

    @property
    def port(self) -> int:
        return self.driver.port

    @property
    def ams_net_id(self) -> str:
        return self.driver.ams_net_id

    @property
    def base_url(self) -> str:
        return f"{self.driver.host}:{self.driver.port}"

    def _check_connected(self) -> bool:
        if not self.connected:
            self.log.fatal(f"ADS Client not connected. Base URL: {self.base_url}. AMS Net ID: {self.ams_net_id}")
            return False
        return True

    def disconnect(self) -> bool:
        self._symbols = None
        return super().disconnect()

    # --- Reads ---

    def read_variable(self, name: str, datatype: str, size: int = 0) -> Any:
        """Read a variable once. Returns the raw value, or None on failure."""
        if not self._check_connected():
            return None
        try:
            value = self.driver.read(name, datatype, size)
        except DriverError as e:
            self.log.error(f"Error reading {name} ({datatype}[{size}]): {e}")
            return None
        self.log.debug(f"Read {name} ({datatype}[{size}]) = {value!r}")
        return value

    def read_variable_string(self, name: str, datatype: str, size: int = 0) -> Optional[str]:
        value = self.read_variable(name, datatype, size)
        if value is None:
            return None
        return format_value(value, datatype, size)

    # --- Subscriptions ---

    def subscribe_variable(self, name: str, datatype: str, size: int = 0, cycle_time: int = 200,
                           max_delay: int = 0,
                           callback: Optional[Callable[[str, str], None]] = None) -> OperationResult:
        """
        Watch ``name`` with an on-change notification. ``cycle_time`` and
        ``max_delay`` are in milliseconds.
        """
        if not self._check_connected():
            return OperationResult.failure(ErrorKind.NOT_CONNECTED, "Not connected")

        options = SubscriptionOptions(
            raw_type=datatype,
            raw_size=size,
            cycle_time=cycle_time,
            max_delay=max_delay
        )
        result = self.registry.subscribe(name, callback=callback, options=options)
        if result:
            self.log.debug(f"{name} ({datatype}[{size}]) | CycleTime: {cycle_time}ms | MaxDelay: {max_delay}ms")
        return result

    def unsubscribe_variable(self, name: str) -> OperationResult:
        return self.registry.unsubscribe(name)

    def read_subscribe(self, name: str, datatype: str, size: int = 0, cycle_time: int = 200,
                       max_delay: int = 0, callback: Optional[Callable[[str, str], None]] = None) -> Any:
        """Read the current value, subscribe, and seed the entry with the value read."""
        value = self.read_variable(name, datatype, size)
        result = self.subscribe_variable(name, datatype, size, cycle_time, max_delay, callback)
        if result and value is not None:
            entry = self.registry.get(name)
            if entry is not None:
                self.registry.on_driver_event(entry.handle, value)
        return value

    # --- Others ---

    def get_symbols(self, force_update: bool = False) -> Optional[List[Dict[str, str]]]:
        """Symbol table of the PLC, uploaded once and cached."""
        if not self._check_connected():
            return None
        if self._symbols is not None and not force_update:
            self.log.debug("Returning cached symbols")
            return self._symbols
        try:
            self._symbols = self.driver.get_symbols()
            self.log.success(f"Loaded {len(self._symbols)} symbols from {self.base_url}")
        except DriverError as e:
            self.log.error(f"Get symbols failed: {e}")
        return self._symbols

    def get_client_address(self) -> str:
        return self.driver.client_address
