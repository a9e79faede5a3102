"""
Beckhoff TwinCAT ADS transport driver (pyads).

Subscriptions are ADS device notifications in on-change mode. The handle of an
entry is the notification handle; pyads calls back on its own thread with the
raw notification, which is decoded with the subscription's PLC type before it
is pushed to the registry.
"""
import ctypes
import functools
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

from tagwatch.core.exceptions import DriverError
from tagwatch.core.formatting import TypeFamily, resolve_type
from tagwatch.models.subscription_models import SubscriptionOptions
from tagwatch.protocols.base_client import TransportDriver

try:
    import pyads
    HAS_PYADS = True
except ImportError:
    HAS_PYADS = False
    pyads = None

logger = logging.getLogger(__name__)

# Datatype name -> pyads constant name
PLC_TYPE_NAMES = {
    "BOOL": "PLCTYPE_BOOL",
    "BOOLEAN": "PLCTYPE_BOOL",
    "SINT": "PLCTYPE_SINT",
    "USINT": "PLCTYPE_USINT",
    "INT": "PLCTYPE_INT",
    "UINT": "PLCTYPE_UINT",
    "DINT": "PLCTYPE_DINT",
    "UDINT": "PLCTYPE_UDINT",
    "LINT": "PLCTYPE_LINT",
    "ULINT": "PLCTYPE_ULINT",
    "REAL": "PLCTYPE_REAL",
    "LREAL": "PLCTYPE_LREAL",
    "TIME": "PLCTYPE_TIME",
    "LTIME": "PLCTYPE_ULINT",
    "BYTE": "PLCTYPE_BYTE",
    "WORD": "PLCTYPE_WORD",
    "DWORD": "PLCTYPE_DWORD",
    "LWORD": "PLCTYPE_ULINT",
    "DATE": "PLCTYPE_DATE",
    "DT": "PLCTYPE_DT",
    "DATE_AND_TIME": "PLCTYPE_DT",
    "TOD": "PLCTYPE_TOD",
    "TIME_OF_DAY": "PLCTYPE_TOD",
}


def plc_type_for(datatype: Optional[str], size: int = 0) -> Tuple[Any, int]:
    """
    Return (pyads plc type, byte length) for a datatype name.
    STRING(n) occupies n+1 bytes, WSTRING(n) 2*(n+1) bytes read as raw bytes.
    """
    if not HAS_PYADS:
        raise DriverError("pyads library not installed")

    info = resolve_type(datatype, size)
    if info.family == TypeFamily.STRING:
        return pyads.PLCTYPE_STRING, info.size + 1
    if info.family == TypeFamily.WSTRING:
        plc_type = pyads.PLCTYPE_BYTE * (2 * (info.size + 1))
        return plc_type, ctypes.sizeof(plc_type)

    name = PLC_TYPE_NAMES.get((datatype or "").strip().upper())
    if name is None:
        raise DriverError(f"Unsupported ADS datatype: {datatype!r}")
    plc_type = getattr(pyads, name)
    return plc_type, ctypes.sizeof(plc_type)


class PyadsDriver(TransportDriver):
    """ADS connection to one PLC runtime."""

    def __init__(self, host: str = "127.0.0.1", port: int = 851, ams_net_id: str = "127.0.0.1.1.1",
                 add_route: bool = False, connection_factory=None):
        super().__init__()
        self.host = host
        self.port = port
        self.ams_net_id = ams_net_id
        self.add_route = add_route
        self.client_address = ""
        self._connection_factory = connection_factory

        self._conn = None
        # notification handle -> (notification handle, user handle)
        self._handles: Dict[int, Tuple[int, int]] = {}
        self._handles_lock = threading.Lock()

        if not HAS_PYADS:
            logger.error("pyads library not installed. Install with: pip install pyads")

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    def _require_connection(self):
        if self._conn is None:
            raise DriverError("ADS connection not open")
        return self._conn

    def connect(self):
        if not HAS_PYADS:
            raise DriverError("pyads library not installed")

        if self.add_route:
            self._create_route()

        factory = self._connection_factory or pyads.Connection
        conn = factory(self.ams_net_id, self.port, self.host)
        try:
            conn.open()
            address = conn.get_local_address()
        except (pyads.ADSError, OSError) as e:
            conn.close()
            raise DriverError(f"Unable to open ADS connection to {self.ams_net_id}:{self.port}: {e}") from e

        if not conn.is_open or address is None:
            conn.close()
            raise DriverError("Wrong connection parameters")

        self.client_address = f"{address.netid}:{address.port}"
        self._conn = conn
        logger.debug(f"ADS connection open: {self.client_address} -> {self.ams_net_id}:{self.port}")

    def _create_route(self):
        try:
            pyads.add_route(self.ams_net_id, self.host)
            logger.info(f"ADS route added: {self.ams_net_id} via {self.host}")
        except (pyads.ADSError, OSError) as e:
            # Connection is still attempted; an existing route may be enough
            logger.critical(f"ADS route creation failed for {self.ams_net_id} via {self.host}: {e}")

    def disconnect(self):
        conn, self._conn = self._conn, None
        if conn is None:
            return
        with self._handles_lock:
            remaining = list(self._handles.values())
            self._handles.clear()
        try:
            for handles in remaining:
                conn.del_device_notification(*handles)
        except pyads.ADSError as e:
            raise DriverError(f"Error removing notifications: {e}") from e
        finally:
            conn.close()
            self.client_address = ""

    def subscribe(self, key: str, options: SubscriptionOptions) -> int:
        conn = self._require_connection()
        plc_type, length = plc_type_for(options.raw_type, options.raw_size)
        attrib = pyads.NotificationAttrib(
            length,
            trans_mode=pyads.ADSTRANS_SERVERONCHA,
            max_delay=options.max_delay,
            cycle_time=options.cycle_time
        )
        callback = functools.partial(self._on_notification, plc_type)
        try:
            handles = conn.add_device_notification(key, attrib, callback)
        except pyads.ADSError as e:
            raise DriverError(f"Notification for '{key}' rejected: {e}", getattr(e, 'err_code', None)) from e

        with self._handles_lock:
            self._handles[handles[0]] = handles
        return handles[0]

    def unsubscribe(self, handle: Any):
        with self._handles_lock:
            handles = self._handles.pop(handle, None)
        if handles is None or self._conn is None:
            return
        try:
            self._conn.del_device_notification(*handles)
        except pyads.ADSError as e:
            raise DriverError(f"Could not delete notification {handle}: {e}", getattr(e, 'err_code', None)) from e

    def read(self, name: str, datatype: str, size: int = 0) -> Any:
        conn = self._require_connection()
        plc_type, _ = plc_type_for(datatype, size)
        try:
            return conn.read_by_name(name, plc_type)
        except pyads.ADSError as e:
            raise DriverError(f"Read of '{name}' failed: {e}", getattr(e, 'err_code', None)) from e

    def get_symbols(self) -> List[Dict[str, str]]:
        conn = self._require_connection()
        try:
            symbols = conn.get_all_symbols()
        except pyads.ADSError as e:
            raise DriverError(f"Symbol upload failed: {e}", getattr(e, 'err_code', None)) from e
        return [
            {'name': s.name, 'type': s.symbol_type, 'comment': s.comment}
            for s in symbols
        ]

    def _on_notification(self, plc_type, notification, data_name):
        # pyads callback thread
        conn = self._conn
        if conn is None:
            return
        try:
            handle, timestamp, value = conn.parse_notification(notification, plc_type)
            self._emit_change(handle, value, timestamp)
        except Exception:
            logger.exception(f"Error handling ADS notification for {data_name}")
