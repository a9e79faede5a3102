"""
Subscription registry shared by all clients.

The registry owns the table of watched keys for one client connection. It asks
the transport driver to subscribe, caches the last formatted value of every
key, drops driver events that do not change that value and forwards the rest
to the caller's callback.

Thread model: the registry has no threads of its own. The entry table is
guarded by one lock and every entry carries its own re-entrant lock; format,
dedup, update and callback of one key run under that key's lock. Driver round
trips always happen outside both locks.
"""
import dataclasses
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from tagwatch.core.events import EventEmitter
from tagwatch.core.formatting import format_value
from tagwatch.core.log import ClientLogAdapter
from tagwatch.core.value_sinks import SQLiteSinkFactory, ValueSink
from tagwatch.models.subscription_models import (
    ErrorKind, OperationResult, SubscriptionEntry, SubscriptionOptions
)

logger = logging.getLogger(__name__)

ValueCallback = Callable[[str, str], None]


class SubscriptionRegistry(EventEmitter):
    """
    Key -> SubscriptionEntry table with change detection.

    Events (EventEmitter):
        subscribed(key)
        unsubscribed(key)
        value_changed(key, value, timestamp)
    """

    def __init__(self, driver, is_connected: Callable[[], bool],
                 log: Optional[logging.LoggerAdapter] = None,
                 sink_factory: Optional[Callable[[str], ValueSink]] = None):
        super().__init__()
        self._driver = driver
        self._is_connected = is_connected
        self.log = log or ClientLogAdapter(logger, "Subscriptions")
        self.sink_factory = sink_factory or SQLiteSinkFactory()

        self._lock = threading.Lock()
        self._entries: Dict[str, SubscriptionEntry] = {}
        self._by_handle: Dict[Any, SubscriptionEntry] = {}
        # Keys whose driver subscribe is in flight
        self._pending: Set[str] = set()

    # ------------------------------------------------------------------
    # Subscribe / unsubscribe
    # ------------------------------------------------------------------

    def subscribe(self, key: str, format_hint: Optional[str] = None,
                  callback: Optional[ValueCallback] = None,
                  options: Optional[SubscriptionOptions] = None) -> OperationResult:
        """Create an entry for ``key``. Only the first call for a key reaches the driver."""
        if not self._is_connected():
            self.log.error(f"Cannot subscribe to '{key}': not connected")
            return OperationResult.failure(ErrorKind.NOT_CONNECTED, "Not connected")

        if not key:
            self.log.error("Cannot subscribe to an empty key")
            return OperationResult.failure(ErrorKind.INVALID_KEY, "Key must not be empty")

        options = options or SubscriptionOptions()
        if format_hint is not None:
            options = dataclasses.replace(options, raw_type=format_hint)

        with self._lock:
            if key in self._entries or key in self._pending:
                self.log.info(f"Already subscribed to '{key}'")
                return OperationResult.failure(ErrorKind.DUPLICATE_SUBSCRIPTION,
                                               f"Already subscribed to '{key}'")
            self._pending.add(key)

        try:
            handle = self._driver.subscribe(key, options)
        except Exception as e:
            with self._lock:
                self._pending.discard(key)
            self.log.error(f"Subscribe to '{key}' failed: {e}")
            return OperationResult.failure(ErrorKind.DRIVER_ERROR, str(e))

        entry = SubscriptionEntry(key=key, handle=handle, callback=callback, options=options)
        with self._lock:
            torn_down = key not in self._pending
            if not torn_down:
                self._pending.discard(key)
                self._entries[key] = entry
                if handle is not None:
                    self._by_handle[handle] = entry

        if torn_down:
            # Registry was torn down during the round trip
            self.log.warning(f"Connection closed while subscribing to '{key}'")
            try:
                self._driver.unsubscribe(handle)
            except Exception as e:
                self.log.debug(f"Could not release handle of '{key}': {e}")
            return OperationResult.failure(ErrorKind.NOT_CONNECTED, "Connection closed")

        self.log.info(f"Subscribed to '{key}'")
        self.emit("subscribed", key)
        return OperationResult.success()

    def unsubscribe(self, key: str) -> OperationResult:
        """Remove the entry for ``key`` and release its driver handle. No entry is not an error."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is not None and entry.handle is not None:
                self._by_handle.pop(entry.handle, None)

        if entry is None:
            self.log.debug(f"Unsubscribe '{key}': no subscription")
            return OperationResult.success()

        with entry.lock:
            entry.active = False

        result = OperationResult.success()
        try:
            self._driver.unsubscribe(entry.handle)
            self.log.info(f"Unsubscribed from '{key}'")
        except Exception as e:
            self.log.error(f"Unsubscribe from '{key}' failed: {e}")
            result = OperationResult.failure(ErrorKind.DRIVER_ERROR, str(e))

        self._close_sink(entry)
        self.emit("unsubscribed", key)
        return result

    def teardown_all(self, release_handles: bool = True):
        """
        Drop every entry. Called on disconnect, and with ``release_handles=False``
        when the connection is already gone. Safe to call repeatedly.
        """
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            self._by_handle.clear()
            self._pending.clear()

        for entry in entries:
            with entry.lock:
                entry.active = False
            if release_handles:
                try:
                    self._driver.unsubscribe(entry.handle)
                except Exception as e:
                    self.log.warning(f"Could not release '{entry.key}': {e}")
            self._close_sink(entry)
            self.emit("unsubscribed", entry.key)

        if entries:
            self.log.info(f"Removed {len(entries)} subscription(s)")

    # ------------------------------------------------------------------
    # Value flow
    # ------------------------------------------------------------------

    def on_driver_event(self, handle_or_key: Any, raw: Any,
                        timestamp: Optional[datetime] = None) -> bool:
        """
        Driver push entry point. Returns True when the value was accepted.
        Runs on the driver's thread and never blocks on the network.
        """
        with self._lock:
            entry = self._by_handle.get(handle_or_key)
            if entry is None:
                entry = self._entries.get(handle_or_key)

        if entry is None:
            self.log.debug(f"Discarding event for unknown subscription {handle_or_key!r}")
            return False

        with entry.lock:
            if not entry.active:
                return False
            value = format_value(raw, entry.raw_type, entry.raw_size)
            if value == entry.publishing:
                # Our own outbound value; publish() applies it once the driver returns
                self.log.debug(f"'{entry.key}' echo of pending publish: {value}")
                return False
            return self._apply(entry, value, timestamp, entry.callback)

    def publish(self, key: str, value: Any, callback: Optional[ValueCallback] = None,
                force: bool = False) -> OperationResult:
        """
        Send ``value`` for a subscribed key. An unchanged value is not sent
        again unless ``force`` is set.
        """
        if not self._is_connected():
            self.log.error(f"Cannot publish to '{key}': not connected")
            return OperationResult.failure(ErrorKind.NOT_CONNECTED, "Not connected")

        entry = self.get(key)
        if entry is None:
            self.log.warning(f"Cannot publish to '{key}': not subscribed")
            return OperationResult.failure(ErrorKind.NOT_SUBSCRIBED, f"Not subscribed to '{key}'")

        formatted = format_value(value, entry.raw_type, entry.raw_size)
        with entry.lock:
            if not force and formatted in (entry.last_value, entry.publishing):
                self.log.debug(f"Not publishing unchanged value to '{key}'")
                return OperationResult.failure(ErrorKind.UNCHANGED_VALUE, "Value unchanged")
            entry.publishing = formatted

        try:
            self._driver.publish(key, value)
        except Exception as e:
            with entry.lock:
                if entry.publishing == formatted:
                    entry.publishing = None
            self.log.error(f"Publish to '{key}' failed: {e}")
            return OperationResult.failure(ErrorKind.DRIVER_ERROR, str(e))

        with entry.lock:
            if entry.publishing == formatted:
                entry.publishing = None
            if entry.active:
                # Accepted by the driver; applied once even when equal to last_value
                self._apply(entry, formatted, None, callback or entry.callback, force=True)
        return OperationResult.success()

    def _apply(self, entry: SubscriptionEntry, value: str, timestamp: Optional[datetime],
               callback: Optional[ValueCallback], force: bool = False) -> bool:
        # Caller holds entry.lock
        if not force and value == entry.last_value:
            self.log.debug(f"'{entry.key}' unchanged: {value}")
            return False

        entry.last_value = value
        entry.updated_at = timestamp or datetime.now()

        if entry.sink is not None:
            try:
                entry.sink.write(entry.key, value, entry.time)
            except Exception:
                self.log.exception(f"Value log for '{entry.key}' failed")

        if callback is not None:
            try:
                callback(entry.key, value)
            except Exception:
                self.log.exception(f"Callback for '{entry.key}' raised")

        self.emit("value_changed", entry.key, value, entry.updated_at)
        return True

    # ------------------------------------------------------------------
    # Per-entry value logging
    # ------------------------------------------------------------------

    def enable_logging(self, key: str, sink: Optional[ValueSink] = None) -> OperationResult:
        """Attach a value sink to ``key`` and record the current value once."""
        entry = self.get(key)
        if entry is None:
            return OperationResult.failure(ErrorKind.NOT_SUBSCRIBED, f"Not subscribed to '{key}'")

        with entry.lock:
            if entry.sink is not None:
                return OperationResult.success("Already logging")
            try:
                entry.sink = sink or self.sink_factory(key)
                entry.sink.write(key, entry.last_value, entry.time)
            except Exception as e:
                self.log.exception(f"Could not start value log for '{key}'")
                self._close_sink(entry)
                return OperationResult.failure(ErrorKind.DRIVER_ERROR, str(e))

        self.log.info(f"Logging enabled for '{key}'")
        return OperationResult.success()

    def disable_logging(self, key: str) -> OperationResult:
        entry = self.get(key)
        if entry is None:
            return OperationResult.failure(ErrorKind.NOT_SUBSCRIBED, f"Not subscribed to '{key}'")
        with entry.lock:
            self._close_sink(entry)
        self.log.info(f"Logging disabled for '{key}'")
        return OperationResult.success()

    def toggle_logging(self, key: str) -> bool:
        """Flip logging for ``key``; returns whether logging is now on."""
        entry = self.get(key)
        if entry is None:
            return False
        if entry.logging:
            self.disable_logging(key)
        else:
            self.enable_logging(key)
        return entry.logging

    def _close_sink(self, entry: SubscriptionEntry):
        sink, entry.sink = entry.sink, None
        if sink is None:
            return
        try:
            sink.close()
        except Exception:
            self.log.exception(f"Closing value log for '{entry.key}' failed")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, key: str) -> Optional[SubscriptionEntry]:
        with self._lock:
            return self._entries.get(key)

    def entries(self) -> List[SubscriptionEntry]:
        with self._lock:
            return list(self._entries.values())

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def last_value(self, key: str) -> Optional[str]:
        entry = self.get(key)
        if entry is None:
            return None
        with entry.lock:
            return entry.last_value

    def __contains__(self, key) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
