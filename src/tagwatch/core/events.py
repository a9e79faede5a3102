import logging
import threading
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)


class EventEmitter:
    """
    Simple event emitter used in place of Qt Signals in core logic.
    Callbacks run in the emitter's thread.
    """
    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}
        self._listeners_lock = threading.Lock()

    def on(self, event_name: str, callback: Callable):
        """Register a callback for an event."""
        with self._listeners_lock:
            self._listeners.setdefault(event_name, []).append(callback)

    def off(self, event_name: str, callback: Callable):
        """Unregister a callback."""
        with self._listeners_lock:
            if event_name in self._listeners:
                try:
                    self._listeners[event_name].remove(callback)
                except ValueError:
                    pass

    def emit(self, event_name: str, *args, **kwargs):
        """Emit an event, calling all registered listeners."""
        with self._listeners_lock:
            listeners = list(self._listeners.get(event_name, ()))
        for callback in listeners:
            try:
                callback(*args, **kwargs)
            except Exception:
                # Prevent one listener from crashing the emitter
                logger.exception(f"Error in event listener for '{event_name}'")

    def clear(self):
        """Remove all listeners."""
        with self._listeners_lock:
            self._listeners.clear()
