import logging
from PySide6.QtCore import QObject, Signal as QtSignal

from tagwatch.core.client_manager import ClientManager

logger = logging.getLogger(__name__)


class QtSubscriptionBridge(QObject):
    """
    Re-publishes ClientManager events as Qt signals.
    Driver threads emit here; Qt queues delivery to widgets living in the GUI thread.
    """
    value_changed = QtSignal(str, str, str)   # client_name, key, value
    client_event = QtSignal(str, str)         # client_name, "connected" | "disconnected" | "error"
    client_added = QtSignal(str)
    client_removed = QtSignal(str)

    def __init__(self, manager: ClientManager, parent=None):
        super().__init__(parent)
        self.manager = manager
        manager.on("value_changed", self._on_value_changed)
        manager.on("client_event", self._on_client_event)
        manager.on("client_added", self._on_client_added)
        manager.on("client_removed", self._on_client_removed)

    def detach(self):
        """Stop forwarding manager events."""
        self.manager.off("value_changed", self._on_value_changed)
        self.manager.off("client_event", self._on_client_event)
        self.manager.off("client_added", self._on_client_added)
        self.manager.off("client_removed", self._on_client_removed)

    def _on_value_changed(self, client_name, key, value):
        try:
            self.value_changed.emit(client_name, key, value)
        except RuntimeError:
            # Qt object deleted during shutdown
            logger.debug(f"Bridge gone, dropping update for {client_name}/{key}")

    def _on_client_event(self, client_name, event):
        self.client_event.emit(client_name, event)

    def _on_client_added(self, client_name):
        self.client_added.emit(client_name)

    def _on_client_removed(self, client_name):
        self.client_removed.emit(client_name)
