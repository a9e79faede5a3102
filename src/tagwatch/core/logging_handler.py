import logging
from PySide6.QtCore import QObject, Signal


class QtLogHandler(logging.Handler, QObject):
    """
    Redirects Python logging records to a Qt Signal.
    """
    new_record = Signal(str, str, str, str)  # level, component, message, correlation_id

    def __init__(self, level=logging.NOTSET):
        logging.Handler.__init__(self, level)
        QObject.__init__(self)

    def emit(self, record):
        try:
            # Qt object may already be deleted during shutdown
            if not hasattr(self, 'new_record'):
                return

            msg = self.format(record)
            component = getattr(record, 'component', None) or record.name
            correlation_id = getattr(record, 'correlation_id', None) or ""

            # Simplify module names
            if component.startswith("tagwatch."):
                component = component.split(".")[-1]

            self.new_record.emit(record.levelname, component, msg, correlation_id)
        except RuntimeError:
            # Qt object deleted
            pass
        except Exception:
            self.handleError(record)
