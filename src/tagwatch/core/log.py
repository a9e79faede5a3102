"""
Logging helpers shared by clients and the registry.

Everything goes through the standard ``logging`` module. Two additions:

- a ``SUCCESS`` level (25) between INFO and WARNING, used for completed
  connections and similar positive outcomes;
- ``ClientLogAdapter``, which stamps every record with the emitting
  ``component`` (e.g. "MQTT Client") and a ``correlation_id`` (the client id)
  so records from several simultaneous connections can be told apart.
"""
import logging
from typing import Optional

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


class ClientLogAdapter(logging.LoggerAdapter):
    """LoggerAdapter adding component/correlation_id to each record."""

    def __init__(self, logger: logging.Logger, component: str, correlation_id: Optional[str] = None):
        super().__init__(logger, {'component': component, 'correlation_id': correlation_id or ""})

    @property
    def component(self) -> str:
        return self.extra['component']

    @property
    def correlation_id(self) -> str:
        return self.extra['correlation_id']

    @correlation_id.setter
    def correlation_id(self, value: Optional[str]):
        self.extra = dict(self.extra, correlation_id=value or "")

    def process(self, msg, kwargs):
        extra = dict(kwargs.get('extra') or {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        if self.extra['correlation_id']:
            return f"[{self.extra['component']}] {msg} ({self.extra['correlation_id']})", kwargs
        return f"[{self.extra['component']}] {msg}", kwargs

    def success(self, msg, *args, **kwargs):
        self.log(SUCCESS, msg, *args, **kwargs)

    def fatal(self, msg, *args, **kwargs):
        self.log(logging.CRITICAL, msg, *args, **kwargs)


def setup_logging(level=logging.INFO, fmt: str = DEFAULT_FORMAT):
    """Configure the root logger for command line use."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.basicConfig(level=level, format=fmt)
