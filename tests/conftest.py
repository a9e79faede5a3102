import os
import sys
import threading

import pytest

# Run Qt headless when no display is available
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# Allow running the tests from a source checkout without installing
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

from tagwatch.protocols.base_client import BaseClient, TransportDriver


class FakeDriver(TransportDriver):
    """In-memory transport: records every call, hands out integer handles."""

    def __init__(self):
        super().__init__()
        self.host = "fake-host"
        self.port = 1
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.subscribed = []
        self.unsubscribed = []
        self.published = []
        self.connect_error = None
        self.subscribe_error = None
        self.unsubscribe_error = None
        self.publish_error = None
        # When set, subscribe() blocks until the gate opens
        self.gate = None
        self.entered = threading.Event()
        # Same for publish()
        self.publish_gate = None
        self.publish_entered = threading.Event()
        self._next_handle = 100

    def connect(self):
        self.connect_calls += 1
        if self.connect_error:
            raise self.connect_error

    def disconnect(self):
        self.disconnect_calls += 1

    def subscribe(self, key, options):
        self.subscribed.append((key, options))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.subscribe_error:
            raise self.subscribe_error
        self._next_handle += 1
        return self._next_handle

    def unsubscribe(self, handle):
        self.unsubscribed.append(handle)
        if self.unsubscribe_error:
            raise self.unsubscribe_error

    def publish(self, key, value):
        self.publish_entered.set()
        if self.publish_gate is not None:
            self.publish_gate.wait(5)
        if self.publish_error:
            raise self.publish_error
        self.published.append((key, value))

    def push(self, handle_or_key, raw, timestamp=None):
        self._emit_change(handle_or_key, raw, timestamp)

    def lose_connection(self, reason="socket closed"):
        self._emit_connection_lost(reason)


class FakeSink:
    def __init__(self, key=None):
        self.key = key
        self.rows = []
        self.closed = False

    def write(self, key, value, timestamp):
        self.rows.append((key, value))

    def close(self):
        self.closed = True


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def sinks():
    """Sink factory that remembers every sink it created."""
    created = {}

    def factory(key):
        created[key] = FakeSink(key)
        return created[key]

    factory.created = created
    return factory


@pytest.fixture
def client(driver, sinks):
    c = BaseClient(driver, name="test", sink_factory=sinks)
    assert c.connect()
    return c
