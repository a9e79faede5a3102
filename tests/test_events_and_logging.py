import logging

from tagwatch.core.events import EventEmitter
from tagwatch.core.log import SUCCESS, ClientLogAdapter, setup_logging


def test_listener_errors_do_not_stop_others():
    emitter = EventEmitter()
    received = []

    def broken(value):
        raise ValueError("listener bug")

    emitter.on("tick", broken)
    emitter.on("tick", received.append)
    emitter.emit("tick", 1)
    assert received == [1]


def test_off_and_clear():
    emitter = EventEmitter()
    received = []
    emitter.on("tick", received.append)
    emitter.off("tick", received.append)
    emitter.off("tick", received.append)
    emitter.emit("tick", 1)
    assert received == []

    emitter.on("tick", received.append)
    emitter.clear()
    emitter.emit("tick", 2)
    assert received == []


def test_client_log_adapter(caplog):
    caplog.set_level(logging.DEBUG, logger="tagwatch.tests")
    log = ClientLogAdapter(logging.getLogger("tagwatch.tests"), "MQTT Client", "abc")

    log.success("Connected")
    log.fatal("Not connected")

    first, second = caplog.records
    assert first.levelno == SUCCESS
    assert first.levelname == "SUCCESS"
    assert first.getMessage() == "[MQTT Client] Connected (abc)"
    assert first.component == "MQTT Client"
    assert first.correlation_id == "abc"
    assert second.levelno == logging.CRITICAL


def test_correlation_id_can_change(caplog):
    caplog.set_level(logging.INFO, logger="tagwatch.tests")
    log = ClientLogAdapter(logging.getLogger("tagwatch.tests"), "ADS Client")
    log.info("no id")
    log.correlation_id = "xyz"
    log.info("with id")

    assert [r.getMessage() for r in caplog.records] == ["[ADS Client] no id", "[ADS Client] with id (xyz)"]
    assert caplog.records[1].correlation_id == "xyz"


def test_setup_logging_accepts_level_names(monkeypatch):
    calls = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))
    setup_logging("success")
    assert calls['level'] == SUCCESS
