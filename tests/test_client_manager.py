import json
import sqlite3

import pytest

from tagwatch.core.client_manager import ClientManager
from tagwatch.core.exceptions import ConfigurationError
from tagwatch.models.client_models import ClientConfig, ClientType, SubscriptionSpec
from tagwatch.protocols.base_client import BaseClient

from conftest import FakeDriver


class _Factory:
    """Builds BaseClients over fake drivers and keeps them for inspection."""

    def __init__(self):
        self.drivers = {}

    def __call__(self, config, sink_factory=None):
        if config.client_type == ClientType.UNKNOWN:
            raise ConfigurationError("unsupported")
        driver = FakeDriver()
        self.drivers[config.name] = driver
        return BaseClient(driver, name=config.name, sink_factory=sink_factory)


@pytest.fixture
def manager(tmp_path):
    factory = _Factory()
    mgr = ClientManager(config_path=str(tmp_path / "clients.json"),
                        log_directory=str(tmp_path / "logs"),
                        client_factory=factory)
    mgr.factory = factory
    return mgr


def _plc_config():
    return ClientConfig(
        name="plc1",
        client_type=ClientType.ADS,
        host="192.168.0.10",
        port=851,
        ams_net_id="192.168.0.10.1.1",
        subscriptions=[
            SubscriptionSpec(key="MAIN.wStatus", datatype="WORD", cycle_time=100),
            SubscriptionSpec(key="MAIN.fTemp", datatype="LREAL", logging=True),
        ]
    )


def test_add_and_remove(manager):
    added = []
    removed = []
    manager.on("client_added", added.append)
    manager.on("client_removed", removed.append)

    assert manager.add_client(_plc_config()) is not None
    assert manager.add_client(_plc_config()) is None
    assert manager.list_clients() == ["plc1"]
    assert manager.get_config("plc1").host == "192.168.0.10"

    manager.remove_client("plc1")
    assert manager.get_client("plc1") is None
    assert added == ["plc1"]
    assert removed == ["plc1"]


def test_save_and_load(manager, tmp_path):
    manager.add_client(_plc_config())
    manager.add_client(ClientConfig(name="broker", host="mqtt.local"))

    with open(tmp_path / "clients.json") as f:
        data = json.load(f)
    assert [c['name'] for c in data['clients']] == ["plc1", "broker"]
    assert data['clients'][0]['client_type'] == "Beckhoff ADS"

    other = ClientManager(config_path=str(tmp_path / "clients.json"), client_factory=_Factory())
    assert other.load_configuration() == 2
    config = other.get_config("plc1")
    assert config.client_type == ClientType.ADS
    assert config.subscriptions[0].datatype == "WORD"
    assert config.subscriptions[1].logging


def test_load_skips_bad_entries(tmp_path):
    path = tmp_path / "clients.json"
    path.write_text(json.dumps({'clients': [
        {'name': "good", 'client_type': "MQTT"},
        {'client_type': "MQTT"},
        {'name': "odd", 'client_type': "Modbus"},
    ]}))
    manager = ClientManager(config_path=str(path), client_factory=_Factory())
    assert manager.load_configuration() == 1
    assert manager.list_clients() == ["good"]


def test_load_missing_file(tmp_path):
    manager = ClientManager(config_path=str(tmp_path / "nope.json"), client_factory=_Factory())
    assert manager.load_configuration() == 0


def test_connect_applies_subscriptions(manager, tmp_path):
    values = []
    manager.on("value_changed", lambda name, key, value: values.append((name, key, value)))
    manager.add_client(_plc_config())

    assert manager.connect_client("plc1")
    client = manager.get_client("plc1")
    driver = manager.factory.drivers["plc1"]

    assert [key for key, _ in driver.subscribed] == ["MAIN.wStatus", "MAIN.fTemp"]
    assert driver.subscribed[0][1].cycle_time == 100
    assert client.registry.get("MAIN.fTemp").logging

    driver.push("MAIN.wStatus", 1)
    driver.push("MAIN.fTemp", 21.5)
    assert values == [
        ("plc1", "MAIN.wStatus", "(1) Hex: 00_01 | Dec: 0000_0000_0000_0001"),
        ("plc1", "MAIN.fTemp", "21.5"),
    ]

    manager.disconnect_all()
    with sqlite3.connect(str(tmp_path / "logs" / "MAIN.fTemp.db")) as conn:
        rows = [r[0] for r in conn.execute("SELECT value FROM log ORDER BY id")]
    assert rows == ["", "21.5"]


def test_connect_twice_applies_subscriptions_once(manager, caplog):
    manager.add_client(_plc_config())
    assert manager.connect_client("plc1")
    caplog.clear()

    assert manager.connect_client("plc1")
    driver = manager.factory.drivers["plc1"]
    assert driver.connect_calls == 1
    assert len(driver.subscribed) == 2
    assert "not applied" not in caplog.text


def test_connect_all_skips_disabled(manager):
    manager.add_client(ClientConfig(name="on"))
    manager.add_client(ClientConfig(name="off", enabled=False))
    assert manager.connect_all() == {"on": True}
    assert not manager.get_client("off").connected


def test_connect_unknown_client(manager):
    assert not manager.connect_client("ghost")
    assert not manager.disconnect_client("ghost")


def test_default_factory_builds_mqtt_client(tmp_path):
    pytest.importorskip("paho.mqtt.client")
    from tagwatch.protocols.mqtt import MQTTClient

    manager = ClientManager(config_path=str(tmp_path / "clients.json"))
    client = manager.add_client(ClientConfig(name="broker", host="mqtt.local", port=1884, protocol="ws"))
    assert isinstance(client, MQTTClient)
    assert client.base_url == "ws://mqtt.local:1884"
