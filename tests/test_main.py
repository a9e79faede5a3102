import json

import pytest

from tagwatch import main as monitor


def test_missing_configuration(tmp_path, monkeypatch):
    monkeypatch.setattr(monitor, "setup_logging", lambda level: None)
    assert monitor.main(["--config", str(tmp_path / "none.json")]) == 1


def test_no_client_connects(tmp_path, monkeypatch):
    pytest.importorskip("paho.mqtt.client")
    monkeypatch.setattr(monitor, "setup_logging", lambda level: None)
    path = tmp_path / "clients.json"
    path.write_text(json.dumps({'clients': [{'name': "off", 'client_type': "MQTT", 'enabled': False}]}))
    assert monitor.main(["--config", str(path), "--log-dir", str(tmp_path / "logs")]) == 2


def test_parser_defaults():
    args = monitor.build_parser().parse_args([])
    assert args.config == "clients.json"
    assert args.log_level == "INFO"
