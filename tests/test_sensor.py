import logging

from conftest import ATTACKER
from drupot import sensor as sensor_module
from drupot.config import parse_config
from drupot.sensor import build_sensor, main, mask


def test_build_sensor_wires_components(sensor):
    assert sensor.link is not None
    assert sensor.channel.enabled
    assert sensor.event_log is None
    assert sensor.pipeline.classifier.store is sensor.store


def test_event_log_receives_events(make_sensor, tmp_path):
    path = tmp_path / "events.jsonl"
    sensor = make_sensor(output={"event_log": str(path)})
    sensor.app.test_client().get("/CHANGELOG.txt", environ_base=ATTACKER)
    assert "drupal.changelog_scan" in path.read_text()


def test_housekeeping_reports_stats(sensor, caplog):
    caplog.set_level(logging.INFO, logger="drupot.sensor")
    sensor.app.test_client().get("/CHANGELOG.txt", environ_base=ATTACKER)
    sensor.housekeeping()
    assert "flagged_sources=1" in caplog.text
    assert "state=disconnected" in caplog.text


def test_public_ip_lookup_sets_sensor_address(monkeypatch):
    monkeypatch.setattr(sensor_module, "get_public_ip", lambda urls: "203.0.113.200")
    config = parse_config({"fetch_public_ip": {"enabled": True}}, environ={})
    sensor = build_sensor(config)
    assert sensor.identity.ip == "203.0.113.200"
    assert sensor.identity.uuid


def test_name_randomizer(monkeypatch):
    monkeypatch.setattr(sensor_module, "silly_name", lambda: "Wobbly Teapot")
    config = parse_config({"drupal": {"name_randomizer": True}}, environ={})
    sensor = build_sensor(config)
    assert config.drupal.site_name == "Wobbly Teapot"
    assert b"Wobbly Teapot" in sensor.app.test_client().get("/").data


def test_main_refuses_bad_config(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[hpfeeds]\nenabled = true\nhost = "broker"\n')
    assert main(["-c", str(path)]) == 1


def test_main_refuses_missing_config(tmp_path):
    assert main(["-c", str(tmp_path / "missing.toml")]) == 1


def test_mask():
    assert mask("changeme") == "ch****me"
    assert mask("abc") == "***"
