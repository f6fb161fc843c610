import pytest

from conftest import merged_config
from drupot.classifier import Signature
from drupot.config import AppConfig, load_config, parse_config
from drupot.errors import ConfigError

EXAMPLE = """
[drupal]
port = 8080
site_name = "Intranet"
flag_signatures = ["changelog_scan", "login_scan"]

[hpfeeds]
enabled = true
host = "hpfeeds.example.org"
port = 10000
ident = "drupot"
auth = "changeme"
channel = "drupot.events"
reconnect_delay = 2

[fetch_public_ip]
enabled = false
urls = ["https://api.ipify.org"]
"""


def test_load_example(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(EXAMPLE)
    config = load_config(str(path), environ={})
    assert isinstance(config, AppConfig)
    assert config.drupal.port == 8080
    assert config.drupal.site_name == "Intranet"
    assert config.hpfeeds.reconnect_delay == 2.0
    assert config.hpfeeds.credentials == "hash"
    assert config.flag_policy.signatures == {Signature.CHANGELOG_SCAN, Signature.LOGIN_SCAN}


def test_defaults_without_sections():
    config = parse_config({}, environ={})
    assert config.drupal.port == 80
    assert not config.hpfeeds.enabled
    assert config.flag_policy.flags(Signature.NODE_EXPLOIT)
    assert not config.flag_policy.flags(Signature.LOGIN_SCAN)


def test_environment_overrides():
    config = parse_config(
        merged_config(),
        environ={"DRUPOT_HPFEEDS_SECRET": "from-env", "DRUPOT_PORT": "8888", "DRUPOT_HPFEEDS_ENABLED": "no"},
    )
    assert config.hpfeeds.auth == "from-env"
    assert config.drupal.port == 8888
    assert config.hpfeeds.enabled is False


def test_bad_environment_value():
    with pytest.raises(ConfigError):
        parse_config({}, environ={"DRUPOT_PORT": "eighty"})


def test_missing_broker_credentials_when_enabled():
    data = merged_config(hpfeeds={"auth": ""})
    with pytest.raises(ConfigError, match="auth"):
        parse_config(data, environ={})


def test_missing_credentials_are_fine_when_disabled():
    config = parse_config({"hpfeeds": {"enabled": False}}, environ={})
    assert config.hpfeeds.host == ""


def test_unparseable_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[drupal\nport = ")
    with pytest.raises(ConfigError, match="unable to parse"):
        load_config(str(path), environ={})


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="unable to read"):
        load_config(str(tmp_path / "nope.toml"), environ={})


@pytest.mark.parametrize(
    "section,values",
    [
        ("drupal", {"port": "80"}),
        ("drupal", {"changelog_enabled": "yes"}),
        ("drupal", {"flag_signatures": ["bogus"]}),
        ("drupal", {"bogus_key": 1}),
        ("drupal", {"max_body_bytes": 0}),
        ("hpfeeds", {"credentials": "rot13"}),
        ("hpfeeds", {"reconnect_backoff": "random"}),
        ("hpfeeds", {"reconnect_delay": 0}),
        ("hpfeeds", {"port": 70000}),
        ("fetch_public_ip", {"enabled": True, "urls": []}),
    ],
)
def test_invalid_values(section, values):
    with pytest.raises(ConfigError):
        parse_config(merged_config(**{section: values}), environ={})
