"""Sensor configuration.

Settings come from a TOML file (``config.toml`` by default) and a handful of
environment variables that override individual keys, so container deployments
can inject broker credentials without editing the file.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from drupot.classifier import FlagPolicy
from drupot.errors import ConfigError

CREDENTIAL_POLICIES = ("plain", "hash", "redact")
BACKOFF_MODES = ("fixed", "exponential")

DEFAULT_FLAG_SIGNATURES = ["changelog_scan", "node_exploit"]
DEFAULT_PUBLIC_IP_URLS = [
    "https://api.ipify.org",
    "https://icanhazip.com",
    "https://ifconfig.me/ip",
]


@dataclass
class DrupalConfig:
    port: int = 80
    site_name: str = "Drupal"
    name_randomizer: bool = False
    version: str = "8.5.0"
    changelog_enabled: bool = False
    changelog_filepath: str = "CHANGELOG.txt"
    header: str = "Drupal 8 (https://www.drupal.org)"
    flag_signatures: List[str] = field(default_factory=lambda: list(DEFAULT_FLAG_SIGNATURES))
    max_body_bytes: int = 1024 * 1024


@dataclass
class HpfeedsConfig:
    enabled: bool = False
    host: str = ""
    port: int = 10000
    ident: str = ""
    auth: str = ""
    channel: str = "drupot.events"
    meta: str = ""
    include_request: bool = True
    credentials: str = "hash"
    queue_size: int = 10000
    reconnect_delay: float = 5.0
    reconnect_backoff: str = "fixed"
    reconnect_max_delay: float = 60.0


@dataclass
class PublicIPConfig:
    enabled: bool = False
    urls: List[str] = field(default_factory=lambda: list(DEFAULT_PUBLIC_IP_URLS))


@dataclass
class OutputConfig:
    event_log: str = ""
    event_log_max_bytes: int = 5 * 1024 * 1024
    event_log_backups: int = 1
    housekeeping_interval: int = 60
    log_level: str = "INFO"


@dataclass
class AppConfig:
    drupal: DrupalConfig = field(default_factory=DrupalConfig)
    hpfeeds: HpfeedsConfig = field(default_factory=HpfeedsConfig)
    public_ip: PublicIPConfig = field(default_factory=PublicIPConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    flag_policy: FlagPolicy = field(default_factory=FlagPolicy)


def _parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"not a boolean: {value!r}")


# (section, key, converter) for every environment override we honour.
ENV_OVERRIDES: Dict[str, tuple[str, str, Callable[[str], Any]]] = {
    "DRUPOT_PORT": ("drupal", "port", int),
    "DRUPOT_HPFEEDS_ENABLED": ("hpfeeds", "enabled", _parse_bool),
    "DRUPOT_HPFEEDS_HOST": ("hpfeeds", "host", str),
    "DRUPOT_HPFEEDS_PORT": ("hpfeeds", "port", int),
    "DRUPOT_HPFEEDS_IDENT": ("hpfeeds", "ident", str),
    "DRUPOT_HPFEEDS_SECRET": ("hpfeeds", "auth", str),
    "DRUPOT_HPFEEDS_CHANNEL": ("hpfeeds", "channel", str),
    "DRUPOT_LOG_LEVEL": ("output", "log_level", str),
}


def _build_section(cls: type, raw: Any, name: str) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"[{name}] must be a table")
    known = cls.__dataclass_fields__
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ConfigError(f"[{name}] has unknown keys: {', '.join(unknown)}")
    defaults = cls()
    section = cls(**raw)
    for key in known:
        value = getattr(section, key)
        default = getattr(defaults, key)
        if isinstance(default, bool):
            if not isinstance(value, bool):
                raise ConfigError(f"[{name}] {key} must be a boolean")
        elif isinstance(default, float):
            # TOML writes 5 and 5.0 differently, accept both.
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"[{name}] {key} must be a number")
            setattr(section, key, float(value))
        elif isinstance(default, int):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"[{name}] {key} must be an integer")
        elif isinstance(default, str):
            if not isinstance(value, str):
                raise ConfigError(f"[{name}] {key} must be a string")
        elif isinstance(default, list):
            if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
                raise ConfigError(f"[{name}] {key} must be a list of strings")
    return section


def apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> None:
    sections = {"drupal": config.drupal, "hpfeeds": config.hpfeeds, "output": config.output}
    for var, (section, key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            setattr(sections[section], key, convert(raw))
        except ValueError as exc:
            raise ConfigError(f"{var}: {exc}") from exc


def validate(config: AppConfig) -> None:
    """Refuse configurations that would leave the sensor half working."""
    hp = config.hpfeeds
    if not 0 < config.drupal.port < 65536:
        raise ConfigError(f"[drupal] port out of range: {config.drupal.port}")
    if hp.enabled:
        missing = [key for key in ("host", "ident", "auth", "channel") if not getattr(hp, key)]
        if missing:
            raise ConfigError(f"hpfeeds is enabled but missing: {', '.join(missing)}")
        if not 0 < hp.port < 65536:
            raise ConfigError(f"[hpfeeds] port out of range: {hp.port}")
    if hp.credentials not in CREDENTIAL_POLICIES:
        raise ConfigError(
            f"[hpfeeds] credentials must be one of {', '.join(CREDENTIAL_POLICIES)}, got {hp.credentials!r}"
        )
    if hp.reconnect_backoff not in BACKOFF_MODES:
        raise ConfigError(
            f"[hpfeeds] reconnect_backoff must be one of {', '.join(BACKOFF_MODES)}, got {hp.reconnect_backoff!r}"
        )
    if hp.reconnect_delay <= 0 or hp.reconnect_max_delay < hp.reconnect_delay:
        raise ConfigError("[hpfeeds] reconnect delays must be positive and max >= delay")
    if config.drupal.max_body_bytes <= 0:
        raise ConfigError("[drupal] max_body_bytes must be positive")
    if hp.queue_size < 0:
        raise ConfigError("[hpfeeds] queue_size must be >= 0")
    if config.public_ip.enabled and not config.public_ip.urls:
        raise ConfigError("[fetch_public_ip] is enabled but has no urls")
    try:
        config.flag_policy = FlagPolicy.from_names(config.drupal.flag_signatures)
    except ValueError as exc:
        raise ConfigError(f"[drupal] flag_signatures: {exc}") from exc


def parse_config(data: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an AppConfig from already-decoded TOML data."""
    config = AppConfig(
        drupal=_build_section(DrupalConfig, data.get("drupal"), "drupal"),
        hpfeeds=_build_section(HpfeedsConfig, data.get("hpfeeds"), "hpfeeds"),
        public_ip=_build_section(PublicIPConfig, data.get("fetch_public_ip"), "fetch_public_ip"),
        output=_build_section(OutputConfig, data.get("output"), "output"),
    )
    apply_env_overrides(config, os.environ if environ is None else environ)
    validate(config)
    return config


def load_config(path: str, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    try:
        with open(path, "rb") as handle:
            data = tomllib.load(handle)
    except OSError as exc:
        raise ConfigError(f"unable to read config file {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"unable to parse config file {path}: {exc}") from exc
    return parse_config(data, environ)
