"""Drupot sensor entry point.

Loads the config, resolves the sensor identity, starts the hpfeeds link and
housekeeping threads, then serves the fake Drupal site.
"""

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import Flask

from drupot import __version__
from drupot.broker import BrokerLink, BrokerSettings, ClientFactory, hpfeeds_client_factory
from drupot.channel import PublicationChannel
from drupot.classifier import RequestClassifier
from drupot.config import AppConfig, load_config
from drupot.errors import ConfigError, PublicIPError
from drupot.eventlog import EventLog
from drupot.events import EventNormalizer
from drupot.identity import SensorIdentity, new_identity, silly_name
from drupot.pipeline import EventPipeline
from drupot.publicip import get_public_ip
from drupot.store import EngagementStore
from drupot.web import create_app

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def mask(secret: str) -> str:
    if len(secret) <= 4:
        return "*" * len(secret)
    return secret[:2] + "*" * (len(secret) - 4) + secret[-2:]


@dataclass
class Sensor:
    config: AppConfig
    identity: SensorIdentity
    store: EngagementStore
    channel: PublicationChannel
    pipeline: EventPipeline
    app: Flask
    link: Optional[BrokerLink] = None
    event_log: Optional[EventLog] = None

    def stats(self) -> Dict[str, Any]:
        snapshot: Dict[str, Any] = {"flagged_sources": len(self.store)}
        snapshot.update(self.channel.stats())
        if self.link is not None:
            snapshot.update(self.link.stats())
        return snapshot

    def housekeeping(self) -> None:
        """One maintenance pass: rotate the event log and report counters."""
        if self.event_log is not None:
            try:
                if self.event_log.rotate_if_needed():
                    logger.info("Rotated event log %s", self.event_log.path)
            except OSError as exc:
                logger.warning("Unable to rotate event log %s: %s", self.event_log.path, exc)
        logger.info("Stats: %s", " ".join(f"{k}={v}" for k, v in sorted(self.stats().items())))

    def start_background(self, stop: threading.Event) -> threading.Thread:
        if self.link is not None:
            self.link.start()
        interval = max(5, self.config.output.housekeeping_interval)

        def loop() -> None:
            while not stop.wait(interval):
                try:
                    self.housekeeping()
                except Exception:
                    # background maintenance should never crash the process
                    logger.exception("Housekeeping failed")

        thread = threading.Thread(target=loop, name="drupot-maint", daemon=True)
        thread.start()
        return thread


def build_sensor(
    config: AppConfig,
    identity: Optional[SensorIdentity] = None,
    client_factory: ClientFactory = hpfeeds_client_factory,
) -> Sensor:
    """Wire every component together without starting any thread."""
    if config.drupal.name_randomizer:
        config.drupal.site_name = silly_name()

    if identity is None:
        ip = None
        if config.public_ip.enabled:
            ip = get_public_ip(config.public_ip.urls)
        identity = new_identity(ip)

    store = EngagementStore()
    channel = PublicationChannel(maxsize=config.hpfeeds.queue_size, enabled=config.hpfeeds.enabled)
    event_log = None
    if config.output.event_log:
        event_log = EventLog(
            config.output.event_log,
            max_bytes=config.output.event_log_max_bytes,
            backups=config.output.event_log_backups,
        )
    pipeline = EventPipeline(
        RequestClassifier(store, config.flag_policy),
        EventNormalizer.from_config(identity, config),
        channel,
        event_log,
    )
    link = None
    if config.hpfeeds.enabled:
        link = BrokerLink(channel, BrokerSettings.from_config(config.hpfeeds), client_factory)

    app = create_app(config, identity, pipeline)
    return Sensor(config, identity, store, channel, pipeline, app, link, event_log)


def log_banner(sensor: Sensor) -> None:
    config = sensor.config
    logger.info("Running Drupot %s", __version__)
    logger.info("Sensor %s at %s, site %r (Drupal %s)",
                sensor.identity.uuid, sensor.identity.ip, config.drupal.site_name, config.drupal.version)
    logger.info("Flagging sources on: %s",
                ", ".join(sorted(sig.value for sig in config.flag_policy.signatures)))
    hp = config.hpfeeds
    if hp.enabled:
        logger.info("hpfeeds broker %s:%d ident=%s auth=%s channel=%s",
                    hp.host, hp.port, hp.ident, mask(hp.auth), hp.channel)
    else:
        logger.info("hpfeeds publishing disabled")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drupal honeypot sensor")
    parser.add_argument("-c", "--config", default="config.toml", help="load given config file")
    parser.add_argument("--version", action="version", version=f"drupot {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    logger.info("Loading config file: %s", args.config)
    try:
        config = load_config(args.config)
        logging.getLogger().setLevel(config.output.log_level.upper())
        sensor = build_sensor(config)
    except (ConfigError, PublicIPError) as exc:
        logger.error("Refusing to start: %s", exc)
        return 1
    except ValueError as exc:
        # setLevel rejects unknown level names
        logger.error("Refusing to start: invalid log level: %s", exc)
        return 1

    log_banner(sensor)
    stop = threading.Event()
    sensor.start_background(stop)
    try:
        sensor.app.run(host="0.0.0.0", port=config.drupal.port, threaded=True)
    finally:
        stop.set()
        if sensor.link is not None:
            sensor.link.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
