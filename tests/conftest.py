from __future__ import annotations

import copy
import time
from typing import Any, Callable, Dict, List, Tuple

import pytest

from drupot.config import parse_config
from drupot.identity import SensorIdentity
from drupot.sensor import build_sensor

ATTACKER = {"REMOTE_ADDR": "203.0.113.5", "REMOTE_PORT": "41000"}

BASE_CONFIG: Dict[str, Any] = {
    "drupal": {"port": 8080, "site_name": "Test Site", "version": "8.5.0"},
    "hpfeeds": {
        "enabled": True,
        "host": "broker.test",
        "port": 10000,
        "ident": "drupot-test",
        "auth": "s3cret",
        "channel": "drupot.events",
        "meta": "test sensor",
    },
}


class FakeClient:
    def __init__(self, fail_on: int = 0) -> None:
        self.published: List[Tuple[str, bytes]] = []
        self.closed = False
        self.peer_closed = False
        self._fail_on = fail_on
        self._calls = 0

    def publish(self, channel: str, payload: bytes) -> None:
        self._calls += 1
        if self._fail_on and self._calls == self._fail_on:
            raise ConnectionResetError("broker went away")
        self.published.append((channel, payload))

    def closed_by_peer(self) -> bool:
        return self.peer_closed

    def close(self) -> None:
        self.closed = True


class FlakyFactory:
    """Refuses the first ``refusals`` connects, then hands out FakeClients."""

    def __init__(self, refusals: int = 0, fail_on: int = 0) -> None:
        self.refusals = refusals
        self.fail_on = fail_on
        self.attempts = 0
        self.clients: List[FakeClient] = []

    def __call__(self, settings: Any) -> FakeClient:
        self.attempts += 1
        if self.refusals < 0 or self.attempts <= self.refusals:
            raise ConnectionRefusedError("connection refused")
        # only the first client misbehaves
        client = FakeClient(fail_on=self.fail_on if not self.clients else 0)
        self.clients.append(client)
        return client

    def published(self) -> List[bytes]:
        return [payload for client in self.clients for _, payload in client.published]


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def merged_config(**sections: Dict[str, Any]) -> Dict[str, Any]:
    data = copy.deepcopy(BASE_CONFIG)
    for name, values in sections.items():
        data.setdefault(name, {}).update(values)
    return data


@pytest.fixture()
def make_sensor():
    def _make(factory: Any = None, **sections: Dict[str, Any]):
        config = parse_config(merged_config(**sections), environ={})
        identity = SensorIdentity(uuid="11111111-2222-3333-4444-555555555555", ip="198.51.100.7")
        return build_sensor(config, identity=identity, client_factory=factory or FlakyFactory())

    return _make


@pytest.fixture()
def sensor(make_sensor):
    return make_sensor()


@pytest.fixture()
def client(sensor):
    return sensor.app.test_client()
