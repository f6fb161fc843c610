"""Outbound hpfeeds link.

One background thread owns the broker connection. It connects, drains the
publication channel onto the wire and, whenever anything goes wrong, drops
the connection, waits and tries again. A broker that is down never takes the
sensor down with it.
"""

from __future__ import annotations

import enum
import logging
import select
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from hpfeeds.client import Client

from drupot.channel import PublicationChannel

logger = logging.getLogger(__name__)

# How long the drain loop waits on an empty channel before checking for stop.
POLL_INTERVAL = 0.5


class LinkState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class BrokerSettings:
    host: str
    port: int
    ident: str
    secret: str
    channel: str
    reconnect_delay: float = 5.0
    reconnect_backoff: str = "fixed"
    reconnect_max_delay: float = 60.0

    @classmethod
    def from_config(cls, hp: Any) -> "BrokerSettings":
        return cls(
            host=hp.host,
            port=hp.port,
            ident=hp.ident,
            secret=hp.auth,
            channel=hp.channel,
            reconnect_delay=hp.reconnect_delay,
            reconnect_backoff=hp.reconnect_backoff,
            reconnect_max_delay=hp.reconnect_max_delay,
        )


ClientFactory = Callable[[BrokerSettings], Any]


class SingleAttemptClient(Client):
    """Blocking hpfeeds client that connects once and lets failures surface.

    The stock client retries inside its constructor forever; here the first
    socket or auth error reaches the caller so the link owns the retry loop.
    """

    def tryconnect(self) -> None:
        with self.connecting_lock:
            self.connect()

    def closed_by_peer(self) -> bool:
        """True once the broker has closed the session.

        A publish-only client never reads, so an idle session that the broker
        dropped would otherwise look alive until the next write vanished.
        """
        sock = self.s
        if sock is None:
            return True
        try:
            readable, _, _ = select.select([sock], [], [], 0)
            if not readable:
                return False
            data = sock.recv(4096)
        except OSError:
            return True
        if data:
            # broker notices (errors, info) are of no use to a publisher
            logger.debug("Discarding %d bytes from hpfeeds broker", len(data))
            return False
        return True


def hpfeeds_client_factory(settings: BrokerSettings) -> Any:
    """Open a blocking hpfeeds session, raising if the single attempt fails."""
    return SingleAttemptClient(settings.host, settings.port, settings.ident, settings.secret, reconnect=False)


class BrokerLink:
    def __init__(
        self,
        channel: PublicationChannel,
        settings: BrokerSettings,
        client_factory: ClientFactory = hpfeeds_client_factory,
    ) -> None:
        self.channel = channel
        self.settings = settings
        self.client_factory = client_factory
        self._state = LinkState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._stop = threading.Event()
        self._connected = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._client: Any = None
        self._delay = settings.reconnect_delay
        self.published = 0
        self.failed = 0
        self.connects = 0
        self.connect_failures = 0

    @property
    def state(self) -> LinkState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: LinkState) -> None:
        with self._state_lock:
            self._state = state
        if state is LinkState.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        return self._connected.wait(timeout)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="hpfeeds-link", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
        self._close_client()
        self._set_state(LinkState.DISCONNECTED)

    def next_delay(self) -> float:
        """Delay before the next attempt; doubles per failure in exponential mode."""
        delay = self._delay
        if self.settings.reconnect_backoff == "exponential":
            self._delay = min(self._delay * 2, self.settings.reconnect_max_delay)
        return delay

    def _connect(self) -> bool:
        self._set_state(LinkState.CONNECTING)
        try:
            self._client = self.client_factory(self.settings)
        except Exception as exc:
            self.connect_failures += 1
            self._set_state(LinkState.DISCONNECTED)
            logger.warning(
                "Unable to connect to hpfeeds broker %s:%d: %s",
                self.settings.host, self.settings.port, exc,
            )
            return False
        self.connects += 1
        self._delay = self.settings.reconnect_delay
        self._set_state(LinkState.CONNECTED)
        logger.info(
            "Connected to hpfeeds broker %s:%d as %s",
            self.settings.host, self.settings.port, self.settings.ident,
        )
        return True

    def _close_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as exc:
            logger.debug("Error closing hpfeeds client: %s", exc)

    def _drain(self) -> None:
        """Publish until the connection breaks or the link is stopped."""
        while not self._stop.is_set():
            payload = self.channel.get(timeout=POLL_INTERVAL)
            if payload is None:
                if self._client.closed_by_peer():
                    logger.warning("hpfeeds broker closed the session, reconnecting")
                    return
                continue
            try:
                self._client.publish(self.settings.channel, payload)
            except Exception as exc:
                # at-most-once: the event that hit the broken socket is gone
                self.failed += 1
                logger.warning("hpfeeds publish failed, reconnecting: %s", exc)
                return
            self.published += 1

    def run(self) -> None:
        while not self._stop.is_set():
            if self._connect():
                self._drain()
                self._close_client()
                self._set_state(LinkState.DISCONNECTED)
                if self._stop.is_set():
                    break
                logger.info("Attempting to reconnect to hpfeeds broker...")
            self._stop.wait(self.next_delay())

    def stats(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "published": self.published,
            "failed": self.failed,
            "connects": self.connects,
            "connect_failures": self.connect_failures,
        }
