from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Set


class RWLock:
    """Reader/writer lock: many readers or one writer, writers get priority."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class EngagementStore:
    """Source IPs seen doing something reportable.

    The store only grows: once an address is flagged it stays flagged for the
    life of the process. Nothing is persisted across restarts.
    """

    def __init__(self) -> None:
        self._lock = RWLock()
        self._seen: Dict[str, bool] = {}

    def flag(self, ip: str) -> bool:
        """Mark ip as flagged. Returns True only the first time."""
        with self._lock.read():
            if self._seen.get(ip):
                return False
        with self._lock.write():
            if self._seen.get(ip):
                return False
            self._seen[ip] = True
            return True

    def is_flagged(self, ip: str) -> bool:
        with self._lock.read():
            return self._seen.get(ip, False)

    def __contains__(self, ip: object) -> bool:
        return isinstance(ip, str) and self.is_flagged(ip)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._seen)

    def snapshot(self) -> Set[str]:
        with self._lock.read():
            return {ip for ip, flagged in self._seen.items() if flagged}

    def reset(self) -> None:
        """Forget every address. Only meant for tests."""
        with self._lock.write():
            self._seen.clear()
