from __future__ import annotations

import logging
import queue
import threading
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 10000


class PublicationChannel:
    """Hand serialized events from request threads to the broker thread.

    ``submit`` never blocks: when the queue is full the event is dropped and
    counted, when publishing is disabled it is discarded and counted.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE, enabled: bool = True) -> None:
        self.enabled = enabled
        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=maxsize)
        self._counter_lock = threading.Lock()
        self._submitted = 0
        self._dropped = 0
        self._discarded = 0

    def submit(self, payload: bytes) -> bool:
        if not self.enabled:
            with self._counter_lock:
                self._discarded += 1
            return False
        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            with self._counter_lock:
                self._dropped += 1
                dropped = self._dropped
            # one line per thousand keeps a flood from flooding the log too
            if dropped == 1 or dropped % 1000 == 0:
                logger.warning("Publication queue full, %d events dropped so far", dropped)
            return False
        with self._counter_lock:
            self._submitted += 1
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """Next payload for the consumer, or None if nothing arrived in time."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    @property
    def dropped(self) -> int:
        with self._counter_lock:
            return self._dropped

    @property
    def discarded(self) -> int:
        with self._counter_lock:
            return self._discarded

    def qsize(self) -> int:
        return self._queue.qsize()

    def stats(self) -> Dict[str, int]:
        with self._counter_lock:
            return {
                "queued": self._queue.qsize(),
                "submitted": self._submitted,
                "dropped": self._dropped,
                "discarded": self._discarded,
            }
