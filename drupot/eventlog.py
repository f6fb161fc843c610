from __future__ import annotations

import os
import threading


class EventLog:
    """Append-only JSON-lines file of published events, rotated by size."""

    def __init__(self, path: str, max_bytes: int = 5 * 1024 * 1024, backups: int = 1) -> None:
        self.path = os.path.abspath(path)
        self.max_bytes = max_bytes
        self.backups = backups
        self._lock = threading.Lock()

    def write(self, payload: bytes) -> None:
        directory = os.path.dirname(self.path)
        with self._lock:
            os.makedirs(directory, exist_ok=True)
            with open(self.path, "ab") as handle:
                handle.write(payload.rstrip(b"\n") + b"\n")

    def rotate_if_needed(self) -> bool:
        """Rotate the file once it exceeds max_bytes. Returns True if rotated."""
        if self.max_bytes <= 0 or not os.path.exists(self.path):
            return False
        try:
            if os.path.getsize(self.path) <= self.max_bytes:
                return False
        except OSError:
            return False

        with self._lock:
            for index in range(max(self.backups, 0), 0, -1):
                src = f"{self.path}.{index - 1}" if index > 1 else self.path
                dst = f"{self.path}.{index}"
                if os.path.exists(src):
                    os.replace(src, dst)
            # recreate the active log file
            open(self.path, "w", encoding="utf-8").close()
        return True
