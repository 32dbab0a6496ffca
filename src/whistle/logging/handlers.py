"""Log handlers for Whistle."""

import os
import sys
import threading
from typing import Any, Dict, List

from .core import LogEntry, LogHandler


class FileHandler(LogHandler):
    """File log handler."""

    def __init__(
        self,
        filename: str = "whistle.log",
        mode: str = "a",
        encoding: str = "utf-8",
        delay: bool = True,
    ):
        super().__init__()
        self.filename = filename
        self.mode = mode
        self.encoding = encoding
        self.stream = None

        if not delay:
            self._open()

    def _open(self) -> None:
        """Open file stream."""
        if self.stream is None:
            directory = os.path.dirname(self.filename)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.stream = open(self.filename, self.mode, encoding=self.encoding)

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to file."""
        with self._lock:
            if self.stream is None:
                self._open()

            self.stream.write(self.format(entry) + "\n")
            self.stream.flush()

    def close(self) -> None:
        """Close handler."""
        with self._lock:
            if self.stream is not None:
                self.stream.close()
                self.stream = None


class ConsoleHandler(LogHandler):
    """Console log handler writing to stderr."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to console."""
        with self._lock:
            stream = self.stream or sys.stderr
            stream.write(self.format(entry) + "\n")
            stream.flush()


class MemoryHandler(LogHandler):
    """Memory log handler, mostly useful in tests."""

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: List[Dict[str, Any]] = []
        self._lock = threading.RLock()

    def emit(self, entry: LogEntry) -> None:
        """Emit log entry to memory."""
        with self._lock:
            self.buffer.append(
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "extra": dict(entry.extra),
                    "formatted": self.format(entry),
                }
            )

            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self) -> List[Dict[str, Any]]:
        """Get all logs from memory."""
        with self._lock:
            return self.buffer.copy()

    def clear_logs(self) -> None:
        """Clear all logs from memory."""
        with self._lock:
            self.buffer.clear()

    def close(self) -> None:
        """Close handler."""
        with self._lock:
            self.buffer.clear()
