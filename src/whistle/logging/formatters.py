"""Log formatters for Whistle."""

import json
import time
import traceback
from typing import Optional

from .core import LogEntry, LogFormatter


class JSONFormatter(LogFormatter):
    """JSON log formatter."""

    def __init__(
        self,
        include_context: bool = True,
        include_extra: bool = True,
        include_thread: bool = False,
        timestamp_format: str = "iso",
        indent: Optional[int] = None,
    ):
        self.include_context = include_context
        self.include_extra = include_extra
        self.include_thread = include_thread
        self.timestamp_format = timestamp_format
        self.indent = indent

    def format(self, entry: LogEntry) -> str:
        """Format log entry as JSON."""
        data = {
            "timestamp": self._format_timestamp(entry.timestamp),
            "level": entry.level.value,
            "logger": entry.logger_name,
        }

        if self.include_context:
            data["context"] = entry.context.to_dict()

        if entry.exception:
            data["exception"] = {
                "type": type(entry.exception).__name__,
                "message": str(entry.exception),
                "traceback": "".join(
                    traceback.format_exception(
                        type(entry.exception),
                        entry.exception,
                        entry.exception.__traceback__,
                    )
                ),
            }

        if self.include_extra and entry.extra:
            data["extra"] = entry.extra

        if self.include_thread:
            data["thread_id"] = entry.thread_id
            data["process_id"] = entry.process_id

        data["message"] = entry.message

        return json.dumps(data, indent=self.indent, default=str)

    def _format_timestamp(self, timestamp: float) -> str:
        """Format timestamp."""
        if self.timestamp_format == "iso":
            return (
                time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(timestamp))
                + f".{int((timestamp % 1) * 1000000):06d}Z"
            )
        elif self.timestamp_format == "unix":
            return str(timestamp)
        else:
            return time.strftime(self.timestamp_format, time.gmtime(timestamp))


class TextFormatter(LogFormatter):
    """Human-readable single line formatter."""

    def __init__(
        self,
        timestamp_format: str = "%Y-%m-%d %H:%M:%S",
        include_extra: bool = True,
    ):
        self.timestamp_format = timestamp_format
        self.include_extra = include_extra

    def format(self, entry: LogEntry) -> str:
        """Format log entry as text."""
        line = (
            f"{time.strftime(self.timestamp_format, time.localtime(entry.timestamp))} "
            f"[{entry.level.value.upper()}] {entry.logger_name}: {entry.message}"
        )

        if entry.context.component:
            line += f" component={entry.context.component}"
        if entry.context.operation:
            line += f" operation={entry.context.operation}"

        if self.include_extra and entry.extra:
            line += " " + " ".join(f"{k}={v}" for k, v in sorted(entry.extra.items()))

        if entry.exception:
            line += f" exception={type(entry.exception).__name__}: {entry.exception}"

        return line
