"""Core logging interfaces and data structures for Whistle.

Protocol components emit structured entries (leaf inserted, nullifier spent,
contribution accepted) through a process-wide ``LogManager``. Entries carry a
``LogContext`` naming the component and operation plus free-form ``extra``
fields, and are routed to named handlers listed in the active ``LogConfig``.
"""

import json
import os
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]

    @classmethod
    def from_name(cls, name: str) -> "LogLevel":
        """Parse a level name such as ``"info"`` or ``"WARNING"``."""
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown log level: {name!r}") from None


_LEVEL_RANKS = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARNING: 30,
    LogLevel.ERROR: 40,
    LogLevel.CRITICAL: 50,
}


@dataclass
class LogContext:
    """Log context information."""

    component: Optional[str] = None
    operation: Optional[str] = None
    pool_id: Optional[str] = None
    ceremony_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def merged_with(self, other: Optional["LogContext"]) -> "LogContext":
        """Overlay ``other`` on top of this context."""
        if other is None:
            return self
        return LogContext(
            component=other.component or self.component,
            operation=other.operation or self.operation,
            pool_id=other.pool_id or self.pool_id,
            ceremony_id=other.ceremony_id or self.ceremony_id,
            metadata={**self.metadata, **other.metadata},
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "component": self.component,
            "operation": self.operation,
            "pool_id": self.pool_id,
            "ceremony_id": self.ceremony_id,
            "metadata": self.metadata,
        }


@dataclass
class LogEntry:
    """Log entry data structure."""

    timestamp: float
    level: LogLevel
    message: str
    logger_name: str
    context: LogContext
    exception: Optional[BaseException] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    thread_id: Optional[int] = None
    process_id: Optional[int] = None

    def __post_init__(self):
        if self.thread_id is None:
            self.thread_id = threading.get_ident()
        if self.process_id is None:
            self.process_id = os.getpid()

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
            "logger_name": self.logger_name,
            "context": self.context.to_dict(),
            "exception": str(self.exception) if self.exception else None,
            "extra": self.extra,
            "thread_id": self.thread_id,
            "process_id": self.process_id,
        }

    def to_json(self) -> str:
        """Convert log entry to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class LogConfig:
    """Log configuration."""

    def __init__(
        self,
        name: str = "whistle",
        level: LogLevel = LogLevel.WARNING,
        format_type: str = "text",
        handlers: List[str] = None,
    ):
        self.name = name
        self.level = level
        self.format_type = format_type
        self.handlers = handlers or ["console"]

        # Per-handler keyword arguments, e.g. {"file": {"filename": "..."}}
        self.handler_configs: Dict[str, Dict[str, Any]] = {}

    def add_handler_config(self, name: str, config: Dict[str, Any]) -> None:
        """Add handler configuration."""
        self.handler_configs[name] = config


class LogFormatter(ABC):
    """Abstract log formatter."""

    @abstractmethod
    def format(self, entry: LogEntry) -> str:
        """Format log entry."""
        pass


class LogHandler(ABC):
    """Abstract log handler."""

    def __init__(self, name: str = None):
        self.name = name or self.__class__.__name__
        self.formatter: Optional[LogFormatter] = None
        self.level: LogLevel = LogLevel.DEBUG
        self._lock = threading.RLock()

    def set_formatter(self, formatter: LogFormatter) -> None:
        """Set formatter."""
        with self._lock:
            self.formatter = formatter

    def set_level(self, level: LogLevel) -> None:
        """Set log level."""
        with self._lock:
            self.level = level

    def should_handle(self, entry: LogEntry) -> bool:
        """Check if handler should handle the entry."""
        with self._lock:
            return entry.level.rank >= self.level.rank

    def format(self, entry: LogEntry) -> str:
        if self.formatter:
            return self.formatter.format(entry)
        return f"{entry.timestamp:.3f} [{entry.level.value.upper()}] {entry.logger_name}: {entry.message}"

    @abstractmethod
    def emit(self, entry: LogEntry) -> None:
        """Emit log entry."""
        pass

    def handle(self, entry: LogEntry) -> None:
        """Handle log entry."""
        if self.should_handle(entry):
            self.emit(entry)

    def close(self) -> None:
        """Release handler resources."""
        pass


class LogManager:
    """Log manager for orchestrating logging operations."""

    def __init__(self, config: LogConfig = None):
        self.config = config or LogConfig()
        self.loggers: Dict[str, "WhistleLogger"] = {}
        self.handlers: Dict[str, LogHandler] = {}
        self._lock = threading.RLock()
        self._context = LogContext()

        self._setup_defaults()

    def _setup_defaults(self) -> None:
        """Create the handlers named in the configuration."""
        from .formatters import JSONFormatter, TextFormatter
        from .handlers import ConsoleHandler, FileHandler, MemoryHandler

        formatter = JSONFormatter() if self.config.format_type == "json" else TextFormatter()
        factories = {
            "console": ConsoleHandler,
            "memory": MemoryHandler,
            "file": FileHandler,
        }

        for handler_name in self.config.handlers:
            factory = factories.get(handler_name)
            if factory is None:
                continue
            handler = factory(**self.config.handler_configs.get(handler_name, {}))
            handler.set_formatter(formatter)
            self.add_handler(handler_name, handler)

    def get_logger(self, name: str) -> "WhistleLogger":
        """Get logger."""
        with self._lock:
            if name not in self.loggers:
                self.loggers[name] = WhistleLogger(name, self)
            return self.loggers[name]

    def add_handler(self, name: str, handler: LogHandler) -> None:
        """Add handler."""
        with self._lock:
            self.handlers[name] = handler

    def remove_handler(self, name: str) -> None:
        """Remove handler."""
        with self._lock:
            handler = self.handlers.pop(name, None)
            if handler is not None:
                handler.close()

    def set_context(self, context: LogContext) -> None:
        """Set global context."""
        with self._lock:
            self._context = context

    def get_context(self) -> LogContext:
        """Get global context."""
        with self._lock:
            return self._context

    def log(
        self,
        level: LogLevel,
        message: str,
        logger_name: str = "root",
        context: LogContext = None,
        exception: BaseException = None,
        extra: Dict[str, Any] = None,
    ) -> None:
        """Log a message."""
        with self._lock:
            entry = LogEntry(
                timestamp=time.time(),
                level=level,
                message=message,
                logger_name=logger_name,
                context=self._context.merged_with(context),
                exception=exception,
                extra=extra or {},
            )

            for handler in list(self.handlers.values()):
                handler.handle(entry)

    def shutdown(self) -> None:
        """Shutdown log manager."""
        with self._lock:
            for handler in self.handlers.values():
                handler.close()

            self.loggers.clear()
            self.handlers.clear()


class WhistleLogger:
    """Whistle logger implementation."""

    def __init__(self, name: str, manager: LogManager):
        self.name = name
        self.manager = manager
        self.level: Optional[LogLevel] = None
        self._lock = threading.RLock()

    def set_level(self, level: LogLevel) -> None:
        """Set log level."""
        with self._lock:
            self.level = level

    def is_enabled_for(self, level: LogLevel) -> bool:
        """Check if logger is enabled for level."""
        with self._lock:
            threshold = self.level or self.manager.config.level
            return level.rank >= threshold.rank

    def log(
        self,
        level: LogLevel,
        message: str,
        context: LogContext = None,
        exception: BaseException = None,
        extra: Dict[str, Any] = None,
    ) -> None:
        """Log a message."""
        if self.is_enabled_for(level):
            self.manager.log(
                level=level,
                message=message,
                logger_name=self.name,
                context=context,
                exception=exception,
                extra=extra,
            )

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self.log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self.log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self.log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        """Log critical message."""
        self.log(LogLevel.CRITICAL, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log the exception currently being handled."""
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            kwargs["exception"] = exc_info[1]
        self.log(LogLevel.ERROR, message, **kwargs)


# Global log manager instance
_global_manager: Optional[LogManager] = None
_global_lock = threading.Lock()


def get_manager() -> LogManager:
    """Return the process-wide log manager, creating it on first use.

    The first manager is built from the global ``WhistleConfig``, so
    ``WHISTLE_LOG_LEVEL`` takes effect without an explicit ``setup_logging``.
    """
    global _global_manager
    with _global_lock:
        if _global_manager is None:
            from ..config import get_global_config

            _global_manager = LogManager(get_global_config().to_log_config())
        return _global_manager


def set_level(level: LogLevel) -> None:
    """Change the threshold of the current manager, if one exists."""
    with _global_lock:
        if _global_manager is not None:
            _global_manager.config.level = level


def get_logger(name: str = "root") -> WhistleLogger:
    """Get logger instance.

    Loggers resolve the manager at call time, so a module-level
    ``logger = get_logger(__name__)`` keeps working after
    ``setup_logging`` replaces the manager.
    """
    return _BoundLogger(name)


def setup_logging(config: LogConfig) -> LogManager:
    """Setup logging with configuration."""
    global _global_manager
    with _global_lock:
        if _global_manager is not None:
            _global_manager.shutdown()
        _global_manager = LogManager(config)
        return _global_manager


def shutdown_logging() -> None:
    """Shutdown logging."""
    global _global_manager
    with _global_lock:
        if _global_manager is not None:
            _global_manager.shutdown()
            _global_manager = None


class _BoundLogger(WhistleLogger):
    """Logger handle that follows the current global manager."""

    def __init__(self, name: str):
        self.name = name
        self.level = None
        self._lock = threading.RLock()

    @property
    def manager(self) -> LogManager:
        return get_manager()

    @property
    def target(self) -> WhistleLogger:
        return get_manager().get_logger(self.name)

    def set_level(self, level: LogLevel) -> None:
        self.target.set_level(level)

    def is_enabled_for(self, level: LogLevel) -> bool:
        return self.target.is_enabled_for(level)
