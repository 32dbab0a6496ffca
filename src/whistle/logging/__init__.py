"""Whistle Logging System.

Structured logging for the protocol components: a process-wide manager,
named handlers and JSON or text formatting.
"""

from .core import (
    LogConfig,
    LogContext,
    LogEntry,
    LogFormatter,
    LogHandler,
    LogLevel,
    LogManager,
    WhistleLogger,
    get_logger,
    get_manager,
    set_level,
    setup_logging,
    shutdown_logging,
)
from .formatters import JSONFormatter, TextFormatter
from .handlers import ConsoleHandler, FileHandler, MemoryHandler

__all__ = [
    # Core
    "LogLevel",
    "LogConfig",
    "LogContext",
    "LogEntry",
    "LogFormatter",
    "LogHandler",
    "LogManager",
    "WhistleLogger",
    "get_logger",
    "get_manager",
    "set_level",
    "setup_logging",
    "shutdown_logging",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Handlers
    "FileHandler",
    "ConsoleHandler",
    "MemoryHandler",
]
