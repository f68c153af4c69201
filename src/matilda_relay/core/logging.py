"""Centralized logging setup for Matilda Relay.

All relay loggers write to one ``QueueHandler``; a single ``QueueListener``
thread owns the real sinks (rotating file, optional stdout) so audio relay
coroutines never block on log I/O.

Environment:
    MATILDA_RELAY_LOG_DIR / MATILDA_LOG_DIR   directory for the log file
    MATILDA_RELAY_LOG_FILE                    file name (matilda-relay.log)
    MATILDA_RELAY_CONSOLE_LOGS                "1"/"true"/"yes" adds stdout
    MATILDA_LOG_MAX_BYTES / MATILDA_LOG_BACKUP_COUNT   rotation limits
    RELAY_LOG_LEVEL                           default level (INFO)
"""

import atexit
import logging
import os
import sys
import threading
from dataclasses import dataclass
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from queue import SimpleQueue

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes"}


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class LogSettings:
    """Where and how relay logs are written."""

    level: int = logging.INFO
    directory: Path | None = None
    filename: str = "matilda-relay.log"
    console: bool = False
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @classmethod
    def from_env(cls) -> "LogSettings":
        env_dir = os.environ.get("MATILDA_RELAY_LOG_DIR") or os.environ.get("MATILDA_LOG_DIR")
        return cls(
            level=parse_level(os.environ.get("RELAY_LOG_LEVEL")),
            directory=Path(env_dir) if env_dir else Path.home() / ".matilda" / "logs",
            filename=os.environ.get("MATILDA_RELAY_LOG_FILE", "matilda-relay.log"),
            console=_flag("MATILDA_RELAY_CONSOLE_LOGS"),
            max_bytes=_int_env("MATILDA_LOG_MAX_BYTES", 10 * 1024 * 1024),
            backup_count=_int_env("MATILDA_LOG_BACKUP_COUNT", 5),
        )


class _LogPipeline:
    """Process-wide queue plus the listener thread draining it."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.queue: SimpleQueue | None = None
        self.listener: QueueListener | None = None
        self.sinks: list[logging.Handler] = []

    def _file_sink(self, settings: LogSettings, formatter: logging.Formatter) -> logging.Handler | None:
        if settings.directory is None:
            return None
        try:
            settings.directory.mkdir(parents=True, exist_ok=True)
            handler = RotatingFileHandler(
                settings.directory / settings.filename,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
            )
        except OSError:
            return None
        handler.setFormatter(formatter)
        return handler

    def start(self, settings: LogSettings, include_console: bool, include_file: bool) -> SimpleQueue | None:
        with self.lock:
            if self.listener is not None:
                return self.queue

            formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
            sinks: list[logging.Handler] = []
            if include_file:
                file_sink = self._file_sink(settings, formatter)
                if file_sink is not None:
                    sinks.append(file_sink)
            if include_console:
                console = logging.StreamHandler(sys.stdout)
                console.setFormatter(formatter)
                sinks.append(console)
            if not sinks:
                return None

            for sink in sinks:
                sink.setLevel(settings.level)
            self.sinks = sinks
            self.queue = SimpleQueue()
            self.listener = QueueListener(self.queue, *sinks, respect_handler_level=True)
            self.listener.start()
            atexit.register(self.stop)
            return self.queue

    def stop(self) -> None:
        with self.lock:
            if self.listener is not None:
                self.listener.stop()
                self.listener = None


_pipeline = _LogPipeline()
_relay_loggers: set[str] = set()


def setup_logging(
    module_name: str,
    log_level: str | None = None,
    include_console: bool | None = None,
    include_file: bool = True,
) -> logging.Logger:
    """Setup standardized logging for relay modules.

    Args:
        module_name: Name of the module (usually __name__)
        log_level: Logging level name. Defaults to RELAY_LOG_LEVEL or INFO.
        include_console: Whether to log to stdout. If None, uses
            MATILDA_RELAY_CONSOLE_LOGS.
        include_file: Whether to log to the rotating file

    Returns:
        Configured logger instance

    """
    logger = logging.getLogger(module_name)
    if logger.handlers:
        return logger

    settings = LogSettings.from_env()
    level = parse_level(log_level, settings.level)
    logger.setLevel(level)
    # Sinks hang off the listener only
    logger.propagate = False

    if include_console is None:
        include_console = settings.console
    queue = _pipeline.start(settings, include_console, include_file)
    if queue is None:
        logger.addHandler(logging.NullHandler())
    else:
        logger.addHandler(QueueHandler(queue))
    _relay_loggers.add(module_name)
    return logger


def set_log_level(level_name: str) -> int:
    """Change the level of every relay logger and sink at runtime.

    Returns:
        The numeric level applied

    """
    level = parse_level(level_name)
    for name in _relay_loggers:
        logging.getLogger(name).setLevel(level)
    for sink in _pipeline.sinks:
        sink.setLevel(level)
    return level


def get_logger(module_name: str) -> logging.Logger:
    """Get a logger for a module with default relay settings."""
    return setup_logging(module_name)


__all__ = ["LogSettings", "get_logger", "parse_level", "set_log_level", "setup_logging"]
