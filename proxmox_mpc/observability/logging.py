"""Structured logging setup and the in-memory recent-log buffer.

Every module logs through ``logging.getLogger(__name__)``. Records may carry
``operation`` (``create``/``update``/``delete``/...) and ``error_category``
extras; the :class:`RecentLogBuffer` handler keeps the latest records so the
logs resource domain can summarize them.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Attributes present on every LogRecord; anything else arrived via ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


@dataclass(frozen=True)
class LogEntry:
    """A captured log record."""

    timestamp: datetime
    level: str
    logger: str
    message: str
    operation: str | None = None
    error_category: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "logger": self.logger,
            "message": self.message,
            "operation": self.operation,
            "errorCategory": self.error_category,
        }


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED_ATTRS}


class RecentLogBuffer(logging.Handler):
    """Logging handler that retains the most recent records in memory.

    Thread-safe; bounded by ``capacity``.
    """

    def __init__(self, capacity: int = 1000, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            extras = _record_extras(record)
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
                level=record.levelname.lower(),
                logger=record.name,
                message=record.getMessage(),
                operation=extras.pop("operation", None),
                error_category=extras.pop("error_category", None),
                extra=extras,
            )
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(entry)

    def get_recent_logs(
        self, limit: int = 100, level: str | None = None, operation: str | None = None
    ) -> list[LogEntry]:
        """Return up to ``limit`` most recent entries, oldest first.

        Args:
            limit: Maximum number of entries
            level: Minimum level name (``"error"`` also matches ``critical``)
            operation: Exact operation tag
        """
        min_level = logging.getLevelName(level.upper()) if level else None
        with self._entries_lock:
            entries = list(self._entries)

        matched = []
        for entry in reversed(entries):
            if len(matched) >= limit:
                break
            if isinstance(min_level, int):
                if logging.getLevelName(entry.level.upper()) < min_level:
                    continue
            if operation is not None and entry.operation != operation:
                continue
            matched.append(entry)
        matched.reverse()
        return matched

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


class JSONFormatter(logging.Formatter):
    """ELK/Datadog style JSON output."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_record_extras(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO",
    structured: bool = False,
    log_file: str | None = None,
    buffer_size: int = 1000,
) -> RecentLogBuffer:
    """Configure root logging for the server process.

    Installs a stderr handler (stdout carries the stdio transport), an
    optional file handler, and a :class:`RecentLogBuffer`.

    Returns:
        The installed log buffer
    """
    formatter: logging.Formatter
    if structured:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    buffer = RecentLogBuffer(capacity=buffer_size)
    handlers.append(buffer)

    logging.basicConfig(level=getattr(logging, level.upper()), handlers=handlers, force=True)
    return buffer
