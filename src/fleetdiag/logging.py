from __future__ import annotations

import json
import logging
import os
import sys
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any


_CONFIGURED = False

_EXTRA_KEYS = ("target", "transport", "collector", "code")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Attach structured extras if present
        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def configure_logging(*, level: str | None = None, log_file: str | None = None) -> None:
    """Idempotent logging setup.

    - JSON logs to stderr; stdout carries report output.
    - Respects LOG_LEVEL and LOG_FILE env vars.
    - The file handler appends; each record is written as one whole line.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "WARNING").upper()
    root = logging.getLogger()
    root.setLevel(log_level)

    root.handlers.clear()

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)

    path = log_file or os.getenv("LOG_FILE")
    if path:
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        root.addHandler(file_handler)
        # The file is the activity record; keep it complete regardless of console level.
        root.setLevel(logging.DEBUG)

    _CONFIGURED = True


# ── activity log handles ─────────────────────────────────────────────


class ActivityLog(ABC):
    """Side-channel sink for collection activity.

    Callers fire and forget: nothing in the collection path depends on
    whether a line was written.
    """

    @abstractmethod
    def log(self, level: int, message: str, **fields: Any) -> None:
        ...


class LoggingActivityLog(ActivityLog):
    """Forward activity lines to a stdlib logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("fleetdiag.activity")

    def log(self, level: int, message: str, **fields: Any) -> None:
        self.logger.log(level, message, extra=fields)


class NullActivityLog(ActivityLog):
    def log(self, level: int, message: str, **fields: Any) -> None:
        return None


class RecordingActivityLog(ActivityLog):
    """Keep activity lines in memory, e.g. for a live view or for tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: list[tuple[int, str, dict[str, Any]]] = []

    def log(self, level: int, message: str, **fields: Any) -> None:
        with self._lock:
            self._records.append((level, message, dict(fields)))

    @property
    def records(self) -> list[tuple[int, str, dict[str, Any]]]:
        with self._lock:
            return list(self._records)

    def messages(self, level: int | None = None) -> list[str]:
        return [msg for lvl, msg, _ in self.records if level is None or lvl == level]
