from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from image_resizer.config import APP_NAME, resolve_data_dir


LOG_FILE_NAME = "app.log"
DEFAULT_LOG_LEVEL = "INFO"
MAX_LOG_BYTES = 10 * 1024 * 1024
MAX_LOG_FILES = 5


@dataclass(frozen=True)
class LogPaths:
    log_dir: Path
    log_file: Path


def _iso_utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def resolve_log_paths(base_dir: Path | None = None) -> LogPaths:
    data_dir = Path(base_dir).expanduser() if base_dir is not None else resolve_data_dir()
    log_dir = data_dir / "logs"
    return LogPaths(log_dir=log_dir, log_file=log_dir / LOG_FILE_NAME)


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = dict(getattr(record, "payload", {}))
        payload.setdefault("ts", _iso_utc_now())
        payload.setdefault("level", record.levelname)
        payload.setdefault("message", record.getMessage())
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=True, default=str)


class StructuredLogger:
    """JSON-lines logger scoped to one component of the feature."""

    def __init__(
        self,
        component: str,
        level: str = DEFAULT_LOG_LEVEL,
        log_dir: Path | None = None,
    ) -> None:
        self.component = component
        self._logger = logging.getLogger(f"{APP_NAME}.{component}")
        self._logger.setLevel(_coerce_level(level))
        self._logger.handlers.clear()
        self._logger.propagate = False

        if log_dir is None:
            paths = resolve_log_paths()
        else:
            log_dir = Path(log_dir).expanduser()
            paths = LogPaths(log_dir=log_dir, log_file=log_dir / LOG_FILE_NAME)
        paths.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = paths.log_file

        handler = RotatingFileHandler(
            paths.log_file,
            maxBytes=MAX_LOG_BYTES,
            backupCount=MAX_LOG_FILES,
            encoding="utf-8",
        )
        handler.setFormatter(JsonLineFormatter())
        self._logger.addHandler(handler)

    def child(self, component: str) -> "StructuredLogger":
        """Return a logger for a sub-component writing to the same file."""
        return StructuredLogger(
            f"{self.component}.{component}",
            level=logging.getLevelName(self._logger.level),
            log_dir=self.log_file.parent,
        )

    def log_event(
        self,
        level: str,
        event: str,
        message: str,
        **fields: Any,
    ) -> None:
        payload = {
            "ts": _iso_utc_now(),
            "level": level.upper(),
            "component": self.component,
            "event": event,
            "message": message,
        }
        for key, value in fields.items():
            if value is not None:
                payload[key] = value
        self._logger.log(_coerce_level(level), message, extra={"payload": payload})

    def close(self) -> None:
        for handler in list(self._logger.handlers):
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)


def _coerce_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO
