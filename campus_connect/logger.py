"""
Structured JSON Logging Module.

Every backend and client component logs through a ``StructuredLogger``
that emits one JSON object per line.  Identity code handles passwords,
bearer tokens and verification codes, so the formatter masks any of
those that reach a record's ``extra`` fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO, Union

LogValue = Union[str, int, float, bool, None]

REDACTED: str = "[REDACTED]"

# ``extra`` keys whose values must never appear in a log line.
_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "password",
    "password_hash",
    "confirm_password",
    "token",
    "access_token",
    "authorization",
    "code",
    "code_hash",
    "otp",
    "secret",
})


class JSONFormatter(logging.Formatter):
    """Renders a record as ``{"timestamp", "level", "logger_name", "message"}``.

    Caller-supplied ``extra`` fields are nested under ``"extra"``; scalars
    keep their JSON type and anything else is stringified.  A formatted
    traceback, when present, goes under ``"exception"``.
    """

    _STANDARD_ATTRS: frozenset[str] = frozenset(
        logging.LogRecord(
            name="", level=0, pathname="", lineno=0, msg="", args=(), exc_info=None
        ).__dict__.keys()
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        extra = {
            key: self._render(key, value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD_ATTRS
        }
        if extra:
            entry["extra"] = extra

        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            entry["exception"] = record.exc_text

        return json.dumps(entry, ensure_ascii=False)

    @staticmethod
    def _render(key: str, value: object) -> LogValue:
        if key.lower() in _SENSITIVE_KEYS:
            return REDACTED
        if value is None or isinstance(value, (str, int, float, bool)):
            return value
        return str(value)


def _resolve_level(level: Optional[int], configured: str) -> int:
    if level is not None:
        return level
    resolved = logging.getLevelName(configured.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _file_handler(path: str, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    """Open a rotating log file, creating its directory.

    Raises
    ------
    OSError
        If the directory or file cannot be created.
    """
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        filename=str(log_path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )


class StructuredLogger:
    """Injectable logger wrapper.

    Create one per subsystem (``campus_connect.api``,
    ``campus_connect.client``...) and hand it to constructors.  Unset
    arguments fall back to the ``LOG_*`` settings of ``AppConfig``; an
    empty ``log_file`` keeps output on the console only.

    Usage::

        log = StructuredLogger(name="campus_connect.auth")
        log.info("Login succeeded", extra={"event": "LOGIN", "user_id": user.id})
    """

    def __init__(
        self,
        name: str = "campus_connect",
        level: Optional[int] = None,
        stream: Union[TextIO, None] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Lazy import: config itself logs through the stdlib at import time.
        from campus_connect.config import get_config
        cfg = get_config()

        resolved_level = _resolve_level(level, cfg.LOG_LEVEL)
        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(resolved_level)

        # Handlers are attached once per logger name.
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        target = log_file if log_file is not None else cfg.LOG_FILE
        if not target:
            return
        try:
            handler = _file_handler(
                target,
                max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
            )
        except OSError as exc:
            self._logger.warning(
                "Could not open log file '%s': %s. Logging to console only.", target, exc,
            )
            return
        handler.setFormatter(formatter)
        self._logger.addHandler(handler)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.exception(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: object) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "campus_connect") -> StructuredLogger:
    """Create a ``StructuredLogger`` named *name* with configured defaults."""
    return StructuredLogger(name=name)
