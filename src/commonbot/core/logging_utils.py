from __future__ import annotations

import json
import logging
import re
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from .config import LogConfig

_MAX_FIELD_CHARS = 2000
_SECRET_KEYS = ("token", "password", "secret", "authorization")
_BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]+")
_SLACK_TOKEN_PATTERN = re.compile(r"xox[abposr]-[A-Za-z0-9-]+|xapp-[A-Za-z0-9-]+")
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def sanitize_log_value(value: Any) -> Any:
    if isinstance(value, str):
        redacted = _BEARER_PATTERN.sub(r"\1[REDACTED]", value)
        redacted = _SLACK_TOKEN_PATTERN.sub("[REDACTED]", redacted)
        if len(redacted) > _MAX_FIELD_CHARS:
            return redacted[:_MAX_FIELD_CHARS] + "..."
        return redacted
    if isinstance(value, Mapping):
        return {
            str(key): (
                "[REDACTED]"
                if _is_secret_key(str(key))
                else sanitize_log_value(item)
            )
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize_log_value(item) for item in value]
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return sanitize_log_value(str(value))


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in _SECRET_KEYS)


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    *,
    exc: Optional[BaseException] = None,
    **fields: Any,
) -> None:
    """Emit one structured JSON log line.

    Field values are sanitized so tokens never reach the log sink. When
    ``exc`` is given its type and message are recorded and the traceback is
    attached through ``exc_info``.
    """
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        payload[key] = (
            "[REDACTED]" if _is_secret_key(key) else sanitize_log_value(value)
        )
    if exc is not None:
        payload["error"] = sanitize_log_value(str(exc))
        payload["error_type"] = type(exc).__name__
    try:
        message = json.dumps(payload, ensure_ascii=True, default=str)
    except (TypeError, ValueError):
        message = str(payload)
    logger.log(
        level,
        message,
        exc_info=(type(exc), exc, exc.__traceback__) if exc is not None else None,
    )


def setup_rotating_logger(name: str, log_config: "LogConfig") -> logging.Logger:
    """Attach a size-rotated file handler for ``name``.

    Calling it twice for the same file does not duplicate handlers.
    """
    logger = logging.getLogger(name)
    logger.setLevel(log_config.level)
    log_path = log_config.path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(log_path.resolve())
    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == target:
            return logger
    handler = RotatingFileHandler(
        log_path,
        maxBytes=log_config.max_bytes,
        backupCount=log_config.backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    if log_config.console:
        stream = logging.StreamHandler()
        stream.setFormatter(logging.Formatter(_LOG_FORMAT))
        logger.addHandler(stream)
    logger.propagate = False
    return logger
