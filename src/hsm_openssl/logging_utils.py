from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_FILE = "logs/hsm-openssl.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_MAX_BYTES = 5 * 1024 * 1024
DEFAULT_LOG_BACKUP_COUNT = 5

LOGGER_NAMESPACE = "hsm_openssl"

# Backend downgrades and software randomness are reported at this level.
CONSOLE_LEVEL = logging.WARNING

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_TRUTHY = {"1", "true", "yes", "on"}


def _env_count(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw}") from exc
    if parsed < 0:
        raise ValueError(f"{name} must be >= 0, got: {raw}")
    return parsed


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    normalized = level.strip().upper()
    if normalized.isdigit():
        return int(normalized)
    numeric_level = logging.getLevelName(normalized)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    return numeric_level


class _ConsoleHandler(logging.StreamHandler):
    """stderr handler marker, so repeat configuration finds the one already attached."""


def _attached_file_handler(
    logger: logging.Logger, path: Path
) -> RotatingFileHandler | None:
    for existing in logger.handlers:
        if (
            isinstance(existing, RotatingFileHandler)
            and Path(existing.baseFilename).resolve() == path
        ):
            return existing
    return None


def _attach_console(logger: logging.Logger) -> None:
    if any(isinstance(h, _ConsoleHandler) for h in logger.handlers):
        return
    console = _ConsoleHandler(sys.stderr)
    console.setLevel(CONSOLE_LEVEL)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console)


def configure_logging(
    *,
    log_file: str | Path | None = None,
    level: str | int | None = None,
    max_bytes: int | None = None,
    backup_count: int | None = None,
    console: bool | None = None,
) -> logging.Logger:
    """
    Route the ``hsm_openssl`` logger namespace to a rotating log file.

    Fallback diagnostics (a primary backend failing at runtime, random bytes
    served by software) are WARNING records, so the default INFO level keeps
    them. With ``console`` enabled those WARNING and ERROR records are also
    echoed to stderr. Calling again with the same file only adjusts levels.

    Environment variable overrides:
    - HSM_OPENSSL_LOG_FILE
    - HSM_OPENSSL_LOG_LEVEL
    - HSM_OPENSSL_LOG_MAX_BYTES
    - HSM_OPENSSL_LOG_BACKUP_COUNT
    - HSM_OPENSSL_LOG_CONSOLE (``1``, ``true``, ``yes`` or ``on``)
    """
    path = Path(str(log_file or os.environ.get("HSM_OPENSSL_LOG_FILE", DEFAULT_LOG_FILE)))
    numeric_level = _resolve_level(
        level or os.environ.get("HSM_OPENSSL_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    )
    if max_bytes is None:
        max_bytes = _env_count("HSM_OPENSSL_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES)
    if backup_count is None:
        backup_count = _env_count("HSM_OPENSSL_LOG_BACKUP_COUNT", DEFAULT_LOG_BACKUP_COUNT)
    if max_bytes < 0 or backup_count < 0:
        raise ValueError("max_bytes and backup_count must be >= 0.")
    if console is None:
        console = (
            os.environ.get("HSM_OPENSSL_LOG_CONSOLE", "").strip().lower() in _TRUTHY
        )

    logger = logging.getLogger(LOGGER_NAMESPACE)
    logger.setLevel(numeric_level)
    logger.propagate = False
    if console:
        _attach_console(logger)

    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = _attached_file_handler(logger, path.resolve())
    if file_handler is not None:
        file_handler.setLevel(numeric_level)
        return logger

    file_handler = RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(numeric_level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(file_handler)
    logger.info(
        "Logging hsm_openssl to %s level=%s max_bytes=%d backup_count=%d console=%s",
        path,
        logging.getLevelName(numeric_level),
        max_bytes,
        backup_count,
        console,
    )
    return logger
