from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterator

import pytest

from hsm_openssl import configure_logging
from hsm_openssl.logging_utils import LOGGER_NAMESPACE


@pytest.fixture
def restore_logger() -> Iterator[logging.Logger]:
    logger = logging.getLogger(LOGGER_NAMESPACE)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield logger
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_configure_logging_creates_rotating_log_file(
    tmp_path: Path, restore_logger: logging.Logger
) -> None:
    log_file = tmp_path / "hsm-openssl.log"
    logger = configure_logging(
        log_file=log_file,
        level="INFO",
        max_bytes=1024,
        backup_count=2,
    )
    logging.getLogger("hsm_openssl.dispatch").warning("fallback test message")

    for handler in logger.handlers:
        handler.flush()

    assert log_file.exists()
    contents = log_file.read_text(encoding="utf-8")
    assert "fallback test message" in contents
    assert "hsm_openssl.dispatch" in contents


def test_configure_logging_is_idempotent_per_file(
    tmp_path: Path, restore_logger: logging.Logger
) -> None:
    log_file = tmp_path / "hsm-openssl.log"
    configure_logging(log_file=log_file, level="INFO")
    logger = configure_logging(log_file=log_file, level="DEBUG")

    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert logger.level == logging.DEBUG


def test_environment_overrides(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_logger: logging.Logger
) -> None:
    log_file = tmp_path / "env.log"
    monkeypatch.setenv("HSM_OPENSSL_LOG_FILE", str(log_file))
    monkeypatch.setenv("HSM_OPENSSL_LOG_LEVEL", "warning")
    monkeypatch.setenv("HSM_OPENSSL_LOG_MAX_BYTES", "-5")

    with pytest.raises(ValueError, match="HSM_OPENSSL_LOG_MAX_BYTES"):
        configure_logging()

    monkeypatch.setenv("HSM_OPENSSL_LOG_MAX_BYTES", "2048")
    logger = configure_logging()
    assert logger.level == logging.WARNING
    assert log_file.exists()


def test_invalid_level_is_rejected(tmp_path: Path, restore_logger: logging.Logger) -> None:
    with pytest.raises(ValueError, match="Invalid log level"):
        configure_logging(log_file=tmp_path / "x.log", level="LOUD")


def test_console_echoes_fallback_warnings_to_stderr(
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
    restore_logger: logging.Logger,
) -> None:
    logger = configure_logging(log_file=tmp_path / "console.log", console=True)
    configure_logging(log_file=tmp_path / "console.log", console=True)

    consoles = [
        h
        for h in logger.handlers
        if isinstance(h, logging.StreamHandler)
        and not isinstance(h, RotatingFileHandler)
    ]
    assert len(consoles) == 1
    assert consoles[0].level == logging.WARNING

    logging.getLogger("hsm_openssl.dispatch").info("routine detail")
    logging.getLogger("hsm_openssl.dispatch").warning("retrying once on software")

    stderr = capsys.readouterr().err
    assert "retrying once on software" in stderr
    assert "routine detail" not in stderr


def test_console_is_enabled_from_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_logger: logging.Logger
) -> None:
    monkeypatch.setenv("HSM_OPENSSL_LOG_CONSOLE", "yes")
    logger = configure_logging(log_file=tmp_path / "env-console.log")

    assert any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        for h in logger.handlers
    )


def test_console_is_off_by_default(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, restore_logger: logging.Logger
) -> None:
    monkeypatch.delenv("HSM_OPENSSL_LOG_CONSOLE", raising=False)
    logger = configure_logging(log_file=tmp_path / "quiet.log")

    assert all(isinstance(h, RotatingFileHandler) for h in logger.handlers)
