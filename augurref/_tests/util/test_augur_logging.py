from __future__ import annotations

import logging
from logging.handlers import SysLogHandler
from pathlib import Path
from typing import Any

import colorlog
from concurrent_log_handler import ConcurrentRotatingFileHandler

from augurref.util.augur_logging import initialize_logging, set_log_level


def new_handlers(root_logger: logging.Logger, before: list[logging.Handler]) -> list[logging.Handler]:
    return [handler for handler in root_logger.handlers if handler not in before]


def test_stdout_logging(restore_root_logger: logging.Logger) -> None:
    before = list(restore_root_logger.handlers)
    initialize_logging("augur", {"log_stdout": True, "log_level": "DEBUG"}, Path("."))

    [handler] = new_handlers(restore_root_logger, before)
    assert isinstance(handler, colorlog.StreamHandler)
    assert handler.level == logging.DEBUG
    assert restore_root_logger.level == logging.DEBUG


def test_file_logging(tmp_path: Path, restore_root_logger: logging.Logger) -> None:
    before = list(restore_root_logger.handlers)
    logging_config: dict[str, Any] = {
        "log_stdout": False,
        "log_filename": "log/augur.log",
        "log_level": "INFO",
        "log_maxfilesrotation": 3,
        "log_maxbytesrotation": 1024,
    }
    initialize_logging("augur", logging_config, tmp_path)

    [handler] = new_handlers(restore_root_logger, before)
    assert isinstance(handler, ConcurrentRotatingFileHandler)
    logging.getLogger("augurref.test").info("snapshot saved")
    handler.flush()
    assert "snapshot saved" in (tmp_path / "log" / "augur.log").read_text()


def test_syslog_handler(restore_root_logger: logging.Logger) -> None:
    before = list(restore_root_logger.handlers)
    initialize_logging(
        "augur",
        {"log_stdout": True, "log_level": "INFO", "log_syslog": True, "log_syslog_host": "127.0.0.1"},
        Path("."),
    )
    assert any(isinstance(handler, SysLogHandler) for handler in new_handlers(restore_root_logger, before))


def test_invalid_log_level_falls_back(restore_root_logger: logging.Logger) -> None:
    initialize_logging("augur", {"log_stdout": True, "log_level": "CHATTY"}, Path("."))
    errors = set_log_level("CHATTY", "augur")
    assert len(errors) >= 1
    assert all("Invalid log level 'CHATTY'" in error for error in errors)
    assert all(handler.level == logging.WARNING for handler in restore_root_logger.handlers)
