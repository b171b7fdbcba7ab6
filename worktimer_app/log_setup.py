from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from worktimer_app.config import WorktimerConfig

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "worktimer_app"


def configure_logging(
    config: WorktimerConfig,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT)

    # Handlers are named so repeated calls never stack duplicates.
    file_handler_name = f"{PACKAGE_LOGGER}:file"
    if not any(h.get_name() == file_handler_name for h in logger.handlers):
        config.log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=config.log_dir / "worktimer.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(fmt)
        file_handler.set_name(file_handler_name)
        logger.addHandler(file_handler)

    console_handler_name = f"{PACKAGE_LOGGER}:console"
    if config.log_console and not any(h.get_name() == console_handler_name for h in logger.handlers):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(fmt)
        console_handler.set_name(console_handler_name)
        logger.addHandler(console_handler)

    return logger
