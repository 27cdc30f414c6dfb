"""Logging setup for the daemon and CLI."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("rulewatch")


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Attach a stderr handler and a best-effort rotating file handler."""
    config = config or LoggingConfig()
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    handlers: list[logging.Handler] = [console]
    if config.file:
        log_path = Path(config.file).expanduser()
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=config.max_bytes,
                backupCount=config.backup_count,
            )
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
            )
            handlers.append(file_handler)
        except OSError as e:
            console.handle(
                logging.makeLogRecord(
                    {
                        "name": "rulewatch",
                        "levelno": logging.WARNING,
                        "levelname": "WARNING",
                        "msg": f"File logging disabled: {e}",
                    }
                )
            )

    logging.basicConfig(level=level, handlers=handlers, force=True)
    for noisy in ("aiohttp.access", "watchdog", "asyncio", "httpx", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return logger
