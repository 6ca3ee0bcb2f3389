"""Loguru sink setup.

Three sinks:
    1. stderr, colourised, at the configured level
    2. combined.log, everything at the configured level, rotated
    3. messages.log, only records bound with stream="messages"
       (the inbound message audit trail)

Call setup_logging() once at startup. Modules just do
`from loguru import logger`.
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from chatwarden.config.schema import LoggingConfig
from chatwarden.utils.helpers import ensure_dir

_CONSOLE_FORMAT = (
    "<green>{time:DD-MM-YY HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)

# Bound logger for the inbound message audit trail
message_logger = logger.bind(stream="messages")


def _is_message_record(record: dict) -> bool:
    return record["extra"].get("stream") == "messages"


def setup_logging(config: LoggingConfig) -> Path:
    """Install sinks. Returns the log directory."""
    log_dir = ensure_dir(Path(config.log_dir).expanduser())
    level = config.level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT, colorize=True)
    logger.add(
        log_dir / "combined.log",
        level=level,
        rotation=config.rotation,
        retention=config.retention,
        enqueue=True,
        filter=lambda record: not _is_message_record(record),
    )
    logger.add(
        log_dir / "messages.log",
        level="INFO",
        rotation=config.rotation,
        retention=config.retention,
        enqueue=True,
        filter=_is_message_record,
        format="{time:YYYY-MM-DD HH:mm:ss} | {extra[conversation]} | {extra[actor]} | {message}",
    )
    logger.debug(f"Logging to {log_dir} at level {level}")
    return log_dir
