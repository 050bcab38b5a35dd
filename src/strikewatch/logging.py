from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

LOG_LEVEL_ENV = "STRIKEWATCH_LOG_LEVEL"
LOG_FILE = "strikewatch.log"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# third-party loggers held at WARNING unless the service runs quieter
NOISY_LOGGERS = ("aiohttp",)


def resolve_level(name: str | int | None) -> int:
    """Map a level name such as ``debug`` or ``WARN`` (or a number) to a level.

    Raises:
        ValueError: If logging does not know the name
    """
    if name is None or name == "":
        return logging.INFO
    if isinstance(name, int):
        return name

    name = name.strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def configure_logging(log_dir: Path | None = None, level: str | int | None = None) -> int:
    """Configure console logging plus a rotating file under ``log_dir``.

    ``level`` defaults to ``STRIKEWATCH_LOG_LEVEL``. An unknown level falls
    back to INFO with a warning rather than stopping the service.

    Returns:
        The level actually applied
    """
    requested = level if level is not None else os.environ.get(LOG_LEVEL_ENV)
    try:
        resolved = resolve_level(requested)
        rejected = None
    except ValueError:
        resolved, rejected = logging.INFO, requested

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # 10MB per file, 5 backups
    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    if rejected is not None:
        logging.getLogger(__name__).warning(
            "Unknown %s=%r, logging at INFO", LOG_LEVEL_ENV, rejected
        )
    return resolved
