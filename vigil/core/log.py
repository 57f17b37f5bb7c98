"""
Logging setup - console plus a dated log file, both on the "vigil" logger.

The console shows logging.level (DEBUG with --verbose). The file records
logging.file_level, never less than the console. httpx, httpcore and
aiosqlite are held at logging.library_level.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

from vigil.core.config import LoggingConfig

LIBRARY_LOGGERS = ("httpx", "httpcore", "aiosqlite")

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(config: LoggingConfig | None = None, verbose: bool = False) -> logging.Logger:
    """
    Setup Vigil logging.

    Args:
        config: Logging section of VigilConfig (defaults when omitted)
        verbose: Force DEBUG on the console

    Returns:
        The configured "vigil" logger
    """
    config = config or LoggingConfig()
    log_dir = Path(config.log_dir).expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    console_level = logging.DEBUG if verbose else level_from_name(config.level)
    file_level = min(level_from_name(config.file_level), console_level)

    logger = logging.getLogger("vigil")
    logger.setLevel(file_level)

    # Clear existing handlers
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    # Console handler (minimal output)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    logger.addHandler(console_handler)

    # File handler (detailed output)
    log_file = log_dir / f"vigil_{datetime.now().strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)

    library_level = level_from_name(config.library_level)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logger.info(
        f"Logging initialized. File: {log_file} "
        f"(console {logging.getLevelName(console_level)}, file {logging.getLevelName(file_level)})"
    )

    return logger


def level_from_name(name: str) -> int:
    """Map 'debug'/'INFO'/... to a logging level, WARNING if unknown."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.WARNING
