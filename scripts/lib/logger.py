"""
Centralized logging for Zoho Stats Hub.

Every module logs through ``setup_logger`` so console and daily-file output
share one format. Level and file output follow ``LOG_LEVEL`` and
``LOG_TO_FILE`` unless passed explicitly.

Usage:
    from scripts.lib.logger import setup_logger
    logger = setup_logger(__name__)
    logger.info("Fetched %d leads", len(leads))
"""
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
LOG_DIR = PROJECT_ROOT / "logs"
LOG_FILE_SUFFIX = "zoho_stats.log"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _resolve_level(level: str = None) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _file_logging_enabled() -> bool:
    return os.getenv("LOG_TO_FILE", "true").strip().lower() not in ("false", "0", "no")


def _daily_log_path(log_dir: Path = None) -> Path:
    target = Path(log_dir) if log_dir else LOG_DIR
    target.mkdir(parents=True, exist_ok=True)
    return target / f"{datetime.now():%Y%m%d}_{LOG_FILE_SUFFIX}"


def setup_logger(
    name: str,
    level: str = None,
    log_to_file: bool = None,
    log_dir: Path = None,
) -> logging.Logger:
    """
    Configure and return a named logger.

    Args:
        name: Logger name (usually ``__name__``).
        level: Level name; falls back to ``LOG_LEVEL``, then INFO.
        log_to_file: Also write to ``logs/YYYYMMDD_zoho_stats.log``;
            falls back to ``LOG_TO_FILE`` (on unless "false").
        log_dir: Override the log directory.

    Returns:
        The logger. Calling again with the same name returns it unchanged.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(_resolve_level(level))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_to_file if log_to_file is not None else _file_logging_enabled():
        handlers.append(logging.FileHandler(_daily_log_path(log_dir), encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
