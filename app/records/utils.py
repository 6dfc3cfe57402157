from __future__ import annotations

import logging
import re
import sys
from datetime import datetime, timezone
from pathlib import Path

from . import config

LOGGER = logging.getLogger("records")
LOG_FORMAT = "[%(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOGGER_INITIALISED = False


def _attach_handlers(log_path: Path) -> None:
    """Point the ``records`` logger at stdout and ``log_path``, replacing old handlers."""

    global _LOGGER_INITIALISED

    log_path.parent.mkdir(parents=True, exist_ok=True)
    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path, encoding="utf-8")):
        handler.setFormatter(formatter)
        LOGGER.addHandler(handler)

    LOGGER.setLevel(logging.INFO)
    LOGGER.propagate = False
    _LOGGER_INITIALISED = True


def setup_run_logger() -> Path:
    """Send log lines for this CLI batch to ``LOG_DIR/batch_<utc timestamp>.log``."""

    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = config.LOG_DIR / f"batch_{stamp}.log"
    _attach_handlers(log_path)
    LOGGER.info("Logging to %s", log_path)
    return log_path


def ensure_dirs() -> None:
    for directory in (config.DATA_DIR, config.LOG_DIR, config.EXPORTS_DIR):
        directory.mkdir(parents=True, exist_ok=True)


def log_line(message: str) -> None:
    """Log ``message`` on the shared ``records`` logger, configuring it on first use."""

    if not _LOGGER_INITIALISED:
        _attach_handlers(config.LOG_FILE)
    LOGGER.info(message)


def sanitize_export_name(name: str) -> str:
    """Return a workbook base name with path separators and control chars removed."""

    cleaned = "".join(ch if ord(ch) >= 32 else " " for ch in (name or ""))
    cleaned = re.sub(r"[\\/:*?\"<>|]", "_", cleaned).strip(" .")
    return cleaned or "resultados"


__all__ = ["ensure_dirs", "setup_run_logger", "log_line", "sanitize_export_name"]
