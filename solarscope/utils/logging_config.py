"""
SolarScope logging setup.

One root configuration shared by the API, the CLI and library modules:
- pipe-separated console lines, colored on a terminal
- optional JSON-lines file output under <data_dir>/logs
- level taken from SOLARSCOPE_LOG_LEVEL unless given explicitly
- request context (analysis id, provider, error code, cache id) appended
  from the `extra` mapping

Usage:
    from solarscope.utils.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Footprint resolved", extra={"provider": "geometry_db", "cache_id": "3f2a..."})
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..core.config import settings

# Extra attributes appended to log lines when present on the record
CONTEXT_KEYS = ("analysis_id", "provider", "error_code", "cache_id")

# Chatty HTTP libraries held at WARNING
QUIET_LOGGERS = ("urllib3", "requests", "httpx", "httpcore")

LINE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _context(record: logging.LogRecord) -> Dict[str, object]:
    """Context extras set on a record, in CONTEXT_KEYS order."""
    return {
        key: getattr(record, key)
        for key in CONTEXT_KEYS
        if getattr(record, key, None) is not None
    }


class SolarScopeFormatter(logging.Formatter):
    """Console lines with a [key=value, ...] context suffix."""

    LEVEL_COLORS = {
        logging.DEBUG: "36",
        logging.INFO: "32",
        logging.WARNING: "33",
        logging.ERROR: "31",
        logging.CRITICAL: "35",
    }

    def __init__(self, use_colors: bool = True):
        super().__init__(fmt=LINE_FORMAT, datefmt=DATE_FORMAT)
        self.use_colors = use_colors and sys.stdout.isatty()

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if context:
            line += " [" + ", ".join(f"{k}={v}" for k, v in context.items()) + "]"
        if not self.use_colors:
            return line
        code = self.LEVEL_COLORS.get(record.levelno, "0")
        return f"\033[{code}m{line}\033[0m"


class FileFormatter(logging.Formatter):
    """JSON lines for log files."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_context(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


def _default_log_path() -> Path:
    log_dir = settings.data_dir / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"solarscope_{datetime.now():%Y%m%d}.log"


def setup_logging(
    level: Optional[str] = None,
    log_to_file: Optional[bool] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger.

    Replaces any handlers already installed, so calling it twice is safe.

    Args:
        level: Level name; defaults to settings.log_level
        log_to_file: Add a JSON-lines file handler; defaults to settings.log_to_file
        log_file: File path (default: <data_dir>/logs/solarscope_YYYYMMDD.log)
    """
    numeric_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    if log_to_file is None:
        log_to_file = settings.log_to_file

    handlers = [logging.StreamHandler(sys.stdout)]
    handlers[0].setFormatter(SolarScopeFormatter())
    handlers[0].setLevel(numeric_level)

    if log_to_file:
        path = Path(log_file) if log_file else _default_log_path()
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(FileFormatter())
        # Files keep DEBUG regardless of the console level
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(numeric_level)
    for handler in handlers:
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass __name__."""
    return logging.getLogger(name)


_configured = False


def ensure_logging() -> None:
    """Run setup_logging() once per process."""
    global _configured
    if _configured:
        return
    setup_logging()
    _configured = True
