from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

LOG_FORMAT = "%(asctime)s %(level_tag)s %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return f"{record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Formatter with bracketed lowercase level tags and UTC timestamps."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%SZ"
        )

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def parse_level(value: object, default: int = logging.INFO) -> int:
    """Map a level name such as "warn" to its logging constant."""
    return LEVELS.get(str(value or "").lower(), default)


def build_handlers(cfg: Optional[Dict[str, Any]]) -> List[logging.Handler]:
    """Brief: Build the handlers described by a ``logging:`` config block.

    Inputs:
      - cfg: Mapping with optional keys:
        - stderr: bool, log to stderr (default True).
        - file: str path opened in append mode; parent dirs are created.
        - syslog: bool or {address, facility}.

    Outputs:
      - list[logging.Handler]: Handlers with formatters attached.

    Raises:
      - OSError: When the log file cannot be opened.
    """
    cfg = cfg or {}
    formatter = BracketLevelFormatter(fmt=LOG_FORMAT)
    handlers: List[logging.Handler] = []

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        handlers.append(stderr_handler)

    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        if isinstance(syslog_cfg, dict):
            address = syslog_cfg.get("address", "/dev/log")
            facility = getattr(
                logging.handlers.SysLogHandler,
                f"LOG_{str(syslog_cfg.get('facility', 'USER')).upper()}",
                logging.handlers.SysLogHandler.LOG_USER,
            )
        else:
            address = "/dev/log"
            facility = logging.handlers.SysLogHandler.LOG_USER
        try:
            syslog_handler = logging.handlers.SysLogHandler(
                address=address, facility=facility
            )
        except (OSError, ValueError) as e:  # pragma: no cover - environment-specific
            logger.warning("Failed to configure syslog: %s", e)
        else:
            syslog_handler.setFormatter(SyslogFormatter())
            handlers.append(syslog_handler)

    return handlers


def init_logging(cfg: Optional[Dict[str, Any]]) -> None:
    """
    Configure the root logger from the ``logging:`` config block.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: string path to log file (optional)
            - syslog: boolean or dict with address/facility (optional)

    Example config:
        {
            "level": "debug",
            "stderr": True,
            "file": "./pdsql.log",
        }
    """
    cfg = cfg or {}

    root = logging.getLogger()
    root.setLevel(parse_level(cfg.get("level", "info")))

    for h in list(root.handlers):
        root.removeHandler(h)
    for h in build_handlers(cfg):
        root.addHandler(h)

    logging.captureWarnings(True)
