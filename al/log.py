# al/log.py
# -*- coding: utf-8 -*-
"""
Logging module for al
- init_logging(conf) sets up the "al" logger (console + optional rotating file)
- get_logger(name) returns a child logger per module
- set_level(level) for dynamic adjustment (e.g. --verbose)
- shutdown_logging() flushes and detaches handlers
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from logging import Logger
from pathlib import Path
from typing import Any, Dict, List, Optional

LOGGER_NAME = "al"

# Default logging configuration when config is absent or invalid
_DEFAULT_LOG_CONFIG = {
    "level": "INFO",
    "logfile": None,
    "colors": True,
    "max_size_mb": 5,
    "backup_count": 3,
}

_GLOBAL = {
    "initialized": False,
    "handlers": [],
}


# ---------------- Formatters ----------------

class ColorFormatter(logging.Formatter):
    COLOR_MAP = {
        "DEBUG": "\033[94m",    # light blue
        "INFO": "\033[36m",     # cyan
        "WARNING": "\033[93m",  # yellow
        "ERROR": "\033[91m",    # red
        "CRITICAL": "\033[95m", # magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt=fmt, datefmt=datefmt, style="%")
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        if self.use_colors and record.levelname in self.COLOR_MAP:
            return f"{self.COLOR_MAP[record.levelname]}{msg}{self.RESET}"
        return msg


# ---------------- Utilities ----------------

def _merge_with_defaults(conf: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    base = dict(_DEFAULT_LOG_CONFIG)
    if conf:
        base.update({k: v for k, v in conf.items() if v is not None or k == "logfile"})
    return base


def _level_str_to_int(level: Any) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


# ---------------- Initialization / teardown ----------------

def init_logging(config: Optional[Dict[str, Any]] = None) -> Logger:
    """
    Initialise the "al" logger.

    - config: the 'logging' section of the loaded Config (level, logfile, colors).
    Console output goes to stderr so stdout stays clean for `al activate`.
    """
    conf = _merge_with_defaults(config)
    shutdown_logging()

    logger = logging.getLogger(LOGGER_NAME)
    level = _level_str_to_int(conf.get("level", "INFO"))
    logger.setLevel(level)

    handlers: List[logging.Handler] = []

    use_colors = bool(conf.get("colors", True)) and sys.stderr.isatty()
    ch = logging.StreamHandler(sys.stderr)
    ch.setFormatter(ColorFormatter(fmt="[%(levelname)s] %(message)s", use_colors=use_colors))
    handlers.append(ch)

    logfile = conf.get("logfile")
    if logfile:
        Path(logfile).parent.mkdir(parents=True, exist_ok=True)
        fh = logging.handlers.RotatingFileHandler(
            logfile,
            maxBytes=int(conf.get("max_size_mb", 5)) * 1024 * 1024,
            backupCount=int(conf.get("backup_count", 3)),
            encoding="utf-8",
        )
        fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s -> %(message)s"))
        handlers.append(fh)

    for h in handlers:
        logger.addHandler(h)
    logger.propagate = False

    _GLOBAL["initialized"] = True
    _GLOBAL["handlers"] = handlers
    logger.debug("logging initialised: %s", conf)
    return logger


def shutdown_logging() -> None:
    """
    Detach and close the handlers installed by init_logging.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in _GLOBAL["handlers"]:
        h.flush()
        h.close()
        logger.removeHandler(h)
    logger.propagate = True
    _GLOBAL["handlers"] = []
    _GLOBAL["initialized"] = False


def set_level(level: Any) -> None:
    logging.getLogger(LOGGER_NAME).setLevel(_level_str_to_int(level))


def get_logger(name: Optional[str] = None) -> Logger:
    if not name or name == LOGGER_NAME:
        return logging.getLogger(LOGGER_NAME)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
