"""
utils/logger.py — Project-wide logging configuration
=====================================================
Provides a single `get_logger(name)` factory so every module gets a
consistently-formatted logger with colour-coded console output.

The default level can be overridden for the whole process with the
``PTT_LOG_LEVEL`` environment variable (e.g. ``PTT_LOG_LEVEL=DEBUG``),
which is handy when inspecting per-window lag estimates.
"""

import logging
import os
import sys

_COLOURS = {
    logging.DEBUG:    "\033[36m",   # cyan
    logging.INFO:     "\033[32m",   # green
    logging.WARNING:  "\033[33m",   # yellow
    logging.ERROR:    "\033[31m",   # red
    logging.CRITICAL: "\033[35m",   # magenta
}
_RESET = "\033[0m"


class _ColourFormatter(logging.Formatter):
    """Wrap the level tag in ANSI colour when writing to a terminal."""

    def __init__(self, fmt: str, datefmt: str, use_colour: bool):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if self._use_colour:
            colour = _COLOURS.get(record.levelno, _RESET)
            record.levelname = f"{colour}{levelname:<8}{_RESET}"
        else:
            record.levelname = f"{levelname:<8}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


_BASE_FMT = "%(asctime)s  %(levelname)s  %(name)-22s  %(message)s"
_DATE_FMT = "%H:%M:%S"

# Module-level registry to avoid adding duplicate handlers
_loggers: dict[str, logging.Logger] = {}


def _default_level() -> int:
    name = os.environ.get("PTT_LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Return (or create) a named logger.

    Parameters
    ----------
    name  : str          Module / component name shown in log lines.
    level : int | None   Minimum severity; defaults to ``PTT_LOG_LEVEL`` or INFO.
    """
    if name in _loggers:
        return _loggers[name]

    if level is None:
        level = _default_level()

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False          # Avoid duplicate messages from root

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(
        _ColourFormatter(_BASE_FMT, _DATE_FMT, use_colour=sys.stdout.isatty())
    )
    logger.addHandler(handler)

    _loggers[name] = logger
    return logger
