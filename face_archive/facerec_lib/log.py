"""Logging setup for the face recognizer and its CLI."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "facerec_lib"


def parse_level(level: str) -> int:
    """Accept a level name (``debug``) or a number (``10``)."""
    text = (level or "").strip()
    if text.isdigit():
        return int(text)
    value = logging.getLevelName(text.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Send recognizer logs to stderr and optionally to ``log_file``.

    Safe to call more than once: the console handler is installed once and a
    given file is never attached twice.
    """
    numeric = parse_level(level)
    root = logging.getLogger()
    if not root.handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console)
    root.setLevel(numeric)
    if log_file:
        log_file = Path(log_file).resolve()
        attached = {
            Path(handler.baseFilename)
            for handler in root.handlers
            if isinstance(handler, logging.FileHandler)
        }
        if log_file not in attached:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(log_file, encoding="utf-8")
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(handler)
    return logging.getLogger(PACKAGE_LOGGER)
