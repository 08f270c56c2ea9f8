"""Logging configuration.

Logs are JSON by default so CI and cron runs can be shipped as-is; set
``LOG_FORMAT=text`` for a terminal-friendly format.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _formatter(fmt: str) -> logging.Formatter:
    if fmt == "text":
        return logging.Formatter(TEXT_FORMAT)
    return JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "ts"},
    )


def configure_logging(level: str = "INFO", fmt: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger("kgov")
    if logger.handlers:
        return logger

    log_level = getattr(logging, os.environ.get("LOG_LEVEL", level).upper(), logging.INFO)
    logger.setLevel(log_level)
    handler = logging.StreamHandler()
    handler.setFormatter(_formatter((fmt or os.environ.get("LOG_FORMAT", "json")).lower()))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = logging.getLogger("kgov")
    if not base.handlers:
        configure_logging()
    if name is None:
        return base
    # module loggers are named after their import path, e.g. kgov.policy.reconciler
    return base.getChild(name[len("kgov."):]) if name.startswith("kgov.") else base.getChild(name)
