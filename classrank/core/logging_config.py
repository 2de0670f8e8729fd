"""Logging configuration helpers for the classrank service."""

import logging
from logging import Logger
from typing import Optional

from classrank.core.config import settings


def configure_logging(level: Optional[str] = None) -> Logger:
    """Configure basic logging for the service and return the package logger."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("classrank")
