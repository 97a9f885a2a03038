"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Union

DEFAULT_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"

_LOGGING_CONFIGURED = False


def configure_logging(level: Union[int, str] = logging.WARNING, fmt: str = DEFAULT_FORMAT) -> None:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(level=level, format=fmt)
        _LOGGING_CONFIGURED = True
    else:
        set_verbosity(level)


def set_verbosity(level: Union[int, str]) -> None:
    """Change the process-wide log level."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logging.getLogger().setLevel(level)


def verbosity_to_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING

