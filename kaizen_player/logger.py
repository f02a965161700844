# kaizen_player/logger.py
from __future__ import annotations

import logging
import os
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _resolve_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.environ.get("LOG_LEVEL") or logging.INFO
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: Optional[Union[int, str]] = None) -> int:
    """
    Configure the root logger.

    Explicit level > LOG_LEVEL env > INFO. Returns the applied level.
    """
    resolved = _resolve_level(level)
    logging.basicConfig(format=LOG_FORMAT, level=resolved)
    logging.getLogger().setLevel(resolved)
    return resolved


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
