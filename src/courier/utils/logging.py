"""Logging helpers."""

from __future__ import annotations

import logging
from typing import Optional

_LOGGING_CONFIGURED = False


def get_logger(name: Optional[str] = None, level: int = logging.WARNING) -> logging.Logger:
    global _LOGGING_CONFIGURED
    if not _LOGGING_CONFIGURED:
        logging.basicConfig(
            level=level,
            format="[%(asctime)s] %(levelname)s %(name)s - %(message)s",
        )
        # paramiko is chatty at INFO about every handshake detail
        logging.getLogger("paramiko").setLevel(max(level, logging.WARNING))
        _LOGGING_CONFIGURED = True
    return logging.getLogger(name)
