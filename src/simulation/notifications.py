"""User-facing notifications."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


Notifier = Callable[[NotificationLevel, str], None]

_LOG_LEVELS = {
    NotificationLevel.INFO: logging.INFO,
    NotificationLevel.SUCCESS: logging.INFO,
    NotificationLevel.WARNING: logging.WARNING,
    NotificationLevel.ERROR: logging.ERROR,
}


def log_notifier(level: NotificationLevel, message: str) -> None:
    """Default notifier: route messages to the log."""
    logger.log(_LOG_LEVELS[level], message)
