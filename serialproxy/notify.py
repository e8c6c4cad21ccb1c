"""User-facing notifications, kept apart from diagnostic logging."""

import logging
from typing import Callable

Notifier = Callable[[int, str], None]

notify_logger = logging.getLogger("serialproxy.notify")


def log_notifier(level: int, message: str) -> None:
    """Default notifier: forward the message to the notification logger."""
    notify_logger.log(level, message)
