"""UI feedback adapter."""

from __future__ import annotations

import logging

from ..ui_feedback import notify

logger = logging.getLogger(__name__)


class UIFeedbackAdapter:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def notify(self, title: str, message: str) -> None:
        logger.info(f"{title}: {message}")
        if self.enabled:
            notify(title, message)
