"""Shopper feedback channel (toasts).

Notices are buffered until the HTTP layer drains them into its response;
every notice is also logged.
"""

from typing import Callable, Optional

from libs.common.logging import get_logger
from services.checkout_service.models import NoticeLevel
from services.checkout_service.schemas.checkout import Notice

logger = get_logger(__name__)

_LOG_LEVELS = {
    NoticeLevel.INFO: logger.info,
    NoticeLevel.SUCCESS: logger.info,
    NoticeLevel.WARNING: logger.warning,
    NoticeLevel.ERROR: logger.warning,
}


class FeedbackChannel:
    def __init__(self, listener: Optional[Callable[[Notice], None]] = None):
        self.listener = listener
        self._pending: list[Notice] = []

    def publish(self, level: NoticeLevel, code: str, message: str) -> Notice:
        notice = Notice(level=level, code=code, message=message)
        _LOG_LEVELS[level]("[%s] %s", code, message)
        self._pending.append(notice)
        if self.listener is not None:
            self.listener(notice)
        return notice

    def drain(self) -> list[Notice]:
        pending, self._pending = self._pending, []
        return pending

    @property
    def pending(self) -> tuple[Notice, ...]:
        return tuple(self._pending)
