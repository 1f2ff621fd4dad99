"""
User-facing notices for manually initiated actions
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notice:
    title: str
    message: str


class NoticeBoard:
    """
    Collects blocking notices raised by manual actions (test alert, manual
    photo, test SMS). A UI layer registers a presenter; without one, notices
    are only logged.
    """

    def __init__(self, presenter: Optional[Callable[[Notice], None]] = None):
        self.presenter = presenter
        self._notices: List[Notice] = []
        self._lock = threading.Lock()

    def post(self, title, message):
        notice = Notice(title, message)
        with self._lock:
            self._notices.append(notice)
        logger.warning(f"[{title}] {message}")
        if self.presenter:
            self.presenter(notice)
        return notice

    @property
    def notices(self):
        with self._lock:
            return list(self._notices)

    def titles(self):
        return [n.title for n in self.notices]
