"""
Emergency coordinator
Process-wide broadcast point between the classifiers and the camera
"""

import logging
import threading
import time

from .config import CAMERA_TRIGGER_COOLDOWN_SECONDS
from .sensors import Subscription

logger = logging.getLogger(__name__)


class EmergencyCoordinator:
    """
    Accepts camera-trigger requests with a global cooldown and fans them out
    to subscribers. A pending capture must be acknowledged with
    ``clear_capture()`` before another request can be queued.
    """

    def __init__(self, cooldown=CAMERA_TRIGGER_COOLDOWN_SECONDS, clock=time.monotonic):
        self.cooldown = cooldown
        self.clock = clock
        self.pending_capture = False
        self.source_kind = None
        self.last_trigger_time = None
        self._listeners = []
        self._lock = threading.Lock()

    def subscribe(self, callback):
        with self._lock:
            self._listeners.append(callback)

        def _remove():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return Subscription(_remove)

    def request_capture(self, source_kind):
        """
        Request an emergency photo. Returns True when the request is accepted.
        """
        now = self.clock()
        with self._lock:
            if self.pending_capture:
                logger.info(f"Camera trigger from {source_kind} ignored - capture still pending")
                return False
            if self.last_trigger_time is not None and now - self.last_trigger_time < self.cooldown:
                remaining = self.cooldown - (now - self.last_trigger_time)
                logger.info(f"Camera trigger ignored - cooldown active ({round(remaining)}s remaining)")
                return False
            self.pending_capture = True
            self.source_kind = source_kind
            self.last_trigger_time = now
            listeners = list(self._listeners)

        logger.warning(f"Emergency camera triggered by {source_kind}")
        for listener in listeners:
            try:
                listener(source_kind)
            except Exception as e:
                logger.error(f"Camera listener failed: {e}")
        return True

    def clear_capture(self):
        with self._lock:
            self.pending_capture = False
