"""
Vibration controller: the haptic motor is a single, exclusively owned resource
"""

import logging
import threading
import time

from .models import VibrationState

logger = logging.getLogger(__name__)


class LoggingVibrationBackend:
    """
    Default motor backend for hosts without haptics. Platform shells replace
    this with a driver exposing the same vibrate/cancel pair.
    """

    def vibrate(self, pattern, repeat=False):
        logger.info(f"Vibrate {pattern} (repeat={repeat})")

    def cancel(self):
        logger.info("Vibration cancelled")


class VibrationController:
    """
    Owns the continuous-vibration session. At most one session is active at a
    time; starting another while one runs is rejected, not queued.
    One-shot pulses play only when no session is active.
    """

    def __init__(self, backend=None, clock=time.monotonic):
        self.backend = backend or LoggingVibrationBackend()
        self.clock = clock
        self.state = VibrationState()
        self._release_listeners = []
        self._lock = threading.Lock()

    def add_release_listener(self, callback):
        """Call ``callback(previous_owner)`` whenever a continuous session ends."""
        self._release_listeners.append(callback)

    @property
    def active(self):
        return self.state.active

    @property
    def owner(self):
        return self.state.owner

    def start_continuous(self, pattern, owner):
        """
        Start a repeating pattern for ``owner``.
        Returns False if a session is already active.
        """
        with self._lock:
            if self.state.active:
                return False
            self.state = VibrationState(
                active=True,
                pattern=list(pattern),
                started_at=self.clock(),
                owner=owner,
            )
        logger.info(f"Continuous vibration started by {owner}")
        self.backend.vibrate(list(pattern), repeat=True)
        return True

    def stop(self, owner=None):
        """
        Stop the active session. When ``owner`` is given, only a session owned
        by it is stopped. Returns True if a session was stopped.
        """
        with self._lock:
            if not self.state.active:
                return False
            if owner is not None and self.state.owner != owner:
                return False
            previous = self.state.owner
            self.state = VibrationState()
        self.backend.cancel()
        logger.info(f"Continuous vibration stopped (owner: {previous})")
        for listener in list(self._release_listeners):
            try:
                listener(previous)
            except Exception as e:
                logger.error(f"Vibration release listener failed: {e}")
        return True

    def pulse(self, pattern):
        """One-shot vibration, skipped while a continuous session runs."""
        if self.state.active:
            return False
        self.backend.vibrate(pattern if isinstance(pattern, int) else list(pattern), repeat=False)
        return True
