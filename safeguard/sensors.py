"""
Motion sensor source adapters
Wrap a platform reader in a polling thread and hand out subscriptions
"""

import logging
import threading
import time

import numpy as np

from .config import GRAVITY, MOTION_UPDATE_INTERVAL_SECONDS
from .errors import SensorUnavailableError
from .models import MotionSample

logger = logging.getLogger(__name__)


class Subscription:
    """
    Handle returned by a source. ``remove()`` may be called any number of
    times; only the first call detaches the listener.
    """

    def __init__(self, on_remove=None):
        self._on_remove = on_remove
        self._removed = False
        self._lock = threading.Lock()

    @property
    def removed(self):
        return self._removed

    def remove(self):
        with self._lock:
            if self._removed:
                return
            self._removed = True
            on_remove, self._on_remove = self._on_remove, None
        if on_remove:
            on_remove()


class PolledSensorSource:
    """
    Polls ``reader()`` on a background thread and pushes each reading to the
    subscribed listener. ``reader`` returns an (x, y, z) tuple or None.
    A source without a reader reports itself unavailable.
    """

    def __init__(self, name, reader=None, interval=MOTION_UPDATE_INTERVAL_SECONDS):
        self.name = name
        self.reader = reader
        self.interval = interval

    def is_available(self):
        return self.reader is not None

    def set_update_interval(self, seconds):
        self.interval = seconds

    def add_listener(self, callback):
        if not self.is_available():
            raise SensorUnavailableError(f"{self.name} sensor not available")

        stop_event = threading.Event()
        interval = self.interval

        def _poll_loop():
            while not stop_event.is_set():
                try:
                    reading = self.reader()
                    if reading is not None:
                        callback(MotionSample(*reading))
                except Exception as e:
                    logger.error(f"{self.name} listener error: {e}")
                stop_event.wait(interval)

        thread = threading.Thread(target=_poll_loop, name=f"{self.name}-poll", daemon=True)
        thread.start()
        logger.info(f"{self.name} subscribed ({interval * 1000:.0f} ms)")

        def _detach():
            stop_event.set()
            if thread is not threading.current_thread():
                thread.join(timeout=1.0)
            logger.info(f"{self.name} unsubscribed")

        return Subscription(_detach)


class SimulatedMotionReader:
    """
    Generates accelerometer readings for hosts without motion hardware:
    gravity on z plus small noise, with an occasional sharp spike.
    """

    def __init__(self, spike_probability=0.02, seed=None, gyroscope=False):
        self.spike_probability = spike_probability
        self.gyroscope = gyroscope
        self.rng = np.random.default_rng(seed)

    def __call__(self):
        noise = self.rng.normal(0.0, 0.3, 3)
        base = np.zeros(3) if self.gyroscope else np.array([0.0, 0.0, GRAVITY])
        if self.rng.random() < self.spike_probability:
            scale = 6.0 if self.gyroscope else 18.0
            noise += self.rng.normal(0.0, scale, 3)
        x, y, z = base + noise
        return float(x), float(y), float(z)
