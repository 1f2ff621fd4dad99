"""
Best-effort location lookup for outbound alerts
"""

import logging
import threading
from queue import Queue, Empty

from ..config import LOCATION_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class StaticLocationProvider:
    """Fixed coordinates, e.g. from configuration or a platform shell."""

    def __init__(self, latitude=None, longitude=None):
        self.latitude = latitude
        self.longitude = longitude

    def get_current_location(self):
        if self.latitude is None or self.longitude is None:
            return None
        return self.latitude, self.longitude


def fetch_location(provider, timeout=LOCATION_TIMEOUT_SECONDS):
    """
    Ask ``provider`` for (latitude, longitude) with a deadline.
    Returns None when there is no provider, it fails, or it is too slow.
    """
    if provider is None:
        return None

    result = Queue(maxsize=1)

    def _lookup():
        try:
            result.put(provider.get_current_location())
        except Exception as e:
            logger.error(f"Error getting location: {e}")
            result.put(None)

    threading.Thread(target=_lookup, daemon=True).start()
    try:
        return result.get(timeout=timeout)
    except Empty:
        logger.warning(f"Location lookup timed out after {timeout}s")
        return None


def maps_url(latitude, longitude):
    return f"https://maps.google.com/maps?q={latitude},{longitude}"
