"""Pytest configuration and fixtures for SafeGuard tests."""

import os
import sys
from types import SimpleNamespace

import pytest

# Make the package importable without installation
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from safeguard.models import UserProfile
from safeguard.notices import NoticeBoard
from safeguard.sensors import Subscription
from safeguard.storage import ContactStore, KeyValueStore, UserProfileStore
from safeguard.vibration import VibrationController


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingVibrationBackend:
    def __init__(self):
        self.calls = []

    def vibrate(self, pattern, repeat=False):
        self.calls.append(("vibrate", pattern, repeat))

    def cancel(self):
        self.calls.append(("cancel",))

    def continuous_patterns(self):
        return [c[1] for c in self.calls if c[0] == "vibrate" and c[2]]

    def one_shot_patterns(self):
        return [c[1] for c in self.calls if c[0] == "vibrate" and not c[2]]


class FakeSensorSource:
    """Sensor source whose samples are pushed by the test."""

    def __init__(self, available=True):
        self.available = available
        self.interval = None
        self.listener = None
        self.removals = 0

    def is_available(self):
        return self.available

    def set_update_interval(self, seconds):
        self.interval = seconds

    def add_listener(self, callback):
        self.listener = callback

        def _remove():
            self.removals += 1
            self.listener = None

        return Subscription(_remove)


class FakeLevelSource:
    def __init__(self, simulated=False, fail=None):
        self.simulated = simulated
        self.fail = fail
        self.listener = None
        self.starts = 0
        self.stops = 0

    def start(self, listener):
        if self.fail is not None:
            raise self.fail
        self.starts += 1
        self.listener = listener

    def stop(self):
        self.stops += 1


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vibration_backend():
    return RecordingVibrationBackend()


@pytest.fixture
def vibration(vibration_backend, clock):
    return VibrationController(backend=vibration_backend, clock=clock)


@pytest.fixture
def notices():
    return NoticeBoard()


@pytest.fixture
def kv_store(tmp_path):
    return KeyValueStore(str(tmp_path / "state.json"))


@pytest.fixture
def contact_store(kv_store):
    return ContactStore(kv_store)


@pytest.fixture
def profile_store(kv_store):
    store = UserProfileStore(kv_store)
    store.load()
    return store


@pytest.fixture
def named_profile():
    return SimpleNamespace(profile=UserProfile(name="Asha", address="12 Park Road"))
