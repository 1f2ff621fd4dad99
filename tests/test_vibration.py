"""Tests for the vibration controller and sensor sources."""

import threading

import pytest

from safeguard.errors import SensorUnavailableError
from safeguard.sensors import PolledSensorSource, SimulatedMotionReader, Subscription


class TestVibrationController:

    def test_single_session(self, vibration, vibration_backend):
        assert vibration.start_continuous([100, 50], owner="motion")
        assert not vibration.start_continuous([200, 50], owner="voice")
        assert vibration.owner == "motion"
        assert vibration_backend.continuous_patterns() == [[100, 50]]

    def test_stop_respects_owner(self, vibration):
        vibration.start_continuous([100, 50], owner="motion")
        assert not vibration.stop(owner="voice")
        assert vibration.active
        assert vibration.stop(owner="motion")
        assert not vibration.active

    def test_stop_without_owner(self, vibration, vibration_backend):
        vibration.start_continuous([100, 50], owner="alarm")
        assert vibration.stop()
        assert not vibration.stop()
        assert vibration_backend.calls[-1] == ("cancel",)

    def test_started_at_uses_clock(self, vibration, clock):
        vibration.start_continuous([100], owner="voice")
        assert vibration.state.started_at == clock.now

    def test_release_listeners_get_previous_owner(self, vibration):
        released = []
        vibration.add_release_listener(released.append)
        vibration.start_continuous([100, 50], owner="voice")

        vibration.stop(owner="motion")
        vibration.stop(owner="voice")
        vibration.stop()

        assert released == ["voice"]

    def test_failing_release_listener_is_isolated(self, vibration):
        def broken(owner):
            raise RuntimeError("listener down")

        released = []
        vibration.add_release_listener(broken)
        vibration.add_release_listener(released.append)
        vibration.start_continuous([100, 50], owner="motion")

        assert vibration.stop()
        assert released == ["motion"]

    def test_pulse_skipped_during_session(self, vibration, vibration_backend):
        assert vibration.pulse(100)
        vibration.start_continuous([100, 50], owner="motion")
        assert not vibration.pulse([50, 100])
        assert vibration_backend.one_shot_patterns() == [100]


class TestSubscription:

    def test_remove_is_idempotent(self):
        calls = []
        subscription = Subscription(lambda: calls.append(1))
        subscription.remove()
        subscription.remove()
        assert calls == [1]
        assert subscription.removed


class TestPolledSensorSource:

    def test_unavailable_without_reader(self):
        source = PolledSensorSource("gyroscope")
        assert not source.is_available()
        with pytest.raises(SensorUnavailableError):
            source.add_listener(lambda sample: None)

    def test_delivers_readings_until_removed(self):
        received = threading.Event()
        samples = []

        def listener(sample):
            samples.append(sample)
            received.set()

        source = PolledSensorSource("accelerometer", reader=lambda: (1.0, 2.0, 3.0), interval=0.01)
        subscription = source.add_listener(listener)
        assert received.wait(2)
        subscription.remove()

        count = len(samples)
        assert samples[0].x == 1.0
        assert samples[0].z == 3.0
        received.clear()
        assert not received.wait(0.05)
        assert len(samples) == count

    def test_listener_errors_do_not_stop_polling(self):
        calls = []
        done = threading.Event()

        def listener(sample):
            calls.append(sample)
            if len(calls) >= 2:
                done.set()
            raise ValueError("bad sample")

        source = PolledSensorSource("accelerometer", reader=lambda: (0.0, 0.0, 9.8), interval=0.01)
        subscription = source.add_listener(listener)
        try:
            assert done.wait(2)
        finally:
            subscription.remove()


class TestSimulatedMotionReader:

    def test_resting_device_reads_gravity(self):
        reader = SimulatedMotionReader(spike_probability=0.0, seed=3)
        readings = [reader() for _ in range(200)]
        mean_z = sum(r[2] for r in readings) / len(readings)
        assert mean_z == pytest.approx(9.8, abs=0.2)

    def test_gyroscope_centres_on_zero(self):
        reader = SimulatedMotionReader(spike_probability=0.0, seed=3, gyroscope=True)
        mean_z = sum(reader()[2] for _ in range(200)) / 200
        assert mean_z == pytest.approx(0.0, abs=0.2)
