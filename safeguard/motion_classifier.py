"""
Motion classifier
Turns accelerometer and gyroscope samples into motion emergency events
"""

import logging
import threading
import time

from .config import (
    GRAVITY, SHAKE_THRESHOLD, ACCELERATION_THRESHOLD, SEVERE_ACCELERATION_THRESHOLD,
    GYROSCOPE_THRESHOLD, MOTION_ALERT_COOLDOWN_SECONDS, SHAKE_RESET_SECONDS,
    MOTION_UPDATE_INTERVAL_SECONDS, BACKGROUND_UPDATE_INTERVAL_SECONDS,
    DISPLAY_UPDATE_INTERVAL_SECONDS, SHAKE_VIBRATION_PATTERN,
    EMERGENCY_VIBRATION_PATTERN, CONTINUOUS_VIBRATION_PATTERN
)
from .models import CooldownState, DisplayState, EmergencyEvent, EventKind, MotionSample

logger = logging.getLogger(__name__)

VIBRATION_OWNER = "motion"

MODE_IDLE = "idle"
MODE_FULL = "full"
MODE_BACKGROUND = "background"


def acceleration_magnitude(sample: MotionSample) -> float:
    """Magnitude of an accelerometer sample with gravity removed from z."""
    return sample.magnitude(z_offset=GRAVITY)


def rotation_magnitude(sample: MotionSample) -> float:
    return sample.magnitude()


class MotionClassifier:
    """
    Classifies device motion.

    Full monitoring subscribes to both sensors at 100 ms. Background-only
    mode subscribes to the accelerometer at 1000 ms and reacts to severe
    movement only; a severe event there escalates to full monitoring.
    Detection runs on every sample, while the display snapshot refreshes at
    most every DISPLAY_UPDATE_INTERVAL_SECONDS.
    """

    def __init__(self, emit, vibration, coordinator=None, accelerometer=None,
                 gyroscope=None, permissions_granted=True, clock=time.monotonic):
        self.emit = emit
        self.vibration = vibration
        self.coordinator = coordinator
        self.accelerometer = accelerometer
        self.gyroscope = gyroscope
        self.permissions_granted = permissions_granted
        self.clock = clock

        self.mode = MODE_IDLE
        self.accelerometer_subscription = None
        self.gyroscope_subscription = None
        self.cooldown = CooldownState(MOTION_ALERT_COOLDOWN_SECONDS)

        # Live readings, written on every sample
        self.acc = MotionSample(0.0, 0.0, 0.0)
        self.gyro = MotionSample(0.0, 0.0, 0.0)
        self.shaking_intensity = 0.0
        self.last_shake_time = None

        self._display = DisplayState()
        self._last_display_update = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def sensors_available(self):
        return bool(
            self.permissions_granted
            and self.accelerometer is not None and self.accelerometer.is_available()
            and self.gyroscope is not None and self.gyroscope.is_available()
        )

    def start_monitoring(self):
        """Start full monitoring. Returns False when sensors or permissions are missing."""
        if not self.sensors_available():
            logger.warning("Motion monitoring unavailable (sensor missing or permission denied)")
            return False
        self._subscribe(MODE_FULL)
        return True

    def start_background(self):
        """
        Start background-only monitoring on the accelerometer alone.
        Works without the motion permission so severe movement is still caught.
        """
        if self.accelerometer is None or not self.accelerometer.is_available():
            logger.warning("Background motion monitoring unavailable: no accelerometer")
            return False
        self._subscribe(MODE_BACKGROUND)
        return True

    def stop_monitoring(self):
        """Release both subscriptions. Safe to call repeatedly."""
        self._unsubscribe()
        self.vibration.stop(owner=VIBRATION_OWNER)
        with self._lock:
            self.mode = MODE_IDLE
            self.shaking_intensity = 0.0
            self.last_shake_time = None
            self.acc = MotionSample(0.0, 0.0, 0.0)
            self.gyro = MotionSample(0.0, 0.0, 0.0)
            self._display = DisplayState()
            self._last_display_update = None

    def _subscribe(self, mode):
        # Never hold two subscriptions to the same sensor
        self._unsubscribe()
        with self._lock:
            self.mode = mode

        if mode == MODE_BACKGROUND:
            self.accelerometer.set_update_interval(BACKGROUND_UPDATE_INTERVAL_SECONDS)
            self.accelerometer_subscription = self.accelerometer.add_listener(self.on_acceleration)
            logger.info("Background motion monitoring started")
            return

        self.accelerometer.set_update_interval(MOTION_UPDATE_INTERVAL_SECONDS)
        self.accelerometer_subscription = self.accelerometer.add_listener(self.on_acceleration)
        if self.gyroscope is not None and self.gyroscope.is_available():
            self.gyroscope.set_update_interval(MOTION_UPDATE_INTERVAL_SECONDS)
            self.gyroscope_subscription = self.gyroscope.add_listener(self.on_rotation)
        logger.info("Motion monitoring started")

    def _unsubscribe(self):
        try:
            if self.accelerometer_subscription is not None:
                subscription = self.accelerometer_subscription
                self.accelerometer_subscription = None
                subscription.remove()

            if self.gyroscope_subscription is not None:
                subscription = self.gyroscope_subscription
                self.gyroscope_subscription = None
                subscription.remove()
        except Exception as e:
            logger.error(f"Error unsubscribing from sensors: {e}")

    # ------------------------------------------------------------------
    # Sample handling
    # ------------------------------------------------------------------
    def on_acceleration(self, sample: MotionSample):
        magnitude = acceleration_magnitude(sample)
        now = self.clock()

        with self._lock:
            # A poll already in flight can deliver after stop_monitoring()
            if self.mode == MODE_IDLE:
                return
            self.acc = sample
            self.shaking_intensity = magnitude
            background = self.mode == MODE_BACKGROUND

        if background:
            if magnitude > SEVERE_ACCELERATION_THRESHOLD:
                self._handle_severe(magnitude)
                self._escalate()
            return

        if magnitude > SHAKE_THRESHOLD:
            was_shaking = self.is_shaking
            with self._lock:
                self.last_shake_time = now
            if not was_shaking:
                self.vibration.pulse(SHAKE_VIBRATION_PATTERN)

        if magnitude > SEVERE_ACCELERATION_THRESHOLD:
            self._handle_severe(magnitude)
        elif magnitude > ACCELERATION_THRESHOLD:
            if self._handle_emergency_detection("Sudden movement detected", magnitude):
                self.vibration.pulse(EMERGENCY_VIBRATION_PATTERN)

        self._refresh_display(now)

    def on_rotation(self, sample: MotionSample):
        magnitude = rotation_magnitude(sample)
        with self._lock:
            if self.mode != MODE_FULL:
                return
            self.gyro = sample

        if magnitude > GYROSCOPE_THRESHOLD:
            self._handle_emergency_detection("Rapid rotation detected", magnitude)

        self._refresh_display(self.clock())

    def _handle_severe(self, magnitude):
        # Vibration and camera bypass the alert dispatcher
        self.vibration.start_continuous(CONTINUOUS_VIBRATION_PATTERN, owner=VIBRATION_OWNER)
        if self.coordinator is not None:
            self.coordinator.request_capture(EventKind.MOTION.value)
        self._handle_emergency_detection("Severe movement detected", magnitude)

    def _escalate(self):
        logger.warning("Severe movement in background mode - escalating to full monitoring")
        try:
            self._subscribe(MODE_FULL)
        except Exception as e:
            logger.error(f"Escalation to full monitoring failed: {e}")

    def _handle_emergency_detection(self, reason, value):
        """Emit a motion event unless the cooldown is still running."""
        now = self.clock()
        with self._lock:
            if not self.cooldown.ready(now):
                return False
            self.cooldown.mark(now)

        logger.info(f"{reason}: {value:.2f}")
        try:
            self.emit(EmergencyEvent(EventKind.MOTION, reason, value))
        except Exception as e:
            logger.error(f"Failed to dispatch motion event: {e}")
        return True

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------
    @property
    def is_shaking(self):
        last = self.last_shake_time
        return last is not None and self.clock() - last < SHAKE_RESET_SECONDS

    def _refresh_display(self, now):
        with self._lock:
            if (self._last_display_update is not None
                    and now - self._last_display_update < DISPLAY_UPDATE_INTERVAL_SECONDS):
                return
            self._last_display_update = now
            self._display = DisplayState(
                acc=self.acc,
                gyro=self.gyro,
                shaking_intensity=self.shaking_intensity,
                is_shaking=self.is_shaking,
            )

    def display_state(self):
        with self._lock:
            return self._display

    def shake_intensity_percentage(self):
        percentage = self.display_state().shaking_intensity / SEVERE_ACCELERATION_THRESHOLD * 100
        return min(100.0, max(0.0, percentage))
