"""
Audio classifier
Classifies metered volume into tiers, drives continuous vibration feedback
and emits voice emergency events
"""

import logging
import math
import threading
import time
from dataclasses import dataclass

from .audio_capture import MicrophoneLevelSource, SyntheticLevelSource
from .config import (
    AUDIO_THRESHOLD_PROFILES, AUDIO_THRESHOLD_PROFILE, VOICE_ALERT_COOLDOWN_SECONDS,
    LISTENING_SESSION_SECONDS, VOICE_VIBRATION_PATTERNS, LISTENING_STARTED_VIBRATION_MS
)
from .errors import AudioCaptureError
from .models import AudioSample, CooldownState, EmergencyEvent, EventKind

logger = logging.getLogger(__name__)

VIBRATION_OWNER = "voice"


@dataclass(frozen=True)
class AudioThresholds:
    vibration: float
    alert: float
    medium: float
    high: float

    @classmethod
    def from_profile(cls, name=AUDIO_THRESHOLD_PROFILE):
        if name not in AUDIO_THRESHOLD_PROFILES:
            raise ValueError(f"Unknown audio threshold profile: {name}")
        return cls(**AUDIO_THRESHOLD_PROFILES[name])


class AudioClassifier:
    """
    Listens to volume samples for at most LISTENING_SESSION_SECONDS.

    Vibration and emission are independent: any sample above the vibration
    tier keeps a continuous vibration running, while crossing the alert tier
    emits a voice event at most once per cooldown window.
    """

    def __init__(self, emit, vibration, notices=None, thresholds=None,
                 permissions_granted=True, source=None, fallback_source=None,
                 clock=time.monotonic):
        self.emit = emit
        self.vibration = vibration
        self.notices = notices
        self.thresholds = thresholds or AudioThresholds.from_profile()
        self.permissions_granted = permissions_granted
        self.source = source if source is not None else MicrophoneLevelSource()
        self.fallback_source = fallback_source if fallback_source is not None else SyntheticLevelSource()
        self.clock = clock

        self.is_listening = False
        self.using_simulated_audio = False
        self.volume = 0.0
        self.results = []
        self.error = ""
        self.session_started_at = None
        self.cooldown = CooldownState(VOICE_ALERT_COOLDOWN_SECONDS)

        self._active_source = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def start_listening(self):
        if not self.permissions_granted:
            self.error = "Cannot start listening: Microphone permission not granted"
            if self.notices:
                self.notices.post("Microphone", self.error)
            return False

        if self.is_listening:
            return True

        self.error = ""
        self.results = []
        self.volume = 0.0
        self.stop_continuous_vibration()

        try:
            self.source.start(self.on_sample)
            self._active_source = self.source
        except AudioCaptureError as e:
            logger.warning(f"{e} - falling back to simulated audio")
            self.error = str(e)
            self.fallback_source.start(self.on_sample)
            self._active_source = self.fallback_source
        self.using_simulated_audio = self._active_source.simulated

        with self._lock:
            self.is_listening = True
            self.session_started_at = self.clock()

        # Short feedback to indicate listening started
        self.vibration.pulse(LISTENING_STARTED_VIBRATION_MS)
        logger.info("Audio monitoring started")
        return True

    def stop_listening(self):
        """End the session. Safe to call repeatedly."""
        with self._lock:
            if not self.is_listening:
                return
            self.is_listening = False
            self.session_started_at = None
            source, self._active_source = self._active_source, None

        self.stop_continuous_vibration()
        if source is not None:
            source.stop()
        self.volume = 0.0
        logger.info("Audio monitoring stopped")

    def check_session_timeout(self):
        """Stop the session once it has run for LISTENING_SESSION_SECONDS."""
        started = self.session_started_at
        if not self.is_listening or started is None:
            return False
        if self.clock() - started < LISTENING_SESSION_SECONDS:
            return False
        self.stop_listening()
        self.results = [f"Listening timeout ({LISTENING_SESSION_SECONDS:.0f}s)"]
        return True

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------
    def on_sample(self, sample: AudioSample):
        if not self.is_listening or self.check_session_timeout():
            return

        level = sample.level
        self.volume = level
        t = self.thresholds

        if level > t.vibration and not self.vibration.active:
            self.start_continuous_vibration(level)

        if level > t.medium:
            logger.info(f"Medium sound detected ({round(level * 100)}%)")

        if level > t.high:
            self._handle_loud_sound(level, "Potential scream detected")
        elif level > t.alert:
            self._handle_loud_sound(level, "Loud sound detected")

    def _handle_loud_sound(self, level, message):
        now = self.clock()
        with self._lock:
            if not self.cooldown.ready(now):
                return False
            self.cooldown.mark(now)

        logger.warning(f"LOUD SOUND DETECTED - {message} ({round(level * 100)}%)")
        self.results = [message]

        # Re-arm only; an active session is left untouched
        if not self.vibration.active:
            self.start_continuous_vibration(level)

        try:
            self.emit(EmergencyEvent(EventKind.VOICE, message, level))
        except Exception as e:
            logger.error(f"Failed to dispatch voice event: {e}")
        return True

    # ------------------------------------------------------------------
    # Vibration control
    # ------------------------------------------------------------------
    def vibration_pattern(self, intensity):
        if intensity > self.thresholds.high:
            return VOICE_VIBRATION_PATTERNS["high"]
        if intensity > self.thresholds.medium:
            return VOICE_VIBRATION_PATTERNS["medium"]
        return VOICE_VIBRATION_PATTERNS["light"]

    def start_continuous_vibration(self, intensity=1.5):
        started = self.vibration.start_continuous(self.vibration_pattern(intensity), owner=VIBRATION_OWNER)
        if started:
            self.results = [f"Continuous vibration active ({round(intensity * 100)}%)"]
        return started

    def stop_continuous_vibration(self):
        stopped = self.vibration.stop(owner=VIBRATION_OWNER)
        if stopped and self.is_listening:
            self.results = ["Listening - vibration canceled"]
        return stopped

    def is_vibrating(self):
        return self.vibration.active and self.vibration.owner == VIBRATION_OWNER

    def volume_indicator(self):
        """Text meter: one glyph per 20% of volume, glyph chosen by tier."""
        t = self.thresholds
        if self.volume < t.vibration:
            glyph = "."
        elif self.volume < t.medium:
            glyph = "-"
        elif self.volume < t.high:
            glyph = "="
        else:
            glyph = "#"
        return glyph * math.ceil(self.volume * 5)
