"""
Audio capture module for SafeGuard voice detection
Meters microphone volume into normalized level samples, with a synthetic
fallback source for hosts where the microphone cannot be opened
"""

import logging
import threading
from queue import Queue, Empty, Full

import librosa
import numpy as np

from .config import (
    AUDIO_SAMPLE_RATE, AUDIO_CHANNELS, AUDIO_BLOCK_DURATION_MS,
    NOMINAL_VOLUME_DBFS, VOLUME_DB_SPAN, SIMULATED_SAMPLE_INTERVAL_SECONDS,
    SIMULATED_LEVEL_RANGE, SIMULATED_SPIKE_RANGE, SIMULATED_SPIKE_PROBABILITY
)
from .errors import AudioCaptureError
from .models import AudioSample

logger = logging.getLogger(__name__)


def normalize_level(dbfs):
    """Map a dBFS reading to the normalized scale where NOMINAL_VOLUME_DBFS is 1.0."""
    return max(0.0, 1.0 + (dbfs - NOMINAL_VOLUME_DBFS) / VOLUME_DB_SPAN)


def block_level(block):
    """
    Normalized volume level of one mono block of float32 samples
    """
    audio = np.asarray(block, dtype=np.float32).flatten()
    if audio.size == 0:
        return 0.0
    rms = librosa.feature.rms(y=audio, frame_length=audio.size, hop_length=audio.size, center=False)
    dbfs = librosa.amplitude_to_db(rms, ref=1.0, top_db=None)
    return normalize_level(float(dbfs.max()))


class MicrophoneLevelSource:
    """
    Opens a sounddevice input stream and emits one AudioSample per block.
    The stream callback only queues levels; a delivery thread hands them to
    the listener so classification never runs on the audio thread.
    """

    simulated = False

    def __init__(self, sample_rate=AUDIO_SAMPLE_RATE, channels=AUDIO_CHANNELS,
                 block_duration_ms=AUDIO_BLOCK_DURATION_MS):
        self.sample_rate = sample_rate
        self.channels = channels
        self.block_samples = int(sample_rate * block_duration_ms / 1000)

        # Thread-safe queue for decoupling capture and processing
        self.level_queue = Queue(maxsize=100)

        self.is_running = False
        self.stream = None
        self.delivery_thread = None
        self._listener = None

    def audio_callback(self, indata, frames, time_info, status):
        """
        Callback function for audio stream - runs in separate thread
        """
        if status:
            logger.debug(f"Audio status: {status}")

        if self.channels == 1:
            audio_data = indata.flatten()
        else:
            audio_data = np.mean(indata, axis=1)

        try:
            self.level_queue.put_nowait(block_level(audio_data))
        except Full:
            logger.debug("Level queue full, dropping block")

    def _delivery_loop(self):
        while self.is_running:
            try:
                level = self.level_queue.get(timeout=0.1)
            except Empty:
                continue
            try:
                self._listener(AudioSample(level))
            except Exception as e:
                logger.error(f"Audio listener error: {e}")

    def start(self, listener):
        """
        Open the microphone. Raises AudioCaptureError if the stream cannot be
        opened (missing PortAudio, no input device, permission denied).
        """
        if self.is_running:
            logger.warning("Audio capture already running")
            return

        try:
            import sounddevice as sd
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype=np.float32,
                callback=self.audio_callback,
                blocksize=self.block_samples
            )
            stream.start()
        except Exception as e:
            raise AudioCaptureError(f"Failed to start recording: {e}") from e

        self.stream = stream
        self._listener = listener
        self.is_running = True
        self.delivery_thread = threading.Thread(target=self._delivery_loop, daemon=True)
        self.delivery_thread.start()
        logger.info("Microphone capture started")

    def stop(self):
        """
        Stop audio capture gracefully
        """
        if not self.is_running:
            return

        self.is_running = False

        if self.stream:
            try:
                self.stream.stop()
                self.stream.close()
            except Exception as e:
                logger.error(f"Failed to stop recording: {e}")
            self.stream = None

        if self.delivery_thread and self.delivery_thread.is_alive() \
                and self.delivery_thread is not threading.current_thread():
            self.delivery_thread.join(timeout=1.0)

        logger.info("Microphone capture stopped")


class SyntheticLevelSource:
    """
    Emits randomized volume levels once per second so the detection and
    dispatch path keeps running without microphone access.
    Most values sit in a quiet-to-conversational range; a few are loud spikes.
    """

    simulated = True

    def __init__(self, interval=SIMULATED_SAMPLE_INTERVAL_SECONDS, seed=None):
        self.interval = interval
        self.rng = np.random.default_rng(seed)
        self.is_running = False
        self._stop_event = threading.Event()
        self._thread = None
        self._listener = None

    def next_level(self):
        if self.rng.random() < SIMULATED_SPIKE_PROBABILITY:
            return float(self.rng.uniform(*SIMULATED_SPIKE_RANGE))
        return float(self.rng.uniform(*SIMULATED_LEVEL_RANGE))

    def _loop(self):
        while not self._stop_event.wait(self.interval):
            try:
                self._listener(AudioSample(self.next_level()))
            except Exception as e:
                logger.error(f"Audio listener error: {e}")

    def start(self, listener):
        if self.is_running:
            return
        self._listener = listener
        self._stop_event.clear()
        self.is_running = True
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()
        logger.info("Simulated audio source started")

    def stop(self):
        if not self.is_running:
            return
        self.is_running = False
        self._stop_event.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1.0)
        logger.info("Simulated audio source stopped")
