"""
SafeGuard Emergency Detection Core

Detects emergency situations from device motion and microphone volume and
dispatches alerts to the user's emergency contacts and backend.

Components:
- Sensor and microphone sources with idempotent subscriptions
- Motion and audio classifiers with thresholds, debounce and cooldowns
- Emergency coordinator for automatic camera capture
- Alert dispatcher with history, local alarm and concurrent channel fan-out
- Channels: backend HTTP alert, SMS hand-off, photo upload with local fallback
"""

from .models import EmergencyEvent, EventKind, AlertRecord, EmergencyContact, UserProfile
from .motion_classifier import MotionClassifier
from .audio_classifier import AudioClassifier, AudioThresholds
from .coordinator import EmergencyCoordinator
from .dispatcher import AlertDispatcher, AlertHistory
from .vibration import VibrationController
from .main import SafeguardApp

__version__ = "1.0.0"
