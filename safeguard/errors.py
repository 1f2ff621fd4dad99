"""
Exception types raised by the SafeGuard core
"""


class SafeguardError(Exception):
    """Base class for all SafeGuard errors."""


class ValidationError(SafeguardError):
    """User input failed validation (phone number, missing name)."""


class SensorUnavailableError(SafeguardError):
    """A motion sensor is missing or permission was not granted."""


class AudioCaptureError(SafeguardError):
    """The microphone stream could not be opened."""


class CameraError(SafeguardError):
    """No still image could be acquired."""


class LocalSaveError(SafeguardError):
    """An emergency image could not be written to local storage."""
