"""
Data model for the SafeGuard emergency core
Samples, emergency events, alert records, contacts and profile
"""

import datetime
import math
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .config import PHONE_PATTERN

_PHONE_RE = re.compile(PHONE_PATTERN)


class EventKind(str, Enum):
    MOTION = "motion"
    VOICE = "voice"
    TEST = "test"


@dataclass(frozen=True)
class MotionSample:
    """One accelerometer (m/s^2) or gyroscope (rad/s) reading."""
    x: float
    y: float
    z: float

    def magnitude(self, z_offset: float = 0.0) -> float:
        return math.sqrt(self.x * self.x + self.y * self.y + (self.z - z_offset) ** 2)


@dataclass(frozen=True)
class AudioSample:
    """Normalized volume level, 1.0 is conversational volume."""
    level: float


@dataclass(frozen=True)
class EmergencyEvent:
    kind: EventKind
    reason: str
    magnitude: float = 0.0
    timestamp: datetime.datetime = field(default_factory=datetime.datetime.now)

    @property
    def details(self) -> str:
        if self.kind == EventKind.MOTION:
            return f"{self.reason} (value: {self.magnitude:.2f})"
        if self.kind == EventKind.VOICE:
            return f"{self.reason} (volume level: {round(self.magnitude * 100)}%)"
        return self.reason


@dataclass(frozen=True)
class AlertRecord:
    id: str
    timestamp: datetime.datetime
    kind: EventKind
    details: str

    @classmethod
    def from_event(cls, event: EmergencyEvent) -> "AlertRecord":
        return cls(
            id=str(time.time_ns()),
            timestamp=event.timestamp,
            kind=event.kind,
            details=event.details,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "type": self.kind.value,
            "details": self.details,
        }


@dataclass
class CooldownState:
    """Tracks the last accepted event time of one classifier."""
    period: float
    last_event_time: Optional[float] = None

    def ready(self, now: float) -> bool:
        return self.last_event_time is None or now - self.last_event_time > self.period

    def mark(self, now: float):
        self.last_event_time = now


@dataclass
class VibrationState:
    active: bool = False
    pattern: List[int] = field(default_factory=list)
    started_at: Optional[float] = None
    owner: Optional[str] = None


@dataclass(frozen=True)
class EmergencyContact:
    id: str
    name: str
    phone: str

    @staticmethod
    def is_valid_phone(phone: str) -> bool:
        return bool(phone) and _PHONE_RE.match(phone.strip()) is not None

    def to_dict(self):
        return {"id": self.id, "name": self.name, "phone": self.phone}

    @classmethod
    def from_dict(cls, data):
        return cls(id=str(data["id"]), name=data["name"], phone=data["phone"])


@dataclass
class UserProfile:
    name: str = ""
    address: str = ""


@dataclass
class DisplayState:
    """Snapshot of motion readings for rendering, refreshed at most twice a second."""
    acc: MotionSample = MotionSample(0.0, 0.0, 0.0)
    gyro: MotionSample = MotionSample(0.0, 0.0, 0.0)
    shaking_intensity: float = 0.0
    is_shaking: bool = False
