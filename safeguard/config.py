"""
Configuration constants for the SafeGuard emergency detection core
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Platform / Deployment
API_URL = os.getenv("SAFEGUARD_API_URL", "http://localhost:5000")
DATA_DIR = os.getenv("SAFEGUARD_DATA_DIR", os.path.join(os.path.expanduser("~"), ".safeguard"))
PLATFORM = os.getenv("SAFEGUARD_PLATFORM", "android")  # android | ios
STATE_FILE = "state.json"
EMERGENCY_IMAGES_DIR = "emergency_images"

# Motion Detection
GRAVITY = 9.8
ACCELERATION_THRESHOLD = 20  # Sudden movement
SEVERE_ACCELERATION_THRESHOLD = 25  # Severe movement, escalates to vibration + camera
SHAKE_THRESHOLD = ACCELERATION_THRESHOLD / 2
GYROSCOPE_THRESHOLD = 7  # Rapid rotation (rad/s)
MOTION_ALERT_COOLDOWN_SECONDS = 3.0
SHAKE_RESET_SECONDS = 1.0
MOTION_UPDATE_INTERVAL_SECONDS = 0.1  # 10 updates per second
BACKGROUND_UPDATE_INTERVAL_SECONDS = 1.0
DISPLAY_UPDATE_INTERVAL_SECONDS = 0.5  # Display refresh <= 2 Hz

# Audio Detection
# Named threshold profiles, levels normalized so 1.0 is conversational volume
AUDIO_THRESHOLD_PROFILES = {
    "sensitive": {"vibration": 0.8, "alert": 0.9, "medium": 1.2, "high": 1.4},
    "conservative": {"vibration": 1.0, "alert": 1.3, "medium": 1.5, "high": 1.7},
}
AUDIO_THRESHOLD_PROFILE = os.getenv("SAFEGUARD_AUDIO_PROFILE", "sensitive")
VOICE_ALERT_COOLDOWN_SECONDS = 2.0
LISTENING_SESSION_SECONDS = 60.0  # Auto-stop to save battery
AUDIO_SAMPLE_RATE = 16000
AUDIO_CHANNELS = 1
AUDIO_BLOCK_DURATION_MS = 100
NOMINAL_VOLUME_DBFS = -30.0  # Maps to level 1.0
VOLUME_DB_SPAN = 40.0  # dB per 1.0 of normalized level
SIMULATED_SAMPLE_INTERVAL_SECONDS = 1.0
SIMULATED_LEVEL_RANGE = (0.2, 1.0)
SIMULATED_SPIKE_RANGE = (1.0, 1.8)
SIMULATED_SPIKE_PROBABILITY = 0.1

# Vibration Patterns (milliseconds, alternating wait/vibrate)
SHAKE_VIBRATION_PATTERN = [100, 200, 100, 200]
EMERGENCY_VIBRATION_PATTERN = [0, 500, 200, 500, 200, 500]
CONTINUOUS_VIBRATION_PATTERN = [100, 50, 300, 50]
VOICE_VIBRATION_PATTERNS = {
    "high": [100, 50, 300, 50],
    "medium": [50, 30, 200, 30],
    "light": [50, 100],
}
ALARM_VIBRATION_PATTERN = [500, 500, 500, 500]
LISTENING_STARTED_VIBRATION_MS = 100

# Emergency Coordinator
CAMERA_TRIGGER_COOLDOWN_SECONDS = 5.0

# Network Channels
ALERT_TIMEOUT_SECONDS = 5.0
UPLOAD_TIMEOUT_SECONDS = 10.0
LOCATION_TIMEOUT_SECONDS = 3.0
DISPATCH_WORKERS = 4

# Contacts
PHONE_PATTERN = r"^[0-9+\s()-]{6,15}$"
CONTACTS_KEY = "emergency_contacts"
USER_NAME_KEY = "userName"
USER_LOCATION_KEY = "userLocation"

# Camera
CAMERA_INDEX = int(os.getenv("SAFEGUARD_CAMERA_INDEX", 0))
CAMERA_JPEG_QUALITY = 80

# Logging
LOG_FILE = os.getenv("SAFEGUARD_LOG_FILE", "emergency_log.txt")
