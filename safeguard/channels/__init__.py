"""
Notification channels: backend HTTP alert, SMS hand-off, photo upload
"""

from .backend import send_emergency_alert, upload_emergency_image
from .location import StaticLocationProvider, fetch_location
from .sms import SmsComposer
from .photo import OpenCVCamera, PhotoCaptureService
