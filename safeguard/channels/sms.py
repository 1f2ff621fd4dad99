"""
SMS hand-off to emergency contacts
Messages are prepared as sms: URIs and handed to the platform messaging app,
one contact at a time. Delivery is up to the user and the messaging app.
"""

import logging
import re
import webbrowser
from urllib.parse import quote

from ..config import PLATFORM, LOCATION_TIMEOUT_SECONDS
from .location import fetch_location, maps_url

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r"[\s()-]")


def clean_phone_number(phone):
    return _PHONE_NOISE.sub("", phone)


def build_sms_uri(phone, message, platform=PLATFORM):
    number = clean_phone_number(phone)
    separator = "?" if platform == "android" else "&"
    return f"sms:{number}{separator}body={quote(message, safe='')}"


def compose_emergency_message(alert_type, details, location=None):
    message = f"EMERGENCY ALERT: {alert_type} detected. {details or ''}"
    if location:
        message += f"\n\nCurrent location: {maps_url(*location)}"
    else:
        message += "\n\nLocation unavailable"
    return message


class WebbrowserLauncher:
    """Opens sms: URIs with the desktop's registered URL handler."""

    def can_open(self, uri):
        try:
            webbrowser.get()
            return True
        except webbrowser.Error:
            return False

    def open(self, uri):
        return webbrowser.open(uri)


class SmsComposer:

    def __init__(self, contacts, launcher=None, location_provider=None,
                 platform=PLATFORM, location_timeout=LOCATION_TIMEOUT_SECONDS):
        self.contacts = contacts
        self.launcher = launcher or WebbrowserLauncher()
        self.location_provider = location_provider
        self.platform = platform
        self.location_timeout = location_timeout

    def send_sms(self, phone, message):
        """Open the messaging app for one number. Returns False if it cannot be opened."""
        try:
            uri = build_sms_uri(phone, message, self.platform)
            if not self.launcher.can_open(uri):
                logger.warning("Cannot open SMS app")
                return False
            self.launcher.open(uri)
            return True
        except Exception as e:
            logger.error(f"Error sending SMS: {e}")
            return False

    def current_location(self):
        return fetch_location(self.location_provider, self.location_timeout)

    def send_emergency_sms(self, alert_type, details):
        """
        Prepare an emergency SMS for every contact.
        Returns False when there are no contacts or preparation fails.
        """
        try:
            contacts = self.contacts.get_contacts()
            if not contacts:
                logger.info("No emergency contacts found")
                return False

            message = compose_emergency_message(alert_type, details, self.current_location())
            for contact in contacts:
                if not self.send_sms(contact.phone, message):
                    logger.warning(f"SMS hand-off failed for {contact.name}")
            return True
        except Exception as e:
            logger.error(f"Error sending emergency SMS: {e}")
            return False

    def send_location(self, location):
        contacts = self.contacts.get_contacts()
        message = f"Current location: {maps_url(*location)}"
        return [self.send_sms(c.phone, message) for c in contacts]
