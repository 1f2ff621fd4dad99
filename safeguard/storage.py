"""
Local persisted state: user profile and emergency contacts
Stored as string values in a JSON key-value file under DATA_DIR
"""

import json
import logging
import os
import threading
import time

from .config import DATA_DIR, STATE_FILE, CONTACTS_KEY, USER_NAME_KEY, USER_LOCATION_KEY
from .errors import ValidationError
from .models import EmergencyContact, UserProfile

logger = logging.getLogger(__name__)


class KeyValueStore:
    """Small persistent string store, one JSON object per file."""

    def __init__(self, path=None):
        self.path = path or os.path.join(DATA_DIR, STATE_FILE)
        self._lock = threading.Lock()

    def _read_all(self):
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def get_item(self, key):
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key, value):
        with self._lock:
            data = self._read_all()
            data[key] = value
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = self.path + ".tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)


class ContactStore:
    """Emergency contacts saved as a JSON array under CONTACTS_KEY."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_contacts(self):
        """Return all saved contacts, or an empty list if storage is unreadable."""
        try:
            raw = self.store.get_item(CONTACTS_KEY)
            return [EmergencyContact.from_dict(c) for c in json.loads(raw)] if raw else []
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Error getting contacts: {e}")
            return []

    def _save(self, contacts):
        self.store.set_item(CONTACTS_KEY, json.dumps([c.to_dict() for c in contacts]))

    def add_contact(self, name, phone):
        name = (name or "").strip()
        phone = (phone or "").strip()
        if not name:
            raise ValidationError("Please enter a name")
        if not EmergencyContact.is_valid_phone(phone):
            raise ValidationError("Please enter a valid phone number")

        contact = EmergencyContact(id=str(int(time.time() * 1000)), name=name, phone=phone)
        self._save(self.get_contacts() + [contact])
        logger.info(f"Added emergency contact {name}")
        return contact

    def delete_contact(self, contact_id):
        contacts = self.get_contacts()
        remaining = [c for c in contacts if c.id != contact_id]
        self._save(remaining)
        return len(remaining) != len(contacts)


class UserProfileStore:
    """
    Holds the user profile for the session. Loaded once at startup; saves
    write through to storage.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store
        self.profile = UserProfile()
        self.is_loaded = False

    def load(self):
        try:
            self.profile = UserProfile(
                name=self.store.get_item(USER_NAME_KEY) or "",
                address=self.store.get_item(USER_LOCATION_KEY) or "",
            )
        except (OSError, ValueError) as e:
            logger.error(f"Error loading user data: {e}")
        self.is_loaded = True
        return self.profile

    def save_user_name(self, name):
        name = (name or "").strip()
        if not name:
            raise ValidationError("Please enter your name")
        self.store.set_item(USER_NAME_KEY, name)
        self.profile.name = name

    def save_user_location(self, address):
        address = (address or "").strip()
        self.store.set_item(USER_LOCATION_KEY, address)
        self.profile.address = address
