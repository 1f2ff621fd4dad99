"""
Alert dispatcher
Single entry point for classified emergency events: records history,
raises the local alarm and fans out to the notification channels
"""

import datetime
import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from .channels.backend import send_emergency_alert
from .config import API_URL, ALARM_VIBRATION_PATTERN, DISPATCH_WORKERS, LOG_FILE
from .models import AlertRecord, EmergencyEvent, EventKind

logger = logging.getLogger(__name__)

VIBRATION_OWNER = "alarm"

CHANNEL_BACKEND = "backend"
CHANNEL_SMS = "sms"

_IDLE = "idle"
_PENDING = "pending"
_SENT = "sent"


class AlertHistory:
    """
    In-memory alert records, newest first, with an optional append-only log file
    """

    def __init__(self, log_file=LOG_FILE):
        self.log_file = log_file
        self._records = []
        self._lock = threading.Lock()

    def append(self, record: AlertRecord):
        with self._lock:
            self._records.insert(0, record)

        if self.log_file:
            timestamp = record.timestamp.strftime("%Y-%m-%d %H:%M:%S")
            log_entry = f"[{timestamp}] EMERGENCY: {record.kind.value} | {record.details}"
            try:
                with open(self.log_file, "a", encoding="utf-8") as f:
                    f.write(log_entry + "\n")
            except OSError as e:
                logger.error(f"Failed to write emergency log: {e}")

    def records(self):
        with self._lock:
            return list(self._records)

    def clear(self):
        with self._lock:
            self._records.clear()

    def __len__(self):
        with self._lock:
            return len(self._records)


class AlertDispatcher:
    """
    Handles every emergency event, automatic or manual.

    History is appended before anything else so it survives total channel
    failure. Channels run concurrently on a thread pool; each keeps a
    sent-guard that is reset only when a different event arrives.
    """

    def __init__(self, vibration, profile_store, sms, notices=None,
                 alert_client=send_emergency_alert, api_url=API_URL,
                 history=None, executor=None, auto_send_sms=True):
        self.vibration = vibration
        self.profile_store = profile_store
        self.sms = sms
        self.notices = notices
        self.alert_client = alert_client
        self.api_url = api_url
        self.history_log = history if history is not None else AlertHistory()
        self.executor = executor or ThreadPoolExecutor(max_workers=DISPATCH_WORKERS, thread_name_prefix="dispatch")
        self.auto_send_sms = auto_send_sms

        self.is_alarming = False
        self._current_event = None
        self._generation = 0
        self._channel_state = {CHANNEL_BACKEND: _IDLE, CHANNEL_SMS: _IDLE}
        self._lock = threading.Lock()
        self.vibration.add_release_listener(self._on_vibration_released)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def handle_emergency_event(self, event: EmergencyEvent, manual=None):
        """
        Record, alarm and fan out one event.

        Args:
            event: the classified (or manually triggered) event
            manual: whether the user initiated the dispatch; defaults to
                True for test events

        Returns:
            dict: channel name -> Future for each channel started by this call
        """
        if manual is None:
            manual = event.kind == EventKind.TEST

        logger.warning(f"Emergency detected - Type: {event.kind.value}, Details: {event.details}")
        self.history_log.append(AlertRecord.from_event(event))

        with self._lock:
            if event != self._current_event:
                self._current_event = event
                self._generation += 1
                self._channel_state = {CHANNEL_BACKEND: _IDLE, CHANNEL_SMS: _IDLE}
            generation = self._generation

        try:
            self.start_alarm()
        except Exception as e:
            logger.error(f"Failed to start alarm: {e}")

        futures = {}
        if self._claim(CHANNEL_BACKEND, generation):
            futures[CHANNEL_BACKEND] = self.executor.submit(
                self._run_backend_channel, event, manual, generation)
        if self.auto_send_sms and self._claim(CHANNEL_SMS, generation):
            futures[CHANNEL_SMS] = self.executor.submit(
                self._run_sms_channel, event, generation)
        return futures

    def _claim(self, channel, generation):
        with self._lock:
            if generation != self._generation or self._channel_state[channel] != _IDLE:
                return False
            self._channel_state[channel] = _PENDING
            return True

    def _finish(self, channel, generation, sent):
        with self._lock:
            if generation == self._generation:
                self._channel_state[channel] = _SENT if sent else _IDLE

    def channel_sent(self, channel):
        with self._lock:
            return self._channel_state[channel] == _SENT

    def _run_backend_channel(self, event, manual, generation):
        sent = False
        try:
            profile = self.profile_store.profile
            if not profile.name:
                message = "Please enter your name before sending an alert."
                logger.warning("Backend alert skipped: user name not set")
                if manual and self.notices:
                    self.notices.post("Name Required", message)
                return {"success": False, "error": message, "offline": False}

            data = {
                "name": profile.name,
                "address": profile.address,
                "alertType": event.kind.value,
                "details": event.details,
                "timestamp": event.timestamp.isoformat(),
            }
            try:
                result = self.alert_client(data, api_url=self.api_url)
            except Exception as e:
                result = {"success": False, "error": str(e), "offline": False}

            sent = result.get("success", False)
            if not sent:
                if manual and self.notices:
                    self.notices.post("Alert Not Sent", f"Could not reach the alert server: {result.get('error')}")
                else:
                    logger.warning(f"Backend alert failed: {result.get('error')}")
            return result
        finally:
            self._finish(CHANNEL_BACKEND, generation, sent)

    def _run_sms_channel(self, event, generation):
        sent = False
        try:
            logger.info("Sending emergency SMS...")
            sent = self.sms.send_emergency_sms(event.kind.value, event.details)
            if not sent:
                logger.info("Failed to send SMS or no contacts configured")
            return sent
        except Exception as e:
            logger.error(f"SMS channel failed: {e}")
            return False
        finally:
            self._finish(CHANNEL_SMS, generation, sent)

    # ------------------------------------------------------------------
    # Local alarm
    # ------------------------------------------------------------------
    def start_alarm(self):
        """
        Raise the alarm. While another session holds the motor the alarm
        pattern is deferred and starts as soon as that session ends.
        """
        if self.is_alarming:
            return False
        self.is_alarming = True
        if not self.vibration.start_continuous(ALARM_VIBRATION_PATTERN, owner=VIBRATION_OWNER):
            logger.info(f"Alarm vibration deferred until {self.vibration.owner} releases the motor")
        logger.info("Emergency alarm started")
        return True

    @property
    def alarm_vibrating(self):
        return self.is_alarming and self.vibration.owner == VIBRATION_OWNER

    def _on_vibration_released(self, previous_owner):
        if self.is_alarming and previous_owner != VIBRATION_OWNER:
            if self.vibration.start_continuous(ALARM_VIBRATION_PATTERN, owner=VIBRATION_OWNER):
                logger.info(f"Alarm vibration resumed after {previous_owner} session ended")

    def stop_alarm(self):
        """Explicit user action; the dispatcher never clears the alarm itself."""
        if not self.is_alarming:
            return False
        # Cleared first so the release callback does not restart the alarm
        self.is_alarming = False
        self.vibration.stop(owner=VIBRATION_OWNER)
        logger.info("Emergency alarm stopped")
        return True

    # ------------------------------------------------------------------
    # Manual actions
    # ------------------------------------------------------------------
    def send_test_alert(self):
        return self.handle_emergency_event(
            EmergencyEvent(EventKind.TEST, "Manual test alert", timestamp=datetime.datetime.now()),
            manual=True,
        )

    def test_sms(self):
        if not self.sms.contacts.get_contacts():
            if self.notices:
                self.notices.post("No Contacts", "Please add emergency contacts first")
            return False
        return self.sms.send_emergency_sms("TEST", "This is a test emergency alert. No action needed.")

    def share_location(self):
        if not self.sms.contacts.get_contacts():
            if self.notices:
                self.notices.post("No Contacts", "Please add emergency contacts first")
            return False

        location = self.sms.current_location()
        if location is None:
            if self.notices:
                self.notices.post(
                    "Location Unavailable",
                    "Could not determine your current location. Please try again.",
                )
            return False

        self.sms.send_location(location)
        if self.notices:
            self.notices.post("Location Shared", "Your location has been shared with your emergency contacts")
        return True

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    @property
    def history(self):
        return self.history_log.records()

    def clear_history(self):
        self.history_log.clear()

    def shutdown(self, wait=True):
        self.executor.shutdown(wait=wait)
