"""Tests for the AlertDispatcher and AlertHistory."""

import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from safeguard.config import ALARM_VIBRATION_PATTERN
from safeguard.dispatcher import AlertDispatcher, AlertHistory, CHANNEL_BACKEND, CHANNEL_SMS
from safeguard.models import AlertRecord, EmergencyEvent, EventKind, UserProfile


@pytest.fixture
def alert_client():
    return MagicMock(return_value={"success": True, "data": {"message": "ok"}})


@pytest.fixture
def sms():
    composer = MagicMock()
    composer.send_emergency_sms.return_value = True
    composer.contacts.get_contacts.return_value = [SimpleNamespace(name="Ravi", phone="+15551234567")]
    return composer


@pytest.fixture
def dispatcher(vibration, named_profile, sms, notices, alert_client):
    d = AlertDispatcher(vibration, named_profile, sms, notices=notices,
                        alert_client=alert_client, api_url="http://api.test",
                        history=AlertHistory(log_file=None))
    yield d
    d.shutdown()


def motion_event(reason="Sudden movement detected", magnitude=21.5):
    return EmergencyEvent(EventKind.MOTION, reason, magnitude)


def wait_all(futures):
    return {name: future.result(timeout=5) for name, future in futures.items()}


class TestHandleEmergencyEvent:

    def test_fans_out_to_both_channels(self, dispatcher, alert_client, sms):
        event = motion_event()
        results = wait_all(dispatcher.handle_emergency_event(event))

        assert results[CHANNEL_BACKEND]["success"]
        assert results[CHANNEL_SMS] is True

        data = alert_client.call_args[0][0]
        assert data["name"] == "Asha"
        assert data["address"] == "12 Park Road"
        assert data["alertType"] == "motion"
        assert data["details"] == "Sudden movement detected (value: 21.50)"
        assert data["timestamp"] == event.timestamp.isoformat()
        assert alert_client.call_args[1]["api_url"] == "http://api.test"

        sms.send_emergency_sms.assert_called_once_with("motion", "Sudden movement detected (value: 21.50)")

    def test_history_recorded_even_when_all_channels_fail(self, dispatcher, alert_client, sms):
        alert_client.return_value = {"success": False, "error": "down", "offline": True}
        sms.send_emergency_sms.side_effect = RuntimeError("no launcher")

        results = wait_all(dispatcher.handle_emergency_event(motion_event()))

        assert len(dispatcher.history) == 1
        assert dispatcher.history[0].kind == EventKind.MOTION
        assert not results[CHANNEL_BACKEND]["success"]
        assert results[CHANNEL_SMS] is False

    def test_test_event_recorded_when_backend_unreachable(self, dispatcher, alert_client):
        """A test event always lands in history exactly once, whatever the network does."""
        alert_client.side_effect = ConnectionError("Network request failed")

        results = wait_all(dispatcher.handle_emergency_event(EmergencyEvent(EventKind.TEST, "x")))

        assert len(dispatcher.history) == 1
        assert dispatcher.history[0].details == "x"
        assert results[CHANNEL_BACKEND] == {"success": False, "error": "Network request failed", "offline": False}

    def test_history_is_newest_first(self, dispatcher):
        wait_all(dispatcher.handle_emergency_event(motion_event("first")))
        wait_all(dispatcher.handle_emergency_event(motion_event("second")))
        assert [r.details.split(" ")[0] for r in dispatcher.history] == ["second", "first"]

    def test_no_contacts_still_reaches_backend(self, dispatcher, alert_client, sms):
        sms.send_emergency_sms.return_value = False

        results = wait_all(dispatcher.handle_emergency_event(motion_event()))

        assert results[CHANNEL_SMS] is False
        alert_client.assert_called_once()
        assert results[CHANNEL_BACKEND]["success"]

    def test_missing_name_blocks_only_backend(self, vibration, sms, notices, alert_client):
        dispatcher = AlertDispatcher(vibration, SimpleNamespace(profile=UserProfile()), sms,
                                     notices=notices, alert_client=alert_client,
                                     history=AlertHistory(log_file=None))
        try:
            results = wait_all(dispatcher.handle_emergency_event(motion_event()))
        finally:
            dispatcher.shutdown()

        alert_client.assert_not_called()
        assert not results[CHANNEL_BACKEND]["success"]
        assert results[CHANNEL_SMS] is True
        assert len(dispatcher.history) == 1
        # Automatic events do not raise notices
        assert notices.titles() == []

    def test_missing_name_notice_for_manual_alert(self, vibration, sms, notices, alert_client):
        dispatcher = AlertDispatcher(vibration, SimpleNamespace(profile=UserProfile()), sms,
                                     notices=notices, alert_client=alert_client,
                                     history=AlertHistory(log_file=None))
        try:
            wait_all(dispatcher.send_test_alert())
        finally:
            dispatcher.shutdown()
        assert "Name Required" in notices.titles()

    def test_same_event_sent_once_per_channel(self, dispatcher, alert_client, sms):
        event = motion_event()
        wait_all(dispatcher.handle_emergency_event(event))
        second = dispatcher.handle_emergency_event(event)

        assert second == {}
        assert alert_client.call_count == 1
        assert sms.send_emergency_sms.call_count == 1
        assert dispatcher.channel_sent(CHANNEL_BACKEND)
        assert dispatcher.channel_sent(CHANNEL_SMS)

    def test_new_event_resets_guards(self, dispatcher, alert_client):
        wait_all(dispatcher.handle_emergency_event(motion_event()))
        wait_all(dispatcher.handle_emergency_event(motion_event("Severe movement detected", 30.0)))
        assert alert_client.call_count == 2

    def test_failed_channel_can_retry_same_event(self, dispatcher, alert_client):
        alert_client.return_value = {"success": False, "error": "down", "offline": True}
        event = motion_event()
        wait_all(dispatcher.handle_emergency_event(event))
        assert not dispatcher.channel_sent(CHANNEL_BACKEND)

        alert_client.return_value = {"success": True, "data": {}}
        results = wait_all(dispatcher.handle_emergency_event(event))
        assert results[CHANNEL_BACKEND]["success"]
        assert CHANNEL_SMS not in results

    def test_manual_backend_failure_posts_notice(self, dispatcher, alert_client, notices):
        alert_client.return_value = {"success": False, "error": "Server responded with status: 500", "offline": False}
        wait_all(dispatcher.send_test_alert())
        assert "Alert Not Sent" in notices.titles()

    def test_auto_send_sms_disabled(self, vibration, named_profile, sms, alert_client):
        dispatcher = AlertDispatcher(vibration, named_profile, sms, alert_client=alert_client,
                                     history=AlertHistory(log_file=None), auto_send_sms=False)
        try:
            futures = dispatcher.handle_emergency_event(motion_event())
            wait_all(futures)
        finally:
            dispatcher.shutdown()
        assert set(futures) == {CHANNEL_BACKEND}
        sms.send_emergency_sms.assert_not_called()


class TestAlarm:

    def test_alarm_is_idempotent(self, dispatcher, vibration_backend):
        wait_all(dispatcher.handle_emergency_event(motion_event("first")))
        wait_all(dispatcher.handle_emergency_event(motion_event("second")))

        assert dispatcher.is_alarming
        assert len(vibration_backend.continuous_patterns()) == 1

    def test_stop_alarm(self, dispatcher, vibration):
        dispatcher.start_alarm()
        assert vibration.owner == "alarm"
        assert dispatcher.stop_alarm()
        assert not dispatcher.is_alarming
        assert not vibration.active
        assert not dispatcher.stop_alarm()

    def test_alarm_while_other_session_active(self, dispatcher, vibration):
        vibration.start_continuous([100, 50], owner="motion")
        assert dispatcher.start_alarm()
        assert vibration.owner == "motion"
        assert dispatcher.is_alarming
        assert not dispatcher.alarm_vibrating

    def test_deferred_alarm_starts_when_session_ends(self, dispatcher, vibration, vibration_backend):
        """A voice session that ends mid-alarm hands the motor to the alarm."""
        vibration.start_continuous([50, 100], owner="voice")
        wait_all(dispatcher.handle_emergency_event(
            EmergencyEvent(EventKind.VOICE, "Loud sound detected", 0.95)))

        vibration.stop(owner="voice")

        assert dispatcher.alarm_vibrating
        assert vibration.state.pattern == ALARM_VIBRATION_PATTERN
        assert vibration_backend.continuous_patterns()[-1] == ALARM_VIBRATION_PATTERN

    def test_stopped_alarm_does_not_resume(self, dispatcher, vibration):
        vibration.start_continuous([50, 100], owner="voice")
        dispatcher.start_alarm()
        dispatcher.stop_alarm()

        vibration.stop(owner="voice")

        assert not vibration.active
        assert not dispatcher.alarm_vibrating


class TestManualActions:

    def test_test_sms_without_contacts(self, dispatcher, sms, notices):
        sms.contacts.get_contacts.return_value = []
        assert not dispatcher.test_sms()
        assert notices.titles() == ["No Contacts"]
        sms.send_emergency_sms.assert_not_called()

    def test_test_sms(self, dispatcher, sms):
        assert dispatcher.test_sms()
        assert sms.send_emergency_sms.call_args[0][0] == "TEST"

    def test_share_location(self, dispatcher, sms, notices):
        sms.current_location.return_value = (51.5, -0.12)
        assert dispatcher.share_location()
        sms.send_location.assert_called_once_with((51.5, -0.12))
        assert notices.titles() == ["Location Shared"]

    def test_share_location_unavailable(self, dispatcher, sms, notices):
        sms.current_location.return_value = None
        assert not dispatcher.share_location()
        sms.send_location.assert_not_called()
        assert notices.titles() == ["Location Unavailable"]

    def test_clear_history(self, dispatcher):
        wait_all(dispatcher.send_test_alert())
        dispatcher.clear_history()
        assert dispatcher.history == []


class TestAlertHistory:

    def test_appends_log_line(self, tmp_path):
        log_file = tmp_path / "emergency_log.txt"
        history = AlertHistory(log_file=str(log_file))
        event = EmergencyEvent(EventKind.VOICE, "Loud sound detected", 0.95,
                               timestamp=datetime.datetime(2024, 3, 1, 14, 5, 9))

        history.append(AlertRecord.from_event(event))

        assert log_file.read_text() == (
            "[2024-03-01 14:05:09] EMERGENCY: voice | Loud sound detected (volume level: 95%)\n"
        )
        assert len(history) == 1

    def test_unwritable_log_keeps_record(self, tmp_path):
        history = AlertHistory(log_file=str(tmp_path / "missing" / "log.txt"))
        history.append(AlertRecord.from_event(motion_event()))
        assert len(history) == 1

    def test_record_to_dict(self):
        record = AlertRecord.from_event(EmergencyEvent(EventKind.TEST, "Manual test alert"))
        data = record.to_dict()
        assert data["type"] == "test"
        assert data["details"] == "Manual test alert"
