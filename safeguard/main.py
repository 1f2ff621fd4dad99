"""
Main application for the SafeGuard emergency core
Wires sources, classifiers, coordinator, dispatcher and channels, and
provides a command line for running detection and manual actions
"""

import argparse
import logging
import os
import sys
import time

from .audio_classifier import AudioClassifier, AudioThresholds
from .channels.location import StaticLocationProvider
from .channels.photo import OpenCVCamera, PhotoCaptureService
from .channels.sms import SmsComposer
from .config import (
    API_URL, DATA_DIR, STATE_FILE, EMERGENCY_IMAGES_DIR, AUDIO_THRESHOLD_PROFILES,
    AUDIO_THRESHOLD_PROFILE
)
from .coordinator import EmergencyCoordinator
from .dispatcher import AlertDispatcher
from .errors import ValidationError
from .motion_classifier import MotionClassifier
from .notices import NoticeBoard
from .sensors import PolledSensorSource, SimulatedMotionReader
from .storage import ContactStore, KeyValueStore, UserProfileStore
from .vibration import VibrationController

logger = logging.getLogger(__name__)


class SafeguardApp:
    """
    Session-scoped container for the emergency core. Shared state (profile,
    coordinator, vibration) is created once and passed to each component.
    """

    def __init__(self, data_dir=DATA_DIR, api_url=API_URL, accelerometer=None, gyroscope=None,
                 camera=None, location_provider=None, motion_permission=True,
                 microphone_permission=True, audio_profile=AUDIO_THRESHOLD_PROFILE,
                 sms_launcher=None):
        self.store = KeyValueStore(os.path.join(data_dir, STATE_FILE))
        self.contacts = ContactStore(self.store)
        self.profile = UserProfileStore(self.store)
        self.profile.load()

        self.notices = NoticeBoard()
        self.vibration = VibrationController()
        self.coordinator = EmergencyCoordinator()

        self.sms = SmsComposer(self.contacts, launcher=sms_launcher, location_provider=location_provider)
        self.dispatcher = AlertDispatcher(
            self.vibration, self.profile, self.sms,
            notices=self.notices, api_url=api_url,
        )
        self.photos = PhotoCaptureService(
            camera or OpenCVCamera(), self.profile,
            coordinator=self.coordinator, notices=self.notices,
            location_provider=location_provider,
            images_dir=os.path.join(data_dir, EMERGENCY_IMAGES_DIR), api_url=api_url,
        )

        self.motion = MotionClassifier(
            self.dispatcher.handle_emergency_event, self.vibration,
            coordinator=self.coordinator,
            accelerometer=accelerometer or PolledSensorSource("accelerometer"),
            gyroscope=gyroscope or PolledSensorSource("gyroscope"),
            permissions_granted=motion_permission,
        )
        self.voice = AudioClassifier(
            self.dispatcher.handle_emergency_event, self.vibration,
            notices=self.notices,
            thresholds=AudioThresholds.from_profile(audio_profile),
            permissions_granted=microphone_permission,
        )

    def start(self, listen=True):
        self.photos.attach()
        if not self.motion.start_monitoring():
            # Severe movement is still caught without full monitoring
            if not self.motion.start_background():
                logger.warning("Motion detection disabled: no accelerometer")
        if listen:
            self.voice.start_listening()

    def stop(self):
        self.voice.stop_listening()
        self.motion.stop_monitoring()
        self.dispatcher.stop_alarm()
        self.photos.detach()
        self.dispatcher.shutdown(wait=False)

    def run(self, duration=None, relisten=True):
        """Run detection until interrupted or ``duration`` seconds pass."""
        print("\n[*] SafeGuard monitoring active")
        print("[*] Press Ctrl+C to stop\n")
        started = time.monotonic()
        try:
            self.start()
            while duration is None or time.monotonic() - started < duration:
                time.sleep(1)
                if self.voice.check_session_timeout() and relisten:
                    self.voice.start_listening()
        except KeyboardInterrupt:
            print("\n[*] Stopping...")
        finally:
            self.stop()


# -------------------------------------------------------------------
# Entry point
# -------------------------------------------------------------------
def build_parser():
    parser = argparse.ArgumentParser(description="SafeGuard emergency detection core")
    parser.add_argument("--data-dir", default=DATA_DIR, help="Directory for local state")
    parser.add_argument("--api-url", default=API_URL, help="Backend base URL")
    parser.add_argument("--latitude", type=float, help="Fixed latitude for outbound alerts")
    parser.add_argument("--longitude", type=float, help="Fixed longitude for outbound alerts")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Start emergency detection")
    run.add_argument("--duration", type=int, default=None, help="Stop after N seconds")
    run.add_argument("--simulate-motion", action="store_true",
                     help="Feed simulated accelerometer/gyroscope readings")
    run.add_argument("--no-microphone", action="store_true",
                     help="Run as if microphone permission was denied")
    run.add_argument("--audio-profile", choices=sorted(AUDIO_THRESHOLD_PROFILES),
                     default=AUDIO_THRESHOLD_PROFILE, help="Volume threshold profile")

    sub.add_parser("test-alert", help="Send a manual test alert")
    sub.add_parser("test-sms", help="Prepare a test SMS for all contacts")
    sub.add_parser("share-location", help="Send current location to all contacts")
    sub.add_parser("photo", help="Take and upload an emergency photo")
    sub.add_parser("pending", help="List locally saved images awaiting upload")
    sub.add_parser("list-contacts", help="Show emergency contacts")

    add = sub.add_parser("add-contact", help="Add an emergency contact")
    add.add_argument("name")
    add.add_argument("phone")

    profile = sub.add_parser("set-profile", help="Save user name and address")
    profile.add_argument("name")
    profile.add_argument("--address", default=None)
    return parser


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    args = build_parser().parse_args(argv)

    location = None
    if args.latitude is not None and args.longitude is not None:
        location = StaticLocationProvider(args.latitude, args.longitude)

    kwargs = {"data_dir": args.data_dir, "api_url": args.api_url, "location_provider": location}
    if args.command == "run":
        if args.simulate_motion:
            kwargs["accelerometer"] = PolledSensorSource("accelerometer", SimulatedMotionReader())
            kwargs["gyroscope"] = PolledSensorSource("gyroscope", SimulatedMotionReader(gyroscope=True))
        kwargs["microphone_permission"] = not args.no_microphone
        kwargs["audio_profile"] = args.audio_profile

    app = SafeguardApp(**kwargs)

    try:
        if args.command == "run":
            app.run(duration=args.duration)
        elif args.command == "test-alert":
            futures = app.dispatcher.send_test_alert()
            for name, future in futures.items():
                print(f"{name}: {future.result()}")
        elif args.command == "test-sms":
            app.dispatcher.test_sms()
        elif args.command == "share-location":
            app.dispatcher.share_location()
        elif args.command == "photo":
            print(app.photos.take_photo(manual=True))
        elif args.command == "pending":
            for item in app.photos.pending_images():
                print(f"{item['timestamp']}  {item['image']}")
        elif args.command == "list-contacts":
            for contact in app.contacts.get_contacts():
                print(f"{contact.name}: {contact.phone}")
        elif args.command == "add-contact":
            contact = app.contacts.add_contact(args.name, args.phone)
            print(f"Added {contact.name} ({contact.phone})")
        elif args.command == "set-profile":
            app.profile.save_user_name(args.name)
            if args.address is not None:
                app.profile.save_user_location(args.address)
            print(f"Profile saved for {app.profile.profile.name}")
    except ValidationError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        if args.command != "run":
            app.dispatcher.shutdown(wait=True)


if __name__ == "__main__":
    main()
