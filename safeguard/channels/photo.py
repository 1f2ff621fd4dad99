"""
Emergency photo capture and upload
Captured stills are uploaded to the backend; when the backend cannot be
reached the image is kept in local storage with a metadata sidecar
"""

import datetime
import json
import logging
import os
import shutil
import tempfile
import threading
import time

import cv2
import requests

from ..config import (
    API_URL, DATA_DIR, EMERGENCY_IMAGES_DIR, CAMERA_INDEX, CAMERA_JPEG_QUALITY,
    UPLOAD_TIMEOUT_SECONDS
)
from ..errors import CameraError, LocalSaveError
from .backend import upload_emergency_image
from .location import fetch_location

logger = logging.getLogger(__name__)


class OpenCVCamera:
    """Grabs a single still from a local camera device."""

    def __init__(self, src=CAMERA_INDEX, warmup_frames=3):
        self.src = src
        self.warmup_frames = warmup_frames

    def capture_still(self, path):
        cap = cv2.VideoCapture(self.src)
        try:
            if not cap.isOpened():
                raise CameraError(f"Failed to open camera source {self.src}")
            frame = None
            # First frames are often dark while exposure settles
            for _ in range(self.warmup_frames + 1):
                ok, frame = cap.read()
                if not ok:
                    raise CameraError("Failed to read frame from camera")
            if not cv2.imwrite(path, frame, [cv2.IMWRITE_JPEG_QUALITY, CAMERA_JPEG_QUALITY]):
                raise CameraError(f"Failed to encode JPEG to {path}")
            return path
        finally:
            cap.release()


class PhotoCaptureService:
    """
    Takes emergency photos on request from the coordinator (automatic) or
    the user (manual). Manual captures report problems through notices;
    automatic captures only log them.
    """

    def __init__(self, camera, profile_store, coordinator=None, notices=None,
                 location_provider=None, images_dir=None, api_url=API_URL,
                 upload=upload_emergency_image, background=True):
        self.camera = camera
        self.profile_store = profile_store
        self.coordinator = coordinator
        self.notices = notices
        self.location_provider = location_provider
        self.images_dir = images_dir or os.path.join(DATA_DIR, EMERGENCY_IMAGES_DIR)
        self.api_url = api_url
        self.upload = upload
        self.background = background

        self.captured_image = None
        self.is_uploading = False
        self.upload_status = None
        self.saved_locally = False
        self._subscription = None

    def attach(self):
        if self.coordinator is not None and self._subscription is None:
            self._subscription = self.coordinator.subscribe(self.on_capture_requested)

    def detach(self):
        if self._subscription is not None:
            self._subscription.remove()
            self._subscription = None

    def _notify(self, manual, title, message):
        if manual and self.notices:
            self.notices.post(title, message)
        else:
            logger.warning(f"{title}: {message}")

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    def on_capture_requested(self, source_kind):
        if self.background:
            threading.Thread(target=self._automatic_capture, args=(source_kind,), daemon=True).start()
        else:
            self._automatic_capture(source_kind)

    def _automatic_capture(self, source_kind):
        logger.info(f"Automatic emergency photo requested by {source_kind}")
        try:
            self.take_photo(manual=False)
        except Exception as e:
            logger.error(f"Automatic emergency photo failed: {e}")
        finally:
            if self.coordinator is not None:
                self.coordinator.clear_capture()

    def take_photo(self, manual=True):
        """Capture a still and upload it. Returns the upload outcome, or None if no image was taken."""
        path = None
        try:
            fd, path = tempfile.mkstemp(prefix="capture_", suffix=".jpg")
            os.close(fd)
            self.camera.capture_still(path)
        except (CameraError, cv2.error, OSError) as e:
            logger.error(f"Error taking photo: {e}")
            self._notify(manual, "Error", "Failed to take picture")
            self._discard(path)
            return None

        # The capture file is temporary; a local save keeps its own copy
        try:
            self.saved_locally = False
            logger.info(f"Photo taken: {path}")
            outcome = self.upload_image(path, automatic=not manual)
            self.captured_image = outcome["savedUri"]
            return outcome
        finally:
            self._discard(path)

    def _discard(self, path):
        if path is None:
            return
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove capture file {path}: {e}")

    # ------------------------------------------------------------------
    # Upload / local fallback
    # ------------------------------------------------------------------
    def _location(self):
        return fetch_location(self.location_provider)

    def upload_image(self, uri, automatic=False):
        manual = not automatic
        location = self._location()
        self.is_uploading = True
        self.upload_status = "Uploading image..."
        outcome = {"uploaded": False, "savedLocally": False, "savedUri": None, "error": None}

        try:
            metadata = {
                "type": "emergency_photo",
                "timestamp": datetime.datetime.now().isoformat(),
                "userName": self.profile_store.profile.name or "Unknown User",
                "latitude": location[0] if location else "Unknown",
                "longitude": location[1] if location else "Unknown",
                "automatic": "true" if automatic else "false",
            }
            try:
                result = self.upload(uri, metadata, api_url=self.api_url, timeout=UPLOAD_TIMEOUT_SECONDS)
            except (requests.ConnectionError, requests.Timeout) as e:
                result = {"success": False, "error": str(e), "offline": True}

            if result["success"]:
                self.upload_status = "Image uploaded successfully!"
                outcome["uploaded"] = True
                if manual and self.notices:
                    self.notices.post("Success", "Image sent to emergency services")
                return outcome

            outcome["error"] = result.get("error")
            if not result.get("offline"):
                self.upload_status = f"Upload failed: {outcome['error']}"
                self._notify(manual, "Upload Failed", f"Could not send the image to the server. {outcome['error']}")
                return outcome

            self.upload_status = "Server unreachable. Saving locally..."
            try:
                saved_uri = self.save_image_locally(uri, location)
            except LocalSaveError as e:
                outcome["error"] = str(e)
                self.upload_status = f"Upload failed: {e}"
                self._notify(manual, "Error", "Could not upload or save the image locally.")
                return outcome

            self.saved_locally = True
            outcome["savedLocally"] = True
            outcome["savedUri"] = saved_uri
            self.upload_status = "Image saved locally. Will upload when connection is available."
            self._notify(
                manual, "Saved Locally",
                "The server is currently unreachable. Your image has been saved locally."
            )
            return outcome
        finally:
            self.is_uploading = False

    def save_image_locally(self, uri, location=None):
        """
        Copy ``uri`` into the emergency images directory and write a
        ``<image>.metadata.json`` sidecar marked as pending upload.
        """
        try:
            os.makedirs(self.images_dir, exist_ok=True)
            file_name = f"emergency_{int(time.time() * 1000)}.jpg"
            new_uri = os.path.join(self.images_dir, file_name)
            shutil.copyfile(uri, new_uri)

            metadata = {
                "originalUri": uri,
                "timestamp": datetime.datetime.now().isoformat(),
                "userName": self.profile_store.profile.name or "Unknown User",
                "latitude": location[0] if location else "Unknown",
                "longitude": location[1] if location else "Unknown",
                "pending": True,
            }
            with open(f"{new_uri}.metadata.json", "w", encoding="utf-8") as f:
                json.dump(metadata, f)
        except OSError as e:
            logger.error(f"Error saving image locally: {e}")
            raise LocalSaveError(f"Failed to save locally: {e}") from e

        logger.info(f"Image saved locally at: {new_uri}")
        return new_uri

    def pending_images(self):
        """Locally saved images still waiting for upload, oldest first."""
        if not os.path.isdir(self.images_dir):
            return []
        pending = []
        for name in sorted(os.listdir(self.images_dir)):
            if not name.endswith(".metadata.json"):
                continue
            with open(os.path.join(self.images_dir, name), "r", encoding="utf-8") as f:
                metadata = json.load(f)
            if metadata.get("pending"):
                image = os.path.join(self.images_dir, name[: -len(".metadata.json")])
                pending.append({"image": image, **metadata})
        return pending
