"""
HTTP client for the SafeGuard backend
Both calls return a result dict and never raise
"""

import logging
import os

import requests

from ..config import API_URL, ALERT_TIMEOUT_SECONDS, UPLOAD_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


def _parse_body(response):
    try:
        return response.json()
    except ValueError:
        return {"message": response.text}


def _failure(error):
    """Result for a failed request. ``offline`` marks connectivity problems."""
    if isinstance(error, requests.Timeout):
        logger.warning("Request timed out - server might be down or unreachable")
        return {
            "success": False,
            "error": "Connection timed out. Server might be down or unreachable.",
            "offline": True,
        }
    return {
        "success": False,
        "error": str(error),
        "offline": isinstance(error, requests.ConnectionError),
    }


def send_emergency_alert(data, api_url=API_URL, timeout=ALERT_TIMEOUT_SECONDS):
    """
    POST an alert to /trigger-alert

    Args:
        data: dict with name, address, alertType, details, timestamp

    Returns:
        dict: {"success": True, "data": ...} or {"success": False, "error": ..., "offline": bool}
    """
    logger.info(f"Sending alert to backend: {data.get('alertType')}")
    try:
        response = requests.post(f"{api_url}/trigger-alert", json=data, timeout=timeout)
        if not response.ok:
            return {
                "success": False,
                "error": f"Server responded with status: {response.status_code}",
                "offline": False,
            }
        body = _parse_body(response)
        logger.info(f"Received response from backend: {body}")
        return {"success": True, "data": body}
    except requests.RequestException as e:
        logger.error(f"Error sending emergency alert: {e}")
        return _failure(e)


def upload_emergency_image(image_path, metadata, api_url=API_URL, timeout=UPLOAD_TIMEOUT_SECONDS):
    """
    POST a JPEG to /upload-image as multipart ``image`` plus string metadata fields
    """
    fields = {key: str(value) for key, value in metadata.items()}
    try:
        with open(image_path, "rb") as f:
            files = {"image": (os.path.basename(image_path), f, "image/jpeg")}
            response = requests.post(f"{api_url}/upload-image", data=fields, files=files, timeout=timeout)
        if not response.ok:
            return {
                "success": False,
                "error": f"Server responded with status: {response.status_code}",
                "offline": False,
            }
        return {"success": True, "data": _parse_body(response)}
    except requests.RequestException as e:
        logger.error(f"Error uploading image: {e}")
        return _failure(e)
    except OSError as e:
        logger.error(f"Cannot read image {image_path}: {e}")
        return {"success": False, "error": str(e), "offline": False}
