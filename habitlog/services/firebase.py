from __future__ import annotations

import json
import logging

import firebase_admin
from firebase_admin import credentials, messaging

from habitlog.errors import RemoteFailure
from habitlog.settings import get_settings

logger = logging.getLogger(__name__)

APP_NAME = "habitlog"

_app: firebase_admin.App | None = None


def _load_credentials(raw: str) -> credentials.Certificate:
    # Inline service-account JSON (container secrets) or a path to the file.
    if raw.strip().startswith("{"):
        return credentials.Certificate(json.loads(raw))
    return credentials.Certificate(raw)


def get_firebase_app() -> firebase_admin.App:
    global _app
    if _app is None:
        raw = get_settings().firebase_credentials
        if not raw:
            logger.error("FIREBASE_CREDENTIALS not configured")
            raise RemoteFailure("Push delivery is not configured")
        try:
            _app = firebase_admin.initialize_app(_load_credentials(raw), name=APP_NAME)
        except (ValueError, OSError) as exc:
            raise RemoteFailure(f"Failed to initialize Firebase: {exc}") from exc
    return _app


def send_message(message: messaging.Message) -> str:
    """Deliver one message through the FCM HTTP v1 API; returns the message id."""
    return messaging.send(message, app=get_firebase_app())
