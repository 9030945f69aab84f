"""
Firebase Admin initialization.

Credential resolution order:
1. FIREBASE_SERVICE_ACCOUNT_KEY (service account JSON as a string)
2. FIREBASE_SERVICE_ACCOUNT_PATH (path to a service account file)
3. GOOGLE_APPLICATION_CREDENTIALS (application default credentials)

Initialization failure is logged, not raised: callers receive ``None`` and
surface "Database not initialized" as a 500.
"""

import json
import logging
import threading
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

from callmap.core.config import settings

logger = logging.getLogger("callmap")

_app: Optional[firebase_admin.App] = None
_init_failed = False
_lock = threading.Lock()


def _build_credential():
    if settings.FIREBASE_SERVICE_ACCOUNT_KEY:
        return credentials.Certificate(json.loads(settings.FIREBASE_SERVICE_ACCOUNT_KEY))
    if settings.FIREBASE_SERVICE_ACCOUNT_PATH:
        return credentials.Certificate(settings.FIREBASE_SERVICE_ACCOUNT_PATH)
    if settings.GOOGLE_APPLICATION_CREDENTIALS:
        return credentials.ApplicationDefault()
    return None


def get_firebase_app() -> Optional[firebase_admin.App]:
    """Initialize the default Firebase app once; None when credentials are missing or broken."""
    global _app, _init_failed
    if _app is not None or _init_failed:
        return _app
    with _lock:
        if _app is not None or _init_failed:
            return _app
        try:
            credential = _build_credential()
            if credential is None:
                logger.warning("Firebase Admin not initialized: no credentials configured")
                _init_failed = True
                return None
            _app = firebase_admin.initialize_app(
                credential,
                {"projectId": settings.FIREBASE_PROJECT_ID},
            )
            logger.info(f"Firebase Admin initialized for project {settings.FIREBASE_PROJECT_ID}")
        except (ValueError, OSError) as exc:
            logger.error(f"Firebase Admin initialization failed: {exc}")
            _init_failed = True
            _app = None
    return _app


def get_firestore_client():
    """Firestore client bound to the default app, or None."""
    app = get_firebase_app()
    if app is None:
        return None
    return firestore.client(app)
