"""
Environment validation utilities.

Ensures the service fails fast on misconfiguration while
remaining bypassable for tests via SKIP_ENV_VALIDATION.
"""

import json
import os
from typing import Optional

from callmap.core.config import settings, has_firebase_credentials


class EnvValidationError(RuntimeError):
    """Raised when environment validation fails."""


def _is_valid_service_account(raw: str) -> bool:
    try:
        payload = json.loads(raw)
    except ValueError:
        return False
    return isinstance(payload, dict) and "private_key" in payload and "client_email" in payload


def validate_env(env: Optional[str] = None, settings_obj=None) -> bool:
    """Validate environment configuration.

    Args:
        env: Override environment name (defaults to settings.ENV)
        settings_obj: Override settings object (defaults to callmap.core.config.settings)

    Returns:
        True if validation passes.

    Raises:
        EnvValidationError when a rule is violated.
    """
    if os.getenv("SKIP_ENV_VALIDATION") == "1":
        return True

    cfg = settings_obj or settings
    mode = (env or getattr(cfg, "ENV", "development") or "development").lower()

    raw_key = getattr(cfg, "FIREBASE_SERVICE_ACCOUNT_KEY", None)
    if raw_key and not _is_valid_service_account(raw_key):
        raise EnvValidationError(
            "FIREBASE_SERVICE_ACCOUNT_KEY must be a service account JSON document "
            "with private_key and client_email"
        )

    if mode == "production":
        if not has_firebase_credentials(cfg):
            raise EnvValidationError("Firebase credentials are required in production")
        if not getattr(cfg, "CSRF_PROTECTION_ENABLED", True):
            raise EnvValidationError("CSRF_PROTECTION_ENABLED must not be disabled in production")

    return True
