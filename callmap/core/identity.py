"""
Session/identity verification (Firebase Auth).

The provider is a swappable module-level handle so tests can install a fake
without touching the network:

    set_identity_provider(FakeIdentityProvider({...}))
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from callmap.core.errors import StoreUnavailableError
from callmap.core.firebase import get_firebase_app

logger = logging.getLogger("callmap")


class IdentityError(Exception):
    """Token or session cookie could not be verified."""


class IdentityProvider:
    """Interface the routes depend on; mirrors the Firebase Admin auth calls we use."""

    def verify_session_cookie(self, cookie: str) -> Dict[str, Any]:
        raise NotImplementedError

    def verify_id_token(self, id_token: str) -> Dict[str, Any]:
        raise NotImplementedError

    def create_session_cookie(self, id_token: str, max_age_seconds: int) -> str:
        raise NotImplementedError

    def list_users(self, max_results: int = 1000) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def set_custom_user_claims(self, uid: str, claims: Dict[str, Any]) -> None:
        raise NotImplementedError


class FirebaseIdentityProvider(IdentityProvider):
    def _app(self):
        app = get_firebase_app()
        if app is None:
            raise StoreUnavailableError("Firebase Auth not initialized")
        return app

    def verify_session_cookie(self, cookie):
        try:
            return auth.verify_session_cookie(cookie, check_revoked=True, app=self._app())
        except (ValueError, auth.InvalidSessionCookieError, FirebaseError) as exc:
            raise IdentityError(str(exc)) from exc

    def verify_id_token(self, id_token):
        try:
            return auth.verify_id_token(id_token, app=self._app())
        except (ValueError, auth.InvalidIdTokenError, FirebaseError) as exc:
            raise IdentityError(str(exc)) from exc

    def create_session_cookie(self, id_token, max_age_seconds):
        try:
            return auth.create_session_cookie(
                id_token, expires_in=timedelta(seconds=max_age_seconds), app=self._app()
            )
        except (ValueError, FirebaseError) as exc:
            raise IdentityError(str(exc)) from exc

    def list_users(self, max_results=1000):
        page = auth.list_users(max_results=max_results, app=self._app())
        users = []
        for record in page.iterate_all():
            claims = record.custom_claims or {}
            metadata = record.user_metadata
            factors = getattr(getattr(record, "multi_factor", None), "enrolled_factors", None) or []
            users.append(
                {
                    "uid": record.uid,
                    "email": record.email,
                    "customClaims": claims,
                    "mfaEnabled": len(factors) > 0,
                    "lastLogin": metadata.last_sign_in_timestamp if metadata else None,
                    "createdAt": metadata.creation_timestamp if metadata else None,
                }
            )
        return users

    def set_custom_user_claims(self, uid, claims):
        auth.set_custom_user_claims(uid, claims, app=self._app())


_provider: Optional[IdentityProvider] = None


def get_identity_provider() -> IdentityProvider:
    global _provider
    if _provider is None:
        _provider = FirebaseIdentityProvider()
    return _provider


def set_identity_provider(provider: Optional[IdentityProvider]) -> None:
    """Install a provider (tests). ``None`` restores the Firebase default on next use."""
    global _provider
    _provider = provider
