"""
callmap/models/auth.py
Login, session and role-assignment bodies.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IdTokenRequest(BaseModel):
    """Body for login and session creation; a missing token is reported by the route."""

    model_config = ConfigDict(frozen=True)

    idToken: Optional[str] = None


class SetRoleRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: Optional[str] = None
    role: Optional[str] = None


class WalletAdjustRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    amount: int = Field(description="Signed token delta; zero is rejected")
    note: Optional[str] = Field(default=None, max_length=500)
