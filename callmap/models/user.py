"""
callmap/models/user.py
User list filters and the strict admin patch body.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from callmap.models.common import Pagination

UserRole = Literal["owner", "admin", "member"]
UserStatus = Literal["active", "invited", "disabled"]
Plan = Literal["free", "pro", "team", "enterprise"]


class UsersFilter(Pagination):
    search: Optional[str] = None
    role: Optional[List[str]] = None
    status: Optional[List[str]] = None
    hasLoggedIn: Optional[bool] = None
    teamId: Optional[str] = None


class UserUpdate(BaseModel):
    """Field patch for ``users/{id}``; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
    plan: Optional[Plan] = None
    onboarded: Optional[bool] = None
    tokenBalance: Optional[int] = Field(default=None, ge=0)
    audioMinutesUsed: Optional[int] = Field(default=None, ge=0)
    mapsGenerated: Optional[int] = Field(default=None, ge=0)
    monthlyResetTimestamp: Optional[datetime] = None

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)
