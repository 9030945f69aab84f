"""
callmap/models/team.py
Team (workspace) list filters and membership bodies.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from callmap.models.common import Pagination

class TeamsFilter(Pagination):
    search: Optional[str] = None
    plan: Optional[List[str]] = None
    country: Optional[List[str]] = None


class RemoveMemberRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    userId: Optional[str] = Field(default=None, description="Member to remove")
