"""User data model for tasklane."""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from tasklane.models.constants import DEFAULT_TIMEZONE


class User(BaseModel):
    """User model for tasklane."""

    id: int = Field(..., description="Unique user identifier")
    email: str = Field(..., description="User email address")
    timezone: str = Field(DEFAULT_TIMEZONE, description="IANA timezone used to derive the user's current date")
    last_rollover_at: Optional[datetime] = Field(None, description="Instant of the last completed rollover")
    created_at: Optional[datetime] = Field(None, description="User creation timestamp")
    updated_at: Optional[datetime] = Field(None, description="User last update timestamp")
