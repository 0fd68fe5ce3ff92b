"""Request/response models for the HTTP layer."""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class CreateTaskRequest(BaseModel):
    """Request model for creating a task (or a recurring pattern via a trailing phrase)."""
    text: str = Field(..., description="Task text; may end in 'every day', 'every week', ...")
    assigned_date: date = Field(..., description="Date to place the task on")
    position: Optional[int] = Field(None, ge=1, description="1-based insert position (defaults to end of active tasks)")


class UpdateTextRequest(BaseModel):
    text: str


class UpdatePositionRequest(BaseModel):
    position: int = Field(..., ge=0, description="0-based index in the date's display order")


class UpdateAssignedDateRequest(BaseModel):
    assigned_date: date


class UpdateTimezoneRequest(BaseModel):
    timezone: str = Field(..., description="IANA timezone name, e.g. America/Los_Angeles")
