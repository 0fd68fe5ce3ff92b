"""Task data model for tasklane."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field


class TaskView(BaseModel):
    """Flattened task as returned to callers.

    Stored tasks and virtual instances share this shape; virtuals have no id,
    position 0 and `is_virtual=True`.
    """

    id: Optional[int] = Field(None, description="Task id (null for virtual instances)")
    text: str = Field(..., description="Task text")
    assigned_date: date = Field(..., description="Date the task currently appears on")
    instance_date: date = Field(..., description="Date the task represents")
    position: int = Field(0, description="1-based position within the assigned date (0 for virtuals)")
    recurring_pattern_id: Optional[int] = Field(None, description="Owning pattern, if still linked")
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    is_rolled_over: bool = False
    is_virtual: bool = False
