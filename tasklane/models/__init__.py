"""Data models for tasklane."""

from tasklane.models.task import TaskView
from tasklane.models.recurrence import RecurrenceKind, RecurringPattern, SkipException
from tasklane.models.user import User

__all__ = [
    "TaskView",
    "RecurrenceKind",
    "RecurringPattern",
    "SkipException",
    "User",
]
