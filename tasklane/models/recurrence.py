"""Recurrence models for tasklane.

A recurring pattern is a text template plus a recurrence kind anchored on a start
date. Patterns never store their instances; instances are derived per date and
only become rows when materialized.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from tasklane.errors import InvalidError


class RecurrenceKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value) -> "RecurrenceKind":
        """Deserialize a kind case-insensitively ("WEEKLY", "weekly", enum)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidError(f"Unknown recurrence kind: {value!r}", field="kind") from None


class RecurringPattern(BaseModel):
    """Recurring pattern (template + kind + active range)."""

    id: int = Field(..., description="Pattern id (creation order)")
    user_id: int = Field(..., description="Owner")
    text: str = Field(..., description="Text copied into every instance")
    kind: RecurrenceKind
    start_date: date
    end_date: Optional[date] = Field(None, description="Last date the pattern may emit (inclusive)")
    created_at: Optional[datetime] = None

    @field_validator("end_date")
    @classmethod
    def _validate_end_date(cls, v, info):
        start = info.data.get("start_date")
        if v is not None and start is not None and v < start:
            raise ValueError("end_date must be >= start_date")
        return v


class SkipException(BaseModel):
    """A date on which a pattern does not produce an instance."""

    id: int
    recurring_pattern_id: int
    skip_date: date
