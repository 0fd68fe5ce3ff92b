"""Instance resolver: stored tasks plus virtual pattern instances for a date or range.

Internally an entry in a day's list is either a `StoredInstance` (a task row) or
a `VirtualInstance` (pattern + date, never persisted). Both flatten to the same
`TaskView` at the service boundary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from tasklane.database.models import RecurringPatternDB, TaskDB
from tasklane.database.recurring_pattern_repository import RecurringPatternRepository
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.models.constants import VIRTUAL_POSITION
from tasklane.models.task import TaskView
from tasklane.recurrence.calculator import emits_on, emitting_dates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredInstance:
    task: TaskDB

    @property
    def day(self) -> date:
        return self.task.assigned_date

    def sort_key(self):
        return (self.task.assigned_date, self.task.position, 1, self.task.id)

    def to_view(self) -> TaskView:
        return self.task.to_pydantic()


@dataclass(frozen=True)
class VirtualInstance:
    pattern: RecurringPatternDB
    day: date

    @property
    def pattern_id(self) -> int:
        return self.pattern.id

    def sort_key(self):
        return (self.day, VIRTUAL_POSITION, 0, self.pattern.id)

    def to_view(self) -> TaskView:
        return TaskView(
            id=None,
            text=self.pattern.text,
            assigned_date=self.day,
            instance_date=self.day,
            position=VIRTUAL_POSITION,
            recurring_pattern_id=self.pattern.id,
            is_completed=False,
            completed_at=None,
            is_rolled_over=False,
            is_virtual=True,
        )


Instance = Union[StoredInstance, VirtualInstance]


class InstanceResolver:
    """Combine patterns, skip exceptions and stored tasks into a user's effective task list."""

    def __init__(self, db: Session):
        self.tasks = TaskRepository(db)
        self.patterns = RecurringPatternRepository(db)
        self.skips = SkipExceptionRepository(db)

    def virtuals_for_range(self, user_id: int, start: date, end: date, today: date) -> List[VirtualInstance]:
        """Virtual instances in [start, end], ordered by (date, pattern id).

        Dates before `today` never produce virtuals.
        """
        first = max(start, today)
        if first > end:
            return []

        patterns = self.patterns.active_in_range(user_id, first, end)
        if not patterns:
            return []
        pattern_ids = [p.id for p in patterns]
        stored = self.tasks.instance_keys_in_range(pattern_ids, first, end)
        skipped = self.skips.skip_dates_in_range(pattern_ids, first, end)

        out: List[VirtualInstance] = []
        for pattern in patterns:
            for day in emitting_dates(pattern.recurrence_kind, pattern.start_date, first, end, pattern.end_date):
                if (pattern.id, day) in stored:
                    continue
                if day in skipped.get(pattern.id, ()):
                    continue
                out.append(VirtualInstance(pattern=pattern, day=day))
        out.sort(key=lambda v: v.sort_key())
        return out

    def virtuals_for_date(self, user_id: int, day: date, today: date) -> List[VirtualInstance]:
        """Virtual instances on a single date, in pattern id (creation) order."""
        return self.virtuals_for_range(user_id, day, day, today)

    def virtual_count(self, user_id: int, day: date, today: date) -> int:
        return len(self.virtuals_for_date(user_id, day, today))

    def find_virtual(self, user_id: int, pattern_id: int, day: date, today: date) -> Optional[VirtualInstance]:
        """The virtual for (pattern, day) if reads would currently show one."""
        if day < today:
            return None
        pattern = self.patterns.get(pattern_id)
        if pattern is None or pattern.user_id != user_id:
            return None
        if not pattern.is_active_on(day) or not emits_on(pattern.recurrence_kind, pattern.start_date, day):
            return None
        if self.skips.exists(pattern.id, day):
            return None
        if self.tasks.find_first_by_pattern_and_instance_date(pattern.id, day) is not None:
            return None
        return VirtualInstance(pattern=pattern, day=day)

    def resolve_date(self, user_id: int, day: date, today: date) -> List[Instance]:
        """Every entry on `day`: virtuals first (pattern id order), then stored tasks by position."""
        entries: List[Instance] = list(self.virtuals_for_date(user_id, day, today))
        entries.extend(StoredInstance(t) for t in self.tasks.list_for_date(user_id, day))
        entries.sort(key=lambda e: e.sort_key())
        return entries

    def resolve_range(self, user_id: int, start: date, end: date, today: date) -> List[Instance]:
        """Every entry in [start, end], sorted by (date, position)."""
        entries: List[Instance] = list(self.virtuals_for_range(user_id, start, end, today))
        entries.extend(StoredInstance(t) for t in self.tasks.list_for_range(user_id, start, end))
        entries.sort(key=lambda e: e.sort_key())
        logger.debug(f"Resolved {len(entries)} entries for user {user_id} in [{start}, {end}]")
        return entries
