"""Per-date ordering of stored tasks.

Invariants after every operation, for each (user, assigned_date):
- positions are 1..N with no gaps
- incomplete tasks occupy 1..K, completed tasks K+1..N

All operations work on the stored list L (position ASC, id ASC) and only write
rows whose position actually changes.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from tasklane.database.models import TaskDB, as_utc
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.errors import InvalidError

logger = logging.getLogger(__name__)


def first_completed_index(rows: Sequence[TaskDB]) -> int:
    """Index of the first completed row, or len(rows) when none is completed."""
    for idx, row in enumerate(rows):
        if row.is_completed:
            return idx
    return len(rows)


def apply_order(rows: Sequence[TaskDB]) -> int:
    """Assign positions 1..N following list order. Returns how many rows changed."""
    changed = 0
    for idx, row in enumerate(rows):
        if row.position != idx + 1:
            row.position = idx + 1
            changed += 1
    return changed


def zone_sorted(rows: Sequence[TaskDB]) -> List[TaskDB]:
    """Stable order that restores zone order without reshuffling within a zone."""
    return sorted(rows, key=lambda r: (bool(r.is_completed), r.position, r.id))


class PositionManager:
    """Apply insert/move/complete/uncomplete/date-transfer to a day's stored list."""

    def __init__(self, db: Session):
        self.db = db
        self.tasks = TaskRepository(db)
        self.skips = SkipExceptionRepository(db)

    def ordered(self, user_id: int, day: date) -> List[TaskDB]:
        return self.tasks.list_for_date(user_id, day)

    def incomplete_tail_position(self, user_id: int, day: date) -> int:
        """1-based position just after the last incomplete task."""
        return first_completed_index(self.ordered(user_id, day)) + 1

    def insert(self, task: TaskDB, position: int) -> TaskDB:
        """Shift tasks at >= position down by one and place `task` at `position`."""
        self.tasks.increment_positions(task.user_id, task.assigned_date, position)
        task.position = position
        self.tasks.save()
        return task

    def renumber(self, user_id: int, day: date) -> int:
        """Close gaps on a date (1..N), keeping incomplete tasks ahead of completed ones."""
        rows = zone_sorted(self.ordered(user_id, day))
        changed = apply_order(rows)
        if changed:
            self.tasks.save()
            logger.debug(f"Renumbered {changed} tasks for user {user_id} on {day}")
        return changed

    def move(self, task: TaskDB, index: int) -> bool:
        """Move `task` to 0-based display index `index` within its date.

        A move that would cross the completed boundary is rejected without
        changes; the return value says whether anything moved.
        """
        rows = self.ordered(task.user_id, task.assigned_date)
        if index < 0 or index >= len(rows):
            raise InvalidError(f"position {index} is out of range", field="position")

        current = next(i for i, row in enumerate(rows) if row.id == task.id)
        boundary = first_completed_index(rows)
        if not task.is_completed and index >= boundary:
            logger.info(f"Rejected move of task {task.id} to {index}: crosses into the completed zone")
            return False
        if task.is_completed and index < boundary:
            logger.info(f"Rejected move of task {task.id} to {index}: crosses into the incomplete zone")
            return False
        if current == index:
            return False

        rows.insert(index, rows.pop(current))
        lo, hi = min(current, index), max(current, index)
        for idx in range(lo, hi + 1):
            rows[idx].position = idx + 1
        self.tasks.save()
        return True

    def complete(self, task: TaskDB, now: datetime) -> TaskDB:
        """Mark completed and move to the top of the completed zone."""
        if task.is_completed:
            return task
        rows = [r for r in self.ordered(task.user_id, task.assigned_date) if r.id != task.id]
        task.is_completed = True
        task.completed_at = as_utc(now)
        rows.insert(first_completed_index(rows), task)
        apply_order(rows)
        self.tasks.save()
        return task

    def uncomplete(self, task: TaskDB) -> TaskDB:
        """Clear completion and move to the end of the incomplete zone."""
        if not task.is_completed:
            return task
        rows = [r for r in self.ordered(task.user_id, task.assigned_date) if r.id != task.id]
        task.is_completed = False
        task.completed_at = None
        rows.insert(first_completed_index(rows), task)
        apply_order(rows)
        self.tasks.save()
        return task

    def orphan(self, task: TaskDB) -> Optional[int]:
        """Detach a task from its pattern; a skip keeps the pattern from re-emitting its instance date."""
        pattern_id = task.recurring_pattern_id
        if pattern_id is None:
            return None
        self.skips.add(pattern_id, task.instance_date)
        task.recurring_pattern_id = None
        self.tasks.save()
        logger.debug(f"Orphaned task {task.id} from pattern {pattern_id} ({task.instance_date})")
        return pattern_id

    def transfer(self, task: TaskDB, to_date: date) -> date:
        """Move a task to another date, landing at the end of that date's incomplete zone.

        Returns the source date. Completed tasks land at the top of the completed zone.
        """
        from_date = task.assigned_date
        if from_date == to_date:
            return from_date

        self.orphan(task)
        task.is_rolled_over = False
        task.assigned_date = to_date
        self.tasks.save()
        self.renumber(task.user_id, from_date)

        rows = [r for r in self.ordered(task.user_id, to_date) if r.id != task.id]
        rows = zone_sorted(rows)
        rows.insert(first_completed_index(rows), task)
        apply_order(rows)
        self.tasks.save()
        return from_date

    def renumber_all(self, user_id: Optional[int] = None) -> int:
        """Renumber every (user, date) group to the dense convention. Returns rows changed."""
        query = self.db.query(TaskDB)
        if user_id is not None:
            query = query.filter(TaskDB.user_id == user_id)
        rows = query.order_by(TaskDB.user_id, TaskDB.assigned_date, TaskDB.position, TaskDB.id).all()

        groups = {}
        for row in rows:
            groups.setdefault((row.user_id, row.assigned_date), []).append(row)

        changed = 0
        for group in groups.values():
            changed += apply_order(zone_sorted(group))
        if changed:
            self.tasks.save()
        logger.info(f"Renumbered {changed} tasks across {len(groups)} dates")
        return changed
