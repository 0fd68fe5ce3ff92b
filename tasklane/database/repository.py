"""Repository layer for task rows.

Repositories work inside the caller's transaction: they add, delete and flush,
but never commit. Rows are returned as ORM objects so the position manager can
mutate them in place.
"""

import logging
from datetime import date
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from tasklane.database.models import TaskDB

logger = logging.getLogger(__name__)


class TaskRepository:
    """Repository for Task database operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        user_id: int,
        text: str,
        assigned_date: date,
        instance_date: Optional[date] = None,
        position: int = 0,
        recurring_pattern_id: Optional[int] = None,
        is_rolled_over: bool = False,
    ) -> TaskDB:
        """Create a new incomplete task."""
        row = TaskDB(
            user_id=user_id,
            text=text,
            assigned_date=assigned_date,
            instance_date=instance_date or assigned_date,
            position=int(position),
            recurring_pattern_id=recurring_pattern_id,
            is_completed=False,
            completed_at=None,
            is_rolled_over=bool(is_rolled_over),
        )
        try:
            self.db.add(row)
            self.db.flush()
            logger.debug(f"Created task {row.id} on {assigned_date} at position {position}: {text[:50]}")
            return row
        except Exception as e:
            logger.error(f"Failed to create task on {assigned_date}: {type(e).__name__}: {str(e)}")
            raise

    def get(self, task_id: int) -> Optional[TaskDB]:
        """Get task by ID regardless of owner (ownership is checked by the caller)."""
        return self.db.query(TaskDB).filter(TaskDB.id == task_id).first()

    def list_for_date(self, user_id: int, assigned_date: date) -> List[TaskDB]:
        """Stored tasks on a date in list order (position ASC, id ASC)."""
        return (
            self.db.query(TaskDB)
            .filter(TaskDB.user_id == user_id, TaskDB.assigned_date == assigned_date)
            .order_by(TaskDB.position.asc(), TaskDB.id.asc())
            .all()
        )

    def list_for_range(self, user_id: int, start: date, end: date) -> List[TaskDB]:
        """Stored tasks with assigned_date in [start, end], ordered by (date, position, id)."""
        return (
            self.db.query(TaskDB)
            .filter(
                TaskDB.user_id == user_id,
                TaskDB.assigned_date >= start,
                TaskDB.assigned_date <= end,
            )
            .order_by(TaskDB.assigned_date.asc(), TaskDB.position.asc(), TaskDB.id.asc())
            .all()
        )

    def find_incomplete_before(self, user_id: int, before: date) -> List[TaskDB]:
        """Incomplete tasks on dates strictly before `before` (most recent date first)."""
        return (
            self.db.query(TaskDB)
            .filter(
                TaskDB.user_id == user_id,
                TaskDB.assigned_date < before,
                TaskDB.is_completed.is_(False),
            )
            .order_by(TaskDB.assigned_date.desc(), TaskDB.position.asc(), TaskDB.id.asc())
            .all()
        )

    def find_first_by_pattern_and_instance_date(self, pattern_id: int, instance_date: date) -> Optional[TaskDB]:
        return (
            self.db.query(TaskDB)
            .filter(TaskDB.recurring_pattern_id == pattern_id, TaskDB.instance_date == instance_date)
            .order_by(TaskDB.id.asc())
            .first()
        )

    def find_future_incomplete_for_pattern(self, pattern_id: int, after_date: date) -> List[TaskDB]:
        """Incomplete tasks still linked to a pattern with instance_date strictly after `after_date`."""
        return (
            self.db.query(TaskDB)
            .filter(
                TaskDB.recurring_pattern_id == pattern_id,
                TaskDB.instance_date > after_date,
                TaskDB.is_completed.is_(False),
            )
            .all()
        )

    def instance_keys_in_range(
        self, pattern_ids: Iterable[int], start: date, end: date
    ) -> Set[Tuple[int, date]]:
        """(pattern_id, instance_date) pairs that are already stored within [start, end]."""
        ids = list(pattern_ids)
        if not ids:
            return set()
        rows = (
            self.db.query(TaskDB.recurring_pattern_id, TaskDB.instance_date)
            .filter(
                TaskDB.recurring_pattern_id.in_(ids),
                TaskDB.instance_date >= start,
                TaskDB.instance_date <= end,
            )
            .all()
        )
        return {(row[0], row[1]) for row in rows}

    def increment_positions(self, user_id: int, assigned_date: date, from_position: int) -> int:
        """Shift every task at position >= from_position down by one slot."""
        rows = (
            self.db.query(TaskDB)
            .filter(
                TaskDB.user_id == user_id,
                TaskDB.assigned_date == assigned_date,
                TaskDB.position >= from_position,
            )
            .all()
        )
        for row in rows:
            row.position = row.position + 1
        self.db.flush()
        return len(rows)

    def detach_from_pattern(self, pattern_id: int) -> int:
        """Null the back-reference of every task linked to a pattern (ON DELETE SET NULL)."""
        rows = self.db.query(TaskDB).filter(TaskDB.recurring_pattern_id == pattern_id).all()
        for row in rows:
            row.recurring_pattern_id = None
        self.db.flush()
        return len(rows)

    def delete(self, task: TaskDB) -> None:
        try:
            self.db.delete(task)
            self.db.flush()
            logger.debug(f"Deleted task {task.id}")
        except Exception as e:
            logger.error(f"Failed to delete task {task.id}: {type(e).__name__}: {str(e)}")
            raise

    def delete_all(self, tasks: Iterable[TaskDB]) -> int:
        count = 0
        for task in tasks:
            self.db.delete(task)
            count += 1
        self.db.flush()
        logger.debug(f"Deleted {count} tasks")
        return count

    def save(self) -> None:
        """Flush pending in-place changes (positions, flags, dates)."""
        self.db.flush()
