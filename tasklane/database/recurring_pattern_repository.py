"""Repository for RecurringPattern database operations."""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from tasklane.database.models import RecurringPatternDB, SkipExceptionDB
from tasklane.database.repository import TaskRepository
from tasklane.models.recurrence import RecurrenceKind

logger = logging.getLogger(__name__)


class RecurringPatternRepository:
    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        *,
        user_id: int,
        text: str,
        kind: RecurrenceKind,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> RecurringPatternDB:
        row = RecurringPatternDB(
            user_id=user_id,
            text=text,
            kind=RecurrenceKind.parse(kind).value,
            start_date=start_date,
            end_date=end_date,
        )
        try:
            self.db.add(row)
            self.db.flush()
            logger.debug(f"Created recurring pattern {row.id} ({row.kind}) from {start_date}: {text[:50]}")
            return row
        except Exception as e:
            logger.error(f"Failed to create recurring pattern: {type(e).__name__}: {str(e)}")
            raise

    def get(self, pattern_id: int) -> Optional[RecurringPatternDB]:
        return self.db.query(RecurringPatternDB).filter(RecurringPatternDB.id == pattern_id).first()

    def list_for_user(self, user_id: int) -> List[RecurringPatternDB]:
        return (
            self.db.query(RecurringPatternDB)
            .filter(RecurringPatternDB.user_id == user_id)
            .order_by(RecurringPatternDB.id.asc())
            .all()
        )

    def find_active_patterns(self, user_id: int, on_date: date) -> List[RecurringPatternDB]:
        """Patterns with start_date <= on_date and (no end_date or end_date >= on_date), by id."""
        return self.active_in_range(user_id, on_date, on_date)

    def active_in_range(self, user_id: int, start: date, end: date) -> List[RecurringPatternDB]:
        """Patterns whose active window overlaps [start, end], by id."""
        return (
            self.db.query(RecurringPatternDB)
            .filter(
                RecurringPatternDB.user_id == user_id,
                RecurringPatternDB.start_date <= end,
                or_(RecurringPatternDB.end_date.is_(None), RecurringPatternDB.end_date >= start),
            )
            .order_by(RecurringPatternDB.id.asc())
            .all()
        )

    def set_end_date(self, pattern: RecurringPatternDB, end_date: date) -> RecurringPatternDB:
        pattern.end_date = end_date
        self.db.flush()
        logger.debug(f"Recurring pattern {pattern.id} now ends on {end_date}")
        return pattern

    def delete(self, pattern: RecurringPatternDB) -> None:
        """Delete a pattern, its skip exceptions, and unlink every task that pointed at it."""
        pattern_id = pattern.id
        try:
            TaskRepository(self.db).detach_from_pattern(pattern_id)
            self.db.query(SkipExceptionDB).filter(SkipExceptionDB.recurring_pattern_id == pattern_id).delete(
                synchronize_session="fetch"
            )
            self.db.delete(pattern)
            self.db.flush()
            logger.debug(f"Deleted recurring pattern {pattern_id}")
        except Exception as e:
            logger.error(f"Failed to delete recurring pattern {pattern_id}: {type(e).__name__}: {str(e)}")
            raise
