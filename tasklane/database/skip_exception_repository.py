"""Repository for SkipException database operations."""

import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, Set

from sqlalchemy.orm import Session

from tasklane.database.models import SkipExceptionDB

logger = logging.getLogger(__name__)


class SkipExceptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def exists(self, pattern_id: int, skip_date: date) -> bool:
        return (
            self.db.query(SkipExceptionDB.id)
            .filter(SkipExceptionDB.recurring_pattern_id == pattern_id, SkipExceptionDB.skip_date == skip_date)
            .first()
            is not None
        )

    def add(self, pattern_id: int, skip_date: date) -> bool:
        """Record a skip for (pattern, date). Returns False when it already existed."""
        if self.exists(pattern_id, skip_date):
            return False
        try:
            self.db.add(SkipExceptionDB(recurring_pattern_id=pattern_id, skip_date=skip_date))
            self.db.flush()
            logger.debug(f"Skipping recurring pattern {pattern_id} on {skip_date}")
            return True
        except Exception as e:
            logger.error(f"Failed to add skip for pattern {pattern_id} on {skip_date}: {type(e).__name__}: {str(e)}")
            raise

    def skip_dates_in_range(self, pattern_ids: Iterable[int], start: date, end: date) -> Dict[int, Set[date]]:
        """Map of pattern id -> skipped dates within [start, end]."""
        ids = list(pattern_ids)
        result: Dict[int, Set[date]] = defaultdict(set)
        if not ids:
            return result
        rows = (
            self.db.query(SkipExceptionDB.recurring_pattern_id, SkipExceptionDB.skip_date)
            .filter(
                SkipExceptionDB.recurring_pattern_id.in_(ids),
                SkipExceptionDB.skip_date >= start,
                SkipExceptionDB.skip_date <= end,
            )
            .all()
        )
        for pattern_id, skip_date in rows:
            result[pattern_id].add(skip_date)
        return result
