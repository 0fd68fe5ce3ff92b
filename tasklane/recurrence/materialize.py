"""Promote virtual pattern instances to stored tasks."""

from __future__ import annotations

import logging
from datetime import date
from typing import List

from sqlalchemy.orm import Session

from tasklane.database.models import RecurringPatternDB, TaskDB
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.engine.positions import zone_sorted
from tasklane.recurrence.resolver import InstanceResolver, VirtualInstance

logger = logging.getLogger(__name__)


class Materializer:
    def __init__(self, db: Session, resolver: InstanceResolver = None):
        self.tasks = TaskRepository(db)
        self.skips = SkipExceptionRepository(db)
        self.resolver = resolver or InstanceResolver(db)

    def _create_instance(self, user_id: int, pattern: RecurringPatternDB, day: date, position: int) -> TaskDB:
        return self.tasks.create(
            user_id=user_id,
            text=pattern.text,
            assigned_date=day,
            instance_date=day,
            position=position,
            recurring_pattern_id=pattern.id,
            is_rolled_over=False,
        )

    def materialize_single(self, user_id: int, pattern: RecurringPatternDB, day: date) -> TaskDB:
        """Store the instance of `pattern` on `day` at the head of the stored list.

        Idempotent: an existing stored task for (pattern, day) is returned as is.
        """
        existing = self.tasks.find_first_by_pattern_and_instance_date(pattern.id, day)
        if existing is not None:
            return existing
        self.tasks.increment_positions(user_id, day, 1)
        row = self._create_instance(user_id, pattern, day, 1)
        logger.info(f"Materialized pattern {pattern.id} on {day} as task {row.id}")
        return row

    def _renumber_after(self, existing: List[TaskDB], offset: int) -> None:
        for idx, row in enumerate(existing):
            row.position = offset + idx + 1
        self.tasks.save()

    def materialize_all(self, user_id: int, day: date, today: date) -> List[TaskDB]:
        """Store every virtual on `day` at positions 1..M (pattern id order); existing tasks follow from M+1."""
        virtuals = self.resolver.virtuals_for_date(user_id, day, today)
        if not virtuals:
            return []
        existing = zone_sorted(self.tasks.list_for_date(user_id, day))
        created = [
            self._create_instance(user_id, v.pattern, day, idx + 1)
            for idx, v in enumerate(virtuals)
        ]
        self._renumber_after(existing, len(created))
        logger.info(f"Materialized {len(created)} virtual instances for user {user_id} on {day}")
        return created

    def replace_virtual_with_orphan(self, user_id: int, virtual: VirtualInstance, text: str, today: date) -> TaskDB:
        """Turn an edited virtual into an unlinked task with new text, keeping its slot.

        The other virtuals on that date are materialized around it so the
        visible order does not change.
        """
        day = virtual.day
        virtuals = self.resolver.virtuals_for_date(user_id, day, today)
        self.skips.add(virtual.pattern_id, day)
        existing = zone_sorted(self.tasks.list_for_date(user_id, day))

        orphan = None
        for idx, v in enumerate(virtuals):
            if v.pattern_id == virtual.pattern_id:
                orphan = self.tasks.create(
                    user_id=user_id,
                    text=text,
                    assigned_date=day,
                    instance_date=day,
                    position=idx + 1,
                    recurring_pattern_id=None,
                )
            else:
                self._create_instance(user_id, v.pattern, day, idx + 1)
        self._renumber_after(existing, len(virtuals))
        logger.info(f"Replaced virtual of pattern {virtual.pattern_id} on {day} with task {orphan.id}")
        return orphan
