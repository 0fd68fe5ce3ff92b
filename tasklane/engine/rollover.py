"""Daily rollover: the first read or write on a new local day settles the calendar.

Incomplete tasks from earlier dates move to today, stale materializations of
patterns that emit today are replaced by today's instance, and today is
renumbered. Running it twice for the same day changes nothing.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from tasklane.database.models import RecurringPatternDB, TaskDB, UserDB, as_utc
from tasklane.database.recurring_pattern_repository import RecurringPatternRepository
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.engine.positions import PositionManager, apply_order
from tasklane.recurrence.calculator import emits_on
from tasklane.services.clock import Clock, local_date

logger = logging.getLogger(__name__)


def _cache_enabled_from_env() -> bool:
    return os.getenv("ROLLOVER_CACHE_ENABLED", "True").lower() == "true"


class RolloverCache:
    """Per-process map of user id -> local date of the last rollover.

    Only a hint: the user row stays authoritative, and lost updates just cost
    one extra check against it.
    """

    def __init__(self, enabled: Optional[bool] = None):
        self.enabled = _cache_enabled_from_env() if enabled is None else enabled
        self._lock = threading.Lock()
        self._days: Dict[int, date] = {}

    def get(self, user_id: int) -> Optional[date]:
        if not self.enabled:
            return None
        with self._lock:
            return self._days.get(user_id)

    def record(self, user_id: int, day: date) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._days[user_id] = day


@dataclass
class RolloverResult:
    user_id: int
    day: date
    rolled_task_ids: List[int] = field(default_factory=list)
    deleted_task_ids: List[int] = field(default_factory=list)
    created_task_ids: List[int] = field(default_factory=list)
    source_dates: Set[date] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.rolled_task_ids or self.deleted_task_ids or self.created_task_ids)


class RolloverEngine:
    def __init__(self, db: Session, clock: Clock, cache: RolloverCache):
        self.db = db
        self.clock = clock
        self.cache = cache
        self.tasks = TaskRepository(db)
        self.patterns = RecurringPatternRepository(db)
        self.skips = SkipExceptionRepository(db)
        self.positions = PositionManager(db)

    def should_trigger(self, user: UserDB, requested_date: date, current_date: date) -> bool:
        if requested_date != current_date:
            return False
        if self.cache.get(user.id) == current_date:
            return False
        if user.last_rollover_at is not None:
            last_day = local_date(user.timezone, as_utc(user.last_rollover_at))
            if last_day == current_date:
                self.cache.record(user.id, current_date)
                return False
        return True

    def today_patterns(self, user_id: int, today: date) -> List[RecurringPatternDB]:
        """Active patterns that emit today and are not skipped today, by id."""
        return [
            p
            for p in self.patterns.find_active_patterns(user_id, today)
            if emits_on(p.recurrence_kind, p.start_date, today) and not self.skips.exists(p.id, today)
        ]

    def perform(self, user: UserDB, today: date) -> RolloverResult:
        """Run the rollover for `today` inside the caller's transaction.

        The in-process cache is not touched here; the caller records the day
        once the transaction has committed.
        """
        result = RolloverResult(user_id=user.id, day=today)
        patterns = self.today_patterns(user.id, today)
        pattern_ids = {p.id for p in patterns}

        rolled: List[TaskDB] = []
        stale: List[TaskDB] = []
        for task in self.tasks.find_incomplete_before(user.id, today):
            result.source_dates.add(task.assigned_date)
            if task.recurring_pattern_id in pattern_ids:
                stale.append(task)
            else:
                rolled.append(task)

        for task in stale:
            result.deleted_task_ids.append(task.id)
        self.tasks.delete_all(stale)

        for task in rolled:
            task.assigned_date = today
            task.is_rolled_over = True
            result.rolled_task_ids.append(task.id)
        self.tasks.save()

        for day in sorted(result.source_dates):
            self.positions.renumber(user.id, day)

        for pattern in patterns:
            if self.tasks.find_first_by_pattern_and_instance_date(pattern.id, today) is None:
                row = self.tasks.create(
                    user_id=user.id,
                    text=pattern.text,
                    assigned_date=today,
                    instance_date=today,
                    position=0,
                    recurring_pattern_id=pattern.id,
                )
                result.created_task_ids.append(row.id)

        self._renumber_today(user.id, today, rolled, pattern_ids)

        user.last_rollover_at = as_utc(self.clock.now())
        self.db.flush()

        if result.changed:
            logger.info(
                f"Rollover for user {user.id} on {today}: rolled {len(result.rolled_task_ids)}, "
                f"replaced {len(result.deleted_task_ids)}, materialized {len(result.created_task_ids)}"
            )
        else:
            logger.debug(f"Rollover for user {user.id} on {today}: nothing to do")
        return result

    def _renumber_today(self, user_id: int, today: date, rolled: List[TaskDB], pattern_ids: Set[int]) -> None:
        # Rolled-over first (already here, then newly rolled), then today's
        # pattern instances, then everything else incomplete, then completed.
        rolled_ids = {t.id for t in rolled}
        rows = self.tasks.list_for_date(user_id, today)

        earlier_rolled, instances, others, completed = [], [], [], []
        for row in rows:
            if row.id in rolled_ids:
                continue
            if row.is_completed:
                completed.append(row)
            elif row.is_rolled_over:
                earlier_rolled.append(row)
            elif row.recurring_pattern_id in pattern_ids and row.instance_date == today:
                instances.append(row)
            else:
                others.append(row)
        instances.sort(key=lambda r: r.recurring_pattern_id)

        apply_order(earlier_rolled + list(rolled) + instances + others + completed)
        self.tasks.save()
