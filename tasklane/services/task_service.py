"""Task service: the operations the HTTP layer calls.

Every public method runs in exactly one transaction via `run_with_retry`, checks
ownership, lets the rollover engine settle the user's day first, and queues
change notifications to be published after commit.
"""

from __future__ import annotations

import logging
import time
from datetime import date, timedelta
from typing import Callable, List, Optional, Tuple

from sqlalchemy.orm import Session

from tasklane.database.models import RecurringPatternDB, TaskDB, UserDB
from tasklane.database.recurring_pattern_repository import RecurringPatternRepository
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.database.user_repository import UserRepository
from tasklane.engine import PositionManager, RolloverCache, RolloverEngine
from tasklane.errors import InvalidError, NotFoundError, UnauthorizedError
from tasklane.models.constants import MAX_RANGE_DAYS, MAX_TEXT_LENGTH
from tasklane.models.recurrence import RecurringPattern
from tasklane.models.task import TaskView
from tasklane.recurrence.materialize import Materializer
from tasklane.recurrence.parser import parse_recurrence
from tasklane.recurrence.resolver import InstanceResolver, VirtualInstance
from tasklane.services.clock import Clock, SystemClock, local_date
from tasklane.services.notifications import (
    ChangeEvent,
    ChangeType,
    LoggingNotificationPublisher,
    NotificationPublisher,
    publish,
)
from tasklane.services.retry import UnitOfWork, run_with_retry

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "not found"


def validate_text(text: Optional[str]) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidError("text must not be empty", field="text")
    if len(cleaned) > MAX_TEXT_LENGTH:
        raise InvalidError(f"text must be at most {MAX_TEXT_LENGTH} characters", field="text")
    return cleaned


class _Context:
    """Per-attempt helpers bound to one session."""

    def __init__(self, service: "TaskService", uow: UnitOfWork, user_id: int):
        db = uow.session
        self.service = service
        self.uow = uow
        self.db: Session = db
        self.users = UserRepository(db)
        self.tasks = TaskRepository(db)
        self.patterns = RecurringPatternRepository(db)
        self.skips = SkipExceptionRepository(db)
        self.positions = PositionManager(db)
        self.resolver = InstanceResolver(db)
        self.materializer = Materializer(db, self.resolver)
        self.rollover = RolloverEngine(db, service.clock, service.rollover_cache)

        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        self.user: UserDB = user
        self.today: date = local_date(user.timezone, service.clock.now())

    # notifications

    def tasks_changed(self, *days: date) -> None:
        for day in dict.fromkeys(days):
            event = ChangeEvent(user_id=self.user.id, type=ChangeType.TASKS_CHANGED, date=day)
            self.uow.after_commit(lambda e=event: publish(self.service.notifier, e))

    def recurring_changed(self) -> None:
        event = ChangeEvent(user_id=self.user.id, type=ChangeType.RECURRING_CHANGED)
        self.uow.after_commit(lambda: publish(self.service.notifier, event))

    # rollover

    def run_rollover(self) -> None:
        user_id, today = self.user.id, self.today
        result = self.rollover.perform(self.user, today)
        self.uow.after_commit(lambda: self.service.rollover_cache.record(user_id, today))
        if result.changed:
            self.tasks_changed(today, *sorted(result.source_dates))

    def rollover_if_due(self, requested_date: Optional[date] = None) -> None:
        requested = self.today if requested_date is None else requested_date
        if self.rollover.should_trigger(self.user, requested, self.today):
            self.run_rollover()

    # lookups

    def owned_task(self, task_id: int) -> TaskDB:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if task.user_id != self.user.id:
            raise UnauthorizedError(NOT_FOUND_MESSAGE)
        return task

    def owned_pattern(self, pattern_id: int) -> RecurringPatternDB:
        pattern = self.patterns.get(pattern_id)
        if pattern is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        if pattern.user_id != self.user.id:
            raise UnauthorizedError(NOT_FOUND_MESSAGE)
        return pattern

    def stored_or_virtual(self, pattern_id: int, day: date) -> Tuple[Optional[TaskDB], Optional[VirtualInstance]]:
        """Resolve (pattern, day) to its stored task when one exists, else to the live virtual."""
        pattern = self.owned_pattern(pattern_id)
        stored = self.tasks.find_first_by_pattern_and_instance_date(pattern.id, day)
        if stored is not None:
            return stored, None
        virtual = self.resolver.find_virtual(self.user.id, pattern.id, day, self.today)
        if virtual is None:
            raise NotFoundError(NOT_FOUND_MESSAGE)
        return None, virtual

    def stored_for(self, pattern_id: int, day: date) -> TaskDB:
        stored, virtual = self.stored_or_virtual(pattern_id, day)
        if stored is not None:
            return stored
        return self.materializer.materialize_single(self.user.id, virtual.pattern, day)

    def virtual_count(self, day: date) -> int:
        return self.resolver.virtual_count(self.user.id, day, self.today)

    def insert_position(self, day: date, position: Optional[int]) -> int:
        """Stored position for a new task given a 1-based display position (virtuals included)."""
        count = self.virtual_count(day)
        if position is not None and count and position <= count:
            self.materializer.materialize_all(self.user.id, day, self.today)
            target = position
        elif position is not None:
            target = position - count
        else:
            target = None
        tail = self.positions.incomplete_tail_position(self.user.id, day)
        return tail if target is None else min(target, tail)

    # shared operations

    def move(self, task: TaskDB, index: int) -> TaskDB:
        if index < 0:
            raise InvalidError(f"position {index} is out of range", field="position")
        count = self.virtual_count(task.assigned_date)
        if count and index < count:
            self.materializer.materialize_all(self.user.id, task.assigned_date, self.today)
            target = index
        else:
            target = index - count
        self.positions.move(task, target)
        self.tasks_changed(task.assigned_date)
        return task

    def set_text(self, task: TaskDB, text: str) -> TaskDB:
        self.positions.orphan(task)
        task.text = text
        self.tasks.save()
        self.tasks_changed(task.assigned_date)
        return task

    def transfer(self, task: TaskDB, to_date: date) -> TaskDB:
        if task.assigned_date == to_date:
            return task
        from_date = self.positions.transfer(task, to_date)
        self.tasks_changed(from_date, to_date)
        return task

    def delete_single(self, task: TaskDB) -> None:
        day = task.assigned_date
        if task.recurring_pattern_id is not None:
            self.skips.add(task.recurring_pattern_id, task.instance_date)
        self.tasks.delete(task)
        self.positions.renumber(self.user.id, day)
        self.tasks_changed(day)

    def end_pattern(self, pattern: RecurringPatternDB, last_date: date, extra: Optional[TaskDB] = None) -> None:
        """Stop `pattern` after `last_date` and drop its incomplete tasks beyond that date."""
        doomed = {t.id: t for t in self.tasks.find_future_incomplete_for_pattern(pattern.id, last_date)}
        if extra is not None:
            doomed[extra.id] = extra
        dates = {t.assigned_date for t in doomed.values()}
        self.tasks.delete_all(doomed.values())
        for day in sorted(dates):
            self.positions.renumber(self.user.id, day)

        if last_date < pattern.start_date:
            self.patterns.delete(pattern)
            logger.info(f"Deleted recurring pattern {pattern.id}: ended before its start date")
        else:
            self.patterns.set_end_date(pattern, last_date)
        self.recurring_changed()


class TaskService:
    """Façade over the recurrence, position and rollover subsystems."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = None,
        clock: Clock = None,
        notifier: NotificationPublisher = None,
        rollover_cache: RolloverCache = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.notifier = notifier or LoggingNotificationPublisher()
        self.rollover_cache = rollover_cache or RolloverCache()
        self.sleep = sleep

    def _run(self, label: str, user_id: int, work: Callable[[_Context], object], *, rollover: bool = True):
        def attempt(uow: UnitOfWork):
            ctx = _Context(self, uow, user_id)
            if rollover:
                ctx.rollover_if_due()
            return work(ctx)

        return run_with_retry(attempt, session_factory=self.session_factory, sleep=self.sleep, label=label)

    # creation

    def create(self, user_id: int, text: str, day: date, position: Optional[int] = None) -> TaskView:
        """Create a task, or a recurring pattern when the text ends in a recurrence phrase.

        `position` is 1-based in the date's display order (virtuals included);
        without it the task goes to the end of the incomplete zone.
        """
        cleaned = validate_text(text)
        if position is not None and position < 1:
            raise InvalidError("position must be >= 1", field="position")

        def work(ctx: _Context) -> TaskView:
            parsed = parse_recurrence(cleaned)
            if parsed is not None and day != ctx.today:
                pattern = ctx.patterns.create(
                    user_id=ctx.user.id, text=parsed.text, kind=parsed.kind, start_date=day
                )
                ctx.recurring_changed()
                return VirtualInstance(pattern=pattern, day=day).to_view()

            # Placed before the pattern exists so its own virtual is not counted.
            target = ctx.insert_position(day, position)
            if parsed is not None:
                pattern = ctx.patterns.create(
                    user_id=ctx.user.id, text=parsed.text, kind=parsed.kind, start_date=day
                )
                ctx.recurring_changed()
                row = ctx.tasks.create(
                    user_id=ctx.user.id,
                    text=pattern.text,
                    assigned_date=day,
                    instance_date=day,
                    recurring_pattern_id=pattern.id,
                )
                logger.info(f"Created pattern {pattern.id} with today's instance as task {row.id}")
            else:
                row = ctx.tasks.create(user_id=ctx.user.id, text=cleaned, assigned_date=day)
            ctx.positions.insert(row, target)
            ctx.tasks_changed(day)
            return row.to_pydantic()

        return self._run("create", user_id, work)

    # reads

    def get_for_date(self, user_id: int, day: date) -> List[TaskView]:
        def work(ctx: _Context) -> List[TaskView]:
            ctx.rollover_if_due(day)
            return [entry.to_view() for entry in ctx.resolver.resolve_date(ctx.user.id, day, ctx.today)]

        return self._run("get_for_date", user_id, work, rollover=False)

    def get_for_range(self, user_id: int, start: date, end: date) -> List[TaskView]:
        if start > end:
            raise InvalidError("start must not be after end", field="start")
        if (end - start).days + 1 > MAX_RANGE_DAYS:
            raise InvalidError(f"range must span at most {MAX_RANGE_DAYS} days", field="end")

        def work(ctx: _Context) -> List[TaskView]:
            if start <= ctx.today <= end:
                ctx.rollover_if_due(ctx.today)
            return [entry.to_view() for entry in ctx.resolver.resolve_range(ctx.user.id, start, end, ctx.today)]

        return self._run("get_for_range", user_id, work, rollover=False)

    def list_patterns(self, user_id: int) -> List[RecurringPattern]:
        def work(ctx: _Context) -> List[RecurringPattern]:
            return [p.to_pydantic() for p in ctx.patterns.list_for_user(ctx.user.id)]

        return self._run("list_patterns", user_id, work, rollover=False)

    # stored task edits

    def update_text(self, user_id: int, task_id: int, text: str) -> TaskView:
        cleaned = validate_text(text)

        def work(ctx: _Context) -> TaskView:
            return ctx.set_text(ctx.owned_task(task_id), cleaned).to_pydantic()

        return self._run("update_text", user_id, work)

    def update_position(self, user_id: int, task_id: int, index: int) -> TaskView:
        """Move a task to a 0-based index in the date's display order (virtuals included)."""

        def work(ctx: _Context) -> TaskView:
            return ctx.move(ctx.owned_task(task_id), index).to_pydantic()

        return self._run("update_position", user_id, work)

    def complete(self, user_id: int, task_id: int) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            task = ctx.owned_task(task_id)
            ctx.positions.complete(task, self.clock.now())
            ctx.tasks_changed(task.assigned_date)
            return task.to_pydantic()

        return self._run("complete", user_id, work)

    def uncomplete(self, user_id: int, task_id: int) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            task = ctx.owned_task(task_id)
            ctx.positions.uncomplete(task)
            ctx.tasks_changed(task.assigned_date)
            return task.to_pydantic()

        return self._run("uncomplete", user_id, work)

    def update_assigned_date(self, user_id: int, task_id: int, to_date: date) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            return ctx.transfer(ctx.owned_task(task_id), to_date).to_pydantic()

        return self._run("update_assigned_date", user_id, work)

    def delete(self, user_id: int, task_id: int, all_future: bool = False) -> None:
        def work(ctx: _Context) -> None:
            task = ctx.owned_task(task_id)
            if not all_future:
                ctx.delete_single(task)
                return
            if task.recurring_pattern_id is None:
                raise InvalidError("task is not part of a recurring pattern", field="all_future")
            pattern = ctx.owned_pattern(task.recurring_pattern_id)
            ctx.end_pattern(pattern, task.instance_date - timedelta(days=1), extra=task)

        self._run("delete", user_id, work)

    # virtual instances

    def materialize_virtual(self, user_id: int, pattern_id: int, day: date) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            stored, virtual = ctx.stored_or_virtual(pattern_id, day)
            if stored is not None:
                return stored.to_pydantic()
            row = ctx.materializer.materialize_single(ctx.user.id, virtual.pattern, day)
            ctx.tasks_changed(day)
            return row.to_pydantic()

        return self._run("materialize_virtual", user_id, work)

    def complete_virtual(self, user_id: int, pattern_id: int, day: date) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            task = ctx.stored_for(pattern_id, day)
            ctx.positions.complete(task, self.clock.now())
            ctx.tasks_changed(task.assigned_date)
            return task.to_pydantic()

        return self._run("complete_virtual", user_id, work)

    def update_virtual_text(self, user_id: int, pattern_id: int, day: date, text: str) -> TaskView:
        cleaned = validate_text(text)

        def work(ctx: _Context) -> TaskView:
            stored, virtual = ctx.stored_or_virtual(pattern_id, day)
            if stored is not None:
                return ctx.set_text(stored, cleaned).to_pydantic()
            row = ctx.materializer.replace_virtual_with_orphan(ctx.user.id, virtual, cleaned, ctx.today)
            ctx.tasks_changed(day)
            return row.to_pydantic()

        return self._run("update_virtual_text", user_id, work)

    def update_virtual_position(self, user_id: int, pattern_id: int, day: date, index: int) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            return ctx.move(ctx.stored_for(pattern_id, day), index).to_pydantic()

        return self._run("update_virtual_position", user_id, work)

    def update_virtual_assigned_date(self, user_id: int, pattern_id: int, day: date, to_date: date) -> TaskView:
        def work(ctx: _Context) -> TaskView:
            stored, virtual = ctx.stored_or_virtual(pattern_id, day)
            if stored is None and to_date == day:
                return virtual.to_view()
            task = stored or ctx.materializer.materialize_single(ctx.user.id, virtual.pattern, day)
            return ctx.transfer(task, to_date).to_pydantic()

        return self._run("update_virtual_assigned_date", user_id, work)

    def delete_virtual(self, user_id: int, pattern_id: int, day: date, all_future: bool = False) -> None:
        def work(ctx: _Context) -> None:
            stored, virtual = ctx.stored_or_virtual(pattern_id, day)
            if all_future:
                pattern = ctx.owned_pattern(pattern_id)
                ctx.end_pattern(pattern, day - timedelta(days=1), extra=stored)
                return
            if stored is not None:
                ctx.delete_single(stored)
                return
            ctx.skips.add(virtual.pattern_id, day)
            ctx.tasks_changed(day)

        self._run("delete_virtual", user_id, work)

    # patterns and maintenance

    def delete_pattern(self, user_id: int, pattern_id: int) -> None:
        """Delete a pattern; its skips go with it and its tasks survive as orphans."""

        def work(ctx: _Context) -> None:
            ctx.patterns.delete(ctx.owned_pattern(pattern_id))
            ctx.recurring_changed()

        self._run("delete_pattern", user_id, work)

    def rollover(self, user_id: int) -> List[TaskView]:
        """Force the rollover for the user's current date and return that date's list."""

        def work(ctx: _Context) -> List[TaskView]:
            ctx.run_rollover()
            return [entry.to_view() for entry in ctx.resolver.resolve_date(ctx.user.id, ctx.today, ctx.today)]

        return self._run("rollover", user_id, work, rollover=False)
