"""Tests for TaskRepository, RecurringPatternRepository and SkipExceptionRepository."""

import pytest
from datetime import timedelta

from tasklane.database.models import TaskDB
from tasklane.database.recurring_pattern_repository import RecurringPatternRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.models.recurrence import RecurrenceKind

from conftest import TODAY

YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


@pytest.fixture
def pattern_repo(db_session):
    return RecurringPatternRepository(db_session)


@pytest.fixture
def skip_repo(db_session):
    return SkipExceptionRepository(db_session)


class TestTaskRepository:
    """Test TaskRepository operations."""

    def test_create_task(self, task_repository, test_user_id):
        """Test creating a task."""
        created = task_repository.create(user_id=test_user_id, text="buy milk", assigned_date=TODAY, position=1)

        assert created.id is not None
        assert created.instance_date == TODAY
        assert created.is_completed is False
        assert created.is_rolled_over is False
        assert created.recurring_pattern_id is None
        assert task_repository.get(created.id).text == "buy milk"

    def test_get_nonexistent_task(self, task_repository):
        """Test retrieving a nonexistent task returns None."""
        assert task_repository.get(424242) is None

    def test_list_for_date_orders_by_position_then_id(self, task_repository, make_task, test_user_id, other_user_id):
        b = make_task("b", position=2)
        a = make_task("a", position=1)
        tie = make_task("tie", position=2)
        make_task("other user", user_id=other_user_id)
        make_task("other day", day=TOMORROW)

        assert [t.id for t in task_repository.list_for_date(test_user_id, TODAY)] == [a.id, b.id, tie.id]

    def test_list_for_range(self, task_repository, make_task, test_user_id):
        make_task("tomorrow", day=TOMORROW)
        make_task("today")
        make_task("outside", day=TOMORROW + timedelta(days=1))

        rows = task_repository.list_for_range(test_user_id, TODAY, TOMORROW)
        assert [t.text for t in rows] == ["today", "tomorrow"]

    def test_find_incomplete_before(self, task_repository, make_task, test_user_id):
        make_task("older", day=YESTERDAY - timedelta(days=1))
        make_task("recent 2", day=YESTERDAY, position=2)
        make_task("recent 1", day=YESTERDAY, position=1)
        make_task("done", day=YESTERDAY, completed=True)
        make_task("today")

        rows = task_repository.find_incomplete_before(test_user_id, TODAY)
        assert [t.text for t in rows] == ["recent 1", "recent 2", "older"]

    def test_increment_positions(self, task_repository, make_task, test_user_id):
        make_task("a")
        make_task("b")
        make_task("c")

        assert task_repository.increment_positions(test_user_id, TODAY, 2) == 2
        assert [(t.text, t.position) for t in task_repository.list_for_date(test_user_id, TODAY)] == [
            ("a", 1),
            ("b", 3),
            ("c", 4),
        ]

    def test_pattern_lookups(self, task_repository, pattern_repo, make_task, test_user_id):
        p = pattern_repo.create(user_id=test_user_id, text="water", kind=RecurrenceKind.DAILY, start_date=TODAY)
        today = make_task("water", recurring_pattern_id=p.id)
        moved = make_task("water", day=TOMORROW, instance_date=TOMORROW + timedelta(days=1), recurring_pattern_id=p.id)
        make_task("water", day=TOMORROW + timedelta(days=3), recurring_pattern_id=p.id, completed=True)

        assert task_repository.find_first_by_pattern_and_instance_date(p.id, TODAY).id == today.id
        assert task_repository.find_first_by_pattern_and_instance_date(p.id, TOMORROW) is None
        # Keyed by instance date, not assigned date; completed rows are kept.
        assert [t.id for t in task_repository.find_future_incomplete_for_pattern(p.id, TODAY)] == [moved.id]
        assert task_repository.instance_keys_in_range([p.id], TODAY, TOMORROW + timedelta(days=3)) == {
            (p.id, TODAY),
            (p.id, TOMORROW + timedelta(days=1)),
            (p.id, TOMORROW + timedelta(days=3)),
        }
        assert task_repository.instance_keys_in_range([], TODAY, TOMORROW) == set()

    def test_delete(self, task_repository, make_task, test_user_id):
        a = make_task("a")
        b = make_task("b")
        task_repository.delete(a)
        assert [t.id for t in task_repository.list_for_date(test_user_id, TODAY)] == [b.id]
        assert task_repository.delete_all([b]) == 1
        assert task_repository.list_for_date(test_user_id, TODAY) == []


class TestRecurringPatternRepository:

    def test_create_and_list(self, pattern_repo, test_user_id, other_user_id):
        first = pattern_repo.create(user_id=test_user_id, text="a", kind=RecurrenceKind.WEEKLY, start_date=TODAY)
        second = pattern_repo.create(user_id=test_user_id, text="b", kind=RecurrenceKind.YEARLY, start_date=TODAY)
        pattern_repo.create(user_id=other_user_id, text="c", kind=RecurrenceKind.DAILY, start_date=TODAY)

        assert [p.id for p in pattern_repo.list_for_user(test_user_id)] == [first.id, second.id]
        assert pattern_repo.get(first.id).recurrence_kind == RecurrenceKind.WEEKLY

    def test_active_patterns_respect_start_and_end(self, pattern_repo, test_user_id):
        open_ended = pattern_repo.create(user_id=test_user_id, text="a", kind=RecurrenceKind.DAILY, start_date=TODAY)
        ended = pattern_repo.create(user_id=test_user_id, text="b", kind=RecurrenceKind.DAILY, start_date=TODAY)
        pattern_repo.set_end_date(ended, TOMORROW)
        pattern_repo.create(user_id=test_user_id, text="later", kind=RecurrenceKind.DAILY, start_date=TOMORROW + timedelta(days=5))

        assert [p.id for p in pattern_repo.find_active_patterns(test_user_id, YESTERDAY)] == []
        assert [p.id for p in pattern_repo.find_active_patterns(test_user_id, TOMORROW)] == [open_ended.id, ended.id]
        assert [p.id for p in pattern_repo.find_active_patterns(test_user_id, TOMORROW + timedelta(days=1))] == [
            open_ended.id
        ]
        in_range = pattern_repo.active_in_range(test_user_id, TOMORROW + timedelta(days=1), TOMORROW + timedelta(days=9))
        assert len(in_range) == 2

    def test_delete_nulls_back_references_and_drops_skips(
        self, db_session, pattern_repo, skip_repo, make_task, test_user_id
    ):
        p = pattern_repo.create(user_id=test_user_id, text="water", kind=RecurrenceKind.DAILY, start_date=TODAY)
        task = make_task("water", recurring_pattern_id=p.id)
        skip_repo.add(p.id, TOMORROW)

        pattern_repo.delete(p)

        assert pattern_repo.get(p.id) is None
        assert db_session.get(TaskDB, task.id).recurring_pattern_id is None
        assert skip_repo.exists(p.id, TOMORROW) is False


class TestSkipExceptionRepository:

    def test_add_is_idempotent(self, pattern_repo, skip_repo, test_user_id):
        p = pattern_repo.create(user_id=test_user_id, text="water", kind=RecurrenceKind.DAILY, start_date=TODAY)

        assert skip_repo.add(p.id, TOMORROW) is True
        assert skip_repo.add(p.id, TOMORROW) is False
        assert skip_repo.exists(p.id, TOMORROW) is True
        assert skip_repo.exists(p.id, TODAY) is False

    def test_skip_dates_in_range(self, pattern_repo, skip_repo, test_user_id):
        p1 = pattern_repo.create(user_id=test_user_id, text="a", kind=RecurrenceKind.DAILY, start_date=TODAY)
        p2 = pattern_repo.create(user_id=test_user_id, text="b", kind=RecurrenceKind.DAILY, start_date=TODAY)
        skip_repo.add(p1.id, TODAY)
        skip_repo.add(p1.id, TOMORROW)
        skip_repo.add(p2.id, TOMORROW + timedelta(days=10))

        skips = skip_repo.skip_dates_in_range([p1.id, p2.id], TODAY, TOMORROW)
        assert skips[p1.id] == {TODAY, TOMORROW}
        assert skips[p2.id] == set()
