"""Tests for materialization of virtual pattern instances."""

import pytest
from datetime import timedelta

from tasklane.database.recurring_pattern_repository import RecurringPatternRepository
from tasklane.database.repository import TaskRepository
from tasklane.database.skip_exception_repository import SkipExceptionRepository
from tasklane.models.recurrence import RecurrenceKind
from tasklane.recurrence.materialize import Materializer
from tasklane.recurrence.resolver import InstanceResolver

from conftest import TODAY

TOMORROW = TODAY + timedelta(days=1)


@pytest.fixture
def pattern_repo(db_session):
    return RecurringPatternRepository(db_session)


@pytest.fixture
def task_repo(db_session):
    return TaskRepository(db_session)


@pytest.fixture
def materializer(db_session):
    return Materializer(db_session)


def _daily(pattern_repo, user_id, text):
    return pattern_repo.create(user_id=user_id, text=text, kind=RecurrenceKind.DAILY, start_date=TODAY)


def _stored(task_repo, user_id, day=TOMORROW):
    return [(t.text, t.position, t.recurring_pattern_id) for t in task_repo.list_for_date(user_id, day)]


class TestMaterializeSingle:

    def test_single_goes_to_head_of_stored_list(
        self, materializer, pattern_repo, task_repo, make_task, test_user_id
    ):
        p = _daily(pattern_repo, test_user_id, "water")
        make_task("a", day=TOMORROW)
        row = materializer.materialize_single(test_user_id, p, TOMORROW)

        assert row.recurring_pattern_id == p.id
        assert row.instance_date == TOMORROW
        assert row.is_rolled_over is False
        assert row.is_completed is False
        assert _stored(task_repo, test_user_id) == [("water", 1, p.id), ("a", 2, None)]

    def test_single_is_idempotent(self, materializer, pattern_repo, task_repo, test_user_id):
        p = _daily(pattern_repo, test_user_id, "water")
        first = materializer.materialize_single(test_user_id, p, TOMORROW)
        second = materializer.materialize_single(test_user_id, p, TOMORROW)
        assert first.id == second.id
        assert len(task_repo.list_for_date(test_user_id, TOMORROW)) == 1


class TestMaterializeAll:

    def test_virtuals_take_leading_positions_in_pattern_order(
        self, materializer, pattern_repo, task_repo, make_task, test_user_id
    ):
        p1 = _daily(pattern_repo, test_user_id, "first")
        p2 = _daily(pattern_repo, test_user_id, "second")
        make_task("a", day=TOMORROW)
        make_task("b", day=TOMORROW)

        created = materializer.materialize_all(test_user_id, TOMORROW, TODAY)
        assert [r.recurring_pattern_id for r in created] == [p1.id, p2.id]
        assert _stored(task_repo, test_user_id) == [
            ("first", 1, p1.id),
            ("second", 2, p2.id),
            ("a", 3, None),
            ("b", 4, None),
        ]
        assert InstanceResolver(task_repo.db).virtuals_for_date(test_user_id, TOMORROW, TODAY) == []

    def test_skipped_patterns_are_not_materialized(
        self, db_session, materializer, pattern_repo, task_repo, test_user_id
    ):
        p1 = _daily(pattern_repo, test_user_id, "first")
        p2 = _daily(pattern_repo, test_user_id, "second")
        SkipExceptionRepository(db_session).add(p1.id, TOMORROW)

        created = materializer.materialize_all(test_user_id, TOMORROW, TODAY)
        assert [r.recurring_pattern_id for r in created] == [p2.id]

    def test_nothing_to_materialize_in_the_past(self, materializer, pattern_repo, test_user_id):
        _daily(pattern_repo, test_user_id, "water")
        assert materializer.materialize_all(test_user_id, TODAY - timedelta(days=1), TODAY) == []


class TestReplaceVirtualWithOrphan:

    def test_edited_virtual_keeps_its_slot(
        self, db_session, materializer, pattern_repo, task_repo, make_task, test_user_id
    ):
        p1 = _daily(pattern_repo, test_user_id, "first")
        p2 = _daily(pattern_repo, test_user_id, "second")
        p3 = _daily(pattern_repo, test_user_id, "third")
        make_task("a", day=TOMORROW)

        resolver = InstanceResolver(db_session)
        virtual = resolver.find_virtual(test_user_id, p2.id, TOMORROW, TODAY)
        orphan = materializer.replace_virtual_with_orphan(test_user_id, virtual, "second (edited)", TODAY)

        assert orphan.recurring_pattern_id is None
        assert orphan.text == "second (edited)"
        assert _stored(task_repo, test_user_id) == [
            ("first", 1, p1.id),
            ("second (edited)", 2, None),
            ("third", 3, p3.id),
            ("a", 4, None),
        ]
        assert SkipExceptionRepository(db_session).exists(p2.id, TOMORROW)
        assert resolver.virtuals_for_date(test_user_id, TOMORROW, TODAY) == []
        # The pattern still emits on other dates.
        assert len(resolver.virtuals_for_date(test_user_id, TOMORROW + timedelta(days=1), TODAY)) == 3
