"""Tests for the retrying transaction boundary and post-commit callbacks."""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from tasklane.database.models import UserDB
from tasklane.database.user_repository import UserRepository
from tasklane.errors import CONFLICT_MESSAGE, ConflictError, ErrorKind, InvalidError
from tasklane.models.constants import RETRY_BACKOFF_SECONDS
from tasklane.services.notifications import ChangeEvent, ChangeType, publish
from tasklane.services.retry import classify, run_with_retry


def _locked():
    return OperationalError("UPDATE tasks SET position=?", {}, Exception("database is locked"))


def _duplicate():
    return IntegrityError("INSERT INTO tasks", {}, Exception("UNIQUE constraint failed"))


class TestClassify:

    def test_lock_errors_are_transient(self):
        assert classify(_locked()) == ErrorKind.TRANSIENT

    def test_integrity_and_stale_version_are_conflicts(self):
        assert classify(_duplicate()) == ErrorKind.CONFLICT
        assert classify(StaleDataError("version mismatch")) == ErrorKind.CONFLICT

    def test_other_errors_are_not_retryable(self):
        assert classify(ValueError("nope")) is None


class TestRunWithRetry:

    def test_success_on_first_attempt(self, session_factory):
        sleeps = []
        assert run_with_retry(lambda uow: 42, session_factory=session_factory, sleep=sleeps.append) == 42
        assert sleeps == []

    def test_retries_then_succeeds_with_linear_backoff(self, session_factory):
        attempts = []
        sleeps = []

        def work(uow):
            attempts.append(uow)
            if len(attempts) < 3:
                raise _locked()
            return "done"

        assert run_with_retry(work, session_factory=session_factory, sleep=sleeps.append) == "done"
        assert len(attempts) == 3
        # Each attempt gets its own session.
        assert attempts[0].session is not attempts[1].session
        assert sleeps == [RETRY_BACKOFF_SECONDS, RETRY_BACKOFF_SECONDS * 2]

    def test_exhaustion_raises_conflict(self, session_factory):
        calls = []

        def work(uow):
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(ConflictError) as exc:
            run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)
        assert exc.value.message == CONFLICT_MESSAGE
        assert exc.value.kind == ErrorKind.CONFLICT
        assert len(calls) == 3

    def test_exhausted_lock_errors_surface_as_conflict(self, session_factory):
        def work(uow):
            raise _locked()

        with pytest.raises(ConflictError) as exc:
            run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)
        assert exc.value.kind == ErrorKind.CONFLICT
        assert exc.value.to_dict()["kind"] == "conflict"

    def test_non_retryable_errors_propagate_immediately(self, session_factory):
        calls = []

        def work(uow):
            calls.append(1)
            raise InvalidError("bad input", field="text")

        with pytest.raises(InvalidError):
            run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)
        assert len(calls) == 1

    def test_failed_attempt_is_rolled_back(self, session_factory):
        calls = []

        def work(uow):
            calls.append(1)
            UserRepository(uow.session).create(email=f"u{len(calls)}@example.com", timezone="UTC")
            if len(calls) == 1:
                raise _locked()

        run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)

        session = session_factory()
        try:
            emails = [u.email for u in session.query(UserDB).order_by(UserDB.id).all()]
        finally:
            session.close()
        assert emails == ["u2@example.com"]

    def test_after_commit_runs_only_for_the_committed_attempt(self, session_factory):
        fired = []
        calls = []

        def work(uow):
            calls.append(1)
            uow.after_commit(lambda n=len(calls): fired.append(n))
            if len(calls) < 2:
                raise _duplicate()

        run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)
        assert fired == [2]

    def test_after_commit_never_runs_on_failure(self, session_factory):
        fired = []

        def work(uow):
            uow.after_commit(lambda: fired.append(1))
            raise InvalidError("bad input")

        with pytest.raises(InvalidError):
            run_with_retry(work, session_factory=session_factory, sleep=lambda s: None)
        assert fired == []


class TestPublish:

    def test_publisher_errors_are_logged_not_raised(self, caplog):
        class Broken:
            def notify_tasks_changed(self, user_id, day):
                raise RuntimeError("bus down")

            def notify_recurring_changed(self, user_id):
                raise RuntimeError("bus down")

        publish(Broken(), ChangeEvent(user_id=1, type=ChangeType.RECURRING_CHANGED))
        assert "bus down" in caplog.text

    def test_event_payload(self):
        from datetime import date

        event = ChangeEvent(user_id=1, type=ChangeType.TASKS_CHANGED, date=date(2024, 3, 10))
        assert event.to_dict() == {"type": "TASKS_CHANGED", "date": "2024-03-10"}
        assert ChangeEvent(user_id=1, type=ChangeType.RECURRING_CHANGED).to_dict() == {
            "type": "RECURRING_CHANGED",
            "date": None,
        }
