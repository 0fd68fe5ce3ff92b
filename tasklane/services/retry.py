"""Transaction boundary with retry on lock and version conflicts.

Each attempt opens a fresh session via `session_scope`, so a doomed
transaction is never retried in place. Callbacks registered with
`UnitOfWork.after_commit` run only once the transaction has committed.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from tasklane.database.database import session_scope
from tasklane.errors import CONFLICT_MESSAGE, ConflictError, ErrorKind
from tasklane.models.constants import MAX_RETRIES, RETRY_BACKOFF_SECONDS

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (OperationalError, IntegrityError, StaleDataError)


class UnitOfWork:
    """One transaction attempt: the open session plus post-commit callbacks."""

    def __init__(self, session: Session):
        self.session = session
        self._after_commit: List[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        self._after_commit.append(callback)

    def run_after_commit(self) -> None:
        for callback in self._after_commit:
            callback()


def classify(error: Exception) -> Optional[ErrorKind]:
    """Map a database exception to the error kind it represents (None when not retryable)."""
    if isinstance(error, OperationalError):
        return ErrorKind.TRANSIENT
    if isinstance(error, (IntegrityError, StaleDataError)):
        return ErrorKind.CONFLICT
    return None


def run_with_retry(
    work: Callable[[UnitOfWork], T],
    *,
    session_factory: Callable[[], Session] = None,
    max_attempts: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "operation",
) -> T:
    """Run `work` in its own transaction, retrying transient and conflict failures.

    Args:
        work: Called with a fresh UnitOfWork per attempt; its return value is returned
        session_factory: Session factory (defaults to the module SessionLocal)
        max_attempts: Total attempts before giving up
        sleep: Backoff function, injectable for tests
        label: Name used in log messages

    Raises:
        ConflictError: When every attempt failed with a retryable database error
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with session_scope(session_factory) as session:
                uow = UnitOfWork(session)
                result = work(uow)
        except RETRYABLE_ERRORS as e:
            kind = classify(e)
            logger.warning(
                f"{label} failed with {type(e).__name__} ({kind.value}) (attempt {attempt}/{max_attempts})"
            )
            if attempt >= max_attempts:
                logger.error(f"{label} gave up after {attempt} attempts: {type(e).__name__}: {str(e)}")
                raise ConflictError(CONFLICT_MESSAGE) from e
            sleep(RETRY_BACKOFF_SECONDS * attempt)
            continue

        uow.run_after_commit()
        return result
