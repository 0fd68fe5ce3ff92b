"""User registration, timezone updates and the user's current date."""

import logging
import time
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from tasklane.database.user_repository import UserRepository
from tasklane.errors import ConflictError, InvalidError, NotFoundError
from tasklane.models.constants import DEFAULT_TIMEZONE
from tasklane.models.user import User
from tasklane.services.clock import Clock, SystemClock, is_valid_timezone, local_date
from tasklane.services.retry import UnitOfWork, run_with_retry

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        session_factory: Callable[[], Session] = None,
        clock: Clock = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.sleep = sleep

    def _run(self, label, work):
        return run_with_retry(work, session_factory=self.session_factory, sleep=self.sleep, label=label)

    def register(self, email: str, timezone: str = DEFAULT_TIMEZONE) -> User:
        """Create a user. Email must be unique; timezone must be a known IANA name."""
        email = (email or "").strip().lower()
        if not email or "@" not in email:
            raise InvalidError("a valid email is required", field="email")
        if not is_valid_timezone(timezone):
            raise InvalidError(f"unknown timezone: {timezone}", field="timezone")

        def work(uow: UnitOfWork) -> User:
            users = UserRepository(uow.session)
            if users.get_by_email(email) is not None:
                raise ConflictError("email already registered", field="email")
            return users.create(email=email, timezone=timezone).to_pydantic()

        user = self._run("register", work)
        logger.info(f"Registered user {user.id}")
        return user

    def get(self, user_id: int) -> User:
        def work(uow: UnitOfWork) -> User:
            row = UserRepository(uow.session).get(user_id)
            if row is None:
                raise NotFoundError("not found")
            return row.to_pydantic()

        return self._run("get_user", work)

    def update_timezone(self, user_id: int, timezone: str) -> User:
        """Change the zone used for "today". Dates already stored are not rewritten."""
        if not is_valid_timezone(timezone):
            raise InvalidError(f"unknown timezone: {timezone}", field="timezone")

        def work(uow: UnitOfWork) -> User:
            users = UserRepository(uow.session)
            row = users.get(user_id)
            if row is None:
                raise NotFoundError("not found")
            row.timezone = timezone
            users.save(row)
            return row.to_pydantic()

        return self._run("update_timezone", work)

    def current_date(self, user_id: int) -> date:
        user = self.get(user_id)
        return local_date(user.timezone, self.clock.now())
