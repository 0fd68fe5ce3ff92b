"""Repository for User database operations."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from tasklane.database.models import UserDB
from tasklane.models.constants import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[UserDB]:
        """Get user by ID."""
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[UserDB]:
        """Get user by email."""
        return self.db.query(UserDB).filter(UserDB.email == email).first()

    def create(self, email: str, timezone: str = DEFAULT_TIMEZONE) -> UserDB:
        """Create a new user.

        Args:
            email: Unique email address
            timezone: IANA zone name used to compute the user's "today"

        Returns:
            The flushed UserDB row (id populated)
        """
        row = UserDB(email=email, timezone=timezone or DEFAULT_TIMEZONE)
        try:
            self.db.add(row)
            self.db.flush()
            logger.debug(f"Created user {row.id}: {email}")
            return row
        except Exception as e:
            logger.error(f"Failed to create user {email}: {type(e).__name__}: {str(e)}")
            raise

    def save(self, user: UserDB) -> UserDB:
        """Flush in-place changes (timezone, last_rollover_at)."""
        try:
            self.db.flush()
            return user
        except Exception as e:
            logger.error(f"Failed to update user {user.id}: {type(e).__name__}: {str(e)}")
            raise
