"""SQLAlchemy database models for tasklane."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)

from tasklane.database.database import Base
from tasklane.models.constants import DEFAULT_TIMEZONE, MAX_TEXT_LENGTH
from tasklane.models.recurrence import RecurrenceKind

# 64-bit ids everywhere; SQLite only autoincrements INTEGER PRIMARY KEY.
Id = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return an aware UTC datetime (SQLite hands back naive values)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserDB(Base):
    """Database model for User."""

    __tablename__ = "users"

    id = Column(Id, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    timezone = Column(String(50), nullable=False, default=DEFAULT_TIMEZONE)
    last_rollover_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from tasklane.models.user import User
        return User(
            id=self.id,
            email=self.email,
            timezone=self.timezone or DEFAULT_TIMEZONE,
            last_rollover_at=as_utc(self.last_rollover_at),
            created_at=as_utc(self.created_at),
            updated_at=as_utc(self.updated_at),
        )


class RecurringPatternDB(Base):
    """Database model for a recurring pattern (text template + recurrence kind)."""

    __tablename__ = "recurring_patterns"
    __table_args__ = (
        Index("ix_recurring_patterns_user_end_date", "user_id", "end_date"),
    )

    id = Column(Id, primary_key=True, autoincrement=True)
    user_id = Column(Id, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    text = Column(String(MAX_TEXT_LENGTH), nullable=False)
    kind = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def recurrence_kind(self) -> RecurrenceKind:
        return RecurrenceKind.parse(self.kind)

    def is_active_on(self, day) -> bool:
        return self.start_date <= day and (self.end_date is None or day <= self.end_date)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from tasklane.models.recurrence import RecurringPattern
        return RecurringPattern(
            id=self.id,
            user_id=self.user_id,
            text=self.text,
            kind=self.recurrence_kind,
            start_date=self.start_date,
            end_date=self.end_date,
            created_at=as_utc(self.created_at),
        )


class TaskDB(Base):
    """Database model for a stored task (regular task or materialized instance)."""

    __tablename__ = "tasks"
    __table_args__ = (
        # At most one stored task per pattern occurrence. NULL pattern ids do not participate.
        UniqueConstraint("recurring_pattern_id", "instance_date", name="uq_task_pattern_instance"),
        Index("ix_tasks_user_assigned_date", "user_id", "assigned_date"),
        Index("ix_tasks_user_completed_assigned", "user_id", "is_completed", "assigned_date"),
    )

    id = Column(Id, primary_key=True, autoincrement=True)
    user_id = Column(Id, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    text = Column(String(MAX_TEXT_LENGTH), nullable=False)
    assigned_date = Column(Date, nullable=False)
    instance_date = Column(Date, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    recurring_pattern_id = Column(
        Id, ForeignKey("recurring_patterns.id", ondelete="SET NULL"), nullable=True, index=True
    )

    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    is_rolled_over = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    version = Column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}

    def to_pydantic(self):
        """Convert database model to the flattened TaskView."""
        from tasklane.models.task import TaskView
        return TaskView(
            id=self.id,
            text=self.text,
            assigned_date=self.assigned_date,
            instance_date=self.instance_date,
            position=self.position,
            recurring_pattern_id=self.recurring_pattern_id,
            is_completed=bool(self.is_completed),
            completed_at=as_utc(self.completed_at),
            is_rolled_over=bool(self.is_rolled_over),
            is_virtual=False,
        )

    def __repr__(self) -> str:
        return f"<TaskDB id={self.id} date={self.assigned_date} pos={self.position} done={self.is_completed}>"


class SkipExceptionDB(Base):
    """A (pattern, date) on which the pattern must not produce an instance."""

    __tablename__ = "skip_exceptions"
    __table_args__ = (
        UniqueConstraint("recurring_pattern_id", "skip_date", name="uq_skip_pattern_date"),
    )

    id = Column(Id, primary_key=True, autoincrement=True)
    recurring_pattern_id = Column(
        Id, ForeignKey("recurring_patterns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    skip_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_pydantic(self):
        """Convert database model to Pydantic model."""
        from tasklane.models.recurrence import SkipException
        return SkipException(
            id=self.id,
            recurring_pattern_id=self.recurring_pattern_id,
            skip_date=self.skip_date,
        )
