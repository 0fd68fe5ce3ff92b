"""Initial planner schema: users, recurring patterns, tasks, skip exceptions

Revision ID: 5a1f3c9e7b20
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5a1f3c9e7b20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

Id = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "users",
        sa.Column("id", Id, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("last_rollover_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "recurring_patterns",
        sa.Column("id", Id, primary_key=True, autoincrement=True),
        sa.Column("user_id", Id, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.String(500), nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_recurring_patterns_user_id"), "recurring_patterns", ["user_id"], unique=False)
    op.create_index("ix_recurring_patterns_user_end_date", "recurring_patterns", ["user_id", "end_date"], unique=False)

    op.create_table(
        "tasks",
        sa.Column("id", Id, primary_key=True, autoincrement=True),
        sa.Column("user_id", Id, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("text", sa.String(500), nullable=False),
        sa.Column("assigned_date", sa.Date(), nullable=False),
        sa.Column("instance_date", sa.Date(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "recurring_pattern_id",
            Id,
            sa.ForeignKey("recurring_patterns.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_rolled_over", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("recurring_pattern_id", "instance_date", name="uq_task_pattern_instance"),
    )
    op.create_index(op.f("ix_tasks_user_id"), "tasks", ["user_id"], unique=False)
    op.create_index(op.f("ix_tasks_recurring_pattern_id"), "tasks", ["recurring_pattern_id"], unique=False)
    op.create_index("ix_tasks_user_assigned_date", "tasks", ["user_id", "assigned_date"], unique=False)
    op.create_index(
        "ix_tasks_user_completed_assigned", "tasks", ["user_id", "is_completed", "assigned_date"], unique=False
    )

    op.create_table(
        "skip_exceptions",
        sa.Column("id", Id, primary_key=True, autoincrement=True),
        sa.Column(
            "recurring_pattern_id",
            Id,
            sa.ForeignKey("recurring_patterns.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("skip_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("recurring_pattern_id", "skip_date", name="uq_skip_pattern_date"),
    )
    op.create_index(
        op.f("ix_skip_exceptions_recurring_pattern_id"), "skip_exceptions", ["recurring_pattern_id"], unique=False
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f("ix_skip_exceptions_recurring_pattern_id"), table_name="skip_exceptions")
    op.drop_table("skip_exceptions")

    op.drop_index("ix_tasks_user_completed_assigned", table_name="tasks")
    op.drop_index("ix_tasks_user_assigned_date", table_name="tasks")
    op.drop_index(op.f("ix_tasks_recurring_pattern_id"), table_name="tasks")
    op.drop_index(op.f("ix_tasks_user_id"), table_name="tasks")
    op.drop_table("tasks")

    op.drop_index("ix_recurring_patterns_user_end_date", table_name="recurring_patterns")
    op.drop_index(op.f("ix_recurring_patterns_user_id"), table_name="recurring_patterns")
    op.drop_table("recurring_patterns")

    op.drop_table("users")
