"""Projects, assignments and project time entries

Revision ID: 0004_projects
Revises: 0003_shifts_messaging
Create Date: 2026-10-01 00:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0004_projects"
down_revision: Union[str, None] = "0003_shifts_messaging"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

project_status = postgresql.ENUM(
    "planning",
    "active",
    "on_hold",
    "completed",
    "cancelled",
    name="project_status",
    create_type=False,
)
project_priority = postgresql.ENUM(
    "low",
    "medium",
    "high",
    "critical",
    name="project_priority",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    project_status.create(bind, checkfirst=True)
    project_priority.create(bind, checkfirst=True)

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", project_status, nullable=False, server_default=sa.text("'planning'")),
        sa.Column("priority", project_priority, nullable=False, server_default=sa.text("'medium'")),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("budget", sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column("client_name", sa.String(length=255), nullable=True),
        sa.Column("project_manager_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["project_manager_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "end_date IS NULL OR start_date IS NULL OR end_date >= start_date",
            name="ck_projects_date_range",
        ),
    )

    op.create_table(
        "project_assignments",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("role", sa.String(length=100), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("project_id", "user_id", name="uq_project_assignments_project_user"),
    )
    op.create_index("ix_project_assignments_project_id", "project_assignments", ["project_id"], unique=False)
    op.create_index("ix_project_assignments_user_id", "project_assignments", ["user_id"], unique=False)

    op.create_table(
        "project_time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("hours_spent", sa.Float(), nullable=False),
        sa.Column("billable_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("task_type", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("hours_spent >= 0 AND billable_hours >= 0", name="ck_project_time_entries_hours"),
    )
    op.create_index("ix_project_time_entries_project_id", "project_time_entries", ["project_id"], unique=False)
    op.create_index("ix_project_time_entries_user_id", "project_time_entries", ["user_id"], unique=False)
    op.create_index("ix_project_time_entries_work_date", "project_time_entries", ["work_date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_project_time_entries_work_date", table_name="project_time_entries")
    op.drop_index("ix_project_time_entries_user_id", table_name="project_time_entries")
    op.drop_index("ix_project_time_entries_project_id", table_name="project_time_entries")
    op.drop_table("project_time_entries")
    op.drop_index("ix_project_assignments_user_id", table_name="project_assignments")
    op.drop_index("ix_project_assignments_project_id", table_name="project_assignments")
    op.drop_table("project_assignments")
    op.drop_table("projects")

    bind = op.get_bind()
    project_priority.drop(bind, checkfirst=True)
    project_status.drop(bind, checkfirst=True)
