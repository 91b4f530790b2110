"""Leave and overtime requests with TOIL ledger

Revision ID: 0002_requests_toil
Revises: 0001_core_auth_attendance
Create Date: 2026-10-01 00:10:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0002_requests_toil"
down_revision: Union[str, None] = "0001_core_auth_attendance"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

leave_type = postgresql.ENUM(
    "annual",
    "sick",
    "personal",
    "maternity",
    "paternity",
    "unpaid",
    "toil",
    name="leave_type",
    create_type=False,
)
request_status = postgresql.ENUM(
    "pending",
    "approved",
    "rejected",
    "cancelled",
    name="request_status",
    create_type=False,
)
overtime_compensation = postgresql.ENUM(
    "paid",
    "toil",
    name="overtime_compensation",
    create_type=False,
)


def upgrade() -> None:
    bind = op.get_bind()
    leave_type.create(bind, checkfirst=True)
    request_status.create(bind, checkfirst=True)
    overtime_compensation.create(bind, checkfirst=True)

    op.create_table(
        "leave_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("leave_type", leave_type, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("status", request_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("admin_notes", sa.String(length=1000), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("end_date >= start_date", name="ck_leave_requests_date_range"),
    )
    op.create_index("ix_leave_requests_user_id", "leave_requests", ["user_id"], unique=False)
    op.create_index("ix_leave_requests_submitted_at", "leave_requests", ["submitted_at"], unique=False)

    op.create_table(
        "overtime_requests",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("work_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("hours", sa.Float(), nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=True),
        sa.Column("compensation", overtime_compensation, nullable=False, server_default=sa.text("'paid'")),
        sa.Column("status", request_status, nullable=False, server_default=sa.text("'pending'")),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("admin_notes", sa.String(length=1000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_overtime_requests_user_id", "overtime_requests", ["user_id"], unique=False)
    op.create_index("ix_overtime_requests_created_at", "overtime_requests", ["created_at"], unique=False)

    op.create_table(
        "toil_balance",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("overtime_request_id", sa.Integer(), nullable=True),
        sa.Column("hours_earned", sa.Float(), nullable=False),
        sa.Column("hours_used", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("hours_remaining", sa.Float(), nullable=False),
        sa.Column("earned_date", sa.Date(), nullable=False),
        sa.Column("expires_at", sa.Date(), nullable=False),
        sa.Column("is_expired", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["overtime_request_id"], ["overtime_requests.id"], ondelete="SET NULL"),
        sa.CheckConstraint("hours_remaining >= 0", name="ck_toil_balance_hours_remaining"),
    )
    op.create_index("ix_toil_balance_user_id", "toil_balance", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_toil_balance_user_id", table_name="toil_balance")
    op.drop_table("toil_balance")
    op.drop_index("ix_overtime_requests_created_at", table_name="overtime_requests")
    op.drop_index("ix_overtime_requests_user_id", table_name="overtime_requests")
    op.drop_table("overtime_requests")
    op.drop_index("ix_leave_requests_submitted_at", table_name="leave_requests")
    op.drop_index("ix_leave_requests_user_id", table_name="leave_requests")
    op.drop_table("leave_requests")

    bind = op.get_bind()
    overtime_compensation.drop(bind, checkfirst=True)
    request_status.drop(bind, checkfirst=True)
    leave_type.drop(bind, checkfirst=True)
