"""initial subscription schema

Revision ID: 3f1c2a7d9b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a7d9b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CODE_TABLES = ("confirmation_code", "update_code", "unsubscribe_code", "pending_update")


def _measurement_columns() -> list:
    return [
        sa.Column("sex", sa.String(6), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("measurement_sys", sa.String(8), nullable=False),
        sa.Column("weight_value", sa.Float(), nullable=False),
        sa.Column("height_value", sa.Float(), nullable=False),
        sa.Column("est_bmr", sa.Integer(), nullable=False),
        sa.Column("est_tdee", sa.Integer(), nullable=False),
    ]


def _code_columns() -> list:
    return [
        sa.Column(
            "sub_id",
            sa.Integer(),
            sa.ForeignKey("subscriber.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("code", sa.Integer(), nullable=False, unique=True),
        sa.Column("date_created", sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column("date_expires", sa.TIMESTAMP(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create every table and seed the reminder frequencies."""
    frequency = op.create_table(
        "frequency",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("descriptor", sa.String(32), nullable=False, unique=True),
        sa.Column("num_days", sa.Integer(), nullable=False),
    )
    op.bulk_insert(
        frequency,
        [
            {"id": 1, "descriptor": "monthly", "num_days": 30},
            {"id": 2, "descriptor": "bimonthly", "num_days": 60},
            {"id": 3, "descriptor": "quarterly", "num_days": 90},
            {"id": 4, "descriptor": "biannually", "num_days": 182},
            {"id": 5, "descriptor": "yearly", "num_days": 365},
        ],
    )

    op.create_table(
        "subscriber",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("freq_id", sa.Integer(), sa.ForeignKey("frequency.id"), nullable=False),
        sa.Column("confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("date_confirmed", sa.TIMESTAMP(timezone=True), nullable=True),
    )

    op.create_table(
        "subscriber_measurements",
        sa.Column(
            "sub_id",
            sa.Integer(),
            sa.ForeignKey("subscriber.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        *_measurement_columns(),
        sa.Column(
            "date_last_updated",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    for table in CODE_TABLES[:3]:
        op.create_table(table, *_code_columns())
    op.create_table("pending_update", *_code_columns(), *_measurement_columns())
    for table in CODE_TABLES:
        op.create_index(f"ix_{table}_date_expires", table, ["date_expires"])

    op.create_table(
        "scheduled_reminder",
        sa.Column(
            "sub_id",
            sa.Integer(),
            sa.ForeignKey("subscriber.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("date_scheduled", sa.TIMESTAMP(timezone=True), nullable=False),
    )
    op.create_index("ix_scheduled_reminder_date_scheduled", "scheduled_reminder", ["date_scheduled"])

    op.create_table(
        "email_sent",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("date_sent", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("recipient", sa.String(320), nullable=False),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("contents", sa.Text(), nullable=False),
    )


def downgrade() -> None:
    """Drop everything in reverse dependency order."""
    op.drop_table("email_sent")
    op.drop_index("ix_scheduled_reminder_date_scheduled", table_name="scheduled_reminder")
    op.drop_table("scheduled_reminder")
    for table in reversed(CODE_TABLES):
        op.drop_index(f"ix_{table}_date_expires", table_name=table)
        op.drop_table(table)
    op.drop_table("subscriber_measurements")
    op.drop_table("subscriber")
    op.drop_table("frequency")
