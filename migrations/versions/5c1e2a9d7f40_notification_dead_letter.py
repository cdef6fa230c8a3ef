"""notification dead letter

Revision ID: 5c1e2a9d7f40
Revises:
Create Date: 2026-10-19 09:12:44.512301

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d7f40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the dead-letter log for undeliverable moderation cards."""
    op.create_table(
        "notification_dead_letter",
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            autoincrement=True,
            nullable=False,
        ),
        sa.Column("submission_id", sa.VARCHAR(length=64), nullable=False),
        sa.Column("action", sa.VARCHAR(length=16), nullable=False),
        sa.Column("message_ref", sa.VARCHAR(length=64), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=False),
        sa.Column("status", sa.VARCHAR(length=20), nullable=False),
        sa.Column("retry_count", sa.SmallInteger(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_notification_dead_letter_submission_id"),
        "notification_dead_letter",
        ["submission_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop the dead-letter log."""
    op.drop_index(
        op.f("ix_notification_dead_letter_submission_id"),
        table_name="notification_dead_letter",
    )
    op.drop_table("notification_dead_letter")
