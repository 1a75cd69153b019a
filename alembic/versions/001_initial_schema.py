"""Initial schema with job_history table

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create enum using raw SQL with IF NOT EXISTS
    op.execute("""
        DO $$ BEGIN
            CREATE TYPE job_status AS ENUM ('pending', 'running', 'succeeded', 'failed', 'cancelled');
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    # Create job_history table
    op.create_table(
        "job_history",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("command", sa.Text, nullable=False),
        sa.Column(
            "status",
            postgresql.ENUM("pending", "running", "succeeded", "failed", "cancelled", name="job_status", create_type=False),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("output", sa.Text, nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # Create indexes
    op.create_index("ix_job_history_status", "job_history", ["status"])
    op.create_index("ix_job_history_created_at", "job_history", ["created_at"])


def downgrade() -> None:
    # Drop indexes
    op.drop_index("ix_job_history_created_at")
    op.drop_index("ix_job_history_status")

    # Drop table
    op.drop_table("job_history")

    # Drop enum
    op.execute("DROP TYPE IF EXISTS job_status")
