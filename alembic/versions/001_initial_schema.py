"""Initial schema with jobs and recurring_jobs tables

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

JOB_STATUSES = ("enqueued", "scheduled", "claimed", "running", "succeeded", "failed", "deleted")


def upgrade() -> None:
    # Create enum using raw SQL with IF NOT EXISTS
    op.execute(f"""
        DO $$ BEGIN
            CREATE TYPE job_status AS ENUM ({", ".join(f"'{s}'" for s in JOB_STATUSES)});
        EXCEPTION
            WHEN duplicate_object THEN null;
        END $$;
    """)

    # Create jobs table
    op.create_table(
        "jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_type", sa.String(255), nullable=False),
        sa.Column("args", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("queue", sa.String(255), nullable=False, server_default="default"),
        sa.Column(
            "status",
            postgresql.ENUM(*JOB_STATUSES, name="job_status", create_type=False),
            nullable=False,
            server_default="enqueued",
        ),
        sa.Column("attempt", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=True),
        sa.Column("claimed_by", sa.String(255), nullable=True),
        sa.Column("lease_expires_at", sa.DateTime, nullable=True),
        sa.Column("scheduled_at", sa.DateTime, nullable=True),
        sa.Column("recurring_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("result", postgresql.JSONB, nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("ix_jobs_status", "jobs", ["status"])
    op.create_index("ix_jobs_claimed_by", "jobs", ["claimed_by"])
    op.create_index("ix_jobs_queue_poll", "jobs", ["queue", "status", "scheduled_at", "created_at"])
    op.create_index("ix_jobs_lease_expiry", "jobs", ["status", "lease_expires_at"])

    # Create recurring_jobs table
    op.create_table(
        "recurring_jobs",
        sa.Column("recurring_id", sa.String(255), nullable=False),
        sa.Column("cron", sa.String(255), nullable=False),
        sa.Column("job_type", sa.String(255), nullable=False),
        sa.Column("args", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("queue", sa.String(255), nullable=False, server_default="default"),
        sa.Column("max_attempts", sa.Integer, nullable=True),
        sa.Column("next_run_at", sa.DateTime, nullable=False),
        sa.Column("last_run_at", sa.DateTime, nullable=True),
        sa.Column("last_job_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("recurring_id"),
    )

    op.create_index("ix_recurring_jobs_next_run_at", "recurring_jobs", ["next_run_at"])


def downgrade() -> None:
    op.drop_index("ix_recurring_jobs_next_run_at")
    op.drop_table("recurring_jobs")

    op.drop_index("ix_jobs_lease_expiry")
    op.drop_index("ix_jobs_queue_poll")
    op.drop_index("ix_jobs_claimed_by")
    op.drop_index("ix_jobs_status")
    op.drop_table("jobs")

    op.execute("DROP TYPE IF EXISTS job_status")
