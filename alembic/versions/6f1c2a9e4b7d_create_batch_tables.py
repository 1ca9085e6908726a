"""Create batch job and item tables.

Revision ID: 6f1c2a9e4b7d
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "6f1c2a9e4b7d"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  """Upgrade schema."""
  op.create_table(
    "batch_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("campaign_id", sa.String(), nullable=False),
    sa.Column("status", sa.String(), server_default="pending", nullable=False),
    sa.Column("total", sa.Integer(), nullable=False),
    sa.Column("processed", sa.Integer(), server_default="0", nullable=False),
    sa.Column("last_processed_id", sa.BigInteger(), nullable=True),
    sa.Column("archive_url", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index(op.f("ix_batch_jobs_campaign_id"), "batch_jobs", ["campaign_id"], unique=False)
  op.create_index("ix_batch_jobs_status_updated_at", "batch_jobs", ["status", "updated_at"], unique=False)
  op.create_index("ix_batch_jobs_status_created_at", "batch_jobs", ["status", "created_at"], unique=False)

  op.create_table(
    "batch_items",
    sa.Column("id", sa.BigInteger(), sa.Identity(always=False), nullable=False),
    sa.Column("job_id", sa.String(), nullable=False),
    sa.Column("token", sa.String(), nullable=False),
    sa.Column("campaign_id", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    sa.ForeignKeyConstraint(["job_id"], ["batch_jobs.id"], ondelete="CASCADE"),
    sa.PrimaryKeyConstraint("id"),
    sa.UniqueConstraint("token"),
  )
  op.create_index("ix_batch_items_job_id_id", "batch_items", ["job_id", "id"], unique=False)


def downgrade() -> None:
  """Downgrade schema."""
  op.drop_index("ix_batch_items_job_id_id", table_name="batch_items")
  op.drop_table("batch_items")
  op.drop_index("ix_batch_jobs_status_created_at", table_name="batch_jobs")
  op.drop_index("ix_batch_jobs_status_updated_at", table_name="batch_jobs")
  op.drop_index(op.f("ix_batch_jobs_campaign_id"), table_name="batch_jobs")
  op.drop_table("batch_jobs")
