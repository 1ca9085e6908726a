"""SQLAlchemy models for batch QR jobs and the items they render."""

from __future__ import annotations

import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Identity, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from qrbatch.core.database import Base


class BatchJob(Base):
  """One "generate N codes for campaign X" request tracked through the worker state machine."""

  __tablename__ = "batch_jobs"
  __table_args__ = (
    Index("ix_batch_jobs_status_updated_at", "status", "updated_at"),
    Index("ix_batch_jobs_status_created_at", "status", "created_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  campaign_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  status: Mapped[str] = mapped_column(String, nullable=False, server_default="pending")  # pending | processing | zipping | completed
  total: Mapped[int] = mapped_column(Integer, nullable=False)
  processed: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
  last_processed_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
  archive_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BatchItem(Base):
  """One identifier to render; created in bulk before its job becomes pending."""

  __tablename__ = "batch_items"
  __table_args__ = (Index("ix_batch_items_job_id_id", "job_id", "id"),)

  id: Mapped[int] = mapped_column(BigInteger, Identity(always=False), primary_key=True)
  job_id: Mapped[str] = mapped_column(ForeignKey("batch_jobs.id", ondelete="CASCADE"), nullable=False)
  token: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  campaign_id: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
