"""Postgres-backed repository for batch QR jobs using SQLAlchemy."""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import Update, and_, case, or_, select, update

from qrbatch.core.database import get_session_factory
from qrbatch.jobs.models import STATUS_COMPLETED, STATUS_PENDING, STATUS_PROCESSING, STATUS_ZIPPING, BatchItemRecord, BatchJobRecord, JobStatus
from qrbatch.schema.batch import BatchItem, BatchJob
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository


def claimable_clause(stale_before: datetime.datetime) -> Any:
  """Return the condition that makes a job eligible for a claim."""
  return or_(
    BatchJob.status == STATUS_ZIPPING,
    BatchJob.status == STATUS_PENDING,
    and_(BatchJob.status == STATUS_PROCESSING, BatchJob.updated_at < stale_before),
  )


def build_claim_statement(candidate: BatchJobRecord, *, now: datetime.datetime, stale_before: datetime.datetime) -> Update:
  """Build the single conditional UPDATE that transfers ownership of a job."""
  # The observed heartbeat makes racing claims exclusive even for zipping rows whose status does not change.
  return (
    update(BatchJob)
    .where(BatchJob.id == candidate.job_id, BatchJob.updated_at == candidate.updated_at, claimable_clause(stale_before))
    .values(status=case((BatchJob.status == STATUS_ZIPPING, STATUS_ZIPPING), else_=STATUS_PROCESSING), updated_at=now)
    .returning(BatchJob)
    .execution_options(synchronize_session=False)
  )


def build_progress_statement(job_id: str, *, processed: int, last_processed_id: int | None, status: JobStatus, now: datetime.datetime) -> Update:
  """Build the progress write; it only applies to processing rows and never moves them backwards."""
  return (
    update(BatchJob)
    .where(BatchJob.id == job_id, BatchJob.status == STATUS_PROCESSING, BatchJob.processed <= processed)
    .values(processed=processed, last_processed_id=last_processed_id, status=status, updated_at=now)
    .execution_options(synchronize_session=False)
  )


def build_completion_statement(job_id: str, *, archive_url: str, now: datetime.datetime) -> Update:
  return (
    update(BatchJob)
    .where(BatchJob.id == job_id, BatchJob.status == STATUS_ZIPPING)
    .values(status=STATUS_COMPLETED, archive_url=archive_url, updated_at=now)
    .execution_options(synchronize_session=False)
  )


class PostgresBatchJobsRepository(BatchJobsRepository):
  """Persist batch jobs to Postgres using SQLAlchemy."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def get_job(self, job_id: str) -> BatchJobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(BatchJob, job_id)
      if row is None:
        return None
      return self._job_to_record(row)

  async def find_zipping(self) -> BatchJobRecord | None:
    stmt = select(BatchJob).where(BatchJob.status == STATUS_ZIPPING).order_by(BatchJob.updated_at.asc()).limit(1)
    return await self._first_job(stmt)

  async def find_stale_processing(self, *, stale_before: datetime.datetime) -> BatchJobRecord | None:
    stmt = select(BatchJob).where(BatchJob.status == STATUS_PROCESSING, BatchJob.updated_at < stale_before).order_by(BatchJob.updated_at.asc()).limit(1)
    return await self._first_job(stmt)

  async def find_oldest_pending(self) -> BatchJobRecord | None:
    stmt = select(BatchJob).where(BatchJob.status == STATUS_PENDING).order_by(BatchJob.created_at.asc(), BatchJob.id.asc()).limit(1)
    return await self._first_job(stmt)

  async def claim(self, candidate: BatchJobRecord, *, now: datetime.datetime, stale_before: datetime.datetime) -> BatchJobRecord | None:
    stmt = build_claim_statement(candidate, now=now, stale_before=stale_before)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalars().one_or_none()
      record = self._job_to_record(row) if row is not None else None
      await session.commit()
      return record

  async def list_items(self, job_id: str, *, after_id: int | None, limit: int) -> list[BatchItemRecord]:
    stmt = select(BatchItem).where(BatchItem.job_id == job_id).order_by(BatchItem.id.asc()).limit(limit)
    if after_id is not None:
      stmt = stmt.where(BatchItem.id > after_id)
    async with self._session_factory() as session:
      rows = (await session.execute(stmt)).scalars().all()
      return [self._item_to_record(row) for row in rows]

  async def save_progress(self, job_id: str, *, processed: int, last_processed_id: int | None, status: JobStatus, now: datetime.datetime) -> bool:
    stmt = build_progress_statement(job_id, processed=processed, last_processed_id=last_processed_id, status=status, now=now)
    return await self._execute_update(stmt)

  async def mark_completed(self, job_id: str, *, archive_url: str, now: datetime.datetime) -> bool:
    stmt = build_completion_statement(job_id, archive_url=archive_url, now=now)
    return await self._execute_update(stmt)

  async def _first_job(self, stmt: Any) -> BatchJobRecord | None:
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      return self._job_to_record(row)

  async def _execute_update(self, stmt: Update) -> bool:
    async with self._session_factory() as session:
      result = await session.execute(stmt)
      await session.commit()
      return int(result.rowcount or 0) > 0

  def _job_to_record(self, row: BatchJob) -> BatchJobRecord:
    return BatchJobRecord(
      job_id=str(row.id),
      campaign_id=str(row.campaign_id),
      status=row.status,  # type: ignore[arg-type]
      total=int(row.total),
      processed=int(row.processed),
      last_processed_id=int(row.last_processed_id) if row.last_processed_id is not None else None,
      archive_url=row.archive_url,
      created_at=row.created_at,
      updated_at=row.updated_at,
    )

  def _item_to_record(self, row: BatchItem) -> BatchItemRecord:
    return BatchItemRecord(item_id=int(row.id), job_id=str(row.job_id), token=str(row.token), campaign_id=str(row.campaign_id), created_at=row.created_at)
