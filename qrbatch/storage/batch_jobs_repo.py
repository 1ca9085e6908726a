"""Storage interfaces for batch QR jobs and their items."""

from __future__ import annotations

import datetime
from typing import Protocol

from qrbatch.jobs.models import BatchItemRecord, BatchJobRecord, JobStatus


class BatchJobsRepository(Protocol):
  """Repository contract for the worker's job and item access."""

  async def get_job(self, job_id: str) -> BatchJobRecord | None:
    """Fetch a job by identifier."""

  async def find_zipping(self) -> BatchJobRecord | None:
    """Return any job whose archive is still being produced."""

  async def find_stale_processing(self, *, stale_before: datetime.datetime) -> BatchJobRecord | None:
    """Return a processing job whose heartbeat is older than ``stale_before``."""

  async def find_oldest_pending(self) -> BatchJobRecord | None:
    """Return the oldest pending job."""

  async def claim(self, candidate: BatchJobRecord, *, now: datetime.datetime, stale_before: datetime.datetime) -> BatchJobRecord | None:
    """Atomically claim a selected job; return None when another runner won."""

  async def list_items(self, job_id: str, *, after_id: int | None, limit: int) -> list[BatchItemRecord]:
    """Return up to ``limit`` items with id greater than ``after_id`` in ascending id order."""

  async def save_progress(self, job_id: str, *, processed: int, last_processed_id: int | None, status: JobStatus, now: datetime.datetime) -> bool:
    """Persist processing progress while the job is still processing."""

  async def mark_completed(self, job_id: str, *, archive_url: str, now: datetime.datetime) -> bool:
    """Persist the archive URL and the terminal status for a zipping job."""
