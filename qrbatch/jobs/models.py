"""Domain models for batch QR generation jobs."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from typing import Literal

JobStatus = Literal["pending", "processing", "zipping", "completed"]

STATUS_PENDING: JobStatus = "pending"
STATUS_PROCESSING: JobStatus = "processing"
STATUS_ZIPPING: JobStatus = "zipping"
STATUS_COMPLETED: JobStatus = "completed"


@dataclass
class BatchJobRecord:
  """Represents one batch job row as seen by the worker."""

  job_id: str
  campaign_id: str
  status: JobStatus
  total: int
  processed: int
  last_processed_id: int | None
  archive_url: str | None
  created_at: datetime.datetime
  updated_at: datetime.datetime


@dataclass(frozen=True)
class BatchItemRecord:
  """One identifier owned by a batch job."""

  item_id: int
  job_id: str
  token: str
  campaign_id: str
  created_at: datetime.datetime


@dataclass(frozen=True)
class WorkerOutcome:
  """Result of a single worker invocation, rendered directly as the trigger response."""

  message: str
  job_id: str | None = None
  progressed: bool = False

  def to_payload(self) -> dict[str, object]:
    """Return the JSON body expected by the scheduler."""
    if not self.progressed:
      return {"message": self.message}
    return {"success": True, "message": self.message, "job_id": self.job_id}
