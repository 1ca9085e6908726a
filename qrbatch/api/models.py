from __future__ import annotations

from pydantic import BaseModel, Field

from qrbatch.jobs.models import JobStatus


class JobStatusResponse(BaseModel):
  job_id: str
  status: JobStatus
  processed: int = Field(ge=0)
  total: int = Field(ge=0)
  progress_percent: int = Field(ge=0, le=100)
  archive_url: str | None = None
