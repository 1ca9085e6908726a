import logging

from fastapi import APIRouter, Depends, HTTPException, status

from qrbatch.api.deps import get_archive_store, get_jobs_repo
from qrbatch.api.models import JobStatusResponse
from qrbatch.config import Settings, get_settings
from qrbatch.core.security import require_worker_secret
from qrbatch.jobs.keys import archive_object_key
from qrbatch.jobs.models import STATUS_COMPLETED, BatchJobRecord
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.object_store import ObjectStore

router = APIRouter()
logger = logging.getLogger("qrbatch.api.routes.jobs")


def _progress_percent(job: BatchJobRecord) -> int:
  if job.status == STATUS_COMPLETED:
    return 100
  if job.total <= 0:
    return 0
  return min(100, round(job.processed / job.total * 100))


@router.get("/{job_id}", response_model=JobStatusResponse, dependencies=[Depends(require_worker_secret)])
async def get_job_status(  # noqa: B008
  job_id: str,
  repo: BatchJobsRepository = Depends(get_jobs_repo),  # noqa: B008
  archive_store: ObjectStore = Depends(get_archive_store),  # noqa: B008
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> JobStatusResponse:
  """Report batch progress; completed jobs get a freshly signed download URL."""
  job = await repo.get_job(job_id)
  if job is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")

  archive_url = job.archive_url
  if job.status == STATUS_COMPLETED:
    # The stored URL expires quickly, so mint a new one per poll.
    try:
      archive_url = await archive_store.generate_download_url(archive_object_key(job.campaign_id, job.job_id), ttl_seconds=settings.archive_url_ttl_seconds)
    except Exception:  # noqa: BLE001
      logger.warning("Failed to refresh archive URL for job %s; returning stored URL", job.job_id, exc_info=True)

  return JobStatusResponse(job_id=job.job_id, status=job.status, processed=job.processed, total=job.total, progress_percent=_progress_percent(job), archive_url=archive_url)
