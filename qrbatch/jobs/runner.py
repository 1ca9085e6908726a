"""Single-invocation batch worker: claim at most one job and advance it by one unit."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from functools import lru_cache

import httpx

from qrbatch.config import Settings, get_settings
from qrbatch.jobs.models import STATUS_PROCESSING, STATUS_ZIPPING, BatchJobRecord, WorkerOutcome
from qrbatch.jobs.processing import run_processing_phase
from qrbatch.jobs.selection import Clock, select_and_claim
from qrbatch.jobs.zipping import run_zipping_phase
from qrbatch.services.renderer import Renderer, build_renderer
from qrbatch.services.storage_client import build_archive_store, build_image_store
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.factory import _get_batch_jobs_repo
from qrbatch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

NO_WORK_MESSAGE = "No jobs pending."
CLAIM_CONFLICT_MESSAGE = "Job picked by another worker."


def _utc_now() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


def _default_http_client() -> httpx.AsyncClient:
  # Signed upload URLs go straight to the object store; never route them through env proxies.
  return httpx.AsyncClient(trust_env=False)


class BatchWorker:
  """
  Advance one batch job per call to :meth:`run_once`.

  The worker holds no state between calls. Every invocation re-runs the
  priority lookup, claims the winner with a conditional update and then runs
  exactly one phase for it: a processing batch for ``processing`` jobs or a
  full archive build for ``zipping`` jobs.
  """

  def __init__(
    self,
    *,
    repo: BatchJobsRepository,
    image_store: ObjectStore,
    archive_store: ObjectStore,
    renderer: Renderer,
    settings: Settings,
    http_client_factory: Callable[[], httpx.AsyncClient] = _default_http_client,
    clock: Clock = _utc_now,
  ) -> None:
    self._repo = repo
    self._image_store = image_store
    self._archive_store = archive_store
    self._renderer = renderer
    self._settings = settings
    self._http_client_factory = http_client_factory
    self._clock = clock

  async def run_once(self) -> WorkerOutcome:
    """Claim and advance at most one job."""
    result = await select_and_claim(self._repo, clock=self._clock, stale_after=datetime.timedelta(seconds=self._settings.stale_after_seconds))
    if result.candidate is None:
      return WorkerOutcome(message=NO_WORK_MESSAGE)
    if result.job is None:
      return WorkerOutcome(message=CLAIM_CONFLICT_MESSAGE, job_id=result.candidate.job_id)

    job = result.job
    logger.info("[QR-WORKER] job=%s status=%s processed=%d/%d", job.job_id, job.status, job.processed, job.total)
    return await self._dispatch(job)

  async def _dispatch(self, job: BatchJobRecord) -> WorkerOutcome:
    if job.status == STATUS_ZIPPING:
      return await run_zipping_phase(
        job,
        repo=self._repo,
        image_store=self._image_store,
        archive_store=self._archive_store,
        http_client_factory=self._http_client_factory,
        settings=self._settings,
        clock=self._clock,
      )
    if job.status == STATUS_PROCESSING:
      return await run_processing_phase(job, repo=self._repo, image_store=self._image_store, renderer=self._renderer, settings=self._settings, clock=self._clock)
    raise RuntimeError(f"Claimed job {job.job_id} has unexpected status {job.status!r}.")


def build_batch_worker(settings: Settings) -> BatchWorker:
  """Wire the worker to Postgres, GCS and the QR renderer."""
  return BatchWorker(
    repo=_get_batch_jobs_repo(settings),
    image_store=build_image_store(settings),
    archive_store=build_archive_store(settings),
    renderer=build_renderer(settings),
    settings=settings,
  )


@lru_cache(maxsize=1)
def _cached_batch_worker() -> BatchWorker:
  return build_batch_worker(get_settings())


def get_batch_worker() -> BatchWorker:
  """FastAPI dependency returning the process-wide worker."""
  return _cached_batch_worker()
