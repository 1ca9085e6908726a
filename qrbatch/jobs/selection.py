"""Pick one job per invocation and claim it atomically."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from qrbatch.jobs.models import BatchJobRecord
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


@dataclass(frozen=True)
class ClaimResult:
  """Selected candidate and, when the claim won, the refreshed job row."""

  candidate: BatchJobRecord | None
  job: BatchJobRecord | None

  @property
  def conflicted(self) -> bool:
    """True when a candidate existed but another runner claimed it first."""
    return self.candidate is not None and self.job is None


async def select_candidate(repo: BatchJobsRepository, *, stale_before: datetime.datetime) -> BatchJobRecord | None:
  """
  Return the single job this invocation should advance.

  Lookups run in priority order and stop at the first hit: in-flight archives
  first (bounds the number of half-built zips), then processing jobs whose
  heartbeat is older than ``stale_before``, then the oldest pending job.
  """
  zipping = await repo.find_zipping()
  if zipping is not None:
    return zipping

  stale = await repo.find_stale_processing(stale_before=stale_before)
  if stale is not None:
    logger.info("Reclaiming stale job %s (heartbeat %s)", stale.job_id, stale.updated_at.isoformat())
    return stale

  return await repo.find_oldest_pending()


async def select_and_claim(repo: BatchJobsRepository, *, clock: Clock, stale_after: datetime.timedelta) -> ClaimResult:
  """Select a candidate and claim it with a single conditional update."""
  candidate = await select_candidate(repo, stale_before=clock() - stale_after)
  if candidate is None:
    return ClaimResult(candidate=None, job=None)

  # Recompute the staleness bound at write time; the claim re-checks eligibility itself.
  now = clock()
  job = await repo.claim(candidate, now=now, stale_before=now - stale_after)
  if job is None:
    logger.info("Job %s was claimed by another worker", candidate.job_id)
  return ClaimResult(candidate=candidate, job=job)
