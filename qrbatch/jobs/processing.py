"""Processing phase: render one page of items into individual PNG objects."""

from __future__ import annotations

import logging

from starlette.concurrency import run_in_threadpool

from qrbatch.config import Settings
from qrbatch.jobs.keys import image_object_key, scan_url
from qrbatch.jobs.models import STATUS_PROCESSING, STATUS_ZIPPING, BatchJobRecord, WorkerOutcome
from qrbatch.jobs.selection import Clock
from qrbatch.services.renderer import Renderer
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)


async def run_processing_phase(job: BatchJobRecord, *, repo: BatchJobsRepository, image_store: ObjectStore, renderer: Renderer, settings: Settings, clock: Clock) -> WorkerOutcome:
  """Render the next batch after the job's cursor and persist progress."""
  items = await repo.list_items(job.job_id, after_id=job.last_processed_id, limit=settings.batch_size)

  last_id = job.last_processed_id
  successes = 0
  if items:
    logger.info("Job %s processing batch of %d items after id %s", job.job_id, len(items), job.last_processed_id)

  for item in items:
    content = scan_url(settings.scan_base_url, item.token)
    try:
      png = await run_in_threadpool(renderer, content)
      await image_store.put_bytes(image_object_key(job.campaign_id, job.job_id, item.token), png, content_type="image/png")
    except Exception:  # noqa: BLE001
      # Failed items are skipped, not retried; the cursor only moves past successes.
      logger.error("Job %s generation failed for item %s", job.job_id, item.item_id, exc_info=True)
      continue
    last_id = item.item_id
    successes += 1

  reached_total = job.processed + successes >= job.total
  processed = min(job.processed + successes, job.total)

  switch_to_zipping = not items or reached_total
  status = STATUS_ZIPPING if switch_to_zipping else STATUS_PROCESSING
  saved = await repo.save_progress(job.job_id, processed=processed, last_processed_id=last_id, status=status, now=clock())
  if not saved:
    logger.warning("Job %s changed while processing; progress write skipped", job.job_id)
    return WorkerOutcome(message=f"Job {job.job_id} changed during processing. Progress not saved.", job_id=job.job_id)

  if switch_to_zipping:
    if not items and not reached_total:
      logger.warning("Job %s item source exhausted at %d/%d; zipping what exists", job.job_id, processed, job.total)
    logger.info("Job %s finished processing. Switching to ZIPPING.", job.job_id)
    return WorkerOutcome(message=f"Job {job.job_id} batch done. Switched to ZIPPING.", job_id=job.job_id, progressed=True)
  return WorkerOutcome(message=f"Processed {successes}. Progress: {processed}/{job.total}", job_id=job.job_id, progressed=True)
