"""Zipping phase: stream every stored image plus a manifest into one uploaded archive."""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass

import anyio
import httpx

from qrbatch.config import Settings
from qrbatch.core.exceptions import ArchiveStreamError, first_cause
from qrbatch.jobs.keys import MANIFEST_NAME, archive_image_name, archive_object_key, image_object_key, scan_url
from qrbatch.jobs.models import BatchJobRecord, WorkerOutcome
from qrbatch.jobs.selection import Clock
from qrbatch.services.archive_streamer import ArchiveStreamer, ManifestWriter
from qrbatch.services.archive_uploader import stream_upload
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

ARCHIVE_CONTENT_TYPE = "application/zip"


@dataclass
class ArchiveStats:
  manifest_rows: int = 0
  images: int = 0
  missing: int = 0


async def _produce_archive(job: BatchJobRecord, streamer: ArchiveStreamer, *, repo: BatchJobsRepository, image_store: ObjectStore, settings: Settings, stats: ArchiveStats) -> None:
  """Page through all items of the job and feed images plus the manifest into the streamer.

  Any failure other than a closed consumer propagates with the stream left open,
  so the task group cancels the upload rather than completing a truncated body.
  """
  manifest = ManifestWriter()
  used_names: set[str] = set()
  try:
    after_id: int | None = None
    while True:
      items = await repo.list_items(job.job_id, after_id=after_id, limit=settings.zip_chunk_size)
      if not items:
        break
      for item in items:
        manifest.add_row(token=item.token, url=scan_url(settings.scan_base_url, item.token), campaign_id=job.campaign_id, created_at=item.created_at)
        payload = await image_store.get_bytes(image_object_key(job.campaign_id, job.job_id, item.token))
        if payload is None:
          logger.warning("Job %s image missing for token %s; listed in manifest only", job.job_id, item.token)
          stats.missing += 1
          continue
        await streamer.add_entry(archive_image_name(item.token, item.item_id, used_names), payload, modified_at=item.created_at)
        stats.images += 1
      after_id = items[-1].item_id
      if len(items) < settings.zip_chunk_size:
        break

    stats.manifest_rows = manifest.rows
    await streamer.add_entry(MANIFEST_NAME, manifest.render(), modified_at=job.created_at)
    await streamer.finish()
  except anyio.BrokenResourceError:
    # The upload side ended early; its own error (if any) is reported by the consumer.
    logger.warning("Job %s archive consumer closed before the stream finished", job.job_id)
    await streamer.aclose()


async def run_zipping_phase(
  job: BatchJobRecord,
  *,
  repo: BatchJobsRepository,
  image_store: ObjectStore,
  archive_store: ObjectStore,
  http_client_factory: Callable[[], httpx.AsyncClient],
  settings: Settings,
  clock: Clock,
) -> WorkerOutcome:
  """Build and upload the archive concurrently, then mark the job completed."""
  object_name = archive_object_key(job.campaign_id, job.job_id)
  target = await archive_store.create_upload_target(object_name, content_type=ARCHIVE_CONTENT_TYPE, ttl_seconds=settings.upload_url_ttl_seconds)

  send_stream, receive_stream = anyio.create_memory_object_stream[bytes](settings.stream_buffer_chunks)
  streamer = ArchiveStreamer(send_stream, chunk_bytes=settings.stream_chunk_bytes)
  stats = ArchiveStats()

  logger.info("Job %s starting archive stream to %s/%s", job.job_id, archive_store.bucket_name, object_name)
  try:
    async with http_client_factory() as client:
      async with anyio.create_task_group() as tg:
        tg.start_soon(functools.partial(_produce_archive, job, streamer, repo=repo, image_store=image_store, settings=settings, stats=stats))
        await stream_upload(client, target, receive_stream, timeout=settings.upload_timeout_seconds)
  except BaseExceptionGroup as group:
    raise first_cause(group) from group

  if not streamer.finished:
    raise ArchiveStreamError(f"Archive stream for job {job.job_id} ended before it was finalized.")

  logger.info("Job %s archive uploaded entries=%d images=%d missing=%d bytes=%d", job.job_id, streamer.entries, stats.images, stats.missing, streamer.bytes_sent)

  archive_url = await archive_store.generate_download_url(object_name, ttl_seconds=settings.archive_url_ttl_seconds)
  completed = await repo.mark_completed(job.job_id, archive_url=archive_url, now=clock())
  if not completed:
    logger.warning("Job %s was no longer zipping when completion was recorded", job.job_id)
  return WorkerOutcome(message=f"Job {job.job_id} Zipped & Completed.", job_id=job.job_id, progressed=True)
