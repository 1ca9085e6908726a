import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from qrbatch.core.database import dispose_engine
from qrbatch.core.logging import _initialize_logging
from qrbatch.services.storage_client import build_archive_store, build_image_store


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging and local buckets on startup; release pooled connections on shutdown."""
  from qrbatch.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("qrbatch.core.lifespan")
  _initialize_logging(settings)
  logger.info("Startup complete environment=%s", settings.environment)

  # Buckets are only auto-created against the emulator; production buckets are provisioned out of band.
  if settings.gcs_storage_host:
    for build_store in (build_image_store, build_archive_store):
      try:
        store = build_store(settings)
        await store.ensure_bucket()
        logger.info("Bucket ensured: %s", store.bucket_name)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to ensure bucket at startup: %s", exc)

  yield

  await dispose_engine()
  logger.info("Shutdown complete.")
