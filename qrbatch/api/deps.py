from __future__ import annotations

from functools import lru_cache

from qrbatch.config import get_settings
from qrbatch.services.storage_client import build_archive_store
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.factory import _get_batch_jobs_repo
from qrbatch.storage.object_store import ObjectStore


@lru_cache(maxsize=1)
def get_jobs_repo() -> BatchJobsRepository:
  """Return the process-wide batch jobs repository."""
  return _get_batch_jobs_repo(get_settings())


@lru_cache(maxsize=1)
def get_archive_store() -> ObjectStore:
  """Return the object store holding finished archives."""
  return build_archive_store(get_settings())
