from qrbatch.config import Settings
from qrbatch.storage.batch_jobs_repo import BatchJobsRepository
from qrbatch.storage.postgres_batch_jobs_repo import PostgresBatchJobsRepository


def _get_batch_jobs_repo(settings: Settings) -> BatchJobsRepository:
  """Return the active batch jobs repository."""

  # Enforce Postgres-backed storage for jobs.

  if not settings.pg_dsn:
    raise ValueError("QRBATCH_PG_DSN must be set to enable Postgres persistence.")

  return PostgresBatchJobsRepository()
