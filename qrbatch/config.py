"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from qrbatch.utils.env import default_env_path, load_env_file

load_env_file(default_env_path())

_ERROR_CORRECTION_LEVELS = {"L", "M", "Q", "H"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the qrbatch worker service."""

  environment: str
  debug: bool
  log_level: str
  log_to_file: bool
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  worker_secret: str | None
  scan_base_url: str
  batch_size: int
  zip_chunk_size: int
  stale_after_seconds: int
  archive_url_ttl_seconds: int
  upload_url_ttl_seconds: int
  upload_timeout_seconds: float
  stream_buffer_chunks: int
  stream_chunk_bytes: int
  image_bucket: str
  archive_bucket: str
  qr_size_px: int
  qr_border: int
  qr_error_correction: str
  gcp_project_id: str | None
  gcs_storage_host: str | None
  base_url: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("QRBATCH_ENV", "development").lower()
  debug = _parse_bool(os.getenv("QRBATCH_DEBUG"))

  log_level = (os.getenv("QRBATCH_LOG_LEVEL") or "INFO").strip().upper()
  log_max_bytes = _positive_int("QRBATCH_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("QRBATCH_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("QRBATCH_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Worker tunables; defaults mirror the batch sizes the scheduler was sized for.
  batch_size = _positive_int("QRBATCH_BATCH_SIZE", "200")
  zip_chunk_size = _positive_int("QRBATCH_ZIP_CHUNK_SIZE", "500")
  stale_after_seconds = _positive_int("QRBATCH_STALE_AFTER_SECONDS", "600")
  archive_url_ttl_seconds = _positive_int("QRBATCH_ARCHIVE_URL_TTL_SECONDS", "600")
  upload_url_ttl_seconds = _positive_int("QRBATCH_UPLOAD_URL_TTL_SECONDS", "900")
  upload_timeout_seconds = float(os.getenv("QRBATCH_UPLOAD_TIMEOUT_SECONDS", "300"))
  if upload_timeout_seconds <= 0:
    raise ValueError("QRBATCH_UPLOAD_TIMEOUT_SECONDS must be positive.")
  stream_buffer_chunks = _positive_int("QRBATCH_STREAM_BUFFER_CHUNKS", "8")
  stream_chunk_bytes = _positive_int("QRBATCH_STREAM_CHUNK_BYTES", "65536")

  qr_size_px = _positive_int("QRBATCH_QR_SIZE_PX", "512")
  qr_border = int(os.getenv("QRBATCH_QR_BORDER", "2"))
  if qr_border < 0:
    raise ValueError("QRBATCH_QR_BORDER must be zero or a positive integer.")
  qr_error_correction = (os.getenv("QRBATCH_QR_ERROR_CORRECTION") or "H").strip().upper()
  if qr_error_correction not in _ERROR_CORRECTION_LEVELS:
    raise ValueError("QRBATCH_QR_ERROR_CORRECTION must be one of L|M|Q|H.")

  scan_base_url = (os.getenv("QRBATCH_SCAN_BASE_URL") or "https://akuafi.com").strip().rstrip("/")

  return Settings(
    environment=environment,
    debug=debug,
    log_level=log_level,
    log_to_file=_parse_bool(os.getenv("QRBATCH_LOG_TO_FILE")),
    log_dir=(os.getenv("QRBATCH_LOG_DIR") or "logs").strip(),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("QRBATCH_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("QRBATCH_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("QRBATCH_PG_CONNECT_TIMEOUT", "5"),
    worker_secret=_optional_str(os.getenv("QRBATCH_WORKER_SECRET")),
    scan_base_url=scan_base_url,
    batch_size=batch_size,
    zip_chunk_size=zip_chunk_size,
    stale_after_seconds=stale_after_seconds,
    archive_url_ttl_seconds=archive_url_ttl_seconds,
    upload_url_ttl_seconds=upload_url_ttl_seconds,
    upload_timeout_seconds=upload_timeout_seconds,
    stream_buffer_chunks=stream_buffer_chunks,
    stream_chunk_bytes=stream_chunk_bytes,
    image_bucket=(os.getenv("QRBATCH_IMAGE_BUCKET") or "qr-images").strip(),
    archive_bucket=(os.getenv("QRBATCH_ARCHIVE_BUCKET") or "qr-zips").strip(),
    qr_size_px=qr_size_px,
    qr_border=qr_border,
    qr_error_correction=qr_error_correction,
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    base_url=_optional_str(os.getenv("QRBATCH_BASE_URL")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring worker-runtime configuration."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("QRBATCH_DEBUG"))
  pg_connect_timeout = _positive_int("QRBATCH_PG_CONNECT_TIMEOUT", "5")

  # Support fallback to DATABASE_URL for hosted Postgres providers.
  pg_dsn = os.getenv("QRBATCH_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
