"""GCS helpers for rendered QR images and signed archive uploads/downloads."""

from __future__ import annotations

import os
from datetime import timedelta
from urllib.parse import quote, urlparse, urlunparse

from google.api_core.exceptions import NotFound
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool

from qrbatch.config import Settings
from qrbatch.storage.object_store import ObjectStore, UploadTarget


class GcsObjectStore(ObjectStore):
  """Thin wrapper over GCS and emulator access for one bucket."""

  def __init__(self, settings: Settings, bucket_name: str) -> None:
    if not bucket_name:
      raise RuntimeError("A bucket name must be configured for object storage.")
    self._bucket_name = bucket_name
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      self._emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["GCS_STORAGE_EMULATOR_HOST"] = self._emulator_endpoint
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": self._emulator_endpoint})
    else:
      self._emulator_endpoint = None
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    """Return the bucket name used by this client."""
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in local/dev flows."""
    # Keep production startup side-effect free; only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def put_bytes(self, object_name: str, payload: bytes, *, content_type: str) -> None:
    """Upload bytes, replacing any existing object with the same name."""
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    blob.content_type = content_type
    await run_in_threadpool(blob.upload_from_string, payload, content_type)

  async def get_bytes(self, object_name: str) -> bytes | None:
    """Download object bytes; missing objects are reported as None."""
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    try:
      return await run_in_threadpool(blob.download_as_bytes)
    except NotFound:
      return None

  async def create_upload_target(self, object_name: str, *, content_type: str, ttl_seconds: int) -> UploadTarget:
    """Return a signed PUT target, or the emulator's media upload endpoint in local development."""
    if self._emulator_endpoint:
      # The emulator cannot verify signatures; it accepts unauthenticated media uploads instead.
      url = f"{self._emulator_endpoint}/upload/storage/v1/b/{self._bucket_name}/o?uploadType=media&name={quote(object_name, safe='')}"
      return UploadTarget(url=url, method="POST", headers={"content-type": content_type})
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    expiration = timedelta(seconds=int(ttl_seconds))
    url = await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=expiration, method="PUT", content_type=content_type)
    return UploadTarget(url=url, method="PUT", headers={"content-type": content_type})

  async def generate_download_url(self, object_name: str, *, ttl_seconds: int) -> str:
    """Generate a short-lived signed URL for direct artifact download."""
    if self._emulator_endpoint:
      return f"{self._emulator_endpoint}/storage/v1/b/{self._bucket_name}/o/{quote(object_name, safe='')}?alt=media"
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(object_name)
    expiration = timedelta(seconds=int(ttl_seconds))
    return await run_in_threadpool(blob.generate_signed_url, version="v4", expiration=expiration, method="GET")


def build_image_store(settings: Settings) -> GcsObjectStore:
  """Create the object store holding individually rendered QR images."""
  return GcsObjectStore(settings, settings.image_bucket)


def build_archive_store(settings: Settings) -> GcsObjectStore:
  """Create the object store holding finished campaign archives."""
  return GcsObjectStore(settings, settings.archive_bucket)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
