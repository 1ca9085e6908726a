"""Object storage contract used by the worker phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class UploadTarget:
  """A pre-authorized HTTP destination that accepts one object body."""

  url: str
  method: str = "PUT"
  headers: dict[str, str] = field(default_factory=dict)


class ObjectStore(Protocol):
  """Key/value blob store bound to a single bucket."""

  @property
  def bucket_name(self) -> str:
    """Return the bucket this store reads and writes."""

  async def put_bytes(self, object_name: str, payload: bytes, *, content_type: str) -> None:
    """Write (or overwrite) one object."""

  async def get_bytes(self, object_name: str) -> bytes | None:
    """Return object bytes, or None when the object does not exist."""

  async def create_upload_target(self, object_name: str, *, content_type: str, ttl_seconds: int) -> UploadTarget:
    """Return a signed destination a streaming HTTP upload can write to."""

  async def generate_download_url(self, object_name: str, *, ttl_seconds: int) -> str:
    """Return a time-limited URL for downloading one object."""
