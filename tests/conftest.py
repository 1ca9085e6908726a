"""Shared fixtures and in-memory doubles for worker tests."""

from __future__ import annotations

import datetime
import sys
from dataclasses import replace
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

import anyio  # noqa: E402
import httpx  # noqa: E402
import pytest  # noqa: E402

from qrbatch.config import Settings, get_settings  # noqa: E402
from qrbatch.jobs.models import STATUS_PENDING, STATUS_PROCESSING, STATUS_ZIPPING, BatchItemRecord, BatchJobRecord, JobStatus  # noqa: E402
from qrbatch.storage.object_store import UploadTarget  # noqa: E402

T0 = datetime.datetime(2025, 3, 1, 12, 0, 0, tzinfo=datetime.UTC)


class FakeClock:
  """Manually advanced UTC clock."""

  def __init__(self, now: datetime.datetime = T0) -> None:
    self.now = now

  def __call__(self) -> datetime.datetime:
    return self.now

  def advance(self, seconds: float) -> None:
    self.now = self.now + datetime.timedelta(seconds=seconds)


class InMemoryBatchJobsRepo:
  """In-memory batch jobs repository mirroring the conditional-update semantics of Postgres."""

  def __init__(self) -> None:
    self._jobs: dict[str, BatchJobRecord] = {}
    self._items: list[BatchItemRecord] = []
    self._next_item_id = 100
    self.mutations: list[tuple[str, str]] = []

  def add_job(
    self,
    job_id: str,
    *,
    campaign_id: str = "camp-1",
    total: int,
    status: JobStatus = STATUS_PENDING,
    processed: int = 0,
    last_processed_id: int | None = None,
    created_at: datetime.datetime = T0,
    updated_at: datetime.datetime | None = None,
  ) -> BatchJobRecord:
    record = BatchJobRecord(
      job_id=job_id,
      campaign_id=campaign_id,
      status=status,
      total=total,
      processed=processed,
      last_processed_id=last_processed_id,
      archive_url=None,
      created_at=created_at,
      updated_at=updated_at or created_at,
    )
    self._jobs[job_id] = record
    return replace(record)

  def add_items(self, job_id: str, tokens: list[str], *, campaign_id: str = "camp-1") -> list[BatchItemRecord]:
    created: list[BatchItemRecord] = []
    for offset, token in enumerate(tokens):
      self._next_item_id += 1
      item = BatchItemRecord(item_id=self._next_item_id, job_id=job_id, token=token, campaign_id=campaign_id, created_at=T0 + datetime.timedelta(seconds=offset))
      self._items.append(item)
      created.append(item)
    return created

  def snapshot(self, job_id: str) -> BatchJobRecord:
    return replace(self._jobs[job_id])

  def force_status(self, job_id: str, status: JobStatus) -> None:
    self._jobs[job_id].status = status

  async def get_job(self, job_id: str) -> BatchJobRecord | None:
    record = self._jobs.get(job_id)
    return replace(record) if record is not None else None

  async def find_zipping(self) -> BatchJobRecord | None:
    rows = sorted((job for job in self._jobs.values() if job.status == STATUS_ZIPPING), key=lambda job: job.updated_at)
    return await self._yield_first(rows)

  async def find_stale_processing(self, *, stale_before: datetime.datetime) -> BatchJobRecord | None:
    rows = sorted((job for job in self._jobs.values() if job.status == STATUS_PROCESSING and job.updated_at < stale_before), key=lambda job: job.updated_at)
    return await self._yield_first(rows)

  async def find_oldest_pending(self) -> BatchJobRecord | None:
    rows = sorted((job for job in self._jobs.values() if job.status == STATUS_PENDING), key=lambda job: (job.created_at, job.job_id))
    return await self._yield_first(rows)

  async def claim(self, candidate: BatchJobRecord, *, now: datetime.datetime, stale_before: datetime.datetime) -> BatchJobRecord | None:
    row = self._jobs.get(candidate.job_id)
    if row is None or row.updated_at != candidate.updated_at:
      return None
    claimable = row.status in (STATUS_ZIPPING, STATUS_PENDING) or (row.status == STATUS_PROCESSING and row.updated_at < stale_before)
    if not claimable:
      return None
    row.status = STATUS_ZIPPING if row.status == STATUS_ZIPPING else STATUS_PROCESSING
    row.updated_at = now
    self.mutations.append(("claim", row.job_id))
    return replace(row)

  async def list_items(self, job_id: str, *, after_id: int | None, limit: int) -> list[BatchItemRecord]:
    rows = [item for item in self._items if item.job_id == job_id and (after_id is None or item.item_id > after_id)]
    return sorted(rows, key=lambda item: item.item_id)[:limit]

  async def save_progress(self, job_id: str, *, processed: int, last_processed_id: int | None, status: JobStatus, now: datetime.datetime) -> bool:
    row = self._jobs.get(job_id)
    if row is None or row.status != STATUS_PROCESSING or row.processed > processed:
      return False
    row.processed = processed
    row.last_processed_id = last_processed_id
    row.status = status
    row.updated_at = now
    self.mutations.append(("save_progress", job_id))
    return True

  async def mark_completed(self, job_id: str, *, archive_url: str, now: datetime.datetime) -> bool:
    row = self._jobs.get(job_id)
    if row is None or row.status != STATUS_ZIPPING:
      return False
    row.status = "completed"
    row.archive_url = archive_url
    row.updated_at = now
    self.mutations.append(("mark_completed", job_id))
    return True

  async def _yield_first(self, rows: list[BatchJobRecord]) -> BatchJobRecord | None:
    # Snapshot before yielding so concurrent callers can observe the same candidate.
    first = replace(rows[0]) if rows else None
    await anyio.sleep(0)
    return first


class InMemoryObjectStore:
  """Dict-backed object store for one bucket."""

  def __init__(self, bucket_name: str) -> None:
    self._bucket_name = bucket_name
    self.objects: dict[str, bytes] = {}
    self.content_types: dict[str, str] = {}
    self.fail_keys: set[str] = set()
    self.download_url_error: Exception | None = None

  @property
  def bucket_name(self) -> str:
    return self._bucket_name

  async def put_bytes(self, object_name: str, payload: bytes, *, content_type: str) -> None:
    if object_name in self.fail_keys:
      raise OSError(f"write failed for {object_name}")
    self.objects[object_name] = payload
    self.content_types[object_name] = content_type

  async def get_bytes(self, object_name: str) -> bytes | None:
    return self.objects.get(object_name)

  async def create_upload_target(self, object_name: str, *, content_type: str, ttl_seconds: int) -> UploadTarget:
    return UploadTarget(url=f"https://uploads.test/{self._bucket_name}/{object_name}", method="PUT", headers={"content-type": content_type})

  async def generate_download_url(self, object_name: str, *, ttl_seconds: int) -> str:
    if self.download_url_error is not None:
      raise self.download_url_error
    return f"https://downloads.test/{self._bucket_name}/{object_name}?ttl={ttl_seconds}"


class UploadRecorder:
  """httpx MockTransport handler that drains streamed uploads into an in-memory store."""

  def __init__(self, store: InMemoryObjectStore, *, status_code: int = 200) -> None:
    self.store = store
    self.status_code = status_code
    self.requests: list[httpx.Request] = []
    self.bodies: list[bytes] = []

  async def __call__(self, request: httpx.Request) -> httpx.Response:
    body = await request.aread()
    self.requests.append(request)
    self.bodies.append(body)
    if 200 <= self.status_code < 300:
      object_name = request.url.path.removeprefix(f"/{self.store.bucket_name}/")
      self.store.objects[object_name] = body
      self.store.content_types[object_name] = request.headers.get("content-type", "")
    return httpx.Response(self.status_code, text="ok" if self.status_code < 400 else "denied")

  def client_factory(self) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(self))


class FakeRenderer:
  """Renderer double; fails for selected tokens."""

  def __init__(self, fail_tokens: set[str] | None = None) -> None:
    self.fail_tokens = fail_tokens or set()
    self.calls: list[str] = []

  def __call__(self, content: str) -> bytes:
    self.calls.append(content)
    token = content.rsplit("/", 1)[-1]
    if token in self.fail_tokens:
      raise RuntimeError(f"render failed for {token}")
    return b"\x89PNG-fake-" + token.encode("utf-8")


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def worker_settings() -> Settings:
  return replace(
    get_settings(),
    worker_secret="test-secret",
    scan_base_url="https://akuafi.com",
    batch_size=200,
    zip_chunk_size=2,
    stale_after_seconds=600,
    stream_buffer_chunks=2,
    stream_chunk_bytes=256,
  )


@pytest.fixture
def clock() -> FakeClock:
  return FakeClock()


@pytest.fixture
def repo() -> InMemoryBatchJobsRepo:
  return InMemoryBatchJobsRepo()


@pytest.fixture
def image_store() -> InMemoryObjectStore:
  return InMemoryObjectStore("qr-images")


@pytest.fixture
def archive_store() -> InMemoryObjectStore:
  return InMemoryObjectStore("qr-zips")


@pytest.fixture
def uploads(archive_store: InMemoryObjectStore) -> UploadRecorder:
  return UploadRecorder(archive_store)
