"""Unit tests for the resumable processing phase."""

from __future__ import annotations

from dataclasses import replace

import pytest
from conftest import FakeClock, FakeRenderer, InMemoryBatchJobsRepo, InMemoryObjectStore

from qrbatch.config import Settings
from qrbatch.jobs.models import STATUS_PROCESSING, STATUS_ZIPPING
from qrbatch.jobs.processing import run_processing_phase


async def _claim_and_process(repo: InMemoryBatchJobsRepo, job_id: str, *, image_store: InMemoryObjectStore, renderer: FakeRenderer, settings: Settings, clock: FakeClock):
  job = repo.snapshot(job_id)
  claimed = await repo.claim(job, now=clock.now, stale_before=clock.now)
  assert claimed is not None
  return await run_processing_phase(claimed, repo=repo, image_store=image_store, renderer=renderer, settings=settings, clock=clock)


@pytest.mark.anyio
async def test_processing_renders_every_item_to_its_deterministic_key(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  repo.add_job("job-1", total=3)
  repo.add_items("job-1", ["T1", "T2", "T3"])
  renderer = FakeRenderer()

  outcome = await _claim_and_process(repo, "job-1", image_store=image_store, renderer=renderer, settings=worker_settings, clock=clock)

  assert renderer.calls == ["https://akuafi.com/scan/T1", "https://akuafi.com/scan/T2", "https://akuafi.com/scan/T3"]
  assert sorted(image_store.objects) == ["camp-1/job-1/T1.png", "camp-1/job-1/T2.png", "camp-1/job-1/T3.png"]
  assert set(image_store.content_types.values()) == {"image/png"}
  assert outcome.to_payload() == {"success": True, "message": "Job job-1 batch done. Switched to ZIPPING.", "job_id": "job-1"}

  job = repo.snapshot("job-1")
  assert job.status == STATUS_ZIPPING
  assert job.processed == 3
  assert job.last_processed_id == 103


@pytest.mark.anyio
async def test_progress_and_cursor_only_move_forward(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  """Each batch advances processed and the cursor; neither exceeds its bound nor regresses."""
  settings = replace(worker_settings, batch_size=2)
  repo.add_job("job-1", total=5)
  items = repo.add_items("job-1", ["A1", "A2", "A3", "A4", "A5"])

  observed: list[tuple[int, int | None, str]] = []
  for _ in range(3):
    clock.advance(1)
    await _claim_and_process(repo, "job-1", image_store=image_store, renderer=FakeRenderer(), settings=settings, clock=clock)
    job = repo.snapshot("job-1")
    observed.append((job.processed, job.last_processed_id, job.status))

  assert observed == [
    (2, items[1].item_id, STATUS_PROCESSING),
    (4, items[3].item_id, STATUS_PROCESSING),
    (5, items[4].item_id, STATUS_ZIPPING),
  ]


@pytest.mark.anyio
async def test_job_below_total_never_switches_to_zipping(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  settings = replace(worker_settings, batch_size=2)
  repo.add_job("job-1", total=3)
  repo.add_items("job-1", ["T1", "T2", "T3"])

  outcome = await _claim_and_process(repo, "job-1", image_store=image_store, renderer=FakeRenderer(), settings=settings, clock=clock)

  assert outcome.message == "Processed 2. Progress: 2/3"
  assert repo.snapshot("job-1").status == STATUS_PROCESSING


@pytest.mark.anyio
async def test_failed_item_is_skipped_and_never_retried(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  """Rendering T2 fails: it is counted out, the cursor moves past it, and no later batch revisits it."""
  repo.add_job("job-1", total=3)
  items = repo.add_items("job-1", ["T1", "T2", "T3"])
  renderer = FakeRenderer(fail_tokens={"T2"})

  outcome = await _claim_and_process(repo, "job-1", image_store=image_store, renderer=renderer, settings=worker_settings, clock=clock)

  job = repo.snapshot("job-1")
  assert outcome.message == "Processed 2. Progress: 2/3"
  assert job.processed == 2
  assert job.status == STATUS_PROCESSING
  assert job.last_processed_id == items[2].item_id
  assert "camp-1/job-1/T2.png" not in image_store.objects

  # The next invocation pages past the cursor, finds nothing, and moves on to zipping without T2.
  clock.advance(1)
  renderer.calls.clear()
  outcome = await _claim_and_process(repo, "job-1", image_store=image_store, renderer=renderer, settings=worker_settings, clock=clock)

  job = repo.snapshot("job-1")
  assert renderer.calls == []
  assert outcome.message == "Job job-1 batch done. Switched to ZIPPING."
  assert job.status == STATUS_ZIPPING
  assert job.processed == 2
  assert "camp-1/job-1/T2.png" not in image_store.objects


@pytest.mark.anyio
async def test_store_failure_keeps_cursor_on_last_success(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  repo.add_job("job-1", total=3)
  items = repo.add_items("job-1", ["T1", "T2", "T3"])
  image_store.fail_keys.add("camp-1/job-1/T3.png")

  await _claim_and_process(repo, "job-1", image_store=image_store, renderer=FakeRenderer(), settings=worker_settings, clock=clock)

  job = repo.snapshot("job-1")
  assert job.processed == 2
  assert job.last_processed_id == items[1].item_id
  assert job.status == STATUS_PROCESSING


@pytest.mark.anyio
async def test_processed_is_clamped_to_total(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  repo.add_job("job-1", total=2)
  repo.add_items("job-1", ["T1", "T2", "T3"])

  await _claim_and_process(repo, "job-1", image_store=image_store, renderer=FakeRenderer(), settings=worker_settings, clock=clock)

  job = repo.snapshot("job-1")
  assert job.processed == 2
  assert job.status == STATUS_ZIPPING


@pytest.mark.anyio
async def test_skipped_progress_write_is_not_reported_as_progress(repo: InMemoryBatchJobsRepo, image_store: InMemoryObjectStore, worker_settings: Settings, clock: FakeClock) -> None:
  """Another runner moved the job on mid-batch: the outcome says nothing was saved."""
  repo.add_job("job-1", total=2)
  repo.add_items("job-1", ["T1", "T2"])
  claimed = await repo.claim(repo.snapshot("job-1"), now=clock.now, stale_before=clock.now)
  assert claimed is not None
  repo.force_status("job-1", STATUS_ZIPPING)

  outcome = await run_processing_phase(claimed, repo=repo, image_store=image_store, renderer=FakeRenderer(), settings=worker_settings, clock=clock)

  assert outcome.progressed is False
  assert outcome.to_payload() == {"message": "Job job-1 changed during processing. Progress not saved."}
  assert repo.snapshot("job-1").processed == 0
