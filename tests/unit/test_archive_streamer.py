"""Unit tests for incremental zip encoding."""

from __future__ import annotations

import datetime
import io
import zipfile

import anyio
import pytest
from conftest import T0

from qrbatch.jobs.keys import archive_image_name
from qrbatch.services.archive_streamer import ArchiveStreamer, ManifestWriter, _zip_timestamp


@pytest.mark.anyio
async def test_streamed_chunks_form_a_valid_zip_and_respect_chunk_size() -> None:
  send_stream, receive_stream = anyio.create_memory_object_stream[bytes](1)
  streamer = ArchiveStreamer(send_stream, chunk_bytes=128)
  chunks: list[bytes] = []

  async def _consume() -> None:
    async with receive_stream:
      async for chunk in receive_stream:
        chunks.append(chunk)

  payloads = {f"qr_codes/QR_{index}.png": bytes(range(256)) * (index + 1) for index in range(4)}
  async with anyio.create_task_group() as tg:
    tg.start_soon(_consume)
    for name, payload in payloads.items():
      await streamer.add_entry(name, payload, modified_at=T0)
    await streamer.finish()

  assert streamer.finished is True
  assert streamer.entries == 4
  assert all(0 < len(chunk) <= 128 for chunk in chunks)
  assert streamer.bytes_sent == sum(len(chunk) for chunk in chunks)

  with zipfile.ZipFile(io.BytesIO(b"".join(chunks))) as archive:
    assert archive.testzip() is None
    assert archive.namelist() == list(payloads)
    for name, payload in payloads.items():
      assert archive.read(name) == payload
    assert archive.getinfo("qr_codes/QR_0.png").date_time == (2025, 3, 1, 12, 0, 0)


@pytest.mark.anyio
async def test_add_entry_after_finish_is_rejected() -> None:
  send_stream, receive_stream = anyio.create_memory_object_stream[bytes](100)
  streamer = ArchiveStreamer(send_stream)
  await streamer.finish()
  receive_stream.close()

  with pytest.raises(RuntimeError, match="finalized"):
    await streamer.add_entry("late.png", b"x", modified_at=T0)


def test_zip_timestamp_normalises_to_utc_and_clamps_to_1980() -> None:
  eastern = datetime.timezone(datetime.timedelta(hours=-5))
  assert _zip_timestamp(datetime.datetime(2025, 3, 1, 7, 30, 0, tzinfo=eastern)) == (2025, 3, 1, 12, 30, 0)
  assert _zip_timestamp(datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)) == (1980, 1, 1, 0, 0, 0)


def test_manifest_writer_renders_header_and_rows() -> None:
  manifest = ManifestWriter()
  manifest.add_row(token="T1", url="https://akuafi.com/scan/T1", campaign_id="camp-1", created_at=T0)

  assert manifest.rows == 1
  assert manifest.render().decode("utf-8") == "token,url,campaign_id,created_at\nT1,https://akuafi.com/scan/T1,camp-1,2025-03-01T12:00:00+00:00\n"


def test_archive_image_name_falls_back_to_full_token_on_collision() -> None:
  used: set[str] = set()
  assert archive_image_name("abcdefgh-0001", 101, used) == "qr_codes/QR_abcdefgh.png"
  assert archive_image_name("abcdefgh-0002", 102, used) == "qr_codes/QR_abcdefgh-0002.png"


def test_archive_image_name_never_repeats_when_full_token_matches_a_short_name() -> None:
  used: set[str] = set()
  first = archive_image_name("ABCDEFGH12", 101, used)
  second = archive_image_name("ABCDEFGH", 102, used)

  assert first == "qr_codes/QR_ABCDEFGH.png"
  assert second == "qr_codes/QR_ABCDEFGH_102.png"
  assert used == {first, second}
