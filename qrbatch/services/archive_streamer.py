"""Incremental zip encoding into a bounded in-memory pipe."""

from __future__ import annotations

import csv
import datetime
import io
import zipfile

from anyio.abc import ObjectSendStream

from qrbatch.jobs.keys import MANIFEST_COLUMNS


class _ChunkSink:
  """Write-only, non-seekable file object that collects zip output between drains."""

  def __init__(self) -> None:
    self._buffer = bytearray()

  def write(self, data: bytes) -> int:
    self._buffer += data
    return len(data)

  def flush(self) -> None:
    return None

  def drain(self) -> bytes:
    data = bytes(self._buffer)
    self._buffer.clear()
    return data


def _zip_timestamp(value: datetime.datetime) -> tuple[int, int, int, int, int, int]:
  """Convert a timestamp into the zip header's (naive, UTC) date tuple."""
  if value.tzinfo is not None:
    value = value.astimezone(datetime.UTC)
  # Zip headers cannot represent dates before 1980.
  value = max(value.replace(tzinfo=None), datetime.datetime(1980, 1, 1))
  return (value.year, value.month, value.day, value.hour, value.minute, value.second)


class ArchiveStreamer:
  """
  Zip encoder whose output is pushed to a stream while entries are still being added.

  ``zipfile`` is pointed at a non-seekable sink, so every entry is written with a
  trailing data descriptor and nothing is ever rewritten. After each entry the
  sink is drained into ``send_stream`` in chunks of at most ``chunk_bytes``;
  because the stream is bounded, ``add_entry`` suspends whenever the consumer
  falls behind and peak memory stays around one entry plus the stream buffer.
  """

  def __init__(self, send_stream: ObjectSendStream[bytes], *, chunk_bytes: int = 65536, compresslevel: int = 6) -> None:
    self._send_stream = send_stream
    self._chunk_bytes = chunk_bytes
    self._compresslevel = compresslevel
    self._sink = _ChunkSink()
    self._archive = zipfile.ZipFile(self._sink, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=compresslevel)
    self._closed = False
    self.entries = 0
    self.bytes_sent = 0
    self.finished = False

  async def add_entry(self, name: str, payload: bytes, *, modified_at: datetime.datetime) -> None:
    """Append one file to the archive and forward the encoded bytes."""
    if self.finished:
      raise RuntimeError("Archive already finalized.")
    info = zipfile.ZipInfo(name, date_time=_zip_timestamp(modified_at))
    info.compress_type = zipfile.ZIP_DEFLATED
    self._archive.writestr(info, payload, compresslevel=self._compresslevel)
    self.entries += 1
    await self._forward()

  async def finish(self) -> None:
    """Write the central directory and signal end-of-stream to the consumer."""
    self._archive.close()
    await self._forward()
    self.finished = True
    await self.aclose()

  async def aclose(self) -> None:
    """Close the send side; safe to call more than once."""
    if self._closed:
      return
    self._closed = True
    await self._send_stream.aclose()

  async def _forward(self) -> None:
    data = self._sink.drain()
    for start in range(0, len(data), self._chunk_bytes):
      chunk = data[start : start + self._chunk_bytes]
      await self._send_stream.send(chunk)
      self.bytes_sent += len(chunk)


class ManifestWriter:
  """CSV manifest listing every item of a job, whether or not its image exists."""

  def __init__(self) -> None:
    self._buffer = io.StringIO()
    self._writer = csv.writer(self._buffer, lineterminator="\n")
    self._writer.writerow(MANIFEST_COLUMNS)
    self.rows = 0

  def add_row(self, *, token: str, url: str, campaign_id: str, created_at: datetime.datetime) -> None:
    self._writer.writerow((token, url, campaign_id, created_at.isoformat()))
    self.rows += 1

  def render(self) -> bytes:
    return self._buffer.getvalue().encode("utf-8")
