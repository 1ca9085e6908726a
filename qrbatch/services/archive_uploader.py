"""Streaming HTTP upload of an archive body to a signed destination."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import httpx
from anyio.abc import ObjectReceiveStream

from qrbatch.core.exceptions import ArchiveUploadError
from qrbatch.storage.object_store import UploadTarget

logger = logging.getLogger(__name__)


async def stream_upload(client: httpx.AsyncClient, target: UploadTarget, chunks: ObjectReceiveStream[bytes], *, timeout: float) -> httpx.Response:
  """Send every chunk received on ``chunks`` as one chunked request body."""

  async def _body() -> AsyncIterator[bytes]:
    async for chunk in chunks:
      yield chunk

  try:
    response = await client.request(target.method, target.url, content=_body(), headers=target.headers, timeout=timeout)
  finally:
    # Closing the receive side unblocks a producer that is still sending after the request ended.
    await chunks.aclose()

  if response.is_error:
    logger.error("Archive upload rejected status=%s body=%s", response.status_code, response.text[:512])
    raise ArchiveUploadError(f"ZIP upload failed with status {response.status_code}.", status_code=response.status_code)
  return response
