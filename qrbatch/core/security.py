"""Shared-secret authentication for scheduler-facing endpoints."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, HTTPException, status

from qrbatch.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _bearer_token(authorization: str | None) -> str | None:
  if not authorization:
    return None
  scheme, _, token = authorization.partition(" ")
  if scheme.lower() != "bearer" or not token.strip():
    return None
  return token.strip()


def require_worker_secret(
  authorization: str | None = Header(default=None),
  x_cron_secret: str | None = Header(default=None, alias="X-Cron-Secret"),
  settings: Settings = Depends(get_settings),  # noqa: B008
) -> None:
  """Reject callers that do not present the configured worker secret."""
  expected = settings.worker_secret
  # Deny by default when no secret is configured.
  if not expected:
    logger.warning("Worker secret is not configured; rejecting request.")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

  provided = _bearer_token(authorization) or x_cron_secret
  if not provided or not secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
    logger.warning("Worker request rejected: invalid or missing secret.")
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
