"""Object keys, display names and canonical content for batch artifacts."""

from __future__ import annotations

ARCHIVE_IMAGE_FOLDER = "qr_codes"
MANIFEST_NAME = "manifest.csv"
MANIFEST_COLUMNS = ("token", "url", "campaign_id", "created_at")


def scan_url(base_url: str, token: str) -> str:
  """Return the canonical content encoded into the QR image for a token."""
  return f"{base_url.rstrip('/')}/scan/{token}"


def image_object_key(campaign_id: str, job_id: str, token: str) -> str:
  """Return the deterministic image key; rewriting it is always safe."""
  return f"{campaign_id}/{job_id}/{token}.png"


def archive_object_key(campaign_id: str, job_id: str) -> str:
  return f"{campaign_id}/{job_id}.zip"


def archive_image_name(token: str, item_id: int, used_names: set[str]) -> str:
  """Return a unique in-archive file name: short token first, then full token, then token plus item id."""
  for stem in (token[:8], token, f"{token}_{item_id}"):
    name = f"{ARCHIVE_IMAGE_FOLDER}/QR_{stem}.png"
    if name not in used_names:
      break
  else:
    suffix = 1
    while name in used_names:
      name = f"{ARCHIVE_IMAGE_FOLDER}/QR_{token}_{item_id}_{suffix}.png"
      suffix += 1
  used_names.add(name)
  return name
