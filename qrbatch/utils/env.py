"""Read a local ``.env`` into the process environment without overriding real variables."""

from __future__ import annotations

import os
from pathlib import Path


def default_env_path() -> Path:
  return Path(__file__).resolve().parents[2] / ".env"


def load_env_file(path: Path) -> None:
  """Apply ``KEY=value`` lines from ``path``; variables already set in the environment win."""
  if not path.is_file():
    return

  for raw_line in path.read_text(encoding="utf-8").splitlines():
    key, sep, value = raw_line.strip().partition("=")
    key = key.strip()
    if not sep or not key or key.startswith("#"):
      continue
    os.environ.setdefault(key, value.strip().strip("\"'"))
