"""Drive the batch worker locally the way the periodic scheduler does.

Calls the trigger endpoint repeatedly until it reports that nothing is pending.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import httpx

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

NO_WORK_MESSAGES = {"No jobs pending."}


async def _trigger_until_idle(base_url: str, secret: str, *, interval: float, max_calls: int, timeout: float) -> int:
  url = f"{base_url.rstrip('/')}/internal/qr-worker"
  headers = {"authorization": f"Bearer {secret}"}
  async with httpx.AsyncClient(trust_env=False, timeout=timeout) as client:
    for call in range(1, max_calls + 1):
      response = await client.post(url, headers=headers)
      payload = response.json()
      print(f"[{call}] {response.status_code} {payload}")
      if response.status_code >= 400:
        return 1
      if payload.get("message") in NO_WORK_MESSAGES:
        return 0
      await asyncio.sleep(interval)
  print(f"Stopped after {max_calls} calls with work still pending.")
  return 0


def main() -> int:
  from qrbatch.config import get_settings

  settings = get_settings()
  parser = argparse.ArgumentParser(description="Trigger the QR batch worker until idle.")
  parser.add_argument("--base-url", default=settings.base_url or "http://localhost:8080")
  parser.add_argument("--interval", type=float, default=1.0, help="Seconds to wait between calls.")
  parser.add_argument("--max-calls", type=int, default=1000)
  parser.add_argument("--timeout", type=float, default=settings.upload_timeout_seconds + 60)
  args = parser.parse_args()

  if not settings.worker_secret:
    print("Error: QRBATCH_WORKER_SECRET is not set.")
    return 1

  return asyncio.run(_trigger_until_idle(args.base_url, settings.worker_secret, interval=args.interval, max_calls=args.max_calls, timeout=args.timeout))


if __name__ == "__main__":
  sys.exit(main())
