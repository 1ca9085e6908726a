"""Insert a pending batch job with N items for local development."""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Add the project root to the path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


async def seed(campaign_id: str, count: int) -> str:
  # Import after path setup so the script works when run directly.
  from qrbatch.core.database import dispose_engine, get_session_factory
  from qrbatch.schema.batch import BatchItem, BatchJob
  from qrbatch.utils.ids import generate_job_id, generate_token

  session_factory = get_session_factory()
  if session_factory is None:
    print("Error: QRBATCH_PG_DSN is not set.")
    sys.exit(1)

  job_id = generate_job_id()
  try:
    async with session_factory() as session:
      # Items must exist before the job is visible as pending.
      session.add(BatchJob(id=job_id, campaign_id=campaign_id, status="pending", total=count, processed=0))
      await session.flush()
      session.add_all([BatchItem(job_id=job_id, token=generate_token(), campaign_id=campaign_id) for _ in range(count)])
      await session.commit()
  finally:
    await dispose_engine()
  return job_id


def main() -> None:
  parser = argparse.ArgumentParser(description="Seed a pending QR batch job.")
  parser.add_argument("campaign_id")
  parser.add_argument("--count", type=int, default=10)
  args = parser.parse_args()
  if args.count <= 0:
    parser.error("--count must be positive")

  job_id = asyncio.run(seed(args.campaign_id, args.count))
  print(f"Seeded job {job_id} with {args.count} items for campaign {args.campaign_id}")


if __name__ == "__main__":
  main()
