from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from qrbatch.core.security import require_worker_secret
from qrbatch.jobs.runner import BatchWorker, get_batch_worker

router = APIRouter()
logger = logging.getLogger("qrbatch.api.routes.worker")


@router.api_route("/qr-worker", methods=["GET", "POST"], dependencies=[Depends(require_worker_secret)])
async def run_qr_worker(worker: BatchWorker = Depends(get_batch_worker)) -> JSONResponse:  # noqa: B008
  """
  Advance at most one batch job by one unit of work.

  Called periodically by the scheduler. Every call is independent: it either
  reports that nothing is pending, reports a lost claim race, or runs one
  processing batch or one archive build and reports what happened.
  """
  try:
    outcome = await worker.run_once()
  except Exception as exc:
    # Phase-fatal: the job keeps its status and a later trigger retries it.
    logger.error("[QR-WORKER] invocation failed: %s", exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": str(exc)})

  if outcome.progressed:
    logger.info("[QR-WORKER] job=%s %s", outcome.job_id, outcome.message)
  return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.to_payload())
