from __future__ import annotations

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from qrbatch.api.routes import jobs, worker
from qrbatch.core.exceptions import global_exception_handler, http_exception_handler, request_validation_exception_handler
from qrbatch.core.lifespan import lifespan
from qrbatch.core.middleware import RequestLoggingMiddleware

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None, openapi_url=None)

# Add exception handlers
app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(worker.router, prefix="/internal", tags=["worker"])
app.include_router(jobs.router, prefix="/v1/jobs", tags=["jobs"])
