"""
FastAPI Application - Record Tiering API.

Serves point reads of records across the hot (Redis) and cold (MinIO) tiers.
Clients only ever see 200 or 404 for a record; which tier answered is
reported in the ``X-Record-Tier`` header.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from src.api.dependencies import get_config, get_services
from src.api.models import ErrorResponse
from src.api.routers import records, system
from src.tiering.errors import (
    ConsistencyViolation,
    PermanentError,
    RecordNotFound,
    TransientStoreError,
)
from src.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 1


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    config = get_config()
    setup_logging(level=config.log_level, json_output=config.log_json)
    app.state.start_time = time.time()
    yield
    if get_services.cache_info().currsize:
        get_services().close()
        get_services.cache_clear()


app = FastAPI(
    title="Record Tiering API",
    description="""
Point reads of immutable records stored across two tiers.

* **Hot tier** - Redis, recent records
* **Cold tier** - MinIO, records archived after the cutoff age

Archival and cleanup never change the read contract: a record that exists is
always returned with 200, wherever it currently lives.
""",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "records", "description": "Record reads"},
        {"name": "system", "description": "System health and metrics"},
    ],
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error(status_code: int, error: str, exc: Exception, headers=None) -> JSONResponse:
    body = ErrorResponse(error=error, message=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(RecordNotFound)
async def record_not_found_handler(request: Request, exc: RecordNotFound):
    return _error(404, "not_found", exc)


@app.exception_handler(TransientStoreError)
async def transient_store_error_handler(request: Request, exc: TransientStoreError):
    logger.warning(f"{request.url.path}: store unavailable: {exc}")
    return _error(
        503, "store_unavailable", exc, headers={"Retry-After": str(RETRY_AFTER_SECONDS)}
    )


@app.exception_handler(ConsistencyViolation)
async def consistency_violation_handler(request: Request, exc: ConsistencyViolation):
    logger.error(f"{request.url.path}: consistency violation: {exc}")
    return _error(500, "consistency_violation", exc)


@app.exception_handler(PermanentError)
async def permanent_error_handler(request: Request, exc: PermanentError):
    logger.error(f"{request.url.path}: store rejected request: {exc}")
    return _error(500, "store_rejected", exc)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Record Tiering API", "version": "1.0.0"}


app.include_router(records.router)
app.include_router(system.router)

# Prometheus metrics instrumentation
# Exposes /metrics endpoint for Prometheus scraping, including tiering_events_total
Instrumentator().instrument(app).expose(app, endpoint="/metrics")
