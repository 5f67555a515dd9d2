"""FastAPI application for the invoice platform.

Provides:
- Invoice upload and the extraction workflow callback
- Invoice review (edit, confirm, send to accountant)
- Projects, reports and dashboard aggregates
- Health and readiness checks for Kubernetes
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text

from invoicing.api import dashboard, invoices, projects, reports, uploads, webhooks
from invoicing.api.deps import dispatcher, settings, storage_service
from invoicing.auth.permissions import PermissionDeniedError
from invoicing.database.session import SessionLocal, init_db
from invoicing.invoices.lifecycle import InvalidTransitionError
from invoicing.invoices.service import InvoiceNotFoundError
from invoicing.projects.service import ProjectNotFoundError
from invoicing.reports.service import (
    ReportGenerationError,
    ReportNotFoundError,
    ReportNotReadyError,
)
from invoicing.shared import metrics

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    if settings.database_auto_create:
        init_db()
    logger.info(f"{settings.service_name} {settings.service_version} started ({settings.environment})")
    yield
    dispatcher.close()
    logger.info(f"{settings.service_name} stopped")


app = FastAPI(
    title="Invoice Manager",
    description="Multi-tenant invoice upload, extraction review and reporting API",
    version=settings.service_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(uploads.router)
app.include_router(webhooks.router)
app.include_router(invoices.router)
app.include_router(projects.router)
app.include_router(reports.router)
app.include_router(dashboard.router)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Middleware to collect request metrics.

    Tracks:
    - Request count by method, endpoint, and status
    - Request duration by method and endpoint
    """
    # Skip metrics for /metrics endpoint itself
    if request.url.path == "/metrics":
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    # Route template keeps label cardinality bounded
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=endpoint,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=endpoint,
    ).observe(duration)

    return response


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(InvoiceNotFoundError)
async def invoice_not_found_handler(_: Request, exc: InvoiceNotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ProjectNotFoundError)
async def project_not_found_handler(_: Request, exc: ProjectNotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(ReportNotFoundError)
async def report_not_found_handler(_: Request, exc: ReportNotFoundError) -> JSONResponse:
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(_: Request, exc: InvalidTransitionError) -> JSONResponse:
    logger.warning(str(exc))
    return _error(status.HTTP_409_CONFLICT, str(exc))


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(_: Request, exc: PermissionDeniedError) -> JSONResponse:
    return _error(status.HTTP_403_FORBIDDEN, str(exc))


@app.exception_handler(ReportNotReadyError)
async def report_not_ready_handler(_: Request, exc: ReportNotReadyError) -> JSONResponse:
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(ReportGenerationError)
async def report_generation_handler(_: Request, exc: ReportGenerationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": str(exc), "report_id": exc.report_id},
    )


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    database: bool
    storage: bool | None = None


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Health check endpoint for liveness probe."""
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check(response: Response) -> ReadinessResponse:
    """Readiness check endpoint for Kubernetes readiness probe.

    The database must answer. Storage is only checked when it is enabled.
    """
    try:
        with SessionLocal() as session:
            session.execute(text("SELECT 1"))
        database_ok = True
    except Exception as e:
        logger.warning(f"Database readiness check failed: {e}")
        database_ok = False

    storage_ok = storage_service.health_check() if settings.storage_enabled else None
    ready = database_ok and storage_ok is not False
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=ready, database=database_ok, storage=storage_ok)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint."""
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)
