"""FastAPI application for invoice normalization and scoring.

Exposes the compliance core over HTTP:
- Health and readiness checks for Kubernetes
- Single record normalization with completeness score
- Batch normalization with aggregate report
- Prometheus metrics for monitoring

Based on FastAPI best practices:
https://fastapi.tiangolo.com/
"""

import time
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request, Response, status
from pydantic import BaseModel

from pipeline.batch.runner import BatchResult, BatchRunner
from services.api import metrics
from services.normalization.errors import InvalidInputShape, NormalizationError
from services.normalization.ledger import ProvenanceLedger
from services.normalization.schema import InvoiceRecord
from services.scoring.engine import RecordScore
from services.shared.config import get_settings

settings = get_settings()
app = FastAPI(
    title="Invoice Compliance Core",
    description="Fallback completion, provenance tracking and completeness scoring",
    version=settings.service_version,
)

runner = BatchRunner(settings)


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

    metrics.http_requests_total.labels(
        method=request.method,
        endpoint=request.url.path,
        status=response.status_code,
    ).inc()

    metrics.http_request_duration_seconds.labels(
        method=request.method,
        endpoint=request.url.path,
    ).observe(duration)

    return response


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    service: str


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    ready: bool


class NormalizeResponse(BaseModel):
    """Normalized record, its provenance and its completeness score."""

    record: InvoiceRecord
    ledger: ProvenanceLedger
    score: RecordScore


def _unprocessable(error: NormalizationError) -> HTTPException:
    detail: dict[str, Any] = {
        "error": type(error).__name__,
        "path": error.path,
        "message": str(error),
    }
    if isinstance(error, InvalidInputShape):
        detail["expectedKind"] = error.expected_kind
    return HTTPException(status_code=422, detail=detail)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
def health_check() -> HealthResponse:
    """Liveness check endpoint.

    Returns:
        Health status information
    """
    return HealthResponse(
        status="healthy", version=settings.service_version, service=settings.service_name
    )


@app.get("/ready", response_model=ReadinessResponse, tags=["Health"])
def readiness_check() -> ReadinessResponse:
    """Readiness check endpoint for orchestrator health checks.

    Returns:
        Readiness status
    """
    return ReadinessResponse(ready=True)


@app.get("/metrics", tags=["Monitoring"])
def get_metrics() -> Response:
    """Prometheus metrics endpoint.

    Returns:
        Prometheus metrics in text format
    """
    metrics_data, content_type = metrics.get_metrics()
    return Response(content=metrics_data, media_type=content_type)


@app.post("/api/v1/invoices/normalize", response_model=NormalizeResponse, tags=["Invoices"])
def normalize_invoice(record: dict[str, Any] = Body(...)) -> NormalizeResponse:  # noqa: B008
    """Normalize one raw invoice record and score its completeness.

    ## Error Handling

    - Returns 422 with `error`, `path` and `message` when a mandatory field
      is missing (`MissingMandatoryField`) or the record has the wrong shape
      (`InvalidInputShape`, with `expectedKind`)

    Args:
        record: Raw record as produced by the extraction step

    Returns:
        Normalized record, provenance ledger and completeness score

    Raises:
        HTTPException: If the record cannot be normalized
    """
    try:
        processed = runner.process(0, record)
    except NormalizationError as e:
        raise _unprocessable(e) from e

    return NormalizeResponse(
        record=processed.result.record,
        ledger=processed.result.ledger,
        score=processed.score,
    )


@app.post("/api/v1/invoices/batch", response_model=BatchResult, tags=["Invoices"])
def normalize_batch(records: list[dict[str, Any]] = Body(...)) -> BatchResult:  # noqa: B008
    """Normalize and score a batch of raw invoice records.

    Records that cannot be normalized are listed under `failures`; they never
    fail the request.

    Args:
        records: Raw records as produced by the extraction step

    Returns:
        Processed records, failures and the aggregate batch report
    """
    if not records:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No records provided")

    metrics.batch_size_records.observe(len(records))
    return runner.run(records)
