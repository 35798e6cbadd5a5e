# =============================================================================
# Client Report Engine — FastAPI Application
# =============================================================================
#
# Wires the report router, the audit middleware and the error envelopes.
#
# ERROR ENVELOPES:
#   RequestInvalid        → 400  {success: false, error, message, retryable}
#   AggregationIncomplete → 502  (retryable: the upstream may recover)
#
# Everything else a source can do wrong (fail, time out, send malformed
# fields) is reported inside a successful response, never as an error.
#
# Run locally:
#   uvicorn client_reports.main:app --reload
# =============================================================================

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from client_reports.api.audit import AuditLoggingMiddleware
from client_reports.api.reports import router as reports_router
from client_reports.config import settings
from client_reports.errors import AggregationIncomplete, ReportError, RequestInvalid
from client_reports.models.responses import ErrorResponse, HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[ReportError], int] = {
    RequestInvalid: 400,
    AggregationIncomplete: 502,
}

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    description=(
        "Aggregates a client's records from every upstream source into one "
        "normalized report, with derived financial metrics, tabbed views and "
        "paginated exports."
    ),
)

app.add_middleware(AuditLoggingMiddleware)
app.include_router(reports_router)


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), 500)
    logger.info(
        "Report request failed (%s): %s %s", exc.error_code, request.url.path, exc.message,
    )
    body = ErrorResponse(
        error=exc.error_code,
        message=exc.message,
        retryable=exc.retryable,
        details=exc.details,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    """Liveness check; does not touch the database or Redis."""
    return HealthResponse(version=settings.app_version, service=settings.app_name)
