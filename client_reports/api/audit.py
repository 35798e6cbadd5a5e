# =============================================================================
# Audit Logging Middleware — Report Access Trail
# =============================================================================
#
# Records every report request to the report_access_logs table. Client
# financial data access must be traceable: which client, which session,
# when, and with what outcome.
#
# Endpoint handlers put the audit context on request.state:
#   audit_client_id   — client whose report was requested
#   audit_session_id  — report session that served the request
#
# Writes use their own DB session after the response is generated. Failures
# are logged and never crash the actual request.
# =============================================================================

from __future__ import annotations

import logging
import time

from starlette.middleware.base import (
    BaseHTTPMiddleware,
    RequestResponseEndpoint,
)
from starlette.requests import Request
from starlette.responses import Response

from client_reports.config import settings
from client_reports.db.engine import async_session_factory
from client_reports.db.models import ReportAccessLog

logger = logging.getLogger(__name__)

# Endpoints to skip audit logging (health check, docs)
_SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}


class AuditLoggingMiddleware(BaseHTTPMiddleware):
    """Logs report requests to the report_access_logs table."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if not settings.audit_logging_enabled:
            return await call_next(request)

        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.monotonic()
        response = await call_next(request)
        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        client_id = getattr(request.state, "audit_client_id", None)
        session_id = getattr(request.state, "audit_session_id", None)
        client_ip = request.client.host if request.client else None

        try:
            async with async_session_factory() as session:
                session.add(ReportAccessLog(
                    method=request.method,
                    path=str(request.url.path)[:500],
                    client_id=client_id[:24] if client_id else None,
                    session_id=session_id,
                    status_code=response.status_code,
                    client_ip=client_ip,
                    response_time_ms=elapsed_ms,
                ))
                await session.commit()
        except Exception as e:
            logger.warning("Failed to write audit log: %s", e)

        return response
