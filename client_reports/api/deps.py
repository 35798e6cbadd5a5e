# =============================================================================
# Report Dependencies — FastAPI Dependency Injection
# =============================================================================
#
# Provides the dependencies the report endpoints share:
#
# 1. get_adapters()        — one source adapter per upstream source
# 2. get_report_store()    — the configured report session cache
# 3. get_ready_snapshot()  — load a Ready session by id, or 404
#
# DESIGN DECISION: adapters and the session store are dependencies so
# tests can swap in static adapters and a fresh in-memory store through
# app.dependency_overrides, without a database or Redis.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request

from client_reports.services.session_store import (
    ReportSessionStore,
    ReportSnapshot,
    get_session_store,
)
from client_reports.sources.base import SourceAdapter
from client_reports.sources.store import build_store_adapters

logger = logging.getLogger(__name__)


def get_adapters() -> list[SourceAdapter]:
    """Adapters reading the document store (`source_records` table)."""
    return build_store_adapters()


def get_report_store() -> ReportSessionStore:
    return get_session_store()


async def get_ready_snapshot(
    session_id: str,
    request: Request,
    store: ReportSessionStore = Depends(get_report_store),
) -> ReportSnapshot:
    """
    Resolve a report session id to its Ready snapshot.

    Raises:
        HTTPException 404: unknown or expired session.
    """
    request.state.audit_session_id = session_id
    snapshot = await store.load(session_id)
    if snapshot is None or not snapshot.session.has_data:
        raise HTTPException(
            status_code=404,
            detail=f"Report session {session_id} not found or expired. "
            "Request the report again.",
        )
    request.state.audit_client_id = snapshot.client_id
    return snapshot
