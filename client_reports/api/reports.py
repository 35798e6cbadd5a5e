# =============================================================================
# Reports API — Aggregated Client Reports, Tabs and Exports
# =============================================================================
#
# ENDPOINTS:
#   GET  /reports/{client_id}                          aggregate → Ready session
#   GET  /reports/sessions/{session_id}/tabs           tab catalogue + badges
#   GET  /reports/sessions/{session_id}/tabs/{tab_id}  one tab's view
#   GET  /reports/sessions/{session_id}/export         export a Ready session
#   POST /reports/{client_id}/export                   aggregate afresh, export
#   GET  /reports/{client_id}/runs                     recorded aggregations
#
# FLOW (GET /reports/{client_id}):
#   1. Validate the client id (RequestInvalid → 400, nothing dispatched)
#   2. Run the report graph (aggregate → normalize → verify → metrics)
#   3. Cache the Ready snapshot; tabs and exports read only from the cache
#   4. (Background) Record the run in report_runs
#
# Tab and export requests never refetch and never recompute a metric.
# RequestInvalid / AggregationIncomplete are turned into error envelopes by
# the exception handlers in main.py.
# =============================================================================

from __future__ import annotations

import logging
import time
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from client_reports.api.deps import get_adapters, get_ready_snapshot, get_report_store
from client_reports.config import settings
from client_reports.db.engine import async_session_factory, get_async_session
from client_reports.db.models import ReportOutcome, ReportRun
from client_reports.errors import AggregationIncomplete
from client_reports.models.report import SECTION_IDS
from client_reports.models.requests import ExportFormat, ExportRequest
from client_reports.models.responses import (
    DataIntegrity,
    ErrorResponse,
    ReportData,
    ReportResponse,
    ReportRunListResponse,
    ReportRunResponse,
    SourceStatusEntry,
    TabCatalogueResponse,
    TabViewModel,
)
from client_reports.services import exporter, presentation, projector
from client_reports.services.aggregator import validate_client_id
from client_reports.services.pipeline import build_report
from client_reports.services.session_store import (
    ReportSessionStore,
    ReportSnapshot,
    SessionState,
)
from client_reports.sources.base import SourceAdapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Client Reports"])

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Malformed client id"},
    502: {"model": ErrorResponse, "description": "Mandatory section unavailable"},
}


# ---------------------------------------------------------------------------
# GET /reports/{client_id} — Aggregate a report
# ---------------------------------------------------------------------------


@router.get(
    "/{client_id}",
    response_model=ReportResponse,
    responses=_ERROR_RESPONSES,
    summary="Aggregate and normalize a client report",
    description=(
        "Fetches every upstream source for the client concurrently, "
        "normalizes the results into one report model, computes the derived "
        "metrics and opens a report session for tab views and exports."
    ),
)
async def get_report(
    client_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    adapters: list[SourceAdapter] = Depends(get_adapters),
    store: ReportSessionStore = Depends(get_report_store),
) -> ReportResponse:
    snapshot = await _run_report(client_id, request, background_tasks, adapters, store)
    return _report_response(snapshot)


# ---------------------------------------------------------------------------
# Tabs
# ---------------------------------------------------------------------------


@router.get(
    "/sessions/{session_id}/tabs",
    response_model=TabCatalogueResponse,
    summary="List report tabs with Complete/Pending badges",
)
async def list_tabs(
    snapshot: ReportSnapshot = Depends(get_ready_snapshot),
) -> TabCatalogueResponse:
    return TabCatalogueResponse(
        session_id=snapshot.session_id,
        client_id=snapshot.client_id,
        tabs=projector.tab_catalogue(snapshot.model),
    )


@router.get(
    "/sessions/{session_id}/tabs/{tab_id}",
    response_model=TabViewModel,
    summary="Project one tab of a Ready report",
)
async def get_tab(
    tab_id: str,
    snapshot: ReportSnapshot = Depends(get_ready_snapshot),
    store: ReportSessionStore = Depends(get_report_store),
) -> TabViewModel:
    try:
        view = projector.project(snapshot.model, snapshot.metrics, tab_id)
    except projector.UnknownTab as e:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown tab '{tab_id}'. Available: {', '.join(projector.TABS)}",
        ) from e

    snapshot.session.advance(SessionState.VIEWING)
    await store.save(snapshot)
    return view


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------


@router.get(
    "/sessions/{session_id}/export",
    summary="Export a Ready report as PDF or JSON",
    responses={200: {"content": {"application/pdf": {}, "application/json": {}}}},
)
async def export_session(
    format: ExportFormat = Query(default="pdf"),
    snapshot: ReportSnapshot = Depends(get_ready_snapshot),
    store: ReportSessionStore = Depends(get_report_store),
) -> Response:
    return await _export(snapshot, format, store)


@router.post(
    "/{client_id}/export",
    summary="Aggregate a fresh report and export it",
    responses={
        **_ERROR_RESPONSES,
        200: {"content": {"application/pdf": {}, "application/json": {}}},
    },
)
async def export_fresh(
    client_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    body: ExportRequest | None = None,
    adapters: list[SourceAdapter] = Depends(get_adapters),
    store: ReportSessionStore = Depends(get_report_store),
) -> Response:
    body = body or ExportRequest()
    snapshot = await _run_report(client_id, request, background_tasks, adapters, store)
    return await _export(snapshot, body.format, store)


# ---------------------------------------------------------------------------
# GET /reports/{client_id}/runs — Run history
# ---------------------------------------------------------------------------


@router.get(
    "/{client_id}/runs",
    response_model=ReportRunListResponse,
    responses={400: _ERROR_RESPONSES[400]},
    summary="List recorded aggregations for a client",
)
async def list_runs(
    client_id: str,
    limit: int = Query(default=20, ge=1, le=200),
    session: AsyncSession = Depends(get_async_session),
) -> ReportRunListResponse:
    """Newest first, Ready and Incomplete runs alike."""
    client_id = validate_client_id(client_id)

    stmt = (
        select(ReportRun)
        .where(ReportRun.client_id == client_id)
        .order_by(ReportRun.created_at.desc())
        .limit(limit)
    )
    runs = list((await session.execute(stmt)).scalars().all())

    count_stmt = select(func.count(ReportRun.id)).where(ReportRun.client_id == client_id)
    total = (await session.execute(count_stmt)).scalar() or 0

    return ReportRunListResponse(
        runs=[
            ReportRunResponse(
                id=run.id,
                client_id=run.client_id,
                session_id=run.session_id,
                outcome=run.outcome.value,
                processing_ms=run.processing_ms,
                completeness_pct=run.completeness_pct,
                error_message=run.error_message,
                created_at=run.created_at,
            )
            for run in runs
        ],
        total=total,
    )


# ---------------------------------------------------------------------------
# Internal Helpers
# ---------------------------------------------------------------------------


async def _run_report(
    client_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    adapters: list[SourceAdapter],
    store: ReportSessionStore,
) -> ReportSnapshot:
    """Build a report, cache the Ready snapshot and schedule the run record."""
    request.state.audit_client_id = client_id
    start_time = time.monotonic()

    try:
        snapshot = await build_report(client_id, adapters)
    except AggregationIncomplete as e:
        request.state.audit_session_id = e.session_id
        # No response object to attach a background task to; record inline.
        await _persist_run(
            client_id=client_id.strip(),
            session_id=e.session_id,
            outcome=ReportOutcome.INCOMPLETE,
            processing_ms=int((time.monotonic() - start_time) * 1000),
            completeness_pct=None,
            manifest=e.manifest,
            error_message=e.message,
        )
        raise

    request.state.audit_session_id = snapshot.session_id
    await store.save(snapshot)

    background_tasks.add_task(
        _persist_run,
        client_id=snapshot.client_id,
        session_id=snapshot.session_id,
        outcome=ReportOutcome.READY,
        processing_ms=snapshot.processing_ms,
        completeness_pct=snapshot.metrics.completeness_pct,
        manifest=snapshot.manifest,
        error_message=None,
    )
    return snapshot


def _report_response(snapshot: ReportSnapshot) -> ReportResponse:
    model, metrics = snapshot.model, snapshot.metrics
    sources = {
        source_id: SourceStatusEntry(**entry)
        for source_id, entry in snapshot.manifest.items()
    }
    integrity = DataIntegrity(
        sources=sources,
        succeeded=[sid for sid, entry in sources.items() if entry.status == "ok"],
        failed=[sid for sid, entry in sources.items() if entry.status != "ok"],
        sections=dict(metrics.completeness),
        completeness_pct=metrics.completeness_pct,
        complete_sections=metrics.complete_sections,
        total_sections=len(SECTION_IDS),
        malformed_fields=snapshot.malformed_fields,
    )
    return ReportResponse(
        data=ReportData(
            session_id=snapshot.session_id,
            client_id=snapshot.client_id,
            client_name=presentation.client_name(model) or presentation.placeholder(),
            report=model,
            metrics=metrics,
            tabs=projector.tab_catalogue(model),
        ),
        processing_time_ms=snapshot.processing_ms,
        data_integrity=integrity,
    )


async def _export(
    snapshot: ReportSnapshot, format: ExportFormat, store: ReportSessionStore,
) -> Response:
    document = exporter.render(snapshot.model, snapshot.metrics)
    snapshot.session.advance(SessionState.EXPORTING)
    await store.save(snapshot)

    if format == "json":
        filename = exporter.export_filename(snapshot.model, extension="json")
        return JSONResponse(
            content=exporter.render_json(document),
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return Response(
        content=exporter.render_pdf(document),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


# ---------------------------------------------------------------------------
# Background Run Persistence
# ---------------------------------------------------------------------------


async def _persist_run(
    client_id: str,
    session_id: str | None,
    outcome: ReportOutcome,
    processing_ms: int,
    completeness_pct: float | None,
    manifest: dict,
    error_message: str | None,
) -> None:
    """
    Persist a ReportRun row.

    Uses its own DB session; failures are logged and never reach the client.
    """
    if not settings.persist_report_runs:
        return
    try:
        async with async_session_factory() as session:
            session.add(ReportRun(
                client_id=client_id,
                session_id=session_id,
                outcome=outcome,
                processing_ms=processing_ms,
                completeness_pct=completeness_pct,
                manifest=manifest,
                error_message=error_message,
            ))
            await session.commit()
    except Exception as e:
        logger.warning("Failed to persist report run: %s", e)
