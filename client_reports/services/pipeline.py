# =============================================================================
# Report Pipeline — LangGraph Assembly of Aggregate → Normalize → Metrics
# =============================================================================
#
# GRAPH TOPOLOGY:
#   START ──▶ aggregate ──▶ normalize ──▶ verify ──┬──▶ metrics ──▶ END
#                                                  └──▶ END  (mandatory
#                                                            section missing)
#
# Each node advances the session state machine (services/session_store.py):
#   aggregate  Requested   → Aggregating
#   normalize  Aggregating → Normalizing   (only once every adapter settled)
#   verify     Normalizing → Failed        (mandatory section absent)
#   metrics    Normalizing → Ready
#
# Plain TypedDict state, compiled once at module level. The state carries
# live objects (adapters, the session), which is fine because the graph has
# no checkpointer.
#
# build_report() is the entry point used by the API: it returns a
# ReportSnapshot for a Ready session or raises AggregationIncomplete. No
# partial model ever leaves this module.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Iterable

from langgraph.graph import END, START, StateGraph
from typing_extensions import TypedDict

from client_reports.config import settings
from client_reports.errors import AggregationIncomplete
from client_reports.models.report import ClientReportModel
from client_reports.services.aggregator import RawBundle, aggregate, validate_client_id
from client_reports.services.metrics import DerivedMetrics, compute_metrics
from client_reports.services.normalizer import count_malformed, normalize
from client_reports.services.session_store import (
    ReportSession,
    ReportSnapshot,
    SessionState,
)
from client_reports.sources.base import SourceAdapter

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pipeline State Schema
# ---------------------------------------------------------------------------


class ReportState(TypedDict, total=False):
    """
    State that flows through the report graph.

    total=False so nodes only return the keys they set.
    """

    # --- Input (set by caller) ---
    client_id: str
    adapters: list[SourceAdapter]
    session: ReportSession

    # --- Set by nodes ---
    bundle: RawBundle
    model: ClientReportModel
    missing_sections: list[str]
    metrics: DerivedMetrics


# ---------------------------------------------------------------------------
# Node Functions
# ---------------------------------------------------------------------------


async def aggregate_node(state: ReportState) -> dict:
    """Fan out to every adapter and wait for all of them to settle."""
    session = state["session"]
    session.advance(SessionState.AGGREGATING)
    bundle = await aggregate(state["client_id"], state["adapters"])
    return {"bundle": bundle}


async def normalize_node(state: ReportState) -> dict:
    session = state["session"]
    session.advance(SessionState.NORMALIZING)
    model = normalize(state["bundle"])
    return {"model": model}


async def verify_node(state: ReportState) -> dict:
    """Check that every mandatory section can anchor the report."""
    missing = state["model"].missing_sections(settings.mandatory_sections)
    if missing:
        state["session"].advance(SessionState.FAILED)
        logger.warning(
            "Report for client %s incomplete: missing %s",
            state["client_id"], ", ".join(missing),
        )
    return {"missing_sections": missing}


async def metrics_node(state: ReportState) -> dict:
    metrics = compute_metrics(state["model"])
    state["session"].advance(SessionState.READY)
    return {"metrics": metrics}


def _after_verify(state: ReportState) -> str:
    return END if state.get("missing_sections") else "metrics"


# ---------------------------------------------------------------------------
# Graph Assembly
# ---------------------------------------------------------------------------

_builder = StateGraph(ReportState)
_builder.add_node("aggregate", aggregate_node)
_builder.add_node("normalize", normalize_node)
_builder.add_node("verify", verify_node)
_builder.add_node("metrics", metrics_node)

_builder.add_edge(START, "aggregate")
_builder.add_edge("aggregate", "normalize")
_builder.add_edge("normalize", "verify")
_builder.add_conditional_edges("verify", _after_verify, {"metrics": "metrics", END: END})
_builder.add_edge("metrics", END)

graph = _builder.compile()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def _missing_reasons(model: ClientReportModel, missing: list[str]) -> dict[str, str]:
    reasons = {}
    for section_id in missing:
        section = model.section(section_id)
        reasons[section_id] = section.reason or "no records"
    return reasons


async def build_report(
    client_id: str,
    adapters: Iterable[SourceAdapter],
    session: ReportSession | None = None,
) -> ReportSnapshot:
    """
    Run the report graph for one client.

    Args:
        client_id: Raw client identifier; validated before anything runs.
        adapters: One adapter per source.
        session: Optional pre-created session (a fresh one otherwise).

    Returns:
        The snapshot of a Ready session.

    Raises:
        RequestInvalid: malformed client id.
        AggregationIncomplete: a mandatory section is absent.
    """
    client_id = validate_client_id(client_id)
    session = session or ReportSession(client_id=client_id)
    start = time.monotonic()

    logger.info(
        "Building report: client_id=%s, session=%s", client_id, session.session_id,
    )
    result = await graph.ainvoke({
        "client_id": client_id,
        "adapters": list(adapters),
        "session": session,
    })
    processing_ms = int((time.monotonic() - start) * 1000)

    bundle: RawBundle = result["bundle"]
    model: ClientReportModel = result["model"]
    missing = result.get("missing_sections") or []
    if missing:
        raise AggregationIncomplete(
            missing,
            _missing_reasons(model, missing),
            manifest=bundle.manifest(),
            session_id=session.session_id,
        )

    malformed = {}
    for section_id, section in model.sections():
        count = count_malformed(section)
        if count:
            malformed[section_id] = count
    snapshot = ReportSnapshot(
        session=session,
        model=model,
        metrics=result["metrics"],
        manifest=bundle.manifest(),
        malformed_fields=malformed,
        processing_ms=processing_ms,
    )
    logger.info(
        "Report ready: client_id=%s, session=%s, completeness=%.1f%%, %dms",
        client_id, session.session_id,
        snapshot.metrics.completeness_pct, processing_ms,
    )
    return snapshot
