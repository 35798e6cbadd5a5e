# =============================================================================
# Unit Tests — Report Pipeline & Session State Machine
# =============================================================================
#
# Runs the compiled LangGraph end to end over static adapters.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from client_reports.config import settings
from client_reports.errors import AggregationIncomplete, InvalidTransition, RequestInvalid
from client_reports.services.pipeline import build_report
from client_reports.services.session_store import ReportSession, SessionState
from client_reports.sources.base import SourceId
from client_reports.sources.static import build_static_adapters

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"

PROFILE = {
    "firstName": "Asha",
    "lastName": "Rao",
    "totalMonthlyIncome": 50000,
    "totalMonthlyExpenses": 35000,
    "dateOfBirth": "31/02/1990",
}


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Test: Session state machine
# ---------------------------------------------------------------------------


class TestReportSession:
    def test_happy_path(self):
        session = ReportSession(client_id=CLIENT_ID)
        for state in (
            SessionState.AGGREGATING,
            SessionState.NORMALIZING,
            SessionState.READY,
            SessionState.VIEWING,
            SessionState.EXPORTING,
            SessionState.VIEWING,
        ):
            session.advance(state)
        assert session.state is SessionState.VIEWING
        assert session.has_data
        assert session.history[0] is SessionState.REQUESTED
        assert len(session.history) == 7

    @pytest.mark.parametrize("path", [
        [SessionState.READY],
        [SessionState.AGGREGATING, SessionState.READY],
        [SessionState.VIEWING],
        [SessionState.FAILED, SessionState.AGGREGATING],
        [SessionState.AGGREGATING, SessionState.NORMALIZING, SessionState.READY,
         SessionState.AGGREGATING],
        [SessionState.AGGREGATING, SessionState.NORMALIZING, SessionState.READY,
         SessionState.FAILED],
    ])
    def test_invalid_transitions_raise(self, path):
        session = ReportSession(client_id=CLIENT_ID)
        *allowed, last = path
        for state in allowed:
            session.advance(state)
        before = session.state
        with pytest.raises(InvalidTransition):
            session.advance(last)
        assert session.state is before

    def test_no_data_before_ready(self):
        session = ReportSession(client_id=CLIENT_ID)
        session.advance(SessionState.AGGREGATING)
        assert not session.has_data

    def test_sessions_get_unique_ids(self):
        assert ReportSession(client_id=CLIENT_ID).session_id != \
            ReportSession(client_id=CLIENT_ID).session_id


# ---------------------------------------------------------------------------
# Test: build_report
# ---------------------------------------------------------------------------


class TestBuildReport:
    def test_ready_snapshot(self):
        snapshot = _run(build_report(
            CLIENT_ID,
            build_static_adapters({
                SourceId.PROFILE: [PROFILE],
                SourceId.MEETINGS: TimeoutError("slow"),
            }),
        ))

        assert snapshot.session.state is SessionState.READY
        assert snapshot.session.history == [
            SessionState.REQUESTED,
            SessionState.AGGREGATING,
            SessionState.NORMALIZING,
            SessionState.READY,
        ]
        assert snapshot.client_id == CLIENT_ID
        assert snapshot.metrics.savings_rate.value == 30.0
        assert snapshot.manifest["meetings"]["status"] != "ok"
        assert not snapshot.model.meetings.present
        assert snapshot.processing_ms >= 0

    def test_malformed_fields_counted(self):
        snapshot = _run(build_report(
            CLIENT_ID, build_static_adapters({SourceId.PROFILE: [PROFILE]}),
        ))
        assert snapshot.malformed_fields == {"identity": 1}

    def test_uses_given_session(self):
        session = ReportSession(client_id=CLIENT_ID)
        snapshot = _run(build_report(
            CLIENT_ID, build_static_adapters({SourceId.PROFILE: [PROFILE]}), session,
        ))
        assert snapshot.session_id == session.session_id

    def test_invalid_client_id_runs_nothing(self):
        adapters = build_static_adapters({SourceId.PROFILE: [PROFILE]})
        with pytest.raises(RequestInvalid):
            _run(build_report("[object Object]", adapters))
        assert all(a.calls == [] for a in adapters)

    def test_failed_profile_fails_session(self):
        session = ReportSession(client_id=CLIENT_ID)
        with pytest.raises(AggregationIncomplete) as exc_info:
            _run(build_report(
                CLIENT_ID,
                build_static_adapters({SourceId.PROFILE: PermissionError("denied")}),
                session,
            ))

        error = exc_info.value
        assert error.details["missing_sections"] == ["identity"]
        assert "identity" in error.details["reasons"]
        assert error.session_id == session.session_id
        assert error.manifest["profile"]["status"] == "failed"
        assert error.retryable is True
        assert session.state is SessionState.FAILED
        assert session.history[-1] is SessionState.FAILED

    def test_empty_profile_fails_session(self):
        session = ReportSession(client_id=CLIENT_ID)
        with pytest.raises(AggregationIncomplete):
            _run(build_report(CLIENT_ID, build_static_adapters(), session))
        assert session.state is SessionState.FAILED

    def test_mandatory_sections_configurable(self):
        adapters = build_static_adapters({
            SourceId.PROFILE: [PROFILE],
            SourceId.ESTATE: RuntimeError("down"),
        })
        with patch.object(settings, "mandatory_sections", ["identity", "estate"]):
            with pytest.raises(AggregationIncomplete) as exc_info:
                _run(build_report(CLIENT_ID, adapters))
        assert exc_info.value.details["missing_sections"] == ["estate"]
