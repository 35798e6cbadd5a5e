# =============================================================================
# Unit Tests — Source Adapters
# =============================================================================
#
# Tests the adapter guard and the adapters built on it without a database:
# static adapters for the in-memory path, a mocked session factory for the
# document-store adapter.
# =============================================================================

from __future__ import annotations

import asyncio
from dataclasses import FrozenInstanceError
from unittest.mock import AsyncMock, MagicMock

import pytest

from client_reports.errors import SourceErrorKind, SourceFetchError
from client_reports.sources.base import (
    SourceId,
    SourceResult,
    SourceStatus,
    classify_exception,
    guarded_fetch,
)
from client_reports.sources.static import StaticAdapter, build_static_adapters
from client_reports.sources.store import StoreAdapter, build_store_adapters

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _loader(value=None, error=None, delay=0.0):
    async def load():
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return value

    return load


# ---------------------------------------------------------------------------
# Test: Error classification
# ---------------------------------------------------------------------------


class TestClassifyException:
    def test_source_fetch_error_keeps_its_kind(self):
        exc = SourceFetchError(SourceErrorKind.NOT_FOUND, "no profile")
        assert classify_exception(exc) is SourceErrorKind.NOT_FOUND

    def test_permission_error_is_unauthorized(self):
        assert classify_exception(PermissionError("denied")) is SourceErrorKind.UNAUTHORIZED

    def test_file_not_found_is_not_found(self):
        assert classify_exception(FileNotFoundError()) is SourceErrorKind.NOT_FOUND

    def test_value_error_is_malformed(self):
        assert classify_exception(ValueError("bad json")) is SourceErrorKind.MALFORMED

    def test_anything_else_is_unknown(self):
        assert classify_exception(ConnectionError("reset")) is SourceErrorKind.UNKNOWN


# ---------------------------------------------------------------------------
# Test: guarded_fetch
# ---------------------------------------------------------------------------


class TestGuardedFetch:
    """Every outcome of a loader becomes a terminal SourceResult."""

    def test_records_become_ok_result(self):
        result = _run(guarded_fetch(SourceId.MEETINGS, _loader([{"a": 1}, {"b": 2}]), 1.0))
        assert result.status is SourceStatus.OK
        assert result.payload == ({"a": 1}, {"b": 2})
        assert result.record_count == 2
        assert result.error is None

    def test_empty_list_is_ok_not_failure(self):
        result = _run(guarded_fetch(SourceId.MEETINGS, _loader([]), 1.0))
        assert result.succeeded
        assert result.record_count == 0

    def test_none_is_treated_as_no_records(self):
        result = _run(guarded_fetch(SourceId.MEETINGS, _loader(None), 1.0))
        assert result.succeeded
        assert result.payload == ()

    def test_slow_loader_times_out(self):
        result = _run(guarded_fetch(SourceId.ESTATE, _loader([], delay=5), 0.05))
        assert result.status is SourceStatus.TIMEOUT
        assert result.error.kind is SourceErrorKind.TIMEOUT
        assert result.payload is None

    def test_exception_becomes_failed_result(self):
        result = _run(guarded_fetch(
            SourceId.KYC, _loader(error=PermissionError("token expired")), 1.0,
        ))
        assert result.status is SourceStatus.FAILED
        assert result.error.kind is SourceErrorKind.UNAUTHORIZED
        assert "token expired" in result.error.detail

    def test_mapping_payload_is_malformed(self):
        """A single object where a list was expected is not silently wrapped."""
        result = _run(guarded_fetch(SourceId.PROFILE, _loader({"firstName": "A"}), 1.0))
        assert result.status is SourceStatus.FAILED
        assert result.error.kind is SourceErrorKind.MALFORMED

    def test_string_payload_is_malformed(self):
        result = _run(guarded_fetch(SourceId.PROFILE, _loader("oops"), 1.0))
        assert result.error.kind is SourceErrorKind.MALFORMED

    def test_result_is_immutable(self):
        result = SourceResult.ok(SourceId.CHAT_HISTORY, [{"x": 1}])
        with pytest.raises(FrozenInstanceError):
            result.status = SourceStatus.FAILED


# ---------------------------------------------------------------------------
# Test: StaticAdapter
# ---------------------------------------------------------------------------


class TestStaticAdapter:
    def test_serves_records(self):
        adapter = StaticAdapter(SourceId.INVITATIONS, records=[{"email": "a@b.c"}])
        result = _run(adapter.fetch(CLIENT_ID, 1.0))
        assert result.source_id is SourceId.INVITATIONS
        assert result.payload == ({"email": "a@b.c"},)
        assert adapter.calls == [CLIENT_ID]

    def test_records_are_copied(self):
        records = [{"status": "sent"}]
        adapter = StaticAdapter(SourceId.INVITATIONS, records=records)
        result = _run(adapter.fetch(CLIENT_ID, 1.0))
        result.payload[0]["status"] = "changed"
        assert records[0]["status"] == "sent"

    def test_error_is_classified(self):
        adapter = StaticAdapter(SourceId.ESTATE, error=FileNotFoundError("gone"))
        result = _run(adapter.fetch(CLIENT_ID, 1.0))
        assert result.error.kind is SourceErrorKind.NOT_FOUND

    def test_delay_past_deadline_times_out(self):
        adapter = StaticAdapter(SourceId.TRANSCRIPTIONS, records=[], delay=5)
        result = _run(adapter.fetch(CLIENT_ID, 0.05))
        assert result.status is SourceStatus.TIMEOUT

    def test_build_static_adapters_covers_catalogue(self):
        adapters = build_static_adapters({
            "profile": [{"firstName": "Asha"}],
            SourceId.KYC: RuntimeError("kyc down"),
        })
        by_source = {a.source_id: a for a in adapters}
        assert set(by_source) == set(SourceId)
        assert by_source[SourceId.PROFILE].records == [{"firstName": "Asha"}]
        assert isinstance(by_source[SourceId.KYC].error, RuntimeError)
        assert by_source[SourceId.ESTATE].records == []


# ---------------------------------------------------------------------------
# Test: StoreAdapter
# ---------------------------------------------------------------------------


def _session_factory(payloads):
    """Mock async_sessionmaker whose session returns `payloads`."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = payloads

    session = AsyncMock()
    session.execute = AsyncMock(return_value=result)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context), session


class TestStoreAdapter:
    def test_returns_payloads(self):
        factory, session = _session_factory([{"meetingType": "review"}])
        adapter = StoreAdapter(SourceId.MEETINGS, factory)
        result = _run(adapter.fetch(CLIENT_ID, 1.0))
        assert result.succeeded
        assert result.payload == ({"meetingType": "review"},)
        session.execute.assert_awaited_once()

    def test_optional_source_with_no_rows_is_empty_ok(self):
        factory, _ = _session_factory([])
        result = _run(StoreAdapter(SourceId.MEETINGS, factory).fetch(CLIENT_ID, 1.0))
        assert result.succeeded
        assert result.record_count == 0

    def test_required_source_with_no_rows_is_not_found(self):
        factory, _ = _session_factory([])
        adapter = StoreAdapter(SourceId.PROFILE, factory, required=True)
        result = _run(adapter.fetch(CLIENT_ID, 1.0))
        assert result.status is SourceStatus.FAILED
        assert result.error.kind is SourceErrorKind.NOT_FOUND

    def test_database_error_becomes_failed_result(self):
        factory, session = _session_factory([])
        session.execute = AsyncMock(side_effect=ConnectionRefusedError("db down"))
        result = _run(StoreAdapter(SourceId.ESTATE, factory).fetch(CLIENT_ID, 1.0))
        assert result.status is SourceStatus.FAILED
        assert result.error.kind is SourceErrorKind.UNKNOWN

    def test_only_profile_is_required(self):
        factory, _ = _session_factory([])
        adapters = build_store_adapters(factory)
        required = {a.source_id for a in adapters if a.required}
        assert required == {SourceId.PROFILE}
        assert len(adapters) == len(SourceId)
