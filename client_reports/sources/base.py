# =============================================================================
# Source Adapter Contract — SourceResult, SourceAdapter Protocol, Guard
# =============================================================================
#
# Every upstream data domain (profile, meetings, estate, ...) is reached
# through one adapter exposing:
#
#     async fetch(client_id, timeout) -> SourceResult
#
# CONTRACT:
#   - fetch() never raises (CancelledError excepted). Upstream errors become
#     a SourceResult with status `failed` and a classified SourceError.
#   - A deadline overrun becomes status `timeout` with kind TIMEOUT.
#   - "Client has no data in this domain" is status `ok` with an empty
#     payload. It is never reported as a failure.
#   - Adapters are read-only and safe to retry.
#
# guarded_fetch() implements the contract once; concrete adapters only
# supply an async loader returning a list of raw records.
#
# ARCHITECTURE:
#   SourceAdapter (Protocol)
#   ├── StoreAdapter   — SQLAlchemy document store (sources/store.py)
#   └── StaticAdapter  — in-process records (sources/static.py)
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from client_reports.errors import SourceErrorKind, SourceFetchError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Source Catalogue
# ---------------------------------------------------------------------------


class SourceId(str, enum.Enum):
    """Identifiers of the upstream data sources feeding a client report."""

    PROFILE = "profile"
    KYC = "kyc"
    FINANCIAL_PLANS = "financial_plans"
    MEETINGS = "meetings"
    TRANSCRIPTIONS = "transcriptions"
    LEGAL_DOCUMENTS = "legal_documents"
    CHAT_HISTORY = "chat_history"
    RISK_SESSIONS = "risk_sessions"
    ESTATE = "estate"
    MUTUAL_FUND_RECOMMENDATIONS = "mutual_fund_recommendations"
    EXIT_STRATEGIES = "exit_strategies"
    TAX_PLANNING = "tax_planning"
    INVITATIONS = "invitations"


class SourceStatus(str, enum.Enum):
    """Terminal state of one adapter invocation."""

    OK = "ok"
    FAILED = "failed"
    TIMEOUT = "timeout"


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceError:
    """Classified upstream failure."""

    kind: SourceErrorKind
    detail: str = ""


@dataclass(frozen=True)
class SourceResult:
    """
    Outcome of a single adapter invocation.

    Immutable once produced. `payload` is only set for status OK and is a
    tuple of raw records exactly as the upstream returned them.
    """

    source_id: SourceId
    status: SourceStatus
    payload: tuple[Any, ...] | None = None
    error: SourceError | None = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_ms: int = 0

    @classmethod
    def ok(
        cls, source_id: SourceId, records: Sequence[Any], duration_ms: int = 0,
    ) -> SourceResult:
        return cls(
            source_id=source_id,
            status=SourceStatus.OK,
            payload=tuple(records),
            duration_ms=duration_ms,
        )

    @classmethod
    def failed(
        cls,
        source_id: SourceId,
        kind: SourceErrorKind,
        detail: str = "",
        duration_ms: int = 0,
    ) -> SourceResult:
        return cls(
            source_id=source_id,
            status=SourceStatus.FAILED,
            error=SourceError(kind=kind, detail=detail),
            duration_ms=duration_ms,
        )

    @classmethod
    def timed_out(
        cls, source_id: SourceId, timeout: float, duration_ms: int = 0,
    ) -> SourceResult:
        return cls(
            source_id=source_id,
            status=SourceStatus.TIMEOUT,
            error=SourceError(
                kind=SourceErrorKind.TIMEOUT,
                detail=f"no response within {timeout:g}s",
            ),
            duration_ms=duration_ms,
        )

    @property
    def succeeded(self) -> bool:
        return self.status is SourceStatus.OK

    @property
    def record_count(self) -> int:
        return len(self.payload) if self.payload is not None else 0


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class SourceAdapter(Protocol):
    """
    Protocol for a single upstream source.

    This is the seam external collaborators implement to plug a store into
    the aggregator. Any object with a `source_id` and a conforming `fetch()`
    works; no inheritance required.
    """

    source_id: SourceId

    async def fetch(self, client_id: str, timeout: float) -> SourceResult:
        """
        Fetch all raw records for `client_id` from this source.

        Args:
            client_id: Validated identity-store id.
            timeout: Deadline in seconds for this call.

        Returns:
            A SourceResult in a terminal state. Never raises.
        """
        ...


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


def classify_exception(exc: BaseException) -> SourceErrorKind:
    """Map an arbitrary upstream exception onto a SourceErrorKind."""
    if isinstance(exc, SourceFetchError):
        return exc.kind
    if isinstance(exc, PermissionError):
        return SourceErrorKind.UNAUTHORIZED
    if isinstance(exc, FileNotFoundError):
        return SourceErrorKind.NOT_FOUND
    if isinstance(exc, (ValueError, TypeError)):
        return SourceErrorKind.MALFORMED
    return SourceErrorKind.UNKNOWN


async def guarded_fetch(
    source_id: SourceId,
    loader: Callable[[], Awaitable[Sequence[Any]]],
    timeout: float,
) -> SourceResult:
    """
    Run `loader` under a deadline and convert every outcome into a
    SourceResult.

    CancelledError is re-raised so that an abandoned request tears down its
    in-flight calls instead of leaking them.
    """
    start = time.monotonic()

    def _elapsed() -> int:
        return int((time.monotonic() - start) * 1000)

    try:
        records = await asyncio.wait_for(loader(), timeout=timeout)
    except TimeoutError:
        logger.warning(
            "Source %s timed out after %.1fs", source_id.value, timeout,
        )
        return SourceResult.timed_out(source_id, timeout, _elapsed())
    except asyncio.CancelledError:
        raise
    except Exception as e:
        kind = classify_exception(e)
        logger.warning(
            "Source %s failed (%s): %s", source_id.value, kind.value, e,
        )
        return SourceResult.failed(source_id, kind, str(e), _elapsed())

    if records is None:
        records = []
    if isinstance(records, (str, bytes, Mapping)) or not isinstance(
        records, Sequence,
    ):
        logger.warning(
            "Source %s returned a %s instead of a record list",
            source_id.value, type(records).__name__,
        )
        return SourceResult.failed(
            source_id,
            SourceErrorKind.MALFORMED,
            f"expected a list of records, got {type(records).__name__}",
            _elapsed(),
        )

    logger.debug(
        "Source %s returned %d record(s) in %dms",
        source_id.value, len(records), _elapsed(),
    )
    return SourceResult.ok(source_id, records, _elapsed())
