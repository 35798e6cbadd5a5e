# =============================================================================
# Aggregator — Concurrent Fan-Out to Every Source
# =============================================================================
#
# aggregate(client_id, adapters) -> RawBundle
#
# SETTLE-ALL / FAIL-NONE:
#   Every adapter is dispatched at once with its own deadline. The bundle is
#   only returned when every adapter has a terminal SourceResult; one slow or
#   broken source never blocks or fails the others. A failure is recorded in
#   the manifest and nothing else.
#
# The adapter contract already promises "never raises, honours the
# deadline", but adapters are external code. _settle() enforces the same
# contract a second time so a misbehaving adapter still yields exactly one
# terminal result within its deadline.
#
# The RawBundle is frozen (read-only mapping) and belongs to a single
# request. It is discarded once normalization has copied what it needs.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

from client_reports.config import settings
from client_reports.errors import RequestInvalid, SourceErrorKind
from client_reports.sources.base import (
    SourceAdapter,
    SourceId,
    SourceResult,
    SourceStatus,
)

logger = logging.getLogger(__name__)

# Values a browser produces when an object or an unset variable is
# interpolated into a URL.
_STRINGIFIED_MARKERS = ("[object Object]", "undefined", "null")


# ---------------------------------------------------------------------------
# Client id validation
# ---------------------------------------------------------------------------


def validate_client_id(client_id: Any) -> str:
    """
    Reject anything that is not a well-formed identity-store id.

    Raises:
        RequestInvalid: on a non-string, empty, stringified-object or
            wrongly formatted id.
    """
    if not isinstance(client_id, str):
        raise RequestInvalid(
            "Client id must be a string.",
            details={"received_type": type(client_id).__name__},
        )

    value = client_id.strip()
    if not value:
        raise RequestInvalid("Client id is required.")

    if value in _STRINGIFIED_MARKERS or "[object" in value or "Object]" in value:
        raise RequestInvalid(
            "Client id is a stringified object, not an identifier.",
            details={"client_id": value[:64]},
        )

    if not re.fullmatch(settings.client_id_pattern, value):
        raise RequestInvalid(
            "Client id has an invalid format.",
            details={"client_id": value[:64]},
        )

    return value


# ---------------------------------------------------------------------------
# RawBundle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawBundle:
    """
    Every SourceResult for one client, keyed by source id.

    The results mapping is read-only. `manifest()` gives the structured
    summary that replaces ad-hoc logging of which sources succeeded.
    """

    client_id: str
    results: Mapping[SourceId, SourceResult]
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    elapsed_ms: int = 0

    def get(self, source_id: SourceId) -> SourceResult | None:
        return self.results.get(source_id)

    def __getitem__(self, source_id: SourceId) -> SourceResult:
        return self.results[source_id]

    def __iter__(self) -> Iterator[SourceId]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> list[SourceId]:
        return [sid for sid, r in self.results.items() if r.succeeded]

    @property
    def failed(self) -> list[SourceId]:
        return [sid for sid, r in self.results.items() if not r.succeeded]

    def manifest(self) -> dict[str, dict[str, Any]]:
        """JSON-ready per-source summary (status, error, counts, timing)."""
        return {
            sid.value: {
                "status": result.status.value,
                "error_kind": result.error.kind.value if result.error else None,
                "detail": result.error.detail if result.error else None,
                "record_count": result.record_count,
                "duration_ms": result.duration_ms,
            }
            for sid, result in self.results.items()
        }


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------


async def _settle(
    adapter: SourceAdapter, client_id: str, timeout: float,
) -> SourceResult:
    """Run one adapter and guarantee a terminal result within `timeout`."""
    source_id = adapter.source_id
    start = time.monotonic()
    try:
        result = await asyncio.wait_for(
            adapter.fetch(client_id, timeout), timeout=timeout,
        )
    except TimeoutError:
        logger.warning(
            "Adapter %s ignored its %.1fs deadline; cancelled",
            source_id.value, timeout,
        )
        return SourceResult.timed_out(
            source_id, timeout, int((time.monotonic() - start) * 1000),
        )
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("Adapter %s raised past its boundary: %s", source_id.value, e)
        return SourceResult.failed(
            source_id,
            SourceErrorKind.UNKNOWN,
            str(e),
            int((time.monotonic() - start) * 1000),
        )

    if not isinstance(result, SourceResult) or result.source_id != source_id:
        logger.warning("Adapter %s returned an invalid result", source_id.value)
        return SourceResult.failed(
            source_id, SourceErrorKind.MALFORMED, "adapter returned an invalid result",
        )
    return result


async def aggregate(
    client_id: Any,
    adapters: Iterable[SourceAdapter],
    timeout_for: Any = None,
) -> RawBundle:
    """
    Dispatch every adapter concurrently and collect a frozen RawBundle.

    Args:
        client_id: Raw client identifier; validated before any dispatch.
        adapters: One adapter per source. Sources of the catalogue with no
            adapter are recorded as failed so the manifest is always
            complete.
        timeout_for: Optional callable `source_id -> seconds`; defaults to
            settings.timeout_for.

    Raises:
        RequestInvalid: malformed client id (nothing is dispatched).
        ValueError: two adapters registered for the same source.
    """
    client_id = validate_client_id(client_id)
    timeout_for = timeout_for or settings.timeout_for

    adapters = list(adapters)
    seen: set[SourceId] = set()
    for adapter in adapters:
        if adapter.source_id in seen:
            raise ValueError(f"Duplicate adapter for source {adapter.source_id.value}")
        seen.add(adapter.source_id)

    started_at = datetime.now(UTC)
    start = time.monotonic()

    settled = await asyncio.gather(*(
        _settle(adapter, client_id, timeout_for(adapter.source_id.value))
        for adapter in adapters
    ))

    results: dict[SourceId, SourceResult] = {r.source_id: r for r in settled}
    for source_id in SourceId:
        if source_id not in results:
            results[source_id] = SourceResult.failed(
                source_id, SourceErrorKind.UNKNOWN, "no adapter registered",
            )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    failed = [sid.value for sid, r in results.items() if r.status is not SourceStatus.OK]
    logger.info(
        "Aggregated client %s: %d/%d sources ok in %dms%s",
        client_id,
        len(results) - len(failed),
        len(results),
        elapsed_ms,
        f" (failed: {', '.join(failed)})" if failed else "",
    )

    return RawBundle(
        client_id=client_id,
        results=MappingProxyType(results),
        started_at=started_at,
        elapsed_ms=elapsed_ms,
    )
