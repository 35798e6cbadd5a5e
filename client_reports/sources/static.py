# =============================================================================
# Static Source Adapters — In-Process Records
# =============================================================================
#
# Adapters that serve fixed records from memory. Used by the test suite and
# for local demos without a database. They go through the same guard as the
# store adapters, so timeouts and error classification behave identically:
#
#   StaticAdapter(SourceId.MEETINGS, records=[{...}, {...}])
#   StaticAdapter(SourceId.ESTATE, error=PermissionError("denied"))
#   StaticAdapter(SourceId.TRANSCRIPTIONS, records=[...], delay=30)
# =============================================================================

from __future__ import annotations

import asyncio
import copy
from collections.abc import Mapping, Sequence
from typing import Any

from client_reports.sources.base import SourceId, SourceResult, guarded_fetch


class StaticAdapter:
    """Serves the same records (or the same failure) for every client."""

    def __init__(
        self,
        source_id: SourceId,
        records: Any = None,
        error: BaseException | None = None,
        delay: float = 0.0,
    ):
        self.source_id = source_id
        self.records = [] if records is None else records
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def fetch(self, client_id: str, timeout: float) -> SourceResult:
        self.calls.append(client_id)

        async def _load() -> Any:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            # Hand out a copy so callers can never alter the fixture
            return copy.deepcopy(self.records)

        return await guarded_fetch(self.source_id, _load, timeout)

    def __repr__(self) -> str:
        return f"<StaticAdapter(source={self.source_id.value})>"


def build_static_adapters(
    dataset: Mapping[SourceId | str, Sequence[Any] | BaseException] | None = None,
) -> list[StaticAdapter]:
    """
    One StaticAdapter per known source.

    `dataset` maps a source id to either its records or an exception the
    adapter should raise. Sources not mentioned answer ok with no records.
    """
    dataset = {SourceId(key): value for key, value in (dataset or {}).items()}
    adapters = []
    for source_id in SourceId:
        entry = dataset.get(source_id)
        if isinstance(entry, BaseException):
            adapters.append(StaticAdapter(source_id, error=entry))
        else:
            adapters.append(StaticAdapter(source_id, records=entry))
    return adapters
