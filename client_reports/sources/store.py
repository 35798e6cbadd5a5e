# =============================================================================
# Store-Backed Source Adapters — SQLAlchemy Document Store
# =============================================================================
#
# The default adapters used by the API. Each reads the rows of one source
# from the `source_records` table, newest first, inside its own short-lived
# session. The session is opened inside the guarded loader, so when the
# deadline cancels the loader the connection goes back to the pool.
#
# PROFILE-REQUIRED POLICY:
#   The profile source answers NotFound when the client has no profile row.
#   Every other source answers ok/empty ("not yet collected").
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from client_reports.config import settings
from client_reports.db.models import SourceRecord
from client_reports.errors import SourceErrorKind, SourceFetchError
from client_reports.sources.base import SourceId, SourceResult, guarded_fetch

logger = logging.getLogger(__name__)

REQUIRED_SOURCES = frozenset({SourceId.PROFILE})


class StoreAdapter:
    """Reads one source's documents for a client from `source_records`."""

    def __init__(
        self,
        source_id: SourceId,
        session_factory: async_sessionmaker[AsyncSession],
        required: bool = False,
    ):
        self.source_id = source_id
        self._session_factory = session_factory
        self.required = required

    async def fetch(self, client_id: str, timeout: float) -> SourceResult:
        async def _load() -> list[Any]:
            return await self._load(client_id)

        return await guarded_fetch(self.source_id, _load, timeout)

    async def _load(self, client_id: str) -> list[Any]:
        stmt = (
            select(SourceRecord.payload)
            .where(
                SourceRecord.client_id == client_id,
                SourceRecord.source_id == self.source_id.value,
            )
            .order_by(SourceRecord.recorded_at.desc(), SourceRecord.id.desc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            payloads = list(result.scalars().all())

        if not payloads and self.required:
            raise SourceFetchError(
                SourceErrorKind.NOT_FOUND,
                f"no {self.source_id.value} record for client {client_id}",
            )
        return payloads

    def __repr__(self) -> str:
        return f"<StoreAdapter(source={self.source_id.value})>"


def build_store_adapters(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> list[StoreAdapter]:
    """One StoreAdapter per known source, sharing a session factory."""
    if session_factory is None:
        from client_reports.db.engine import async_session_factory

        session_factory = async_session_factory

    adapters = [
        StoreAdapter(
            source_id,
            session_factory,
            required=source_id in REQUIRED_SOURCES,
        )
        for source_id in SourceId
    ]
    logger.debug(
        "Built %d store adapters (database=%s)",
        len(adapters), settings.database_url.rsplit("@", 1)[-1],
    )
    return adapters
