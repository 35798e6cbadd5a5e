# =============================================================================
# Report Sessions — State Machine and Session Cache
# =============================================================================
#
# A report session walks one path:
#
#   Requested ──▶ Aggregating ──▶ Normalizing ──▶ Ready ──▶ Viewing / Exporting
#        └────────────┴───────────────┴──▶ Failed
#
# Ready is terminal for the data: once a session is Ready its model and
# metrics never change. Viewing and Exporting are read-only activities on a
# Ready session and may alternate freely. Any other move raises
# InvalidTransition.
#
# The Ready session is cached as a ReportSnapshot so tab switches and
# exports never trigger a refetch:
#
#   ReportSessionStore (Protocol)
#   ├── MemorySessionStore — per-process dict, TTL + bounded size
#   └── RedisSessionStore  — redis.asyncio, JSON via pydantic, SETEX TTL
#
# Redis is optional. If it is unavailable the store degrades: saves are
# logged and dropped, loads miss.
# =============================================================================

from __future__ import annotations

import enum
import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from client_reports.config import settings
from client_reports.errors import InvalidTransition
from client_reports.models.report import ClientReportModel
from client_reports.services.metrics import DerivedMetrics

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session state machine
# ---------------------------------------------------------------------------


class SessionState(str, enum.Enum):
    REQUESTED = "requested"
    AGGREGATING = "aggregating"
    NORMALIZING = "normalizing"
    READY = "ready"
    VIEWING = "viewing"
    EXPORTING = "exporting"
    FAILED = "failed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.REQUESTED: frozenset({SessionState.AGGREGATING, SessionState.FAILED}),
    SessionState.AGGREGATING: frozenset({SessionState.NORMALIZING, SessionState.FAILED}),
    SessionState.NORMALIZING: frozenset({SessionState.READY, SessionState.FAILED}),
    SessionState.READY: frozenset({SessionState.VIEWING, SessionState.EXPORTING}),
    SessionState.VIEWING: frozenset({SessionState.VIEWING, SessionState.EXPORTING}),
    SessionState.EXPORTING: frozenset({SessionState.VIEWING, SessionState.EXPORTING}),
    SessionState.FAILED: frozenset(),
}


class ReportSession(BaseModel):
    """Identity and lifecycle of one report request."""

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    client_id: str
    state: SessionState = SessionState.REQUESTED
    history: list[SessionState] = Field(
        default_factory=lambda: [SessionState.REQUESTED],
    )
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_data(self) -> bool:
        """True once the session has reached Ready."""
        return self.state in (
            SessionState.READY, SessionState.VIEWING, SessionState.EXPORTING,
        )

    def advance(self, target: SessionState) -> None:
        """
        Move to `target`.

        Raises:
            InvalidTransition: `target` is not reachable from the current state.
        """
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransition(
                f"Session {self.session_id}: cannot move from "
                f"{self.state.value} to {target.value}",
            )
        logger.debug(
            "Session %s: %s -> %s", self.session_id, self.state.value, target.value,
        )
        self.state = target
        self.history.append(target)


class ReportSnapshot(BaseModel):
    """Everything a Ready session holds."""

    session: ReportSession
    model: ClientReportModel
    metrics: DerivedMetrics
    manifest: dict[str, dict[str, Any]] = Field(default_factory=dict)
    malformed_fields: dict[str, int] = Field(default_factory=dict)
    processing_ms: int = 0

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def client_id(self) -> str:
        return self.session.client_id


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class ReportSessionStore(Protocol):
    async def save(self, snapshot: ReportSnapshot) -> None: ...

    async def load(self, session_id: str) -> ReportSnapshot | None: ...

    async def delete(self, session_id: str) -> None: ...


class MemorySessionStore:
    """
    In-process session cache.

    Entries expire after `ttl_seconds`; when more than `max_entries` are
    held, the least recently saved is evicted.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self.max_entries = max_entries or settings.session_max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, ReportSnapshot]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def save(self, snapshot: ReportSnapshot) -> None:
        self._entries.pop(snapshot.session_id, None)
        self._entries[snapshot.session_id] = (
            self._clock() + self.ttl_seconds, snapshot,
        )
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted report session %s", evicted)

    async def load(self, session_id: str) -> ReportSnapshot | None:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        expires_at, snapshot = entry
        if self._clock() >= expires_at:
            del self._entries[session_id]
            logger.debug("Report session %s expired", session_id)
            return None
        return snapshot

    async def delete(self, session_id: str) -> None:
        self._entries.pop(session_id, None)


class RedisSessionStore:
    """Session cache shared between workers."""

    key_prefix = "report_session:"

    def __init__(self, url: str | None = None, ttl_seconds: int | None = None):
        self.url = url or settings.redis_url
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds
        self._client = None

    def _redis(self):
        """Lazily create and cache the async Redis client."""
        if self._client is None:
            import redis.asyncio as aioredis
            self._client = aioredis.from_url(self.url, decode_responses=True)
        return self._client

    def _key(self, session_id: str) -> str:
        return f"{self.key_prefix}{session_id}"

    async def save(self, snapshot: ReportSnapshot) -> None:
        try:
            await self._redis().setex(
                self._key(snapshot.session_id),
                self.ttl_seconds,
                snapshot.model_dump_json(),
            )
        except Exception as e:
            logger.warning(
                "Session store unavailable (Redis error): %s. "
                "Session %s will not be cached.",
                e, snapshot.session_id,
            )

    async def load(self, session_id: str) -> ReportSnapshot | None:
        try:
            raw = await self._redis().get(self._key(session_id))
        except Exception as e:
            logger.warning("Session store unavailable (Redis error): %s", e)
            return None
        if raw is None:
            return None
        return ReportSnapshot.model_validate_json(raw)

    async def delete(self, session_id: str) -> None:
        try:
            await self._redis().delete(self._key(session_id))
        except Exception as e:
            logger.warning("Session store unavailable (Redis error): %s", e)


_store: MemorySessionStore | RedisSessionStore | None = None


def get_session_store() -> MemorySessionStore | RedisSessionStore:
    """
    Return the configured session store (created on first use).

    Reads `session_store` from settings:
    - "memory" → MemorySessionStore (default)
    - "redis"  → RedisSessionStore
    """
    global _store
    if _store is None:
        if settings.session_store == "redis":
            _store = RedisSessionStore()
        elif settings.session_store == "memory":
            _store = MemorySessionStore()
        else:
            raise ValueError(
                f"Unknown session store: {settings.session_store!r}. "
                "Use 'memory' or 'redis'.",
            )
        logger.info("Report sessions cached in %s", type(_store).__name__)
    return _store
