# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# SCHEMA OVERVIEW:
#
# ┌───────────────────────────┐   ┌──────────────────────────────┐
# │  source_records           │   │  report_runs                 │
# ├───────────────────────────┤   ├──────────────────────────────┤
# │ id (PK)                   │   │ id (PK)                      │
# │ client_id (24-hex)        │   │ client_id                    │
# │ source_id (profile, ...)  │   │ session_id                   │
# │ payload (jsonb)           │   │ outcome (ready / incomplete) │
# │ recorded_at               │   │ processing_ms                │
# └───────────────────────────┘   │ completeness_pct             │
#                                 │ manifest (jsonb)             │
# ┌───────────────────────────┐   │ created_at                   │
# │  report_access_logs       │   └──────────────────────────────┘
# ├───────────────────────────┤
# │ id, method, path,         │
# │ client_id, session_id,    │
# │ status_code, client_ip,   │
# │ response_time_ms,         │
# │ created_at                │
# └───────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. `source_records` is the document store the default adapters read. Each
#    upstream domain writes its own rows keyed by (client_id, source_id); the
#    payload is the domain's native JSON document, untouched. How those rows
#    get there is the owning service's concern, not ours.
#
# 2. `report_runs` is the structured record of every aggregation. The
#    manifest column holds one entry per source (status, error kind, record
#    count, duration), so "which sources failed for this client last week"
#    is a query, not a log search.
# =============================================================================

import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class for all ORM models."""

    pass


class SourceRecord(Base):
    """One raw upstream document belonging to a client."""

    __tablename__ = "source_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity-store id of the client (24 hex characters)
    client_id: Mapped[str] = mapped_column(String(24), nullable=False)

    # Upstream domain, one of sources.base.SourceId
    source_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # The upstream document as-is. Shape is owned by the source.
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<SourceRecord(id={self.id}, client={self.client_id}, "
            f"source={self.source_id})>"
        )


# Adapters always filter on both columns
source_record_lookup_idx = Index(
    "idx_source_records_client_source",
    SourceRecord.client_id,
    SourceRecord.source_id,
)


class ReportOutcome(str, enum.Enum):
    """
    Terminal outcome of one aggregation.

    READY       — model built, cached, returned
    INCOMPLETE  — a mandatory section was absent (AggregationIncomplete)
    """

    READY = "ready"
    INCOMPLETE = "incomplete"


class ReportRun(Base):
    """One row per aggregation, written in a background task."""

    __tablename__ = "report_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    client_id: Mapped[str] = mapped_column(String(24), nullable=False)

    # Null for runs that never reached Ready
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    outcome: Mapped[ReportOutcome] = mapped_column(
        Enum(ReportOutcome), nullable=False,
    )

    processing_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    completeness_pct: Mapped[float | None] = mapped_column(Float, nullable=True)

    # {source_id: {status, error_kind, detail, record_count, duration_ms}}
    manifest: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    # Missing mandatory sections, for INCOMPLETE runs
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<ReportRun(id={self.id}, client={self.client_id}, "
            f"outcome={self.outcome})>"
        )


report_run_client_idx = Index(
    "idx_report_runs_client_created",
    ReportRun.client_id,
    ReportRun.created_at,
)


class ReportAccessLog(Base):
    """Audit row per report request (written by api/audit.py)."""

    __tablename__ = "report_access_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    method: Mapped[str] = mapped_column(String(10), nullable=False)
    path: Mapped[str] = mapped_column(String(500), nullable=False)

    # Set by the report handlers on request.state
    client_id: Mapped[str | None] = mapped_column(String(24), nullable=True)
    session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status_code: Mapped[int] = mapped_column(Integer, nullable=False)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
