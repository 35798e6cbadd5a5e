# =============================================================================
# Client Report Engine
# =============================================================================
# Aggregates a client's data from independently-owned upstream sources,
# normalizes it into one canonical report model with explicit presence
# states, computes derived financial metrics, and serves two projections
# (tabbed interactive view, paginated export) that render identical values.
#
# Package structure:
#   client_reports/
#   ├── api/          → FastAPI route handlers (reports, export) + audit
#   ├── db/           → Async SQLAlchemy engine and ORM models
#   ├── models/       → Pydantic V2 schemas (report model, API contract)
#   ├── services/     → Aggregation, normalization, metrics, projections,
#   │                    session cache, LangGraph pipeline
#   └── sources/      → Source adapters (one per upstream data domain)
# =============================================================================
