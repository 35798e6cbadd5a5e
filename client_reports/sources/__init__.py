# =============================================================================
# Sources Package — Upstream Adapters
# =============================================================================
#   - base.py: SourceResult, SourceAdapter protocol, timeout/error guard
#   - store.py: adapters over the SQLAlchemy document store
#   - static.py: in-process adapters (tests, local demos)
# =============================================================================
