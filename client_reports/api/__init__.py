# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - deps.py: Shared dependencies (client id validation, adapters, sessions)
#   - reports.py: Report aggregation, tab projection and export endpoints
#   - audit.py: Request audit middleware (report access log)
# =============================================================================
