# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
#   - report.py: the canonical ClientReportModel (sections, tri-state leaves)
#   - responses.py: API response envelopes, tab view models, error body
#   - requests.py: export request options
#
# These are SEPARATE from the database models (client_reports/db/models.py).
# =============================================================================
