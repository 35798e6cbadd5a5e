# =============================================================================
# Services Package — Report Pipeline
# =============================================================================
# Data flows strictly downward through these modules:
#   - aggregator.py: concurrent fan-out to every source adapter → RawBundle
#   - normalizer.py: RawBundle → ClientReportModel (tri-state tree walker)
#   - metrics.py: ClientReportModel → DerivedMetrics
#   - presentation.py: shared value formatting for every consumer
#   - projector.py: per-tab slices for the interactive view
#   - exporter.py: linear paginated document + PDF rendition
#   - session_store.py: Ready-report cache (memory, Redis)
#   - pipeline.py: LangGraph graph wiring the stages + session state machine
# =============================================================================
