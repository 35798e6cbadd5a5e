# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming OUT of the API:
#   - the report envelope {success, data, processingTimeMs, dataIntegrity}
#   - the error envelope {success: false, error, message, retryable}
#   - the display models shared by the tab projector and the exporter
#
# DESIGN DECISION: one set of display models for both consumers
# DisplayRow/DisplayBlock are produced once by services/presentation.py and
# consumed by both the interactive view (TabViewModel) and the exporter
# (ReportDocument). A value can therefore never be formatted two ways.
# =============================================================================

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from client_reports.models.report import ClientReportModel
from client_reports.services.metrics import DerivedMetrics


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class ErrorResponse(BaseModel):
    """
    Body of every failed report request.

    One explanatory error; `retryable` tells the client whether to offer a
    retry action.
    """

    success: bool = False
    error: str = Field(description="Error code, e.g. RequestInvalid")
    message: str = Field(description="Human-readable explanation")
    retryable: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Display models (shared by view and exporter)
# ---------------------------------------------------------------------------


class DisplayRow(BaseModel):
    """One labelled, fully formatted value."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Stable key, e.g. financial.monthly_income")
    label: str
    value: str = Field(description="Formatted value or the placeholder; never empty")
    state: Literal["present", "missing", "malformed", "unavailable"] = "present"
    band: str | None = None


class DisplayBlock(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    rows: list[DisplayRow] = Field(default_factory=list)
    note: str | None = None


class TabSummary(BaseModel):
    """Entry of the tab catalogue, with its completeness badge."""

    tab_id: str
    title: str
    section_id: str | None = None
    badge: Literal["Complete", "Pending"] | None = None
    note: str | None = None


class TabViewModel(TabSummary):
    """Everything the interactive view needs to render one tab."""

    blocks: list[DisplayBlock] = Field(default_factory=list)


class TabCatalogueResponse(BaseModel):
    session_id: str
    client_id: str
    tabs: list[TabSummary]


# ---------------------------------------------------------------------------
# Export document
# ---------------------------------------------------------------------------


class DocumentLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["title", "heading", "subheading", "row", "text"]
    text: str = ""
    key: str | None = None
    label: str | None = None
    value: str | None = None


class DocumentPage(BaseModel):
    number: int
    lines: list[DocumentLine] = Field(default_factory=list)


class ReportDocument(BaseModel):
    """Linear, paginated rendition of a report."""

    title: str
    client_id: str
    client_name: str
    filename: str
    generated_at: datetime
    pages: list[DocumentPage] = Field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def rows(self) -> dict[str, str]:
        """key → formatted value for every row in the document."""
        return {
            line.key: line.value
            for page in self.pages
            for line in page.lines
            if line.kind == "row" and line.key is not None
        }


# ---------------------------------------------------------------------------
# Report envelope
# ---------------------------------------------------------------------------


class SourceStatusEntry(BaseModel):
    status: str
    error_kind: str | None = None
    detail: str | None = None
    record_count: int = 0
    duration_ms: int = 0


class DataIntegrity(BaseModel):
    """Structured manifest of what the report was built from."""

    sources: dict[str, SourceStatusEntry]
    succeeded: list[str]
    failed: list[str]
    sections: dict[str, bool] = Field(
        default_factory=dict,
        description="Section id → complete (present with at least one real value)",
    )
    completeness_pct: float
    complete_sections: int
    total_sections: int
    malformed_fields: dict[str, int] = Field(
        default_factory=dict,
        description="Malformed leaf count per section (only non-zero entries)",
    )


class ReportData(BaseModel):
    session_id: str
    client_id: str
    client_name: str
    report: ClientReportModel
    metrics: DerivedMetrics
    tabs: list[TabSummary]


class ReportResponse(BaseModel):
    """Response for GET /reports/{client_id}."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    data: ReportData
    processing_time_ms: int = Field(alias="processingTimeMs")
    data_integrity: DataIntegrity = Field(alias="dataIntegrity")


# ---------------------------------------------------------------------------
# Run history
# ---------------------------------------------------------------------------


class ReportRunResponse(BaseModel):
    """One recorded aggregation."""

    id: int
    client_id: str
    session_id: str | None = None
    outcome: str
    processing_ms: int
    completeness_pct: float | None = None
    error_message: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReportRunListResponse(BaseModel):
    """Response for GET /reports/{client_id}/runs — newest first."""

    runs: list[ReportRunResponse]
    total: int
