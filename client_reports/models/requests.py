# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# The report endpoints take the client id from the path; the only request
# body is the export options for POST /reports/{client_id}/export.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ExportFormat = Literal["pdf", "json"]


class ExportRequest(BaseModel):
    """
    Request body for POST /reports/{client_id}/export — aggregate afresh,
    then export.

    Example:
        {"format": "pdf"}
    """

    format: ExportFormat = Field(
        default="pdf",
        description="'pdf' for a downloadable document, 'json' for the paginated document model",
    )

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"format": "pdf"}, {"format": "json"}]},
    )
