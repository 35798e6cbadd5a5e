# =============================================================================
# Document Exporter — Linear, Paginated Rendition of a Report
# =============================================================================
#
# render(model, metrics) -> ReportDocument     (pure, no I/O)
# render_pdf(document)   -> bytes              (fpdf2)
# render_json(document)  -> dict
#
# The document is assembled from the same DisplayBlocks the interactive view
# shows (services/presentation.py), so every scalar reads identically in
# both places. Layout:
#
#   title
#   Report Summary, Key Metrics, Section Status
#   one heading per section (all 16, in display order), then its blocks;
#   absent sections render as a single "Data unavailable" note
#
# An export without identity is refused outright: there is no client to
# address the report to.
#
# PDF LAYOUT:
# Core fonts (Helvetica) only cover latin-1, so every string is folded to
# latin-1 before it reaches fpdf2. Amounts are therefore prefixed with the
# currency code ("INR 15,00,000") rather than the rupee sign.
# =============================================================================

from __future__ import annotations

import logging
import re
import unicodedata
from datetime import UTC, datetime
from typing import Any

from fpdf import FPDF
from fpdf.enums import XPos, YPos

from client_reports.config import settings
from client_reports.errors import AggregationIncomplete
from client_reports.models.report import SECTION_IDS, ClientReportModel
from client_reports.models.responses import (
    DisplayBlock,
    DocumentLine,
    DocumentPage,
    ReportDocument,
)
from client_reports.services import presentation
from client_reports.services.metrics import DerivedMetrics

logger = logging.getLogger(__name__)

DOCUMENT_TITLE = "Comprehensive Financial Report"

# A page never ends on one of these; they move to the next page with the
# content they introduce.
_HEADING_KINDS = frozenset({"title", "heading", "subheading"})

_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]")


# ---------------------------------------------------------------------------
# Document assembly
# ---------------------------------------------------------------------------


def _block_lines(block: DisplayBlock) -> list[DocumentLine]:
    lines = [DocumentLine(kind="subheading", text=block.title)]
    if block.note:
        lines.append(DocumentLine(kind="text", text=block.note))
    for row in block.rows:
        lines.append(DocumentLine(
            kind="row",
            text=f"{row.label}: {row.value}",
            key=row.key,
            label=row.label,
            value=row.value,
        ))
    return lines


def _content_lines(model: ClientReportModel, metrics: DerivedMetrics) -> list[DocumentLine]:
    lines = [DocumentLine(kind="title", text=DOCUMENT_TITLE)]
    for block in (
        presentation.report_summary(model, metrics),
        presentation.metrics_summary(metrics),
        presentation.section_status_block(model),
    ):
        lines.extend(_block_lines(block))

    for section_id in SECTION_IDS:
        lines.append(DocumentLine(
            kind="heading", text=presentation.SECTION_TITLES[section_id],
        ))
        for block in presentation.section_blocks(model, metrics, section_id):
            lines.extend(_block_lines(block))
    return lines


def paginate(lines: list[DocumentLine], per_page: int) -> list[DocumentPage]:
    """
    Split lines into pages of at most `per_page` lines.

    Headings at the bottom of a full page are carried over so that a page
    never ends with a title that has nothing under it.
    """
    per_page = max(per_page, 4)
    pages: list[list[DocumentLine]] = []
    current: list[DocumentLine] = []

    for line in lines:
        if len(current) >= per_page:
            carried: list[DocumentLine] = []
            while len(current) > 1 and current[-1].kind in _HEADING_KINDS:
                carried.insert(0, current.pop())
            pages.append(current)
            current = carried
        current.append(line)

    if current:
        pages.append(current)
    return [
        DocumentPage(number=i + 1, lines=page_lines)
        for i, page_lines in enumerate(pages)
    ]


def export_filename(model: ClientReportModel, extension: str = "pdf") -> str:
    """
    Financial_Report_<First>_<Last>_<YYYY-MM-DD>.<ext>

    Falls back to the client id when the identity carries no name.
    """
    name = presentation.client_name(model)
    stem = re.sub(r"\s+", "_", name.strip()) if name else f"Client_{model.client_id}"
    # Content-Disposition is latin-1; keep the name ASCII.
    stem = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    stem = _FILENAME_UNSAFE.sub("", stem) or f"Client_{model.client_id}"
    return f"Financial_Report_{stem}_{model.generated_at.date().isoformat()}.{extension}"


def render(
    model: ClientReportModel,
    metrics: DerivedMetrics,
    rendered_at: datetime | None = None,
) -> ReportDocument:
    """
    Build the paginated export document.

    Raises:
        AggregationIncomplete: the identity section is absent or empty.
    """
    missing = model.missing_sections(["identity"])
    if missing:
        raise AggregationIncomplete(
            missing,
            {"identity": model.identity.reason or presentation.DATA_UNAVAILABLE},
        )

    lines = _content_lines(model, metrics)
    pages = paginate(lines, settings.export_lines_per_page)
    document = ReportDocument(
        title=DOCUMENT_TITLE,
        client_id=model.client_id,
        client_name=presentation.client_name(model) or presentation.placeholder(),
        filename=export_filename(model),
        generated_at=rendered_at or datetime.now(UTC),
        pages=pages,
    )
    logger.info(
        "Rendered export for client %s: %d lines on %d pages",
        model.client_id, len(lines), document.total_pages,
    )
    return document


def render_json(document: ReportDocument) -> dict[str, Any]:
    return document.model_dump(mode="json")


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def _latin1(text: str) -> str:
    return text.encode("latin-1", "replace").decode("latin-1")


class ClientReportPDF(FPDF):
    """Report layout: running header, numbered footer, heading/row helpers."""

    def __init__(self, document: ReportDocument):
        super().__init__()
        self.document = document

    def header(self):
        self.set_font("Helvetica", "B", 10)
        self.set_text_color(100, 100, 100)
        self.cell(
            0, 8, _latin1(f"{self.document.title} - {self.document.client_name}"),
            align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT,
        )
        self.set_draw_color(200, 200, 200)
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)
        self.set_text_color(0, 0, 0)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}}", align="C")

    def title_line(self, text: str):
        self.set_font("Helvetica", "B", 18)
        self.cell(0, 12, _latin1(text), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.ln(2)

    def section_title(self, text: str):
        self.ln(3)
        self.set_font("Helvetica", "B", 14)
        self.set_text_color(0, 51, 102)
        self.cell(0, 9, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_text_color(0, 0, 0)

    def subsection_title(self, text: str):
        self.set_font("Helvetica", "B", 11)
        self.cell(0, 7, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def body_text(self, text: str):
        self.set_font("Helvetica", "I", 10)
        self.multi_cell(0, 6, _latin1(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def table_row(self, label: str, value: str):
        self.set_font("Helvetica", "", 10)
        self.cell(70, 6, _latin1(label))
        self.multi_cell(0, 6, _latin1(value), new_x=XPos.LMARGIN, new_y=YPos.NEXT)


def render_pdf(document: ReportDocument) -> bytes:
    pdf = ClientReportPDF(document)
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)
    pdf.set_title(_latin1(document.title))

    for page in document.pages:
        pdf.add_page()
        for line in page.lines:
            if line.kind == "title":
                pdf.title_line(line.text)
            elif line.kind == "heading":
                pdf.section_title(line.text)
            elif line.kind == "subheading":
                pdf.subsection_title(line.text)
            elif line.kind == "row":
                pdf.table_row(line.label or "", line.value or "")
            else:
                pdf.body_text(line.text)

    return bytes(pdf.output())
