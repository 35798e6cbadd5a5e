# =============================================================================
# Unit Tests — Document Exporter
# =============================================================================
#
# Tests document assembly, pagination, file naming and the fpdf2 rendition.
# The PDF is only checked for being a well-formed PDF; its contents are the
# document lines tested above it.
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from unittest.mock import patch

import pytest

from client_reports.config import settings
from client_reports.errors import AggregationIncomplete
from client_reports.models.responses import DocumentLine
from client_reports.services import exporter
from client_reports.services.aggregator import aggregate
from client_reports.services.metrics import compute_metrics
from client_reports.services.normalizer import normalize
from client_reports.sources.base import SourceId
from client_reports.sources.static import build_static_adapters

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"
GENERATED_AT = datetime(2024, 11, 5, 9, 30, tzinfo=UTC)


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _report(profile=None, **sources):
    dataset = {SourceId.PROFILE: [profile] if profile is not None else []}
    dataset.update({SourceId(k): v for k, v in sources.items()})
    bundle = _run(aggregate(CLIENT_ID, build_static_adapters(dataset)))
    model = normalize(bundle, generated_at=GENERATED_AT)
    return model, compute_metrics(model)


def _line(kind, text="x"):
    return DocumentLine(kind=kind, text=text)


# ---------------------------------------------------------------------------
# Test: render
# ---------------------------------------------------------------------------


class TestRender:
    def test_refuses_without_identity(self):
        model, metrics = _report(profile=None)
        with pytest.raises(AggregationIncomplete) as exc_info:
            exporter.render(model, metrics)
        assert exc_info.value.details["missing_sections"] == ["identity"]

    def test_refuses_when_profile_failed(self):
        bundle = _run(aggregate(CLIENT_ID, build_static_adapters({
            SourceId.PROFILE: PermissionError("denied"),
        })))
        model = normalize(bundle)
        with pytest.raises(AggregationIncomplete):
            exporter.render(model, compute_metrics(model))

    def test_other_failed_sources_do_not_block_export(self):
        model, metrics = _report({"firstName": "Asha"}, estate=RuntimeError("down"))
        document = exporter.render(model, metrics)
        assert document.client_name == "Asha"

    def test_every_section_has_a_heading(self):
        model, metrics = _report({"firstName": "Asha", "lastName": "Rao"})
        document = exporter.render(model, metrics)
        headings = [
            line.text for page in document.pages for line in page.lines
            if line.kind == "heading"
        ]
        assert len(headings) == 16
        assert headings[0] == "Personal Information"

    def test_absent_section_rendered_as_note(self):
        model, metrics = _report({"firstName": "Asha"}, estate=RuntimeError("down"))
        lines = [line for page in exporter.render(model, metrics).pages for line in page.lines]
        index = next(
            i for i, line in enumerate(lines)
            if line.kind == "heading" and line.text == "Estate Planning"
        )
        assert lines[index + 1].kind == "subheading"
        assert lines[index + 2].kind == "text"
        assert lines[index + 2].text.startswith("Data unavailable")

    def test_document_metadata(self):
        model, metrics = _report({"firstName": "Asha", "lastName": "Rao"})
        document = exporter.render(model, metrics, rendered_at=GENERATED_AT)
        assert document.title == exporter.DOCUMENT_TITLE
        assert document.client_id == CLIENT_ID
        assert document.client_name == "Asha Rao"
        assert document.generated_at == GENERATED_AT
        assert [p.number for p in document.pages] == list(range(1, document.total_pages + 1))

    def test_rows_use_placeholder_for_missing_values(self):
        model, metrics = _report({"firstName": "Asha"})
        rows = exporter.render(model, metrics).rows()
        assert rows["identity.name"] == "Asha"
        assert rows["identity.email"] == "Not Available"
        assert rows["metrics.net_worth"] == "Not Available"
        assert all(value for value in rows.values())

    def test_render_json_is_serializable(self):
        model, metrics = _report({"firstName": "Asha"})
        payload = exporter.render_json(exporter.render(model, metrics, rendered_at=GENERATED_AT))
        assert payload["client_id"] == CLIENT_ID
        assert payload["generated_at"].startswith("2024-11-05")
        assert payload["pages"][0]["lines"][0] == {
            "kind": "title",
            "text": exporter.DOCUMENT_TITLE,
            "key": None,
            "label": None,
            "value": None,
        }


# ---------------------------------------------------------------------------
# Test: paginate
# ---------------------------------------------------------------------------


class TestPaginate:
    def test_splits_at_page_size(self):
        pages = exporter.paginate([_line("row") for _ in range(10)], per_page=4)
        assert [len(p.lines) for p in pages] == [4, 4, 2]

    def test_heading_is_carried_to_next_page(self):
        lines = [_line("row"), _line("row"), _line("row"), _line("heading", "Assets"),
                 _line("row")]
        pages = exporter.paginate(lines, per_page=4)
        assert pages[0].lines[-1].kind == "row"
        assert pages[1].lines[0].text == "Assets"
        assert len(pages[1].lines) == 2

    def test_heading_and_subheading_carried_together(self):
        lines = [_line("row"), _line("row"), _line("heading", "Debts"),
                 _line("subheading", "Home Loan"), _line("row")]
        pages = exporter.paginate(lines, per_page=4)
        assert [line.kind for line in pages[1].lines] == ["heading", "subheading", "row"]

    def test_lines_are_neither_lost_nor_duplicated(self):
        lines = [_line("heading" if i % 5 == 0 else "row", str(i)) for i in range(47)]
        pages = exporter.paginate(lines, per_page=6)
        flattened = [line.text for page in pages for line in page.lines]
        assert flattened == [str(i) for i in range(47)]

    def test_minimum_page_size(self):
        pages = exporter.paginate([_line("row") for _ in range(8)], per_page=1)
        assert len(pages) == 2

    def test_configured_page_size(self):
        model, metrics = _report({"firstName": "Asha"})
        with patch.object(settings, "export_lines_per_page", 10):
            document = exporter.render(model, metrics)
        assert all(len(page.lines) <= 10 for page in document.pages)


# ---------------------------------------------------------------------------
# Test: export_filename
# ---------------------------------------------------------------------------


class TestExportFilename:
    def test_name_and_date(self):
        model, _ = _report({"firstName": "Asha", "lastName": "Rao"})
        assert exporter.export_filename(model) == "Financial_Report_Asha_Rao_2024-11-05.pdf"

    def test_extension(self):
        model, _ = _report({"firstName": "Asha", "lastName": "Rao"})
        assert exporter.export_filename(model, "json").endswith("_2024-11-05.json")

    def test_non_ascii_and_unsafe_characters_dropped(self):
        model, _ = _report({"firstName": "Zoë", "lastName": "D'Souza/\"x\""})
        assert exporter.export_filename(model) == "Financial_Report_Zoe_DSouzax_2024-11-05.pdf"

    def test_falls_back_to_client_id(self):
        model, _ = _report({"totalMonthlyIncome": 1000})
        assert exporter.export_filename(model) == (
            f"Financial_Report_Client_{CLIENT_ID}_2024-11-05.pdf"
        )


# ---------------------------------------------------------------------------
# Test: render_pdf
# ---------------------------------------------------------------------------


class TestRenderPdf:
    def test_produces_pdf_bytes(self):
        model, metrics = _report({
            "firstName": "Asha",
            "lastName": "Rao",
            "totalMonthlyIncome": 50000,
            "totalMonthlyExpenses": 35000,
        })
        data = exporter.render_pdf(exporter.render(model, metrics))
        assert isinstance(data, bytes)
        assert data.startswith(b"%PDF")

    def test_non_latin1_text_does_not_break_rendering(self):
        model, metrics = _report({"firstName": "आशा", "lastName": "Rao",
                                  "occupation": "Engineer — R&D ₹"})
        data = exporter.render_pdf(exporter.render(model, metrics))
        assert data.startswith(b"%PDF")
