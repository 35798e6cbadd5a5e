# =============================================================================
# Unit Tests — Presentation, Tab Projection & Export Parity
# =============================================================================
#
# Tests the shared formatter, the interactive tab projector, and that the
# exported document shows exactly the values the tabs show.
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import date

import pytest

from client_reports.services import exporter, presentation, projector
from client_reports.services.aggregator import aggregate
from client_reports.services.metrics import compute_metrics
from client_reports.services.normalizer import normalize
from client_reports.sources.base import SourceId
from client_reports.sources.static import build_static_adapters

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"

PROFILE = {
    "firstName": "Asha",
    "lastName": "Rao",
    "panNumber": "ABCDE1234F",
    "dateOfBirth": "1988-04-12",
    "onboardingStep": 3,
    "totalMonthlyIncome": 250000,
    "totalMonthlyExpenses": "not a number",
    "assets": {"cashBankSavings": 1500000},
    "majorGoals": [
        {"goalName": "House", "targetAmount": 5000000, "currentAmount": 1250000},
        {"goalName": "Broken", "targetAmount": 0, "currentAmount": 10},
    ],
}


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _report(dataset=None):
    dataset = dataset if dataset is not None else {SourceId.PROFILE: [PROFILE]}
    model = normalize(_run(aggregate(CLIENT_ID, build_static_adapters(dataset))))
    return model, compute_metrics(model)


def _rows(view):
    return {row.key: row for block in view.blocks for row in block.rows}


# ---------------------------------------------------------------------------
# Test: Formatters
# ---------------------------------------------------------------------------


class TestFormatters:
    @pytest.mark.parametrize("value, expected", [
        (0, "INR 0"),
        (999, "INR 999"),
        (1500000, "INR 15,00,000"),
        (12345678.6, "INR 1,23,45,679"),
        (-25000, "-INR 25,000"),
    ])
    def test_currency_uses_indian_grouping(self, value, expected):
        assert presentation.format_currency(value) == expected

    def test_percent_one_decimal(self):
        assert presentation.format_percent(30) == "30.0%"
        assert presentation.format_percent(12.25) == "12.3%"

    def test_months_singular_and_plural(self):
        assert presentation.format_months(1.0) == "1 month"
        assert presentation.format_months(6.0) == "6 months"

    def test_date(self):
        assert presentation.format_date(date(2024, 3, 9)) == "09/03/2024"

    @pytest.mark.parametrize("pan, masked", [
        ("ABCDE1234F", "******234F"),
        ("ABCDE 1234F", "*******234F"),
        ("ABCDE-1234-F", "********34-F"),
        ("1234", "1234"),
        ("12", "12"),
    ])
    def test_pan_masking(self, pan, masked):
        assert presentation.mask_pan(pan) == masked


# ---------------------------------------------------------------------------
# Test: Tab catalogue and badges
# ---------------------------------------------------------------------------


class TestTabCatalogue:
    def test_every_tab_listed_in_order(self):
        model, _ = _report()
        tabs = projector.tab_catalogue(model)
        assert [t.tab_id for t in tabs] == list(projector.TABS)
        assert tabs[0].tab_id == "overview"
        assert tabs[0].badge is None

    def test_complete_and_pending_badges(self):
        model, _ = _report({
            SourceId.PROFILE: [PROFILE],
            SourceId.ESTATE: PermissionError("denied"),
        })
        tabs = {t.tab_id: t for t in projector.tab_catalogue(model)}
        assert tabs["personal"].badge == "Complete"
        assert tabs["estate-planning"].badge == "Pending"
        assert tabs["estate-planning"].note == presentation.DATA_UNAVAILABLE
        assert tabs["meetings"].badge == "Pending"
        assert tabs["meetings"].note == presentation.NOT_YET_COLLECTED

    def test_every_section_has_a_tab(self):
        section_ids = {section_id for _, section_id in projector.TABS.values() if section_id}
        assert section_ids == set(presentation.SECTION_TITLES)


# ---------------------------------------------------------------------------
# Test: Projection
# ---------------------------------------------------------------------------


class TestProject:
    def test_unknown_tab(self):
        model, metrics = _report()
        with pytest.raises(projector.UnknownTab):
            projector.project(model, metrics, "nonexistent")

    def test_projection_is_pure(self):
        model, metrics = _report()
        first = projector.project(model, metrics, "financial")
        second = projector.project(model, metrics, "financial")
        assert first == second

    def test_missing_and_malformed_use_placeholder(self):
        model, metrics = _report()
        rows = _rows(projector.project(model, metrics, "financial"))

        assert rows["financial.monthly_income"].value == "INR 2,50,000"
        assert rows["financial.monthly_expenses"].value == "Not Available"
        assert rows["financial.monthly_expenses"].state == "malformed"
        assert rows["financial.annual_income"].value == "Not Available"
        assert rows["financial.annual_income"].state == "missing"
        assert rows["financial.savings_rate"].state == "unavailable"

    def test_no_empty_values_anywhere(self):
        model, metrics = _report()
        for tab_id in projector.TABS:
            for row in _rows(projector.project(model, metrics, tab_id)).values():
                assert row.value not in ("", "None", "nan", "NaN"), (tab_id, row.key)

    def test_pan_is_masked_in_view(self):
        model, metrics = _report()
        rows = _rows(projector.project(model, metrics, "personal"))
        assert rows["identity.pan_number"].value == "******234F"

    def test_absent_section_renders_single_note(self):
        model, metrics = _report({
            SourceId.PROFILE: [PROFILE],
            SourceId.ESTATE: TimeoutError("slow"),
        })
        view = projector.project(model, metrics, "estate-planning")
        assert len(view.blocks) == 1
        assert view.blocks[0].note.startswith(presentation.DATA_UNAVAILABLE)
        assert view.blocks[0].rows == []
        assert model.estate.reason == presentation.DATA_UNAVAILABLE

    def test_goal_with_invalid_target_is_flagged(self):
        model, metrics = _report()
        rows = _rows(projector.project(model, metrics, "goals"))
        assert rows["goals.0.progress"].value == "25.0%"
        assert rows["goals.1.progress"].value == "Not Available"
        assert rows["goals.1.progress"].band == "invalid target"

    def test_onboarding_label(self):
        model, metrics = _report()
        rows = _rows(projector.project(model, metrics, "personal"))
        assert rows["identity.onboarding"].value == "Step 3 of 7 (Goals Setting)"

    def test_overview_summarises_sections(self):
        model, metrics = _report()
        view = projector.project(model, metrics, "overview")
        rows = _rows(view)
        assert rows["summary.client_name"].value == "Asha Rao"
        assert rows["summary.sections"].value == f"{metrics.complete_sections} of 16"
        assert rows["status.identity"].value == "Complete"


# ---------------------------------------------------------------------------
# Test: View / export parity
# ---------------------------------------------------------------------------


class TestExportParity:
    def test_every_view_value_appears_identically_in_export(self):
        model, metrics = _report({
            SourceId.PROFILE: [PROFILE],
            SourceId.MEETINGS: [{"_id": "m1", "meetingType": "review", "duration": 45}],
            SourceId.TAX_PLANNING: [{"taxYear": "2024-25",
                                     "aiRecommendations": {"totalPotentialSavings": 12345.5}}],
            SourceId.ESTATE: RuntimeError("estate store down"),
        })
        document_rows = exporter.render(model, metrics).rows()

        checked = 0
        for tab_id in projector.TABS:
            for key, row in _rows(projector.project(model, metrics, tab_id)).items():
                assert document_rows[key] == row.value, (tab_id, key)
                checked += 1
        assert checked > 50
