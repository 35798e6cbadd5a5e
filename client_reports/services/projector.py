# =============================================================================
# Interactive View Projector — Tab Slices of the Report
# =============================================================================
#
# project(model, metrics, tab_id) -> TabViewModel
#
# Stateless and I/O-free: the tab id is a parameter, not UI state. The same
# (model, metrics, tab_id) always yields the same view. Switching tabs never
# refetches and never recomputes a metric; it only slices what the Ready
# session already holds.
#
# Rows come from services/presentation.py, the same module the exporter
# renders through.
# =============================================================================

from __future__ import annotations

from client_reports.models.report import ClientReportModel
from client_reports.models.responses import TabSummary, TabViewModel
from client_reports.services import presentation
from client_reports.services.metrics import DerivedMetrics

# tab id → (title, section id). The overview tab spans every section.
TABS: dict[str, tuple[str, str | None]] = {
    "overview": ("Overview", None),
    "personal": ("Personal Information", "identity"),
    "financial": ("Financial Overview", "financial"),
    "assets": ("Assets & Investments", "assets"),
    "debts": ("Debts & Liabilities", "debts"),
    "insurance": ("Insurance", "insurance"),
    "goals": ("Goals", "goals"),
    "retirement": ("Retirement", "retirement"),
    "risk-profile": ("Risk Profile", "riskProfile"),
    "meetings": ("Meetings", "meetings"),
    "documents": ("Legal Documents", "legalDocuments"),
    "chat": ("Chat History", "chatHistory"),
    "ab-testing": ("Risk Assessments", "riskSessions"),
    "estate-planning": ("Estate Planning", "estate"),
    "mutual-fund-recommendations": ("Mutual Funds", "mutualFundRecommendations"),
    "tax-planning": ("Tax Planning", "taxPlanning"),
    "invitations": ("Invitations", "invitations"),
}


class UnknownTab(LookupError):
    """No tab with the requested id."""


def _summary(model: ClientReportModel, tab_id: str) -> TabSummary:
    title, section_id = TABS[tab_id]
    if section_id is None:
        return TabSummary(tab_id=tab_id, title=title)
    badge, note = presentation.section_badge(model, section_id)
    return TabSummary(
        tab_id=tab_id, title=title, section_id=section_id, badge=badge, note=note,
    )


def tab_catalogue(model: ClientReportModel) -> list[TabSummary]:
    """Every tab in display order, with its Complete/Pending badge."""
    return [_summary(model, tab_id) for tab_id in TABS]


def project(
    model: ClientReportModel, metrics: DerivedMetrics, tab_id: str,
) -> TabViewModel:
    """
    Slice the report for one tab.

    Raises:
        UnknownTab: `tab_id` is not in the catalogue.
    """
    if tab_id not in TABS:
        raise UnknownTab(tab_id)

    summary = _summary(model, tab_id)
    if summary.section_id is None:
        blocks = [
            presentation.report_summary(model, metrics),
            presentation.metrics_summary(metrics),
            presentation.section_status_block(model),
        ]
    else:
        blocks = presentation.section_blocks(model, metrics, summary.section_id)

    return TabViewModel(**summary.model_dump(), blocks=blocks)
