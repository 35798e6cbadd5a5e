# =============================================================================
# Presentation — Shared Formatting for Every Consumer
# =============================================================================
#
# The interactive view and the exporter both render through this module:
#
#   section_blocks(model, metrics, section_id) -> list[DisplayBlock]
#   metrics_summary(metrics)                   -> DisplayBlock
#   section_badge(model, section_id)           -> ("Complete" | "Pending", note)
#
# Every value leaves here as a finished string. Missing, malformed and
# undefined values become the configured placeholder ("Not Available"),
# never "", None or NaN. PAN numbers are masked everywhere.
#
# Nothing here performs I/O or recomputes a metric: values come from the
# normalized model and the precomputed DerivedMetrics only.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import date
from typing import Any

from client_reports.config import settings
from client_reports.models.report import (
    ClientReportModel,
    Collection,
    Leaf,
    Record,
    Section,
    section_complete,
)
from client_reports.models.responses import DisplayBlock, DisplayRow
from client_reports.services.metrics import (
    DerivedMetrics,
    GoalProgress,
    Metric,
    round_half_up,
)
from client_reports.services.normalizer import DATA_UNAVAILABLE

NOT_YET_COLLECTED = "Not yet collected"
NO_RECORDS = "No records"

SECTION_TITLES: dict[str, str] = {
    "identity": "Personal Information",
    "financial": "Financial Overview",
    "assets": "Assets & Investments",
    "debts": "Debts & Liabilities",
    "insurance": "Insurance Coverage",
    "goals": "Financial Goals",
    "retirement": "Retirement Planning",
    "riskProfile": "Risk Profile",
    "meetings": "Meetings",
    "legalDocuments": "Legal Documents",
    "chatHistory": "Chat History",
    "riskSessions": "Risk Assessment Sessions",
    "estate": "Estate Planning",
    "mutualFundRecommendations": "Mutual Fund Recommendations",
    "taxPlanning": "Tax Planning",
    "invitations": "Client Invitations",
}


# ---------------------------------------------------------------------------
# Value formatters
# ---------------------------------------------------------------------------


def placeholder() -> str:
    return settings.placeholder_text


def _group_indian(digits: str) -> str:
    # 12345678 → 1,23,45,678
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(value: float) -> str:
    amount = int(round_half_up(abs(value), 0))
    sign = "-" if value < 0 and amount else ""
    return f"{sign}{settings.currency_code} {_group_indian(str(amount))}"


def format_percent(value: float) -> str:
    return f"{round_half_up(value, 1):.1f}%"


def format_months(value: float) -> str:
    months = int(value)
    return "1 month" if months == 1 else f"{months} months"


def format_years(value: float) -> str:
    years = int(value)
    return "1 year" if years == 1 else f"{years} years"


def format_date(value: date) -> str:
    return value.strftime("%d/%m/%Y")


def format_flag(value: bool) -> str:
    return "Yes" if value else "No"


def format_count(value: int) -> str:
    return str(value)


def format_text(value: str) -> str:
    return value


def format_score(value: float) -> str:
    return f"{round_half_up(value, 2):g}"


def mask_pan(value: str) -> str:
    """ABCDE1234F → ******234F. Separators are masked like any other character."""
    return "*" * max(len(value) - 4, 0) + value[-4:]


def client_name(model: ClientReportModel) -> str | None:
    """'First Last' from the identity section, or None when neither is known."""
    parts = [
        leaf.value
        for leaf in (model.identity.first_name, model.identity.last_name)
        if leaf.present
    ]
    return " ".join(parts) if parts else None


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def leaf_row(
    key: str, label: str, leaf: Leaf, fmt: Callable[[Any], str] = format_text,
) -> DisplayRow:
    if leaf.present:
        return DisplayRow(key=key, label=label, value=fmt(leaf.value))
    return DisplayRow(
        key=key,
        label=label,
        value=placeholder(),
        state="malformed" if leaf.malformed else "missing",
    )


def metric_row(
    key: str, label: str, metric: Metric, fmt: Callable[[float], str],
) -> DisplayRow:
    if metric.available:
        return DisplayRow(key=key, label=label, value=fmt(metric.value), band=metric.band)
    return DisplayRow(key=key, label=label, value=placeholder(), state="unavailable")


def _rows(prefix: str, node: Any, spec: Sequence[tuple[str, str, Callable]]) -> list[DisplayRow]:
    return [
        leaf_row(f"{prefix}.{attr}", label, getattr(node, attr), fmt)
        for attr, label, fmt in spec
    ]


def _unavailable_note(section: Section) -> str:
    if section.error_kind is None:
        return DATA_UNAVAILABLE
    return f"{DATA_UNAVAILABLE} ({section.error_kind.value.replace('_', ' ')})"


def _unavailable_block(title: str, section: Section) -> DisplayBlock:
    return DisplayBlock(title=title, note=_unavailable_note(section))


def _record_blocks(
    section_id: str,
    collection: Collection,
    title: Callable[[int, Record], str],
    spec: Sequence[tuple[str, str, Callable]],
    empty_title: str,
) -> list[DisplayBlock]:
    if not collection.present:
        return [_unavailable_block(empty_title, collection)]
    if not collection.items:
        return [DisplayBlock(title=empty_title, note=NO_RECORDS)]
    return [
        DisplayBlock(title=title(i, item), rows=_rows(f"{section_id}.{i}", item, spec))
        for i, item in enumerate(collection.items)
    ]


def _numbered(noun: str, name_attr: str | None = None) -> Callable[[int, Record], str]:
    def title(i: int, item: Record) -> str:
        if name_attr is not None:
            leaf = getattr(item, name_attr)
            if leaf.present:
                return f"{noun} {i + 1}: {leaf.value}"
        return f"{noun} {i + 1}"

    return title


# ---------------------------------------------------------------------------
# Field specs: (attribute, label, formatter)
# ---------------------------------------------------------------------------

_IDENTITY = [
    ("email", "Email", format_text),
    ("phone", "Phone", format_text),
    ("date_of_birth", "Date of Birth", format_date),
    ("pan_number", "PAN", mask_pan),
    ("gender", "Gender", format_text),
    ("marital_status", "Marital Status", format_text),
    ("dependents", "Dependents", format_count),
    ("occupation", "Occupation", format_text),
    ("employer", "Employer / Business", format_text),
    ("client_status", "Client Status", format_text),
    ("last_active", "Last Active", format_date),
    ("city", "City", format_text),
    ("state", "State", format_text),
    ("country", "Country", format_text),
    ("kyc_status", "KYC Status", format_text),
]

_KYC = [
    ("pan_status", "PAN Verification", format_text),
    ("aadhar_status", "Aadhaar Verification", format_text),
    ("overall_status", "Overall Status", format_text),
    ("updated_at", "Last Updated", format_date),
]

_FINANCIAL = [
    ("monthly_income", "Monthly Income", format_currency),
    ("monthly_expenses", "Monthly Expenses", format_currency),
    ("annual_income", "Annual Income", format_currency),
    ("additional_income", "Additional Income", format_currency),
    ("income_type", "Income Type", format_text),
    ("savings_target", "Monthly Savings Target", format_currency),
    ("net_worth_reported", "Reported Net Worth", format_currency),
]

_EXPENSES = [
    ("housing_rent", "Housing / Rent", format_currency),
    ("groceries_utilities_food", "Groceries, Utilities & Food", format_currency),
    ("transportation", "Transportation", format_currency),
    ("education", "Education", format_currency),
    ("healthcare", "Healthcare", format_currency),
    ("entertainment", "Entertainment", format_currency),
    ("insurance_premiums", "Insurance Premiums", format_currency),
    ("loan_emis", "Loan EMIs", format_currency),
    ("other_expenses", "Other Expenses", format_currency),
]

_ASSETS = [
    ("cash_bank_savings", "Cash & Bank Savings", format_currency),
    ("real_estate", "Real Estate", format_currency),
    ("mutual_funds", "Mutual Funds", format_currency),
    ("direct_stocks", "Direct Stocks", format_currency),
    ("ppf", "PPF", format_currency),
    ("epf", "EPF", format_currency),
    ("nps", "NPS", format_currency),
    ("fixed_deposits", "Fixed Deposits", format_currency),
    ("bonds_debentures", "Bonds & Debentures", format_currency),
    ("nsc", "NSC", format_currency),
    ("ulip", "ULIP", format_currency),
    ("other_investments", "Other Investments", format_currency),
]

_LOAN_TITLES = {
    "home_loan": "Home Loan",
    "personal_loan": "Personal Loan",
    "car_loan": "Car Loan",
    "education_loan": "Education Loan",
    "gold_loan": "Gold Loan",
    "business_loan": "Business Loan",
    "other_loans": "Other Loans",
}

_LOAN = [
    ("has_loan", "Active", format_flag),
    ("outstanding", "Outstanding", format_currency),
    ("monthly_emi", "Monthly EMI", format_currency),
    ("interest_rate", "Interest Rate", format_percent),
]

_CREDIT_CARDS = [
    ("has_debt", "Carries Balance", format_flag),
    ("outstanding", "Outstanding", format_currency),
    ("monthly_payment", "Monthly Payment", format_currency),
    ("interest_rate", "Average Interest Rate", format_percent),
]

_POLICY_TITLES = {
    "life": "Life Insurance",
    "health": "Health Insurance",
    "vehicle": "Vehicle Insurance",
    "other": "Other Insurance",
}

_POLICY = [
    ("has_cover", "Covered", format_flag),
    ("cover_amount", "Cover Amount", format_currency),
    ("annual_premium", "Annual Premium", format_currency),
    ("policy_type", "Policy Type", format_text),
]

_GOAL = [
    ("name", "Goal", format_text),
    ("target_amount", "Target Amount", format_currency),
    ("current_amount", "Current Amount", format_currency),
    ("target_year", "Target Year", format_count),
    ("priority", "Priority", format_text),
]

_FINANCIAL_PLAN = [
    ("plan_name", "Plan Name", format_text),
    ("plan_type", "Plan Type", format_text),
    ("status", "Status", format_text),
    ("risk_level", "Risk Level", format_text),
    ("created_at", "Created", format_date),
    ("updated_at", "Last Updated", format_date),
]

_RETIREMENT = [
    ("current_age", "Current Age", format_count),
    ("retirement_age", "Retirement Age", format_count),
    ("has_corpus", "Has Retirement Corpus", format_flag),
    ("current_corpus", "Current Corpus", format_currency),
    ("target_corpus", "Target Corpus", format_currency),
]

_RISK_PROFILE = [
    ("investment_experience", "Investment Experience", format_text),
    ("risk_tolerance", "Risk Tolerance", format_text),
    ("investment_horizon", "Investment Horizon", format_text),
    ("monthly_investment_capacity", "Monthly Investment Capacity", format_currency),
]

_MEETING = [
    ("meeting_type", "Type", format_text),
    ("status", "Status", format_text),
    ("scheduled_at", "Scheduled", format_date),
    ("duration_minutes", "Duration (minutes)", format_count),
    ("transcript_status", "Transcript", format_text),
    ("transcript_language", "Transcript Language", format_text),
]

_LEGAL_DOCUMENT = [
    ("status", "Status", format_text),
    ("sent_at", "Sent", format_date),
    ("signed_at", "Signed", format_date),
    ("expires_at", "Expires", format_date),
]

_CHAT = [
    ("status", "Status", format_text),
    ("message_count", "Messages", format_count),
    ("last_activity", "Last Activity", format_date),
]

_RISK_SESSION = [
    ("status", "Status", format_text),
    ("total_score", "Score", format_score),
    ("max_score", "Maximum Score", format_score),
    ("risk_percentage", "Risk Percentage", format_percent),
    ("risk_category", "Risk Category", format_text),
    ("completed_at", "Completed", format_date),
]

_ESTATE = [
    ("has_will", "Has Will", format_flag),
    ("will_type", "Will Type", format_text),
    ("will_date", "Will Dated", format_date),
    ("estimated_net_estate", "Estimated Net Estate", format_currency),
    ("estate_tax_liability", "Estate Tax Liability", format_currency),
    ("succession_complexity", "Succession Complexity", format_text),
    ("property_count", "Real Estate Properties", format_count),
]

_MUTUAL_FUND = [
    ("fund_house", "Fund House", format_text),
    ("monthly_sip", "Recommended Monthly SIP", format_currency),
    ("sip_start_date", "SIP Start", format_date),
    ("expected_exit_date", "Expected Exit", format_date),
    ("status", "Status", format_text),
]

_EXIT_STRATEGY = [
    ("fund_category", "Category", format_text),
    ("status", "Status", format_text),
    ("priority", "Priority", format_text),
]

_TAX_PLAN = [
    ("gross_total_income", "Gross Total Income", format_currency),
    ("total_deductions", "Total Deductions", format_currency),
    ("taxable_income", "Taxable Income", format_currency),
    ("total_tax_liability", "Total Tax Liability", format_currency),
    ("potential_savings", "Potential Savings", format_currency),
    ("status", "Status", format_text),
]

_INVITATION = [
    ("email", "Email", format_text),
    ("status", "Status", format_text),
    ("sent_at", "Sent", format_date),
    ("expires_at", "Expires", format_date),
]


# ---------------------------------------------------------------------------
# Metrics summary
# ---------------------------------------------------------------------------


def metrics_summary(metrics: DerivedMetrics) -> DisplayBlock:
    """The headline metrics, shown on the overview tab and the export cover."""
    return DisplayBlock(title="Key Metrics", rows=[
        metric_row("metrics.net_worth", "Net Worth", metrics.net_worth, format_currency),
        metric_row("metrics.total_assets", "Total Assets", metrics.total_assets, format_currency),
        metric_row(
            "metrics.total_liabilities", "Total Liabilities",
            metrics.total_liabilities, format_currency,
        ),
        metric_row(
            "metrics.monthly_savings", "Monthly Savings",
            metrics.monthly_savings, format_currency,
        ),
        metric_row("metrics.savings_rate", "Savings Rate", metrics.savings_rate, format_percent),
        metric_row("metrics.expense_ratio", "Expense Ratio", metrics.expense_ratio, format_percent),
        metric_row(
            "metrics.debt_service_ratio", "Debt Service Ratio",
            metrics.debt_service_ratio, format_percent,
        ),
        metric_row(
            "metrics.emergency_fund_months", "Emergency Fund",
            metrics.emergency_fund_months, format_months,
        ),
        metric_row(
            "metrics.aggregate_goal_progress", "Goal Progress",
            metrics.aggregate_goal_progress, format_percent,
        ),
        DisplayRow(
            key="metrics.completeness_pct",
            label="Profile Completeness",
            value=format_percent(metrics.completeness_pct),
        ),
    ])


def report_summary(model: ClientReportModel, metrics: DerivedMetrics) -> DisplayBlock:
    name = client_name(model)
    total = len(metrics.completeness)
    return DisplayBlock(title="Report Summary", rows=[
        DisplayRow(
            key="summary.client_name",
            label="Client",
            value=name or placeholder(),
            state="present" if name else "missing",
        ),
        DisplayRow(key="summary.client_id", label="Client ID", value=model.client_id),
        DisplayRow(
            key="summary.generated_on",
            label="Generated On",
            value=format_date(model.generated_at.date()),
        ),
        DisplayRow(
            key="summary.sections",
            label="Sections Complete",
            value=f"{metrics.complete_sections} of {total}",
        ),
    ])


def section_badge(
    model: ClientReportModel, section_id: str,
) -> tuple[str, str | None]:
    """("Complete", None) or ("Pending", why)."""
    section = model.section(section_id)
    if not section.present:
        return "Pending", DATA_UNAVAILABLE
    if section_complete(section):
        return "Complete", None
    return "Pending", NOT_YET_COLLECTED


def section_status_block(model: ClientReportModel) -> DisplayBlock:
    rows = []
    for section_id, title in SECTION_TITLES.items():
        badge, note = section_badge(model, section_id)
        rows.append(DisplayRow(
            key=f"status.{section_id}",
            label=title,
            value=badge,
            band=note,
        ))
    return DisplayBlock(title="Section Status", rows=rows)


# ---------------------------------------------------------------------------
# Section blocks
# ---------------------------------------------------------------------------


def _onboarding_row(onboarding: Metric) -> DisplayRow:
    if not onboarding.available:
        return metric_row("identity.onboarding", "Onboarding Progress", onboarding, str)
    return DisplayRow(
        key="identity.onboarding",
        label="Onboarding Progress",
        value=f"Step {int(onboarding.value)} of 7 ({onboarding.band})",
        band=onboarding.band,
    )


def _identity(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    identity = model.identity
    name = client_name(model)
    rows = [
        DisplayRow(key="identity.name", label="Name", value=name)
        if name else
        DisplayRow(key="identity.name", label="Name", value=placeholder(), state="missing"),
        *_rows("identity", identity, _IDENTITY),
        _onboarding_row(metrics.onboarding_progress),
    ]
    return [
        DisplayBlock(title="Personal Details", rows=rows),
        *_record_blocks(
            "identity.kyc", identity.kyc_verifications,
            _numbered("KYC Verification"), _KYC, "KYC Verifications",
        ),
    ]


def _financial(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    financial = model.financial
    return [
        DisplayBlock(title="Income & Expenses", rows=_rows("financial", financial, _FINANCIAL)),
        DisplayBlock(
            title="Monthly Expense Breakdown",
            rows=_rows("financial.expenses", financial.expense_breakdown, _EXPENSES),
        ),
        DisplayBlock(title="Cash Flow Ratios", rows=[
            metric_row(
                "financial.monthly_savings", "Monthly Savings",
                metrics.monthly_savings, format_currency,
            ),
            metric_row(
                "financial.savings_rate", "Savings Rate",
                metrics.savings_rate, format_percent,
            ),
            metric_row(
                "financial.expense_ratio", "Expense Ratio",
                metrics.expense_ratio, format_percent,
            ),
            metric_row(
                "financial.debt_service_ratio", "Debt Service Ratio",
                metrics.debt_service_ratio, format_percent,
            ),
            metric_row(
                "financial.emergency_fund", "Emergency Fund Coverage",
                metrics.emergency_fund_months, format_months,
            ),
        ]),
    ]


def _assets(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return [
        DisplayBlock(title="Holdings", rows=_rows("assets", model.assets, _ASSETS)),
        DisplayBlock(title="Totals", rows=[
            metric_row("assets.total", "Total Assets", metrics.total_assets, format_currency),
            metric_row("assets.net_worth", "Net Worth", metrics.net_worth, format_currency),
        ]),
    ]


def _debts(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    debts = model.debts
    blocks = [
        DisplayBlock(title=_LOAN_TITLES[name], rows=_rows(f"debts.{name}", loan, _LOAN))
        for name, loan in debts.loans()
    ]
    blocks.append(DisplayBlock(
        title="Credit Cards",
        rows=_rows("debts.credit_cards", debts.credit_cards, _CREDIT_CARDS),
    ))
    blocks.append(DisplayBlock(title="Totals", rows=[
        metric_row(
            "debts.total", "Total Liabilities", metrics.total_liabilities, format_currency,
        ),
        metric_row("debts.total_emi", "Total Monthly EMI", metrics.total_emi, format_currency),
        metric_row(
            "debts.debt_service_ratio", "Debt Service Ratio",
            metrics.debt_service_ratio, format_percent,
        ),
    ]))
    return blocks


def _insurance(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    blocks = [
        DisplayBlock(title=_POLICY_TITLES[name], rows=_rows(f"insurance.{name}", policy, _POLICY))
        for name, policy in model.insurance.policies()
    ]
    blocks.append(DisplayBlock(title="Totals", rows=[
        metric_row(
            "insurance.total_cover", "Total Cover",
            metrics.total_insurance_cover, format_currency,
        ),
        metric_row(
            "insurance.total_premium", "Total Annual Premium",
            metrics.total_insurance_premium, format_currency,
        ),
    ]))
    return blocks


def _progress_row(key: str, progress: GoalProgress | None) -> DisplayRow:
    if progress is None or not progress.counted:
        return DisplayRow(
            key=key,
            label="Progress",
            value=placeholder(),
            state="unavailable",
            band=progress.flag if progress else None,
        )
    return DisplayRow(key=key, label="Progress", value=format_percent(progress.progress_pct))


def _goals(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    goals = model.goals
    by_index = {p.index: p for p in metrics.goal_progress}
    if goals.items:
        blocks = [
            DisplayBlock(
                title=_numbered("Goal", "name")(i, goal),
                rows=[
                    *_rows(f"goals.{i}", goal, _GOAL),
                    _progress_row(f"goals.{i}.progress", by_index.get(i)),
                ],
            )
            for i, goal in enumerate(goals.items)
        ]
    else:
        blocks = [DisplayBlock(title="Goals", note=NO_RECORDS)]
    blocks.append(DisplayBlock(title="Overall", rows=[
        metric_row(
            "goals.aggregate_progress", "Average Goal Progress",
            metrics.aggregate_goal_progress, format_percent,
        ),
    ]))
    blocks.extend(_record_blocks(
        "goals.plans", goals.financial_plans,
        _numbered("Financial Plan", "plan_name"), _FINANCIAL_PLAN, "Financial Plans",
    ))
    return blocks


def _retirement(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return [DisplayBlock(title="Retirement", rows=[
        *_rows("retirement", model.retirement, _RETIREMENT),
        metric_row(
            "retirement.years_to_retirement", "Years to Retirement",
            metrics.years_to_retirement, format_years,
        ),
    ])]


def _risk_profile(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return [DisplayBlock(
        title="Risk Profile", rows=_rows("riskProfile", model.risk_profile, _RISK_PROFILE),
    )]


def _meetings(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    meetings = model.meetings
    blocks = _record_blocks(
        "meetings", meetings, _numbered("Meeting", "meeting_type"), _MEETING, "Meetings",
    )
    if meetings.present and not meetings.transcripts.present:
        blocks.append(DisplayBlock(
            title="Transcripts", note=_unavailable_note(meetings.transcripts),
        ))
    return blocks


def _legal_documents(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return _record_blocks(
        "legalDocuments", model.legal_documents,
        _numbered("Letter of Engagement"), _LEGAL_DOCUMENT, "Legal Documents",
    )


def _chat_history(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return _record_blocks(
        "chatHistory", model.chat_history,
        _numbered("Conversation", "title"), _CHAT, "Conversations",
    )


def _risk_sessions(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return _record_blocks(
        "riskSessions", model.risk_sessions,
        _numbered("Session", "session_id"), _RISK_SESSION, "Risk Assessment Sessions",
    )


def _estate(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return [DisplayBlock(title="Estate", rows=_rows("estate", model.estate, _ESTATE))]


def _mutual_funds(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    section = model.mutual_fund_recommendations
    blocks = _record_blocks(
        "mutualFundRecommendations", section,
        _numbered("Fund", "fund_name"), _MUTUAL_FUND, "Recommendations",
    )
    blocks.append(DisplayBlock(title="Totals", rows=[
        metric_row(
            "mutualFundRecommendations.total_sip", "Total Monthly SIP",
            metrics.total_monthly_sip, format_currency,
        ),
    ]))
    blocks.extend(_record_blocks(
        "mutualFundRecommendations.exits", section.exit_strategies,
        _numbered("Exit Strategy", "fund_name"), _EXIT_STRATEGY, "Exit Strategies",
    ))
    return blocks


def _tax_planning(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    blocks = _record_blocks(
        "taxPlanning", model.tax_planning,
        _numbered("Tax Year", "tax_year"), _TAX_PLAN, "Tax Plans",
    )
    blocks.append(DisplayBlock(title="Totals", rows=[
        metric_row(
            "taxPlanning.total_potential_savings", "Total Potential Savings",
            metrics.total_potential_tax_savings, format_currency,
        ),
    ]))
    return blocks


def _invitations(model: ClientReportModel, metrics: DerivedMetrics) -> list[DisplayBlock]:
    return _record_blocks(
        "invitations", model.invitations,
        _numbered("Invitation"), _INVITATION, "Invitations",
    )


_SECTION_BUILDERS: dict[str, Callable[[ClientReportModel, DerivedMetrics], list[DisplayBlock]]] = {
    "identity": _identity,
    "financial": _financial,
    "assets": _assets,
    "debts": _debts,
    "insurance": _insurance,
    "goals": _goals,
    "retirement": _retirement,
    "riskProfile": _risk_profile,
    "meetings": _meetings,
    "legalDocuments": _legal_documents,
    "chatHistory": _chat_history,
    "riskSessions": _risk_sessions,
    "estate": _estate,
    "mutualFundRecommendations": _mutual_funds,
    "taxPlanning": _tax_planning,
    "invitations": _invitations,
}


def section_blocks(
    model: ClientReportModel, metrics: DerivedMetrics, section_id: str,
) -> list[DisplayBlock]:
    """
    Display blocks for one section.

    An absent section yields a single "Data unavailable" block; a present
    section always renders its rows, with placeholders where needed.
    """
    section = model.section(section_id)
    if not section.present:
        return [_unavailable_block(SECTION_TITLES[section_id], section)]
    return _SECTION_BUILDERS[section_id](model, metrics)
