# =============================================================================
# Metrics Calculator — ClientReportModel → DerivedMetrics
# =============================================================================
#
# compute_metrics(model) is pure: it reads only the normalized model and the
# policy thresholds in settings. Same model in, same metrics out.
#
# UNDEFINED IS NOT ZERO:
#   A metric whose inputs are missing, or whose denominator is zero, comes
#   back as Metric(available=False, reason=...). Consumers render it as the
#   placeholder; nobody ever sees a fabricated 0% or a division error.
#
# ONE ROUNDING POLICY (shared by every consumer):
#   percentages     → 1 decimal, ROUND_HALF_UP
#   amounts         → 2 decimals, ROUND_HALF_UP
#   months / years  → whole numbers, ROUND_HALF_UP
#   display values  → clamped to [0, 100] where noted; the unclamped
#                     `signed_value` is kept for surplus / deficit
#
# Bands (Manageable / High, Adequate / Insufficient, ...) are decided on the
# rounded value, so a displayed "6 months" is never labelled Insufficient.
# =============================================================================

from __future__ import annotations

import logging
import math
from decimal import ROUND_HALF_UP, Decimal, localcontext

from pydantic import BaseModel, ConfigDict, Field

from client_reports.config import settings
from client_reports.models.report import (
    SECTION_IDS,
    ClientReportModel,
    Collection,
    section_complete,
)

logger = logging.getLogger(__name__)

ONBOARDING_STEPS = (
    "Not Started",
    "Personal Information",
    "Financial Details",
    "Goals Setting",
    "Risk Assessment",
    "Document Upload",
    "Verification",
    "Completed",
)

INVALID_TARGET = "invalid target"
MISSING_AMOUNT = "missing amount"
OUT_OF_RANGE = "Value out of range"

# Enough significant digits to quantize any finite float (max ~1.8e308)
_ROUNDING_PRECISION = 400


# ---------------------------------------------------------------------------
# Rounding policy
# ---------------------------------------------------------------------------


def round_half_up(value: float, places: int = 0) -> float:
    """
    Round half away from zero (2.5 → 3, 12.25 → 12.3).

    Infinities and NaN are returned unchanged.
    """
    if not math.isfinite(value):
        return value
    exponent = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = _ROUNDING_PRECISION
        return float(Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP))


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def percentage(numerator: float, denominator: float) -> float:
    return round_half_up(numerator / denominator * 100, 1)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class Metric(BaseModel):
    """A derived value, or the reason it could not be derived."""

    model_config = ConfigDict(frozen=True)

    available: bool = False
    value: float | None = None
    signed_value: float | None = None
    band: str | None = None
    reason: str | None = None

    @classmethod
    def of(
        cls, value: float, band: str | None = None, signed_value: float | None = None,
    ) -> Metric:
        return cls(
            available=True,
            value=value,
            signed_value=value if signed_value is None else signed_value,
            band=band,
        )

    @classmethod
    def undefined(cls, reason: str) -> Metric:
        return cls(available=False, reason=reason)


def _bounded(metric: Metric) -> Metric:
    """Overflowed arithmetic (inf / nan) is reported as undefined, never shown."""
    if not metric.available:
        return metric
    if all(
        v is None or math.isfinite(v) for v in (metric.value, metric.signed_value)
    ):
        return metric
    return Metric.undefined(OUT_OF_RANGE)


class GoalProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    name: str | None = None
    progress_pct: float | None = None
    flag: str | None = None

    @property
    def counted(self) -> bool:
        return self.flag is None


class DerivedMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_assets: Metric
    total_liabilities: Metric
    net_worth: Metric
    monthly_savings: Metric
    savings_rate: Metric
    expense_ratio: Metric
    total_emi: Metric
    debt_service_ratio: Metric
    emergency_fund_months: Metric
    goal_progress: list[GoalProgress] = Field(default_factory=list)
    aggregate_goal_progress: Metric
    years_to_retirement: Metric
    onboarding_progress: Metric
    total_insurance_premium: Metric
    total_insurance_cover: Metric
    total_monthly_sip: Metric
    total_potential_tax_savings: Metric

    # section id → record count (None when the section is absent)
    service_counts: dict[str, int | None] = Field(default_factory=dict)
    completeness: dict[str, bool] = Field(default_factory=dict)
    completeness_pct: float = 0.0

    @property
    def complete_sections(self) -> int:
        return sum(1 for done in self.completeness.values() if done)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


def _total_assets(model: ClientReportModel) -> Metric:
    assets = model.assets
    if not assets.present:
        return Metric.undefined("Assets unavailable")
    values = [leaf.value for _, leaf in assets.holdings() if leaf.present]
    if not values:
        return Metric.undefined("No asset values recorded")
    return Metric.of(round_half_up(sum(values), 2))


def _total_liabilities(model: ClientReportModel) -> Metric:
    debts = model.debts
    if not debts.present:
        return Metric.undefined("Liabilities unavailable")
    if not section_complete(debts):
        return Metric.undefined("No liability values recorded")

    total = 0.0
    for _, loan in debts.loans():
        if loan.active and loan.outstanding.present:
            total += loan.outstanding.value
    cards = debts.credit_cards
    if cards.active and cards.outstanding.present:
        total += cards.outstanding.value
    return Metric.of(round_half_up(total, 2))


def _total_emi(model: ClientReportModel) -> Metric:
    reported = model.financial.expense_breakdown.loan_emis
    if model.financial.present and reported.present:
        return Metric.of(round_half_up(reported.value, 2))

    debts = model.debts
    if not debts.present or not section_complete(debts):
        return Metric.undefined("Loan EMIs unavailable")
    total = sum(
        loan.monthly_emi.value
        for _, loan in debts.loans()
        if loan.active and loan.monthly_emi.present
    )
    return Metric.of(round_half_up(total, 2))


# ---------------------------------------------------------------------------
# Income ratios
# ---------------------------------------------------------------------------


def _income(model: ClientReportModel) -> tuple[float | None, str | None]:
    """Monthly income, or the reason no income ratio can be computed."""
    if not model.financial.present:
        return None, "Financial details unavailable"
    income = model.financial.monthly_income
    if not income.present:
        return None, "Monthly income not available"
    if income.value == 0:
        return None, "Monthly income is zero"
    return income.value, None


def _expenses(model: ClientReportModel) -> float | None:
    leaf = model.financial.monthly_expenses
    return leaf.value if model.financial.present and leaf.present else None


def _monthly_savings(model: ClientReportModel) -> Metric:
    income = model.financial.monthly_income
    if not model.financial.present or not income.present:
        return Metric.undefined("Monthly income not available")
    expenses = _expenses(model)
    if expenses is None:
        return Metric.undefined("Monthly expenses not available")
    savings = round_half_up(income.value - expenses, 2)
    return Metric.of(savings, band="Healthy" if savings >= 0 else "Needs Attention")


def _savings_rate(model: ClientReportModel, savings: Metric) -> Metric:
    income, reason = _income(model)
    if income is None:
        return Metric.undefined(reason)
    if not savings.available:
        return Metric.undefined(savings.reason)
    signed = percentage(savings.value, income)
    return Metric.of(
        clamp(signed, 0.0, 100.0),
        band="Healthy" if savings.value >= 0 else "Needs Attention",
        signed_value=signed,
    )


def _expense_ratio(model: ClientReportModel) -> Metric:
    income, reason = _income(model)
    if income is None:
        return Metric.undefined(reason)
    expenses = _expenses(model)
    if expenses is None:
        return Metric.undefined("Monthly expenses not available")
    ratio = percentage(expenses, income)
    band = "Good" if ratio <= settings.expense_ratio_good_pct else "High"
    return Metric.of(ratio, band=band)


def _debt_service_ratio(model: ClientReportModel, emi: Metric) -> Metric:
    income, reason = _income(model)
    if income is None:
        return Metric.undefined(reason)
    if not emi.available:
        return Metric.undefined(emi.reason)
    ratio = percentage(emi.value, income)
    band = "Manageable" if ratio <= settings.debt_service_manageable_pct else "High"
    return Metric.of(ratio, band=band)


def _emergency_fund(model: ClientReportModel) -> Metric:
    cash = model.assets.cash_bank_savings
    if not model.assets.present or not cash.present:
        return Metric.undefined("Cash and bank savings not available")
    expenses = _expenses(model)
    if expenses is None:
        return Metric.undefined("Monthly expenses not available")
    if expenses == 0:
        return Metric.undefined("Monthly expenses are zero")
    months = round_half_up(cash.value / expenses, 0)
    band = (
        "Adequate"
        if months >= settings.emergency_fund_adequate_months
        else "Insufficient"
    )
    return Metric.of(months, band=band)


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------


def _goal_progress(model: ClientReportModel) -> tuple[list[GoalProgress], Metric]:
    goals = model.goals
    if not goals.present:
        return [], Metric.undefined("Goals unavailable")

    progress: list[GoalProgress] = []
    ratios: list[float] = []
    for i, goal in enumerate(goals.items):
        name = goal.name.get()
        target, current = goal.target_amount, goal.current_amount
        if target.present and target.value <= 0:
            progress.append(GoalProgress(index=i, name=name, flag=INVALID_TARGET))
            continue
        if not target.present or not current.present:
            progress.append(GoalProgress(index=i, name=name, flag=MISSING_AMOUNT))
            continue
        ratio = clamp(current.value / target.value, 0.0, 1.0)
        ratios.append(ratio)
        progress.append(GoalProgress(
            index=i, name=name, progress_pct=round_half_up(ratio * 100, 1),
        ))

    if not ratios:
        return progress, Metric.undefined("No goals with a valid target")
    aggregate = round_half_up(sum(ratios) / len(ratios) * 100, 1)
    return progress, Metric.of(aggregate)


# ---------------------------------------------------------------------------
# Extras
# ---------------------------------------------------------------------------


def _years_to_retirement(model: ClientReportModel) -> Metric:
    plan = model.retirement
    if not plan.present:
        return Metric.undefined("Retirement details unavailable")
    if not plan.current_age.present or not plan.retirement_age.present:
        return Metric.undefined("Current or retirement age not available")
    years = float(plan.retirement_age.value) - float(plan.current_age.value)
    if years < 0:
        return Metric.undefined("Retirement age is below current age")
    return Metric.of(years)


def _onboarding(model: ClientReportModel) -> Metric:
    step = model.identity.onboarding_step
    if not model.identity.present or not step.present:
        return Metric.undefined("Onboarding step not available")
    if not 0 <= step.value < len(ONBOARDING_STEPS):
        return Metric.undefined("Unknown onboarding step")
    return Metric.of(float(step.value), band=ONBOARDING_STEPS[step.value])


def _insurance_totals(model: ClientReportModel) -> tuple[Metric, Metric]:
    insurance = model.insurance
    if not insurance.present:
        unavailable = Metric.undefined("Insurance details unavailable")
        return unavailable, unavailable

    premiums, covers = [], []
    for _, policy in insurance.policies():
        if policy.has_cover.get() is False:
            continue
        if policy.annual_premium.present:
            premiums.append(policy.annual_premium.value)
        if policy.cover_amount.present:
            covers.append(policy.cover_amount.value)

    premium = (
        Metric.of(round_half_up(sum(premiums), 2))
        if premiums else Metric.undefined("No premiums recorded")
    )
    cover = (
        Metric.of(round_half_up(sum(covers), 2))
        if covers else Metric.undefined("No cover amounts recorded")
    )
    return premium, cover


def _collection_total(section: Collection, attr: str, label: str) -> Metric:
    if not section.present:
        return Metric.undefined(f"{label} unavailable")
    if not section.items:
        return Metric.of(0.0)
    values = [getattr(item, attr).value for item in section.items if getattr(item, attr).present]
    if not values:
        return Metric.undefined(f"No {label.lower()} amounts recorded")
    return Metric.of(round_half_up(sum(values), 2))


_COUNTED_SECTIONS = (
    "goals", "meetings", "legalDocuments", "chatHistory", "riskSessions",
    "mutualFundRecommendations", "taxPlanning", "invitations",
)


def _service_counts(model: ClientReportModel) -> dict[str, int | None]:
    counts: dict[str, int | None] = {}
    for section_id in _COUNTED_SECTIONS:
        section = model.section(section_id)
        counts[section_id] = section.record_count if section.present else None
    for label, sub in (
        ("kycVerifications", model.identity.kyc_verifications),
        ("financialPlans", model.goals.financial_plans),
        ("exitStrategies", model.mutual_fund_recommendations.exit_strategies),
    ):
        counts[label] = sub.record_count if sub.present else None
    return counts


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def compute_metrics(model: ClientReportModel) -> DerivedMetrics:
    """Derive every metric from the normalized model. Pure and idempotent."""
    total_assets = _bounded(_total_assets(model))
    total_liabilities = _bounded(_total_liabilities(model))
    if total_assets.available and total_liabilities.available:
        net_worth = _bounded(Metric.of(
            round_half_up(total_assets.value - total_liabilities.value, 2),
        ))
    else:
        net_worth = Metric.undefined(
            total_assets.reason if not total_assets.available
            else total_liabilities.reason,
        )

    savings = _bounded(_monthly_savings(model))
    emi = _bounded(_total_emi(model))
    goals, aggregate_goal = _goal_progress(model)
    premium, cover = (_bounded(m) for m in _insurance_totals(model))

    completeness = {
        section_id: section_complete(section)
        for section_id, section in model.sections()
    }
    completeness_pct = percentage(
        sum(1 for done in completeness.values() if done), len(SECTION_IDS),
    )

    metrics = DerivedMetrics(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=net_worth,
        monthly_savings=savings,
        savings_rate=_bounded(_savings_rate(model, savings)),
        expense_ratio=_bounded(_expense_ratio(model)),
        total_emi=emi,
        debt_service_ratio=_bounded(_debt_service_ratio(model, emi)),
        emergency_fund_months=_bounded(_emergency_fund(model)),
        goal_progress=goals,
        aggregate_goal_progress=aggregate_goal,
        years_to_retirement=_bounded(_years_to_retirement(model)),
        onboarding_progress=_onboarding(model),
        total_insurance_premium=premium,
        total_insurance_cover=cover,
        total_monthly_sip=_bounded(_collection_total(
            model.mutual_fund_recommendations, "monthly_sip", "SIP",
        )),
        total_potential_tax_savings=_bounded(_collection_total(
            model.tax_planning, "potential_savings", "Tax savings",
        )),
        service_counts=_service_counts(model),
        completeness=completeness,
        completeness_pct=completeness_pct,
    )
    logger.debug(
        "Metrics for client %s: completeness %.1f%%",
        model.client_id, completeness_pct,
    )
    return metrics
