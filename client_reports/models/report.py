# =============================================================================
# Canonical Client Report Model — Pydantic V2
# =============================================================================
#
# The single artifact handed to every consumer (metrics, interactive view,
# exporter). Built once per report session by the normalizer and never
# mutated afterwards (all models are frozen).
#
# PRESENCE IS EXPLICIT AT TWO LEVELS:
#
#   Section  — `present` when its source answered (even with zero records),
#              `absent` when the source failed or timed out. An absent section
#              carries the reason; its leaves are all `missing`. It is never
#              filled with zeros.
#
#   Leaf     — every scalar is a Leaf[T] in one of three states:
#                present    value holds a typed, validated value
#                missing    field absent, null, or empty string upstream
#                malformed  upstream had a value of the wrong type; the
#                           original is preserved in `raw`
#
# The model holds no reference to the RawBundle it came from: every raw value
# stored here is a copy.
#
# SECTIONS (16, in display order):
#   identity, financial, assets, debts, insurance, goals, retirement,
#   riskProfile                        ← profile source
#   meetings (+ transcripts)           ← meetings, transcriptions
#   legalDocuments, chatHistory, riskSessions, estate,
#   mutualFundRecommendations (+ exit strategies), taxPlanning, invitations
#
# Supplementary sub-collections (identity.kyc_verifications,
# goals.financial_plans, meetings.transcripts,
# mutual_fund_recommendations.exit_strategies) have their own presence
# state; their failure never makes the host section absent.
# =============================================================================

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from client_reports.errors import SourceErrorKind

T = TypeVar("T")
R = TypeVar("R")


# ---------------------------------------------------------------------------
# Leaves
# ---------------------------------------------------------------------------


class Presence(str, enum.Enum):
    PRESENT = "present"
    MISSING = "missing"
    MALFORMED = "malformed"


class Leaf(BaseModel, Generic[T]):
    """A scalar value together with its presence state."""

    model_config = ConfigDict(frozen=True)

    state: Presence = Presence.MISSING
    value: T | None = None
    raw: Any = None

    @property
    def present(self) -> bool:
        return self.state is Presence.PRESENT

    @property
    def malformed(self) -> bool:
        return self.state is Presence.MALFORMED

    def get(self, default: T | None = None) -> T | None:
        return self.value if self.state is Presence.PRESENT else default


Amount = Leaf[float]
Text = Leaf[str]
Count = Leaf[int]
Flag = Leaf[bool]
Day = Leaf[date]


def _leaf(kind: type[Leaf]) -> Any:
    return Field(default_factory=kind)


# ---------------------------------------------------------------------------
# Section base types
# ---------------------------------------------------------------------------


class SectionStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"


class Section(BaseModel):
    """
    Presence envelope shared by every section and sub-collection.

    `reason` is only set for absent sections ("data unavailable: timeout").
    `record_count` is the number of upstream records the section was built
    from; zero for a source that answered with nothing.
    """

    model_config = ConfigDict(frozen=True)

    status: SectionStatus = SectionStatus.PRESENT
    reason: str | None = None
    error_kind: SourceErrorKind | None = None
    record_count: int = 0

    @property
    def present(self) -> bool:
        return self.status is SectionStatus.PRESENT


class Collection(Section, Generic[R]):
    """A section (or sub-collection) made of repeated records."""

    items: list[R] = Field(default_factory=list)


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Profile-derived sections
# ---------------------------------------------------------------------------


class KycRecord(Record):
    pan_status: Text = _leaf(Text)
    aadhar_status: Text = _leaf(Text)
    overall_status: Text = _leaf(Text)
    updated_at: Day = _leaf(Day)


class IdentitySection(Section):
    first_name: Text = _leaf(Text)
    last_name: Text = _leaf(Text)
    email: Text = _leaf(Text)
    phone: Text = _leaf(Text)
    date_of_birth: Day = _leaf(Day)
    pan_number: Text = _leaf(Text)
    gender: Text = _leaf(Text)
    marital_status: Text = _leaf(Text)
    dependents: Count = _leaf(Count)
    occupation: Text = _leaf(Text)
    employer: Text = _leaf(Text)
    client_status: Text = _leaf(Text)
    onboarding_step: Count = _leaf(Count)
    last_active: Day = _leaf(Day)
    city: Text = _leaf(Text)
    state: Text = _leaf(Text)
    country: Text = _leaf(Text)
    kyc_status: Text = _leaf(Text)
    kyc_verifications: Collection[KycRecord] = Field(
        default_factory=Collection[KycRecord],
    )


class MonthlyExpenses(Record):
    housing_rent: Amount = _leaf(Amount)
    groceries_utilities_food: Amount = _leaf(Amount)
    transportation: Amount = _leaf(Amount)
    education: Amount = _leaf(Amount)
    healthcare: Amount = _leaf(Amount)
    entertainment: Amount = _leaf(Amount)
    insurance_premiums: Amount = _leaf(Amount)
    loan_emis: Amount = _leaf(Amount)
    other_expenses: Amount = _leaf(Amount)


class FinancialSection(Section):
    monthly_income: Amount = _leaf(Amount)
    monthly_expenses: Amount = _leaf(Amount)
    annual_income: Amount = _leaf(Amount)
    additional_income: Amount = _leaf(Amount)
    income_type: Text = _leaf(Text)
    net_worth_reported: Amount = _leaf(Amount)
    savings_target: Amount = _leaf(Amount)
    expense_breakdown: MonthlyExpenses = Field(default_factory=MonthlyExpenses)


class AssetsSection(Section):
    cash_bank_savings: Amount = _leaf(Amount)
    real_estate: Amount = _leaf(Amount)
    mutual_funds: Amount = _leaf(Amount)
    direct_stocks: Amount = _leaf(Amount)
    ppf: Amount = _leaf(Amount)
    epf: Amount = _leaf(Amount)
    nps: Amount = _leaf(Amount)
    fixed_deposits: Amount = _leaf(Amount)
    bonds_debentures: Amount = _leaf(Amount)
    nsc: Amount = _leaf(Amount)
    ulip: Amount = _leaf(Amount)
    other_investments: Amount = _leaf(Amount)

    def holdings(self) -> list[tuple[str, Amount]]:
        return [
            (name, getattr(self, name))
            for name in ASSET_FIELDS
        ]


ASSET_FIELDS = (
    "cash_bank_savings", "real_estate", "mutual_funds", "direct_stocks",
    "ppf", "epf", "nps", "fixed_deposits", "bonds_debentures", "nsc",
    "ulip", "other_investments",
)


class LoanLine(Record):
    has_loan: Flag = _leaf(Flag)
    outstanding: Amount = _leaf(Amount)
    monthly_emi: Amount = _leaf(Amount)
    interest_rate: Amount = _leaf(Amount)

    @property
    def active(self) -> bool:
        """A loan counts unless it is explicitly flagged as not held."""
        return self.has_loan.get() is not False


class CreditCardLine(Record):
    has_debt: Flag = _leaf(Flag)
    outstanding: Amount = _leaf(Amount)
    monthly_payment: Amount = _leaf(Amount)
    interest_rate: Amount = _leaf(Amount)

    @property
    def active(self) -> bool:
        return self.has_debt.get() is not False


LOAN_FIELDS = (
    "home_loan", "personal_loan", "car_loan", "education_loan",
    "gold_loan", "business_loan", "other_loans",
)


class DebtsSection(Section):
    home_loan: LoanLine = Field(default_factory=LoanLine)
    personal_loan: LoanLine = Field(default_factory=LoanLine)
    car_loan: LoanLine = Field(default_factory=LoanLine)
    education_loan: LoanLine = Field(default_factory=LoanLine)
    gold_loan: LoanLine = Field(default_factory=LoanLine)
    business_loan: LoanLine = Field(default_factory=LoanLine)
    other_loans: LoanLine = Field(default_factory=LoanLine)
    credit_cards: CreditCardLine = Field(default_factory=CreditCardLine)

    def loans(self) -> list[tuple[str, LoanLine]]:
        return [(name, getattr(self, name)) for name in LOAN_FIELDS]


class PolicyLine(Record):
    has_cover: Flag = _leaf(Flag)
    cover_amount: Amount = _leaf(Amount)
    annual_premium: Amount = _leaf(Amount)
    policy_type: Text = _leaf(Text)


POLICY_FIELDS = ("life", "health", "vehicle", "other")


class InsuranceSection(Section):
    life: PolicyLine = Field(default_factory=PolicyLine)
    health: PolicyLine = Field(default_factory=PolicyLine)
    vehicle: PolicyLine = Field(default_factory=PolicyLine)
    other: PolicyLine = Field(default_factory=PolicyLine)

    def policies(self) -> list[tuple[str, PolicyLine]]:
        return [(name, getattr(self, name)) for name in POLICY_FIELDS]


class GoalRecord(Record):
    name: Text = _leaf(Text)
    target_amount: Amount = _leaf(Amount)
    current_amount: Amount = _leaf(Amount)
    target_year: Count = _leaf(Count)
    priority: Text = _leaf(Text)


class FinancialPlanRecord(Record):
    plan_name: Text = _leaf(Text)
    plan_type: Text = _leaf(Text)
    status: Text = _leaf(Text)
    risk_level: Text = _leaf(Text)
    created_at: Day = _leaf(Day)
    updated_at: Day = _leaf(Day)


class GoalsSection(Collection[GoalRecord]):
    financial_plans: Collection[FinancialPlanRecord] = Field(
        default_factory=Collection[FinancialPlanRecord],
    )


class RetirementSection(Section):
    current_age: Count = _leaf(Count)
    retirement_age: Count = _leaf(Count)
    has_corpus: Flag = _leaf(Flag)
    current_corpus: Amount = _leaf(Amount)
    target_corpus: Amount = _leaf(Amount)


class RiskProfileSection(Section):
    investment_experience: Text = _leaf(Text)
    risk_tolerance: Text = _leaf(Text)
    investment_horizon: Text = _leaf(Text)
    monthly_investment_capacity: Amount = _leaf(Amount)


# ---------------------------------------------------------------------------
# Service-derived sections
# ---------------------------------------------------------------------------


class MeetingRecord(Record):
    meeting_id: Text = _leaf(Text)
    meeting_type: Text = _leaf(Text)
    status: Text = _leaf(Text)
    scheduled_at: Day = _leaf(Day)
    duration_minutes: Count = _leaf(Count)
    transcript_status: Text = _leaf(Text)
    transcript_language: Text = _leaf(Text)


class MeetingsSection(Collection[MeetingRecord]):
    # Presence of the transcription source; transcript fields are joined
    # into each MeetingRecord by meeting id.
    transcripts: Section = Field(default_factory=Section)


class LegalDocumentRecord(Record):
    status: Text = _leaf(Text)
    sent_at: Day = _leaf(Day)
    signed_at: Day = _leaf(Day)
    expires_at: Day = _leaf(Day)


class ChatRecord(Record):
    conversation_id: Text = _leaf(Text)
    title: Text = _leaf(Text)
    status: Text = _leaf(Text)
    message_count: Count = _leaf(Count)
    last_activity: Day = _leaf(Day)


class RiskSessionRecord(Record):
    session_id: Text = _leaf(Text)
    status: Text = _leaf(Text)
    total_score: Amount = _leaf(Amount)
    max_score: Amount = _leaf(Amount)
    risk_percentage: Amount = _leaf(Amount)
    risk_category: Text = _leaf(Text)
    completed_at: Day = _leaf(Day)


class EstateSection(Section):
    has_will: Flag = _leaf(Flag)
    will_type: Text = _leaf(Text)
    will_date: Day = _leaf(Day)
    estimated_net_estate: Amount = _leaf(Amount)
    estate_tax_liability: Amount = _leaf(Amount)
    succession_complexity: Text = _leaf(Text)
    property_count: Count = _leaf(Count)


class ExitStrategyRecord(Record):
    fund_name: Text = _leaf(Text)
    fund_category: Text = _leaf(Text)
    status: Text = _leaf(Text)
    priority: Text = _leaf(Text)


class MutualFundRecord(Record):
    fund_name: Text = _leaf(Text)
    fund_house: Text = _leaf(Text)
    monthly_sip: Amount = _leaf(Amount)
    sip_start_date: Day = _leaf(Day)
    expected_exit_date: Day = _leaf(Day)
    status: Text = _leaf(Text)


class MutualFundSection(Collection[MutualFundRecord]):
    exit_strategies: Collection[ExitStrategyRecord] = Field(
        default_factory=Collection[ExitStrategyRecord],
    )


class TaxPlanRecord(Record):
    tax_year: Text = _leaf(Text)
    gross_total_income: Amount = _leaf(Amount)
    total_deductions: Amount = _leaf(Amount)
    taxable_income: Amount = _leaf(Amount)
    total_tax_liability: Amount = _leaf(Amount)
    potential_savings: Amount = _leaf(Amount)
    status: Text = _leaf(Text)


class InvitationRecord(Record):
    email: Text = _leaf(Text)
    status: Text = _leaf(Text)
    sent_at: Day = _leaf(Day)
    expires_at: Day = _leaf(Day)


# ---------------------------------------------------------------------------
# Report model
# ---------------------------------------------------------------------------

# Public section id → model attribute, in display order.
SECTION_ATTRS: dict[str, str] = {
    "identity": "identity",
    "financial": "financial",
    "assets": "assets",
    "debts": "debts",
    "insurance": "insurance",
    "goals": "goals",
    "retirement": "retirement",
    "riskProfile": "risk_profile",
    "meetings": "meetings",
    "legalDocuments": "legal_documents",
    "chatHistory": "chat_history",
    "riskSessions": "risk_sessions",
    "estate": "estate",
    "mutualFundRecommendations": "mutual_fund_recommendations",
    "taxPlanning": "tax_planning",
    "invitations": "invitations",
}

SECTION_IDS: tuple[str, ...] = tuple(SECTION_ATTRS)


class ClientReportModel(BaseModel):
    """Normalized, immutable report for one client."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    generated_at: datetime

    identity: IdentitySection = Field(default_factory=IdentitySection)
    financial: FinancialSection = Field(default_factory=FinancialSection)
    assets: AssetsSection = Field(default_factory=AssetsSection)
    debts: DebtsSection = Field(default_factory=DebtsSection)
    insurance: InsuranceSection = Field(default_factory=InsuranceSection)
    goals: GoalsSection = Field(default_factory=GoalsSection)
    retirement: RetirementSection = Field(default_factory=RetirementSection)
    risk_profile: RiskProfileSection = Field(default_factory=RiskProfileSection)
    meetings: MeetingsSection = Field(default_factory=MeetingsSection)
    legal_documents: Collection[LegalDocumentRecord] = Field(
        default_factory=Collection[LegalDocumentRecord],
    )
    chat_history: Collection[ChatRecord] = Field(
        default_factory=Collection[ChatRecord],
    )
    risk_sessions: Collection[RiskSessionRecord] = Field(
        default_factory=Collection[RiskSessionRecord],
    )
    estate: EstateSection = Field(default_factory=EstateSection)
    mutual_fund_recommendations: MutualFundSection = Field(
        default_factory=MutualFundSection,
    )
    tax_planning: Collection[TaxPlanRecord] = Field(
        default_factory=Collection[TaxPlanRecord],
    )
    invitations: Collection[InvitationRecord] = Field(
        default_factory=Collection[InvitationRecord],
    )

    def section(self, section_id: str) -> Section:
        """Look up a section by its public id (e.g. "riskProfile")."""
        try:
            return getattr(self, SECTION_ATTRS[section_id])
        except KeyError:
            raise KeyError(f"Unknown section: {section_id}") from None

    def sections(self) -> Iterator[tuple[str, Section]]:
        for section_id, attr in SECTION_ATTRS.items():
            yield section_id, getattr(self, attr)

    def missing_sections(self, section_ids: Iterable[str]) -> list[str]:
        """
        Which of `section_ids` cannot anchor a report: absent, or present
        but built from zero upstream records.
        """
        missing = []
        for section_id in section_ids:
            section = self.section(section_id)
            if not section.present or section.record_count == 0:
                missing.append(section_id)
        return missing


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------


def iter_leaves(node: BaseModel) -> Iterator[Leaf]:
    """
    Yield every leaf owned by `node`, depth first.

    Nested Section instances (supplementary sub-collections) are not
    descended into: they belong to a different source and never count
    toward their host's completeness.
    """
    for name in type(node).model_fields:
        child = getattr(node, name)
        if isinstance(child, Leaf):
            yield child
        elif isinstance(child, Section):
            continue
        elif isinstance(child, BaseModel):
            yield from iter_leaves(child)
        elif isinstance(child, list):
            for item in child:
                if isinstance(item, BaseModel) and not isinstance(item, Section):
                    yield from iter_leaves(item)


def section_complete(section: Section) -> bool:
    """True when the section is present with at least one present leaf."""
    if not section.present:
        return False
    return any(leaf.present for leaf in iter_leaves(section))
