# =============================================================================
# Normalizer — RawBundle → ClientReportModel
# =============================================================================
#
# normalize(bundle) builds the canonical model from whatever the sources
# returned. It NEVER raises: a broken payload degrades to missing/malformed
# leaves or, at worst, an absent section.
#
# RULES:
#   Source failed / timed out      → every section it feeds is `absent`
#                                    ("Data unavailable" + error kind)
#   Source ok, no records          → section present, record_count 0
#   Field absent / null / "" / "  " → leaf `missing`
#   Field of the wrong type        → leaf `malformed`, raw value kept
#   Numeric string ("50,000")      → coerced to a number
#   Path through a non-object      → leaf `malformed` (never an exception)
#
# TRI-STATE WALKER:
#   Presence is decided explicitly by _resolve(), never by truthiness, so a
#   legitimate 0, False or "0" is a present value.
#
# Upstream documents may carry extended-JSON wrappers ({"$date": ...},
# {"$numberDecimal": ...}, {"$oid": ...}); these are unwrapped before type
# checks.
# =============================================================================

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel

from client_reports.errors import SourceErrorKind
from client_reports.models.report import (
    LOAN_FIELDS,
    POLICY_FIELDS,
    Amount,
    AssetsSection,
    ChatRecord,
    ClientReportModel,
    Collection,
    Count,
    CreditCardLine,
    Day,
    DebtsSection,
    EstateSection,
    ExitStrategyRecord,
    FinancialPlanRecord,
    FinancialSection,
    Flag,
    GoalRecord,
    GoalsSection,
    IdentitySection,
    InsuranceSection,
    InvitationRecord,
    KycRecord,
    Leaf,
    LegalDocumentRecord,
    LoanLine,
    MeetingRecord,
    MeetingsSection,
    MonthlyExpenses,
    MutualFundRecord,
    MutualFundSection,
    PolicyLine,
    Presence,
    RetirementSection,
    RiskProfileSection,
    RiskSessionRecord,
    Section,
    SectionStatus,
    TaxPlanRecord,
    Text,
)
from client_reports.services.aggregator import RawBundle
from client_reports.sources.base import SourceId

logger = logging.getLogger(__name__)

DATA_UNAVAILABLE = "Data unavailable"

_EXTENDED_KEYS = frozenset({
    "$numberDecimal", "$numberDouble", "$numberInt", "$numberLong", "$oid",
})
_TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "n", "0"})


class _Malformed(Exception):
    """Internal signal: a value exists but has the wrong type."""


# ---------------------------------------------------------------------------
# Tri-state tree walker
# ---------------------------------------------------------------------------


def _unwrap(value: Any) -> Any:
    while isinstance(value, Mapping) and len(value) == 1:
        key = next(iter(value))
        if key not in _EXTENDED_KEYS:
            break
        value = value[key]
    return value


def _resolve(node: Any, path: str) -> tuple[Presence, Any]:
    """
    Follow a dotted path without ever raising.

    Returns (PRESENT, value), (MISSING, None) or (MALFORMED, offending node)
    when the path runs through something that is not an object.
    """
    current = node
    for key in path.split("."):
        if current is None:
            return Presence.MISSING, None
        if not isinstance(current, Mapping):
            return Presence.MALFORMED, current
        current = current.get(key)
    if current is None:
        return Presence.MISSING, None
    if isinstance(current, str) and not current.strip():
        return Presence.MISSING, None
    return Presence.PRESENT, current


def _json_safe(value: Any, depth: int = 0) -> Any:
    """Detached, JSON-serializable copy of a raw value."""
    if depth > 20:
        return repr(value)
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else repr(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v, depth + 1) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(v, depth + 1) for v in value]
    return repr(value)


# ---------------------------------------------------------------------------
# Coercions (raise _Malformed on a wrong type)
# ---------------------------------------------------------------------------


def _to_number(value: Any) -> float:
    value = _unwrap(value)
    if isinstance(value, bool):
        raise _Malformed
    if isinstance(value, (int, float, Decimal)):
        try:
            number = float(value)
        except OverflowError:
            raise _Malformed from None
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        try:
            number = float(Decimal(cleaned))
        except (InvalidOperation, ValueError):
            raise _Malformed from None
    else:
        raise _Malformed
    if not math.isfinite(number):
        raise _Malformed
    return number


def _to_int(value: Any) -> int:
    number = _to_number(value)
    if not number.is_integer():
        raise _Malformed
    return int(number)


def _to_text(value: Any) -> str:
    value = _unwrap(value)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        raise _Malformed
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)) and math.isfinite(value):
        return str(value)
    raise _Malformed


def _to_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _Malformed


def _to_date(value: Any) -> date:
    if isinstance(value, Mapping) and "$date" in value and len(value) == 1:
        inner = _unwrap(value["$date"])
        if isinstance(inner, str) and inner.strip().lstrip("-").isdigit():
            inner = int(inner)
        if isinstance(inner, (int, float)) and not isinstance(inner, bool):
            try:
                return datetime.fromtimestamp(inner / 1000, UTC).date()
            except (OverflowError, OSError, ValueError):
                raise _Malformed from None
        value = inner
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            raise _Malformed from None
    raise _Malformed


def _to_length(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    raise _Malformed


# ---------------------------------------------------------------------------
# Leaf readers
# ---------------------------------------------------------------------------


def _reader(kind: type[Leaf], coerce: Callable[[Any], Any]):
    def read(node: Any, path: str) -> Leaf:
        state, value = _resolve(node, path)
        if state is Presence.MISSING:
            return kind()
        if state is Presence.PRESENT:
            try:
                return kind(state=Presence.PRESENT, value=coerce(value))
            except _Malformed:
                pass
        logger.debug("Malformed field %s: %r", path, value)
        return kind(state=Presence.MALFORMED, raw=_json_safe(value))

    return read


read_number = _reader(Amount, _to_number)
read_int = _reader(Count, _to_int)
read_text = _reader(Text, _to_text)
read_flag = _reader(Flag, _to_flag)
read_date = _reader(Day, _to_date)
read_length = _reader(Count, _to_length)


def _read_fields(node: Any, spec: Mapping[str, tuple[Callable, str]]) -> dict[str, Leaf]:
    return {name: reader(node, path) for name, (reader, path) in spec.items()}


def _read_list(node: Any, path: str) -> list[Mapping]:
    state, value = _resolve(node, path)
    if state is Presence.MISSING:
        return []
    if not isinstance(value, (list, tuple)):
        logger.debug("Malformed list %s: %r", path, value)
        return []
    return [item for item in value if isinstance(item, Mapping)]


# ---------------------------------------------------------------------------
# Source views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _SourceView:
    """What normalization needs to know about one SourceResult."""

    present: bool
    records: tuple[Mapping, ...] = ()
    error_kind: SourceErrorKind | None = None
    detail: str = ""

    @property
    def first(self) -> Mapping | None:
        return self.records[0] if self.records else None

    def envelope(self, record_count: int | None = None) -> dict[str, Any]:
        if not self.present:
            return {
                "status": SectionStatus.ABSENT,
                "reason": DATA_UNAVAILABLE,
                "error_kind": self.error_kind,
                "record_count": 0,
            }
        return {
            "status": SectionStatus.PRESENT,
            "record_count": len(self.records) if record_count is None else record_count,
        }


def _view(bundle: RawBundle, source_id: SourceId) -> _SourceView:
    result = bundle.get(source_id)
    if result is None:
        return _SourceView(present=False, error_kind=SourceErrorKind.UNKNOWN,
                           detail="no result")
    if not result.succeeded:
        kind = result.error.kind if result.error else SourceErrorKind.UNKNOWN
        detail = result.error.detail if result.error else ""
        return _SourceView(present=False, error_kind=kind, detail=detail)

    payload = result.payload or ()
    records = tuple(r for r in payload if isinstance(r, Mapping))
    if len(records) != len(payload):
        logger.debug(
            "Source %s: dropped %d non-object record(s)",
            source_id.value, len(payload) - len(records),
        )
    return _SourceView(present=True, records=records)


def _absent(section_cls: type[Section], view: _SourceView) -> Section:
    return section_cls(**view.envelope())


# ---------------------------------------------------------------------------
# Field maps (model attribute → (reader, upstream path))
# ---------------------------------------------------------------------------

_IDENTITY = {
    "first_name": (read_text, "firstName"),
    "last_name": (read_text, "lastName"),
    "email": (read_text, "email"),
    "phone": (read_text, "phoneNumber"),
    "date_of_birth": (read_date, "dateOfBirth"),
    "pan_number": (read_text, "panNumber"),
    "gender": (read_text, "gender"),
    "marital_status": (read_text, "maritalStatus"),
    "dependents": (read_int, "numberOfDependents"),
    "occupation": (read_text, "occupation"),
    "employer": (read_text, "employerBusinessName"),
    "client_status": (read_text, "status"),
    "onboarding_step": (read_int, "onboardingStep"),
    "last_active": (read_date, "lastActiveDate"),
    "city": (read_text, "address.city"),
    "state": (read_text, "address.state"),
    "country": (read_text, "address.country"),
    "kyc_status": (read_text, "kycStatus"),
}

_KYC = {
    "pan_status": (read_text, "panStatus"),
    "aadhar_status": (read_text, "aadharStatus"),
    "overall_status": (read_text, "overallStatus"),
    "updated_at": (read_date, "updatedAt"),
}

_FINANCIAL = {
    "monthly_income": (read_number, "totalMonthlyIncome"),
    "monthly_expenses": (read_number, "totalMonthlyExpenses"),
    "annual_income": (read_number, "annualIncome"),
    "additional_income": (read_number, "additionalIncome"),
    "income_type": (read_text, "incomeType"),
    "net_worth_reported": (read_number, "netWorth"),
    "savings_target": (read_number, "monthlySavingsTarget"),
}

_EXPENSES = {
    "housing_rent": (read_number, "monthlyExpenses.housingRent"),
    "groceries_utilities_food": (read_number, "monthlyExpenses.groceriesUtilitiesFood"),
    "transportation": (read_number, "monthlyExpenses.transportation"),
    "education": (read_number, "monthlyExpenses.education"),
    "healthcare": (read_number, "monthlyExpenses.healthcare"),
    "entertainment": (read_number, "monthlyExpenses.entertainment"),
    "insurance_premiums": (read_number, "monthlyExpenses.insurancePremiums"),
    "loan_emis": (read_number, "monthlyExpenses.loanEmis"),
    "other_expenses": (read_number, "monthlyExpenses.otherExpenses"),
}

_ASSETS = {
    "cash_bank_savings": (read_number, "assets.cashBankSavings"),
    "real_estate": (read_number, "assets.realEstate"),
    "mutual_funds": (read_number, "assets.investments.equity.mutualFunds"),
    "direct_stocks": (read_number, "assets.investments.equity.directStocks"),
    "ppf": (read_number, "assets.investments.fixedIncome.ppf"),
    "epf": (read_number, "assets.investments.fixedIncome.epf"),
    "nps": (read_number, "assets.investments.fixedIncome.nps"),
    "fixed_deposits": (read_number, "assets.investments.fixedIncome.fixedDeposits"),
    "bonds_debentures": (read_number, "assets.investments.fixedIncome.bondsDebentures"),
    "nsc": (read_number, "assets.investments.fixedIncome.nsc"),
    "ulip": (read_number, "assets.investments.other.ulip"),
    "other_investments": (read_number, "assets.investments.other.otherInvestments"),
}

# Upstream key of each loan line under debtsAndLiabilities
_LOAN_KEYS = {
    "home_loan": "homeLoan",
    "personal_loan": "personalLoan",
    "car_loan": "carLoan",
    "education_loan": "educationLoan",
    "gold_loan": "goldLoan",
    "business_loan": "businessLoan",
    "other_loans": "otherLoans",
}

_LOAN = {
    "has_loan": (read_flag, "hasLoan"),
    "outstanding": (read_number, "outstandingAmount"),
    "monthly_emi": (read_number, "monthlyEMI"),
    "interest_rate": (read_number, "interestRate"),
}

_CREDIT_CARDS = {
    "has_debt": (read_flag, "hasDebt"),
    "outstanding": (read_number, "totalOutstanding"),
    "monthly_payment": (read_number, "monthlyPayment"),
    "interest_rate": (read_number, "averageInterestRate"),
}

_POLICY_KEYS = {
    "life": "lifeInsurance",
    "health": "healthInsurance",
    "vehicle": "vehicleInsurance",
    "other": "otherInsurance",
}

_POLICY = {
    "has_cover": (read_flag, "hasInsurance"),
    "cover_amount": (read_number, "totalCoverAmount"),
    "annual_premium": (read_number, "annualPremium"),
    "policy_type": (read_text, "insuranceType"),
}

_GOAL = {
    "name": (read_text, "goalName"),
    "target_amount": (read_number, "targetAmount"),
    "current_amount": (read_number, "currentAmount"),
    "target_year": (read_int, "targetYear"),
    "priority": (read_text, "priority"),
}

_FINANCIAL_PLAN = {
    "plan_name": (read_text, "planName"),
    "plan_type": (read_text, "planType"),
    "status": (read_text, "status"),
    "risk_level": (read_text, "riskLevel"),
    "created_at": (read_date, "createdAt"),
    "updated_at": (read_date, "updatedAt"),
}

_RETIREMENT = {
    "current_age": (read_int, "retirementPlanning.currentAge"),
    "retirement_age": (read_int, "retirementPlanning.retirementAge"),
    "has_corpus": (read_flag, "retirementPlanning.hasRetirementCorpus"),
    "current_corpus": (read_number, "retirementPlanning.currentRetirementCorpus"),
    "target_corpus": (read_number, "retirementPlanning.targetRetirementCorpus"),
}

_RISK_PROFILE = {
    "investment_experience": (read_text, "investmentExperience"),
    "risk_tolerance": (read_text, "riskTolerance"),
    "investment_horizon": (read_text, "investmentHorizon"),
    "monthly_investment_capacity": (
        read_number, "enhancedRiskProfile.monthlyInvestmentCapacity",
    ),
}

_MEETING = {
    "meeting_type": (read_text, "meetingType"),
    "status": (read_text, "status"),
    "scheduled_at": (read_date, "scheduledAt"),
    "duration_minutes": (read_int, "duration"),
}

_LEGAL_DOCUMENT = {
    "status": (read_text, "status"),
    "sent_at": (read_date, "sentAt"),
    "signed_at": (read_date, "signedAt"),
    "expires_at": (read_date, "expiresAt"),
}

_CHAT = {
    "conversation_id": (read_text, "conversationId"),
    "title": (read_text, "title"),
    "status": (read_text, "status"),
    "message_count": (read_length, "messages"),
    "last_activity": (read_date, "updatedAt"),
}

_RISK_SESSION = {
    "session_id": (read_text, "sessionId"),
    "status": (read_text, "status"),
    "total_score": (read_number, "riskProfile.calculatedRiskScore.totalScore"),
    "max_score": (read_number, "riskProfile.calculatedRiskScore.maxPossibleScore"),
    "risk_percentage": (read_number, "riskProfile.calculatedRiskScore.riskPercentage"),
    "risk_category": (read_text, "riskProfile.calculatedRiskScore.riskCategory"),
    "completed_at": (read_date, "completedAt"),
}

_ESTATE = {
    "has_will": (read_flag, "legalDocumentsStatus.willDetails.hasWill"),
    "will_type": (read_text, "legalDocumentsStatus.willDetails.willType"),
    "will_date": (read_date, "legalDocumentsStatus.willDetails.dateOfWill"),
    "estimated_net_estate": (read_number, "estateMetadata.estimatedNetEstate"),
    "estate_tax_liability": (read_number, "estateMetadata.estateTaxLiability"),
    "succession_complexity": (read_text, "estateMetadata.successionComplexity"),
    "property_count": (read_length, "realEstateProperties"),
}

_MUTUAL_FUND = {
    "fund_name": (read_text, "fundName"),
    "fund_house": (read_text, "fundHouseName"),
    "monthly_sip": (read_number, "recommendedMonthlySIP"),
    "sip_start_date": (read_date, "sipStartDate"),
    "expected_exit_date": (read_date, "expectedExitDate"),
    "status": (read_text, "status"),
}

_EXIT_STRATEGY = {
    "fund_name": (read_text, "fundName"),
    "fund_category": (read_text, "fundCategory"),
    "status": (read_text, "status"),
    "priority": (read_text, "priority"),
}

_TAX_PLAN = {
    "tax_year": (read_text, "taxYear"),
    "gross_total_income": (read_number, "taxCalculations.grossTotalIncome"),
    "total_deductions": (read_number, "taxCalculations.totalDeductions"),
    "taxable_income": (read_number, "taxCalculations.taxableIncome"),
    "total_tax_liability": (read_number, "taxCalculations.totalTaxLiability"),
    "potential_savings": (read_number, "aiRecommendations.totalPotentialSavings"),
    "status": (read_text, "status"),
}

_INVITATION = {
    "email": (read_text, "email"),
    "status": (read_text, "status"),
    "sent_at": (read_date, "sentAt"),
    "expires_at": (read_date, "expiresAt"),
}


# ---------------------------------------------------------------------------
# Section builders
# ---------------------------------------------------------------------------


def _collection(
    record_cls: type, spec: Mapping, view: _SourceView,
) -> Collection:
    items = [record_cls(**_read_fields(r, spec)) for r in view.records]
    return Collection[record_cls](**view.envelope(), items=items)


def _profile_envelope(profile: _SourceView) -> dict[str, Any]:
    return profile.envelope(record_count=1 if profile.first is not None else 0)


def _build_identity(profile: _SourceView, kyc: _SourceView) -> IdentitySection:
    return IdentitySection(
        **_profile_envelope(profile),
        **_read_fields(profile.first, _IDENTITY),
        kyc_verifications=_collection(KycRecord, _KYC, kyc),
    )


def _build_financial(profile: _SourceView) -> FinancialSection:
    return FinancialSection(
        **_profile_envelope(profile),
        **_read_fields(profile.first, _FINANCIAL),
        expense_breakdown=MonthlyExpenses(**_read_fields(profile.first, _EXPENSES)),
    )


def _build_assets(profile: _SourceView) -> AssetsSection:
    return AssetsSection(
        **_profile_envelope(profile),
        **_read_fields(profile.first, _ASSETS),
    )


def _build_debts(profile: _SourceView) -> DebtsSection:
    state, debts = _resolve(profile.first, "debtsAndLiabilities")
    node = debts if state is Presence.PRESENT else None
    loans = {
        name: LoanLine(**_read_fields(_child_node(node, _LOAN_KEYS[name]), _LOAN))
        for name in LOAN_FIELDS
    }
    return DebtsSection(
        **_profile_envelope(profile),
        **loans,
        credit_cards=CreditCardLine(
            **_read_fields(_child_node(node, "creditCards"), _CREDIT_CARDS),
        ),
    )


def _child_node(parent: Any, key: str) -> Any:
    # A non-object parent is passed down so the leaves below read as malformed
    if parent is None:
        return None
    if not isinstance(parent, Mapping):
        return {key: parent}
    return parent.get(key)


def _build_insurance(profile: _SourceView) -> InsuranceSection:
    state, coverage = _resolve(profile.first, "insuranceCoverage")
    node = coverage if state is Presence.PRESENT else None
    policies = {
        name: PolicyLine(**_read_fields(_child_node(node, _POLICY_KEYS[name]), _POLICY))
        for name in POLICY_FIELDS
    }
    return InsuranceSection(**_profile_envelope(profile), **policies)


def _build_goals(profile: _SourceView, plans: _SourceView) -> GoalsSection:
    goals = [
        GoalRecord(**_read_fields(g, _GOAL))
        for g in _read_list(profile.first, "majorGoals")
    ]
    return GoalsSection(
        **profile.envelope(record_count=len(goals)),
        items=goals,
        financial_plans=_collection(FinancialPlanRecord, _FINANCIAL_PLAN, plans),
    )


def _build_retirement(profile: _SourceView) -> RetirementSection:
    return RetirementSection(
        **_profile_envelope(profile),
        **_read_fields(profile.first, _RETIREMENT),
    )


def _build_risk_profile(profile: _SourceView) -> RiskProfileSection:
    return RiskProfileSection(
        **_profile_envelope(profile),
        **_read_fields(profile.first, _RISK_PROFILE),
    )


def _record_id(record: Mapping, *keys: str) -> str | None:
    for key in keys:
        leaf = read_text(record, key)
        if leaf.present:
            return leaf.value
    return None


def _build_meetings(meetings: _SourceView, transcriptions: _SourceView) -> MeetingsSection:
    transcripts: dict[str, Mapping] = {}
    for record in transcriptions.records:
        meeting_id = _record_id(record, "meetingId")
        if meeting_id is not None:
            transcripts.setdefault(meeting_id, record)

    items = []
    for record in meetings.records:
        meeting_id = _record_id(record, "_id", "id")
        transcript = transcripts.get(meeting_id) if meeting_id else None
        items.append(MeetingRecord(
            meeting_id=read_text(record, "_id" if "_id" in record else "id"),
            transcript_status=read_text(transcript, "status"),
            transcript_language=read_text(transcript, "language"),
            **_read_fields(record, _MEETING),
        ))

    return MeetingsSection(
        **meetings.envelope(),
        items=items,
        transcripts=Section(**transcriptions.envelope()),
    )


def _build_estate(estate: _SourceView) -> EstateSection:
    return EstateSection(
        **estate.envelope(),
        **_read_fields(estate.first, _ESTATE),
    )


def _build_mutual_funds(recs: _SourceView, exits: _SourceView) -> MutualFundSection:
    return MutualFundSection(
        **recs.envelope(),
        items=[MutualFundRecord(**_read_fields(r, _MUTUAL_FUND)) for r in recs.records],
        exit_strategies=_collection(ExitStrategyRecord, _EXIT_STRATEGY, exits),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


@dataclass
class _Builder:
    """Runs section builders, turning an unexpected failure into `absent`."""

    client_id: str
    sections: dict[str, Section] = field(default_factory=dict)

    def add(self, attr: str, section_cls: type[Section], build: Callable[[], Section]) -> None:
        try:
            self.sections[attr] = build()
        except Exception:
            logger.exception(
                "Could not normalize section %s for client %s", attr, self.client_id,
            )
            self.sections[attr] = section_cls(
                status=SectionStatus.ABSENT,
                reason=DATA_UNAVAILABLE,
                error_kind=SourceErrorKind.MALFORMED,
            )


def normalize(bundle: RawBundle, generated_at: datetime | None = None) -> ClientReportModel:
    """
    Build the canonical report model from a settled RawBundle.

    Never raises for any payload content. Whether the result is usable
    (mandatory sections present) is decided by the caller.
    """
    views = {sid: _view(bundle, sid) for sid in SourceId}
    profile = views[SourceId.PROFILE]

    if profile.present and len(profile.records) > 1:
        logger.debug(
            "Client %s has %d profile records; using the newest",
            bundle.client_id, len(profile.records),
        )

    b = _Builder(bundle.client_id)
    if profile.present:
        b.add("identity", IdentitySection,
              lambda: _build_identity(profile, views[SourceId.KYC]))
        b.add("financial", FinancialSection, lambda: _build_financial(profile))
        b.add("assets", AssetsSection, lambda: _build_assets(profile))
        b.add("debts", DebtsSection, lambda: _build_debts(profile))
        b.add("insurance", InsuranceSection, lambda: _build_insurance(profile))
        b.add("goals", GoalsSection,
              lambda: _build_goals(profile, views[SourceId.FINANCIAL_PLANS]))
        b.add("retirement", RetirementSection, lambda: _build_retirement(profile))
        b.add("risk_profile", RiskProfileSection, lambda: _build_risk_profile(profile))
    else:
        for attr, cls in (
            ("identity", IdentitySection), ("financial", FinancialSection),
            ("assets", AssetsSection), ("debts", DebtsSection),
            ("insurance", InsuranceSection), ("goals", GoalsSection),
            ("retirement", RetirementSection), ("risk_profile", RiskProfileSection),
        ):
            b.sections[attr] = _absent(cls, profile)

    b.add("meetings", MeetingsSection, lambda: _build_meetings(
        views[SourceId.MEETINGS], views[SourceId.TRANSCRIPTIONS],
    ))
    b.add("legal_documents", Collection[LegalDocumentRecord], lambda: _collection(
        LegalDocumentRecord, _LEGAL_DOCUMENT, views[SourceId.LEGAL_DOCUMENTS],
    ))
    b.add("chat_history", Collection[ChatRecord], lambda: _collection(
        ChatRecord, _CHAT, views[SourceId.CHAT_HISTORY],
    ))
    b.add("risk_sessions", Collection[RiskSessionRecord], lambda: _collection(
        RiskSessionRecord, _RISK_SESSION, views[SourceId.RISK_SESSIONS],
    ))
    b.add("estate", EstateSection, lambda: _build_estate(views[SourceId.ESTATE]))
    b.add("mutual_fund_recommendations", MutualFundSection, lambda: _build_mutual_funds(
        views[SourceId.MUTUAL_FUND_RECOMMENDATIONS], views[SourceId.EXIT_STRATEGIES],
    ))
    b.add("tax_planning", Collection[TaxPlanRecord], lambda: _collection(
        TaxPlanRecord, _TAX_PLAN, views[SourceId.TAX_PLANNING],
    ))
    b.add("invitations", Collection[InvitationRecord], lambda: _collection(
        InvitationRecord, _INVITATION, views[SourceId.INVITATIONS],
    ))

    return ClientReportModel(
        client_id=bundle.client_id,
        generated_at=generated_at or datetime.now(UTC),
        **b.sections,
    )


def count_malformed(node: Any) -> int:
    """Number of malformed leaves under a section (sub-collections included)."""
    if isinstance(node, Leaf):
        return 1 if node.malformed else 0
    if isinstance(node, BaseModel):
        return sum(count_malformed(getattr(node, name)) for name in type(node).model_fields)
    if isinstance(node, Sequence) and not isinstance(node, str):
        return sum(count_malformed(item) for item in node)
    return 0
