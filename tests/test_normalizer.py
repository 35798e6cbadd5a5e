# =============================================================================
# Unit Tests — Normalizer
# =============================================================================
#
# Builds RawBundles from static adapters and checks the canonical model:
#   1. Section presence (ok+[] vs failed vs timeout)
#   2. Leaf tri-state (present / missing / malformed with raw preserved)
#   3. Coercions of upstream encodings (extended JSON, strings, dates)
#   4. Joins and sub-collections (transcripts, KYC, plans, exit strategies)
#   5. Robustness: normalize, metrics, tabs and export never raise on junk;
#      the model is immutable
# =============================================================================

from __future__ import annotations

import asyncio
import random
from datetime import date

import pytest
from pydantic import ValidationError

from client_reports.errors import SourceErrorKind
from client_reports.models.report import (
    Presence,
    SectionStatus,
    section_complete,
)
from client_reports.services import exporter, projector
from client_reports.services.aggregator import RawBundle, aggregate
from client_reports.services.metrics import compute_metrics
from client_reports.services.normalizer import count_malformed, normalize
from client_reports.sources.base import SourceId
from client_reports.sources.static import StaticAdapter, build_static_adapters

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _bundle(dataset=None, slow=None) -> RawBundle:
    adapters = build_static_adapters(dataset)
    if slow is not None:
        adapters = [a for a in adapters if a.source_id is not slow]
        adapters.append(StaticAdapter(slow, records=[], delay=5))
    return _run(aggregate(CLIENT_ID, adapters, timeout_for=lambda _: 0.1))


def _model(dataset=None, **kwargs):
    return normalize(_bundle(dataset, **kwargs))


# ---------------------------------------------------------------------------
# Test: Section presence
# ---------------------------------------------------------------------------


class TestSectionPresence:
    def test_empty_source_is_present_with_zero_records(self):
        model = _model({SourceId.PROFILE: [{"firstName": "Asha"}]})
        assert model.meetings.status is SectionStatus.PRESENT
        assert model.meetings.record_count == 0
        assert model.meetings.items == []

    def test_failed_source_is_absent_with_reason(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.MEETINGS: PermissionError("denied"),
        })
        assert model.meetings.status is SectionStatus.ABSENT
        assert model.meetings.reason == "Data unavailable"
        assert model.meetings.error_kind is SourceErrorKind.UNAUTHORIZED
        assert model.meetings.items == []

    def test_timed_out_source_is_absent(self):
        model = _model({SourceId.PROFILE: [{"firstName": "Asha"}]}, slow=SourceId.ESTATE)
        assert model.estate.status is SectionStatus.ABSENT
        assert model.estate.error_kind is SourceErrorKind.TIMEOUT

    def test_absent_section_is_never_zero_filled(self):
        model = _model({SourceId.PROFILE: RuntimeError("profile store down")})
        assert not model.financial.present
        assert model.financial.monthly_income.state is Presence.MISSING
        assert model.financial.monthly_income.value is None

    def test_profile_failure_makes_every_profile_section_absent(self):
        model = _model({SourceId.PROFILE: RuntimeError("down")})
        for section_id in ("identity", "financial", "assets", "debts",
                           "insurance", "goals", "retirement", "riskProfile"):
            assert not model.section(section_id).present, section_id
        assert model.meetings.present

    def test_identity_record_count_tracks_profile(self):
        assert _model({SourceId.PROFILE: [{"firstName": "Asha"}]}).identity.record_count == 1
        assert _model({SourceId.PROFILE: []}).identity.record_count == 0

    def test_newest_profile_record_wins(self):
        model = _model({SourceId.PROFILE: [{"firstName": "Newer"}, {"firstName": "Older"}]})
        assert model.identity.first_name.value == "Newer"


# ---------------------------------------------------------------------------
# Test: Leaf states
# ---------------------------------------------------------------------------


class TestLeafStates:
    def test_present_value(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": 50000}]})
        leaf = model.financial.monthly_income
        assert leaf.state is Presence.PRESENT
        assert leaf.value == 50000.0

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_null_and_empty_are_missing(self, raw):
        model = _model({SourceId.PROFILE: [{"firstName": raw}]})
        assert model.identity.first_name.state is Presence.MISSING

    def test_wrong_type_is_malformed_with_raw_kept(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": "fifty thousand"}]})
        leaf = model.financial.monthly_income
        assert leaf.state is Presence.MALFORMED
        assert leaf.value is None
        assert leaf.raw == "fifty thousand"

    def test_boolean_is_not_a_number(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": True}]})
        assert model.financial.monthly_income.malformed

    def test_zero_is_present_not_missing(self):
        model = _model({SourceId.PROFILE: [{"assets": {"cashBankSavings": 0}}]})
        leaf = model.assets.cash_bank_savings
        assert leaf.present
        assert leaf.value == 0.0

    def test_path_through_scalar_is_malformed(self):
        model = _model({SourceId.PROFILE: [{"assets": {"investments": 12}}]})
        assert model.assets.mutual_funds.malformed
        assert model.assets.mutual_funds.raw == 12

    def test_malformed_does_not_poison_siblings(self):
        model = _model({SourceId.PROFILE: [{
            "totalMonthlyIncome": {"nested": "object"},
            "totalMonthlyExpenses": 35000,
        }]})
        assert model.financial.monthly_income.malformed
        assert model.financial.monthly_expenses.value == 35000.0

    def test_count_malformed(self):
        model = _model({SourceId.PROFILE: [{
            "totalMonthlyIncome": "n/a",
            "annualIncome": [1, 2],
            "totalMonthlyExpenses": 100,
        }]})
        assert count_malformed(model.financial) == 2


# ---------------------------------------------------------------------------
# Test: Coercions
# ---------------------------------------------------------------------------


class TestCoercions:
    def test_extended_json_numbers(self):
        model = _model({SourceId.PROFILE: [{
            "totalMonthlyIncome": {"$numberDecimal": "125000.50"},
            "totalMonthlyExpenses": {"$numberInt": "40000"},
        }]})
        assert model.financial.monthly_income.value == 125000.5
        assert model.financial.monthly_expenses.value == 40000.0

    def test_numeric_strings_with_grouping(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": "1,50,000"}]})
        assert model.financial.monthly_income.value == 150000.0

    def test_non_finite_numbers_are_malformed(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": "NaN"}]})
        assert model.financial.monthly_income.malformed

    def test_integer_beyond_float_range_is_malformed(self):
        model = _model({SourceId.PROFILE: [{"totalMonthlyIncome": 10**400}]})
        assert model.financial.monthly_income.malformed
        assert model.financial.monthly_income.raw == 10**400

    def test_fractional_count_is_malformed(self):
        model = _model({SourceId.PROFILE: [{"numberOfDependents": 1.5}]})
        assert model.identity.dependents.malformed

    def test_iso_date(self):
        model = _model({SourceId.PROFILE: [{"dateOfBirth": "1990-07-15T00:00:00"}]})
        assert model.identity.date_of_birth.value == date(1990, 7, 15)

    def test_extended_json_date_epoch_millis(self):
        model = _model({SourceId.PROFILE: [{"dateOfBirth": {"$date": 0}}]})
        assert model.identity.date_of_birth.value == date(1970, 1, 1)

    def test_unparseable_date_is_malformed(self):
        model = _model({SourceId.PROFILE: [{"dateOfBirth": "last tuesday"}]})
        assert model.identity.date_of_birth.malformed

    @pytest.mark.parametrize("raw, expected", [
        (True, True), (False, False), ("yes", True), ("No", False), (1, True), (0, False),
    ])
    def test_flags(self, raw, expected):
        model = _model({SourceId.PROFILE: [
            {"debtsAndLiabilities": {"homeLoan": {"hasLoan": raw}}},
        ]})
        assert model.debts.home_loan.has_loan.value is expected

    def test_object_id_unwrapped(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.MEETINGS: [{"_id": {"$oid": "abc123"}, "status": "completed"}],
        })
        assert model.meetings.items[0].meeting_id.value == "abc123"

    def test_list_length_leaf(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.CHAT_HISTORY: [{"messages": [{}, {}, {}]}, {"messages": "oops"}],
        })
        assert model.chat_history.items[0].message_count.value == 3
        assert model.chat_history.items[1].message_count.malformed


# ---------------------------------------------------------------------------
# Test: Joins and sub-collections
# ---------------------------------------------------------------------------


class TestSubCollections:
    def test_transcripts_joined_by_meeting_id(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.MEETINGS: [
                {"_id": "m1", "status": "completed"},
                {"_id": "m2", "status": "scheduled"},
            ],
            SourceId.TRANSCRIPTIONS: [
                {"meetingId": "m1", "status": "completed", "language": "en"},
            ],
        })
        first, second = model.meetings.items
        assert first.transcript_status.value == "completed"
        assert first.transcript_language.value == "en"
        assert second.transcript_status.state is Presence.MISSING

    def test_transcription_failure_keeps_meetings_present(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.MEETINGS: [{"_id": "m1", "status": "completed"}],
            SourceId.TRANSCRIPTIONS: RuntimeError("transcripts down"),
        })
        assert model.meetings.present
        assert not model.meetings.transcripts.present
        assert len(model.meetings.items) == 1

    def test_kyc_failure_keeps_identity_present(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.KYC: PermissionError("denied"),
        })
        assert model.identity.present
        assert not model.identity.kyc_verifications.present

    def test_goals_and_plans(self):
        model = _model({
            SourceId.PROFILE: [{"majorGoals": [
                {"goalName": "House", "targetAmount": 100, "currentAmount": 20},
                "not a goal",
            ]}],
            SourceId.FINANCIAL_PLANS: [{"planName": "Plan A", "status": "active"}],
        })
        assert len(model.goals.items) == 1
        assert model.goals.record_count == 1
        assert model.goals.financial_plans.items[0].plan_name.value == "Plan A"

    def test_sub_collections_do_not_count_toward_host_completeness(self):
        model = _model({
            SourceId.PROFILE: [{"firstName": "Asha"}],
            SourceId.EXIT_STRATEGIES: [{"fundName": "Old Fund"}],
        })
        assert model.mutual_fund_recommendations.exit_strategies.record_count == 1
        assert not section_complete(model.mutual_fund_recommendations)


# ---------------------------------------------------------------------------
# Test: Robustness
# ---------------------------------------------------------------------------


def _random_value(rng: random.Random, depth: int = 0):
    choices = [
        lambda: None,
        lambda: rng.randint(-10**12, 10**12),
        lambda: rng.random() * 1e6,
        lambda: rng.choice([1e30, -1e30, 1e300, 1.7e308, 1e-300, 5e-324, "1e30", "0.0000001"]),
        lambda: rng.choice([10**400, -(10**30)]),
        lambda: rng.choice(["", " ", "abc", "1,000", "NaN", "inf", "2024-13-45", "true"]),
        lambda: rng.choice([True, False]),
        lambda: {"$date": rng.choice([10**20, "x", -1, None])},
        lambda: {"$numberDecimal": rng.choice(["1e400", "abc", "12.5"])},
    ]
    if depth < 3:
        choices += [
            lambda: [_random_value(rng, depth + 1) for _ in range(rng.randint(0, 3))],
            lambda: {
                rng.choice(["a", "hasLoan", "monthlyEMI", "city", "$oid"]): _random_value(
                    rng, depth + 1,
                )
                for _ in range(rng.randint(0, 3))
            },
        ]
    return rng.choice(choices)()


_PROFILE_KEYS = [
    "firstName", "lastName", "dateOfBirth", "numberOfDependents", "onboardingStep",
    "totalMonthlyIncome", "totalMonthlyExpenses", "monthlyExpenses", "assets",
    "debtsAndLiabilities", "insuranceCoverage", "majorGoals", "retirementPlanning",
    "address", "enhancedRiskProfile",
]


class TestRobustness:
    def test_pipeline_never_raises_on_random_payloads(self):
        rng = random.Random(20240601)
        for _ in range(200):
            dataset = {
                SourceId.PROFILE: [
                    {key: _random_value(rng) for key in rng.sample(_PROFILE_KEYS, 8)},
                    _random_value(rng),
                ],
                SourceId.MEETINGS: [_random_value(rng) for _ in range(3)],
                SourceId.TRANSCRIPTIONS: [{"meetingId": _random_value(rng)}],
                SourceId.ESTATE: [_random_value(rng)],
                SourceId.TAX_PLANNING: [{"taxCalculations": _random_value(rng)}],
            }
            model = normalize(_bundle(dataset))
            assert model.client_id == CLIENT_ID
            assert len(list(model.sections())) == 16

            metrics = compute_metrics(model)
            for tab_id in projector.TABS:
                projector.project(model, metrics, tab_id)
            if not model.missing_sections(["identity"]):
                exporter.render_json(exporter.render(model, metrics))

    def test_model_is_immutable(self):
        model = _model({SourceId.PROFILE: [{"firstName": "Asha"}]})
        with pytest.raises(ValidationError):
            model.client_id = "other"

    def test_model_does_not_share_raw_payloads(self):
        bundle = _bundle({SourceId.PROFILE: [{"totalMonthlyIncome": ["odd"]}]})
        model = normalize(bundle)
        bundle[SourceId.PROFILE].payload[0]["totalMonthlyIncome"].append("mutated")
        assert model.financial.monthly_income.raw == ["odd"]

    def test_same_bundle_gives_same_model(self):
        bundle = _bundle({SourceId.PROFILE: [{"firstName": "Asha", "totalMonthlyIncome": 1}]})
        first = normalize(bundle, generated_at=None)
        second = normalize(bundle, generated_at=first.generated_at)
        assert first == second
