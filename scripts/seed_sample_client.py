#!/usr/bin/env python3
"""
Seed the document store with one synthetic client.

Creates the tables (source_records, report_runs, report_access_logs) if
they do not exist, then loads a sample client covering every source. All
figures are synthetic but internally consistent, so the resulting report
has every section complete.

Usage:
    uv run python scripts/seed_sample_client.py

Then:
    curl localhost:8000/reports/65a1f0c2e4b0a1b2c3d4e5f6
"""

import asyncio

from sqlalchemy import delete

from client_reports.db.engine import async_engine, async_session_factory
from client_reports.db.models import Base, SourceRecord

CLIENT_ID = "65a1f0c2e4b0a1b2c3d4e5f6"
MEETING_ID = "65a1f0c2e4b0a1b2c3d4e601"

SAMPLE_CLIENT = {
    "profile": [{
        "firstName": "Priya",
        "lastName": "Sharma",
        "email": "priya.sharma@example.com",
        "phoneNumber": "+91 98200 12345",
        "dateOfBirth": {"$date": "1988-04-12T00:00:00Z"},
        "panNumber": "ABCPS1234K",
        "gender": "female",
        "maritalStatus": "married",
        "numberOfDependents": 2,
        "occupation": "Software Architect",
        "employerBusinessName": "Example Technologies Pvt Ltd",
        "status": "active",
        "onboardingStep": 7,
        "lastActiveDate": "2024-06-02T10:15:00Z",
        "kycStatus": "verified",
        "address": {"city": "Pune", "state": "Maharashtra", "country": "India"},
        "totalMonthlyIncome": 250000,
        "totalMonthlyExpenses": 140000,
        "annualIncome": 3000000,
        "additionalIncome": 15000,
        "incomeType": "salaried",
        "monthlyExpenses": {
            "housingRent": 45000,
            "groceriesUtilitiesFood": 25000,
            "transportation": 8000,
            "education": 12000,
            "healthcare": 5000,
            "entertainment": 7000,
            "insurancePremiums": 6000,
            "loanEmis": 28000,
            "otherExpenses": 4000,
        },
        "assets": {
            "cashBankSavings": 900000,
            "realEstate": 8500000,
            "investments": {
                "equity": {"mutualFunds": 1800000, "directStocks": 650000},
                "fixedIncome": {
                    "ppf": 420000, "epf": 1100000, "nps": 300000,
                    "fixedDeposits": 500000, "bondsDebentures": 0, "nsc": 0,
                },
                "other": {"ulip": 0, "otherInvestments": 75000},
            },
        },
        "debtsAndLiabilities": {
            "homeLoan": {
                "hasLoan": True,
                "outstandingAmount": 3200000,
                "monthlyEMI": 28000,
                "interestRate": 8.6,
            },
            "carLoan": {"hasLoan": False},
            "creditCards": {
                "hasDebt": True,
                "totalOutstanding": 35000,
                "monthlyPayment": 0,
                "averageInterestRate": 36,
            },
        },
        "insuranceCoverage": {
            "lifeInsurance": {
                "hasInsurance": True,
                "totalCoverAmount": 15000000,
                "annualPremium": 18000,
                "insuranceType": "term",
            },
            "healthInsurance": {
                "hasInsurance": True,
                "totalCoverAmount": 1000000,
                "annualPremium": 24000,
                "insuranceType": "family floater",
            },
        },
        "majorGoals": [
            {
                "goalName": "Children's Education",
                "targetAmount": 4000000,
                "currentAmount": 1000000,
                "targetYear": 2036,
                "priority": "high",
            },
            {
                "goalName": "Retirement Home",
                "targetAmount": 6000000,
                "currentAmount": 1500000,
                "targetYear": 2040,
                "priority": "medium",
            },
        ],
        "retirementPlanning": {
            "currentAge": 36,
            "retirementAge": 58,
            "hasRetirementCorpus": True,
            "currentRetirementCorpus": 1820000,
            "targetRetirementCorpus": 50000000,
        },
        "investmentExperience": "intermediate",
        "riskTolerance": "moderate",
        "investmentHorizon": "long term",
        "enhancedRiskProfile": {"monthlyInvestmentCapacity": 60000},
    }],
    "kyc": [{
        "panStatus": "verified",
        "aadharStatus": "verified",
        "overallStatus": "verified",
        "updatedAt": "2024-01-15T09:00:00Z",
    }],
    "financial_plans": [{
        "planName": "Cash Flow Plan 2024",
        "planType": "cash_flow",
        "status": "active",
        "riskLevel": "moderate",
        "createdAt": "2024-02-01T00:00:00Z",
        "updatedAt": "2024-05-20T00:00:00Z",
    }],
    "meetings": [{
        "_id": {"$oid": MEETING_ID},
        "meetingType": "review",
        "status": "completed",
        "scheduledAt": "2024-05-18T11:00:00Z",
        "duration": 45,
    }],
    "transcriptions": [{
        "meetingId": MEETING_ID,
        "status": "completed",
        "language": "en",
    }],
    "legal_documents": [{
        "status": "signed",
        "sentAt": "2024-01-10T00:00:00Z",
        "signedAt": "2024-01-12T00:00:00Z",
        "expiresAt": "2025-01-10T00:00:00Z",
    }],
    "chat_history": [{
        "conversationId": "conv-001",
        "title": "Tax saving options",
        "status": "active",
        "messages": [{"role": "user"}, {"role": "assistant"}, {"role": "user"}],
        "updatedAt": "2024-05-30T16:40:00Z",
    }],
    "risk_sessions": [{
        "sessionId": "risk-2024-05",
        "status": "completed",
        "riskProfile": {
            "calculatedRiskScore": {
                "totalScore": 31,
                "maxPossibleScore": 50,
                "riskPercentage": 62,
                "riskCategory": "Moderately Aggressive",
            },
        },
        "completedAt": "2024-05-05T00:00:00Z",
    }],
    "estate": [{
        "legalDocumentsStatus": {
            "willDetails": {
                "hasWill": True,
                "willType": "registered",
                "dateOfWill": "2023-11-01",
            },
        },
        "estateMetadata": {
            "estimatedNetEstate": 12000000,
            "estateTaxLiability": 0,
            "successionComplexity": "low",
        },
        "realEstateProperties": [{"type": "apartment"}],
    }],
    "mutual_fund_recommendations": [{
        "fundName": "Example Flexi Cap Fund",
        "fundHouseName": "Example AMC",
        "recommendedMonthlySIP": 25000,
        "sipStartDate": "2024-06-01",
        "expectedExitDate": "2036-06-01",
        "status": "active",
    }],
    "exit_strategies": [{
        "fundName": "Legacy Sectoral Fund",
        "fundCategory": "sectoral",
        "status": "pending",
        "priority": "high",
    }],
    "tax_planning": [{
        "taxYear": "2024-25",
        "taxCalculations": {
            "grossTotalIncome": 3180000,
            "totalDeductions": 225000,
            "taxableIncome": 2955000,
            "totalTaxLiability": 712000,
        },
        "aiRecommendations": {"totalPotentialSavings": 46800},
        "status": "completed",
    }],
    "invitations": [{
        "email": "priya.sharma@example.com",
        "status": "accepted",
        "sentAt": "2023-12-01T00:00:00Z",
        "expiresAt": "2023-12-08T00:00:00Z",
    }],
}


async def seed() -> None:
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as session:
        await session.execute(
            delete(SourceRecord).where(SourceRecord.client_id == CLIENT_ID),
        )
        count = 0
        for source_id, payloads in SAMPLE_CLIENT.items():
            for payload in payloads:
                session.add(SourceRecord(
                    client_id=CLIENT_ID, source_id=source_id, payload=payload,
                ))
                count += 1
        await session.commit()

    await async_engine.dispose()
    print(f"Seeded client {CLIENT_ID}: {count} records across {len(SAMPLE_CLIENT)} sources")


if __name__ == "__main__":
    asyncio.run(seed())
