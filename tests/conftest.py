"""Shared fixtures for visa-audit tests."""

from __future__ import annotations

import pytest

from tests.fakes.fake_clock import FakeClock
from visa_audit.core.config import AppSettings, LLMConfig, RateLimitConfig
from visa_audit.models import (
    DocumentExtraction,
    FinancialThresholds,
    RequirementItem,
    RequirementsChecklist,
    SourceReference,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> AppSettings:
    """Default test settings (local provider, no real LLM, rate limiting off)."""
    return AppSettings(
        llm=LLMConfig(provider="ollama", model="ollama/test-model", api_key="no-key"),
        rate_limit=RateLimitConfig(enabled=False),
    )


@pytest.fixture
def checklist() -> RequirementsChecklist:
    """Six-item Schengen checklist; five items are uploadable."""
    items = [
        RequirementItem(name="Valid Passport", description="Passport valid for 3 months beyond stay"),
        RequirementItem(name="Bank Statements", description="Last 3 months of bank statements"),
        RequirementItem(name="Travel Insurance", description="Coverage of at least EUR 30,000"),
        RequirementItem(name="Hotel Booking", description="Confirmed accommodation for all nights"),
        RequirementItem(
            name="Employer Letter",
            description="Letter confirming employment and approved leave",
            personalized_detail="Letter from your employer stating your role and leave dates",
        ),
        RequirementItem(
            name="Biometrics Appointment",
            description="Attend the visa centre for fingerprints",
            uploadable=False,
        ),
    ]
    return RequirementsChecklist(
        corridor="India to Germany",
        visa_type="Schengen Short-Stay",
        items=items,
        processing_time="15 days",
        apply_at="VFS Global",
        important_notes=["Apply no earlier than 6 months before travel"],
        sources=[SourceReference(name="German Missions in India", url="https://india.diplo.de")],
        financial_thresholds=FinancialThresholds(daily_minimum="EUR 45"),
    )


@pytest.fixture
def passport_extraction() -> DocumentExtraction:
    return DocumentExtraction(
        id="doc-passport",
        doc_type="passport",
        language="English",
        extracted_text="REPUBLIC OF INDIA PASSPORT Name: Asha Rao Date of expiry: 12/03/2031",
        structured_data={"name": "Asha Rao", "expiry": "2031-03-12"},
    )


@pytest.fixture
def bank_extraction() -> DocumentExtraction:
    return DocumentExtraction(
        id="doc-bank",
        doc_type="bank_statement",
        language="English",
        extracted_text="State Bank statement for Asha Rao. Closing balance INR 4,20,000",
        structured_data={"holder": "Asha Rao", "balance": "420000"},
    )
