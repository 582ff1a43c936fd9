"""
Tests for Form Generator
========================

Tests:
1. Figures (hours x rate, court fee, interest)
2. Defendant naming and exhibit labels
3. Deterministic templates
4. Backend redraft with fallback
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.errors import GenerationBackendError, PlaceholderError
from dispute_backend.fact_lock import lock_facts
from dispute_backend.forms import OfficialFormID
from dispute_backend.generator import (
    FormGenerator,
    GenerationRequest,
    calculate_court_fee,
    calculate_interest,
    compute_claim_figures,
    format_defendant_name,
    format_exhibit_label,
    parse_hourly_rate,
    render_deterministic,
)
from dispute_backend.routing import RoutingEngine
from dispute_backend.schemas import (
    CaseStrategyInput,
    DocumentType,
    EvidenceItem,
    PlannedDocument,
    RoutingInput,
)


NOW = datetime(2025, 4, 1, 9, 0, tzinfo=timezone.utc)
ISSUED = date(2025, 4, 1)


@pytest.fixture
def strategy():
    return CaseStrategyInput(
        dispute_type="debt",
        key_facts=[
            "I am self-employed as a cleaner",
            "I worked 11 hours at £13.50 per hour for Acme Cleaning Ltd",
            "I sent my invoice for £148.50 but it was never paid",
        ],
        evidence_mentioned=["Text messages agreeing £13.50 per hour"],
        desired_outcome="Payment of the £148.50 owed",
    )


@pytest.fixture
def details():
    return {
        "claimantName": "Jane Doe",
        "claimantAddress": "2 Low Road, Leeds LS1 1AA",
        "counterpartyName": "Acme Cleaning Ltd",
        "counterpartyAddress": "1 High Street, London SW1A 1AA",
        "amount": 148.5,
    }


@pytest.fixture
def locked(strategy, details):
    return lock_facts(strategy, details, now=NOW)


@pytest.fixture
def decision(strategy):
    return RoutingEngine(clarification_threshold=0.8).route(RoutingInput(
        case_id="case-1",
        case_title="Unpaid cleaning invoice",
        dispute_type=strategy.dispute_type,
        key_facts=strategy.key_facts,
        desired_outcome=strategy.desired_outcome,
        chosen_forum="letter_before_action",
    ), now=NOW)


@pytest.fixture
def evidence():
    return [EvidenceItem(title="Text messages agreeing £13.50 per hour", file_name="texts.png", file_type="IMAGE")]


def letter():
    return PlannedDocument(
        type=DocumentType.FORMAL_LETTER,
        title="Debt Dispute Letter",
        description="Letter before action",
        order=1,
        required=True,
    )


def make_request(decision, locked, evidence=None, document=None, form_id=None, **kwargs):
    return GenerationRequest(
        document=document or letter(),
        form_id=form_id or OfficialFormID.LETTER_BEFORE_ACTION.value,
        decision=decision,
        locked_facts=locked,
        evidence=evidence or [],
        issued_on=ISSUED,
        **kwargs,
    )


class FakeBackend:
    """Records the prompt and returns a canned redraft"""

    def __init__(self, response="", error=None, delay=0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts = []

    async def generate(self, prompt, system_instructions):
        self.prompts.append((prompt, system_instructions))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


# =============================================================================
# Figures
# =============================================================================

class TestFigures:
    """Tests for computed claim figures"""

    @pytest.mark.parametrize("amount,fee", [
        ("148.50", "35.00"),
        ("300", "35.00"),
        ("300.01", "50.00"),
        ("1000", "70.00"),
        ("4999", "205.00"),
        ("12000", "600.00"),
    ])
    def test_court_fee_bands(self, amount, fee):
        assert calculate_court_fee(Decimal(amount)) == Decimal(fee)

    def test_interest(self):
        assert calculate_interest(Decimal("148.50"), 30, 0.08) == Decimal("0.98")
        assert calculate_interest(Decimal("148.50"), 0, 0.08) == Decimal("0.00")

    def test_hourly_rate(self):
        assert parse_hourly_rate(["I was paid £13.50 per hour"]) == Decimal("13.50")
        assert parse_hourly_rate(["£20/hr for the job"]) == Decimal("20")
        assert parse_hourly_rate(["I am owed £200"]) is None

    def test_hours_times_rate_wins(self, strategy):
        locked = lock_facts(strategy, {"amount": 999}, now=NOW)
        figures = compute_claim_figures(locked)
        assert figures.basis == "hours_x_rate"
        assert figures.principal == Decimal("148.50")
        assert figures.court_fee == Decimal("35.00")

    def test_conceded_hour_is_not_billed(self):
        strategy = CaseStrategyInput(
            dispute_type="debt",
            key_facts=["I worked 11 of 12 agreed hours at £13.50 per hour"],
            desired_outcome="Payment",
        )
        figures = compute_claim_figures(lock_facts(strategy, now=NOW))
        assert figures.hours == 11.0
        assert figures.principal == Decimal("148.50")

    def test_stated_amount_fallback(self):
        strategy = CaseStrategyInput(dispute_type="debt", key_facts=["They never paid"], desired_outcome="Payment")
        figures = compute_claim_figures(lock_facts(strategy, {"amount": 80}, now=NOW))
        assert figures.basis == "stated_amount"
        assert figures.principal == Decimal("80.00")

    def test_no_figures(self):
        strategy = CaseStrategyInput(dispute_type="debt", key_facts=["They never paid"], desired_outcome="Payment")
        assert compute_claim_figures(lock_facts(strategy, now=NOW)) is None

    def test_interest_needs_start_date(self, locked):
        with pytest.raises(PlaceholderError) as exc:
            compute_claim_figures(locked, include_interest=True)
        assert exc.value.placeholders == ["interest start date"]

    def test_interest_added(self, locked):
        figures = compute_claim_figures(locked, True, date(2025, 3, 3), date(2025, 4, 2))
        assert figures.interest_days == 30
        assert figures.interest == Decimal("0.98")
        assert figures.total == Decimal("149.48")


# =============================================================================
# Names
# =============================================================================

class TestNaming:
    """Tests for defendant names and exhibit labels"""

    @pytest.mark.parametrize("name,expected", [
        ("Acme Cleaning Ltd", "ACME CLEANING LTD"),
        ("Acme Cleaning Ltd.", "ACME CLEANING LTD"),
        ("Acme Limited", "ACME LTD"),
        ("Big Retail plc", "BIG RETAIL PLC"),
        ("John Smith t/a Smith Cleaning", "JOHN SMITH trading as SMITH CLEANING"),
        ("John  Smith", "John Smith"),
    ])
    def test_defendant_name(self, name, expected):
        assert format_defendant_name(name) == expected

    def test_exhibit_label(self):
        item = EvidenceItem(title="Invoice", file_name="inv.pdf", evidence_date=date(2025, 3, 3))
        assert format_exhibit_label(2, item) == "Evidence Item #2 (Invoice) dated 03/03/2025"
        assert format_exhibit_label(1, EvidenceItem(file_name="texts.png")) == "Evidence Item #1 (texts.png)"


# =============================================================================
# Templates
# =============================================================================

class TestDeterministicTemplates:
    """Tests for render_deterministic"""

    def test_letter_before_action(self, decision, locked, evidence, strategy):
        result = render_deterministic(make_request(decision, locked, evidence))
        content = result.content

        assert result.used_fallback
        assert content.startswith("LETTER BEFORE ACTION\n")
        assert "Claimant: Jane Doe, 2 Low Road, Leeds LS1 1AA" in content
        assert "Defendant: ACME CLEANING LTD, 1 High Street, London SW1A 1AA" in content
        assert "Date: 01 April 2025" in content
        assert "The sum of £148.50 remains outstanding." in content
        assert "11 hours at £13.50 per hour = £148.50" in content
        assert "Court fee on issue: £35.00" in content
        assert "- Evidence Item #1 (Text messages agreeing £13.50 per hour)" in content
        assert "(1) Payment of the sum of £148.50" in content
        assert "within 14 days" in content
        for number, fact in enumerate(strategy.key_facts, start=1):
            assert f"{number}. {fact}" in content
        assert "[" not in content

    def test_same_input_same_document(self, decision, locked, evidence):
        request = make_request(decision, locked, evidence)
        assert render_deterministic(request).content == render_deterministic(request).content

    def test_interest_in_calculation_and_relief(self, decision, locked):
        content = render_deterministic(
            make_request(decision, locked, include_interest=True, interest_from=date(2025, 3, 3))
        ).content
        assert "Interest at 8% per annum for 29 days = £0.94" in content
        assert "Total including interest: £149.44" in content
        assert "(2) Interest pursuant to section 69 of the County Courts Act 1984" in content
        assert "(3) The court fee" in content

    def test_missing_claimant_raises(self, decision, strategy):
        locked = lock_facts(strategy, {"counterpartyName": "Acme Cleaning Ltd"}, now=NOW)
        with pytest.raises(PlaceholderError) as exc:
            render_deterministic(make_request(decision, locked))
        assert exc.value.placeholders == ["claimant name"]
        assert exc.value.document == "Debt Dispute Letter"

    def test_missing_everything_is_reported_together(self, decision):
        locked = lock_facts(CaseStrategyInput(dispute_type="debt"), now=NOW)
        with pytest.raises(PlaceholderError) as exc:
            render_deterministic(make_request(decision, locked))
        assert exc.value.placeholders == ["claimant name", "counterparty name", "key facts", "amount"]

    def test_evidence_schedule_needs_evidence(self, decision, locked, evidence):
        schedule = PlannedDocument(
            type=DocumentType.EVIDENCE_SCHEDULE, title="Evidence Schedule", description="", order=3, required=True
        )
        form = OfficialFormID.EVIDENCE_BUNDLE_INDEX.value
        with pytest.raises(PlaceholderError):
            render_deterministic(make_request(decision, locked, document=schedule, form_id=form))

        content = render_deterministic(make_request(decision, locked, evidence, document=schedule, form_id=form)).content
        assert "1. Evidence Item #1 (Text messages agreeing £13.50 per hour)" in content

    def test_cover_letter_needs_no_counterparty(self, decision, strategy):
        cover = PlannedDocument(type=DocumentType.COVER_LETTER, title="Cover Letter", description="", order=1, required=True)
        locked = lock_facts(strategy, {"claimantName": "Jane Doe"}, now=NOW)
        content = render_deterministic(
            make_request(decision, locked, document=cover, form_id=OfficialFormID.COVER_LETTER.value)
        ).content
        assert "Please find enclosed my documents for submission to the court." in content

    def test_employment_tribunal_claim(self):
        strategy = CaseStrategyInput(
            dispute_type="employment",
            key_facts=[
                "I was employed as a warehouse operative by Northside Logistics Ltd",
                "My March wages were not paid",
                "I raised a grievance",
                "My manager ignored it",
                "I resigned on 30 April 2025",
            ],
            desired_outcome="Compensation for unpaid wages",
        )
        decision = RoutingEngine(clarification_threshold=0.8).route(RoutingInput(
            case_id="case-2",
            dispute_type="employment",
            key_facts=strategy.key_facts,
            desired_outcome=strategy.desired_outcome,
            evidence=[EvidenceItem(title="ACAS early conciliation certificate", file_name="acas.pdf")],
        ), now=NOW)
        locked = lock_facts(strategy, {"claimantName": "Sam Patel", "counterpartyName": "Northside Logistics Ltd"}, now=NOW)

        content = render_deterministic(make_request(
            decision, locked, form_id=OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM.value
        )).content

        assert content.startswith("EMPLOYMENT TRIBUNAL CLAIM\nET1 Claim to an Employment Tribunal\n")
        assert "Respondent: NORTHSIDE LOGISTICS LTD" in content
        assert "This claim concerns my employment with the Respondent." in content
        assert "(2) Such further relief as the Tribunal considers appropriate" in content
        assert "STATEMENT OF TRUTH" in content
        assert "Defendant" not in content
        assert "Court fee" not in content


# =============================================================================
# Backend redraft
# =============================================================================

class TestFormGenerator:
    """Tests for FormGenerator.generate"""

    @pytest.mark.asyncio
    async def test_no_backend_uses_deterministic(self, decision, locked, evidence):
        result = await FormGenerator(backend=None, timeout=5).generate(make_request(decision, locked, evidence))
        assert result.used_fallback
        assert result.backend_error is None

    @pytest.mark.asyncio
    async def test_backend_redraft_used(self, decision, locked, evidence):
        backend = FakeBackend(response="LETTER BEFORE ACTION\n\nRedrafted for Jane Doe.")
        result = await FormGenerator(backend=backend, timeout=5).generate(make_request(decision, locked, evidence))

        assert not result.used_fallback
        assert result.content == "LETTER BEFORE ACTION\n\nRedrafted for Jane Doe."
        assert result.figures.principal == Decimal("148.50")

        prompt, system = backend.prompts[0]
        assert "11 hours at £13.50 per hour = £148.50" in prompt
        assert "LOCKED FACTS" in system
        assert "FORUM-SPECIFIC LANGUAGE RULES" in system

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, decision, locked, evidence):
        backend = FakeBackend(response="late", delay=1.0)
        result = await FormGenerator(backend=backend, timeout=0.01).generate(make_request(decision, locked, evidence))
        assert result.used_fallback
        assert result.backend_error == "Generation timed out after 0.01s"
        assert "11 hours at £13.50 per hour = £148.50" in result.content

    @pytest.mark.asyncio
    async def test_backend_error_falls_back(self, decision, locked, evidence):
        backend = FakeBackend(error=GenerationBackendError("rate limited"))
        result = await FormGenerator(backend=backend, timeout=5).generate(make_request(decision, locked, evidence))
        assert result.used_fallback
        assert result.backend_error == "rate limited"

    @pytest.mark.asyncio
    async def test_placeholder_output_falls_back(self, decision, locked, evidence):
        backend = FakeBackend(response="You owe £[AMOUNT] by [DATE].")
        result = await FormGenerator(backend=backend, timeout=5).generate(make_request(decision, locked, evidence))
        assert result.used_fallback
        assert result.backend_error == "Backend output contained placeholders: [AMOUNT], [DATE]"
        assert "[AMOUNT]" not in result.content

    @pytest.mark.asyncio
    async def test_template_name_tokens_fall_back(self, decision, locked, evidence):
        backend = FakeBackend(response="Dear [DEFENDANT NAME],\n\nSigned: [CLAIMANT NAME]")
        result = await FormGenerator(backend=backend, timeout=5).generate(make_request(decision, locked, evidence))
        assert result.used_fallback
        assert result.backend_error == "Backend output contained placeholders: [DEFENDANT NAME], [CLAIMANT NAME]"
        assert "[CLAIMANT NAME]" not in result.content
