"""
Tests for Legal Audit
=====================

Tests:
1. A clean generated letter passes
2. Each critical check blocks delivery
3. Advisory checks only warn
4. raise_for_audit / format_audit_result / quick_audit
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.audit import audit_generated_document, format_audit_result, quick_audit, raise_for_audit
from dispute_backend.errors import (
    AuditFailure,
    FactViolation,
    LanguageViolation,
    OverclaimError,
    PlaceholderError,
    ReliefViolation,
)
from dispute_backend.fact_lock import lock_facts
from dispute_backend.forms import OfficialFormID
from dispute_backend.generator import GenerationRequest, render_deterministic
from dispute_backend.routing import RoutingEngine
from dispute_backend.schemas import (
    CaseStrategyInput,
    DocumentType,
    EvidenceItem,
    PlannedDocument,
    RoutingInput,
)


NOW = datetime(2025, 4, 1, 9, 0, tzinfo=timezone.utc)


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
def locked(strategy):
    return lock_facts(strategy, {
        "claimantName": "Jane Doe",
        "claimantAddress": "2 Low Road, Leeds LS1 1AA",
        "counterpartyName": "Acme Cleaning Ltd",
        "counterpartyAddress": "1 High Street, London SW1A 1AA",
        "amount": 148.5,
    }, now=NOW)


@pytest.fixture
def engine():
    return RoutingEngine(clarification_threshold=0.8)


@pytest.fixture
def decision(engine, strategy):
    return engine.route(RoutingInput(
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


@pytest.fixture
def letter(decision, locked, evidence):
    return render_deterministic(GenerationRequest(
        document=PlannedDocument(
            type=DocumentType.FORMAL_LETTER, title="Debt Dispute Letter", description="", order=1, required=True
        ),
        form_id=OfficialFormID.LETTER_BEFORE_ACTION.value,
        decision=decision,
        locked_facts=locked,
        evidence=evidence,
        issued_on=date(2025, 4, 1),
    )).content


def run_audit(content, strategy, decision, evidence, locked, claim_value=148.5, now=NOW, **kwargs):
    return audit_generated_document(content, strategy, decision, evidence, locked, claim_value, now=now, **kwargs)


def assert_score_matches(result):
    assert result.score == max(0.0, 10.0 - 2.0 * len(result.critical) - 0.5 * len(result.warnings))


# =============================================================================
# Clean document
# =============================================================================

class TestCleanDocument:
    """The generated letter before action is court-ready"""

    def test_generated_letter_passes(self, letter, strategy, decision, evidence, locked):
        result = run_audit(letter, strategy, decision, evidence, locked, require_verbatim_facts=True)
        assert result.passed
        assert result.critical == []
        assert result.warnings == []
        assert result.recommendations == []
        assert result.score == 10.0

    def test_report_for_clean_letter(self, letter, strategy, decision, evidence, locked):
        report = format_audit_result(run_audit(letter, strategy, decision, evidence, locked))
        assert report.startswith("LEGAL AUDIT REPORT")
        assert "Status: PASSED" in report
        assert report.endswith("DOCUMENT IS READY TO FILE\nAll checks passed.")

    def test_raise_for_audit_is_silent_on_pass(self, letter, strategy, decision, evidence, locked):
        raise_for_audit(run_audit(letter, strategy, decision, evidence, locked))


# =============================================================================
# Critical checks
# =============================================================================

class TestCriticalChecks:
    """Each of these blocks delivery"""

    def test_placeholder(self, letter, strategy, decision, evidence, locked):
        content = letter.replace("The sum of £148.50 remains outstanding.", "The sum of £[AMOUNT] remains outstanding.")
        result = run_audit(content, strategy, decision, evidence, locked)

        assert not result.passed
        assert result.critical == [
            'FACT VIOLATION: CRITICAL: Unfilled placeholder "[AMOUNT]" - document not ready for filing',
            'PLACEHOLDER UNFILLED: "[AMOUNT]" - document not court-ready',
        ]
        assert_score_matches(result)

        with pytest.raises(PlaceholderError) as exc:
            raise_for_audit(result, "Debt Dispute Letter")
        assert exc.value.placeholders == ["[AMOUNT]"]

    @pytest.mark.parametrize("token", ["[DEFENDANT NAME]", "[INSERT DATE]", "[Respondent]"])
    def test_unprefixed_template_tokens(self, token, letter, strategy, decision, evidence, locked):
        content = letter.replace("Defendant: ACME CLEANING LTD", f"Defendant: {token}")
        result = run_audit(content, strategy, decision, evidence, locked)

        assert not result.passed
        assert f'PLACEHOLDER UNFILLED: "{token}" - document not court-ready' in result.critical
        assert result.score <= 8.0
        with pytest.raises(PlaceholderError) as exc:
            raise_for_audit(result)
        assert exc.value.placeholders == [token]

    def test_paraphrased_fact(self, letter, strategy, decision, evidence, locked):
        content = letter.replace("I worked 11 hours at", "I did 11 hours of cleaning at")
        result = run_audit(content, strategy, decision, evidence, locked, require_verbatim_facts=True)
        assert result.critical[0].startswith("FACT VIOLATION: CRITICAL: Locked fact keyFact_1")
        with pytest.raises(FactViolation):
            raise_for_audit(result)

    def test_overclaim(self, decision, evidence):
        strategy = CaseStrategyInput(
            dispute_type="debt",
            key_facts=["I worked 11 of 12 agreed hours at £13.50 per hour", "The invoice was never paid"],
            desired_outcome="Payment",
        )
        locked = lock_facts(strategy, now=NOW)
        content = "The sum due under the agreement is for 12 hours at £13.50 per hour."
        result = run_audit(content, strategy, decision, evidence, locked)

        assert result.critical == ["OVERCLAIMING: Document claims 12 hours but user stated only 11 hours worked"]
        with pytest.raises(OverclaimError):
            raise_for_audit(result)

    def test_forbidden_language(self, letter, strategy, decision, evidence, locked):
        content = letter.replace("Defendant:", "Respondent:")
        result = run_audit(content, strategy, decision, evidence, locked)

        assert result.critical == ['FORBIDDEN LANGUAGE: "respondent" not allowed in COUNTY_COURT_SMALL_CLAIMS']
        assert 'Using "respondent" in court context - should use "defendant"' in result.warnings
        with pytest.raises(LanguageViolation):
            raise_for_audit(result)

    def test_costs_in_small_claims(self, letter, strategy, decision, evidence, locked):
        content = letter.replace("(2) The court fee", "(2) Costs")
        result = run_audit(content, strategy, decision, evidence, locked)

        assert result.critical == ["FORBIDDEN RELIEF: costs not available in COUNTY_COURT_SMALL_CLAIMS"]
        assert "COSTS not recoverable in small claims (except fixed court fee)" in result.warnings
        with pytest.raises(ReliefViolation):
            raise_for_audit(result)

    def test_deadline_passed(self, engine, evidence):
        strategy = CaseStrategyInput(
            dispute_type="parking",
            key_facts=["I got a parking ticket at the retail park", "The signs were hidden"],
            desired_outcome="Cancel the ticket",
        )
        decision = engine.route(RoutingInput(
            case_id="c",
            key_facts=strategy.key_facts,
            desired_outcome=strategy.desired_outcome,
        ), now=NOW)
        content = "I appeal the parking charge. The signs were hidden."

        result = run_audit(content, strategy, decision, evidence, lock_facts(strategy, now=NOW), None, now=NOW + timedelta(days=29))

        assert result.critical == ["TIME LIMIT: Deadline has passed - claim may be out of time"]
        assert "No vocabulary rules for popla_parking_appeal - language check skipped" in result.recommendations
        with pytest.raises(AuditFailure) as exc:
            raise_for_audit(result, "Parking Appeal")
        assert type(exc.value) is AuditFailure


# =============================================================================
# Advisory checks
# =============================================================================

class TestAdvisoryChecks:
    """These warn or recommend but never block"""

    def test_amount_mismatch(self, letter, strategy, decision, evidence, locked):
        result = run_audit(letter, strategy, decision, evidence, locked, claim_value=200.0)
        assert result.passed
        assert result.warnings == ["AMOUNT MISMATCH: Document claims £148.50 but case value is £200.00"]
        assert result.score == 9.5

    def test_missing_evidence_is_advisory(self, letter, strategy, decision, locked):
        result = run_audit(letter, strategy, decision, [], locked)
        assert result.passed
        assert "EVIDENCE: Case would be stronger with critical evidence (see recommendations)" in result.warnings
        assert result.recommendations[0].startswith("CRITICAL: Your case would be stronger with evidence of:")

    def test_missing_required_vocabulary(self, strategy, decision, evidence, locked):
        result = run_audit("Jane Doe is owed money by Acme.", strategy, decision, evidence, locked)
        assert result.passed
        assert result.warnings[:2] == [
            'MISSING REQUIRED: "sum" should appear in COUNTY_COURT_SMALL_CLAIMS document',
            'MISSING REQUIRED: "contract or agreement" should appear in COUNTY_COURT_SMALL_CLAIMS document',
        ]

    def test_complex_language_for_small_claim(self, letter, strategy, decision, evidence, locked):
        content = letter + "\nThis is a sophisticated matter."
        result = run_audit(content, strategy, decision, evidence, locked)
        assert result.warnings == ["LANGUAGE: Avoid complex language for small value claims - keep it simple"]

    def test_long_document_for_small_claim(self, letter, strategy, decision, evidence, locked):
        content = letter + "\n" + " ".join(["word"] * 1600)
        result = run_audit(content, strategy, decision, evidence, locked)
        assert result.passed
        assert result.warnings[0] == "PROPORTIONALITY: Document is 4 pages for £148.50 claim - consider condensing"
        assert result.warnings[1].startswith("LENGTH: 4 pages")

    def test_deadline_approaching(self, engine, evidence):
        strategy = CaseStrategyInput(
            dispute_type="parking",
            key_facts=["I got a parking ticket at the retail park", "The signs were hidden"],
            desired_outcome="Cancel the ticket",
        )
        decision = engine.route(RoutingInput(case_id="c", key_facts=strategy.key_facts), now=NOW)
        result = run_audit(
            "I appeal the parking charge.", strategy, decision, evidence,
            lock_facts(strategy, now=NOW), None, now=NOW + timedelta(days=20),
        )
        assert result.passed
        assert 'TIME LIMIT: 8 days to deadline - consider adding "prompt action" language' in result.recommendations


# =============================================================================
# Helpers
# =============================================================================

def test_failed_report_lists_critical_issues(letter, strategy, decision, evidence, locked):
    content = letter.replace("(2) The court fee", "(2) Costs")
    report = format_audit_result(run_audit(content, strategy, decision, evidence, locked))
    assert "Status: FAILED" in report
    assert "CRITICAL ISSUES (MUST FIX BEFORE FILING):" in report
    assert "1. FORBIDDEN RELIEF: costs not available in COUNTY_COURT_SMALL_CLAIMS" in report
    assert "DOCUMENT IS READY TO FILE" not in report


def test_quick_audit(letter, locked):
    assert quick_audit(letter, locked) == {"passed": True, "reason": None}
    assert quick_audit("Pay £[AMOUNT]", locked) == {
        "passed": False,
        "reason": "Document contains unfilled placeholders",
    }

    employment = lock_facts(
        CaseStrategyInput(dispute_type="employment", key_facts=["I was dismissed"], desired_outcome="compensation"),
        now=NOW,
    )
    assert quick_audit("I was dismissed.", employment) == {
        "passed": False,
        "reason": "Critical fact violations detected",
    }
