"""
Tests for Gathering State Machine
=================================
"""

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.gathering import (
    build_gathering_state,
    evidence_requested,
    format_gathering_state_context,
    is_ready_for_routing,
    is_waiting_for_evidence,
    project_state,
    summary_confirmable,
    with_stage,
)
from dispute_backend.schemas import (
    EvidenceItem,
    ExtractedFacts,
    GatheringStage,
    Parties,
    RecommendedState,
    TranscriptMessage,
)


def msg(role, content):
    return TranscriptMessage(role=role, content=content)


@pytest.fixture
def ready_facts():
    return ExtractedFacts(
        dispute_type="debt",
        parties=Parties(user="Jane Doe", counterparty="Acme Cleaning Ltd", relationship="contractor"),
        financial_amount=148.5,
        facts=["I did the work", "They never paid", "I sent an invoice"],
        readiness_score=90,
    )


# =============================================================================
# Evidence requests
# =============================================================================

class TestEvidenceWaiting:
    """Tests for evidence request / waiting detection"""

    def test_evidence_requested_by_assistant(self):
        transcript = [
            msg("user", "They never paid me."),
            msg("assistant", "Please upload any evidence you have, such as texts."),
        ]
        assert evidence_requested(transcript)

    def test_user_mentioning_evidence_is_not_a_request(self):
        transcript = [msg("user", "I need to upload evidence later")]
        assert not evidence_requested(transcript)

    def test_waiting_phrase_in_last_assistant_message(self):
        transcript = [msg("assistant", "No rush - take your time finding the invoice.")]
        assert is_waiting_for_evidence(transcript, 0)

    def test_upload_ends_waiting(self):
        transcript = [msg("assistant", "I'll need that evidence uploaded before we continue.")]
        assert is_waiting_for_evidence(transcript, 0)
        assert not is_waiting_for_evidence(transcript, 1)


# =============================================================================
# Readiness
# =============================================================================

class TestReadiness:
    """Tests for is_ready_for_routing and summary_confirmable"""

    def test_below_threshold(self):
        assert not is_ready_for_routing(70, 3, None, threshold=75)

    def test_needs_evidence_or_optional_route(self):
        assert not is_ready_for_routing(80, 0, None, threshold=75)
        assert is_ready_for_routing(80, 1, None, threshold=75)
        assert is_ready_for_routing(80, 0, "letter_before_action", threshold=75)

    def test_default_threshold_from_settings(self):
        assert is_ready_for_routing(75, 1, None)
        assert not is_ready_for_routing(74, 1, None)

    def test_summary_confirmable(self, ready_facts):
        assert not summary_confirmable(None, 3)
        assert summary_confirmable(ready_facts, 1, threshold=75)
        assert not summary_confirmable(ready_facts, 0, threshold=75)

        thin = ExtractedFacts(readiness_score=10)
        assert not summary_confirmable(thin, 3, threshold=75)
        recommended = thin.model_copy(update={"recommended_state": RecommendedState.CONFIRMING_SUMMARY})
        assert summary_confirmable(recommended, 0, threshold=75)


# =============================================================================
# State
# =============================================================================

class TestBuildGatheringState:
    """Tests for build_gathering_state"""

    def test_empty_transcript_is_initial(self):
        state = build_gathering_state([], ExtractedFacts(), 0)
        assert state.stage == GatheringStage.INITIAL
        assert state.completed_stages == []

    def test_some_facts_is_gathering(self):
        extracted = ExtractedFacts(dispute_type="debt", readiness_score=15)
        state = build_gathering_state([msg("user", "They owe me money")], extracted, 0)
        assert state.stage == GatheringStage.FACTS_GATHERING
        assert state.completed_stages == [GatheringStage.INITIAL]

    def test_evidence_requested_is_waiting(self):
        extracted = ExtractedFacts(dispute_type="debt", readiness_score=40)
        transcript = [msg("user", "They owe me money"), msg("assistant", "Can you upload evidence of the rate?")]
        state = build_gathering_state(transcript, extracted, 0)
        assert state.stage == GatheringStage.WAITING_FOR_EVIDENCE
        assert state.waiting_for_evidence
        assert state.evidence_requested

    def test_ready_with_evidence(self, ready_facts):
        transcript = [msg("assistant", "Please upload evidence of the agreed rate.")]
        state = build_gathering_state(transcript, ready_facts, 1)
        assert state.stage == GatheringStage.READY_FOR_ROUTING
        assert state.evidence_confirmed
        assert not state.waiting_for_evidence
        assert state.completed_stages == [
            GatheringStage.INITIAL,
            GatheringStage.FACTS_GATHERING,
            GatheringStage.WAITING_FOR_EVIDENCE,
        ]

    def test_ready_without_evidence_skips_waiting_stage(self, ready_facts):
        extracted = ready_facts.model_copy(update={"chosen_forum": "letter_before_action"})
        state = build_gathering_state([], extracted, 0)
        assert state.stage == GatheringStage.READY_FOR_ROUTING
        assert GatheringStage.WAITING_FOR_EVIDENCE not in state.completed_stages

    def test_confirmed_is_terminal(self):
        state = build_gathering_state([], ExtractedFacts(readiness_score=10), 0, confirmed=True)
        assert state.stage == GatheringStage.READY_FOR_ROUTING

    def test_rejection_returns_to_gathering(self, ready_facts):
        state = build_gathering_state([], ready_facts, 1, confirmed=True, routing_rejected=True)
        assert state.stage == GatheringStage.FACTS_GATHERING

    def test_recomputation_is_idempotent(self, ready_facts):
        transcript = [msg("user", "They owe me money"), msg("assistant", "Please upload evidence.")]
        first = build_gathering_state(transcript, ready_facts, 0)
        second = build_gathering_state(transcript, ready_facts, 0)
        assert first == second


def test_with_stage_moves_stored_state(ready_facts):
    state = build_gathering_state([], ready_facts, 1)
    moved = with_stage(state, GatheringStage.FACTS_GATHERING)
    assert moved.stage == GatheringStage.FACTS_GATHERING
    assert moved.completed_stages == [GatheringStage.INITIAL]
    assert moved.domain == "debt"


def test_project_state_carries_missing_info(ready_facts):
    extracted = ready_facts.model_copy(update={"missing_critical_info": ["Your address"]})
    view = project_state(build_gathering_state([], extracted, 2), extracted)
    assert view.stage == GatheringStage.READY_FOR_ROUTING
    assert view.readiness_score == 90
    assert view.missing_critical_info == ["Your address"]
    assert view.evidence_count == 2


def test_state_context_block(ready_facts):
    state = build_gathering_state([], ready_facts, 1)
    text = format_gathering_state_context(state, [EvidenceItem(file_name="texts.png")])
    assert "CURRENT_STAGE: READY_FOR_ROUTING" in text
    assert "OTHER_PARTY: Acme Cleaning Ltd" in text
    assert "AMOUNT: £148.50" in text
    assert "EVIDENCE_LIST: texts.png" in text
    assert "DESIRED_ROUTE: NOT YET CHOSEN BY USER" in text
