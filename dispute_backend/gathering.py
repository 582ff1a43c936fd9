"""
Gathering State Machine
=======================

Drives the intake conversation toward a routing decision.

States: INITIAL -> FACTS_GATHERING -> (WAITING_FOR_EVIDENCE) -> READY_FOR_ROUTING

The state is never patched incrementally: every call recomputes it from the
full transcript, the extracted facts and the evidence count, so repeated
polling always yields the same answer.
"""

import logging
from typing import Dict, List, Optional, Sequence

from .config import get_settings
from .schemas import (
    EvidenceItem,
    ExtractedFacts,
    GatheringStage,
    GatheringState,
    GatheringStateView,
    RecommendedState,
    TranscriptMessage,
)

logger = logging.getLogger(__name__)


ASSISTANT_ROLES = {"assistant", "ai", "system_a"}

# Routes that can be prepared without uploaded evidence
EVIDENCE_OPTIONAL_ROUTES = {"letter_before_action"}

WAITING_PHRASES = ["i'll wait", "i will wait", "no rush"]

STAGE_ORDER = [
    GatheringStage.INITIAL,
    GatheringStage.FACTS_GATHERING,
    GatheringStage.WAITING_FOR_EVIDENCE,
    GatheringStage.READY_FOR_ROUTING,
]

STAGE_GUIDANCE: Dict[GatheringStage, str] = {
    GatheringStage.INITIAL: (
        "GOAL: Understand what the dispute is about\n"
        "ACTION: Listen, acknowledge, and identify the type of dispute"
    ),
    GatheringStage.FACTS_GATHERING: (
        "GOAL: Who, what, when, what was agreed, how much\n"
        "ACTION: Ask ONE question at a time; do not re-ask answered questions"
    ),
    GatheringStage.WAITING_FOR_EVIDENCE: (
        "GOAL: Wait for evidence uploads\n"
        "ACTION: Answer process questions only; do not ask new case questions"
    ),
    GatheringStage.READY_FOR_ROUTING: (
        "GOAL: Hand over to routing\n"
        "ACTION: Summarise once and stop gathering"
    ),
}


def _assistant_messages(transcript: Sequence[TranscriptMessage]) -> List[TranscriptMessage]:
    return [m for m in transcript if (m.role or "").lower() in ASSISTANT_ROLES]


def evidence_requested(transcript: Sequence[TranscriptMessage]) -> bool:
    """True once an assistant turn has asked for evidence"""
    for message in _assistant_messages(transcript):
        content = message.content.lower()
        if "evidence" in content and ("upload" in content or "need" in content):
            return True
    return False


def is_waiting_for_evidence(transcript: Sequence[TranscriptMessage], evidence_count: int) -> bool:
    """Waiting mode holds only while nothing has been uploaded"""
    if evidence_count > 0:
        return False
    assistant = _assistant_messages(transcript)
    if assistant:
        last = assistant[-1].content.lower()
        if any(phrase in last for phrase in WAITING_PHRASES):
            return True
    return evidence_requested(transcript)


def is_ready_for_routing(
    readiness_score: int,
    evidence_count: int,
    chosen_forum: Optional[str],
    threshold: Optional[int] = None,
) -> bool:
    if threshold is None:
        threshold = get_settings().readiness_threshold
    if readiness_score < threshold:
        return False
    return evidence_count > 0 or (chosen_forum or "") in EVIDENCE_OPTIONAL_ROUTES


def summary_confirmable(
    extracted: Optional[ExtractedFacts],
    evidence_count: int,
    threshold: Optional[int] = None,
) -> bool:
    """The stored extraction reached the summary step (or scores as ready for routing)"""
    if extracted is None:
        return False
    if extracted.recommended_state == RecommendedState.CONFIRMING_SUMMARY:
        return True
    return is_ready_for_routing(extracted.readiness_score, evidence_count, extracted.chosen_forum, threshold)


def build_gathering_state(
    transcript: Sequence[TranscriptMessage],
    extracted: ExtractedFacts,
    evidence_count: int,
    confirmed: bool = False,
    routing_rejected: bool = False,
    threshold: Optional[int] = None,
) -> GatheringState:
    """
    Recompute the gathering state from scratch.

    Args:
        transcript: Full conversation so far
        extracted: Facts extracted from that transcript
        evidence_count: Number of uploaded evidence items
        confirmed: The user confirmed the summary (routing was triggered)
        routing_rejected: The routing decision was rejected by the user

    READY_FOR_ROUTING is terminal once confirmed; a rejection sends the
    case back to FACTS_GATHERING.
    """
    requested = evidence_requested(transcript)
    waiting = is_waiting_for_evidence(transcript, evidence_count)
    ready = is_ready_for_routing(extracted.readiness_score, evidence_count, extracted.chosen_forum, threshold)
    has_content = bool(
        extracted.dispute_type
        or extracted.parties.relationship
        or extracted.facts
    )

    if routing_rejected:
        stage = GatheringStage.FACTS_GATHERING
    elif confirmed or ready:
        stage = GatheringStage.READY_FOR_ROUTING
    elif waiting:
        stage = GatheringStage.WAITING_FOR_EVIDENCE
    elif has_content:
        stage = GatheringStage.FACTS_GATHERING
    else:
        stage = GatheringStage.INITIAL

    completed = STAGE_ORDER[:STAGE_ORDER.index(stage)]
    if stage == GatheringStage.READY_FOR_ROUTING and not (requested or evidence_count > 0):
        completed = [s for s in completed if s != GatheringStage.WAITING_FOR_EVIDENCE]

    return GatheringState(
        stage=stage,
        domain=extracted.dispute_type,
        relationship=extracted.parties.relationship,
        counterparty=extracted.parties.counterparty,
        amount=extracted.financial_amount,
        chosen_forum=extracted.chosen_forum,
        evidence_requested=requested,
        evidence_confirmed=evidence_count > 0,
        waiting_for_evidence=waiting and stage == GatheringStage.WAITING_FOR_EVIDENCE,
        evidence_count=evidence_count,
        readiness_score=extracted.readiness_score,
        completed_stages=completed,
    )


def with_stage(state: GatheringState, stage: GatheringStage) -> GatheringState:
    """Move a stored state to `stage` after a confirm or a routing rejection"""
    completed = STAGE_ORDER[:STAGE_ORDER.index(stage)]
    if not (state.evidence_requested or state.evidence_count > 0):
        completed = [s for s in completed if s != GatheringStage.WAITING_FOR_EVIDENCE]
    return state.model_copy(update={
        "stage": stage,
        "completed_stages": completed,
        "waiting_for_evidence": False,
    })


def project_state(state: GatheringState, extracted: ExtractedFacts) -> GatheringStateView:
    """Read-only projection for UI prompts"""
    return GatheringStateView(
        stage=state.stage,
        readiness_score=state.readiness_score,
        missing_critical_info=list(extracted.missing_critical_info),
        waiting_for_evidence=state.waiting_for_evidence,
        evidence_count=state.evidence_count,
    )


def format_gathering_state_context(state: GatheringState, evidence_files: Sequence[EvidenceItem]) -> str:
    """State block injected into the intake assistant's prompt every turn"""
    completed = ", ".join(s.value for s in state.completed_stages) or "none"
    amount = f"£{state.amount:.2f}" if state.amount else "not yet identified"
    files = ", ".join(e.file_name for e in evidence_files) if evidence_files else "empty"

    lines = [
        "CURRENT GATHERING STATE",
        "=======================",
        f"CURRENT_STAGE: {state.stage.value}",
        f"COMPLETED_STAGES: {completed}",
        f"DOMAIN: {state.domain or 'not yet identified'}",
        f"RELATIONSHIP: {state.relationship or 'not yet clarified'}",
        f"OTHER_PARTY: {state.counterparty or 'not yet identified'}",
        f"AMOUNT: {amount}",
        f"DESIRED_ROUTE: {state.chosen_forum or 'NOT YET CHOSEN BY USER'}",
        f"EVIDENCE_REQUESTED: {'yes' if state.evidence_requested else 'no'}",
        f"EVIDENCE_LIST: {files}",
        "",
        STAGE_GUIDANCE[state.stage],
    ]
    return "\n".join(lines)
