"""
Hard Gate Validation
====================

Document generation cannot run unless routing produced a valid, APPROVED
decision with every prerequisite met. Callers never check this themselves:
the generation path goes through require_generation_allowed(), which reads
the decision it is handed (the persisted one) and raises GateRejection.

Gates, in order:
    1 decision exists         5 allowed docs not empty
    2 status APPROVED         6 time limit not expired
    3 confidence threshold    7 document in allowed list
    4 prerequisites met       8 document not blocked

A decision the user rejected fails gate 2 until the summary is confirmed again.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import get_settings
from .errors import GateRejection
from .schemas import RoutingDecision, RoutingStatus

logger = logging.getLogger(__name__)

ALL_GATES_PASSED = "ALL_GATES_PASSED"


@dataclass
class GateResult:
    allowed: bool
    gate_name: str
    user_message: str
    error: Optional[str] = None
    next_action: Optional[str] = None


@dataclass
class DocumentGenerationGuard:
    """Every gate evaluated independently (for logging/debugging)"""
    routing_decision_exists: bool
    routing_status_approved: bool
    confidence_above_threshold: bool
    prerequisites_met: bool
    allowed_docs_not_empty: bool
    document_in_allowed_list: bool
    document_not_blocked: bool
    all_gates_passed: bool
    failed_gates: List[str] = field(default_factory=list)


@dataclass
class BatchGateResult:
    allowed: bool
    valid_documents: List[str] = field(default_factory=list)
    blocked_documents: List[Dict[str, str]] = field(default_factory=list)


GATE_ERROR_MESSAGES = {
    "GATE_1_DECISION_EXISTS": "We haven't analyzed your case yet. Please confirm your case summary first.",
    "GATE_2_STATUS_APPROVED": "Your case needs additional information before we can generate documents.",
    "GATE_3_CONFIDENCE_THRESHOLD": "We need more details to be confident about the correct legal route.",
    "GATE_4_PREREQUISITES_MET": "There are required steps you must complete before filing.",
    "GATE_5_ALLOWED_DOCS_NOT_EMPTY": "We couldn't determine which documents are appropriate.",
    "GATE_6_TIME_LIMIT": "Your case may be out of time for this legal route.",
    "GATE_7_DOCUMENT_IN_ALLOWED_LIST": "This document type is not appropriate for your case.",
    "GATE_8_DOCUMENT_NOT_BLOCKED": "This document cannot be used for your type of dispute.",
    ALL_GATES_PASSED: "All checks passed. Generating documents...",
}


def _confidence_threshold() -> float:
    return get_settings().gate_confidence_threshold


def _time_limit_expired(decision: RoutingDecision, now: datetime) -> bool:
    limit = decision.time_limit
    if limit is None:
        return False
    deadline = limit.deadline
    if deadline.tzinfo is None:
        deadline = deadline.replace(tzinfo=timezone.utc)
    return not limit.met or deadline < now


# =============================================================================
# ROUTING GATES (1-6)
# =============================================================================

def validate_routing_decision(
    decision: Optional[RoutingDecision],
    now: Optional[datetime] = None,
    rejected: bool = False,
) -> GateResult:
    """rejected: the user turned this decision down and has not confirmed again"""
    now = now or datetime.now(timezone.utc)

    # GATE 1
    if decision is None:
        return GateResult(
            allowed=False,
            gate_name="GATE_1_DECISION_EXISTS",
            error="FATAL: No routing decision exists. Routing must run first.",
            next_action="Confirm the case summary to classify the dispute and select a forum",
            user_message="We're analyzing your case to determine the correct legal route...",
        )

    # GATE 2
    if rejected:
        return GateResult(
            allowed=False,
            gate_name="GATE_2_STATUS_APPROVED",
            error="Routing decision was rejected by the user",
            next_action="Confirm the case summary again to re-run routing",
            user_message="You rejected this legal route. Update your facts and confirm your case summary again.",
        )
    if decision.status == RoutingStatus.BLOCKED:
        return GateResult(
            allowed=False,
            gate_name="GATE_2_STATUS_APPROVED",
            error=decision.reason,
            next_action=decision.user_message,
            user_message=f"Document generation blocked: {decision.reason}",
        )
    if decision.status != RoutingStatus.APPROVED:
        return GateResult(
            allowed=False,
            gate_name="GATE_2_STATUS_APPROVED",
            error="Classification confidence too low",
            next_action="User must answer clarification questions",
            user_message="We need more information to determine the correct legal route.",
        )

    # GATE 3
    threshold = _confidence_threshold()
    if decision.confidence < threshold:
        return GateResult(
            allowed=False,
            gate_name="GATE_3_CONFIDENCE_THRESHOLD",
            error=f"Confidence {decision.confidence:.2f} below threshold {threshold:.2f}",
            next_action="Request user confirmation or gather more facts",
            user_message="We need to be more certain about your case before generating documents.",
        )

    # GATE 4
    unmet = [p for p in decision.prerequisites if not p.met]
    if not decision.prerequisites_met or unmet:
        names = ", ".join(p.name for p in unmet) or "required prerequisites"
        return GateResult(
            allowed=False,
            gate_name="GATE_4_PREREQUISITES_MET",
            error=f"Missing prerequisites: {names}",
            next_action=(unmet[0].instruction if unmet else None) or "Complete required prerequisites",
            user_message=f"Before we can generate documents, you need to: {names}",
        )

    # GATE 5
    if not decision.allowed_docs:
        return GateResult(
            allowed=False,
            gate_name="GATE_5_ALLOWED_DOCS_NOT_EMPTY",
            error="No valid documents for this route",
            next_action="Review classification or inform user of alternative routes",
            user_message="We couldn't determine which documents are appropriate for your case.",
        )

    # GATE 6
    if _time_limit_expired(decision, now):
        return GateResult(
            allowed=False,
            gate_name="GATE_6_TIME_LIMIT",
            error=f"Time limit expired: {decision.time_limit.description}",
            next_action="Suggest alternative routes if available",
            user_message=f"Your case is out of time for this route. {decision.time_limit.description}",
        )

    return GateResult(
        allowed=True,
        gate_name=ALL_GATES_PASSED,
        user_message="Routing validated. Document generation approved.",
    )


# =============================================================================
# DOCUMENT GATES (7-8)
# =============================================================================

def validate_document_generation(
    form_id: str,
    decision: Optional[RoutingDecision],
    now: Optional[datetime] = None,
    rejected: bool = False,
) -> GateResult:
    routing = validate_routing_decision(decision, now, rejected=rejected)
    if not routing.allowed:
        return routing

    # GATE 7
    if form_id not in decision.allowed_docs:
        return GateResult(
            allowed=False,
            gate_name="GATE_7_DOCUMENT_IN_ALLOWED_LIST",
            error=f"Document {form_id} not allowed for forum {decision.forum}",
            next_action=f"Only these documents are allowed: {', '.join(decision.allowed_docs)}",
            user_message="This document type is not appropriate for your case.",
        )

    # GATE 8
    if form_id in decision.blocked_docs:
        return GateResult(
            allowed=False,
            gate_name="GATE_8_DOCUMENT_NOT_BLOCKED",
            error=f"Document {form_id} explicitly blocked",
            next_action=decision.reason,
            user_message=f"This document cannot be used for your type of case. {decision.reason}",
        )

    return GateResult(allowed=True, gate_name=ALL_GATES_PASSED, user_message="Document generation approved.")


def get_document_generation_guard(form_id: str, decision: Optional[RoutingDecision]) -> DocumentGenerationGuard:
    failed: List[str] = []

    exists = decision is not None
    if not exists:
        failed.append("ROUTING_DECISION_EXISTS")

    approved = exists and decision.status == RoutingStatus.APPROVED
    if not approved:
        failed.append("ROUTING_STATUS_APPROVED")

    confident = exists and decision.confidence >= _confidence_threshold()
    if not confident:
        failed.append("CONFIDENCE_THRESHOLD")

    prerequisites = exists and decision.prerequisites_met
    if not prerequisites:
        failed.append("PREREQUISITES_MET")

    not_empty = exists and bool(decision.allowed_docs)
    if not not_empty:
        failed.append("ALLOWED_DOCS_NOT_EMPTY")

    in_allowed = exists and form_id in decision.allowed_docs
    if not in_allowed:
        failed.append("DOCUMENT_IN_ALLOWED_LIST")

    not_blocked = not (exists and form_id in decision.blocked_docs)
    if not not_blocked:
        failed.append("DOCUMENT_NOT_BLOCKED")

    return DocumentGenerationGuard(
        routing_decision_exists=exists,
        routing_status_approved=approved,
        confidence_above_threshold=confident,
        prerequisites_met=prerequisites,
        allowed_docs_not_empty=not_empty,
        document_in_allowed_list=in_allowed,
        document_not_blocked=not_blocked,
        all_gates_passed=not failed,
        failed_gates=failed,
    )


def validate_batch_generation(form_ids: List[str], decision: Optional[RoutingDecision]) -> BatchGateResult:
    routing = validate_routing_decision(decision)
    if not routing.allowed:
        return BatchGateResult(
            allowed=False,
            blocked_documents=[
                {"form_id": form_id, "reason": routing.error or "Routing validation failed"}
                for form_id in form_ids
            ],
        )

    result = BatchGateResult(allowed=False)
    for form_id in form_ids:
        check = validate_document_generation(form_id, decision)
        if check.allowed:
            result.valid_documents.append(form_id)
        else:
            result.blocked_documents.append({"form_id": form_id, "reason": check.error or "Validation failed"})
    result.allowed = bool(result.valid_documents)
    return result


def get_gate_error_message(gate_name: str) -> str:
    return GATE_ERROR_MESSAGES.get(gate_name, "Validation check failed.")


# =============================================================================
# GUARD
# =============================================================================

def _rejection(result: GateResult, decision: Optional[RoutingDecision]) -> GateRejection:
    prerequisites = []
    alternatives = []
    if decision is not None:
        prerequisites = [p.name for p in decision.prerequisites if not p.met]
        alternatives = [route.description for route in decision.alternative_routes]
    return GateRejection(
        gate_name=result.gate_name,
        reason=result.error or get_gate_error_message(result.gate_name),
        user_message=result.user_message,
        prerequisites=prerequisites,
        alternative_routes=alternatives,
        next_action=result.next_action,
    )


def require_generation_allowed(
    decision: Optional[RoutingDecision],
    form_id: Optional[str] = None,
    now: Optional[datetime] = None,
    rejected: bool = False,
) -> None:
    """
    Raise GateRejection unless generation may proceed.

    Without form_id only gates 1-6 apply; with it, gates 7-8 as well.
    """
    if form_id is None:
        result = validate_routing_decision(decision, now, rejected=rejected)
    else:
        result = validate_document_generation(form_id, decision, now, rejected=rejected)

    if not result.allowed:
        logger.warning(f"[Gate] Generation rejected at {result.gate_name}: {result.error}")
        raise _rejection(result, decision)
