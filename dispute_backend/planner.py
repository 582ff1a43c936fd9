"""
Document Planner
================

Maps a confirmed strategy to an ordered document plan.

1. validate_strategy_completeness (hard precondition)
2. calculate_complexity_score
3. route_documents:
   - SIMPLE  -> one required letter
   - COMPLEX -> cover letter, main letter, evidence schedule (if evidence),
                timeline (5+ facts), then the CONDITIONAL_DOCUMENTS table

Everything here is pure: identical input gives an identical plan.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .complexity import ComplexityConfig, calculate_complexity_score, normalize_dispute_type
from .errors import StrategyIncompleteError
from .schemas import (
    CaseComplexity,
    CaseStrategyInput,
    DocumentPlan,
    DocumentStructure,
    DocumentType,
    PlannedDocument,
)

logger = logging.getLogger(__name__)


DOCUMENT_DEFINITIONS: Dict[DocumentType, Dict[str, str]] = {
    DocumentType.COVER_LETTER: {
        "title": "Cover Letter",
        "description": "Summary and submission guidance for your document package",
    },
    DocumentType.FORMAL_LETTER: {
        "title": "Formal Dispute Letter",
        "description": "Detailed letter addressing your dispute",
    },
    DocumentType.EVIDENCE_SCHEDULE: {
        "title": "Evidence List",
        "description": "Organized schedule of supporting evidence",
    },
    DocumentType.TIMELINE: {
        "title": "Event Timeline",
        "description": "Chronological breakdown of key events",
    },
    DocumentType.WITNESS_STATEMENT: {
        "title": "Witness Statement Template",
        "description": "Template for witness accounts and statements",
    },
    DocumentType.STATUTORY_DECLARATION: {
        "title": "Statutory Declaration",
        "description": "Formal legal declaration under oath",
    },
    DocumentType.APPEAL_FORM: {
        "title": "Appeal Form",
        "description": "Structured appeal or complaint form",
    },
}

WITNESS_KEYWORDS = ["witness", "colleague", "friend", "family", "testimony"]
MEDICAL_KEYWORDS = ["medical", "doctor", "hospital", "diagnosis", "prescription", "health"]
APPEAL_KEYWORDS = ["tribunal", "appeal", "hearing", "adjudication"]
NOT_DRIVER_KEYWORDS = ["not the driver", "wasn't driving", "someone else"]

TIMELINE_FACT_COUNT = 5


# =============================================================================
# PREDICATES
# =============================================================================

def _facts_and_evidence(strategy: CaseStrategyInput) -> str:
    return " ".join(strategy.evidence_mentioned + strategy.key_facts).lower()


def has_witness_evidence(strategy: CaseStrategyInput) -> bool:
    combined = _facts_and_evidence(strategy)
    return any(keyword in combined for keyword in WITNESS_KEYWORDS)


def has_medical_evidence(strategy: CaseStrategyInput) -> bool:
    combined = _facts_and_evidence(strategy)
    return any(keyword in combined for keyword in MEDICAL_KEYWORDS)


def requires_appeal(strategy: CaseStrategyInput) -> bool:
    outcome = (strategy.desired_outcome or "").lower()
    return any(keyword in outcome for keyword in APPEAL_KEYWORDS)


def requires_statutory_declaration(strategy: CaseStrategyInput) -> bool:
    facts = " ".join(strategy.key_facts).lower()
    outcome = (strategy.desired_outcome or "").lower()
    return any(keyword in facts for keyword in NOT_DRIVER_KEYWORDS) or "statutory declaration" in outcome


def _always(strategy: CaseStrategyInput) -> bool:
    return True


# =============================================================================
# CONDITIONAL DOCUMENT TABLE
# =============================================================================

@dataclass(frozen=True)
class ConditionalDocument:
    """
    A domain-specific document added to COMPLEX plans when `predicate` holds.

    unless_present skips the entry when the plan already holds that type.
    """
    dispute_type: str
    doc_type: DocumentType
    predicate: Callable[[CaseStrategyInput], bool]
    required: bool
    title: Optional[str] = None
    description: Optional[str] = None
    unless_present: bool = False


# Evaluated in this order
CONDITIONAL_DOCUMENTS: List[ConditionalDocument] = [
    ConditionalDocument("employment", DocumentType.WITNESS_STATEMENT, has_witness_evidence, required=False),
    ConditionalDocument(
        "employment", DocumentType.APPEAL_FORM, requires_appeal, required=True,
        title="Employment Tribunal Form",
        description="Structured form for employment tribunal submission",
    ),
    ConditionalDocument(
        "benefits", DocumentType.APPEAL_FORM, _always, required=True,
        title="Benefits Appeal Form",
        description="Structured form for benefits appeal",
    ),
    ConditionalDocument(
        "benefits", DocumentType.STATUTORY_DECLARATION, has_medical_evidence, required=False,
        title="Medical Evidence Declaration",
        description="Declaration for medical evidence submission",
    ),
    ConditionalDocument(
        "immigration", DocumentType.EVIDENCE_SCHEDULE, _always, required=True, unless_present=True,
    ),
    ConditionalDocument(
        "immigration", DocumentType.WITNESS_STATEMENT, has_witness_evidence, required=False,
        title="Supporting Statement",
        description="Supporting statements from family, employer, or references",
    ),
    ConditionalDocument("landlord", DocumentType.TIMELINE, _always, required=True, unless_present=True),
    ConditionalDocument(
        "speeding_ticket", DocumentType.STATUTORY_DECLARATION, requires_statutory_declaration, required=False,
        title="Statutory Declaration",
        description="Legal declaration that you were not the driver",
    ),
]


# =============================================================================
# VALIDATION
# =============================================================================

@dataclass
class StrategyCompleteness:
    is_complete: bool
    missing_fields: List[str] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    reason: str = ""


def _has_minimum_substance(fact_count: int, evidence_count: int) -> bool:
    return fact_count >= 2 or (fact_count >= 1 and evidence_count >= 1)


def validate_strategy_completeness(strategy: CaseStrategyInput) -> StrategyCompleteness:
    """
    Requirements:
    - dispute_type is set
    - desired_outcome is set
    - at least 2 key facts, OR 1 key fact + 1 evidence item

    missing_fields uses the locked-fact field names (disputeType,
    desiredOutcome, keyFacts).
    """
    missing: List[str] = []
    messages: List[str] = []

    if not (strategy.dispute_type or "").strip():
        missing.append("disputeType")
        messages.append("Dispute type is required")

    if not (strategy.desired_outcome or "").strip():
        missing.append("desiredOutcome")
        messages.append("Desired outcome is required")

    fact_count = len(strategy.key_facts)
    evidence_count = len(strategy.evidence_mentioned)

    if not _has_minimum_substance(fact_count, evidence_count):
        missing.append("keyFacts")
        if fact_count == 0 and evidence_count == 0:
            messages.append("Need at least 2 facts OR 1 fact + 1 evidence item")
        elif fact_count == 1:
            messages.append("Need 1 more fact OR 1 evidence item")
        else:
            messages.append("Need at least 1 fact when only evidence is provided")

    if missing:
        reason = f"Strategy is incomplete. Missing: {', '.join(missing)}"
    else:
        reason = "Strategy is complete and ready for document generation"

    return StrategyCompleteness(is_complete=not missing, missing_fields=missing, messages=messages, reason=reason)


def get_strategy_completion_status(strategy: CaseStrategyInput) -> Dict[str, Any]:
    """What is present vs missing, for progress UIs"""
    fact_count = len(strategy.key_facts)
    evidence_count = len(strategy.evidence_mentioned)
    met = _has_minimum_substance(fact_count, evidence_count)

    if fact_count >= 2:
        substance_reason = f"Has {fact_count} facts (meets 2+ facts requirement)"
    elif fact_count >= 1 and evidence_count >= 1:
        substance_reason = f"Has {fact_count} fact(s) + {evidence_count} evidence (meets 1 fact + 1 evidence requirement)"
    elif fact_count == 1:
        substance_reason = f"Has only {fact_count} fact, needs 1 more fact OR 1 evidence item"
    elif evidence_count >= 1:
        substance_reason = f"Has {evidence_count} evidence but no facts, needs at least 1 fact"
    else:
        substance_reason = "No facts or evidence provided yet"

    return {
        "dispute_type": {"present": bool(strategy.dispute_type), "value": strategy.dispute_type},
        "desired_outcome": {"present": bool(strategy.desired_outcome), "value": strategy.desired_outcome},
        "key_facts": {"count": fact_count, "sufficient": fact_count >= 2},
        "evidence_mentioned": {"count": evidence_count, "sufficient": evidence_count >= 1},
        "minimum_substance": {"met": met, "reason": substance_reason},
    }


# =============================================================================
# ROUTING
# =============================================================================

def determine_document_structure(complexity: CaseComplexity) -> DocumentStructure:
    if complexity == CaseComplexity.SIMPLE:
        return DocumentStructure.SINGLE_LETTER
    return DocumentStructure.MULTI_DOCUMENT_DOCKET


def _type_label(strategy: CaseStrategyInput) -> str:
    label = (strategy.dispute_type or "dispute").replace("_", " ")
    return label[:1].upper() + label[1:]


def _planned(doc_type: DocumentType, order: int, required: bool,
             title: Optional[str] = None, description: Optional[str] = None) -> PlannedDocument:
    definition = DOCUMENT_DEFINITIONS[doc_type]
    return PlannedDocument(
        type=doc_type,
        title=title or definition["title"],
        description=description or definition["description"],
        order=order,
        required=required,
    )


def route_documents(strategy: CaseStrategyInput, complexity: CaseComplexity) -> List[PlannedDocument]:
    if complexity == CaseComplexity.SIMPLE:
        return [_planned(DocumentType.FORMAL_LETTER, 1, True, title=f"{_type_label(strategy)} Dispute Letter")]

    documents: List[PlannedDocument] = [
        _planned(DocumentType.COVER_LETTER, 1, True),
        _planned(DocumentType.FORMAL_LETTER, 2, True, title=f"Main {_type_label(strategy)} Letter"),
    ]
    if strategy.evidence_mentioned:
        documents.append(_planned(DocumentType.EVIDENCE_SCHEDULE, len(documents) + 1, True))
    if len(strategy.key_facts) >= TIMELINE_FACT_COUNT:
        documents.append(_planned(DocumentType.TIMELINE, len(documents) + 1, True))

    dispute_type = normalize_dispute_type(strategy.dispute_type)
    for entry in CONDITIONAL_DOCUMENTS:
        if entry.dispute_type != dispute_type:
            continue
        if entry.unless_present and any(d.type == entry.doc_type for d in documents):
            continue
        if not entry.predicate(strategy):
            continue
        documents.append(_planned(entry.doc_type, len(documents) + 1, entry.required, entry.title, entry.description))

    return documents


# =============================================================================
# PLAN
# =============================================================================

def compute_document_plan(
    strategy: CaseStrategyInput,
    config: Optional[ComplexityConfig] = None,
) -> DocumentPlan:
    """
    Compute the in-memory plan (persistence is separate).

    Raises:
        StrategyIncompleteError: when completeness validation fails
    """
    validation = validate_strategy_completeness(strategy)
    if not validation.is_complete:
        raise StrategyIncompleteError(validation.missing_fields, validation.messages)

    breakdown = calculate_complexity_score(strategy, config)
    documents = route_documents(strategy, breakdown.classification)

    logger.info(
        f"[Planner] {breakdown.classification.value} (score {breakdown.total_score}/{breakdown.threshold}), "
        f"{len(documents)} document(s)"
    )

    return DocumentPlan(
        complexity=breakdown.classification,
        score=breakdown.total_score,
        breakdown=breakdown,
        structure=determine_document_structure(breakdown.classification),
        documents=documents,
    )


@dataclass
class PlanAttempt:
    """Non-raising result of try_compute_document_plan"""
    success: bool
    plan: Optional[DocumentPlan] = None
    validation: Optional[StrategyCompleteness] = None
    error: Optional[str] = None


def try_compute_document_plan(
    strategy: CaseStrategyInput,
    config: Optional[ComplexityConfig] = None,
) -> PlanAttempt:
    validation = validate_strategy_completeness(strategy)
    if not validation.is_complete:
        return PlanAttempt(success=False, validation=validation, error=validation.reason)
    return PlanAttempt(success=True, plan=compute_document_plan(strategy, config), validation=validation)


def get_document_summary(documents: List[PlannedDocument]) -> Dict[str, int]:
    required = sum(1 for d in documents if d.required)
    return {"total": len(documents), "required": required, "optional": len(documents) - required}


def summarize_plan(plan: DocumentPlan) -> str:
    lines = [
        "Document Plan Summary:",
        "",
        f"Complexity: {plan.complexity.value} (score: {plan.score})",
        f"Structure: {plan.structure.value}",
        f"Documents: {len(plan.documents)} total",
        "",
        "Documents:",
    ]
    for doc in plan.documents:
        label = "[REQUIRED]" if doc.required else "[OPTIONAL]"
        lines.append(f"  {doc.order}. {doc.title} {label}")
        lines.append(f"     {doc.description}")
    return "\n".join(lines)
