"""
Persistence helpers.

Repository functions over the SQLAlchemy session. Callers own the
transaction (get_db_session / get_db); nothing here commits except
SqlLockedFactStore, which runs one short transaction per append.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .db.models import (
    AuditRecordRow,
    CaseRow,
    DocumentPlanRow,
    LockedFactRow,
    PlanDocumentStatus,
    PlannedDocumentRow,
    RoutingDecisionRow,
)
from .db.session import get_db_session
from .errors import CaseNotFoundError, PlanAlreadyExistsError, PlanNotFoundError
from .fact_lock import LockedFactStore
from .schemas import (
    CaseComplexity,
    ComplexityBreakdown,
    DocumentOutput,
    DocumentPlan,
    DocumentStatus,
    DocumentStructure,
    DocumentType,
    ExtractedFacts,
    FactSource,
    GatheringState,
    LegalAuditResult,
    LockedFact,
    PlannedDocument,
    RoutingDecision,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CASES
# =============================================================================

def create_case(db: Session, title: str = "") -> CaseRow:
    case = CaseRow(title=title or "")
    db.add(case)
    db.flush()
    return case


def get_case(db: Session, case_id: str) -> CaseRow:
    case = db.query(CaseRow).filter(CaseRow.id == case_id).first()
    if case is None:
        raise CaseNotFoundError(case_id)
    return case


def save_extraction(
    db: Session,
    case_id: str,
    extracted: ExtractedFacts,
    evidence_count: int,
    state: Optional[GatheringState] = None,
) -> None:
    case = get_case(db, case_id)
    case.extracted_json = extracted.model_dump(mode="json")
    case.evidence_count = evidence_count
    if state is not None:
        case.state_json = state.model_dump(mode="json")


def get_extraction(db: Session, case_id: str) -> Optional[ExtractedFacts]:
    case = get_case(db, case_id)
    if not case.extracted_json:
        return None
    return ExtractedFacts.model_validate(case.extracted_json)


def get_gathering_state(db: Session, case_id: str) -> Optional[GatheringState]:
    case = get_case(db, case_id)
    if not case.state_json:
        return None
    return GatheringState.model_validate(case.state_json)


def save_gathering_state(db: Session, case_id: str, state: GatheringState) -> None:
    get_case(db, case_id).state_json = state.model_dump(mode="json")


# =============================================================================
# LOCKED FACTS
# =============================================================================

def _to_fact(row: LockedFactRow) -> LockedFact:
    return LockedFact(
        field=row.field,
        value=row.value,
        source=FactSource(row.source),
        locked_at=row.locked_at,
    )


def read_locked_facts(db: Session, case_id: str) -> List[LockedFact]:
    rows = (
        db.query(LockedFactRow)
        .filter(LockedFactRow.case_id == case_id)
        .order_by(LockedFactRow.seq.asc())
        .all()
    )
    return [_to_fact(row) for row in rows]


def append_locked_facts(db: Session, case_id: str, facts: List[LockedFact]) -> None:
    """Insert-only; the (case_id, field) unique constraint rejects overwrites"""
    start = db.query(LockedFactRow).filter(LockedFactRow.case_id == case_id).count()
    for offset, fact in enumerate(facts):
        db.add(LockedFactRow(
            case_id=case_id,
            field=fact.field,
            value=fact.value,
            source=fact.source.value,
            locked_at=fact.locked_at,
            seq=start + offset,
        ))
    db.flush()


class SqlLockedFactStore(LockedFactStore):
    """LockedFactStore backed by the locked_facts table"""

    def _read(self, case_id: str) -> List[LockedFact]:
        with get_db_session() as db:
            return read_locked_facts(db, case_id)

    def _append(self, case_id: str, facts: List[LockedFact]) -> None:
        with get_db_session() as db:
            append_locked_facts(db, case_id, facts)


# =============================================================================
# ROUTING
# =============================================================================

def save_routing_decision(db: Session, case_id: str, decision: RoutingDecision) -> None:
    """Replace the current decision (only ever called from confirm-summary)"""
    get_case(db, case_id)
    db.query(RoutingDecisionRow).filter(RoutingDecisionRow.case_id == case_id).delete()
    db.add(RoutingDecisionRow(
        case_id=case_id,
        status=decision.status.value,
        forum=decision.forum,
        confidence=decision.confidence,
        decision_json=decision.model_dump(mode="json"),
        classified_at=decision.classified_at,
    ))
    db.flush()


def get_routing_decision(db: Session, case_id: str) -> Optional[RoutingDecision]:
    row = db.query(RoutingDecisionRow).filter(RoutingDecisionRow.case_id == case_id).first()
    if row is None:
        return None
    return RoutingDecision.model_validate(row.decision_json)


def set_routing_rejected(db: Session, case_id: str, rejected: bool) -> None:
    get_case(db, case_id).routing_rejected = rejected


# =============================================================================
# PLANS
# =============================================================================

def plan_exists(db: Session, case_id: str) -> bool:
    return db.query(DocumentPlanRow).filter(DocumentPlanRow.case_id == case_id).first() is not None


def create_plan(db: Session, case_id: str, plan: DocumentPlan) -> DocumentPlanRow:
    """Plan plus PENDING children, inside the caller's transaction"""
    get_case(db, case_id)
    if plan_exists(db, case_id):
        raise PlanAlreadyExistsError(f"Case {case_id} already has a document plan")

    row = DocumentPlanRow(
        case_id=case_id,
        complexity=plan.complexity.value,
        score=plan.score,
        structure=plan.structure.value,
        breakdown_json=plan.breakdown.model_dump(mode="json"),
    )
    for document in plan.documents:
        row.documents.append(PlannedDocumentRow(
            doc_type=document.type.value,
            title=document.title,
            description=document.description,
            doc_order=document.order,
            required=document.required,
            status=PlanDocumentStatus.PENDING,
        ))
    db.add(row)
    db.flush()
    logger.info(f"[Persistence] Plan created for case {case_id} with {len(plan.documents)} document(s)")
    return row


def get_plan_row(db: Session, case_id: str) -> DocumentPlanRow:
    row = db.query(DocumentPlanRow).filter(DocumentPlanRow.case_id == case_id).first()
    if row is None:
        raise PlanNotFoundError(f"Case {case_id} has no document plan")
    return row


def get_plan(db: Session, case_id: str) -> DocumentPlan:
    row = get_plan_row(db, case_id)
    return DocumentPlan(
        complexity=CaseComplexity(row.complexity),
        score=row.score,
        breakdown=ComplexityBreakdown.model_validate(row.breakdown_json),
        structure=DocumentStructure(row.structure),
        documents=[
            PlannedDocument(
                type=DocumentType(child.doc_type),
                title=child.title,
                description=child.description or "",
                order=child.doc_order,
                required=bool(child.required),
            )
            for child in sorted(row.documents, key=lambda d: d.doc_order)
        ],
    )


def delete_plan(db: Session, case_id: str) -> bool:
    row = db.query(DocumentPlanRow).filter(DocumentPlanRow.case_id == case_id).first()
    if row is None:
        return False
    db.delete(row)
    db.flush()
    return True


def _to_output(row: PlannedDocumentRow) -> DocumentOutput:
    return DocumentOutput(
        type=DocumentType(row.doc_type),
        title=row.title,
        order=row.doc_order,
        required=bool(row.required),
        status=DocumentStatus(row.status.value),
        content=row.content,
        form_id=row.form_id,
        failure_reason=row.failure_reason,
        used_fallback=bool(row.used_fallback),
        audit=LegalAuditResult.model_validate(row.audit_json) if row.audit_json else None,
    )


def list_documents(db: Session, case_id: str) -> List[DocumentOutput]:
    """Plan documents ordered by their plan position"""
    plan = get_plan_row(db, case_id)
    rows = (
        db.query(PlannedDocumentRow)
        .filter(PlannedDocumentRow.plan_id == plan.id)
        .order_by(PlannedDocumentRow.doc_order.asc())
        .all()
    )
    return [_to_output(row) for row in rows]


def update_document(
    db: Session,
    case_id: str,
    order: int,
    status: DocumentStatus,
    content: Optional[str] = None,
    form_id: Optional[str] = None,
    failure_reason: Optional[str] = None,
    used_fallback: bool = False,
    audit: Optional[LegalAuditResult] = None,
) -> None:
    plan = get_plan_row(db, case_id)
    row = (
        db.query(PlannedDocumentRow)
        .filter(PlannedDocumentRow.plan_id == plan.id, PlannedDocumentRow.doc_order == order)
        .first()
    )
    if row is None:
        raise PlanNotFoundError(f"Case {case_id} has no planned document at position {order}")

    row.status = PlanDocumentStatus(status.value)
    # Content is only ever stored for documents that passed the audit
    row.content = content if status == DocumentStatus.GENERATED else None
    row.form_id = form_id
    row.failure_reason = failure_reason
    row.used_fallback = used_fallback
    row.audit_json = audit.model_dump(mode="json") if audit else None
    row.updated_at = datetime.utcnow()

    if audit is not None:
        record_audit(db, case_id, audit, document_id=row.id)
    db.flush()


def record_audit(db: Session, case_id: str, result: LegalAuditResult, document_id: Optional[str] = None) -> None:
    db.add(AuditRecordRow(
        case_id=case_id,
        document_id=document_id,
        passed=result.passed,
        score=result.score,
        result_json=result.model_dump(mode="json"),
    ))
    db.flush()
