"""
Case Pipeline
=============

Orchestrates one case end to end:

    extract -> confirm (lock facts + route) -> plan -> generate -> audit -> deliver

Each step is a Stage with the same shape (name + async run), so an extractor,
router or generation backend can be swapped without touching the gate or the
audit. Stages inside one case run sequentially; the only awaits that leave the
process are backend calls made by the extraction and generation stages.

Ordering is enforced by reading persisted state:
- generation reads the stored routing decision and goes through the gate
- a document is stored as GENERATED only after its audit passed
- confirm-summary is the only thing that (re)runs routing
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import List, Optional, Protocol, Sequence, Tuple, TypeVar

from .audit import audit_generated_document
from .complexity import ComplexityConfig
from .db.session import get_db_session
from .errors import PlaceholderError, SummaryNotReadyError
from .extractor import FactExtractor, case_details, get_fact_extractor
from .fact_lock import CaseLocks, LockedFactStore, lock_facts, locked_key_facts, locked_value
from .forms import resolve_form_id
from .gate import require_generation_allowed, validate_document_generation
from .gathering import build_gathering_state, project_state, summary_confirmable, with_stage
from .generator import FormGenerator, GenerationRequest, GenerationResult, get_form_generator, render_deterministic
from .persistence import (
    SqlLockedFactStore,
    create_plan,
    delete_plan,
    get_case,
    get_extraction,
    get_gathering_state,
    get_plan,
    get_routing_decision,
    list_documents,
    save_extraction,
    save_gathering_state,
    save_routing_decision,
    set_routing_rejected,
    update_document,
)
from .planner import PlanAttempt, try_compute_document_plan
from .routing import RoutingEngine
from .schemas import (
    CaseStrategyInput,
    DocumentOutput,
    DocumentPlan,
    DocumentStatus,
    DocumentType,
    EvidenceItem,
    ExtractedFacts,
    GatheringStage,
    GatheringStateView,
    LegalAuditResult,
    LockedFact,
    PlannedDocument,
    RoutingDecision,
    RoutingInput,
    TranscriptMessage,
)

logger = logging.getLogger(__name__)

In = TypeVar("In", contravariant=True)
Out = TypeVar("Out", covariant=True)

# Documents that restate the user's own account and must carry every key fact
VERBATIM_DOCUMENTS = {
    DocumentType.FORMAL_LETTER,
    DocumentType.APPEAL_FORM,
    DocumentType.TIMELINE,
    DocumentType.WITNESS_STATEMENT,
    DocumentType.STATUTORY_DECLARATION,
}


# =============================================================================
# STAGES
# =============================================================================

class Stage(Protocol[In, Out]):
    name: str

    async def run(self, data: In) -> Out:
        ...


@dataclass
class ExtractionInput:
    transcript: Sequence[TranscriptMessage]
    evidence_count: int = 0


@dataclass
class AuditInput:
    content: str
    strategy: CaseStrategyInput
    decision: RoutingDecision
    evidence: List[EvidenceItem]
    locked_facts: List[LockedFact]
    claim_value: Optional[float] = None
    require_verbatim_facts: bool = False
    now: Optional[datetime] = None


class ExtractionStage:
    name = "extraction"

    def __init__(self, extractor: Optional[FactExtractor] = None):
        self.extractor = extractor or get_fact_extractor()

    async def run(self, data: ExtractionInput) -> ExtractedFacts:
        return await self.extractor.extract(data.transcript, data.evidence_count)


class RoutingStage:
    name = "routing"

    def __init__(self, engine: Optional[RoutingEngine] = None):
        self.engine = engine or RoutingEngine()

    async def run(self, data: Tuple[RoutingInput, Optional[datetime]]) -> RoutingDecision:
        routing_input, now = data
        return self.engine.route(routing_input, now=now)


class PlanningStage:
    name = "planning"

    def __init__(self, config: Optional[ComplexityConfig] = None):
        self.config = config

    async def run(self, data: CaseStrategyInput) -> PlanAttempt:
        return try_compute_document_plan(data, self.config)


class GenerationStage:
    name = "generation"

    def __init__(self, generator: Optional[FormGenerator] = None):
        self.generator = generator or get_form_generator()

    async def run(self, data: GenerationRequest) -> GenerationResult:
        return await self.generator.generate(data)


class AuditStage:
    name = "audit"

    async def run(self, data: AuditInput) -> LegalAuditResult:
        return audit_generated_document(
            data.content,
            data.strategy,
            data.decision,
            data.evidence,
            data.locked_facts,
            claim_value=data.claim_value,
            require_verbatim_facts=data.require_verbatim_facts,
            now=data.now,
        )


# =============================================================================
# HELPERS
# =============================================================================

@dataclass
class DocumentAttempt:
    """What gets persisted for one planned document"""
    status: DocumentStatus
    form_id: Optional[str] = None
    content: Optional[str] = None
    failure_reason: Optional[str] = None
    used_fallback: bool = False
    audit: Optional[LegalAuditResult] = None


def build_routing_input(
    case_id: str,
    case_title: str,
    locked_facts: List[LockedFact],
    evidence: Optional[List[EvidenceItem]] = None,
) -> RoutingInput:
    """Routing sees locked facts only, never the raw transcript"""
    return RoutingInput(
        case_id=case_id,
        case_title=case_title or "",
        dispute_type=locked_value(locked_facts, "disputeType"),
        key_facts=locked_key_facts(locked_facts),
        desired_outcome=str(locked_value(locked_facts, "desiredOutcome") or ""),
        chosen_forum=locked_value(locked_facts, "chosenForum"),
        evidence=list(evidence or []),
    )


def strategy_from_locked(locked_facts: List[LockedFact], evidence: Optional[List[EvidenceItem]] = None) -> CaseStrategyInput:
    return CaseStrategyInput(
        dispute_type=locked_value(locked_facts, "disputeType"),
        key_facts=locked_key_facts(locked_facts),
        evidence_mentioned=[item.title or item.file_name for item in evidence or []],
        desired_outcome=locked_value(locked_facts, "desiredOutcome"),
    )


def _locked_amount(locked_facts: List[LockedFact]) -> Optional[float]:
    value = locked_value(locked_facts, "amount")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class CasePipeline:
    """
    Per-case orchestrator over persisted state.

    Cases never share mutable state; confirm-summary on the same case is
    serialized by a per-case lock so two confirmations cannot
    produce divergent locked-fact sets.
    """

    def __init__(
        self,
        extraction: Optional[Stage[ExtractionInput, ExtractedFacts]] = None,
        routing: Optional[Stage[Tuple[RoutingInput, Optional[datetime]], RoutingDecision]] = None,
        planning: Optional[Stage[CaseStrategyInput, PlanAttempt]] = None,
        generation: Optional[Stage[GenerationRequest, GenerationResult]] = None,
        audit: Optional[Stage[AuditInput, LegalAuditResult]] = None,
        fact_store: Optional[LockedFactStore] = None,
    ):
        self.extraction = extraction or ExtractionStage()
        self.routing = routing or RoutingStage()
        self.planning = planning or PlanningStage()
        self.generation = generation or GenerationStage()
        self.audit = audit or AuditStage()
        self.fact_store = fact_store or SqlLockedFactStore()
        self._locks = CaseLocks()

    # -------------------------------------------------------------------------
    # Gathering
    # -------------------------------------------------------------------------

    async def extract(
        self,
        case_id: str,
        transcript: Sequence[TranscriptMessage],
        evidence_count: int = 0,
    ) -> Tuple[ExtractedFacts, GatheringStateView]:
        """Re-extract from the full transcript and recompute the gathering state"""
        with get_db_session() as db:
            case = get_case(db, case_id)
            confirmed = get_routing_decision(db, case_id) is not None
            rejected = bool(case.routing_rejected)

        extracted = await self.extraction.run(ExtractionInput(transcript, evidence_count))
        state = build_gathering_state(
            transcript, extracted, evidence_count,
            confirmed=confirmed and not rejected,
            routing_rejected=rejected,
        )

        with get_db_session() as db:
            save_extraction(db, case_id, extracted, evidence_count, state)

        logger.info(f"[Pipeline] {case_id}: stage={state.stage.value} readiness={state.readiness_score}")
        return extracted, project_state(state, extracted)

    def get_state(self, case_id: str) -> GatheringStateView:
        with get_db_session() as db:
            state = get_gathering_state(db, case_id)
            extracted = get_extraction(db, case_id)
        if state is None or extracted is None:
            return GatheringStateView(stage=GatheringStage.INITIAL, readiness_score=0)
        return project_state(state, extracted)

    # -------------------------------------------------------------------------
    # Confirm + route
    # -------------------------------------------------------------------------

    async def confirm_summary(
        self,
        case_id: str,
        strategy: CaseStrategyInput,
        extracted: Optional[ExtractedFacts] = None,
        evidence: Optional[List[EvidenceItem]] = None,
        now: Optional[datetime] = None,
    ) -> RoutingDecision:
        """
        Lock the confirmed facts, then route from the locked set.

        Only allowed once the stored extraction reached the summary step;
        a supplied `extracted` provides the party details but cannot stand
        in for that check.

        Raises:
            SummaryNotReadyError: the intake has not reached the summary step
                (nothing is locked or routed)
        """
        async with self._locks.hold(case_id):
            return await self._confirm_locked(case_id, strategy, extracted, evidence, now)

    async def _confirm_locked(
        self,
        case_id: str,
        strategy: CaseStrategyInput,
        extracted: Optional[ExtractedFacts],
        evidence: Optional[List[EvidenceItem]],
        now: Optional[datetime],
    ) -> RoutingDecision:
        with get_db_session() as db:
            case = get_case(db, case_id)
            title = case.title
            evidence_count = case.evidence_count or 0
            stored = get_extraction(db, case_id)

        if not summary_confirmable(stored, evidence_count):
            readiness = stored.readiness_score if stored is not None else 0
            missing = list(stored.missing_critical_info) if stored is not None else []
            logger.warning(f"[Pipeline] {case_id}: summary confirmation refused (readiness={readiness})")
            raise SummaryNotReadyError(case_id, readiness, missing)

        if extracted is None:
            extracted = stored

        await self.fact_store.merge(case_id, lock_facts(strategy, case_details(extracted), now=now))
        locked = self.fact_store.get(case_id)

        routing_input = build_routing_input(case_id, title, locked, evidence)
        decision = await self.routing.run((routing_input, now))

        with get_db_session() as db:
            save_routing_decision(db, case_id, decision)
            set_routing_rejected(db, case_id, False)
            state = get_gathering_state(db, case_id)
            if state is not None:
                save_gathering_state(db, case_id, with_stage(state, GatheringStage.READY_FOR_ROUTING))

        logger.info(f"[Pipeline] {case_id}: routed to {decision.forum} ({decision.status.value})")
        return decision

    def get_routing(self, case_id: str) -> Optional[RoutingDecision]:
        with get_db_session() as db:
            get_case(db, case_id)
            return get_routing_decision(db, case_id)

    def is_routing_rejected(self, case_id: str) -> bool:
        with get_db_session() as db:
            return bool(get_case(db, case_id).routing_rejected)

    def reject_routing(self, case_id: str) -> None:
        """User rejected the decision: back to fact gathering until re-confirmed"""
        with get_db_session() as db:
            set_routing_rejected(db, case_id, True)
            state = get_gathering_state(db, case_id)
            if state is not None:
                save_gathering_state(db, case_id, with_stage(state, GatheringStage.FACTS_GATHERING))
        logger.info(f"[Pipeline] {case_id}: routing rejected, back to fact gathering")

    # -------------------------------------------------------------------------
    # Plan
    # -------------------------------------------------------------------------

    async def plan(self, case_id: str, strategy: CaseStrategyInput) -> PlanAttempt:
        """
        Compute and persist the document plan.

        An incomplete strategy comes back as an unsuccessful PlanAttempt with
        the itemized missing fields; nothing is persisted in that case.
        """
        with get_db_session() as db:
            get_case(db, case_id)

        attempt = await self.planning.run(strategy)
        if not attempt.success:
            logger.info(f"[Pipeline] {case_id}: plan refused, missing {attempt.validation.missing_fields}")
            return attempt

        with get_db_session() as db:
            create_plan(db, case_id, attempt.plan)
        return attempt

    def get_plan(self, case_id: str) -> DocumentPlan:
        with get_db_session() as db:
            get_case(db, case_id)
            return get_plan(db, case_id)

    def delete_plan(self, case_id: str) -> bool:
        """Plans are immutable; replanning means delete then plan again"""
        with get_db_session() as db:
            get_case(db, case_id)
            return delete_plan(db, case_id)

    # -------------------------------------------------------------------------
    # Generate + audit
    # -------------------------------------------------------------------------

    async def _audit(
        self,
        content: str,
        document: PlannedDocument,
        decision: RoutingDecision,
        strategy: CaseStrategyInput,
        evidence: List[EvidenceItem],
        locked: List[LockedFact],
        claim_value: Optional[float],
        now: Optional[datetime],
    ) -> LegalAuditResult:
        return await self.audit.run(AuditInput(
            content=content,
            strategy=strategy,
            decision=decision,
            evidence=evidence,
            locked_facts=locked,
            claim_value=claim_value,
            require_verbatim_facts=document.type in VERBATIM_DOCUMENTS,
            now=now,
        ))

    async def _generate_one(
        self,
        document: PlannedDocument,
        decision: RoutingDecision,
        locked: List[LockedFact],
        strategy: CaseStrategyInput,
        evidence: List[EvidenceItem],
        include_interest: bool,
        interest_from: Optional[date],
        now: datetime,
    ) -> DocumentAttempt:
        form_id = resolve_form_id(document.type, decision.forum).value

        check = validate_document_generation(form_id, decision, now)
        if not check.allowed:
            logger.warning(f"[Pipeline] {document.title} refused at {check.gate_name}: {check.error}")
            return DocumentAttempt(
                status=DocumentStatus.FAILED,
                form_id=form_id,
                failure_reason=f"{check.gate_name}: {check.error}",
            )

        request = GenerationRequest(
            document=document,
            form_id=form_id,
            decision=decision,
            locked_facts=locked,
            evidence=evidence,
            include_interest=include_interest,
            interest_from=interest_from,
            issued_on=now.date(),
        )

        try:
            result = await self.generation.run(request)
        except PlaceholderError as e:
            logger.error(f"[Pipeline] {document.title} not generated: {e}")
            return DocumentAttempt(status=DocumentStatus.FAILED, form_id=form_id, failure_reason=str(e))

        claim_value = float(result.figures.principal) if result.figures else _locked_amount(locked)
        audit = await self._audit(result.content, document, decision, strategy, evidence, locked, claim_value, now)

        if not audit.passed and not result.used_fallback:
            logger.warning(f"[Pipeline] Backend draft of {document.title} failed audit, re-rendering deterministically")
            result = render_deterministic(request)
            audit = await self._audit(result.content, document, decision, strategy, evidence, locked, claim_value, now)

        if not audit.passed:
            logger.error(f"[Pipeline] {document.title} failed audit: {audit.critical}")
            return DocumentAttempt(
                status=DocumentStatus.FAILED,
                form_id=form_id,
                failure_reason="; ".join(audit.critical),
                used_fallback=result.used_fallback,
                audit=audit,
            )

        return DocumentAttempt(
            status=DocumentStatus.GENERATED,
            form_id=form_id,
            content=result.content,
            used_fallback=result.used_fallback,
            audit=audit,
        )

    async def generate_documents(
        self,
        case_id: str,
        evidence: Optional[List[EvidenceItem]] = None,
        include_interest: bool = False,
        interest_from: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> List[DocumentOutput]:
        """
        Generate every pending document in the persisted plan.

        Raises:
            GateRejection: the stored routing decision does not allow generation,
                or the user rejected it (nothing is generated or written)
            PlanNotFoundError: no plan has been persisted for the case
        """
        now = now or datetime.now(timezone.utc)
        evidence = list(evidence or [])

        with get_db_session() as db:
            case = get_case(db, case_id)
            decision = get_routing_decision(db, case_id)
            require_generation_allowed(decision, now=now, rejected=bool(case.routing_rejected))
            documents = list_documents(db, case_id)

        locked = self.fact_store.get(case_id)
        strategy = strategy_from_locked(locked, evidence)

        for output in documents:
            if output.status == DocumentStatus.GENERATED:
                continue

            document = PlannedDocument(
                type=output.type,
                title=output.title,
                description="",
                order=output.order,
                required=output.required,
            )
            attempt = await self._generate_one(
                document, decision, locked, strategy, evidence, include_interest, interest_from, now,
            )

            with get_db_session() as db:
                update_document(
                    db, case_id, output.order, attempt.status,
                    content=attempt.content,
                    form_id=attempt.form_id,
                    failure_reason=attempt.failure_reason,
                    used_fallback=attempt.used_fallback,
                    audit=attempt.audit,
                )
            logger.info(f"[Pipeline] {case_id}: {output.title} -> {attempt.status.value}")

        with get_db_session() as db:
            return list_documents(db, case_id)

    def list_documents(self, case_id: str) -> List[DocumentOutput]:
        with get_db_session() as db:
            get_case(db, case_id)
            return list_documents(db, case_id)

    def deliverable_documents(self, case_id: str) -> List[DocumentOutput]:
        """Only documents whose stored audit passed"""
        return [
            doc for doc in self.list_documents(case_id)
            if doc.status == DocumentStatus.GENERATED and doc.audit is not None and doc.audit.passed
        ]


_pipeline: Optional[CasePipeline] = None


def get_case_pipeline() -> CasePipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = CasePipeline()
    return _pipeline
