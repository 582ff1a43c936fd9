"""
Pydantic Schemas for Dispute Document Service
=============================================

Typed records for everything that crosses a stage boundary.
Payloads are parsed at the boundary and rejected when malformed,
so the pipeline never works on loosely-typed JSON.

Lifecycle notes:
- LockedFact is frozen: once written it is never modified.
- RoutingDecision is created once per confirm-summary event.
- DocumentPlan is immutable once persisted (delete + recreate to change it).
- LegalAuditResult.passed is true exactly when critical is empty.
"""

from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum
from datetime import datetime, date


# =============================================================================
# ENUMS
# =============================================================================

class LLMMode(str, Enum):
    """Generation backend mode"""
    NONE = "none"
    OPENROUTER = "openrouter"


class FactSource(str, Enum):
    """Where a locked fact came from"""
    USER_CONFIRMED = "user_confirmed"
    EVIDENCE = "evidence"
    CONCESSION = "concession"


class GatheringStage(str, Enum):
    """Conversation progress toward a routing decision"""
    INITIAL = "INITIAL"
    FACTS_GATHERING = "FACTS_GATHERING"
    WAITING_FOR_EVIDENCE = "WAITING_FOR_EVIDENCE"
    READY_FOR_ROUTING = "READY_FOR_ROUTING"


class RecommendedState(str, Enum):
    """Extractor's recommendation for the intake conversation"""
    GATHERING_FACTS = "GATHERING_FACTS"
    WAITING_FOR_UPLOAD = "WAITING_FOR_UPLOAD"
    CONFIRMING_SUMMARY = "CONFIRMING_SUMMARY"


class CaseComplexity(str, Enum):
    SIMPLE = "SIMPLE"
    COMPLEX = "COMPLEX"


class DocumentStructure(str, Enum):
    SINGLE_LETTER = "SINGLE_LETTER"
    MULTI_DOCUMENT_DOCKET = "MULTI_DOCUMENT_DOCKET"


class DocumentType(str, Enum):
    """Document kinds the planner can schedule"""
    COVER_LETTER = "COVER_LETTER"
    FORMAL_LETTER = "FORMAL_LETTER"
    EVIDENCE_SCHEDULE = "EVIDENCE_SCHEDULE"
    TIMELINE = "TIMELINE"
    WITNESS_STATEMENT = "WITNESS_STATEMENT"
    STATUTORY_DECLARATION = "STATUTORY_DECLARATION"
    APPEAL_FORM = "APPEAL_FORM"


class DocumentStatus(str, Enum):
    PENDING = "PENDING"
    GENERATED = "GENERATED"
    FAILED = "FAILED"


class RoutingStatus(str, Enum):
    """
    Routing gate status.

    Only APPROVED (with all prerequisites met) lets generation run.
    """
    APPROVED = "APPROVED"
    BLOCKED = "BLOCKED"
    NEEDS_INFO = "NEEDS_INFO"


class LegalForum(str, Enum):
    """Forums with their own vocabulary and relief rules"""
    COUNTY_COURT_SMALL_CLAIMS = "COUNTY_COURT_SMALL_CLAIMS"
    COUNTY_COURT_FAST_TRACK = "COUNTY_COURT_FAST_TRACK"
    EMPLOYMENT_TRIBUNAL = "EMPLOYMENT_TRIBUNAL"
    SOCIAL_SECURITY_TRIBUNAL = "SOCIAL_SECURITY_TRIBUNAL"
    TAX_TRIBUNAL = "TAX_TRIBUNAL"
    PROPERTY_TRIBUNAL = "PROPERTY_TRIBUNAL"
    IMMIGRATION_TRIBUNAL = "IMMIGRATION_TRIBUNAL"


# =============================================================================
# EXTERNAL INPUTS
# =============================================================================

class TranscriptMessage(BaseModel):
    """One turn of the intake conversation (owned by the session store)"""
    role: str = Field(..., description="user | assistant")
    content: str = Field("", description="Message text")
    timestamp: Optional[datetime] = Field(None, description="When the message was sent")


class EvidenceItem(BaseModel):
    """Evidence metadata - binary content is never read"""
    id: Optional[str] = Field(None, description="Evidence identifier")
    title: str = Field("", description="User-supplied title")
    file_name: str = Field(..., description="Original file name")
    file_type: Optional[str] = Field(None, description="IMAGE | VIDEO | DOCUMENT | ...")
    description: Optional[str] = Field(None, description="Free-text description")
    evidence_date: Optional[date] = Field(None, description="Date the evidence relates to")


# =============================================================================
# FACTS
# =============================================================================

class LockedFact(BaseModel):
    """User-confirmed datum; must be reproduced verbatim downstream"""
    field: str
    value: Any
    source: FactSource = FactSource.USER_CONFIRMED
    locked_at: datetime
    immutable: bool = True

    class Config:
        frozen = True


class Parties(BaseModel):
    user: Optional[str] = None
    counterparty: Optional[str] = None
    relationship: Optional[str] = None


class ExtractedFacts(BaseModel):
    """Candidate facts pulled from the transcript (not locked until confirmed)"""
    dispute_type: Optional[str] = None
    parties: Parties = Field(default_factory=Parties)
    incident_date: Optional[str] = None
    financial_amount: Optional[float] = None
    chosen_forum: Optional[str] = None
    facts: List[str] = Field(default_factory=list)
    evidence_provided: List[str] = Field(default_factory=list)
    contradictions: List[str] = Field(default_factory=list)
    user_address: Optional[str] = None
    counterparty_address: Optional[str] = None
    readiness_score: int = Field(0, ge=0, le=100)
    missing_critical_info: List[str] = Field(default_factory=list)
    recommended_state: RecommendedState = RecommendedState.GATHERING_FACTS


class CaseStrategyInput(BaseModel):
    """Confirmed strategy; must pass completeness validation before planning"""
    dispute_type: Optional[str] = None
    key_facts: List[str] = Field(default_factory=list)
    evidence_mentioned: List[str] = Field(default_factory=list)
    desired_outcome: Optional[str] = None


# =============================================================================
# GATHERING STATE
# =============================================================================

class GatheringState(BaseModel):
    """Recomputed wholesale from the full transcript each turn"""
    stage: GatheringStage = GatheringStage.INITIAL
    domain: Optional[str] = None
    relationship: Optional[str] = None
    counterparty: Optional[str] = None
    amount: Optional[float] = None
    chosen_forum: Optional[str] = None
    evidence_requested: bool = False
    evidence_confirmed: bool = False
    waiting_for_evidence: bool = False
    evidence_count: int = 0
    readiness_score: int = 0
    completed_stages: List[GatheringStage] = Field(default_factory=list)


class GatheringStateView(BaseModel):
    """Read-only projection used to drive UI prompts"""
    stage: GatheringStage
    readiness_score: int
    missing_critical_info: List[str] = Field(default_factory=list)
    waiting_for_evidence: bool = False
    evidence_count: int = 0


# =============================================================================
# COMPLEXITY & PLANNING
# =============================================================================

class FactorScore(BaseModel):
    score: int
    reason: str


class ComplexityBreakdown(BaseModel):
    dispute_type: FactorScore
    fact_count: FactorScore
    evidence_count: FactorScore
    outcome: FactorScore
    total_score: int
    threshold: int
    classification: CaseComplexity
    version: str


class PlannedDocument(BaseModel):
    type: DocumentType
    title: str
    description: str
    order: int
    required: bool


class DocumentPlan(BaseModel):
    complexity: CaseComplexity
    score: int
    breakdown: ComplexityBreakdown
    structure: DocumentStructure
    documents: List[PlannedDocument] = Field(default_factory=list)


# =============================================================================
# ROUTING
# =============================================================================

class Prerequisite(BaseModel):
    id: str
    name: str
    met: bool = False
    instruction: Optional[str] = None


class TimeLimit(BaseModel):
    deadline: datetime
    days_remaining: int
    met: bool
    description: str


class AlternativeRoute(BaseModel):
    forum: str
    description: str
    allowed_docs: List[str] = Field(default_factory=list)
    conditions: List[str] = Field(default_factory=list)
    confidence: float = 0.0


class RoutingInput(BaseModel):
    """What the routing engine sees: locked facts plus the user's forum choice"""
    case_id: str
    case_title: str = ""
    dispute_type: Optional[str] = None
    key_facts: List[str] = Field(default_factory=list)
    desired_outcome: str = ""
    chosen_forum: Optional[str] = None
    evidence: List[EvidenceItem] = Field(default_factory=list)


class RoutingDecision(BaseModel):
    status: RoutingStatus
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    jurisdiction: str = "england_wales"
    relationship: str = "complainant"
    counterparty: str = "unknown"
    domain: str = "other"
    forum: str
    forum_reasoning: str = ""
    allowed_docs: List[str] = Field(default_factory=list)
    blocked_docs: List[str] = Field(default_factory=list)
    prerequisites: List[Prerequisite] = Field(default_factory=list)
    prerequisites_met: bool = False
    time_limit: Optional[TimeLimit] = None
    reason: str = ""
    user_message: str = ""
    alternative_routes: List[AlternativeRoute] = Field(default_factory=list)
    clarification_questions: List[str] = Field(default_factory=list)
    classified_at: datetime


# =============================================================================
# GENERATION & AUDIT
# =============================================================================

class LegalAuditResult(BaseModel):
    passed: bool
    critical: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    score: float = Field(10.0, ge=0.0, le=10.0)


class DocumentOutput(BaseModel):
    """Per-document output as stored and returned to the caller"""
    type: DocumentType
    title: str
    order: int
    required: bool
    status: DocumentStatus = DocumentStatus.PENDING
    content: Optional[str] = None
    form_id: Optional[str] = None
    failure_reason: Optional[str] = None
    used_fallback: bool = False
    audit: Optional[LegalAuditResult] = None


# =============================================================================
# API REQUEST / RESPONSE MODELS
# =============================================================================

class CreateCaseRequest(BaseModel):
    title: str = Field("", description="Short case title")


class CaseResponse(BaseModel):
    case_id: str
    title: str
    created_at: datetime


class ExtractRequest(BaseModel):
    transcript: List[TranscriptMessage] = Field(default_factory=list)
    evidence_count: int = Field(0, ge=0)


class ExtractResponse(BaseModel):
    extracted: ExtractedFacts
    state: GatheringStateView


class ConfirmSummaryRequest(BaseModel):
    strategy: CaseStrategyInput
    extracted: Optional[ExtractedFacts] = None
    evidence: List[EvidenceItem] = Field(default_factory=list)


class GateResponse(BaseModel):
    allowed: bool
    gate_name: str
    error: Optional[str] = None
    next_action: Optional[str] = None
    user_message: str = ""


class RoutingResponse(BaseModel):
    decision: RoutingDecision
    gate: GateResponse


class PlanRequest(BaseModel):
    strategy: CaseStrategyInput


class GenerateRequest(BaseModel):
    evidence: List[EvidenceItem] = Field(default_factory=list)
    include_interest: bool = False
    interest_from: Optional[date] = None


class DocumentsResponse(BaseModel):
    case_id: str
    documents: List[DocumentOutput] = Field(default_factory=list)


class AuditRequest(BaseModel):
    content: str
    strategy: CaseStrategyInput
    routing_decision: RoutingDecision
    evidence: List[EvidenceItem] = Field(default_factory=list)
    locked_facts: List[LockedFact] = Field(default_factory=list)
    claim_value: Optional[float] = None


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    llm_mode: LLMMode
    warnings: List[str] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Dict[str, Any]] = None
