"""
Dispute Document Service API
============================

FastAPI endpoints for the dispute pipeline.

Endpoints:
- GET    /health                                - Health check
- POST   /api/v1/cases                          - Create case
- POST   /api/v1/cases/{case_id}/extract        - Extract facts from the transcript
- GET    /api/v1/cases/{case_id}/state          - Gathering state (read-only)
- POST   /api/v1/cases/{case_id}/confirm        - Confirm summary: lock facts + route
- GET    /api/v1/cases/{case_id}/routing        - Current routing decision + gate result
- POST   /api/v1/cases/{case_id}/routing/reject - Reject the routing decision
- POST   /api/v1/cases/{case_id}/plan           - Compute and persist the document plan
- GET    /api/v1/cases/{case_id}/plan           - Read the persisted plan
- DELETE /api/v1/cases/{case_id}/plan           - Delete the plan (to replan)
- POST   /api/v1/cases/{case_id}/generate       - Gate, generate and audit planned documents
- GET    /api/v1/cases/{case_id}/documents      - Per-document output
- POST   /api/v1/audit                          - Stateless audit of supplied content

Run with:
    uvicorn dispute_backend.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from typing import List

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .audit import audit_generated_document
from .config import get_llm_mode, get_settings
from .db.session import get_db, init_db
from .errors import (
    AuditFailure,
    CaseNotFoundError,
    GateRejection,
    PlaceholderError,
    PlanAlreadyExistsError,
    PlanNotFoundError,
    StrategyIncompleteError,
    SummaryNotReadyError,
)
from .gate import validate_routing_decision
from .persistence import create_case
from .pipeline import get_case_pipeline
from .schemas import (
    AuditRequest,
    CaseResponse,
    ConfirmSummaryRequest,
    CreateCaseRequest,
    DocumentPlan,
    DocumentsResponse,
    ErrorResponse,
    ExtractRequest,
    ExtractResponse,
    GateResponse,
    GatheringStateView,
    GenerateRequest,
    HealthResponse,
    LegalAuditResult,
    PlanRequest,
    RoutingDecision,
    RoutingResponse,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Dispute Document Service",
    description="Fact-locked, routed and audited dispute documents",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


CORS_ALLOW_ORIGINS = _parse_cors_origins(
    os.environ.get("CORS_ALLOW_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    init_db()
    for warning in get_settings().validate_llm_config():
        logger.warning(f"[Config] {warning}")
    logger.info(f"Dispute Document Service started (llm_mode={get_llm_mode().value})")


# =============================================================================
# Error handlers
# =============================================================================

@app.exception_handler(GateRejection)
async def gate_rejection_handler(request: Request, exc: GateRejection):
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(error=exc.user_message, detail=exc.to_dict()).model_dump(),
    )


@app.exception_handler(SummaryNotReadyError)
async def summary_not_ready_handler(request: Request, exc: SummaryNotReadyError):
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(
            error="Case summary is not ready to confirm. Keep adding details first.",
            detail=exc.to_dict(),
        ).model_dump(),
    )


@app.exception_handler(StrategyIncompleteError)
async def strategy_incomplete_handler(request: Request, exc: StrategyIncompleteError):
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=str(exc),
            detail={"missing_fields": exc.missing_fields, "messages": exc.messages},
        ).model_dump(),
    )


@app.exception_handler(PlaceholderError)
async def placeholder_handler(request: Request, exc: PlaceholderError):
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=str(exc),
            detail={"placeholders": exc.placeholders, "document": exc.document},
        ).model_dump(),
    )


@app.exception_handler(AuditFailure)
async def audit_failure_handler(request: Request, exc: AuditFailure):
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=str(exc),
            detail={"document": exc.document, "audit": exc.result.model_dump(mode="json")},
        ).model_dump(),
    )


@app.exception_handler(CaseNotFoundError)
async def case_not_found_handler(request: Request, exc: CaseNotFoundError):
    return JSONResponse(status_code=404, content=ErrorResponse(error=f"Case not found: {exc}").model_dump())


@app.exception_handler(PlanNotFoundError)
async def plan_not_found_handler(request: Request, exc: PlanNotFoundError):
    return JSONResponse(status_code=404, content=ErrorResponse(error=str(exc)).model_dump())


@app.exception_handler(PlanAlreadyExistsError)
async def plan_exists_handler(request: Request, exc: PlanAlreadyExistsError):
    return JSONResponse(status_code=409, content=ErrorResponse(error=str(exc)).model_dump())


def _gate_response(decision: RoutingDecision, rejected: bool = False) -> GateResponse:
    result = validate_routing_decision(decision, rejected=rejected)
    return GateResponse(
        allowed=result.allowed,
        gate_name=result.gate_name,
        error=result.error,
        next_action=result.next_action,
        user_message=result.user_message,
    )


# =============================================================================
# Health
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_mode=get_llm_mode(),
        warnings=settings.validate_llm_config(),
    )


# =============================================================================
# Cases & gathering
# =============================================================================

@app.post("/api/v1/cases", response_model=CaseResponse, status_code=201, tags=["Cases"])
async def create_case_endpoint(request: CreateCaseRequest, db: Session = Depends(get_db)):
    case = create_case(db, request.title)
    db.commit()
    db.refresh(case)
    logger.info(f"[Cases] Created case {case.id}")
    return CaseResponse(case_id=case.id, title=case.title, created_at=case.created_at)


@app.post("/api/v1/cases/{case_id}/extract", response_model=ExtractResponse, tags=["Gathering"])
async def extract_endpoint(case_id: str, request: ExtractRequest):
    """Re-extract facts from the full transcript; always answers, never 500s on extraction"""
    extracted, state = await get_case_pipeline().extract(case_id, request.transcript, request.evidence_count)
    return ExtractResponse(extracted=extracted, state=state)


@app.get("/api/v1/cases/{case_id}/state", response_model=GatheringStateView, tags=["Gathering"])
async def state_endpoint(case_id: str):
    return get_case_pipeline().get_state(case_id)


# =============================================================================
# Routing
# =============================================================================

@app.post(
    "/api/v1/cases/{case_id}/confirm",
    response_model=RoutingResponse,
    tags=["Routing"],
    summary="Confirm the case summary",
    responses={409: {"model": ErrorResponse, "description": "Intake has not reached the summary step"}},
)
async def confirm_endpoint(case_id: str, request: ConfirmSummaryRequest):
    """
    Lock the confirmed facts and run routing.

    This is the only endpoint that triggers routing; a rejected decision is
    only replaced by confirming again.
    """
    decision = await get_case_pipeline().confirm_summary(
        case_id, request.strategy, extracted=request.extracted, evidence=request.evidence,
    )
    return RoutingResponse(decision=decision, gate=_gate_response(decision))


@app.get("/api/v1/cases/{case_id}/routing", response_model=RoutingResponse, tags=["Routing"])
async def routing_endpoint(case_id: str):
    pipeline = get_case_pipeline()
    decision = pipeline.get_routing(case_id)
    if decision is None:
        raise HTTPException(status_code=404, detail="Case has not been routed yet")
    return RoutingResponse(decision=decision, gate=_gate_response(decision, pipeline.is_routing_rejected(case_id)))


@app.post("/api/v1/cases/{case_id}/routing/reject", response_model=GatheringStateView, tags=["Routing"])
async def reject_routing_endpoint(case_id: str):
    pipeline = get_case_pipeline()
    pipeline.reject_routing(case_id)
    return pipeline.get_state(case_id)


# =============================================================================
# Planning
# =============================================================================

@app.post(
    "/api/v1/cases/{case_id}/plan",
    response_model=DocumentPlan,
    status_code=201,
    tags=["Planning"],
    responses={
        409: {"model": ErrorResponse, "description": "Plan already exists"},
        422: {"model": ErrorResponse, "description": "Strategy incomplete"},
    },
)
async def plan_endpoint(case_id: str, request: PlanRequest):
    attempt = await get_case_pipeline().plan(case_id, request.strategy)
    if not attempt.success:
        raise StrategyIncompleteError(attempt.validation.missing_fields, attempt.validation.messages)
    return attempt.plan


@app.get("/api/v1/cases/{case_id}/plan", response_model=DocumentPlan, tags=["Planning"])
async def get_plan_endpoint(case_id: str):
    return get_case_pipeline().get_plan(case_id)


@app.delete("/api/v1/cases/{case_id}/plan", tags=["Planning"])
async def delete_plan_endpoint(case_id: str):
    if not get_case_pipeline().delete_plan(case_id):
        raise HTTPException(status_code=404, detail="Case has no document plan")
    return {"deleted": True}


# =============================================================================
# Generation & audit
# =============================================================================

@app.post(
    "/api/v1/cases/{case_id}/generate",
    response_model=DocumentsResponse,
    tags=["Generation"],
    responses={409: {"model": ErrorResponse, "description": "Routing gate rejected generation"}},
)
async def generate_endpoint(case_id: str, request: GenerateRequest):
    documents = await get_case_pipeline().generate_documents(
        case_id,
        evidence=request.evidence,
        include_interest=request.include_interest,
        interest_from=request.interest_from,
    )
    return DocumentsResponse(case_id=case_id, documents=documents)


@app.get("/api/v1/cases/{case_id}/documents", response_model=DocumentsResponse, tags=["Generation"])
async def documents_endpoint(case_id: str):
    return DocumentsResponse(case_id=case_id, documents=get_case_pipeline().list_documents(case_id))


@app.post("/api/v1/audit", response_model=LegalAuditResult, tags=["Audit"])
async def audit_endpoint(request: AuditRequest):
    """Audit supplied content without touching any case"""
    return audit_generated_document(
        request.content,
        request.strategy,
        request.routing_decision,
        request.evidence,
        request.locked_facts,
        claim_value=request.claim_value,
    )
