"""
SQLAlchemy Models for Database
==============================

Schema for the dispute pipeline:
- Cases
- Locked facts (append-only, one row per case + field)
- Routing decision (one current decision per case)
- Document plan with ordered child documents
- Audit records

Supports both PostgreSQL and SQLite via SQLAlchemy.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Text, Integer, Float, Boolean, DateTime, Enum, ForeignKey,
    UniqueConstraint, Index, JSON,
)
from sqlalchemy.orm import relationship, declarative_base

# Use JSON for cross-database compatibility (works with both PostgreSQL and SQLite)
JSONB = JSON

Base = declarative_base()


def generate_uuid():
    return str(uuid.uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class PlanDocumentStatus(str, enum.Enum):
    """Per-document generation status"""
    PENDING = "PENDING"
    GENERATED = "GENERATED"
    FAILED = "FAILED"


# =============================================================================
# CASES
# =============================================================================

class CaseRow(Base):
    """Dispute case"""
    __tablename__ = "cases"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    title = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Last extraction result, so the state surface can be read without re-extracting
    extracted_json = Column(JSONB, nullable=True)
    state_json = Column(JSONB, nullable=True)
    evidence_count = Column(Integer, default=0)
    routing_rejected = Column(Boolean, default=False)

    locked_facts = relationship("LockedFactRow", back_populates="case", cascade="all, delete-orphan")
    routing_decision = relationship(
        "RoutingDecisionRow", back_populates="case", uselist=False, cascade="all, delete-orphan"
    )
    plan = relationship("DocumentPlanRow", back_populates="case", uselist=False, cascade="all, delete-orphan")
    audits = relationship("AuditRecordRow", back_populates="case", cascade="all, delete-orphan")


class LockedFactRow(Base):
    """Locked fact - written once, never updated"""
    __tablename__ = "locked_facts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    field = Column(String(100), nullable=False)
    value = Column(JSONB, nullable=True)
    source = Column(String(30), nullable=False, default="user_confirmed")
    locked_at = Column(DateTime, nullable=False)
    seq = Column(Integer, nullable=False, default=0)

    case = relationship("CaseRow", back_populates="locked_facts")

    __table_args__ = (
        UniqueConstraint("case_id", "field", name="uq_locked_fact_case_field"),
        Index("ix_locked_fact_case", "case_id"),
    )


# =============================================================================
# ROUTING
# =============================================================================

class RoutingDecisionRow(Base):
    """Current routing decision; replaced only by explicit re-confirmation"""
    __tablename__ = "routing_decisions"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True)
    status = Column(String(20), nullable=False)
    forum = Column(String(100), nullable=False)
    confidence = Column(Float, default=0.0)
    decision_json = Column(JSONB, nullable=False)
    classified_at = Column(DateTime, nullable=False)

    case = relationship("CaseRow", back_populates="routing_decision")


# =============================================================================
# DOCUMENT PLAN
# =============================================================================

class DocumentPlanRow(Base):
    """Persisted plan - immutable once created"""
    __tablename__ = "document_plans"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, unique=True)
    complexity = Column(String(20), nullable=False)
    score = Column(Integer, nullable=False)
    structure = Column(String(40), nullable=False)
    breakdown_json = Column(JSONB, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("CaseRow", back_populates="plan")
    documents = relationship(
        "PlannedDocumentRow",
        back_populates="plan",
        cascade="all, delete-orphan",
        order_by="PlannedDocumentRow.doc_order",
    )


class PlannedDocumentRow(Base):
    """Ordered child of a plan; content stays NULL until generated"""
    __tablename__ = "planned_documents"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    plan_id = Column(String(36), ForeignKey("document_plans.id", ondelete="CASCADE"), nullable=False)
    doc_type = Column(String(40), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    doc_order = Column(Integer, nullable=False)
    required = Column(Boolean, default=True)

    status = Column(Enum(PlanDocumentStatus), default=PlanDocumentStatus.PENDING, nullable=False)
    content = Column(Text, nullable=True)
    form_id = Column(String(100), nullable=True)
    failure_reason = Column(Text, nullable=True)
    used_fallback = Column(Boolean, default=False)
    audit_json = Column(JSONB, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    plan = relationship("DocumentPlanRow", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("plan_id", "doc_order", name="uq_planned_document_order"),
    )


# =============================================================================
# AUDIT
# =============================================================================

class AuditRecordRow(Base):
    """Every audit run, including failed attempts"""
    __tablename__ = "audit_records"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    case_id = Column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), nullable=False)
    document_id = Column(String(36), ForeignKey("planned_documents.id", ondelete="CASCADE"), nullable=True)
    passed = Column(Boolean, nullable=False)
    score = Column(Float, nullable=False)
    result_json = Column(JSONB, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("CaseRow", back_populates="audits")

    __table_args__ = (
        Index("ix_audit_case", "case_id"),
    )
