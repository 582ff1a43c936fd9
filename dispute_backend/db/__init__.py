"""
Database Package - SQLAlchemy
=============================

Persistence for cases, locked facts, routing decisions and document plans.
"""

from .models import (
    Base,
    CaseRow, LockedFactRow, RoutingDecisionRow,
    DocumentPlanRow, PlannedDocumentRow, AuditRecordRow,
    PlanDocumentStatus,
)
from .session import get_db, get_db_session, init_db, get_engine, reset_engine

__all__ = [
    # Base
    "Base",
    # Cases & facts
    "CaseRow", "LockedFactRow", "RoutingDecisionRow",
    # Plans
    "DocumentPlanRow", "PlannedDocumentRow", "AuditRecordRow",
    # Enums
    "PlanDocumentStatus",
    # Session
    "get_db", "get_db_session", "init_db", "get_engine", "reset_engine",
]
