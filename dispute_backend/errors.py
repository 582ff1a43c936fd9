"""
Shared error types.

Kept in one module so the pipeline, the API layer and tests all import the
same exception classes.
"""

from typing import List, Optional


class DisputeError(Exception):
    """Base class for all service errors."""


class StrategyIncompleteError(DisputeError):
    """Raised when a case strategy fails completeness validation."""

    def __init__(self, missing_fields: List[str], messages: Optional[List[str]] = None):
        self.missing_fields = list(missing_fields)
        self.messages = list(messages or [])
        super().__init__(f"Strategy incomplete: missing {', '.join(self.missing_fields)}")


class SummaryNotReadyError(DisputeError):
    """Confirm-summary was called before the intake reached the summary step."""

    def __init__(self, case_id: str, readiness_score: int = 0, missing: Optional[List[str]] = None):
        self.case_id = case_id
        self.readiness_score = readiness_score
        self.missing = list(missing or [])
        super().__init__(f"Case {case_id} is not ready for summary confirmation (readiness {readiness_score})")

    def to_dict(self) -> dict:
        return {"case_id": self.case_id, "readiness_score": self.readiness_score, "missing": self.missing}


class GateRejection(DisputeError):
    """Raised when the routing gate refuses a generation attempt."""

    def __init__(
        self,
        gate_name: str,
        reason: str,
        user_message: str = "",
        prerequisites: Optional[List[str]] = None,
        alternative_routes: Optional[List[str]] = None,
        next_action: Optional[str] = None,
    ):
        self.gate_name = gate_name
        self.reason = reason
        self.user_message = user_message or reason
        self.prerequisites = list(prerequisites or [])
        self.alternative_routes = list(alternative_routes or [])
        self.next_action = next_action
        super().__init__(f"{gate_name}: {reason}")

    def to_dict(self) -> dict:
        return {
            "gate_name": self.gate_name,
            "reason": self.reason,
            "user_message": self.user_message,
            "prerequisites": self.prerequisites,
            "alternative_routes": self.alternative_routes,
            "next_action": self.next_action,
        }


class PlaceholderError(DisputeError):
    """A required value is missing, so the document would contain a placeholder."""

    def __init__(self, placeholders: List[str], document: str = ""):
        self.placeholders = list(placeholders)
        self.document = document
        where = f" in {document}" if document else ""
        super().__init__(f"Unfilled placeholder(s){where}: {', '.join(self.placeholders)}")


class GenerationBackendError(DisputeError):
    """The external generation backend failed or returned nothing usable."""


class AuditFailure(DisputeError):
    """Raised when a document fails the legal audit and cannot be delivered."""

    def __init__(self, result, document: str = ""):
        self.result = result
        self.document = document
        super().__init__(f"Legal audit failed for {document or 'document'}: {'; '.join(result.critical)}")


class FactViolation(AuditFailure):
    """Generated content contradicts locked facts."""


class OverclaimError(AuditFailure):
    """Generated content claims more than the user stated."""


class LanguageViolation(AuditFailure):
    """Generated content uses vocabulary forbidden in its forum."""


class ReliefViolation(AuditFailure):
    """Generated content asks for relief the forum cannot grant."""


class CaseNotFoundError(DisputeError):
    """Unknown case id."""


class PlanAlreadyExistsError(DisputeError):
    """A persisted plan is immutable; delete it before planning again."""


class PlanNotFoundError(DisputeError):
    """Generation was requested before a document plan was persisted."""
