"""
Routing Engine (Hard Gate)
==========================

Classifies jurisdiction, legal relationship, counterparty and domain from the
locked facts, selects the forum under hard rules, checks prerequisites and
builds the allowed/blocked form lists.

Stages:
    2A  classify        keyword classification + confidence
    2B  select_forum    hard rules (ACAS, mandatory reconsideration, ...)
    2C  build decision  allowlist/blocklist, user message, alternatives

Routing runs only when the user confirms the summary. Any internal failure
yields a BLOCKED decision with zero confidence, never APPROVED.
"""

import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .config import get_settings
from .forms import OfficialFormID, get_allowed_forms, get_blocked_forms
from .schemas import (
    AlternativeRoute,
    Prerequisite,
    RoutingDecision,
    RoutingInput,
    RoutingStatus,
    TimeLimit,
)

logger = logging.getLogger(__name__)


GENERIC_RELATIONSHIPS = {"complainant", "unknown"}

EMPLOYMENT_MARKERS = ["employee", "employed", "my employer", "wages", "payslip", "payslips", "worked for"]
SELF_EMPLOYED_MARKERS = [
    "self-employed", "self employed", "contractor", "freelance", "freelancer",
    "sent an invoice", "my invoice", "my own business", "sole trader",
]
WORKER_MARKERS = ["casual", "zero hours", "zero-hours", "agency"]
HOUSING_MARKERS = ["tenant", "landlord", "rent", "tenancy"]
BENEFIT_MARKERS = ["benefit", "benefits", "universal credit", "pip", "esa", "dwp"]
IMMIGRATION_MARKERS = ["visa", "immigration", "home office"]
TAX_MARKERS = ["tax", "hmrc", "vat"]
DRIVER_MARKERS = ["driving", "speeding", "traffic", "parking"]
CONSUMER_MARKERS = ["bought", "purchased", "faulty goods", "faulty"]
PAYMENT_MARKERS = ["unpaid", "invoice", "owe", "owes", "owed", "never paid", "not paid"]

# Used only when the text itself gives a generic relationship
DISPUTE_TYPE_HINTS = {
    "employment": "employee",
    "housing": "assured_shorthold_tenant",
    "landlord": "assured_shorthold_tenant",
    "benefits": "benefit_claimant",
    "immigration": "visa_applicant",
    "consumer": "consumer",
    "parking": "driver",
    "parking_ticket": "driver",
    "speeding": "driver",
    "speeding_ticket": "driver",
    "traffic": "driver",
    "debt": "creditor",
}

COUNTY_COURT_CHOICES = {
    "county_court_small_claims",
    "county_court_fast_track",
    "letter_before_action",
    "money_claim_online",
}

ACAS_DONE_MARKERS = ["certificate", "completed", "conciliation number", "ec number"]
RECONSIDERATION_DONE_MARKERS = ["notice", "received", "completed", "refused", "upheld"]

COUNTY_COURT_ROUTE_DOCS = [
    OfficialFormID.LETTER_BEFORE_ACTION.value,
    OfficialFormID.COUNTY_COURT_CLAIM_FORM.value,
    OfficialFormID.PARTICULARS_OF_CLAIM.value,
]


def _has(text: str, keywords: List[str]) -> bool:
    return any(re.search(r"\b" + re.escape(keyword) + r"\b", text) for keyword in keywords)


# =============================================================================
# STAGE 2A: CLASSIFICATION
# =============================================================================

@dataclass
class Classification:
    jurisdiction: str
    relationship: str
    counterparty: str
    domain: str
    confidence: float
    reasoning: str


def determine_jurisdiction(text: str) -> str:
    if _has(text, ["scotland", "scottish"]):
        return "scotland"
    if _has(text, ["northern ireland", "belfast"]):
        return "northern_ireland"
    return "england_wales"


def determine_relationship(text: str, dispute_type: Optional[str] = None) -> str:
    if _has(text, EMPLOYMENT_MARKERS) or _has(text, SELF_EMPLOYED_MARKERS):
        if _has(text, SELF_EMPLOYED_MARKERS):
            return "self_employed"
        if _has(text, WORKER_MARKERS):
            return "worker"
        return "employee"

    if _has(text, HOUSING_MARKERS):
        if _has(text, ["council", "housing association"]):
            return "secure_tenant"
        if _has(text, ["lodger", "live with landlord"]):
            return "lodger"
        return "assured_shorthold_tenant"

    if _has(text, BENEFIT_MARKERS):
        return "benefit_claimant"
    if _has(text, IMMIGRATION_MARKERS):
        return "visa_applicant"
    if _has(text, TAX_MARKERS):
        return "taxpayer"
    if _has(text, DRIVER_MARKERS):
        return "driver"
    if _has(text, CONSUMER_MARKERS):
        return "consumer"
    if _has(text, ["unpaid"]) and _has(text, ["work", "worked"]):
        return "self_employed"

    hint = (dispute_type or "").strip().lower().replace(" ", "_")
    return DISPUTE_TYPE_HINTS.get(hint, "complainant")


def determine_counterparty(text: str) -> str:
    if _has(text, ["dwp", "hmrc", "home office", "council"]):
        return "government_body"
    if _has(text, ["ltd", "limited", "plc", "llp", "company"]):
        return "private_company"
    if _has(text, ["nhs", "police", "school"]):
        return "public_body"
    return "unknown"


def determine_domain(text: str, relationship: str) -> str:
    if relationship in ("employee", "worker"):
        return "employment"
    if "tenant" in relationship or relationship == "lodger":
        return "housing"
    if relationship == "benefit_claimant":
        return "social_security"
    if relationship == "visa_applicant":
        return "immigration"
    if relationship == "taxpayer":
        return "tax"
    if relationship == "driver":
        return "parking" if _has(text, ["parking"]) else "traffic_offence"
    if relationship == "consumer":
        return "consumer"
    if relationship == "creditor":
        return "debt"
    if relationship == "self_employed":
        return "debt" if _has(text, PAYMENT_MARKERS) else "contract"
    return "other"


def calculate_confidence(relationship: str, domain: str, fact_count: int) -> float:
    confidence = 0.5
    if relationship not in GENERIC_RELATIONSHIPS:
        confidence += 0.2
    if domain != "other":
        confidence += 0.2
    if fact_count >= 5:
        confidence += 0.1
    return round(min(confidence, 0.99), 2)


def classify(routing_input: RoutingInput) -> Classification:
    text = " ".join([
        routing_input.case_title,
        " ".join(routing_input.key_facts),
        routing_input.desired_outcome,
    ]).lower()

    jurisdiction = determine_jurisdiction(text)
    relationship = determine_relationship(text, routing_input.dispute_type)
    counterparty = determine_counterparty(text)
    domain = determine_domain(text, relationship)
    confidence = calculate_confidence(relationship, domain, len(routing_input.key_facts))

    return Classification(
        jurisdiction=jurisdiction,
        relationship=relationship,
        counterparty=counterparty,
        domain=domain,
        confidence=confidence,
        reasoning=f"Classified as {relationship} in {domain} domain based on keywords and facts.",
    )


# =============================================================================
# STAGE 2B: FORUM SELECTION
# =============================================================================

@dataclass
class ForumDecision:
    forum: str
    reason: str
    prerequisites: List[Prerequisite] = field(default_factory=list)
    time_limit: Optional[TimeLimit] = None
    alternative_routes: List[AlternativeRoute] = field(default_factory=list)
    note: str = ""

    @property
    def prerequisites_met(self) -> bool:
        return all(p.met for p in self.prerequisites)


def _evidence_text(routing_input: RoutingInput) -> str:
    parts = list(routing_input.key_facts)
    for item in routing_input.evidence:
        parts.extend([item.title, item.file_name, item.description or ""])
    return " ".join(parts).lower()


def acas_certificate_held(routing_input: RoutingInput) -> bool:
    text = _evidence_text(routing_input)
    return "acas" in text and any(marker in text for marker in ACAS_DONE_MARKERS)


def mandatory_reconsideration_done(routing_input: RoutingInput) -> bool:
    text = _evidence_text(routing_input)
    return "reconsideration" in text and any(marker in text for marker in RECONSIDERATION_DONE_MARKERS)


def _time_limit(now: datetime, days: int, description: str) -> TimeLimit:
    return TimeLimit(deadline=now + timedelta(days=days), days_remaining=days, met=True, description=description)


def _county_court_forum(chosen: Optional[str]) -> str:
    return "county_court_fast_track" if chosen == "county_court_fast_track" else "county_court_small_claims"


def select_forum(classification: Classification, routing_input: RoutingInput, now: datetime) -> ForumDecision:
    relationship = classification.relationship
    domain = classification.domain
    chosen = routing_input.chosen_forum

    # Hard rule 1: employment tribunal jurisdiction
    if domain == "employment":
        if chosen in COUNTY_COURT_CHOICES:
            return ForumDecision(
                forum=_county_court_forum(chosen),
                reason="Unpaid contractual sums can be claimed as breach of contract in the County Court.",
            )
        acas = Prerequisite(
            id="acas_ec",
            name="ACAS Early Conciliation Certificate",
            met=acas_certificate_held(routing_input),
            instruction=(
                "You must complete ACAS Early Conciliation before filing an ET claim. "
                "Visit www.acas.org.uk/early-conciliation"
            ),
        )
        alternatives = []
        if not acas.met:
            alternatives.append(AlternativeRoute(
                forum="county_court_small_claims",
                description="Claim unpaid sums as breach of contract in the County Court",
                allowed_docs=list(COUNTY_COURT_ROUTE_DOCS),
                conditions=[
                    "The claim is for a contractual sum such as unpaid wages",
                    "The claim is brought within 6 years",
                ],
                confidence=0.6,
            ))
        return ForumDecision(
            forum="employment_tribunal",
            reason="Employment Tribunal jurisdiction applies for employees/workers",
            prerequisites=[acas],
            alternative_routes=alternatives,
        )

    if relationship == "self_employed":
        note = ""
        if chosen == "employment_tribunal":
            note = "The Employment Tribunal is not available to self-employed people. "
        return ForumDecision(
            forum=_county_court_forum(chosen),
            reason=(
                "Self-employed workers cannot use Employment Tribunal. "
                "County Court applies for contract/debt disputes."
            ),
            note=note,
        )

    # Hard rule 2: benefits
    if domain == "social_security":
        reconsideration = Prerequisite(
            id="mandatory_reconsideration",
            name="Mandatory Reconsideration",
            met=mandatory_reconsideration_done(routing_input),
            instruction="You must request Mandatory Reconsideration from DWP before appealing to tribunal",
        )
        return ForumDecision(
            forum="first_tier_tribunal_sscs",
            reason=(
                "Benefits appeals must go through DWP Mandatory Reconsideration first, "
                "then First-tier Tribunal"
            ),
            prerequisites=[reconsideration],
        )

    # Hard rule 3: immigration
    if domain == "immigration":
        return ForumDecision(
            forum="home_office_admin_review",
            reason="Immigration matters must go through Home Office Admin Review first",
            time_limit=_time_limit(now, 14, "Admin review must be requested within 14 days of decision"),
        )

    # Hard rule 4: traffic offences
    if domain == "traffic_offence":
        return ForumDecision(forum="magistrates_court", reason="Traffic offences are handled by Magistrates Court")

    # Hard rule 5: private parking
    if domain == "parking":
        return ForumDecision(
            forum="popla_parking_appeal",
            reason="Private parking tickets appeal to POPLA",
            time_limit=_time_limit(now, 28, "Appeal within 28 days of notice"),
        )

    return ForumDecision(
        forum=_county_court_forum(chosen),
        reason="General civil dispute - County Court small claims track applies",
    )


# =============================================================================
# STAGE 2C: DECISION
# =============================================================================

def generate_user_message(decision: ForumDecision, status: RoutingStatus) -> str:
    if status == RoutingStatus.BLOCKED:
        names = ", ".join(p.name for p in decision.prerequisites if not p.met)
        message = f"Before we can generate documents, you need to: {names}"
        if decision.alternative_routes:
            message += f". Alternatively: {decision.alternative_routes[0].description}"
        return message
    if status == RoutingStatus.NEEDS_INFO:
        return "We need a little more information before we can confirm the right legal route."
    return f"{decision.note}Your case will be handled through {decision.forum.replace('_', ' ')}. {decision.reason}"


def generate_clarification_questions(classification: Classification) -> List[str]:
    questions = []
    if classification.relationship in GENERIC_RELATIONSHIPS:
        questions.append("Were you employed by this company, or were you self-employed/a contractor?")
    if classification.domain == "other":
        questions.append("What type of dispute is this? (employment, housing, consumer, etc.)")
    if not questions:
        questions.append("Can you provide more details about your situation?")
    return questions


def blocked_decision(reason: str, now: Optional[datetime] = None) -> RoutingDecision:
    """Most conservative decision, used when classification itself fails"""
    return RoutingDecision(
        status=RoutingStatus.BLOCKED,
        confidence=0.0,
        forum="unknown",
        forum_reasoning=reason,
        prerequisites_met=False,
        reason=reason,
        user_message="We could not determine the correct legal route for your case. Please review your case details.",
        classified_at=now or datetime.now(timezone.utc),
    )


class RoutingEngine:
    """Stateless: every call classifies from the supplied input only"""

    def __init__(self, clarification_threshold: Optional[float] = None):
        if clarification_threshold is None:
            clarification_threshold = get_settings().clarification_confidence_threshold
        self.clarification_threshold = clarification_threshold

    def _build(self, routing_input: RoutingInput, now: datetime) -> RoutingDecision:
        classification = classify(routing_input)
        logger.info(
            f"[Routing] Classification: relationship={classification.relationship} "
            f"domain={classification.domain} confidence={classification.confidence}"
        )

        forum = select_forum(classification, routing_input, now)

        questions: List[str] = []
        if not forum.prerequisites_met:
            status = RoutingStatus.BLOCKED
        elif classification.confidence < self.clarification_threshold:
            status = RoutingStatus.NEEDS_INFO
            questions = generate_clarification_questions(classification)
        else:
            status = RoutingStatus.APPROVED

        return RoutingDecision(
            status=status,
            confidence=classification.confidence,
            jurisdiction=classification.jurisdiction,
            relationship=classification.relationship,
            counterparty=classification.counterparty,
            domain=classification.domain,
            forum=forum.forum,
            forum_reasoning=forum.reason,
            allowed_docs=get_allowed_forms(forum.forum),
            blocked_docs=get_blocked_forms(forum.forum, classification.relationship),
            prerequisites=forum.prerequisites,
            prerequisites_met=forum.prerequisites_met,
            time_limit=forum.time_limit,
            reason=forum.reason,
            user_message=generate_user_message(forum, status),
            alternative_routes=forum.alternative_routes,
            clarification_questions=questions,
            classified_at=now,
        )

    def route(self, routing_input: RoutingInput, now: Optional[datetime] = None) -> RoutingDecision:
        now = now or datetime.now(timezone.utc)
        logger.info(f"[Routing] Starting routing for case {routing_input.case_id}")
        try:
            decision = self._build(routing_input, now)
        except Exception as e:
            logger.error(f"[Routing] Classification failed for case {routing_input.case_id}: {e}")
            return blocked_decision(f"Routing engine failed: {e}", now)

        logger.info(
            f"[Routing] Forum {decision.forum} ({decision.status.value}), "
            f"{len(decision.allowed_docs)} allowed / {len(decision.blocked_docs)} blocked"
        )
        return decision
