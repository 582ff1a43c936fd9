"""
Evidence Sufficiency
====================

Classifies uploaded evidence (metadata only, never file content) into a
closed set of evidence types and checks them against per-claim
requirements.

Advisory only: a weak evidence position never blocks generation. It
produces recommendations, and `sufficient` stays true whenever any
evidence exists at all.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .schemas import EvidenceItem, LegalForum


class EvidenceType(str, Enum):
    RATE_CONFIRMATION = "RATE_CONFIRMATION"
    INVOICE = "INVOICE"
    CONTRACT = "CONTRACT"
    PAYSLIP = "PAYSLIP"
    BANK_STATEMENT = "BANK_STATEMENT"
    EMPLOYMENT_CONTRACT = "EMPLOYMENT_CONTRACT"
    ROTA = "ROTA"
    CORRESPONDENCE = "CORRESPONDENCE"
    PHOTO = "PHOTO"
    VIDEO = "VIDEO"
    WITNESS_STATEMENT = "WITNESS_STATEMENT"
    EXPERT_REPORT = "EXPERT_REPORT"
    MEDICAL_EVIDENCE = "MEDICAL_EVIDENCE"
    DECISION_LETTER = "DECISION_LETTER"
    LEASE = "LEASE"
    SERVICE_CHARGE_DEMAND = "SERVICE_CHARGE_DEMAND"


E = EvidenceType

# Classifier table, evaluated in order; one item may match several types
EVIDENCE_PATTERNS = [
    (E.RATE_CONFIRMATION, re.compile(r"\brate\b|£\d+.*\bhour|\bpay\b.*\bhour|\bagreed\b.*£")),
    (E.INVOICE, re.compile(r"\binvoice|\bbill\b|\bquot")),
    (E.CONTRACT, re.compile(r"\bcontract|\bagreement")),
    (E.EMPLOYMENT_CONTRACT, re.compile(r"\bemployment\b.*\bcontract|\bjob\b.*\bcontract|\boffer\b.*\bletter")),
    (E.PAYSLIP, re.compile(r"\bpayslip|\bpay\s*slip|\bwage\s*slip|\bp60\b|\bp45\b")),
    (E.ROTA, re.compile(r"\brota\b|\bschedule\b|\bshifts?\b|\broster")),
    (E.BANK_STATEMENT, re.compile(r"\bbank\b.*\bstatement|\btransaction|\bpayment\b.*\bproof")),
    (E.CORRESPONDENCE, re.compile(r"\bemails?\b|\bletters?\b|\btexts?\b|\bmessages?\b|\bwhatsapp\b|\bcorrespondence\b")),
    (E.PHOTO, re.compile(r"\bphoto|\bpicture|\bimage|\bjpe?g\b|\bpng\b")),
    (E.VIDEO, re.compile(r"\bvideo|\bmp4\b|\brecording")),
    (E.WITNESS_STATEMENT, re.compile(r"\bwitness")),
    (E.EXPERT_REPORT, re.compile(r"\bexpert\b|\bsurveyor|\bvaluation")),
    (E.DECISION_LETTER, re.compile(r"\bdecision\b.*\bletter|\bdwp\b|\bhmrc\b.*\bdecision|\besa\b.*\bdecision|\bpip\b.*\bdecision")),
    (E.MEDICAL_EVIDENCE, re.compile(r"\bmedical|\bdoctor|\bgp\b|\bhospital|\bdiagnosis|\bprescription")),
    (E.LEASE, re.compile(r"\blease\b|\btenancy\b.*\bagreement")),
    (E.SERVICE_CHARGE_DEMAND, re.compile(r"\bservice\b.*\bcharge|\bground\b.*\brent|\bmaintenance\b.*\bfee")),
]


@dataclass(frozen=True)
class EvidenceRequirement:
    critical: List[EvidenceType]     # need at least one
    recommended: List[EvidenceType]
    helpful: List[EvidenceType]


EVIDENCE_REQUIREMENTS: Dict[str, EvidenceRequirement] = {
    "DEBT_UNPAID_SERVICES": EvidenceRequirement(
        critical=[E.RATE_CONFIRMATION, E.INVOICE, E.CONTRACT],
        recommended=[E.CORRESPONDENCE, E.PHOTO],
        helpful=[E.BANK_STATEMENT, E.WITNESS_STATEMENT],
    ),
    "DEBT_GOODS_SOLD": EvidenceRequirement(
        critical=[E.INVOICE, E.CONTRACT],
        recommended=[E.CORRESPONDENCE, E.BANK_STATEMENT],
        helpful=[E.PHOTO],
    ),
    "EMPLOYMENT_UNPAID_WAGES": EvidenceRequirement(
        critical=[E.EMPLOYMENT_CONTRACT, E.PAYSLIP, E.ROTA],
        recommended=[E.BANK_STATEMENT, E.CORRESPONDENCE],
        helpful=[E.WITNESS_STATEMENT],
    ),
    "EMPLOYMENT_UNFAIR_DISMISSAL": EvidenceRequirement(
        critical=[E.EMPLOYMENT_CONTRACT, E.CORRESPONDENCE],
        recommended=[E.PAYSLIP, E.ROTA, E.WITNESS_STATEMENT],
        helpful=[E.MEDICAL_EVIDENCE],
    ),
    "BENEFITS_APPEAL": EvidenceRequirement(
        critical=[E.DECISION_LETTER],
        recommended=[E.MEDICAL_EVIDENCE, E.CORRESPONDENCE],
        helpful=[E.WITNESS_STATEMENT, E.EXPERT_REPORT],
    ),
    "PROPERTY_SERVICE_CHARGE": EvidenceRequirement(
        critical=[E.LEASE, E.SERVICE_CHARGE_DEMAND],
        recommended=[E.CORRESPONDENCE, E.BANK_STATEMENT],
        helpful=[E.EXPERT_REPORT],
    ),
}

UNKNOWN_CLAIM_TYPE = "UNKNOWN"


@dataclass
class EvidenceSufficiency:
    sufficient: bool
    has_critical: bool
    missing_critical: List[EvidenceType] = field(default_factory=list)
    missing_recommended: List[EvidenceType] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


def _label(evidence_type: EvidenceType) -> str:
    return evidence_type.value.replace("_", " ").lower()


def categorize_evidence(item: EvidenceItem) -> List[EvidenceType]:
    text = " ".join([item.title or "", item.file_name or "", item.description or ""]).lower()
    file_type = (item.file_type or "").upper()

    types = [evidence_type for evidence_type, pattern in EVIDENCE_PATTERNS if pattern.search(text)]
    if file_type == "IMAGE" and E.PHOTO not in types:
        types.append(E.PHOTO)
    if file_type == "VIDEO" and E.VIDEO not in types:
        types.append(E.VIDEO)
    return types


def analyze_evidence(evidence: List[EvidenceItem]) -> Dict[EvidenceType, List[EvidenceItem]]:
    categorized: Dict[EvidenceType, List[EvidenceItem]] = {}
    for item in evidence:
        for evidence_type in categorize_evidence(item):
            categorized.setdefault(evidence_type, []).append(item)
    return categorized


def check_evidence_sufficiency(evidence: List[EvidenceItem], claim_type: str) -> EvidenceSufficiency:
    requirements = EVIDENCE_REQUIREMENTS.get(claim_type)
    if requirements is None:
        return EvidenceSufficiency(sufficient=True, has_critical=True)

    present = set(analyze_evidence(evidence))
    has_critical = any(t in present for t in requirements.critical)
    missing_critical = [t for t in requirements.critical if t not in present]
    missing_recommended = [t for t in requirements.recommended if t not in present]

    recommendations: List[str] = []
    if not has_critical:
        recommendations.append(
            "CRITICAL: Your case would be stronger with evidence of: "
            + " OR ".join(_label(t) for t in missing_critical)
        )
    if missing_recommended:
        recommendations.append(
            "RECOMMENDED: Consider uploading: " + ", ".join(_label(t) for t in missing_recommended[:2])
        )
    if claim_type == "DEBT_UNPAID_SERVICES" and E.RATE_CONFIRMATION not in present:
        recommendations.append(
            "TIP: Evidence confirming the agreed rate (email, text, previous invoice) "
            "would significantly strengthen your claim"
        )
    if "EMPLOYMENT" in claim_type and E.PAYSLIP not in present and E.EMPLOYMENT_CONTRACT not in present:
        recommendations.append(
            "TIP: Payslips or an employment contract would help prove your employment status and usual pay"
        )

    return EvidenceSufficiency(
        # never blocks: any upload at all counts
        sufficient=has_critical or len(evidence) > 0,
        has_critical=has_critical,
        missing_critical=missing_critical,
        missing_recommended=missing_recommended,
        recommendations=recommendations,
    )


SERVICE_MARKERS = ("service", "work", "hours", "invoice", "debt", "unpaid")
GOODS_MARKERS = ("goods", "sale", "sold", "delivered", "delivery")


def determine_claim_type(
    dispute_type: str,
    forum: Optional[LegalForum],
    facts: Optional[List[str]] = None,
) -> str:
    """Claim type (domain x forum) whose evidence requirements apply"""
    text = " ".join([dispute_type or ""] + list(facts or [])).lower()

    if forum in (LegalForum.COUNTY_COURT_SMALL_CLAIMS, LegalForum.COUNTY_COURT_FAST_TRACK):
        if any(marker in text for marker in GOODS_MARKERS):
            return "DEBT_GOODS_SOLD"
        if any(marker in text for marker in SERVICE_MARKERS):
            return "DEBT_UNPAID_SERVICES"

    if forum == LegalForum.EMPLOYMENT_TRIBUNAL:
        if "dismiss" in text or "termination" in text:
            return "EMPLOYMENT_UNFAIR_DISMISSAL"
        if "wage" in text or "pay" in text:
            return "EMPLOYMENT_UNPAID_WAGES"

    if forum == LegalForum.SOCIAL_SECURITY_TRIBUNAL:
        return "BENEFITS_APPEAL"

    if forum == LegalForum.PROPERTY_TRIBUNAL and ("service" in text or "charge" in text):
        return "PROPERTY_SERVICE_CHARGE"

    return UNKNOWN_CLAIM_TYPE


def generate_evidence_report(evidence: List[EvidenceItem], claim_type: str) -> str:
    check = check_evidence_sufficiency(evidence, claim_type)

    if not check.recommendations:
        return f"Evidence uploaded: {len(evidence)} item(s) - sufficient for filing"

    lines = [
        "Evidence Assessment",
        "",
        f"Uploaded: {len(evidence)} item(s)",
        f"Critical evidence: {'Present' if check.has_critical else 'Missing'}",
        "",
        *check.recommendations,
    ]
    if not check.has_critical:
        lines += [
            "",
            "You can still file this claim, but without key evidence the court or tribunal may:",
            "  - ask for more information",
            "  - question the basis of your claim",
            "  - find against you if the other side disputes it",
        ]
    return "\n".join(lines)
