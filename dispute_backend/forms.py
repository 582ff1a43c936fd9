"""
Official Form Registry
======================

Explicit form identifiers the generator is allowed to produce, which forms
each forum permits or blocks, and how a planned document type resolves to a
concrete form in a given forum.

The routing engine builds allowed/blocked lists from here; the gate checks
each generation request against those lists.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .schemas import DocumentType


class OfficialFormID(str, Enum):
    # Employment tribunal
    EMPLOYMENT_TRIBUNAL_CLAIM = "UK-ET1-EMPLOYMENT-TRIBUNAL-2024"
    ACAS_EARLY_CONCILIATION_CERT = "UK-ACAS-EC-CERTIFICATE"
    SCHEDULE_OF_LOSS = "UK-ET-SCHEDULE-OF-LOSS"

    # County court
    COUNTY_COURT_CLAIM_FORM = "UK-N1-COUNTY-COURT-CLAIM"
    PARTICULARS_OF_CLAIM = "UK-N1-PARTICULARS-OF-CLAIM"

    # Social security tribunal
    BENEFITS_APPEAL_FORM = "UK-SSCS1-SOCIAL-SECURITY-APPEAL"
    MANDATORY_RECONSIDERATION_REQUEST = "UK-SSCS5-MANDATORY-RECONSIDERATION"

    # Immigration
    ADMIN_REVIEW_REQUEST = "UK-HO-ADMIN-REVIEW-REQUEST"

    # Magistrates court
    GUILTY_PLEA_LETTER = "UK-MAG-GUILTY-PLEA-LETTER"
    MITIGATION_STATEMENT = "UK-MAG-MITIGATION-STATEMENT"
    MEANS_FORM = "UK-MAG-MC100-MEANS-FORM"

    # Parking
    POPLA_APPEAL = "UK-POPLA-PARKING-APPEAL"

    # Supporting documents
    WITNESS_STATEMENT = "UK-CPR32-WITNESS-STATEMENT"
    EVIDENCE_BUNDLE_INDEX = "UK-EVIDENCE-BUNDLE-INDEX"
    SCHEDULE_OF_DAMAGES = "UK-SCHEDULE-OF-DAMAGES"
    CHRONOLOGY = "UK-CHRONOLOGY-OF-EVENTS"
    COVER_LETTER = "UK-COVER-LETTER-GENERAL"
    STATUTORY_DECLARATION = "UK-STATUTORY-DECLARATION-GENERAL"

    # Pre-action letters
    LETTER_BEFORE_ACTION = "UK-LBA-GENERAL"
    DEMAND_LETTER = "UK-DEMAND-LETTER-GENERAL"
    FORMAL_COMPLAINT_LETTER = "UK-COMPLAINT-LETTER-GENERAL"


@dataclass(frozen=True)
class FormMetadata:
    id: OfficialFormID
    official_name: str
    forum: str


FORM_REGISTRY: Dict[OfficialFormID, FormMetadata] = {
    form.id: form for form in [
        FormMetadata(OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM, "ET1 Claim to an Employment Tribunal", "employment_tribunal"),
        FormMetadata(OfficialFormID.ACAS_EARLY_CONCILIATION_CERT, "ACAS Early Conciliation Certificate", "employment_tribunal"),
        FormMetadata(OfficialFormID.SCHEDULE_OF_LOSS, "Schedule of Loss", "employment_tribunal"),
        FormMetadata(OfficialFormID.COUNTY_COURT_CLAIM_FORM, "N1 Claim Form", "county_court_small_claims"),
        FormMetadata(OfficialFormID.PARTICULARS_OF_CLAIM, "Particulars of Claim", "county_court_small_claims"),
        FormMetadata(OfficialFormID.BENEFITS_APPEAL_FORM, "SSCS1 Notice of Appeal", "first_tier_tribunal_sscs"),
        FormMetadata(OfficialFormID.MANDATORY_RECONSIDERATION_REQUEST, "Mandatory Reconsideration Request", "first_tier_tribunal_sscs"),
        FormMetadata(OfficialFormID.ADMIN_REVIEW_REQUEST, "Administrative Review Request", "home_office_admin_review"),
        FormMetadata(OfficialFormID.GUILTY_PLEA_LETTER, "Guilty Plea Letter", "magistrates_court"),
        FormMetadata(OfficialFormID.MITIGATION_STATEMENT, "Statement of Mitigation", "magistrates_court"),
        FormMetadata(OfficialFormID.MEANS_FORM, "MC100 Statement of Means", "magistrates_court"),
        FormMetadata(OfficialFormID.POPLA_APPEAL, "POPLA Parking Appeal", "popla_parking_appeal"),
        FormMetadata(OfficialFormID.WITNESS_STATEMENT, "Witness Statement", "any"),
        FormMetadata(OfficialFormID.EVIDENCE_BUNDLE_INDEX, "Evidence Bundle Index", "any"),
        FormMetadata(OfficialFormID.SCHEDULE_OF_DAMAGES, "Schedule of Damages", "any"),
        FormMetadata(OfficialFormID.CHRONOLOGY, "Chronology of Events", "any"),
        FormMetadata(OfficialFormID.COVER_LETTER, "Cover Letter", "any"),
        FormMetadata(OfficialFormID.STATUTORY_DECLARATION, "Statutory Declaration", "any"),
        FormMetadata(OfficialFormID.LETTER_BEFORE_ACTION, "Letter Before Action", "county_court_small_claims"),
        FormMetadata(OfficialFormID.DEMAND_LETTER, "Letter of Demand", "county_court_small_claims"),
        FormMetadata(OfficialFormID.FORMAL_COMPLAINT_LETTER, "Formal Complaint Letter", "any"),
    ]
}

# Supporting documents valid in every forum
SUPPORTING_FORMS = [
    OfficialFormID.EVIDENCE_BUNDLE_INDEX,
    OfficialFormID.SCHEDULE_OF_DAMAGES,
    OfficialFormID.CHRONOLOGY,
    OfficialFormID.COVER_LETTER,
    OfficialFormID.STATUTORY_DECLARATION,
]

FORUM_FORMS: Dict[str, List[OfficialFormID]] = {
    "employment_tribunal": [
        OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM,
        OfficialFormID.ACAS_EARLY_CONCILIATION_CERT,
        OfficialFormID.SCHEDULE_OF_LOSS,
        OfficialFormID.WITNESS_STATEMENT,
    ],
    "county_court_small_claims": [
        OfficialFormID.COUNTY_COURT_CLAIM_FORM,
        OfficialFormID.PARTICULARS_OF_CLAIM,
        OfficialFormID.LETTER_BEFORE_ACTION,
        OfficialFormID.WITNESS_STATEMENT,
    ],
    "first_tier_tribunal_sscs": [
        OfficialFormID.BENEFITS_APPEAL_FORM,
        OfficialFormID.MANDATORY_RECONSIDERATION_REQUEST,
    ],
    "magistrates_court": [
        OfficialFormID.GUILTY_PLEA_LETTER,
        OfficialFormID.MITIGATION_STATEMENT,
        OfficialFormID.MEANS_FORM,
    ],
    "popla_parking_appeal": [OfficialFormID.POPLA_APPEAL],
    "home_office_admin_review": [OfficialFormID.ADMIN_REVIEW_REQUEST],
}
FORUM_FORMS["county_court"] = FORUM_FORMS["county_court_small_claims"]
FORUM_FORMS["county_court_fast_track"] = FORUM_FORMS["county_court_small_claims"]

DEFAULT_FORUM_FORMS = [OfficialFormID.LETTER_BEFORE_ACTION, OfficialFormID.FORMAL_COMPLAINT_LETTER]


def get_allowed_forms(forum: str) -> List[str]:
    forms = SUPPORTING_FORMS + FORUM_FORMS.get(forum, DEFAULT_FORUM_FORMS)
    return [form.value for form in forms]


def get_blocked_forms(forum: str, relationship: str) -> List[str]:
    blocked: List[OfficialFormID] = []

    if relationship == "self_employed":
        blocked += [
            OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM,
            OfficialFormID.ACAS_EARLY_CONCILIATION_CERT,
            OfficialFormID.SCHEDULE_OF_LOSS,
        ]

    if "tribunal" in forum:
        blocked += [OfficialFormID.COUNTY_COURT_CLAIM_FORM, OfficialFormID.PARTICULARS_OF_CLAIM]

    if "court" in forum and "magistrates" not in forum:
        blocked += [OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM, OfficialFormID.BENEFITS_APPEAL_FORM]

    if forum == "magistrates_court":
        blocked += [
            OfficialFormID.COUNTY_COURT_CLAIM_FORM,
            OfficialFormID.LETTER_BEFORE_ACTION,
            OfficialFormID.DEMAND_LETTER,
        ]

    seen = []
    for form in blocked:
        if form.value not in seen:
            seen.append(form.value)
    return seen


# Main letter per forum; anything unlisted gets a formal complaint letter
FORMAL_LETTER_FORMS: Dict[str, OfficialFormID] = {
    "county_court_small_claims": OfficialFormID.LETTER_BEFORE_ACTION,
    "county_court_fast_track": OfficialFormID.LETTER_BEFORE_ACTION,
    "county_court": OfficialFormID.LETTER_BEFORE_ACTION,
    "employment_tribunal": OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM,
    "first_tier_tribunal_sscs": OfficialFormID.MANDATORY_RECONSIDERATION_REQUEST,
    "home_office_admin_review": OfficialFormID.ADMIN_REVIEW_REQUEST,
    "magistrates_court": OfficialFormID.MITIGATION_STATEMENT,
    "popla_parking_appeal": OfficialFormID.POPLA_APPEAL,
}

APPEAL_FORMS: Dict[str, OfficialFormID] = {
    "employment_tribunal": OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM,
    "first_tier_tribunal_sscs": OfficialFormID.BENEFITS_APPEAL_FORM,
    "popla_parking_appeal": OfficialFormID.POPLA_APPEAL,
    "home_office_admin_review": OfficialFormID.ADMIN_REVIEW_REQUEST,
}

FIXED_FORMS: Dict[DocumentType, OfficialFormID] = {
    DocumentType.COVER_LETTER: OfficialFormID.COVER_LETTER,
    DocumentType.EVIDENCE_SCHEDULE: OfficialFormID.EVIDENCE_BUNDLE_INDEX,
    DocumentType.TIMELINE: OfficialFormID.CHRONOLOGY,
    DocumentType.WITNESS_STATEMENT: OfficialFormID.WITNESS_STATEMENT,
    DocumentType.STATUTORY_DECLARATION: OfficialFormID.STATUTORY_DECLARATION,
}


def resolve_form_id(document_type: DocumentType, forum: str) -> OfficialFormID:
    """Concrete form for a planned document in a forum"""
    if document_type == DocumentType.FORMAL_LETTER:
        return FORMAL_LETTER_FORMS.get(forum, OfficialFormID.FORMAL_COMPLAINT_LETTER)
    if document_type == DocumentType.APPEAL_FORM:
        return APPEAL_FORMS.get(forum, OfficialFormID.COUNTY_COURT_CLAIM_FORM)
    return FIXED_FORMS[document_type]


def get_form_metadata(form_id: str) -> Optional[FormMetadata]:
    try:
        return FORM_REGISTRY[OfficialFormID(form_id)]
    except ValueError:
        return None
