"""
Forum Language Guard
====================

Different forums have different linguistic standards. Tribunal vocabulary in
a court claim (or the reverse) undermines credibility, so each forum carries
allowed / forbidden / required phrase sets.

- Forbidden phrases are hard failures
- Missing required phrases are soft (each entry lists acceptable alternatives)
- Drift heuristics ("defendant" in a tribunal) are warnings

All matching is case-insensitive on whole words.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .schemas import LegalForum


@dataclass(frozen=True)
class ForumLanguageRules:
    allowed: Tuple[str, ...]
    forbidden: Tuple[str, ...]
    # Each requirement is satisfied by any one of its alternatives
    required: Tuple[Tuple[str, ...], ...]


FORUM_LANGUAGE_RULES: Dict[LegalForum, ForumLanguageRules] = {
    LegalForum.COUNTY_COURT_SMALL_CLAIMS: ForumLanguageRules(
        allowed=(
            "breach of contract", "agreed fee", "services rendered", "sum due", "reasonable sum",
            "quantum meruit", "substantial performance", "oral agreement", "implied contract",
            "payment refused", "debt due", "consideration",
        ),
        forbidden=(
            "unfair dismissal", "statutory entitlement", "protected characteristic",
            "reasonable adjustments", "collective agreement", "without reasonable cause",
            "acted unreasonably", "without justification", "discriminatory", "harassment",
            "respondent",
        ),
        required=(("sum",), ("contract", "agreement")),
    ),
    LegalForum.COUNTY_COURT_FAST_TRACK: ForumLanguageRules(
        allowed=(
            "breach of contract", "negligence", "duty of care", "foreseeable", "causation",
            "damages", "specific performance", "injunction", "CPR", "disclosure", "without prejudice",
        ),
        forbidden=("unfair dismissal", "statutory rights", "tribunal", "respondent"),
        required=(("particulars",), ("damages", "sum claimed")),
    ),
    LegalForum.EMPLOYMENT_TRIBUNAL: ForumLanguageRules(
        allowed=(
            "unfair dismissal", "unlawful deduction from wages", "statutory entitlement",
            "notice period", "redundancy payment", "protected characteristic", "discrimination",
            "less favourable treatment", "reasonable adjustments", "protected disclosure",
            "whistleblowing", "ACAS early conciliation", "effective date of termination",
        ),
        forbidden=("breach of contract", "defendant", "county court", "CPR"),
        required=(("respondent",), ("employment",)),
    ),
    LegalForum.SOCIAL_SECURITY_TRIBUNAL: ForumLanguageRules(
        allowed=(
            "decision notice", "mandatory reconsideration", "DWP decision", "ESA", "PIP",
            "Universal Credit", "assessment", "descriptor", "points", "functional limitation",
            "entitlement", "overpayment", "supersession", "revision",
        ),
        forbidden=("breach of contract", "damages", "defendant", "claimant"),
        required=(("decision",), ("appeal", "reconsideration")),
    ),
    LegalForum.TAX_TRIBUNAL: ForumLanguageRules(
        allowed=(
            "assessment", "HMRC", "tax liability", "discovery assessment", "enquiry",
            "closure notice", "penalty", "reasonable excuse", "deliberate", "careless", "appeal",
        ),
        forbidden=("breach of contract", "unfair", "claimant", "defendant"),
        required=(("HMRC",), ("tax",)),
    ),
    LegalForum.PROPERTY_TRIBUNAL: ForumLanguageRules(
        allowed=(
            "lease", "service charge", "reasonable", "landlord", "tenant", "section 20",
            "consultation", "major works", "managing agent", "lease covenant",
        ),
        forbidden=("breach of contract", "defendant", "claimant"),
        required=(("lease", "tenancy"), ("property",)),
    ),
    LegalForum.IMMIGRATION_TRIBUNAL: ForumLanguageRules(
        allowed=(
            "Home Office", "refusal decision", "human rights", "Article 8", "leave to remain",
            "visa", "deportation", "asylum", "refugee convention", "country guidance", "proportionality",
        ),
        forbidden=("breach of contract", "damages", "defendant"),
        required=(("Home Office",), ("immigration",)),
    ),
}

ARGUMENTATIVE_PHRASES = [
    "without reasonable cause",
    "acted unreasonably",
    "without justification",
    "unfairly refused",
    "unjustifiably withheld",
]

COURT_FORUMS = {LegalForum.COUNTY_COURT_SMALL_CLAIMS, LegalForum.COUNTY_COURT_FAST_TRACK}


@dataclass
class ForumLanguageResult:
    valid: bool
    forbidden_phrases: List[str] = field(default_factory=list)
    missing_required: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def contains_phrase(content: str, phrase: str) -> bool:
    return re.search(r"\b" + re.escape(phrase.lower()) + r"\b", content.lower()) is not None


def validate_forum_language(content: str, forum: LegalForum) -> ForumLanguageResult:
    rules = FORUM_LANGUAGE_RULES[forum]
    content = content or ""

    forbidden = [phrase for phrase in rules.forbidden if contains_phrase(content, phrase)]
    missing = [
        " or ".join(alternatives)
        for alternatives in rules.required
        if not any(contains_phrase(content, phrase) for phrase in alternatives)
    ]

    warnings: List[str] = []
    if forum not in COURT_FORUMS and contains_phrase(content, "defendant"):
        warnings.append('Using "defendant" in tribunal context - should use "respondent"')
    if forum in COURT_FORUMS and contains_phrase(content, "respondent"):
        warnings.append('Using "respondent" in court context - should use "defendant"')
    if forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS:
        for phrase in ARGUMENTATIVE_PHRASES:
            if contains_phrase(content, phrase):
                warnings.append(f'Phrase "{phrase}" invites unnecessary argument in simple debt claim')

    return ForumLanguageResult(
        valid=not forbidden and not missing,
        forbidden_phrases=forbidden,
        missing_required=missing,
        warnings=warnings,
    )


def get_forum_from_routing(domain: str, forum_id: str) -> Optional[LegalForum]:
    """
    Map a routing decision onto a language/relief forum.

    Returns None for forums without vocabulary rules (magistrates, POPLA).
    """
    forum_id = (forum_id or "").lower()
    domain = (domain or "").lower()

    if forum_id.startswith("county_court"):
        if "fast_track" in forum_id:
            return LegalForum.COUNTY_COURT_FAST_TRACK
        return LegalForum.COUNTY_COURT_SMALL_CLAIMS
    if "employment_tribunal" in forum_id:
        return LegalForum.EMPLOYMENT_TRIBUNAL
    if "sscs" in forum_id or "social_security" in forum_id:
        return LegalForum.SOCIAL_SECURITY_TRIBUNAL
    if "tax" in forum_id:
        return LegalForum.TAX_TRIBUNAL
    if "property" in forum_id:
        return LegalForum.PROPERTY_TRIBUNAL
    if "home_office" in forum_id or "immigration" in forum_id:
        return LegalForum.IMMIGRATION_TRIBUNAL
    if forum_id in ("magistrates_court", "popla_parking_appeal"):
        return None

    domain_forums = {
        "employment": LegalForum.EMPLOYMENT_TRIBUNAL,
        "social_security": LegalForum.SOCIAL_SECURITY_TRIBUNAL,
        "benefits": LegalForum.SOCIAL_SECURITY_TRIBUNAL,
        "tax": LegalForum.TAX_TRIBUNAL,
        "property": LegalForum.PROPERTY_TRIBUNAL,
        "immigration": LegalForum.IMMIGRATION_TRIBUNAL,
    }
    if domain in domain_forums:
        return domain_forums[domain]
    if domain in ("parking", "traffic_offence"):
        return None
    return LegalForum.COUNTY_COURT_SMALL_CLAIMS


def forum_label(forum: LegalForum) -> str:
    return forum.value.replace("_", " ")


def generate_forum_language_instructions(forum: LegalForum) -> str:
    """Prompt block for the generation backend"""
    rules = FORUM_LANGUAGE_RULES[forum]
    label = forum_label(forum)

    lines = [
        "CRITICAL: FORUM-SPECIFIC LANGUAGE RULES",
        "",
        f"Forum: {label}",
        "",
        "YOU MAY USE:",
        *[f'+ "{phrase}"' for phrase in rules.allowed],
        "",
        "YOU MUST NOT USE:",
        *[f'- "{phrase}"' for phrase in rules.forbidden],
        "",
        "YOU MUST INCLUDE:",
        *[f'! {" or ".join(repr(p) for p in alternatives)}' for alternatives in rules.required],
        "",
        "REMINDERS:",
    ]

    if forum in COURT_FORUMS:
        lines += ["- Use 'defendant' not 'respondent'", "- Use 'claimant'", "- Reference contractual obligations"]
    else:
        lines += ["- Use 'respondent' not 'defendant'", "- Reference statutory rights"]
    if forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS:
        lines += [
            "- Keep language simple and fact-based",
            "- Avoid argumentative phrases like 'without reasonable cause'",
            "- Focus on: what was agreed, what was done, what is owed",
        ]

    lines += ["", f"ANY VIOLATION OF THESE RULES WILL UNDERMINE CREDIBILITY IN {label}."]
    return "\n".join(lines)
