"""
Post-Generation Legal Audit
===========================

Last check before a document reaches the user. Runs, in order:

1. Fact lock          (placeholders, dispute type, verbatim key facts)
2. Overclaiming       (hours beyond what the user stated, waived items)
3. Forum language     (forbidden vocabulary)
4. Relief alignment   (relief the forum cannot grant)
5. Placeholder sweep
6. Amount consistency (claimed vs case value)
7. Time sensitivity
8. Evidence sufficiency (advisory only)
plus proportionality warnings for low-value claims.

Score: 10.0, minus 2.0 per critical issue and 0.5 per warning, floored at 0.
A document passes exactly when there are no critical issues; nothing else
decides deliverability.
"""

import re
import logging
from datetime import datetime, timezone
from typing import List, Optional

from .config import get_settings
from .errors import AuditFailure, FactViolation, LanguageViolation, OverclaimError, PlaceholderError, ReliefViolation
from .evidence import check_evidence_sufficiency, determine_claim_type
from .fact_lock import (
    detect_overclaiming,
    extract_concessions,
    find_placeholders,
    validate_against_locked_facts,
)
from .forum_language import get_forum_from_routing, validate_forum_language
from .relief import extract_relief_from_document, relief_label, validate_relief
from .schemas import CaseStrategyInput, EvidenceItem, LegalAuditResult, LegalForum, LockedFact, RoutingDecision

logger = logging.getLogger(__name__)

AMOUNT_PATTERN = re.compile(r"£(\d+(?:,\d{3})*(?:\.\d{2})?)")
WORDS_PER_PAGE = 500
LONG_DOCUMENT_WORDS = 1500
SMALL_CLAIMS_MAX_PAGES = 3


def audit_generated_document(
    content: str,
    strategy: CaseStrategyInput,
    decision: RoutingDecision,
    evidence: List[EvidenceItem],
    locked_facts: List[LockedFact],
    claim_value: Optional[float] = None,
    require_verbatim_facts: bool = False,
    now: Optional[datetime] = None,
) -> LegalAuditResult:
    content = content or ""
    now = now or datetime.now(timezone.utc)
    settings = get_settings()

    critical: List[str] = []
    warnings: List[str] = []
    recommendations: List[str] = []

    logger.info("[Audit] Running legal audit")

    # CHECK 1: fact violations
    fact_check = validate_against_locked_facts(content, locked_facts, require_verbatim=require_verbatim_facts)
    for violation in fact_check.violations:
        critical.append(f"FACT VIOLATION: {violation}")

    # CHECK 2: overclaiming
    key_facts = list(strategy.key_facts)
    for finding in detect_overclaiming(content, key_facts, extract_concessions(key_facts)):
        critical.append(finding if finding.startswith("OVERCLAIMING") else f"OVERCLAIMING: {finding}")

    # CHECK 3: forum language
    forum = get_forum_from_routing(decision.domain, decision.forum)
    if forum is None:
        recommendations.append(f"No vocabulary rules for {decision.forum} - language check skipped")
    else:
        language = validate_forum_language(content, forum)
        for phrase in language.forbidden_phrases:
            critical.append(f'FORBIDDEN LANGUAGE: "{phrase}" not allowed in {forum.value}')
        for phrase in language.missing_required:
            warnings.append(f'MISSING REQUIRED: "{phrase}" should appear in {forum.value} document')
        warnings.extend(language.warnings)

        # CHECK 4: relief
        relief = validate_relief(extract_relief_from_document(content), forum, claim_value)
        for item in relief.forbidden_relief:
            critical.append(f"FORBIDDEN RELIEF: {relief_label(item)} not available in {forum.value}")
        warnings.extend(relief.warnings)

    # CHECK 5: placeholders
    for placeholder in find_placeholders(content):
        critical.append(f'PLACEHOLDER UNFILLED: "{placeholder}" - document not court-ready')

    # CHECK 6: amounts
    amounts = AMOUNT_PATTERN.findall(content)
    if claim_value and amounts:
        claimed = float(amounts[0].replace(",", ""))
        if abs(claimed - claim_value) > 0.01:
            warnings.append(f"AMOUNT MISMATCH: Document claims £{claimed:.2f} but case value is £{claim_value:.2f}")

    # CHECK 7: time sensitivity
    if decision.time_limit is not None:
        deadline = decision.time_limit.deadline
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)
        days_left = (deadline - now).days
        if deadline < now:
            critical.append("TIME LIMIT: Deadline has passed - claim may be out of time")
        elif days_left < settings.deadline_warning_days and "prompt" not in content.lower():
            recommendations.append(
                f'TIME LIMIT: {days_left} days to deadline - consider adding "prompt action" language'
            )

    # CHECK 8: evidence (advisory)
    claim_type = determine_claim_type(strategy.dispute_type or "", forum, key_facts)
    sufficiency = check_evidence_sufficiency(evidence, claim_type)
    if not sufficiency.has_critical:
        warnings.append("EVIDENCE: Case would be stronger with critical evidence (see recommendations)")
    recommendations.extend(sufficiency.recommendations)

    # Proportionality
    word_count = len(content.split())
    pages = -(-word_count // WORDS_PER_PAGE)
    if claim_value and claim_value < settings.small_claim_value:
        if word_count > LONG_DOCUMENT_WORDS:
            warnings.append(
                f"PROPORTIONALITY: Document is {pages} pages for £{claim_value:.2f} claim - consider condensing"
            )
        lowered = content.lower()
        if "complex" in lowered or "sophisticated" in lowered:
            warnings.append("LANGUAGE: Avoid complex language for small value claims - keep it simple")
    if forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS and pages > SMALL_CLAIMS_MAX_PAGES:
        warnings.append(f"LENGTH: {pages} pages may be excessive for small claims - aim for 2-3 pages max")

    score = max(0.0, 10.0 - 2.0 * len(critical) - 0.5 * len(warnings))
    passed = not critical

    logger.info(f"[Audit] Result: {'PASSED' if passed else 'FAILED'}")
    logger.info(f"[Audit] Score: {score:.1f}/10, {len(critical)} critical, {len(warnings)} warnings")

    return LegalAuditResult(
        passed=passed,
        critical=critical,
        warnings=warnings,
        recommendations=recommendations,
        score=score,
    )


def raise_for_audit(result: LegalAuditResult, document: str = "") -> None:
    """Raise the most specific error for a failed result"""
    if result.passed:
        return

    first = result.critical[0]
    if first.startswith("PLACEHOLDER") or (first.startswith("FACT VIOLATION") and "placeholder" in first.lower()):
        placeholders = re.findall(r'"(\[[^\]]*\])"', " ".join(result.critical))
        raise PlaceholderError(list(dict.fromkeys(placeholders)), document=document)
    if first.startswith("FACT VIOLATION"):
        raise FactViolation(result, document)
    if first.startswith("OVERCLAIMING"):
        raise OverclaimError(result, document)
    if first.startswith("FORBIDDEN LANGUAGE"):
        raise LanguageViolation(result, document)
    if first.startswith("FORBIDDEN RELIEF"):
        raise ReliefViolation(result, document)
    raise AuditFailure(result, document)


def format_audit_result(result: LegalAuditResult) -> str:
    lines = [
        "LEGAL AUDIT REPORT",
        "",
        f"Status: {'PASSED' if result.passed else 'FAILED'}",
        f"Score: {result.score:.1f}/10",
    ]

    sections = [
        ("CRITICAL ISSUES (MUST FIX BEFORE FILING):", result.critical),
        ("WARNINGS (SHOULD REVIEW):", result.warnings),
        ("RECOMMENDATIONS:", result.recommendations),
    ]
    for title, items in sections:
        if items:
            lines += ["", title]
            lines += [f"{i}. {item}" for i, item in enumerate(items, start=1)]

    if result.passed and not result.warnings and not result.recommendations:
        lines += ["", "DOCUMENT IS READY TO FILE", "All checks passed."]

    return "\n".join(lines)


def quick_audit(content: str, locked_facts: List[LockedFact]) -> dict:
    """Pass/fail only: placeholders and critical fact violations"""
    if find_placeholders(content):
        return {"passed": False, "reason": "Document contains unfilled placeholders"}

    fact_check = validate_against_locked_facts(content, locked_facts)
    if not fact_check.locked:
        return {"passed": False, "reason": "Critical fact violations detected"}

    return {"passed": True, "reason": None}
