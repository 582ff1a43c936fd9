"""
Relief Alignment
================

The remedy claimed must follow from the forum. Each forum lists:

- allowed relief
- relief the user has to confirm explicitly (interest in small claims,
  reinstatement in a tribunal)
- forbidden relief (costs in small claims, money claims in benefit appeals)
- automatic caps

validate_relief() checks a requested list; extract_relief_from_document()
recovers that list from generated text so the audit can check it.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional

from .config import get_settings
from .errors import PlaceholderError
from .schemas import LegalForum

logger = logging.getLogger(__name__)


class ReliefType(str, Enum):
    PRINCIPAL_SUM = "PRINCIPAL_SUM"
    STATUTORY_INTEREST = "STATUTORY_INTEREST"
    CONTRACTUAL_INTEREST = "CONTRACTUAL_INTEREST"
    LATE_PAYMENT_INTEREST = "LATE_PAYMENT_INTEREST"
    COSTS = "COSTS"
    COURT_FEE = "COURT_FEE"
    FURTHER_RELIEF = "FURTHER_RELIEF"
    SPECIFIC_PERFORMANCE = "SPECIFIC_PERFORMANCE"
    INJUNCTION = "INJUNCTION"
    DECLARATION = "DECLARATION"
    REINSTATEMENT = "REINSTATEMENT"
    RE_ENGAGEMENT = "RE_ENGAGEMENT"
    COMPENSATION = "COMPENSATION"
    RECOMMENDATION = "RECOMMENDATION"
    PENSION_CONTRIBUTION = "PENSION_CONTRIBUTION"


@dataclass(frozen=True)
class ReliefRules:
    allowed: List[ReliefType]
    requires_confirmation: List[ReliefType]
    forbidden: List[ReliefType]
    caps: Dict[str, object] = field(default_factory=dict)


R = ReliefType

RELIEF_RULES: Dict[LegalForum, ReliefRules] = {
    LegalForum.COUNTY_COURT_SMALL_CLAIMS: ReliefRules(
        allowed=[R.PRINCIPAL_SUM, R.STATUTORY_INTEREST, R.COURT_FEE],
        requires_confirmation=[R.STATUTORY_INTEREST, R.FURTHER_RELIEF],
        forbidden=[R.COSTS, R.SPECIFIC_PERFORMANCE, R.INJUNCTION],
        caps={"costs": 0, "interest": "8% statutory only"},
    ),
    LegalForum.COUNTY_COURT_FAST_TRACK: ReliefRules(
        allowed=[
            R.PRINCIPAL_SUM, R.STATUTORY_INTEREST, R.CONTRACTUAL_INTEREST, R.LATE_PAYMENT_INTEREST,
            R.COSTS, R.COURT_FEE, R.SPECIFIC_PERFORMANCE, R.INJUNCTION, R.DECLARATION,
        ],
        requires_confirmation=[R.SPECIFIC_PERFORMANCE, R.INJUNCTION, R.DECLARATION],
        forbidden=[],
        caps={"costs": 25000},
    ),
    LegalForum.EMPLOYMENT_TRIBUNAL: ReliefRules(
        allowed=[R.COMPENSATION, R.REINSTATEMENT, R.RE_ENGAGEMENT, R.RECOMMENDATION, R.PENSION_CONTRIBUTION],
        requires_confirmation=[R.REINSTATEMENT, R.RE_ENGAGEMENT],
        forbidden=[R.STATUTORY_INTEREST, R.COSTS, R.COURT_FEE, R.INJUNCTION],
        caps={"costs": 0},
    ),
    LegalForum.SOCIAL_SECURITY_TRIBUNAL: ReliefRules(
        allowed=[R.COMPENSATION],
        requires_confirmation=[],
        forbidden=[
            R.PRINCIPAL_SUM, R.STATUTORY_INTEREST, R.COSTS, R.COURT_FEE,
            R.INJUNCTION, R.SPECIFIC_PERFORMANCE,
        ],
        caps={"costs": 0},
    ),
    LegalForum.TAX_TRIBUNAL: ReliefRules(
        allowed=[R.COMPENSATION],
        requires_confirmation=[],
        forbidden=[R.STATUTORY_INTEREST, R.COSTS, R.INJUNCTION],
    ),
    LegalForum.PROPERTY_TRIBUNAL: ReliefRules(
        allowed=[R.PRINCIPAL_SUM, R.COMPENSATION, R.DECLARATION],
        requires_confirmation=[R.DECLARATION],
        forbidden=[R.STATUTORY_INTEREST, R.COSTS, R.INJUNCTION],
    ),
    LegalForum.IMMIGRATION_TRIBUNAL: ReliefRules(
        allowed=[R.COMPENSATION],
        requires_confirmation=[],
        forbidden=[R.PRINCIPAL_SUM, R.STATUTORY_INTEREST, R.COSTS, R.INJUNCTION],
        caps={"costs": 0},
    ),
}


@dataclass
class ReliefResult:
    valid: bool
    forbidden_relief: List[ReliefType] = field(default_factory=list)
    needs_confirmation: List[ReliefType] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def relief_label(relief: ReliefType) -> str:
    return relief.value.replace("_", " ").lower()


def validate_relief(
    requested: List[ReliefType],
    forum: LegalForum,
    claim_value: Optional[float] = None,
) -> ReliefResult:
    rules = RELIEF_RULES[forum]

    forbidden = [r for r in requested if r in rules.forbidden]
    needs_confirmation = [r for r in requested if r in rules.requires_confirmation]
    warnings: List[str] = []

    if forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS and ReliefType.COSTS in requested:
        warnings.append("COSTS not recoverable in small claims (except fixed court fee)")

    if claim_value and claim_value < get_settings().small_claim_value:
        if ReliefType.INJUNCTION in requested:
            warnings.append(f"Injunction disproportionate for £{claim_value:.2f} claim")
        if ReliefType.SPECIFIC_PERFORMANCE in requested:
            warnings.append(f"Specific performance disproportionate for £{claim_value:.2f} claim")

    if ReliefType.FURTHER_RELIEF in requested and forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS:
        warnings.append('"Further or other relief" should be specific in small claims')

    return ReliefResult(
        valid=not forbidden,
        forbidden_relief=forbidden,
        needs_confirmation=needs_confirmation,
        warnings=warnings,
    )


def extract_relief_from_document(content: str) -> List[ReliefType]:
    """Relief types a document asks for, read back from its text"""
    text = (content or "").lower()
    relief: List[ReliefType] = []

    if "payment of" in text or "sum of £" in text:
        relief.append(ReliefType.PRINCIPAL_SUM)
    if "interest" in text and "8%" in text:
        relief.append(ReliefType.STATUTORY_INTEREST)
    if "costs" in text:
        relief.append(ReliefType.COSTS)
    if "further" in text and "relief" in text:
        relief.append(ReliefType.FURTHER_RELIEF)
    if "specific performance" in text:
        relief.append(ReliefType.SPECIFIC_PERFORMANCE)
    if "injunction" in text:
        relief.append(ReliefType.INJUNCTION)
    if "reinstatement" in text:
        relief.append(ReliefType.REINSTATEMENT)
    if "re-engagement" in text:
        relief.append(ReliefType.RE_ENGAGEMENT)

    return relief


# =============================================================================
# RELIEF SECTION
# =============================================================================

def _interest_line(interest_from: Optional[date], rate: float) -> str:
    if interest_from is None:
        raise PlaceholderError(["interest start date"], document="relief section")
    return (
        f"Interest pursuant to section 69 of the County Courts Act 1984 at the rate of "
        f"{rate * 100:g}% per annum from {interest_from.strftime('%d/%m/%Y')} to the date of judgment"
    )


def _numbered(heading: str, items: List[str]) -> str:
    lines = [heading, ""]
    for i, item in enumerate(items, start=1):
        lines.append(f"({i}) {item}")
        lines.append("")
    return "\n".join(lines)


def generate_relief_section(
    forum: LegalForum,
    principal: float,
    include_interest: bool = False,
    user_confirmed: Optional[List[ReliefType]] = None,
    interest_from: Optional[date] = None,
) -> str:
    """
    Relief paragraph for a forum, numbered sequentially.

    Interest needs a start date; asking for it without one raises
    PlaceholderError rather than printing a bracketed gap.
    """
    confirmed = user_confirmed or []
    rate = get_settings().statutory_interest_rate

    if forum == LegalForum.COUNTY_COURT_SMALL_CLAIMS:
        items = [f"Payment of the sum of £{principal:.2f}"]
        if include_interest and ReliefType.STATUTORY_INTEREST in confirmed:
            items.append(_interest_line(interest_from, rate))
        items.append("The court fee")
        return _numbered("AND THE CLAIMANT CLAIMS:", items)

    if forum == LegalForum.COUNTY_COURT_FAST_TRACK:
        items = [f"Payment of the sum of £{principal:.2f}"]
        if include_interest:
            items.append(_interest_line(interest_from, rate) + ", or such other rate and period as the court thinks fit")
        items += ["Costs", "Further or other relief"]
        return _numbered("AND THE CLAIMANT CLAIMS:", items)

    if forum == LegalForum.EMPLOYMENT_TRIBUNAL:
        options = []
        if ReliefType.REINSTATEMENT in confirmed:
            options.append("an order for reinstatement")
        if ReliefType.RE_ENGAGEMENT in confirmed:
            options.append("an order for re-engagement")
        options.append("compensation")
        first = options[0][0].upper() + options[0][1:]
        items = [", or alternatively ".join([first] + options[1:])]
        if ReliefType.PENSION_CONTRIBUTION in confirmed:
            items.append("An award for loss of pension rights")
        items.append("Such further relief as the Tribunal considers appropriate")
        return _numbered("AND THE CLAIMANT CLAIMS:", items)

    if forum == LegalForum.SOCIAL_SECURITY_TRIBUNAL:
        return _numbered(
            "THE APPELLANT ASKS:",
            ["That the appeal be allowed", "That the decision under appeal be revised in the appellant's favour"],
        )

    if forum == LegalForum.TAX_TRIBUNAL:
        return _numbered(
            "THE APPELLANT ASKS:",
            ["That the appeal be allowed", "That the HMRC assessment be reduced or cancelled"],
        )

    if forum == LegalForum.PROPERTY_TRIBUNAL:
        return _numbered(
            "THE APPLICANT ASKS:",
            [f"A determination that no more than £{principal:.2f} is reasonably payable under the lease"],
        )

    if forum == LegalForum.IMMIGRATION_TRIBUNAL:
        return _numbered(
            "THE APPLICANT ASKS:",
            ["That the Home Office decision be withdrawn and reconsidered"],
        )

    logger.warning(f"[Relief] No relief template for {forum}")
    return _numbered("THE APPLICANT ASKS:", ["That the matter be resolved in the applicant's favour"])
