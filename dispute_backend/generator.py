"""
Form Generator
==============

Produces the content of each planned document from locked facts and the
routing decision.

Rules the generator never breaks:
- Locked key facts are embedded verbatim, one numbered paragraph each
- Figures are computed (hours x rate, 8% statutory interest, court fee), never guessed
- A missing required input raises PlaceholderError; no bracket token is ever emitted
- Evidence is referenced by exhibit label only
- Defendant naming follows the entity type (company vs sole trader), never both

The deterministic renderer is always built first. When a generation backend
is configured it is asked to redraft that text; any failure, timeout or
placeholder in its output falls back to the deterministic draft.
"""

import re
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, List, Optional

from .config import get_settings
from .errors import GenerationBackendError, PlaceholderError
from .fact_lock import find_placeholders, generate_fact_lock_instructions, locked_key_facts, locked_value, stated_hours
from .forms import OfficialFormID, get_form_metadata
from .forum_language import generate_forum_language_instructions, get_forum_from_routing
from .llm import GenerationBackend, get_generation_backend, safe_log_content
from .relief import ReliefType, generate_relief_section
from .schemas import DocumentType, EvidenceItem, LegalForum, LockedFact, PlannedDocument, RoutingDecision

logger = logging.getLogger(__name__)

PENNY = Decimal("0.01")

HOURLY_RATE_PATTERN = re.compile(
    r"£\s?(\d+(?:\.\d{1,2})?)\s*(?:per hour|an hour|a hour|/\s?hr\b|/\s?hour|ph\b|hourly)",
    re.IGNORECASE,
)
COMPANY_SUFFIX_PATTERN = re.compile(r"[\s,]+(ltd\.?|limited|plc|llp)$", re.IGNORECASE)
TRADING_AS_PATTERN = re.compile(r"\s+(?:t/a|trading as)\s+", re.IGNORECASE)

# (upper bound, fee) - claims above the last band pay 5%
COURT_FEE_BANDS = [
    (Decimal("300"), Decimal("35")),
    (Decimal("500"), Decimal("50")),
    (Decimal("1000"), Decimal("70")),
    (Decimal("1500"), Decimal("80")),
    (Decimal("3000"), Decimal("115")),
    (Decimal("5000"), Decimal("205")),
    (Decimal("10000"), Decimal("455")),
]

MONEY_FORUMS = {LegalForum.COUNTY_COURT_SMALL_CLAIMS, LegalForum.COUNTY_COURT_FAST_TRACK, LegalForum.PROPERTY_TRIBUNAL}
INTEREST_FORUMS = {LegalForum.COUNTY_COURT_SMALL_CLAIMS, LegalForum.COUNTY_COURT_FAST_TRACK}


@dataclass(frozen=True)
class ForumStyle:
    user_role: str
    other_role: str
    decision_maker: str
    # Sentence carrying the vocabulary the forum expects to see
    subject_line: str


_FORUM_STYLES: Dict[Optional[LegalForum], ForumStyle] = {
    LegalForum.COUNTY_COURT_SMALL_CLAIMS: ForumStyle(
        "Claimant", "Defendant", "the court",
        "This concerns the sum due under the agreement between the parties.",
    ),
    LegalForum.COUNTY_COURT_FAST_TRACK: ForumStyle(
        "Claimant", "Defendant", "the court",
        "These particulars set out the sum claimed under the agreement between the parties.",
    ),
    LegalForum.EMPLOYMENT_TRIBUNAL: ForumStyle(
        "Claimant", "Respondent", "the Tribunal",
        "This claim concerns my employment with the Respondent.",
    ),
    LegalForum.SOCIAL_SECURITY_TRIBUNAL: ForumStyle(
        "Appellant", "Respondent", "the Tribunal",
        "I ask for the decision to be looked at again by way of mandatory reconsideration or appeal.",
    ),
    LegalForum.TAX_TRIBUNAL: ForumStyle(
        "Appellant", "Respondent", "the Tribunal",
        "This concerns the tax assessment issued by HMRC.",
    ),
    LegalForum.PROPERTY_TRIBUNAL: ForumStyle(
        "Applicant", "Respondent", "the Tribunal",
        "This concerns sums demanded for the property under the lease.",
    ),
    LegalForum.IMMIGRATION_TRIBUNAL: ForumStyle(
        "Applicant", "Home Office", "the Home Office",
        "This concerns the Home Office immigration decision.",
    ),
    None: ForumStyle(
        "Sender", "Recipient", "the decision maker",
        "This letter sets out my position.",
    ),
}


# =============================================================================
# FIGURES
# =============================================================================

@dataclass
class ClaimFigures:
    principal: Decimal
    basis: str
    hours: Optional[float] = None
    rate: Optional[Decimal] = None
    interest: Decimal = Decimal("0.00")
    interest_days: int = 0
    court_fee: Decimal = Decimal("0.00")

    @property
    def total(self) -> Decimal:
        return self.principal + self.interest


def calculate_court_fee(amount: Decimal) -> Decimal:
    for upper, fee in COURT_FEE_BANDS:
        if amount <= upper:
            return fee.quantize(PENNY)
    return (amount * Decimal("0.05")).quantize(PENNY, rounding=ROUND_HALF_UP)


def calculate_interest(principal: Decimal, days: int, rate: Optional[float] = None) -> Decimal:
    """Simple statutory interest: principal x rate / 365 x days"""
    if rate is None:
        rate = get_settings().statutory_interest_rate
    if days <= 0:
        return Decimal("0.00")
    daily = principal * Decimal(str(rate)) / Decimal("365")
    return (daily * days).quantize(PENNY, rounding=ROUND_HALF_UP)


def parse_hourly_rate(facts: List[str]) -> Optional[Decimal]:
    match = HOURLY_RATE_PATTERN.search(" ".join(facts))
    return Decimal(match.group(1)) if match else None


def compute_claim_figures(
    locked_facts: List[LockedFact],
    include_interest: bool = False,
    interest_from: Optional[date] = None,
    today: Optional[date] = None,
) -> Optional[ClaimFigures]:
    """
    Principal from the user's own figures.

    Hours actually worked x agreed rate wins over a stated total, so a
    conceded hour is never billed. Returns None when neither is available.
    """
    key_facts = locked_key_facts(locked_facts)
    hours = stated_hours(key_facts)
    rate = parse_hourly_rate(key_facts)

    if hours is not None and rate is not None:
        principal = (Decimal(str(hours)) * rate).quantize(PENNY, rounding=ROUND_HALF_UP)
        figures = ClaimFigures(principal=principal, basis="hours_x_rate", hours=hours, rate=rate)
    else:
        amount = locked_value(locked_facts, "amount")
        if amount in (None, "", 0):
            return None
        figures = ClaimFigures(principal=Decimal(str(amount)).quantize(PENNY, rounding=ROUND_HALF_UP), basis="stated_amount")

    figures.court_fee = calculate_court_fee(figures.principal)

    if include_interest:
        if interest_from is None:
            raise PlaceholderError(["interest start date"], document="claim figures")
        figures.interest_days = ((today or date.today()) - interest_from).days
        figures.interest = calculate_interest(figures.principal, figures.interest_days)

    return figures


# =============================================================================
# NAMES & LABELS
# =============================================================================

def detect_entity_type(name: str) -> str:
    if COMPANY_SUFFIX_PATTERN.search(name.strip()):
        return "company"
    if TRADING_AS_PATTERN.search(name):
        return "sole_trader"
    return "individual"


def format_defendant_name(name: str) -> str:
    """
    ACME CLEANING LTD for a registered company, JOHN SMITH trading as
    SMITH CLEANING for a sole trader, the name as given otherwise.
    """
    name = " ".join(name.split())
    entity = detect_entity_type(name)

    if entity == "company":
        match = COMPANY_SUFFIX_PATTERN.search(name)
        suffix = match.group(1).upper().rstrip(".")
        suffix = "LTD" if suffix == "LIMITED" else suffix
        return f"{name[:match.start()].upper()} {suffix}"

    if entity == "sole_trader":
        owner, business = TRADING_AS_PATTERN.split(name, maxsplit=1)
        return f"{owner.upper()} trading as {business.upper()}"

    return name


def format_exhibit_label(index: int, item: EvidenceItem) -> str:
    title = item.title or item.file_name
    label = f"Evidence Item #{index} ({title})"
    if item.evidence_date:
        label += f" dated {item.evidence_date.strftime('%d/%m/%Y')}"
    return label


def _money(value: Decimal) -> str:
    return f"£{value:,.2f}"


def _hours(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


# =============================================================================
# REQUEST / RESULT
# =============================================================================

@dataclass
class GenerationRequest:
    document: PlannedDocument
    form_id: str
    decision: RoutingDecision
    locked_facts: List[LockedFact]
    evidence: List[EvidenceItem] = field(default_factory=list)
    include_interest: bool = False
    interest_from: Optional[date] = None
    issued_on: Optional[date] = None


@dataclass
class GenerationResult:
    content: str
    used_fallback: bool
    figures: Optional[ClaimFigures] = None
    backend_error: Optional[str] = None


@dataclass
class _Context:
    request: GenerationRequest
    forum: Optional[LegalForum]
    style: ForumStyle
    claimant: str
    claimant_address: Optional[str]
    counterparty: Optional[str]
    counterparty_address: Optional[str]
    dispute_label: str
    key_facts: List[str]
    figures: Optional[ClaimFigures]
    issued_on: date


def _build_context(request: GenerationRequest) -> _Context:
    locked = request.locked_facts
    decision = request.decision
    forum = get_forum_from_routing(decision.domain, decision.forum)
    document = request.document.title

    missing: List[str] = []
    claimant = locked_value(locked, "claimantName")
    if not claimant:
        missing.append("claimant name")

    counterparty = locked_value(locked, "counterpartyName")
    needs_counterparty = request.document.type in (DocumentType.FORMAL_LETTER, DocumentType.APPEAL_FORM)
    if needs_counterparty and not counterparty and forum not in (
        LegalForum.SOCIAL_SECURITY_TRIBUNAL, LegalForum.TAX_TRIBUNAL, LegalForum.IMMIGRATION_TRIBUNAL,
    ):
        missing.append("counterparty name")

    key_facts = locked_key_facts(locked)
    if not key_facts:
        missing.append("key facts")

    issued_on = request.issued_on or date.today()
    include_interest = request.include_interest and forum in INTEREST_FORUMS
    figures = compute_claim_figures(locked, include_interest, request.interest_from, issued_on)
    if figures is None and forum in MONEY_FORUMS:
        missing.append("amount")

    if missing:
        raise PlaceholderError(missing, document=document)

    dispute = str(locked_value(locked, "disputeType") or decision.domain or "legal").replace("_", " ")

    return _Context(
        request=request,
        forum=forum,
        style=_FORUM_STYLES.get(forum, _FORUM_STYLES[None]),
        claimant=str(claimant),
        claimant_address=locked_value(locked, "claimantAddress"),
        counterparty=format_defendant_name(str(counterparty)) if counterparty else None,
        counterparty_address=locked_value(locked, "counterpartyAddress"),
        dispute_label=dispute[:1].upper() + dispute[1:],
        key_facts=key_facts,
        figures=figures,
        issued_on=issued_on,
    )


# =============================================================================
# SECTIONS
# =============================================================================

def _header(ctx: _Context, heading: str) -> List[str]:
    metadata = get_form_metadata(ctx.request.form_id)
    lines = [heading.upper()]
    if metadata and metadata.official_name.upper() != heading.upper():
        lines.append(metadata.official_name)
    lines.append("")

    sender = f"{ctx.style.user_role}: {ctx.claimant}"
    if ctx.claimant_address:
        sender += f", {ctx.claimant_address}"
    lines.append(sender)
    if ctx.counterparty:
        recipient = f"{ctx.style.other_role}: {ctx.counterparty}"
        if ctx.counterparty_address:
            recipient += f", {ctx.counterparty_address}"
        lines.append(recipient)
    lines.append(f"Date: {ctx.issued_on.strftime('%d %B %Y')}")
    if ctx.figures:
        lines.append(f"Amount: {_money(ctx.figures.principal)}")
    lines += ["", f"Re: {ctx.dispute_label} dispute", "", ctx.style.subject_line, ""]
    return lines


def _fact_paragraphs(ctx: _Context, start: int = 1) -> List[str]:
    return [f"{number}. {fact}" for number, fact in enumerate(ctx.key_facts, start=start)]


def _calculation(ctx: _Context) -> List[str]:
    figures = ctx.figures
    if figures is None:
        return []
    lines = ["CALCULATION", ""]
    if figures.basis == "hours_x_rate":
        lines.append(
            f"{_hours(figures.hours)} hours at {_money(figures.rate)} per hour = {_money(figures.principal)}"
        )
    else:
        lines.append(f"Sum outstanding: {_money(figures.principal)}")
    if figures.interest_days > 0:
        rate = get_settings().statutory_interest_rate
        lines.append(
            f"Interest at {rate * 100:g}% per annum for {figures.interest_days} days = {_money(figures.interest)}"
        )
        lines.append(f"Total including interest: {_money(figures.total)}")
    if ctx.forum in INTEREST_FORUMS:
        lines.append(f"Court fee on issue: {_money(figures.court_fee)}")
    lines.append("")
    return lines


def _exhibits(ctx: _Context) -> List[str]:
    return [format_exhibit_label(i, item) for i, item in enumerate(ctx.request.evidence, start=1)]


def _relief(ctx: _Context) -> List[str]:
    if ctx.forum is None:
        return []
    principal = float(ctx.figures.principal) if ctx.figures else 0.0
    include_interest = bool(ctx.figures and ctx.figures.interest_days > 0)
    confirmed = [ReliefType.STATUTORY_INTEREST] if include_interest else []
    section = generate_relief_section(
        ctx.forum,
        principal,
        include_interest=include_interest,
        user_confirmed=confirmed,
        interest_from=ctx.request.interest_from,
    )
    return [section.rstrip(), ""]


def _sign_off(ctx: _Context, statement_of_truth: bool = False) -> List[str]:
    lines = []
    if statement_of_truth:
        lines += [
            "STATEMENT OF TRUTH",
            "",
            "I believe that the facts stated in this document are true.",
            "",
        ]
    lines += ["Signed:", ctx.claimant, f"Date: {ctx.issued_on.strftime('%d/%m/%Y')}"]
    return lines


# =============================================================================
# TEMPLATES
# =============================================================================

MAIN_HEADINGS: Dict[str, str] = {
    OfficialFormID.LETTER_BEFORE_ACTION.value: "Letter Before Action",
    OfficialFormID.DEMAND_LETTER.value: "Letter of Demand",
    OfficialFormID.FORMAL_COMPLAINT_LETTER.value: "Formal Complaint",
    OfficialFormID.EMPLOYMENT_TRIBUNAL_CLAIM.value: "Employment Tribunal Claim",
    OfficialFormID.COUNTY_COURT_CLAIM_FORM.value: "Particulars of Claim",
    OfficialFormID.PARTICULARS_OF_CLAIM.value: "Particulars of Claim",
    OfficialFormID.MANDATORY_RECONSIDERATION_REQUEST.value: "Mandatory Reconsideration Request",
    OfficialFormID.BENEFITS_APPEAL_FORM.value: "Notice of Appeal",
    OfficialFormID.ADMIN_REVIEW_REQUEST.value: "Administrative Review Request",
    OfficialFormID.MITIGATION_STATEMENT.value: "Statement of Mitigation",
    OfficialFormID.POPLA_APPEAL.value: "Parking Appeal",
}

LETTER_FORMS = {
    OfficialFormID.LETTER_BEFORE_ACTION.value,
    OfficialFormID.DEMAND_LETTER.value,
    OfficialFormID.FORMAL_COMPLAINT_LETTER.value,
}


def render_main_document(ctx: _Context) -> str:
    form_id = ctx.request.form_id
    heading = MAIN_HEADINGS.get(form_id, ctx.request.document.title)
    lines = _header(ctx, heading)

    if ctx.figures and ctx.forum in MONEY_FORUMS:
        lines += [f"The sum of {_money(ctx.figures.principal)} remains outstanding.", ""]

    lines += ["FACTS", ""]
    lines += _fact_paragraphs(ctx)
    lines.append("")
    lines += _calculation(ctx)

    exhibits = _exhibits(ctx)
    if exhibits:
        lines += ["EVIDENCE RELIED ON", ""] + [f"- {label}" for label in exhibits] + [""]

    lines += _relief(ctx)

    if form_id in LETTER_FORMS:
        lines += [
            "If this matter is not resolved within 14 days of the date of this letter, "
            f"I intend to ask {ctx.style.decision_maker} to decide it without further notice.",
            "",
        ]
        lines += _sign_off(ctx)
    else:
        lines += _sign_off(ctx, statement_of_truth=True)
    return "\n".join(lines)


def render_cover_letter(ctx: _Context) -> str:
    lines = _header(ctx, "Cover Letter")
    lines += [f"Please find enclosed my documents for submission to {ctx.style.decision_maker}.", ""]
    if ctx.figures and ctx.forum in MONEY_FORUMS:
        lines += [f"The amount in dispute is {_money(ctx.figures.principal)}.", ""]
    exhibits = _exhibits(ctx)
    if exhibits:
        lines += [f"The enclosed evidence comprises {len(exhibits)} item(s), listed in the evidence schedule.", ""]
    lines += _sign_off(ctx)
    return "\n".join(lines)


def render_evidence_schedule(ctx: _Context) -> str:
    lines = _header(ctx, "Evidence Schedule")
    exhibits = _exhibits(ctx)
    if not exhibits:
        raise PlaceholderError(["evidence items"], document=ctx.request.document.title)
    lines += ["EXHIBITS", ""] + [f"{i}. {label}" for i, label in enumerate(exhibits, start=1)] + [""]
    lines += _sign_off(ctx)
    return "\n".join(lines)


def render_timeline(ctx: _Context) -> str:
    lines = _header(ctx, "Chronology of Events")
    incident = locked_value(ctx.request.locked_facts, "incidentDate")
    if incident:
        lines += [f"Date of incident: {incident}", ""]
    lines += ["EVENTS IN ORDER", ""]
    lines += _fact_paragraphs(ctx)
    lines.append("")
    lines += _sign_off(ctx)
    return "\n".join(lines)


def render_witness_statement(ctx: _Context) -> str:
    lines = _header(ctx, "Witness Statement")
    lines += [f"I, {ctx.claimant}, will say as follows:", ""]
    lines += _fact_paragraphs(ctx)
    lines.append("")
    exhibits = _exhibits(ctx)
    if exhibits:
        lines += ["I refer to the following exhibits:", ""] + [f"- {label}" for label in exhibits] + [""]
    lines += _sign_off(ctx, statement_of_truth=True)
    return "\n".join(lines)


def render_statutory_declaration(ctx: _Context) -> str:
    lines = _header(ctx, "Statutory Declaration")
    lines += [f"I, {ctx.claimant}, do solemnly and sincerely declare that:", ""]
    lines += _fact_paragraphs(ctx)
    lines += [
        "",
        "I make this solemn declaration conscientiously believing the same to be true, "
        "and by virtue of the provisions of the Statutory Declarations Act 1835.",
        "",
    ]
    lines += _sign_off(ctx)
    return "\n".join(lines)


TEMPLATES: Dict[DocumentType, Callable[[_Context], str]] = {
    DocumentType.FORMAL_LETTER: render_main_document,
    DocumentType.APPEAL_FORM: render_main_document,
    DocumentType.COVER_LETTER: render_cover_letter,
    DocumentType.EVIDENCE_SCHEDULE: render_evidence_schedule,
    DocumentType.TIMELINE: render_timeline,
    DocumentType.WITNESS_STATEMENT: render_witness_statement,
    DocumentType.STATUTORY_DECLARATION: render_statutory_declaration,
}


def render_deterministic(request: GenerationRequest) -> GenerationResult:
    """Deterministic fallback: same locked facts in, same document out"""
    ctx = _build_context(request)
    content = TEMPLATES[request.document.type](ctx)
    return GenerationResult(content=content, used_fallback=True, figures=ctx.figures)


# =============================================================================
# GENERATOR
# =============================================================================

REDRAFT_PROMPT = """Redraft the document below in a clear, formal register suitable for filing.

Keep every numbered fact word for word. Keep every figure, date, name and
exhibit label exactly as written. Do not add facts, claims or relief.

DOCUMENT:
{draft}
"""


class FormGenerator:
    """
    Generates one planned document at a time.

    The backend is optional; without one every document comes from the
    deterministic renderer.
    """

    def __init__(self, backend: Optional[GenerationBackend] = None, timeout: Optional[float] = None):
        self.backend = backend
        self.timeout = timeout if timeout is not None else get_settings().generation_timeout

    def _system_instructions(self, request: GenerationRequest) -> str:
        parts = [generate_fact_lock_instructions(request.locked_facts)]
        forum = get_forum_from_routing(request.decision.domain, request.decision.forum)
        if forum is not None:
            parts.append(generate_forum_language_instructions(forum))
        return "\n\n".join(parts)

    async def _redraft(self, request: GenerationRequest, draft: str) -> str:
        return await asyncio.wait_for(
            self.backend.generate(REDRAFT_PROMPT.format(draft=draft), self._system_instructions(request)),
            timeout=self.timeout,
        )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        title = request.document.title
        fallback = render_deterministic(request)

        result = fallback
        if self.backend is not None:
            try:
                content = await self._redraft(request, fallback.content)
                placeholders = find_placeholders(content)
                if placeholders:
                    logger.warning(f"[Generator] Backend output for {title} has placeholders {placeholders}, using fallback")
                    fallback.backend_error = f"Backend output contained placeholders: {', '.join(placeholders)}"
                else:
                    logger.info(f"[Generator] Backend draft for {title}: {safe_log_content(content)}")
                    result = GenerationResult(content=content, used_fallback=False, figures=fallback.figures)
            except asyncio.TimeoutError:
                logger.error(f"[Generator] Backend timed out after {self.timeout}s for {title}, using fallback")
                fallback.backend_error = f"Generation timed out after {self.timeout}s"
            except GenerationBackendError as e:
                logger.error(f"[Generator] Backend failed for {title}: {e}, using fallback")
                fallback.backend_error = str(e)

        placeholders = find_placeholders(result.content)
        if placeholders:
            raise PlaceholderError(placeholders, document=title)

        logger.info(f"[Generator] {title} generated ({len(result.content)} chars, fallback={result.used_fallback})")
        return result


_generator: Optional[FormGenerator] = None


def get_form_generator() -> FormGenerator:
    global _generator
    if _generator is None:
        _generator = FormGenerator(backend=get_generation_backend())
    return _generator
