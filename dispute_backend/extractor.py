"""
Fact Extractor
==============

Silent extraction of structured case facts from the intake conversation.

Flow:
1. Rule-based extraction over the user's own messages (always available)
2. Optional LLM extraction when LLM_EXTRACTION_ENABLED and a backend is configured
3. Readiness score, missing info and recommended state are ALWAYS recomputed
   deterministically from the extracted fields

Guarantees:
- Never invents values: anything not stated stays None
- Identical (transcript, evidence_count) gives identical output
- Never raises: on failure a zero-readiness safe default is returned
"""

import re
import json
import asyncio
import hashlib
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import get_settings
from .fact_lock import WORKED_HOURS_PATTERN
from .gathering import ASSISTANT_ROLES, EVIDENCE_OPTIONAL_ROUTES
from .llm.backend import GenerationBackend, get_generation_backend, parse_json_robust, safe_log_content
from .schemas import ExtractedFacts, Parties, RecommendedState, TranscriptMessage

logger = logging.getLogger(__name__)


# =============================================================================
# RULE TABLES
# =============================================================================

# Checked in order; first dispute type with a matching keyword wins
DISPUTE_TYPE_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("employment", ["my employer", "employed", "employment", "my boss", "payslip", "payslips",
                    "dismissed", "sacked", "wages", "redundancy", "redundant"]),
    ("housing", ["landlord", "tenancy", "tenant", "deposit", "rent", "eviction", "letting agent"]),
    ("benefits", ["universal credit", "pip", "dwp", "benefit", "benefits", "esa"]),
    ("immigration", ["visa", "home office", "immigration", "leave to remain"]),
    ("parking", ["parking", "pcn", "parking charge"]),
    ("traffic", ["speeding", "speed camera", "notice of intended prosecution"]),
    ("flight_delay", ["flight", "airline"]),
    ("consumer", ["refund", "faulty", "retailer", "purchased", "bought"]),
    ("debt", ["invoice", "unpaid", "owes me", "owed", "debt", "never paid", "not paid"]),
    ("contract", ["contract", "agreement"]),
]

# Relationship describes the counterparty's role towards the user
RELATIONSHIP_KEYWORDS: List[Tuple[str, List[str]]] = [
    ("contractor", ["self-employed", "self employed", "freelance", "freelancer", "contractor",
                    "sole trader", "my invoice"]),
    ("landlord", ["landlord", "letting agent"]),
    ("employer", ["my employer", "my boss", "employed by", "my manager"]),
    ("seller", ["bought", "purchased", "retailer", "seller"]),
    ("debtor", ["owes me", "lent", "loan"]),
]

# Later mentions override earlier ones: the user's latest explicit choice wins
FORUM_CHOICES: List[Tuple[re.Pattern, str]] = [
    (re.compile(r"\bletter before (?:action|claim)\b|\blba\b", re.IGNORECASE), "letter_before_action"),
    (re.compile(r"\bmoney claim online\b|\bmcol\b", re.IGNORECASE), "money_claim_online"),
    (re.compile(r"\bfast track\b", re.IGNORECASE), "county_court_fast_track"),
    (re.compile(r"\bsmall claims?\b|\bcounty court\b(?! fast track)", re.IGNORECASE), "county_court_small_claims"),
    (re.compile(r"\bemployment tribunal\b", re.IGNORECASE), "employment_tribunal"),
]

KNOWN_FORUMS = {forum for _, forum in FORUM_CHOICES}

EVIDENCE_KEYWORDS: List[Tuple[str, str]] = [
    ("text message", "text messages"),
    ("whatsapp", "WhatsApp messages"),
    ("email", "emails"),
    ("invoice", "invoice"),
    ("contract", "contract"),
    ("receipt", "receipts"),
    ("photo", "photos"),
    ("bank statement", "bank statements"),
    ("payslip", "payslips"),
    ("timesheet", "timesheets"),
    ("screenshot", "screenshots"),
    ("tenancy agreement", "tenancy agreement"),
]

SMALL_TALK_PREFIXES = ("thanks", "thank you", "ok", "okay", "yes", "no", "hello", "hi ", "great", "sure")

NAME_PATTERN = re.compile(r"(?i:\bmy name is|\bi'm called|\bi am called)\s+([A-Z][a-zA-Z'-]+(?:\s+[A-Z][a-zA-Z'-]+)*)")

COUNTERPARTY_PATTERN = re.compile(
    r"(?i:\bworked for|\bwork for|\bhours for|\bjob for|\bservices for|\bemployer is|\bemployed by|\blandlord is|\bagainst|"
    r"\bbought (?:it |them |goods )?from|\bcompany called|\bdid work for|\binvoiced)\s+"
    r"([A-Z][\w&'-]*(?:\s+(?:[A-Z][\w&'-]*|&))*)"
)

# Capitalised words that end a captured counterparty name
NAME_STOPWORDS = {"I", "The", "On", "In", "And", "But", "They", "He", "She", "We", "It", "For", "From", "At"}

DATE_PATTERNS = [
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(
        r"\b\d{1,2}(?:st|nd|rd|th)?\s+(?:January|February|March|April|May|June|July|August|"
        r"September|October|November|December)\s+\d{4}\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(?:January|February|March|April|May|June|July|August|September|October|November|December)"
        r"\s+\d{1,2}(?:st|nd|rd|th)?,?\s+\d{4}\b",
        re.IGNORECASE,
    ),
]

AMOUNT_PATTERN = re.compile(r"£\s?(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)")
RATE_SUFFIX_PATTERN = re.compile(r"^\s*(?:per hour|an hour|a hour|/\s?hr|/\s?hour|ph\b|hourly|per day|a day)", re.IGNORECASE)
CLAIM_WORDS = ("owed", "owe", "owes", "unpaid", "claim", "total", "refund", "due", "outstanding")

USER_ADDRESS_PATTERN = re.compile(r"(?i:\bi live at|\bmy address is)\s+(.+?)(?:\.(?:\s|$)|\n|$)")
COUNTERPARTY_ADDRESS_PATTERN = re.compile(
    r"(?i:\btheir address is|\bthey are based at|\bbased at|\bregistered at|\bregistered office is|"
    r"\blocated at|\btheir office is at)\s+(.+?)(?:\.(?:\s|$)|\n|$)"
)
POSTCODE_PATTERN = re.compile(r"\b[A-Z]{1,2}\d[A-Z\d]?\s*\d[A-Z]{2}\b", re.IGNORECASE)

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
SELF_EMPLOYED_PATTERN = re.compile(r"\bself[- ]employ\w*")

# Readiness weights (percentage points)
READINESS_WEIGHTS = {
    "dispute_type": 15,
    "user": 15,
    "counterparty": 15,
    "incident_date": 10,
    "financial_amount": 10,
    "facts": 10,
    "user_address": 10,
    "counterparty_address": 10,
    "evidence": 5,
}

EXTRACTION_PROMPT = """You are a silent fact extraction engine. Read the conversation between a user and a legal assistant and extract structured facts.

CONVERSATION HISTORY:
{history}

EVIDENCE FILES UPLOADED: {evidence_count}

OUTPUT AS JSON:
{{
  "disputeType": "employment" | "consumer" | "housing" | "debt" | "contract" | "benefits" | "immigration" | "parking" | "traffic" | null,
  "parties": {{"user": string | null, "counterparty": string | null, "relationship": "employer" | "seller" | "landlord" | "contractor" | "debtor" | null}},
  "incidentDate": string | null,
  "financialAmount": number | null,
  "chosenForum": "letter_before_action" | "county_court_small_claims" | "county_court_fast_track" | "employment_tribunal" | "money_claim_online" | null,
  "facts": [string],
  "evidenceProvided": [string],
  "contradictions": [string],
  "userAddress": string | null,
  "counterpartyAddress": string | null
}}

CRITICAL: Be conservative. Don't invent facts. If something wasn't mentioned, it's null.
CRITICAL: chosenForum is the user's EXPLICIT choice only.
Return ONLY valid JSON, no explanations."""


# =============================================================================
# RULE-BASED HELPERS
# =============================================================================

def _user_texts(transcript: Sequence[TranscriptMessage]) -> List[str]:
    return [m.content or "" for m in transcript if (m.role or "").lower() not in ASSISTANT_ROLES]


def _contains_keyword(text: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + r"\b", text) is not None


def detect_dispute_type(text: str) -> Optional[str]:
    # "self-employed" must not read as employment
    lowered = SELF_EMPLOYED_PATTERN.sub(" ", text.lower())
    for dispute_type, keywords in DISPUTE_TYPE_KEYWORDS:
        if any(_contains_keyword(lowered, keyword) for keyword in keywords):
            return dispute_type
    return None


def detect_relationship(text: str) -> Optional[str]:
    lowered = text.lower()
    for relationship, keywords in RELATIONSHIP_KEYWORDS:
        if any(_contains_keyword(lowered, keyword) for keyword in keywords):
            return relationship
    return None


def _trim_name(raw: str) -> Optional[str]:
    tokens = []
    for token in raw.split():
        if token in NAME_STOPWORDS:
            break
        tokens.append(token)
    name = " ".join(tokens).strip(" &")
    return name or None


def detect_counterparty(text: str) -> Optional[str]:
    for match in COUNTERPARTY_PATTERN.finditer(text):
        name = _trim_name(match.group(1))
        if name:
            return name
    return None


def detect_user_name(text: str) -> Optional[str]:
    match = NAME_PATTERN.search(text)
    return _trim_name(match.group(1)) if match else None


def detect_incident_date(text: str) -> Optional[str]:
    """Earliest date mentioned, reported exactly as the user wrote it"""
    found: List[Tuple[int, str]] = []
    for pattern in DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            found.append((match.start(), match.group(0)))
    return min(found)[1] if found else None


def _parse_amount(raw: str) -> float:
    return float(raw.replace(",", ""))


def detect_amounts(text: str) -> List[Tuple[float, bool]]:
    """(amount, in_claim_sentence) for every £ figure that is not a rate"""
    amounts: List[Tuple[float, bool]] = []
    for sentence in SENTENCE_SPLIT.split(text):
        lowered = sentence.lower()
        is_claim = any(_contains_keyword(lowered, word) for word in CLAIM_WORDS)
        for match in AMOUNT_PATTERN.finditer(sentence):
            if RATE_SUFFIX_PATTERN.match(sentence[match.end():]):
                continue
            amounts.append((_parse_amount(match.group(1)), is_claim))
    return amounts


def detect_financial_amount(text: str) -> Optional[float]:
    amounts = detect_amounts(text)
    if not amounts:
        return None
    claimed = [value for value, is_claim in amounts if is_claim]
    return max(claimed) if claimed else max(value for value, _ in amounts)


def detect_chosen_forum(user_texts: Sequence[str]) -> Optional[str]:
    chosen: Optional[str] = None
    latest = (-1, -1)
    for message_index, text in enumerate(user_texts):
        for pattern, forum in FORUM_CHOICES:
            for match in pattern.finditer(text):
                position = (message_index, match.start())
                if position > latest:
                    latest = position
                    chosen = forum
    return chosen


def detect_facts(user_texts: Sequence[str]) -> List[str]:
    facts: List[str] = []
    seen = set()
    for text in user_texts:
        for sentence in SENTENCE_SPLIT.split(text):
            sentence = sentence.strip()
            if len(sentence) < 12 or sentence.endswith("?"):
                continue
            if sentence.lower().startswith(SMALL_TALK_PREFIXES):
                continue
            key = " ".join(sentence.lower().split())
            if key in seen:
                continue
            seen.add(key)
            facts.append(sentence)
    return facts


def detect_evidence(text: str) -> List[str]:
    lowered = text.lower()
    return [label for keyword, label in EVIDENCE_KEYWORDS if keyword in lowered]


def detect_contradictions(user_texts: Sequence[str]) -> List[str]:
    contradictions: List[str] = []

    hours: List[str] = []
    for text in user_texts:
        for match in WORKED_HOURS_PATTERN.finditer(text):
            if match.group(1) not in hours:
                hours.append(match.group(1))
    if len(hours) > 1:
        contradictions.append(f"Hours worked stated inconsistently: {' vs '.join(hours)} hours")

    owed: List[float] = []
    for text in user_texts:
        for value, is_claim in detect_amounts(text):
            if is_claim and value not in owed:
                owed.append(value)
    if len(owed) > 1:
        contradictions.append(
            "Amount owed stated inconsistently: " + " vs ".join(f"£{value:,.2f}" for value in owed)
        )

    return contradictions


def _clean_address(raw: str) -> str:
    address = raw.strip(" ,")
    postcode = POSTCODE_PATTERN.search(address)
    if postcode:
        address = address[:postcode.end()]
    return address


def detect_addresses(text: str) -> Tuple[Optional[str], Optional[str]]:
    user_match = USER_ADDRESS_PATTERN.search(text)
    counterparty_match = COUNTERPARTY_ADDRESS_PATTERN.search(text)
    return (
        _clean_address(user_match.group(1)) if user_match else None,
        _clean_address(counterparty_match.group(1)) if counterparty_match else None,
    )


# =============================================================================
# SCORING
# =============================================================================

def calculate_readiness(extracted: ExtractedFacts, evidence_count: int) -> int:
    """Additive readiness score, clamped to [0, 100]"""
    score = 0
    if extracted.dispute_type:
        score += READINESS_WEIGHTS["dispute_type"]
    if extracted.parties.user:
        score += READINESS_WEIGHTS["user"]
    if extracted.parties.counterparty:
        score += READINESS_WEIGHTS["counterparty"]
    if extracted.incident_date:
        score += READINESS_WEIGHTS["incident_date"]
    if extracted.financial_amount:
        score += READINESS_WEIGHTS["financial_amount"]
    if len(extracted.facts) >= 3:
        score += READINESS_WEIGHTS["facts"]
    if extracted.user_address:
        score += READINESS_WEIGHTS["user_address"]
    if extracted.counterparty_address:
        score += READINESS_WEIGHTS["counterparty_address"]
    if extracted.evidence_provided or evidence_count > 0:
        score += READINESS_WEIGHTS["evidence"]
    return max(0, min(100, score))


def list_missing_info(extracted: ExtractedFacts, evidence_count: int) -> List[str]:
    missing = []
    if not extracted.dispute_type:
        missing.append("Type of dispute")
    if not extracted.parties.user:
        missing.append("Your full name")
    if not extracted.parties.counterparty:
        missing.append("Name of the other party")
    if not extracted.incident_date:
        missing.append("Date of the incident")
    if not extracted.financial_amount:
        missing.append("Amount in dispute")
    if len(extracted.facts) < 3:
        missing.append("At least 3 key facts about what happened")
    if not extracted.user_address:
        missing.append("Your address")
    if not extracted.counterparty_address:
        missing.append("Address of the other party")
    if evidence_count == 0:
        missing.append("Evidence (upload documents or describe what you have)")
    return missing


def recommend_state(
    readiness_score: int,
    evidence_count: int,
    evidence_mentioned: bool,
    chosen_forum: Optional[str],
    threshold: Optional[int] = None,
) -> RecommendedState:
    if threshold is None:
        threshold = get_settings().readiness_threshold
    if readiness_score >= threshold and (evidence_count > 0 or (chosen_forum or "") in EVIDENCE_OPTIONAL_ROUTES):
        return RecommendedState.CONFIRMING_SUMMARY
    if evidence_mentioned and evidence_count == 0:
        return RecommendedState.WAITING_FOR_UPLOAD
    return RecommendedState.GATHERING_FACTS


def rescore(extracted: ExtractedFacts, evidence_count: int) -> ExtractedFacts:
    """Recompute readiness, missing info and recommended state from the fields"""
    readiness = calculate_readiness(extracted, evidence_count)
    return extracted.model_copy(update={
        "readiness_score": readiness,
        "missing_critical_info": list_missing_info(extracted, evidence_count),
        "recommended_state": recommend_state(
            readiness, evidence_count, bool(extracted.evidence_provided), extracted.chosen_forum
        ),
    })


def safe_default() -> ExtractedFacts:
    """All-null, zero-readiness result used when extraction fails"""
    return ExtractedFacts(
        readiness_score=0,
        missing_critical_info=["Unable to extract facts - please try again"],
        recommended_state=RecommendedState.GATHERING_FACTS,
    )


def transcript_digest(transcript: Sequence[TranscriptMessage], evidence_count: int) -> str:
    payload = json.dumps(
        {"messages": [[m.role, m.content] for m in transcript], "evidence_count": evidence_count},
        sort_keys=True,
    )
    return hashlib.sha256(payload.encode()).hexdigest()


# =============================================================================
# EXTRACTOR
# =============================================================================

class FactExtractor:
    """
    Transcript -> ExtractedFacts.

    The rule-based path is pure. The LLM path is memoised per
    (transcript, evidence_count) digest so repeated polling returns the same
    answer, and concurrent calls for one digest are serialized.
    """

    CACHE_SIZE = 256

    def __init__(self, backend: Optional[GenerationBackend] = None, use_llm: Optional[bool] = None):
        settings = get_settings()
        self.backend = backend
        self.use_llm = settings.llm_extraction_enabled if use_llm is None else use_llm
        self.timeout = settings.extraction_timeout
        self._cache: "OrderedDict[str, ExtractedFacts]" = OrderedDict()
        self._locks: Dict[str, asyncio.Lock] = {}

    def extract_rule_based(self, transcript: Sequence[TranscriptMessage], evidence_count: int) -> ExtractedFacts:
        user_texts = _user_texts(transcript)
        text = "\n".join(user_texts)
        user_address, counterparty_address = detect_addresses(text)

        extracted = ExtractedFacts(
            dispute_type=detect_dispute_type(text),
            parties=Parties(
                user=detect_user_name(text),
                counterparty=detect_counterparty(text),
                relationship=detect_relationship(text),
            ),
            incident_date=detect_incident_date(text),
            financial_amount=detect_financial_amount(text),
            chosen_forum=detect_chosen_forum(user_texts),
            facts=detect_facts(user_texts),
            evidence_provided=detect_evidence(text),
            contradictions=detect_contradictions(user_texts),
            user_address=user_address,
            counterparty_address=counterparty_address,
        )
        return rescore(extracted, evidence_count)

    async def _extract_llm(self, transcript: Sequence[TranscriptMessage], evidence_count: int) -> ExtractedFacts:
        history = "\n\n".join(f"{m.role}: {m.content}" for m in transcript)
        prompt = EXTRACTION_PROMPT.format(history=history, evidence_count=evidence_count)

        content = await asyncio.wait_for(
            self.backend.generate(prompt, "You are a fact extraction engine. Return only valid JSON."),
            timeout=self.timeout,
        )
        data, ok, error = parse_json_robust(content)
        if not ok:
            logger.warning(f"[Extractor] Could not parse LLM output ({error}): {safe_log_content(content)}")
            return self.extract_rule_based(transcript, evidence_count)

        return rescore(self._sanitize(data), evidence_count)

    @staticmethod
    def _sanitize(data: Dict[str, Any]) -> ExtractedFacts:
        """Coerce loosely-typed LLM JSON into ExtractedFacts"""
        def text_or_none(value: Any) -> Optional[str]:
            if value is None:
                return None
            value = str(value).strip()
            return value if value and value.lower() != "null" else None

        def str_list(value: Any) -> List[str]:
            if not isinstance(value, list):
                return []
            return [str(item).strip() for item in value if str(item).strip()]

        parties = data.get("parties") if isinstance(data.get("parties"), dict) else {}

        amount = data.get("financialAmount")
        try:
            amount = float(amount) if amount is not None else None
        except (TypeError, ValueError):
            amount = None
        if amount is not None and amount <= 0:
            amount = None

        forum = text_or_none(data.get("chosenForum"))
        if forum not in KNOWN_FORUMS:
            forum = None

        return ExtractedFacts(
            dispute_type=text_or_none(data.get("disputeType")),
            parties=Parties(
                user=text_or_none(parties.get("user")),
                counterparty=text_or_none(parties.get("counterparty")),
                relationship=text_or_none(parties.get("relationship")),
            ),
            incident_date=text_or_none(data.get("incidentDate")),
            financial_amount=amount,
            chosen_forum=forum,
            facts=str_list(data.get("facts")),
            evidence_provided=str_list(data.get("evidenceProvided")),
            contradictions=str_list(data.get("contradictions")),
            user_address=text_or_none(data.get("userAddress")),
            counterparty_address=text_or_none(data.get("counterpartyAddress")),
        )

    def _lock_for(self, digest: str) -> asyncio.Lock:
        return self._locks.setdefault(digest, asyncio.Lock())

    async def extract(self, transcript: Sequence[TranscriptMessage], evidence_count: int = 0) -> ExtractedFacts:
        """Extract facts; never raises"""
        try:
            if not (self.use_llm and self.backend is not None):
                extracted = self.extract_rule_based(transcript, evidence_count)
            else:
                digest = transcript_digest(transcript, evidence_count)
                async with self._lock_for(digest):
                    cached = self._cache.get(digest)
                    if cached is not None:
                        self._cache.move_to_end(digest)
                        return cached
                    extracted = await self._extract_llm(transcript, evidence_count)
                    self._cache[digest] = extracted
                    if len(self._cache) > self.CACHE_SIZE:
                        self._cache.popitem(last=False)
                self._locks.pop(digest, None)

            logger.info(
                f"[Extractor] type={extracted.dispute_type} readiness={extracted.readiness_score} "
                f"state={extracted.recommended_state.value}"
            )
            return extracted

        except Exception as e:
            logger.error(f"[Extractor] Extraction failed, returning safe default: {e}")
            return safe_default()


_extractor: Optional[FactExtractor] = None


def get_fact_extractor() -> FactExtractor:
    global _extractor
    if _extractor is None:
        _extractor = FactExtractor(backend=get_generation_backend())
    return _extractor


# =============================================================================
# DOWNSTREAM HELPERS
# =============================================================================

def case_details(extracted: ExtractedFacts) -> Dict[str, Any]:
    """Structured fields locked alongside the key facts on confirmation"""
    return {
        "claimantName": extracted.parties.user,
        "claimantAddress": extracted.user_address,
        "counterpartyName": extracted.parties.counterparty,
        "counterpartyAddress": extracted.counterparty_address,
        "amount": extracted.financial_amount,
        "incidentDate": extracted.incident_date,
        "relationship": extracted.parties.relationship,
        "chosenForum": extracted.chosen_forum,
    }


def enrich_facts_for_generation(extracted: ExtractedFacts) -> Dict[str, Any]:
    """
    Convert extracted facts into a strategy-shaped dict for generation.

    Party and money details are turned into prefixed key facts ("The other
    party is: ...") ahead of the conversation facts; the desired outcome is
    "Recovery of £X from Y" when an amount is known.
    """
    key_facts: List[str] = []
    parties = extracted.parties

    if parties.counterparty:
        key_facts.append(f"The other party is: {parties.counterparty}")
    if parties.user:
        key_facts.append(f"The claimant is: {parties.user}")
    if parties.relationship:
        key_facts.append(f"Legal relationship: {parties.relationship}")
    if extracted.counterparty_address:
        key_facts.append(f"Other party address: {extracted.counterparty_address}")
    if extracted.user_address:
        key_facts.append(f"Claimant address: {extracted.user_address}")
    if extracted.financial_amount:
        key_facts.append(f"Amount claimed: £{extracted.financial_amount:,.2f}")
    if extracted.incident_date:
        key_facts.append(f"Date of incident: {extracted.incident_date}")
    if extracted.chosen_forum:
        key_facts.append(f"Chosen legal route: {extracted.chosen_forum}")
    key_facts.extend(extracted.facts)

    desired_outcome = ""
    if extracted.financial_amount:
        desired_outcome = f"Recovery of £{extracted.financial_amount:,.2f}"
        if parties.counterparty:
            desired_outcome += f" from {parties.counterparty}"

    enriched: Dict[str, Any] = {
        "dispute_type": extracted.dispute_type,
        "key_facts": key_facts,
        "evidence_mentioned": list(extracted.evidence_provided),
        "desired_outcome": desired_outcome or None,
    }
    enriched.update(case_details(extracted))
    return enriched


def generate_summary_text(extracted: ExtractedFacts) -> str:
    """Markdown case summary shown to the user for confirmation"""
    parts: List[str] = ["# Case Summary\n"]
    parties = extracted.parties

    if extracted.dispute_type:
        label = extracted.dispute_type.replace("_", " ")
        parts.append(f"**Type:** {label[:1].upper() + label[1:]} dispute\n")

    if parties.user or parties.counterparty:
        parts.append("## Parties\n")
        if parties.user:
            line = f"- **You:** {parties.user}"
            if extracted.user_address:
                line += f" ({extracted.user_address})"
            parts.append(line + "\n")
        if parties.counterparty:
            line = f"- **Other Party:** {parties.counterparty}"
            if parties.relationship:
                line += f" (your {parties.relationship})"
            if extracted.counterparty_address:
                line += f" - {extracted.counterparty_address}"
            parts.append(line + "\n")

    if extracted.facts:
        parts.append("\n## What Happened\n")
        parts.extend(f"- {fact}\n" for fact in extracted.facts)

    details = []
    if extracted.financial_amount:
        details.append(f"**Amount Claimed:** £{extracted.financial_amount:,.2f}")
    if extracted.incident_date:
        details.append(f"**Date:** {extracted.incident_date}")
    if details:
        parts.append("\n## Details\n")
        parts.append(" | ".join(details) + "\n")

    if extracted.evidence_provided:
        parts.append("\n## Evidence\n")
        parts.extend(f"- {item}\n" for item in extracted.evidence_provided)

    if extracted.contradictions:
        parts.append("\n## Inconsistencies Detected\n")
        parts.extend(f"- {item}\n" for item in extracted.contradictions)

    return "".join(parts)
