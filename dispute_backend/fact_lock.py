"""
Fact Lock
=========

Once the user confirms their case summary, the confirmed facts are LOCKED.
Nothing downstream may modify, embellish, or contradict them.

Provides:
- lock_facts: turn a confirmed strategy into immutable LockedFact records
- validate_against_locked_facts: placeholder sweep + dispute-type consistency
- extract_concessions / detect_overclaiming: never claim what the user waived
- LockedFactStore: append-only, per-case fact log with serialized merges
"""

import re
import json
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from .schemas import CaseStrategyInput, FactSource, LockedFact

logger = logging.getLogger(__name__)


# Template-style tokens: known prefixes in any case ("[date of letter]", "[insert name]"),
# or anything capitalised ("[CLAIMANT NAME]", "[Respondent]", "[X]"). "[1]" and "[sic]" are not tokens.
PLACEHOLDER_PATTERN = re.compile(
    r"\[(?:(?i:AMOUNT|TOTAL|DATE|NAME|ADDRESS|YOUR|INSERT|ENTER)[^\]]*|[A-Z][A-Za-z0-9 _'/&.,-]*)\]"
)


CONCESSION_KEYWORDS = [
    "don't want payment for",
    "not claiming",
    "not seeking",
    "waiving",
    "left early",
    "only worked",
    "approximately",
    "about",
    "roughly",
]

# Longest first so "don't want payment for" wins over "don't want"
WAIVER_PHRASES = [
    "don't want payment for",
    "not claiming for",
    "not claiming",
    "not seeking",
    "don't want",
]

# Dispute types whose documents must name the dispute domain
DISPUTE_TYPE_MARKERS: Dict[str, Tuple[str, ...]] = {
    "employment": ("employment",),
    "benefit": ("benefit", "universal credit", "pip", "esa"),
    "immigration": ("immigration", "visa", "home office"),
    "landlord": ("landlord", "tenancy", "lease"),
    "housing": ("housing", "landlord", "tenancy", "lease"),
}

_NUMBER = r"(\d+(?:\.\d+)?)"
_HOURS = r"(?:hours?|hrs?)\b"

# "11 of 12 agreed hours", "11 hours out of 12 hours"
PARTIAL_HOURS_PATTERN = re.compile(
    _NUMBER + r"\s+(?:hours?\s+)?(?:out\s+)?of\s+(?:the\s+|my\s+)?" + _NUMBER
    + r"\s+(?:agreed\s+|scheduled\s+|contracted\s+|booked\s+)?" + _HOURS,
    re.IGNORECASE,
)
# "worked 11 hours" (no other figure in between)
WORKED_HOURS_PATTERN = re.compile(r"\bworked\D{0,40}?" + _NUMBER + r"\s*" + _HOURS, re.IGNORECASE)
# "12 hours at £13.50", "12 hours x £13.50"
RATE_HOURS_PATTERN = re.compile(_NUMBER + r"\s*" + _HOURS + r"\s*(?:at|x|×|@)\s*£", re.IGNORECASE)
ANY_HOURS_PATTERN = re.compile(r"(?<![\d.])" + _NUMBER + r"\s*" + _HOURS, re.IGNORECASE)


@dataclass
class FactLockResult:
    """Outcome of checking content against locked facts"""
    locked: bool
    violations: List[str] = field(default_factory=list)
    locked_facts: List[LockedFact] = field(default_factory=list)


# =============================================================================
# LOCKING
# =============================================================================

def lock_facts(
    strategy: CaseStrategyInput,
    details: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
    source: FactSource = FactSource.USER_CONFIRMED,
) -> List[LockedFact]:
    """
    Extract and lock facts from a confirmed strategy.

    Key facts become keyFact_0..N, followed by disputeType, desiredOutcome
    and any structured case details (claimant name, amount, ...).
    Empty values are skipped: absent data stays absent.
    """
    locked_at = now or datetime.now(timezone.utc)
    facts: List[LockedFact] = []

    for index, fact in enumerate(strategy.key_facts):
        facts.append(LockedFact(field=f"keyFact_{index}", value=fact, source=source, locked_at=locked_at))

    if strategy.dispute_type:
        facts.append(LockedFact(field="disputeType", value=strategy.dispute_type, source=source, locked_at=locked_at))

    if strategy.desired_outcome:
        facts.append(LockedFact(field="desiredOutcome", value=strategy.desired_outcome, source=source, locked_at=locked_at))

    for name, value in (details or {}).items():
        if value is None or value == "":
            continue
        facts.append(LockedFact(field=name, value=value, source=source, locked_at=locked_at))

    return facts


def locked_value(locked_facts: Iterable[LockedFact], field_name: str) -> Any:
    for fact in locked_facts:
        if fact.field == field_name:
            return fact.value
    return None


def locked_key_facts(locked_facts: Iterable[LockedFact]) -> List[str]:
    """Key facts in their original confirmation order"""
    indexed = []
    for fact in locked_facts:
        if fact.field.startswith("keyFact_"):
            try:
                indexed.append((int(fact.field.split("_", 1)[1]), str(fact.value)))
            except ValueError:
                continue
    return [value for _, value in sorted(indexed)]


# =============================================================================
# VALIDATION
# =============================================================================

def find_placeholders(content: str) -> List[str]:
    return [match.group(0) for match in PLACEHOLDER_PATTERN.finditer(content or "")]


def _normalize(text: str) -> str:
    return " ".join((text or "").split()).lower()


def validate_against_locked_facts(
    content: str,
    locked_facts: List[LockedFact],
    require_verbatim: bool = False,
) -> FactLockResult:
    """
    Validate that generated content respects locked facts.

    Every violation returned here is CRITICAL. With require_verbatim, each
    locked key fact must appear verbatim (whitespace/case-insensitive).
    """
    violations: List[str] = []

    for placeholder in find_placeholders(content):
        violations.append(f'CRITICAL: Unfilled placeholder "{placeholder}" - document not ready for filing')

    lowered = (content or "").lower()
    normalized = _normalize(content)

    for fact in locked_facts:
        if fact.field == "disputeType" and fact.value:
            dispute = str(fact.value).lower()
            for key, markers in DISPUTE_TYPE_MARKERS.items():
                if key in dispute and not any(marker in lowered for marker in markers):
                    violations.append(f'CRITICAL: Dispute type "{fact.value}" not reflected in document')
                    break
        elif require_verbatim and fact.field.startswith("keyFact_"):
            if _normalize(str(fact.value)) not in normalized:
                violations.append(f'CRITICAL: Locked fact {fact.field} not reproduced verbatim: "{fact.value}"')

    return FactLockResult(locked=not violations, violations=violations, locked_facts=list(locked_facts))


def extract_concessions(key_facts: List[str]) -> List[str]:
    """Facts where the user waived, limited or approximated something"""
    concessions = []
    for fact in key_facts:
        lowered = fact.lower()
        if any(keyword in lowered for keyword in CONCESSION_KEYWORDS):
            concessions.append(fact)
    return concessions


def _fmt_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def stated_hours(user_facts: Iterable[str]) -> Optional[float]:
    """Hours the user says they actually worked, if stated"""
    text = " ".join(user_facts)
    match = PARTIAL_HOURS_PATTERN.search(text) or WORKED_HOURS_PATTERN.search(text)
    return float(match.group(1)) if match else None


def _stated_hour_figures(user_facts: Iterable[str]) -> Set[float]:
    text = " ".join(user_facts)
    figures = {float(m.group(1)) for m in ANY_HOURS_PATTERN.finditer(text)}
    for match in PARTIAL_HOURS_PATTERN.finditer(text):
        figures.add(float(match.group(1)))
        figures.add(float(match.group(2)))
    return figures


def _claimed_hours(content: str, user_figures: Set[float]) -> List[float]:
    claims: List[float] = []
    spans: List[Tuple[int, int]] = []

    for pattern in (PARTIAL_HOURS_PATTERN, WORKED_HOURS_PATTERN, RATE_HOURS_PATTERN):
        for match in pattern.finditer(content):
            claims.append(float(match.group(1)))
            spans.append(match.span())

    # Bare "N hours" only counts when the user never mentioned that figure
    for match in ANY_HOURS_PATTERN.finditer(content):
        if any(start <= match.start() < end for start, end in spans):
            continue
        value = float(match.group(1))
        if value not in user_figures:
            claims.append(value)

    return claims


def _waived_item(concession: str) -> Optional[str]:
    lowered = concession.lower()
    for phrase in WAIVER_PHRASES:
        index = lowered.find(phrase)
        if index >= 0:
            item = lowered[index + len(phrase):].strip(" .,;:!")
            return item or None
    return None


def _claims_waived_item(content: str, item: str) -> bool:
    text = content.lower()
    for phrase in WAIVER_PHRASES:
        text = text.replace(f"{phrase} {item}", "")
    pattern = r"\b(?:claim|claims|claiming|seek|seeks|seeking|recover|payment for)\s+" + re.escape(item)
    return re.search(pattern, text) is not None


def detect_overclaiming(content: str, user_facts: List[str], concessions: List[str]) -> List[str]:
    """
    Check if generated content claims more than the user's stated facts.

    If the user said "worked 11 hours", the document cannot claim 12.
    Waived items ("not claiming the final hour") must not reappear as claims.
    """
    warnings: List[str] = []
    content = content or ""

    # The user's own words, quoted verbatim, are not claims
    for fact in sorted(user_facts, key=len, reverse=True):
        if fact:
            content = content.replace(fact, " ")

    user_hours = stated_hours(user_facts)
    if user_hours is not None:
        reported = set()
        for claimed in _claimed_hours(content, _stated_hour_figures(user_facts)):
            if claimed > user_hours and claimed not in reported:
                reported.add(claimed)
                warnings.append(
                    f"OVERCLAIMING: Document claims {_fmt_number(claimed)} hours "
                    f"but user stated only {_fmt_number(user_hours)} hours worked"
                )

    for concession in concessions:
        item = _waived_item(concession)
        if item and _claims_waived_item(content, item):
            warnings.append(f'VIOLATION: Document claims something user explicitly waived: "{concession}"')

    return warnings


def generate_fact_lock_instructions(locked_facts: List[LockedFact]) -> str:
    """System instructions telling the generation backend to respect locked facts"""
    instructions = [
        "CRITICAL: LOCKED FACTS - DO NOT MODIFY OR CONTRADICT",
        "",
        "The following facts have been confirmed by the user and are IMMUTABLE:",
        "",
    ]

    for index, fact in enumerate(locked_facts, start=1):
        instructions.append(f"{index}. {fact.field}: {json.dumps(fact.value, default=str)}")

    instructions.extend([
        "",
        "YOU MUST:",
        "- Use these facts EXACTLY as stated",
        "- Do NOT add details not provided",
        "- Do NOT change times, amounts, or durations",
        "- Do NOT claim amounts the user has waived",
        "- If a fact says 'approximately 11 hours', use EXACTLY that",
        "- If the user concedes something, do NOT claim it",
        "- Never output bracketed placeholders such as [AMOUNT] or [DATE]",
        "",
        "ANY VIOLATION WILL CAUSE DOCUMENT REJECTION.",
    ])

    return "\n".join(instructions)


# =============================================================================
# STORE
# =============================================================================

class CaseLocks:
    """
    One asyncio.Lock per case id.

    An entry exists only while someone holds or waits on it, so a
    long-running service does not keep a lock for every case it has seen.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def __contains__(self, case_id: str) -> bool:
        return case_id in self._locks

    @asynccontextmanager
    async def hold(self, case_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(case_id, asyncio.Lock())
        self._users[case_id] = self._users.get(case_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[case_id] -= 1
            if not self._users[case_id]:
                del self._users[case_id]
                del self._locks[case_id]


class LockedFactStore:
    """
    Append-only locked-fact log keyed by (case_id, field).

    merge() never overwrites an existing field, it only adds new ones.
    Merges on the same case are serialized with a per-case lock (CaseLocks);
    different cases never share state. Subclasses swap the storage by
    overriding _read/_append.
    """

    def __init__(self):
        self._facts: Dict[str, Dict[str, LockedFact]] = {}
        self._locks = CaseLocks()

    def _read(self, case_id: str) -> List[LockedFact]:
        return list(self._facts.get(case_id, {}).values())

    def _append(self, case_id: str, facts: List[LockedFact]) -> None:
        bucket = self._facts.setdefault(case_id, {})
        for fact in facts:
            bucket[fact.field] = fact

    async def merge(self, case_id: str, facts: List[LockedFact]) -> List[LockedFact]:
        """Add facts whose field is not locked yet; returns what was added"""
        async with self._locks.hold(case_id):
            existing = {fact.field for fact in self._read(case_id)}
            added: List[LockedFact] = []
            for fact in facts:
                if fact.field in existing:
                    logger.debug(f"[FactLock] {case_id}: {fact.field} already locked, keeping original")
                    continue
                existing.add(fact.field)
                added.append(fact)
            if added:
                self._append(case_id, added)
                logger.info(f"[FactLock] {case_id}: locked {len(added)} new fact(s)")
            return added

    def get(self, case_id: str) -> List[LockedFact]:
        return self._read(case_id)

    def has_facts(self, case_id: str) -> bool:
        return bool(self._read(case_id))
