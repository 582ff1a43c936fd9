"""
Complexity Scoring
==================

Deterministic, weighted complexity score for a confirmed case strategy.

    total = dispute type weight + fact tier + evidence tier + outcome tier
    total >= threshold  ->  COMPLEX, otherwise SIMPLE

Weights and keyword tables are data (ComplexityConfig, OUTCOME_KEYWORDS) so
they can be tested exhaustively and re-tuned without touching control flow.
The breakdown carries ALGORITHM_VERSION so stored plans stay explainable.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import get_settings
from .schemas import CaseComplexity, CaseStrategyInput, ComplexityBreakdown, FactorScore

ALGORITHM_VERSION = "1.0"


class OutcomeComplexity(str, Enum):
    SIMPLE = "SIMPLE"
    MEDIUM = "MEDIUM"
    COMPLEX = "COMPLEX"


# Checked COMPLEX -> MEDIUM -> SIMPLE; first tier with a match wins
OUTCOME_KEYWORDS: Dict[OutcomeComplexity, List[str]] = {
    OutcomeComplexity.COMPLEX: [
        "tribunal", "court", "lawsuit", "legal action", "litigation", "claim", "sue",
        "prosecution", "appeal", "hearing", "adjudication", "arbitration", "mediation",
        "damages", "injunction", "enforcement", "penalty", "settlement", "judgment",
    ],
    OutcomeComplexity.MEDIUM: [
        "compensation", "partial refund", "reduce", "reduction", "discount", "credit",
        "voucher", "review", "reconsider", "reassess", "investigate", "complaint", "escalate",
    ],
    OutcomeComplexity.SIMPLE: [
        "refund", "cancel", "cancellation", "dismiss", "dismissal", "withdraw", "waive",
        "void", "remove", "delete", "reverse", "apology", "correction", "fix", "repair",
    ],
}

OUTCOME_CHECK_ORDER = [OutcomeComplexity.COMPLEX, OutcomeComplexity.MEDIUM, OutcomeComplexity.SIMPLE]

# Free-text dispute types mapped onto weight table keys
DISPUTE_TYPE_ALIASES = {
    "housing": "landlord",
    "tenancy": "landlord",
    "parking": "parking_ticket",
    "traffic": "speeding_ticket",
    "speeding": "speeding_ticket",
    "benefit": "benefits",
}


@dataclass(frozen=True)
class ComplexityConfig:
    """
    Scoring weights.

    Tiers are (upper_bound, score) pairs checked in order; counts above the
    last bound get `*_high`.
    """
    threshold: int = 10
    dispute_type_weights: Dict[str, int] = field(default_factory=lambda: {
        "parking_ticket": 1,
        "speeding_ticket": 2,
        "consumer": 3,
        "flight_delay": 3,
        "landlord": 5,
        "employment": 6,
        "benefits": 7,
        "immigration": 8,
    })
    fallback_weight: int = 4
    fact_tiers: Tuple[Tuple[int, int], ...] = ((0, 0), (3, 1), (6, 2))
    fact_high: int = 4
    evidence_tiers: Tuple[Tuple[int, int], ...] = ((0, 0), (2, 1), (4, 2))
    evidence_high: int = 3
    outcome_weights: Dict[OutcomeComplexity, int] = field(default_factory=lambda: {
        OutcomeComplexity.SIMPLE: 1,
        OutcomeComplexity.MEDIUM: 2,
        OutcomeComplexity.COMPLEX: 3,
    })


DEFAULT_COMPLEXITY_CONFIG = ComplexityConfig()


def default_config() -> ComplexityConfig:
    """Default weights with the threshold taken from settings"""
    threshold = get_settings().complexity_threshold
    if threshold == DEFAULT_COMPLEXITY_CONFIG.threshold:
        return DEFAULT_COMPLEXITY_CONFIG
    return ComplexityConfig(threshold=threshold)


# =============================================================================
# OUTCOME CLASSIFICATION
# =============================================================================

def _keyword_pattern(keyword: str) -> re.Pattern:
    # Whole words only, allowing simple plural/tense endings ("claims", "appealed")
    return re.compile(r"\b" + re.escape(keyword) + r"(?:s|es|d|ed|ing)?\b")


_OUTCOME_PATTERNS: Dict[OutcomeComplexity, List[Tuple[str, re.Pattern]]] = {
    tier: [(keyword, _keyword_pattern(keyword)) for keyword in keywords]
    for tier, keywords in OUTCOME_KEYWORDS.items()
}


def _matched_keywords(outcome: str, tier: OutcomeComplexity) -> List[str]:
    text = outcome.lower()
    return [keyword for keyword, pattern in _OUTCOME_PATTERNS[tier] if pattern.search(text)]


def classify_outcome(outcome: Optional[str]) -> OutcomeComplexity:
    if not outcome or not outcome.strip():
        return OutcomeComplexity.SIMPLE
    for tier in OUTCOME_CHECK_ORDER:
        if _matched_keywords(outcome, tier):
            return tier
    return OutcomeComplexity.SIMPLE


def explain_outcome_classification(outcome: Optional[str], classification: OutcomeComplexity) -> str:
    if not outcome or not outcome.strip():
        return "No desired outcome specified, defaulting to simple classification"
    matched = _matched_keywords(outcome, classification)
    if matched:
        return f"Classified as {classification.value.lower()} based on keywords: {', '.join(matched[:3])}"
    return f"Classified as {classification.value.lower()} by default (no specific keywords found)"


# =============================================================================
# FACTOR SCORES
# =============================================================================

def normalize_dispute_type(dispute_type: Optional[str]) -> Optional[str]:
    if not dispute_type:
        return None
    key = dispute_type.strip().lower().replace(" ", "_").replace("-", "_")
    return DISPUTE_TYPE_ALIASES.get(key, key)


def score_dispute_type(dispute_type: Optional[str], config: ComplexityConfig) -> FactorScore:
    if not dispute_type:
        return FactorScore(score=0, reason="No dispute type specified")

    key = normalize_dispute_type(dispute_type)
    weight = config.dispute_type_weights.get(key)
    if weight is None:
        return FactorScore(
            score=config.fallback_weight,
            reason=f"Unknown dispute type '{dispute_type}', using fallback weight of {config.fallback_weight}",
        )
    return FactorScore(score=weight, reason=f"Dispute type '{dispute_type}' has weight {weight}")


def _tier(count: int, tiers: Tuple[Tuple[int, int], ...], high: int) -> Tuple[int, int]:
    """(tier index, score) for a count"""
    for index, (upper, score) in enumerate(tiers):
        if count <= upper:
            return index, score
    return len(tiers), high


FACT_TIER_LABELS = ["No facts provided", "low complexity", "medium complexity", "high complexity"]
EVIDENCE_TIER_LABELS = ["No evidence mentioned", "basic", "good", "substantial"]


def score_fact_count(count: int, config: ComplexityConfig) -> FactorScore:
    index, score = _tier(count, config.fact_tiers, config.fact_high)
    if index == 0:
        return FactorScore(score=score, reason=f"No facts provided ({score} points)")
    return FactorScore(score=score, reason=f"{count} fact(s) - {FACT_TIER_LABELS[index]} ({score} point(s))")


def score_evidence_count(count: int, config: ComplexityConfig) -> FactorScore:
    index, score = _tier(count, config.evidence_tiers, config.evidence_high)
    if index == 0:
        return FactorScore(score=score, reason=f"No evidence mentioned ({score} points)")
    return FactorScore(
        score=score,
        reason=f"{count} evidence item(s) - {EVIDENCE_TIER_LABELS[index]} ({score} point(s))",
    )


def score_outcome(outcome: Optional[str], config: ComplexityConfig) -> FactorScore:
    classification = classify_outcome(outcome)
    score = config.outcome_weights[classification]
    explanation = explain_outcome_classification(outcome, classification)
    return FactorScore(score=score, reason=f"{explanation} ({score} point(s))")


# =============================================================================
# TOTAL
# =============================================================================

def calculate_complexity_score(
    strategy: CaseStrategyInput,
    config: Optional[ComplexityConfig] = None,
) -> ComplexityBreakdown:
    """Pure: the same strategy and config always give the same breakdown"""
    config = config or default_config()

    dispute = score_dispute_type(strategy.dispute_type, config)
    facts = score_fact_count(len(strategy.key_facts), config)
    evidence = score_evidence_count(len(strategy.evidence_mentioned), config)
    outcome = score_outcome(strategy.desired_outcome, config)

    total = dispute.score + facts.score + evidence.score + outcome.score
    classification = CaseComplexity.COMPLEX if total >= config.threshold else CaseComplexity.SIMPLE

    return ComplexityBreakdown(
        dispute_type=dispute,
        fact_count=facts,
        evidence_count=evidence,
        outcome=outcome,
        total_score=total,
        threshold=config.threshold,
        classification=classification,
        version=ALGORITHM_VERSION,
    )


def format_complexity_breakdown(breakdown: ComplexityBreakdown) -> str:
    lines = [
        "Complexity Calculation:",
        "",
        f"1. Dispute Type: {breakdown.dispute_type.score} points",
        f"   {breakdown.dispute_type.reason}",
        "",
        f"2. Key Facts: {breakdown.fact_count.score} points",
        f"   {breakdown.fact_count.reason}",
        "",
        f"3. Evidence: {breakdown.evidence_count.score} points",
        f"   {breakdown.evidence_count.reason}",
        "",
        f"4. Desired Outcome: {breakdown.outcome.score} points",
        f"   {breakdown.outcome.reason}",
        "",
        "---",
        f"Total Score: {breakdown.total_score}",
        f"Threshold: {breakdown.threshold}",
        f"Classification: {breakdown.classification.value}",
        f"Algorithm Version: {breakdown.version}",
    ]
    return "\n".join(lines)
