from dataclasses import dataclass
from decimal import Decimal

from hmrc_categorizer.domain.normalize import first_matching_term
from hmrc_categorizer.domain.rules import (
    CAPITAL_EQUIPMENT_TERMS,
    CAPITAL_INDICATORS,
    CAPITAL_THRESHOLD,
    NON_ALLOWABLE_GUIDANCE,
    NON_ALLOWABLE_KEYWORDS,
    PERSONAL_INDICATORS,
    POTENTIAL_PERSONAL_THRESHOLD,
)

NON_ALLOWABLE_CONFIDENCE = 0.9
POTENTIAL_PERSONAL_CONFIDENCE = 0.6
CAPITAL_KEYWORD_CONFIDENCE = 0.8
CAPITAL_AMOUNT_CONFIDENCE = 0.6

DEFAULT_NON_ALLOWABLE_GUIDANCE = "This expense may not be allowable. Please check HMRC guidance."
CAPITAL_EXPLANATION = "This appears to be capital expenditure rather than a revenue expense"
CAPITAL_RECOMMENDATION = "Consider capital allowances instead"


@dataclass(frozen=True)
class NonAllowableMatch:
    kind: str
    keyword: str | None
    confidence: float
    reason_text: str
    guidance: str
    requires_manual_review: bool = False


@dataclass(frozen=True)
class CapitalMatch:
    trigger: str
    keyword: str
    confidence: float
    explanation: str = CAPITAL_EXPLANATION
    recommendation: str = CAPITAL_RECOMMENDATION


def get_non_allowable_guidance(kind: str) -> str:
    return NON_ALLOWABLE_GUIDANCE.get(kind, DEFAULT_NON_ALLOWABLE_GUIDANCE)


def is_potential_personal_expense(cleaned: str, amount: Decimal) -> str | None:
    """Return the personal-like term when a large amount looks personal."""
    if amount <= POTENTIAL_PERSONAL_THRESHOLD:
        return None
    return first_matching_term(cleaned, PERSONAL_INDICATORS)


def detect_non_allowable_expenses(cleaned: str, amount: Decimal) -> NonAllowableMatch | None:
    for kind, keywords in NON_ALLOWABLE_KEYWORDS.items():
        keyword = first_matching_term(cleaned, keywords)
        if keyword:
            return NonAllowableMatch(
                kind=kind,
                keyword=keyword,
                confidence=NON_ALLOWABLE_CONFIDENCE,
                reason_text=f"{keyword} expenses are not allowable for tax purposes",
                guidance=get_non_allowable_guidance(kind),
            )

    term = is_potential_personal_expense(cleaned, amount)
    if term:
        return NonAllowableMatch(
            kind="potential_personal",
            keyword=term,
            confidence=POTENTIAL_PERSONAL_CONFIDENCE,
            reason_text="High-value item that may be personal use",
            guidance=get_non_allowable_guidance("potential_personal"),
            requires_manual_review=True,
        )
    return None


def detect_capital_vs_revenue(cleaned: str, amount: Decimal) -> CapitalMatch | None:
    keyword = first_matching_term(cleaned, CAPITAL_INDICATORS)
    if keyword:
        return CapitalMatch(trigger="keyword", keyword=keyword, confidence=CAPITAL_KEYWORD_CONFIDENCE)

    if amount > CAPITAL_THRESHOLD:
        term = first_matching_term(cleaned, CAPITAL_EQUIPMENT_TERMS)
        if term:
            return CapitalMatch(trigger="amount", keyword=term, confidence=CAPITAL_AMOUNT_CONFIDENCE)
    return None
