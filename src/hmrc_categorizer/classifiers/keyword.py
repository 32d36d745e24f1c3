from collections.abc import Collection, Mapping
from dataclasses import dataclass, field

from hmrc_categorizer.domain.rules import (
    GENERIC_PAYMENT_TERMS,
    KEYWORD_MAPPINGS,
    REFUND_TERMS,
)

MATCH_THRESHOLD = 0.1
MAX_KEYWORD_CONFIDENCE = 0.95
LONG_KEYWORD_LENGTH = 8


@dataclass(frozen=True)
class KeywordScore:
    category: str
    confidence: float
    reason: str
    matched_keywords: tuple[str, ...] = field(default=())
    normalized_score: float = 0.0


def keyword_weight(keyword: str) -> int:
    return 2 if len(keyword) > LONG_KEYWORD_LENGTH else 1


def fallback_categorization(cleaned: str) -> KeywordScore:
    if any(term in cleaned for term in GENERIC_PAYMENT_TERMS):
        return KeywordScore(category="other", confidence=0.3, reason="generic_payment")
    if any(term in cleaned for term in REFUND_TERMS):
        return KeywordScore(category="other", confidence=0.4, reason="refund_or_credit")
    return KeywordScore(category="other", confidence=0.2, reason="no_match")


class KeywordScorer:
    """
    Weighted substring scoring of cleaned descriptions against the category
    keyword map.

    Categories are visited in mapping order and only a strictly greater score
    replaces the current best, so ties resolve to the earliest category.
    """

    def __init__(self, mappings: Mapping[str, tuple[str, ...]] = KEYWORD_MAPPINGS):
        self.mappings = mappings
        self.calls = 0

    def rank_categories(
        self,
        cleaned: str,
        candidates: Collection[str] | None = None,
    ) -> list[KeywordScore]:
        ranked: list[KeywordScore] = []
        for category, keywords in self.mappings.items():
            if candidates is not None and category not in candidates:
                continue
            matched = tuple(keyword for keyword in keywords if keyword in cleaned)
            if not matched:
                continue
            score = sum(keyword_weight(keyword) for keyword in matched)
            normalized = score / len(keywords)
            ranked.append(KeywordScore(
                category=category,
                confidence=min(normalized, MAX_KEYWORD_CONFIDENCE),
                reason="keyword_match",
                matched_keywords=matched,
                normalized_score=normalized,
            ))
        # sorted() is stable, so equal scores keep mapping order
        return sorted(ranked, key=lambda entry: entry.normalized_score, reverse=True)

    def score(self, cleaned: str, candidates: Collection[str] | None = None) -> KeywordScore:
        self.calls += 1
        ranked = self.rank_categories(cleaned, candidates)
        if ranked and ranked[0].normalized_score >= MATCH_THRESHOLD:
            return ranked[0]
        return fallback_categorization(cleaned)
