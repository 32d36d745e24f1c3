from decimal import Decimal

from hmrc_categorizer.domain.rules import VAGUE_TERMS
from hmrc_categorizer.models import Transaction

MAX_CONFIDENCE = 0.95
MIN_CONFIDENCE = 0.1
SHORT_DESCRIPTION_LENGTH = 10
DETAILED_DESCRIPTION_LENGTH = 50


def has_exact_amount_pattern(amount: Decimal) -> bool:
    return amount % 10 == 0 or amount % 25 == 0


def is_vague_description(description: str) -> bool:
    text = description.lower()
    return any(term in text for term in VAGUE_TERMS) or len(description) < SHORT_DESCRIPTION_LENGTH


def calculate_category_confidence(
    transaction: Transaction,
    keyword_confidence: float,
    business_rule_confidence: float,
) -> float:
    """
    Combine keyword and business-rule confidence, then adjust for amount and
    description quality. The adjustments apply in a fixed order because the
    caps and floor make them order-sensitive.
    """
    confidence = max(keyword_confidence, business_rule_confidence)

    if has_exact_amount_pattern(transaction.amount):
        confidence = min(confidence + 0.1, MAX_CONFIDENCE)

    if is_vague_description(transaction.description):
        confidence = max(confidence - 0.2, MIN_CONFIDENCE)

    if len(transaction.description) > DETAILED_DESCRIPTION_LENGTH:
        confidence = min(confidence + 0.05, MAX_CONFIDENCE)

    return round(confidence, 2)
