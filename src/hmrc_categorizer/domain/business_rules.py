from dataclasses import dataclass

from hmrc_categorizer.domain.rules import BUSINESS_TYPE_RULES, COMMON_CATEGORIES, BusinessTypeRule
from hmrc_categorizer.models import Transaction

NEUTRAL_CONFIDENCE = 0.5
KNOWN_TYPE_CONFIDENCE = 0.7
TYPICAL_CATEGORY_CONFIDENCE = 0.8
COST_OF_GOODS_NOTE_THRESHOLD = 1000


@dataclass(frozen=True)
class BusinessRuleOutcome:
    # None means every category is still a candidate
    allowed_categories: frozenset[str] | None
    confidence: float
    applied_rules: tuple[str, ...] = ()


def get_business_type_rule(business_type: str | None) -> BusinessTypeRule | None:
    if not business_type:
        return None
    return BUSINESS_TYPE_RULES.get(business_type)


def get_categories_for_business_type(business_type: str | None) -> frozenset[str] | None:
    rule = get_business_type_rule(business_type)
    if rule is None:
        return None
    return frozenset((*rule.primary_expenses, *COMMON_CATEGORIES, *rule.income_categories))


def apply_business_type_rules(
    transaction: Transaction,
    business_type: str | None,
) -> BusinessRuleOutcome:
    rule = get_business_type_rule(business_type)
    if rule is None:
        return BusinessRuleOutcome(allowed_categories=None, confidence=NEUTRAL_CONFIDENCE)

    confidence = KNOWN_TYPE_CONFIDENCE
    if transaction.category and transaction.category in rule.typical_expense_ratios:
        confidence = TYPICAL_CATEGORY_CONFIDENCE

    applied: list[str] = []
    if (
        rule.cost_of_goods_required
        and transaction.transaction_type == "expense"
        and transaction.amount > COST_OF_GOODS_NOTE_THRESHOLD
    ):
        applied.append("Cost of goods may be required for this business type")
    if rule.requires_cis_tracking and transaction.transaction_type == "expense":
        applied.append("CIS deductions must be tracked for subcontractor payments")

    return BusinessRuleOutcome(
        allowed_categories=get_categories_for_business_type(business_type),
        confidence=confidence,
        applied_rules=tuple(applied),
    )
