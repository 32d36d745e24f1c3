from collections.abc import Iterable
from decimal import Decimal

from hmrc_categorizer.domain.normalize import contains_term
from hmrc_categorizer.models import (
    Issue,
    ReasonablenessReport,
    ReasonablenessSummary,
    Transaction,
)

HIGH_EXPENSE_RATIO = 0.9
HIGH_COST_OF_GOODS_RATIO = 0.8
HIGH_TRAVEL_RATIO = 0.3

HIGH_VALUE_AMOUNT = Decimal("10000")
ROUND_AMOUNT_MINIMUM = Decimal("500")
UNCATEGORIZED_HIGH_VALUE_AMOUNT = Decimal("1000")

_CLIENT_TERMS = ("client", "clients", "customer", "customers")
_COMMUTE_TERMS = ("commute", "commuting", "home to office", "home to work")


def aggregate_by_category(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = {}
    for transaction in transactions:
        category = transaction.category or "uncategorized"
        totals[category] = totals.get(category, Decimal("0")) + transaction.amount
    return totals


def calculate_reasonableness_checks(
    expenses: Iterable[Transaction],
    income: Iterable[Transaction],
) -> ReasonablenessReport:
    """
    Period-level sanity checks on categorized expenses against income.

    Findings are advisory; they never change a categorization.
    """
    expenses = list(expenses)
    total_expenses = sum((t.amount for t in expenses), Decimal("0"))
    total_income = sum((t.amount for t in income), Decimal("0"))
    ratio = float(total_expenses / total_income) if total_income > 0 else 0.0

    issues: list[Issue] = []
    if ratio > HIGH_EXPENSE_RATIO:
        issues.append(Issue(
            type="high_expense_ratio",
            message="Expenses are unusually high compared to income",
            severity="high",
            ratio=round(ratio, 4),
        ))

    if total_income > 0:
        category_totals = aggregate_by_category(expenses)
        checks = (
            ("costOfGoodsBought", HIGH_COST_OF_GOODS_RATIO, "high_cost_of_goods",
             "Cost of goods seems high - verify calculations"),
            ("travelCosts", HIGH_TRAVEL_RATIO, "high_travel_costs",
             "Travel costs seem high - ensure business purpose"),
        )
        for category, limit, issue_type, message in checks:
            category_ratio = float(category_totals.get(category, Decimal("0")) / total_income)
            if category_ratio > limit:
                issues.append(Issue(
                    type=issue_type,
                    message=message,
                    severity="medium",
                    category=category,
                    ratio=round(category_ratio, 4),
                ))

    return ReasonablenessReport(
        expense_to_income_ratio=round(ratio, 4),
        issues=issues,
        summary=ReasonablenessSummary(
            total_expenses=total_expenses,
            total_income=total_income,
            net_profit=total_income - total_expenses,
        ),
    )


def flag_potential_issues(transaction: Transaction, category: str | None) -> list[Issue]:
    amount = transaction.amount
    issues: list[Issue] = []

    if amount > HIGH_VALUE_AMOUNT:
        issues.append(Issue(
            type="high_value",
            message="High-value transaction may require additional documentation",
            severity="medium",
        ))

    if amount % 100 == 0 and amount > ROUND_AMOUNT_MINIMUM:
        issues.append(Issue(
            type="round_amount",
            message="Round amount may indicate estimate - ensure accurate records",
            severity="low",
        ))

    if category == "other" and amount > UNCATEGORIZED_HIGH_VALUE_AMOUNT:
        issues.append(Issue(
            type="uncategorized_high_value",
            message="High-value uncategorized expense requires specific categorization",
            severity="high",
        ))

    return issues


def validate_against_hmrc_guidance(category: str | None, description: str) -> list[Issue]:
    issues: list[Issue] = []
    if category == "businessEntertainmentCosts" and any(
        contains_term(description, term) for term in _CLIENT_TERMS
    ):
        issues.append(Issue(
            type="client_entertainment",
            message="Client entertainment is generally not allowable",
            severity="high",
            category=category,
        ))
    if category == "travelCosts" and any(
        contains_term(description, term) for term in _COMMUTE_TERMS
    ):
        issues.append(Issue(
            type="home_to_work_travel",
            message="Home to work travel is not allowable",
            severity="high",
            category=category,
        ))
    return issues
