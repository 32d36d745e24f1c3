import datetime as dt
from collections.abc import Iterable, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from hmrc_categorizer.domain.catalog import HMRC_CATEGORIES, section_for
from hmrc_categorizer.domain.timefmt import format_duration
from hmrc_categorizer.models import (
    BatchOutcome,
    CategorizationResult,
    ConfidenceAnalysis,
    IncomeSource,
    Transaction,
)

LOW_CONFIDENCE = 0.7
HIGH_BAND = 0.8
MEDIUM_BAND = 0.6
_SKIPPED_CATEGORIES = frozenset({"capital_expenditure"})


def aggregate_confidence_scores(results: Iterable[CategorizationResult]) -> ConfidenceAnalysis:
    scores = [result.confidence for result in results]
    if not scores:
        return ConfidenceAnalysis(distribution={"high": 0, "medium": 0, "low": 0})

    distribution = {"high": 0, "medium": 0, "low": 0}
    for score in scores:
        if score >= HIGH_BAND:
            distribution["high"] += 1
        elif score >= MEDIUM_BAND:
            distribution["medium"] += 1
        else:
            distribution["low"] += 1

    return ConfidenceAnalysis(
        average=round(sum(scores) / len(scores), 2),
        low_confidence_count=sum(1 for score in scores if score < LOW_CONFIDENCE),
        distribution=distribution,
        total=len(scores),
    )


def _whole_pounds(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def map_to_quarterly_submission_fields(
    pairs: Iterable[tuple[Transaction, str | None]],
    income_source: IncomeSource = "selfEmployment",
) -> dict[str, dict[str, int]]:
    """
    Aggregate categorized transactions into the income/expenses fields of a
    quarterly update, in whole pounds.

    Personal rows (no category) and capital expenditure are left out; codes
    the namespace does not know are reported under ``other``.
    """
    namespace = HMRC_CATEGORIES[income_source]
    fields: dict[str, dict[str, int]] = {"income": {}, "expenses": {}}
    for transaction, category in pairs:
        if not category or category in _SKIPPED_CATEGORIES:
            continue
        section = section_for(transaction.transaction_type)
        code = category if category in namespace[section] else "other"
        bucket = fields[section]
        bucket[code] = bucket.get(code, 0) + _whole_pounds(transaction.amount)

    return {
        section: {code: total for code, total in values.items() if total != 0}
        for section, values in fields.items()
    }


def category_summary(
    transactions: Sequence[Transaction],
    results: Sequence[CategorizationResult],
) -> dict[str, dict[str, Any]]:
    by_id = {transaction.id: transaction for transaction in transactions}
    summary: dict[str, dict[str, Any]] = {}
    for result in results:
        key = result.category or "personal"
        entry = summary.setdefault(key, {"count": 0, "totalAmount": Decimal("0"), "confidences": []})
        entry["count"] += 1
        entry["confidences"].append(result.confidence)
        transaction = by_id.get(result.transaction_id or "")
        if transaction is not None:
            entry["totalAmount"] += transaction.amount

    return {
        key: {
            "count": entry["count"],
            "totalAmount": str(entry["totalAmount"]),
            "averageConfidence": round(sum(entry["confidences"]) / len(entry["confidences"]), 2),
        }
        for key, entry in summary.items()
    }


def build_report(
    transactions: Sequence[Transaction],
    outcome: BatchOutcome,
    generated_at: dt.datetime | None = None,
) -> dict[str, Any]:
    generated_at = generated_at or dt.datetime.now(dt.timezone.utc)
    results_by_id = {result.transaction_id: result for result in outcome.results}

    rows = []
    for transaction in transactions:
        row = transaction.model_dump(mode="json", by_alias=True)
        result = results_by_id.get(transaction.id)
        row["categorization"] = result.model_dump(mode="json", by_alias=True) if result else None
        rows.append(row)

    stats = outcome.summary.model_dump(by_alias=True)
    stats.update({
        "cancelled": outcome.cancelled,
        "processingSeconds": outcome.processing_seconds,
        "processingTime": format_duration(outcome.processing_seconds),
        "confidence": outcome.confidence.model_dump(by_alias=True),
    })

    return {
        "metadata": {
            "generatedAt": generated_at.isoformat(),
            "businessType": outcome.business_type,
            "totalTransactions": len(transactions),
        },
        "transactions": rows,
        "categorySummary": category_summary(transactions, outcome.results),
        "processingStats": stats,
    }
