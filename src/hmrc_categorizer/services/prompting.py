import json
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from hmrc_categorizer.classifiers.memory import pattern_key
from hmrc_categorizer.domain.catalog import get_category_info
from hmrc_categorizer.errors import ClassificationError
from hmrc_categorizer.models import IncomeSource, Transaction

PERSONAL = "PERSONAL"
MANUAL_REVIEW = "MANUAL_REVIEW"

CacheKey = tuple[str, int, str]

_EXAMPLES = (
    ("TESCO STORES 2231 groceries", PERSONAL),
    ("Smith & Co accountants annual accounts", "professionalFees"),
    ("Office rent March", "premisesRunningCosts"),
    ("Trainline ticket London client meeting", "travelCosts"),
    ("BT broadband business line", "adminCosts"),
    ("Google Ads campaign", "advertisingCosts"),
    ("Transfer 88213", MANUAL_REVIEW),
)


def cache_key(business_type: str | None, amount: Decimal, description: str) -> CacheKey:
    rounded = int(amount.copy_abs().quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return (business_type or "general", rounded, pattern_key(description))


def build_categorization_prompt(
    transaction: Transaction,
    business_type: str | None,
    allowed_categories: Iterable[str],
    income_source: IncomeSource = "selfEmployment",
) -> str:
    allowed = list(allowed_categories)
    category_lines = []
    for code in allowed:
        info = get_category_info(code, income_source)
        category_lines.append(f"- {code}: {info.description}" if info else f"- {code}")

    example_lines = [
        f'"{description}" -> {answer}'
        for description, answer in _EXAMPLES
        if answer in (PERSONAL, MANUAL_REVIEW) or answer in allowed
    ]

    date = transaction.date.isoformat() if transaction.date else "unknown"
    return "\n".join([
        "Categorize this UK business transaction for an HMRC Making Tax Digital return.",
        f"Business type: {business_type or 'general'}",
        f"Income source: {income_source}",
        f"Transaction type: {transaction.transaction_type}",
        f"Amount: £{transaction.amount:.2f}",
        f"Description: {transaction.description}",
        f"Date: {date}",
        "",
        "Allowed categories:",
        *category_lines,
        "",
        "Examples:",
        *example_lines,
        "",
        f"Reply with ONLY one category code from the list, {PERSONAL} if the expense is "
        f"personal or not allowable, or {MANUAL_REVIEW} if you are unsure.",
    ])


def _unwrap(raw: str) -> str:
    text = raw.strip()
    if text.startswith("{"):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("category"), str):
            text = payload["category"]
    text = text.strip().splitlines()[0] if text.strip() else ""
    if ":" in text:
        label, value = text.split(":", 1)
        if label.strip().lower() in {"category", "answer"}:
            text = value
    return text.strip().strip("`\"'*").rstrip(".").strip()


def parse_ai_response(raw: str | None, allowed_categories: Iterable[str]) -> str:
    """Resolve raw backend text to a category code, PERSONAL or MANUAL_REVIEW."""
    if not raw or not raw.strip():
        raise ClassificationError("Empty AI response")

    answer = _unwrap(raw)
    normalized = answer.upper().replace(" ", "_").replace("-", "_")
    if normalized in (PERSONAL, MANUAL_REVIEW):
        return normalized

    by_lower = {code.lower(): code for code in allowed_categories}
    code = by_lower.get(answer.lower())
    if code is None:
        raise ClassificationError(f"Unrecognised AI response: {raw.strip()[:80]!r}")
    return code
