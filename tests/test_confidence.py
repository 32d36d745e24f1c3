from decimal import Decimal

import pytest

from hmrc_categorizer.domain.confidence import (
    calculate_category_confidence,
    has_exact_amount_pattern,
    is_vague_description,
)
from hmrc_categorizer.models import Transaction


def _tx(description: str, amount: str) -> Transaction:
    return Transaction(
        id="c1",
        description=description,
        amount=Decimal(amount),
        transaction_type="expense",
    )


def test_business_rule_floor_and_round_amount_bonus() -> None:
    tx = _tx("Accountant quarterly fee", "150")
    assert calculate_category_confidence(tx, 2 / 12, 0.7) == 0.8


def test_vague_description_penalty() -> None:
    tx = _tx("XYZ123 REF:88812 payment", "20")
    assert calculate_category_confidence(tx, 0.3, 0.5) == 0.4


def test_caps_at_095() -> None:
    tx = _tx("Annual professional indemnity insurance for the consultancy practice", "100")
    assert calculate_category_confidence(tx, 0.95, 0.5) == 0.95


def test_floor_at_01() -> None:
    tx = _tx("misc", "33.33")
    assert calculate_category_confidence(tx, 0.1, 0.1) == 0.1


def test_adjustments_apply_in_order() -> None:
    # Capped at 0.95 before the vague penalty, so the result is 0.75 and not 0.8
    tx = _tx("transfer to savings", "50")
    assert calculate_category_confidence(tx, 0.9, 0.5) == 0.75


def test_long_description_bonus() -> None:
    tx = _tx("Quarterly bookkeeping and VAT return preparation by Smith and Co", "33.33")
    assert calculate_category_confidence(tx, 0.6, 0.5) == pytest.approx(0.65)


@pytest.mark.parametrize(
    ("amount", "expected"),
    [("75", True), ("120", True), ("45.30", False), ("33.33", False)],
)
def test_exact_amount_pattern(amount: str, expected: bool) -> None:
    assert has_exact_amount_pattern(Decimal(amount)) is expected


def test_vague_descriptions() -> None:
    assert is_vague_description("Short")
    assert is_vague_description("Various supplies bought")
    assert not is_vague_description("Accountant quarterly fee")
