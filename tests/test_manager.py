from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from hmrc_categorizer.classifiers.memory import UserLearningStore
from hmrc_categorizer.errors import ValidationError
from hmrc_categorizer.manager import HMRCCategorizer, build_error_result
from hmrc_categorizer.models import CategorizeOptions, Transaction


@pytest.fixture
def categorizer() -> HMRCCategorizer:
    return HMRCCategorizer(learning_store=UserLearningStore())


def _row(description: str, amount: str, kind: str = "expense", tx_id: str = "1") -> dict:
    return {
        "id": tx_id,
        "description": description,
        "amount": amount,
        "transactionType": kind,
    }


def test_groceries_short_circuit_as_personal(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Tesco groceries weekly shop", "45.30"))

    assert result.category is None
    assert result.is_personal
    assert result.reason == "non_allowable"
    assert result.confidence == 0.9
    assert categorizer.keyword_scorer.calls == 0


def test_laptop_is_capital_expenditure(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Dell laptop purchase", "650"))

    assert result.category == "capital_expenditure"
    assert result.reason == "capital_expenditure"
    assert result.confidence == 0.6
    assert not result.is_personal
    assert categorizer.keyword_scorer.calls == 0


@pytest.mark.parametrize(
    "description",
    [
        "Building extension by contractor",
        "Machinery service plan purchase",
        "Land lease premium purchase",
        "Structural steel for building extension repairs",
    ],
)
def test_capital_keywords_win_over_running_cost_words(
    categorizer: HMRCCategorizer, description: str
) -> None:
    result = categorizer.categorize_transaction(_row(description, "20000"))

    assert result.category == "capital_expenditure"
    assert result.reason == "capital_expenditure"
    assert result.confidence == 0.8
    assert categorizer.keyword_scorer.calls == 0


def test_accountant_fee_for_freelancer(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(
        _row("Accountant quarterly fee", "150"),
        {"businessType": "freelancer"},
    )

    assert result.category == "professionalFees"
    assert result.confidence >= 0.7
    assert result.confidence == 0.8
    assert result.reason == "keyword_match"
    assert result.income_source == "selfEmployment"
    assert result.hmrc_guidance.endswith("HMRC Reference: SE100")
    assert [alt.category for alt in result.alternatives] == ["adminCosts", "other"]
    assert not result.requires_manual_review


def test_generic_payment_falls_back_to_other(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("XYZ123 REF:88812 payment", "20"))

    assert result.category == "other"
    assert result.reason == "generic_payment"
    assert result.confidence == 0.4
    assert result.explanation.startswith("This transaction appears to be")


def test_confidence_is_bounded_and_rounded(categorizer: HMRCCategorizer) -> None:
    rows = [
        _row("Hotel taxi train ticket flight to Leeds client site", "333.33"),
        _row("misc", "1.01"),
        _row("Bank charges for business account", "7.5"),
    ]
    for row in rows:
        result = categorizer.categorize_transaction(row)
        assert 0.0 <= result.confidence <= 0.95
        assert result.confidence == round(result.confidence, 2)


def test_income_row_uses_property_namespace(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Rental income flat 2", "950", kind="income"))

    assert result.income_source == "property"
    assert result.category == "periodAmount"
    assert result.confidence == 0.6
    assert not result.mixed_use.is_mixed_use


def test_explicit_income_source_wins(categorizer: HMRCCategorizer) -> None:
    options = CategorizeOptions(income_source="selfEmployment")
    result = categorizer.categorize_transaction(_row("Rental income flat 2", "950", kind="income"), options)
    assert result.income_source == "selfEmployment"


def test_mixed_use_percentage_depends_on_business_type(categorizer: HMRCCategorizer) -> None:
    row = _row("Mobile phone contract EE", "35")

    freelancer = categorizer.categorize_transaction(row, {"business_type": "freelancer"})
    assert freelancer.mixed_use.is_mixed_use
    assert freelancer.mixed_use.type == "mobilePhone"
    assert freelancer.mixed_use.suggested_business_percentage == 80
    assert freelancer.mixed_use.requires_apportionment

    unknown = categorizer.categorize_transaction(row)
    assert unknown.mixed_use.suggested_business_percentage == 50


def test_high_value_uncategorized_needs_review(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Misc bits", "1500"))

    assert result.category == "other"
    assert result.requires_manual_review
    warning_types = {warning.type for warning in result.warnings}
    assert {"uncategorized_high_value", "round_amount"} <= warning_types


def test_learned_category_is_applied(categorizer: HMRCCategorizer) -> None:
    row = _row("Canva Pro monthly", "10.99")
    before = categorizer.categorize_transaction(row, {"userId": "u1"})
    assert before.category == "other"

    categorizer.learn_from_user_corrections("u1", row, before.category, "advertisingCosts")

    after = categorizer.categorize_transaction(row, {"userId": "u1"})
    assert after.category == "advertisingCosts"
    assert after.confidence == 0.9
    assert after.reason == "user_learning"
    assert after.source == "user_learning"

    learned = categorizer.apply_user_learning_data("u1", "Canva Pro monthly")
    assert learned.category == "advertisingCosts"
    assert learned.confidence == 0.9


def test_stronger_rule_beats_similar_learned_pattern(categorizer: HMRCCategorizer) -> None:
    categorizer.learn_from_user_corrections(
        "u1", _row("Accountant quarterly fees", "150"), "professionalFees", "adminCosts"
    )

    result = categorizer.categorize_transaction(
        _row("Accountant quarterly fee", "150"),
        {"businessType": "freelancer", "userId": "u1"},
    )
    assert result.category == "professionalFees"
    assert result.source == "rules"


def test_invalid_rows_raise_validation_error(categorizer: HMRCCategorizer) -> None:
    with pytest.raises(ValidationError) as exc_info:
        categorizer.categorize_transaction(_row("Refund", "-5", tx_id="bad-1"))
    assert exc_info.value.transaction_id == "bad-1"
    assert "amount" in str(exc_info.value)

    with pytest.raises(ValidationError):
        categorizer.categorize_transaction({"id": "2", "amount": "5", "transactionType": "expense"})

    with pytest.raises(ValidationError):
        categorizer.categorize_transaction(_row("Stationery", "5", kind="transfer"))

    with pytest.raises(ValidationError):
        categorizer.categorize_transaction(["not", "a", "row"])


def test_learning_requires_user_and_category(categorizer: HMRCCategorizer) -> None:
    row = _row("Canva Pro monthly", "10.99")
    with pytest.raises(ValidationError):
        categorizer.learn_from_user_corrections("", row, None, "adminCosts")
    with pytest.raises(ValidationError):
        categorizer.learn_from_user_corrections("u1", row, None, "")


def test_results_are_frozen(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Accountant quarterly fee", "150"))
    with pytest.raises(PydanticValidationError):
        result.category = "other"

    rerun = result.model_copy(update={"confidence": 0.5})
    assert result.confidence != rerun.confidence


def test_results_serialize_with_camel_case(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(_row("Tesco groceries weekly shop", "45.30"))
    payload = result.model_dump(by_alias=True)
    assert payload["isPersonal"] is True
    assert "requiresManualReview" in payload
    assert "mixedUse" in payload


def test_available_categories(categorizer: HMRCCategorizer) -> None:
    freelancer = categorizer.get_available_categories("freelancer")
    assert set(freelancer["expenses"]) == {
        "adminCosts", "professionalFees", "travelCosts", "financialCharges", "other",
    }
    assert set(freelancer["income"]) == {"turnover", "other"}

    everything = categorizer.get_available_categories(None)
    assert len(everything["expenses"]) == 15

    landlord = categorizer.get_available_categories("property")
    assert set(landlord["expenses"]) == {
        "financialCosts", "repairsAndMaintenance", "professionalFees", "other",
    }
    assert set(landlord["income"]) == {"periodAmount", "premiumsOfLeaseGrant"}


def test_property_income_other_uses_income_side(categorizer: HMRCCategorizer) -> None:
    result = categorizer.categorize_transaction(
        _row("Quarterly sundry receipt", "300", kind="income"),
        {"incomeSource": "property"},
    )

    assert result.category == "other"
    assert result.income_source == "property"
    assert "Other allowable property expenses" not in result.explanation
    assert result.hmrc_guidance == "Please refer to HMRC guidance for this category"


def test_accepts_validated_transactions(categorizer: HMRCCategorizer) -> None:
    tx = Transaction(
        id=7,
        description="Google Ads campaign",
        amount=Decimal("250"),
        transaction_type="EXPENSE",
    )
    result = categorizer.categorize_transaction(tx)
    assert tx.id == "7"
    assert result.transaction_id == "7"
    assert result.category == "advertisingCosts"


def test_error_result_shape() -> None:
    result = build_error_result("x1", "boom")
    assert result.category == "other"
    assert result.confidence == 0.1
    assert result.reason == "error"
    assert result.requires_manual_review
    assert result.error == "boom"
