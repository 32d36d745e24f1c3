import pytest

from hmrc_categorizer.classifiers.keyword import KeywordScorer, fallback_categorization, keyword_weight


@pytest.fixture
def scorer() -> KeywordScorer:
    return KeywordScorer()


def test_keyword_weight_favours_long_keywords() -> None:
    assert keyword_weight("accountant") == 2
    assert keyword_weight("software") == 1
    assert keyword_weight("rent") == 1


def test_score_normalizes_by_keyword_count(scorer: KeywordScorer) -> None:
    result = scorer.score("accountant quarterly fee")
    assert result.category == "professionalFees"
    assert result.reason == "keyword_match"
    assert result.confidence == pytest.approx(2 / 12)
    assert result.matched_keywords == ("accountant",)


def test_candidates_restrict_categories(scorer: KeywordScorer) -> None:
    result = scorer.score("accountant stationery", candidates={"adminCosts", "other"})
    assert result.category == "adminCosts"
    assert result.confidence == pytest.approx(2 / 12)


@pytest.mark.parametrize(
    ("cleaned", "confidence", "reason"),
    [
        ("payment", 0.3, "generic_payment"),
        ("invoice 44", 0.3, "generic_payment"),
        ("refund from amazon", 0.4, "refund_or_credit"),
        ("zzzz", 0.2, "no_match"),
    ],
)
def test_fallback(scorer: KeywordScorer, cleaned: str, confidence: float, reason: str) -> None:
    result = scorer.score(cleaned)
    assert result.category == "other"
    assert result.confidence == confidence
    assert result.reason == reason


def test_weak_match_below_threshold_falls_back(scorer: KeywordScorer) -> None:
    # "paye" is a substring of "payment" but scores 1/11
    result = scorer.score("xyz payment")
    assert result.reason == "generic_payment"
    assert result.confidence == 0.3


def test_ties_go_to_first_category_in_mapping_order() -> None:
    scorer = KeywordScorer({"first": ("foo",), "second": ("foo",)})
    assert scorer.score("foo bar").category == "first"


def test_confidence_is_capped() -> None:
    scorer = KeywordScorer({"loud": ("supercalifragilistic",)})
    assert scorer.score("supercalifragilistic").confidence == 0.95


def test_rank_categories_lists_secondary_matches(scorer: KeywordScorer) -> None:
    ranked = scorer.rank_categories("hotel taxi train ticket flight for accountant visit")
    categories = [entry.category for entry in ranked]
    assert categories[0] == "travelCosts"
    assert "professionalFees" in categories


def test_score_counts_calls(scorer: KeywordScorer) -> None:
    scorer.score("payment")
    scorer.rank_categories("payment")
    assert scorer.calls == 1


def test_fallback_prefers_payment_over_refund() -> None:
    assert fallback_categorization("refund payment").reason == "generic_payment"
