import datetime as dt
import json
from decimal import Decimal

import pytest

from hmrc_categorizer.classifiers.memory import UserLearningStore, months_before, pattern_key
from hmrc_categorizer.models import Transaction


class FakeClock:
    def __init__(self, now: dt.datetime):
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


def _tx(description: str, amount: str = "12.50") -> Transaction:
    return Transaction(
        id="m1",
        description=description,
        amount=Decimal(amount),
        transaction_type="expense",
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(dt.datetime(2024, 1, 1, 9, 0, tzinfo=dt.timezone.utc))


@pytest.fixture
def store(tmp_path, clock: FakeClock) -> UserLearningStore:
    return UserLearningStore(data_path=str(tmp_path / "learning.json"), clock=clock)


def test_learn_and_exact_match(store: UserLearningStore) -> None:
    store.record_correction("u1", _tx("Canva Pro monthly"), "other", "advertisingCosts")

    match = store.lookup("u1", "Canva Pro monthly")
    assert match.category == "advertisingCosts"
    assert match.confidence == 0.9
    assert match.reason == "user_learning"


def test_lookup_uses_cleaned_prefix_key(store: UserLearningStore) -> None:
    store.record_correction("u1", _tx("CARD PAYMENT TO Canva Pro REF 99881"), None, "advertisingCosts")

    assert pattern_key("DD Canva Pro") == "canva pro"
    match = store.lookup("u1", "DD Canva Pro")
    assert match.reason == "user_learning"


def test_persistence(tmp_path, store: UserLearningStore, clock: FakeClock) -> None:
    store.record_correction("u1", _tx("Screwfix order"), "other", "maintenanceCosts")

    reloaded = UserLearningStore(data_path=str(tmp_path / "learning.json"), clock=clock)
    match = reloaded.lookup("u1", "Screwfix order")
    assert match.category == "maintenanceCosts"
    assert len(reloaded.corrections("u1")) == 1


def test_similar_pattern_reduces_confidence(store: UserLearningStore) -> None:
    store.record_correction("u1", _tx("Costa Coffee London Bridge"), "other", "travelCosts")

    match = store.lookup("u1", "Costa Coffee London Brdge")
    assert match.category == "travelCosts"
    assert match.confidence == 0.72
    assert match.reason == "similar_user_pattern"
    assert match.similarity > 0.7


def test_dissimilar_description_defers(store: UserLearningStore) -> None:
    store.record_correction("u1", _tx("Costa Coffee London Bridge"), "other", "travelCosts")

    match = store.lookup("u1", "Screwfix order")
    assert match.category is None
    assert match.confidence == 0


def test_patterns_are_per_user(store: UserLearningStore) -> None:
    store.record_correction("u1", _tx("Canva Pro monthly"), "other", "advertisingCosts")

    assert store.lookup("u2", "Canva Pro monthly").category is None
    assert store.lookup(None, "Canva Pro monthly").category is None


def test_stale_pattern_only_matches_by_similarity(store: UserLearningStore, clock: FakeClock) -> None:
    store.record_correction("u1", _tx("Canva Pro monthly"), "other", "advertisingCosts")

    clock.now = dt.datetime(2024, 6, 30, tzinfo=dt.timezone.utc)
    assert store.lookup("u1", "Canva Pro monthly").reason == "user_learning"

    clock.now = dt.datetime(2024, 8, 15, tzinfo=dt.timezone.utc)
    match = store.lookup("u1", "Canva Pro monthly")
    assert match.reason == "similar_user_pattern"
    assert match.category == "advertisingCosts"
    assert match.confidence == 0.72


def test_correction_log_is_trimmed(clock: FakeClock) -> None:
    store = UserLearningStore(clock=clock)
    for index in range(1001):
        store.record_correction("u1", _tx(f"Supplier number {index}"), None, "costOfGoodsBought")

    corrections = store.corrections("u1")
    assert len(corrections) == 500
    assert corrections[-1].description == "Supplier number 1000"


def test_corrupt_file_starts_empty(tmp_path, clock: FakeClock) -> None:
    path = tmp_path / "learning.json"
    path.write_text("{not json", encoding="utf-8")

    store = UserLearningStore(data_path=str(path), clock=clock)
    assert store.entries == {}


def test_clear(store: UserLearningStore, tmp_path) -> None:
    store.record_correction("u1", _tx("Canva Pro monthly"), "other", "advertisingCosts")
    store.record_correction("u2", _tx("Canva Pro monthly"), "other", "adminCosts")

    store.clear("u1")
    assert store.lookup("u1", "Canva Pro monthly").category is None
    assert store.lookup("u2", "Canva Pro monthly").category == "adminCosts"

    store.clear()
    saved = json.loads((tmp_path / "learning.json").read_text(encoding="utf-8"))
    assert saved == {}


def test_months_before_clamps_day() -> None:
    moment = dt.datetime(2024, 8, 31, tzinfo=dt.timezone.utc)
    assert months_before(moment, 6) == dt.datetime(2024, 2, 29, tzinfo=dt.timezone.utc)
    assert months_before(moment, 9).year == 2023
