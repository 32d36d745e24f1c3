import calendar
import datetime as dt
import json
import os
from collections.abc import Callable

from pydantic import ValidationError as PydanticValidationError
from rapidfuzz.distance import Levenshtein

from hmrc_categorizer.domain.normalize import normalize_description
from hmrc_categorizer.logger import get_logger
from hmrc_categorizer.models import (
    CorrectionRecord,
    LearnedPattern,
    LearningMatch,
    Transaction,
    UserLearningEntry,
)

logger = get_logger(__name__)

PATTERN_KEY_LENGTH = 50
LEARNED_CONFIDENCE = 0.9
SIMILAR_PATTERN_FACTOR = 0.8
ACTIVE_MONTHS = 6
MAX_CORRECTIONS = 1000
TRIMMED_CORRECTIONS = 500


def pattern_key(description: str) -> str:
    cleaned = normalize_description(description)
    return (cleaned or description.strip().lower())[:PATTERN_KEY_LENGTH]


def months_before(moment: dt.datetime, months: int) -> dt.datetime:
    month_index = moment.year * 12 + moment.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class UserLearningStore:
    """
    Per-user correction log and pattern cache.

    Patterns are keyed by the first 50 characters of the cleaned description.
    Exact hits only count while the pattern was used within the last six
    months; older patterns stay stored and can still match by similarity.
    """

    def __init__(
        self,
        data_path: str | None = None,
        similarity_threshold: float = 0.7,
        clock: Callable[[], dt.datetime] = _utcnow,
    ):
        self.data_path = data_path
        self.similarity_threshold = similarity_threshold
        self.clock = clock
        self.entries: dict[str, UserLearningEntry] = {}
        self.load()

    def load(self) -> None:
        if not self.data_path or not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                raw = json.load(f)
            self.entries = {
                user_id: UserLearningEntry.model_validate(entry)
                for user_id, entry in raw.items()
            }
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("[LEARN] Could not read %s, starting empty: %s", self.data_path, e)
            self.entries = {}

    def save(self) -> None:
        if not self.data_path:
            return
        payload = {
            user_id: entry.model_dump(mode="json")
            for user_id, entry in self.entries.items()
        }
        with open(self.data_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2)

    def record_correction(
        self,
        user_id: str,
        transaction: Transaction,
        original_category: str | None,
        corrected_category: str,
    ) -> None:
        now = self.clock()
        entry = self.entries.setdefault(user_id, UserLearningEntry())
        entry.corrections.append(CorrectionRecord(
            description=transaction.description,
            amount=transaction.amount,
            category=transaction.category,
            original_category=original_category,
            corrected_category=corrected_category,
            timestamp=now,
        ))
        if len(entry.corrections) > MAX_CORRECTIONS:
            entry.corrections = entry.corrections[-TRIMMED_CORRECTIONS:]

        entry.patterns[pattern_key(transaction.description)] = LearnedPattern(
            category=corrected_category,
            confidence=LEARNED_CONFIDENCE,
            last_used=now,
        )
        logger.debug(
            "[LEARN] user=%s '%s' -> %s",
            user_id,
            transaction.description[:50],
            corrected_category,
        )
        self.save()

    def lookup(self, user_id: str | None, description: str) -> LearningMatch:
        entry = self.entries.get(user_id) if user_id else None
        if entry is None or not entry.patterns:
            return LearningMatch()

        key = pattern_key(description)
        cutoff = months_before(self.clock(), ACTIVE_MONTHS)
        pattern = entry.patterns.get(key)
        if pattern is not None and pattern.last_used >= cutoff:
            return LearningMatch(
                category=pattern.category,
                confidence=pattern.confidence,
                reason="user_learning",
                similarity=1.0,
            )

        best_similarity = 0.0
        best_pattern: LearnedPattern | None = None
        for stored_key, stored in entry.patterns.items():
            similarity = Levenshtein.normalized_similarity(key, stored_key)
            if similarity > best_similarity:
                best_similarity = similarity
                best_pattern = stored

        if best_pattern is not None and best_similarity > self.similarity_threshold:
            return LearningMatch(
                category=best_pattern.category,
                confidence=round(best_pattern.confidence * SIMILAR_PATTERN_FACTOR, 2),
                reason="similar_user_pattern",
                similarity=round(best_similarity, 4),
            )
        return LearningMatch()

    def corrections(self, user_id: str) -> list[CorrectionRecord]:
        entry = self.entries.get(user_id)
        return list(entry.corrections) if entry else []

    def clear(self, user_id: str | None = None) -> None:
        if user_id is None:
            self.entries = {}
        else:
            self.entries.pop(user_id, None)
        self.save()
