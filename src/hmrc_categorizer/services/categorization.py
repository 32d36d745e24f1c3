import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from decimal import Decimal
from time import perf_counter
from typing import Any

from hmrc_categorizer.classifiers.allowability import get_non_allowable_guidance
from hmrc_categorizer.classifiers.base import AIClassifier
from hmrc_categorizer.core.settings import BatchSettings
from hmrc_categorizer.domain.audit import flag_potential_issues, validate_against_hmrc_guidance
from hmrc_categorizer.domain.business_rules import get_categories_for_business_type
from hmrc_categorizer.domain.catalog import categories_for, get_hmrc_guidance
from hmrc_categorizer.domain.rules import BUSINESS_TYPE_RULES, GENERAL_BUSINESS_TYPE
from hmrc_categorizer.domain.timefmt import format_duration, format_rate
from hmrc_categorizer.errors import ClassificationError, ConfigurationError, ValidationError
from hmrc_categorizer.logger import get_logger
from hmrc_categorizer.manager import HMRCCategorizer, build_error_result, coerce_options
from hmrc_categorizer.models import (
    AIRequest,
    BatchOutcome,
    BatchSummary,
    CategorizationResult,
    CategorizeOptions,
    IncomeSource,
    MixedUseAssessment,
    Transaction,
)
from hmrc_categorizer.services.prompting import (
    MANUAL_REVIEW,
    PERSONAL,
    CacheKey,
    build_categorization_prompt,
    cache_key,
    parse_ai_response,
)
from hmrc_categorizer.services.reporting import aggregate_confidence_scores
from hmrc_categorizer.services.retry import RetryPolicy

logger = get_logger(__name__)

INCONCLUSIVE_REASONS = frozenset({"generic_payment", "refund_or_credit", "no_match"})
AI_CONFIDENCE = 0.85
AI_PERSONAL_EXPLANATION = "Identified as a personal or non-allowable expense"

ProgressCallback = Callable[[int, int], Awaitable[None] | None]


class ResponseCache:
    """In-process AI answer cache; reads and inserts are lock-guarded."""

    def __init__(self) -> None:
        self._entries: dict[CacheKey, str] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: CacheKey) -> str | None:
        async with self._lock:
            return self._entries.get(key)

    async def put(self, key: CacheKey, answer: str) -> None:
        async with self._lock:
            self._entries.setdefault(key, answer)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def validate_business_type(business_type: str | None) -> None:
    if business_type is None or business_type == GENERAL_BUSINESS_TYPE:
        return
    if business_type not in BUSINESS_TYPE_RULES:
        known = ", ".join(sorted(BUSINESS_TYPE_RULES))
        raise ConfigurationError(
            f"Unknown business type '{business_type}'. Expected one of: {known}"
        )


class BatchCategorizer:
    def __init__(
        self,
        categorizer: HMRCCategorizer,
        ai_classifier: AIClassifier | None = None,
        cache: ResponseCache | None = None,
        retry_policy: RetryPolicy | None = None,
        settings: BatchSettings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.categorizer = categorizer
        self.ai_classifier = ai_classifier
        self.cache = cache if cache is not None else ResponseCache()
        self.settings = settings or BatchSettings()
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=self.settings.ai_max_attempts,
            backoff_seconds=self.settings.ai_backoff_seconds,
            sleep=sleep,
        )
        self._sleep = sleep
        self.cancel_event = asyncio.Event()
        self.active = False
        self.status: dict[str, Any] = {"stage": "idle", "active": False}

    def request_cancel(self) -> bool:
        if self.active:
            self.cancel_event.set()
            return True
        return False

    def get_status(self) -> dict[str, Any]:
        status = dict(self.status)
        status["active"] = self.active
        return status

    async def _pause(self, delay_ms: int) -> None:
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)

    async def batch_categorize_transactions(
        self,
        transactions: Sequence[Transaction | Mapping[str, Any]],
        options: CategorizeOptions | Mapping[str, Any] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchOutcome:
        try:
            opts = coerce_options(options)
        except ValueError as e:
            raise ConfigurationError(f"Invalid categorization options: {e}") from e
        validate_business_type(opts.business_type)

        total = len(transactions)
        batch_size = max(1, self.settings.batch_size)
        batches = [transactions[i:i + batch_size] for i in range(0, total, batch_size)]

        self.cancel_event.clear()
        self.active = True
        self.status.clear()
        self.status.update({
            "stage": "processing",
            "processed": 0,
            "total": total,
            "batch": 0,
            "batches": len(batches),
        })
        logger.info(
            "[BATCH] Starting %s transactions in %s batches (business type: %s)",
            total,
            len(batches),
            opts.business_type or GENERAL_BUSINESS_TYPE,
        )

        start = perf_counter()
        outcome = BatchOutcome(business_type=opts.business_type)
        category_totals: dict[str, Decimal] = {}
        processed = 0
        try:
            for batch_index, batch in enumerate(batches, start=1):
                if self.cancel_event.is_set():
                    outcome.cancelled = True
                    logger.info(
                        "[BATCH] Cancelled before batch %s/%s after %s rows",
                        batch_index,
                        len(batches),
                        processed,
                    )
                    break
                if batch_index > 1:
                    await self._pause(self.settings.batch_delay_ms)

                self.status["batch"] = batch_index
                logger.debug("[BATCH] Batch %s/%s (%s rows)", batch_index, len(batches), len(batch))

                for row_index, raw in enumerate(batch):
                    if row_index > 0:
                        await self._pause(self.settings.row_delay_ms)
                    result, tx, cache_hit = await self._process_row(raw, opts)
                    outcome.results.append(result)
                    self._count(outcome.summary, result, cache_hit)
                    if tx is not None and result.reason != "error":
                        key = result.category or "personal"
                        category_totals[key] = category_totals.get(key, Decimal("0")) + tx.amount

                    processed += 1
                    self.status["processed"] = processed
                    if progress_callback is not None:
                        maybe_awaitable = progress_callback(processed, total)
                        if inspect.isawaitable(maybe_awaitable):
                            await maybe_awaitable
        finally:
            self.active = False

        elapsed = perf_counter() - start
        outcome.category_totals = category_totals
        outcome.confidence = aggregate_confidence_scores(outcome.results)
        outcome.processing_seconds = round(elapsed, 3)
        self.status.update({
            "stage": "cancelled" if outcome.cancelled else "complete",
            "summary": outcome.summary.model_dump(),
        })

        summary = outcome.summary
        logger.info(
            "[BATCH] %s! Rows: %s, ok: %s, personal: %s, errors: %s, "
            "manual review: %s, AI: %s, cache hits: %s in %s (%s)",
            "Cancelled" if outcome.cancelled else "Complete",
            summary.total,
            summary.successful,
            summary.personal,
            summary.errors,
            summary.manual_review,
            summary.ai_categorized,
            summary.cache_hits,
            format_duration(elapsed),
            format_rate(summary.total, elapsed),
        )
        return outcome

    @staticmethod
    def _count(summary: BatchSummary, result: CategorizationResult, cache_hit: bool) -> None:
        summary.total += 1
        if result.reason == "error":
            summary.errors += 1
        else:
            summary.successful += 1
        if result.is_personal:
            summary.personal += 1
        if result.requires_manual_review:
            summary.manual_review += 1
        if result.source == "ai":
            summary.ai_categorized += 1
        if cache_hit:
            summary.cache_hits += 1

    async def _process_row(
        self,
        raw: Transaction | Mapping[str, Any],
        opts: CategorizeOptions,
    ) -> tuple[CategorizationResult, Transaction | None, bool]:
        raw_id = raw.id if isinstance(raw, Transaction) else None
        if raw_id is None and isinstance(raw, Mapping) and raw.get("id") is not None:
            raw_id = str(raw.get("id"))

        try:
            tx = self.categorizer.validate_transaction(raw)
            result = await asyncio.to_thread(self.categorizer.categorize_transaction, tx, opts)
        except ValidationError as e:
            logger.warning("[BATCH] Skipping invalid row %s: %s", e.transaction_id or raw_id, e)
            return build_error_result(e.transaction_id or raw_id, str(e)), None, False
        except Exception as e:
            logger.exception("[BATCH] Unexpected error categorizing row %s", raw_id)
            return build_error_result(raw_id, str(e)), None, False

        if self.ai_classifier is None or result.reason not in INCONCLUSIVE_REASONS:
            return result, tx, False

        try:
            result, cache_hit = await self._enrich_with_ai(tx, result, opts)
        except ClassificationError as e:
            logger.error("[AI] Row %s could not be classified: %s", tx.id, e)
            return build_error_result(tx.id, str(e)), tx, False
        except Exception as e:
            logger.exception("[AI] Unexpected error classifying row %s", tx.id)
            return build_error_result(tx.id, str(e)), tx, False
        return result, tx, cache_hit

    def _allowed_categories(
        self,
        tx: Transaction,
        opts: CategorizeOptions,
        income_source: IncomeSource,
    ) -> list[str]:
        allowed = get_categories_for_business_type(opts.business_type)
        return [
            code
            for code in categories_for(income_source, tx.transaction_type)
            if allowed is None or code in allowed
        ]

    async def _call_classifier(self, request: AIRequest) -> str:
        return await asyncio.wait_for(
            self.ai_classifier.classify(request),
            timeout=request.timeout_ms / 1000,
        )

    async def _enrich_with_ai(
        self,
        tx: Transaction,
        result: CategorizationResult,
        opts: CategorizeOptions,
    ) -> tuple[CategorizationResult, bool]:
        income_source = result.income_source or "selfEmployment"
        allowed = self._allowed_categories(tx, opts, income_source)
        key = cache_key(opts.business_type, tx.amount, tx.description)

        answer = await self.cache.get(key)
        cache_hit = answer is not None
        if answer is None:
            request = AIRequest(
                prompt=build_categorization_prompt(tx, opts.business_type, allowed, income_source),
                business_type=opts.business_type or GENERAL_BUSINESS_TYPE,
                timeout_ms=self.settings.ai_timeout_ms,
            )
            raw = await self.retry_policy.run(
                lambda: self._call_classifier(request),
                label=f"AI classification of {tx.id}",
            )
            answer = parse_ai_response(raw, allowed)
            await self.cache.put(key, answer)
        else:
            logger.debug("[AI] Cache hit for row %s: %s", tx.id, answer)

        if answer == MANUAL_REVIEW:
            return result.model_copy(update={"requires_manual_review": True, "source": "ai"}), cache_hit

        if answer == PERSONAL:
            return result.model_copy(update={
                "category": None,
                "confidence": AI_CONFIDENCE,
                "reason": "non_allowable",
                "explanation": AI_PERSONAL_EXPLANATION,
                "hmrc_guidance": get_non_allowable_guidance("personal"),
                "alternatives": (),
                "warnings": (),
                "mixed_use": MixedUseAssessment(),
                "is_personal": True,
                "requires_manual_review": False,
                "source": "ai",
            }), cache_hit

        warnings = (
            *flag_potential_issues(tx, answer),
            *validate_against_hmrc_guidance(answer, tx.description),
        )
        return result.model_copy(update={
            "category": answer,
            "confidence": AI_CONFIDENCE,
            "reason": "ai_categorization",
            "explanation": self.categorizer.explain_categorization_reason(
                answer, income_source, transaction_type=tx.transaction_type
            ),
            "hmrc_guidance": get_hmrc_guidance(answer, income_source, tx.transaction_type),
            "alternatives": tuple(alt for alt in result.alternatives if alt.category != answer),
            "warnings": warnings,
            "requires_manual_review": any(w.severity == "high" for w in warnings),
            "source": "ai",
        }), cache_hit
