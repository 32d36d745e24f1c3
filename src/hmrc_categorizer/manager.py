from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from hmrc_categorizer.classifiers.allowability import (
    CapitalMatch,
    NonAllowableMatch,
    detect_capital_vs_revenue,
    detect_non_allowable_expenses,
)
from hmrc_categorizer.classifiers.keyword import KeywordScore, KeywordScorer
from hmrc_categorizer.classifiers.memory import UserLearningStore
from hmrc_categorizer.core.settings import DEFAULT_MANUAL_REVIEW_THRESHOLD
from hmrc_categorizer.domain.audit import flag_potential_issues, validate_against_hmrc_guidance
from hmrc_categorizer.domain.business_rules import (
    apply_business_type_rules,
    get_business_type_rule,
    get_categories_for_business_type,
)
from hmrc_categorizer.domain.catalog import (
    HMRC_CATEGORIES,
    CategoryInfo,
    categories_for,
    get_category_info,
    get_hmrc_guidance,
)
from hmrc_categorizer.domain.confidence import calculate_category_confidence
from hmrc_categorizer.domain.normalize import contains_term, first_matching_term, normalize_description
from hmrc_categorizer.domain.rules import (
    COMMON_ALTERNATIVES,
    MIXED_USE_GUIDANCE,
    MIXED_USE_INDICATORS,
    PROPERTY_INCOME_KEYWORDS,
    SUGGESTED_BUSINESS_PERCENTAGES,
)
from hmrc_categorizer.errors import ValidationError
from hmrc_categorizer.logger import get_logger
from hmrc_categorizer.models import (
    AlternativeCategory,
    CategorizationResult,
    CategorizeOptions,
    IncomeSource,
    Issue,
    LearningMatch,
    MixedUseAssessment,
    Transaction,
    TransactionType,
)

logger = get_logger(__name__)

MAX_ALTERNATIVES = 3
COMMON_ALTERNATIVE_CONFIDENCE = 0.3
DEFAULT_MIXED_USE_PERCENTAGE = 50
DEFAULT_MIXED_USE_GUIDANCE = "Only the business portion of mixed use expenses can be claimed."
FALLBACK_EXPLANATION = "This transaction has been categorized based on its description and amount."
ERROR_EXPLANATION = "Categorization failed, manual review required"


def build_error_result(transaction_id: str | None, message: str) -> CategorizationResult:
    return CategorizationResult(
        transaction_id=transaction_id,
        category="other",
        confidence=0.1,
        reason="error",
        explanation=ERROR_EXPLANATION,
        requires_manual_review=True,
        source="error",
        error=message,
    )


def coerce_options(options: CategorizeOptions | Mapping[str, Any] | None) -> CategorizeOptions:
    if options is None:
        return CategorizeOptions()
    if isinstance(options, CategorizeOptions):
        return options
    return CategorizeOptions.model_validate(options)


def _describe_validation_error(exc: PydanticValidationError) -> str:
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "transaction"
        problems.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "Invalid transaction: " + "; ".join(problems)


class HMRCCategorizer:
    def __init__(
        self,
        learning_store: UserLearningStore | None = None,
        keyword_scorer: KeywordScorer | None = None,
        manual_review_threshold: float = DEFAULT_MANUAL_REVIEW_THRESHOLD,
    ):
        self.learning_store = learning_store if learning_store is not None else UserLearningStore()
        self.keyword_scorer = keyword_scorer or KeywordScorer()
        self.manual_review_threshold = manual_review_threshold

    @staticmethod
    def validate_transaction(transaction: Transaction | Mapping[str, Any]) -> Transaction:
        if isinstance(transaction, Transaction):
            return transaction
        if not isinstance(transaction, Mapping):
            raise ValidationError(
                f"Transaction must be a mapping, got {type(transaction).__name__}"
            )
        raw_id = transaction.get("id")
        try:
            return Transaction.model_validate(transaction)
        except PydanticValidationError as e:
            raise ValidationError(
                _describe_validation_error(e),
                transaction_id=str(raw_id) if raw_id is not None else None,
            ) from e

    def categorize_transaction(
        self,
        transaction: Transaction | Mapping[str, Any],
        options: CategorizeOptions | Mapping[str, Any] | None = None,
    ) -> CategorizationResult:
        tx = self.validate_transaction(transaction)
        opts = coerce_options(options)
        cleaned = normalize_description(tx.description)
        income_source = self.detect_income_source(cleaned, opts)

        logger.debug(
            "[CATEGORIZE] %s: '%s' -> '%s' (%s, %s)",
            tx.id,
            tx.description[:50],
            cleaned,
            income_source,
            opts.business_type or "no business type",
        )

        if tx.transaction_type == "expense":
            non_allowable = detect_non_allowable_expenses(cleaned, tx.amount)
            if non_allowable:
                return self._non_allowable_result(tx, non_allowable, income_source)
            capital = detect_capital_vs_revenue(cleaned, tx.amount)
            if capital:
                return self._capital_result(tx, capital, income_source)

        rule_outcome = apply_business_type_rules(tx, opts.business_type)
        candidates = set(categories_for(income_source, tx.transaction_type))
        if rule_outcome.allowed_categories is not None:
            candidates &= rule_outcome.allowed_categories
        candidates.add("other")

        keyword = self.keyword_scorer.score(cleaned, candidates)
        confidence = calculate_category_confidence(
            tx, keyword.confidence, rule_outcome.confidence
        )
        category = keyword.category
        reason = keyword.reason
        source = "rules"

        learned = self.apply_user_learning_data(opts.user_id, tx.description)
        # Learned categories win ties; rules only override when strictly more confident
        if learned.category and learned.confidence >= confidence:
            logger.debug(
                "[CATEGORIZE] %s: learned '%s' (%.2f) over '%s' (%.2f)",
                tx.id,
                learned.category,
                learned.confidence,
                category,
                confidence,
            )
            category = learned.category
            confidence = learned.confidence
            reason = learned.reason or "user_learning"
            source = "user_learning"

        ranked = self.keyword_scorer.rank_categories(cleaned, candidates)
        warnings = [
            *flag_potential_issues(tx, category),
            *validate_against_hmrc_guidance(category, cleaned),
        ]
        mixed_use = (
            self.handle_mixed_use_expenses(cleaned, opts.business_type)
            if tx.transaction_type == "expense"
            else MixedUseAssessment()
        )
        confidence = round(confidence, 2)

        return CategorizationResult(
            transaction_id=tx.id,
            category=category,
            confidence=confidence,
            reason=reason,
            explanation=self.explain_categorization_reason(
                category, income_source, reason, tx.transaction_type
            ),
            hmrc_guidance=get_hmrc_guidance(category, income_source, tx.transaction_type),
            alternatives=self.suggest_alternative_categories(category, ranked),
            warnings=tuple(warnings),
            mixed_use=mixed_use,
            requires_manual_review=self._needs_review(confidence, warnings),
            income_source=income_source,
            business_rules=rule_outcome.applied_rules,
            source=source,
        )

    def _needs_review(self, confidence: float, warnings: list[Issue]) -> bool:
        return confidence < self.manual_review_threshold or any(
            warning.severity == "high" for warning in warnings
        )

    def _non_allowable_result(
        self,
        tx: Transaction,
        match: NonAllowableMatch,
        income_source: IncomeSource,
    ) -> CategorizationResult:
        logger.debug("[CATEGORIZE] %s: non-allowable (%s, '%s')", tx.id, match.kind, match.keyword)
        warnings = [Issue(
            type=match.kind,
            message=match.reason_text,
            severity="medium" if match.requires_manual_review else "low",
        )]
        return CategorizationResult(
            transaction_id=tx.id,
            category=None,
            confidence=match.confidence,
            reason="non_allowable",
            explanation=match.reason_text,
            hmrc_guidance=match.guidance,
            warnings=tuple(warnings),
            is_personal=True,
            requires_manual_review=(
                match.requires_manual_review or self._needs_review(match.confidence, warnings)
            ),
            income_source=income_source,
        )

    def _capital_result(
        self,
        tx: Transaction,
        match: CapitalMatch,
        income_source: IncomeSource,
    ) -> CategorizationResult:
        logger.debug(
            "[CATEGORIZE] %s: capital expenditure (%s trigger, '%s')",
            tx.id,
            match.trigger,
            match.keyword,
        )
        warnings = flag_potential_issues(tx, "capital_expenditure")
        return CategorizationResult(
            transaction_id=tx.id,
            category="capital_expenditure",
            confidence=match.confidence,
            reason="capital_expenditure",
            explanation=match.explanation,
            hmrc_guidance=match.recommendation,
            warnings=tuple(warnings),
            requires_manual_review=self._needs_review(match.confidence, warnings),
            income_source=income_source,
        )

    def apply_user_learning_data(self, user_id: str | None, description: str) -> LearningMatch:
        if not user_id:
            return LearningMatch()
        return self.learning_store.lookup(user_id, description)

    def learn_from_user_corrections(
        self,
        user_id: str,
        transaction: Transaction | Mapping[str, Any],
        original_category: str | None,
        corrected_category: str,
    ) -> None:
        tx = self.validate_transaction(transaction)
        if not user_id:
            raise ValidationError("A user id is required to learn corrections", tx.id)
        if not corrected_category:
            raise ValidationError("A corrected category is required", tx.id)
        self.learning_store.record_correction(user_id, tx, original_category, corrected_category)
        logger.info(
            "[LEARN] user=%s corrected '%s': %s -> %s",
            user_id,
            tx.description[:50],
            original_category,
            corrected_category,
        )

    def get_available_categories(
        self,
        business_type: str | None = None,
        income_source: IncomeSource | None = None,
    ) -> dict[str, dict[str, CategoryInfo]]:
        if income_source is None:
            income_source = "property" if business_type == "property" else "selfEmployment"
        allowed = get_categories_for_business_type(business_type)
        namespace = HMRC_CATEGORIES[income_source]
        return {
            section: {
                code: info
                for code, info in namespace[section].items()
                if allowed is None or code in allowed
            }
            for section in ("expenses", "income")
        }

    @staticmethod
    def detect_income_source(cleaned: str, options: CategorizeOptions | None = None) -> IncomeSource:
        if options is not None:
            if options.income_source:
                return options.income_source
            if options.business_type == "property":
                return "property"
        if any(contains_term(cleaned, term) for term in PROPERTY_INCOME_KEYWORDS):
            return "property"
        return "selfEmployment"

    @staticmethod
    def handle_mixed_use_expenses(cleaned: str, business_type: str | None) -> MixedUseAssessment:
        for use_type, indicators in MIXED_USE_INDICATORS.items():
            if first_matching_term(cleaned, indicators) is None:
                continue
            rule = get_business_type_rule(business_type)
            freelancer_rate, standard_rate = SUGGESTED_BUSINESS_PERCENTAGES.get(
                use_type, (DEFAULT_MIXED_USE_PERCENTAGE, DEFAULT_MIXED_USE_PERCENTAGE)
            )
            percentage = freelancer_rate if rule and rule.home_office_eligible else standard_rate
            return MixedUseAssessment(
                is_mixed_use=True,
                type=use_type,
                suggested_business_percentage=percentage,
                hmrc_guidance=MIXED_USE_GUIDANCE.get(use_type, DEFAULT_MIXED_USE_GUIDANCE),
                requires_apportionment=percentage < 100,
            )
        return MixedUseAssessment()

    @staticmethod
    def suggest_alternative_categories(
        category: str | None,
        ranked: list[KeywordScore],
    ) -> tuple[AlternativeCategory, ...]:
        alternatives: list[AlternativeCategory] = []
        seen = {category}
        for entry in ranked:
            if entry.category in seen:
                continue
            seen.add(entry.category)
            alternatives.append(AlternativeCategory(
                category=entry.category,
                confidence=round(entry.confidence, 2),
                reason=f"Also matched: {', '.join(entry.matched_keywords)}",
            ))
        for alternative in COMMON_ALTERNATIVES.get(category or "", ()):
            if alternative in seen:
                continue
            seen.add(alternative)
            alternatives.append(AlternativeCategory(
                category=alternative,
                confidence=COMMON_ALTERNATIVE_CONFIDENCE,
                reason="Common alternative category",
            ))
        return tuple(alternatives[:MAX_ALTERNATIVES])

    @staticmethod
    def explain_categorization_reason(
        category: str | None,
        income_source: IncomeSource | None = None,
        reason: str | None = None,
        transaction_type: TransactionType | None = None,
    ) -> str:
        info = get_category_info(category, income_source, transaction_type)
        if info is None:
            return FALLBACK_EXPLANATION
        explanation = (
            f"This transaction appears to be {info.description.lower()}. "
            f"{info.name} includes {info.description}."
        )
        if reason in {"user_learning", "similar_user_pattern"}:
            return f"Based on your previous corrections. {explanation}"
        return explanation
