import datetime as dt
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

TransactionType = Literal["income", "expense"]
IncomeSource = Literal["selfEmployment", "property"]
Severity = Literal["low", "medium", "high"]


class _CamelModel(BaseModel):
    # Spreadsheet rows and downstream reports use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Transaction(_CamelModel):
    id: str
    description: str
    amount: Decimal = Field(gt=0)
    transaction_type: TransactionType
    date: dt.date | None = None
    category: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("id", "description")
    @classmethod
    def _require_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("transaction_type", mode="before")
    @classmethod
    def _lower_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> Any:
        if isinstance(value, dt.datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            try:
                return dt.datetime.fromisoformat(value.replace("Z", "+00:00")).date()
            except ValueError:
                return value
        return value


class CategorizeOptions(_CamelModel):
    business_type: str | None = None
    income_source: IncomeSource | None = None
    user_id: str | None = None


class AlternativeCategory(_FrozenCamelModel):
    category: str
    confidence: float
    reason: str


class Issue(_FrozenCamelModel):
    type: str
    message: str
    severity: Severity
    category: str | None = None
    ratio: float | None = None


class MixedUseAssessment(_FrozenCamelModel):
    is_mixed_use: bool = False
    type: str | None = None
    suggested_business_percentage: int | None = None
    hmrc_guidance: str | None = None
    requires_apportionment: bool = False


class CategorizationResult(_FrozenCamelModel):
    transaction_id: str | None = None
    category: str | None
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    explanation: str = ""
    hmrc_guidance: str | None = None
    alternatives: tuple[AlternativeCategory, ...] = Field(default=(), max_length=3)
    warnings: tuple[Issue, ...] = ()
    mixed_use: MixedUseAssessment = Field(default_factory=MixedUseAssessment)
    is_personal: bool = False
    requires_manual_review: bool = False
    income_source: IncomeSource | None = None
    business_rules: tuple[str, ...] = ()
    source: str = "rules"  # "rules", "user_learning", "ai", "error"
    error: str | None = None


class LearningMatch(BaseModel):
    category: str | None = None
    confidence: float = 0.0
    reason: str | None = None
    similarity: float | None = None


class LearnedPattern(BaseModel):
    category: str
    confidence: float
    last_used: dt.datetime


class CorrectionRecord(BaseModel):
    description: str
    amount: Decimal
    category: str | None = None
    original_category: str | None = None
    corrected_category: str
    timestamp: dt.datetime


class UserLearningEntry(BaseModel):
    corrections: list[CorrectionRecord] = Field(default_factory=list)
    patterns: dict[str, LearnedPattern] = Field(default_factory=dict)


class AIRequest(_FrozenCamelModel):
    prompt: str
    business_type: str
    timeout_ms: int


class BatchSummary(_CamelModel):
    total: int = 0
    successful: int = 0
    personal: int = 0
    errors: int = 0
    manual_review: int = 0
    ai_categorized: int = 0
    cache_hits: int = 0


class ConfidenceAnalysis(_CamelModel):
    average: float = 0.0
    low_confidence_count: int = 0
    distribution: dict[str, int] = Field(default_factory=dict)
    total: int = 0


class BatchOutcome(_CamelModel):
    business_type: str | None = None
    results: list[CategorizationResult] = Field(default_factory=list)
    summary: BatchSummary = Field(default_factory=BatchSummary)
    confidence: ConfidenceAnalysis = Field(default_factory=ConfidenceAnalysis)
    category_totals: dict[str, Decimal] = Field(default_factory=dict)
    cancelled: bool = False
    processing_seconds: float = 0.0


class ReasonablenessSummary(_CamelModel):
    total_expenses: Decimal
    total_income: Decimal
    net_profit: Decimal


class ReasonablenessReport(_CamelModel):
    expense_to_income_ratio: float
    issues: list[Issue] = Field(default_factory=list)
    summary: ReasonablenessSummary
