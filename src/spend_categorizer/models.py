from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MatchType = Literal["contains", "startsWith", "exact"]
RuleScope = Literal["builtin", "household"]
ResultSource = Literal["cache", "rule", "ai"]
CacheSource = Literal["manual", "rule", "ai"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Accepts and emits camelCase on the wire, snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Transaction(BaseModel):
    id: str
    household_id: str
    description: str = ""
    amount: float | None = None
    date: datetime | None = None
    category: str = "other"


class Rule(BaseModel):
    id: str
    household_id: str | None = None # None for global rules
    name: str = ""
    pattern: str
    match_type: MatchType = "contains"
    category: str
    priority: int = 50
    confidence: float = Field(default=0.85, ge=0.0, le=1.0)
    scope: RuleScope = "household"
    active: bool = True
    times_applied: int = 0
    position: int = 0 # insertion index, final tie-break
    created_at: datetime = Field(default_factory=utcnow)


class CacheEntry(BaseModel):
    household_id: str
    fingerprint: str
    category: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    source: CacheSource = "manual"
    hits: int = 0
    last_seen: datetime = Field(default_factory=utcnow)


class CategoryRecord(BaseModel):
    id: str
    name: str
    slug: str | None = None


class CategorizationResult(BaseModel):
    transaction_id: str
    category: str
    source: ResultSource
    confidence: float
    rule_id: str | None = None


class Suggestion(CamelModel):
    transaction_id: str
    description: str
    category: str
    confidence: float


class BatchOutcome(CamelModel):
    applied_by_cache: int = 0
    applied_by_rules: int = 0
    sent_to_ai: int = Field(default=0, alias="sentToAI")
    applied_by_ai: int = Field(default=0, alias="appliedByAI")
    remaining_uncategorized: int = 0
    errors: list[str] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            self.applied_by_cache
            + self.applied_by_rules
            + self.applied_by_ai
            + self.remaining_uncategorized
        )


class ManualCorrection(CamelModel):
    transaction_id: str
    description: str
    new_category: str
    household_id: str


class FeedbackOutcome(CamelModel):
    fingerprint: str
    cache_written: bool
    rule_created: Rule | None = None


class SeedResult(CamelModel):
    categories_processed: int = 0
    rules_inserted: int = 0
    errors: list[str] = Field(default_factory=list)


class AIItem(BaseModel):
    id: str
    description: str


class AIRequest(BaseModel):
    items: list[AIItem]


class AICategory(BaseModel):
    id: str | int
    category: str | None = None
    # Providers that omit a score are trusted at the auto-apply level.
    confidence: float = 0.85


class AIResponse(BaseModel):
    categories: list[AICategory] = Field(default_factory=list)
