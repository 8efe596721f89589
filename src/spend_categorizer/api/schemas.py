from pydantic import Field

from spend_categorizer.models import CamelModel, MatchType
from spend_categorizer.rules.catalog import DEFAULT_HOUSEHOLD_PRIORITY


class CategorizeRequest(CamelModel):
    household_id: str
    transaction_ids: list[str] | None = None
    use_ai: bool = Field(default=False, alias="useAI")


class RuleCreateRequest(CamelModel):
    household_id: str
    pattern: str
    category: str
    match_type: MatchType = "contains"
    priority: int = DEFAULT_HOUSEHOLD_PRIORITY
    confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    name: str | None = None


class RuleUpdateRequest(CamelModel):
    household_id: str
    name: str | None = None
    pattern: str | None = None
    match_type: MatchType | None = None
    category: str | None = None
    priority: int | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    active: bool | None = None


class CacheClearResponse(CamelModel):
    removed: int
