import os

from spend_categorizer.classifiers.base import BatchClassifier
from spend_categorizer.classifiers.llm import LLMBatchClassifier
from spend_categorizer.classifiers.remote import RemoteBatchClassifier
from spend_categorizer.core import settings
from spend_categorizer.domain.categories import is_known_category
from spend_categorizer.errors import ValidationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import BatchOutcome, FeedbackOutcome, ManualCorrection, SeedResult
from spend_categorizer.rules.catalog import RuleCatalog
from spend_categorizer.services.feedback import LearningFeedback
from spend_categorizer.services.merchant_cache import MerchantCache
from spend_categorizer.services.orchestrator import CategorizationOrchestrator
from spend_categorizer.services.seeding import seed_category_rules
from spend_categorizer.services.suggestions import RuleSuggestion, suggest_rules
from spend_categorizer.storage.json_store import (
    JsonCacheStore,
    JsonCategoryStore,
    JsonRuleStore,
    JsonTransactionRepository,
)

logger = get_logger(__name__)


def build_classifier() -> BatchClassifier | None:
    endpoint_url = os.getenv("AI_ENDPOINT_URL")
    if endpoint_url:
        logger.info(f"Remote AI classifier enabled: endpoint={endpoint_url}")
        return RemoteBatchClassifier(
            endpoint_url=endpoint_url,
            token=os.getenv("AI_ENDPOINT_TOKEN"),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        base_url = os.getenv("OPENAI_BASE_URL")
        logger.info(f"LLM classifier enabled: model={model}, base_url={base_url or 'default'}")
        return LLMBatchClassifier(api_key=api_key, model=model, base_url=base_url)

    logger.warning("Neither AI_ENDPOINT_URL nor OPENAI_API_KEY set. AI fallback disabled.")
    return None


class CategorizerService:
    def __init__(self,
                 data_dir: str = ".",
                 classifier: BatchClassifier | None = None):

        self.rule_store = JsonRuleStore(os.path.join(data_dir, "rules.json"))
        self.cache_store = JsonCacheStore(os.path.join(data_dir, "merchant_cache.json"))
        self.repository = JsonTransactionRepository(os.path.join(data_dir, "transactions.json"))
        self.category_store = JsonCategoryStore(os.path.join(data_dir, "categories.json"))

        self.catalog = RuleCatalog(self.rule_store)
        self.cache = MerchantCache(self.cache_store)
        self.classifier = classifier
        self.orchestrator = CategorizationOrchestrator(
            self.catalog,
            self.cache,
            self.repository,
            classifier,
        )
        self.feedback = LearningFeedback(self.catalog, self.cache)

    async def categorize(
        self,
        household_id: str,
        *,
        transaction_ids: list[str] | None = None,
        use_ai: bool = False,
    ) -> BatchOutcome:
        return await self.orchestrator.categorize(
            household_id,
            transaction_ids=transaction_ids,
            use_ai=use_ai,
        )

    async def correct(self, correction: ManualCorrection) -> FeedbackOutcome:
        """
        Apply a user's category change to the transaction, then learn from it.
        """
        transaction = await self.repository.get(correction.transaction_id)
        if transaction is None or transaction.household_id != correction.household_id:
            raise ValidationError(f"Transaction {correction.transaction_id} not found")
        if not is_known_category(correction.new_category):
            raise ValidationError(f"Unknown category '{correction.new_category}'")
        await self.repository.update_category(correction.transaction_id, correction.new_category)
        return self.feedback.learn_from_correction(correction)

    async def suggest_rules(self, household_id: str) -> list[RuleSuggestion]:
        transactions = await self.repository.list_categorized(household_id, limit=settings.BATCH_LIMIT)
        return suggest_rules(transactions, self.catalog.household_rules(household_id))

    def seed(self) -> SeedResult:
        return seed_category_rules(self.category_store, self.rule_store)

    def clear_cache(self, household_id: str | None) -> int:
        return self.cache.clear(household_id)

    async def aclose(self) -> None:
        if self.classifier is not None:
            await self.classifier.aclose()
