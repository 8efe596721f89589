import asyncio
import math

from spend_categorizer.classifiers.base import BatchClassifier
from spend_categorizer.core import settings
from spend_categorizer.domain.categories import DEFAULT_CATEGORY, coerce_category, should_auto_apply
from spend_categorizer.domain.text import merchant_fingerprint, normalize_text
from spend_categorizer.errors import AdapterError, PersistenceError, ValidationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import (
    AIItem,
    AIRequest,
    BatchOutcome,
    CategorizationResult,
    Rule,
    Suggestion,
    Transaction,
)
from spend_categorizer.rules.catalog import RuleCatalog
from spend_categorizer.rules.matcher import match
from spend_categorizer.storage.base import TransactionRepository

from .merchant_cache import MerchantCache

logger = get_logger(__name__)


class CategorizationOrchestrator:
    """
    Resolves a batch of transactions from the cheapest source to the most
    expensive one: merchant cache, pattern rules, then a single AI call.

    Every transaction of the batch is counted exactly once in the returned
    outcome, including the ones whose write failed.
    """

    def __init__(
        self,
        catalog: RuleCatalog,
        cache: MerchantCache,
        repository: TransactionRepository,
        classifier: BatchClassifier | None = None,
        *,
        threshold: float | None = None,
        batch_limit: int | None = None,
        persist_concurrency: int | None = None,
        ai_timeout: float | None = None,
    ) -> None:
        self.catalog = catalog
        self.cache = cache
        self.repository = repository
        self.classifier = classifier
        self.threshold = settings.AUTO_APPLY_THRESHOLD if threshold is None else threshold
        self.batch_limit = batch_limit or settings.BATCH_LIMIT
        self.persist_concurrency = persist_concurrency or settings.PERSIST_CONCURRENCY
        self.ai_timeout = ai_timeout or settings.AI_TIMEOUT_SECONDS

    async def categorize(
        self,
        household_id: str,
        *,
        transactions: list[Transaction] | None = None,
        transaction_ids: list[str] | None = None,
        use_ai: bool = False,
    ) -> BatchOutcome:
        if not household_id or not str(household_id).strip():
            raise ValidationError("household_id is required")

        if transactions is None:
            batch = await self.repository.list_uncategorized(
                household_id,
                transaction_ids=transaction_ids,
                limit=self.batch_limit,
            )
        else:
            batch = list(transactions)

        outcome = BatchOutcome()
        if not batch:
            logger.info("[BATCH] Nothing to categorize for household %s", household_id)
            return outcome

        fingerprints = {tx.id: merchant_fingerprint(tx.description) for tx in batch}

        # 1. Merchant cache
        cached = self.cache.lookup(household_id, fingerprints.values())
        resolved: list[CategorizationResult] = []
        pending: list[Transaction] = []
        for tx in batch:
            entry = cached.get(fingerprints[tx.id])
            if entry is not None:
                resolved.append(CategorizationResult(
                    transaction_id=tx.id, category=entry.category, source="cache", confidence=entry.confidence,
                ))
            else:
                pending.append(tx)

        # 2. Rules
        unresolved: list[Transaction] = []
        if pending:
            rules = self.catalog.rules_for(household_id)
            for tx in pending:
                rule = match(normalize_text(tx.description), rules)
                if rule is None:
                    unresolved.append(tx)
                    continue
                resolved.append(CategorizationResult(
                    transaction_id=tx.id,
                    category=rule.category,
                    source="rule",
                    confidence=rule.confidence,
                    rule_id=rule.id,
                ))
                self._record_usage(rule)

        # 3. AI fallback
        if use_ai and unresolved:
            ai_results, unresolved = await self._classify_remaining(unresolved, outcome)
            resolved.extend(ai_results)

        # 4. Persist
        failures = await self._persist(resolved)
        for result in resolved:
            error = failures.get(result.transaction_id)
            if error:
                outcome.errors.append(error)
                outcome.remaining_uncategorized += 1
                continue
            self._count_applied(outcome, result)
            self._remember(household_id, fingerprints[result.transaction_id], result)

        outcome.remaining_uncategorized += len(unresolved)

        logger.info(
            "[BATCH] household=%s size=%d cache=%d rules=%d sent_to_ai=%d ai=%d remaining=%d errors=%d",
            household_id,
            len(batch),
            outcome.applied_by_cache,
            outcome.applied_by_rules,
            outcome.sent_to_ai,
            outcome.applied_by_ai,
            outcome.remaining_uncategorized,
            len(outcome.errors),
        )
        return outcome

    async def _classify_remaining(
        self,
        unresolved: list[Transaction],
        outcome: BatchOutcome,
    ) -> tuple[list[CategorizationResult], list[Transaction]]:
        if self.classifier is None:
            logger.warning("[AI] AI requested but no classifier is configured; %d items left as is.", len(unresolved))
            return [], unresolved

        request = AIRequest(items=[AIItem(id=tx.id, description=tx.description) for tx in unresolved])
        outcome.sent_to_ai = len(request.items)
        try:
            response = await asyncio.wait_for(
                self.classifier.classify_batch(request),
                timeout=self.ai_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("[AI] Classifier timed out after %.1fs", self.ai_timeout)
            outcome.errors.append(f"AI classifier timed out after {self.ai_timeout:.0f}s")
            return [], unresolved
        except AdapterError as e:
            logger.error("[AI] Classifier failed: %s", e)
            outcome.errors.append(f"AI classifier failed: {e}")
            return [], unresolved

        by_id = {tx.id: tx for tx in unresolved}
        applied: list[CategorizationResult] = []
        answered: set[str] = set()
        for item in response.categories:
            tx_id = str(item.id)
            tx = by_id.get(tx_id)
            if tx is None or tx_id in answered:
                continue
            answered.add(tx_id)
            category = coerce_category(item.category)
            if category == DEFAULT_CATEGORY:
                continue
            # NaN or infinite scores are never trusted.
            confidence = max(0.0, min(1.0, item.confidence)) if math.isfinite(item.confidence) else 0.0
            if should_auto_apply(confidence, self.threshold):
                applied.append(CategorizationResult(
                    transaction_id=tx_id, category=category, source="ai", confidence=confidence,
                ))
            else:
                outcome.suggestions.append(Suggestion(
                    transaction_id=tx_id,
                    description=tx.description,
                    category=category,
                    confidence=confidence,
                ))

        applied_ids = {result.transaction_id for result in applied}
        missing = len(by_id) - len(answered)
        if missing:
            logger.warning("[AI] Classifier skipped %d of %d items", missing, len(by_id))
        return applied, [tx for tx in unresolved if tx.id not in applied_ids]

    async def _persist(self, results: list[CategorizationResult]) -> dict[str, str]:
        semaphore = asyncio.Semaphore(self.persist_concurrency)

        async def write(result: CategorizationResult) -> str | None:
            async with semaphore:
                try:
                    await self.repository.update_category(result.transaction_id, result.category)
                except PersistenceError as e:
                    logger.error("[BATCH] Could not update transaction %s: %s", result.transaction_id, e)
                    return f"{result.transaction_id}: {e}"
            return None

        errors = await asyncio.gather(*(write(result) for result in results))
        return {
            result.transaction_id: error
            for result, error in zip(results, errors)
            if error
        }

    @staticmethod
    def _count_applied(outcome: BatchOutcome, result: CategorizationResult) -> None:
        if result.source == "cache":
            outcome.applied_by_cache += 1
        elif result.source == "rule":
            outcome.applied_by_rules += 1
        else:
            outcome.applied_by_ai += 1

    def _remember(self, household_id: str, fingerprint: str, result: CategorizationResult) -> None:
        if result.source == "cache":
            return
        if result.source == "rule" and not should_auto_apply(result.confidence, self.threshold):
            return
        self.cache.set(household_id, fingerprint, result.category, result.confidence, result.source)

    def _record_usage(self, rule: Rule) -> None:
        try:
            self.catalog.record_usage(rule)
        except PersistenceError as e:
            logger.warning("[RULES] Could not record usage of rule %s: %s", rule.id, e)
