from spend_categorizer.domain.categories import is_known_category
from spend_categorizer.domain.text import merchant_fingerprint, significant_words
from spend_categorizer.errors import ValidationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import FeedbackOutcome, ManualCorrection, Rule
from spend_categorizer.rules.catalog import DEFAULT_HOUSEHOLD_PRIORITY, RuleCatalog
from spend_categorizer.rules.matcher import normalized_pattern

from .merchant_cache import MerchantCache

logger = get_logger(__name__)

LEARNED_RULE_CONFIDENCE = 0.95
MIN_KEYWORD_LENGTH = 4


def pick_keyword(description: str | None) -> str | None:
    """Longest significant word; the last one wins among equal lengths."""
    best: str | None = None
    for word in significant_words(description, MIN_KEYWORD_LENGTH):
        if best is None or len(word) >= len(best):
            best = word
    return best


class LearningFeedback:
    def __init__(self, catalog: RuleCatalog, cache: MerchantCache):
        self.catalog = catalog
        self.cache = cache

    def learn_from_correction(self, correction: ManualCorrection, *, derive_rule: bool = True) -> FeedbackOutcome:
        household_id = correction.household_id
        if not household_id or not household_id.strip():
            raise ValidationError("household_id is required")
        if not is_known_category(correction.new_category):
            raise ValidationError(f"Unknown category '{correction.new_category}'")

        fingerprint = merchant_fingerprint(correction.description)
        cache_written = self.cache.set(
            household_id,
            fingerprint,
            correction.new_category,
            confidence=1.0,
            source="manual",
        )

        rule = None
        if derive_rule:
            rule = self._derive_rule(household_id, correction.description, correction.new_category)

        logger.info(
            "[LEARN] household=%s tx=%s '%s' -> %s (cache=%s, rule=%s)",
            household_id,
            correction.transaction_id,
            fingerprint,
            correction.new_category,
            cache_written,
            rule.pattern if rule else None,
        )
        return FeedbackOutcome(fingerprint=fingerprint, cache_written=cache_written, rule_created=rule)

    def _derive_rule(self, household_id: str, description: str, category: str) -> Rule | None:
        keyword = pick_keyword(description)
        if keyword is None:
            return None
        same_word = [
            rule for rule in self.catalog.household_rules(household_id)
            if normalized_pattern(rule.pattern) == keyword
        ]
        current = [rule for rule in same_word if rule.category == category]
        # At most one active household rule per word: the latest correction.
        stale = [rule for rule in same_word if rule.category != category and rule.active]

        if current:
            for rule in stale:
                self.catalog.update_rule(household_id, rule.id, active=False)
            if not current[0].active:
                self.catalog.update_rule(household_id, current[0].id, active=True)
            logger.debug("[LEARN] Rule '%s' -> %s already exists", keyword, category)
            return None

        if stale:
            for rule in stale[1:]:
                self.catalog.update_rule(household_id, rule.id, active=False)
            previous = stale[0]
            updated = self.catalog.update_rule(household_id, previous.id, category=category)
            logger.info("[LEARN] Rule '%s' moved %s -> %s", previous.pattern, previous.category, category)
            return updated

        return self.catalog.create_rule(
            household_id,
            pattern=keyword.upper(),
            category=category,
            match_type="contains",
            priority=DEFAULT_HOUSEHOLD_PRIORITY,
            confidence=LEARNED_RULE_CONFIDENCE,
        )
