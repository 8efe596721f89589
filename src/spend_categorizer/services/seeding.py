from spend_categorizer.core import settings
from spend_categorizer.errors import PersistenceError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import CategoryRecord, Rule, SeedResult
from spend_categorizer.rules.kits import Kit, ensure_min_patterns_per_kit, get_kit, infer_kit
from spend_categorizer.storage.base import CategoryStore, RuleStore

logger = get_logger(__name__)

MAX_RULE_NAME_LENGTH = 200


def resolve_kit(category: CategoryRecord) -> Kit:
    for key in (category.slug, category.id):
        kit = get_kit(key) if key else None
        if kit is not None:
            return kit
    return infer_kit(category.name)


def seed_category_rules(
    category_store: CategoryStore,
    rule_store: RuleStore,
    *,
    min_patterns: int | None = None,
) -> SeedResult:
    """
    Upsert every kit pattern as a global rule, once per stored category.

    Safe to run repeatedly: rules are keyed by category, match type and
    pattern, so a second run rewrites the same rows.
    """
    result = SeedResult()
    ensure_min_patterns_per_kit(settings.RULE_KIT_MIN_PATTERNS if min_patterns is None else min_patterns)

    categories = category_store.list_categories()
    if not categories:
        result.errors.append("No categories found; create the category table before seeding.")
        logger.error("[SEED] %s", result.errors[-1])
        return result

    with rule_store.bulk():
        for category in categories:
            kit = resolve_kit(category)
            logger.info("[SEED] Category '%s' -> kit '%s' (%d patterns)", category.name, kit.category, len(kit))
            for item in kit.patterns:
                rule = Rule(
                    id="",
                    household_id=None,
                    name=item.pattern[:MAX_RULE_NAME_LENGTH],
                    pattern=item.pattern,
                    match_type="contains",
                    category=kit.category,
                    priority=item.priority,
                    confidence=item.confidence,
                    scope="builtin",
                )
                try:
                    rule_store.upsert_global(rule)
                except PersistenceError as e:
                    result.errors.append(f"{category.id}: {item.pattern[:30]}... - {e}")
                    continue
                result.rules_inserted += 1
            result.categories_processed += 1

    logger.info(
        "[SEED] Done: %d categories, %d rules, %d errors",
        result.categories_processed,
        result.rules_inserted,
        len(result.errors),
    )
    return result
