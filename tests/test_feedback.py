from unittest.mock import MagicMock

import pytest

from spend_categorizer.errors import ConfigurationError, PersistenceError, ValidationError
from spend_categorizer.models import CategoryRecord, ManualCorrection, Rule, Transaction
from spend_categorizer.rules.catalog import RuleCatalog
from spend_categorizer.rules.kits import get_kit
from spend_categorizer.services.feedback import LearningFeedback, pick_keyword
from spend_categorizer.services.merchant_cache import MerchantCache
from spend_categorizer.services.seeding import seed_category_rules
from spend_categorizer.services.suggestions import suggest_rules
from spend_categorizer.storage.json_store import JsonCacheStore, JsonCategoryStore, JsonRuleStore


@pytest.fixture
def rule_store(tmp_path):
    return JsonRuleStore(data_path=str(tmp_path / "rules.json"))


@pytest.fixture
def feedback(tmp_path, rule_store):
    cache = MerchantCache(JsonCacheStore(data_path=str(tmp_path / "merchant_cache.json")))
    return LearningFeedback(RuleCatalog(rule_store), cache)


def _correction(description: str, category: str = "health", household_id: str = "h1") -> ManualCorrection:
    return ManualCorrection(
        transaction_id="t1",
        description=description,
        new_category=category,
        household_id=household_id,
    )


def test_pick_keyword_prefers_longest_then_last() -> None:
    assert pick_keyword("Clinica Vetor Sorriso 123456") == "sorriso"
    assert pick_keyword("ABCD EFGH") == "efgh"
    assert pick_keyword("PIX 12 ab") is None


def test_correction_writes_cache_and_rule(feedback):
    outcome = feedback.learn_from_correction(_correction("Clinica Vetor Sorriso 123456"))

    assert outcome.cache_written is True
    assert outcome.fingerprint == "clinica vetor sorriso"
    assert feedback.cache.get("h1", [outcome.fingerprint]) == {"clinica vetor sorriso": "health"}
    entry = feedback.cache.store.get_many("h1", [outcome.fingerprint])[0]
    assert entry.confidence == 1.0
    assert entry.source == "manual"

    rule = outcome.rule_created
    assert rule is not None
    assert rule.pattern == "SORRISO"
    assert rule.match_type == "contains"
    assert rule.household_id == "h1"


def test_correction_is_idempotent(feedback):
    feedback.learn_from_correction(_correction("Clinica Vetor Sorriso"))
    second = feedback.learn_from_correction(_correction("Clinica Vetor Sorriso"))

    assert second.rule_created is None
    assert len(feedback.catalog.household_rules("h1")) == 1


def test_recorrection_moves_rule_to_new_category(feedback):
    feedback.learn_from_correction(_correction("Clinica Vetorial", category="health"))
    second = feedback.learn_from_correction(_correction("Clinica Vetorial", category="education"))

    assert second.rule_created is not None
    assert second.rule_created.category == "education"
    rules = feedback.catalog.household_rules("h1")
    assert [(r.pattern, r.category, r.active) for r in rules] == [("VETORIAL", "education", True)]


def test_recorrection_disables_conflicting_rules(feedback):
    catalog = feedback.catalog
    catalog.create_rule("h1", pattern="VETORIAL", category="health")
    catalog.create_rule("h1", pattern="vetorial", category="leisure")
    catalog.create_rule("h1", pattern="VETORIAL", category="education", active=False)

    outcome = feedback.learn_from_correction(_correction("Clinica Vetorial", category="education"))

    assert outcome.rule_created is None
    active = [(r.pattern, r.category) for r in catalog.household_rules("h1") if r.active]
    assert active == [("VETORIAL", "education")]


def test_correction_requires_household(feedback):
    with pytest.raises(ValidationError):
        feedback.learn_from_correction(_correction("Clinica Vetor", household_id=""))
    with pytest.raises(ValidationError):
        feedback.learn_from_correction(_correction("Clinica Vetor", category="groceries"))


def test_correction_without_rule(feedback):
    outcome = feedback.learn_from_correction(_correction("Clinica Vetor"), derive_rule=False)
    assert outcome.rule_created is None
    assert feedback.catalog.household_rules("h1") == []


def test_seed_is_idempotent(tmp_path, rule_store):
    categories = JsonCategoryStore(data_path=str(tmp_path / "categories.json"))

    first = seed_category_rules(categories, rule_store)
    assert first.categories_processed == 8
    assert first.errors == []
    assert first.rules_inserted == sum(len(get_kit(c.slug)) for c in categories.list_categories())

    count = len(rule_store.list_global())
    second = seed_category_rules(categories, rule_store)
    assert second.rules_inserted == first.rules_inserted
    assert len(rule_store.list_global()) == count


def test_seed_resolves_kits_by_name(rule_store):
    categories = MagicMock()
    categories.list_categories.return_value = [CategoryRecord(id="c-42", name="Farmácia e Saúde")]

    result = seed_category_rules(categories, rule_store)

    assert result.categories_processed == 1
    assert {rule.category for rule in rule_store.list_global()} == {"health"}


def test_seed_without_categories(rule_store):
    categories = MagicMock()
    categories.list_categories.return_value = []

    result = seed_category_rules(categories, rule_store)

    assert result.categories_processed == 0
    assert result.rules_inserted == 0
    assert len(result.errors) == 1


def test_seed_checks_kit_sizes(rule_store):
    categories = MagicMock()
    with pytest.raises(ConfigurationError):
        seed_category_rules(categories, rule_store, min_patterns=10_000)
    categories.list_categories.assert_not_called()


def test_seed_records_per_rule_errors():
    categories = MagicMock()
    categories.list_categories.return_value = [CategoryRecord(id="food", name="Alimentação", slug="food")]
    store = MagicMock()
    store.upsert_global.side_effect = PersistenceError("read only")

    result = seed_category_rules(categories, store)

    assert result.rules_inserted == 0
    assert result.categories_processed == 1
    assert len(result.errors) == len(get_kit("food"))


def test_suggest_rules():
    transactions = [
        Transaction(id=str(i), household_id="h1", description=f"Vetorial Servicos {i}", category="health")
        for i in range(3)
    ]
    transactions.append(Transaction(id="x", household_id="h1", description="Vetorial", category="bills"))
    existing = [Rule(id="r1", household_id="h1", pattern="SERVICOS", category="health")]

    suggestions = suggest_rules(transactions, existing)

    assert [(s.pattern, s.category, s.occurrences) for s in suggestions] == [("VETORIAL", "health", 3)]
