from datetime import datetime
from unittest.mock import MagicMock

import pytest

from spend_categorizer.errors import PersistenceError, ReadOnlyRuleError, RuleNotFoundError, ValidationError
from spend_categorizer.models import CacheEntry, Rule, Transaction
from spend_categorizer.rules.catalog import DEFAULT_HOUSEHOLD_PRIORITY, RuleCatalog
from spend_categorizer.rules.kits import built_in_rules
from spend_categorizer.services.merchant_cache import MerchantCache
from spend_categorizer.storage.json_store import (
    JsonCacheStore,
    JsonCategoryStore,
    JsonRuleStore,
    JsonTransactionRepository,
)


@pytest.fixture
def rule_store(tmp_path):
    return JsonRuleStore(data_path=str(tmp_path / "rules.json"))


@pytest.fixture
def cache_store(tmp_path):
    return JsonCacheStore(data_path=str(tmp_path / "merchant_cache.json"))


def test_rule_store_persists_and_assigns_positions(rule_store):
    first = rule_store.add(Rule(id="", household_id="h1", pattern="ACME", category="food"))
    second = rule_store.add(Rule(id="", household_id="h1", pattern="QZX", category="bills"))
    assert first.id and second.id and first.id != second.id
    assert second.position == first.position + 1

    reloaded = JsonRuleStore(data_path=rule_store.file.data_path)
    assert {r.pattern for r in reloaded.list_household("h1")} == {"ACME", "QZX"}
    assert reloaded.list_global() == []


def test_upsert_global_does_not_duplicate(rule_store):
    rule = Rule(id="", pattern="ACME", category="food", priority=80, confidence=0.9, scope="builtin")
    rule_store.upsert_global(rule)
    rule_store.upsert_global(rule.model_copy(update={"pattern": "acme", "priority": 70}))
    stored = rule_store.list_global()
    assert len(stored) == 1
    assert stored[0].priority == 70


def test_bulk_defers_writes(rule_store, tmp_path):
    with rule_store.bulk():
        rule_store.add(Rule(id="", pattern="ACME", category="food"))
        assert not (tmp_path / "rules.json").exists()
    assert (tmp_path / "rules.json").exists()


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "merchant_cache.json"
    path.write_text("{not json")
    store = JsonCacheStore(data_path=str(path))
    assert store.get_many("h1", ["acme"]) == []


def test_cache_store_last_write_wins(cache_store):
    cache_store.upsert(CacheEntry(household_id="h1", fingerprint="acme", category="food"))
    cache_store.upsert(CacheEntry(household_id="h1", fingerprint="acme", category="bills"))
    cache_store.upsert(CacheEntry(household_id="h2", fingerprint="acme", category="health"))

    entries = cache_store.get_many("h1", ["acme", "missing"])
    assert [e.category for e in entries] == ["bills"]
    assert cache_store.clear("h1") == 1
    assert cache_store.get_many("h2", ["acme"])[0].category == "health"


def test_merchant_cache_skips_empty_fingerprints(cache_store):
    cache = MerchantCache(cache_store)
    assert cache.set("h1", "", "food", 1.0, "manual") is False
    assert cache.set("h1", "acme", "food", 1.0, "manual") is True
    assert cache.get("h1", ["", "acme"]) == {"acme": "food"}
    assert cache.get("h1", [""]) == {}


def test_merchant_cache_swallows_storage_errors():
    store = MagicMock()
    store.get_many.side_effect = PersistenceError("disk gone")
    store.upsert.side_effect = PersistenceError("disk gone")
    cache = MerchantCache(store)

    assert cache.get("h1", ["acme"]) == {}
    assert cache.set("h1", "acme", "food", 1.0, "manual") is False



def test_merchant_cache_counts_hits(cache_store):
    cache = MerchantCache(cache_store)
    cache.set("h1", "acme", "food", 0.9, "rule")
    before = cache_store.get_many("h1", ["acme"])[0]
    assert before.hits == 0

    assert cache.get("h1", ["acme", "missing"]) == {"acme": "food"}
    entry = cache.lookup("h1", ["acme"])["acme"]
    assert entry.confidence == 0.9
    assert entry.source == "rule"

    stored = cache_store.get_many("h1", ["acme"])[0]
    assert stored.hits == 2
    assert stored.last_seen >= before.last_seen
    assert JsonCacheStore(data_path=cache_store.file.data_path).get_many("h1", ["acme"])[0].hits == 2

    cache.set("h1", "acme", "bills", 1.0, "manual")
    assert cache_store.get_many("h1", ["acme"])[0].hits == 2


def test_merchant_cache_clear_requires_household(cache_store):
    cache = MerchantCache(cache_store)
    cache.set("h1", "acme", "food", 1.0, "manual")
    cache.set("h2", "acme", "food", 1.0, "manual")

    for household_id in (None, "", "  "):
        with pytest.raises(ValidationError):
            cache.clear(household_id)
    assert cache.clear("h1") == 1
    assert cache.get("h2", ["acme"]) == {"acme": "food"}

@pytest.mark.anyio
async def test_transaction_repository(tmp_path):
    repo = JsonTransactionRepository(data_path=str(tmp_path / "transactions.json"))
    repo.add(Transaction(id="t1", household_id="h1", description="a", date=datetime(2024, 1, 1)))
    repo.add(Transaction(id="t2", household_id="h1", description="b", date=datetime(2024, 3, 1)))
    repo.add(Transaction(id="t3", household_id="h1", description="c", category="food"))
    repo.add(Transaction(id="t4", household_id="h2", description="d"))

    pending = await repo.list_uncategorized("h1")
    assert [tx.id for tx in pending] == ["t2", "t1"]
    assert [tx.id for tx in await repo.list_uncategorized("h1", transaction_ids=["t1"])] == ["t1"]
    assert [tx.id for tx in await repo.list_uncategorized("h1", limit=1)] == ["t2"]
    assert [tx.id for tx in await repo.list_categorized("h1")] == ["t3"]

    await repo.update_category("t1", "bills")
    reloaded = JsonTransactionRepository(data_path=str(tmp_path / "transactions.json"))
    assert (await reloaded.get("t1")).category == "bills"

    with pytest.raises(PersistenceError):
        await repo.update_category("missing", "food")


def test_category_store_defaults(tmp_path):
    categories = JsonCategoryStore(data_path=str(tmp_path / "categories.json")).list_categories()
    assert len(categories) == 8
    assert {c.slug for c in categories} >= {"food", "other"}


def test_catalog_falls_back_to_built_ins(rule_store):
    catalog = RuleCatalog(rule_store)
    assert len(catalog.rules_for("h1")) == len(built_in_rules())

    rule_store.upsert_global(Rule(id="", pattern="ACME", category="food", scope="builtin"))
    assert [r.pattern for r in catalog.rules_for("h1")] == ["ACME"]


def test_catalog_household_rules(rule_store):
    catalog = RuleCatalog(rule_store)
    rule = catalog.create_rule("h1", pattern="Acme", category="food")
    assert rule.priority == DEFAULT_HOUSEHOLD_PRIORITY
    assert rule in catalog.rules_for("h1")
    assert all(r.id != rule.id for r in catalog.rules_for("h2"))

    updated = catalog.update_rule("h1", rule.id, category="bills")
    assert updated.category == "bills"

    with pytest.raises(RuleNotFoundError):
        catalog.update_rule("h2", rule.id, category="food")

    catalog.delete_rule("h1", rule.id)
    assert catalog.household_rules("h1") == []


def test_catalog_rejects_bad_input(rule_store):
    catalog = RuleCatalog(rule_store)
    with pytest.raises(ValidationError):
        catalog.create_rule("", pattern="Acme", category="food")
    with pytest.raises(ValidationError):
        catalog.create_rule("h1", pattern="***", category="food")
    with pytest.raises(ValidationError):
        catalog.create_rule("h1", pattern="Acme", category="groceries")


def test_catalog_global_rules_are_read_only(rule_store):
    catalog = RuleCatalog(rule_store)
    seeded = rule_store.upsert_global(Rule(id="", pattern="ACME", category="food", scope="builtin"))

    with pytest.raises(ReadOnlyRuleError):
        catalog.update_rule("h1", seeded.id, priority=1)
    with pytest.raises(ReadOnlyRuleError):
        catalog.delete_rule("h1", seeded.id)
    with pytest.raises(ReadOnlyRuleError):
        catalog.delete_rule("h1", "builtin:food:000")
