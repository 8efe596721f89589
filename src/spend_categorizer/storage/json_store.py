import json
import os
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from spend_categorizer.domain.categories import DEFAULT_CATEGORY
from spend_categorizer.errors import PersistenceError, RuleNotFoundError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import CacheEntry, CategoryRecord, Rule, Transaction, utcnow
from spend_categorizer.rules.matcher import normalized_pattern

from .base import CacheStore, CategoryStore, RuleStore, TransactionRepository

logger = get_logger(__name__)

DEFAULT_CATEGORIES = (
    CategoryRecord(id="bills", name="Contas Fixas", slug="bills"),
    CategoryRecord(id="food", name="Alimentação", slug="food"),
    CategoryRecord(id="leisure", name="Lazer", slug="leisure"),
    CategoryRecord(id="shopping", name="Compras", slug="shopping"),
    CategoryRecord(id="transport", name="Transporte", slug="transport"),
    CategoryRecord(id="health", name="Saúde", slug="health"),
    CategoryRecord(id="education", name="Educação", slug="education"),
    CategoryRecord(id="other", name="Outros", slug="other"),
)


class JsonFile:
    def __init__(self, data_path: str, default: Any):
        self.data_path = data_path
        self.default = default

    def load(self) -> Any:
        if not os.path.exists(self.data_path):
            return self.default()
        try:
            with open(self.data_path, encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError:
            logger.warning("[STORE] %s is not valid JSON, starting empty.", self.data_path)
            return self.default()
        except OSError as e:
            raise PersistenceError(f"Cannot read {self.data_path}: {e}") from e

    def save(self, data: Any) -> None:
        tmp_path = f"{self.data_path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.data_path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.data_path}: {e}") from e


def _global_key(rule: Rule) -> tuple[str, str, str]:
    return (rule.category, rule.match_type, normalized_pattern(rule.pattern))


class JsonRuleStore(RuleStore):
    def __init__(self, data_path: str = "rules.json"):
        self.file = JsonFile(data_path, default=dict)
        self.rules: dict[str, Rule] = {}
        self.global_index: dict[tuple[str, str, str], str] = {}
        self.next_position = 0
        self._deferred = False
        self._dirty = False
        self.load()

    def load(self) -> None:
        raw = self.file.load()
        self.rules = {item["id"]: Rule.model_validate(item) for item in raw.get("rules", [])}
        self.next_position = raw.get("next_position", len(self.rules))
        self.global_index = {
            _global_key(rule): rule.id for rule in self.rules.values() if rule.household_id is None
        }

    def save(self) -> None:
        if self._deferred:
            self._dirty = True
            return
        self.file.save({
            "next_position": self.next_position,
            "rules": [rule.model_dump(mode="json") for rule in self.rules.values()],
        })

    @contextmanager
    def bulk(self) -> Iterator[None]:
        self._deferred = True
        try:
            yield
        finally:
            self._deferred = False
            if self._dirty:
                self._dirty = False
                self.save()

    def list_global(self) -> list[Rule]:
        return [r.model_copy() for r in self.rules.values() if r.household_id is None]

    def list_household(self, household_id: str) -> list[Rule]:
        return [r.model_copy() for r in self.rules.values() if r.household_id == household_id]

    def get(self, rule_id: str) -> Rule | None:
        rule = self.rules.get(rule_id)
        return rule.model_copy() if rule else None

    def add(self, rule: Rule) -> Rule:
        stored = rule.model_copy(update={
            "id": rule.id or uuid.uuid4().hex,
            "position": self.next_position,
        })
        self.next_position += 1
        self.rules[stored.id] = stored
        if stored.household_id is None:
            self.global_index[_global_key(stored)] = stored.id
        self.save()
        return stored.model_copy()

    def upsert_global(self, rule: Rule) -> Rule:
        existing_id = self.global_index.get(_global_key(rule))
        existing = self.rules.get(existing_id) if existing_id else None
        if existing is None:
            return self.add(rule.model_copy(update={"household_id": None}))
        updated = existing.model_copy(update={
            "name": rule.name,
            "priority": rule.priority,
            "confidence": rule.confidence,
            "active": True,
        })
        self.rules[existing.id] = updated
        self.save()
        return updated.model_copy()

    def update(self, rule: Rule) -> Rule:
        previous = self.rules.get(rule.id)
        if previous is None:
            raise RuleNotFoundError(f"Rule {rule.id} not found")
        self.rules[rule.id] = rule.model_copy()
        if previous.household_id is None:
            self.global_index.pop(_global_key(previous), None)
            self.global_index[_global_key(rule)] = rule.id
        self.save()
        return rule

    def delete(self, rule_id: str) -> bool:
        rule = self.rules.pop(rule_id, None)
        if rule is None:
            return False
        if rule.household_id is None:
            self.global_index.pop(_global_key(rule), None)
        self.save()
        return True

    def increment_usage(self, rule_id: str) -> None:
        rule = self.rules.get(rule_id)
        if rule is None:
            return
        rule.times_applied += 1
        self.save()


class JsonCacheStore(CacheStore):
    def __init__(self, data_path: str = "merchant_cache.json"):
        self.file = JsonFile(data_path, default=list)
        self.entries: dict[tuple[str, str], CacheEntry] = {}
        self.load()

    def load(self) -> None:
        self.entries = {}
        for item in self.file.load():
            entry = CacheEntry.model_validate(item)
            self.entries[(entry.household_id, entry.fingerprint)] = entry

    def save(self) -> None:
        self.file.save([entry.model_dump(mode="json") for entry in self.entries.values()])

    def get_many(self, household_id: str, fingerprints: Iterable[str]) -> list[CacheEntry]:
        hits = []
        for fingerprint in set(fingerprints):
            entry = self.entries.get((household_id, fingerprint))
            if entry is not None:
                hits.append(entry.model_copy())
        return hits

    def upsert(self, entry: CacheEntry) -> None:
        key = (entry.household_id, entry.fingerprint)
        previous = self.entries.get(key)
        hits = max(entry.hits, previous.hits) if previous else entry.hits
        self.entries[key] = entry.model_copy(update={"hits": hits})
        self.save()

    def record_hits(self, household_id: str, fingerprints: Iterable[str]) -> None:
        now = utcnow()
        touched = 0
        for fingerprint in set(fingerprints):
            entry = self.entries.get((household_id, fingerprint))
            if entry is None:
                continue
            entry.hits += 1
            entry.last_seen = now
            touched += 1
        if touched:
            self.save()

    def clear(self, household_id: str | None = None) -> int:
        if household_id is None:
            removed = len(self.entries)
            self.entries = {}
        else:
            keys = [key for key in self.entries if key[0] == household_id]
            for key in keys:
                del self.entries[key]
            removed = len(keys)
        self.save()
        return removed


def _sort_newest_first(transactions: list[Transaction]) -> list[Transaction]:
    # Undated rows sort last; id keeps the order stable.
    def sort_key(tx: Transaction) -> tuple[float, str]:
        stamp = tx.date.timestamp() if isinstance(tx.date, datetime) else float("-inf")
        return (-stamp, tx.id)

    return sorted(transactions, key=sort_key)


class JsonTransactionRepository(TransactionRepository):
    def __init__(self, data_path: str = "transactions.json"):
        self.file = JsonFile(data_path, default=list)
        self.transactions: dict[str, Transaction] = {}
        self.load()

    def load(self) -> None:
        self.transactions = {}
        for item in self.file.load():
            tx = Transaction.model_validate(item)
            self.transactions[tx.id] = tx

    def save(self) -> None:
        self.file.save([tx.model_dump(mode="json") for tx in self.transactions.values()])

    def add(self, transaction: Transaction) -> None:
        self.transactions[transaction.id] = transaction.model_copy()
        self.save()

    async def get(self, transaction_id: str) -> Transaction | None:
        tx = self.transactions.get(transaction_id)
        return tx.model_copy() if tx else None

    async def list_uncategorized(
        self,
        household_id: str,
        *,
        transaction_ids: list[str] | None = None,
        limit: int = 200,
    ) -> list[Transaction]:
        wanted = set(transaction_ids) if transaction_ids else None
        rows = [
            tx.model_copy()
            for tx in self.transactions.values()
            if tx.household_id == household_id
            and tx.category == DEFAULT_CATEGORY
            and (wanted is None or tx.id in wanted)
        ]
        return _sort_newest_first(rows)[:limit]

    async def list_categorized(self, household_id: str, *, limit: int = 200) -> list[Transaction]:
        rows = [
            tx.model_copy()
            for tx in self.transactions.values()
            if tx.household_id == household_id and tx.category != DEFAULT_CATEGORY
        ]
        return _sort_newest_first(rows)[:limit]

    async def update_category(self, transaction_id: str, category: str) -> None:
        tx = self.transactions.get(transaction_id)
        if tx is None:
            raise PersistenceError(f"Transaction {transaction_id} not found")
        previous = tx.category
        tx.category = category
        try:
            self.save()
        except PersistenceError:
            tx.category = previous
            raise


class JsonCategoryStore(CategoryStore):
    def __init__(self, data_path: str = "categories.json"):
        self.file = JsonFile(data_path, default=list)

    def list_categories(self) -> list[CategoryRecord]:
        raw = self.file.load()
        if not raw:
            return list(DEFAULT_CATEGORIES)
        return [CategoryRecord.model_validate(item) for item in raw]
