from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from spend_categorizer.models import CacheEntry, CategoryRecord, Rule, Transaction


class RuleStore(ABC):
    @abstractmethod
    def list_global(self) -> list[Rule]:
        """Rules shared by every household (``household_id is None``)."""

    @abstractmethod
    def list_household(self, household_id: str) -> list[Rule]:
        pass

    @abstractmethod
    def get(self, rule_id: str) -> Rule | None:
        pass

    @abstractmethod
    def add(self, rule: Rule) -> Rule:
        """Insert a rule, assigning its id and insertion position."""

    @abstractmethod
    def upsert_global(self, rule: Rule) -> Rule:
        """Insert or replace a global rule keyed by category, match type and pattern."""

    @abstractmethod
    def update(self, rule: Rule) -> Rule:
        pass

    @abstractmethod
    def delete(self, rule_id: str) -> bool:
        pass

    @abstractmethod
    def increment_usage(self, rule_id: str) -> None:
        pass

    @contextmanager
    def bulk(self) -> Iterator[None]:
        """Group many writes; backends may defer flushing until the block exits."""
        yield


class CacheStore(ABC):
    @abstractmethod
    def get_many(self, household_id: str, fingerprints: Iterable[str]) -> list[CacheEntry]:
        pass

    @abstractmethod
    def upsert(self, entry: CacheEntry) -> None:
        """Last write wins per (household, fingerprint); the hit counter carries over."""

    @abstractmethod
    def record_hits(self, household_id: str, fingerprints: Iterable[str]) -> None:
        pass

    @abstractmethod
    def clear(self, household_id: str | None = None) -> int:
        pass


class TransactionRepository(ABC):
    """Owned by the transaction-management side; the categorizer only reads
    uncategorized rows and writes back the category field."""

    @abstractmethod
    async def get(self, transaction_id: str) -> Transaction | None:
        pass

    @abstractmethod
    async def list_uncategorized(
        self,
        household_id: str,
        *,
        transaction_ids: list[str] | None = None,
        limit: int = 200,
    ) -> list[Transaction]:
        pass

    @abstractmethod
    async def list_categorized(self, household_id: str, *, limit: int = 200) -> list[Transaction]:
        pass

    @abstractmethod
    async def update_category(self, transaction_id: str, category: str) -> None:
        """Raise ``PersistenceError`` when the row cannot be written."""


class CategoryStore(ABC):
    @abstractmethod
    def list_categories(self) -> list[CategoryRecord]:
        pass
