from collections.abc import Iterable

from spend_categorizer.errors import PersistenceError, ValidationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import CacheEntry, CacheSource, utcnow
from spend_categorizer.storage.base import CacheStore

logger = get_logger(__name__)


class MerchantCache:
    """
    Per-household fingerprint -> category memory.

    The cache only ever saves work: a failed read behaves like a miss and a
    failed write is dropped, so losing it never changes the final category.
    """

    def __init__(self, store: CacheStore):
        self.store = store

    def lookup(self, household_id: str, fingerprints: Iterable[str]) -> dict[str, CacheEntry]:
        """Stored entries by fingerprint. Every hit bumps its counter and last_seen."""
        wanted = {fp for fp in fingerprints if fp}
        if not wanted:
            return {}
        try:
            entries = self.store.get_many(household_id, wanted)
        except PersistenceError as e:
            logger.warning("[CACHE] Lookup failed for household %s: %s", household_id, e)
            return {}
        found = {entry.fingerprint: entry for entry in entries}
        if not found:
            return found

        logger.debug("[CACHE] %d/%d fingerprints hit for household %s", len(found), len(wanted), household_id)
        try:
            self.store.record_hits(household_id, found)
        except PersistenceError as e:
            logger.warning("[CACHE] Could not record hits for household %s: %s", household_id, e)
        return found

    def get(self, household_id: str, fingerprints: Iterable[str]) -> dict[str, str]:
        return {fp: entry.category for fp, entry in self.lookup(household_id, fingerprints).items()}

    def set(
        self,
        household_id: str,
        fingerprint: str,
        category: str,
        confidence: float,
        source: CacheSource,
    ) -> bool:
        if not fingerprint:
            return False
        entry = CacheEntry(
            household_id=household_id,
            fingerprint=fingerprint,
            category=category,
            confidence=max(0.0, min(1.0, confidence)),
            source=source,
            last_seen=utcnow(),
        )
        try:
            self.store.upsert(entry)
        except PersistenceError as e:
            logger.warning("[CACHE] Could not store '%s' for household %s: %s", fingerprint, household_id, e)
            return False
        return True

    def clear(self, household_id: str | None) -> int:
        if not household_id or not household_id.strip():
            raise ValidationError("household_id is required to clear the cache")
        removed = self.store.clear(household_id)
        logger.info("[CACHE] Cleared %d entries for household %s.", removed, household_id)
        return removed
