from collections.abc import Iterable

from pydantic import BaseModel

from spend_categorizer.domain.categories import DEFAULT_CATEGORY
from spend_categorizer.domain.text import significant_words
from spend_categorizer.models import Rule, Transaction
from spend_categorizer.rules.matcher import normalized_pattern


class RuleSuggestion(BaseModel):
    pattern: str
    category: str
    occurrences: int


def suggest_rules(
    transactions: Iterable[Transaction],
    existing_rules: Iterable[Rule],
    *,
    min_occurrences: int = 3,
    limit: int = 10,
) -> list[RuleSuggestion]:
    """
    Propose household rules from words that keep showing up under the same
    category in already categorized transactions.

    A word is bound to the first category it is seen with; later sightings
    under another category do not count.
    """
    known = {normalized_pattern(rule.pattern) for rule in existing_rules}
    counts: dict[str, list] = {}
    for tx in transactions:
        if tx.category == DEFAULT_CATEGORY:
            continue
        for word in significant_words(tx.description):
            if word in known:
                continue
            entry = counts.get(word)
            if entry is None:
                counts[word] = [tx.category, 1]
            elif entry[0] == tx.category:
                entry[1] += 1

    ranked = sorted(
        ((word, category, count) for word, (category, count) in counts.items() if count >= min_occurrences),
        key=lambda item: -item[2],
    )
    return [
        RuleSuggestion(pattern=word.upper(), category=category, occurrences=count)
        for word, category, count in ranked[:limit]
    ]
