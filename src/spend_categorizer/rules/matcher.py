from collections.abc import Iterable
from functools import lru_cache

from spend_categorizer.domain.text import normalize_text
from spend_categorizer.models import Rule

# Higher is more specific.
MATCH_TYPE_STRENGTH = {
    "exact": 3,
    "startsWith": 2,
    "contains": 1,
}


@lru_cache(maxsize=8192)
def normalized_pattern(pattern: str) -> str:
    return normalize_text(pattern)


def rule_matches(rule: Rule, normalized_text: str) -> bool:
    if not rule.active:
        return False
    pattern = normalized_pattern(rule.pattern)
    if not pattern or not normalized_text:
        return False
    if rule.match_type == "exact":
        return normalized_text == pattern
    if rule.match_type == "startsWith":
        return normalized_text.startswith(pattern)
    if rule.match_type == "contains":
        return pattern in normalized_text
    return False


def rank_key(rule: Rule) -> tuple[int, int, float, int, int, str]:
    """Sort key where the smallest value is the winning rule.

    Priority first, then match-type specificity, confidence and pattern
    length. Insertion position and id settle whatever is left, so the
    winner never depends on the order of the input list.
    """
    return (
        -rule.priority,
        -MATCH_TYPE_STRENGTH.get(rule.match_type, 0),
        -rule.confidence,
        -len(normalized_pattern(rule.pattern)),
        rule.position,
        rule.id,
    )


def match(normalized_text: str, rules: Iterable[Rule]) -> Rule | None:
    best: Rule | None = None
    best_key: tuple[int, int, float, int, int, str] | None = None
    for rule in rules:
        if not rule_matches(rule, normalized_text):
            continue
        key = rank_key(rule)
        if best_key is None or key < best_key:
            best, best_key = rule, key
    return best


def match_description(description: str, rules: Iterable[Rule]) -> Rule | None:
    return match(normalize_text(description), rules)
