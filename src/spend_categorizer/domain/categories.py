from typing import Literal

CategoryType = Literal[
    "bills",
    "food",
    "leisure",
    "shopping",
    "transport",
    "health",
    "education",
    "other",
]

FIXED_CATEGORIES: tuple[str, ...] = (
    "bills",
    "food",
    "leisure",
    "shopping",
    "transport",
    "health",
    "education",
    "other",
)

DEFAULT_CATEGORY = "other"

# Household-defined categories are referenced as "custom:<id>".
CUSTOM_CATEGORY_PREFIX = "custom:"

AUTO_APPLY_THRESHOLD = 0.85

_FIXED_SET = frozenset(FIXED_CATEGORIES)


def is_valid_category(value: str | None) -> bool:
    return bool(value) and value in _FIXED_SET


def is_custom_category(value: str | None) -> bool:
    return bool(value) and value.startswith(CUSTOM_CATEGORY_PREFIX) and len(value) > len(CUSTOM_CATEGORY_PREFIX)


def is_known_category(value: str | None) -> bool:
    return is_valid_category(value) or is_custom_category(value)


def coerce_category(value: object) -> str:
    """Map anything an external classifier returns onto the fixed enumeration."""
    if not isinstance(value, str):
        return DEFAULT_CATEGORY
    candidate = value.strip().lower()
    return candidate if candidate in _FIXED_SET else DEFAULT_CATEGORY


def should_auto_apply(confidence: float, threshold: float = AUTO_APPLY_THRESHOLD) -> bool:
    return confidence >= threshold
