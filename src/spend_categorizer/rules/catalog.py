from spend_categorizer.domain.categories import is_known_category
from spend_categorizer.domain.text import normalize_text
from spend_categorizer.errors import ReadOnlyRuleError, RuleNotFoundError, ValidationError
from spend_categorizer.logger import get_logger
from spend_categorizer.models import MatchType, Rule
from spend_categorizer.storage.base import RuleStore

from .kits import built_in_rules
from .matcher import MATCH_TYPE_STRENGTH, match

logger = get_logger(__name__)

# Above every built-in kit priority.
DEFAULT_HOUSEHOLD_PRIORITY = 100

_EDITABLE_FIELDS = ("name", "pattern", "match_type", "category", "priority", "confidence", "active")


def apply_built_in_rules(description: str | None) -> Rule | None:
    return match(normalize_text(description), built_in_rules())


def _require_household(household_id: str | None) -> str:
    if not household_id or not str(household_id).strip():
        raise ValidationError("household_id is required")
    return str(household_id)


def _validate_rule_fields(pattern: str, match_type: str, category: str) -> None:
    if not normalize_text(pattern):
        raise ValidationError("Rule pattern must contain letters or digits")
    if match_type not in MATCH_TYPE_STRENGTH:
        raise ValidationError(f"Unknown match type '{match_type}'")
    if not is_known_category(category):
        raise ValidationError(f"Unknown category '{category}'")


class RuleCatalog:
    def __init__(self, store: RuleStore):
        self.store = store

    def global_rules(self) -> list[Rule]:
        stored = [rule for rule in self.store.list_global() if rule.active]
        if stored:
            return stored
        return list(built_in_rules())

    def household_rules(self, household_id: str) -> list[Rule]:
        household_id = _require_household(household_id)
        return sorted(self.store.list_household(household_id), key=lambda rule: rule.position)

    def rules_for(self, household_id: str) -> list[Rule]:
        """Every rule a household's transactions are matched against."""
        household = [rule for rule in self.household_rules(household_id) if rule.active]
        return self.global_rules() + household

    def create_rule(
        self,
        household_id: str,
        *,
        pattern: str,
        category: str,
        match_type: MatchType = "contains",
        priority: int = DEFAULT_HOUSEHOLD_PRIORITY,
        confidence: float = 0.95,
        name: str | None = None,
        active: bool = True,
    ) -> Rule:
        household_id = _require_household(household_id)
        _validate_rule_fields(pattern, match_type, category)
        rule = Rule(
            id="",
            household_id=household_id,
            name=name or pattern.strip(),
            pattern=pattern.strip(),
            match_type=match_type,
            category=category,
            priority=priority,
            confidence=confidence,
            scope="household",
            active=active,
        )
        stored = self.store.add(rule)
        logger.info(
            "[RULES] Household %s added rule %s: %s '%s' -> %s",
            household_id, stored.id, match_type, stored.pattern, category,
        )
        return stored

    def _owned_rule(self, household_id: str, rule_id: str) -> Rule:
        household_id = _require_household(household_id)
        rule = self.store.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(f"Rule {rule_id} not found")
        if rule.household_id is None:
            raise ReadOnlyRuleError(f"Rule {rule_id} is global and cannot be changed")
        if rule.household_id != household_id:
            raise RuleNotFoundError(f"Rule {rule_id} not found")
        return rule

    def update_rule(self, household_id: str, rule_id: str, **changes: object) -> Rule:
        if rule_id.startswith("builtin:"):
            raise ReadOnlyRuleError(f"Rule {rule_id} is built in and cannot be changed")
        rule = self._owned_rule(household_id, rule_id)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot change fields: {', '.join(sorted(unknown))}")
        updates = {key: value for key, value in changes.items() if value is not None}
        updated = Rule.model_validate({**rule.model_dump(), **updates})
        _validate_rule_fields(updated.pattern, updated.match_type, updated.category)
        return self.store.update(updated)

    def delete_rule(self, household_id: str, rule_id: str) -> None:
        if rule_id.startswith("builtin:"):
            raise ReadOnlyRuleError(f"Rule {rule_id} is built in and cannot be deleted")
        self._owned_rule(household_id, rule_id)
        self.store.delete(rule_id)
        logger.info("[RULES] Household %s deleted rule %s", household_id, rule_id)

    def record_usage(self, rule: Rule) -> None:
        # Built-ins live in memory only; their usage is not tracked.
        if rule.id.startswith("builtin:"):
            return
        self.store.increment_usage(rule.id)
