"""Budget scope rules: normalisation, transaction matching and overlap checks.

All functions here are pure. They accept rules either as ``ScopeRule``
instances or as their camelCase dict form, and always return ``ScopeRule``
instances.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from .exceptions import ValidationError
from .models import (
    ALL_SUBCATEGORIES,
    NO_SUBCATEGORY,
    SELECTED_SUBCATEGORIES,
    ScopeRule,
    SubcategoryMarker,
    SubcategoryName,
)

RuleLike = Union[ScopeRule, Mapping[str, Any]]

SCOPE_MODES = (ALL_SUBCATEGORIES, SELECTED_SUBCATEGORIES)


def validate_subcategory_name(name: str) -> str:
    """Reject names that collide with the persisted "no subcategory" token."""
    if name == NO_SUBCATEGORY.value:
        raise ValidationError(f'"{name}" is a reserved subcategory name.')
    return name


def _as_rule_fields(rule: RuleLike) -> Optional[Dict[str, Any]]:
    if isinstance(rule, ScopeRule):
        return {
            "category_id": rule.category_id,
            "mode": rule.mode,
            "names": list(rule.subcategory_names),
        }
    if not isinstance(rule, Mapping):
        return None
    category_id = rule.get("categoryId")
    names = rule.get("subcategoryNames")
    return {
        "category_id": category_id if isinstance(category_id, str) else "",
        "mode": rule.get("mode"),
        "names": names if isinstance(names, (list, tuple)) else [],
    }


def _normalize_subcategory(raw: Any) -> Optional[SubcategoryName]:
    if isinstance(raw, SubcategoryMarker):
        return raw
    if not isinstance(raw, str):
        return None
    name = raw.strip()
    if not name:
        return None
    if name == NO_SUBCATEGORY.value:
        return NO_SUBCATEGORY
    return name


def _selected_names(raw_names: Iterable[Any]) -> List[SubcategoryName]:
    names: List[SubcategoryName] = []
    for raw in raw_names:
        name = _normalize_subcategory(raw)
        if name is not None and name not in names:
            names.append(name)
    return names


def _merge(rules: List[ScopeRule]) -> List[ScopeRule]:
    merged: Dict[str, ScopeRule] = {}
    for rule in rules:
        existing = merged.get(rule.category_id)
        if existing is None:
            merged[rule.category_id] = rule
        elif ALL_SUBCATEGORIES in (existing.mode, rule.mode):
            merged[rule.category_id] = ScopeRule(rule.category_id, ALL_SUBCATEGORIES)
        else:
            names = _selected_names(
                list(existing.subcategory_names) + list(rule.subcategory_names)
            )
            merged[rule.category_id] = ScopeRule(
                rule.category_id, SELECTED_SUBCATEGORIES, tuple(names)
            )
    return list(merged.values())


def normalize(
    rules: Optional[Iterable[RuleLike]], legacy_category_id: Optional[str] = None
) -> List[ScopeRule]:
    """Return the canonical rule list: one rule per category, in first-seen order.

    Blank category ids are dropped, as are selected-mode rules whose name list
    ends up empty. When nothing survives, a single all-subcategories rule for
    ``legacy_category_id`` is returned if one was given.
    """
    normalized: List[ScopeRule] = []
    for rule in rules or []:
        fields = _as_rule_fields(rule)
        if fields is None:
            continue
        category_id = fields["category_id"].strip()
        if not category_id:
            continue
        if fields["mode"] == SELECTED_SUBCATEGORIES:
            names = _selected_names(fields["names"])
            if not names:
                continue
            normalized.append(ScopeRule(category_id, SELECTED_SUBCATEGORIES, tuple(names)))
        else:
            normalized.append(ScopeRule(category_id, ALL_SUBCATEGORIES))

    if normalized:
        return _merge(normalized)

    legacy = (legacy_category_id or "").strip()
    if not legacy:
        return []
    return [ScopeRule(legacy, ALL_SUBCATEGORIES)]


def primary_category_id(
    rules: Optional[Iterable[RuleLike]], legacy_category_id: Optional[str] = None
) -> Optional[str]:
    normalized = normalize(rules, legacy_category_id)
    return normalized[0].category_id if normalized else None


def _transaction_fields(transaction: Any) -> Dict[str, Any]:
    if isinstance(transaction, Mapping):
        return {
            "category_id": transaction.get("categoryId"),
            "subcategory_name": transaction.get("subcategoryName"),
        }
    return {
        "category_id": getattr(transaction, "category_id", None),
        "subcategory_name": getattr(transaction, "subcategory_name", None),
    }


def subcategory_token(subcategory_name: Optional[str]) -> SubcategoryName:
    """Map a transaction's subcategory to the name used for matching."""
    if not isinstance(subcategory_name, str) or not subcategory_name.strip():
        return NO_SUBCATEGORY
    return subcategory_name.strip()


def rule_matches_transaction(rule: ScopeRule, transaction: Any) -> bool:
    fields = _transaction_fields(transaction)
    category_id = fields["category_id"]
    if not isinstance(category_id, str) or category_id.strip() != rule.category_id:
        return False
    if rule.mode == ALL_SUBCATEGORIES:
        return True
    return subcategory_token(fields["subcategory_name"]) in set(rule.subcategory_names)


def matches_transaction(
    rules: Optional[Iterable[RuleLike]],
    transaction: Any,
    legacy_category_id: Optional[str] = None,
) -> bool:
    """True when any rule covers the transaction's category and subcategory."""
    return any(
        rule_matches_transaction(rule, transaction)
        for rule in normalize(rules, legacy_category_id)
    )


def _names_of(rule: ScopeRule) -> Set[SubcategoryName]:
    return set() if rule.mode == ALL_SUBCATEGORIES else set(rule.subcategory_names)


def rules_overlap(
    left: Optional[Iterable[RuleLike]], right: Optional[Iterable[RuleLike]]
) -> bool:
    """True when some transaction could be matched by both rule sets."""
    right_by_category = {rule.category_id: rule for rule in normalize(right)}
    for left_rule in normalize(left):
        right_rule = right_by_category.get(left_rule.category_id)
        if right_rule is None:
            continue
        if ALL_SUBCATEGORIES in (left_rule.mode, right_rule.mode):
            return True
        if _names_of(left_rule) & _names_of(right_rule):
            return True
    return False


def validate_scope_rules(raw: Any) -> List[Dict[str, Any]]:
    """Check the structural shape of client-supplied rules before normalising."""
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ValidationError("scopeRules must be a list")
    checked: List[Dict[str, Any]] = []
    for rule in raw:
        if isinstance(rule, ScopeRule):
            checked.append(rule.to_dict())
            continue
        if not isinstance(rule, Mapping):
            raise ValidationError("Each scope rule must be an object")
        mode = rule.get("mode", ALL_SUBCATEGORIES)
        if mode not in SCOPE_MODES:
            raise ValidationError(f"Scope rule mode must be one of: {', '.join(SCOPE_MODES)}")
        checked.append(dict(rule, mode=mode))
    return checked
