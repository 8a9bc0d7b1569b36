"""Budgets repository.

Version 1 budgets applied to a single ``categoryId``. Version 2 replaces that
with a list of scope rules and keeps ``categoryId`` as a derived field
pointing at the first rule's category.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from .exceptions import ValidationError
from .models import SELECTED_SUBCATEGORIES, Budget, ScopeRule
from .repository import Record, State, VersionedRepository
from .scope import (
    RuleLike,
    SCOPE_MODES,
    normalize,
    rules_overlap,
    validate_scope_rules,
)
from .validators import (
    current_year_month,
    is_number,
    is_record,
    is_text,
    is_text_list,
    is_timestamp,
    is_year_month,
    parse_amount,
    quantize,
    validate_required_str,
    validate_year_month,
)

EMPTY_SCOPE_MESSAGE = "Budget requires at least one category scope rule."
OVERLAP_MESSAGE = "Budget scope overlaps another budget in the same month."


def _has_budget_fields(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("name"))
        and is_text(item.get("categoryId"))
        and is_number(item.get("limitAmount"))
        and is_year_month(item.get("month"))
        and is_timestamp(item.get("createdAt"))
        and is_timestamp(item.get("updatedAt"))
    )


def _is_scope_rule(rule: Any) -> bool:
    if not is_record(rule) or not is_text(rule.get("categoryId")):
        return False
    mode = rule.get("mode")
    if mode not in SCOPE_MODES:
        return False
    if mode == SELECTED_SUBCATEGORIES:
        names = rule.get("subcategoryNames")
        return is_text_list(names) and len(names) > 0
    return True


def _is_budget_v1(item: Any) -> bool:
    return _has_budget_fields(item)


def _is_budget_v2(item: Any) -> bool:
    if not _has_budget_fields(item):
        return False
    rules = item.get("scopeRules")
    return isinstance(rules, list) and len(rules) > 0 and all(_is_scope_rule(r) for r in rules)


def _migrate_v1_to_v2(state: State) -> State:
    items = []
    for item in state["items"]:
        rules = normalize(item.get("scopeRules"), item["categoryId"])
        migrated = dict(item)
        migrated["limitAmount"] = str(quantize(Decimal(str(item["limitAmount"]))))
        migrated["scopeRules"] = [rule.to_dict() for rule in rules]
        if rules:
            migrated["categoryId"] = rules[0].category_id
        items.append(migrated)
    return {"version": 2, "items": items}


class BudgetsRepository(VersionedRepository):
    key_suffix = "budgets"
    version = 2
    model = Budget
    schemas = {1: _is_budget_v1, 2: _is_budget_v2}
    migrations = {1: _migrate_v1_to_v2}

    # Public API -----------------------------------------------------------
    def create(self, payload: Dict[str, Any], *, reject_overlap: bool = False) -> Budget:
        if reject_overlap:
            rules = self._rules_from(payload, legacy_category_id=payload.get("categoryId"))
            month = validate_year_month(
                payload.get("month"), "Budget month", default=current_year_month(self._now())
            )
            if self.find_overlapping(rules, month):
                raise ValidationError(OVERLAP_MESSAGE)
        return super().create(payload)

    def update(
        self, record_id: str, patch: Dict[str, Any], *, reject_overlap: bool = False
    ) -> Optional[Budget]:
        if reject_overlap and isinstance(patch, dict):
            current = self.get_by_id(record_id)
            if current is None:
                return None
            candidate = self._build_updated(current.to_dict(), patch, [])
            if self.find_overlapping(
                candidate["scopeRules"], candidate["month"], exclude_id=record_id
            ):
                raise ValidationError(OVERLAP_MESSAGE)
        return super().update(record_id, patch)

    def find_overlapping(
        self,
        rules: Iterable[RuleLike],
        month: str,
        exclude_id: Optional[str] = None,
    ) -> List[Budget]:
        """Budgets of ``month`` that could count the same transaction as ``rules``."""
        candidate = normalize(rules)
        return [
            budget
            for budget in self.list()
            if budget.id != exclude_id
            and budget.month == month
            and rules_overlap(candidate, budget.scope_rules)
        ]

    def list_for_month(self, month: str) -> List[Budget]:
        month = validate_year_month(month, "month")
        return [budget for budget in self.list() if budget.month == month]

    # Hooks ----------------------------------------------------------------
    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        rules = self._rules_from(payload, legacy_category_id=payload.get("categoryId"))
        now = self._timestamp()
        return {
            "id": self._new_id(),
            "name": validate_required_str(payload.get("name"), "Budget name"),
            "limitAmount": str(parse_amount(payload.get("limitAmount"), "Budget amount")),
            "month": validate_year_month(
                payload.get("month"), "Budget month", default=current_year_month(self._now())
            ),
            "scopeRules": [rule.to_dict() for rule in rules],
            "categoryId": rules[0].category_id,
            "createdAt": now,
            "updatedAt": now,
        }

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        updated = dict(current)
        if "name" in patch:
            updated["name"] = validate_required_str(patch["name"], "Budget name")
        if "limitAmount" in patch:
            updated["limitAmount"] = str(parse_amount(patch["limitAmount"], "Budget amount"))
        if "month" in patch:
            updated["month"] = validate_year_month(
                patch["month"], "Budget month", default=current_year_month(self._now())
            )
        if "scopeRules" in patch or "categoryId" in patch:
            legacy = patch["categoryId"] if "categoryId" in patch else None
            source = patch if "scopeRules" in patch else {"scopeRules": None}
            rules = self._rules_from(source, legacy_category_id=legacy)
            updated["scopeRules"] = [rule.to_dict() for rule in rules]
            updated["categoryId"] = rules[0].category_id
        updated["updatedAt"] = self._timestamp()
        return updated

    @staticmethod
    def _rules_from(
        payload: Dict[str, Any], legacy_category_id: Any = None
    ) -> List[ScopeRule]:
        raw_rules = validate_scope_rules(payload.get("scopeRules"))
        legacy = legacy_category_id if isinstance(legacy_category_id, str) else None
        rules = normalize(raw_rules, legacy)
        if not rules:
            raise ValidationError(EMPTY_SCOPE_MESSAGE)
        return rules
