"""Scope rule normalisation, matching and overlap."""
from __future__ import annotations

import pytest

from clocket_core.exceptions import ValidationError
from clocket_core.models import (
    ALL_SUBCATEGORIES,
    NO_SUBCATEGORY,
    SELECTED_SUBCATEGORIES,
    ScopeRule,
)
from clocket_core.scope import (
    matches_transaction,
    normalize,
    primary_category_id,
    rules_overlap,
    validate_scope_rules,
    validate_subcategory_name,
)


def _selected(category_id: str, *names) -> dict:
    return {"categoryId": category_id, "mode": SELECTED_SUBCATEGORIES, "subcategoryNames": list(names)}


def test_normalize_merges_rules_per_category() -> None:
    rules = normalize([
        _selected(" cat_food ", "Delivery", " Delivery ", ""),
        _selected("cat_food", "Super"),
        {"categoryId": "cat_car", "mode": ALL_SUBCATEGORIES},
    ])

    assert rules == [
        ScopeRule("cat_food", SELECTED_SUBCATEGORIES, ("Delivery", "Super")),
        ScopeRule("cat_car", ALL_SUBCATEGORIES),
    ]


def test_all_subcategories_absorbs_selected_rule() -> None:
    rules = normalize([_selected("cat_food", "Delivery"), {"categoryId": "cat_food"}])

    assert rules == [ScopeRule("cat_food", ALL_SUBCATEGORIES)]


def test_normalize_is_idempotent() -> None:
    once = normalize([_selected("a", "x", "y", "x"), _selected("b", "__none__"), {"categoryId": "a"}])

    assert normalize(once) == once
    assert normalize([rule.to_dict() for rule in once]) == once


def test_normalize_drops_blank_and_empty_rules() -> None:
    assert normalize([{"categoryId": "  "}, _selected("cat", " ", ""), "junk"]) == []


def test_normalize_falls_back_to_legacy_category() -> None:
    assert normalize([], "cat_food") == [ScopeRule("cat_food", ALL_SUBCATEGORIES)]
    assert normalize(None, "  ") == []
    assert primary_category_id([], "cat_food") == "cat_food"
    assert primary_category_id(None) is None


def test_none_token_decodes_to_sentinel() -> None:
    [rule] = normalize([_selected("cat", "__none__")])

    assert rule.subcategory_names == (NO_SUBCATEGORY,)
    assert rule.to_dict()["subcategoryNames"] == ["__none__"]


@pytest.mark.parametrize(
    ("subcategory", "expected"),
    [("Delivery", True), ("Super", False), (None, False), ("", False)],
)
def test_selected_rule_matches_listed_subcategories(subcategory, expected) -> None:
    tx = {"categoryId": "cat_food", "subcategoryName": subcategory}

    assert matches_transaction([_selected("cat_food", "Delivery")], tx) is expected


def test_sentinel_matches_transactions_without_subcategory() -> None:
    rules = [_selected("cat_food", "__none__")]

    assert matches_transaction(rules, {"categoryId": "cat_food", "subcategoryName": "  "})
    assert not matches_transaction(rules, {"categoryId": "cat_food", "subcategoryName": "Delivery"})


def test_all_subcategories_matches_any_subcategory() -> None:
    rules = [{"categoryId": "cat_food", "mode": ALL_SUBCATEGORIES}]

    assert matches_transaction(rules, {"categoryId": "cat_food", "subcategoryName": "x"})
    assert matches_transaction(rules, {"categoryId": "cat_food"})
    assert not matches_transaction(rules, {"categoryId": "cat_car"})
    assert not matches_transaction(rules, {"categoryId": None})


def test_legacy_category_used_when_rules_missing() -> None:
    assert matches_transaction(None, {"categoryId": "cat_food"}, legacy_category_id="cat_food")


def test_rules_overlap() -> None:
    assert rules_overlap([_selected("a", "x")], [{"categoryId": "a"}])
    assert rules_overlap([_selected("a", "x", "y")], [_selected("a", "y")])
    assert not rules_overlap([_selected("a", "x")], [_selected("a", "y")])
    assert not rules_overlap([{"categoryId": "a"}], [{"categoryId": "b"}])


def test_reserved_subcategory_name_is_rejected() -> None:
    with pytest.raises(ValidationError, match="reserved"):
        validate_subcategory_name("__none__")
    assert validate_subcategory_name("none") == "none"


def test_validate_scope_rules_shape() -> None:
    assert validate_scope_rules(None) == []
    assert validate_scope_rules([{"categoryId": "a"}]) == [
        {"categoryId": "a", "mode": ALL_SUBCATEGORIES}
    ]
    with pytest.raises(ValidationError, match="scopeRules must be a list"):
        validate_scope_rules("a")
    with pytest.raises(ValidationError, match="must be an object"):
        validate_scope_rules(["a"])
    with pytest.raises(ValidationError, match="mode"):
        validate_scope_rules([{"categoryId": "a", "mode": "some"}])
