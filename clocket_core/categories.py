"""Categories repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .models import Category
from .repository import Record, VersionedRepository
from .scope import validate_subcategory_name
from .validators import (
    comparison_key,
    is_number,
    is_record,
    is_text,
    is_text_list,
    normalize_names,
    validate_optional_str,
    validate_required_str,
)

DEFAULT_CATEGORY_ICON = "tag"
DEFAULT_CATEGORY_ICON_BG = "bg-[#71717A]"
PROTECTED_CATEGORY_NAMES = frozenset({comparison_key("Tarjeta de Credito")})

DEFAULT_CATEGORIES = (
    ("category_food", "Alimentación", "fork-knife", "bg-[#DC2626]"),
    ("category_transport", "Transporte", "car", "bg-[#2563EB]"),
    ("category_services", "Servicios", "wrench", "bg-[#0891B2]"),
)


def _is_category_v1(item: Any) -> bool:
    if not is_record(item):
        return False
    subcategories = item.get("subcategories")
    return (
        is_text(item.get("id"))
        and is_text(item.get("name"))
        and is_text(item.get("icon"))
        and is_text(item.get("iconBg"))
        and is_number(item.get("subcategoryCount"), non_negative=True)
        and (subcategories is None or is_text_list(subcategories))
    )


def is_protected_category(name: str) -> bool:
    return comparison_key(name) in PROTECTED_CATEGORY_NAMES


def _unique_name(raw: Any, items: List[Record], current_id: Optional[str] = None) -> str:
    name = validate_required_str(raw, "Category name")
    canonical = comparison_key(name)
    for item in items:
        if item["id"] == current_id:
            continue
        if comparison_key(item["name"]) == canonical:
            raise ValidationError("Category name must be unique")
    return name


def normalize_subcategories(raw: Any) -> List[str]:
    names = normalize_names(raw)
    for name in names:
        validate_subcategory_name(name)
    return names


class CategoriesRepository(VersionedRepository):
    key_suffix = "categories"
    version = 1
    model = Category
    schemas = {1: _is_category_v1}

    def find_by_name(self, name: str) -> Optional[Category]:
        """Return the category whose name matches ignoring case and accents form."""
        wanted = comparison_key(name)
        for item in self.read_state()["items"]:
            if comparison_key(item["name"]) == wanted:
                return Category.from_dict(item)
        return None

    def _initial_payload(self) -> List[Record]:
        return [
            {
                "id": category_id,
                "name": name,
                "icon": icon,
                "iconBg": icon_bg,
                "subcategories": [],
                "subcategoryCount": 0,
            }
            for category_id, name, icon, icon_bg in DEFAULT_CATEGORIES
        ]

    def _is_protected(self, record: Record) -> bool:
        return is_protected_category(record["name"])

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        subcategories = normalize_subcategories(payload.get("subcategories"))
        return {
            "id": self._new_id(),
            "name": _unique_name(payload.get("name"), items),
            "icon": validate_optional_str(payload.get("icon"), "icon") or DEFAULT_CATEGORY_ICON,
            "iconBg": validate_optional_str(payload.get("iconBg"), "iconBg")
            or DEFAULT_CATEGORY_ICON_BG,
            "subcategories": subcategories,
            "subcategoryCount": len(subcategories),
        }

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        updated = dict(current)
        if "name" in patch:
            updated["name"] = _unique_name(patch["name"], items, current["id"])
        for field in ("icon", "iconBg"):
            if field in patch:
                value = validate_optional_str(patch[field], field)
                if value is None:
                    raise ValidationError(f"{field} is required.")
                updated[field] = value
        if "subcategories" in patch:
            updated["subcategories"] = normalize_subcategories(patch["subcategories"])
        subcategories = updated.get("subcategories") or []
        updated["subcategories"] = list(subcategories)
        updated["subcategoryCount"] = len(subcategories)
        return updated
