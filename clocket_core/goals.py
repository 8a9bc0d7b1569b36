"""Savings goals and their mirror inside the categories collection.

Every goal lives under one synthetic parent category ("Metas") and each goal
title appears exactly once in that category's subcategory list, so savings
transactions can be categorised per goal. ``GoalCategorySynchronizer`` keeps
the two collections consistent; ``GoalsRepository`` calls it on every
operation.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .categories import CategoriesRepository
from .exceptions import ValidationError
from .models import Category, Goal
from .repository import Record, State, VersionedRepository
from .scope import validate_subcategory_name
from .validators import (
    comparison_key,
    is_iso_date,
    is_number,
    is_record,
    is_text,
    is_timestamp,
    is_year_month,
    normalize_names,
    parse_amount,
    quantize,
    validate_enum,
    validate_iso_date,
    validate_optional_str,
    validate_required_str,
)

logger = logging.getLogger(__name__)

GOALS_PARENT_CATEGORY_NAME = "Metas"
GOALS_PARENT_CATEGORY_ICON = "target"
GOALS_PARENT_CATEGORY_ICON_BG = "bg-[#10B981]"
LEGACY_GOAL_CATEGORY_PREFIX = 'Goal - "'

DEFAULT_GOAL_ICON = "target"
DEFAULT_GOAL_COLOR_KEY = "emerald"
GOAL_COLOR_KEYS = ("emerald", "sky", "indigo", "violet", "rose", "amber", "cyan", "lime")


class GoalCategorySynchronizer:
    """Maintains the goals parent category through the categories repository."""

    def __init__(self, categories: CategoriesRepository) -> None:
        self._categories = categories

    def find_parent(self) -> Optional[Category]:
        return self._categories.find_by_name(GOALS_PARENT_CATEGORY_NAME)

    def ensure_parent(self) -> Category:
        existing = self.find_parent()
        if existing is None:
            logger.info("Creating goals parent category")
            return self._categories.create(
                {
                    "name": GOALS_PARENT_CATEGORY_NAME,
                    "icon": GOALS_PARENT_CATEGORY_ICON,
                    "iconBg": GOALS_PARENT_CATEGORY_ICON_BG,
                }
            )
        if (
            existing.icon != GOALS_PARENT_CATEGORY_ICON
            or existing.icon_bg != GOALS_PARENT_CATEGORY_ICON_BG
        ):
            repaired = self._categories.update(
                existing.id,
                {"icon": GOALS_PARENT_CATEGORY_ICON, "iconBg": GOALS_PARENT_CATEGORY_ICON_BG},
            )
            return repaired or existing
        return existing

    def reconcile(self, goals: List[Record]) -> Tuple[List[Record], bool]:
        """Point every goal at the parent and mirror all titles as subcategories.

        Returns the possibly rewritten goal records and whether any of them
        changed. Legacy per-goal categories that goals pointed at are deleted.
        """
        parent = self.ensure_parent()
        stale_ids = {goal["categoryId"] for goal in goals if goal["categoryId"] != parent.id}
        rewritten = [
            goal if goal["categoryId"] == parent.id else {**goal, "categoryId": parent.id}
            for goal in goals
        ]

        merged = normalize_names(
            list(parent.subcategories) + [goal["title"] for goal in rewritten], fold_case=True
        )
        if merged != list(parent.subcategories):
            self._categories.update(parent.id, {"subcategories": merged})

        for category_id in stale_ids:
            legacy = self._categories.get_by_id(category_id) if category_id else None
            if legacy is not None and legacy.name.startswith(LEGACY_GOAL_CATEGORY_PREFIX):
                logger.info("Removing legacy goal category %s", legacy.name)
                self._categories.remove(category_id)

        return rewritten, bool(stale_ids)

    def add_title(self, title: str) -> None:
        parent = self.ensure_parent()
        key = comparison_key(title)
        if any(comparison_key(name) == key for name in parent.subcategories):
            return
        self._categories.update(
            parent.id, {"subcategories": list(parent.subcategories) + [title]}
        )

    def remove_title_if_unused(self, title: str, remaining_titles: Iterable[str]) -> None:
        key = comparison_key(title)
        if any(comparison_key(other) == key for other in remaining_titles):
            return
        parent = self.find_parent()
        if parent is None:
            return
        kept = [name for name in parent.subcategories if comparison_key(name) != key]
        if len(kept) != len(parent.subcategories):
            self._categories.update(parent.id, {"subcategories": kept})

    def reset(self) -> None:
        """Empty the parent's subcategory list, keeping the category itself."""
        parent = self.find_parent()
        if parent is not None and parent.subcategories:
            self._categories.update(parent.id, {"subcategories": []})


def _has_goal_base(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("title"))
        and is_number(item.get("targetAmount"))
        and is_timestamp(item.get("createdAt"))
        and is_timestamp(item.get("updatedAt"))
    )


def _is_goal_v1(item: Any) -> bool:
    return (
        _has_goal_base(item)
        and is_number(item.get("savedAmount"))
        and is_year_month(item.get("targetMonth"))
    )


def _is_goal_v2(item: Any) -> bool:
    return (
        _has_goal_base(item)
        and is_number(item.get("targetAmount"), positive=True)
        and is_text(item.get("description"))
        and is_iso_date(item.get("deadlineDate"))
        and is_text(item.get("icon"))
        and is_text(item.get("colorKey"))
        and is_text(item.get("categoryId"))
    )


def last_day_of_month(year_month: str) -> date:
    year, month = (int(part) for part in year_month.split("-"))
    return date(year, month, calendar.monthrange(year, month)[1])


def _migrate_v1_to_v2(state: State) -> State:
    items = []
    for item in state["items"]:
        items.append(
            {
                "id": item["id"],
                "title": item["title"],
                "description": item["title"],
                "targetAmount": str(quantize(Decimal(str(item["targetAmount"])))),
                "deadlineDate": last_day_of_month(item["targetMonth"]).isoformat(),
                "icon": DEFAULT_GOAL_ICON,
                "colorKey": DEFAULT_GOAL_COLOR_KEY,
                "categoryId": "",
                "createdAt": item["createdAt"],
                "updatedAt": item["updatedAt"],
            }
        )
    return {"version": 2, "items": items}


def _validate_title(value: Any) -> str:
    return validate_subcategory_name(validate_required_str(value, "Goal title"))


def _ensure_unique_title(title: str, items: List[Record], exclude_id: Optional[str] = None) -> None:
    key = comparison_key(title)
    for goal in items:
        if goal["id"] != exclude_id and comparison_key(goal["title"]) == key:
            raise ValidationError("Goal title must be unique.")


class GoalsRepository(VersionedRepository):
    key_suffix = "goals"
    version = 2
    model = Goal
    schemas = {1: _is_goal_v1, 2: _is_goal_v2}
    migrations = {1: _migrate_v1_to_v2}

    def __init__(
        self,
        store=None,
        *,
        categories: Optional[CategoriesRepository] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        if categories is None:
            namespace = self.storage_key.rsplit(".", 1)[0]
            categories = CategoriesRepository(store, namespace=namespace)
        self._synchronizer = GoalCategorySynchronizer(categories)

    def read_state(self) -> State:
        state = super().read_state()
        items, changed = self._synchronizer.reconcile(state["items"])
        if changed:
            state["items"] = items
            self.write_state(state)
        return state

    def remove(self, record_id: str) -> bool:
        target = self.get_by_id(record_id)
        if target is None or not super().remove(record_id):
            return False
        remaining = [goal.title for goal in self.list()]
        self._synchronizer.remove_title_if_unused(target.title, remaining)
        return True

    def clear_all(self) -> None:
        self._synchronizer.reset()
        super().clear_all()

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        title = _validate_title(payload.get("title"))
        _ensure_unique_title(title, items)
        fields = self._validate_fields(payload)
        parent = self._synchronizer.ensure_parent()
        self._synchronizer.add_title(title)
        now = self._timestamp()
        return {
            "id": self._new_id(),
            "title": title,
            **fields,
            "categoryId": parent.id,
            "createdAt": now,
            "updatedAt": now,
        }

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        merged = {**current, **patch}
        title = _validate_title(merged.get("title"))
        _ensure_unique_title(title, items, exclude_id=current["id"])
        fields = self._validate_fields(merged)
        parent = self._synchronizer.ensure_parent()
        self._synchronizer.add_title(title)
        if comparison_key(title) != comparison_key(current["title"]):
            remaining = [goal["title"] for goal in items if goal["id"] != current["id"]]
            self._synchronizer.remove_title_if_unused(current["title"], remaining + [title])
        return {
            **current,
            "title": title,
            **fields,
            "categoryId": parent.id,
            "updatedAt": self._timestamp(),
        }

    @staticmethod
    def _validate_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
        color_key = payload.get("colorKey")
        return {
            "description": validate_required_str(payload.get("description"), "Goal description"),
            "targetAmount": str(parse_amount(payload.get("targetAmount"), "Target amount")),
            "deadlineDate": validate_iso_date(
                payload.get("deadlineDate"), "Deadline date"
            ).isoformat(),
            "icon": validate_optional_str(payload.get("icon"), "Goal icon") or DEFAULT_GOAL_ICON,
            "colorKey": DEFAULT_GOAL_COLOR_KEY
            if color_key is None
            else validate_enum(color_key, "colorKey", GOAL_COLOR_KEYS),
        }
