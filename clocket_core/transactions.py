"""Transactions repository and the helpers read-models use to interpret amounts."""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional

from .accounts import DEFAULT_ACCOUNT_ID
from .events import ChangeChannel
from .exceptions import ValidationError
from .models import Transaction, isoformat_utc, parse_datetime
from .repository import Record, State, VersionedRepository
from .validators import (
    ISO_DATE_PATTERN,
    is_iso_date,
    is_optional_text,
    is_record,
    is_text,
    is_timestamp,
    validate_datetime,
    validate_enum,
    validate_int,
    validate_iso_date,
    validate_optional_str,
    validate_required_str,
)

REGULAR = "regular"
SAVING = "saving"
TRANSACTION_TYPES = (REGULAR, SAVING)

META_SEPARATOR = " • "
EXPENSE_COLOR = "text-[#DC2626]"
INCOME_COLOR = "text-[#16A34A]"

_NON_NUMERIC = re.compile(r"[^0-9+.\-]")


def parse_signed_amount(text: Any) -> Optional[Decimal]:
    """Extract the signed number from a display amount such as ``"-$1,250.00"``."""
    if isinstance(text, bool):
        return None
    if isinstance(text, (int, float, Decimal)):
        text = str(text)
    if not isinstance(text, str):
        return None
    cleaned = _NON_NUMERIC.sub("", text)
    try:
        value = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def format_signed_amount(value: Decimal) -> str:
    sign = "-" if value < 0 else "+"
    return f"{sign}${abs(value):.2f}"


def _date_from_meta(meta: Any) -> Optional[date]:
    if not isinstance(meta, str):
        return None
    prefix = meta.split(META_SEPARATOR)[0].strip()
    if not ISO_DATE_PATTERN.fullmatch(prefix):
        return None
    try:
        return date.fromisoformat(prefix)
    except ValueError:
        return None


def transaction_date(transaction: Any) -> Optional[date]:
    """Resolve the booking date: ``date``, else ``createdAt``, else the meta prefix."""
    if isinstance(transaction, Mapping):
        raw_date = transaction.get("date")
        created_at = transaction.get("createdAt")
        meta = transaction.get("meta")
    else:
        raw_date = getattr(transaction, "date", None)
        created_at = getattr(transaction, "created_at", None)
        meta = getattr(transaction, "meta", None)

    if isinstance(raw_date, date):
        return raw_date
    if isinstance(raw_date, str) and is_iso_date(raw_date.strip()):
        return date.fromisoformat(raw_date.strip())
    if isinstance(created_at, str) and is_timestamp(created_at):
        return parse_datetime(created_at).date()
    if isinstance(created_at, datetime):
        return created_at.date()
    return _date_from_meta(meta)


def _has_display_fields(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("name"))
        and is_text(item.get("category"))
        and is_optional_text(item.get("categoryId"))
        and is_text(item.get("amount"))
        and is_text(item.get("meta"))
    )


def _is_transaction_v1(item: Any) -> bool:
    return (
        _has_display_fields(item)
        and is_text(item.get("icon"))
        and is_text(item.get("iconBg"))
        and is_optional_text(item.get("amountColor"))
    )


def _is_transaction_v2(item: Any) -> bool:
    return (
        _has_display_fields(item)
        and is_text(item.get("accountId"))
        and item.get("transactionType") in TRANSACTION_TYPES
        and is_iso_date(item.get("date"))
        and is_optional_text(item.get("subcategoryName"))
        and is_optional_text(item.get("goalId"))
        and (item.get("createdAt") is None or is_timestamp(item.get("createdAt")))
    )


class TransactionsRepository(VersionedRepository):
    """Transactions; every successful write is announced on ``changes``."""

    key_suffix = "transactions"
    version = 2
    model = Transaction
    schemas = {1: _is_transaction_v1, 2: _is_transaction_v2}

    def __init__(
        self,
        store=None,
        *,
        channel: Optional[ChangeChannel] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        self._changes = channel or ChangeChannel()
        self.migrations = {1: self._migrate_v1_to_v2}

    @property
    def changes(self) -> ChangeChannel:
        return self._changes

    # Public API -----------------------------------------------------------
    def list_for_month(self, year_month: str) -> List[Transaction]:
        return [tx for tx in self.list() if tx.date.strftime("%Y-%m") == year_month]

    def list_by_account(self, account_id: str) -> List[Transaction]:
        return [tx for tx in self.list() if tx.account_id == account_id]

    def list_by_cuota_plan(self, plan_id: str) -> List[Transaction]:
        return [tx for tx in self.list() if tx.cuota_plan_id == plan_id]

    def remove_by_account(self, account_id: str) -> int:
        return self._remove_where(lambda item: item.get("accountId") == account_id)

    def remove_by_cuota_plan(self, plan_id: str) -> int:
        return self._remove_where(lambda item: item.get("cuotaPlanId") == plan_id)

    # Hooks ----------------------------------------------------------------
    def _on_change(self) -> None:
        self._changes.publish()

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        record = self._validate_payload(payload)
        created_at = payload.get("createdAt")
        record["id"] = self._new_id()
        record["createdAt"] = (
            isoformat_utc(validate_datetime(created_at, "createdAt"))
            if created_at is not None
            else self._timestamp()
        )
        return record

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        merged = {**current, **patch}
        if "meta" not in patch and ("date" in patch or "category" in patch):
            merged["meta"] = None
        if "amount" in patch and "amountColor" not in patch:
            merged["amountColor"] = None
        record = self._validate_payload(merged)
        record["id"] = current["id"]
        record["createdAt"] = current.get("createdAt")
        return record

    # Helpers --------------------------------------------------------------
    def _validate_payload(self, payload: Dict[str, Any]) -> Record:
        transaction_type = validate_enum(
            payload.get("transactionType") or REGULAR, "transactionType", TRANSACTION_TYPES
        )
        goal_id = validate_optional_str(payload.get("goalId"), "goalId")
        if transaction_type == SAVING and goal_id is None:
            raise ValidationError("Saving transactions require a goalId.")
        if transaction_type == REGULAR and goal_id is not None:
            raise ValidationError("Regular transactions cannot reference a goal.")

        raw_amount = payload.get("amount")
        amount = parse_signed_amount(raw_amount)
        if amount is None:
            raise ValidationError("amount must be a valid number.")
        display_amount = (
            raw_amount.strip() if isinstance(raw_amount, str) else format_signed_amount(amount)
        )

        raw_date = payload.get("date")
        booked_on = (
            self._now().date()
            if raw_date is None or raw_date == ""
            else validate_iso_date(raw_date, "date")
        )
        category = validate_required_str(payload.get("category"), "category")

        return {
            "accountId": validate_optional_str(payload.get("accountId"), "accountId")
            or DEFAULT_ACCOUNT_ID,
            "transactionType": transaction_type,
            "name": validate_required_str(payload.get("name"), "name"),
            "icon": validate_optional_str(payload.get("icon"), "icon") or "wallet",
            "iconBg": validate_optional_str(payload.get("iconBg"), "iconBg") or "bg-[#09090B]",
            "category": category,
            "categoryId": validate_optional_str(payload.get("categoryId"), "categoryId"),
            "subcategoryName": validate_optional_str(
                payload.get("subcategoryName"), "subcategoryName"
            ),
            "goalId": goal_id,
            "amount": display_amount,
            "amountColor": validate_optional_str(payload.get("amountColor"), "amountColor")
            or (EXPENSE_COLOR if amount < 0 else INCOME_COLOR),
            "cuotaPlanId": validate_optional_str(payload.get("cuotaPlanId"), "cuotaPlanId"),
            "cuotaInstallmentIndex": self._optional_int(
                payload.get("cuotaInstallmentIndex"), "cuotaInstallmentIndex"
            ),
            "cuotaInstallmentsCount": self._optional_int(
                payload.get("cuotaInstallmentsCount"), "cuotaInstallmentsCount"
            ),
            "date": booked_on.isoformat(),
            "meta": validate_optional_str(payload.get("meta"), "meta")
            or f"{booked_on.isoformat()}{META_SEPARATOR}{category}",
        }

    @staticmethod
    def _optional_int(value: Any, field: str) -> Optional[int]:
        return None if value is None else validate_int(value, field, minimum=1)

    def _remove_where(self, predicate: Callable[[Record], bool]) -> int:
        state = self.read_state()
        kept = [item for item in state["items"] if not predicate(item)]
        removed = len(state["items"]) - len(kept)
        if removed:
            state["items"] = kept
            self.write_state(state)
            self._on_change()
        return removed

    def _migrate_v1_to_v2(self, state: State) -> State:
        items = []
        for item in state["items"]:
            booked_on = transaction_date(item) or self._now().date()
            migrated = {
                **item,
                "accountId": item.get("accountId") or DEFAULT_ACCOUNT_ID,
                "transactionType": REGULAR,
                "date": booked_on.isoformat(),
            }
            migrated.pop("goalId", None)
            if not is_timestamp(migrated.get("createdAt")):
                migrated.pop("createdAt", None)
            items.append(migrated)
        return {"version": 2, "items": items}
