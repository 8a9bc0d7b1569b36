"""Accounts repository."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .models import Account
from .repository import Record, VersionedRepository
from .validators import (
    is_number,
    is_record,
    is_text,
    is_timestamp,
    parse_decimal,
    validate_optional_str,
    validate_required_str,
)

if TYPE_CHECKING:
    from .transactions import TransactionsRepository

DEFAULT_ACCOUNT_ID = "account_default"
DEFAULT_ACCOUNT_NAME = "Cuenta principal"
DEFAULT_ACCOUNT_ICON = "wallet"


def _is_account_v1(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("name"))
        and is_number(item.get("balance"))
        and is_text(item.get("icon"))
        and is_timestamp(item.get("createdAt"))
        and is_timestamp(item.get("updatedAt"))
    )


class AccountsRepository(VersionedRepository):
    """Stores money accounts; a fresh store is seeded with one default account.

    When a transactions repository is supplied, removing an account also
    removes the transactions booked against it.
    """

    key_suffix = "accounts"
    version = 1
    model = Account
    schemas = {1: _is_account_v1}

    def __init__(
        self,
        store=None,
        *,
        transactions: Optional["TransactionsRepository"] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        self._transactions = transactions

    def remove(self, record_id: str) -> bool:
        removed = super().remove(record_id)
        if removed and self._transactions is not None:
            self._transactions.remove_by_account(record_id)
        return removed

    def _initial_payload(self) -> List[Record]:
        now = self._timestamp()
        return [
            {
                "id": DEFAULT_ACCOUNT_ID,
                "name": DEFAULT_ACCOUNT_NAME,
                "balance": "0.00",
                "icon": DEFAULT_ACCOUNT_ICON,
                "createdAt": now,
                "updatedAt": now,
            }
        ]

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        now = self._timestamp()
        return {
            "id": self._new_id(),
            **self._validate_payload(payload),
            "createdAt": now,
            "updatedAt": now,
        }

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        merged = {**current, **patch}
        return {**current, **self._validate_payload(merged), "updatedAt": self._timestamp()}

    def _validate_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        balance = payload.get("balance")
        return {
            "name": validate_required_str(payload.get("name"), "Account name"),
            "balance": str(parse_decimal(0 if balance is None else balance, "balance")),
            "icon": validate_optional_str(payload.get("icon"), "icon") or DEFAULT_ACCOUNT_ICON,
        }
