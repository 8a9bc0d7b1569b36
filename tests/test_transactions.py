"""Transactions repository, its change channel and the v1 migration."""
from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from clocket_core.events import TRANSACTIONS_CHANGED, ChangeChannel
from clocket_core.exceptions import ValidationError
from clocket_core.storage import MemoryStore
from clocket_core.transactions import (
    EXPENSE_COLOR,
    INCOME_COLOR,
    TransactionsRepository,
    format_signed_amount,
    parse_signed_amount,
    transaction_date,
)

from conftest import frozen_clock, seed, stored


@pytest.fixture()
def channel() -> ChangeChannel:
    return ChangeChannel()


@pytest.fixture()
def transactions(memory_store: MemoryStore, channel: ChangeChannel) -> TransactionsRepository:
    return TransactionsRepository(memory_store, channel=channel, clock=frozen_clock)


def _expense(**extra) -> dict:
    payload = {"name": "Almuerzo", "amount": "-$12.50", "category": "Alimentación"}
    payload.update(extra)
    return payload


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("-$1,250.00", Decimal("-1250.00")),
        ("+$30", Decimal("30")),
        (12.5, Decimal("12.5")),
        ("abc", None),
        (None, None),
        (True, None),
    ],
)
def test_parse_signed_amount(raw, expected) -> None:
    assert parse_signed_amount(raw) == expected


def test_format_signed_amount() -> None:
    assert format_signed_amount(Decimal("-4.5")) == "-$4.50"
    assert format_signed_amount(Decimal("10")) == "+$10.00"


def test_create_fills_defaults(transactions) -> None:
    tx = transactions.create(_expense())

    assert tx.account_id == "account_default"
    assert tx.transaction_type == "regular"
    assert tx.date == date(2024, 3, 15)
    assert tx.meta == "2024-03-15 • Alimentación"
    assert tx.amount_color == EXPENSE_COLOR
    assert tx.created_at is not None
    assert transactions.get_by_id(tx.id) == tx


def test_numeric_amount_is_formatted(transactions) -> None:
    tx = transactions.create(_expense(amount=250))

    assert tx.amount == "+$250.00"
    assert tx.amount_color == INCOME_COLOR


@pytest.mark.parametrize(
    ("override", "message"),
    [
        ({"amount": "gratis"}, "amount must be a valid number."),
        ({"name": ""}, "name is required."),
        ({"date": "2024-3-1"}, "YYYY-MM-DD"),
        ({"transactionType": "saving"}, "require a goalId"),
        ({"goalId": "goal_1"}, "cannot reference a goal"),
        ({"transactionType": "transfer"}, "transactionType must be one of"),
    ],
)
def test_create_validation(transactions, override, message) -> None:
    with pytest.raises(ValidationError, match=message):
        transactions.create(_expense(**override))


def test_saving_transaction_keeps_goal(transactions) -> None:
    tx = transactions.create(_expense(transactionType="saving", goalId="goal_1", amount="-100"))

    assert tx.goal_id == "goal_1"


def test_update_rebuilds_meta_and_color(transactions) -> None:
    tx = transactions.create(_expense(date="2024-03-01"))

    updated = transactions.update(tx.id, {"date": "2024-02-20", "amount": "+5"})

    assert updated.meta == "2024-02-20 • Alimentación"
    assert updated.amount_color == INCOME_COLOR
    assert updated.created_at == tx.created_at


def test_every_write_is_published(transactions, channel) -> None:
    events = []
    unsubscribe = channel.subscribe(events.append)

    tx = transactions.create(_expense())
    transactions.update(tx.id, {"name": "Cena"})
    transactions.remove(tx.id)
    unsubscribe()
    transactions.create(_expense())

    assert [event.revision for event in events] == [1, 2, 3]
    assert {event.name for event in events} == {TRANSACTIONS_CHANGED}
    assert channel.revision == 4


def test_failed_writes_are_not_published(transactions, channel) -> None:
    with pytest.raises(ValidationError):
        transactions.create(_expense(amount="x"))
    transactions.update("missing", {"name": "x"})
    transactions.remove("missing")

    assert channel.revision == 0


def test_list_helpers(transactions) -> None:
    march = transactions.create(_expense(date="2024-03-02", accountId="acc_2"))
    transactions.create(_expense(date="2024-02-28"))

    assert transactions.list_for_month("2024-03") == [march]
    assert transactions.list_by_account("acc_2") == [march]


def test_v1_transactions_migrate(memory_store: MemoryStore, transactions) -> None:
    seed(memory_store, "clocket.transactions", {"version": 1, "items": [
        {"id": "t1", "name": "Pan", "icon": "bread", "iconBg": "bg-[#000]",
         "category": "Comida", "categoryId": None, "amount": "-$2.00",
         "amountColor": None, "meta": "2023-11-04 • Comida", "goalId": "g"},
        {"id": "t2", "name": "Cafe", "icon": "cup", "iconBg": "bg-[#000]",
         "category": "Comida", "categoryId": "c", "amount": "-$1.00",
         "amountColor": None, "meta": "sin fecha", "createdAt": "ayer"},
    ]})

    first, second = transactions.list()

    assert first.date == date(2023, 11, 4)
    assert first.goal_id is None
    assert first.account_id == "account_default"
    assert second.date == date(2024, 3, 15)
    assert second.created_at is None
    assert stored(memory_store, "clocket.transactions")["version"] == 2


def test_migrated_transactions_are_not_recomputed(memory_store: MemoryStore, transactions) -> None:
    seed(memory_store, "clocket.transactions", {"version": 1, "items": [
        {"id": "t1", "name": "Cafe", "icon": "cup", "iconBg": "bg-[#000]",
         "category": "Comida", "categoryId": "c", "amount": "-$1.00",
         "amountColor": None, "meta": "sin fecha"},
    ]})
    transactions.list()
    migrated = stored(memory_store, "clocket.transactions")

    later = TransactionsRepository(
        memory_store, clock=lambda: datetime(2024, 5, 1, tzinfo=timezone.utc)
    )
    [reread] = later.list()

    assert reread.date == date(2024, 3, 15)
    assert stored(memory_store, "clocket.transactions") == migrated


def test_transaction_date_fallbacks() -> None:
    assert transaction_date({"date": "2024-01-02"}) == date(2024, 1, 2)
    assert transaction_date({"date": "bad", "createdAt": "2024-01-03T10:00:00.000Z"}) == date(2024, 1, 3)
    assert transaction_date({"meta": "2024-01-04 • Comida"}) == date(2024, 1, 4)
    assert transaction_date({"meta": "Cuota 1/3"}) is None
