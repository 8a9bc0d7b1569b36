"""Categories and accounts repositories."""
from __future__ import annotations

from decimal import Decimal

import pytest

from clocket_core.accounts import DEFAULT_ACCOUNT_ID, AccountsRepository
from clocket_core.categories import CategoriesRepository
from clocket_core.exceptions import ValidationError
from clocket_core.registry import Repositories
from clocket_core.storage import MemoryStore

from conftest import frozen_clock, seed


@pytest.fixture()
def categories(memory_store: MemoryStore) -> CategoriesRepository:
    return CategoriesRepository(memory_store, clock=frozen_clock)


def test_categories_are_seeded(categories) -> None:
    assert [category.id for category in categories.list()] == [
        "category_food",
        "category_transport",
        "category_services",
    ]


def test_create_category_normalizes_subcategories(categories) -> None:
    category = categories.create(
        {"name": " Hogar ", "subcategories": ["Luz", " Luz", "", "Gas"]}
    )

    assert category.name == "Hogar"
    assert category.subcategories == ["Luz", "Gas"]
    assert category.to_dict()["subcategoryCount"] == 2
    assert category.icon == "tag"


def test_reserved_subcategory_name_is_rejected(categories) -> None:
    with pytest.raises(ValidationError, match="reserved"):
        categories.create({"name": "Hogar", "subcategories": ["__none__"]})


def test_update_category_keeps_count_in_sync(categories) -> None:
    category = categories.create({"name": "Hogar", "subcategories": ["Luz"]})

    updated = categories.update(category.id, {"subcategories": ["Luz", "Agua", "Gas"]})

    assert updated.subcategory_count == 3
    assert categories.update(category.id, {"name": "Casa"}).subcategories == ["Luz", "Agua", "Gas"]


def test_category_names_are_unique_ignoring_case(categories) -> None:
    hogar = categories.create({"name": "Hogar"})

    with pytest.raises(ValidationError, match="must be unique"):
        categories.create({"name": "HOGAR"})
    with pytest.raises(ValidationError, match="must be unique"):
        categories.update(hogar.id, {"name": "alimentación"})
    assert categories.update(hogar.id, {"name": "hogar"}).name == "hogar"


def test_goals_parent_name_cannot_be_duplicated(repos: Repositories) -> None:
    repos.goals.create({
        "title": "Viaje", "description": "Europa", "targetAmount": 900, "deadlineDate": "2024-10-01",
    })

    with pytest.raises(ValidationError, match="must be unique"):
        repos.categories.create({"name": "METAS"})
    assert [c.name for c in repos.categories.list()].count("Metas") == 1


def test_find_by_name_ignores_case(categories) -> None:
    assert categories.find_by_name("transporte").id == "category_transport"
    assert categories.find_by_name("Viajes") is None


def test_credit_card_category_cannot_be_removed(memory_store: MemoryStore, categories) -> None:
    seed(memory_store, "clocket.categories", {"version": 1, "items": [
        {"id": "cc", "name": "Tarjeta de credito", "icon": "credit-card",
         "iconBg": "bg-[#18181B]", "subcategoryCount": 0},
    ]})

    assert categories.remove("cc") is False
    assert categories.get_by_id("cc") is not None


def test_accounts_seed_default_account(memory_store: MemoryStore) -> None:
    accounts = AccountsRepository(memory_store, clock=frozen_clock)

    [account] = accounts.list()

    assert account.id == DEFAULT_ACCOUNT_ID
    assert account.name == "Cuenta principal"
    assert account.balance == Decimal("0.00")


def test_account_update_merges_patch(memory_store: MemoryStore) -> None:
    accounts = AccountsRepository(memory_store, clock=frozen_clock)
    account = accounts.create({"name": "Ahorros", "balance": "-10.005"})

    updated = accounts.update(account.id, {"icon": "piggy-bank"})

    assert account.balance == Decimal("-10.01")
    assert updated.name == "Ahorros"
    assert updated.icon == "piggy-bank"
    assert updated.balance == account.balance


def test_account_requires_name(memory_store: MemoryStore) -> None:
    accounts = AccountsRepository(memory_store, clock=frozen_clock)

    with pytest.raises(ValidationError, match="Account name is required"):
        accounts.create({"name": ""})


def test_removing_account_removes_its_transactions(repos: Repositories) -> None:
    account = repos.accounts.create({"name": "Ahorros"})
    repos.transactions.create(
        {"name": "Sueldo", "amount": "+100", "category": "Ingresos", "accountId": account.id}
    )
    kept = repos.transactions.create({"name": "Pan", "amount": "-2", "category": "Comida"})

    assert repos.accounts.remove(account.id) is True

    assert [tx.id for tx in repos.transactions.list()] == [kept.id]
