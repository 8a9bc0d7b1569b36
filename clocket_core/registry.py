"""Wires every repository against one store, the way the outer surfaces need them."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .accounts import AccountsRepository
from .budgets import BudgetsRepository
from .categories import CategoriesRepository
from .config import DEFAULT_NAMESPACE
from .cuotas import CuotasRepository
from .events import ChangeChannel
from .goals import GoalsRepository
from .investments import InvestmentsRepository
from .ledger import LedgerService
from .repository import Clock
from .settings import AppSettingsRepository
from .storage import KeyValueStore
from .transactions import TransactionsRepository


@dataclass(frozen=True)
class Repositories:
    accounts: AccountsRepository
    categories: CategoriesRepository
    budgets: BudgetsRepository
    goals: GoalsRepository
    cuotas: CuotasRepository
    transactions: TransactionsRepository
    investments: InvestmentsRepository
    settings: AppSettingsRepository
    ledger: LedgerService

    def clear_all(self) -> None:
        """Reset every collection to its initial state."""
        self.cuotas.clear_all()
        self.transactions.clear_all()
        self.goals.clear_all()
        self.budgets.clear_all()
        self.categories.clear_all()
        self.accounts.clear_all()
        self.investments.clear_all()
        self.settings.reset()


def build_repositories(
    store: Optional[KeyValueStore] = None,
    *,
    namespace: str = DEFAULT_NAMESPACE,
    clock: Optional[Clock] = None,
    channel: Optional[ChangeChannel] = None,
) -> Repositories:
    shared = {"namespace": namespace, "clock": clock}
    transactions = TransactionsRepository(store, channel=channel, **shared)
    categories = CategoriesRepository(store, **shared)
    budgets = BudgetsRepository(store, **shared)
    cuotas = CuotasRepository(store, transactions=transactions, **shared)
    return Repositories(
        accounts=AccountsRepository(store, transactions=transactions, **shared),
        categories=categories,
        budgets=budgets,
        goals=GoalsRepository(store, categories=categories, **shared),
        cuotas=cuotas,
        transactions=transactions,
        investments=InvestmentsRepository(store, **shared),
        settings=AppSettingsRepository(store, **shared),
        ledger=LedgerService(transactions, budgets, cuotas),
    )
