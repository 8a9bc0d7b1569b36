"""Monthly read-models computed over the repositories."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .budgets import BudgetsRepository
from .cuotas import CuotasRepository, pending_installments_total
from .models import Transaction
from .scope import matches_transaction
from .transactions import TransactionsRepository, parse_signed_amount, transaction_date
from .validators import quantize, validate_year_month

ZERO = Decimal("0")


def _in_month(transaction: Transaction, year_month: str) -> bool:
    booked_on = transaction_date(transaction)
    return booked_on is not None and booked_on.strftime("%Y-%m") == year_month


def _signed(transaction: Transaction) -> Decimal:
    return parse_signed_amount(transaction.amount) or ZERO


class LedgerService:
    """Aggregates transactions, budgets and installment plans per month."""

    def __init__(
        self,
        transactions: TransactionsRepository,
        budgets: BudgetsRepository,
        cuotas: Optional[CuotasRepository] = None,
    ) -> None:
        self._transactions = transactions
        self._budgets = budgets
        self._cuotas = cuotas

    def transactions_in_month(self, year_month: str) -> List[Transaction]:
        year_month = validate_year_month(year_month, "month")
        return [tx for tx in self._transactions.list() if _in_month(tx, year_month)]

    def monthly_balance(self, year_month: str) -> Dict[str, Decimal]:
        """Income, expense (as a positive figure) and net for ``year_month``."""
        income = ZERO
        expense = ZERO
        for transaction in self.transactions_in_month(year_month):
            amount = _signed(transaction)
            if amount > 0:
                income += amount
            elif amount < 0:
                expense += -amount
        return {
            "income": quantize(income),
            "expense": quantize(expense),
            "net": quantize(income - expense),
        }

    def budget_spending(self, year_month: str) -> Dict[str, Decimal]:
        expenses = [
            tx for tx in self.transactions_in_month(year_month) if _signed(tx) < 0
        ]
        spending: Dict[str, Decimal] = {}
        for budget in self._budgets.list_for_month(year_month):
            spent = sum(
                (-_signed(tx) for tx in expenses if matches_transaction(budget.scope_rules, tx)),
                ZERO,
            )
            spending[budget.id] = quantize(spent)
        return spending

    def pending_installments(self, year_month: str) -> Decimal:
        year_month = validate_year_month(year_month, "month")
        if self._cuotas is None:
            return quantize(ZERO)
        return pending_installments_total(self._cuotas.list(), year_month)

    def summary(self, year_month: str) -> Dict[str, object]:
        """Serialisable month overview used by the API and the CLI."""
        balance = self.monthly_balance(year_month)
        spending = self.budget_spending(year_month)
        return {
            "month": year_month,
            "income": _money(balance["income"]),
            "expense": _money(balance["expense"]),
            "net": _money(balance["net"]),
            "budgets": {budget_id: _money(spent) for budget_id, spent in spending.items()},
            "pendingInstallments": _money(self.pending_installments(year_month)),
        }


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def total_of(transactions: Iterable[Transaction]) -> Decimal:
    return quantize(sum((_signed(tx) for tx in transactions), ZERO))
