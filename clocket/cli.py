"""Console interface for Clocket."""

from __future__ import annotations

import argparse
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, List, Optional

from clocket_core.config import Settings
from clocket_core.exceptions import PersistenceError, RecordNotFoundError, ValidationError
from clocket_core.ledger import total_of
from clocket_core.models import ALL_SUBCATEGORIES, SELECTED_SUBCATEGORIES
from clocket_core.registry import Repositories, build_repositories
from clocket_core.repository import VersionedRepository
from clocket_core.storage import JSONFileStore
from clocket_core.validators import YEAR_MONTH_PATTERN, current_year_month

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _parse_month(value: str) -> str:
    if not YEAR_MONTH_PATTERN.fullmatch(value):
        raise argparse.ArgumentTypeError(f"Invalid month '{value}'. Expected format YYYY-MM.")
    return value


def _parse_amount(value: str) -> str:
    try:
        Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError("Amount must be a numeric value") from exc
    return value


def _load_repositories(args: argparse.Namespace) -> Repositories:
    return build_repositories(JSONFileStore(args.data_dir), namespace=args.namespace)


def _format_account(account: Dict[str, Any]) -> str:
    return f"[{account['id']}] {account['name']} balance {account['balance']} ({account['icon']})"


def _format_category(category: Dict[str, Any]) -> str:
    subcategories = ", ".join(category["subcategories"]) or "-"
    return f"[{category['id']}] {category['name']}\n  Subcategories: {subcategories}"


def _format_budget(budget: Dict[str, Any], spent: Optional[Decimal] = None) -> str:
    rules = []
    for rule in budget["scopeRules"]:
        if rule["mode"] == ALL_SUBCATEGORIES:
            rules.append(f"{rule['categoryId']} (all)")
        else:
            rules.append(f"{rule['categoryId']} ({', '.join(rule['subcategoryNames'])})")
    line = f"[{budget['id']}] {budget['month']} {budget['name']} limit {budget['limitAmount']}"
    if spent is not None:
        line += f" spent {spent:.2f}"
    return f"{line}\n  Scope: {'; '.join(rules)}"


def _format_goal(goal: Dict[str, Any]) -> str:
    return (
        f"[{goal['id']}] {goal['title']} target {goal['targetAmount']} by {goal['deadlineDate']}\n"
        f"  {goal['description']}"
    )


def _format_transaction(transaction: Dict[str, Any]) -> str:
    subcategory = transaction.get("subcategoryName") or "-"
    return (
        f"[{transaction['id']}] {transaction['date']} {transaction['amount']} {transaction['name']}\n"
        f"  Category: {transaction['category']} | Subcategory: {subcategory}"
        f" | Account: {transaction['accountId']}"
    )


def _format_cuota(plan: Dict[str, Any]) -> str:
    return (
        f"[{plan['id']}] {plan['title']} {plan['paidInstallmentsCount']}/{plan['installmentsCount']}"
        f" x {plan['installmentAmount']} from {plan['startMonth']}"
    )


def _delete(repository: VersionedRepository, label: str, record_id: str) -> None:
    if repository.get_by_id(record_id) is None:
        raise RecordNotFoundError(f"{label} {record_id} not found")
    if not repository.remove(record_id):
        raise ValidationError(f"{label} {record_id} cannot be deleted")
    print(f"{label} {record_id} deleted.")


def handle_account(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        account = repos.accounts.create(
            {"name": args.name, "balance": args.balance, "icon": args.icon}
        )
        print("Account added: " + _format_account(account.to_dict()))
    elif args.command == "list":
        for account in repos.accounts.list():
            print(_format_account(account.to_dict()))
    elif args.command == "delete":
        _delete(repos.accounts, "Account", args.id)


def handle_category(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        category = repos.categories.create(
            {"name": args.name, "icon": args.icon, "subcategories": args.subcategories}
        )
        print("Category added:\n" + _format_category(category.to_dict()))
    elif args.command == "list":
        for category in repos.categories.list():
            print(_format_category(category.to_dict()))
    elif args.command == "delete":
        _delete(repos.categories, "Category", args.id)


def handle_budget(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        if args.subcategories:
            rule = {
                "categoryId": args.category_id,
                "mode": SELECTED_SUBCATEGORIES,
                "subcategoryNames": args.subcategories,
            }
        else:
            rule = {"categoryId": args.category_id, "mode": ALL_SUBCATEGORIES}
        budget = repos.budgets.create(
            {
                "name": args.name,
                "limitAmount": args.limit,
                "month": args.month,
                "scopeRules": [rule],
            },
            reject_overlap=True,
        )
        print("Budget added:\n" + _format_budget(budget.to_dict()))
    elif args.command == "list":
        month = args.month or current_year_month()
        budgets = repos.budgets.list_for_month(month)
        if not budgets:
            print(f"No budgets found for {month}.")
            return
        spending = repos.ledger.budget_spending(month)
        for budget in budgets:
            print(_format_budget(budget.to_dict(), spending.get(budget.id)))
    elif args.command == "delete":
        _delete(repos.budgets, "Budget", args.id)


def handle_goal(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        goal = repos.goals.create(
            {
                "title": args.title,
                "description": args.description or args.title,
                "targetAmount": args.target,
                "deadlineDate": args.deadline,
            }
        )
        print("Goal added:\n" + _format_goal(goal.to_dict()))
    elif args.command == "list":
        for goal in repos.goals.list():
            print(_format_goal(goal.to_dict()))
    elif args.command == "delete":
        _delete(repos.goals, "Goal", args.id)


def handle_transaction(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        transaction = repos.transactions.create(
            {
                "name": args.name,
                "amount": args.amount,
                "category": args.category,
                "categoryId": args.category_id,
                "subcategoryName": args.subcategory,
                "accountId": args.account,
                "date": args.date,
            }
        )
        print("Transaction added:\n" + _format_transaction(transaction.to_dict()))
    elif args.command == "list":
        month = args.month or current_year_month()
        transactions = repos.ledger.transactions_in_month(month)
        if not transactions:
            print(f"No transactions found for {month}.")
            return
        print(f"Found {len(transactions)} transactions (net {total_of(transactions):.2f}):")
        for transaction in transactions:
            print(_format_transaction(transaction.to_dict()))
    elif args.command == "delete":
        _delete(repos.transactions, "Transaction", args.id)


def handle_cuota(args: argparse.Namespace, repos: Repositories) -> None:
    if args.command == "add":
        plan = repos.cuotas.create(
            {
                "title": args.title,
                "totalAmount": args.total,
                "installmentsCount": args.installments,
                "paidInstallmentsCount": args.paid,
                "startMonth": args.start_month,
                "categoryId": args.category_id,
            }
        )
        print("Cuota added: " + _format_cuota(plan.to_dict()))
    elif args.command == "list":
        plans = repos.cuotas.active_in_month(args.month) if args.month else repos.cuotas.list()
        for plan in plans:
            print(_format_cuota(plan.to_dict()))
    elif args.command == "delete":
        _delete(repos.cuotas, "Cuota", args.id)


def handle_summary(args: argparse.Namespace, repos: Repositories) -> None:
    summary = repos.ledger.summary(args.month or current_year_month())
    print(f"Summary for {summary['month']}")
    print(f"  Income: {summary['income']}")
    print(f"  Expense: {summary['expense']}")
    print(f"  Net: {summary['net']}")
    print(f"  Pending installments: {summary['pendingInstallments']}")


def build_parser() -> argparse.ArgumentParser:
    defaults = Settings.from_env()
    parser = argparse.ArgumentParser(description="Clocket personal finance CLI")
    parser.add_argument(
        "--data-dir",
        default=defaults.data_dir,
        type=Path,
        help="Directory to store JSON data (default: $CLOCKET_DATA_DIR or ./data)",
    )
    parser.add_argument("--namespace", default=defaults.namespace)
    parser.add_argument("--log-level", default="WARNING", choices=LOG_LEVELS)

    subparsers = parser.add_subparsers(dest="entity", required=True)

    account_parser = subparsers.add_parser("account", help="Manage accounts")
    account_sub = account_parser.add_subparsers(dest="command", required=True)
    account_add = account_sub.add_parser("add", help="Add an account")
    account_add.add_argument("name")
    account_add.add_argument("--balance", type=_parse_amount, default="0")
    account_add.add_argument("--icon")
    account_sub.add_parser("list", help="List accounts")
    account_sub.add_parser("delete", help="Delete an account").add_argument("id")

    category_parser = subparsers.add_parser("category", help="Manage categories")
    category_sub = category_parser.add_subparsers(dest="command", required=True)
    category_add = category_sub.add_parser("add", help="Add a category")
    category_add.add_argument("name")
    category_add.add_argument("--icon")
    category_add.add_argument("--subcategories", nargs="*", default=[])
    category_sub.add_parser("list", help="List categories")
    category_sub.add_parser("delete", help="Delete a category").add_argument("id")

    budget_parser = subparsers.add_parser("budget", help="Manage budgets")
    budget_sub = budget_parser.add_subparsers(dest="command", required=True)
    budget_add = budget_sub.add_parser("add", help="Add a budget")
    budget_add.add_argument("name")
    budget_add.add_argument("limit", type=_parse_amount)
    budget_add.add_argument("category_id")
    budget_add.add_argument("--month", type=_parse_month)
    budget_add.add_argument("--subcategories", nargs="*")
    budget_list = budget_sub.add_parser("list", help="List budgets of a month")
    budget_list.add_argument("--month", type=_parse_month)
    budget_sub.add_parser("delete", help="Delete a budget").add_argument("id")

    goal_parser = subparsers.add_parser("goal", help="Manage savings goals")
    goal_sub = goal_parser.add_subparsers(dest="command", required=True)
    goal_add = goal_sub.add_parser("add", help="Add a goal")
    goal_add.add_argument("title")
    goal_add.add_argument("target", type=_parse_amount)
    goal_add.add_argument("deadline", help="YYYY-MM-DD")
    goal_add.add_argument("--description")
    goal_sub.add_parser("list", help="List goals")
    goal_sub.add_parser("delete", help="Delete a goal").add_argument("id")

    transaction_parser = subparsers.add_parser("transaction", help="Manage transactions")
    transaction_sub = transaction_parser.add_subparsers(dest="command", required=True)
    transaction_add = transaction_sub.add_parser("add", help="Add a transaction")
    transaction_add.add_argument("name")
    transaction_add.add_argument("amount", help="Signed amount, e.g. -12.50 or +300")
    transaction_add.add_argument("category")
    transaction_add.add_argument("--category-id")
    transaction_add.add_argument("--subcategory")
    transaction_add.add_argument("--account")
    transaction_add.add_argument("--date", help="YYYY-MM-DD")
    transaction_list = transaction_sub.add_parser("list", help="List transactions of a month")
    transaction_list.add_argument("--month", type=_parse_month)
    transaction_sub.add_parser("delete", help="Delete a transaction").add_argument("id")

    cuota_parser = subparsers.add_parser("cuota", help="Manage installment plans")
    cuota_sub = cuota_parser.add_subparsers(dest="command", required=True)
    cuota_add = cuota_sub.add_parser("add", help="Add an installment plan")
    cuota_add.add_argument("title")
    cuota_add.add_argument("total", type=_parse_amount)
    cuota_add.add_argument("installments", type=int)
    cuota_add.add_argument("--paid", type=int, default=0)
    cuota_add.add_argument("--start-month", type=_parse_month)
    cuota_add.add_argument("--category-id")
    cuota_list = cuota_sub.add_parser("list", help="List installment plans")
    cuota_list.add_argument("--month", type=_parse_month)
    cuota_sub.add_parser("delete", help="Delete an installment plan").add_argument("id")

    summary_parser = subparsers.add_parser("summary", help="Monthly income, expense and net")
    summary_parser.add_argument("--month", type=_parse_month)

    return parser


HANDLERS = {
    "account": handle_account,
    "category": handle_category,
    "budget": handle_budget,
    "goal": handle_goal,
    "transaction": handle_transaction,
    "cuota": handle_cuota,
    "summary": handle_summary,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        repos = _load_repositories(args)
        HANDLERS[args.entity](args, repos)
    except ValidationError as exc:
        print(f"Validation error: {exc}", file=sys.stderr)
        return 1
    except RecordNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except PersistenceError as exc:
        print(f"Storage error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
