"""Command line interface against a temporary data directory."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from clocket.cli import main


@pytest.fixture()
def run(tmp_path: Path, capsys):
    def _run(*args: str):
        code = main(["--data-dir", str(tmp_path), *args])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


def test_account_add_and_list(run) -> None:
    code, out, _ = run("account", "add", "Ahorros", "--balance", "25.5")
    assert code == 0
    assert "Ahorros balance 25.50" in out

    code, out, _ = run("account", "list")
    assert code == 0
    assert "Cuenta principal" in out
    assert "Ahorros" in out


def test_transaction_flow_and_summary(run) -> None:
    assert run("transaction", "add", "Sueldo", "+1000", "Ingresos", "--date", "2024-03-01")[0] == 0
    assert run("transaction", "add", "Super", "-120.40", "Comida", "--date", "2024-03-03")[0] == 0

    code, out, _ = run("transaction", "list", "--month", "2024-03")
    assert code == 0
    assert "Found 2 transactions (net 879.60)" in out

    code, out, _ = run("summary", "--month", "2024-03")
    assert code == 0
    assert "Income: 1000.00" in out
    assert "Expense: 120.40" in out
    assert "Net: 879.60" in out


def test_budget_with_selected_subcategories(run, tmp_path: Path) -> None:
    code, out, _ = run(
        "budget", "add", "Delivery", "300", "cat_food",
        "--month", "2024-03", "--subcategories", "Delivery", "__none__",
    )
    assert code == 0
    assert "cat_food (Delivery, __none__)" in out

    persisted = json.loads((tmp_path / "clocket.budgets.json").read_text(encoding="utf-8"))
    assert persisted["version"] == 2
    assert persisted["items"][0]["scopeRules"][0]["subcategoryNames"] == ["Delivery", "__none__"]


def test_goal_and_category_commands(run) -> None:
    assert run("goal", "add", "Viaje", "1500", "2024-12-31")[0] == 0

    code, out, _ = run("category", "list")
    assert code == 0
    assert "Metas" in out
    assert "Subcategories: Viaje" in out


def test_validation_error_exit_code(run) -> None:
    code, _, err = run("goal", "add", "Viaje", "1500", "31-12-2024")

    assert code == 1
    assert "Validation error" in err


def test_delete_missing_record(run) -> None:
    code, _, err = run("transaction", "delete", "nope")

    assert code == 1
    assert "not found" in err


def test_cuota_add_records_installments(run) -> None:
    code, out, _ = run(
        "cuota", "add", "Notebook", "1200", "12", "--paid", "1", "--start-month", "2020-01"
    )
    assert code == 0
    assert "1/12 x 100.00" in out
