"""Flask API routes over an in-memory store."""
from __future__ import annotations

from pathlib import Path

from api.app import create_app
from clocket_core.config import Settings


def test_accounts_crud(client) -> None:
    response = client.get("/accounts")
    assert response.status_code == 200
    assert [item["id"] for item in response.get_json()["items"]] == ["account_default"]

    created = client.post("/accounts", json={"name": "Ahorros", "balance": "10"})
    assert created.status_code == 201
    account_id = created.get_json()["id"]

    updated = client.put(f"/accounts/{account_id}", json={"name": "Ahorro USD"})
    assert updated.get_json()["name"] == "Ahorro USD"
    assert updated.get_json()["balance"] == "10.00"

    assert client.delete(f"/accounts/{account_id}").status_code == 204
    assert client.get(f"/accounts/{account_id}").status_code == 404


def test_missing_records_return_404(client) -> None:
    for path in ("/budgets/nope", "/goals/nope", "/cuotas/nope", "/transactions/nope"):
        assert client.put(path, json={"name": "x"}).status_code == 404
        assert client.delete(path).status_code == 404
    assert client.delete("/investments/positions/nope").status_code == 404


def test_validation_errors_return_400(client) -> None:
    response = client.post("/budgets", json={"name": "Vacio", "limitAmount": 10, "scopeRules": []})

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Validation error"
    assert "scope rule" in body["details"]


def test_non_json_body_is_rejected(client) -> None:
    response = client.post("/categories", data="name=Hogar")

    assert response.status_code == 400
    assert "application/json" in response.get_json()["details"]


def test_overlapping_budget_is_rejected(client) -> None:
    payload = {"name": "Comida", "limitAmount": 100, "month": "2024-03", "categoryId": "cat_food"}
    assert client.post("/budgets", json=payload).status_code == 201

    response = client.post("/budgets", json=payload)

    assert response.status_code == 400
    assert "overlaps" in response.get_json()["details"]


def test_budget_update_into_overlap_is_rejected(client) -> None:
    payload = {"name": "Comida", "limitAmount": 100, "month": "2024-03", "categoryId": "cat_food"}
    client.post("/budgets", json=payload)
    april = client.post("/budgets", json={**payload, "month": "2024-04"}).get_json()

    response = client.put(f"/budgets/{april['id']}", json={"month": "2024-03"})

    assert response.status_code == 400
    assert "overlaps" in response.get_json()["details"]
    assert client.put(f"/budgets/{april['id']}", json={"name": "Abril"}).status_code == 200


def test_protected_category_cannot_be_deleted(client) -> None:
    created = client.post("/categories", json={"name": "Tarjeta de Credito"}).get_json()

    response = client.delete(f"/categories/{created['id']}")

    assert response.status_code == 400


def test_budgets_for_month_include_spending(client) -> None:
    budget = client.post(
        "/budgets",
        json={"name": "Comida", "limitAmount": 100, "month": "2024-03", "categoryId": "cat_food"},
    ).get_json()
    client.post(
        "/transactions",
        json={"name": "Super", "amount": "-40", "category": "Comida",
              "categoryId": "cat_food", "date": "2024-03-02"},
    )

    items = client.get("/budgets/month/2024-03").get_json()["items"]

    assert items == [{**budget, "spent": "40.00"}]


def test_transactions_for_month_report_revision(client) -> None:
    client.post("/transactions", json={"name": "Pan", "amount": "-2", "category": "Comida"})

    body = client.get("/transactions/month/2024-03").get_json()

    assert len(body["items"]) == 1
    assert body["revision"] == 1


def test_goals_route_keeps_parent_category(client) -> None:
    client.post("/goals", json={
        "title": "Viaje", "description": "Europa", "targetAmount": 900, "deadlineDate": "2024-10-01",
    })

    names = {item["name"]: item for item in client.get("/categories").get_json()["items"]}

    assert names["Metas"]["subcategories"] == ["Viaje"]


def test_investment_routes(client) -> None:
    position = client.post(
        "/investments/positions",
        json={"assetType": "stock", "ticker": "AAPL", "usd_gastado": "100", "buy_price": "50"},
    ).get_json()
    client.post(
        "/investments/snapshots",
        json={"assetType": "stock", "ticker": "AAPL", "price": "60", "source": "GLOBAL_QUOTE"},
    )

    metrics = client.get(f"/investments/positions/{position['id']}/metrics").get_json()
    history = client.get(f"/investments/positions/{position['id']}/history").get_json()
    refs = client.get("/investments/refs").get_json()

    assert metrics["currentValueUSD"] == "120.000000"
    assert metrics["pnlTotalUSD"] == "20.000000"
    assert len(history["items"]) == 1
    assert refs["stock:AAPL"]["dailyRefPrice"] == "60.00000000"


def test_settings_routes(client) -> None:
    assert client.get("/settings").get_json()["currency"] == "USD"

    updated = client.put("/settings", json={"language": "en"}).get_json()
    assert updated["language"] == "en"

    assert client.put("/settings/pin", json={"pin": "4321"}).status_code == 200
    assert client.post("/settings/pin/verify", json={"pin": "4321"}).get_json() == {"valid": True}
    assert client.put("/settings/pin", json={"pin": "12"}).status_code == 400

    assert client.delete("/settings").get_json()["language"] == "es"


def test_settings_update_cannot_set_pin_hash(client) -> None:
    response = client.put("/settings", json={"security": {"pinHash": "0000"}})

    assert response.status_code == 400
    assert client.get("/settings").get_json()["security"] == {"pinHash": None}


def test_summary(client) -> None:
    client.post("/transactions", json={"name": "Sueldo", "amount": "+500", "category": "Ingresos"})
    client.post("/transactions", json={"name": "Pan", "amount": "-20", "category": "Comida"})

    summary = client.get("/summary?month=2024-03").get_json()

    assert (summary["income"], summary["expense"], summary["net"]) == ("500.00", "20.00", "480.00")
    assert client.get("/summary").get_json()["month"] == "2024-03"
    assert client.get("/summary?month=03-2024").status_code == 400


def test_file_backed_app_persists_between_instances(tmp_path: Path) -> None:
    config = Settings(data_dir=tmp_path, namespace="demo")
    first = create_app(config=config).test_client()
    first.post("/categories", json={"name": "Viajes"})

    second = create_app(config=config).test_client()
    names = [item["name"] for item in second.get("/categories").get_json()["items"]]

    assert "Viajes" in names
    assert (tmp_path / "demo.categories.json").exists()
