"""Flask REST API exposing the Clocket repositories."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from clocket_core.config import Settings
from clocket_core.exceptions import PersistenceError, RecordNotFoundError, ValidationError
from clocket_core.investments import build_historical_series, compute_position_metrics
from clocket_core.registry import build_repositories
from clocket_core.repository import Clock, VersionedRepository, utc_now
from clocket_core.storage import JSONFileStore, KeyValueStore
from clocket_core.validators import current_year_month, parse_amount, validate_year_month


def _stringify(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: (value if value is None or isinstance(value, str) else str(value))
            for key, value in payload.items()}


def create_app(
    data_dir: Optional[Path] = None,
    *,
    config: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    clock: Optional[Clock] = None,
) -> Flask:
    app = Flask(__name__)
    config = config or Settings.from_env()

    if config.is_development:
        CORS(app, resources={r"/*": {"origins": "*"}}, supports_credentials=True)
    elif config.allowed_origins:
        CORS(app, resources={r"/*": {"origins": config.allowed_origins}}, supports_credentials=True)
    else:
        CORS(app)

    if store is None:
        store = JSONFileStore(Path(data_dir or config.data_dir))
    clock = clock or utc_now
    repos = build_repositories(store, namespace=config.namespace, clock=clock)

    def _success(payload: Any, status: int = 200):
        if status == 204:
            return ("", status)
        return jsonify(payload), status

    def _handle_error(exc: Exception, status: int, message: str):
        app.logger.error("%s: %s", message, exc)
        return jsonify({"error": message, "details": str(exc)}), status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        return _handle_error(exc, 400, "Validation error")

    @app.errorhandler(RecordNotFoundError)
    def handle_not_found(exc: RecordNotFoundError):
        return _handle_error(exc, 404, "Record not found")

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(exc: PersistenceError):
        return _handle_error(exc, 500, "Persistence error")

    def _json_body() -> Dict[str, Any]:
        if not request.is_json:
            raise ValidationError("Request content must be application/json")
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError("Malformed JSON body")
        if not isinstance(data, dict):
            raise ValidationError("payload must be an object")
        return data

    def _found(record: Any, label: str, record_id: str) -> Any:
        if record is None:
            raise RecordNotFoundError(f"{label} {record_id} not found")
        return record

    def _month_arg() -> str:
        return validate_year_month(
            request.args.get("month"), "month", default=current_year_month(clock())
        )

    def _register_crud(
        prefix: str,
        label: str,
        repository: VersionedRepository,
        create: Optional[Callable[[Dict[str, Any]], Any]] = None,
        update: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
    ) -> None:
        create = create or repository.create
        update = update or repository.update

        def list_records():
            return _success({"items": [record.to_dict() for record in repository.list()]})

        def create_record():
            return _success(create(_json_body()).to_dict(), 201)

        def get_record(record_id: str):
            return _success(_found(repository.get_by_id(record_id), label, record_id).to_dict())

        def update_record(record_id: str):
            payload = _json_body()
            updated = update(record_id, payload)
            return _success(_found(updated, label, record_id).to_dict())

        def delete_record(record_id: str):
            _found(repository.get_by_id(record_id), label, record_id)
            if not repository.remove(record_id):
                raise ValidationError(f"{label} {record_id} cannot be deleted")
            return _success({}, 204)

        app.add_url_rule(f"/{prefix}", f"list_{prefix}", list_records, methods=["GET"])
        app.add_url_rule(f"/{prefix}", f"create_{prefix}", create_record, methods=["POST"])
        app.add_url_rule(
            f"/{prefix}/<record_id>", f"get_{prefix}", get_record, methods=["GET"]
        )
        app.add_url_rule(
            f"/{prefix}/<record_id>", f"update_{prefix}", update_record, methods=["PUT"]
        )
        app.add_url_rule(
            f"/{prefix}/<record_id>", f"delete_{prefix}", delete_record, methods=["DELETE"]
        )

    _register_crud("accounts", "Account", repos.accounts)
    _register_crud("categories", "Category", repos.categories)
    _register_crud(
        "budgets",
        "Budget",
        repos.budgets,
        create=lambda payload: repos.budgets.create(payload, reject_overlap=True),
        update=lambda record_id, payload: repos.budgets.update(
            record_id, payload, reject_overlap=True
        ),
    )
    _register_crud("goals", "Goal", repos.goals)
    _register_crud("cuotas", "Cuota", repos.cuotas)
    _register_crud("transactions", "Transaction", repos.transactions)

    @app.get("/budgets/month/<month>")
    def list_budgets_for_month(month: str):
        budgets = repos.budgets.list_for_month(month)
        spending = repos.ledger.budget_spending(month)
        return _success({
            "items": [
                {**budget.to_dict(), "spent": f"{spending.get(budget.id, 0):.2f}"}
                for budget in budgets
            ],
        })

    @app.get("/cuotas/month/<month>")
    def list_active_cuotas(month: str):
        plans = repos.cuotas.active_in_month(month)
        return _success({
            "items": [plan.to_dict() for plan in plans],
            "pending": f"{repos.ledger.pending_installments(month):.2f}",
        })

    @app.get("/transactions/month/<month>")
    def list_transactions_for_month(month: str):
        transactions = repos.ledger.transactions_in_month(month)
        return _success({
            "items": [transaction.to_dict() for transaction in transactions],
            "revision": repos.transactions.changes.revision,
        })

    # Investments ----------------------------------------------------------
    investments = repos.investments

    @app.get("/investments/positions")
    def list_positions():
        return _success({"items": [p.to_dict() for p in investments.list_positions()]})

    @app.post("/investments/positions")
    def create_position():
        return _success(investments.add_position(_json_body()).to_dict(), 201)

    @app.get("/investments/positions/<position_id>")
    def get_position(position_id: str):
        position = _found(investments.get_position_by_id(position_id), "Position", position_id)
        return _success(position.to_dict())

    @app.put("/investments/positions/<position_id>")
    def update_position(position_id: str):
        payload = _json_body()
        position = investments.edit_position(position_id, payload)
        return _success(_found(position, "Position", position_id).to_dict())

    @app.delete("/investments/positions/<position_id>")
    def delete_position(position_id: str):
        if not investments.delete_position(position_id):
            raise RecordNotFoundError(f"Position {position_id} not found")
        return _success({}, 204)

    @app.get("/investments/positions/<position_id>/metrics")
    def position_metrics(position_id: str):
        position = _found(investments.get_position_by_id(position_id), "Position", position_id)
        latest = investments.get_latest_snapshot_by_asset(position.asset_type, position.ticker)
        raw_price = request.args.get("price")
        if raw_price not in (None, ""):
            price = parse_amount(raw_price, "price", places=8)
        elif latest is not None:
            price = latest.price
        else:
            raise ValidationError("price is required when no snapshot exists")
        refs = investments.get_or_init_refs(position.asset_type, position.ticker)
        metrics = compute_position_metrics(
            position, price, refs, latest.timestamp if latest else None
        )
        return _success(_stringify(metrics))

    @app.get("/investments/positions/<position_id>/history")
    def position_history(position_id: str):
        position = _found(investments.get_position_by_id(position_id), "Position", position_id)
        snapshots = investments.list_snapshots_by_asset(position.asset_type, position.ticker)
        series = build_historical_series(position, snapshots)
        return _success({"items": [_stringify(point) for point in series]})

    @app.get("/investments/snapshots")
    def list_snapshots():
        asset_type = request.args.get("assetType")
        ticker = request.args.get("ticker")
        if asset_type and ticker:
            snapshots = investments.list_snapshots_by_asset(asset_type, ticker)
        else:
            snapshots = investments.snapshots.list()
        return _success({"items": [snapshot.to_dict() for snapshot in snapshots]})

    @app.post("/investments/snapshots")
    def create_snapshot():
        payload = _json_body()
        snapshot = investments.add_snapshot(payload)
        investments.update_daily_ref_if_needed(
            snapshot.asset_type, snapshot.ticker, snapshot.price, snapshot.timestamp
        )
        investments.update_month_ref_if_needed(
            snapshot.asset_type, snapshot.ticker, snapshot.price, snapshot.timestamp
        )
        return _success(snapshot.to_dict(), 201)

    @app.get("/investments/refs")
    def list_refs():
        refs = investments.get_refs_map()
        return _success({key: value.to_dict() for key, value in refs.items()})

    # Settings -------------------------------------------------------------
    @app.get("/settings")
    def get_settings():
        return _success(repos.settings.get().to_dict())

    @app.put("/settings")
    def update_settings():
        return _success(repos.settings.update(_json_body()).to_dict())

    @app.delete("/settings")
    def reset_settings():
        return _success(repos.settings.reset().to_dict())

    @app.put("/settings/pin")
    def set_pin():
        payload = _json_body()
        return _success(repos.settings.set_pin(payload.get("pin")).to_dict())

    @app.post("/settings/pin/verify")
    def verify_pin():
        payload = _json_body()
        return _success({"valid": repos.settings.verify_pin(payload.get("pin"))})

    @app.get("/summary")
    def summary():
        return _success(repos.ledger.summary(_month_arg()))

    return app
