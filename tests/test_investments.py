"""Investment positions, snapshots, reference prices and metrics."""
from __future__ import annotations

from decimal import Decimal

import pytest

from clocket_core.exceptions import ValidationError
from clocket_core.investments import (
    InvestmentsRepository,
    build_asset_key,
    build_historical_series,
    compute_position_metrics,
)
from clocket_core.storage import MemoryStore

from conftest import frozen_clock, seed, stored


@pytest.fixture()
def investments(memory_store: MemoryStore) -> InvestmentsRepository:
    return InvestmentsRepository(memory_store, clock=frozen_clock)


def test_position_amount_is_derived(investments) -> None:
    position = investments.add_position(
        {"assetType": "crypto", "ticker": " btc ", "usd_gastado": "1000", "buy_price": "30000"}
    )

    assert position.ticker == "BTC"
    assert position.amount == Decimal("0.03333333")
    assert position.asset_key == "crypto:BTC"

    edited = investments.edit_position(position.id, {"buy_price": "20000"})

    assert edited.amount == Decimal("0.05000000")
    assert edited.usd_gastado == position.usd_gastado


def test_position_validation(investments) -> None:
    with pytest.raises(ValidationError):
        investments.add_position({"assetType": "bond", "ticker": "X", "usd_gastado": 1, "buy_price": 1})
    with pytest.raises(ValidationError):
        investments.add_position({"assetType": "stock", "ticker": "AAPL", "usd_gastado": 1, "buy_price": 0})


def test_position_storage_keys(memory_store: MemoryStore, investments) -> None:
    investments.add_position({"assetType": "stock", "ticker": "AAPL", "usd_gastado": 100, "buy_price": 50})
    investments.add_snapshot({"assetType": "stock", "ticker": "AAPL", "price": 51, "source": "GLOBAL_QUOTE"})

    assert {
        "clocket.investments.positions",
        "clocket.investments.snapshots",
    } <= set(memory_store.keys())
    assert stored(memory_store, "clocket.investments.positions")["version"] == 2


def test_legacy_positions_migrate(memory_store: MemoryStore, investments) -> None:
    seed(memory_store, "clocket.investments.positions", {"version": 1, "items": [{
        "id": "p1", "ticker": "aapl", "name": "Apple", "exchange": "NASDAQ",
        "shares": 2, "costBasis": 150, "currentPrice": 180,
        "createdAt": "2024-01-01T00:00:00.000Z",
    }]})

    [position] = investments.list_positions()

    assert position.asset_type == "stock"
    assert position.ticker == "AAPL"
    assert position.usd_gastado == Decimal("300")
    assert position.amount == Decimal("2")


def test_snapshots_are_sorted_and_immutable(investments) -> None:
    later = investments.add_snapshot({
        "assetType": "stock", "ticker": "AAPL", "price": "190",
        "source": "GLOBAL_QUOTE", "timestamp": "2024-03-14T10:00:00.000Z",
    })
    earlier = investments.add_snapshot({
        "assetType": "stock", "ticker": "aapl", "price": "180",
        "source": "GLOBAL_QUOTE", "timestamp": "2024-03-13T10:00:00.000Z",
    })

    assert investments.list_snapshots_by_asset("stock", "AAPL") == [earlier, later]
    assert investments.get_latest_snapshot_by_asset("stock", "AAPL") == later
    with pytest.raises(ValidationError, match="immutable"):
        investments.snapshots.update(later.id, {"price": "1"})


def test_refs_initialise_from_latest_snapshot(investments) -> None:
    investments.add_snapshot({
        "assetType": "crypto", "ticker": "ETH", "price": "3000",
        "source": "CURRENCY_EXCHANGE_RATE", "timestamp": "2024-03-14T10:00:00.000Z",
    })

    refs = investments.get_or_init_refs("crypto", "ETH")

    assert refs.asset_key == build_asset_key("crypto", "eth")
    assert refs.daily_ref_price == Decimal("3000")
    assert refs.month_ref_price == Decimal("3000")


def test_daily_ref_moves_once_per_utc_day(investments) -> None:
    first = investments.update_daily_ref_if_needed("stock", "AAPL", "100", "2024-03-15T01:00:00.000Z")
    same_day = investments.update_daily_ref_if_needed("stock", "AAPL", "105", "2024-03-15T23:59:00.000Z")
    next_day = investments.update_daily_ref_if_needed("stock", "AAPL", "110", "2024-03-16T00:00:00.000Z")

    assert first.daily_ref_price == Decimal("100")
    assert same_day.daily_ref_price == Decimal("100")
    assert next_day.daily_ref_price == Decimal("110")


def test_month_ref_moves_once_per_utc_month(investments) -> None:
    investments.update_month_ref_if_needed("stock", "AAPL", "100", "2024-03-01T00:00:00.000Z")
    same_month = investments.update_month_ref_if_needed("stock", "AAPL", "90", "2024-03-31T23:00:00.000Z")
    next_month = investments.update_month_ref_if_needed("stock", "AAPL", "95", "2024-04-01T00:00:00.000Z")

    assert same_month.month_ref_price == Decimal("100")
    assert next_month.month_ref_price == Decimal("95")
    assert set(investments.get_refs_map()) == {"stock:AAPL"}


def test_position_metrics(investments) -> None:
    position = investments.add_position(
        {"assetType": "stock", "ticker": "AAPL", "usd_gastado": "100", "buy_price": "50"}
    )
    investments.update_daily_ref_if_needed("stock", "AAPL", "55")
    refs = investments.update_month_ref_if_needed("stock", "AAPL", "40")

    metrics = compute_position_metrics(position, Decimal("60"), refs)

    assert metrics["investedUSD"] == Decimal("100.000000")
    assert metrics["currentValueUSD"] == Decimal("120.000000")
    assert metrics["pnlTotalUSD"] == Decimal("20.000000")
    assert metrics["pnlTotalPct"] == Decimal("20.000000")
    assert metrics["pnlDailyUSD"] == Decimal("10.000000")
    assert metrics["pnlMonthUSD"] == Decimal("40.000000")
    assert metrics["pnlMonthPct"] == Decimal("50.000000")


def test_historical_series(investments) -> None:
    position = investments.add_position(
        {"assetType": "stock", "ticker": "AAPL", "usd_gastado": "100", "buy_price": "50"}
    )
    snapshot = investments.add_snapshot(
        {"assetType": "stock", "ticker": "AAPL", "price": "45", "source": "GLOBAL_QUOTE"}
    )

    [point] = build_historical_series(position, [snapshot])

    assert point["equity"] == Decimal("90.000000")
    assert point["pnlVsInvested"] == Decimal("-10.000000")


def test_clear_all_clears_every_collection(investments) -> None:
    investments.add_position({"assetType": "stock", "ticker": "AAPL", "usd_gastado": 1, "buy_price": 1})
    investments.add_snapshot({"assetType": "stock", "ticker": "AAPL", "price": 1, "source": "GLOBAL_QUOTE"})
    investments.get_or_init_refs("stock", "AAPL")

    investments.clear_all()

    assert investments.list_positions() == []
    assert investments.snapshots.list() == []
    assert investments.get_refs_map() == {}
