"""Investment positions, price snapshots and reference prices.

Positions, snapshots and per-asset reference prices live under three separate
storage keys. ``InvestmentsRepository`` is the positions collection itself and
owns the two companion collections.

Reference prices are used to compute daily and monthly P&L. They are refreshed
at most once per UTC day (daily) and once per UTC calendar month (monthly).
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .exceptions import ValidationError
from .models import AssetRefs, InvestmentPosition, InvestmentSnapshot, isoformat_utc
from .repository import Record, State, VersionedRepository
from .validators import (
    is_number,
    is_record,
    is_text,
    is_timestamp,
    parse_amount,
    quantize,
    validate_datetime,
    validate_required_str,
)

logger = logging.getLogger(__name__)

ASSET_TYPES = ("stock", "crypto")
SNAPSHOT_SOURCES = ("GLOBAL_QUOTE", "CURRENCY_EXCHANGE_RATE")
AMOUNT_PLACES = 8
METRIC_PLACES = 6


def build_asset_key(asset_type: str, ticker: str) -> str:
    return f"{asset_type}:{ticker.strip().upper()}"


def _utc_day_key(dt: datetime) -> str:
    return isoformat_utc(dt)[:10]


def _utc_month_key(dt: datetime) -> str:
    return isoformat_utc(dt)[:7]


def _asset_type(value: Any) -> str:
    if not isinstance(value, str) or value.strip().lower() not in ASSET_TYPES:
        raise ValidationError("Asset type must be 'stock' or 'crypto'.")
    return value.strip().lower()


def _ticker(value: Any) -> str:
    return validate_required_str(value, "Ticker").upper()


def _price(value: Any, field: str) -> Decimal:
    return parse_amount(value, field, places=AMOUNT_PLACES)


def _source(value: Any) -> str:
    if value is None:
        return SNAPSHOT_SOURCES[0]
    if value not in SNAPSHOT_SOURCES:
        raise ValidationError(f"source must be one of: {', '.join(SNAPSHOT_SOURCES)}")
    return value


# Positions ------------------------------------------------------------------
def _is_legacy_position(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("ticker"))
        and is_text(item.get("name"))
        and is_text(item.get("exchange"))
        and is_number(item.get("shares"), positive=True)
        and is_number(item.get("costBasis"), positive=True)
        and is_number(item.get("currentPrice"))
        and is_timestamp(item.get("createdAt"))
    )


def _is_position_v2(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and item.get("assetType") in ASSET_TYPES
        and is_text(item.get("ticker"))
        and is_number(item.get("usd_gastado"), positive=True)
        and is_number(item.get("buy_price"), positive=True)
        and is_number(item.get("amount"), non_negative=True)
        and is_timestamp(item.get("createdAt"))
    )


def _migrate_positions_v1_to_v2(state: State) -> State:
    items = []
    for item in state["items"]:
        shares = Decimal(str(item["shares"]))
        cost_basis = Decimal(str(item["costBasis"]))
        items.append(
            {
                "id": item["id"],
                "assetType": "stock",
                "ticker": item["ticker"].strip().upper(),
                "usd_gastado": str(quantize(shares * cost_basis, AMOUNT_PLACES)),
                "buy_price": str(quantize(cost_basis, AMOUNT_PLACES)),
                "amount": str(quantize(shares, AMOUNT_PLACES)),
                "createdAt": item["createdAt"],
            }
        )
    return {"version": 2, "items": items}


# Snapshots ------------------------------------------------------------------
def _is_snapshot_v1(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and item.get("assetType") in ASSET_TYPES
        and is_text(item.get("ticker"))
        and is_timestamp(item.get("timestamp"))
        and is_number(item.get("price"), positive=True)
        and is_text(item.get("source"))
        and (item.get("bid") is None or is_number(item.get("bid"), positive=True))
        and (item.get("ask") is None or is_number(item.get("ask"), positive=True))
    )


class SnapshotsRepository(VersionedRepository):
    key_suffix = "investments.snapshots"
    version = 1
    model = InvestmentSnapshot
    schemas = {1: _is_snapshot_v1}

    def list_by_asset(self, asset_type: str, ticker: str) -> List[InvestmentSnapshot]:
        key = build_asset_key(asset_type, ticker)
        matching = [
            snapshot
            for snapshot in self.list()
            if build_asset_key(snapshot.asset_type, snapshot.ticker) == key
        ]
        return sorted(matching, key=lambda snapshot: (snapshot.timestamp, snapshot.id))

    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        timestamp = payload.get("timestamp")
        record = {
            "id": self._new_id(),
            "assetType": _asset_type(payload.get("assetType")),
            "ticker": _ticker(payload.get("ticker")),
            "timestamp": isoformat_utc(
                self._now() if timestamp is None else validate_datetime(timestamp, "timestamp")
            ),
            "price": str(_price(payload.get("price"), "price")),
            "source": _source(payload.get("source")),
        }
        for side in ("bid", "ask"):
            if payload.get(side) is not None:
                record[side] = str(_price(payload[side], side))
        return record

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        raise ValidationError("Snapshots are immutable.")


# Reference prices -----------------------------------------------------------
def _is_refs_v1(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("assetKey"))
        and is_number(item.get("dailyRefPrice"), non_negative=True)
        and is_timestamp(item.get("dailyRefTimestamp"))
        and is_number(item.get("monthRefPrice"), non_negative=True)
        and is_timestamp(item.get("monthRefTimestamp"))
    )


class RefsRepository(VersionedRepository):
    """One ``AssetRefs`` record per asset key; records are keyed by ``assetKey``."""

    key_suffix = "investments.refs"
    version = 1
    model = AssetRefs
    schemas = {1: _is_refs_v1}

    def get(self, asset_key: str) -> Optional[AssetRefs]:
        for item in self.read_state()["items"]:
            if item["assetKey"] == asset_key:
                return AssetRefs.from_dict(item)
        return None

    def put(self, refs: AssetRefs) -> AssetRefs:
        state = self.read_state()
        record = refs.to_dict()
        state["items"] = [
            item for item in state["items"] if item["assetKey"] != refs.asset_key
        ] + [record]
        self.write_state(state)
        return AssetRefs.from_dict(record)


class InvestmentsRepository(VersionedRepository):
    """Investment positions plus the snapshot and reference-price collections."""

    key_suffix = "investments.positions"
    version = 2
    model = InvestmentPosition
    schemas = {1: _is_legacy_position, 2: _is_position_v2}
    migrations = {1: _migrate_positions_v1_to_v2}

    def __init__(
        self,
        store=None,
        *,
        snapshots_key: Optional[str] = None,
        refs_key: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        shared = {key: kwargs[key] for key in ("namespace", "clock") if key in kwargs}
        self._snapshots = SnapshotsRepository(store, storage_key=snapshots_key, **shared)
        self._refs = RefsRepository(store, storage_key=refs_key, **shared)

    @property
    def snapshots(self) -> SnapshotsRepository:
        return self._snapshots

    @property
    def refs(self) -> RefsRepository:
        return self._refs

    # Positions ------------------------------------------------------------
    def list_positions(self) -> List[InvestmentPosition]:
        return self.list()

    def get_position_by_id(self, position_id: str) -> Optional[InvestmentPosition]:
        return self.get_by_id(position_id)

    def add_position(self, payload: Dict[str, Any]) -> InvestmentPosition:
        return self.create(payload)

    def edit_position(
        self, position_id: str, patch: Dict[str, Any]
    ) -> Optional[InvestmentPosition]:
        return self.update(position_id, patch)

    def delete_position(self, position_id: str) -> bool:
        return self.remove(position_id)

    # Snapshots ------------------------------------------------------------
    def add_snapshot(self, payload: Dict[str, Any]) -> InvestmentSnapshot:
        return self._snapshots.create(payload)

    def list_snapshots_by_asset(self, asset_type: str, ticker: str) -> List[InvestmentSnapshot]:
        return self._snapshots.list_by_asset(asset_type, ticker)

    def get_latest_snapshot_by_asset(
        self, asset_type: str, ticker: str
    ) -> Optional[InvestmentSnapshot]:
        snapshots = self.list_snapshots_by_asset(asset_type, ticker)
        return snapshots[-1] if snapshots else None

    # Reference prices -----------------------------------------------------
    def get_or_init_refs(self, asset_type: str, ticker: str) -> AssetRefs:
        key = build_asset_key(asset_type, ticker)
        existing = self._refs.get(key)
        if existing is not None:
            return existing
        latest = self.get_latest_snapshot_by_asset(asset_type, ticker)
        now = self._now()
        price = latest.price if latest else Decimal("0")
        timestamp = latest.timestamp if latest else now
        return self._refs.put(
            AssetRefs(
                asset_key=key,
                daily_ref_price=price,
                daily_ref_timestamp=timestamp,
                month_ref_price=price,
                month_ref_timestamp=timestamp,
            )
        )

    def update_daily_ref_if_needed(
        self, asset_type: str, ticker: str, price: Any, timestamp: Any = None
    ) -> AssetRefs:
        """Move the daily reference when unset or when ``timestamp`` is on a new UTC day."""
        new_price = _price(price, "dailyRefPrice")
        at = self._timestamp_or_now(timestamp)
        refs = self.get_or_init_refs(asset_type, ticker)
        if refs.daily_ref_price > 0 and _utc_day_key(refs.daily_ref_timestamp) == _utc_day_key(at):
            return refs
        logger.debug("Daily reference for %s moved to %s", refs.asset_key, new_price)
        return self._refs.put(
            AssetRefs(
                asset_key=refs.asset_key,
                daily_ref_price=new_price,
                daily_ref_timestamp=at,
                month_ref_price=refs.month_ref_price,
                month_ref_timestamp=refs.month_ref_timestamp,
            )
        )

    def update_month_ref_if_needed(
        self, asset_type: str, ticker: str, price: Any, timestamp: Any = None
    ) -> AssetRefs:
        """Move the monthly reference when unset or when ``timestamp`` is in a new UTC month."""
        new_price = _price(price, "monthRefPrice")
        at = self._timestamp_or_now(timestamp)
        refs = self.get_or_init_refs(asset_type, ticker)
        if refs.month_ref_price > 0 and _utc_month_key(refs.month_ref_timestamp) == _utc_month_key(
            at
        ):
            return refs
        logger.debug("Monthly reference for %s moved to %s", refs.asset_key, new_price)
        return self._refs.put(
            AssetRefs(
                asset_key=refs.asset_key,
                daily_ref_price=refs.daily_ref_price,
                daily_ref_timestamp=refs.daily_ref_timestamp,
                month_ref_price=new_price,
                month_ref_timestamp=at,
            )
        )

    def get_refs_map(self) -> Dict[str, AssetRefs]:
        return {refs.asset_key: refs for refs in self._refs.list()}

    def clear_all(self) -> None:
        super().clear_all()
        self._snapshots.clear_all()
        self._refs.clear_all()

    # Hooks ----------------------------------------------------------------
    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        created_at = payload.get("createdAt")
        return {
            "id": self._new_id(),
            "assetType": _asset_type(payload.get("assetType")),
            "ticker": _ticker(payload.get("ticker")),
            **self._cost_fields(payload.get("usd_gastado"), payload.get("buy_price")),
            "createdAt": isoformat_utc(
                self._now() if created_at is None else validate_datetime(created_at, "createdAt")
            ),
        }

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        updated = dict(current)
        if "assetType" in patch:
            updated["assetType"] = _asset_type(patch["assetType"])
        if "ticker" in patch:
            updated["ticker"] = _ticker(patch["ticker"])
        if "usd_gastado" in patch or "buy_price" in patch:
            updated.update(
                self._cost_fields(
                    patch.get("usd_gastado", current["usd_gastado"]),
                    patch.get("buy_price", current["buy_price"]),
                )
            )
        return updated

    @staticmethod
    def _cost_fields(usd_raw: Any, buy_price_raw: Any) -> Dict[str, str]:
        usd_gastado = _price(usd_raw, "usd_gastado")
        buy_price = _price(buy_price_raw, "buy_price")
        return {
            "usd_gastado": str(usd_gastado),
            "buy_price": str(buy_price),
            "amount": str(quantize(usd_gastado / buy_price, AMOUNT_PLACES)),
        }

    def _timestamp_or_now(self, value: Any) -> datetime:
        return self._now() if value is None else validate_datetime(value, "timestamp")


# Read-models ----------------------------------------------------------------
def _round_metric(value: Decimal) -> Decimal:
    return quantize(value, METRIC_PLACES)


def _pct(delta: Decimal, base: Decimal) -> Decimal:
    return delta / base * 100 if base > 0 else Decimal("0")


def compute_position_metrics(
    position: InvestmentPosition,
    current_price: Decimal,
    refs: AssetRefs,
    last_updated: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Value and P&L of a position against its cost and its reference prices."""
    current_price = Decimal(str(current_price))
    invested = position.usd_gastado
    amount = position.amount
    current_value = amount * current_price
    pnl_total = current_value - invested
    daily_delta = current_price - refs.daily_ref_price
    month_delta = current_price - refs.month_ref_price
    return {
        "amount": _round_metric(amount),
        "investedUSD": _round_metric(invested),
        "buyPrice": _round_metric(position.buy_price),
        "currentPrice": _round_metric(current_price),
        "currentValueUSD": _round_metric(current_value),
        "pnlTotalUSD": _round_metric(pnl_total),
        "pnlTotalPct": _round_metric(_pct(pnl_total, invested)),
        "pnlDailyUSD": _round_metric(amount * daily_delta),
        "pnlDailyPct": _round_metric(_pct(daily_delta, refs.daily_ref_price)),
        "pnlMonthUSD": _round_metric(amount * month_delta),
        "pnlMonthPct": _round_metric(_pct(month_delta, refs.month_ref_price)),
        "lastUpdatedTimestamp": isoformat_utc(last_updated) if last_updated else None,
    }


def build_historical_series(
    position: InvestmentPosition, snapshots: List[InvestmentSnapshot]
) -> List[Dict[str, Any]]:
    """Equity of the position at every snapshot, oldest first."""
    series = []
    for snapshot in sorted(snapshots, key=lambda item: item.timestamp):
        equity = position.amount * snapshot.price
        series.append(
            {
                "timestamp": isoformat_utc(snapshot.timestamp),
                "equity": _round_metric(equity),
                "pnlVsInvested": _round_metric(equity - position.usd_gastado),
            }
        )
    return series
