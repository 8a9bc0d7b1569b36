"""Data models for the Clocket finance domain.

Every model serialises to the camelCase JSON shape persisted inside the
``{"version": ..., "items": [...]}`` documents, and hydrates back from it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

__all__ = [
    "ALL_SUBCATEGORIES",
    "SELECTED_SUBCATEGORIES",
    "NO_SUBCATEGORY",
    "SubcategoryMarker",
    "ScopeRule",
    "Account",
    "Category",
    "Budget",
    "Goal",
    "Cuota",
    "Transaction",
    "InvestmentPosition",
    "InvestmentSnapshot",
    "AssetRefs",
    "AppSettings",
    "isoformat_utc",
    "parse_datetime",
]

ALL_SUBCATEGORIES = "all_subcategories"
SELECTED_SUBCATEGORIES = "selected_subcategories"


class SubcategoryMarker(Enum):
    """Markers that can live in a scope rule next to real subcategory names."""

    NONE = "__none__"

    def __repr__(self) -> str:
        return "NO_SUBCATEGORY"


# Stands for "transaction without a subcategory". It is an enum member, so no
# user supplied string can ever compare equal to it in memory.
NO_SUBCATEGORY = SubcategoryMarker.NONE

SubcategoryName = Union[str, SubcategoryMarker]


def isoformat_utc(dt: datetime) -> str:
    """Return an ISO 8601 string with trailing Z for UTC-aware datetimes."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    iso = dt.isoformat(timespec="milliseconds")
    # datetime.isoformat renders +00:00 for UTC; replace with the shorter Z form.
    return iso.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Treat naive datetimes as UTC to avoid accidental timezone drift.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _decode_subcategory(token: str) -> SubcategoryName:
    return NO_SUBCATEGORY if token == NO_SUBCATEGORY.value else token


def _encode_subcategory(name: SubcategoryName) -> str:
    return name.value if isinstance(name, SubcategoryMarker) else name


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    return parse_datetime(value) if value else None


@dataclass(frozen=True)
class ScopeRule:
    category_id: str
    mode: str = ALL_SUBCATEGORIES
    subcategory_names: Tuple[SubcategoryName, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"categoryId": self.category_id, "mode": self.mode}
        if self.mode == SELECTED_SUBCATEGORIES:
            payload["subcategoryNames"] = [
                _encode_subcategory(name) for name in self.subcategory_names
            ]
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScopeRule":
        names = data.get("subcategoryNames") or []
        return cls(
            category_id=data["categoryId"],
            mode=data.get("mode", ALL_SUBCATEGORIES),
            subcategory_names=tuple(
                name if isinstance(name, SubcategoryMarker) else _decode_subcategory(name)
                for name in names
            ),
        )


@dataclass(frozen=True)
class Account:
    id: str
    name: str
    balance: Decimal
    icon: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "balance": _money(self.balance),
            "icon": self.icon,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Account":
        return cls(
            id=data["id"],
            name=data["name"],
            balance=Decimal(str(data["balance"])),
            icon=data.get("icon") or "wallet",
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
        )


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    icon: str
    icon_bg: str
    subcategories: List[str] = field(default_factory=list)

    @property
    def subcategory_count(self) -> int:
        return len(self.subcategories)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "iconBg": self.icon_bg,
            "subcategories": list(self.subcategories),
            "subcategoryCount": self.subcategory_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Category":
        return cls(
            id=data["id"],
            name=data["name"],
            icon=data["icon"],
            icon_bg=data["iconBg"],
            subcategories=list(data.get("subcategories") or []),
        )


@dataclass(frozen=True)
class Budget:
    id: str
    name: str
    limit_amount: Decimal
    month: str
    scope_rules: List[ScopeRule]
    category_id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "limitAmount": _money(self.limit_amount),
            "month": self.month,
            "scopeRules": [rule.to_dict() for rule in self.scope_rules],
            "categoryId": self.category_id,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Budget":
        return cls(
            id=data["id"],
            name=data["name"],
            limit_amount=Decimal(str(data["limitAmount"])),
            month=data["month"],
            scope_rules=[ScopeRule.from_dict(rule) for rule in data.get("scopeRules", [])],
            category_id=data["categoryId"],
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
        )


@dataclass(frozen=True)
class Goal:
    id: str
    title: str
    description: str
    target_amount: Decimal
    deadline_date: date
    icon: str
    color_key: str
    category_id: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "targetAmount": _money(self.target_amount),
            "deadlineDate": self.deadline_date.isoformat(),
            "icon": self.icon,
            "colorKey": self.color_key,
            "categoryId": self.category_id,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Goal":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            target_amount=Decimal(str(data["targetAmount"])),
            deadline_date=date.fromisoformat(data["deadlineDate"]),
            icon=data["icon"],
            color_key=data["colorKey"],
            category_id=data["categoryId"],
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
        )


@dataclass(frozen=True)
class Cuota:
    """An installment plan: a total amount split across monthly installments."""

    id: str
    title: str
    total_amount: Decimal
    installments_count: int
    installment_amount: Decimal
    start_month: str
    paid_installments_count: int
    created_at: datetime
    updated_at: datetime
    description: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_name: Optional[str] = None

    @property
    def is_finished(self) -> bool:
        return self.paid_installments_count >= self.installments_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "totalAmount": _money(self.total_amount),
            "installmentsCount": self.installments_count,
            "installmentAmount": _money(self.installment_amount),
            "startMonth": self.start_month,
            "paidInstallmentsCount": self.paid_installments_count,
            "categoryId": self.category_id,
            "subcategoryName": self.subcategory_name,
            "createdAt": isoformat_utc(self.created_at),
            "updatedAt": isoformat_utc(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cuota":
        return cls(
            id=data["id"],
            title=data["title"],
            description=data.get("description"),
            total_amount=Decimal(str(data["totalAmount"])),
            installments_count=int(data["installmentsCount"]),
            installment_amount=Decimal(str(data["installmentAmount"])),
            start_month=data["startMonth"],
            paid_installments_count=int(data["paidInstallmentsCount"]),
            category_id=data.get("categoryId"),
            subcategory_name=data.get("subcategoryName"),
            created_at=parse_datetime(data["createdAt"]),
            updated_at=parse_datetime(data["updatedAt"]),
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    account_id: str
    transaction_type: str
    name: str
    category: str
    amount: str
    date: date
    meta: str
    icon: str = "wallet"
    icon_bg: str = "bg-[#09090B]"
    amount_color: Optional[str] = None
    category_id: Optional[str] = None
    subcategory_name: Optional[str] = None
    goal_id: Optional[str] = None
    cuota_plan_id: Optional[str] = None
    cuota_installment_index: Optional[int] = None
    cuota_installments_count: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "transactionType": self.transaction_type,
            "name": self.name,
            "icon": self.icon,
            "iconBg": self.icon_bg,
            "category": self.category,
            "categoryId": self.category_id,
            "subcategoryName": self.subcategory_name,
            "goalId": self.goal_id,
            "amount": self.amount,
            "amountColor": self.amount_color,
            "cuotaPlanId": self.cuota_plan_id,
            "cuotaInstallmentIndex": self.cuota_installment_index,
            "cuotaInstallmentsCount": self.cuota_installments_count,
            "date": self.date.isoformat(),
            "createdAt": isoformat_utc(self.created_at) if self.created_at else None,
            "meta": self.meta,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            id=data["id"],
            account_id=data["accountId"],
            transaction_type=data["transactionType"],
            name=data["name"],
            icon=data.get("icon") or "wallet",
            icon_bg=data.get("iconBg") or "bg-[#09090B]",
            category=data["category"],
            category_id=data.get("categoryId"),
            subcategory_name=data.get("subcategoryName"),
            goal_id=data.get("goalId"),
            amount=data["amount"],
            amount_color=data.get("amountColor"),
            cuota_plan_id=data.get("cuotaPlanId"),
            cuota_installment_index=data.get("cuotaInstallmentIndex"),
            cuota_installments_count=data.get("cuotaInstallmentsCount"),
            date=date.fromisoformat(data["date"]),
            created_at=_optional_datetime(data.get("createdAt")),
            meta=data["meta"],
        )


@dataclass(frozen=True)
class InvestmentPosition:
    id: str
    asset_type: str
    ticker: str
    usd_gastado: Decimal
    buy_price: Decimal
    amount: Decimal
    created_at: datetime

    @property
    def asset_key(self) -> str:
        return f"{self.asset_type}:{self.ticker}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assetType": self.asset_type,
            "ticker": self.ticker,
            "usd_gastado": str(self.usd_gastado),
            "buy_price": str(self.buy_price),
            "amount": str(self.amount),
            "createdAt": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvestmentPosition":
        return cls(
            id=data["id"],
            asset_type=data["assetType"],
            ticker=data["ticker"],
            usd_gastado=Decimal(str(data["usd_gastado"])),
            buy_price=Decimal(str(data["buy_price"])),
            amount=Decimal(str(data["amount"])),
            created_at=parse_datetime(data["createdAt"]),
        )


@dataclass(frozen=True)
class InvestmentSnapshot:
    id: str
    asset_type: str
    ticker: str
    timestamp: datetime
    price: Decimal
    source: str
    bid: Optional[Decimal] = None
    ask: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "assetType": self.asset_type,
            "ticker": self.ticker,
            "timestamp": isoformat_utc(self.timestamp),
            "price": str(self.price),
            "source": self.source,
        }
        if self.bid is not None:
            payload["bid"] = str(self.bid)
        if self.ask is not None:
            payload["ask"] = str(self.ask)
        return payload

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InvestmentSnapshot":
        return cls(
            id=data["id"],
            asset_type=data["assetType"],
            ticker=data["ticker"],
            timestamp=parse_datetime(data["timestamp"]),
            price=Decimal(str(data["price"])),
            source=data["source"],
            bid=Decimal(str(data["bid"])) if data.get("bid") is not None else None,
            ask=Decimal(str(data["ask"])) if data.get("ask") is not None else None,
        )


@dataclass(frozen=True)
class AssetRefs:
    """Daily and monthly reference prices for one asset key."""

    asset_key: str
    daily_ref_price: Decimal
    daily_ref_timestamp: datetime
    month_ref_price: Decimal
    month_ref_timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assetKey": self.asset_key,
            "dailyRefPrice": str(self.daily_ref_price),
            "dailyRefTimestamp": isoformat_utc(self.daily_ref_timestamp),
            "monthRefPrice": str(self.month_ref_price),
            "monthRefTimestamp": isoformat_utc(self.month_ref_timestamp),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetRefs":
        return cls(
            asset_key=data["assetKey"],
            daily_ref_price=Decimal(str(data["dailyRefPrice"])),
            daily_ref_timestamp=parse_datetime(data["dailyRefTimestamp"]),
            month_ref_price=Decimal(str(data["monthRefPrice"])),
            month_ref_timestamp=parse_datetime(data["monthRefTimestamp"]),
        )


@dataclass(frozen=True)
class AppSettings:
    currency: str
    language: str
    notifications_enabled: bool
    theme: str
    profile_name: str
    profile_email: str
    profile_avatar_icon: str
    pin_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "language": self.language,
            "notificationsEnabled": self.notifications_enabled,
            "theme": self.theme,
            "profile": {
                "name": self.profile_name,
                "email": self.profile_email,
                "avatarIcon": self.profile_avatar_icon,
            },
            "security": {"pinHash": self.pin_hash},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        profile = data["profile"]
        return cls(
            currency=data["currency"],
            language=data["language"],
            notifications_enabled=bool(data["notificationsEnabled"]),
            theme=data["theme"],
            profile_name=profile["name"],
            profile_email=profile["email"],
            profile_avatar_icon=profile["avatarIcon"],
            pin_hash=data["security"].get("pinHash"),
        )
