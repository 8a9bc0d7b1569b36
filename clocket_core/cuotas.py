"""Installment plans ("cuotas") and their monthly read-models."""

from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from .accounts import DEFAULT_ACCOUNT_ID
from .exceptions import ValidationError
from .models import Cuota, isoformat_utc
from .repository import Record, VersionedRepository
from .validators import (
    YEAR_MONTH_PATTERN,
    current_year_month,
    is_int,
    is_number,
    is_optional_text,
    is_record,
    is_text,
    is_timestamp,
    is_year_month,
    parse_amount,
    quantize,
    validate_datetime,
    validate_int,
    validate_iso_date,
    validate_optional_str,
    validate_year_month,
)

if TYPE_CHECKING:
    from .transactions import TransactionsRepository

logger = logging.getLogger(__name__)

DEFAULT_CUOTA_TITLE = "Nueva cuota"
CREDIT_CARD_CATEGORY_NAME = "Tarjeta de Credito"
CREDIT_CARD_ICON = "credit-card"
CREDIT_CARD_ICON_BG = "bg-[#18181B]"
INSTALLMENT_AMOUNT_COLOR = "text-[#DC2626]"


def installment_date(created_at: datetime, index: int) -> Optional[date]:
    """Date of installment ``index`` (1-based): ``index`` months after creation.

    The day of month is clamped to the length of the target month.
    """
    if index < 1:
        return None
    offset = created_at.month - 1 + index
    year = created_at.year + offset // 12
    month = offset % 12 + 1
    day = min(created_at.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _month_delta(start_month: str, year_month: str) -> Optional[int]:
    start = YEAR_MONTH_PATTERN.fullmatch(start_month.strip())
    target = YEAR_MONTH_PATTERN.fullmatch(year_month.strip())
    if not start or not target:
        return None
    return (int(target.group(1)) - int(start.group(1))) * 12 + (
        int(target.group(2)) - int(start.group(2))
    )


def is_cuota_active_in_month(plan: Cuota, year_month: str) -> bool:
    """A plan is active while the month falls inside its schedule and it is unpaid."""
    delta = _month_delta(plan.start_month, year_month)
    if delta is None:
        return False
    return 0 <= delta < plan.installments_count and not plan.is_finished


def pending_installments_total(plans: Iterable[Cuota], year_month: str) -> Decimal:
    total = Decimal("0")
    for plan in plans:
        if is_cuota_active_in_month(plan, year_month):
            total += plan.installment_amount
    return quantize(total)


def _is_cuota_v1(item: Any) -> bool:
    return (
        is_record(item)
        and is_text(item.get("id"))
        and is_text(item.get("title"))
        and is_optional_text(item.get("description"))
        and is_number(item.get("totalAmount"))
        and is_int(item.get("installmentsCount"), non_negative=True)
        and is_number(item.get("installmentAmount"))
        and is_year_month(item.get("startMonth"))
        and is_int(item.get("paidInstallmentsCount"), non_negative=True)
        and is_optional_text(item.get("categoryId"))
        and is_optional_text(item.get("subcategoryName"))
        and is_timestamp(item.get("createdAt"))
        and is_timestamp(item.get("updatedAt"))
    )


class CuotasRepository(VersionedRepository):
    """Installment plans.

    With a transactions repository wired in, every paid installment whose
    date is not in the future exists as a transaction linked to its plan.
    """

    key_suffix = "cuotas"
    version = 1
    model = Cuota
    schemas = {1: _is_cuota_v1}

    def __init__(
        self,
        store=None,
        *,
        transactions: Optional["TransactionsRepository"] = None,
        account_id: str = DEFAULT_ACCOUNT_ID,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, **kwargs)
        self._transactions = transactions
        self._account_id = account_id

    # Public API -----------------------------------------------------------
    def create(self, payload: Dict[str, Any]) -> Cuota:
        plan = super().create(payload)
        self._sync_installments(plan)
        return plan

    def update(self, record_id: str, patch: Dict[str, Any]) -> Optional[Cuota]:
        plan = super().update(record_id, patch)
        if plan is not None:
            self._sync_installments(plan)
        return plan

    def remove(self, record_id: str) -> bool:
        removed = super().remove(record_id)
        if removed and self._transactions is not None:
            self._transactions.remove_by_cuota_plan(record_id)
        return removed

    def clear_all(self) -> None:
        if self._transactions is not None:
            for plan in self.list():
                self._transactions.remove_by_cuota_plan(plan.id)
        super().clear_all()

    def active_in_month(self, year_month: str) -> List[Cuota]:
        year_month = validate_year_month(year_month, "month")
        return [plan for plan in self.list() if is_cuota_active_in_month(plan, year_month)]

    # Hooks ----------------------------------------------------------------
    def _build_created(self, payload: Dict[str, Any], items: List[Record]) -> Record:
        created_at = self._created_at(payload.get("createdAt"))
        title = validate_optional_str(payload.get("title"), "title") or DEFAULT_CUOTA_TITLE
        record = {
            "id": self._new_id(),
            "title": title,
            "description": validate_optional_str(payload.get("description"), "description"),
            "startMonth": validate_year_month(
                payload.get("startMonth"), "Start month", default=current_year_month(self._now())
            ),
            "categoryId": validate_optional_str(payload.get("categoryId"), "categoryId"),
            "subcategoryName": validate_optional_str(
                payload.get("subcategoryName"), "subcategoryName"
            )
            or title,
            "createdAt": isoformat_utc(created_at),
            "updatedAt": isoformat_utc(created_at),
        }
        record.update(
            self._amounts(
                payload.get("totalAmount"),
                payload.get("installmentsCount"),
                payload.get("paidInstallmentsCount"),
            )
        )
        return record

    def _build_updated(
        self, current: Record, patch: Dict[str, Any], items: List[Record]
    ) -> Record:
        updated = dict(current)
        if "title" in patch:
            updated["title"] = (
                validate_optional_str(patch["title"], "title") or DEFAULT_CUOTA_TITLE
            )
        for field in ("description", "categoryId"):
            if field in patch:
                updated[field] = validate_optional_str(patch[field], field)
        if "subcategoryName" in patch:
            updated["subcategoryName"] = (
                validate_optional_str(patch["subcategoryName"], "subcategoryName")
                or updated["title"]
            )
        if "startMonth" in patch:
            updated["startMonth"] = validate_year_month(
                patch["startMonth"], "Start month", default=current_year_month(self._now())
            )
        count = patch.get("installmentsCount", current["installmentsCount"])
        paid = patch.get("paidInstallmentsCount", current["paidInstallmentsCount"])
        updated.update(
            self._amounts(patch.get("totalAmount", current["totalAmount"]), count, paid)
        )
        updated["updatedAt"] = self._timestamp()
        return updated

    # Helpers --------------------------------------------------------------
    @staticmethod
    def _amounts(total_raw: Any, count_raw: Any, paid_raw: Any) -> Dict[str, Any]:
        total = parse_amount(total_raw, "Total amount")
        count = validate_int(count_raw, "Installments count", minimum=1)
        paid = 0 if paid_raw is None else validate_int(paid_raw, "Paid installments count")
        return {
            "totalAmount": str(total),
            "installmentsCount": count,
            "installmentAmount": str(quantize(total / count)),
            "paidInstallmentsCount": min(max(paid, 0), count),
        }

    def _created_at(self, raw: Any) -> datetime:
        now = self._now()
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return now
        if isinstance(raw, str) and len(raw.strip()) == 10:
            day = validate_iso_date(raw, "Created date")
            created = datetime(day.year, day.month, day.day, 12, tzinfo=now.tzinfo)
        else:
            created = validate_datetime(raw, "Created date")
        if created.date() > now.date():
            raise ValidationError("Created date cannot be in the future.")
        return created

    def _sync_installments(self, plan: Cuota) -> None:
        if self._transactions is None:
            return
        today = self._now().date()
        existing = {
            tx.cuota_installment_index
            for tx in self._transactions.list_by_cuota_plan(plan.id)
        }
        for index in range(1, plan.paid_installments_count + 1):
            due = installment_date(plan.created_at, index)
            if due is None or due > today or index in existing:
                continue
            self._transactions.create(self._installment_payload(plan, index, due))
            logger.debug("Recorded installment %s/%s of %s", index, plan.installments_count, plan.id)

    def _installment_payload(self, plan: Cuota, index: int, due: date) -> Dict[str, Any]:
        return {
            "accountId": self._account_id,
            "transactionType": "regular",
            "name": plan.title,
            "icon": CREDIT_CARD_ICON,
            "iconBg": CREDIT_CARD_ICON_BG,
            "category": CREDIT_CARD_CATEGORY_NAME,
            "categoryId": plan.category_id,
            "subcategoryName": plan.subcategory_name,
            "amount": f"-${plan.installment_amount:.2f}",
            "amountColor": INSTALLMENT_AMOUNT_COLOR,
            "cuotaPlanId": plan.id,
            "cuotaInstallmentIndex": index,
            "cuotaInstallmentsCount": plan.installments_count,
            "date": due.isoformat(),
            "meta": f"Cuota {index}/{plan.installments_count}",
        }
