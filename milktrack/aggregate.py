"""Monthly grouping, filtering and totals over stored receipts."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation

from .models import DATE_FORMAT, CanonicalReceipt, EntrySource
from .normalize import FAT_FACTOR
from .validate import entry_mode

logger = logging.getLogger(__name__)

_TWO_PLACES = Decimal("0.01")
_ONE_PLACE = Decimal("0.1")


def _decimal(value: str | None) -> Decimal | None:
    if value is None:
        return None
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def parse_receipt_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), DATE_FORMAT)
    except ValueError:
        return None


@dataclass
class MonthGroup:
    label: str  # e.g. "January 2024"
    receipts: list[CanonicalReceipt] = field(default_factory=list)

    def _amounts(self) -> list[Decimal]:
        amounts: list[Decimal] = []
        for r in self.receipts:
            amount = _decimal(r.amount)
            if amount is None:
                logger.warning("Receipt %s has no numeric amount: %r", r.id, r.amount)
                amount = Decimal(0)
            amounts.append(amount)
        return amounts

    @property
    def total(self) -> str:
        """Sum of amounts formatted to two decimals."""
        return str(sum(self._amounts(), Decimal(0)).quantize(_TWO_PLACES))

    def running_totals(self) -> list[str]:
        """Cumulative total after each receipt, in group order."""
        totals: list[str] = []
        running = Decimal(0)
        for amount in self._amounts():
            running += amount
            totals.append(str(running.quantize(_TWO_PLACES)))
        return totals

    def __len__(self) -> int:
        return len(self.receipts)


@dataclass
class MonthlyView:
    groups: dict[str, MonthGroup] = field(default_factory=dict)
    skipped: list[CanonicalReceipt] = field(default_factory=list)
    matched: int = 0

    def __getitem__(self, label: str) -> MonthGroup:
        return self.groups[label]

    def __contains__(self, label: object) -> bool:
        return label in self.groups

    def labels(self) -> list[str]:
        return list(self.groups)


def matches(receipt: CanonicalReceipt, text_filter: str) -> bool:
    """Case-insensitive substring match against every rendered field."""
    needle = text_filter.lower()
    return any(needle in value.lower() for value in receipt.rendered_text())


class RecordAggregator:
    """Build the month-by-month records view."""

    def group_by_month(
        self,
        records: Iterable[CanonicalReceipt],
        text_filter: str | None = None,
    ) -> MonthlyView:
        """Filter, then group receipts by the month of their date.

        Filtering happens before grouping so filtered-out receipts never
        count toward a total. Receipts keep their input order; receipts
        whose date cannot be parsed are reported in ``skipped``.
        """
        view = MonthlyView()
        for receipt in records:
            if text_filter and not matches(receipt, text_filter):
                continue
            view.matched += 1

            parsed = parse_receipt_date(receipt.date)
            if parsed is None:
                view.skipped.append(receipt)
                continue

            label = parsed.strftime("%B %Y")
            group = view.groups.get(label)
            if group is None:
                group = view.groups[label] = MonthGroup(label=label)
            group.receipts.append(receipt)

        if view.skipped:
            logger.warning(
                "Dropped %d receipt(s) with unparseable dates: %s",
                len(view.skipped),
                ", ".join(repr(r.date) for r in view.skipped),
            )
        return view


def group_by_month(
    records: Iterable[CanonicalReceipt], text_filter: str | None = None
) -> MonthlyView:
    return RecordAggregator().group_by_month(records, text_filter)


# -- display helpers --


def snf_percent(receipt: CanonicalReceipt) -> str | None:
    """SNF % for display.

    From SNF kg and quantity when SNF kg is known, otherwise estimated
    as CLR − 0.25 × fat.
    """
    snf_kg = _decimal(receipt.snf_kg)
    quantity = _decimal(receipt.quantity)
    if snf_kg is not None and quantity:
        return str((snf_kg / quantity * 100).quantize(_ONE_PLACE))

    clr = _decimal(receipt.clr)
    fat = _decimal(receipt.fat)
    if clr is None or fat is None:
        return None
    return str((clr - FAT_FACTOR * fat).quantize(_ONE_PLACE))


def base_rate_rupees(receipt: CanonicalReceipt) -> str | None:
    """Base rate is printed in paise; show it in rupees."""
    paise = _decimal(receipt.base_rate)
    if paise is None:
        return None
    return str((paise / 100).quantize(_TWO_PLACES))


def is_manual(receipt: CanonicalReceipt) -> bool:
    return entry_mode(receipt) is EntrySource.MANUAL


def day_of_month(receipt: CanonicalReceipt) -> str:
    parsed = parse_receipt_date(receipt.date)
    return parsed.strftime("%d") if parsed else "-"
