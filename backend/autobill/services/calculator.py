# backend/autobill/services/calculator.py
"""
Document calculator (ใบเสนอราคา / ใบกำกับภาษี)

Order of operations:
1) subtotal = sum of line amounts (qty * unit_price - line discount %)
2) document discount (fixed baht or percent of subtotal)
3) discount is spread over every line by ratio (after / subtotal)
4) VAT split by price type:
   - price_includes_vat=True  -> VAT is extracted from the line (amount / (1 + rate))
   - price_includes_vat=False -> VAT is added on top (amount * rate)
5) total = inclusive + exclusive + VAT(exclusive)

All math in Decimal; total and VAT rounded half-up to 2dp at the end and
amount_before_vat derived from them (before + vat == total).

WHT (invoice): base is amount_before_vat (NOT total).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Any, Dict, List, Sequence

from ..models.schemas import LineItem

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

QUOTATION_PREFIX = "QT"
INVOICE_PREFIX = "IV"


def _d(v: Any) -> Decimal:
    if v is None:
        return ZERO
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))


def round_money(v: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = max(28, v.adjusted() + 6)
        return v.quantize(CENT, rounding=ROUND_HALF_UP)


def _money_float(v: Decimal) -> float:
    return float(round_money(v))


# ---------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal = ZERO
    discount_amount: Decimal = ZERO
    amount_before_vat: Decimal = ZERO
    vat_amount: Decimal = ZERO
    total_amount: Decimal = ZERO

    @property
    def after_discount(self) -> Decimal:
        """ยอดหลังหักส่วนลด (display price, VAT-inclusive lines still inclusive)"""
        return self.subtotal - self.discount_amount

    def as_dict(self) -> Dict[str, float]:
        return {
            "subtotal": _money_float(self.subtotal),
            "discount_amount": _money_float(self.discount_amount),
            "after_discount": _money_float(self.after_discount),
            "amount_before_vat": _money_float(self.amount_before_vat),
            "vat_amount": _money_float(self.vat_amount),
            "total_amount": _money_float(self.total_amount),
        }


@dataclass(frozen=True)
class WithholdingSummary:
    withholding_tax_rate: Decimal = ZERO
    withholding_tax_amount: Decimal = ZERO
    net_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    remaining_amount: Decimal = ZERO

    def as_dict(self) -> Dict[str, float]:
        return {
            "withholding_tax_rate": float(self.withholding_tax_rate),
            "withholding_tax_amount": _money_float(self.withholding_tax_amount),
            "net_amount": _money_float(self.net_amount),
            "paid_amount": _money_float(self.paid_amount),
            "remaining_amount": _money_float(self.remaining_amount),
        }


# ---------------------------------------------------------------------
# Line helpers
# ---------------------------------------------------------------------
def line_gross(item: LineItem) -> Decimal:
    """Row amount as shown in the items table (no discount)."""
    return _d(item.quantity) * _d(item.unit_price)


def line_discount(item: LineItem) -> Decimal:
    return line_gross(item) * _d(item.discount_percent) / HUNDRED


def line_amount(item: LineItem) -> Decimal:
    return line_gross(item) - line_discount(item)


def resolve_discount(subtotal: Decimal, discount_type: str, discount_value: Any) -> Decimal:
    value = max(_d(discount_value), ZERO)
    if discount_type == "percent":
        return subtotal * min(value, HUNDRED) / HUNDRED
    if subtotal <= 0:
        return ZERO
    return min(value, subtotal)


# ---------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------
def calculate_totals(
    items: Sequence[LineItem],
    discount_type: str = "fixed",
    discount_value: Any = 0,
    vat_rate: Any = 7,
) -> DocumentTotals:
    amounts = [line_amount(it) for it in items]
    subtotal = sum(amounts, ZERO)

    discount_amount = resolve_discount(subtotal, discount_type, discount_value)
    after_discount = subtotal - discount_amount
    ratio = after_discount / subtotal if subtotal > 0 else Decimal("1")

    total_inc_vat = ZERO
    total_exc_vat = ZERO
    for it, amount in zip(items, amounts):
        share = amount * ratio
        if it.price_includes_vat:
            total_inc_vat += share
        else:
            total_exc_vat += share

    rate = max(_d(vat_rate), ZERO) / HUNDRED

    before_vat_from_inc = total_inc_vat / (1 + rate)
    vat_from_inc = total_inc_vat - before_vat_from_inc
    vat_from_exc = total_exc_vat * rate

    total = round_money(total_inc_vat + total_exc_vat + vat_from_exc)
    vat = round_money(vat_from_inc + vat_from_exc)

    return DocumentTotals(
        subtotal=round_money(subtotal),
        discount_amount=round_money(discount_amount),
        amount_before_vat=total - vat,
        vat_amount=vat,
        total_amount=total,
    )


def calculate_withholding(
    totals: DocumentTotals,
    withholding_tax_rate: Any = 0,
    paid_amount: Any = 0,
) -> WithholdingSummary:
    rate = min(max(_d(withholding_tax_rate), ZERO), HUNDRED)
    wht = round_money(totals.amount_before_vat * rate / HUNDRED)
    net = totals.total_amount - wht
    paid = round_money(max(_d(paid_amount), ZERO))
    return WithholdingSummary(
        withholding_tax_rate=rate,
        withholding_tax_amount=wht,
        net_amount=net,
        paid_amount=paid,
        remaining_amount=max(net - paid, ZERO),
    )


def build_item_rows(items: Sequence[LineItem], parent_key: str, parent_id: str) -> List[Dict[str, Any]]:
    """Rows for quotation_items / invoice_items (item_order is 1-based)."""
    rows: List[Dict[str, Any]] = []
    for index, it in enumerate(items, start=1):
        rows.append(
            {
                parent_key: parent_id,
                "item_order": index,
                "description": it.description,
                "quantity": float(it.quantity),
                "unit": it.unit,
                "unit_price": float(it.unit_price),
                "discount_percent": float(it.discount_percent),
                "discount_amount": _money_float(line_discount(it)),
                "amount": _money_float(line_amount(it)),
                "price_includes_vat": bool(it.price_includes_vat),
            }
        )
    return rows


# ---------------------------------------------------------------------
# Numbering / dates
# ---------------------------------------------------------------------
def document_number_prefix(prefix: str, issue_date: date) -> str:
    return f"{prefix}-{issue_date:%Y%m%d}"


def generate_document_number(prefix: str, issue_date: date, existing_count: int) -> str:
    """QT-20250105-0001 (running number per prefix per day)"""
    return f"{document_number_prefix(prefix, issue_date)}-{max(existing_count, 0) + 1:04d}"


def default_valid_until(issue_date: date, validity_days: int = 30) -> date:
    return issue_date + timedelta(days=max(validity_days, 0))


def default_due_date(issue_date: date, payment_terms: int = 0) -> date:
    # default = same day as issue date (ชำระทันที)
    return issue_date + timedelta(days=max(payment_terms, 0))


__all__ = [
    "DocumentTotals",
    "WithholdingSummary",
    "QUOTATION_PREFIX",
    "INVOICE_PREFIX",
    "round_money",
    "line_gross",
    "line_discount",
    "line_amount",
    "resolve_discount",
    "calculate_totals",
    "calculate_withholding",
    "build_item_rows",
    "document_number_prefix",
    "generate_document_number",
    "default_valid_until",
    "default_due_date",
]
