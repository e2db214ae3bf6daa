"""Commission engine: one ProcessedRow per payment.

Money stays in integer minor units until the final breakdown, which is done
in Decimal and rounded half-up to 2 decimals.

Breakdown:
    service sales       sum(max(0, gross - discount)) over service lines
    product sales       same over product lines
    product tax         sum(tax) over product lines
    service commission  round(service sales x service rate, 2)
    product commission  round(product sales x product rate, 2)
    total commission    service + product commission + tips - staff fee share
    net business take   paid - fee - total commission - tips - refunded
                        + additional fees - discounts + other adjustments

Rate resolution, per side, first match wins:
    1. item-name override (substring of the joined label)
    2. staff rate from the rate table
    3. configured default
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, replace
from decimal import Decimal
from typing import Optional

from commission_sync.attribution import short_name
from commission_sync.config import CommissionRules, TipStrategy
from commission_sync.models import (
    CatalogEntry,
    Category,
    LineItem,
    Order,
    Transaction,
    TransactionStatus,
)
from commission_sync.rates import CommissionRate, RateTable
from commission_sync.utils import format_datetime, minor_to_decimal, round_half_up, unique

logger = logging.getLogger(__name__)

HEADERS = [
    "PaymentID",
    "Time & Date",
    "Service Type",
    "Staff Name",
    "Additional Fees",
    "Amount Paid",
    "Processing Fee",
    "Staff Processing Fee",
    "Service Sales",
    "Commission Rate (%)",
    "Staff Service Commission",
    "Tips",
    "Product",
    "Product Sales",
    "Product Commission Rate",
    "Product Commission",
    "Product Tax",
    "Discounts",
    "Other Adjustments",
    "Total Staff Commission",
    "Net Business Take",
    "Status",
    "Customer",
    "Flags",
]

ID_COLUMN = HEADERS[0]
TIME_COLUMN = HEADERS[1]

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class ProcessedRow:
    """The output unit: one row per payment id, in HEADERS order."""

    payment_id: str
    timestamp: str
    service_label: str
    staff_name: str
    additional_fees: Decimal
    amount_paid: Decimal
    processing_fee: Decimal
    staff_processing_fee: Decimal
    service_sales: Decimal
    service_rate: float
    service_commission: Decimal
    tips: Decimal
    product_label: str
    product_sales: Decimal
    product_rate: float
    product_commission: Decimal
    product_tax: Decimal
    discounts: Decimal
    other_adjustments: Decimal
    total_staff_commission: Decimal
    net_business_take: Decimal
    status: str
    customer: str
    flags: str

    def to_record(self) -> dict[str, str]:
        """Presentation form: column name -> string cell.

        Money renders with 2 decimals and rates with up to 4, so writing and
        re-reading a row yields identical strings.
        """
        cells = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                cells.append(f"{value:.2f}")
            elif isinstance(value, float):
                cells.append(_format_rate(value))
            else:
                cells.append(str(value))
        return dict(zip(HEADERS, cells))


def _format_rate(rate: float) -> str:
    text = f"{rate:.4f}".rstrip("0").rstrip(".")
    return text or "0"


@dataclass(frozen=True)
class LineSummary:
    service_label: str
    product_label: str
    service_sales: int
    product_sales: int
    product_tax: int


def categorize(item: LineItem, catalog: Mapping[str, CatalogEntry]) -> Category:
    """Explicit line category, else catalog category, else product."""
    if item.category is not None:
        return item.category
    entry = catalog.get(item.catalog_object_id)
    return entry.category if entry else Category.PRODUCT


def summarize_lines(order: Order | None, catalog: Mapping[str, CatalogEntry]) -> LineSummary:
    """Split an order's lines into service and product totals (minor units)."""
    service_names: list[str] = []
    product_names: list[str] = []
    service_sales = product_sales = product_tax = 0
    for item in order.line_items if order else ():
        entry = catalog.get(item.catalog_object_id)
        name = ((entry.item_name if entry else "") or item.name).strip()
        net = max(0, item.gross_sales - item.discount)
        if categorize(item, catalog) is Category.SERVICE:
            service_names.append(name)
            service_sales += net
        else:
            product_names.append(name)
            product_sales += net
            product_tax += item.tax
    return LineSummary(
        service_label=", ".join(unique(service_names)),
        product_label=", ".join(unique(product_names)),
        service_sales=service_sales,
        product_sales=product_sales,
        product_tax=product_tax,
    )


# ---------------------------------------------------------------------------
# Rate resolution
# ---------------------------------------------------------------------------

RateStrategy = Callable[[str, str, bool, RateTable, CommissionRules], Optional[float]]


def _rate_from_item_override(
    staff_name: str, label: str, is_service: bool, rates: RateTable, rules: CommissionRules
) -> float | None:
    if not label:
        return None
    for key, override in rules.by_item_name.items():
        if key and key in label:
            value = override.service if is_service else override.product
            if value is not None:
                return value
    return None


def _rate_from_staff(
    staff_name: str, label: str, is_service: bool, rates: RateTable, rules: CommissionRules
) -> float | None:
    rec: CommissionRate | None = rates.for_staff(staff_name)
    if rec is None and staff_name:
        first = short_name(staff_name)
        rec = rates.for_staff(first) if first and first != staff_name else None
    if rec is None:
        return None
    return rec.service if is_service else rec.product


def _rate_from_default(
    staff_name: str, label: str, is_service: bool, rates: RateTable, rules: CommissionRules
) -> float | None:
    return rules.default_service_rate if is_service else rules.default_product_rate


RATE_STRATEGIES: tuple[RateStrategy, ...] = (
    _rate_from_item_override,
    _rate_from_staff,
    _rate_from_default,
)


def resolve_rate(
    staff_name: str,
    label: str,
    is_service: bool,
    rates: RateTable,
    rules: CommissionRules,
) -> float:
    """Commission rate for one side (service or product) of a payment.

    Examples:
        >>> resolve_rate("Alex", "Haircut", True, RateTable({"Alex": CommissionRate(0.4, 0.1)}),
        ...              CommissionRules())
        0.4

    """
    for strategy in RATE_STRATEGIES:
        rate = strategy(staff_name, label, is_service, rates, rules)
        if rate is not None:
            return rate
    return 0.0


# ---------------------------------------------------------------------------
# Row computation
# ---------------------------------------------------------------------------


def commission_amount(sales_minor: int, rate: float) -> Decimal:
    """round_half_up(sales x rate, 2) with sales given in minor units.

    Examples:
        >>> commission_amount(10000, 0.40)
        Decimal('40.00')

    """
    return round_half_up(Decimal(sales_minor) * Decimal(str(rate)) / 100)


def derived_tip(
    amount: int, discounts: int, service_sales: int, product_sales: int, tax: int
) -> int:
    """Legacy residual tip: paid + discounts - services - products - tax.

    Approximate by nature; it absorbs any unexplained difference and can be
    negative.
    """
    return amount + discounts - service_sales - product_sales - tax


def compute_row(
    txn: Transaction,
    order: Order | None,
    catalog: Mapping[str, CatalogEntry],
    staff_name: str,
    provenance: str,
    customer: str,
    rates: RateTable,
    rules: CommissionRules,
) -> ProcessedRow:
    """Compute the commission/earnings breakdown for one payment.

    Args:
        txn: The payment.
        order: Its order, if any (no order means no line items).
        catalog: variation id -> CatalogEntry.
        staff_name: Resolved display name ("" when unresolved).
        provenance: Attribution provenance tag, written to Flags.
        customer: Resolved customer display name.
        rates: Rate table.
        rules: Commission rules (overrides, defaults, fee share, tip strategy).

    Returns:
        ProcessedRow for the payment.

    """
    lines = summarize_lines(order, catalog)
    discounts_minor = order.total_discount if order else 0
    additional_fees_minor = order.total_service_charge if order else 0

    if rules.tip_strategy is TipStrategy.DERIVED:
        tips_minor = derived_tip(
            txn.amount,
            discounts_minor,
            lines.service_sales,
            lines.product_sales,
            lines.product_tax,
        )
        if tips_minor < 0:
            logger.debug("Derived tip for %s is negative (%d); kept as is", txn.id, tips_minor)
    else:
        tips_minor = txn.tip

    display_name = short_name(staff_name)
    service_rate = resolve_rate(staff_name, lines.service_label, True, rates, rules)
    product_rate = resolve_rate(staff_name, lines.product_label, False, rates, rules)

    amount_paid = minor_to_decimal(txn.amount)
    processing_fee = minor_to_decimal(txn.processing_fee)
    refunded = minor_to_decimal(txn.refunded)
    tips = minor_to_decimal(tips_minor)
    discounts = minor_to_decimal(discounts_minor)
    additional_fees = minor_to_decimal(additional_fees_minor)
    service_sales = minor_to_decimal(lines.service_sales)
    product_sales = minor_to_decimal(lines.product_sales)
    product_tax = minor_to_decimal(lines.product_tax)

    service_commission = commission_amount(lines.service_sales, service_rate)
    product_commission = commission_amount(lines.product_sales, product_rate)
    staff_processing_fee = round_half_up(processing_fee * Decimal(str(rules.staff_fee_share)))
    total_staff_commission = round_half_up(
        service_commission + product_commission + tips - staff_processing_fee
    )
    other_adjustments = ZERO
    net_business_take = round_half_up(
        amount_paid
        - processing_fee
        - total_staff_commission
        - tips
        - refunded
        + additional_fees
        - discounts
        + other_adjustments
    )

    row = ProcessedRow(
        payment_id=txn.id,
        timestamp=format_datetime(txn.created_at or txn.updated_at),
        service_label=lines.service_label,
        staff_name=display_name,
        additional_fees=additional_fees,
        amount_paid=amount_paid,
        processing_fee=processing_fee,
        staff_processing_fee=staff_processing_fee,
        service_sales=service_sales,
        service_rate=service_rate,
        service_commission=service_commission,
        tips=tips,
        product_label=lines.product_label,
        product_sales=product_sales,
        product_rate=product_rate,
        product_commission=product_commission,
        product_tax=product_tax,
        discounts=discounts,
        other_adjustments=other_adjustments,
        total_staff_commission=total_staff_commission,
        net_business_take=net_business_take,
        status=txn.status_text,
        customer=customer,
        flags=provenance,
    )
    if rules.zero_refunded and txn.status is TransactionStatus.REFUNDED:
        return zero_money(row)
    return row


def zero_money(row: ProcessedRow) -> ProcessedRow:
    """Copy of row with every money column set to 0.00 (labels, status kept)."""
    zeroed = {f.name: ZERO for f in fields(row) if isinstance(getattr(row, f.name), Decimal)}
    return replace(row, **zeroed)
