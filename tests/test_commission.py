"""Tests for the commission engine."""

from decimal import Decimal

import pytest

from commission_sync.attribution import FROM_PAYMENT, STAFF_MISSING
from commission_sync.commission import (
    HEADERS,
    categorize,
    commission_amount,
    compute_row,
    derived_tip,
    resolve_rate,
    summarize_lines,
)
from commission_sync.config import CommissionRules, ItemRateOverride, TipStrategy
from commission_sync.models import CatalogEntry, Category, LineItem, Order, Transaction, TransactionStatus
from commission_sync.rates import CommissionRate, RateTable

RATES = RateTable(
    by_person={"Alex": CommissionRate(service=0.4, product=0.1), "Blake Jones": CommissionRate(0.5, 0.2)},
    aliases={"TM_A": "Alex"},
)

CATALOG = {
    "V_CUT": CatalogEntry("V_CUT", "Haircut", Category.SERVICE),
    "V_BEARD": CatalogEntry("V_BEARD", "Beard Trim", Category.SERVICE),
    "V_POMADE": CatalogEntry("V_POMADE", "Pomade", Category.PRODUCT),
}


def _txn(**kwargs: object) -> Transaction:
    base: dict = dict(
        id="P1",
        created_at="2025-01-15T12:00:00.000Z",
        updated_at="2025-01-15T12:05:00.000Z",
        amount=13700,
        tip=1500,
        processing_fee=320,
        status_text="COMPLETED",
        order_id="O1",
    )
    base.update(kwargs)
    return Transaction(**base)


def _order(**kwargs: object) -> Order:
    base: dict = dict(
        id="O1",
        line_items=(
            LineItem(name="Haircut (30 min)", catalog_object_id="V_CUT", gross_sales=10000),
            LineItem(name="Pomade", catalog_object_id="V_POMADE", gross_sales=2000, tax=200),
        ),
    )
    base.update(kwargs)
    return Order(**base)


def test_headers_order() -> None:
    """Output columns keep their published order."""
    assert HEADERS[0] == "PaymentID"
    assert HEADERS[-1] == "Flags"
    assert len(HEADERS) == 24
    assert HEADERS.index("Commission Rate (%)") == HEADERS.index("Service Sales") + 1


def test_categorize_prefers_explicit_then_catalog() -> None:
    """Explicit category wins, then the catalog, then product."""
    explicit = LineItem(name="x", catalog_object_id="V_POMADE", category=Category.SERVICE)
    assert categorize(explicit, CATALOG) is Category.SERVICE
    assert categorize(LineItem(catalog_object_id="V_CUT"), CATALOG) is Category.SERVICE
    assert categorize(LineItem(catalog_object_id="V_UNKNOWN"), CATALOG) is Category.PRODUCT


def test_summarize_lines_nets_discounts_and_dedupes_labels() -> None:
    """Sales are net of line discounts (never negative); labels are unique."""
    order = _order(
        line_items=(
            LineItem(name="Haircut", catalog_object_id="V_CUT", gross_sales=5000, discount=1000),
            LineItem(name="Haircut", catalog_object_id="V_CUT", gross_sales=5000),
            LineItem(name="Beard", catalog_object_id="V_BEARD", gross_sales=500, discount=900),
            LineItem(name="Gel", catalog_object_id="", gross_sales=1200, tax=96),
        )
    )
    s = summarize_lines(order, CATALOG)
    assert s.service_label == "Haircut, Beard Trim"
    assert s.product_label == "Gel"
    assert s.service_sales == 9000
    assert s.product_sales == 1200
    assert s.product_tax == 96


def test_summarize_lines_without_order() -> None:
    s = summarize_lines(None, CATALOG)
    assert (s.service_sales, s.product_sales, s.product_tax) == (0, 0, 0)
    assert s.service_label == ""


def test_resolve_rate_priority() -> None:
    """Item override, then staff rate, then default."""
    rules = CommissionRules(
        default_service_rate=0.3,
        default_product_rate=0.05,
        by_item_name={"Beard": ItemRateOverride(service=0.6)},
    )
    assert resolve_rate("Alex", "Haircut, Beard Trim", True, RATES, rules) == 0.6
    # Override only has a service side: product falls through to the staff rate
    assert resolve_rate("Alex", "Beard Oil", False, RATES, rules) == 0.1
    assert resolve_rate("Alex", "Haircut", True, RATES, rules) == 0.4
    assert resolve_rate("Nobody", "Haircut", True, RATES, rules) == 0.3
    assert resolve_rate("", "Pomade", False, RATES, rules) == 0.05


def test_resolve_rate_matches_first_name() -> None:
    """A full name falls back to its first word in the rate table."""
    assert resolve_rate("Alex Smith", "Haircut", True, RATES, CommissionRules()) == 0.4
    assert resolve_rate("Blake Jones", "Haircut", True, RATES, CommissionRules()) == 0.5


def test_resolve_rate_blank_staff_name_uses_default() -> None:
    """A whitespace-only cached name falls through to the configured default."""
    rules = CommissionRules(default_service_rate=0.3)
    assert resolve_rate(" ", "Haircut", True, RATES, rules) == 0.3


def test_commission_amount_rounds_half_up() -> None:
    assert commission_amount(10000, 0.4) == Decimal("40.00")
    assert commission_amount(125, 0.5) == Decimal("0.63")
    assert commission_amount(0, 0.9) == Decimal("0.00")


def test_compute_row_breakdown() -> None:
    """Worked example: services 100, product 20 + 2 tax, tip 15, fee 3.20."""
    rules = CommissionRules(staff_fee_share=0.5)
    row = compute_row(_txn(), _order(), CATALOG, "Alex", FROM_PAYMENT, "Jamie Doe", RATES, rules)

    assert row.payment_id == "P1"
    assert row.timestamp == "1/15/2025 12:00:00"
    assert row.service_label == "Haircut"
    assert row.product_label == "Pomade"
    assert row.staff_name == "Alex"
    assert row.service_sales == Decimal("100.00")
    assert row.service_rate == 0.4
    assert row.service_commission == Decimal("40.00")
    assert row.product_sales == Decimal("20.00")
    assert row.product_commission == Decimal("2.00")
    assert row.product_tax == Decimal("2.00")
    assert row.tips == Decimal("15.00")
    assert row.processing_fee == Decimal("3.20")
    assert row.staff_processing_fee == Decimal("1.60")
    assert row.total_staff_commission == Decimal("55.40")
    # 137.00 - 3.20 - 55.40 - 15.00
    assert row.net_business_take == Decimal("63.40")
    assert row.customer == "Jamie Doe"
    assert row.flags == FROM_PAYMENT


def test_compute_row_refund_discount_and_fees_flow_into_net() -> None:
    order = _order(total_discount=500, total_service_charge=250)
    row = compute_row(
        _txn(refunded=1000), order, CATALOG, "Alex", FROM_PAYMENT, "", RATES, CommissionRules()
    )
    # 137.00 - 3.20 - (40 + 2 + 15) - 15 - 10 + 2.50 - 5
    assert row.total_staff_commission == Decimal("57.00")
    assert row.net_business_take == Decimal("49.30")
    assert row.discounts == Decimal("5.00")
    assert row.additional_fees == Decimal("2.50")


def test_compute_row_without_order_or_staff() -> None:
    """A bare payment still yields a row; missing numbers count as zero."""
    txn = Transaction(id="P9", amount=2500, status_text="COMPLETED")
    row = compute_row(txn, None, {}, "", STAFF_MISSING, "", RATES, CommissionRules())
    assert row.staff_name == ""
    assert row.service_sales == Decimal("0.00")
    assert row.total_staff_commission == Decimal("0.00")
    assert row.net_business_take == Decimal("25.00")
    assert row.flags == STAFF_MISSING


def test_compute_row_shows_first_name() -> None:
    row = compute_row(_txn(), _order(), CATALOG, "Blake Jones", FROM_PAYMENT, "", RATES, CommissionRules())
    assert row.staff_name == "Blake"
    assert row.service_rate == 0.5


def test_derived_tip_is_residual() -> None:
    """paid + discounts - services - products - tax, negative allowed."""
    assert derived_tip(13700, 0, 10000, 2000, 200) == 1500
    assert derived_tip(11000, 500, 10000, 2000, 200) == -700


def test_compute_row_derived_tips() -> None:
    rules = CommissionRules(tip_strategy=TipStrategy.DERIVED)
    row = compute_row(_txn(tip=0), _order(), CATALOG, "Alex", FROM_PAYMENT, "", RATES, rules)
    assert row.tips == Decimal("15.00")


def test_compute_row_zero_refunded() -> None:
    """Legacy refund zeroing clears every money column and keeps the status."""
    rules = CommissionRules(zero_refunded=True)
    row = compute_row(
        _txn(status_text="Refunded"), _order(), CATALOG, "Alex", FROM_PAYMENT, "Jamie", RATES, rules
    )
    rec = row.to_record()
    for col in ("Amount Paid", "Tips", "Service Sales", "Total Staff Commission", "Net Business Take"):
        assert rec[col] == "0.00"
    assert rec["Status"] == "Refunded"
    assert rec["Service Type"] == "Haircut"
    assert rec["Customer"] == "Jamie"


@pytest.mark.parametrize("status_text", ["Refund", " refunded ", "REFUNDED"])
def test_zero_refunded_follows_status_enum(status_text: str) -> None:
    """Every spelling that maps to REFUNDED is zeroed; the raw text is kept."""
    rules = CommissionRules(zero_refunded=True)
    txn = _txn(status_text=status_text)
    assert txn.status is TransactionStatus.REFUNDED

    row = compute_row(txn, _order(), CATALOG, "Alex", FROM_PAYMENT, "", RATES, rules)

    assert row.amount_paid == Decimal("0.00")
    assert row.net_business_take == Decimal("0.00")
    assert row.status == status_text


def test_zero_refunded_leaves_completed_rows() -> None:
    rules = CommissionRules(zero_refunded=True)
    row = compute_row(
        _txn(status_text="Completed"), _order(), CATALOG, "Alex", FROM_PAYMENT, "", RATES, rules
    )
    assert row.amount_paid == Decimal("137.00")


def test_refunded_not_zeroed_by_default() -> None:
    row = compute_row(
        _txn(status_text="REFUNDED"), _order(), CATALOG, "Alex", FROM_PAYMENT, "", RATES, CommissionRules()
    )
    assert row.amount_paid == Decimal("137.00")


def test_to_record_formats_cells() -> None:
    row = compute_row(_txn(), _order(), CATALOG, "Alex", FROM_PAYMENT, "", RATES, CommissionRules())
    rec = row.to_record()
    assert list(rec) == HEADERS
    assert rec["Amount Paid"] == "137.00"
    assert rec["Commission Rate (%)"] == "0.4"
    assert rec["Product Commission Rate"] == "0.1"
    assert all(isinstance(v, str) for v in rec.values())


@pytest.mark.parametrize("rate, text", [(0.0, "0"), (1.0, "1"), (0.125, "0.125"), (0.33333, "0.3333")])
def test_rate_cell_format(rate: float, text: str) -> None:
    row = compute_row(
        Transaction(id="P"),
        None,
        {},
        "",
        STAFF_MISSING,
        "",
        RateTable(),
        CommissionRules(default_service_rate=rate),
    )
    assert row.to_record()["Commission Rate (%)"] == text
