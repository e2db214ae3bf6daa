"""Tests for staff and customer attribution."""

import logging

import pytest

from commission_sync.attribution import (
    FROM_BOOKING,
    FROM_ORDER_LEGACY,
    FROM_PAYMENT,
    STAFF_MISSING,
    log_missing_staff,
    resolve_customer_name,
    resolve_staff,
    short_name,
    truncate_json,
)
from commission_sync.models import Order, Transaction


def test_booking_wins_over_payment() -> None:
    """Booking staff beats the team member recorded on the payment."""
    txn = Transaction(id="P1", staff_id="TM_PAY", order_id="O1")
    order = Order(id="O1", booking_id="BK1", legacy_staff_id="EMP")
    result = resolve_staff(txn, order, {"BK1": "TM_BOOK"})
    assert result.staff_id == "TM_BOOK"
    assert result.provenance == FROM_BOOKING
    assert not result.missing


def test_booking_without_staff_falls_back_to_payment() -> None:
    """An empty cached booking value (looked up, nothing found) is skipped."""
    txn = Transaction(id="P1", staff_id="TM_PAY")
    order = Order(id="O1", booking_id="BK1")
    result = resolve_staff(txn, order, {"BK1": ""})
    assert (result.staff_id, result.provenance) == ("TM_PAY", FROM_PAYMENT)


def test_legacy_employee_id_is_last_resort() -> None:
    txn = Transaction(id="P1")
    order = Order(id="O1", legacy_staff_id="EMP")
    result = resolve_staff(txn, order, {})
    assert (result.staff_id, result.provenance) == ("EMP", FROM_ORDER_LEGACY)


def test_missing_staff() -> None:
    result = resolve_staff(Transaction(id="P1"), None, {})
    assert result.staff_id == ""
    assert result.provenance == STAFF_MISSING
    assert result.missing


def test_custom_strategy_order() -> None:
    """The chain is data: callers may pass their own ordering."""
    txn = Transaction(id="P1", staff_id="TM_PAY")
    order = Order(id="O1", booking_id="BK1")
    strategies = (
        (FROM_PAYMENT, lambda t, o, b: t.staff_id or None),
        (FROM_BOOKING, lambda t, o, b: b.get(o.booking_id) if o else None),
    )
    result = resolve_staff(txn, order, {"BK1": "TM_BOOK"}, strategies)
    assert result.provenance == FROM_PAYMENT


@pytest.mark.parametrize(
    "full, short",
    [("Alex Smith", "Alex"), ("Alex", "Alex"), ("", ""), ("  Blake  Jones ", "Blake")],
)
def test_short_name(full: str, short: str) -> None:
    assert short_name(full) == short


def test_customer_priority() -> None:
    """Profile name, then billing, shipping, cardholder, email."""
    names = {"C1": "Jamie Doe", "C2": "Order Person"}
    full = Transaction(
        id="P1",
        customer_id="C1",
        billing_name="Billing Name",
        shipping_name="Ship Name",
        cardholder_name="CARD HOLDER",
        buyer_email="a@b.c",
    )
    assert resolve_customer_name(full, None, names) == "Jamie Doe"

    no_profile = Transaction(id="P2", customer_id="C404", billing_name="Billing Name")
    assert resolve_customer_name(no_profile, Order(id="O", customer_id="C2"), names) == "Order Person"
    assert resolve_customer_name(no_profile, None, names) == "Billing Name"

    assert resolve_customer_name(Transaction(id="P3", shipping_name="Ship"), None, {}) == "Ship"
    assert resolve_customer_name(Transaction(id="P4", cardholder_name="CARD"), None, {}) == "CARD"
    assert resolve_customer_name(Transaction(id="P5", buyer_email="x@y.z"), None, {}) == "x@y.z"
    assert resolve_customer_name(Transaction(id="P6"), None, {}) == ""


def test_truncate_json() -> None:
    assert truncate_json({"a": 1}) == '{"a": 1}'
    long = truncate_json({"k": "x" * 500}, max_chars=100)
    assert len(long) <= 100
    assert long.endswith("[truncated]")


def test_log_missing_staff_fetches_booking(caplog: pytest.LogCaptureFixture) -> None:
    txn = Transaction(id="P1", order_id="O1")
    order = Order(id="O1", booking_id="BK1")
    fetched: list[str] = []

    def fetch(booking_id: str) -> dict:
        fetched.append(booking_id)
        return {"id": booking_id, "appointment_segments": [{"team_member_id": ""}]}

    with caplog.at_level(logging.WARNING, logger="commission_sync.attribution"):
        diag = log_missing_staff(txn, order, {"BK1": ""}, fetch)

    assert fetched == ["BK1"]
    assert diag["tag"] == STAFF_MISSING
    assert diag["appt_id"] == "BK1"
    assert diag["booking_segments"] == [{"team_member_id": ""}]
    assert "Staff missing for payment P1" in caplog.text


def test_log_missing_staff_swallows_fetch_errors() -> None:
    """A failing booking fetch is recorded in the diagnostic, never raised."""
    txn = Transaction(id="P1", order_id="O1")
    order = Order(id="O1", booking_id="BK1")

    def fetch(booking_id: str) -> dict:
        raise RuntimeError("boom")

    diag = log_missing_staff(txn, order, {}, fetch)
    assert diag["booking_raw"] == {"error": "boom"}
