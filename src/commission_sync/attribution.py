"""Staff and customer attribution.

Both chains are ordered tuples of small strategy functions. Each strategy
returns a value or None; the first non-None wins. Keeping the order as data
makes it visible and testable.

Staff chain:
    1. from_booking       booking on the order has a known staff id
    2. from_payment       payment carries team_member_id
    3. from_order_legacy  order carries the legacy employee_id
    otherwise             STAFF_MISSING, empty staff id

Customer chain:
    profile name (payment customer, then order customer), billing address
    name, shipping address name, cardholder name, buyer email, "".
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Optional

from commission_sync.models import Order, Transaction

logger = logging.getLogger(__name__)

FROM_BOOKING = "from_booking"
FROM_PAYMENT = "from_payment"
FROM_ORDER_LEGACY = "from_order_legacy"
STAFF_MISSING = "STAFF_MISSING"

DIAGNOSTIC_MAX_CHARS = 130_000


@dataclass(frozen=True)
class StaffAttribution:
    staff_id: str
    provenance: str

    @property
    def missing(self) -> bool:
        return self.provenance == STAFF_MISSING


StaffStrategy = Callable[[Transaction, Optional[Order], Mapping[str, str]], Optional[str]]


def _from_booking(txn: Transaction, order: Order | None, booking_staff: Mapping[str, str]) -> str | None:
    if order is None or not order.booking_id:
        return None
    return booking_staff.get(order.booking_id) or None


def _from_payment(txn: Transaction, order: Order | None, booking_staff: Mapping[str, str]) -> str | None:
    return txn.staff_id or None


def _from_order_legacy(
    txn: Transaction, order: Order | None, booking_staff: Mapping[str, str]
) -> str | None:
    if order is None:
        return None
    return order.legacy_staff_id or None


STAFF_STRATEGIES: tuple[tuple[str, StaffStrategy], ...] = (
    (FROM_BOOKING, _from_booking),
    (FROM_PAYMENT, _from_payment),
    (FROM_ORDER_LEGACY, _from_order_legacy),
)


def resolve_staff(
    txn: Transaction,
    order: Order | None,
    booking_staff: Mapping[str, str],
    strategies: tuple[tuple[str, StaffStrategy], ...] = STAFF_STRATEGIES,
) -> StaffAttribution:
    """Determine the staff id responsible for a payment and how it was found.

    Args:
        txn: The payment.
        order: Its order, if any.
        booking_staff: booking id -> staff id ("" when the booking had none).
        strategies: Ordered (provenance, strategy) pairs.

    Returns:
        StaffAttribution; provenance is STAFF_MISSING with an empty id when no
        strategy matched.

    Examples:
        >>> resolve_staff(txn, order_with_booking, {"bk1": "TM_A"})
        StaffAttribution(staff_id='TM_A', provenance='from_booking')

    """
    for provenance, strategy in strategies:
        staff_id = strategy(txn, order, booking_staff)
        if staff_id:
            return StaffAttribution(staff_id=staff_id, provenance=provenance)
    return StaffAttribution(staff_id="", provenance=STAFF_MISSING)


def short_name(full_name: str) -> str:
    """First word of a full name; the rate table is keyed by it."""
    parts = (full_name or "").split()
    return parts[0] if parts else ""


CustomerStrategy = Callable[[Transaction, Optional[Order], Mapping[str, str]], Optional[str]]


def _profile_name(txn: Transaction, order: Order | None, names: Mapping[str, str]) -> str | None:
    for cid in (txn.customer_id, order.customer_id if order else ""):
        if cid and names.get(cid):
            return names[cid]
    return None


CUSTOMER_STRATEGIES: tuple[CustomerStrategy, ...] = (
    _profile_name,
    lambda txn, order, names: txn.billing_name or None,
    lambda txn, order, names: txn.shipping_name or None,
    lambda txn, order, names: txn.cardholder_name or None,
    lambda txn, order, names: txn.buyer_email or None,
)


def resolve_customer_name(
    txn: Transaction,
    order: Order | None,
    customer_names: Mapping[str, str],
) -> str:
    """Best display name for the customer of a payment ("" if nothing is known)."""
    for strategy in CUSTOMER_STRATEGIES:
        name = strategy(txn, order, customer_names)
        if name:
            return name
    return ""


def truncate_json(obj: Any, max_chars: int = DIAGNOSTIC_MAX_CHARS) -> str:
    """Serialise obj to JSON, cutting it to max_chars with a marker."""
    try:
        s = json.dumps(obj, default=str, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)[:max_chars]
    if len(s) <= max_chars:
        return s
    return s[: max(0, max_chars - 20)] + "... [truncated]"


def log_missing_staff(
    txn: Transaction,
    order: Order | None,
    booking_staff: Mapping[str, str],
    fetch_booking: Callable[[str], dict] | None = None,
) -> dict:
    """Log a diagnostic record for a payment with no staff attribution.

    When the order references a booking, the booking is fetched on demand
    with ``fetch_booking``. Any failure here is logged and swallowed; this
    never affects the run.

    Returns:
        The diagnostic record (empty dict if building it failed).
    """
    try:
        booking_id = order.booking_id if order else ""
        booking_raw: Any = None
        booking_segments: Any = None
        if booking_id and fetch_booking is not None:
            try:
                booking_raw = fetch_booking(booking_id)
                if isinstance(booking_raw, dict):
                    booking_segments = booking_raw.get("appointment_segments")
            except Exception as e:
                booking_raw = {"error": str(e)}

        diag = {
            "tag": STAFF_MISSING,
            "payment_id": txn.id,
            "order_id": order.id if order else None,
            "appt_id": booking_id or None,
            "booking_team_member_id": (booking_staff.get(booking_id) or None) if booking_id else None,
            "payment_team_member_id": txn.staff_id or None,
            "order_employee_id": (order.legacy_staff_id or None) if order else None,
            "location_id": txn.location_id or None,
            "created_at": txn.created_at,
            "updated_at": txn.updated_at,
            "order_customer_id": order.customer_id if order else None,
            "payment_customer_id": txn.customer_id or None,
            "order_note": order.note if order else None,
            "line_item_names": [li.name for li in order.line_items if li.name] if order else [],
            "booking_segments": booking_segments,
            "payment_raw": txn.raw,
            "order_raw": order.raw if order else None,
            "booking_raw": booking_raw,
        }
        logger.warning("Staff missing for payment %s: %s", txn.id, truncate_json(diag))
        return diag
    except Exception as e:
        logger.error("Missing-staff diagnostic failed for payment %s: %s", txn.id, e)
        return {}
