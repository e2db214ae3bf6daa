"""Typed records for the entities flowing through a reconciliation run.

Square returns loosely-typed JSON. Every payload is converted into one of the
frozen dataclasses below at the ledger-client boundary, so the rest of the
pipeline never touches raw dictionaries. Unknown or malformed fields default
(money to 0, text to ""), they never raise.

Money is held as integer minor units (cents) and only converted to Decimal
when a ProcessedRow is built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from commission_sync.utils import money_amount, strip_invisibles

SERVICE_PRODUCT_TYPE = "APPOINTMENTS_SERVICE"


class TransactionStatus(str, Enum):
    """Coarse payment status; the raw text is kept separately for output."""

    COMPLETED = "completed"
    REFUNDED = "refunded"
    VOIDED = "voided"
    OTHER = "other"

    @classmethod
    def from_text(cls, text: str) -> TransactionStatus:
        key = (text or "").strip().lower()
        if key in ("completed", "complete", "approved"):
            return cls.COMPLETED
        if key in ("refunded", "refund"):
            return cls.REFUNDED
        if key in ("voided", "canceled", "cancelled", "failed"):
            return cls.VOIDED
        return cls.OTHER


class Category(str, Enum):
    """Line-item category used to split service and product sales."""

    SERVICE = "service"
    PRODUCT = "product"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _address_name(addr: dict) -> str:
    first_last = " ".join(p for p in (_text(addr.get("first_name")), _text(addr.get("last_name"))) if p)
    if first_last:
        return first_last
    return " ".join(p for p in (_text(addr.get("given_name")), _text(addr.get("family_name"))) if p)


@dataclass(frozen=True)
class Transaction:
    """One payment event, identified by ``id`` across runs."""

    id: str
    created_at: str = ""
    updated_at: str = ""
    amount: int = 0
    tip: int = 0
    refunded: int = 0
    processing_fee: int = 0
    status_text: str = ""
    order_id: str = ""
    staff_id: str = ""
    customer_id: str = ""
    location_id: str = ""
    billing_name: str = ""
    shipping_name: str = ""
    cardholder_name: str = ""
    buyer_email: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @property
    def status(self) -> TransactionStatus:
        return TransactionStatus.from_text(self.status_text)

    @classmethod
    def from_payload(cls, payload: dict) -> Transaction:
        """Build a Transaction from a Square ``Payment`` object."""
        payload = _dict(payload)
        fees = _list(payload.get("processing_fee"))
        processing_fee = sum(
            money_amount(_dict(f).get("amount_money") or _dict(f).get("applied_money")) for f in fees
        )
        card = _dict(_dict(payload.get("card_details")).get("card"))
        return cls(
            id=_text(payload.get("id")),
            created_at=_text(payload.get("created_at")),
            updated_at=_text(payload.get("updated_at")),
            amount=money_amount(payload.get("total_money")),
            tip=money_amount(payload.get("tip_money")),
            refunded=money_amount(payload.get("refunded_money")),
            processing_fee=processing_fee,
            status_text=_text(payload.get("status")),
            order_id=_text(payload.get("order_id")),
            staff_id=_text(payload.get("team_member_id")),
            customer_id=_text(payload.get("customer_id")),
            location_id=_text(payload.get("location_id")),
            billing_name=_address_name(_dict(payload.get("billing_address"))),
            shipping_name=_address_name(_dict(payload.get("shipping_address"))),
            cardholder_name=_text(card.get("cardholder_name")),
            buyer_email=_text(payload.get("buyer_email_address")),
            raw=payload,
        )


@dataclass(frozen=True)
class LineItem:
    """One order line; ``category`` is only set when the source knows it."""

    name: str = ""
    catalog_object_id: str = ""
    gross_sales: int = 0
    discount: int = 0
    tax: int = 0
    category: Category | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> LineItem:
        payload = _dict(payload)
        return cls(
            name=_text(payload.get("name")),
            catalog_object_id=_text(payload.get("catalog_object_id")),
            gross_sales=money_amount(payload.get("gross_sales_money")),
            discount=money_amount(payload.get("total_discount_money")),
            tax=money_amount(payload.get("total_tax_money")),
        )


def _booking_reference(fulfillments: list) -> str:
    # appointment id wins over booking id within the same fulfillment
    for f in fulfillments:
        f = _dict(f)
        details = _dict(f.get("appointment_details")) or _dict(f.get("metadata"))
        if _text(details.get("appointment_id")):
            return _text(details["appointment_id"])
        if _text(details.get("booking_id")):
            return _text(details["booking_id"])
    return ""


@dataclass(frozen=True)
class Order:
    """Line items purchased under a transaction."""

    id: str
    line_items: tuple[LineItem, ...] = ()
    total_discount: int = 0
    total_service_charge: int = 0
    booking_id: str = ""
    legacy_staff_id: str = ""
    customer_id: str = ""
    note: str = ""
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_payload(cls, payload: dict) -> Order:
        """Build an Order from a Square ``Order`` object."""
        payload = _dict(payload)
        service_charge = money_amount(payload.get("total_service_charge_money"))
        if not service_charge:
            service_charge = sum(
                money_amount(_dict(sc).get("applied_money") or _dict(sc).get("total_money"))
                for sc in _list(payload.get("service_charges"))
            )
        return cls(
            id=_text(payload.get("id")),
            line_items=tuple(LineItem.from_payload(li) for li in _list(payload.get("line_items"))),
            total_discount=money_amount(payload.get("total_discount_money")),
            total_service_charge=service_charge,
            booking_id=_booking_reference(_list(payload.get("fulfillments"))),
            legacy_staff_id=_text(payload.get("employee_id")),
            customer_id=_text(payload.get("customer_id")),
            note=_text(payload.get("note")),
            raw=payload,
        )


@dataclass(frozen=True)
class CatalogEntry:
    """Parent item information for a sellable variation."""

    variation_id: str
    item_name: str = ""
    category: Category = Category.PRODUCT


def catalog_entries_from_payload(payload: dict) -> dict[str, CatalogEntry]:
    """Map variation ids to CatalogEntry from a catalog batch-retrieve response.

    ``objects`` and ``related_objects`` are scanned together so variations can
    find their parent ITEM regardless of which list Square put it in.
    """
    payload = _dict(payload)
    objects = _list(payload.get("objects")) + _list(payload.get("related_objects"))

    items: dict[str, tuple[str, Category]] = {}
    for obj in objects:
        obj = _dict(obj)
        data = _dict(obj.get("item_data"))
        if obj.get("type") == "ITEM" and data:
            category = (
                Category.SERVICE
                if data.get("product_type") == SERVICE_PRODUCT_TYPE
                else Category.PRODUCT
            )
            items[_text(obj.get("id"))] = (_text(data.get("name")), category)

    out: dict[str, CatalogEntry] = {}
    for obj in objects:
        obj = _dict(obj)
        data = _dict(obj.get("item_variation_data"))
        if obj.get("type") == "ITEM_VARIATION" and data:
            name, category = items.get(_text(data.get("item_id")), ("", Category.PRODUCT))
            vid = _text(obj.get("id"))
            out[vid] = CatalogEntry(variation_id=vid, item_name=name, category=category)
    return out


def team_member_name(payload: dict) -> str:
    """Pick a display name from a Square ``TeamMember`` object.

    Order: display_name, "given family", family_name, "".
    """
    tm = _dict(payload)
    display = strip_invisibles(tm.get("display_name"))
    if display:
        return display
    given = strip_invisibles(tm.get("given_name"))
    family = strip_invisibles(tm.get("family_name"))
    if given:
        return " ".join(p for p in (given, family) if p)
    return family


def customer_name(payload: dict) -> str:
    """Pick a display name from a Square ``Customer`` object."""
    c = _dict(payload)
    name = " ".join(p for p in (_text(c.get("given_name")), _text(c.get("family_name"))) if p)
    return name or _text(c.get("company_name")) or _text(c.get("email_address"))


def booking_staff_id(payload: dict) -> str:
    """Staff id of the first appointment segment of a Square ``Booking``."""
    booking = _dict(payload)
    segments = _list(booking.get("appointment_segments"))
    if not segments:
        return ""
    return _text(_dict(segments[0]).get("team_member_id"))
