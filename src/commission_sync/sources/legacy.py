"""Legacy export adapters: CSV exports parsed into the common record types.

Two layouts are supported, both read with pandas as strings:

Positional export (columns by position, header row skipped):
    A date   B payment id   C staff name   D customer   E service name
    F service price   G product name   H product sales   I tax
    J discounts   K amount paid   L status

Description export (columns by position, header row skipped):
    A date   B payment id   C description   D customer   E service sales
    F product sales   G tax   H discounts   I amount paid   J status

    The description is free text such as ``"Haircut, Beard Trim with Alex +
    Pomade"``: services before "with", the staff name after it, products
    after "+".

In both layouts the staff id *is* the staff name and the customer id *is* the
customer name, so the usual alias/cache resolution passes straight through.
These exports carry no tip field: tips are derived (TipStrategy.DERIVED) and
refunded rows are zeroed.
"""

from __future__ import annotations

import logging
import re
from abc import abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any

import pandas as pd

from commission_sync.config import TipStrategy
from commission_sync.exceptions import ExtractionError
from commission_sync.models import Category, LineItem, Order, Transaction
from commission_sync.sources.base import InputAdapter
from commission_sync.utils import parse_timestamp, strip_invisibles, to_iso, to_minor_units

logger = logging.getLogger(__name__)

POSITIONAL_COLUMNS = [
    "date",
    "payment_id",
    "staff_name",
    "customer",
    "service_name",
    "service_price",
    "product_name",
    "product_sales",
    "tax",
    "discounts",
    "amount_paid",
    "status",
]

DESCRIPTION_COLUMNS = [
    "date",
    "payment_id",
    "description",
    "customer",
    "service_sales",
    "product_sales",
    "tax",
    "discounts",
    "amount_paid",
    "status",
]

DESCRIPTION_RE = re.compile(
    r"^\s*(?:(?P<services>.*)\s+)?with\s+(?P<staff>[^+]+?)\s*(?:\+\s*(?P<products>.*?))?\s*$",
    re.IGNORECASE,
)

_DATE_FORMATS = ("%m/%d/%Y %H:%M:%S", "%m/%d/%Y %H:%M", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")


def to_timestamp(val: Any) -> pd.Timestamp:
    """Parse an export date into a UTC Timestamp (NaT on failure).

    Tries US month-first formats, then ISO, then pandas auto-detection.

    Examples:
        >>> to_timestamp("1/15/2025 14:30:00")
        Timestamp('2025-01-15 14:30:00+0000', tz='UTC')

    """
    s = strip_invisibles(val)
    if not s:
        return pd.NaT
    for fmt in _DATE_FORMATS:
        try:
            return pd.to_datetime(s, format=fmt, errors="raise", utc=True)
        except (ValueError, TypeError):
            pass
    return pd.to_datetime(s, errors="coerce", utc=True)


def split_names(text: str, sep: str = r"[,+]") -> list[str]:
    """Split a list of item names on commas/pluses, dropping blanks."""
    return [p for p in (strip_invisibles(x) for x in re.split(sep, text or "")) if p]


def parse_description(text: str) -> tuple[list[str], str, list[str]]:
    """Split a free-text description into (services, staff name, products).

    Examples:
        >>> parse_description("Haircut, Beard Trim with Alex + Pomade")
        (['Haircut', 'Beard Trim'], 'Alex', ['Pomade'])
        >>> parse_description("Pomade")
        ([], '', ['Pomade'])

    """
    clean = strip_invisibles(text)
    m = DESCRIPTION_RE.match(clean)
    if not m:
        # No "with <staff>": the whole description is a product list
        return [], "", split_names(clean)
    return (
        split_names(m.group("services"), sep=r","),
        strip_invisibles(m.group("staff")),
        split_names(m.group("products") or ""),
    )


def _spread(names: list[str], total: int, category: Category, tax: int = 0) -> list[LineItem]:
    # The export has one amount per group: it goes on the first line.
    if not names and (total or tax):
        names = [""]
    return [
        LineItem(
            name=name,
            gross_sales=total if i == 0 else 0,
            tax=tax if i == 0 else 0,
            category=category,
        )
        for i, name in enumerate(names)
    ]


class _CsvExportSource(InputAdapter):
    """Shared loading and window filtering for the CSV exports."""

    columns: list[str] = []
    tip_strategy = TipStrategy.DERIVED
    zero_refunded = True

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._orders: dict[str, Order] = {}

    def _read(self) -> pd.DataFrame:
        if not self.path.exists():
            raise ExtractionError(f"Export file not found: {self.path}")
        try:
            df = pd.read_csv(
                self.path, dtype=str, keep_default_na=False, encoding="utf-8-sig", header=0
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=self.columns)
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Could not read export {self.path}: {e}") from e
        df = df.iloc[:, : len(self.columns)].copy()
        while df.shape[1] < len(self.columns):
            df[f"_pad{df.shape[1]}"] = ""
        df.columns = self.columns
        return df

    @abstractmethod
    def _row_to_records(self, rec: dict, created_at: str) -> tuple[Transaction, Order]:
        """Turn one export row into a transaction and its order."""

    def fetch_transactions(self, begin_iso: str, end_iso: str) -> list[Transaction]:
        begin = parse_timestamp(begin_iso)
        end = parse_timestamp(end_iso)
        df = self._read()
        if df.empty:
            return []

        df["ts"] = pd.to_datetime(df["date"].map(to_timestamp), utc=True)
        bad_dates = int(df["ts"].isna().sum())
        if bad_dates:
            logger.warning("Skipping %d row(s) with unparseable dates in %s", bad_dates, self.path)
        df = df[df["ts"].notna()]
        if df.empty:
            return []
        if begin is not None:
            df = df[df["ts"] >= pd.Timestamp(begin)]
        if end is not None:
            df = df[df["ts"] <= pd.Timestamp(end)]
        df = df.sort_values("ts", kind="stable")

        txns: list[Transaction] = []
        for rec in df.to_dict(orient="records"):
            if not strip_invisibles(rec["payment_id"]):
                continue
            ts: datetime = rec["ts"].to_pydatetime()
            txn, order = self._row_to_records(rec, to_iso(ts))
            self._orders[order.id] = order
            txns.append(txn)
        logger.info("Read %d transaction(s) in window from %s", len(txns), self.path)
        return txns

    def fetch_orders(self, order_ids: list[str]) -> dict[str, Order]:
        return {oid: self._orders[oid] for oid in order_ids if oid in self._orders}

    def fetch_staff_name(self, staff_id: str) -> str:
        return staff_id

    def fetch_customer_names(self, customer_ids: list[str]) -> dict[str, str]:
        return {cid: cid for cid in customer_ids if cid}

    @staticmethod
    def _transaction(rec: dict, created_at: str, staff: str) -> Transaction:
        pid = strip_invisibles(rec["payment_id"])
        customer = strip_invisibles(rec["customer"])
        return Transaction(
            id=pid,
            created_at=created_at,
            updated_at=created_at,
            amount=to_minor_units(rec["amount_paid"]),
            status_text=strip_invisibles(rec["status"]),
            order_id=pid,
            staff_id=staff,
            customer_id=customer,
            raw={k: v for k, v in rec.items() if k != "ts"},
        )


class PositionalExportSource(_CsvExportSource):
    """Export with one service and one product column group per row.

    Example:
        >>> source = PositionalExportSource("exports/transactions.csv")
        >>> txns = source.fetch_transactions(begin, end)

    """

    name = "positional"
    columns = POSITIONAL_COLUMNS

    def _row_to_records(self, rec: dict, created_at: str) -> tuple[Transaction, Order]:
        staff = strip_invisibles(rec["staff_name"])
        txn = self._transaction(rec, created_at, staff)
        items = _spread(
            split_names(rec["service_name"], sep=r","),
            to_minor_units(rec["service_price"]),
            Category.SERVICE,
        ) + _spread(
            split_names(rec["product_name"], sep=r","),
            to_minor_units(rec["product_sales"]),
            Category.PRODUCT,
            tax=to_minor_units(rec["tax"]),
        )
        order = Order(
            id=txn.id,
            line_items=tuple(items),
            total_discount=to_minor_units(rec["discounts"]),
            customer_id=txn.customer_id,
        )
        return txn, order


class DescriptionExportSource(_CsvExportSource):
    """Export whose services, staff and products live in one description field.

    Example:
        >>> source = DescriptionExportSource("exports/sales.csv")
        >>> txns = source.fetch_transactions(begin, end)

    """

    name = "description"
    columns = DESCRIPTION_COLUMNS

    def _row_to_records(self, rec: dict, created_at: str) -> tuple[Transaction, Order]:
        services, staff, products = parse_description(rec["description"])
        txn = self._transaction(rec, created_at, staff)
        items = _spread(services, to_minor_units(rec["service_sales"]), Category.SERVICE) + _spread(
            products,
            to_minor_units(rec["product_sales"]),
            Category.PRODUCT,
            tax=to_minor_units(rec["tax"]),
        )
        order = Order(
            id=txn.id,
            line_items=tuple(items),
            total_discount=to_minor_units(rec["discounts"]),
            customer_id=txn.customer_id,
            note=strip_invisibles(rec["description"]),
        )
        return txn, order
