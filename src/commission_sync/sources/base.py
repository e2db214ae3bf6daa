"""Base interface for input adapters.

The reconciliation loop is written once against InputAdapter; the Square API
source and the legacy export parsers only differ in how they produce
transactions and enrich them.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from commission_sync.config import TipStrategy
from commission_sync.models import CatalogEntry, Order, Transaction


class InputAdapter(ABC):
    """Abstract base class for transaction sources.

    Attributes:
        name: Short identifier used in logs and on the CLI.
        tip_strategy: Tip strategy the source's data supports.
        zero_refunded: Whether refunded rows should have every money column
            zeroed (legacy exports only).
        recoverable_errors: Exception types raised by lookups that should be
            logged and skipped instead of failing the run.
    """

    name: str = "base"
    tip_strategy: TipStrategy = TipStrategy.DIRECT
    zero_refunded: bool = False
    recoverable_errors: tuple[type[BaseException], ...] = ()

    @abstractmethod
    def fetch_transactions(self, begin_iso: str, end_iso: str) -> list[Transaction]:
        """Return transactions updated within [begin_iso, end_iso], oldest first.

        Raises:
            ExtractionError: If the source cannot be read; the run aborts.
        """

    @abstractmethod
    def fetch_orders(self, order_ids: list[str]) -> dict[str, Order]:
        """Return orders by id; ids the source does not know are absent."""

    def fetch_catalog(self, variation_ids: list[str]) -> dict[str, CatalogEntry]:
        """Return catalog entries by variation id (none by default)."""
        return {}

    def fetch_booking_staff(self, booking_id: str) -> str:
        """Return the staff id recorded on a booking ("" if unknown)."""
        return ""

    def fetch_booking_detail(self, booking_id: str) -> dict:
        """Return the raw booking, used only for missing-staff diagnostics."""
        return {}

    def fetch_staff_name(self, staff_id: str) -> str:
        """Return the display name for a staff id ("" if unknown)."""
        return ""

    def fetch_customer_names(self, customer_ids: list[str]) -> dict[str, str]:
        """Return customer id -> display name for the ids the source knows."""
        return {}
