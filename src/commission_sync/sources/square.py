"""Square API source: the default input adapter."""

from __future__ import annotations

from commission_sync.exceptions import ExtractionError
from commission_sync.ledger.client import LedgerClient
from commission_sync.models import CatalogEntry, Order, Transaction
from commission_sync.sources.base import InputAdapter


class SquareSource(InputAdapter):
    """Transactions and enrichment straight from the Square v2 API.

    Example:
        >>> source = SquareSource(LedgerClient.from_env())
        >>> txns = source.fetch_transactions(begin, end)

    """

    name = "square"
    recoverable_errors = (ExtractionError,)

    def __init__(self, client: LedgerClient) -> None:
        self.client = client

    def fetch_transactions(self, begin_iso: str, end_iso: str) -> list[Transaction]:
        return self.client.fetch_updated_transactions(begin_iso, end_iso)

    def fetch_orders(self, order_ids: list[str]) -> dict[str, Order]:
        return self.client.batch_fetch("orders", order_ids)

    def fetch_catalog(self, variation_ids: list[str]) -> dict[str, CatalogEntry]:
        return self.client.batch_fetch("catalog", variation_ids)

    def fetch_booking_staff(self, booking_id: str) -> str:
        return self.client.retrieve_booking_staff(booking_id)

    def fetch_booking_detail(self, booking_id: str) -> dict:
        return self.client.retrieve_booking(booking_id)

    def fetch_staff_name(self, staff_id: str) -> str:
        return self.client.retrieve_team_member_name(staff_id)

    def fetch_customer_names(self, customer_ids: list[str]) -> dict[str, str]:
        return self.client.batch_fetch("customers", customer_ids)
