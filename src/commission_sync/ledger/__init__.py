"""Remote ledger access (Square v2 API)."""

from commission_sync.ledger.client import LedgerClient, ensure_ok, make_session

__all__ = ["LedgerClient", "ensure_ok", "make_session"]
