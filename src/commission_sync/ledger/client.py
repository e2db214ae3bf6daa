"""Remote ledger client: Square v2 REST API over requests.

All network I/O of the package goes through this module. Calls are issued
serially; batch endpoints are chunked to at most 100 ids and separated by a
fixed pause so a run stays under Square's rate limit.

Environment (optional except the token):
  SQUARE_ACCESS_TOKEN   bearer token (required)
  SQUARE_BASE           API root, default https://connect.squareup.com/v2
  SQUARE_VERSION        value of the Square-Version header
  SQUARE_TIMEOUT=60     seconds
  SQUARE_RETRIES=0      transport-level retries on 429/5xx (off by default,
                        the next scheduled run retries instead)

"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from typing import Any
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from commission_sync.exceptions import ConfigError, ExtractionError, RemoteError
from commission_sync.models import (
    CatalogEntry,
    Order,
    Transaction,
    booking_staff_id,
    catalog_entries_from_payload,
    customer_name,
    team_member_name,
)
from commission_sync.utils import iter_chunks

logger = logging.getLogger(__name__)

# ------------------------- Config -------------------------
DEFAULT_BASE = os.environ.get("SQUARE_BASE", "https://connect.squareup.com/v2")
DEFAULT_VERSION = os.environ.get("SQUARE_VERSION", "2025-07-16")
DEFAULT_TIMEOUT = float(os.environ.get("SQUARE_TIMEOUT", "60"))
DEFAULT_RETRIES = int(os.environ.get("SQUARE_RETRIES", "0"))

MAX_BATCH_SIZE = 100
BATCH_PAUSE_SECONDS = 0.15
LOOKUP_PAUSE_SECONDS = 0.12

BATCH_KINDS = ("orders", "catalog", "customers")


# ------------------------- Helpers -------------------------
def make_session(
    timeout: float = DEFAULT_TIMEOUT, retries: int = DEFAULT_RETRIES
) -> requests.Session:
    """Create a requests Session with optional retry logic and default timeout.

    Args:
        timeout: Default timeout in seconds for all requests.
        retries: Number of transport retries on 429/5xx. 0 disables retries.

    Returns:
        Configured requests.Session object.

    """
    s = requests.Session()
    retry = Retry(
        total=retries,
        connect=retries,
        read=retries,
        status=retries,
        backoff_factor=0.8,  # 0.8, 1.6, 3.2, ...
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "POST"}),
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("http://", adapter)
    s.mount("https://", adapter)
    orig_request = s.request

    def timed_request(method: str, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", timeout)
        return orig_request(method, url, **kwargs)

    s.request = timed_request  # type: ignore[method-assign,assignment]
    return s


def ensure_ok(resp: requests.Response, method: str, url: str) -> dict:
    """Return the decoded JSON body of a 2xx response, raise RemoteError otherwise.

    Args:
        resp: HTTP response object to check.
        method: HTTP method, for the error message.
        url: Requested URL, for the error message.

    Returns:
        Parsed JSON object (empty dict for an empty body).

    Raises:
        RemoteError: If the status code is not in the 200-299 range or the
            body is not JSON.

    """
    if not (200 <= resp.status_code < 300):
        raise RemoteError(resp.status_code, resp.text or "", method, url)
    if not resp.content:
        return {}
    try:
        data = resp.json()
    except ValueError as e:
        raise RemoteError(resp.status_code, f"Invalid JSON: {e}", method, url) from e
    return data if isinstance(data, dict) else {}


class LedgerClient:
    """Thin, typed client over the Square endpoints the sync needs.

    Example:
        >>> client = LedgerClient.from_env()
        >>> payments = client.fetch_updated_transactions(
        ...     "2025-01-01T00:00:00.000Z", "2025-01-02T00:00:00.000Z"
        ... )

    """

    def __init__(
        self,
        access_token: str,
        *,
        base_url: str = DEFAULT_BASE,
        api_version: str = DEFAULT_VERSION,
        session: requests.Session | None = None,
        page_size: int = 100,
        batch_size: int = MAX_BATCH_SIZE,
        batch_pause: float = BATCH_PAUSE_SECONDS,
        lookup_pause: float = LOOKUP_PAUSE_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not access_token or not access_token.strip():
            raise ConfigError("Missing SQUARE_ACCESS_TOKEN.")
        if not 1 <= batch_size <= MAX_BATCH_SIZE:
            raise ConfigError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}, got {batch_size}")
        self.base_url = base_url.rstrip("/")
        self.session = session or make_session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {access_token.strip()}",
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Square-Version": api_version,
            }
        )
        self.page_size = page_size
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.lookup_pause = lookup_pause
        self._sleep = sleep

    @classmethod
    def from_env(cls, **kwargs: Any) -> LedgerClient:
        """Build a client from SQUARE_ACCESS_TOKEN and the other SQUARE_* variables.

        Raises:
            ConfigError: If SQUARE_ACCESS_TOKEN is not set.

        """
        token = os.environ.get("SQUARE_ACCESS_TOKEN", "").strip().strip('"').strip("'")
        if not token:
            raise ConfigError("Missing SQUARE_ACCESS_TOKEN in the environment.")
        return cls(token, **kwargs)

    # ------------------------- HTTP -------------------------
    def get(self, path: str, params: dict[str, Any] | None = None) -> dict:
        url = f"{self.base_url}{path}"
        clean = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        logger.debug("GET %s %s", path, clean)
        return self._send("GET", url, params=clean)

    def post(self, path: str, body: dict[str, Any]) -> dict:
        url = f"{self.base_url}{path}"
        logger.debug("POST %s (%d keys)", path, len(body))
        return self._send("POST", url, json=body)

    def _send(self, method: str, url: str, **kwargs: Any) -> dict:
        """Issue one request; transport failures surface as ExtractionError."""
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise ExtractionError(f"{method} {url} failed: {e}") from e
        return ensure_ok(resp, method, url)

    # ------------------------- Payments -------------------------
    def fetch_updated_transactions(self, begin_iso: str, end_iso: str) -> list[Transaction]:
        """Fetch payments updated in [begin_iso, end_iso], ascending by update time.

        Follows the continuation cursor until the server stops returning one.

        Raises:
            RemoteError: On any non-2xx page; the run treats this as fatal.
            ExtractionError: If the request fails at the transport level.

        """
        results: list[Transaction] = []
        cursor: str | None = None
        pages = 0
        while True:
            params = {
                "updated_at_begin_time": begin_iso,
                "updated_at_end_time": end_iso,
                "sort_field": "UPDATED_AT",
                "sort_order": "ASC",
                "limit": self.page_size,
                "cursor": cursor,
            }
            res = self.get("/payments", params)
            pages += 1
            results.extend(Transaction.from_payload(p) for p in res.get("payments") or [])
            cursor = res.get("cursor") or None
            if not cursor:
                break
        logger.info("Fetched %d payment(s) in %d page(s)", len(results), pages)
        results = [t for t in results if t.id]
        results.sort(key=lambda t: t.updated_at or t.created_at)
        return results

    # ------------------------- Batch fetches -------------------------
    def batch_fetch(self, kind: str, ids: list[str]) -> dict[str, Any]:
        """Fetch related entities by id, chunked and paced.

        Args:
            kind: One of "orders", "catalog", "customers".
            ids: Ids to fetch; duplicates and blanks are ignored.

        Returns:
            Mapping id -> Order (orders), CatalogEntry (catalog) or display
            name (customers). Ids the server did not return are absent.

        Raises:
            ValueError: If kind is unknown.
            RemoteError: If any chunk fails.
            ExtractionError: If a request fails at the transport level.

        """
        if kind not in BATCH_KINDS:
            raise ValueError(f"Unknown batch kind '{kind}'. Choose from: {', '.join(BATCH_KINDS)}")
        wanted = list(dict.fromkeys(i for i in ids if i))
        out: dict[str, Any] = {}
        for n, chunk in enumerate(iter_chunks(wanted, self.batch_size)):
            if n:
                self._sleep(self.batch_pause)
            if kind == "orders":
                out.update(self._orders_chunk(chunk))
            elif kind == "catalog":
                out.update(self._catalog_chunk(chunk))
            else:
                out.update(self._customers_chunk(chunk))
        logger.debug("batch_fetch %s: requested %d, got %d", kind, len(wanted), len(out))
        return out

    def _orders_chunk(self, chunk: list[str]) -> dict[str, Order]:
        res = self.post("/orders/batch-retrieve", {"order_ids": chunk})
        orders = (Order.from_payload(o) for o in res.get("orders") or [])
        return {o.id: o for o in orders if o.id}

    def _catalog_chunk(self, chunk: list[str]) -> dict[str, CatalogEntry]:
        res = self.post(
            "/catalog/batch-retrieve", {"object_ids": chunk, "include_related_objects": True}
        )
        return catalog_entries_from_payload(res)

    def _customers_chunk(self, chunk: list[str]) -> dict[str, str]:
        res = self.post("/customers/bulk-retrieve", {"customer_ids": chunk})
        # Square answers {"responses": {id: {"customer": {...}}}}; older shapes
        # used {"customers": [...]}.
        candidates = res.get("responses") or res.get("customers") or {}
        if isinstance(candidates, list):
            candidates = {str(i): c for i, c in enumerate(candidates)}
        names: dict[str, str] = {}
        for key, entry in candidates.items():
            if not isinstance(entry, dict):
                continue
            c = entry.get("customer") if isinstance(entry.get("customer"), dict) else entry
            cid = c.get("id") or key
            name = customer_name(c)
            if cid and name:
                names[str(cid)] = name
        return names

    # ------------------------- Single lookups -------------------------
    def retrieve_team_member(self, team_member_id: str) -> dict:
        """Return the raw Square ``TeamMember`` object."""
        try:
            res = self.get(f"/team-members/{quote(team_member_id, safe='')}")
        finally:
            self._sleep(self.lookup_pause)
        member = res.get("team_member")
        return member if isinstance(member, dict) else {}

    def retrieve_team_member_name(self, team_member_id: str) -> str:
        """Return the display name of a team member ("" if it has none)."""
        return team_member_name(self.retrieve_team_member(team_member_id))

    def retrieve_booking(self, booking_id: str) -> dict:
        """Return the raw Square ``Booking`` object."""
        try:
            res = self.get(f"/bookings/{quote(booking_id, safe='')}")
        finally:
            self._sleep(self.lookup_pause)
        booking = res.get("booking")
        return booking if isinstance(booking, dict) else res

    def retrieve_booking_staff(self, booking_id: str) -> str:
        """Return the staff id recorded on a booking ("" if none)."""
        return booking_staff_id(self.retrieve_booking(booking_id))
