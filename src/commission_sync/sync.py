"""Incremental reconciliation loop.

One run:

    IDLE -> FETCHING -> ENRICHING -> COMPUTING -> MERGING -> CURSOR_ADVANCED

1. Window = [stored cursor, or now - lookback days, now].
2. Fetch transactions updated within the window (fatal on error).
3. Enrich: orders, catalog (fatal), booking staff, staff names, customer
   names (recoverable: logged, field left empty, retried next run).
4. Compute one ProcessedRow per transaction.
5. Upsert rows into the output table by payment id.
6. Save caches and advance the cursor to the window end, in one write.

Any fatal error leaves the stored state untouched, so the next run repeats
the same window. Re-processing is safe because the merge is idempotent.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from commission_sync.attribution import log_missing_staff, resolve_customer_name, resolve_staff
from commission_sync.cache import EntityCache
from commission_sync.commission import ProcessedRow, compute_row
from commission_sync.config import CommissionRules, SyncConfig, TipStrategy
from commission_sync.models import CatalogEntry, Order, Transaction
from commission_sync.rates import RateTable
from commission_sync.sink import MergeResult, OutputTable
from commission_sync.sources.base import InputAdapter
from commission_sync.state import RunState, StateStore
from commission_sync.utils import format_duration, iso_days_ago, to_iso, unique, utc_now

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ENRICHING = "enriching"
    COMPUTING = "computing"
    MERGING = "merging"
    CURSOR_ADVANCED = "cursor_advanced"


@dataclass
class SyncResult:
    """Summary of one run.

    Attributes:
        begin: Window start (ISO).
        end: Window end (ISO); the new cursor.
        transactions: Number of transactions fetched.
        merge: Counts of updated/appended/unchanged output rows.
        state: Last state reached.
        rows: The computed rows, in fetch order.
    """

    begin: str
    end: str
    transactions: int = 0
    merge: MergeResult = field(default_factory=MergeResult)
    state: SyncState = SyncState.IDLE
    rows: list[ProcessedRow] = field(default_factory=list)

    @property
    def updated(self) -> int:
        return self.merge.updated

    @property
    def appended(self) -> int:
        return self.merge.appended

    @property
    def unchanged(self) -> int:
        return self.merge.unchanged


@dataclass
class Enrichment:
    """Everything looked up for the transactions of one run."""

    orders: dict[str, Order]
    catalog: dict[str, CatalogEntry]
    booking_staff: dict[str, str]
    staff_names: dict[str, str]
    customer_names: dict[str, str]


def sync_window(state: RunState, lookback_days: int, now: datetime | None = None) -> tuple[str, str]:
    """Return (begin, end) ISO timestamps for the next run."""
    now = now or utc_now()
    begin = state.cursor or iso_days_ago(lookback_days, now)
    return begin, to_iso(now)


def effective_rules(rules: CommissionRules, source: InputAdapter) -> CommissionRules:
    """Rules with the source's tip strategy and refund handling applied.

    A source without a tip field forces DERIVED tips; a source that asks for
    refund zeroing turns it on. Explicit settings in the rules are otherwise
    kept.
    """
    tip_strategy = (
        TipStrategy.DERIVED if source.tip_strategy is TipStrategy.DERIVED else rules.tip_strategy
    )
    return replace(
        rules,
        tip_strategy=tip_strategy,
        zero_refunded=rules.zero_refunded or source.zero_refunded,
    )


def enrich(
    txns: list[Transaction],
    source: InputAdapter,
    cache: EntityCache,
    rates: RateTable,
) -> Enrichment:
    """Fetch and resolve every related entity needed to compute the rows."""
    recoverable = source.recoverable_errors

    order_ids = unique(t.order_id for t in txns)
    orders = source.fetch_orders(order_ids) if order_ids else {}

    variation_ids = unique(
        li.catalog_object_id for o in orders.values() for li in o.line_items
    )
    catalog = source.fetch_catalog(variation_ids) if variation_ids else {}

    booking_ids = unique(o.booking_id for o in orders.values())
    booking_staff = cache.fill("bookings", booking_ids, source.fetch_booking_staff, recoverable)

    staff_ids = unique(
        [t.staff_id for t in txns]
        + list(booking_staff.values())
        + [o.legacy_staff_id for o in orders.values()]
    )
    # Alias table wins over anything cached or remote.
    for sid in staff_ids:
        alias = rates.alias_for(sid)
        if alias:
            cache.put("staff", sid, alias)
    staff_names = cache.fill("staff", staff_ids, source.fetch_staff_name, recoverable)

    customer_ids = unique(
        [t.customer_id for t in txns] + [o.customer_id for o in orders.values()]
    )
    try:
        customer_names = cache.fill_bulk("customers", customer_ids, source.fetch_customer_names)
    except recoverable as e:
        logger.warning("Customer lookup failed for %d id(s): %s", len(customer_ids), e)
        customer_names = {
            cid: cache.get("customers", cid) or "" for cid in customer_ids
        }

    logger.debug(
        "Enriched: %d order(s), %d catalog entr(ies), %d booking(s), %d staff, %d customer(s)",
        len(orders),
        len(catalog),
        len(booking_staff),
        len(staff_names),
        len(customer_names),
    )
    return Enrichment(
        orders=orders,
        catalog=catalog,
        booking_staff=booking_staff,
        staff_names=staff_names,
        customer_names=customer_names,
    )


def compute_rows(
    txns: list[Transaction],
    data: Enrichment,
    rates: RateTable,
    rules: CommissionRules,
    source: InputAdapter,
    log_missing: bool = True,
) -> list[ProcessedRow]:
    """Attribute and compute one row per transaction."""
    rows: list[ProcessedRow] = []
    missing = 0
    for txn in txns:
        order = data.orders.get(txn.order_id) if txn.order_id else None
        attribution = resolve_staff(txn, order, data.booking_staff)
        if attribution.missing:
            missing += 1
            if log_missing:
                log_missing_staff(txn, order, data.booking_staff, source.fetch_booking_detail)
        staff_name = data.staff_names.get(attribution.staff_id, "") if attribution.staff_id else ""
        customer = resolve_customer_name(txn, order, data.customer_names)
        rows.append(
            compute_row(
                txn,
                order,
                data.catalog,
                staff_name,
                attribution.provenance,
                customer,
                rates,
                rules,
            )
        )
    if missing:
        logger.warning("%d payment(s) without staff attribution", missing)
    return rows


def run_sync(
    config: SyncConfig,
    source: InputAdapter,
    rates: RateTable | None = None,
    store: StateStore | None = None,
    table: OutputTable | None = None,
    now: datetime | None = None,
) -> SyncResult:
    """Run one incremental reconciliation.

    Args:
        config: Run settings (paths, lookback, rules).
        source: Input adapter (SquareSource or a legacy export).
        rates: Rate table; loaded from config.paths.rates_csv when None.
        store: State store; defaults to config.paths.state_file.
        table: Output table; defaults to config.paths.output_csv.
        now: Window end; defaults to the current time.

    Returns:
        SyncResult for the run.

    Raises:
        ExtractionError: If transactions, orders or the catalog cannot be
            fetched. Stored state is left untouched.
        SinkError: If the output table cannot be read or written.

    Examples:
        >>> config = SyncConfig(paths=SyncPaths.from_root("data", "config/commission_rates.csv"))
        >>> result = run_sync(config, SquareSource(LedgerClient.from_env()))
        >>> result.appended
        12

    """
    started = time.perf_counter()
    paths = config.paths
    rates = rates if rates is not None else RateTable.from_csv(paths.rates_csv)
    store = store or StateStore(paths.state_file)
    table = table or OutputTable(paths.output_csv)
    rules = effective_rules(config.rules, source)

    state = store.load()
    begin, end = sync_window(state, config.lookback_days, now)
    result = SyncResult(begin=begin, end=end)
    logger.info("Syncing %s payments updated %s .. %s", source.name, begin, end)

    result.state = SyncState.FETCHING
    txns = source.fetch_transactions(begin, end)
    result.transactions = len(txns)

    if txns:
        result.state = SyncState.ENRICHING
        cache = EntityCache(state)
        data = enrich(txns, source, cache, rates)

        result.state = SyncState.COMPUTING
        result.rows = compute_rows(txns, data, rates, rules, source, config.log_missing_staff)

        result.state = SyncState.MERGING
        result.merge = table.upsert(result.rows)
    else:
        logger.info("No payments updated in window; output untouched")

    state.cursor = end
    state.last_run = to_iso(utc_now())
    store.save(state)
    result.state = SyncState.CURSOR_ADVANCED

    logger.info(
        "Processed %d payments. Updated %d, appended %d. (%s)",
        result.transactions,
        result.updated,
        result.appended,
        format_duration(time.perf_counter() - started),
    )
    return result


def force_refresh(store: StateStore) -> None:
    """Clear the cursor and every cache; the next run re-reads the lookback window."""
    store.reset()
