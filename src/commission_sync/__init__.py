"""Commission Sync - incremental Square payment reconciliation for salons.

This package pulls payments from the Square API on a schedule, enriches each
with its order, staff member and customer, computes the staff commission
breakdown and upserts one row per payment into a CSV table.

Module Structure:
    commission_sync.ledger: Square v2 REST client (all network I/O)
    commission_sync.rates: Commission rate table and team member aliases
    commission_sync.state / cache: Persisted cursor and entity caches
    commission_sync.attribution: Staff and customer resolution chains
    commission_sync.commission: Per-payment commission breakdown
    commission_sync.sink: Idempotent output table
    commission_sync.sources: Square API and legacy export adapters
    commission_sync.sync: The reconciliation loop

Quick Start:
    >>> from commission_sync import SyncConfig, SyncPaths, run_sync
    >>> from commission_sync.ledger import LedgerClient
    >>> from commission_sync.sources import SquareSource
    >>>
    >>> paths = SyncPaths.from_root("data", "config/commission_rates.csv")
    >>> result = run_sync(SyncConfig(paths=paths), SquareSource(LedgerClient.from_env()))
    >>> print(result.updated, result.appended)

Output grain:
    processed.csv: one row per Square payment id, newest first
"""

__version__ = "0.3.0"

from commission_sync.config import CommissionRules, SyncConfig, SyncPaths
from commission_sync.exceptions import (
    CommissionSyncError,
    ConfigError,
    DataQualityError,
    ETLError,
    ExtractionError,
    RemoteError,
    SinkError,
)
from commission_sync.sync import SyncResult, force_refresh, run_sync

__all__ = [
    "CommissionRules",
    "CommissionSyncError",
    "ConfigError",
    "DataQualityError",
    "ETLError",
    "ExtractionError",
    "RemoteError",
    "SinkError",
    "SyncConfig",
    "SyncPaths",
    "SyncResult",
    "force_refresh",
    "run_sync",
    "__version__",
]
