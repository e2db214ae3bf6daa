"""Example: Incremental Square sync into the commission table

This example runs one reconciliation the same way the scheduled job does:
1. Read the stored cursor (or look back 30 days on the first run)
2. Fetch payments updated since then from the Square API
3. Enrich with orders, catalog, bookings, staff and customers
4. Upsert one row per payment into data/processed/processed.csv

Prerequisites:
- Set SQUARE_ACCESS_TOKEN environment variable
- Create config/commission_rates.csv (see config/commission_rates.example.csv)
"""

from pathlib import Path

import pandas as pd

from commission_sync import CommissionRules, SyncConfig, SyncPaths, run_sync
from commission_sync.ledger import LedgerClient
from commission_sync.sources import SquareSource

# Set up configuration
data_root = Path("data")
rates_csv = Path("config/commission_rates.csv")
rules_json = Path("config/rules.example.json")

paths = SyncPaths.from_root(data_root, rates_csv)
rules = CommissionRules.from_json(rules_json) if rules_json.exists() else CommissionRules()
config = SyncConfig(paths=paths, lookback_days=30, rules=rules)  # MODIFY AS NEEDED

print("Running incremental Square sync...")
result = run_sync(config, SquareSource(LedgerClient.from_env()))

print(f"\nWindow: {result.begin} .. {result.end}")
print(f"Payments: {result.transactions}")
print(f"Updated {result.updated}, appended {result.appended}, unchanged {result.unchanged}")

if paths.output_csv.exists():
    df = pd.read_csv(paths.output_csv, dtype=str, keep_default_na=False, encoding="utf-8-sig")
    print(f"\nCommission table ({len(df)} rows):")
    print(df[["PaymentID", "Time & Date", "Staff Name", "Total Staff Commission"]].head())
