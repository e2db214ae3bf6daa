"""Example: Reconcile a legacy CSV export instead of the live API

The positional export has one row per transaction with fixed columns
(date, id, staff, customer, service, price, product, sales, tax, discounts,
amount paid, status). Tips are derived from the totals and refunded rows are
zeroed, as the old spreadsheet did.

Prerequisites:
- An export CSV at exports/transactions.csv
- config/commission_rates.csv with the staff rates
"""

from pathlib import Path

from commission_sync import SyncConfig, SyncPaths, run_sync
from commission_sync.sources import PositionalExportSource

paths = SyncPaths.from_root(Path("data_legacy"), Path("config/commission_rates.csv"))
config = SyncConfig(paths=paths, lookback_days=365)  # cover the whole export

source = PositionalExportSource(Path("exports/transactions.csv"))
result = run_sync(config, source)

print(f"Processed {result.transactions} exported transactions")
for row in result.rows[:5]:
    rec = row.to_record()
    print(f"  {rec['PaymentID']}: {rec['Staff Name']} tips {rec['Tips']} total {rec['Total Staff Commission']}")
