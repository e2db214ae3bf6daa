"""Command-line entry point: ``commission-sync``.

Subcommands:
    sync            Run one incremental reconciliation.
    force-refresh   Clear the sync cursor and every cache.
    verify-rates    Print the commission rate table and team member aliases.

Examples:
    $ commission-sync sync --data-root data --rates config/commission_rates.csv
    $ commission-sync sync --source positional --input exports/transactions.csv
    $ commission-sync force-refresh --data-root data
    $ commission-sync verify-rates --rates config/commission_rates.csv

The scheduler (cron, systemd timer) calls ``sync`` on whatever cadence the
shop needs; every run picks up from the stored cursor.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from commission_sync.config import DEFAULT_LOOKBACK_DAYS, CommissionRules, SyncConfig, SyncPaths
from commission_sync.exceptions import CommissionSyncError
from commission_sync.ledger.client import LedgerClient
from commission_sync.rates import RateTable
from commission_sync.sources import (
    SOURCES,
    DescriptionExportSource,
    InputAdapter,
    PositionalExportSource,
    SquareSource,
)
from commission_sync.state import StateStore
from commission_sync.sync import force_refresh, run_sync

DEFAULT_RATES = "config/commission_rates.csv"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="commission-sync",
        description="Reconcile Square payments into a staff commission table.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_sync = sub.add_parser("sync", help="Run one incremental reconciliation.")
    p_sync.add_argument(
        "--data-root",
        type=str,
        default="data",
        help="Root directory for state and output (default: ./data)",
    )
    p_sync.add_argument(
        "--rates",
        type=str,
        default=DEFAULT_RATES,
        help=f"Commission rates CSV (default: {DEFAULT_RATES})",
    )
    p_sync.add_argument(
        "--rules",
        type=str,
        default=None,
        help="Optional JSON file with commission rules (item overrides, defaults, fee share).",
    )
    p_sync.add_argument(
        "--lookback-days",
        type=int,
        default=DEFAULT_LOOKBACK_DAYS,
        help=f"Window used when no cursor is stored (default: {DEFAULT_LOOKBACK_DAYS}).",
    )
    p_sync.add_argument(
        "--source",
        choices=SOURCES,
        default="square",
        help="Where transactions come from (default: square).",
    )
    p_sync.add_argument(
        "--input",
        type=str,
        default=None,
        help="Export CSV for the positional/description sources.",
    )

    p_refresh = sub.add_parser("force-refresh", help="Clear the sync cursor and all caches.")
    p_refresh.add_argument(
        "--data-root",
        type=str,
        default="data",
        help="Root directory for state and output (default: ./data)",
    )

    p_verify = sub.add_parser("verify-rates", help="Print commission rates and aliases.")
    p_verify.add_argument(
        "--rates",
        type=str,
        default=DEFAULT_RATES,
        help=f"Commission rates CSV (default: {DEFAULT_RATES})",
    )
    return parser


def make_source(name: str, input_path: str | None, config: SyncConfig) -> InputAdapter:
    """Build the input adapter selected on the command line."""
    if name == "square":
        client = LedgerClient.from_env(
            page_size=config.page_size,
            batch_size=config.batch_size,
            batch_pause=config.batch_pause,
            lookup_pause=config.lookup_pause,
        )
        return SquareSource(client)
    if not input_path:
        raise SystemExit(f"ERROR: --input is required for --source {name}.")
    if name == "positional":
        return PositionalExportSource(input_path)
    return DescriptionExportSource(input_path)


def _cmd_sync(args: argparse.Namespace) -> None:
    rules = CommissionRules.from_json(args.rules) if args.rules else CommissionRules()
    paths = SyncPaths.from_root(args.data_root, args.rates)
    config = SyncConfig(paths=paths, lookback_days=args.lookback_days, rules=rules)
    paths.ensure_dirs()
    source = make_source(args.source, args.input, config)

    print(f"Data root: {paths.data_root}")
    print(f"Source: {source.name}")
    print()

    result = run_sync(config, source)
    print(
        f"\nDONE. Processed {result.transactions} payments. "
        f"Updated {result.updated}, appended {result.appended}."
    )
    print(f"Output: {paths.output_csv}")


def _cmd_force_refresh(args: argparse.Namespace) -> None:
    paths = SyncPaths.from_root(args.data_root, DEFAULT_RATES)
    force_refresh(StateStore(paths.state_file))
    print("Cleared sync cursor and caches. Next run re-reads the lookback window.")


def _cmd_verify_rates(args: argparse.Namespace) -> None:
    print(RateTable.from_csv(Path(args.rates)).describe())


COMMANDS = {
    "sync": _cmd_sync,
    "force-refresh": _cmd_force_refresh,
    "verify-rates": _cmd_verify_rates,
}


def main(argv: list[str] | None = None) -> None:
    """Execute the commission-sync command-line tool.

    Raises:
        SystemExit: 1 on a configuration, remote or sink error; 130 on
            Ctrl-C.

    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s: %(message)s",
    )

    try:
        COMMANDS[args.command](args)
    except KeyboardInterrupt:
        sys.exit(130)
    except CommissionSyncError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
