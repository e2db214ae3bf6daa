"""Tests for the legacy CSV export adapters."""

from datetime import datetime, timezone
from pathlib import Path
from tempfile import TemporaryDirectory

import pandas as pd
import pytest

from commission_sync.config import SyncConfig, SyncPaths, TipStrategy
from commission_sync.exceptions import ExtractionError
from commission_sync.models import Category
from commission_sync.rates import CommissionRate, RateTable
from commission_sync.sources import DescriptionExportSource, PositionalExportSource
from commission_sync.sources.legacy import parse_description, to_timestamp
from commission_sync.sync import run_sync

WINDOW = ("2025-01-01T00:00:00.000Z", "2025-02-01T00:00:00.000Z")

POSITIONAL_CSV = (
    "Date,ID,Staff,Customer,Service,Service Price,Product,Product Sales,Tax,Discounts,Amount Paid,Status\n"
    "1/15/2025 10:00:00,L1,Alex,Jamie Doe,Haircut,100.00,Pomade,20.00,2.00,0.00,137.00,Completed\n"
    "1/16/2025 11:00:00,L2,Alex,Sam,Haircut,50.00,,,,,50.00,Refunded\n"
    "12/1/2024 09:00:00,L0,Alex,Old,Haircut,10.00,,,,,10.00,Completed\n"
    "not a date,LX,Alex,,Haircut,10.00,,,,,10.00,Completed\n"
)

DESCRIPTION_CSV = (
    "Date,ID,Description,Customer,Service Sales,Product Sales,Tax,Discounts,Amount Paid,Status\n"
    '2025-01-15,D1,"Haircut, Beard Trim with Alex + Pomade",Jamie,120.00,20.00,2.00,10.00,150.00,Completed\n'
    "2025-01-16,D2,Pomade,,0,20.00,2.00,0,22.00,Completed\n"
)

RATES = RateTable(by_person={"Alex": CommissionRate(service=0.4, product=0.1)})


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Haircut, Beard Trim with Alex + Pomade", (["Haircut", "Beard Trim"], "Alex", ["Pomade"])),
        ("Haircut with Alex", (["Haircut"], "Alex", [])),
        ("Shave with hot towel with Blake + Oil + Balm", (["Shave with hot towel"], "Blake", ["Oil", "Balm"])),
        ("with Alex + Pomade", ([], "Alex", ["Pomade"])),
        ("Pomade, Comb", ([], "", ["Pomade", "Comb"])),
        ("", ([], "", [])),
    ],
)
def test_parse_description(text: str, expected: tuple) -> None:
    assert parse_description(text) == expected


def test_to_timestamp_formats() -> None:
    assert to_timestamp("1/15/2025 14:30:00") == pd.Timestamp("2025-01-15 14:30:00", tz="UTC")
    assert to_timestamp("2025-01-15") == pd.Timestamp("2025-01-15", tz="UTC")
    assert pd.isna(to_timestamp(""))
    assert pd.isna(to_timestamp("not a date"))


def test_positional_source_filters_window_and_builds_records() -> None:
    with TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "export.csv"
        path.write_text(POSITIONAL_CSV, encoding="utf-8")
        source = PositionalExportSource(path)

        txns = source.fetch_transactions(*WINDOW)

        assert [t.id for t in txns] == ["L1", "L2"]
        first = txns[0]
        assert first.amount == 13700
        assert first.staff_id == "Alex"
        assert first.customer_id == "Jamie Doe"
        assert first.created_at == "2025-01-15T10:00:00.000Z"

        order = source.fetch_orders(["L1", "missing"])["L1"]
        assert [(li.name, li.gross_sales, li.tax, li.category) for li in order.line_items] == [
            ("Haircut", 10000, 0, Category.SERVICE),
            ("Pomade", 2000, 200, Category.PRODUCT),
        ]
        assert source.tip_strategy is TipStrategy.DERIVED
        assert source.zero_refunded is True


def test_missing_export_is_extraction_error() -> None:
    with TemporaryDirectory() as tmpdir:
        source = PositionalExportSource(Path(tmpdir) / "nope.csv")
        with pytest.raises(ExtractionError):
            source.fetch_transactions(*WINDOW)


def test_positional_sync_derives_tips_and_zeroes_refunds() -> None:
    """End to end: derived tip on a sale, every money column zeroed on a refund."""
    with TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        path = root / "export.csv"
        path.write_text(POSITIONAL_CSV, encoding="utf-8")
        config = SyncConfig(paths=SyncPaths.from_root(root / "data", root / "rates.csv"))

        result = run_sync(
            config,
            PositionalExportSource(path),
            rates=RATES,
            now=datetime(2025, 2, 1, tzinfo=timezone.utc),
        )

        assert result.transactions == 2
        by_id = {r.payment_id: r.to_record() for r in result.rows}
        sale = by_id["L1"]
        assert sale["Tips"] == "15.00"
        assert sale["Staff Service Commission"] == "40.00"
        assert sale["Product Commission"] == "2.00"
        assert sale["Total Staff Commission"] == "57.00"
        assert sale["Staff Name"] == "Alex"
        assert sale["Customer"] == "Jamie Doe"

        refund = by_id["L2"]
        assert refund["Status"] == "Refunded"
        assert refund["Service Type"] == "Haircut"
        for col in ("Amount Paid", "Tips", "Service Sales", "Net Business Take"):
            assert refund[col] == "0.00"


def test_description_source() -> None:
    with TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        path = root / "sales.csv"
        path.write_text(DESCRIPTION_CSV, encoding="utf-8")
        config = SyncConfig(paths=SyncPaths.from_root(root / "data", root / "rates.csv"))

        result = run_sync(
            config,
            DescriptionExportSource(path),
            rates=RATES,
            now=datetime(2025, 2, 1, tzinfo=timezone.utc),
        )

        by_id = {r.payment_id: r.to_record() for r in result.rows}
        row = by_id["D1"]
        assert row["Service Type"] == "Haircut, Beard Trim"
        assert row["Product"] == "Pomade"
        assert row["Staff Name"] == "Alex"
        assert row["Service Sales"] == "120.00"
        assert row["Discounts"] == "10.00"
        # 150 + 10 - 120 - 20 - 2
        assert row["Tips"] == "18.00"

        product_only = by_id["D2"]
        assert product_only["Staff Name"] == ""
        assert product_only["Flags"] == "STAFF_MISSING"
        assert product_only["Tips"] == "0.00"
