"""Tests for the idempotent output table."""

from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from tempfile import TemporaryDirectory

import pandas as pd
import pytest

from commission_sync.attribution import FROM_PAYMENT
from commission_sync.commission import HEADERS, ID_COLUMN, compute_row
from commission_sync.config import CommissionRules
from commission_sync.exceptions import DataQualityError
from commission_sync.models import Transaction
from commission_sync.rates import RateTable
from commission_sync.sink import MergeResult, OutputTable, sort_by_time


def _row(pid: str, created_at: str, amount: int = 1000):
    txn = Transaction(id=pid, created_at=created_at, amount=amount, status_text="COMPLETED")
    return compute_row(txn, None, {}, "Alex", FROM_PAYMENT, "", RateTable(), CommissionRules())


def _read(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, dtype=str, keep_default_na=False, encoding="utf-8-sig")


def test_upsert_appends_then_is_idempotent() -> None:
    """Merging the same rows twice leaves the table unchanged."""
    with TemporaryDirectory() as tmpdir:
        table = OutputTable(Path(tmpdir) / "processed" / "processed.csv")
        rows = [_row("P1", "2025-01-01T10:00:00Z"), _row("P2", "2025-01-02T10:00:00Z")]

        assert table.upsert(rows) == MergeResult(updated=0, appended=2, unchanged=0)
        before = table.path.read_bytes()

        assert table.upsert(rows) == MergeResult(updated=0, appended=0, unchanged=2)
        assert table.path.read_bytes() == before


def test_upsert_replaces_in_place() -> None:
    """A changed payment replaces its row; one row per id."""
    with TemporaryDirectory() as tmpdir:
        table = OutputTable(Path(tmpdir) / "processed.csv")
        table.upsert([_row("P1", "2025-01-01T10:00:00Z"), _row("P2", "2025-01-02T10:00:00Z")])

        result = table.upsert([_row("P1", "2025-01-01T10:00:00Z", amount=5000), _row("P3", "2025-01-03T10:00:00Z")])

        assert result == MergeResult(updated=1, appended=1, unchanged=0)
        df = _read(table.path)
        assert list(df.columns) == HEADERS
        assert df[ID_COLUMN].tolist() == ["P3", "P2", "P1"]
        assert df.loc[df[ID_COLUMN] == "P1", "Amount Paid"].item() == "50.00"


def test_duplicate_ids_in_batch_last_wins() -> None:
    with TemporaryDirectory() as tmpdir:
        table = OutputTable(Path(tmpdir) / "processed.csv")
        result = table.upsert([_row("P1", "2025-01-01T10:00:00Z"), _row("P1", "2025-01-01T10:00:00Z", 700)])
        assert result.appended == 1
        df = _read(table.path)
        assert len(df) == 1
        assert df["Amount Paid"].item() == "7.00"


def test_empty_upsert_does_not_touch_file() -> None:
    with TemporaryDirectory() as tmpdir:
        table = OutputTable(Path(tmpdir) / "processed.csv")
        assert table.upsert([]) == MergeResult()
        assert not table.path.exists()


def test_load_collapses_duplicate_ids_and_adds_missing_columns() -> None:
    with TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "processed.csv"
        path.write_text("PaymentID,Amount Paid,Legacy\nP1,1.00,x\nP1,2.00,y\n", encoding="utf-8")
        df = OutputTable(path).load()
        assert list(df.columns) == HEADERS
        assert df[ID_COLUMN].tolist() == ["P1"]
        assert df["Amount Paid"].item() == "1.00"
        assert df["Flags"].item() == ""


def test_load_without_id_column() -> None:
    """Rows without an id column are a data-quality error; an empty file is rebuilt."""
    with TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "processed.csv"
        path.write_text("Foo,Bar\n1,2\n", encoding="utf-8")
        with pytest.raises(DataQualityError):
            OutputTable(path).load()

        path.write_text("Foo,Bar\n", encoding="utf-8")
        assert list(OutputTable(path).load().columns) == HEADERS


def test_sort_by_time_newest_first_unparseable_last() -> None:
    df = pd.DataFrame(
        {
            ID_COLUMN: ["A", "B", "C"],
            "Time & Date": ["1/2/2025 9:00:00", "garbage", "12/31/2025 23:59:59"],
        }
    )
    assert sort_by_time(df)[ID_COLUMN].tolist() == ["C", "A", "B"]


def test_round_trip_row_is_unchanged() -> None:
    """A row with fractional values compares equal after a write/read cycle."""
    with TemporaryDirectory() as tmpdir:
        table = OutputTable(Path(tmpdir) / "processed.csv")
        row = replace(_row("P1", "2025-01-01T10:00:00Z"), service_rate=0.333333, tips=Decimal("1.5"))
        table.upsert([row])
        assert table.upsert([row]).unchanged == 1
