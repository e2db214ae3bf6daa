"""Output table: CSV keyed by payment id, merged idempotently.

Every cell is kept as a string (``dtype=str``, no NA coercion) so a row read
back from disk compares equal to the same row freshly computed. That makes the
merge idempotent: re-processing a payment whose numbers did not change counts
as "unchanged" and rewrites nothing.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from commission_sync.commission import HEADERS, ID_COLUMN, TIME_COLUMN, ProcessedRow
from commission_sync.exceptions import DataQualityError, SinkError

logger = logging.getLogger(__name__)

TIME_FORMAT = "%m/%d/%Y %H:%M:%S"


@dataclass(frozen=True)
class MergeResult:
    """Outcome of one upsert."""

    updated: int = 0
    appended: int = 0
    unchanged: int = 0


class OutputTable:
    """The processed commission table.

    Example:
        >>> table = OutputTable(Path("data/processed/processed.csv"))
        >>> result = table.upsert(rows)
        >>> result.appended
        3

    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> pd.DataFrame:
        """Read the table; a missing or empty file yields an empty frame.

        Raises:
            SinkError: If the file exists but cannot be read.
            DataQualityError: If the table has rows but no PaymentID column.

        """
        if not self.path.exists():
            return pd.DataFrame(columns=HEADERS, dtype=str)
        try:
            df = pd.read_csv(self.path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        except pd.errors.EmptyDataError:
            return pd.DataFrame(columns=HEADERS, dtype=str)
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise SinkError(f"Could not read output table {self.path}: {e}") from e

        if ID_COLUMN not in df.columns:
            if df.empty:
                logger.warning("Output table %s has an unexpected header; rebuilding", self.path)
                return pd.DataFrame(columns=HEADERS, dtype=str)
            raise DataQualityError(f"Output table {self.path} has no '{ID_COLUMN}' column")

        extra = [c for c in df.columns if c not in HEADERS]
        if extra:
            logger.warning("Dropping unknown column(s) from %s: %s", self.path, extra)
        df = df.reindex(columns=HEADERS, fill_value="")

        dupes = df[ID_COLUMN].duplicated(keep="first") & (df[ID_COLUMN] != "")
        if dupes.any():
            logger.warning("Collapsing %d duplicate payment id row(s) in %s", int(dupes.sum()), self.path)
            df = df[~dupes]
        return df.reset_index(drop=True)

    def save(self, df: pd.DataFrame) -> None:
        """Write the table atomically (temp file + rename).

        Raises:
            SinkError: If the file cannot be written.

        """
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            df.to_csv(tmp, index=False, encoding="utf-8-sig")
            os.replace(tmp, self.path)
        except OSError as e:
            raise SinkError(f"Could not write output table {self.path}: {e}") from e
        logger.debug("Wrote %d row(s) to %s", len(df), self.path)

    def upsert(self, rows: Iterable[ProcessedRow]) -> MergeResult:
        """Insert or replace rows by payment id, then re-sort and save.

        Rows whose id already exists are replaced in place; others are
        appended. Within one batch, a later row for the same id wins. The
        table is rewritten only when something changed.

        Returns:
            MergeResult with counts of updated, appended and unchanged rows.

        """
        incoming: dict[str, dict[str, str]] = {}
        for row in rows:
            incoming[row.payment_id] = row.to_record()
        if not incoming:
            return MergeResult()

        df = self.load()
        index_by_id = {pid: i for i, pid in enumerate(df[ID_COLUMN].tolist())}

        updated = unchanged = 0
        new_records: list[dict[str, str]] = []
        for pid, record in incoming.items():
            pos = index_by_id.get(pid)
            if pos is None:
                new_records.append(record)
                continue
            current = df.iloc[pos].tolist()
            values = [record[c] for c in HEADERS]
            if current == values:
                unchanged += 1
            else:
                df.iloc[pos] = values
                updated += 1

        if new_records:
            new_df = pd.DataFrame(new_records, columns=HEADERS, dtype=str)
            df = new_df if df.empty else pd.concat([df, new_df], ignore_index=True)

        result = MergeResult(updated=updated, appended=len(new_records), unchanged=unchanged)
        if result.updated or result.appended:
            self.save(sort_by_time(df))
        logger.info(
            "Merged %d row(s): updated %d, appended %d, unchanged %d",
            len(incoming),
            result.updated,
            result.appended,
            result.unchanged,
        )
        return result


def sort_by_time(df: pd.DataFrame) -> pd.DataFrame:
    """Newest first; rows with an unparseable time go last."""
    if df.empty:
        return df
    ts = pd.to_datetime(df[TIME_COLUMN], format=TIME_FORMAT, errors="coerce")
    order = ts.sort_values(ascending=False, na_position="last", kind="stable").index
    return df.loc[order].reset_index(drop=True)
