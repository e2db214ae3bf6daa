"""Shared utilities for the reconciliation pipeline.

This module provides small, reusable helpers used across the package:

- Number parsing: robust handling of currency strings from exports
- Money: integer minor units, half-up rounding at presentation time
- Timestamps: ISO-8601 parsing/formatting and lookback computation
- Sequences: order-preserving de-duplication and fixed-size chunking

Examples:
    >>> from commission_sync.utils import to_float, to_minor_units, unique
    >>> to_float("$1,234.56")
    1234.56
    >>> to_minor_units("12.5")
    1250
    >>> unique(["a", "b", "a", ""])
    ['a', 'b']

"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Iterator, Sequence
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, TypeVar

T = TypeVar("T")

# Unicode characters that should be stripped from text
NBSP = "\u00a0"  # Non-breaking space
NNBSP = "\u202f"  # Narrow non-breaking space
ZW = "".join(chr(c) for c in (0x200B, 0x200C, 0x200D, 0xFEFF))  # Zero-width characters

# Regex to strip currency symbols while preserving number separators
_CURRENCY_RE = re.compile(r"[^\d,.\-\(\)\s]")

_FRACTION_RE = re.compile(r"\.(\d+)(?=[+-]\d{2}:\d{2}$|$)")

CENT = Decimal("0.01")


# ============================================================================
# Text and number parsing
# ============================================================================


def strip_invisibles(x: Any) -> str:
    """Remove invisible and problematic whitespace characters from text.

    Args:
        x: Value to clean (string, number, or None).

    Returns:
        Cleaned string; empty string if input is None/NaN.

    Examples:
        >>> strip_invisibles("  Hello World  ")
        'Hello World'
        >>> strip_invisibles(None)
        ''

    """
    if x is None or (isinstance(x, float) and math.isnan(x)):
        return ""
    s = str(x)
    s = s.replace("\r", "").replace("\t", " ").replace(NBSP, " ").replace(NNBSP, " ")
    s = re.sub(r"[%s]" % re.escape(ZW), "", s)  # zero-width
    s = re.sub(r"\s+", " ", s).strip()
    return s


def to_float(x: Any) -> float | None:
    """Robustly parse numbers in various formats.

    Handles the formats found in payment-processor CSV exports:
    - US format: '1,234.56' (comma thousands, dot decimal)
    - EU format: '1.234,56' (dot thousands, comma decimal)
    - Negative in parentheses: '(1,234.56)'
    - Currency symbols: '$ 1 234.56'

    Args:
        x: Value to parse (string, number, or None).

    Returns:
        Parsed float value or None if parsing fails.

    Examples:
        >>> to_float("1,234.56")
        1234.56
        >>> to_float("(5.00)")
        -5.0
        >>> to_float("n/a") is None
        True

    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        if isinstance(x, float) and (math.isnan(x) or math.isinf(x)):
            return None
        return float(x)
    s = str(x).strip()
    if not s:
        return None

    neg = False
    if s.startswith("(") and s.endswith(")"):
        neg, s = True, s[1:-1].strip()

    # strip currency and weird symbols but KEEP '.' and ','
    s = _CURRENCY_RE.sub("", s)
    s = re.sub(r"\s+", "", s)
    if not s or not re.search(r"\d", s):
        return None

    has_dot = "." in s
    has_com = "," in s

    def _finalize(num_str: str, negative: bool) -> float | None:
        try:
            v = float(num_str)
        except ValueError:
            return None
        if math.isnan(v) or math.isinf(v):
            return None
        return -v if negative else v

    # Pattern: 1.234,56 (EU)
    if re.fullmatch(r"-?\d{1,3}(?:\.\d{3})+,\d{1,2}", s):
        return _finalize(s.replace(".", "").replace(",", "."), neg)

    # Pattern: 1,234.56 (US)
    if re.fullmatch(r"-?\d{1,3}(?:,\d{3})+\.\d{1,2}", s):
        return _finalize(s.replace(",", ""), neg)

    if has_com and not has_dot:
        # 1,234,567 (no decimals) -> thousands
        if re.fullmatch(r"-?\d{1,3}(?:,\d{3})+", s):
            return _finalize(s.replace(",", ""), neg)
        return _finalize(s.replace(",", "."), neg)

    return _finalize(s, neg)


# ============================================================================
# Money
# ============================================================================


def to_minor_units(x: Any) -> int:
    """Convert a major-unit amount (e.g. "12.50", 12.5) to integer cents.

    Unparseable or missing values become 0; data-quality problems never raise.

    Examples:
        >>> to_minor_units("$12.50")
        1250
        >>> to_minor_units(None)
        0

    """
    value = to_float(x)
    if value is None:
        return 0
    return int(round_half_up(Decimal(str(value)) * 100, Decimal(1)))


def money_amount(m: Any) -> int:
    """Read a Square ``Money`` object (``{"amount": 1250, "currency": "USD"}``).

    Returns the amount in minor units, 0 for anything that is not a Money
    object with an integral amount.
    """
    if not isinstance(m, dict):
        return 0
    amount = m.get("amount")
    if isinstance(amount, bool):
        return 0
    if isinstance(amount, int):
        return amount
    if isinstance(amount, float) and not (math.isnan(amount) or math.isinf(amount)):
        return int(amount)
    if isinstance(amount, str) and re.fullmatch(r"-?\d+", amount.strip()):
        return int(amount.strip())
    return 0


def round_half_up(value: Decimal, quantum: Decimal = CENT) -> Decimal:
    """Round a Decimal half-up to the given quantum (2 decimals by default).

    Examples:
        >>> round_half_up(Decimal("0.125"))
        Decimal('0.13')

    """
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def minor_to_decimal(minor: int) -> Decimal:
    """Convert integer minor units to a 2-decimal Decimal."""
    return round_half_up(Decimal(int(minor)) / 100)


# ============================================================================
# Timestamps
# ============================================================================


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(ts: datetime) -> str:
    """Format an aware datetime as ISO-8601 with a ``Z`` suffix (millisecond precision)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    ts = ts.astimezone(timezone.utc)
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


def parse_timestamp(s: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp (``Z`` or offset suffix) into an aware datetime.

    Naive values are assumed to be UTC. Returns None for blanks and garbage.

    Examples:
        >>> parse_timestamp("2025-01-15T12:00:00Z").isoformat()
        '2025-01-15T12:00:00+00:00'

    """
    if not s or not isinstance(s, str):
        return None
    text = s.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat on 3.10 only accepts 3 or 6 fractional digits
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def iso_days_ago(days: int, now: datetime | None = None) -> str:
    """Return the ISO timestamp ``days`` days before ``now`` (default: current time)."""
    return to_iso((now or utc_now()) - timedelta(days=days))


def format_datetime(iso_string: str, tz: timezone | None = None) -> str:
    """Format an ISO timestamp as ``M/D/YYYY H:MM:SS`` for the output table.

    Falls back to the original string when it cannot be parsed.

    Examples:
        >>> format_datetime("2025-01-05T09:07:03Z")
        '1/5/2025 9:07:03'

    """
    parsed = parse_timestamp(iso_string)
    if parsed is None:
        return iso_string or ""
    parsed = parsed.astimezone(tz or timezone.utc)
    return (
        f"{parsed.month}/{parsed.day}/{parsed.year} "
        f"{parsed.hour}:{parsed.minute:02d}:{parsed.second:02d}"
    )


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as a human-readable string.

    Examples:
        >>> format_duration(90.5)
        '1m 30.5s'
        >>> format_duration(45.2)
        '45.2s'

    """
    mins, secs = divmod(seconds, 60.0)
    if mins >= 1:
        return f"{int(mins)}m {secs:04.1f}s"
    else:
        return f"{secs:.1f}s"


# ============================================================================
# Sequences
# ============================================================================


def unique(values: Iterable[T | None]) -> list[T]:
    """De-duplicate preserving first-seen order, dropping falsy values."""
    seen: set = set()
    out: list[T] = []
    for v in values:
        if not v or v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def iter_chunks(items: Sequence[T], size: int = 100) -> Iterator[list[T]]:
    """Yield consecutive chunks of at most ``size`` items.

    Examples:
        >>> list(iter_chunks(["a", "b", "c"], size=2))
        [['a', 'b'], ['c']]

    """
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    for i in range(0, len(items), size):
        yield list(items[i : i + size])
