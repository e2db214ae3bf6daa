"""Rate source: per-staff commission rates and the staff alias table.

The rate table is a CSV maintained by the shop owner, read positionally
(header row skipped):

    A: Person                     display name used on the output table
    B: Service Commission Rate    0.4, 40, "40%" all mean 40 %
    C: Product Commission Rate
    D: Square Team Member ID      optional alias: external id -> Person

Examples:
    >>> normalize_rate("50%")
    0.5
    >>> rates = RateTable.from_csv(Path("config/commission_rates.csv"))
    >>> rates.for_staff("Alex").service
    0.4

"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pandas as pd

from commission_sync.exceptions import ConfigError
from commission_sync.utils import strip_invisibles, to_float

logger = logging.getLogger(__name__)

RATE_COLUMNS = ["person", "service_rate", "product_rate", "team_member_id"]


def normalize_rate(val: Any) -> float:
    """Normalise a commission rate to a fraction in [0, 1].

    Accepts fractions (0.5), whole percentages (50), percent strings ("50%")
    and blanks. Anything unparseable becomes 0.

    Examples:
        >>> normalize_rate(0.5)
        0.5
        >>> normalize_rate(50)
        0.5
        >>> normalize_rate("50%")
        0.5
        >>> normalize_rate("")
        0.0
        >>> normalize_rate(None)
        0.0

    """
    if val is None or isinstance(val, bool):
        return 0.0
    if isinstance(val, str):
        s = val.strip()
        if not s:
            return 0.0
        if s.endswith("%"):
            n = to_float(s[:-1])
            return _clamp(n / 100) if n is not None else 0.0
        n = to_float(s)
    else:
        n = to_float(val)
    if n is None:
        return 0.0
    return _clamp(n / 100 if n > 1 else n)


def _clamp(rate: float) -> float:
    if math.isnan(rate) or rate < 0:
        return 0.0
    return min(rate, 1.0)


@dataclass(frozen=True)
class CommissionRate:
    """Service and product commission fractions for one staff member."""

    service: float = 0.0
    product: float = 0.0


@dataclass
class RateTable:
    """Commission rates keyed by display name plus the id -> name alias table.

    Attributes:
        by_person: display name -> CommissionRate.
        aliases: external staff id -> display name.
    """

    by_person: dict[str, CommissionRate] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)

    def for_staff(self, name: str) -> CommissionRate | None:
        """Rate for a display name, None if the person is not in the table."""
        if not name:
            return None
        return self.by_person.get(name)

    def alias_for(self, staff_id: str) -> str | None:
        return self.aliases.get(staff_id) if staff_id else None

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> RateTable:
        """Build a RateTable from a DataFrame whose first four columns follow A:D."""
        table = cls()
        if df.empty:
            return table
        df = df.iloc[:, :4].copy()
        while df.shape[1] < 4:
            df[f"_pad{df.shape[1]}"] = ""
        df.columns = RATE_COLUMNS
        for rec in df.to_dict(orient="records"):
            name = strip_invisibles(rec["person"])
            if not name:
                continue
            table.by_person[name] = CommissionRate(
                service=normalize_rate(rec["service_rate"]),
                product=normalize_rate(rec["product_rate"]),
            )
            team_id = strip_invisibles(rec["team_member_id"])
            if team_id:
                table.aliases[team_id] = name
                logger.debug("Mapped team member %s to %s", team_id, name)
        return table

    @classmethod
    def from_csv(cls, path: Path | str) -> RateTable:
        """Load the rate table from CSV; a missing file yields an empty table.

        Raises:
            ConfigError: If the file exists but cannot be parsed.

        """
        path = Path(path)
        if not path.exists():
            logger.warning("Commission rates file not found: %s; all rates default", path)
            return cls()
        try:
            df = pd.read_csv(
                path, dtype=str, keep_default_na=False, encoding="utf-8-sig", header=0
            )
        except pd.errors.EmptyDataError:
            return cls()
        except (OSError, pd.errors.ParserError, UnicodeDecodeError) as e:
            raise ConfigError(f"Could not read commission rates {path}: {e}") from e
        table = cls.from_frame(df)
        logger.info(
            "Loaded %d commission rate(s), %d team member alias(es) from %s",
            len(table.by_person),
            len(table.aliases),
            path,
        )
        return table

    def describe(self) -> str:
        """Human-readable summary of rates and alias mappings (verify-rates)."""
        lines = ["Commission Rates Setup:", "========================"]
        for name, rate in self.by_person.items():
            lines.append(f"{name}: Service {rate.service * 100:g}%, Product {rate.product * 100:g}%")
        lines += ["", "Team Member ID Mappings:", "========================"]
        if not self.aliases:
            lines.append("No team member IDs found in column D. Add Square Team Member IDs.")
        for team_id, name in self.aliases.items():
            lines.append(f"{team_id} -> {name}")
        return "\n".join(lines)
