"""Unified configuration for commission_sync.

This module provides the path layout (SyncPaths), the run settings
(SyncConfig) and the commission rules (CommissionRules) used by every
reconciliation run.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from commission_sync.exceptions import ConfigError
from commission_sync.rates import normalize_rate

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30


@dataclass
class SyncPaths:
    """All filesystem paths used by a reconciliation run.

    Attributes:
        data_root: Root directory for state and output.
        rates_csv: Path to the commission rates CSV (Person, Service rate,
            Product rate, Square Team Member ID).

    Directory Structure:
        data_root/
        ├── _state/
        │   └── sync_state.json   # cursor + staff/customer/booking caches
        └── processed/
            └── processed.csv     # one row per payment id

    """

    data_root: Path
    rates_csv: Path

    @classmethod
    def from_root(
        cls,
        data_root: str | Path,
        rates_csv: str | Path,
    ) -> SyncPaths:
        """Create SyncPaths from a root directory and the rates file.

        Examples:
            >>> paths = SyncPaths.from_root("data", "config/commission_rates.csv")
            >>> paths.output_csv
            PosixPath('data/processed/processed.csv')

        """
        if isinstance(data_root, str):
            data_root = Path(data_root)
        if isinstance(rates_csv, str):
            rates_csv = Path(rates_csv)

        return cls(data_root=data_root, rates_csv=rates_csv)

    @property
    def state_dir(self) -> Path:
        return self.data_root / "_state"

    @property
    def state_file(self) -> Path:
        """Persisted cursor and caches."""
        return self.state_dir / "sync_state.json"

    @property
    def output_dir(self) -> Path:
        return self.data_root / "processed"

    @property
    def output_csv(self) -> Path:
        """The processed commission table."""
        return self.output_dir / "processed.csv"

    def ensure_dirs(self) -> None:
        """Create all directories in the data structure."""
        for path in [self.state_dir, self.output_dir]:
            path.mkdir(parents=True, exist_ok=True)


class TipStrategy(str, Enum):
    """How tips are obtained for a transaction.

    DIRECT reads the tip field of the payment. DERIVED is the residual used by
    the legacy exports (paid + discounts - services - products - tax); it is
    approximate and can go negative.
    """

    DIRECT = "direct"
    DERIVED = "derived"


@dataclass(frozen=True)
class ItemRateOverride:
    """Per-item commission rate; None leaves that side to the staff rate."""

    service: float | None = None
    product: float | None = None


@dataclass
class CommissionRules:
    """Rules applied by the commission engine on top of the rate table.

    Attributes:
        default_service_rate: Used when neither an item override nor the staff
            rate applies.
        default_product_rate: Same, for products.
        by_item_name: item name -> override; matched as a substring of the
            joined service/product label.
        staff_fee_share: Fraction of the processing fee charged to staff.
        tip_strategy: DIRECT (API) or DERIVED (legacy exports).
        zero_refunded: Legacy behaviour: a "Refunded" status zeroes every
            money column.
    """

    default_service_rate: float = 0.0
    default_product_rate: float = 0.0
    by_item_name: dict[str, ItemRateOverride] = field(default_factory=dict)
    staff_fee_share: float = 0.0
    tip_strategy: TipStrategy = TipStrategy.DIRECT
    zero_refunded: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> CommissionRules:
        """Build rules from a JSON-like dict; rates go through normalize_rate.

        Example input::

            {
              "default_service_rate": 0,
              "by_item_name": {"Beard Trim": {"service": 0.4}},
              "staff_fee_share": "50%",
              "tip_strategy": "direct"
            }

        Raises:
            ConfigError: If tip_strategy or by_item_name is invalid.

        """
        overrides: dict[str, ItemRateOverride] = {}
        raw_overrides = data.get("by_item_name") or {}
        if not isinstance(raw_overrides, dict):
            raise ConfigError("by_item_name must be an object mapping item name -> rates")
        for name, spec in raw_overrides.items():
            if not isinstance(spec, dict):
                raise ConfigError(f"Override for {name!r} must be an object with service/product")
            overrides[str(name)] = ItemRateOverride(
                service=normalize_rate(spec["service"]) if "service" in spec else None,
                product=normalize_rate(spec["product"]) if "product" in spec else None,
            )
        try:
            tip_strategy = TipStrategy(str(data.get("tip_strategy", "direct")).lower())
        except ValueError as e:
            raise ConfigError(f"Unknown tip_strategy: {data.get('tip_strategy')!r}") from e
        return cls(
            default_service_rate=normalize_rate(data.get("default_service_rate")),
            default_product_rate=normalize_rate(data.get("default_product_rate")),
            by_item_name=overrides,
            staff_fee_share=normalize_rate(data.get("staff_fee_share")),
            tip_strategy=tip_strategy,
            zero_refunded=bool(data.get("zero_refunded", False)),
        )

    @classmethod
    def from_json(cls, path: Path | str) -> CommissionRules:
        """Load rules from a JSON file.

        Raises:
            ConfigError: If the file is missing or not valid JSON.

        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load commission rules {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Commission rules {path} must be a JSON object")
        return cls.from_dict(data)


@dataclass
class SyncConfig:
    """Settings for one reconciliation run.

    Attributes:
        paths: Filesystem layout.
        lookback_days: Window used when no cursor is stored.
        page_size: Payments per page.
        batch_size: Ids per batch-retrieve call (at most 100).
        batch_pause: Seconds between batch calls.
        lookup_pause: Seconds after each single lookup.
        rules: Commission rules.
        log_missing_staff: Emit a diagnostic record when no staff can be
            attributed to a payment.
    """

    paths: SyncPaths
    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    page_size: int = 100
    batch_size: int = 100
    batch_pause: float = 0.15
    lookup_pause: float = 0.12
    rules: CommissionRules = field(default_factory=CommissionRules)
    log_missing_staff: bool = True

    def __post_init__(self) -> None:
        if self.lookback_days < 1:
            raise ConfigError(f"lookback_days must be positive, got {self.lookback_days}")
        if not 1 <= self.batch_size <= 100:
            raise ConfigError(f"batch_size must be between 1 and 100, got {self.batch_size}")
        if self.page_size < 1:
            raise ConfigError(f"page_size must be positive, got {self.page_size}")
