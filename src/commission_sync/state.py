"""Persisted run state: sync cursor and entity caches.

State is a single JSON file, read once when a run starts and written once
when it finishes, so nothing is persisted half-way through a run.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

CACHE_KINDS = ("staff", "customers", "bookings")


@dataclass
class RunState:
    """Everything that survives between runs.

    Attributes:
        cursor: ISO timestamp, upper bound of the last successful window.
            None means "never synced" (use the lookback window).
        staff: staff id -> display name.
        customers: customer id -> display name.
        bookings: booking/appointment id -> staff id.
        last_run: ISO timestamp of the last successful run.
    """

    cursor: str | None = None
    staff: dict[str, str] = field(default_factory=dict)
    customers: dict[str, str] = field(default_factory=dict)
    bookings: dict[str, str] = field(default_factory=dict)
    last_run: str | None = None

    def cache(self, kind: str) -> dict[str, str]:
        if kind not in CACHE_KINDS:
            raise ValueError(f"Unknown cache kind '{kind}'. Choose from: {', '.join(CACHE_KINDS)}")
        return getattr(self, kind)

    @classmethod
    def from_dict(cls, data: dict) -> RunState:
        def _str_map(value: object) -> dict[str, str]:
            if not isinstance(value, dict):
                return {}
            return {str(k): "" if v is None else str(v) for k, v in value.items()}

        cursor = data.get("cursor")
        last_run = data.get("last_run")
        return cls(
            cursor=cursor if isinstance(cursor, str) and cursor else None,
            staff=_str_map(data.get("staff")),
            customers=_str_map(data.get("customers")),
            bookings=_str_map(data.get("bookings")),
            last_run=last_run if isinstance(last_run, str) else None,
        )


class StateStore:
    """Load/save RunState to a JSON file.

    Example:
        >>> store = StateStore(Path("data/_state/sync_state.json"))
        >>> state = store.load()
        >>> state.cursor = "2025-01-15T12:00:00.000Z"
        >>> store.save(state)

    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> RunState:
        """Read state from disk; a missing or corrupted file yields a fresh state."""
        if not self.path.exists():
            return RunState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Error reading state %s: %s; starting fresh", self.path, e)
            return RunState()
        if not isinstance(data, dict):
            logger.warning("State file %s is not a JSON object; starting fresh", self.path)
            return RunState()
        return RunState.from_dict(data)

    def save(self, state: RunState) -> None:
        """Atomically write state to disk (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(asdict(state), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)
        logger.debug("Wrote state: %s", self.path)

    def reset(self) -> None:
        """Clear the cursor and every cache in one step."""
        self.save(RunState())
        logger.info("Cleared sync cursor and caches in %s", self.path)
