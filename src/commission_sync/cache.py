"""Entity caches backed by RunState.

Three id -> value caches survive across runs: staff names, customer names and
booking staff ids. An empty string is a real cached value meaning "looked up,
found nothing"; it stops the same fruitless lookup from repeating every run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from commission_sync.state import RunState
from commission_sync.utils import unique

logger = logging.getLogger(__name__)

NOT_FOUND = ""


class EntityCache:
    """In-memory view over the caches of a RunState.

    Mutations go straight into the RunState; persisting is the caller's job
    (StateStore.save at the end of a run).
    """

    def __init__(self, state: RunState) -> None:
        self._state = state

    def get(self, kind: str, key: str) -> str | None:
        """Cached value or None when the key was never looked up."""
        return self._state.cache(kind).get(key)

    def put(self, kind: str, key: str, value: str) -> None:
        self._state.cache(kind)[key] = value or NOT_FOUND

    def missing(self, kind: str, keys: Iterable[str]) -> list[str]:
        cache = self._state.cache(kind)
        return [k for k in unique(keys) if k not in cache]

    def fill(
        self,
        kind: str,
        keys: Iterable[str],
        resolver: Callable[[str], str | None],
        recoverable: tuple[type[BaseException], ...] = (),
    ) -> dict[str, str]:
        """Resolve every key not yet cached with ``resolver`` and cache the result.

        Args:
            kind: Cache kind ("staff", "customers", "bookings").
            keys: Keys needed by the current run.
            resolver: Called once per uncached key. Returning None or "" caches
                the not-found sentinel.
            recoverable: Exception types that are logged and leave the key
                uncached (so the next run retries it). Anything else propagates.

        Returns:
            Mapping key -> cached value for every requested key ("" for keys
            whose lookup failed).

        """
        wanted = unique(keys)
        for key in self.missing(kind, wanted):
            try:
                value = resolver(key)
            except recoverable as e:
                logger.warning("%s lookup failed for %s: %s", kind, key, e)
                continue
            self.put(kind, key, value or NOT_FOUND)
        cache = self._state.cache(kind)
        return {k: cache.get(k, NOT_FOUND) for k in wanted}

    def fill_bulk(
        self,
        kind: str,
        keys: Iterable[str],
        resolver: Callable[[list[str]], dict[str, str]],
    ) -> dict[str, str]:
        """Like fill(), but resolves all uncached keys with a single bulk call.

        Keys the resolver does not return are cached as not-found. The
        resolver may raise; the cache is left untouched in that case.
        """
        wanted = unique(keys)
        todo = self.missing(kind, wanted)
        if todo:
            found = resolver(todo)
            for key in todo:
                self.put(kind, key, found.get(key) or NOT_FOUND)
        cache = self._state.cache(kind)
        return {k: cache.get(k, NOT_FOUND) for k in wanted}

    def sizes(self) -> dict[str, int]:
        return {kind: len(self._state.cache(kind)) for kind in ("staff", "customers", "bookings")}
