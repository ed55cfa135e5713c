"""Partitioned cache of boost lists.

Two partitions are kept under tuple query keys:

* ``("boosts", "active")`` holds the full, unpaginated active list, or
  nothing at all if it has never been fetched;
* ``("boosts", "historical", page, limit)`` holds one page of inactive and
  completed boosts with its pagination block.

Entries are replaced, never mutated in place, so a list handed out earlier
stays a consistent snapshot. Invalidation marks an entry stale but keeps its
data on screen until a refetch replaces it.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import settings
from .models import Boost, HistoricalPage, Pagination

logger = logging.getLogger(__name__)

QueryKey = Tuple[Any, ...]

ALL_BOOSTS: QueryKey = ("boosts",)
ACTIVE_KEY: QueryKey = ("boosts", "active")
HISTORICAL_PREFIX: QueryKey = ("boosts", "historical")


def historical_key(page: int, limit: int) -> QueryKey:
    return HISTORICAL_PREFIX + (page, limit)


def filter_boosts(boosts: Iterable[Boost], term: str | None) -> List[Boost]:
    """Case-insensitive substring match on the SKU, auxiliary SKUs and target SKUs."""
    needle = (term or "").strip().lower()
    if not needle:
        return list(boosts)

    def matches(boost: Boost) -> bool:
        if needle in boost.sku.lower():
            return True
        if any(needle in sku.lower() for sku in boost.all_skus if sku):
            return True
        return any(entry.sku and needle in entry.sku.lower() for entry in boost.target_entries)

    return [boost for boost in boosts if matches(boost)]


@dataclass
class _Entry:
    value: Any
    fetched_at: float
    invalidated: bool = False


class ListCache:
    def __init__(
        self,
        active_stale_after: float | None = None,
        historical_stale_after: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.active_stale_after = (
            settings.active_stale_seconds if active_stale_after is None else active_stale_after
        )
        self.historical_stale_after = (
            settings.historical_stale_seconds if historical_stale_after is None else historical_stale_after
        )
        self._clock = clock
        self._entries: Dict[QueryKey, _Entry] = {}

    def _store(self, key: QueryKey, value: Any) -> None:
        self._entries[key] = _Entry(value=value, fetched_at=self._clock())

    def _patch(self, key: QueryKey, value: Any) -> None:
        # Keeps fetched_at and the invalidation flag: a patch is not a fetch.
        self._entries[key].value = value

    # Reads and wholesale replacement
    def set_active(self, boosts: Iterable[Boost]) -> None:
        self._store(ACTIVE_KEY, list(boosts))

    def get_active(self) -> Optional[List[Boost]]:
        entry = self._entries.get(ACTIVE_KEY)
        return entry.value if entry is not None else None

    def set_historical(self, page: int, limit: int, value: HistoricalPage) -> None:
        self._store(historical_key(page, limit), value)

    def get_historical(self, page: int, limit: int) -> Optional[HistoricalPage]:
        entry = self._entries.get(historical_key(page, limit))
        return entry.value if entry is not None else None

    def historical_pages(self) -> Dict[QueryKey, HistoricalPage]:
        return {key: entry.value for key, entry in self._entries.items() if key[:2] == HISTORICAL_PREFIX}

    # Optimistic patches
    def prepend_active(self, boost: Boost) -> bool:
        """Put ``boost`` first in the active list; no-op when never fetched."""
        current = self.get_active()
        if current is None:
            return False
        self._patch(ACTIVE_KEY, [boost] + [item for item in current if item.id != boost.id])
        return True

    def remove_active(self, boost_id: int | str) -> Optional[Boost]:
        current = self.get_active()
        if current is None:
            return None
        removed = next((item for item in current if item.id == boost_id), None)
        if removed is not None:
            self._patch(ACTIVE_KEY, [item for item in current if item.id != boost_id])
        return removed

    def insert_historical_head(self, boost: Boost) -> int:
        """Insert ``boost`` at the head of every cached first page.

        Returns the number of pages patched. Later pages are left alone and
        stay stale until refetched.
        """
        patched = 0
        for key, page in self.historical_pages().items():
            if key[2] != 1:
                continue
            rest = [item for item in page.boosts if item.id != boost.id]
            already_listed = len(rest) != len(page.boosts)
            pagination = page.pagination or Pagination(page=1, limit=key[3])
            if not already_listed:
                pagination = pagination.model_copy(update={"total": pagination.total + 1})
            self._patch(key, HistoricalPage(boosts=[boost] + rest, pagination=pagination))
            patched += 1
        return patched

    # Staleness
    def invalidate(self, prefix: QueryKey = ALL_BOOSTS) -> List[QueryKey]:
        keys = self.loaded_keys(prefix)
        for key in keys:
            self._entries[key].invalidated = True
        if keys:
            logger.debug("invalidated %s cache keys under %s", len(keys), prefix)
        return keys

    def is_stale(self, key: QueryKey) -> bool:
        entry = self._entries.get(key)
        if entry is None or entry.invalidated:
            return True
        limit = self.active_stale_after if key == ACTIVE_KEY else self.historical_stale_after
        return self._clock() - entry.fetched_at > limit

    def loaded_keys(self, prefix: QueryKey = ALL_BOOSTS) -> List[QueryKey]:
        return [key for key in self._entries if key[: len(prefix)] == prefix]

    def contains(self, boost_id: int | str) -> bool:
        active = self.get_active() or []
        return any(item.id == boost_id for item in active) or self.in_historical(boost_id)

    def in_historical(self, boost_id: int | str) -> bool:
        return any(item.id == boost_id for page in self.historical_pages().values() for item in page.boosts)

    def clear(self) -> None:
        self._entries.clear()
