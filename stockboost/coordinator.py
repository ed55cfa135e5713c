"""Writes against the boost API and the list-cache patches that follow them.

Every mutation is two-phase: once the server confirms a write, a locally
computed patch is applied to the cached partitions for immediate feedback,
then the affected partitions are invalidated and refetched in the background
to reconcile with the server. A failed write raises to the caller and leaves
the cache exactly as it was.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Set

from .api_client import BoostApi
from .config import settings
from .errors import ApiError
from .list_cache import ACTIVE_KEY, HISTORICAL_PREFIX, ListCache, QueryKey, filter_boosts
from .models import Boost, CreateBoostRequest, DeactivateBoostRequest, HistoricalPage, SyncChannel, SyncReport

logger = logging.getLogger(__name__)

SYNC_STALE_AFTER = timedelta(minutes=5)


def is_channel_stale(channel: SyncChannel, now: datetime | None = None) -> bool:
    """A channel is stale when never synced, last sync failed, or it is 5+ minutes old."""
    if channel.last_synced_at is None:
        return True
    if (channel.last_synced_status or "").lower() != "success":
        return True
    now = now or datetime.now(timezone.utc)
    last = channel.last_synced_at
    if last.tzinfo is None:
        last = last.replace(tzinfo=timezone.utc)
    return now - last >= SYNC_STALE_AFTER


def stale_channels(report: SyncReport, now: datetime | None = None) -> List[SyncChannel]:
    return [channel for channel in report.channels if is_channel_stale(channel, now)]


def syncback_name(info: Mapping[str, str] | None, job_id: int | str) -> str:
    if not info:
        return str(job_id)
    return info.get(str(job_id)) or str(job_id)


class MutationCoordinator:
    def __init__(self, api: BoostApi, cache: ListCache, *, historical_limit: int | None = None) -> None:
        self.api = api
        self.cache = cache
        self.historical_limit = historical_limit or settings.historical_page_size
        self._refetches: Dict[QueryKey, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()

    # Reads
    async def refetch_active(self) -> List[Boost]:
        boosts = await self.api.get_active_boosts()
        self.cache.set_active(boosts)
        logger.debug("active partition refreshed count=%s", len(boosts))
        return boosts

    async def refetch_historical(self, page: int = 1, limit: int | None = None) -> HistoricalPage:
        limit = limit or self.historical_limit
        result = await self.api.get_historical_boosts(page, limit)
        self.cache.set_historical(page, limit, result)
        logger.debug("historical page=%s limit=%s refreshed count=%s", page, limit, len(result.boosts))
        return result

    async def get_active(self, force: bool = False) -> List[Boost]:
        cached = self.cache.get_active()
        if cached is not None and not force and not self.cache.is_stale(ACTIVE_KEY):
            return cached
        return await self.refetch_active()

    async def get_historical(self, page: int = 1, limit: int | None = None, force: bool = False) -> HistoricalPage:
        limit = limit or self.historical_limit
        cached = self.cache.get_historical(page, limit)
        if cached is not None and not force and not self.cache.is_stale(HISTORICAL_PREFIX + (page, limit)):
            return cached
        return await self.refetch_historical(page, limit)

    def filtered_active(self, term: str | None) -> List[Boost]:
        return filter_boosts(self.cache.get_active() or [], term)

    def filtered_historical(self, page: int = 1, limit: int | None = None, term: str | None = None) -> List[Boost]:
        cached = self.cache.get_historical(page, limit or self.historical_limit)
        return filter_boosts(cached.boosts if cached else [], term)

    # Writes
    async def create(self, request: CreateBoostRequest) -> Boost:
        boost = await self.api.create_boost(request)
        if not boost.is_active or self.cache.in_historical(boost.id):
            logger.warning("create returned boost id=%s status=%s outside active; not patching", boost.id, boost.status)
        elif self.cache.prepend_active(boost):
            logger.debug("prepended boost id=%s to active partition", boost.id)
        self.revalidate(ACTIVE_KEY)
        return boost

    async def deactivate(self, boost_id: int | str, reason: str = "manual") -> Boost:
        boost = await self.api.deactivate_boost(boost_id, DeactivateBoostRequest(reason=reason))
        if boost.is_active:
            logger.warning("deactivate returned boost id=%s still active; not patching", boost.id)
        else:
            self.cache.remove_active(boost.id)
            patched = self.cache.insert_historical_head(boost)
            logger.debug("moved boost id=%s to historical (%s pages patched)", boost.id, patched)
        self.revalidate(ACTIVE_KEY)
        self.revalidate(HISTORICAL_PREFIX)
        return boost

    async def sync_now(self, boost_id: int | str) -> SyncReport:
        report = await self.api.sync_now(boost_id)
        self.revalidate(ACTIVE_KEY)
        return report

    # Background reconciliation
    def revalidate(self, prefix: QueryKey) -> None:
        """Mark loaded keys under ``prefix`` stale and refetch them in the background."""
        for key in self.cache.invalidate(prefix):
            previous = self._refetches.get(key)
            if previous is not None and not previous.done():
                # Its response may predate the write that triggered this call.
                previous.cancel()
            task = asyncio.get_running_loop().create_task(self._refetch(key))
            self._refetches[key] = task
            self._tasks.add(task)
            task.add_done_callback(self._finished)

    async def wait_revalidations(self) -> None:
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("background refresh crashed", exc_info=task.exception())

    async def _refetch(self, key: QueryKey) -> None:
        try:
            if key == ACTIVE_KEY:
                await self.refetch_active()
            else:
                await self.refetch_historical(key[2], key[3])
        except ApiError as exc:
            logger.warning("background refresh of %s failed: %s", key, exc.message)
