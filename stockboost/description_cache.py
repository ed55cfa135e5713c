"""SKU code -> description cache with request de-duplication.

Descriptions are kept for the whole session: nothing expires and a later
write for the same code simply replaces the earlier one. Storage is pluggable
(in-process dict or a Redis hash shared by worker processes), while the
in-flight lookup map always lives in the current event loop. Stores that do
network I/O set ``blocking`` and are called from a worker thread.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, ClassVar, Dict, Iterable, List, Mapping, Optional, Protocol

import redis

from .config import settings
from .errors import ApiError
from .models import SkuDetail

logger = logging.getLogger(__name__)

SkuLookup = Callable[[List[str]], Awaitable[List[SkuDetail]]]


class DescriptionStore(Protocol):
    blocking: bool

    def get(self, code: str) -> Optional[str]: ...

    def set(self, code: str, description: str) -> None: ...

    def set_many(self, entries: Mapping[str, str]) -> None: ...

    def clear(self) -> None: ...


class InMemoryDescriptionStore:
    blocking = False

    def __init__(self) -> None:
        self._store: Dict[str, str] = {}

    def get(self, code: str) -> Optional[str]:
        return self._store.get(code)

    def set(self, code: str, description: str) -> None:
        self._store[code] = description

    def set_many(self, entries: Mapping[str, str]) -> None:
        self._store.update(entries)

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)


@dataclass
class RedisDescriptionStore:
    client: redis.Redis
    hash_key: str = "sku_descriptions"
    blocking: ClassVar[bool] = True

    def get(self, code: str) -> Optional[str]:
        try:
            value = self.client.hget(self.hash_key, code)
        except redis.RedisError as exc:
            logger.warning("Redis hget failed: %s", exc)
            return None
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def set(self, code: str, description: str) -> None:
        try:
            self.client.hset(self.hash_key, code, description)
        except redis.RedisError as exc:
            logger.warning("Redis hset failed: %s", exc)

    def set_many(self, entries: Mapping[str, str]) -> None:
        if not entries:
            return
        try:
            self.client.hset(self.hash_key, mapping=dict(entries))
        except redis.RedisError as exc:
            logger.warning("Redis hset failed for %s entries: %s", len(entries), exc)

    def clear(self) -> None:
        try:
            self.client.delete(self.hash_key)
        except redis.RedisError as exc:
            logger.warning("Redis delete failed: %s", exc)


def get_description_store() -> DescriptionStore:
    if settings.description_store.lower() != "redis":
        return InMemoryDescriptionStore()
    try:
        client = redis.Redis(host=settings.redis_host, port=settings.redis_port, decode_responses=True)
        client.ping()
        logger.info("Using Redis description store at %s:%s", settings.redis_host, settings.redis_port)
        return RedisDescriptionStore(client, settings.description_hash_key)
    except redis.RedisError:
        logger.warning("Redis not available, using in-memory description store")
        return InMemoryDescriptionStore()


class DescriptionCache:
    """Write-through memoization of SKU descriptions.

    ``lookup`` receives a list of codes and returns matching
    :class:`SkuDetail` rows; the cache always asks for one code at a time.
    Concurrent :meth:`get_detail` calls for the same uncached code share a
    single in-flight future. Failed lookups are not remembered, so the next
    call for that code tries again.

    :meth:`add_descriptions` is synchronous so it can be called between
    awaits; against a blocking store it costs one batched round trip.
    """

    def __init__(self, lookup: SkuLookup, store: DescriptionStore | None = None) -> None:
        self._lookup = lookup
        self._store = store if store is not None else InMemoryDescriptionStore()
        self._inflight: Dict[str, asyncio.Future] = {}

    async def get_detail(self, code: str) -> Optional[str]:
        cached = await self._read(code)
        if cached is not None:
            logger.debug("description hit code=%s", code)
            return cached

        pending = self._inflight.get(code)
        if pending is None:
            logger.debug("description miss code=%s", code)
            pending = asyncio.ensure_future(self._fetch(code))
            self._inflight[code] = pending
            pending.add_done_callback(lambda fut, key=code: self._settle(key, fut))
        # One cancelled caller must not cancel the lookup the others wait on.
        return await asyncio.shield(pending)

    def add_descriptions(self, entries: Iterable[SkuDetail]) -> None:
        batch: Dict[str, str] = {}
        for entry in entries:
            if entry.code and entry.description:
                batch[entry.code] = entry.description
        if batch:
            self._store.set_many(batch)

    def clear(self) -> None:
        self._store.clear()

    def pending(self) -> int:
        return len(self._inflight)

    async def _read(self, code: str) -> Optional[str]:
        if getattr(self._store, "blocking", False):
            return await asyncio.to_thread(self._store.get, code)
        return self._store.get(code)

    async def _write(self, code: str, description: str) -> None:
        if getattr(self._store, "blocking", False):
            await asyncio.to_thread(self._store.set, code, description)
        else:
            self._store.set(code, description)

    def _settle(self, code: str, future: asyncio.Future) -> None:
        if self._inflight.get(code) is future:
            del self._inflight[code]

    async def _fetch(self, code: str) -> Optional[str]:
        try:
            details = await self._lookup([code])
        except ApiError as exc:
            logger.warning("SKU lookup failed code=%s: %s", code, exc.message)
            return None
        for detail in details:
            if detail.code == code and detail.description:
                await self._write(code, detail.description)
                return detail.description
        if details and details[0].description:
            # Lookup normalized the code (e.g. case); trust the single answer.
            description = details[0].description
            await self._write(code, description)
            return description
        return None
