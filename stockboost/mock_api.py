"""In-memory stand-in for the boost API, used for local development and demos."""
from __future__ import annotations

import asyncio
import itertools
import logging
from datetime import datetime, timezone
from typing import Dict, List

from .errors import NotFoundError, ServerRejectedError
from .models import (
    Boost,
    CreateBoostRequest,
    DeactivateBoostRequest,
    HistoricalPage,
    Pagination,
    SkuDetail,
    SyncChannel,
    SyncReport,
    TargetEntry,
)

logger = logging.getLogger(__name__)

SEED_SKUS: Dict[str, str] = {
    "SKU-001": "Premium Widget A",
    "SKU-002": "Standard Widget B",
    "SKU-003": "Economy Widget C",
    "SKU-004": "Deluxe Gadget X",
    "SKU-005": "Basic Tool Y",
    "SKU-006": "Advanced Component Z",
}

SYNCBACK_JOBS: Dict[str, str] = {"101": "Webshop", "102": "Marketplace"}


def _seed_boosts() -> List[Boost]:
    return [
        Boost(
            id=1,
            sku="SKU-001",
            amount=55,
            status="active",
            source_stock=45,
            target_entries=[TargetEntry(syncback_job_id=101, item_id=5001, sku="SKU-001", sellable_quantity=100)],
            created_at=datetime(2024, 11, 1, 10, 0, tzinfo=timezone.utc),
            created_by="admin",
        ),
        Boost(
            id=2,
            sku="SKU-002",
            amount=38,
            status="active",
            source_stock=12,
            target_entries=[TargetEntry(syncback_job_id=102, item_id=5002, sku="SKU-002", sellable_quantity=50)],
            created_at=datetime(2024, 11, 2, 14, 30, tzinfo=timezone.utc),
            created_by="admin",
        ),
        Boost(
            id=3,
            sku="SKU-003",
            amount=2,
            status="completed",
            source_stock=78,
            created_at=datetime(2024, 10, 30, 9, 15, tzinfo=timezone.utc),
            created_by="demo",
        ),
    ]


class MockBoostApi:
    """Keeps boosts in a list; newest first when listing history."""

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.boosts: List[Boost] = _seed_boosts()
        self._ids = itertools.count(max(int(boost.id) for boost in self.boosts) + 1)

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    def _find(self, boost_id: int | str) -> int:
        for idx, boost in enumerate(self.boosts):
            if str(boost.id) == str(boost_id):
                return idx
        raise NotFoundError("Boost not found", 404)

    async def get_active_boosts(self) -> List[Boost]:
        await self._delay()
        return [boost for boost in self.boosts if boost.is_active]

    async def get_historical_boosts(self, page: int = 1, limit: int = 20) -> HistoricalPage:
        await self._delay()
        history = sorted(
            (boost for boost in self.boosts if not boost.is_active),
            key=lambda boost: boost.created_at,
            reverse=True,
        )
        start = (page - 1) * limit
        total = len(history)
        return HistoricalPage(
            boosts=history[start : start + limit],
            pagination=Pagination(page=page, limit=limit, total=total, total_pages=-(-total // limit)),
        )

    async def create_boost(self, request: CreateBoostRequest) -> Boost:
        await self._delay()
        if request.sku not in SEED_SKUS:
            raise NotFoundError("SKU not found", 404)
        boost = Boost(
            id=next(self._ids),
            sku=request.sku,
            amount=request.amount,
            status="active",
            created_at=datetime.now(timezone.utc),
            created_by="admin",
        )
        self.boosts.append(boost)
        logger.info("mock created boost id=%s sku=%s", boost.id, boost.sku)
        return boost

    async def deactivate_boost(self, boost_id: int | str, request: DeactivateBoostRequest) -> Boost:
        await self._delay()
        idx = self._find(boost_id)
        if not self.boosts[idx].is_active:
            raise ServerRejectedError("Boost is not active", 409)
        self.boosts[idx] = self.boosts[idx].model_copy(update={"status": "completed"})
        logger.info("mock deactivated boost id=%s reason=%s", boost_id, request.reason)
        return self.boosts[idx]

    async def sync_now(self, boost_id: int | str) -> SyncReport:
        await self._delay()
        boost = self.boosts[self._find(boost_id)]
        now = datetime.now(timezone.utc)
        job_ids = {str(entry.syncback_job_id) for entry in boost.target_entries} or set(SYNCBACK_JOBS)
        channels = [
            SyncChannel(name=SYNCBACK_JOBS.get(job_id, job_id), last_synced_at=now, last_synced_status="success")
            for job_id in sorted(job_ids)
        ]
        return SyncReport(message=f"Sync triggered for boost {boost.id}", channels=channels)

    async def sku_lookup(self, codes: List[str]) -> List[SkuDetail]:
        await self._delay()
        return [SkuDetail(code=code, description=SEED_SKUS[code]) for code in codes if code in SEED_SKUS]

    async def search_skus(self, query: str, limit: int = 10) -> List[SkuDetail]:
        await self._delay()
        if not query:
            raise ServerRejectedError("Search query is required", 400)
        needle = query.lower()
        matches = [
            SkuDetail(code=code, description=name)
            for code, name in SEED_SKUS.items()
            if needle in code.lower() or needle in name.lower()
        ]
        return matches[:limit]

    async def get_syncback_info(self) -> Dict[str, str]:
        await self._delay()
        return dict(SYNCBACK_JOBS)

    async def aclose(self) -> None:
        return None
