"""Shared fakes for the index and boost factories."""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from stockboost.errors import SearchError
from stockboost.models import Boost, SearchDocument, SearchHit, SearchResult, TargetEntry

BASE_TIME = datetime(2024, 11, 1, 10, 0, tzinfo=timezone.utc)


class FakeIndex:
    """Substring matching over in-memory documents with per-query latency."""

    def __init__(self, documents=None, delays=None, failures=None):
        self.documents = list(documents or [])
        self.delays = dict(delays or {})
        self.failures = set(failures or ())
        self.calls = []

    async def search(self, query, fields=None, *, filter_by=None, sort_by=None, page=1, per_page=10):
        self.calls.append((query, page))
        await asyncio.sleep(self.delays.get(query, 0))
        if query in self.failures:
            raise SearchError("index unavailable")
        if query == "*":
            matched = self.documents
        else:
            needle = query.lower()
            matched = [
                doc
                for doc in self.documents
                if needle in doc.primary_code.lower() or needle in doc.description.lower()
            ]
        start = (page - 1) * per_page
        return SearchResult(
            found=len(matched),
            page=page,
            hits=[SearchHit(document=doc, rank=1.0) for doc in matched[start : start + per_page]],
        )

    async def suggest(self, query, limit=5):
        try:
            result = await self.search(query, per_page=limit)
        except SearchError:
            return []
        return result.documents

    async def health(self):
        return True


def make_document(code: str, description: str = "") -> SearchDocument:
    return SearchDocument(id=code, primary_code=code, description=description or f"Product {code}")


def make_boost(boost_id, sku, status="active", minutes_ago=0, targets=(), all_skus=()) -> Boost:
    return Boost(
        id=boost_id,
        sku=sku,
        amount=10,
        status=status,
        target_entries=[TargetEntry(syncback_job_id=101, sku=target) for target in targets],
        all_skus=list(all_skus),
        created_at=BASE_TIME - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def catalog():
    return [make_document(f"SKU-{idx:03d}") for idx in range(1, 26)]


@pytest.fixture
def fake_index(catalog):
    return FakeIndex(catalog)
