"""Paginated full-text lookups against the product index.

Queries are expressed in the small vocabulary the console front end already
speaks (``query_by`` field lists, ``field:=value`` filters and
``field:dir`` sort pairs) and translated into Elasticsearch request bodies
here. The official client is synchronous, so every call is pushed to a worker
thread with ``asyncio.to_thread``.
"""
from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from time import perf_counter
from typing import Any, Dict, List, Protocol, Sequence

from elasticsearch import ApiError, Elasticsearch
from elasticsearch import TransportError as ESTransportError

from .config import settings
from .errors import SearchError
from .models import SearchDocument, SearchHit, SearchResult

logger = logging.getLogger(__name__)

WILDCARD = "*"
DEFAULT_SORT = "_text_match:desc,item_no:asc"
SUGGEST_FIELDS = ["item_no", "item_no2", "description"]
# Codes outrank free text so an exact item number lands on top.
FIELD_BOOSTS = {"item_no": 3.0, "item_no2": 2.0, "description": 1.0, "client": 0.5}
SCORE_ALIASES = {"_text_match", "_score"}


class TextIndex(Protocol):
    async def search(
        self,
        query: str,
        fields: Sequence[str] | str | None = None,
        *,
        filter_by: str | None = None,
        sort_by: str | None = None,
        page: int = 1,
        per_page: int = 10,
    ) -> SearchResult: ...


def parse_fields(fields: Sequence[str] | str | None) -> List[str]:
    if fields is None:
        fields = settings.search_query_fields
    if isinstance(fields, str):
        fields = fields.split(",")
    parsed = [field.strip() for field in fields if field and field.strip()]
    if not parsed:
        raise SearchError("At least one query field is required")
    return parsed


def parse_filter(filter_by: str | None) -> List[dict]:
    """Translate ``client:=ACME && item_no:=[A,B]`` into term filters."""
    if not filter_by or not filter_by.strip():
        return []
    clauses: List[dict] = []
    for raw in filter_by.split("&&"):
        clause = raw.strip()
        exact = ":=" in clause
        field, sep, value = clause.partition(":=" if exact else ":")
        field, value = field.strip(), value.strip()
        if not sep or not field or not value:
            raise SearchError(f"Malformed filter clause: {clause!r}")
        if value.startswith("[") and value.endswith("]"):
            values = [item.strip() for item in value[1:-1].split(",") if item.strip()]
            clauses.append({"terms": {field: values}})
        elif exact:
            clauses.append({"term": {field: value}})
        else:
            clauses.append({"match": {field: value}})
    return clauses


def parse_sort(sort_by: str | None) -> List[dict]:
    sort_by = sort_by or DEFAULT_SORT
    sort: List[dict] = []
    for raw in sort_by.split(","):
        field, _, direction = raw.strip().partition(":")
        direction = (direction or "asc").lower()
        if not field or direction not in {"asc", "desc"}:
            raise SearchError(f"Malformed sort clause: {raw!r}")
        if field in SCORE_ALIASES:
            field = "_score"
        sort.append({field: {"order": direction}})
    return sort


def _boosted(fields: List[str]) -> List[str]:
    return [f"{field}^{FIELD_BOOSTS[field]:g}" if field in FIELD_BOOSTS else field for field in fields]


def build_query(query: str, fields: List[str], filters: List[dict]) -> Dict[str, Any]:
    text = (query or "").strip()
    if not text or text == WILDCARD:
        return {"bool": {"must": [{"match_all": {}}], "filter": filters}}

    boosted = _boosted(fields)
    should = [
        {
            "multi_match": {
                "query": text,
                "fields": boosted,
                "fuzziness": "AUTO",
                "boost": 2.0,
            }
        },
        {
            "multi_match": {
                "query": text,
                "fields": boosted,
                "type": "phrase_prefix",
            }
        },
    ]
    return {"bool": {"should": should, "minimum_should_match": 1, "filter": filters}}


def _total(hits: dict) -> int:
    total = hits.get("total", 0)
    if isinstance(total, dict):
        return int(total.get("value", 0))
    return int(total or 0)


class TextIndexClient:
    """Thin adapter issuing paginated queries against one index."""

    def __init__(self, es: Elasticsearch, index: str) -> None:
        self.es = es
        self.index = index

    async def search(
        self,
        query: str,
        fields: Sequence[str] | str | None = None,
        *,
        filter_by: str | None = None,
        sort_by: str | None = None,
        page: int = 1,
        per_page: int = 10,
    ) -> SearchResult:
        if page < 1 or per_page < 1:
            raise SearchError("page and per_page must be positive")
        request = {
            "query": build_query(query, parse_fields(fields), parse_filter(filter_by)),
            "sort": parse_sort(sort_by),
            "from_": (page - 1) * per_page,
            "size": per_page,
            "track_total_hits": True,
        }
        logger.debug("index query payload=%s", request)

        t0 = perf_counter()
        try:
            response = await asyncio.to_thread(self.es.search, index=self.index, **request)
        except (ApiError, ESTransportError) as exc:
            logger.warning("index query failed q=%r: %s", query, exc)
            raise SearchError(f"Product search failed: {exc}") from exc
        elapsed_ms = (perf_counter() - t0) * 1000

        hits = response.get("hits", {})
        result = SearchResult(
            found=_total(hits),
            page=page,
            hits=[
                SearchHit(
                    document=SearchDocument.from_source(hit.get("_source", {}), hit.get("_score")),
                    rank=hit.get("_score"),
                )
                for hit in hits.get("hits", [])
            ],
            search_time_ms=response.get("took", 0),
        )
        logger.info(
            "search q=%r page=%s per_page=%s found=%s hits=%s took=%.2fms",
            query,
            page,
            per_page,
            result.found,
            len(result.hits),
            elapsed_ms,
        )
        return result

    async def suggest(self, query: str, limit: int = 5) -> List[SearchDocument]:
        """Autocomplete helper; failures degrade to no suggestions."""
        try:
            result = await self.search(query, SUGGEST_FIELDS, per_page=limit)
        except SearchError as exc:
            logger.warning("suggestions failed q=%r: %s", query, exc)
            return []
        return result.documents

    async def health(self) -> bool:
        try:
            return bool(await asyncio.to_thread(self.es.ping))
        except ESTransportError as exc:
            logger.warning("index health check failed: %s", exc)
            return False


@lru_cache(maxsize=1)
def get_client() -> Elasticsearch:
    logger.info("Connecting to Elasticsearch at %s", settings.es_host)
    return Elasticsearch(settings.es_host)


def get_text_index() -> TextIndexClient:
    return TextIndexClient(get_client(), settings.es_index)
