"""FastAPI application exposing product search to the console front end."""
from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from .api_client import get_api_client
from .config import settings
from .description_cache import DescriptionCache, get_description_store
from .errors import SearchError
from .models import (
    DescriptionResponse,
    ProductSearchRequest,
    SearchResponse,
    SkuDetail,
    SkuSearchResponse,
    SkuSummary,
    SuggestResponse,
)
from .text_index import SUGGEST_FIELDS, TextIndexClient, get_text_index

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_LEVEL = logging.getLevelName(settings.log_level.upper())

# ``force=True`` replaces uvicorn's default handlers so module loggers show up.
logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT, force=True)
for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport", "httpx"):
    logging.getLogger(name).setLevel(LOG_LEVEL)

logger = logging.getLogger(__name__)

MAX_PER_PAGE = 100
MAX_SKU_LIMIT = 50

app = FastAPI(title="Stock Boost Search Facade")


@app.on_event("startup")
async def startup_event() -> None:
    api = get_api_client()
    app.state.api = api
    app.state.description_cache = DescriptionCache(api.sku_lookup, get_description_store())
    logger.info("Search facade ready index=%s", settings.es_index)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    api = getattr(app.state, "api", None)
    if api is not None:
        await api.aclose()


def get_description_cache(request: Request) -> DescriptionCache:
    return request.app.state.description_cache


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    content = {"success": False, "error": error}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def _search_products(index: TextIndexClient, params: ProductSearchRequest):
    if params.per_page > MAX_PER_PAGE:
        return _error(400, f"per_page cannot exceed {MAX_PER_PAGE}")
    try:
        result = await index.search(
            params.q or "*",
            params.query_by,
            filter_by=params.filter_by,
            sort_by=params.sort_by,
            page=params.page,
            per_page=params.per_page,
        )
    except SearchError as exc:
        return _error(500, "Product search failed", exc.message)
    return SearchResponse(data=result)


@app.get("/health")
async def health(index: TextIndexClient = Depends(get_text_index)) -> dict:
    return {"index": settings.es_index, "search_available": await index.health()}


@app.get("/api/search/products", response_model=SearchResponse)
async def search_products(
    q: str = Query("*", description="Search query, '*' for everything"),
    query_by: str | None = None,
    filter_by: str | None = None,
    sort_by: str | None = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1),
    index: TextIndexClient = Depends(get_text_index),
):
    params = ProductSearchRequest(
        q=q, query_by=query_by, filter_by=filter_by, sort_by=sort_by, page=page, per_page=per_page
    )
    return await _search_products(index, params)


@app.post("/api/search/products", response_model=SearchResponse)
async def search_products_post(params: ProductSearchRequest, index: TextIndexClient = Depends(get_text_index)):
    return await _search_products(index, params)


@app.get("/api/search/skus", response_model=SkuSearchResponse)
async def search_skus(
    q: str | None = None,
    limit: int = Query(10, ge=1),
    index: TextIndexClient = Depends(get_text_index),
    descriptions: DescriptionCache = Depends(get_description_cache),
):
    if not q or not q.strip():
        return SkuSearchResponse(data=[])
    if limit > MAX_SKU_LIMIT:
        return _error(400, f"limit cannot exceed {MAX_SKU_LIMIT}")
    try:
        result = await index.search(q.strip(), SUGGEST_FIELDS, sort_by="_text_match:desc", per_page=limit)
    except SearchError as exc:
        return _error(500, "SKU search failed", exc.message)
    descriptions.add_descriptions(SkuDetail.from_document(doc) for doc in result.documents)
    return SkuSearchResponse(data=[SkuSummary.from_hit(hit) for hit in result.hits])


@app.get("/api/search/suggest", response_model=SuggestResponse)
async def suggest(
    q: str | None = None,
    limit: int = Query(5, ge=1, le=MAX_SKU_LIMIT),
    index: TextIndexClient = Depends(get_text_index),
    descriptions: DescriptionCache = Depends(get_description_cache),
):
    if not q or not q.strip():
        return SuggestResponse(data=[])
    documents = await index.suggest(q.strip(), limit)
    details = [SkuDetail.from_document(doc) for doc in documents]
    descriptions.add_descriptions(details)
    return SuggestResponse(data=details)


@app.get("/api/skus/{code}/description", response_model=DescriptionResponse)
async def sku_description(code: str, descriptions: DescriptionCache = Depends(get_description_cache)):
    description = await descriptions.get_detail(code)
    if description is None:
        return _error(404, "SKU not found")
    return DescriptionResponse(code=code, description=description)
