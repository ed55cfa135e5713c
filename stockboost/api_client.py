"""Async client for the remote boost REST API."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Protocol

import httpx
from pydantic import ValidationError

from .config import settings
from .errors import NotFoundError, ServerRejectedError, TransportError
from .models import (
    Boost,
    CreateBoostRequest,
    DeactivateBoostRequest,
    HistoricalPage,
    SkuDetail,
    SyncReport,
)

logger = logging.getLogger(__name__)


class BoostApi(Protocol):
    async def get_active_boosts(self) -> List[Boost]: ...

    async def get_historical_boosts(self, page: int = 1, limit: int = 20) -> HistoricalPage: ...

    async def create_boost(self, request: CreateBoostRequest) -> Boost: ...

    async def deactivate_boost(self, boost_id: int | str, request: DeactivateBoostRequest) -> Boost: ...

    async def sync_now(self, boost_id: int | str) -> SyncReport: ...

    async def sku_lookup(self, codes: List[str]) -> List[SkuDetail]: ...

    async def search_skus(self, query: str, limit: int = 10) -> List[SkuDetail]: ...

    async def get_syncback_info(self) -> Dict[str, str]: ...

    async def aclose(self) -> None: ...


def _unwrap(body: Any) -> Any:
    """Return ``data`` from a ``{success, data, error}`` envelope."""
    if isinstance(body, dict) and "success" in body:
        if not body.get("success"):
            raise ServerRejectedError(body.get("error") or "Request failed")
        return body.get("data")
    return body


@contextmanager
def _parsing(endpoint: str) -> Iterator[None]:
    """Report a 2xx body that does not fit the expected models as a rejection."""
    try:
        yield
    except ValidationError as exc:
        logger.warning("%s returned a malformed body: %s", endpoint, exc.errors()[:3])
        raise ServerRejectedError("Malformed response body") from exc


def _rows(data: Any) -> List[Any]:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ServerRejectedError("Malformed response body")
    return data


class BoostApiClient:
    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "BoostApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise TransportError(f"Network error: {exc}") from exc

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = payload.get("error") if isinstance(payload, dict) else None
            message = message or f"HTTP {response.status_code}"
            logger.warning("%s %s rejected status=%s: %s", method, path, response.status_code, message)
            if response.status_code == 404:
                raise NotFoundError(message, response.status_code)
            raise ServerRejectedError(message, response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise ServerRejectedError("Malformed response body", response.status_code) from exc

    async def get_active_boosts(self) -> List[Boost]:
        data = _unwrap(await self._request("GET", "/boosts/active"))
        if not isinstance(data, list):
            return []
        with _parsing("GET /boosts/active"):
            return [Boost.model_validate(item) for item in data]

    async def get_historical_boosts(self, page: int = 1, limit: int = 20) -> HistoricalPage:
        body = await self._request("GET", "/boosts/historical", params={"page": page, "limit": limit})
        data = _unwrap(body)
        with _parsing("GET /boosts/historical"):
            if isinstance(data, list):
                # Some deployments put pagination next to a bare list.
                pagination = body.get("pagination") if isinstance(body, dict) else None
                return HistoricalPage.model_validate({"boosts": data, "pagination": pagination})
            return HistoricalPage.model_validate(data or {})

    async def create_boost(self, request: CreateBoostRequest) -> Boost:
        payload = request.model_dump(mode="json", by_alias=True, exclude_none=True)
        data = _unwrap(await self._request("POST", "/boosts", json=payload))
        with _parsing("POST /boosts"):
            boost = Boost.model_validate(data)
        logger.info("created boost id=%s sku=%s amount=%s", boost.id, request.sku, request.amount)
        return boost

    async def deactivate_boost(self, boost_id: int | str, request: DeactivateBoostRequest) -> Boost:
        payload = request.model_dump(mode="json", by_alias=True)
        data = _unwrap(await self._request("POST", f"/boosts/{boost_id}/deactivate", json=payload))
        with _parsing("POST /boosts/{id}/deactivate"):
            boost = Boost.model_validate(data)
        logger.info("deactivated boost id=%s reason=%s", boost_id, request.reason)
        return boost

    async def sync_now(self, boost_id: int | str) -> SyncReport:
        body = await self._request("POST", f"/boosts/{boost_id}/sync")
        data = _unwrap(body)
        report: Dict[str, Any] = dict(data) if isinstance(data, dict) else {}
        if isinstance(body, dict):
            report.setdefault("message", body.get("message") or "")
            report.setdefault("channels", body.get("channels") or [])
        with _parsing("POST /boosts/{id}/sync"):
            result = SyncReport.model_validate(report)
        logger.info("sync requested id=%s channels=%s", boost_id, len(result.channels))
        return result

    async def sku_lookup(self, codes: List[str]) -> List[SkuDetail]:
        data = _unwrap(await self._request("POST", "/skus/details", json={"skus": codes}))
        with _parsing("POST /skus/details"):
            return [SkuDetail.model_validate(item) for item in _rows(data)]

    async def search_skus(self, query: str, limit: int = 10) -> List[SkuDetail]:
        data = _unwrap(await self._request("GET", "/skus/search", params={"query": query, "limit": limit}))
        with _parsing("GET /skus/search"):
            return [SkuDetail.model_validate(item) for item in _rows(data)]

    async def get_syncback_info(self) -> Dict[str, str]:
        data = _unwrap(await self._request("GET", "/syncback/info"))
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ServerRejectedError("Malformed response body")
        return {str(key): str(value) for key, value in data.items()}


def get_api_client() -> BoostApi:
    if settings.use_mock_api:
        from .mock_api import MockBoostApi

        logger.info("Using mock boost API")
        return MockBoostApi()
    logger.info("Using boost API at %s", settings.api_base_url)
    return BoostApiClient(settings.api_base_url, settings.api_token or None, settings.api_timeout_seconds)
