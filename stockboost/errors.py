"""Exception hierarchy shared by the search and write paths."""
from __future__ import annotations


class StockBoostError(Exception):
    """Base error carrying a human-readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class SearchError(StockBoostError):
    """The text index could not answer a query."""


class ApiError(StockBoostError):
    """The remote boost API failed; ``status_code`` is None for transport errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ApiError):
    """Network unreachable, connection reset or timeout."""


class ServerRejectedError(ApiError):
    """Non-2xx response or an envelope with ``success: false``."""


class NotFoundError(ApiError):
    """The mutation target does not exist server-side."""
