"""Pydantic models for index documents, boosts and API payloads."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

BoostStatus = Literal["active", "inactive", "completed"]


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    primary_code: str
    secondary_code: str | None = None
    description: str = ""
    client_tag: str | None = None
    rank: float | None = None

    @classmethod
    def from_source(cls, source: dict[str, Any], rank: float | None = None) -> "SearchDocument":
        primary_code = str(source.get("item_no") or source.get("id") or "")
        return cls(
            id=str(source.get("id") or primary_code),
            primary_code=primary_code,
            secondary_code=source.get("item_no2") or None,
            description=source.get("description") or "",
            client_tag=source.get("client") or None,
            rank=rank,
        )


class SearchHit(BaseModel):
    document: SearchDocument
    rank: float | None = None


class SearchResult(BaseModel):
    found: int = 0
    page: int = 1
    hits: list[SearchHit] = Field(default_factory=list)
    search_time_ms: float = 0

    @property
    def documents(self) -> list[SearchDocument]:
        return [hit.document for hit in self.hits]


class SkuDetail(BaseModel):
    """A SKU code with its human-readable description."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(validation_alias=AliasChoices("code", "sku"))
    description: str | None = Field(default=None, validation_alias=AliasChoices("description", "name"))

    @classmethod
    def from_document(cls, document: SearchDocument) -> "SkuDetail":
        return cls(code=document.primary_code, description=document.description)


class SkuSummary(WireModel):
    """SKU row returned by the search facade, shaped for the boost form."""

    id: str
    sku: str
    name: str
    category: str = "Products"
    current_stock: float = 0
    is_active: bool = True
    last_used: datetime | None = None
    item_no2: str | None = None
    client: str | None = None
    text_match: float | None = None

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "SkuSummary":
        document = hit.document
        return cls(
            id=document.id,
            sku=document.primary_code,
            name=document.description,
            item_no2=document.secondary_code,
            client=document.client_tag,
            text_match=hit.rank,
        )


class TargetEntry(WireModel):
    syncback_job_id: int | str
    item_id: int | str | None = None
    variation_id: int | str | None = None
    sku: str | None = None
    booked_quantity: float = 0
    sellable_quantity: float = 0


class Boost(WireModel):
    id: int | str
    sku: str
    amount: float
    status: BoostStatus
    source_stock: float | None = None
    target_entries: list[TargetEntry] = Field(default_factory=list, alias="targetStocks")
    all_skus: list[str] = Field(default_factory=list)
    created_at: datetime
    created_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class Pagination(WireModel):
    page: int = 1
    limit: int = 20
    total: int = 0
    total_pages: int = 0


class HistoricalPage(BaseModel):
    boosts: list[Boost] = Field(default_factory=list)
    pagination: Pagination | None = None


class CreateBoostRequest(WireModel):
    sku: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_-]+$")
    amount: float = Field(gt=0, lt=1_000_000)
    target_stock: float | None = None
    expires_at: datetime | None = None

    @field_validator("amount")
    @classmethod
    def _two_decimals(cls, value: float) -> float:
        if round(value, 2) != value:
            raise ValueError("Amount can have at most 2 decimal places")
        return value


class DeactivateBoostRequest(WireModel):
    reason: str = Field(default="manual", min_length=1)


class SyncChannel(WireModel):
    name: str
    last_synced_at: datetime | None = None
    last_synced_status: str | None = None


class SyncReport(WireModel):
    message: str = ""
    channels: list[SyncChannel] = Field(default_factory=list)


class ProductSearchRequest(WireModel):
    q: str = "*"
    query_by: str | None = None
    filter_by: str | None = None
    sort_by: str | None = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=10, ge=1)


class SearchResponse(BaseModel):
    success: bool = True
    data: SearchResult


class SkuSearchResponse(BaseModel):
    success: bool = True
    data: list[SkuSummary]


class DescriptionResponse(BaseModel):
    code: str
    description: str | None = None


class SuggestResponse(BaseModel):
    success: bool = True
    data: list[SkuDetail]
