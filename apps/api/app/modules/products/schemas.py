"""Product API schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from app.models.enums import BatchStatus
from app.schemas.common import CamelModel, Pagination, StrippedStr, metadata_field


class ProductCreate(CamelModel):
    gtin: StrippedStr = Field(min_length=1, max_length=50, pattern=r"^\d+$")
    product_name: StrippedStr = Field(min_length=1, max_length=200)
    company: StrippedStr = Field(min_length=1, max_length=200)
    category: StrippedStr = Field(min_length=1, max_length=100)
    description: str | None = None
    model: str | None = Field(default=None, max_length=100)
    specifications: dict[str, Any] | None = None
    warranty_months: int | None = Field(default=None, ge=0, le=120)
    image_url: str | None = None
    nft_mint_address: str | None = Field(default=None, max_length=100)
    metadata_: dict[str, Any] | None = metadata_field()


class ProductUpdate(CamelModel):
    """Partial update. The GTIN is the product's identity and is never changed."""

    product_name: StrippedStr | None = Field(default=None, min_length=1, max_length=200)
    company: StrippedStr | None = Field(default=None, min_length=1, max_length=200)
    category: StrippedStr | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    model: str | None = Field(default=None, max_length=100)
    specifications: dict[str, Any] | None = None
    warranty_months: int | None = Field(default=None, ge=0, le=120)
    image_url: str | None = None
    nft_mint_address: str | None = Field(default=None, max_length=100)
    is_active: bool | None = None
    metadata_: dict[str, Any] | None = metadata_field()


class ProductResponse(CamelModel):
    id: uuid.UUID
    gtin: str
    product_name: str
    company: str
    category: str
    description: str | None
    model: str | None
    specifications: dict[str, Any] | None
    warranty_months: int | None
    image_url: str | None
    nft_mint_address: str | None
    is_active: bool
    metadata_: dict[str, Any] | None = metadata_field()
    created_at: datetime
    updated_at: datetime


class ProductBatchSummary(CamelModel):
    id: uuid.UUID
    batch_name: str
    status: BatchStatus
    start_date: datetime
    planned_quantity: int
    produced_quantity: int


class ProductDetail(ProductResponse):
    batches: list[ProductBatchSummary]


class ProductList(CamelModel):
    products: list[ProductResponse]
    pagination: Pagination


class ProductStats(CamelModel):
    gtin: str
    product_name: str
    company: str
    total_batches: int
    total_planned_items: int
    total_produced_items: int
    production_rate: str
    is_active: bool
