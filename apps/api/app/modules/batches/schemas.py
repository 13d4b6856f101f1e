"""Batch API schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from app.models.enums import BatchStatus, ItemStatus, QualityStatus
from app.modules.products.schemas import ProductResponse
from app.schemas.common import CamelModel, Pagination, StrippedStr, metadata_field


class BatchCreate(CamelModel):
    product_id: uuid.UUID
    batch_name: StrippedStr = Field(min_length=1, max_length=100)
    manufacturing_facility: StrippedStr = Field(min_length=1, max_length=200)
    production_line: StrippedStr = Field(min_length=1, max_length=100)
    start_date: datetime
    end_date: datetime | None = None
    planned_quantity: int = Field(ge=1)
    status: BatchStatus = BatchStatus.PLANNED
    # Collection NFT image; falls back to the product image
    image_url: str | None = None
    metadata_: dict[str, Any] | None = metadata_field()


class BatchUpdate(CamelModel):
    batch_name: StrippedStr | None = Field(default=None, min_length=1, max_length=100)
    manufacturing_facility: StrippedStr | None = Field(default=None, min_length=1, max_length=200)
    production_line: StrippedStr | None = Field(default=None, min_length=1, max_length=100)
    start_date: datetime | None = None
    end_date: datetime | None = None
    planned_quantity: int | None = Field(default=None, ge=1)
    produced_quantity: int | None = Field(default=None, ge=0)
    status: BatchStatus | None = None
    nft_collection_address: str | None = Field(default=None, max_length=100)
    nft_collection_explorer_link: str | None = None
    metadata_: dict[str, Any] | None = metadata_field()
    # Added on top of produced_quantity (after any absolute value in the same request)
    top_up_quantity: int | None = Field(default=None, ge=1)


class BatchResponse(CamelModel):
    id: uuid.UUID
    batch_name: str
    product_id: uuid.UUID
    manufacturing_facility: str
    production_line: str
    start_date: datetime
    end_date: datetime | None
    planned_quantity: int
    produced_quantity: int
    status: BatchStatus
    nft_collection_address: str | None
    nft_collection_explorer_link: str | None
    metadata_: dict[str, Any] | None = metadata_field()
    created_at: datetime
    updated_at: datetime


class BatchItemSummary(CamelModel):
    id: uuid.UUID
    serial_number: str
    quality_status: QualityStatus
    status: ItemStatus
    nft_mint_address: str | None


class BatchWithProduct(BatchResponse):
    product: ProductResponse


class BatchDetail(BatchWithProduct):
    items: list[BatchItemSummary]


class BatchList(CamelModel):
    batches: list[BatchWithProduct]
    pagination: Pagination


class QualityStats(CamelModel):
    passed: int = 0
    failed: int = 0
    pending: int = 0
    rework: int = 0


class BatchStats(CamelModel):
    batch_id: uuid.UUID
    batch_name: str
    planned_quantity: int
    produced_quantity: int
    completion_rate: str
    quality_stats: QualityStats
    status: BatchStatus
