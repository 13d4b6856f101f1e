"""Item API schemas."""

import uuid
from datetime import datetime
from typing import Any

from pydantic import Field

from app.models.enums import ItemStatus, QualityStatus
from app.modules.batches.schemas import BatchWithProduct
from app.schemas.common import CamelModel, Pagination, StrippedStr, metadata_field


class ItemCreate(CamelModel):
    batch_id: uuid.UUID
    serial_number: StrippedStr = Field(min_length=3, max_length=200)
    manufacturing_operator: StrippedStr = Field(min_length=1, max_length=100)
    manufacturing_date: datetime | None = None
    quality_inspector: StrippedStr | None = Field(default=None, max_length=100)
    quality_notes: str | None = None
    current_owner: str | None = Field(default=None, max_length=100)
    additional_attributes: dict[str, Any] | None = None
    metadata_: dict[str, Any] | None = metadata_field()


class ItemUpdate(CamelModel):
    manufacturing_operator: StrippedStr | None = Field(default=None, min_length=1, max_length=100)
    status: ItemStatus | None = None
    current_owner: str | None = Field(default=None, max_length=100)
    nft_mint_address: str | None = Field(default=None, max_length=100)
    nft_explorer_link: str | None = None
    nft_metadata_uri: str | None = None
    additional_attributes: dict[str, Any] | None = None
    metadata_: dict[str, Any] | None = metadata_field()


class QualityInspectionUpdate(CamelModel):
    quality_status: QualityStatus
    quality_inspector: StrippedStr = Field(min_length=1, max_length=100)
    quality_notes: str | None = None


class ItemResponse(CamelModel):
    id: uuid.UUID
    serial_number: str
    batch_id: uuid.UUID
    manufacturing_date: datetime
    manufacturing_operator: str
    quality_status: QualityStatus
    quality_inspector: str | None
    quality_inspection_date: datetime | None
    quality_notes: str | None
    nft_mint_address: str | None
    nft_explorer_link: str | None
    nft_metadata_uri: str | None
    current_owner: str | None
    status: ItemStatus
    additional_attributes: dict[str, Any] | None
    metadata_: dict[str, Any] | None = metadata_field()
    created_at: datetime
    updated_at: datetime


class ItemDetail(ItemResponse):
    batch: BatchWithProduct


class ItemList(CamelModel):
    items: list[ItemDetail]
    pagination: Pagination


class ItemVerification(CamelModel):
    serial_number: str
    nft_mint_address: str
    exists_on_chain: bool
    batch_collection_address: str | None
    explorer_link: str
    verified_at: datetime
