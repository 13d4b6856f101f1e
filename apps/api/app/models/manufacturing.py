"""Product → Batch → Item manufacturing hierarchy."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import JSONType
from app.models.base import ActiveFlagMixin, BaseModel
from app.models.enums import BatchStatus, ItemStatus, QualityStatus


class Product(BaseModel, ActiveFlagMixin):
    """Master product definition keyed by its GTIN barcode."""

    __tablename__ = "products"

    gtin: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    company: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    specifications: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    warranty_months: Mapped[int | None] = mapped_column(Integer, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Product-level collection NFT, minted outside this service
    nft_mint_address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    batches: Mapped[list[Batch]] = relationship(
        back_populates="product", order_by="Batch.start_date"
    )

    __table_args__ = (
        CheckConstraint(
            "warranty_months IS NULL OR (warranty_months >= 0 AND warranty_months <= 120)",
            name="ck_product_warranty_range",
        ),
    )


class Batch(BaseModel):
    """One manufacturing run of a product."""

    __tablename__ = "batches"

    batch_name: Mapped[str] = mapped_column(String(100), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    manufacturing_facility: Mapped[str] = mapped_column(String(200), nullable=False)
    production_line: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    planned_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    produced_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    status: Mapped[BatchStatus] = mapped_column(
        Enum(BatchStatus, name="batch_status", native_enum=False, length=20),
        nullable=False,
        default=BatchStatus.PLANNED,
        index=True,
    )
    nft_collection_address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nft_collection_explorer_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    product: Mapped[Product] = relationship(back_populates="batches")
    items: Mapped[list[Item]] = relationship(back_populates="batch", order_by="Item.serial_number")

    __table_args__ = (
        UniqueConstraint("product_id", "batch_name", name="uq_batch_per_product"),
        CheckConstraint("planned_quantity >= 1", name="ck_batch_planned_positive"),
        CheckConstraint("produced_quantity >= 0", name="ck_batch_produced_non_negative"),
    )


class Item(BaseModel):
    """One physical unit produced in a batch."""

    __tablename__ = "items"

    serial_number: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    batch_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    manufacturing_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    manufacturing_operator: Mapped[str] = mapped_column(String(100), nullable=False)
    quality_status: Mapped[QualityStatus] = mapped_column(
        Enum(QualityStatus, name="quality_status", native_enum=False, length=20),
        nullable=False,
        default=QualityStatus.PENDING,
        index=True,
    )
    quality_inspector: Mapped[str | None] = mapped_column(String(100), nullable=True)
    quality_inspection_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    quality_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    nft_mint_address: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nft_explorer_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    nft_metadata_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    current_owner: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[ItemStatus] = mapped_column(
        Enum(ItemStatus, name="item_status", native_enum=False, length=20),
        nullable=False,
        default=ItemStatus.MANUFACTURED,
        index=True,
    )
    additional_attributes: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    batch: Mapped[Batch] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_item_manufacturing_date", "manufacturing_date"),
    )
