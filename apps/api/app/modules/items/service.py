"""Item service layer."""

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.models.enums import ItemStatus, QualityStatus
from app.models.manufacturing import Batch, Item
from app.modules.items.schemas import (
    ItemCreate,
    ItemDetail,
    ItemList,
    ItemUpdate,
    ItemVerification,
    QualityInspectionUpdate,
)
from app.schemas.common import Pagination, PaginationParams
from app.services.ledger import LedgerService, is_valid_address

logger = structlog.get_logger()

_WITH_BATCH_AND_PRODUCT = selectinload(Item.batch).selectinload(Batch.product)


async def _get_item_or_raise(db: AsyncSession, serial_number: str) -> Item:
    stmt = (
        select(Item)
        .where(Item.serial_number == serial_number)
        .options(_WITH_BATCH_AND_PRODUCT)
        .execution_options(populate_existing=True)
    )
    item = (await db.execute(stmt)).scalar_one_or_none()
    if not item:
        raise NotFoundError("Item not found")
    return item


async def list_items(
    db: AsyncSession,
    params: PaginationParams,
    batch_id: uuid.UUID | None = None,
    quality_status: QualityStatus | None = None,
    status: ItemStatus | None = None,
) -> ItemList:
    filters = []
    if batch_id:
        filters.append(Item.batch_id == batch_id)
    if quality_status:
        filters.append(Item.quality_status == quality_status)
    if status:
        filters.append(Item.status == status)

    total = (await db.execute(select(func.count()).select_from(Item).where(*filters))).scalar_one()
    stmt = (
        select(Item)
        .where(*filters)
        .options(_WITH_BATCH_AND_PRODUCT)
        .order_by(Item.created_at.desc(), Item.serial_number)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return ItemList(
        items=[ItemDetail.model_validate(i) for i in rows],
        pagination=Pagination.build(total, params),
    )


async def get_item(db: AsyncSession, serial_number: str) -> ItemDetail:
    return ItemDetail.model_validate(await _get_item_or_raise(db, serial_number))


def build_item_document(
    batch: Batch, body: ItemCreate, manufactured_at: datetime
) -> dict[str, Any]:
    """Off-chain metadata JSON for one item's NFT (its manufacturing certificate)."""
    product = batch.product
    model = product.model or product.product_name
    inspected = bool(body.quality_inspector)
    attributes: list[dict[str, Any]] = [
        {"trait_type": "Serial Number", "value": body.serial_number},
        {"trait_type": "Batch ID", "value": batch.batch_name},
        {"trait_type": "Product Model", "value": model},
        {"trait_type": "Manufacturing Date", "value": manufactured_at.isoformat()},
        {"trait_type": "Factory Location", "value": batch.manufacturing_facility},
        {"trait_type": "Production Line", "value": batch.production_line},
        {"trait_type": "Assembly Operator", "value": body.manufacturing_operator},
    ]
    if inspected:
        attributes += [
            {"trait_type": "Inspection Status", "value": QualityStatus.PASSED.value},
            {"trait_type": "Inspector", "value": body.quality_inspector},
        ]
    for key, value in (body.additional_attributes or {}).items():
        attributes.append({"trait_type": key, "value": str(value)})
    attributes += [
        {"trait_type": "GTIN", "value": product.gtin},
        {"trait_type": "Company", "value": product.company},
        {"trait_type": "Category", "value": product.category},
    ]
    if product.warranty_months:
        attributes.append({"trait_type": "Warranty", "value": f"{product.warranty_months} months"})

    return {
        "name": body.serial_number,
        "symbol": product.gtin[-8:],
        "description": f"Manufacturing certificate for {model} - Serial: {body.serial_number}",
        "image": product.image_url or "",
        "attributes": attributes,
        "properties": {
            "category": "product_nft",
            "serial_number": body.serial_number,
            "batch_id": batch.batch_name,
            "product_master": product.nft_mint_address,
            "batch_collection": batch.nft_collection_address,
            "product_model": model,
            "quality_inspection": (
                {"inspector": body.quality_inspector, "notes": body.quality_notes or ""}
                if inspected
                else None
            ),
        },
    }


async def create_item(db: AsyncSession, ledger: LedgerService, body: ItemCreate) -> ItemDetail:
    """Mint the item's NFT into its batch collection, then record the item.

    Inspected on creation (inspector given) means PASSED, otherwise PENDING.
    The batch's produced count goes up by one in the same commit.
    """
    stmt = select(Batch).where(Batch.id == body.batch_id).options(selectinload(Batch.product))
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if not batch:
        raise NotFoundError("Batch not found")
    if not is_valid_address(batch.nft_collection_address):
        raise ValidationError("Batch does not have an NFT collection. Create the batch collection first.")

    existing = await db.execute(select(Item.id).where(Item.serial_number == body.serial_number))
    if existing.first() is not None:
        raise ConflictError("Item with this serial number already exists")

    now = datetime.now(timezone.utc)
    manufactured_at = body.manufacturing_date or now
    document = build_item_document(batch, body, manufactured_at)
    metadata_uri = await ledger.upload_metadata(document)
    created = await ledger.create_nft(
        document["name"],
        document["symbol"],
        metadata_uri,
        collection=batch.nft_collection_address,
    )

    inspected = bool(body.quality_inspector)
    fields = body.model_dump(exclude={"manufacturing_date", "metadata_"})
    item = Item(
        **fields,
        manufacturing_date=manufactured_at,
        quality_status=QualityStatus.PASSED if inspected else QualityStatus.PENDING,
        quality_inspection_date=now if inspected else None,
        status=ItemStatus.MANUFACTURED,
        nft_mint_address=created.mint,
        nft_explorer_link=ledger.explorer_address_url(created.mint),
        nft_metadata_uri=metadata_uri,
        metadata_={
            **(body.metadata_ or {}),
            "serialNumber": body.serial_number,
            "batchId": batch.batch_name,
            "creationSignature": created.signature,
        },
    )
    db.add(item)
    try:
        await db.execute(
            update(Batch)
            .where(Batch.id == body.batch_id)
            .values(produced_quantity=Batch.produced_quantity + 1)
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "item.reconciliation_required",
            serial_number=body.serial_number,
            nft=created.mint,
            error=str(exc),
        )
        if isinstance(exc, IntegrityError):
            raise ConflictError(
                "Item with this serial number already exists",
                data={"nftMintAddress": created.mint},
            ) from exc
        raise PersistenceError(
            "Item NFT was minted but the item could not be recorded",
            data={"nftMintAddress": created.mint},
        ) from exc

    logger.info(
        "item.created",
        serial_number=body.serial_number,
        batch_id=str(body.batch_id),
        nft=created.mint,
    )
    return ItemDetail.model_validate(await _get_item_or_raise(db, body.serial_number))


async def update_item(db: AsyncSession, serial_number: str, body: ItemUpdate) -> ItemDetail:
    item = await _get_item_or_raise(db, serial_number)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(item, field, value)
    await db.commit()
    logger.info("item.updated", serial_number=serial_number)
    return ItemDetail.model_validate(await _get_item_or_raise(db, serial_number))


async def update_quality_inspection(
    db: AsyncSession, serial_number: str, body: QualityInspectionUpdate
) -> ItemDetail:
    item = await _get_item_or_raise(db, serial_number)
    item.quality_status = body.quality_status
    item.quality_inspector = body.quality_inspector
    item.quality_notes = body.quality_notes
    item.quality_inspection_date = datetime.now(timezone.utc)
    await db.commit()
    logger.info(
        "item.quality_inspected",
        serial_number=serial_number,
        quality_status=body.quality_status.value,
        inspector=body.quality_inspector,
    )
    return ItemDetail.model_validate(await _get_item_or_raise(db, serial_number))


async def verify_item(db: AsyncSession, ledger: LedgerService, serial_number: str) -> ItemVerification:
    """Check that the item's NFT mint account exists on the ledger."""
    item = await _get_item_or_raise(db, serial_number)
    if not item.nft_mint_address:
        raise ValidationError("Item does not have an NFT address")
    if not is_valid_address(item.nft_mint_address):
        raise ValidationError(f"Item NFT address is not a valid Solana address: {item.nft_mint_address}")

    exists = await ledger.account_exists(item.nft_mint_address)
    logger.info("item.verified", serial_number=serial_number, exists_on_chain=exists)
    return ItemVerification(
        serial_number=item.serial_number,
        nft_mint_address=item.nft_mint_address,
        exists_on_chain=exists,
        batch_collection_address=item.batch.nft_collection_address,
        explorer_link=ledger.explorer_address_url(item.nft_mint_address),
        verified_at=datetime.now(timezone.utc),
    )


async def delete_item(db: AsyncSession, serial_number: str) -> None:
    """Delete an item and take it off its batch's produced count (never below zero)."""
    item = await _get_item_or_raise(db, serial_number)
    batch_id = item.batch_id
    await db.delete(item)
    await db.execute(
        update(Batch)
        .where(Batch.id == batch_id)
        .values(
            produced_quantity=case(
                (Batch.produced_quantity > 0, Batch.produced_quantity - 1),
                else_=0,
            )
        )
    )
    await db.commit()
    logger.info("item.deleted", serial_number=serial_number)
