"""Batch service layer."""

import uuid
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.models.enums import BatchStatus, QualityStatus
from app.models.manufacturing import Batch, Item, Product
from app.modules.batches.schemas import (
    BatchCreate,
    BatchDetail,
    BatchList,
    BatchStats,
    BatchUpdate,
    BatchWithProduct,
    QualityStats,
)
from app.modules.products.service import format_rate
from app.schemas.common import Pagination, PaginationParams
from app.services.ledger import LedgerService, is_valid_address

logger = structlog.get_logger()


async def _get_batch_or_raise(db: AsyncSession, batch_id: uuid.UUID, *, detail: bool = False) -> Batch:
    stmt = (
        select(Batch)
        .where(Batch.id == batch_id)
        .options(selectinload(Batch.product))
        .execution_options(populate_existing=True)
    )
    if detail:
        stmt = stmt.options(selectinload(Batch.items))
    batch = (await db.execute(stmt)).scalar_one_or_none()
    if not batch:
        raise NotFoundError("Batch not found")
    return batch


async def _ensure_unique_name(
    db: AsyncSession, product_id: uuid.UUID, batch_name: str, exclude_id: uuid.UUID | None = None
) -> None:
    stmt = select(Batch.id).where(Batch.product_id == product_id, Batch.batch_name == batch_name)
    if exclude_id is not None:
        stmt = stmt.where(Batch.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise ConflictError("Batch with this name already exists for this product")


async def list_batches(
    db: AsyncSession,
    params: PaginationParams,
    product_id: uuid.UUID | None = None,
    status: BatchStatus | None = None,
) -> BatchList:
    filters = []
    if product_id:
        filters.append(Batch.product_id == product_id)
    if status:
        filters.append(Batch.status == status)

    total = (await db.execute(select(func.count()).select_from(Batch).where(*filters))).scalar_one()
    stmt = (
        select(Batch)
        .where(*filters)
        .options(selectinload(Batch.product))
        .order_by(Batch.created_at.desc(), Batch.batch_name)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return BatchList(
        batches=[BatchWithProduct.model_validate(b) for b in rows],
        pagination=Pagination.build(total, params),
    )


async def get_batch(db: AsyncSession, batch_id: uuid.UUID) -> BatchDetail:
    batch = await _get_batch_or_raise(db, batch_id, detail=True)
    return BatchDetail.model_validate(batch)


def collection_symbol(batch_name: str) -> str:
    return batch_name.replace("-", "").upper()[:10]


def build_collection_document(product: Product, body: BatchCreate) -> dict[str, Any]:
    """Off-chain metadata JSON for a batch's collection NFT."""
    model = product.model or product.product_name
    attributes: list[dict[str, Any]] = [
        {"trait_type": "Batch ID", "value": body.batch_name},
        {"trait_type": "Product Line", "value": product.product_name},
        {"trait_type": "Product Model", "value": model},
        {"trait_type": "Total Units", "value": body.planned_quantity},
        {"trait_type": "Manufacturing Date", "value": body.start_date.isoformat()},
        {"trait_type": "Factory Location", "value": body.manufacturing_facility},
    ]
    if product.nft_mint_address:
        attributes.append({"trait_type": "Product Master NFT", "value": product.nft_mint_address})
    return {
        "name": f"{product.product_name} - {body.batch_name}",
        "symbol": collection_symbol(body.batch_name),
        "description": (
            f"Manufacturing batch {body.batch_name} for {product.product_name} "
            f"(GTIN: {product.gtin}) at {body.production_line}. "
            f"Full ID: {product.gtin}-{body.batch_name}"
        ),
        "image": body.image_url or product.image_url or "",
        "attributes": attributes,
        "properties": {
            "category": "batch_collection",
            "batch_id": body.batch_name,
            "product_master": product.nft_mint_address,
            "gtin": product.gtin,
            "factory": body.manufacturing_facility,
            "total_units": body.planned_quantity,
        },
    }


async def create_batch(db: AsyncSession, ledger: LedgerService, body: BatchCreate) -> BatchWithProduct:
    """Mint the batch's collection NFT, then record the batch.

    The collection nests under the product's NFT when the product has one.
    """
    product = (await db.execute(select(Product).where(Product.id == body.product_id))).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product not found")
    await _ensure_unique_name(db, body.product_id, body.batch_name)

    document = build_collection_document(product, body)
    metadata_uri = await ledger.upload_metadata(document)
    parent = product.nft_mint_address if is_valid_address(product.nft_mint_address) else None
    created = await ledger.create_nft(
        document["name"],
        document["symbol"],
        metadata_uri,
        collection=parent,
        is_collection=True,
    )

    fields = body.model_dump(exclude={"image_url", "metadata_"})
    batch = Batch(
        **fields,
        produced_quantity=0,
        nft_collection_address=created.mint,
        nft_collection_explorer_link=ledger.explorer_address_url(created.mint),
        metadata_={
            **(body.metadata_ or {}),
            "metadataUri": metadata_uri,
            "creationSignature": created.signature,
        },
    )
    db.add(batch)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "batch.reconciliation_required",
            batch_name=body.batch_name,
            collection=created.mint,
            error=str(exc),
        )
        if isinstance(exc, IntegrityError):
            raise ConflictError(
                "Batch with this name already exists for this product",
                data={"nftCollectionAddress": created.mint},
            ) from exc
        raise PersistenceError(
            "Batch collection was minted but the batch could not be recorded",
            data={"nftCollectionAddress": created.mint},
        ) from exc

    logger.info(
        "batch.created",
        batch_name=body.batch_name,
        gtin=product.gtin,
        collection=created.mint,
    )
    return BatchWithProduct.model_validate(await _get_batch_or_raise(db, batch.id))


async def update_batch(db: AsyncSession, batch_id: uuid.UUID, body: BatchUpdate) -> BatchWithProduct:
    batch = await _get_batch_or_raise(db, batch_id)
    updates = body.model_dump(exclude_unset=True)
    top_up = updates.pop("top_up_quantity", None)

    if updates.get("batch_name") and updates["batch_name"] != batch.batch_name:
        await _ensure_unique_name(db, batch.product_id, updates["batch_name"], exclude_id=batch.id)

    for field, value in updates.items():
        setattr(batch, field, value)
    if top_up:
        batch.produced_quantity += top_up
        logger.info(
            "batch.topped_up",
            batch_name=batch.batch_name,
            top_up=top_up,
            produced_quantity=batch.produced_quantity,
        )

    await db.commit()
    return BatchWithProduct.model_validate(await _get_batch_or_raise(db, batch_id))


async def delete_batch(db: AsyncSession, batch_id: uuid.UUID) -> None:
    batch = await _get_batch_or_raise(db, batch_id)
    item_count = (
        await db.execute(select(func.count()).select_from(Item).where(Item.batch_id == batch.id))
    ).scalar_one()
    if item_count > 0:
        raise ValidationError(
            "Cannot delete batch with existing items",
            data={"itemCount": item_count},
        )
    await db.delete(batch)
    await db.commit()
    logger.info("batch.deleted", batch_id=str(batch_id))


async def get_batch_stats(db: AsyncSession, batch_id: uuid.UUID) -> BatchStats:
    batch = await _get_batch_or_raise(db, batch_id)
    rows = await db.execute(
        select(Item.quality_status, func.count())
        .where(Item.batch_id == batch.id)
        .group_by(Item.quality_status)
    )
    counts = {status: count for status, count in rows.all()}
    return BatchStats(
        batch_id=batch.id,
        batch_name=batch.batch_name,
        planned_quantity=batch.planned_quantity,
        produced_quantity=batch.produced_quantity,
        completion_rate=format_rate(batch.produced_quantity, batch.planned_quantity),
        quality_stats=QualityStats(
            passed=counts.get(QualityStatus.PASSED, 0),
            failed=counts.get(QualityStatus.FAILED, 0),
            pending=counts.get(QualityStatus.PENDING, 0),
            rework=counts.get(QualityStatus.REWORK, 0),
        ),
        status=batch.status,
    )
