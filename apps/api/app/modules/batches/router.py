"""Batches API router (manufacturing runs of a product)."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_ledger, get_pagination
from app.core.errors import envelope
from app.models.enums import BatchStatus
from app.modules.batches import service
from app.modules.batches.schemas import BatchCreate, BatchUpdate
from app.schemas.common import PaginationParams
from app.services.ledger import LedgerService

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("")
async def list_batches(
    product_id: uuid.UUID | None = Query(None, alias="productId"),
    batch_status: BatchStatus | None = Query(None, alias="status"),
    params: PaginationParams = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_batches(db, params, product_id, batch_status)
    return envelope(True, data=result.to_wire())


@router.get("/{batch_id}")
async def get_batch(batch_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Batch with its product and items."""
    batch = await service.get_batch(db, batch_id)
    return envelope(True, data=batch.to_wire())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_batch(
    body: BatchCreate,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """Create a batch and mint its collection NFT."""
    batch = await service.create_batch(db, ledger, body)
    return envelope(True, message="Batch created successfully", data=batch.to_wire())


@router.put("/{batch_id}")
async def update_batch(batch_id: uuid.UUID, body: BatchUpdate, db: AsyncSession = Depends(get_db)):
    """Update a batch; ``topUpQuantity`` increments the produced count."""
    batch = await service.update_batch(db, batch_id, body)
    return envelope(True, message="Batch updated successfully", data=batch.to_wire())


@router.delete("/{batch_id}")
async def delete_batch(batch_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await service.delete_batch(db, batch_id)
    return envelope(True, message="Batch deleted successfully")


@router.get("/{batch_id}/stats")
async def get_batch_stats(batch_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    stats = await service.get_batch_stats(db, batch_id)
    return envelope(True, data=stats.to_wire())
