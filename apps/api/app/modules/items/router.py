"""Items API router (individual manufactured units, addressed by serial number)."""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_ledger, get_pagination
from app.core.errors import envelope
from app.models.enums import ItemStatus, QualityStatus
from app.modules.items import service
from app.modules.items.schemas import ItemCreate, ItemUpdate, QualityInspectionUpdate
from app.schemas.common import PaginationParams
from app.services.ledger import LedgerService

router = APIRouter(prefix="/items", tags=["items"])


@router.get("")
async def list_items(
    batch_id: uuid.UUID | None = Query(None, alias="batchId"),
    quality_status: QualityStatus | None = Query(None, alias="qualityStatus"),
    item_status: ItemStatus | None = Query(None, alias="status"),
    params: PaginationParams = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_items(db, params, batch_id, quality_status, item_status)
    return envelope(True, data=result.to_wire())


@router.get("/{serial_number}")
async def get_item(serial_number: str, db: AsyncSession = Depends(get_db)):
    """Item with its batch and product."""
    item = await service.get_item(db, serial_number)
    return envelope(True, data=item.to_wire())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(
    body: ItemCreate,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """Create an item and mint its NFT into the batch collection."""
    item = await service.create_item(db, ledger, body)
    return envelope(True, message="Item created successfully", data=item.to_wire())


@router.put("/{serial_number}")
async def update_item(serial_number: str, body: ItemUpdate, db: AsyncSession = Depends(get_db)):
    item = await service.update_item(db, serial_number, body)
    return envelope(True, message="Item updated successfully", data=item.to_wire())


@router.put("/{serial_number}/quality")
async def update_quality_inspection(
    serial_number: str,
    body: QualityInspectionUpdate,
    db: AsyncSession = Depends(get_db),
):
    item = await service.update_quality_inspection(db, serial_number, body)
    return envelope(True, message="Quality inspection updated successfully", data=item.to_wire())


@router.get("/{serial_number}/verify")
async def verify_item(
    serial_number: str,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """Confirm the item's NFT exists on-chain."""
    verification = await service.verify_item(db, ledger, serial_number)
    message = "Item verified successfully" if verification.exists_on_chain else "Item NFT not found on-chain"
    return envelope(True, message=message, data=verification.to_wire())


@router.delete("/{serial_number}")
async def delete_item(serial_number: str, db: AsyncSession = Depends(get_db)):
    await service.delete_item(db, serial_number)
    return envelope(True, message="Item deleted successfully")
