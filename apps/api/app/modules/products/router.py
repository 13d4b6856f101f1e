"""Products API router (master product definitions keyed by GTIN)."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_pagination
from app.core.errors import envelope
from app.modules.products import service
from app.modules.products.schemas import ProductCreate, ProductUpdate
from app.schemas.common import PaginationParams

router = APIRouter(prefix="/products", tags=["products"])


@router.get("")
async def list_products(
    company: str | None = Query(None),
    category: str | None = Query(None),
    is_active: bool | None = Query(None, alias="isActive"),
    params: PaginationParams = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_products(db, params, company, category, is_active)
    return envelope(True, data=result.to_wire())


@router.get("/{gtin}")
async def get_product(gtin: str, db: AsyncSession = Depends(get_db)):
    """Product with its batches."""
    product = await service.get_product(db, gtin)
    return envelope(True, data=product.to_wire())


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(body: ProductCreate, db: AsyncSession = Depends(get_db)):
    product = await service.create_product(db, body)
    return envelope(True, message="Product created successfully", data=product.to_wire())


@router.put("/{gtin}")
async def update_product(gtin: str, body: ProductUpdate, db: AsyncSession = Depends(get_db)):
    product = await service.update_product(db, gtin, body)
    return envelope(True, message="Product updated successfully", data=product.to_wire())


@router.put("/{gtin}/deactivate")
async def deactivate_product(gtin: str, db: AsyncSession = Depends(get_db)):
    product = await service.deactivate_product(db, gtin)
    return envelope(True, message="Product deactivated successfully", data=product.to_wire())


@router.delete("/{gtin}")
async def delete_product(gtin: str, db: AsyncSession = Depends(get_db)):
    await service.delete_product(db, gtin)
    return envelope(True, message="Product deleted successfully")


@router.get("/{gtin}/stats")
async def get_product_stats(gtin: str, db: AsyncSession = Depends(get_db)):
    stats = await service.get_product_stats(db, gtin)
    return envelope(True, data=stats.to_wire())
