"""Product service layer."""

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.errors import ConflictError, NotFoundError, ValidationError
from app.models.manufacturing import Batch, Product
from app.modules.products.schemas import (
    ProductCreate,
    ProductDetail,
    ProductList,
    ProductResponse,
    ProductStats,
    ProductUpdate,
)
from app.schemas.common import Pagination, PaginationParams

logger = structlog.get_logger()


def format_rate(numerator: int, denominator: int) -> str:
    """Percentage with two decimals, e.g. ``"42.50%"``; ``"0%"`` when undefined."""
    if denominator <= 0:
        return "0%"
    return f"{numerator / denominator * 100:.2f}%"


async def _get_product_or_raise(db: AsyncSession, gtin: str, *, with_batches: bool = False) -> Product:
    stmt = select(Product).where(Product.gtin == gtin).execution_options(populate_existing=True)
    if with_batches:
        stmt = stmt.options(selectinload(Product.batches))
    product = (await db.execute(stmt)).scalar_one_or_none()
    if not product:
        raise NotFoundError("Product not found")
    return product


async def list_products(
    db: AsyncSession,
    params: PaginationParams,
    company: str | None = None,
    category: str | None = None,
    is_active: bool | None = None,
) -> ProductList:
    filters = []
    if company:
        filters.append(Product.company == company)
    if category:
        filters.append(Product.category == category)
    if is_active is not None:
        filters.append(Product.is_active.is_(is_active))

    total = (await db.execute(select(func.count()).select_from(Product).where(*filters))).scalar_one()
    stmt = (
        select(Product)
        .where(*filters)
        .order_by(Product.created_at.desc(), Product.gtin)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return ProductList(
        products=[ProductResponse.model_validate(p) for p in rows],
        pagination=Pagination.build(total, params),
    )


async def get_product(db: AsyncSession, gtin: str) -> ProductDetail:
    product = await _get_product_or_raise(db, gtin, with_batches=True)
    return ProductDetail.model_validate(product)


async def create_product(db: AsyncSession, body: ProductCreate) -> ProductResponse:
    existing = (await db.execute(select(Product).where(Product.gtin == body.gtin))).scalar_one_or_none()
    if existing:
        raise ConflictError(
            "Product with this GTIN already exists",
            data={"existingProduct": ProductResponse.model_validate(existing).to_wire()},
        )

    product = Product(**body.model_dump(), is_active=True)
    db.add(product)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise ConflictError("Product with this GTIN already exists") from exc
    await db.refresh(product)
    logger.info("product.created", gtin=product.gtin, company=product.company)
    return ProductResponse.model_validate(product)


async def update_product(db: AsyncSession, gtin: str, body: ProductUpdate) -> ProductResponse:
    product = await _get_product_or_raise(db, gtin)
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(product, field, value)
    await db.commit()
    await db.refresh(product)
    logger.info("product.updated", gtin=gtin)
    return ProductResponse.model_validate(product)


async def deactivate_product(db: AsyncSession, gtin: str) -> ProductResponse:
    product = await _get_product_or_raise(db, gtin)
    product.is_active = False
    await db.commit()
    await db.refresh(product)
    logger.info("product.deactivated", gtin=gtin)
    return ProductResponse.model_validate(product)


async def delete_product(db: AsyncSession, gtin: str) -> None:
    """Hard delete; refused while batches reference the product."""
    product = await _get_product_or_raise(db, gtin)
    batch_count = (
        await db.execute(select(func.count()).select_from(Batch).where(Batch.product_id == product.id))
    ).scalar_one()
    if batch_count > 0:
        raise ValidationError(
            "Cannot delete product with existing batches. Deactivate instead.",
            data={"batchCount": batch_count},
        )
    await db.delete(product)
    await db.commit()
    logger.info("product.deleted", gtin=gtin)


async def get_product_stats(db: AsyncSession, gtin: str) -> ProductStats:
    product = await _get_product_or_raise(db, gtin)
    row = (
        await db.execute(
            select(
                func.count(Batch.id),
                func.coalesce(func.sum(Batch.planned_quantity), 0),
                func.coalesce(func.sum(Batch.produced_quantity), 0),
            ).where(Batch.product_id == product.id)
        )
    ).one()
    total_batches, planned, produced = (int(v) for v in row)
    return ProductStats(
        gtin=product.gtin,
        product_name=product.product_name,
        company=product.company,
        total_batches=total_batches,
        total_planned_items=planned,
        total_produced_items=produced,
        production_rate=format_rate(produced, planned),
        is_active=product.is_active,
    )
