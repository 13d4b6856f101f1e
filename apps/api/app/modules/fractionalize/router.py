"""Fractionalization API router."""

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_distribution_locks, get_ledger, get_pagination
from app.core.errors import envelope
from app.modules.fractionalize import service
from app.modules.fractionalize.distribution import DistributionEngine
from app.modules.fractionalize.schemas import DistributeRequest, FractionalizeRequest
from app.schemas.common import PaginationParams
from app.services.keyed_lock import KeyedLock
from app.services.ledger import LedgerService

logger = structlog.get_logger()

router = APIRouter(prefix="/fractionalize", tags=["fractionalize"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def fractionalize_nft(
    body: FractionalizeRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """Fractionalize an NFT into fungible share tokens with metadata."""
    result = await service.fractionalize(db, ledger, body)
    return envelope(
        True,
        message="NFT fractionalized successfully with metadata",
        data=result.to_wire(),
    )


@router.post("/distribute")
async def distribute_shares(
    body: DistributeRequest,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
    locks: KeyedLock = Depends(get_distribution_locks),
):
    """Distribute shares to multiple recipients, one transfer at a time."""
    engine = DistributionEngine(ledger, locks, settings.SOLANA_SYSTEM_SENDER_NAME)
    result = await engine.distribute(db, body)
    if result.failed_count:
        message = f"Shares distributed with {result.failed_count} failed transfer(s)"
    else:
        message = "Shares distributed successfully"
    return envelope(True, message=message, data=result.to_wire())


@router.get("/token/{share_token_mint}")
async def get_share_token_info(
    share_token_mint: str,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerService = Depends(get_ledger),
):
    """Live supply and owner balance of a share token."""
    info = await service.get_token_info(db, ledger, share_token_mint.strip())
    return envelope(True, data=info.to_wire())


@router.get("/tokens")
async def list_fractional_tokens(
    creator_address: str | None = Query(None, alias="creatorAddress"),
    is_active: bool | None = Query(None, alias="isActive"),
    params: PaginationParams = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    result = await service.list_tokens(db, params, creator_address, is_active)
    return envelope(True, data=result.to_wire())


@router.get("/tokens/{share_token_mint}")
async def get_fractional_token(
    share_token_mint: str,
    db: AsyncSession = Depends(get_db),
):
    token = await service.get_token(db, share_token_mint)
    return envelope(True, data=token.to_wire())


@router.put("/tokens/{share_token_mint}/deactivate")
async def deactivate_fractional_token(
    share_token_mint: str,
    db: AsyncSession = Depends(get_db),
):
    """Retire a share token from the registry. On-chain supply is unaffected."""
    token = await service.deactivate_token(db, share_token_mint)
    return envelope(True, message="Fractional token deactivated", data=token.to_wire())


@router.get("/transfers")
async def list_share_transfers(
    share_token_mint: str | None = Query(None, alias="shareTokenMint"),
    to_address: str | None = Query(None, alias="toAddress"),
    params: PaginationParams = Depends(get_pagination),
    db: AsyncSession = Depends(get_db),
):
    """Transfer history, newest first."""
    result = await service.list_transfers(db, params, share_token_mint, to_address)
    return envelope(True, data=result.to_wire())
