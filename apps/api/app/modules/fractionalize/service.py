"""Fractionalization service layer: orchestrator, token info and registry reads."""

from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from app.models.fractional import FractionalToken, ShareTransfer
from app.modules.fractionalize.schemas import (
    CliInstructions,
    CreatorInfo,
    FractionalizeRequest,
    FractionalizeResult,
    FractionalTokenList,
    FractionalTokenResponse,
    ShareMetadataInfo,
    ShareTokenInfo,
    ShareTransferList,
    ShareTransferResponse,
)
from app.schemas.common import Pagination, PaginationParams
from app.services.ledger import LedgerService, is_valid_address

logger = structlog.get_logger()


# ── Helpers ─────────────────────────────────────────────────────────────────


def _require_address(value: str, field: str, label: str) -> None:
    if not is_valid_address(value):
        raise ValidationError(
            f"Invalid {label}: {value}",
            errors=[{"field": field, "message": f"Not a valid Solana address: {value}"}],
        )


def default_description(nft_mint_address: str, total_shares: int) -> str:
    return f"Fractional shares of NFT {nft_mint_address[:8]}... - {total_shares} shares"


def build_metadata_document(body: FractionalizeRequest, description: str) -> dict[str, Any]:
    """Off-chain metadata JSON the share token's on-chain metadata points at."""
    attributes = [
        {"trait_type": "Original NFT", "value": body.nft_mint_address},
        {"trait_type": "Total Shares", "value": str(body.total_shares)},
        {"trait_type": "Creator Name", "value": body.creator_name},
    ]
    if body.creator_id:
        attributes.append({"trait_type": "Creator ID", "value": body.creator_id})
    attributes.append(
        {"trait_type": "Created At", "value": datetime.now(timezone.utc).isoformat()}
    )
    return {
        "name": body.token_name,
        "symbol": body.token_symbol,
        "description": description,
        "image": body.image_url or "",
        "attributes": attributes,
    }


async def _get_token_by_mint(db: AsyncSession, share_token_mint: str) -> FractionalToken | None:
    stmt = select(FractionalToken).where(FractionalToken.share_token_mint == share_token_mint)
    return (await db.execute(stmt)).scalar_one_or_none()


# ── Orchestrator ────────────────────────────────────────────────────────────


async def fractionalize(
    db: AsyncSession,
    ledger: LedgerService,
    body: FractionalizeRequest,
) -> FractionalizeResult:
    """Split an NFT into ``total_shares`` fungible share units held by the owner wallet.

    Ledger steps run first (metadata upload, token creation, mint); the
    FractionalToken row is inserted only once all of them succeeded. A
    failed attempt is never resumed: the next attempt creates a new token.
    """
    _require_address(body.nft_mint_address, "nftMintAddress", "NFT mint address")

    existing = await db.execute(
        select(FractionalToken.share_token_mint).where(
            FractionalToken.nft_mint_address == body.nft_mint_address
        )
    )
    if (prior_mint := existing.scalar_one_or_none()) is not None:
        raise ConflictError(
            f"NFT {body.nft_mint_address} is already fractionalized",
            data={"shareTokenMint": prior_mint},
        )

    if not await ledger.account_exists(body.nft_mint_address):
        raise ValidationError(
            f"NFT {body.nft_mint_address} not found on {ledger.cluster}",
            errors=[{"field": "nftMintAddress", "message": "Account does not exist"}],
        )

    logger.info(
        "fractionalize.started",
        nft=body.nft_mint_address,
        token_name=body.token_name,
        token_symbol=body.token_symbol,
        total_shares=body.total_shares,
        decimals=body.share_decimals,
        creator=body.creator_name,
    )

    description = body.description or default_description(body.nft_mint_address, body.total_shares)
    document = build_metadata_document(body, description)
    metadata_uri = await ledger.upload_metadata(document)

    created = await ledger.create_fungible_token(
        body.token_name, body.token_symbol, metadata_uri, body.share_decimals
    )
    minted = body.total_shares * 10**body.share_decimals
    mint_signature = await ledger.mint_to_owner(created.mint, minted)
    explorer_link = ledger.explorer_address_url(created.mint)

    token = FractionalToken(
        nft_mint_address=body.nft_mint_address,
        share_token_mint=created.mint,
        token_name=body.token_name,
        token_symbol=body.token_symbol,
        total_shares=body.total_shares,
        decimals=body.share_decimals,
        description=description,
        image_url=body.image_url,
        metadata_uri=metadata_uri,
        metadata_address=created.metadata_address,
        creator_address=ledger.owner_address,
        creator_name=body.creator_name,
        creator_id=body.creator_id,
        explorer_link=explorer_link,
        is_active=True,
        metadata_={
            "creationSignature": created.signature,
            "mintSignature": mint_signature,
        },
    )
    db.add(token)
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "fractionalize.reconciliation_required",
            nft=body.nft_mint_address,
            share_token_mint=created.mint,
            minted=minted,
            error=str(exc),
        )
        raise PersistenceError(
            "Share token was minted but could not be recorded",
            data={"shareTokenMint": created.mint, "nftMintAddress": body.nft_mint_address},
        ) from exc

    try:
        balance = await ledger.get_token_balance(created.mint)
    except LedgerError:
        logger.warning("fractionalize.balance_unavailable", share_token_mint=created.mint)
        balance = minted

    logger.info(
        "fractionalize.completed",
        nft=body.nft_mint_address,
        share_token_mint=created.mint,
        minted=minted,
    )

    cluster = ledger.cluster
    return FractionalizeResult(
        nft_mint_address=body.nft_mint_address,
        share_token_mint=created.mint,
        token_name=body.token_name,
        token_symbol=body.token_symbol,
        total_shares=body.total_shares,
        decimals=body.share_decimals,
        creator=CreatorInfo(address=ledger.owner_address, name=body.creator_name, id=body.creator_id),
        metadata=ShareMetadataInfo(
            description=description,
            image_url=body.image_url,
            metadata_uri=metadata_uri,
            metadata_address=created.metadata_address,
        ),
        owner_address=ledger.owner_address,
        owner_balance=str(balance if balance is not None else 0),
        explorer_link=explorer_link,
        instructions=CliInstructions(
            get_balance=f"spl-token balance {created.mint} --url {cluster}",
            transfer=f"spl-token transfer {created.mint} <amount> <recipient> --url {cluster}",
        ),
    )


# ── Token info ──────────────────────────────────────────────────────────────


async def get_token_info(
    db: AsyncSession,
    ledger: LedgerService,
    share_token_mint: str,
) -> ShareTokenInfo:
    """Live supply and owner balance for a share token. Read-only, uncached."""
    _require_address(share_token_mint, "shareTokenMint", "share token mint")

    mint = await ledger.get_mint_info(share_token_mint)
    if mint is None:
        raise NotFoundError("Share token not found")

    balance = await ledger.get_token_balance(share_token_mint)
    token = await _get_token_by_mint(db, share_token_mint)

    return ShareTokenInfo(
        share_token_mint=share_token_mint,
        decimals=mint.decimals,
        total_supply=str(mint.supply),
        owner_address=ledger.owner_address,
        owner_balance=str(balance) if balance is not None else "0",
        explorer_link=ledger.explorer_address_url(share_token_mint),
        token_name=token.token_name if token else None,
        token_symbol=token.token_symbol if token else None,
        is_active=token.is_active if token else None,
    )


# ── Registry ────────────────────────────────────────────────────────────────


async def list_tokens(
    db: AsyncSession,
    params: PaginationParams,
    creator_address: str | None = None,
    is_active: bool | None = None,
) -> FractionalTokenList:
    filters = []
    if creator_address:
        filters.append(FractionalToken.creator_address == creator_address)
    if is_active is not None:
        filters.append(FractionalToken.is_active.is_(is_active))

    total = (
        await db.execute(select(func.count()).select_from(FractionalToken).where(*filters))
    ).scalar_one()
    stmt = (
        select(FractionalToken)
        .where(*filters)
        .order_by(FractionalToken.created_at.desc(), FractionalToken.id)
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return FractionalTokenList(
        tokens=[FractionalTokenResponse.model_validate(row) for row in rows],
        pagination=Pagination.build(total, params),
    )


async def get_token(db: AsyncSession, share_token_mint: str) -> FractionalTokenResponse:
    token = await _get_token_by_mint(db, share_token_mint)
    if token is None:
        raise NotFoundError(f"Fractional token {share_token_mint} not found")
    return FractionalTokenResponse.model_validate(token)


async def deactivate_token(db: AsyncSession, share_token_mint: str) -> FractionalTokenResponse:
    """Retire a share token. Supply fields are immutable and stay untouched."""
    token = await _get_token_by_mint(db, share_token_mint)
    if token is None:
        raise NotFoundError(f"Fractional token {share_token_mint} not found")
    token.is_active = False
    await db.commit()
    await db.refresh(token)
    logger.info("fractionalize.token_deactivated", share_token_mint=share_token_mint)
    return FractionalTokenResponse.model_validate(token)


async def list_transfers(
    db: AsyncSession,
    params: PaginationParams,
    share_token_mint: str | None = None,
    to_address: str | None = None,
) -> ShareTransferList:
    filters = []
    if share_token_mint:
        filters.append(ShareTransfer.share_token_mint == share_token_mint)
    if to_address:
        filters.append(ShareTransfer.to_address == to_address)

    total = (
        await db.execute(select(func.count()).select_from(ShareTransfer).where(*filters))
    ).scalar_one()
    stmt = (
        select(ShareTransfer)
        .where(*filters)
        .order_by(ShareTransfer.transferred_at.desc(), ShareTransfer.created_at.desc())
        .limit(params.limit)
        .offset(params.offset)
    )
    rows = (await db.execute(stmt)).scalars().all()
    return ShareTransferList(
        transfers=[ShareTransferResponse.model_validate(row) for row in rows],
        pagination=Pagination.build(total, params),
    )
