"""Fractionalization API schemas."""

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import Field

from app.schemas.common import CamelModel, Pagination, StrippedStr, max_utf8_bytes, metadata_field
from app.services.token_metadata import MAX_NAME_LENGTH, MAX_SYMBOL_LENGTH

MAX_TOTAL_SHARES = 1_000_000
MAX_SHARE_DECIMALS = 9
MAX_TOKEN_AMOUNT = 2**64 - 1


# ── Requests ────────────────────────────────────────────────────────────────


class FractionalizeRequest(CamelModel):
    nft_mint_address: StrippedStr = Field(min_length=1)
    total_shares: int = Field(strict=True, ge=2, le=MAX_TOTAL_SHARES)
    token_name: Annotated[StrippedStr, max_utf8_bytes(MAX_NAME_LENGTH)] = Field(min_length=1)
    token_symbol: Annotated[StrippedStr, max_utf8_bytes(MAX_SYMBOL_LENGTH)] = Field(min_length=1)
    creator_name: StrippedStr = Field(min_length=1, max_length=200)
    creator_id: str | None = None
    description: str | None = None
    image_url: str | None = None
    share_decimals: int = Field(default=0, strict=True, ge=0, le=MAX_SHARE_DECIMALS)


class DistributionEntry(CamelModel):
    recipient: StrippedStr = Field(min_length=1)
    recipient_name: str | None = None
    recipient_id: str | None = None
    amount: int = Field(strict=True, gt=0, le=MAX_TOKEN_AMOUNT)
    note: str | None = None


class DistributeRequest(CamelModel):
    share_token_mint: StrippedStr = Field(min_length=1)
    distributions: list[DistributionEntry] = Field(min_length=1)


# ── Fractionalization result ────────────────────────────────────────────────


class CreatorInfo(CamelModel):
    address: str
    name: str
    id: str | None = None


class ShareMetadataInfo(CamelModel):
    description: str
    image_url: str | None = None
    metadata_uri: str
    metadata_address: str | None = None


class CliInstructions(CamelModel):
    get_balance: str
    transfer: str


class FractionalizeResult(CamelModel):
    nft_mint_address: str
    share_token_mint: str
    token_name: str
    token_symbol: str
    total_shares: int
    decimals: int
    creator: CreatorInfo
    metadata: ShareMetadataInfo
    owner_address: str
    owner_balance: str
    explorer_link: str
    instructions: CliInstructions


# ── Distribution result ─────────────────────────────────────────────────────


class _OutcomeBase(CamelModel):
    recipient: str
    recipient_name: str | None = None
    recipient_id: str | None = None
    amount: int


class DistributionSuccess(_OutcomeBase):
    status: Literal["success"] = "success"
    signature: str
    explorer_link: str


class DistributionFailure(_OutcomeBase):
    status: Literal["failed"] = "failed"
    error: str


# Terminal state of one entry; no retry, no rollback of earlier successes.
DistributionOutcome = Annotated[
    DistributionSuccess | DistributionFailure, Field(discriminator="status")
]


class SenderBalance(CamelModel):
    before: str
    after: str


class DistributionResult(CamelModel):
    share_token_mint: str
    token_name: str
    token_symbol: str
    total_requested: int
    total_distributed: int
    recipient_count: int
    success_count: int
    failed_count: int
    distributions: list[DistributionOutcome]
    explorer_links: list[str]
    sender_balance: SenderBalance
    transferred_by: str
    transferred_at: datetime


# ── Token info & registry ───────────────────────────────────────────────────


class ShareTokenInfo(CamelModel):
    share_token_mint: str
    decimals: int
    total_supply: str
    owner_address: str
    owner_balance: str
    explorer_link: str
    token_name: str | None = None
    token_symbol: str | None = None
    is_active: bool | None = None


class FractionalTokenResponse(CamelModel):
    id: uuid.UUID
    nft_mint_address: str
    share_token_mint: str
    token_name: str
    token_symbol: str
    total_shares: int
    decimals: int
    description: str | None
    image_url: str | None
    metadata_uri: str | None
    metadata_address: str | None
    creator_address: str
    creator_name: str
    creator_id: str | None
    explorer_link: str
    is_active: bool
    metadata_: dict[str, Any] | None = metadata_field()
    created_at: datetime
    updated_at: datetime


class FractionalTokenList(CamelModel):
    tokens: list[FractionalTokenResponse]
    pagination: Pagination


class ShareTransferResponse(CamelModel):
    id: uuid.UUID
    signature: str
    share_token_mint: str
    token_name: str
    token_symbol: str
    from_address: str
    from_name: str | None
    to_address: str
    to_name: str | None
    to_id: str | None
    amount: str
    explorer_link: str
    note: str | None
    transferred_at: datetime
    metadata_: dict[str, Any] | None = metadata_field()


class ShareTransferList(CamelModel):
    transfers: list[ShareTransferResponse]
    pagination: Pagination
