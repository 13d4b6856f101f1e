"""Fractional ownership models: share tokens and their transfer ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import JSONType
from app.models.base import ActiveFlagMixin, BaseModel, TimestampedModel


class FractionalToken(BaseModel, ActiveFlagMixin):
    """One fractionalization event: an NFT split into a fungible share token.

    total_shares and decimals are fixed when the row is created.
    """

    __tablename__ = "fractional_tokens"

    nft_mint_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    share_token_mint: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    token_name: Mapped[str] = mapped_column(String(32), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(10), nullable=False)
    total_shares: Mapped[int] = mapped_column(Integer, nullable=False)
    decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    metadata_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_uri: Mapped[str | None] = mapped_column(Text, nullable=True)
    creator_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    creator_name: Mapped[str] = mapped_column(String(200), nullable=False)
    creator_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    explorer_link: Mapped[str] = mapped_column(Text, nullable=False)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)

    __table_args__ = (
        CheckConstraint("total_shares >= 2", name="ck_fractional_total_shares_min"),
        CheckConstraint("decimals >= 0", name="ck_fractional_decimals_non_negative"),
        Index("ix_fractional_token_active", "is_active"),
    )


class ShareTransfer(TimestampedModel):
    """Append-only record of one successful share transfer.

    The ledger signature is the idempotency key; failed transfers never get a row.
    """

    __tablename__ = "share_transfers"

    signature: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    share_token_mint: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    token_name: Mapped[str] = mapped_column(String(32), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(10), nullable=False)
    from_address: Mapped[str] = mapped_column(String(64), nullable=False)
    from_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    to_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    to_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    to_id: Mapped[str | None] = mapped_column(String(200), nullable=True)
    # String-encoded integer, base units; avoids precision loss on u64 amounts
    amount: Mapped[str] = mapped_column(String(40), nullable=False)
    explorer_link: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    transferred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    metadata_: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSONType, nullable=True)
