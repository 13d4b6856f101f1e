"""Metaplex token-metadata instruction builders.

CreateMetadataAccountV3 attaches name / symbol / URI to a freshly
initialised SPL mint so wallets and explorers can display it.
CreateMasterEditionV3 turns a 0-decimal, supply-1 mint into a non-fungible
token (the mint authority moves to the edition account).
"""

from __future__ import annotations

import struct

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

TOKEN_METADATA_PROGRAM_ID = Pubkey.from_string("metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s")
SYS_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")

# Byte limits enforced by the program
MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200

_CREATE_METADATA_ACCOUNT_V3 = 33
_CREATE_MASTER_EDITION_V3 = 17


def find_metadata_address(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def find_master_edition_address(mint: Pubkey) -> Pubkey:
    return Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint), b"edition"],
        TOKEN_METADATA_PROGRAM_ID,
    )[0]


def truncate_utf8(value: str, limit: int) -> str:
    """Cut ``value`` to at most ``limit`` encoded bytes without splitting a character."""
    return value.encode("utf-8")[:limit].decode("utf-8", "ignore")


def _borsh_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _borsh_option(payload: bytes | None) -> bytes:
    return b"\x00" if payload is None else b"\x01" + payload


def build_create_metadata_v3_ix(
    *,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    name: str,
    symbol: str,
    uri: str,
    seller_fee_basis_points: int = 0,
    creator: Pubkey | None = None,
    collection: Pubkey | None = None,
    collection_size: int | None = None,
    is_mutable: bool = True,
) -> Instruction:
    """CreateMetadataAccountV3.

    ``creator`` is recorded as the verified sole creator (100% share) and
    must sign the transaction. ``collection`` references a parent
    collection NFT, unverified. ``collection_size`` marks this mint itself
    as a sized collection.
    """
    if len(uri.encode("utf-8")) > MAX_URI_LENGTH:
        raise ValueError(f"metadata uri exceeds {MAX_URI_LENGTH} bytes")

    creators = None
    if creator is not None:
        # Vec<Creator{address, verified, share}>
        creators = struct.pack("<I", 1) + bytes(creator) + b"\x01" + bytes([100])
    collection_ref = None
    if collection is not None:
        # Collection{verified, key}
        collection_ref = b"\x00" + bytes(collection)
    details = None
    if collection_size is not None:
        # CollectionDetails::V1{size}
        details = b"\x00" + struct.pack("<Q", collection_size)

    data = (
        bytes([_CREATE_METADATA_ACCOUNT_V3])
        # DataV2
        + _borsh_string(truncate_utf8(name, MAX_NAME_LENGTH))
        + _borsh_string(truncate_utf8(symbol, MAX_SYMBOL_LENGTH))
        + _borsh_string(uri)
        + struct.pack("<H", seller_fee_basis_points)
        + _borsh_option(creators)
        + _borsh_option(collection_ref)
        + b"\x00"  # uses: None
        + bytes([1 if is_mutable else 0])
        + _borsh_option(details)
    )
    metas = [
        AccountMeta(pubkey=find_metadata_address(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_METADATA_PROGRAM_ID, data=data, accounts=metas)


def build_create_master_edition_v3_ix(
    *,
    mint: Pubkey,
    mint_authority: Pubkey,
    payer: Pubkey,
    update_authority: Pubkey,
    max_supply: int | None = 0,
) -> Instruction:
    """CreateMasterEditionV3; ``max_supply=0`` forbids printing further editions."""
    data = bytes([_CREATE_MASTER_EDITION_V3]) + _borsh_option(
        None if max_supply is None else struct.pack("<Q", max_supply)
    )
    metas = [
        AccountMeta(pubkey=find_master_edition_address(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=True),
        AccountMeta(pubkey=update_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=mint_authority, is_signer=True, is_writable=False),
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=find_metadata_address(mint), is_signer=False, is_writable=True),
        AccountMeta(pubkey=TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id=TOKEN_METADATA_PROGRAM_ID, data=data, accounts=metas)
