"""Tests for the Metaplex token-metadata instruction builders."""

import struct

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from app.services.token_metadata import (
    TOKEN_METADATA_PROGRAM_ID,
    build_create_master_edition_v3_ix,
    build_create_metadata_v3_ix,
    find_master_edition_address,
    find_metadata_address,
    truncate_utf8,
)


def _read_string(data: bytes, offset: int) -> tuple[str, int]:
    (length,) = struct.unpack_from("<I", data, offset)
    start = offset + 4
    return data[start:start + length].decode(), start + length


def test_find_metadata_address_is_deterministic():
    mint = Keypair().pubkey()
    assert find_metadata_address(mint) == find_metadata_address(mint)
    expected, _ = Pubkey.find_program_address(
        [b"metadata", bytes(TOKEN_METADATA_PROGRAM_ID), bytes(mint)],
        TOKEN_METADATA_PROGRAM_ID,
    )
    assert find_metadata_address(mint) == expected


def test_instruction_layout():
    mint, authority = Keypair().pubkey(), Keypair().pubkey()
    ix = build_create_metadata_v3_ix(
        mint=mint,
        mint_authority=authority,
        payer=authority,
        update_authority=authority,
        name="Test Shares",
        symbol="TST",
        uri="https://gateway.test/ipfs/Qm1",
    )

    assert ix.program_id == TOKEN_METADATA_PROGRAM_ID
    data = bytes(ix.data)
    assert data[0] == 33
    name, offset = _read_string(data, 1)
    symbol, offset = _read_string(data, offset)
    uri, offset = _read_string(data, offset)
    assert (name, symbol, uri) == ("Test Shares", "TST", "https://gateway.test/ipfs/Qm1")
    (fee,) = struct.unpack_from("<H", data, offset)
    assert fee == 0
    # creators, collection, uses: None; is_mutable; collection_details: None
    assert data[offset + 2:] == b"\x00\x00\x00\x01\x00"

    assert ix.accounts[0].pubkey == find_metadata_address(mint)
    assert ix.accounts[0].is_writable
    assert ix.accounts[1].pubkey == mint
    assert ix.accounts[2].is_signer


def test_name_and_symbol_are_truncated():
    key = Keypair().pubkey()
    ix = build_create_metadata_v3_ix(
        mint=key,
        mint_authority=key,
        payer=key,
        update_authority=key,
        name="N" * 40,
        symbol="S" * 14,
        uri="u",
    )
    data = bytes(ix.data)
    name, offset = _read_string(data, 1)
    symbol, _ = _read_string(data, offset)
    assert len(name) == 32
    assert len(symbol) == 10


def test_non_ascii_name_truncated_by_bytes():
    key = Keypair().pubkey()
    ix = build_create_metadata_v3_ix(
        mint=key,
        mint_authority=key,
        payer=key,
        update_authority=key,
        name="é" * 32,
        symbol="€" * 10,
        uri="u",
    )
    data = bytes(ix.data)
    name, offset = _read_string(data, 1)
    symbol, _ = _read_string(data, offset)
    assert name == "é" * 16
    # 3-byte characters: a fourth would straddle the limit
    assert symbol == "€" * 3
    assert struct.unpack_from("<I", data, 1)[0] == 32


def test_truncate_utf8_never_splits_a_character():
    assert truncate_utf8("aé", 2) == "a"
    assert truncate_utf8("short", 32) == "short"
    assert len(truncate_utf8("日本語のテキスト" * 4, 32).encode("utf-8")) <= 32


def test_master_edition_instruction():
    mint, authority = Keypair().pubkey(), Keypair().pubkey()
    ix = build_create_master_edition_v3_ix(
        mint=mint, mint_authority=authority, payer=authority, update_authority=authority
    )
    assert ix.program_id == TOKEN_METADATA_PROGRAM_ID
    assert bytes(ix.data) == b"\x11\x01" + bytes(8)
    assert ix.accounts[0].pubkey == find_master_edition_address(mint)
    assert ix.accounts[5].pubkey == find_metadata_address(mint)


def test_uri_too_long_rejected():
    key = Keypair().pubkey()
    with pytest.raises(ValueError):
        build_create_metadata_v3_ix(
            mint=key,
            mint_authority=key,
            payer=key,
            update_authority=key,
            name="n",
            symbol="s",
            uri="https://x.test/" + "a" * 200,
        )
