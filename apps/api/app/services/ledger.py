"""Ledger Service: token balance, mint and transfer primitives on Solana.

``LedgerService`` is the narrow interface the batch, item and
fractionalization services depend on. ``SolanaLedger`` implements it with
solana-py's async RPC client, solders transactions and SPL-Token /
Metaplex instructions. It is built once at start-up (see
``app.main.lifespan``) and injected through
``app.core.dependencies.get_ledger``.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account
from solders.transaction import Transaction
from spl.token.constants import MINT_LEN, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    InitializeMintParams,
    MintToParams,
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    initialize_mint,
    mint_to,
    transfer_checked,
)

from app.core.config import Settings
from app.core.errors import LedgerError
from app.services.metadata_storage import MetadataStorage
from app.services.token_metadata import (
    build_create_master_edition_v3_ix,
    build_create_metadata_v3_ix,
    find_metadata_address,
)

logger = structlog.get_logger()


def is_valid_address(address: str | None) -> bool:
    """True when ``address`` is a base58-encoded 32-byte public key."""
    if not address or not isinstance(address, str):
        return False
    try:
        Pubkey.from_string(address.strip())
    except ValueError:
        return False
    return True


def load_keypair(path: str) -> Keypair:
    """Load a Solana CLI keypair file (JSON array of 64 secret-key bytes)."""
    keypair_path = Path(path).expanduser()
    try:
        secret = json.loads(keypair_path.read_text())
        return Keypair.from_bytes(bytes(secret))
    except (OSError, ValueError, TypeError) as exc:
        raise LedgerError(f"Cannot load signing keypair from {keypair_path}: {exc}") from exc


@dataclass(frozen=True)
class MintInfo:
    address: str
    decimals: int
    supply: int


@dataclass(frozen=True)
class CreatedToken:
    mint: str
    metadata_address: str
    signature: str


class LedgerService(ABC):
    """Token primitives against a blockchain, on behalf of one signing wallet."""

    cluster: str

    @property
    @abstractmethod
    def owner_address(self) -> str:
        """Address of the authoritative (signing) wallet."""

    @abstractmethod
    async def account_exists(self, address: str) -> bool: ...

    @abstractmethod
    async def get_mint_info(self, mint: str) -> MintInfo | None:
        """Decimals and supply of a token mint, or None when it does not exist."""

    @abstractmethod
    async def get_token_balance(self, mint: str, owner: str | None = None) -> int | None:
        """Base-unit balance of ``owner`` (default: the signing wallet).

        None when the owner has no token account for this mint.
        """

    @abstractmethod
    async def upload_metadata(self, document: dict[str, Any]) -> str:
        """Persist a metadata document durably and return its URI."""

    @abstractmethod
    async def create_fungible_token(
        self, name: str, symbol: str, uri: str, decimals: int
    ) -> CreatedToken: ...

    @abstractmethod
    async def create_nft(
        self,
        name: str,
        symbol: str,
        uri: str,
        *,
        collection: str | None = None,
        is_collection: bool = False,
    ) -> CreatedToken:
        """Mint a one-of-one NFT into the signing wallet.

        ``collection`` references the parent collection NFT (unverified);
        ``is_collection`` makes the new NFT a collection itself.
        """

    @abstractmethod
    async def mint_to_owner(self, mint: str, amount: int) -> str:
        """Mint ``amount`` base units into the signing wallet; returns the signature."""

    @abstractmethod
    async def transfer(self, mint: str, recipient: str, amount: int) -> str:
        """Move base units from the signing wallet to ``recipient``.

        Creates the recipient's token account when absent. Returns the
        transaction signature.
        """

    async def is_connected(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def explorer_tx_url(self, signature: str) -> str:
        return f"https://explorer.solana.com/tx/{signature}?cluster={self.cluster}"

    def explorer_address_url(self, address: str) -> str:
        return f"https://explorer.solana.com/address/{address}?cluster={self.cluster}"


class SolanaLedger(LedgerService):
    """LedgerService backed by a Solana RPC node."""

    def __init__(
        self,
        client: AsyncClient,
        payer: Keypair,
        storage: MetadataStorage,
        cluster: str = "devnet",
        commitment: str = "confirmed",
    ) -> None:
        self._client = client
        self._payer = payer
        self._storage = storage
        self._commitment = Commitment(commitment)
        self._decimals_cache: dict[str, int] = {}
        self.cluster = cluster

    @classmethod
    def from_settings(cls, settings: Settings) -> "SolanaLedger":
        payer = load_keypair(settings.SOLANA_KEYPAIR_PATH)
        client = AsyncClient(settings.solana_rpc_url, commitment=Commitment(settings.SOLANA_COMMITMENT))
        storage = MetadataStorage(
            upload_url=settings.METADATA_UPLOAD_URL,
            token=settings.METADATA_UPLOAD_TOKEN,
            gateway_url=settings.METADATA_GATEWAY_URL,
            timeout=settings.METADATA_UPLOAD_TIMEOUT,
        )
        logger.info(
            "ledger.initialized",
            cluster=settings.SOLANA_CLUSTER,
            rpc=settings.solana_rpc_url,
            owner=str(payer.pubkey()),
        )
        return cls(client, payer, storage, settings.SOLANA_CLUSTER, settings.SOLANA_COMMITMENT)

    @property
    def owner_address(self) -> str:
        return str(self._payer.pubkey())

    async def close(self) -> None:
        await self._client.close()

    async def is_connected(self) -> bool:
        return await self._client.is_connected()

    # ── internals ───────────────────────────────────────────────────────────

    @asynccontextmanager
    async def _rpc(self, action: str, **context: Any) -> AsyncIterator[None]:
        try:
            yield
        except LedgerError:
            raise
        except Exception as exc:  # noqa: BLE001  RPC, transport and program errors alike
            logger.warning("ledger.rpc_failed", action=action, error=str(exc), **context)
            raise LedgerError(f"Ledger {action} failed: {exc}") from exc

    async def _send(self, instructions: list[Instruction], signers: list[Keypair]) -> str:
        latest = (await self._client.get_latest_blockhash(self._commitment)).value
        message = Message.new_with_blockhash(instructions, self._payer.pubkey(), latest.blockhash)
        txn = Transaction(signers, message, latest.blockhash)
        resp = await self._client.send_raw_transaction(
            bytes(txn),
            opts=TxOpts(
                skip_confirmation=False,
                preflight_commitment=self._commitment,
                last_valid_block_height=latest.last_valid_block_height,
            ),
        )
        return str(resp.value)

    async def _decimals(self, mint: str) -> int:
        if mint not in self._decimals_cache:
            info = await self.get_mint_info(mint)
            if info is None:
                raise LedgerError(f"Token mint {mint} not found")
            self._decimals_cache[mint] = info.decimals
        return self._decimals_cache[mint]

    async def _new_mint_ixs(self, mint: Pubkey, decimals: int) -> list[Instruction]:
        payer = self._payer.pubkey()
        rent = (await self._client.get_minimum_balance_for_rent_exemption(MINT_LEN)).value
        return [
            create_account(
                CreateAccountParams(
                    from_pubkey=payer,
                    to_pubkey=mint,
                    lamports=rent,
                    space=MINT_LEN,
                    owner=TOKEN_PROGRAM_ID,
                )
            ),
            initialize_mint(
                InitializeMintParams(
                    decimals=decimals,
                    program_id=TOKEN_PROGRAM_ID,
                    mint=mint,
                    mint_authority=payer,
                    freeze_authority=payer,
                )
            ),
        ]

    # ── LedgerService ───────────────────────────────────────────────────────

    async def account_exists(self, address: str) -> bool:
        async with self._rpc("account_lookup", address=address):
            resp = await self._client.get_account_info(Pubkey.from_string(address))
        return resp.value is not None

    async def get_mint_info(self, mint: str) -> MintInfo | None:
        mint_key = Pubkey.from_string(mint)
        async with self._rpc("mint_lookup", mint=mint):
            account = (await self._client.get_account_info(mint_key)).value
            if account is None or account.owner != TOKEN_PROGRAM_ID:
                return None
            supply = (await self._client.get_token_supply(mint_key)).value
        return MintInfo(address=mint, decimals=supply.decimals, supply=int(supply.amount))

    async def get_token_balance(self, mint: str, owner: str | None = None) -> int | None:
        owner_key = Pubkey.from_string(owner) if owner else self._payer.pubkey()
        ata = get_associated_token_address(owner_key, Pubkey.from_string(mint))
        async with self._rpc("balance_lookup", mint=mint, owner=str(owner_key)):
            if (await self._client.get_account_info(ata)).value is None:
                return None
            balance = (await self._client.get_token_account_balance(ata)).value
        return int(balance.amount)

    async def upload_metadata(self, document: dict[str, Any]) -> str:
        return await self._storage.upload_json(document, name=document.get("name"))

    async def create_fungible_token(
        self, name: str, symbol: str, uri: str, decimals: int
    ) -> CreatedToken:
        mint = Keypair()
        payer = self._payer.pubkey()

        async with self._rpc("token_creation", mint=str(mint.pubkey())):
            instructions = await self._new_mint_ixs(mint.pubkey(), decimals)
            instructions.append(
                build_create_metadata_v3_ix(
                    mint=mint.pubkey(),
                    mint_authority=payer,
                    payer=payer,
                    update_authority=payer,
                    name=name,
                    symbol=symbol,
                    uri=uri,
                )
            )
            signature = await self._send(instructions, [self._payer, mint])

        self._decimals_cache[str(mint.pubkey())] = decimals
        logger.info("ledger.token_created", mint=str(mint.pubkey()), signature=signature)
        return CreatedToken(
            mint=str(mint.pubkey()),
            metadata_address=str(find_metadata_address(mint.pubkey())),
            signature=signature,
        )

    async def create_nft(
        self,
        name: str,
        symbol: str,
        uri: str,
        *,
        collection: str | None = None,
        is_collection: bool = False,
    ) -> CreatedToken:
        mint = Keypair()
        mint_key = mint.pubkey()
        payer = self._payer.pubkey()

        async with self._rpc("nft_creation", mint=str(mint_key), collection=collection):
            instructions = await self._new_mint_ixs(mint_key, 0)
            instructions += [
                create_associated_token_account(payer=payer, owner=payer, mint=mint_key),
                mint_to(
                    MintToParams(
                        program_id=TOKEN_PROGRAM_ID,
                        mint=mint_key,
                        dest=get_associated_token_address(payer, mint_key),
                        mint_authority=payer,
                        amount=1,
                    )
                ),
                build_create_metadata_v3_ix(
                    mint=mint_key,
                    mint_authority=payer,
                    payer=payer,
                    update_authority=payer,
                    name=name,
                    symbol=symbol,
                    uri=uri,
                    creator=payer,
                    collection=Pubkey.from_string(collection) if collection else None,
                    collection_size=0 if is_collection else None,
                ),
                build_create_master_edition_v3_ix(
                    mint=mint_key,
                    mint_authority=payer,
                    payer=payer,
                    update_authority=payer,
                ),
            ]
            signature = await self._send(instructions, [self._payer, mint])

        self._decimals_cache[str(mint_key)] = 0
        logger.info(
            "ledger.nft_created",
            mint=str(mint_key),
            collection=collection,
            is_collection=is_collection,
            signature=signature,
        )
        return CreatedToken(
            mint=str(mint_key),
            metadata_address=str(find_metadata_address(mint_key)),
            signature=signature,
        )

    async def mint_to_owner(self, mint: str, amount: int) -> str:
        mint_key = Pubkey.from_string(mint)
        owner = self._payer.pubkey()
        ata = get_associated_token_address(owner, mint_key)

        async with self._rpc("mint", mint=mint, amount=amount):
            instructions: list[Instruction] = []
            if (await self._client.get_account_info(ata)).value is None:
                instructions.append(create_associated_token_account(payer=owner, owner=owner, mint=mint_key))
            instructions.append(
                mint_to(
                    MintToParams(
                        program_id=TOKEN_PROGRAM_ID,
                        mint=mint_key,
                        dest=ata,
                        mint_authority=owner,
                        amount=amount,
                    )
                )
            )
            signature = await self._send(instructions, [self._payer])

        logger.info("ledger.minted", mint=mint, amount=amount, signature=signature)
        return signature

    async def transfer(self, mint: str, recipient: str, amount: int) -> str:
        mint_key = Pubkey.from_string(mint)
        sender = self._payer.pubkey()
        recipient_key = Pubkey.from_string(recipient)
        source = get_associated_token_address(sender, mint_key)
        dest = get_associated_token_address(recipient_key, mint_key)

        async with self._rpc("transfer", mint=mint, recipient=recipient, amount=amount):
            decimals = await self._decimals(mint)
            instructions: list[Instruction] = []
            if (await self._client.get_account_info(dest)).value is None:
                instructions.append(
                    create_associated_token_account(payer=sender, owner=recipient_key, mint=mint_key)
                )
            instructions.append(
                transfer_checked(
                    TransferCheckedParams(
                        program_id=TOKEN_PROGRAM_ID,
                        source=source,
                        mint=mint_key,
                        dest=dest,
                        owner=sender,
                        amount=amount,
                        decimals=decimals,
                    )
                )
            )
            return await self._send(instructions, [self._payer])
