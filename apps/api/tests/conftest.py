"""Shared test fixtures for the Product Ledger API test suite."""

import os

# Settings are read at import time; point the app at in-memory SQLite
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DATABASE_URL_SYNC"] = "sqlite://"
os.environ["APP_ENV"] = "test"
os.environ["SENTRY_DSN"] = ""

import dataclasses
import itertools
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from solders.keypair import Keypair
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.dependencies import get_ledger
from app.core.errors import LedgerError
from app.main import app
from app.models.manufacturing import Batch, Product
from app.services.ledger import CreatedToken, LedgerService, MintInfo


def new_address() -> str:
    """A fresh, syntactically valid Solana address."""
    return str(Keypair().pubkey())


# ── Fake ledger ──────────────────────────────────────────────────────────────


class FakeLedger(LedgerService):
    """In-memory LedgerService: mints, balances and a transfer log.

    Recipients in ``failing_recipients`` are rejected at transfer time, the
    way a real ledger rejects a syntactically valid but unusable account.
    """

    def __init__(self, cluster: str = "devnet") -> None:
        self.cluster = cluster
        self._owner = new_address()
        self._signatures = itertools.count(1)
        self.accounts: set[str] = set()
        self.mints: dict[str, MintInfo] = {}
        self.balances: dict[tuple[str, str], int] = {}
        self.failing_recipients: set[str] = set()
        self.fail_uploads = False
        self.fail_token_creation = False
        self.fail_nft_creation = False
        self.fail_balance_lookups = False
        self.uploaded: list[dict[str, Any]] = []
        self.nfts: dict[str, dict[str, Any]] = {}
        self.transfers: list[tuple[str, str, int]] = []
        self.balance_queries = 0

    @property
    def owner_address(self) -> str:
        return self._owner

    def _next_signature(self, prefix: str) -> str:
        return f"{prefix}{next(self._signatures):06d}"

    def add_nft(self) -> str:
        address = new_address()
        self.accounts.add(address)
        return address

    def add_token(self, decimals: int = 0, owner_balance: int | None = 0) -> str:
        mint = new_address()
        supply = owner_balance or 0
        self.mints[mint] = MintInfo(address=mint, decimals=decimals, supply=supply)
        if owner_balance is not None:
            self.balances[(mint, self._owner)] = owner_balance
        return mint

    async def account_exists(self, address: str) -> bool:
        return address in self.accounts or address in self.mints

    async def get_mint_info(self, mint: str) -> MintInfo | None:
        return self.mints.get(mint)

    async def get_token_balance(self, mint: str, owner: str | None = None) -> int | None:
        self.balance_queries += 1
        if self.fail_balance_lookups:
            raise LedgerError("Ledger balance_lookup failed: connection reset")
        return self.balances.get((mint, owner or self._owner))

    async def upload_metadata(self, document: dict[str, Any]) -> str:
        if self.fail_uploads:
            raise LedgerError("Metadata upload failed: 503 Service Unavailable")
        self.uploaded.append(document)
        return f"https://gateway.test/ipfs/Qm{len(self.uploaded):04d}"

    async def create_fungible_token(
        self, name: str, symbol: str, uri: str, decimals: int
    ) -> CreatedToken:
        if self.fail_token_creation:
            raise LedgerError("Ledger token_creation failed: blockhash not found")
        mint = self.add_token(decimals=decimals, owner_balance=None)
        return CreatedToken(
            mint=mint,
            metadata_address=new_address(),
            signature=self._next_signature("create"),
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
        if self.fail_nft_creation:
            raise LedgerError("Ledger nft_creation failed: blockhash not found")
        mint = self.add_token(decimals=0, owner_balance=1)
        self.nfts[mint] = {
            "name": name,
            "symbol": symbol,
            "uri": uri,
            "collection": collection,
            "is_collection": is_collection,
        }
        return CreatedToken(
            mint=mint,
            metadata_address=new_address(),
            signature=self._next_signature("nft"),
        )

    async def mint_to_owner(self, mint: str, amount: int) -> str:
        info = self.mints[mint]
        self.mints[mint] = dataclasses.replace(info, supply=info.supply + amount)
        key = (mint, self._owner)
        self.balances[key] = self.balances.get(key, 0) + amount
        return self._next_signature("mint")

    async def transfer(self, mint: str, recipient: str, amount: int) -> str:
        if recipient in self.failing_recipients:
            raise LedgerError("Ledger transfer failed: Transaction simulation failed")
        source = (mint, self._owner)
        if self.balances.get(source, 0) < amount:
            raise LedgerError("Ledger transfer failed: insufficient funds")
        self.balances[source] -= amount
        dest = (mint, recipient)
        self.balances[dest] = self.balances.get(dest, 0) + amount
        self.transfers.append((mint, recipient, amount))
        return self._next_signature("transfer")


# ── Core fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession]:
    """A fresh in-memory schema per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
async def client(db: AsyncSession, ledger: FakeLedger) -> AsyncGenerator[AsyncClient]:
    """Client wired to the test session and the fake ledger."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ledger] = lambda: ledger
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


# ── Sample data fixtures ─────────────────────────────────────────────────────


@pytest.fixture
async def sample_product(db: AsyncSession) -> Product:
    product = Product(
        gtin="00012345678905",
        product_name="Smart Thermostat",
        company="Acme Devices",
        category="Electronics",
        model="ST-200",
        warranty_months=24,
        is_active=True,
    )
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


@pytest.fixture
async def sample_batch(db: AsyncSession, sample_product: Product, ledger: FakeLedger) -> Batch:
    batch = Batch(
        batch_name="BATCH-2024-001",
        product_id=sample_product.id,
        manufacturing_facility="Plant 7",
        production_line="Line A",
        start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        planned_quantity=4,
        produced_quantity=0,
        nft_collection_address=ledger.add_nft(),
    )
    db.add(batch)
    await db.commit()
    await db.refresh(batch)
    return batch
