"""Tests for the Batches module."""

import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError
from app.models.enums import QualityStatus
from app.models.manufacturing import Batch, Item, Product
from app.modules.batches import service
from app.modules.batches.schemas import BatchCreate
from conftest import FakeLedger


def _batch_payload(product_id: uuid.UUID, **overrides) -> dict:
    payload = {
        "productId": str(product_id),
        "batchName": "BATCH-2024-100",
        "manufacturingFacility": "Plant 3",
        "productionLine": "Line C",
        "startDate": "2024-06-01T08:00:00Z",
        "plannedQuantity": 500,
    }
    payload.update(overrides)
    return payload


def _item(batch: Batch, serial: str, quality: QualityStatus) -> Item:
    return Item(
        serial_number=serial,
        batch_id=batch.id,
        manufacturing_date=datetime(2024, 3, 2, tzinfo=timezone.utc),
        manufacturing_operator="op-1",
        quality_status=quality,
    )


@pytest.mark.asyncio
async def test_create_batch_defaults(client: AsyncClient, sample_product: Product):
    resp = await client.post("/v1/batches", json=_batch_payload(sample_product.id))
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["status"] == "PLANNED"
    assert data["producedQuantity"] == 0
    assert data["plannedQuantity"] == 500
    assert data["product"]["gtin"] == sample_product.gtin


@pytest.mark.asyncio
async def test_create_batch_mints_collection(client: AsyncClient, ledger: FakeLedger, sample_product):
    resp = await client.post(
        "/v1/batches",
        json=_batch_payload(sample_product.id, metadata={"shift": "night"}),
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    collection = data["nftCollectionAddress"]
    assert ledger.nfts[collection] == {
        "name": "Smart Thermostat - BATCH-2024-100",
        "symbol": "BATCH20241",
        "uri": data["metadata"]["metadataUri"],
        "collection": None,
        "is_collection": True,
    }
    assert data["nftCollectionExplorerLink"] == (
        f"https://explorer.solana.com/address/{collection}?cluster=devnet"
    )
    assert data["metadata"]["shift"] == "night"
    assert data["metadata"]["creationSignature"].startswith("nft")

    document = ledger.uploaded[-1]
    traits = {a["trait_type"]: a["value"] for a in document["attributes"]}
    assert traits["Total Units"] == 500
    assert traits["Factory Location"] == "Plant 3"
    assert document["properties"]["category"] == "batch_collection"


@pytest.mark.asyncio
async def test_create_batch_nests_under_product_nft(
    client: AsyncClient, db: AsyncSession, ledger: FakeLedger, sample_product
):
    sample_product.nft_mint_address = ledger.add_nft()
    await db.commit()

    resp = await client.post("/v1/batches", json=_batch_payload(sample_product.id))
    collection = resp.json()["data"]["nftCollectionAddress"]
    assert ledger.nfts[collection]["collection"] == sample_product.nft_mint_address


@pytest.mark.asyncio
async def test_create_batch_ledger_failure_writes_nothing(
    client: AsyncClient, ledger: FakeLedger, sample_product
):
    ledger.fail_nft_creation = True
    resp = await client.post("/v1/batches", json=_batch_payload(sample_product.id))
    assert resp.status_code == 500
    resp = await client.get("/v1/batches", params={"productId": str(sample_product.id)})
    assert resp.json()["data"]["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_create_batch_commit_failure(db: AsyncSession, ledger: FakeLedger, sample_product, monkeypatch):
    async def failing_commit():
        raise OperationalError("INSERT INTO batches", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)
    body = BatchCreate.model_validate(_batch_payload(sample_product.id))
    with pytest.raises(PersistenceError) as exc_info:
        await service.create_batch(db, ledger, body)
    assert exc_info.value.data["nftCollectionAddress"] in ledger.nfts


@pytest.mark.asyncio
async def test_create_batch_unknown_product(client: AsyncClient):
    resp = await client.post("/v1/batches", json=_batch_payload(uuid.uuid4()))
    assert resp.status_code == 404
    assert resp.json()["message"] == "Product not found"


@pytest.mark.asyncio
async def test_create_batch_duplicate_name(
    client: AsyncClient, ledger: FakeLedger, sample_product, sample_batch
):
    resp = await client.post(
        "/v1/batches",
        json=_batch_payload(sample_product.id, batchName=sample_batch.batch_name),
    )
    assert resp.status_code == 409
    assert resp.json()["message"] == "Batch with this name already exists for this product"
    assert ledger.nfts == {}


@pytest.mark.asyncio
async def test_create_batch_zero_planned_quantity(client: AsyncClient, sample_product):
    resp = await client.post("/v1/batches", json=_batch_payload(sample_product.id, plannedQuantity=0))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_create_batch_invalid_status(client: AsyncClient, sample_product):
    resp = await client.post("/v1/batches", json=_batch_payload(sample_product.id, status="DONE"))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_get_batch_with_items(client: AsyncClient, db: AsyncSession, sample_batch):
    db.add(_item(sample_batch, "SN-0002", QualityStatus.PASSED))
    db.add(_item(sample_batch, "SN-0001", QualityStatus.PENDING))
    await db.commit()

    resp = await client.get(f"/v1/batches/{sample_batch.id}")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["product"]["productName"] == "Smart Thermostat"
    assert [i["serialNumber"] for i in data["items"]] == ["SN-0001", "SN-0002"]


@pytest.mark.asyncio
async def test_get_batch_not_found(client: AsyncClient):
    resp = await client.get(f"/v1/batches/{uuid.uuid4()}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_get_batch_malformed_id(client: AsyncClient):
    resp = await client.get("/v1/batches/not-a-uuid")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_list_batches_filters(client: AsyncClient, sample_product, sample_batch):
    await client.post(
        "/v1/batches",
        json=_batch_payload(sample_product.id, batchName="B-2", status="IN_PROGRESS"),
    )

    resp = await client.get("/v1/batches", params={"productId": str(sample_product.id)})
    assert resp.json()["data"]["pagination"]["total"] == 2

    resp = await client.get("/v1/batches", params={"status": "IN_PROGRESS"})
    data = resp.json()["data"]
    assert data["pagination"]["total"] == 1
    assert data["batches"][0]["batchName"] == "B-2"


@pytest.mark.asyncio
async def test_update_batch_fields(client: AsyncClient, sample_batch):
    resp = await client.put(
        f"/v1/batches/{sample_batch.id}",
        json={"status": "COMPLETED", "endDate": "2024-03-20T17:00:00Z"},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "COMPLETED"
    assert data["endDate"].startswith("2024-03-20T17:00:00")


@pytest.mark.asyncio
async def test_update_batch_top_up(client: AsyncClient, db: AsyncSession, sample_batch):
    sample_batch.produced_quantity = 2
    await db.commit()

    resp = await client.put(f"/v1/batches/{sample_batch.id}", json={"topUpQuantity": 5})
    assert resp.status_code == 200
    assert resp.json()["data"]["producedQuantity"] == 7


@pytest.mark.asyncio
async def test_update_batch_rename_conflict(client: AsyncClient, sample_product, sample_batch):
    await client.post("/v1/batches", json=_batch_payload(sample_product.id, batchName="B-2"))
    resp = await client.put(f"/v1/batches/{sample_batch.id}", json={"batchName": "B-2"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_delete_batch(client: AsyncClient, sample_batch):
    resp = await client.delete(f"/v1/batches/{sample_batch.id}")
    assert resp.status_code == 200
    assert (await client.get(f"/v1/batches/{sample_batch.id}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_batch_with_items_refused(client: AsyncClient, db: AsyncSession, sample_batch):
    db.add(_item(sample_batch, "SN-0001", QualityStatus.PENDING))
    await db.commit()

    resp = await client.delete(f"/v1/batches/{sample_batch.id}")
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Cannot delete batch with existing items"
    assert body["data"] == {"itemCount": 1}


@pytest.mark.asyncio
async def test_batch_stats(client: AsyncClient, db: AsyncSession, sample_batch):
    sample_batch.produced_quantity = 3
    db.add(_item(sample_batch, "SN-0001", QualityStatus.PASSED))
    db.add(_item(sample_batch, "SN-0002", QualityStatus.PASSED))
    db.add(_item(sample_batch, "SN-0003", QualityStatus.REWORK))
    await db.commit()

    resp = await client.get(f"/v1/batches/{sample_batch.id}/stats")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["completionRate"] == "75.00%"
    assert data["qualityStats"] == {"passed": 2, "failed": 0, "pending": 0, "rework": 1}
    assert data["status"] == "PLANNED"
