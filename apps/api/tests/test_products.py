"""Tests for the Products module."""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.manufacturing import Batch, Product
from app.modules.products import service

PRODUCT_PAYLOAD = {
    "gtin": "04006381333931",
    "productName": "Espresso Machine",
    "company": "Brewline",
    "category": "Appliances",
    "model": "EM-9",
    "warrantyMonths": 36,
    "specifications": {"pressure": "15 bar"},
    "metadata": {"source": "erp"},
}


# ── Service helpers ──────────────────────────────────────────────────────────


def test_format_rate():
    assert service.format_rate(1, 4) == "25.00%"
    assert service.format_rate(2, 3) == "66.67%"


def test_format_rate_zero_denominator():
    assert service.format_rate(5, 0) == "0%"


# ── API ──────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_product(client: AsyncClient):
    resp = await client.post("/v1/products", json=PRODUCT_PAYLOAD)
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Product created successfully"
    data = body["data"]
    assert data["gtin"] == "04006381333931"
    assert data["isActive"] is True
    assert data["metadata"] == {"source": "erp"}
    assert data["specifications"] == {"pressure": "15 bar"}


@pytest.mark.asyncio
async def test_create_product_duplicate_gtin(client: AsyncClient, sample_product: Product):
    payload = {**PRODUCT_PAYLOAD, "gtin": sample_product.gtin}
    resp = await client.post("/v1/products", json=payload)
    assert resp.status_code == 409
    body = resp.json()
    assert body["message"] == "Product with this GTIN already exists"
    assert body["data"]["existingProduct"]["productName"] == "Smart Thermostat"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"gtin": "ABC123"},
        {"gtin": ""},
        {"productName": "   "},
        {"warrantyMonths": 121},
        {"warrantyMonths": -1},
    ],
)
async def test_create_product_validation(client: AsyncClient, override):
    resp = await client.post("/v1/products", json={**PRODUCT_PAYLOAD, **override})
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert body["errors"]


@pytest.mark.asyncio
async def test_get_product_with_batches(client: AsyncClient, sample_product, sample_batch):
    resp = await client.get(f"/v1/products/{sample_product.gtin}")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["productName"] == "Smart Thermostat"
    assert [b["batchName"] for b in data["batches"]] == ["BATCH-2024-001"]


@pytest.mark.asyncio
async def test_get_product_not_found(client: AsyncClient):
    resp = await client.get("/v1/products/99999999")
    assert resp.status_code == 404
    assert resp.json() == {"success": False, "message": "Product not found", "error": "not_found"}


@pytest.mark.asyncio
async def test_list_products_filters_and_pagination(client: AsyncClient):
    for i, company in enumerate(["Brewline", "Brewline", "Coldline"]):
        payload = {**PRODUCT_PAYLOAD, "gtin": f"1000000{i}", "company": company}
        assert (await client.post("/v1/products", json=payload)).status_code == 201

    resp = await client.get("/v1/products", params={"company": "Brewline"})
    data = resp.json()["data"]
    assert data["pagination"]["total"] == 2
    assert {p["company"] for p in data["products"]} == {"Brewline"}

    resp = await client.get("/v1/products", params={"limit": 2, "offset": 0})
    data = resp.json()["data"]
    assert len(data["products"]) == 2
    assert data["pagination"] == {"total": 3, "limit": 2, "offset": 0, "hasMore": True}


@pytest.mark.asyncio
async def test_list_products_rejects_bad_limit(client: AsyncClient):
    resp = await client.get("/v1/products", params={"limit": 500})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_update_product(client: AsyncClient, sample_product):
    resp = await client.put(
        f"/v1/products/{sample_product.gtin}",
        json={"productName": "Smart Thermostat v2", "warrantyMonths": 36},
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["productName"] == "Smart Thermostat v2"
    assert data["warrantyMonths"] == 36
    assert data["company"] == "Acme Devices"
    assert data["gtin"] == sample_product.gtin


@pytest.mark.asyncio
async def test_update_product_ignores_gtin(client: AsyncClient, sample_product):
    resp = await client.put(f"/v1/products/{sample_product.gtin}", json={"gtin": "123"})
    assert resp.status_code == 200
    assert resp.json()["data"]["gtin"] == sample_product.gtin


@pytest.mark.asyncio
async def test_deactivate_product(client: AsyncClient, sample_product):
    resp = await client.put(f"/v1/products/{sample_product.gtin}/deactivate")
    assert resp.status_code == 200
    assert resp.json()["data"]["isActive"] is False

    resp = await client.get("/v1/products", params={"isActive": "false"})
    assert resp.json()["data"]["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_delete_product(client: AsyncClient, sample_product):
    resp = await client.delete(f"/v1/products/{sample_product.gtin}")
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "message": "Product deleted successfully"}
    assert (await client.get(f"/v1/products/{sample_product.gtin}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_product_with_batches_refused(client: AsyncClient, sample_product, sample_batch):
    resp = await client.delete(f"/v1/products/{sample_product.gtin}")
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Cannot delete product with existing batches. Deactivate instead."
    assert body["data"] == {"batchCount": 1}


@pytest.mark.asyncio
async def test_product_stats(client: AsyncClient, db: AsyncSession, sample_product, sample_batch):
    sample_batch.produced_quantity = 3
    db.add(
        Batch(
            batch_name="BATCH-2024-002",
            product_id=sample_product.id,
            manufacturing_facility="Plant 7",
            production_line="Line B",
            start_date=sample_batch.start_date,
            planned_quantity=4,
            produced_quantity=1,
        )
    )
    await db.commit()

    resp = await client.get(f"/v1/products/{sample_product.gtin}/stats")
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["totalBatches"] == 2
    assert data["totalPlannedItems"] == 8
    assert data["totalProducedItems"] == 4
    assert data["productionRate"] == "50.00%"


@pytest.mark.asyncio
async def test_product_stats_without_batches(client: AsyncClient, sample_product):
    resp = await client.get(f"/v1/products/{sample_product.gtin}/stats")
    data = resp.json()["data"]
    assert data["totalBatches"] == 0
    assert data["productionRate"] == "0%"
