"""Tests for the JSON metadata pinning client."""

import json

import httpx
import pytest

from app.core.errors import LedgerError
from app.services.metadata_storage import MetadataStorage

UPLOAD_URL = "https://pin.test/pinning/pinJSONToIPFS"


def _storage(handler, token: str = "jwt-token") -> MetadataStorage:
    return MetadataStorage(
        upload_url=UPLOAD_URL,
        token=token,
        gateway_url="https://gateway.test/ipfs/",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_upload_json_returns_gateway_uri():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"IpfsHash": "QmHash123", "PinSize": 120})

    uri = await _storage(handler).upload_json({"name": "Test Shares"}, name="Test Shares")

    assert uri == "https://gateway.test/ipfs/QmHash123"
    [request] = seen
    assert str(request.url) == UPLOAD_URL
    assert request.headers["Authorization"] == "Bearer jwt-token"
    assert json.loads(request.content) == {
        "pinataContent": {"name": "Test Shares"},
        "pinataMetadata": {"name": "Test Shares"},
    }


@pytest.mark.asyncio
async def test_upload_json_without_name():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"IpfsHash": "QmX"})

    await _storage(handler).upload_json({"a": 1})
    assert bodies == [{"pinataContent": {"a": 1}}]


@pytest.mark.asyncio
async def test_upload_json_http_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "Invalid authentication"})

    with pytest.raises(LedgerError, match="Metadata upload failed"):
        await _storage(handler).upload_json({"a": 1})


@pytest.mark.asyncio
async def test_upload_json_unexpected_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"cid": "bafy..."})

    with pytest.raises(LedgerError):
        await _storage(handler).upload_json({"a": 1})


@pytest.mark.asyncio
async def test_upload_json_network_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(LedgerError):
        await _storage(handler).upload_json({"a": 1})


@pytest.mark.asyncio
async def test_upload_json_requires_token():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(LedgerError, match="not configured"):
        await _storage(handler, token="").upload_json({"a": 1})
