"""Durable storage for JSON metadata documents (IPFS pinning over HTTP)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from app.core.errors import LedgerError

logger = structlog.get_logger()


class MetadataStorage:
    """Pins a JSON document and returns its gateway URI.

    The upload endpoint follows the Pinata ``pinJSONToIPFS`` contract:
    bearer-token auth, ``{"pinataContent": ...}`` body, ``IpfsHash`` in the
    response.
    """

    def __init__(
        self,
        upload_url: str,
        token: str,
        gateway_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.upload_url = upload_url
        self.gateway_url = gateway_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def upload_json(self, document: dict[str, Any], name: str | None = None) -> str:
        if not self._token:
            raise LedgerError("Metadata storage is not configured (METADATA_UPLOAD_TOKEN unset)")

        payload: dict[str, Any] = {"pinataContent": document}
        if name:
            payload["pinataMetadata"] = {"name": name}

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.upload_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._token}"},
                )
                resp.raise_for_status()
                content_hash = resp.json()["IpfsHash"]
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("metadata.upload_failed", url=self.upload_url, error=str(exc))
            raise LedgerError(f"Metadata upload failed: {exc}") from exc

        uri = f"{self.gateway_url}/{content_hash}"
        logger.info("metadata.uploaded", uri=uri)
        return uri
