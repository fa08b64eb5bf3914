"""Shopify admin API and staged-upload transport."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping, Sequence

import httpx

from schedulr.shopify.models import FilePart, GraphQLResponse, UploadParameter, UploadResponse

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "2025-10"
# Signed upload targets verify the request; anything beyond these breaks the signature.
UPLOAD_HEADER_ALLOWLIST = frozenset({"host", "content-type", "content-length"})


class AdminClient:
    """Executes GraphQL documents against one shop's admin API."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        *,
        api_version: str = DEFAULT_API_VERSION,
        session: httpx.AsyncClient | None = None,
    ) -> None:
        shop = shop_domain.strip().removeprefix("https://").removeprefix("http://").rstrip("/")
        self.endpoint = f"https://{shop}/admin/api/{api_version}/graphql.json"
        self._headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._session = session or httpx.AsyncClient(timeout=30.0)

    @classmethod
    def from_env(cls, session: httpx.AsyncClient | None = None) -> "AdminClient":
        return cls(
            os.environ["SHOPIFY_SHOP_DOMAIN"],
            os.environ["SHOPIFY_ACCESS_TOKEN"],
            api_version=os.environ.get("SHOPIFY_API_VERSION", DEFAULT_API_VERSION),
            session=session,
        )

    async def close(self) -> None:
        await self._session.aclose()

    async def execute(self, query: str, variables: Mapping[str, Any] | None = None) -> GraphQLResponse:
        payload = {"query": query, "variables": dict(variables or {})}
        response = await self._session.post(self.endpoint, json=payload, headers=self._headers)
        response.raise_for_status()
        body = response.json()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("GraphQL response: %s", json.dumps(body, indent=2))
        return GraphQLResponse(data=body.get("data"), errors=body.get("errors"))


class HttpObjectUploader:
    """Posts multipart bodies to a signed object-storage target."""

    def __init__(self, *, session: httpx.AsyncClient | None = None) -> None:
        self._session = session or httpx.AsyncClient(timeout=60.0)

    async def close(self) -> None:
        await self._session.aclose()

    async def post_multipart(
        self, url: str, fields: Sequence[UploadParameter], file: FilePart
    ) -> UploadResponse:
        # httpx writes ``data`` fields in insertion order before any ``files``.
        data = {param.name: param.value for param in fields}
        files = {file.name: (file.filename, file.data, file.mime_type)}
        request = self._session.build_request("POST", url, data=data, files=files)
        for name in list(request.headers.keys()):
            if name.lower() not in UPLOAD_HEADER_ALLOWLIST:
                del request.headers[name]
        logger.debug("Uploading %s bytes to %s", len(file.data), url)
        response = await self._session.send(request)
        return UploadResponse(status_code=response.status_code, body=response.text)
