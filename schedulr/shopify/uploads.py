"""Staged image uploads.

Uploading an image to the shop's file library takes three calls: create a
signed staged-upload target, POST the bytes to object storage, then register
the stored object with ``fileCreate``. Shopify derives the public image URL
asynchronously, so the last step may be followed by a short bounded poll.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from schedulr.shopify.models import (
    AssetRef,
    FilePart,
    GraphQLExecutor,
    GraphQLResponse,
    ImageUpload,
    ObjectUploader,
    UploadFailure,
    UploadParameter,
    UploadPhase,
    UploadResult,
    UploadTarget,
)
from schedulr.utils.logs import truncate
from schedulr.utils.retry import poll_until

logger = logging.getLogger(__name__)

EXCERPT_LIMIT = 200
ASSET_NOT_READY = "AssetNotReadyTimeout"

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters { name value }
    }
    userErrors { field message }
  }
}
"""

FILE_CREATE = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
      ... on MediaImage {
        id
        fileStatus
        alt
        image { url altText }
      }
    }
    userErrors { field message }
  }
}
"""

FILE_BY_ID = """
query fileById($id: ID!) {
  file: node(id: $id) {
    ... on MediaImage {
      id
      alt
      fileStatus
      image { url }
    }
  }
}
"""


class UploadError(Exception):
    kind = "UploadFailed"
    phase = UploadPhase.FAILED

    def to_failure(self) -> UploadFailure:
        return UploadFailure(phase=self.phase, kind=self.kind, message=str(self))


class TargetCreationFailed(UploadError):
    kind = "TargetCreationFailed"
    phase = UploadPhase.REQUESTING_TARGET


class ByteUploadFailed(UploadError):
    kind = "ByteUploadFailed"
    phase = UploadPhase.UPLOADING_BYTES

    def __init__(self, message: str, status_code: int | None = None, body_excerpt: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body_excerpt = body_excerpt

    def to_failure(self) -> UploadFailure:
        failure = super().to_failure()
        failure.status_code = self.status_code
        failure.body_excerpt = self.body_excerpt
        return failure


class AssetRegistrationFailed(UploadError):
    kind = "AssetRegistrationFailed"
    phase = UploadPhase.REGISTERING_ASSET


class StagedUploadCoordinator:
    def __init__(
        self,
        executor: GraphQLExecutor,
        uploader: ObjectUploader,
        *,
        poll_attempts: int | None = None,
        poll_interval: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.executor = executor
        self.uploader = uploader
        self.poll_attempts = (
            poll_attempts if poll_attempts is not None else int(os.environ.get("UPLOAD_POLL_ATTEMPTS", 5))
        )
        self.poll_interval = (
            poll_interval if poll_interval is not None else float(os.environ.get("UPLOAD_POLL_INTERVAL", 1.0))
        )
        self._sleep = sleep

    async def upload(self, image: ImageUpload) -> UploadResult:
        """Run the staged upload for ``image``; never raises for remote failures."""
        logger.info("Uploading %s (%s, %s bytes)", image.filename, image.mime_type, image.size)
        try:
            target = await self._create_target(image)
            await self._upload_bytes(target, image)
            asset = await self._register(target, image)
        except UploadError as exc:
            logger.warning("Upload of %s failed in %s: %s", image.filename, exc.phase.value, exc)
            return UploadResult(phase=UploadPhase.FAILED, failure=exc.to_failure())

        result = UploadResult(phase=UploadPhase.DONE, asset=asset, display_url=asset.url)
        if asset.url is None:
            asset = await self._await_processing(asset)
            result.asset = asset
            if asset.url is None:
                logger.warning("File %s has no URL after %s polls", asset.id, self.poll_attempts)
                result.warnings.append(ASSET_NOT_READY)
                result.display_url = target.resource_url
            else:
                result.display_url = asset.url
        logger.info("Uploaded %s as %s", image.filename, asset.id)
        return result

    async def _create_target(self, image: ImageUpload) -> UploadTarget:
        if not image.data:
            raise TargetCreationFailed("No file provided")
        variables = {
            "input": [
                {
                    "filename": image.filename,
                    "mimeType": image.mime_type,
                    "resource": "IMAGE",
                    "httpMethod": "POST",
                    "fileSize": str(image.size),
                }
            ]
        }
        response = await self._execute(STAGED_UPLOADS_CREATE, variables, TargetCreationFailed)
        _raise_for_errors(response, "stagedUploadsCreate", TargetCreationFailed, "Failed to create staged upload")
        targets = response.get("stagedUploadsCreate", "stagedTargets") or []
        staged = targets[0] if targets else None
        if not staged or not staged.get("url"):
            raise TargetCreationFailed("Failed to create staged upload target")
        try:
            parameters = [
                UploadParameter(name=str(p["name"]), value=str(p["value"])) for p in staged.get("parameters") or []
            ]
        except (KeyError, TypeError) as exc:
            raise TargetCreationFailed(f"Malformed staged upload parameters: {exc!r}") from exc
        target = UploadTarget(
            upload_url=staged["url"],
            resource_url=staged.get("resourceUrl") or "",
            parameters=parameters,
        )
        logger.debug("Staged target %s with %s parameters", target.upload_url, len(target.parameters))
        if logger.isEnabledFor(logging.DEBUG):
            for param in target.parameters:
                logger.debug("Parameter %s = %s", param.name, truncate(param.value, 50))
        return target

    async def _upload_bytes(self, target: UploadTarget, image: ImageUpload) -> None:
        part = FilePart(name="file", filename=image.filename, mime_type=image.mime_type, data=image.data)
        try:
            response = await self.uploader.post_multipart(target.upload_url, target.parameters, part)
        except httpx.HTTPError as exc:
            raise ByteUploadFailed(f"Cloud storage upload failed: {exc}") from exc
        if not response.ok:
            excerpt = (response.body or "")[:EXCERPT_LIMIT]
            raise ByteUploadFailed(
                f"Cloud storage upload failed: {response.status_code}",
                status_code=response.status_code,
                body_excerpt=excerpt,
            )
        logger.debug("Storage responded %s: %s", response.status_code, truncate(response.body))

    async def _register(self, target: UploadTarget, image: ImageUpload) -> AssetRef:
        variables = {
            "files": [
                {
                    "contentType": "IMAGE",
                    "originalSource": target.resource_url,
                    "alt": image.filename,
                }
            ]
        }
        response = await self._execute(FILE_CREATE, variables, AssetRegistrationFailed)
        _raise_for_errors(response, "fileCreate", AssetRegistrationFailed, "Failed to register file")
        files = response.get("fileCreate", "files") or []
        node = files[0] if files else None
        if not node or not node.get("id"):
            raise AssetRegistrationFailed("File registration failed: no file id returned")
        return AssetRef(id=node["id"], url=_image_url(node), alt=node.get("alt") or image.filename)

    async def _await_processing(self, asset: AssetRef) -> AssetRef:
        logger.debug("File %s still processing; polling for URL", asset.id)

        async def fetch(attempt: int) -> dict[str, Any] | None:
            try:
                response = await self.executor.execute(FILE_BY_ID, {"id": asset.id})
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Polling %s failed on attempt %s: %s", asset.id, attempt, exc)
                return None
            if response.errors:
                logger.warning("Polling %s returned errors: %s", asset.id, ", ".join(response.error_messages))
                return None
            return response.get("file")

        node = await poll_until(
            fetch,
            attempts=self.poll_attempts,
            interval=self.poll_interval,
            done=lambda found: bool(found and _image_url(found)),
            sleep=self._sleep,
        )
        url = _image_url(node) if node else None
        if url:
            return AssetRef(id=asset.id, url=url, alt=node.get("alt") or asset.alt)
        return asset

    async def _execute(self, query: str, variables: dict[str, Any], error: type[UploadError]) -> GraphQLResponse:
        try:
            return await self.executor.execute(query, variables)
        except httpx.HTTPError as exc:
            raise error(f"Shopify request failed: {exc}") from exc
        except ValueError as exc:
            # Non-JSON body on a 2xx response
            raise error(f"Unreadable Shopify response: {exc}") from exc


def _raise_for_errors(
    response: GraphQLResponse, field: str, error: type[UploadError], prefix: str
) -> None:
    if response.errors:
        raise error(f"{prefix}: {', '.join(response.error_messages)[:EXCERPT_LIMIT]}")
    user_errors = response.get(field, "userErrors") or []
    if user_errors:
        messages = ", ".join(str(e.get("message")) for e in user_errors)
        raise error(f"{prefix}: {messages[:EXCERPT_LIMIT]}")


def _image_url(node: dict[str, Any] | None) -> str | None:
    if not node:
        return None
    image = node.get("image") or {}
    return image.get("url") or None
