"""FastAPI application for scheduled storefront content."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

import httpx
import pendulum
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from schedulr.billing import app_bridge_redirect, ensure_active_subscription
from schedulr.entities.models import ClientTimezone, EntryChanges, EntryDraft, PublishState
from schedulr.entities.service import EntityOperationFailed, EntityService, EntryValidationError
from schedulr.logic.listing import filter_media, format_sort_keys, parse_sort_keys, sort_entries, toggle_sort
from schedulr.shopify.client import AdminClient, HttpObjectUploader
from schedulr.shopify.models import GraphQLExecutor, ImageUpload, MediaFile, ObjectUploader
from schedulr.shopify.uploads import StagedUploadCoordinator
from schedulr.utils.dates import InvalidDateFormat
from schedulr.utils.logs import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    load_dotenv()
    configure_logging()
    yield


app = FastAPI(title="Schedulr Admin API", lifespan=lifespan)


class EntryAction(BaseModel):
    intent: Literal["update", "delete", "toggleStatus"]
    id: str
    title: str | None = None
    positionId: str | None = None
    headline: str | None = None
    description: str | None = None
    startAt: str | None = None
    endAt: str | None = None
    desktopBanner: str | None = None
    mobileBanner: str | None = None
    targetUrl: str | None = None
    buttonText: str | None = None
    status: str | None = None
    timezone: str | None = None
    timezoneOffset: Any = None
    timezone_offset: Any = None


async def get_executor() -> AsyncIterator[GraphQLExecutor]:
    client = AdminClient.from_env()
    try:
        yield client
    finally:
        await client.close()


async def get_uploader() -> AsyncIterator[ObjectUploader]:
    uploader = HttpObjectUploader()
    try:
        yield uploader
    finally:
        await uploader.close()


def get_entity_service(executor: GraphQLExecutor = Depends(get_executor)) -> EntityService:
    return EntityService(executor)


def get_coordinator(
    executor: GraphQLExecutor = Depends(get_executor),
    uploader: ObjectUploader = Depends(get_uploader),
) -> StagedUploadCoordinator:
    return StagedUploadCoordinator(executor, uploader)


def _failure(message: str, status_code: int = 400, **extra: Any) -> JSONResponse:
    return JSONResponse({"success": False, "error": message, **extra}, status_code=status_code)


@app.exception_handler(InvalidDateFormat)
async def invalid_date_handler(_: Request, exc: InvalidDateFormat) -> JSONResponse:
    logger.warning("Invalid date input: %s", exc)
    return _failure(str(exc), 400)


@app.exception_handler(EntityOperationFailed)
async def entity_failure_handler(_: Request, exc: EntityOperationFailed) -> JSONResponse:
    if isinstance(exc, EntryValidationError):
        return _failure(str(exc), 400)
    return _failure(str(exc), 502)


@app.exception_handler(httpx.HTTPError)
async def upstream_error_handler(_: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.exception("Shopify request failed")
    return _failure(f"Failed to process request: {exc}", 502)


@app.exception_handler(Exception)
async def unexpected_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error processing request")
    return _failure(f"Failed to process request: {exc}", 500)


@app.get("/entries")
async def list_entries(
    sort: str | None = Query(None),
    toggle: str | None = Query(None),
    executor: GraphQLExecutor = Depends(get_executor),
    service: EntityService = Depends(get_entity_service),
) -> JSONResponse:
    confirmation_url = await ensure_active_subscription(executor)
    if confirmation_url:
        return app_bridge_redirect(confirmation_url)
    try:
        keys = parse_sort_keys(sort)
        if toggle:
            keys = toggle_sort(keys, toggle.strip())
    except ValueError as exc:
        return _failure(str(exc), 400)
    try:
        entries = await service.list_entries()
    except (EntityOperationFailed, httpx.HTTPError) as exc:
        logger.error("Failed to load entries: %s", exc)
        return JSONResponse(
            {"success": False, "entries": [], "mediaFiles": [], "sort": format_sort_keys(keys), "error": str(exc)}
        )
    media = await service.list_media_files()
    return JSONResponse(
        {
            "success": True,
            "entries": [entry.to_payload() for entry in sort_entries(entries, keys)],
            "sort": format_sort_keys(keys),
            "mediaFiles": [_media_payload(f) for f in media],
        }
    )


@app.post("/entries")
async def create_entry(
    position_id: str = Form(""),
    title: str = Form(""),
    headline: str = Form(""),
    description: str = Form(""),
    start_at: str = Form(""),
    end_at: str = Form(""),
    target_url: str = Form(""),
    button_text: str = Form(""),
    status: str | None = Form(None),
    desktop_banner: str = Form(""),
    mobile_banner: str = Form(""),
    timezone: str = Form(""),
    timezone_offset: str = Form(""),
    executor: GraphQLExecutor = Depends(get_executor),
    service: EntityService = Depends(get_entity_service),
) -> JSONResponse:
    confirmation_url = await ensure_active_subscription(executor)
    if confirmation_url:
        return app_bridge_redirect(confirmation_url)
    draft = EntryDraft(
        title=title.strip(),
        position_id=position_id.strip(),
        headline=headline.strip(),
        description=description.strip(),
        start_at=start_at.strip(),
        end_at=end_at.strip(),
        target_url=target_url.strip(),
        button_text=button_text.strip(),
        desktop_banner=desktop_banner.strip(),
        mobile_banner=mobile_banner.strip(),
        publish_state=PublishState.ACTIVE if status else PublishState.DRAFT,
    )
    tz = ClientTimezone(name=timezone.strip() or None, offset_minutes=timezone_offset)
    entry_id = await service.create_entry(draft, tz)
    return JSONResponse({"success": True, "id": entry_id, "message": "Entry created successfully!"})


@app.post("/entries/actions")
async def entry_action(
    action: EntryAction,
    executor: GraphQLExecutor = Depends(get_executor),
    service: EntityService = Depends(get_entity_service),
) -> JSONResponse:
    confirmation_url = await ensure_active_subscription(executor)
    if confirmation_url:
        return app_bridge_redirect(confirmation_url)
    logger.debug("Entry action %s for %s", action.intent, action.id)

    if action.intent == "delete":
        await service.delete_entry(action.id)
        return JSONResponse({"success": True, "message": "Entry deleted successfully!"})

    if action.intent == "toggleStatus":
        try:
            state = PublishState.parse(action.status)
        except ValueError as exc:
            return _failure(str(exc), 400)
        new_state = await service.set_status(action.id, state)
        return JSONResponse({"success": True, "status": new_state.value, "message": "Status updated successfully!"})

    offset = action.timezoneOffset if action.timezoneOffset is not None else action.timezone_offset
    tz = ClientTimezone(name=(action.timezone or "").strip() or None, offset_minutes=offset)
    changes = EntryChanges(
        title=action.title,
        position_id=action.positionId,
        headline=action.headline,
        description=action.description,
        start_at=action.startAt,
        end_at=action.endAt,
        target_url=action.targetUrl,
        button_text=action.buttonText,
        desktop_banner=action.desktopBanner,
        mobile_banner=action.mobileBanner,
    )
    await service.update_entry(action.id, changes, tz)
    return JSONResponse({"success": True, "message": "Entry updated successfully!"})


@app.post("/files")
async def upload_file(
    file: UploadFile | None = File(None),
    executor: GraphQLExecutor = Depends(get_executor),
    coordinator: StagedUploadCoordinator = Depends(get_coordinator),
) -> JSONResponse:
    confirmation_url = await ensure_active_subscription(executor)
    if confirmation_url:
        return app_bridge_redirect(confirmation_url)
    if file is None:
        return _failure("No file provided", 400)
    data = await file.read()
    image = ImageUpload.from_source(data, file.filename, file.content_type)
    result = await coordinator.upload(image)
    payload = result.to_payload(created_at=pendulum.now("UTC").to_iso8601_string())
    return JSONResponse(payload, status_code=200 if result.ok else 502)


@app.get("/files")
async def list_files(
    q: str | None = Query(None),
    executor: GraphQLExecutor = Depends(get_executor),
    service: EntityService = Depends(get_entity_service),
) -> JSONResponse:
    confirmation_url = await ensure_active_subscription(executor)
    if confirmation_url:
        return app_bridge_redirect(confirmation_url)
    files = filter_media(await service.list_media_files(), q)
    return JSONResponse({"success": True, "files": [_media_payload(f) for f in files]})


def _media_payload(media: MediaFile) -> dict[str, Any]:
    return {"id": media.id, "url": media.url, "alt": media.alt, "createdAt": media.created_at}
