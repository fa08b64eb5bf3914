"""Metaobject-backed storage for scheduled entries."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from schedulr.entities import ENTITY_TYPE, load_definition
from schedulr.entities.models import (
    ClientTimezone,
    EntryChanges,
    EntryDraft,
    PublishState,
    ScheduledEntity,
)
from schedulr.logic.listing import newest_first
from schedulr.shopify.models import GraphQLExecutor, GraphQLResponse, MediaFile
from schedulr.utils.dates import InvalidDateFormat, default_bounds, to_absolute

logger = logging.getLogger(__name__)

DEFINITION_BY_TYPE = """
query definitionByType($type: String!) {
  metaobjectDefinitionByType(type: $type) { id type }
}
"""

DEFINITION_CREATE = """
mutation metaobjectDefinitionCreate($definition: MetaobjectDefinitionCreateInput!) {
  metaobjectDefinitionCreate(definition: $definition) {
    metaobjectDefinition { id type }
    userErrors { field message }
  }
}
"""

LIST_ENTRIES = """
query listEntries($type: String!, $first: Int!) {
  metaobjects(type: $type, first: $first) {
    nodes {
      id
      handle
      fields {
        key
        value
        reference {
          ... on MediaImage { id alt image { url } }
        }
      }
      capabilities { publishable { status } }
      updatedAt
    }
  }
}
"""

CREATE_ENTRY = """
mutation metaobjectCreate($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject { id handle capabilities { publishable { status } } }
    userErrors { field message }
  }
}
"""

UPDATE_ENTRY = """
mutation metaobjectUpdate($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject { id handle capabilities { publishable { status } } }
    userErrors { field message }
  }
}
"""

DELETE_ENTRY = """
mutation metaobjectDelete($id: ID!) {
  metaobjectDelete(id: $id) {
    deletedId
    userErrors { field message }
  }
}
"""

LIST_MEDIA = """
query mediaFiles($first: Int!) {
  files(first: $first, query: "media_type:image") {
    edges {
      node {
        id
        createdAt
        ... on MediaImage { alt image { url width height } }
      }
    }
  }
}
"""


class EntityOperationFailed(Exception):
    """A metaobject request was rejected by Shopify."""


class EntryValidationError(EntityOperationFailed):
    """Submitted entry fields are incomplete or malformed."""


class EntityService:
    def __init__(self, executor: GraphQLExecutor, *, entity_type: str = ENTITY_TYPE) -> None:
        self.executor = executor
        self.entity_type = entity_type

    async def ensure_definition(self) -> bool:
        response = await self.executor.execute(DEFINITION_BY_TYPE, {"type": self.entity_type})
        if response.get("metaobjectDefinitionByType", "id"):
            return False
        definition = load_definition()
        definition["type"] = self.entity_type
        logger.info("Creating metaobject definition %s", self.entity_type)
        response = await self.executor.execute(DEFINITION_CREATE, {"definition": definition})
        _check(response, "metaobjectDefinitionCreate", "ensure metaobject definition")
        return True

    async def list_entries(self, first: int = 50) -> list[ScheduledEntity]:
        response = await self.executor.execute(LIST_ENTRIES, {"type": self.entity_type, "first": first})
        if response.errors:
            messages = ", ".join(response.error_messages)
            logger.error("GraphQL errors listing entries: %s", messages)
            if "metaobject definition" in messages or "type" in messages:
                raise EntityOperationFailed(
                    "Metaobject definition not found. Please ensure the app has been properly installed."
                )
            raise EntityOperationFailed(f"Failed to load entries: {messages}")
        nodes = response.get("metaobjects", "nodes") or []
        return [ScheduledEntity.from_node(node) for node in nodes]

    async def create_entry(self, draft: EntryDraft, tz: ClientTimezone | None = None) -> str:
        tz = tz or ClientTimezone()
        if not draft.title:
            raise EntryValidationError("Title is required")
        if not draft.position_id:
            raise EntryValidationError("Position ID is required")
        start_at = _schedule_value(draft.start_at, tz, "start")
        end_at = _schedule_value(draft.end_at, tz, "end")
        await self.ensure_definition()

        fields = [
            {"key": "title", "value": draft.title},
            {"key": "position_id", "value": draft.position_id},
            {"key": "headline", "value": draft.headline},
            {"key": "description", "value": draft.description},
            {"key": "start_at", "value": start_at},
            {"key": "end_at", "value": end_at},
            {"key": "target_url", "value": draft.target_url},
            {"key": "button_text", "value": draft.button_text},
        ]
        if draft.desktop_banner:
            fields.append({"key": "desktop_banner", "value": draft.desktop_banner})
        if draft.mobile_banner:
            fields.append({"key": "mobile_banner", "value": draft.mobile_banner})

        metaobject = {
            "type": self.entity_type,
            "fields": fields,
            "capabilities": {"publishable": {"status": draft.publish_state.value}},
        }
        logger.debug("Creating entry %r for position %r (%s to %s)", draft.title, draft.position_id, start_at, end_at)
        response = await self.executor.execute(CREATE_ENTRY, {"metaobject": metaobject})
        _check(response, "metaobjectCreate", "create entry")
        entry_id = response.get("metaobjectCreate", "metaobject", "id")
        if not entry_id:
            raise EntityOperationFailed("Unknown error occurred while creating entry")
        logger.info("Created entry %s", entry_id)
        return entry_id

    async def update_entry(self, entry_id: str, changes: EntryChanges, tz: ClientTimezone | None = None) -> str:
        tz = tz or ClientTimezone()
        if not entry_id:
            raise EntryValidationError("Entry id is required")
        fields: list[dict[str, str]] = []
        if changes.title:
            fields.append({"key": "title", "value": changes.title})
        if changes.position_id:
            fields.append({"key": "position_id", "value": changes.position_id})
        for key in ("headline", "description"):
            value = getattr(changes, key)
            if value is not None:
                fields.append({"key": key, "value": value})
        if changes.start_at is not None:
            fields.append({"key": "start_at", "value": _schedule_value(changes.start_at, tz, "start")})
        if changes.end_at is not None:
            fields.append({"key": "end_at", "value": _schedule_value(changes.end_at, tz, "end")})
        if changes.desktop_banner:
            fields.append({"key": "desktop_banner", "value": changes.desktop_banner})
        if changes.mobile_banner:
            fields.append({"key": "mobile_banner", "value": changes.mobile_banner})
        for key in ("target_url", "button_text"):
            value = getattr(changes, key)
            if value is not None:
                fields.append({"key": key, "value": value})

        response = await self.executor.execute(UPDATE_ENTRY, {"id": entry_id, "metaobject": {"fields": fields}})
        _check(response, "metaobjectUpdate", "update entry")
        logger.info("Updated entry %s (%s fields)", entry_id, len(fields))
        return entry_id

    async def set_status(self, entry_id: str, state: PublishState) -> PublishState:
        metaobject = {"capabilities": {"publishable": {"status": state.value}}}
        response = await self.executor.execute(UPDATE_ENTRY, {"id": entry_id, "metaobject": metaobject})
        _check(response, "metaobjectUpdate", "toggle status")
        status = response.get("metaobjectUpdate", "metaobject", "capabilities", "publishable", "status")
        logger.info("Entry %s is now %s", entry_id, status or state.value)
        return PublishState.parse(status) if status else state

    async def delete_entry(self, entry_id: str) -> str:
        response = await self.executor.execute(DELETE_ENTRY, {"id": entry_id})
        _check(response, "metaobjectDelete", "delete entry")
        deleted = response.get("metaobjectDelete", "deletedId") or entry_id
        logger.info("Deleted entry %s", deleted)
        return deleted

    async def list_media_files(self, first: int = 250) -> list[MediaFile]:
        try:
            response = await self.executor.execute(LIST_MEDIA, {"first": first})
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Error loading media files: %s", exc)
            return []
        if response.errors:
            logger.error("Error loading media files: %s", ", ".join(response.error_messages))
            return []
        edges = response.get("files", "edges") or []
        files = [_media_from_node(edge.get("node") or {}) for edge in edges]
        return newest_first([f for f in files if f.id])


def _check(response: GraphQLResponse, field: str, action: str) -> None:
    if response.errors:
        messages = ", ".join(response.error_messages)
        logger.error("GraphQL errors trying to %s: %s", action, messages)
        raise EntityOperationFailed(f"Failed to {action}: {messages}")
    user_errors: list[dict[str, Any]] = response.get(field, "userErrors") or []
    if user_errors:
        messages = ", ".join(str(e.get("message")) for e in user_errors)
        logger.error("User errors trying to %s: %s", action, messages)
        raise EntityOperationFailed(f"Failed to {action}: {messages}")


def _schedule_value(raw: str, tz: ClientTimezone, bound: str) -> str:
    raw = (raw or "").strip()
    if not raw:
        defaults = default_bounds(tz.name, tz.offset_minutes)
        return defaults.start if bound == "start" else defaults.end
    try:
        return to_absolute(raw, tz.name, tz.offset_minutes)
    except InvalidDateFormat as exc:
        raise InvalidDateFormat(
            f"Invalid {bound.title()} Date format. Please ensure the date is valid."
        ) from exc


def _media_from_node(node: dict[str, Any]) -> MediaFile:
    image = node.get("image") or {}
    return MediaFile(
        id=node.get("id") or "",
        url=image.get("url") or "",
        alt=node.get("alt") or "",
        created_at=node.get("createdAt"),
    )
