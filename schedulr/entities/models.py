"""Scheduled entity data models."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from schedulr.shopify.models import AssetRef
from schedulr.utils.dates import default_bounds


class PublishState(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"

    @classmethod
    def parse(cls, value: Any) -> "PublishState":
        try:
            return cls(str(value).strip().upper())
        except ValueError as exc:
            raise ValueError(f"Invalid status: {value!r}") from exc


@dataclass(slots=True)
class ScheduleWindow:
    start: str
    end: str


@dataclass(slots=True)
class EntryContent:
    headline: str = ""
    description: str = ""
    button_text: str = ""
    target_url: str = ""


@dataclass(slots=True)
class Banners:
    desktop: AssetRef | None = None
    mobile: AssetRef | None = None


@dataclass(slots=True)
class ClientTimezone:
    name: str | None = None
    offset_minutes: Any = None


@dataclass(slots=True)
class ScheduledEntity:
    id: str
    handle: str
    position_id: str
    title: str
    schedule: ScheduleWindow
    content: EntryContent = field(default_factory=EntryContent)
    banners: Banners = field(default_factory=Banners)
    publish_state: PublishState = PublishState.DRAFT
    updated_at: str | None = None

    @classmethod
    def from_node(cls, node: dict[str, Any]) -> "ScheduledEntity":
        fields = {f["key"]: f for f in node.get("fields") or []}

        def value(key: str) -> str:
            return (fields.get(key) or {}).get("value") or ""

        defaults = default_bounds()
        status = ((node.get("capabilities") or {}).get("publishable") or {}).get("status")
        return cls(
            id=node["id"],
            handle=node.get("handle") or "",
            position_id=value("position_id"),
            title=value("title"),
            schedule=ScheduleWindow(start=value("start_at") or defaults.start, end=value("end_at") or defaults.end),
            content=EntryContent(
                headline=value("headline"),
                description=value("description"),
                button_text=value("button_text"),
                target_url=value("target_url"),
            ),
            banners=Banners(
                desktop=_asset_from_field(fields.get("desktop_banner")),
                mobile=_asset_from_field(fields.get("mobile_banner")),
            ),
            publish_state=PublishState.ACTIVE if status == PublishState.ACTIVE.value else PublishState.DRAFT,
            updated_at=node.get("updatedAt"),
        )

    def field_value(self, key: str) -> str:
        lookup = {
            "title": self.title,
            "position_id": self.position_id,
            "start_at": self.schedule.start,
            "end_at": self.schedule.end,
            "headline": self.content.headline,
            "description": self.content.description,
            "button_text": self.content.button_text,
            "target_url": self.content.target_url,
        }
        return lookup[key]

    def to_payload(self) -> dict[str, Any]:
        def banner(ref: AssetRef | None) -> dict[str, Any] | None:
            return {"id": ref.id, "url": ref.url, "alt": ref.alt} if ref else None

        return {
            "id": self.id,
            "handle": self.handle,
            "positionId": self.position_id,
            "title": self.title,
            "startAt": self.schedule.start,
            "endAt": self.schedule.end,
            "headline": self.content.headline,
            "description": self.content.description,
            "buttonText": self.content.button_text,
            "targetUrl": self.content.target_url,
            "desktopBanner": banner(self.banners.desktop),
            "mobileBanner": banner(self.banners.mobile),
            "status": self.publish_state.value,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class EntryDraft:
    """Fields submitted by the create form, already trimmed."""

    title: str
    position_id: str
    headline: str = ""
    description: str = ""
    start_at: str = ""
    end_at: str = ""
    target_url: str = ""
    button_text: str = ""
    desktop_banner: str = ""
    mobile_banner: str = ""
    publish_state: PublishState = PublishState.DRAFT


@dataclass(slots=True)
class EntryChanges:
    """Partial update; ``None`` leaves a field untouched."""

    title: str | None = None
    position_id: str | None = None
    headline: str | None = None
    description: str | None = None
    start_at: str | None = None
    end_at: str | None = None
    target_url: str | None = None
    button_text: str | None = None
    desktop_banner: str | None = None
    mobile_banner: str | None = None


def _asset_from_field(entry: dict[str, Any] | None) -> AssetRef | None:
    if not entry or not entry.get("value"):
        return None
    reference = entry.get("reference") or {}
    image = reference.get("image") or {}
    return AssetRef(id=reference.get("id") or entry["value"], url=image.get("url"), alt=reference.get("alt") or "")
