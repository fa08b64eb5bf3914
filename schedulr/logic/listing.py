"""Sorting and filtering for the entries table and media picker."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import pendulum

from schedulr.entities.models import ScheduledEntity
from schedulr.shopify.models import MediaFile

SORTABLE_COLUMNS = ("title", "position_id", "start_at", "end_at")
DATE_COLUMNS = {"start_at", "end_at"}
DIRECTIONS = ("asc", "desc")


@dataclass(slots=True, frozen=True)
class SortKey:
    column: str
    direction: str = "asc"


def parse_sort_keys(raw: str | None) -> list[SortKey]:
    """Parse ``"title:asc,start_at:desc"`` into sort keys, highest priority first."""
    keys: list[SortKey] = []
    seen: set[str] = set()
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        column, _, direction = chunk.partition(":")
        column = column.strip()
        direction = (direction.strip() or "asc").lower()
        if column not in SORTABLE_COLUMNS:
            raise ValueError(f"Unknown sort column: {column!r}")
        if direction not in DIRECTIONS:
            raise ValueError(f"Unknown sort direction: {direction!r}")
        if column in seen:
            continue
        seen.add(column)
        keys.append(SortKey(column, direction))
    return keys


def toggle_sort(keys: Sequence[SortKey], column: str) -> list[SortKey]:
    """Cycle ``column`` through ascending, descending and unsorted."""
    if column not in SORTABLE_COLUMNS:
        raise ValueError(f"Unknown sort column: {column!r}")
    updated = list(keys)
    for idx, key in enumerate(updated):
        if key.column == column:
            if key.direction == "asc":
                updated[idx] = SortKey(column, "desc")
            else:
                del updated[idx]
            return updated
    updated.append(SortKey(column, "asc"))
    return updated


def format_sort_keys(keys: Sequence[SortKey]) -> str:
    return ",".join(f"{key.column}:{key.direction}" for key in keys)


def sort_entries(entries: Iterable[ScheduledEntity], keys: Sequence[SortKey]) -> list[ScheduledEntity]:
    result = list(entries)
    # Stable sorts applied from lowest to highest priority.
    for key in reversed(keys):
        result.sort(key=lambda e, col=key.column: _sort_value(e, col), reverse=key.direction == "desc")
    return result


def filter_media(files: Iterable[MediaFile], term: str | None) -> list[MediaFile]:
    needle = (term or "").strip().lower()
    if not needle:
        return list(files)
    return [f for f in files if needle in (f.alt or "").lower() or needle in (f.url or "").lower()]


def newest_first(files: Iterable[MediaFile]) -> list[MediaFile]:
    return sorted(files, key=lambda f: _timestamp(f.created_at), reverse=True)


def _sort_value(entry: ScheduledEntity, column: str) -> float | str:
    value = entry.field_value(column)
    if column in DATE_COLUMNS:
        return _timestamp(value)
    return (value or "").lower()


def _timestamp(value: str | None) -> float:
    if not value:
        return float("-inf")
    try:
        return pendulum.parse(value).timestamp()
    except (ValueError, OverflowError, AttributeError):
        return float("-inf")
