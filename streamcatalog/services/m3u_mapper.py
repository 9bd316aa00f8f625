"""Map parsed playlist entries onto the shared domain model."""
from __future__ import annotations

import hashlib
import logging
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field

from streamcatalog.models.domain import Category, Channel, ContentType, VodItem
from streamcatalog.services.m3u_parser import M3uEntry

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

_ID_PREFIX = {
    ContentType.LIVE: "live",
    ContentType.MOVIE: "movie",
    ContentType.SERIES: "series",
}


class M3uCatalog(BaseModel):
    """Everything one playlist snapshot contributes, split by content type.

    Playlists carry no season structure, so series entries stay flat
    :class:`Channel` items of type ``series``.
    """
    model_config = ConfigDict(frozen=True)

    live_categories: list[Category] = Field(default_factory=list)
    live_channels: list[Channel] = Field(default_factory=list)
    vod_categories: list[Category] = Field(default_factory=list)
    vod_items: list[VodItem] = Field(default_factory=list)
    series_categories: list[Category] = Field(default_factory=list)
    series: list[Channel] = Field(default_factory=list)
    epg_url: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.live_channels) + len(self.vod_items) + len(self.series)


def category_id_for(group_title: str | None) -> str:
    return (group_title or UNCATEGORIZED).strip().lower().replace(" ", "_")


def entry_id(entry: M3uEntry) -> str:
    digest = hashlib.sha256(entry.url.encode("utf-8")).hexdigest()[:16]
    return f"{_ID_PREFIX[entry.content_type]}_{digest}"


def map_to_channel(entry: M3uEntry, id: str | None = None) -> Channel:
    return Channel(
        id=id or entry_id(entry),
        name=entry.name,
        stream_url=entry.url,
        logo_url=entry.tvg_logo,
        group_title=entry.group_title,
        category_id=category_id_for(entry.group_title),
        type=entry.content_type,
        epg_channel_id=entry.tvg_id,
        metadata=dict(entry.attributes),
    )


def map_to_vod_item(entry: M3uEntry, id: str | None = None) -> VodItem:
    return VodItem(
        id=id or entry_id(entry),
        name=entry.name,
        stream_url=entry.url,
        poster_url=entry.tvg_logo,
        category_id=category_id_for(entry.group_title),
        duration=max(entry.duration, 0),
        type=ContentType.MOVIE,
        metadata=dict(entry.attributes),
    )


def extract_categories(entries: Iterable[M3uEntry]) -> list[Category]:
    """Unique category slugs in first-seen order, with their entry counts.

    Group titles sharing a slug ("News" and "news") count as one category
    named after the first title seen.
    """
    names: dict[str, str] = {}
    counts: dict[str, int] = {}
    for entry in entries:
        group = entry.group_title or UNCATEGORIZED
        cat_id = category_id_for(group)
        names.setdefault(cat_id, group)
        counts[cat_id] = counts.get(cat_id, 0) + 1

    return [
        Category(id=cat_id, name=names[cat_id], channel_count=count, sort_order=position)
        for position, (cat_id, count) in enumerate(counts.items())
    ]


def _unique_ids(entries: list[M3uEntry]) -> list[str]:
    ids: list[str] = []
    seen: dict[str, int] = {}
    for entry in entries:
        base = entry_id(entry)
        n = seen.get(base, 0) + 1
        seen[base] = n
        ids.append(base if n == 1 else f"{base}_{n}")
    return ids


def map_playlist(entries: list[M3uEntry], epg_url: str | None = None) -> M3uCatalog:
    live = [e for e in entries if e.content_type == ContentType.LIVE]
    movies = [e for e in entries if e.content_type == ContentType.MOVIE]
    series = [e for e in entries if e.content_type == ContentType.SERIES]

    catalog = M3uCatalog(
        live_categories=extract_categories(live),
        live_channels=[map_to_channel(e, i) for e, i in zip(live, _unique_ids(live))],
        vod_categories=extract_categories(movies),
        vod_items=[map_to_vod_item(e, i) for e, i in zip(movies, _unique_ids(movies))],
        series_categories=extract_categories(series),
        series=[map_to_channel(e, i) for e, i in zip(series, _unique_ids(series))],
        epg_url=epg_url,
    )
    logger.info(
        f"Mapped playlist: {len(catalog.live_channels)} live, "
        f"{len(catalog.vod_items)} movies, {len(catalog.series)} series entries"
    )
    return catalog
