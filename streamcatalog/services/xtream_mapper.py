"""Xtream Codes JSON -> domain entities.

Every provider scalar goes through the lenient helpers in ``coercion``; keys
not consumed by a named field are kept in ``metadata``.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, TypeVar

from streamcatalog.models.domain import (
    Category,
    Channel,
    ContentType,
    Episode,
    Season,
    Series,
    VodItem,
)
from streamcatalog.models.profile import XtreamCredentials
from streamcatalog.services.coercion import (
    extract_metadata,
    parse_float,
    parse_int,
    parse_optional_str,
    parse_str,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CHANNEL_KEYS = (
    "stream_id", "name", "stream_icon", "cover", "category_name",
    "category_id", "epg_channel_id", "added", "stream_type",
)
_CATEGORY_KEYS = ("category_id", "category_name", "category_icon", "num", "parent_id")
_MOVIE_KEYS = (
    "stream_id", "name", "stream_icon", "cover", "cover_big", "backdrop_path",
    "plot", "description", "category_id", "genre", "releaseDate", "release_date",
    "rating", "duration_secs", "cast", "director", "container_extension", "added",
    "stream_type",
)
_SERIES_KEYS = (
    "series_id", "name", "cover", "backdrop_path", "plot", "category_id", "genre",
    "releaseDate", "release_date", "rating", "cast", "director", "last_modified",
)


class MappingError(ValueError):
    """A single provider item is unusable (not an object, or has no id)."""


def _require_id(raw: Any, *keys: str) -> str:
    if not isinstance(raw, dict):
        raise MappingError(f"expected an object, got {type(raw).__name__}")
    for key in keys:
        value = parse_str(raw.get(key))
        if value:
            return value
    raise MappingError(f"missing {'/'.join(keys)}")


def _first_backdrop(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return parse_optional_str(value[0]) if value else None
    return parse_optional_str(value)


def map_category(raw: dict, position: int | None = None) -> Category:
    category_id = _require_id(raw, "category_id")
    # parent_id is a hierarchy pointer, never an ordering key; 0 means top level
    parent = parse_int(raw.get("parent_id"), 0)
    return Category(
        id=category_id,
        name=parse_str(raw.get("category_name")),
        channel_count=parse_int(raw.get("num"), 0),
        icon_url=parse_optional_str(raw.get("category_icon")),
        sort_order=position,
        parent_id=str(parent) if parent else None,
    )


def map_channel(
    raw: dict,
    credentials: XtreamCredentials,
    extension: str = "ts",
    category_names: dict[str, str] | None = None,
) -> Channel:
    stream_id = _require_id(raw, "stream_id", "num")
    category_id = parse_optional_str(raw.get("category_id"))
    group = parse_optional_str(raw.get("category_name"))
    if group is None and category_names and category_id:
        group = category_names.get(category_id)
    return Channel(
        id=stream_id,
        name=parse_str(raw.get("name")),
        stream_url=credentials.live_url(stream_id, extension),
        logo_url=parse_optional_str(raw.get("stream_icon")) or parse_optional_str(raw.get("cover")),
        group_title=group,
        category_id=category_id,
        type=ContentType.LIVE,
        epg_channel_id=parse_optional_str(raw.get("epg_channel_id")),
        added=parse_timestamp(raw.get("added")),
        metadata=extract_metadata(raw, _CHANNEL_KEYS),
    )


def map_movie(raw: dict, credentials: XtreamCredentials) -> VodItem:
    stream_id = _require_id(raw, "stream_id", "num")
    extension = parse_optional_str(raw.get("container_extension")) or "mp4"
    return VodItem(
        id=stream_id,
        name=parse_str(raw.get("name")),
        stream_url=credentials.movie_url(stream_id, extension),
        poster_url=parse_optional_str(raw.get("stream_icon")) or parse_optional_str(raw.get("cover")),
        backdrop_url=parse_optional_str(raw.get("cover_big")) or _first_backdrop(raw.get("backdrop_path")),
        description=parse_optional_str(raw.get("plot")) or parse_optional_str(raw.get("description")),
        category_id=parse_optional_str(raw.get("category_id")),
        genre=parse_optional_str(raw.get("genre")),
        release_date=parse_optional_str(raw.get("releaseDate")) or parse_optional_str(raw.get("release_date")),
        rating=parse_float(raw.get("rating")),
        duration=parse_int(raw.get("duration_secs"), 0),
        cast=parse_optional_str(raw.get("cast")),
        director=parse_optional_str(raw.get("director")),
        container_extension=extension,
        added=parse_timestamp(raw.get("added")),
        metadata=extract_metadata(raw, _MOVIE_KEYS),
    )


def map_vod_info(raw: dict, credentials: XtreamCredentials) -> VodItem:
    """``get_vod_info`` returns ``{"info": {...}, "movie_data": {...}}``."""
    if not isinstance(raw, dict):
        raise MappingError("vod info is not an object")
    info = raw.get("info") if isinstance(raw.get("info"), dict) else {}
    movie_data = raw.get("movie_data") if isinstance(raw.get("movie_data"), dict) else {}
    merged = {**info, **movie_data}
    if not merged.get("cover_big") and info.get("movie_image"):
        merged["cover_big"] = info["movie_image"]
    return map_movie(merged, credentials)


def map_series(raw: dict, seasons: list[Season] | None = None) -> Series:
    return Series(
        id=_require_id(raw, "series_id"),
        name=parse_str(raw.get("name")),
        poster_url=parse_optional_str(raw.get("cover")),
        backdrop_url=_first_backdrop(raw.get("backdrop_path")),
        description=parse_optional_str(raw.get("plot")),
        category_id=parse_optional_str(raw.get("category_id")),
        genre=parse_optional_str(raw.get("genre")),
        release_date=parse_optional_str(raw.get("releaseDate")) or parse_optional_str(raw.get("release_date")),
        rating=parse_float(raw.get("rating")),
        cast=parse_optional_str(raw.get("cast")),
        director=parse_optional_str(raw.get("director")),
        last_modified=parse_timestamp(raw.get("last_modified")),
        seasons=seasons or [],
        metadata=extract_metadata(raw, _SERIES_KEYS),
    )


def map_episode(raw: dict, season_number: int) -> Episode:
    episode_id = _require_id(raw, "id")
    info = raw.get("info") if isinstance(raw.get("info"), dict) else {}
    return Episode(
        id=episode_id,
        episode_number=parse_int(raw.get("episode_num"), 1),
        season_number=parse_int(raw.get("season"), season_number),
        name=parse_str(raw.get("title")) or parse_str(raw.get("name")),
        container_extension=parse_optional_str(raw.get("container_extension")) or "mp4",
        description=parse_optional_str(info.get("plot")) or parse_optional_str(raw.get("plot")),
        thumbnail_url=parse_optional_str(info.get("movie_image")) or parse_optional_str(raw.get("cover")),
        duration=parse_int(info.get("duration_secs"), 0),
        air_date=parse_optional_str(info.get("releasedate")) or parse_optional_str(info.get("air_date")),
        rating=parse_float(info.get("rating")),
    )


def map_series_info(raw: dict, series_id: str) -> Series:
    """``get_series_info``: ``info`` plus ``episodes`` keyed by season number."""
    if not isinstance(raw, dict):
        raise MappingError("series info is not an object")
    info = dict(raw.get("info")) if isinstance(raw.get("info"), dict) else {}
    info.setdefault("series_id", series_id)

    covers: dict[int, str] = {}
    for season in raw.get("seasons") or []:
        if isinstance(season, dict):
            number = parse_int(season.get("season_number"))
            cover = parse_optional_str(season.get("cover")) or parse_optional_str(season.get("cover_big"))
            if number is not None and cover:
                covers[number] = cover

    episodes_by_season = raw.get("episodes")
    # Some panels send a list of lists instead of an object
    if isinstance(episodes_by_season, list):
        episodes_by_season = {str(i + 1): eps for i, eps in enumerate(episodes_by_season)}
    if not isinstance(episodes_by_season, dict):
        episodes_by_season = {}

    seasons: list[Season] = []
    for key, items in episodes_by_season.items():
        if not isinstance(items, list):
            continue
        number = parse_int(key, 1)
        episodes = map_list(items, lambda item, n=number: map_episode(item, n), "episode")
        episodes.sort(key=lambda e: e.episode_number)
        seasons.append(Season(
            id=str(key),
            season_number=number,
            name=f"Season {number}",
            episodes=episodes,
            cover_url=covers.get(number),
        ))
    seasons.sort(key=lambda s: s.season_number)
    return map_series(info, seasons)


def map_list(items: list, mapper: Callable[[Any], T], label: str) -> list[T]:
    """Map every item, skipping (and logging) the ones that cannot be mapped."""
    mapped: list[T] = []
    skipped = 0
    for item in items:
        try:
            mapped.append(mapper(item))
        except (MappingError, ValueError, TypeError) as e:
            skipped += 1
            logger.warning(f"Skipping malformed {label}: {e}")
    if skipped:
        logger.warning(f"Mapped {len(mapped)} {label} item(s), skipped {skipped}")
    return mapped


def build_category_map(categories: list[Category]) -> dict[str, str]:
    """category_id -> category name."""
    return {c.id: c.name for c in categories}
