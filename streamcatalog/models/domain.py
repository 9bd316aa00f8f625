"""Normalized catalog entities produced by both the M3U and the Xtream paths."""
from __future__ import annotations

import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from streamcatalog.models.epg import EpgSummary

if TYPE_CHECKING:
    from streamcatalog.models.profile import XtreamCredentials

# Provider-specific leftovers; non-scalar values are JSON-encoded by the mappers.
MetadataValue = Union[str, int, float, bool, None]
Metadata = dict[str, MetadataValue]

_MOVIE_WORDS = ("movie", "film")
_SERIES_WORDS = ("series", "show")
_MOVIE_SEGMENTS = {"movie", "movies", "film", "films"}
_SERIES_SEGMENTS = {"series", "show", "shows"}


class ContentType(str, enum.Enum):
    LIVE = "live"
    MOVIE = "movie"
    SERIES = "series"

    @classmethod
    def classify(cls, group_title: str | None, url: str | None = None) -> "ContentType":
        """Guess the content type of a playlist entry.

        The group title wins over the URL; within each, movie keywords are
        checked before series keywords.
        """
        group = (group_title or "").lower()
        if any(word in group for word in _MOVIE_WORDS):
            return cls.MOVIE
        if any(word in group for word in _SERIES_WORDS):
            return cls.SERIES

        if url:
            segments = [s for s in urlparse(url.lower()).path.split("/") if s]
            if any(s in _MOVIE_SEGMENTS for s in segments):
                return cls.MOVIE
            if any(s in _SERIES_SEGMENTS for s in segments):
                return cls.SERIES
        return cls.LIVE


class Channel(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    stream_url: str
    logo_url: Optional[str] = None
    group_title: Optional[str] = None
    category_id: Optional[str] = None
    type: ContentType = ContentType.LIVE
    epg_channel_id: Optional[str] = None
    added: Optional[datetime] = None
    metadata: Metadata = Field(default_factory=dict)
    epg: Optional[EpgSummary] = None


class Category(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    channel_count: int = 0
    icon_url: Optional[str] = None
    # Advisory only: provider list position, not a curated ordering
    sort_order: Optional[int] = None
    parent_id: Optional[str] = None


class VodItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    stream_url: str
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[float] = None
    duration: int = 0
    cast: Optional[str] = None
    director: Optional[str] = None
    container_extension: Optional[str] = None
    added: Optional[datetime] = None
    type: ContentType = ContentType.MOVIE
    metadata: Metadata = Field(default_factory=dict)


class Episode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    episode_number: int = 1
    season_number: int = 1
    name: str = ""
    container_extension: str = "mp4"
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: int = 0
    air_date: Optional[str] = None
    rating: Optional[float] = None

    def stream_url_for(self, credentials: "XtreamCredentials") -> str:
        return credentials.series_url(self.id, self.container_extension)


class Season(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    season_number: int
    name: str
    episodes: list[Episode] = Field(default_factory=list)
    cover_url: Optional[str] = None


class Series(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    genre: Optional[str] = None
    release_date: Optional[str] = None
    rating: Optional[float] = None
    cast: Optional[str] = None
    director: Optional[str] = None
    last_modified: Optional[datetime] = None
    seasons: list[Season] = Field(default_factory=list)
    metadata: Metadata = Field(default_factory=dict)

    @property
    def episode_count(self) -> int:
        return sum(len(s.episodes) for s in self.seasons)
