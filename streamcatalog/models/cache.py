"""Cache slot kinds, TTL classes and per-slot metadata."""
from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class TtlClass(str, enum.Enum):
    CHANNELS = "channels"
    CATEGORIES = "categories"
    EPG_XTREAM = "epg_xtream"
    EPG_URL = "epg_url"


class DataKind(str, enum.Enum):
    LIVE_CATEGORIES = "live_categories"
    LIVE_CHANNELS = "live_channels"
    VOD_CATEGORIES = "vod_categories"
    VOD_ITEMS = "vod_items"
    SERIES_CATEGORIES = "series_categories"
    SERIES = "series"
    EPG = "epg"
    PLAYLIST_INFO = "playlist_info"

    @property
    def default_ttl_class(self) -> TtlClass:
        if self in (DataKind.LIVE_CATEGORIES, DataKind.VOD_CATEGORIES, DataKind.SERIES_CATEGORIES):
            return TtlClass.CATEGORIES
        if self == DataKind.EPG:
            return TtlClass.EPG_XTREAM
        return TtlClass.CHANNELS


CATALOG_KINDS: tuple[DataKind, ...] = (
    DataKind.LIVE_CATEGORIES,
    DataKind.LIVE_CHANNELS,
    DataKind.VOD_CATEGORIES,
    DataKind.VOD_ITEMS,
    DataKind.SERIES_CATEGORIES,
    DataKind.SERIES,
    DataKind.PLAYLIST_INFO,
)


class CacheMetadata(BaseModel):
    """Bookkeeping for one (source_id, kind) slot; written only by the cache."""
    model_config = ConfigDict(frozen=True)

    source_id: str
    kind: DataKind
    last_fetched_at: datetime
    item_count: int = 0
    ttl_class: TtlClass
