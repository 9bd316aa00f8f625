"""Cache service: one (source_id, kind) slot per key pair, with TTL bookkeeping.

Reads never touch the network. A read that fails for any reason is logged
and reported as a miss so callers fall through to the upstream.
"""
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Optional

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from streamcatalog.models.cache import CacheMetadata, DataKind, TtlClass
from streamcatalog.models.config import CacheTtls
from streamcatalog.services.storage import KeyValueStore

logger = logging.getLogger(__name__)


def _url_digest(url: str) -> str:
    return hashlib.sha256(url.strip().encode("utf-8")).hexdigest()[:16]


def m3u_source_id(url: str) -> str:
    return f"m3u_{_url_digest(url)}"


def url_epg_source_id(url: str) -> str:
    return f"url_{_url_digest(url)}"


def xtream_source_id(profile_id: str, playlist_import: bool = False) -> str:
    return f"xtream_{profile_id}_m3u" if playlist_import else f"xtream_{profile_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _item_count(data: Any) -> int:
    if hasattr(data, "total_programs"):
        return data.total_programs
    if isinstance(data, (list, tuple, dict)):
        return len(data)
    return 0 if data is None else 1


class CacheService:
    """Typed cache slots on top of a :class:`KeyValueStore`."""

    def __init__(
        self,
        store: KeyValueStore,
        ttls: CacheTtls | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.ttls = ttls or CacheTtls()
        self.clock = clock

    @staticmethod
    def data_key(source_id: str, kind: DataKind) -> str:
        return f"cache:{source_id}:{kind.value}:data"

    @staticmethod
    def meta_key(source_id: str, kind: DataKind) -> str:
        return f"cache:{source_id}:{kind.value}:meta"

    def ttl_for(self, ttl_class: TtlClass) -> timedelta:
        return timedelta(seconds=getattr(self.ttls, ttl_class.value))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(
        self,
        source_id: str,
        kind: DataKind,
        data: Any,
        fetched_at: datetime | None = None,
        ttl_class: TtlClass | None = None,
    ) -> Optional[CacheMetadata]:
        """Store *data* and its metadata. Returns ``None`` if the write failed."""
        meta = CacheMetadata(
            source_id=source_id,
            kind=kind,
            last_fetched_at=fetched_at or self.clock(),
            item_count=_item_count(data),
            ttl_class=ttl_class or kind.default_ttl_class,
        )
        try:
            payload = to_jsonable_python(data)
        except PydanticSerializationError as e:
            logger.error(f"Cache: cannot serialize {source_id}/{kind.value}: {e}")
            return None

        result = await self.store.set_json(self.data_key(source_id, kind), payload)
        if not result.is_ok:
            logger.error(f"Cache: failed to save {source_id}/{kind.value}: {result.error!r}")
            return None
        result = await self.store.set_json(self.meta_key(source_id, kind), meta.model_dump(mode="json"))
        if not result.is_ok:
            logger.error(f"Cache: failed to save metadata for {source_id}/{kind.value}: {result.error!r}")
            return None
        logger.debug(f"Cache: saved {meta.item_count} item(s) to {source_id}/{kind.value}")
        return meta

    async def clear(self, source_id: str, kinds: Iterable[DataKind] | None = None) -> None:
        for kind in (kinds if kinds is not None else DataKind):
            await self.store.remove(self.data_key(source_id, kind))
            await self.store.remove(self.meta_key(source_id, kind))
        logger.info(f"Cache: cleared {source_id}")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def metadata(self, source_id: str, kind: DataKind) -> Optional[CacheMetadata]:
        result = await self.store.get_json(self.meta_key(source_id, kind))
        if not result.is_ok:
            if not result.is_not_found:
                logger.warning(f"Cache: unreadable metadata for {source_id}/{kind.value}: {result.error!r}")
            return None
        try:
            return CacheMetadata.model_validate(result.value)
        except ValidationError as e:
            logger.warning(f"Cache: corrupt metadata for {source_id}/{kind.value}: {e}")
            return None

    async def load(
        self,
        source_id: str,
        kind: DataKind,
        max_age: timedelta | None = None,
        adapter: TypeAdapter | None = None,
    ) -> Any:
        """Cached value for the slot, or ``None`` on a miss.

        With *max_age*, entries older than that count as a miss.  With
        *adapter*, the stored JSON is validated back into typed objects.
        """
        if max_age is not None:
            meta = await self.metadata(source_id, kind)
            if meta is None or self.clock() - meta.last_fetched_at > max_age:
                return None

        result = await self.store.get_json(self.data_key(source_id, kind))
        if not result.is_ok:
            if not result.is_not_found:
                logger.warning(f"Cache: read failed for {source_id}/{kind.value}: {result.error!r}")
            return None
        if adapter is None:
            return result.value
        try:
            return adapter.validate_python(result.value)
        except ValidationError as e:
            logger.warning(f"Cache: discarding undecodable {source_id}/{kind.value}: {e.error_count()} error(s)")
            return None

    async def is_stale(self, source_id: str, kind: DataKind, ttl: timedelta | None = None) -> bool:
        meta = await self.metadata(source_id, kind)
        if meta is None:
            return True
        limit = ttl if ttl is not None else self.ttl_for(meta.ttl_class)
        return self.clock() - meta.last_fetched_at > limit

    async def status(self, source_id: str, kinds: Iterable[DataKind] | None = None) -> list[dict]:
        """Per-slot summary for diagnostics."""
        rows: list[dict] = []
        now = self.clock()
        for kind in (kinds if kinds is not None else DataKind):
            meta = await self.metadata(source_id, kind)
            if meta is None:
                continue
            age = (now - meta.last_fetched_at).total_seconds()
            rows.append({
                **meta.model_dump(mode="json"),
                "age_seconds": int(age),
                "stale": age > self.ttl_for(meta.ttl_class).total_seconds(),
            })
        return rows
