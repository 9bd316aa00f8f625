"""Tests for the TTL-aware cache service."""

import asyncio
from datetime import datetime, timedelta, timezone

from pydantic import TypeAdapter

from streamcatalog.models.cache import DataKind, TtlClass
from streamcatalog.models.config import CacheTtls
from streamcatalog.models.domain import Category
from streamcatalog.services.cache_service import (
    CacheService,
    m3u_source_id,
    url_epg_source_id,
    xtream_source_id,
)
from streamcatalog.services.storage import MemoryStore, StorageErrorKind, StorageResult


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class BrokenStore(MemoryStore):
    async def get_string(self, key):
        return StorageResult.fail(StorageErrorKind.READ_ERROR, "disk on fire")


CATEGORIES = [Category(id="1", name="News"), Category(id="2", name="Sports")]


def _cache(store=None):
    clock = FakeClock()
    return CacheService(store or MemoryStore(), CacheTtls(), clock=clock), clock


class TestSourceIds:

    def test_formats(self):
        assert xtream_source_id("abc") == "xtream_abc"
        assert xtream_source_id("abc", playlist_import=True) == "xtream_abc_m3u"
        assert m3u_source_id("http://x.test/list.m3u").startswith("m3u_")
        assert len(m3u_source_id("http://x.test/list.m3u")) == len("m3u_") + 16
        assert url_epg_source_id("http://x.test/g.xml").startswith("url_")

    def test_stable(self):
        assert m3u_source_id("http://x.test/a") == m3u_source_id("http://x.test/a")
        assert m3u_source_id("http://x.test/a") != m3u_source_id("http://x.test/b")


class TestStaleness:

    def test_fresh_after_save_then_stale_after_ttl(self):
        cache, clock = _cache()

        async def scenario():
            await cache.save("src", DataKind.LIVE_CHANNELS, [])
            fresh = await cache.is_stale("src", DataKind.LIVE_CHANNELS)
            clock.advance(hours=24)
            at_ttl = await cache.is_stale("src", DataKind.LIVE_CHANNELS)
            clock.advance(seconds=1)
            past_ttl = await cache.is_stale("src", DataKind.LIVE_CHANNELS)
            return fresh, at_ttl, past_ttl

        assert asyncio.run(scenario()) == (False, False, True)

    def test_epg_uses_its_own_ttl(self):
        cache, clock = _cache()

        async def scenario():
            await cache.save("src", DataKind.EPG, {}, ttl_class=TtlClass.EPG_URL)
            clock.advance(hours=6, seconds=1)
            return await cache.is_stale("src", DataKind.EPG)

        assert asyncio.run(scenario()) is True

    def test_missing_slot_is_stale(self):
        cache, _ = _cache()
        assert asyncio.run(cache.is_stale("src", DataKind.SERIES)) is True

    def test_explicit_ttl(self):
        cache, clock = _cache()

        async def scenario():
            await cache.save("src", DataKind.VOD_ITEMS, [])
            clock.advance(minutes=10)
            return await cache.is_stale("src", DataKind.VOD_ITEMS, ttl=timedelta(minutes=5))

        assert asyncio.run(scenario()) is True


class TestLoad:

    def test_typed_round_trip_and_metadata(self):
        cache, _ = _cache()
        adapter = TypeAdapter(list[Category])

        async def scenario():
            meta = await cache.save("src", DataKind.LIVE_CATEGORIES, CATEGORIES)
            loaded = await cache.load("src", DataKind.LIVE_CATEGORIES, adapter=adapter)
            return meta, loaded, await cache.metadata("src", DataKind.LIVE_CATEGORIES)

        saved, loaded, meta = asyncio.run(scenario())
        assert loaded == CATEGORIES
        assert saved == meta
        assert meta.item_count == 2
        assert meta.ttl_class == TtlClass.CATEGORIES

    def test_miss_is_none(self):
        cache, _ = _cache()
        assert asyncio.run(cache.load("src", DataKind.LIVE_CHANNELS)) is None

    def test_max_age(self):
        cache, clock = _cache()

        async def scenario():
            await cache.save("src", DataKind.LIVE_CHANNELS, [1])
            clock.advance(minutes=30)
            young = await cache.load("src", DataKind.LIVE_CHANNELS, max_age=timedelta(hours=1))
            old = await cache.load("src", DataKind.LIVE_CHANNELS, max_age=timedelta(minutes=10))
            return young, old

        assert asyncio.run(scenario()) == ([1], None)

    def test_read_error_is_a_miss(self):
        cache, _ = _cache(BrokenStore())

        async def scenario():
            await cache.save("src", DataKind.LIVE_CHANNELS, [1])
            return await cache.load("src", DataKind.LIVE_CHANNELS), await cache.is_stale("src", DataKind.LIVE_CHANNELS)

        assert asyncio.run(scenario()) == (None, True)

    def test_undecodable_entry_is_a_miss(self):
        cache, _ = _cache()

        async def scenario():
            await cache.save("src", DataKind.LIVE_CATEGORIES, [{"unexpected": True}])
            return await cache.load("src", DataKind.LIVE_CATEGORIES, adapter=TypeAdapter(list[Category]))

        assert asyncio.run(scenario()) is None


class TestClear:

    def test_clear_selected_kinds(self):
        cache, _ = _cache()

        async def scenario():
            await cache.save("src", DataKind.LIVE_CHANNELS, [1])
            await cache.save("src", DataKind.EPG, {})
            await cache.clear("src", [DataKind.LIVE_CHANNELS])
            return (
                await cache.load("src", DataKind.LIVE_CHANNELS),
                await cache.metadata("src", DataKind.LIVE_CHANNELS),
                await cache.load("src", DataKind.EPG),
            )

        assert asyncio.run(scenario()) == (None, None, {})

    def test_slots_are_independent_per_source(self):
        cache, _ = _cache()

        async def scenario():
            await cache.save("a", DataKind.SERIES, [1])
            await cache.save("b", DataKind.SERIES, [2])
            await cache.clear("a")
            return await cache.load("a", DataKind.SERIES), await cache.load("b", DataKind.SERIES)

        assert asyncio.run(scenario()) == (None, [2])

    def test_status(self):
        cache, clock = _cache()

        async def scenario():
            await cache.save("src", DataKind.LIVE_CHANNELS, [1, 2, 3])
            clock.advance(hours=25)
            return await cache.status("src")

        rows = asyncio.run(scenario())
        assert len(rows) == 1
        assert rows[0]["kind"] == "live_channels"
        assert rows[0]["item_count"] == 3
        assert rows[0]["age_seconds"] == 25 * 3600
        assert rows[0]["stale"] is True
