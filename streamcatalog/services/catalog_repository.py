"""Composite catalog repository: the only read path consumers use.

Per profile it chooses the upstream (Xtream API or an imported playlist
snapshot), reads through the cache, coalesces concurrent fetches for the same
(profile, kind) and serves cached data with a warning when the upstream fails.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from pydantic import TypeAdapter

from streamcatalog.models.cache import CATALOG_KINDS, DataKind, TtlClass
from streamcatalog.models.domain import Category, Channel, Series, VodItem
from streamcatalog.models.epg import EpgData, EpgSummary
from streamcatalog.models.profile import ContentSourceStrategy, Profile, SourceType
from streamcatalog.models.result import ApiError, ApiResult
from streamcatalog.services.cache_service import CacheService, m3u_source_id, xtream_source_id
from streamcatalog.services.config_service import ConfigService
from streamcatalog.services.epg_correlator import correlate_channels, epg_summary, match_channel_id
from streamcatalog.services.epg_service import EpgService
from streamcatalog.services.http_client import HttpClientService
from streamcatalog.services.m3u_import_service import M3uImportResult, M3uImportService
from streamcatalog.services.m3u_mapper import M3uCatalog
from streamcatalog.services.single_flight import SingleFlight
from streamcatalog.services.xtream_client import XtreamApiClient
from streamcatalog.services.xtream_mapper import build_category_map

logger = logging.getLogger(__name__)

_CATEGORIES = TypeAdapter(list[Category])
_CHANNELS = TypeAdapter(list[Channel])
_VOD_ITEMS = TypeAdapter(list[VodItem])
_SERIES = TypeAdapter(list[Series])
_EPG = TypeAdapter(EpgData)
_INFO = TypeAdapter(dict)

_SNAPSHOT_ADAPTERS = {
    DataKind.LIVE_CATEGORIES: _CATEGORIES,
    DataKind.LIVE_CHANNELS: _CHANNELS,
    DataKind.VOD_CATEGORIES: _CATEGORIES,
    DataKind.VOD_ITEMS: _VOD_ITEMS,
    DataKind.SERIES_CATEGORIES: _CATEGORIES,
    DataKind.SERIES: _CHANNELS,
    DataKind.PLAYLIST_INFO: _INFO,
}

_DIRECT_ADAPTERS = {**_SNAPSHOT_ADAPTERS, DataKind.SERIES: _SERIES}

ClientFactory = Callable[[Profile], XtreamApiClient]


def _playlist_info(result: M3uImportResult) -> dict:
    return {
        "epg_url": result.catalog.epg_url,
        "entry_count": result.entry_count,
        "source": result.source,
    }


class CatalogRepository:
    """Source-strategy aware, cache-backed catalog access for the active profile."""

    def __init__(
        self,
        config_service: ConfigService,
        cache: CacheService,
        http_client: HttpClientService,
        epg_service: EpgService | None = None,
        import_service: M3uImportService | None = None,
        client_factory: ClientFactory | None = None,
    ):
        self.config_service = config_service
        self.cache = cache
        self.http_client = http_client
        options = config_service.options
        self.epg_service = epg_service or EpgService(http_client, options.timeouts)
        self.import_service = import_service or M3uImportService(http_client, options.timeouts)
        self._client_factory = client_factory or self._default_client
        self.flights = SingleFlight()
        self._served_strategy: dict[str, ContentSourceStrategy] = {}

    def _default_client(self, profile: Profile) -> XtreamApiClient:
        options = self.config_service.options
        return XtreamApiClient(
            profile.credentials,
            self.http_client,
            timeouts=options.timeouts,
            live_extension=options.live_output_format,
        )

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def list_profiles(self) -> list[Profile]:
        return list(self.config_service.get_profiles())

    def active_profile(self) -> Optional[Profile]:
        return self.config_service.get_active_profile()

    def add_profile(self, profile: Profile, activate: bool = False) -> ApiResult[Profile]:
        if profile.is_xtream:
            if profile.credentials is None or not profile.credentials.is_valid:
                return ApiResult.failure(ApiError.validation("Xtream profiles need host, username and password"))
        elif not profile.url:
            return ApiResult.failure(ApiError.validation("Playlist profiles need a file path or URL"))
        if self.config_service.get_profile_by_id(profile.id) is not None:
            return ApiResult.failure(ApiError.validation(f"Profile id '{profile.id}' already exists"))

        config = self.config_service.config
        profile.is_active = False
        config.profiles.append(profile)
        if activate or config.active_profile_id is None:
            self._activate(profile.id)
        self.config_service.save()
        logger.info(f"Added profile '{profile.name}' ({profile.type.value})")
        return ApiResult.success(profile)

    async def remove_profile(self, profile_id: str) -> bool:
        profile = self.config_service.get_profile_by_id(profile_id)
        if profile is None:
            return False
        config = self.config_service.config
        config.profiles = [p for p in config.profiles if p.id != profile_id]
        if config.active_profile_id == profile_id:
            config.active_profile_id = None
            if config.profiles:
                self._activate(config.profiles[0].id)
        self.config_service.save()

        for source_id in self._all_source_ids(profile):
            await self.cache.clear(source_id)
        self._served_strategy.pop(profile_id, None)
        logger.info(f"Removed profile '{profile.name}'")
        return True

    def set_active_profile(self, profile_id: str) -> Optional[Profile]:
        if self.config_service.get_profile_by_id(profile_id) is None:
            return None
        self._activate(profile_id)
        self.config_service.save()
        return self.active_profile()

    def set_strategy(self, profile_id: str, strategy: ContentSourceStrategy) -> ApiResult[Profile]:
        profile = self.config_service.get_profile_by_id(profile_id)
        if profile is None:
            return ApiResult.failure(ApiError.not_found(f"Profile '{profile_id}' not found"))
        if not profile.is_xtream:
            return ApiResult.failure(ApiError.validation("Only Xtream profiles have a source strategy"))
        if profile.strategy != strategy:
            # the unused path's cache slot is dropped on the next read
            profile.strategy = strategy
            self.config_service.save()
            logger.info(f"Profile '{profile.name}' now uses {strategy.value}")
        return ApiResult.success(profile)

    def _activate(self, profile_id: str) -> None:
        config = self.config_service.config
        config.active_profile_id = profile_id
        for p in config.profiles:
            p.is_active = p.id == profile_id

    # ------------------------------------------------------------------
    # Source ids
    # ------------------------------------------------------------------

    @staticmethod
    def catalog_source_id(profile: Profile) -> str:
        if profile.is_xtream:
            return xtream_source_id(profile.id, playlist_import=profile.uses_playlist_snapshot)
        return m3u_source_id(profile.url or profile.id)

    @staticmethod
    def _all_source_ids(profile: Profile) -> list[str]:
        if profile.is_xtream:
            return [xtream_source_id(profile.id), xtream_source_id(profile.id, playlist_import=True)]
        return [m3u_source_id(profile.url or profile.id)]

    async def _invalidate_if_switched(self, profile: Profile) -> None:
        if not profile.is_xtream:
            return
        if self._served_strategy.get(profile.id) == profile.strategy:
            return
        unused = xtream_source_id(profile.id, playlist_import=not profile.uses_playlist_snapshot)
        await self.cache.clear(unused, CATALOG_KINDS)
        self._served_strategy[profile.id] = profile.strategy

    def _require_profile(self) -> tuple[Optional[Profile], Optional[ApiResult]]:
        profile = self.active_profile()
        if profile is None:
            return None, ApiResult.failure(ApiError.not_found("No active profile"))
        return profile, None

    # ------------------------------------------------------------------
    # Read-through core
    # ------------------------------------------------------------------

    async def _serve(
        self,
        profile: Profile,
        source_id: str,
        kind: DataKind,
        flight_key: tuple,
        fetch: Callable[[], Awaitable[ApiResult]],
        adapter: TypeAdapter,
        use_ttl: bool,
        force: bool = False,
        extract: Callable[[Any], Any] | None = None,
    ) -> ApiResult:
        """Cache first, then one coalesced upstream fetch, then stale fallback.

        *extract* picks this caller's slice out of a fetch result shared by
        several kinds (the playlist snapshot).
        """
        if not force:
            fresh = not use_ttl or not await self.cache.is_stale(source_id, kind)
            if fresh:
                cached = await self.cache.load(source_id, kind, adapter=adapter)
                if cached is not None:
                    return ApiResult.success(cached)

        result = await self.flights.run(flight_key, fetch)
        if result.is_success:
            return result.map(extract) if extract else result

        cached = await self.cache.load(source_id, kind, adapter=adapter)
        if cached is not None:
            logger.warning(
                f"Serving stale {kind.value} for profile '{profile.name}': {result.error}"
            )
            return ApiResult.success(cached, warning=result.error, stale=True)
        logger.error(f"No {kind.value} for profile '{profile.name}': {result.error}")
        return result

    async def _direct(self, profile: Profile, kind: DataKind, force: bool = False) -> ApiResult:
        source_id = xtream_source_id(profile.id)

        async def fetch_and_store() -> ApiResult:
            result = await self._direct_fetchers(profile)[kind]()
            if result.is_success:
                await self.cache.save(source_id, kind, result.data)
            return result

        return await self._serve(
            profile, source_id, kind, (profile.id, kind.value), fetch_and_store,
            _DIRECT_ADAPTERS[kind], use_ttl=True, force=force,
        )

    def _direct_fetchers(self, profile: Profile) -> dict[DataKind, Callable[[], Awaitable[ApiResult]]]:
        client = self._client_factory(profile)

        async def live_channels() -> ApiResult:
            categories = await self._direct(profile, DataKind.LIVE_CATEGORIES)
            names = build_category_map(categories.data) if categories.is_success else None
            return await client.get_live_streams(category_names=names)

        return {
            DataKind.LIVE_CATEGORIES: client.get_live_categories,
            DataKind.LIVE_CHANNELS: live_channels,
            DataKind.VOD_CATEGORIES: client.get_vod_categories,
            DataKind.VOD_ITEMS: client.get_vod_streams,
            DataKind.SERIES_CATEGORIES: client.get_series_categories,
            DataKind.SERIES: client.get_series,
        }

    async def _import_snapshot(self, profile: Profile) -> ApiResult[M3uImportResult]:
        """Fetch, parse and store one playlist snapshot for every catalog kind."""
        if profile.is_xtream:
            download = await self._client_factory(profile).download_playlist()
            if download.is_failure:
                return ApiResult.failure(download.error)
            result = await self.import_service.import_from_content(download.data, source=profile.name)
        elif profile.type == SourceType.M3U_FILE:
            result = await self.import_service.import_from_file(profile.url or "")
        else:
            result = await self.import_service.import_from_url(profile.url or "")
        if result.is_failure:
            return result

        source_id = self.catalog_source_id(profile)
        catalog: M3uCatalog = result.data.catalog
        fetched_at = self.cache.clock()
        for kind in CATALOG_KINDS:
            data = _playlist_info(result.data) if kind == DataKind.PLAYLIST_INFO else getattr(catalog, kind.value)
            await self.cache.save(source_id, kind, data, fetched_at=fetched_at)
        profile.last_updated = fetched_at
        self.config_service.save()
        logger.info(f"Imported playlist snapshot for '{profile.name}': {result.data.entry_count} entries")
        return result

    async def _snapshot(self, profile: Profile, kind: DataKind, force: bool = False) -> ApiResult:
        def extract(imported: M3uImportResult) -> Any:
            if kind == DataKind.PLAYLIST_INFO:
                return _playlist_info(imported)
            return getattr(imported.catalog, kind.value)

        # One import per profile feeds every kind; served until an explicit refresh
        return await self._serve(
            profile, self.catalog_source_id(profile), kind, (profile.id, "playlist"),
            lambda: self._import_snapshot(profile),
            _SNAPSHOT_ADAPTERS[kind], use_ttl=False, force=force, extract=extract,
        )

    async def _catalog(self, kind: DataKind, force: bool = False) -> ApiResult:
        profile, missing = self._require_profile()
        if missing:
            return missing
        await self._invalidate_if_switched(profile)
        if profile.uses_playlist_snapshot:
            return await self._snapshot(profile, kind, force)
        if kind not in _DIRECT_ADAPTERS or kind == DataKind.PLAYLIST_INFO:
            return ApiResult.failure(ApiError.validation(f"'{kind.value}' is not served by the Xtream API"))
        return await self._direct(profile, kind, force)

    # ------------------------------------------------------------------
    # Catalog reads
    # ------------------------------------------------------------------

    async def get_live_categories(self) -> ApiResult[list[Category]]:
        return await self._catalog(DataKind.LIVE_CATEGORIES)

    async def get_live_channels(self, category_id: str | None = None) -> ApiResult[list[Channel]]:
        result = await self._catalog(DataKind.LIVE_CHANNELS)
        return result.map(lambda items: _in_category(items, category_id))

    async def get_vod_categories(self) -> ApiResult[list[Category]]:
        return await self._catalog(DataKind.VOD_CATEGORIES)

    async def get_vod_items(self, category_id: str | None = None) -> ApiResult[list[VodItem]]:
        result = await self._catalog(DataKind.VOD_ITEMS)
        return result.map(lambda items: _in_category(items, category_id))

    async def get_series_categories(self) -> ApiResult[list[Category]]:
        return await self._catalog(DataKind.SERIES_CATEGORIES)

    async def get_series(self, category_id: str | None = None) -> ApiResult[list]:
        """``Series`` from the Xtream API; flat ``Channel`` entries from a playlist."""
        result = await self._catalog(DataKind.SERIES)
        return result.map(lambda items: _in_category(items, category_id))

    async def get_series_info(self, series_id: str) -> ApiResult[Series]:
        profile, missing = self._require_profile()
        if missing:
            return missing
        if not profile.is_xtream:
            return ApiResult.failure(ApiError.not_found("Playlist sources have no season/episode data"))
        client = self._client_factory(profile)
        return await self.flights.run((profile.id, f"series_info:{series_id}"), lambda: client.get_series_info(series_id))

    async def get_vod_info(self, vod_id: str) -> ApiResult[VodItem]:
        profile, missing = self._require_profile()
        if missing:
            return missing
        if profile.is_xtream:
            client = self._client_factory(profile)
            return await self.flights.run((profile.id, f"vod_info:{vod_id}"), lambda: client.get_vod_info(vod_id))

        items = await self.get_vod_items()
        if items.is_failure:
            return ApiResult.failure(items.error)
        for item in items.data:
            if item.id == vod_id:
                return ApiResult.success(item, warning=items.warning, stale=items.stale)
        return ApiResult.failure(ApiError.not_found(f"VOD {vod_id} not found"))

    # ------------------------------------------------------------------
    # EPG
    # ------------------------------------------------------------------

    async def get_epg(self, force: bool = False) -> ApiResult[EpgData]:
        profile, missing = self._require_profile()
        if missing:
            return missing

        playlist_epg_url = None
        if not profile.epg_url and not profile.is_xtream:
            info = await self._catalog(DataKind.PLAYLIST_INFO)
            if info.is_success:
                playlist_epg_url = (info.data or {}).get("epg_url")

        source = self.epg_service.resolve_source(profile, playlist_epg_url)
        if source is None:
            return ApiResult.failure(ApiError.not_found(f"No EPG source for profile '{profile.name}'"))

        async def fetch_and_store() -> ApiResult:
            result = await self.epg_service.fetch_from_url(source.url)
            if result.is_success:
                await self.cache.save(source.source_id, DataKind.EPG, result.data, ttl_class=source.ttl_class)
            return result

        return await self._serve(
            profile, source.source_id, DataKind.EPG, (profile.id, DataKind.EPG.value),
            fetch_and_store, _EPG, use_ttl=True, force=force,
        )

    async def get_live_channels_with_epg(
        self,
        category_id: str | None = None,
        at: datetime | None = None,
    ) -> ApiResult[list[Channel]]:
        channels = await self.get_live_channels(category_id)
        if channels.is_failure:
            return channels
        epg = await self.get_epg()
        if epg.is_failure:
            # channels are still useful without a guide
            return ApiResult.success(channels.data, warning=epg.error, stale=channels.stale)
        threshold = self.config_service.options.epg_fuzzy_threshold
        enriched = correlate_channels(channels.data, epg.data, at, threshold)
        return ApiResult.success(enriched, warning=channels.warning or epg.warning,
                                 stale=channels.stale or epg.stale)

    async def now_next(self, channel_id: str, at: datetime | None = None) -> ApiResult[EpgSummary]:
        """Current/next programme for a catalog channel id or a guide channel id."""
        epg = await self.get_epg()
        if epg.is_failure:
            return ApiResult.failure(epg.error)

        epg_id: Optional[str] = channel_id
        channels = await self.get_live_channels()
        if channels.is_success:
            channel = next((c for c in channels.data if c.id == channel_id), None)
            if channel is not None:
                threshold = self.config_service.options.epg_fuzzy_threshold
                epg_id = match_channel_id(channel, epg.data, threshold=threshold)

        summary = epg_summary(epg.data, epg_id, at) if epg_id else None
        if summary is None:
            return ApiResult.failure(ApiError.not_found(f"No guide data for channel '{channel_id}'"))
        return ApiResult.success(summary, warning=epg.warning, stale=epg.stale)

    # ------------------------------------------------------------------
    # Refresh / status
    # ------------------------------------------------------------------

    async def refresh(self, kind: DataKind) -> ApiResult[int]:
        """Force a fetch of *kind*; for snapshot profiles this re-imports the playlist."""
        if kind == DataKind.EPG:
            result = await self.get_epg(force=True)
        else:
            result = await self._catalog(kind, force=True)
        return result.map(_count)

    async def refresh_all(self) -> dict[str, ApiResult[int]]:
        profile, missing = self._require_profile()
        if missing:
            return {"profile": missing}
        results: dict[str, ApiResult[int]] = {}
        if profile.uses_playlist_snapshot:
            # one import covers every catalog kind
            results["playlist"] = await self.refresh(DataKind.LIVE_CHANNELS)
        else:
            for kind in CATALOG_KINDS:
                if kind != DataKind.PLAYLIST_INFO:
                    results[kind.value] = await self.refresh(kind)
        results[DataKind.EPG.value] = await self.refresh(DataKind.EPG)
        failed = [k for k, r in results.items() if r.is_failure or r.stale]
        if failed:
            logger.warning(f"Refresh for '{profile.name}' incomplete: {', '.join(failed)}")
        else:
            logger.info(f"Refresh for '{profile.name}' complete")
        return results

    async def cache_status(self) -> dict[str, Any]:
        profile = self.active_profile()
        if profile is None:
            return {"profile": None, "slots": []}
        source_id = self.catalog_source_id(profile)
        slots = await self.cache.status(source_id, CATALOG_KINDS)

        source = self.epg_service.resolve_source(profile)
        if source is None and not profile.is_xtream:
            info = await self.cache.load(source_id, DataKind.PLAYLIST_INFO)
            if isinstance(info, dict) and info.get("epg_url"):
                source = self.epg_service.resolve_source(profile, info["epg_url"])
        if source is not None:
            slots += await self.cache.status(source.source_id, [DataKind.EPG])
        return {
            "profile": profile.id,
            "strategy": profile.strategy.value if profile.is_xtream else None,
            "source_id": source_id,
            "slots": slots,
            "ttl_seconds": {c.value: int(self.cache.ttl_for(c).total_seconds()) for c in TtlClass},
        }


def _in_category(items: list, category_id: str | None) -> list:
    if category_id is None:
        return items
    return [item for item in items if item.category_id == category_id]


def _count(data: Any) -> int:
    if isinstance(data, EpgData):
        return data.total_programs
    if isinstance(data, (list, dict)):
        return len(data)
    return 1
