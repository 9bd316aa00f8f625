"""EPG service: pick a guide source for a profile, download it and parse it."""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import BaseModel

from streamcatalog.models.cache import TtlClass
from streamcatalog.models.config import Timeouts
from streamcatalog.models.epg import EpgData
from streamcatalog.models.profile import Profile
from streamcatalog.models.result import ApiError, ApiResult, ParseError
from streamcatalog.services.cache_service import url_epg_source_id, xtream_source_id
from streamcatalog.services.http_client import HttpClientService
from streamcatalog.services.xmltv_parser import XmltvParser

logger = logging.getLogger(__name__)


class EpgSource(BaseModel):
    """Where a profile's guide comes from and which cache slot holds it."""

    source_id: str
    url: str
    ttl_class: TtlClass
    origin: str  # "profile", "xtream" or "playlist"


class EpgService:
    """Downloads XMLTV and parses it off the event loop."""

    def __init__(
        self,
        http_client: HttpClientService,
        timeouts: Timeouts | None = None,
        parser: XmltvParser | None = None,
    ):
        self.http_client = http_client
        self.timeouts = timeouts or Timeouts()
        self.parser = parser or XmltvParser()

    @staticmethod
    def resolve_source(profile: Profile, playlist_epg_url: str | None = None) -> Optional[EpgSource]:
        """Profile ``epg_url`` first, then the Xtream ``xmltv.php``, then the playlist header."""
        if profile.epg_url:
            return EpgSource(
                source_id=url_epg_source_id(profile.epg_url),
                url=profile.epg_url,
                ttl_class=TtlClass.EPG_URL,
                origin="profile",
            )
        if profile.is_xtream and profile.credentials is not None:
            return EpgSource(
                source_id=xtream_source_id(profile.id),
                url=profile.credentials.xmltv_url,
                ttl_class=TtlClass.EPG_XTREAM,
                origin="xtream",
            )
        if playlist_epg_url:
            return EpgSource(
                source_id=url_epg_source_id(playlist_epg_url),
                url=playlist_epg_url,
                ttl_class=TtlClass.EPG_URL,
                origin="playlist",
            )
        return None

    async def parse(self, content: bytes | str, source_url: str | None = None) -> ApiResult[EpgData]:
        try:
            data = await asyncio.to_thread(self.parser.parse, content, source_url)
        except ParseError as e:
            logger.warning(f"EPG parse failed ({e.reason}): {e}")
            return ApiResult.failure(ApiError.parse(f"{e.reason}: {e}"))
        return ApiResult.success(data)

    async def fetch_from_url(self, url: str) -> ApiResult[EpgData]:
        result = await self.http_client.fetch(url, timeout=self.timeouts.epg)
        if result.is_failure:
            return ApiResult.failure(result.error)
        content = result.data.content
        logger.info(f"Fetched EPG: {len(content)} bytes")
        return await self.parse(content, source_url=url)

    async def fetch_for_profile(
        self,
        profile: Profile,
        playlist_epg_url: str | None = None,
    ) -> ApiResult[EpgData]:
        source = self.resolve_source(profile, playlist_epg_url)
        if source is None:
            return ApiResult.failure(ApiError.not_found(f"No EPG source for profile '{profile.name}'"))
        logger.info(f"Fetching EPG for profile '{profile.name}' from {source.origin} source")
        return await self.fetch_from_url(source.url)
