"""Import playlists from a file, a URL or raw text into an :class:`M3uCatalog`."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from streamcatalog.models.config import Timeouts
from streamcatalog.models.result import ApiError, ApiResult, ParseError
from streamcatalog.services.http_client import HttpClientService
from streamcatalog.services.m3u_mapper import M3uCatalog, map_playlist
from streamcatalog.services.m3u_parser import M3uParser

logger = logging.getLogger(__name__)


class M3uImportResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: str
    catalog: M3uCatalog
    entry_count: int
    imported_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def _parse_and_map(content: str) -> tuple[M3uCatalog, int]:
    parser = M3uParser()
    header = parser.parse_header(content)
    entries = parser.parse(content)
    return map_playlist(entries, epg_url=header.epg_url), len(entries)


class M3uImportService:
    """Parsing runs in a worker thread; large playlists run to six figures of lines."""

    def __init__(self, http_client: HttpClientService, timeouts: Timeouts | None = None):
        self.http_client = http_client
        self.timeouts = timeouts or Timeouts()

    async def import_from_content(self, content: str, source: str = "inline") -> ApiResult[M3uImportResult]:
        if not M3uParser.is_valid(content):
            logger.warning(f"Rejected playlist from {source}: not an M3U document")
            return ApiResult.failure(ApiError.validation(f"'{source}' is not an M3U playlist"))
        try:
            catalog, count = await asyncio.to_thread(_parse_and_map, content)
        except ParseError as e:
            return ApiResult.failure(ApiError.validation(str(e)))
        logger.info(f"Imported {count} playlist entries from {source}")
        return ApiResult.success(M3uImportResult(source=source, catalog=catalog, entry_count=count))

    async def import_from_file(self, path: str | Path) -> ApiResult[M3uImportResult]:
        path = Path(path)
        try:
            raw = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return ApiResult.failure(ApiError.not_found(f"Playlist file not found: {path}"))
        except OSError as e:
            return ApiResult.failure(ApiError.validation(f"Cannot read playlist file {path}: {e}"))
        return await self.import_from_content(raw.decode("utf-8", errors="replace"), source=str(path))

    async def import_from_url(self, url: str) -> ApiResult[M3uImportResult]:
        result = await self.http_client.fetch(url, timeout=self.timeouts.epg)
        if result.is_failure:
            return ApiResult.failure(result.error)
        return await self.import_from_content(result.data.text, source=url.split("?", 1)[0])
