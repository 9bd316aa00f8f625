"""Extended M3U/M3U8 playlist parser.

Single forward pass over the lines with two states: waiting for an
``#EXTINF`` metadata line, or holding a pending entry and waiting for its URL.
Broken entries are dropped and counted; only content that is not a playlist
at all is refused with :class:`ParseError`.
"""
from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from streamcatalog.models.domain import ContentType
from streamcatalog.models.result import ParseError

logger = logging.getLogger(__name__)

_ATTR_RE = re.compile(r'(\w[\w-]*)="([^"]*)"')
_DURATION_RE = re.compile(r"^#EXTINF:\s*(-?\d+)")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*$")

# attribute name -> typed field, first match wins
_PROMOTED = {
    "tvg-id": "tvg_id",
    "channel-id": "tvg_id",
    "tvg-logo": "tvg_logo",
    "logo": "tvg_logo",
    "group-title": "group_title",
    "tvg-name": "tvg_name",
}


class M3uEntry(BaseModel):
    """One playlist item: its ``#EXTINF`` metadata plus the URL line."""
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    duration: int = -1
    tvg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    tvg_logo: Optional[str] = None
    group_title: Optional[str] = None
    content_type: ContentType = ContentType.LIVE
    attributes: dict[str, str] = Field(default_factory=dict)


class M3uHeader(BaseModel):
    """Attributes of the ``#EXTM3U`` line."""
    model_config = ConfigDict(frozen=True)

    epg_url: Optional[str] = None
    attributes: dict[str, str] = Field(default_factory=dict)


def is_valid_stream_url(line: str) -> bool:
    """True when *line* parses as a URI with a scheme."""
    if not line or any(c.isspace() for c in line):
        return False
    try:
        parsed = urlparse(line)
    except ValueError:
        return False
    # one-letter schemes are Windows drive letters ("C:\...")
    if len(parsed.scheme) < 2 or not _SCHEME_RE.match(parsed.scheme):
        return False
    return bool(parsed.netloc or parsed.path)


def _parse_extinf(line: str) -> dict:
    head, sep, name = line.rpartition(",")
    if not sep:
        head, name = line, ""

    match = _DURATION_RE.match(line)
    duration = int(match.group(1)) if match else -1

    fields: dict = {"duration": duration}
    attributes: dict[str, str] = {}
    for key, value in _ATTR_RE.findall(head):
        lowered = key.lower()
        target = _PROMOTED.get(lowered)
        if target is not None:
            if value and not fields.get(target):
                fields[target] = value
        else:
            attributes[key] = value
    fields["attributes"] = attributes
    fields["name"] = name.strip() or fields.get("tvg_name") or ""
    return fields


class M3uParser:
    """Parses extended M3U playlists into :class:`M3uEntry` objects."""

    @staticmethod
    def is_valid(content: str) -> bool:
        if not content:
            return False
        text = content.lstrip("\ufeff").strip()
        return text.startswith("#EXTM3U") or "#EXTINF" in text

    @staticmethod
    def parse_header(content: str) -> M3uHeader:
        """Read ``url-tvg`` / ``x-tvg-url`` from the ``#EXTM3U`` line, if any."""
        for raw in content.lstrip("\ufeff").splitlines():
            line = raw.strip()
            if not line:
                continue
            if not line.startswith("#EXTM3U"):
                break
            attributes = dict(_ATTR_RE.findall(line))
            epg_url = attributes.get("url-tvg") or attributes.get("x-tvg-url")
            if epg_url:
                # some panels list several guides separated by commas
                epg_url = epg_url.split(",")[0].strip() or None
            return M3uHeader(epg_url=epg_url, attributes=attributes)
        return M3uHeader()

    def parse(self, content: str) -> list[M3uEntry]:
        if not self.is_valid(content):
            raise ParseError("Content is not an M3U playlist", reason=ParseError.INVALID_PLAYLIST)

        entries: list[M3uEntry] = []
        pending: dict | None = None
        skipped = 0

        for raw in content.lstrip("\ufeff").splitlines():
            line = raw.strip()
            if not line or line.startswith("#EXTM3U"):
                continue

            if line.startswith("#EXTINF"):
                if pending is not None:
                    logger.debug(f"M3U entry '{pending['name']}' has no URL, dropped")
                    skipped += 1
                pending = _parse_extinf(line)
                continue

            if line.startswith("#EXTGRP:"):
                if pending is not None:
                    group = line[len("#EXTGRP:"):].strip()
                    if group:
                        pending["group_title"] = group
                continue

            if line.startswith("#"):
                continue

            if pending is None:
                continue

            if is_valid_stream_url(line):
                pending["url"] = line
                pending["content_type"] = ContentType.classify(pending.get("group_title"), line)
                entries.append(M3uEntry(**pending))
            else:
                logger.warning(f"Skipping M3U entry '{pending['name']}': invalid URL {line[:120]!r}")
                skipped += 1
            pending = None

        if pending is not None:
            skipped += 1
        if skipped:
            logger.warning(f"M3U parse: {len(entries)} entries, {skipped} skipped")
        else:
            logger.info(f"M3U parse: {len(entries)} entries")
        return entries
