"""XMLTV parser built on lxml.

Document-level problems raise :class:`ParseError`; individual bad
``<programme>`` elements are skipped and counted.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from lxml import etree

from streamcatalog.models.epg import EpgChannel, EpgData, EpgProgram
from streamcatalog.models.result import ParseError

logger = logging.getLogger(__name__)

_XMLTV_TIME_RE = re.compile(r"^\s*(\d{12}(?:\d{2})?)\s*(?:([+-])(\d{2}):?(\d{2}))?")


def parse_xmltv_time(value: str | None) -> Optional[datetime]:
    """``YYYYMMDDHHMMSS +HHMM`` (seconds and offset optional) to UTC."""
    if not value:
        return None
    match = _XMLTV_TIME_RE.match(value)
    if not match:
        return None
    stamp, sign, hours, minutes = match.groups()
    fmt = "%Y%m%d%H%M%S" if len(stamp) == 14 else "%Y%m%d%H%M"
    offset = timedelta(0)
    if sign:
        offset = timedelta(hours=int(hours), minutes=int(minutes))
        if sign == "-":
            offset = -offset
    try:
        return (datetime.strptime(stamp, fmt) - offset).replace(tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        return None


def _text(element, tag: str) -> Optional[str]:
    """Text of the first non-empty *tag* child."""
    for child in element.iterfind(tag):
        text = (child.text or "").strip()
        if text:
            return text
    return None


def _episode_number(element) -> Optional[str]:
    numbers = {
        (ep.get("system") or "").lower(): (ep.text or "").strip()
        for ep in element.iterfind("episode-num")
    }
    return numbers.get("onscreen") or numbers.get("xmltv_ns") or next(
        (v for v in numbers.values() if v), None
    )


class XmltvParser:
    """Parses an XMLTV document into :class:`EpgData`."""

    def __init__(self):
        self._parser = etree.XMLParser(
            recover=False,
            resolve_entities=False,
            no_network=True,
            huge_tree=True,
            remove_comments=True,
        )

    def parse(self, xml: bytes | str, source_url: str | None = None) -> EpgData:
        if isinstance(xml, str):
            xml = xml.encode("utf-8")
        if not xml or not xml.strip():
            raise ParseError("XMLTV document is empty", reason=ParseError.MALFORMED_XML)
        try:
            root = etree.fromstring(xml, self._parser)
        except etree.XMLSyntaxError as e:
            raise ParseError(f"XMLTV is not well-formed: {e}", reason=ParseError.MALFORMED_XML) from e

        if root is None or root.tag != "tv":
            tag = getattr(root, "tag", None)
            raise ParseError(f"XMLTV root element is <{tag}>, expected <tv>", reason=ParseError.MISSING_ROOT)

        channels = self._parse_channels(root)
        programs, skipped = self._parse_programmes(root)

        if not channels and not programs:
            raise ParseError("XMLTV document has no channels and no programmes", reason=ParseError.EPG_EMPTY)

        total = sum(len(p) for p in programs.values())
        if skipped:
            logger.warning(f"XMLTV: skipped {skipped} malformed programme(s)")
        logger.info(f"XMLTV: {len(channels)} channels, {total} programmes")
        return EpgData(channels=channels, programs=programs, source_url=source_url)

    @staticmethod
    def _parse_channels(root) -> dict[str, EpgChannel]:
        channels: dict[str, EpgChannel] = {}
        for element in root.iterfind("channel"):
            channel_id = (element.get("id") or "").strip()
            if not channel_id:
                continue
            names = [
                (n.text or "").strip() for n in element.iterfind("display-name") if (n.text or "").strip()
            ]
            icon = element.find("icon")
            channels[channel_id] = EpgChannel(
                id=channel_id,
                display_names=names,
                icon_url=(icon.get("src") or None) if icon is not None else None,
            )
        return channels

    @staticmethod
    def _parse_programmes(root) -> tuple[dict[str, list[EpgProgram]], int]:
        programs: dict[str, list[EpgProgram]] = {}
        skipped = 0
        for element in root.iterfind("programme"):
            channel_id = (element.get("channel") or "").strip()
            start = parse_xmltv_time(element.get("start"))
            stop = parse_xmltv_time(element.get("stop"))
            title = _text(element, "title")
            if not channel_id or start is None or stop is None or not title or stop <= start:
                skipped += 1
                continue

            title_el = element.find("title")
            icon = element.find("icon")
            programs.setdefault(channel_id, []).append(EpgProgram(
                channel_id=channel_id,
                title=title,
                start_time=start,
                end_time=stop,
                description=_text(element, "desc"),
                category=_text(element, "category"),
                language=_text(element, "language") or (title_el.get("lang") if title_el is not None else None),
                episode_number=_episode_number(element),
                subtitle=_text(element, "sub-title"),
                icon_url=(icon.get("src") or None) if icon is not None else None,
            ))

        for items in programs.values():
            items.sort(key=lambda p: p.start_time)
        return programs, skipped
