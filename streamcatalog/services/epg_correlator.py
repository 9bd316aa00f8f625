"""Schedule lookups over parsed EPG data and channel <-> guide matching."""
from __future__ import annotations

import bisect
import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional

from rapidfuzz import fuzz, process

from streamcatalog.models.domain import Channel
from streamcatalog.models.epg import EpgData, EpgProgram, EpgSummary

logger = logging.getLogger(__name__)

DEFAULT_FUZZY_THRESHOLD = 90


def _utc(at: datetime | None) -> datetime:
    if at is None:
        return datetime.now(timezone.utc)
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at.astimezone(timezone.utc)


def current_program(programs: list[EpgProgram], at: datetime | None = None) -> Optional[EpgProgram]:
    """The programme airing at *at* (``start <= at < end``); *programs* sorted by start."""
    at = _utc(at)
    starts = [p.start_time for p in programs]
    index = bisect.bisect_right(starts, at)
    # overlapping schedules: walk back until something still covers *at*
    for program in reversed(programs[:index]):
        if program.is_airing(at):
            return program
    return None


def next_program(programs: list[EpgProgram], at: datetime | None = None) -> Optional[EpgProgram]:
    """First programme starting strictly after *at*."""
    at = _utc(at)
    starts = [p.start_time for p in programs]
    index = bisect.bisect_right(starts, at)
    return programs[index] if index < len(programs) else None


def program_progress(program: EpgProgram, at: datetime | None = None) -> float:
    return program.progress(_utc(at))


def programs_in_range(
    programs: list[EpgProgram],
    start: datetime,
    end: datetime,
) -> list[EpgProgram]:
    """Programmes overlapping the window ``[start, end)``."""
    start, end = _utc(start), _utc(end)
    return [p for p in programs if p.start_time < end and p.end_time > start]


def epg_summary(data: EpgData, channel_id: str, at: datetime | None = None) -> Optional[EpgSummary]:
    at = _utc(at)
    programs = data.programs_for(channel_id)
    if not programs:
        return None
    current = current_program(programs, at)
    return EpgSummary(
        current=current,
        next=next_program(programs, at),
        progress=current.progress(at) if current else None,
    )


def normalize_name(name: str) -> str:
    """Reduce a channel name to its comparable core.

    Strips accents, country prefixes such as ``UK:`` or ``FR -``, quality tags
    and bracketed notes, so that ``"UK: BBC One HD"`` and ``"BBC One"`` match.
    """
    n = name.strip().lower()
    n = "".join(c for c in unicodedata.normalize("NFD", n) if unicodedata.category(c) != "Mn")
    for _ in range(2):
        m = re.match(r"^([a-z0-9+]{1,4})\s*[:|]\s*", n) or re.match(r"^(\S{1,4})\s*-\s+", n)
        if not m:
            break
        n = n[m.end():]
    n = re.sub(r"\s*[\(\[][^)\]]*[\)\]]\s*", " ", n)
    n = re.sub(r"\b(4k|uhd|fhd|hd|sd|hevc|h\.?265|h\.?264|50fps|60fps|backup)\b", "", n)
    n = re.sub(r"[^\w\s+]", " ", n)
    return re.sub(r"\s+", " ", n).strip()


def match_channel_id(
    channel: Channel,
    data: EpgData,
    folded_ids: dict[str, str] | None = None,
    name_index: dict[str, str] | None = None,
    threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> Optional[str]:
    """Guide channel id for *channel*: exact id, case-insensitive id, then fuzzy name."""
    epg_id = (channel.epg_channel_id or "").strip()
    if epg_id:
        if epg_id in data.programs or epg_id in data.channels:
            return epg_id
        if folded_ids is None:
            folded_ids = _folded_ids(data)
        folded = folded_ids.get(epg_id.lower())
        if folded:
            return folded

    if name_index is None:
        name_index = _name_index(data)
    target = normalize_name(channel.name)
    if not target or not name_index:
        return None
    best = process.extractOne(target, list(name_index), scorer=fuzz.token_sort_ratio, score_cutoff=threshold)
    if best is None:
        return None
    return name_index[best[0]]


def _folded_ids(data: EpgData) -> dict[str, str]:
    folded: dict[str, str] = {}
    for channel_id in list(data.channels) + list(data.programs):
        folded.setdefault(channel_id.lower(), channel_id)
    return folded


def _name_index(data: EpgData) -> dict[str, str]:
    index: dict[str, str] = {}
    for channel in data.channels.values():
        for display in channel.display_names:
            key = normalize_name(display)
            if key:
                index.setdefault(key, channel.id)
    return index


def correlate_channels(
    channels: list[Channel],
    data: EpgData,
    at: datetime | None = None,
    threshold: int = DEFAULT_FUZZY_THRESHOLD,
) -> list[Channel]:
    """Return copies of *channels* with ``epg`` now/next attached where a guide matches."""
    at = _utc(at)
    folded = _folded_ids(data)
    names = _name_index(data)
    enriched: list[Channel] = []
    matched = 0
    for channel in channels:
        epg_id = match_channel_id(channel, data, folded, names, threshold)
        summary = epg_summary(data, epg_id, at) if epg_id else None
        if summary is None:
            enriched.append(channel)
            continue
        matched += 1
        update: dict = {"epg": summary}
        if not channel.epg_channel_id:
            update["epg_channel_id"] = epg_id
        enriched.append(channel.model_copy(update=update))
    logger.info(f"EPG correlation: {matched}/{len(channels)} channels matched")
    return enriched
