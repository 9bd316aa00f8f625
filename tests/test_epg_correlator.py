"""Tests for programme lookups and channel/guide matching."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from streamcatalog.models.domain import Channel
from streamcatalog.models.epg import EpgChannel, EpgData, EpgProgram
from streamcatalog.services.epg_correlator import (
    correlate_channels,
    current_program,
    epg_summary,
    match_channel_id,
    next_program,
    normalize_name,
    program_progress,
    programs_in_range,
)


T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _program(channel_id, title, start_offset_min, length_min):
    start = T0 + timedelta(minutes=start_offset_min)
    return EpgProgram(channel_id=channel_id, title=title, start_time=start,
                      end_time=start + timedelta(minutes=length_min))


def _schedule(channel_id="bbc1.uk"):
    return [
        _program(channel_id, "Morning", -60, 60),
        _program(channel_id, "Noon", 0, 30),
        _program(channel_id, "Afternoon", 30, 90),
    ]


def _guide():
    return EpgData(
        channels={
            "bbc1.uk": EpgChannel(id="bbc1.uk", display_names=["BBC One"]),
            "Sky.News": EpgChannel(id="Sky.News", display_names=["Sky News"]),
        },
        programs={"bbc1.uk": _schedule("bbc1.uk"), "Sky.News": _schedule("Sky.News")},
    )


class TestProgress:

    def test_boundaries_and_midpoint(self):
        program = _program("x", "Show", 0, 60)
        assert program.progress(program.start_time) == 0.0
        assert program.progress(program.end_time) == 1.0
        assert program.progress(T0 + timedelta(minutes=30)) == pytest.approx(0.5, abs=0.01)

    def test_outside_interval(self):
        program = _program("x", "Show", 0, 60)
        assert program_progress(program, T0 - timedelta(hours=1)) == 0.0
        assert program_progress(program, T0 + timedelta(hours=2)) == 1.0

    def test_naive_datetime_treated_as_utc(self):
        program = _program("x", "Show", 0, 60)
        assert program.progress(datetime(2024, 1, 1, 12, 30)) == pytest.approx(0.5)

    def test_start_must_precede_end(self):
        with pytest.raises(ValidationError):
            EpgProgram(channel_id="x", title="Bad", start_time=T0, end_time=T0)


class TestLookups:

    def test_current_program(self):
        programs = _schedule()
        assert current_program(programs, T0 + timedelta(minutes=10)).title == "Noon"
        assert current_program(programs, T0).title == "Noon"
        assert current_program(programs, T0 - timedelta(minutes=1)).title == "Morning"
        assert current_program(programs, T0 + timedelta(hours=3)) is None

    def test_next_program(self):
        programs = _schedule()
        assert next_program(programs, T0 + timedelta(minutes=10)).title == "Afternoon"
        assert next_program(programs, T0).title == "Afternoon"
        assert next_program(programs, T0 - timedelta(hours=2)).title == "Morning"
        assert next_program(programs, T0 + timedelta(minutes=30)) is None

    def test_gap_has_no_current(self):
        programs = [_program("x", "A", 0, 10), _program("x", "B", 20, 10)]
        at = T0 + timedelta(minutes=15)
        assert current_program(programs, at) is None
        assert next_program(programs, at).title == "B"

    def test_programs_in_range(self):
        titles = [p.title for p in programs_in_range(_schedule(), T0 - timedelta(minutes=5), T0 + timedelta(minutes=5))]
        assert titles == ["Morning", "Noon"]

    def test_summary(self):
        summary = epg_summary(_guide(), "bbc1.uk", T0 + timedelta(minutes=15))
        assert summary.current.title == "Noon"
        assert summary.next.title == "Afternoon"
        assert summary.progress == pytest.approx(0.5)

    def test_summary_for_unknown_channel(self):
        assert epg_summary(_guide(), "nope", T0) is None


class TestMatching:

    def test_normalize_name(self):
        assert normalize_name("UK: BBC One HD") == "bbc one"
        assert normalize_name("FR - Canal+ FHD") == "canal+"
        assert normalize_name("Sky News (Backup)") == "sky news"

    def test_exact_id(self):
        channel = Channel(id="1", name="Whatever", stream_url="http://x.test/1", epg_channel_id="bbc1.uk")
        assert match_channel_id(channel, _guide()) == "bbc1.uk"

    def test_case_insensitive_id(self):
        channel = Channel(id="1", name="Whatever", stream_url="http://x.test/1", epg_channel_id="sky.news")
        assert match_channel_id(channel, _guide()) == "Sky.News"

    def test_fuzzy_name(self):
        channel = Channel(id="1", name="UK: BBC One HD", stream_url="http://x.test/1")
        assert match_channel_id(channel, _guide()) == "bbc1.uk"

    def test_no_match(self):
        channel = Channel(id="1", name="Totally Different", stream_url="http://x.test/1", epg_channel_id="zzz")
        assert match_channel_id(channel, _guide()) is None

    def test_correlate_channels(self):
        channels = [
            Channel(id="1", name="UK: BBC One HD", stream_url="http://x.test/1"),
            Channel(id="2", name="Sky News", stream_url="http://x.test/2", epg_channel_id="Sky.News"),
            Channel(id="3", name="Local TV", stream_url="http://x.test/3"),
        ]
        enriched = correlate_channels(channels, _guide(), T0 + timedelta(minutes=5))
        assert enriched[0].epg.current.title == "Noon"
        assert enriched[0].epg_channel_id == "bbc1.uk"
        assert enriched[1].epg.next.title == "Afternoon"
        assert enriched[2].epg is None
        # originals untouched
        assert channels[0].epg is None
