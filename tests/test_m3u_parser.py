"""Tests for the extended M3U parser."""

import pytest

from streamcatalog.models.domain import ContentType
from streamcatalog.models.result import ParseError
from streamcatalog.services.m3u_parser import M3uParser, is_valid_stream_url


PLAYLIST = """#EXTM3U url-tvg="http://epg.test/guide.xml,http://epg.test/backup.xml"
#EXTINF:-1 tvg-id="espn" group-title="Sports",ESPN HD
http://x.test/espn.m3u8

#EXTINF:-1 tvg-id="cnn" tvg-logo="http://img.test/cnn.png" group-title="News" tvg-chno="7",CNN
http://x.test/cnn.ts
#EXTINF:7200 group-title="Movies",The Matrix (1999)
http://x.test/movie/u/p/100.mkv
#EXTINF:-1 group-title="TV Series",Lost S01E01
http://x.test/series/u/p/200.mp4
"""


class TestValidity:

    def test_header_makes_content_valid(self):
        assert M3uParser.is_valid("#EXTM3U\n") is True

    def test_extinf_without_header_is_valid(self):
        assert M3uParser.is_valid("#EXTINF:-1,Foo\nhttp://a.test/1\n") is True

    def test_bom_and_whitespace_ignored(self):
        assert M3uParser.is_valid("\ufeff  \n#EXTM3U\n") is True

    def test_html_is_not_a_playlist(self):
        assert M3uParser.is_valid("<html><body>Forbidden</body></html>") is False

    def test_empty_is_not_a_playlist(self):
        assert M3uParser.is_valid("") is False

    def test_parse_refuses_invalid_content(self):
        with pytest.raises(ParseError) as exc:
            M3uParser().parse("not a playlist at all")
        assert exc.value.reason == ParseError.INVALID_PLAYLIST


class TestParse:

    def test_espn_entry(self):
        entries = M3uParser().parse(PLAYLIST)
        espn = entries[0]
        assert espn.name == "ESPN HD"
        assert espn.tvg_id == "espn"
        assert espn.group_title == "Sports"
        assert espn.duration == -1
        assert espn.content_type == ContentType.LIVE
        assert espn.url == "http://x.test/espn.m3u8"

    def test_all_entries_parsed(self):
        entries = M3uParser().parse(PLAYLIST)
        assert [e.name for e in entries] == ["ESPN HD", "CNN", "The Matrix (1999)", "Lost S01E01"]

    def test_extra_attributes_kept(self):
        cnn = M3uParser().parse(PLAYLIST)[1]
        assert cnn.tvg_logo == "http://img.test/cnn.png"
        assert cnn.attributes == {"tvg-chno": "7"}

    def test_movies_group_is_movie(self):
        movie = M3uParser().parse(PLAYLIST)[2]
        assert movie.content_type == ContentType.MOVIE
        assert movie.duration == 7200

    def test_tv_series_group_is_series(self):
        series = M3uParser().parse(PLAYLIST)[3]
        assert series.content_type == ContentType.SERIES

    def test_name_after_last_comma(self):
        content = '#EXTM3U\n#EXTINF:-1 tvg-name="a,b" group-title="News",Channel, The One\nhttp://x.test/1\n'
        entry = M3uParser().parse(content)[0]
        assert entry.name == "The One"

    def test_missing_name_falls_back_to_tvg_name(self):
        content = '#EXTM3U\n#EXTINF:-1 tvg-name="BBC One",\nhttp://x.test/bbc\n'
        entry = M3uParser().parse(content)[0]
        assert entry.name == "BBC One"

    def test_extgrp_overrides_group(self):
        content = '#EXTM3U\n#EXTINF:-1 group-title="Old",Foo\n#EXTGRP:Films\nhttp://x.test/foo\n'
        entry = M3uParser().parse(content)[0]
        assert entry.group_title == "Films"
        assert entry.content_type == ContentType.MOVIE

    def test_classification_from_url_path(self):
        content = "#EXTM3U\n#EXTINF:-1,Foo\nhttp://x.test/movie/u/p/1.mp4\n#EXTINF:-1,Bar\nhttp://x.test/series/u/p/2.mp4\n"
        first, second = M3uParser().parse(content)
        assert first.content_type == ContentType.MOVIE
        assert second.content_type == ContentType.SERIES

    def test_other_directives_ignored(self):
        content = "#EXTM3U\n#EXTINF:-1,Foo\n#EXTVLCOPT:http-user-agent=VLC\nhttp://x.test/foo\n"
        entries = M3uParser().parse(content)
        assert len(entries) == 1
        assert entries[0].url == "http://x.test/foo"


class TestMalformedEntries:

    def test_invalid_url_dropped(self):
        content = (
            "#EXTM3U\n"
            "#EXTINF:-1,Broken\n"
            "not a url\n"
            "#EXTINF:-1,Good\n"
            "http://x.test/good\n"
        )
        entries = M3uParser().parse(content)
        assert [e.name for e in entries] == ["Good"]

    def test_windows_path_is_not_a_url(self):
        content = "#EXTM3U\n#EXTINF:-1,Local\nC:\\videos\\a.ts\n"
        assert M3uParser().parse(content) == []

    def test_url_without_metadata_ignored(self):
        content = "#EXTM3U\nhttp://x.test/orphan\n#EXTINF:-1,Good\nhttp://x.test/good\n"
        entries = M3uParser().parse(content)
        assert [e.url for e in entries] == ["http://x.test/good"]

    def test_extinf_without_url_dropped(self):
        content = "#EXTM3U\n#EXTINF:-1,First\n#EXTINF:-1,Second\nhttp://x.test/2\n#EXTINF:-1,Dangling\n"
        entries = M3uParser().parse(content)
        assert [e.name for e in entries] == ["Second"]

    def test_every_emitted_url_has_a_scheme(self):
        content = (
            "#EXTM3U\n"
            "#EXTINF:-1,A\nrtmp://live.test/app/a\n"
            "#EXTINF:-1,B\n/relative/path.ts\n"
            "#EXTINF:-1,C\nhttp://x.test/with space\n"
            "#EXTINF:-1,D\nhttps://x.test/d.m3u8\n"
        )
        entries = M3uParser().parse(content)
        assert [e.name for e in entries] == ["A", "D"]
        assert all(is_valid_stream_url(e.url) for e in entries)


class TestHeader:

    def test_url_tvg_first_value(self):
        header = M3uParser.parse_header(PLAYLIST)
        assert header.epg_url == "http://epg.test/guide.xml"

    def test_x_tvg_url(self):
        header = M3uParser.parse_header('#EXTM3U x-tvg-url="http://epg.test/x.xml"\n')
        assert header.epg_url == "http://epg.test/x.xml"

    def test_no_header(self):
        header = M3uParser.parse_header("#EXTINF:-1,Foo\nhttp://x.test/1\n")
        assert header.epg_url is None
