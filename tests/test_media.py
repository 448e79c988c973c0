"""Tests for tag access and integrity checks against real FLAC headers."""

from pathlib import Path

import pytest
from conftest import write_flac

from spotiflac_cli.media.integrity import FileIntegrityChecker, sniff_format
from spotiflac_cli.media.tags import (
    embed_lyrics,
    ensure_isrc_tag,
    extract_tags,
    find_audio_files,
    read_embedded_isrc,
    write_isrc,
)


class TestTags:
    def test_isrc_round_trip(self, tmp_path):
        path = write_flac(tmp_path / "song.flac")
        assert read_embedded_isrc(str(path)) == ""

        write_isrc(str(path), "us-um7-17-03861")

        assert read_embedded_isrc(str(path)) == "USUM71703861"
        assert extract_tags(str(path)).isrc == "us-um7-17-03861"

    def test_ensure_isrc_tag_keeps_existing(self, tmp_path):
        path = write_flac(tmp_path / "song.flac")
        write_isrc(str(path), "GBAYE0601498")

        assert ensure_isrc_tag(str(path), "USUM71703861")
        assert read_embedded_isrc(str(path)) == "GBAYE0601498"

    def test_ensure_isrc_tag_on_unreadable_file(self, tmp_path):
        path = tmp_path / "broken.flac"
        path.write_bytes(b"garbage")
        assert not ensure_isrc_tag(str(path), "USUM71703861")
        assert read_embedded_isrc(str(path)) == ""

    def test_embed_lyrics(self, tmp_path):
        from mutagen.flac import FLAC

        path = write_flac(tmp_path / "song.flac")
        embed_lyrics(str(path), "[00:01.00]Hello")
        assert FLAC(str(path))["LYRICS"] == ["[00:01.00]Hello"]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "song.wav"
        path.write_bytes(b"RIFF")
        with pytest.raises(ValueError):
            extract_tags(str(path))
        with pytest.raises(ValueError):
            embed_lyrics(str(path), "x")

    def test_find_audio_files(self, tmp_path):
        (tmp_path / "b").mkdir()
        for name in ("b/2.flac", "1.MP3", "c.m4a", "cover.jpg", "notes.txt"):
            (tmp_path / name).write_bytes(b"x")
        found = [Path(p).relative_to(tmp_path).as_posix() for p in find_audio_files(str(tmp_path))]
        assert found == ["1.MP3", "b/2.flac", "c.m4a"]


class TestIntegrity:
    def test_valid_flac(self, tmp_path):
        path = write_flac(tmp_path / "song.flac")
        assert FileIntegrityChecker.check(str(path))

    def test_part_file_is_sniffed(self, tmp_path):
        path = write_flac(tmp_path / "song.flac.part-tidal")
        assert sniff_format(str(path)) == "flac"
        assert FileIntegrityChecker.check(str(path))

    def test_truncated_file(self, tmp_path):
        path = tmp_path / "song.flac"
        path.write_bytes(b"fLaC")
        assert not FileIntegrityChecker.check(str(path))

    def test_unknown_format(self, tmp_path):
        path = tmp_path / "song.part-qobuz"
        path.write_bytes(b"<html>error</html>")
        assert sniff_format(str(path)) == ""
        assert not FileIntegrityChecker.check(str(path))

    def test_expected_format_wins_over_name(self, tmp_path):
        path = tmp_path / "song.part-amazon"
        path.write_bytes(b"ID3" + b"\x00" * 32)
        assert not FileIntegrityChecker.check(str(path), "flac")
