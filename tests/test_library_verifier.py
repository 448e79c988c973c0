"""Tests for the library verification scanner and repair passes."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from spotiflac_cli.api.lyrics import Lyrics
from spotiflac_cli.core.library_verifier import LibraryVerifier
from spotiflac_cli.exceptions import NotFoundError, ScanPathError
from spotiflac_cli.media.tags import TrackTags
from spotiflac_cli.models.verification import VerificationRequest


class FakeDownloader:
    """Writes a stub image and records how many downloads overlap."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.urls = []

    async def download_asset(self, url: str, destination_path: str) -> bool:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            Path(destination_path).write_bytes(b"\xff\xd8\xff")
            self.urls.append(url)
            return True
        finally:
            self.active -= 1


def tags_from_name(path: str) -> TrackTags:
    stem = Path(path).stem
    return TrackTags(title=stem, artist="Tagged Artist", album="Tagged Album")


def _library(root: Path, count: int, with_cover: int) -> list:
    root.mkdir(parents=True, exist_ok=True)
    files = []
    for n in range(count):
        audio = root / f"Track {n:02d}.flac"
        audio.write_bytes(b"fLaC")
        if n < with_cover:
            audio.with_suffix(".jpg").write_bytes(b"\xff\xd8\xff")
        files.append(audio)
    return files


@pytest.fixture
def cover_provider():
    provider = AsyncMock()
    provider.find_cover.return_value = "https://covers.test/600x600.jpg"
    return provider


class TestLibraryVerifier:
    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        verifier = LibraryVerifier(AsyncMock(), AsyncMock(), FakeDownloader())
        with pytest.raises(ScanPathError):
            await verifier.verify(VerificationRequest(scan_path=str(tmp_path / "nope")))

    @pytest.mark.asyncio
    async def test_report_only(self, tmp_path, cover_provider):
        _library(tmp_path, 5, with_cover=2)
        (tmp_path / "Track 00.txt").write_text("la la")
        (tmp_path / "notes.md").write_text("not audio")
        downloader = FakeDownloader()
        verifier = LibraryVerifier(cover_provider, AsyncMock(), downloader, extract=tags_from_name)

        report = await verifier.verify(VerificationRequest(scan_path=str(tmp_path)))

        assert report.total_tracks == 5
        assert (report.tracks_with_cover, report.missing_covers) == (2, 3)
        assert (report.tracks_with_lyrics, report.missing_lyrics) == (1, 4)
        assert report.covers_downloaded == 0
        assert downloader.urls == []
        assert not report.complete

    @pytest.mark.asyncio
    async def test_repairs_six_missing_covers_with_bounded_concurrency(
        self, tmp_path, cover_provider
    ):
        files = _library(tmp_path / "lib", 10, with_cover=4)
        downloader = FakeDownloader(delay=0.02)
        verifier = LibraryVerifier(cover_provider, AsyncMock(), downloader, extract=tags_from_name)

        report = await verifier.verify(
            VerificationRequest(
                scan_path=str(tmp_path / "lib"),
                check_lyrics=False,
                download_missing=True,
                max_workers=3,
            )
        )

        assert report.total_tracks == 10
        assert report.missing_covers == 6
        assert report.covers_downloaded == 6
        assert downloader.peak <= 3
        assert report.complete
        for audio in files:
            assert audio.with_suffix(".jpg").is_file()
        repaired = [t for t in report.tracks if t.cover_downloaded]
        assert len(repaired) == 6
        assert all(t.cover_path.endswith(".jpg") for t in repaired)

    @pytest.mark.asyncio
    async def test_filename_fallback_when_tags_are_empty(self, tmp_path, cover_provider):
        (tmp_path / "Bohemian Rhapsody - Queen.flac").write_bytes(b"fLaC")
        verifier = LibraryVerifier(
            cover_provider, AsyncMock(), FakeDownloader(), extract=lambda p: TrackTags()
        )

        await verifier.verify(
            VerificationRequest(scan_path=str(tmp_path), check_lyrics=False, download_missing=True)
        )

        cover_provider.find_cover.assert_awaited_once_with("Bohemian Rhapsody", "Queen")

    @pytest.mark.asyncio
    async def test_cover_not_found_is_recorded_not_raised(self, tmp_path):
        _library(tmp_path, 2, with_cover=0)
        provider = AsyncMock()
        provider.find_cover.return_value = None
        verifier = LibraryVerifier(provider, AsyncMock(), FakeDownloader(), extract=tags_from_name)

        report = await verifier.verify(
            VerificationRequest(scan_path=str(tmp_path), check_lyrics=False, download_missing=True)
        )

        assert report.covers_downloaded == 0
        assert all(t.error for t in report.tracks)

    @pytest.mark.asyncio
    async def test_cover_lookup_crash_is_recorded_on_track(self, tmp_path):
        _library(tmp_path, 1, with_cover=0)
        provider = AsyncMock()
        provider.find_cover.side_effect = KeyError("id")
        verifier = LibraryVerifier(provider, AsyncMock(), FakeDownloader(), extract=tags_from_name)

        report = await verifier.verify(
            VerificationRequest(scan_path=str(tmp_path), check_lyrics=False, download_missing=True)
        )

        assert report.covers_downloaded == 0
        assert report.tracks[0].error.startswith("Cover lookup failed")

    @pytest.mark.asyncio
    async def test_database_cover_is_preferred(self, tmp_path, cover_provider):
        _library(tmp_path, 1, with_cover=0)
        cache = AsyncMock()
        cache.album_cover.return_value = "https://db.test/cover.jpg"
        downloader = FakeDownloader()
        verifier = LibraryVerifier(
            cover_provider,
            AsyncMock(),
            downloader,
            extract=tags_from_name,
            cache_factory=lambda path: cache,
        )

        await verifier.verify(
            VerificationRequest(
                scan_path=str(tmp_path),
                check_lyrics=False,
                download_missing=True,
                database_path="/data/spotify.sqlite3",
            )
        )

        cache.album_cover.assert_awaited_once_with("Tagged Album")
        cover_provider.find_cover.assert_not_awaited()
        assert downloader.urls == ["https://db.test/cover.jpg"]

    @pytest.mark.asyncio
    async def test_lyrics_are_written_as_lrc(self, tmp_path):
        _library(tmp_path, 2, with_cover=2)
        lyrics_client = AsyncMock()
        lyrics_client.fetch.side_effect = [
            Lyrics.from_synced_text("[00:01.00]First line"),
            NotFoundError("nothing"),
        ]
        verifier = LibraryVerifier(
            AsyncMock(), lyrics_client, FakeDownloader(), extract=tags_from_name
        )

        report = await verifier.verify(
            VerificationRequest(
                scan_path=str(tmp_path), check_covers=False, download_missing=True, max_workers=1
            )
        )

        assert report.lyrics_downloaded == 1
        lrc = tmp_path / "Track 00.lrc"
        assert lrc.is_file()
        content = lrc.read_text(encoding="utf-8")
        assert "[ti:Track 00]" in content
        assert "[00:01.00]First line" in content
        assert not (tmp_path / "Track 01.lrc").exists()
