"""
Audits a music library for missing cover images and lyrics files, and can
repair the gaps by fetching them from the metadata cache and public services.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Tuple

import aiofiles
from rich.markup import escape

from spotiflac_cli.api.cover_sources import CoverArtProvider
from spotiflac_cli.api.lyrics import LyricsClient, to_lrc
from spotiflac_cli.exceptions import NotFoundError, ScanPathError
from spotiflac_cli.media.downloader import Downloader
from spotiflac_cli.media.tags import TrackTags, extract_tags, find_audio_files
from spotiflac_cli.models.verification import (
    LibraryVerificationReport,
    TrackVerificationResult,
    VerificationRequest,
)
from spotiflac_cli.storage.metadata_cache import MetadataCache
from spotiflac_cli.utils.formatting import parse_filename_fallback

from .worker_pool import WorkerPool

log = logging.getLogger(__name__)

COVER_EXTENSIONS = (".jpg", ".png")
LYRICS_EXTENSIONS = (".lrc", ".txt")

TagExtractor = Callable[[str], TrackTags]


def _first_sibling(base: str, extensions: Tuple[str, ...]) -> Optional[str]:
    for ext in extensions:
        candidate = base + ext
        if os.path.isfile(candidate):
            return candidate
    return None


class LibraryVerifier:
    """Scans a directory tree and optionally fills in missing covers and lyrics."""

    def __init__(
        self,
        cover_provider: Optional[CoverArtProvider] = None,
        lyrics_client: Optional[LyricsClient] = None,
        downloader: Optional[Downloader] = None,
        extract: TagExtractor = extract_tags,
        cache_factory: Callable[[str], MetadataCache] = MetadataCache,
    ):
        self.cover_provider = cover_provider or CoverArtProvider()
        self.lyrics_client = lyrics_client or LyricsClient()
        self.downloader = downloader or Downloader()
        self._extract = extract
        self._cache_factory = cache_factory
        self._lock = asyncio.Lock()

    async def verify(self, request: VerificationRequest) -> LibraryVerificationReport:
        """
        Runs the scan, then the cover pass, then the lyrics pass.

        Raises:
            ScanPathError: If the scan directory does not exist.
        """
        scan_path = os.path.normpath(request.scan_path)
        if not await asyncio.to_thread(os.path.isdir, scan_path):
            raise ScanPathError(f"Directory does not exist: {scan_path}")

        log.info(f"Scanning [cyan]{escape(scan_path)}[/cyan]")
        report = await asyncio.to_thread(self._scan, scan_path, request)
        log.info(f"Found {report.total_tracks} audio file(s)")

        if not request.download_missing:
            return report

        cache = self._cache_factory(request.database_path) if request.database_path else None
        pool = WorkerPool(request.max_workers, name="library-repair")

        if request.check_covers and report.missing_covers:
            missing = [t for t in report.tracks if t.missing_cover]
            log.info(f"Downloading {len(missing)} missing cover(s)...")
            await pool.map(lambda t: self._repair_cover(t, report, cache), missing)
            log.info(f"[green]✓ Covers downloaded: {report.covers_downloaded}[/green]")

        if request.check_lyrics and report.missing_lyrics:
            missing = [t for t in report.tracks if t.missing_lyrics]
            log.info(f"Downloading {len(missing)} missing lyrics file(s)...")
            await pool.map(lambda t: self._repair_lyrics(t, report), missing)
            log.info(f"[green]✓ Lyrics downloaded: {report.lyrics_downloaded}[/green]")

        return report

    def _scan(self, scan_path: str, request: VerificationRequest) -> LibraryVerificationReport:
        report = LibraryVerificationReport(scan_path=scan_path)
        for audio_path in find_audio_files(scan_path):
            result = TrackVerificationResult(
                file_path=audio_path, track_name=os.path.basename(audio_path)
            )
            base = os.path.splitext(audio_path)[0]

            if request.check_covers:
                cover = _first_sibling(base, COVER_EXTENSIONS)
                if cover:
                    result.has_cover, result.cover_path = True, cover
                    report.tracks_with_cover += 1
                else:
                    result.missing_cover = True
                    report.missing_covers += 1

            if request.check_lyrics:
                lyrics = _first_sibling(base, LYRICS_EXTENSIONS)
                if lyrics:
                    result.has_lyrics, result.lyrics_path = True, lyrics
                    report.tracks_with_lyrics += 1
                else:
                    result.missing_lyrics = True
                    report.missing_lyrics += 1

            report.tracks.append(result)
        report.total_tracks = len(report.tracks)
        return report

    async def _read_metadata(self, track: TrackVerificationResult) -> Optional[TrackTags]:
        """Tags first; the filename only fills fields the tags left empty."""
        try:
            tags = await asyncio.to_thread(self._extract, track.file_path)
        except Exception as e:
            track.error = f"Failed to extract metadata: {e}"
            log.debug(f"[red]✗ {escape(track.track_name)}: {escape(track.error)}[/red]")
            return None

        if not tags.title or not tags.artist:
            stem = Path(track.file_path).stem
            title, artist = parse_filename_fallback(stem)
            tags.title = tags.title or title
            tags.artist = tags.artist or artist
        return tags

    async def _find_cover_url(
        self, tags: TrackTags, cache: Optional[MetadataCache]
    ) -> Optional[str]:
        if cache is not None:
            try:
                if url := await cache.album_cover(tags.album):
                    log.debug("Found cover in database by album")
                    return url
                if url := await cache.cover_by_track(tags.title, tags.artist):
                    log.debug("Found cover in database by track")
                    return url
            except Exception as e:
                log.debug(f"Metadata cache lookup failed: {e}")
        return await self.cover_provider.find_cover(tags.title, tags.artist)

    async def _repair_cover(
        self,
        track: TrackVerificationResult,
        report: LibraryVerificationReport,
        cache: Optional[MetadataCache],
    ) -> bool:
        tags = await self._read_metadata(track)
        if tags is None:
            return False

        try:
            url = await self._find_cover_url(tags, cache)
        except Exception as e:
            track.error = f"Cover lookup failed: {e}"
            log.debug(f"[red]✗ {escape(track.track_name)}: {escape(track.error)}[/red]")
            return False
        if not url:
            track.error = "Failed to find cover from any source"
            log.debug(f"[red]✗ {escape(track.track_name)}: cover not found[/red]")
            return False

        cover_path = os.path.splitext(track.file_path)[0] + ".jpg"
        if not await self.downloader.download_asset(url, cover_path):
            track.error = "Failed to download cover"
            return False

        async with self._lock:
            track.cover_downloaded = True
            track.cover_path = cover_path
            report.covers_downloaded += 1
        log.debug(f"[green]✓ Cover saved:[/] {escape(track.track_name)}")
        return True

    async def _repair_lyrics(
        self, track: TrackVerificationResult, report: LibraryVerificationReport
    ) -> bool:
        tags = await self._read_metadata(track)
        if tags is None or not tags.title:
            return False

        try:
            lyrics = await self.lyrics_client.fetch(tags.title, tags.artist)
        except NotFoundError as e:
            log.debug(f"[yellow]○ {escape(track.track_name)}: {e}[/yellow]")
            return False
        except Exception as e:
            track.error = f"Lyrics lookup failed: {e}"
            log.debug(f"[red]✗ {escape(track.track_name)}: {escape(track.error)}[/red]")
            return False

        content = to_lrc(lyrics, tags.title, tags.artist)
        if not content:
            return False

        lyrics_path = os.path.splitext(track.file_path)[0] + ".lrc"
        try:
            async with aiofiles.open(lyrics_path, "w", encoding="utf-8") as f:
                await f.write(content)
        except OSError as e:
            track.error = f"Failed to save lyrics: {e}"
            return False

        async with self._lock:
            track.lyrics_downloaded = True
            track.lyrics_path = lyrics_path
            report.lyrics_downloaded += 1
        log.debug(f"[green]✓ Lyrics saved:[/] {escape(track.track_name)}")
        return True

