"""
Read-only access to a local SQLite export of Spotify metadata, used to find
ISRCs by Spotify track id and cover URLs without touching the network.

Expected schema:
    tracks(id, external_id_isrc, name, artists, album_rowid)
    albums(rowid, name)
    album_images(album_rowid, url, width)
"""

import asyncio
import logging
import os
import sqlite3
from typing import Optional

from spotiflac_cli.exceptions import ConfigurationError

log = logging.getLogger(__name__)


class MetadataCache:
    """
    Async facade over a read-only SQLite database. Each query opens its own
    connection in a worker thread, bounded by a small semaphore.
    """

    def __init__(self, db_path: str, pool_size: int = 4):
        self.db_path = db_path
        self._connection_semaphore = asyncio.Semaphore(pool_size)

    def _get_connection(self) -> sqlite3.Connection:
        if not os.path.isfile(self.db_path):
            raise ConfigurationError(f"Metadata database not found: '{self.db_path}'")
        try:
            conn = sqlite3.connect(
                f"file:{self.db_path}?mode=ro", uri=True, timeout=30, check_same_thread=False
            )
            conn.execute("PRAGMA temp_store=MEMORY;")
            return conn
        except sqlite3.Error as e:
            raise ConfigurationError(f"Failed to open metadata database: {e}") from e

    async def _run_in_executor(self, func, *args):
        """Runs a synchronous database function within the connection semaphore."""
        async with self._connection_semaphore:
            return await asyncio.to_thread(func, *args)

    # --- Synchronous implementations ---

    def _lookup_isrc_sync(self, spotify_id: str) -> Optional[str]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT external_id_isrc FROM tracks WHERE id = ? LIMIT 1",
                (spotify_id,),
            ).fetchone()
        finally:
            conn.close()
        return row[0] if row and row[0] else None

    def _largest_image(self, conn: sqlite3.Connection, album_rowid: int) -> Optional[str]:
        row = conn.execute(
            "SELECT url FROM album_images WHERE album_rowid = ? "
            "ORDER BY width DESC LIMIT 1",
            (album_rowid,),
        ).fetchone()
        return row[0] if row and row[0] else None

    def _album_cover_sync(self, album: str) -> Optional[str]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT rowid FROM albums WHERE name = ? LIMIT 1", (album,)
            ).fetchone()
            if not row:
                return None
            return self._largest_image(conn, row[0])
        finally:
            conn.close()

    def _cover_by_track_sync(self, title: str, artist: str) -> Optional[str]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT album_rowid FROM tracks
                WHERE LOWER(name) LIKE LOWER(?)
                AND (LOWER(artists) LIKE LOWER(?) OR LOWER(artists) LIKE LOWER(?))
                LIMIT 1
                """,
                (title, f"%{artist}%", f"{artist}%"),
            ).fetchone()
            if not row:
                return None
            return self._largest_image(conn, row[0])
        finally:
            conn.close()

    def _test_connection_sync(self) -> int:
        conn = self._get_connection()
        try:
            if not conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name='tracks'"
            ).fetchone():
                raise ConfigurationError("Database does not contain a 'tracks' table.")
            columns = [row[1] for row in conn.execute("PRAGMA table_info(tracks)")]
            for required in ("id", "external_id_isrc"):
                if required not in columns:
                    raise ConfigurationError(
                        f"'tracks' table is missing the '{required}' column. "
                        f"Available columns: {', '.join(columns)}"
                    )
            return conn.execute("SELECT COUNT(*) FROM tracks").fetchone()[0]
        except sqlite3.Error as e:
            raise ConfigurationError(f"Failed to inspect metadata database: {e}") from e
        finally:
            conn.close()

    # --- Public async API ---

    async def lookup_isrc(self, spotify_id: str) -> Optional[str]:
        """Returns the ISRC stored for a Spotify track id, or None."""
        return await self._run_in_executor(self._lookup_isrc_sync, spotify_id)

    async def album_cover(self, album: str) -> Optional[str]:
        """Returns the widest cover image URL for an album name, or None."""
        if not album:
            return None
        return await self._run_in_executor(self._album_cover_sync, album)

    async def cover_by_track(self, title: str, artist: str) -> Optional[str]:
        """Finds a track by title and artist and returns its album's widest cover."""
        if not title or not artist:
            return None
        return await self._run_in_executor(self._cover_by_track_sync, title, artist)

    async def test_connection(self) -> int:
        """Validates the schema and returns the number of tracks in the database."""
        count = await self._run_in_executor(self._test_connection_sync)
        log.info(f"[green]✓ Metadata database OK: {count} tracks[/green]")
        return count
