"""Tests for the read-only SQLite metadata cache."""

import sqlite3

import pytest

from spotiflac_cli.exceptions import ConfigurationError
from spotiflac_cli.storage.metadata_cache import MetadataCache


@pytest.fixture
def database(tmp_path):
    path = tmp_path / "spotify.sqlite3"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE albums (name TEXT);
        CREATE TABLE album_images (album_rowid INTEGER, url TEXT, width INTEGER);
        CREATE TABLE tracks (
            id TEXT, external_id_isrc TEXT, name TEXT, artists TEXT, album_rowid INTEGER
        );
        INSERT INTO albums (rowid, name) VALUES (1, 'Divide');
        INSERT INTO album_images VALUES (1, 'https://i.test/64.jpg', 64);
        INSERT INTO album_images VALUES (1, 'https://i.test/640.jpg', 640);
        INSERT INTO tracks VALUES
            ('0tgVpDi06FyKpA1z0VMD4v', 'USUM71703861', 'Perfect', 'Ed Sheeran', 1);
        """
    )
    conn.commit()
    conn.close()
    return path


class TestMetadataCache:
    @pytest.mark.asyncio
    async def test_lookup_isrc(self, database):
        cache = MetadataCache(str(database))
        assert await cache.lookup_isrc("0tgVpDi06FyKpA1z0VMD4v") == "USUM71703861"
        assert await cache.lookup_isrc("unknown") is None

    @pytest.mark.asyncio
    async def test_album_cover_picks_widest_image(self, database):
        cache = MetadataCache(str(database))
        assert await cache.album_cover("Divide") == "https://i.test/640.jpg"
        assert await cache.album_cover("Other") is None
        assert await cache.album_cover("") is None

    @pytest.mark.asyncio
    async def test_cover_by_track(self, database):
        cache = MetadataCache(str(database))
        assert await cache.cover_by_track("perfect", "Ed Sheeran") == "https://i.test/640.jpg"
        assert await cache.cover_by_track("Perfect", "") is None

    @pytest.mark.asyncio
    async def test_test_connection(self, database):
        assert await MetadataCache(str(database)).test_connection() == 1

    @pytest.mark.asyncio
    async def test_missing_database(self, tmp_path):
        cache = MetadataCache(str(tmp_path / "none.sqlite3"))
        with pytest.raises(ConfigurationError):
            await cache.lookup_isrc("x")

    @pytest.mark.asyncio
    async def test_wrong_schema(self, tmp_path):
        path = tmp_path / "other.sqlite3"
        conn = sqlite3.connect(path)
        conn.execute("CREATE TABLE tracks (id TEXT)")
        conn.commit()
        conn.close()
        with pytest.raises(ConfigurationError, match="external_id_isrc"):
            await MetadataCache(str(path)).test_connection()
