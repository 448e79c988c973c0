"""Tests for existing-library deduplication."""

import pytest

from spotiflac_cli.core.dedup import LibraryDeduplicator


def _write(path, size):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00" * size)
    return path


class TestLibraryDeduplicator:
    @pytest.mark.asyncio
    async def test_finds_same_isrc_under_a_different_name(self, tmp_path, identity, isrc_files):
        existing = _write(tmp_path / "Albums" / "renamed.flac", 200_000)
        isrc_files.tag(existing, "us-um7-17-03861")
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read, min_size=1000)

        result = await dedup.check(identity, tmp_path / "Perfect - Ed Sheeran.flac")

        assert result.exists
        assert result.path == existing
        assert "ISRC" in result.reason

    @pytest.mark.asyncio
    async def test_expected_path_with_isrc_is_kept(self, tmp_path, identity, isrc_files):
        expected = _write(tmp_path / "Perfect - Ed Sheeran.flac", 200_000)
        isrc_files.tag(expected, "OTHERISRC0001")
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read, min_size=1000)

        result = await dedup.check(identity, expected)

        assert result.path == expected
        assert expected.exists()

    @pytest.mark.asyncio
    async def test_small_file_at_expected_path_is_removed(self, tmp_path, identity, isrc_files):
        expected = _write(tmp_path / "Perfect - Ed Sheeran.flac", 10)
        isrc_files.tag(expected, "OTHERISRC0001")
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read, min_size=1000)

        result = await dedup.check(identity, expected)

        assert not result.exists
        assert not expected.exists()

    @pytest.mark.asyncio
    async def test_small_file_with_same_isrc_is_not_a_match(self, tmp_path, identity, isrc_files):
        expected = _write(tmp_path / "Perfect - Ed Sheeran.flac", 10)
        isrc_files.tag(expected, identity.isrc)
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read, min_size=1000)

        result = await dedup.check(identity, expected)

        assert not result.exists
        assert not expected.exists()

    @pytest.mark.asyncio
    async def test_untagged_file_at_expected_path_is_removed(self, tmp_path, identity, isrc_files):
        expected = _write(tmp_path / "Perfect - Ed Sheeran.flac", 200_000)
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read, min_size=1000)

        result = await dedup.check(identity, expected)

        assert not result.exists
        assert not expected.exists()

    @pytest.mark.asyncio
    async def test_nothing_found(self, tmp_path, identity, isrc_files):
        dedup = LibraryDeduplicator(tmp_path / "missing", isrc_reader=isrc_files.read)
        result = await dedup.check(identity, tmp_path / "missing" / "a.flac")
        assert not result.exists

    @pytest.mark.asyncio
    async def test_index_is_built_once_and_updated(self, tmp_path, identity, isrc_files):
        _write(tmp_path / "a.flac", 10)
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read)

        assert await dedup.find_by_isrc(identity.isrc) is None
        reads = isrc_files.reads
        new_file = _write(tmp_path / "new.flac", 10)
        dedup.remember(identity.isrc, new_file)

        assert await dedup.find_by_isrc(identity.isrc) == new_file
        assert isrc_files.reads == reads

    @pytest.mark.asyncio
    async def test_refresh_index_picks_up_new_files(self, tmp_path, identity, isrc_files):
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read)
        assert await dedup.refresh_index() == 0

        tagged = _write(tmp_path / "sub" / "x.flac", 10)
        isrc_files.tag(tagged, identity.isrc)
        assert await dedup.refresh_index() == 1
        assert await dedup.find_by_isrc(identity.isrc) == tagged

    @pytest.mark.asyncio
    async def test_stale_index_entry_is_dropped(self, tmp_path, identity, isrc_files):
        existing = _write(tmp_path / "a.flac", 10)
        isrc_files.tag(existing, identity.isrc)
        dedup = LibraryDeduplicator(tmp_path, isrc_reader=isrc_files.read)
        assert await dedup.find_by_isrc(identity.isrc) == existing

        existing.unlink()
        assert await dedup.find_by_isrc(identity.isrc) is None

    @pytest.mark.asyncio
    async def test_lock_is_shared_per_path(self, tmp_path):
        dedup = LibraryDeduplicator(tmp_path, max_locks=2)
        first = await dedup.lock_for(tmp_path / "a.flac")
        assert await dedup.lock_for(tmp_path / "a.flac") is first
        await dedup.lock_for(tmp_path / "b.flac")
        await dedup.lock_for(tmp_path / "c.flac")
        # Oldest unheld lock was evicted
        assert await dedup.lock_for(tmp_path / "a.flac") is not first
