"""
Detects tracks that already exist in the output library so they are not
downloaded twice, and removes broken leftovers at a track's expected path.
"""

import asyncio
import logging
import os
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from spotiflac_cli.media.tags import find_audio_files, read_embedded_isrc
from spotiflac_cli.models.queue import TrackIdentity, normalize_isrc

log = logging.getLogger(__name__)

IsrcReader = Callable[[str], str]

MIN_EXISTING_SIZE = 100 * 1024


@dataclass
class DedupResult:
    """Where an existing copy of a track was found, if anywhere."""

    path: Optional[Path] = None
    reason: str = ""

    @property
    def exists(self) -> bool:
        return self.path is not None


class LibraryDeduplicator:
    """
    Looks for an existing copy of a track, first by embedded ISRC anywhere
    under the output directory, then at the track's expected path.

    The ISRC index is built on first use and kept current with ``remember``;
    entries whose file has since disappeared are dropped on lookup.
    """

    def __init__(
        self,
        output_dir: str | Path,
        isrc_reader: IsrcReader = read_embedded_isrc,
        min_size: int = MIN_EXISTING_SIZE,
        max_locks: int = 1000,
    ):
        self.output_dir = Path(output_dir)
        self.min_size = min_size
        self._read_isrc = isrc_reader
        self._index: Optional[Dict[str, Path]] = None
        self._index_lock = asyncio.Lock()
        self._path_locks: "OrderedDict[str, asyncio.Lock]" = OrderedDict()
        self._path_lock_main = asyncio.Lock()
        self._max_locks = max_locks

    async def lock_for(self, path: Path) -> asyncio.Lock:
        """Gets or creates the lock guarding one destination path."""
        key = os.path.normcase(os.path.abspath(path))
        async with self._path_lock_main:
            if key in self._path_locks:
                self._path_locks.move_to_end(key)
                return self._path_locks[key]

            lock = asyncio.Lock()
            self._path_locks[key] = lock

            # Evict the oldest unheld lock if over limit
            if len(self._path_locks) > self._max_locks:
                for old_key, old_lock in self._path_locks.items():
                    if not old_lock.locked() and old_key != key:
                        del self._path_locks[old_key]
                        break
            return lock

    def _build_index_sync(self) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        if not self.output_dir.is_dir():
            return index
        for file_path in find_audio_files(str(self.output_dir)):
            isrc = normalize_isrc(self._read_isrc(file_path))
            if isrc and isrc not in index:
                index[isrc] = Path(file_path)
        log.debug(f"Indexed {len(index)} tagged file(s) under '{self.output_dir}'")
        return index

    async def refresh_index(self) -> int:
        async with self._index_lock:
            self._index = await asyncio.to_thread(self._build_index_sync)
            return len(self._index)

    async def find_by_isrc(self, isrc: str) -> Optional[Path]:
        """Returns an existing file whose embedded ISRC equals ``isrc``."""
        key = normalize_isrc(isrc)
        if not key:
            return None
        async with self._index_lock:
            if self._index is None:
                self._index = await asyncio.to_thread(self._build_index_sync)
            path = self._index.get(key)
            if path is not None and not await asyncio.to_thread(path.is_file):
                del self._index[key]
                path = None
        return path

    def remember(self, isrc: str, path: Path) -> None:
        """Records a freshly written file in the ISRC index."""
        key = normalize_isrc(isrc)
        if key and self._index is not None:
            self._index.setdefault(key, Path(path))

    def forget(self, path: Path) -> None:
        if self._index is None:
            return
        for key in [k for k, v in self._index.items() if v == Path(path)]:
            del self._index[key]

    def _check_expected_path_sync(self, path: Path) -> Optional[Path]:
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return None
        if size > self.min_size and self._read_isrc(str(path)):
            return path

        # Present but too small or without an identifier: treat as a broken leftover
        log.warning(
            f"[yellow]Removing incomplete file (no valid ISRC metadata): "
            f"{path.name}[/yellow]"
        )
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            log.warning(f"[yellow]Could not remove '{path}': {e}[/yellow]")
        return None

    async def check_expected_path(self, path: Path) -> Optional[Path]:
        """
        Returns ``path`` if it holds a plausible, tagged copy of a track.
        A file that is too small or has no embedded ISRC is deleted.
        """
        result = await asyncio.to_thread(self._check_expected_path_sync, Path(path))
        if result is None:
            self.forget(Path(path))
        return result

    def _large_enough(self, path: Path) -> bool:
        try:
            return path.stat().st_size > self.min_size
        except OSError:
            return False

    async def check(self, identity: TrackIdentity, expected_path: Path) -> DedupResult:
        """
        Identity check first, then the expected-path check. An ISRC hit that is
        too small to be a complete file does not count as existing.
        """
        existing = await self.find_by_isrc(identity.isrc)
        if existing and await asyncio.to_thread(self._large_enough, existing):
            return DedupResult(existing, "same ISRC already in library")
        if existing := await self.check_expected_path(expected_path):
            return DedupResult(existing, "file already exists")
        return DedupResult()
