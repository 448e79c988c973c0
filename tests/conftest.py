"""Shared fixtures and fakes for the test suite."""

import asyncio
import os
import struct
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from spotiflac_cli.api.backends import BackendRegistry
from spotiflac_cli.exceptions import NotFoundError, TransferFailedError
from spotiflac_cli.models.queue import Candidate, TrackIdentity


def build_flac(seconds: int = 5, padding: int = 0) -> bytes:
    """A header-only FLAC stream: magic, one STREAMINFO block and filler bytes."""
    sample_rate, channels, bits, total = 44100, 2, 16, 44100 * seconds
    packed = (sample_rate << 44) | ((channels - 1) << 41) | ((bits - 1) << 36) | total
    streaminfo = (
        struct.pack(">HH", 4096, 4096)
        + (0).to_bytes(3, "big")
        + (0).to_bytes(3, "big")
        + packed.to_bytes(8, "big")
        + b"\x00" * 16
    )
    header = bytes([0x80]) + len(streaminfo).to_bytes(3, "big")
    return b"fLaC" + header + streaminfo + b"\x00" * (64 + padding)


def write_flac(path: Path, seconds: int = 5, padding: int = 0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(build_flac(seconds, padding))
    return path


def accept_nonempty(path: str, expected_format: str = "") -> bool:
    """Integrity check stand-in: any non-empty file passes."""
    return os.path.getsize(path) > 0


class FakeBackend:
    """
    Scripted service backend. ``results`` is returned from search (or raised,
    if it is an exception); ``payload`` is written by fetch unless
    ``fetch_error`` is set.
    """

    def __init__(
        self,
        name: str,
        results=None,
        payload: bytes = b"fLaC" + b"\x00" * 2048,
        fetch_error: Optional[Exception] = None,
        delay: float = 0.0,
        url_prefix: Optional[str] = None,
    ):
        self.name = name
        self.results = results if results is not None else []
        self.payload = payload
        self.fetch_error = fetch_error
        self.delay = delay
        self.url_prefix = url_prefix or f"https://{name}.test/"
        self.searches: List[TrackIdentity] = []
        self.fetches: List[str] = []

    def owns_url(self, url: str) -> bool:
        return url.startswith(self.url_prefix)

    async def search(self, identity: TrackIdentity) -> List[Candidate]:
        self.searches.append(identity)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.results, Exception):
            raise self.results
        if not self.results:
            raise NotFoundError(f"{self.name}: no results")
        return list(self.results)

    async def fetch(self, url: str, dest_path: str) -> None:
        self.fetches.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fetch_error is not None:
            # Leave a partial file behind like an interrupted transfer would
            Path(dest_path).write_bytes(b"partial")
            raise self.fetch_error
        Path(dest_path).write_bytes(self.payload)


def candidate_for(identity: TrackIdentity, service: str, **overrides) -> Candidate:
    data = dict(
        service=service,
        url=f"https://{service}.test/{identity.isrc}",
        title=identity.title,
        artist=identity.artist,
        isrc=identity.isrc,
        duration=identity.duration,
    )
    data.update(overrides)
    return Candidate(**data)


@pytest.fixture
def identity() -> TrackIdentity:
    return TrackIdentity(
        isrc="USUM71703861",
        title="Perfect",
        artist="Ed Sheeran",
        album="Divide",
        duration=263,
        track_number=5,
        spotify_id="0tgVpDi06FyKpA1z0VMD4v",
    )


@pytest.fixture
def make_identity():
    def _make(n: int, **overrides) -> TrackIdentity:
        data = dict(
            isrc=f"USTST{n:07d}",
            title=f"Song {n}",
            artist=f"Artist {n}",
            album="Test Album",
            duration=200,
        )
        data.update(overrides)
        return TrackIdentity(**data)

    return _make


@pytest.fixture
def make_registry():
    def _make(*backends: FakeBackend) -> BackendRegistry:
        return BackendRegistry(backends, default_order=[b.name for b in backends])

    return _make


@pytest.fixture
def transfer_error() -> TransferFailedError:
    return TransferFailedError("connection reset")


class IsrcFiles:
    """In-memory map of path -> embedded ISRC standing in for tag reads."""

    def __init__(self):
        self.tags: Dict[str, str] = {}
        self.reads = 0

    def read(self, path: str) -> str:
        self.reads += 1
        return self.tags.get(os.path.normcase(os.path.abspath(path)), "")

    def tag(self, path, isrc: str) -> None:
        self.tags[os.path.normcase(os.path.abspath(path))] = isrc


@pytest.fixture
def isrc_files() -> IsrcFiles:
    return IsrcFiles()
