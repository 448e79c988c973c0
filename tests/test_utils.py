"""Tests for filename templates, text helpers and the circuit breaker."""

import pytest

from spotiflac_cli.exceptions import ServiceUnavailableError
from spotiflac_cli.models.queue import TrackIdentity, normalize_isrc
from spotiflac_cli.utils.circuit_breaker import CircuitBreaker, CircuitState
from spotiflac_cli.utils.formatting import (
    format_duration,
    format_size,
    normalize_text,
    parse_filename_fallback,
)
from spotiflac_cli.utils.path import PathFormatter


class TestPathFormatter:
    def test_named_formats(self, identity):
        assert PathFormatter("title-artist").format_filename(identity) == (
            "Perfect - Ed Sheeran.flac"
        )
        assert PathFormatter("artist-title").format_filename(identity) == (
            "Ed Sheeran - Perfect.flac"
        )
        assert PathFormatter("title", extension="mp3").format_filename(identity) == (
            "Perfect.mp3"
        )

    def test_track_number_prefix(self, identity):
        formatter = PathFormatter("title-artist", track_number=True)
        assert formatter.format_filename(identity) == "05. Perfect - Ed Sheeran.flac"

    def test_position_used_without_track_number(self):
        formatter = PathFormatter("title", track_number=True)
        identity = TrackIdentity(isrc="X", title="Intro")
        assert formatter.format_filename(identity, position=3) == "03. Intro.flac"

    def test_custom_template_and_separators(self):
        identity = TrackIdentity(
            isrc="X", title="What/If", artist="AC/DC", album="Live", release_date="1992-10-27"
        )
        name = PathFormatter("{artist} - {title} ({year})").format_filename(identity)
        assert "/" not in name
        assert name.endswith("(1992).flac")

    def test_expected_path(self, tmp_path, identity):
        path = PathFormatter().expected_path(tmp_path, identity)
        assert path == tmp_path / "Perfect - Ed Sheeran.flac"

    def test_missing_title_placeholder(self):
        name = PathFormatter().format_filename(TrackIdentity(isrc="X"))
        assert name == "Unknown Title - Unknown Artist.flac"


class TestFormatting:
    @pytest.mark.parametrize(
        "stem, expected",
        [
            ("Bohemian Rhapsody - Queen", ("Bohemian Rhapsody", "Queen")),
            ("Song - Artist - Extra", ("Song", "Artist - Extra")),
            ("Untitled", ("Untitled", "")),
        ],
    )
    def test_filename_fallback(self, stem, expected):
        assert parse_filename_fallback(stem) == expected

    def test_normalize_text(self):
        assert normalize_text("Beyoncé - Halo (Remastered 2011)!") == "beyonce halo"
        assert normalize_text("") == ""

    def test_normalize_isrc(self):
        assert normalize_isrc("us-um7-17-03861") == "USUM71703861"
        assert normalize_isrc(None) == ""

    def test_format_size_and_duration(self):
        assert format_size(0) == "0 B"
        assert format_size(1536) == "1.5 KB"
        assert format_duration(3725) == "1h 2m 5s"
        assert format_duration(0) == "0s"


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_opens_after_threshold_and_recovers(self):
        clock = FakeClock()
        breaker = CircuitBreaker("tidal", failure_threshold=2, recovery_timeout=30, clock=clock)

        await breaker.record_failure()
        assert await breaker.allow()
        await breaker.record_failure()
        assert breaker.state is CircuitState.OPEN
        assert not await breaker.allow()

        clock.now = 31
        assert await breaker.allow()
        assert breaker.state is CircuitState.HALF_OPEN
        await breaker.record_success()
        assert breaker.state is CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_failed_trial_reopens(self):
        clock = FakeClock()
        breaker = CircuitBreaker("qobuz", failure_threshold=1, recovery_timeout=10, clock=clock)
        await breaker.record_failure()
        clock.now = 11
        assert await breaker.allow()
        await breaker.record_failure()
        assert breaker.state is CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_context_manager(self):
        breaker = CircuitBreaker("amazon", failure_threshold=1)
        with pytest.raises(RuntimeError):
            async with breaker:
                raise RuntimeError("boom")
        with pytest.raises(ServiceUnavailableError):
            async with breaker:
                pass
