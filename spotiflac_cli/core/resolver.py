"""
Resolves a track identity to a verified audio file by trying each configured
streaming service in priority order.

A candidate is only downloaded after it has been verified against the
requested identity. Downloads land in a per-service temporary file and are
renamed onto the destination only once they pass the integrity check, so a
failed attempt never leaves a file at the destination.
"""

import asyncio
import logging
import os
from dataclasses import replace
from difflib import SequenceMatcher
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from spotiflac_cli.api.backends import BackendRegistry, ServiceBackend
from spotiflac_cli.exceptions import (
    AggregateFailureError,
    NotFoundError,
    ResolutionError,
    TransferFailedError,
    VerificationMismatchError,
)
from spotiflac_cli.media.integrity import FileIntegrityChecker
from spotiflac_cli.models.queue import (
    Candidate,
    ResolutionResult,
    ServiceAttempt,
    TrackIdentity,
    Verification,
    normalize_isrc,
)
from spotiflac_cli.storage.metadata_cache import MetadataCache
from spotiflac_cli.utils.circuit_breaker import CircuitBreakerBoard
from spotiflac_cli.utils.formatting import normalize_text

log = logging.getLogger(__name__)

TITLE_MATCH_THRESHOLD = 0.8
ARTIST_MATCH_THRESHOLD = 0.8

IntegrityCheck = Callable[[str, str], bool]


def _similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return SequenceMatcher(None, a, b).ratio()


def titles_match(requested: str, found: str) -> bool:
    a, b = normalize_text(requested), normalize_text(found)
    if not a or not b:
        return False
    if a in b or b in a:
        return True
    return _similarity(a, b) >= TITLE_MATCH_THRESHOLD


def artists_match(requested: str, found: str) -> bool:
    """
    The candidate matches if any requested artist appears among the found
    artists, or the two strings are similar enough as a whole.
    """
    a, b = normalize_text(requested), normalize_text(found)
    if not a or not b:
        return True
    if a in b or b in a:
        return True
    requested_names = [normalize_text(n) for n in requested.replace("&", ",").split(",")]
    if any(name and name in b for name in requested_names):
        return True
    return _similarity(a, b) >= ARTIST_MATCH_THRESHOLD


def verify_candidate(
    identity: TrackIdentity, candidate: Candidate, duration_tolerance: int = 3
) -> Verification:
    """
    Decides whether a search result is the requested recording.

    An ISRC on the candidate is authoritative: equal means matched, anything
    else means unmatched. Without one, title and artist must match fuzzily and
    the durations, when both are known, must be within ``duration_tolerance``.
    """
    if candidate.isrc:
        if normalize_isrc(candidate.isrc) == identity.normalized_isrc:
            return Verification.MATCHED
        return Verification.UNMATCHED

    if not identity.title or not candidate.title:
        return Verification.UNKNOWN
    if not titles_match(identity.title, candidate.title):
        return Verification.UNMATCHED
    if not artists_match(identity.artist, candidate.artist):
        return Verification.UNMATCHED
    if identity.duration and candidate.duration:
        if abs(identity.duration - candidate.duration) > duration_tolerance:
            return Verification.UNMATCHED
    return Verification.MATCHED


def temp_path_for(dest_path: Path, service: str) -> Path:
    return dest_path.with_name(f"{dest_path.name}.part-{service}")


def _remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class ServiceResolver:
    """Runs the verify-download-validate fallback chain across services."""

    def __init__(
        self,
        registry: BackendRegistry,
        duration_tolerance: int = 3,
        integrity_check: IntegrityCheck = FileIntegrityChecker.check,
        breakers: Optional[CircuitBreakerBoard] = None,
    ):
        self.registry = registry
        self.duration_tolerance = duration_tolerance
        self._integrity_check = integrity_check
        self.breakers = breakers or CircuitBreakerBoard()

    async def resolve(
        self,
        identity: TrackIdentity,
        dest_path: Path | str,
        services: Optional[Sequence[str]] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ResolutionResult:
        """
        Tries each service in order and returns the first verified download.

        Raises:
            AggregateFailureError: When no service produced a verified file.
        """
        dest_path = Path(dest_path)
        attempts: List[ServiceAttempt] = []
        backends = self.registry.ordered(services)

        for backend in backends:
            if cancel_event is not None and cancel_event.is_set():
                attempts.append(ServiceAttempt(backend.name, error="cancelled"))
                raise AggregateFailureError(
                    f"Cancelled before a verified source was found for "
                    f"{identity.display_name}",
                    attempts,
                )

            breaker = self.breakers.get(backend.name)
            if not await breaker.allow():
                attempts.append(
                    ServiceAttempt(backend.name, error="temporarily disabled")
                )
                log.debug(f"Skipping {backend.name}: circuit open")
                continue

            attempt = ServiceAttempt(backend.name)
            attempts.append(attempt)
            temp_path = temp_path_for(dest_path, backend.name)
            try:
                await self._attempt(backend, identity, dest_path, temp_path, attempt)
            except (NotFoundError, VerificationMismatchError) as e:
                attempt.error = attempt.error or str(e)
                await breaker.record_success()
                log.debug(f"[yellow]○ {backend.name}: {e}[/yellow]")
                continue
            except Exception as e:
                attempt.error = str(e) or type(e).__name__
                await breaker.record_failure()
                log.debug(f"[red]✗ {backend.name}: {attempt.error}[/red]")
                continue
            finally:
                await asyncio.to_thread(_remove_if_exists, temp_path)

            await breaker.record_success()
            log.info(
                f"[green]✓ {identity.display_name} via {backend.name}[/green]"
            )
            return ResolutionResult(path=dest_path, service=backend.name, attempts=attempts)

        tried = ", ".join(b.name for b in backends) or "no services"
        for attempt in attempts:
            log.debug(f"  {identity.display_name}: {attempt.describe()}")
        raise AggregateFailureError(
            f"No verified source found after trying {tried}", attempts
        )

    async def _attempt(
        self,
        backend: ServiceBackend,
        identity: TrackIdentity,
        dest_path: Path,
        temp_path: Path,
        attempt: ServiceAttempt,
    ) -> None:
        url = await self._pick_url(backend, identity, attempt)
        attempt.url = url

        await asyncio.to_thread(dest_path.parent.mkdir, parents=True, exist_ok=True)
        try:
            await backend.fetch(url, str(temp_path))
        except ResolutionError:
            raise
        except Exception as e:
            raise TransferFailedError(f"download failed: {e}") from e

        expected_format = dest_path.suffix.lstrip(".")
        valid = await asyncio.to_thread(
            self._integrity_check, str(temp_path), expected_format
        )
        if not valid:
            raise TransferFailedError("downloaded file failed the integrity check")

        await asyncio.to_thread(os.replace, temp_path, dest_path)

    async def _pick_url(
        self, backend: ServiceBackend, identity: TrackIdentity, attempt: ServiceAttempt
    ) -> str:
        # A direct link for this service is trusted and needs no search
        if identity.service_url and backend.owns_url(identity.service_url):
            attempt.verification = Verification.MATCHED
            return identity.service_url

        candidates = await backend.search(identity)
        verdicts = []
        for candidate in candidates:
            verdict = verify_candidate(identity, candidate, self.duration_tolerance)
            verdicts.append(verdict)
            if verdict is Verification.MATCHED:
                attempt.verification = verdict
                return candidate.url

        attempt.verification = (
            Verification.UNMATCHED
            if Verification.UNMATCHED in verdicts
            else Verification.UNKNOWN
        )
        raise VerificationMismatchError(
            f"{len(candidates)} result(s), none matched {identity.display_name}"
        )


class IdentityLookup:
    """
    Fills in a missing ISRC from the local metadata cache, keyed by Spotify id.
    Lookup problems are logged and reported as not found.
    """

    def __init__(self, cache: Optional[MetadataCache]):
        self.cache = cache

    async def find_isrc(self, spotify_id: str) -> Optional[str]:
        if not self.cache or not spotify_id:
            return None
        try:
            isrc = await self.cache.lookup_isrc(spotify_id)
        except Exception as e:
            log.warning(f"[yellow]Metadata lookup failed for {spotify_id}: {e}[/yellow]")
            return None
        if isrc:
            log.debug(f"ISRC for {spotify_id} found in metadata cache: {isrc}")
        return isrc

    async def complete(self, identity: TrackIdentity) -> TrackIdentity:
        """Returns the identity with its ISRC filled in when it was missing."""
        if identity.isrc or not identity.spotify_id:
            return identity
        isrc = await self.find_isrc(identity.spotify_id)
        return replace(identity, isrc=isrc) if isrc else identity
