"""
The main orchestrator: owns the queue, runs each item through deduplication and
service resolution, and records the outcome on the queue.
"""

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from rich.markup import escape

from spotiflac_cli.api.lyrics import LyricsClient, to_lrc
from spotiflac_cli.exceptions import (
    AggregateFailureError,
    NotFoundError,
    QueueError,
)
from spotiflac_cli.media.tags import embed_lyrics, ensure_isrc_tag
from spotiflac_cli.models.config import DownloadConfig
from spotiflac_cli.models.queue import (
    DownloadOutcome,
    ItemState,
    QueueItem,
    TrackIdentity,
)
from spotiflac_cli.utils.path import PathFormatter

from .dedup import LibraryDeduplicator
from .queue_store import QueueStore
from .resolver import IdentityLookup, ServiceResolver
from .worker_pool import BackgroundTasks, WorkerPool

log = logging.getLogger(__name__)

IsrcTagger = Callable[[str, str], bool]
LyricsEmbedder = Callable[[str, str], None]


class DownloadManager:
    """Orchestrates the entire download process for a batch of tracks."""

    def __init__(
        self,
        config: DownloadConfig,
        resolver: ServiceResolver,
        store: Optional[QueueStore] = None,
        dedup: Optional[LibraryDeduplicator] = None,
        lyrics_client: Optional[LyricsClient] = None,
        identity_lookup: Optional[IdentityLookup] = None,
        isrc_tagger: IsrcTagger = ensure_isrc_tag,
        lyrics_embedder: LyricsEmbedder = embed_lyrics,
    ):
        self.config = config
        self.resolver = resolver
        self.store = store or QueueStore()
        self.dedup = dedup or LibraryDeduplicator(
            config.output_dir, min_size=config.min_existing_size
        )
        self.formatter = PathFormatter(
            config.filename_format, config.track_number, config.extension
        )
        self.lyrics_client = lyrics_client
        self.identity_lookup = identity_lookup
        self.background = BackgroundTasks(config.lyrics_workers, name="lyrics")
        self._tag_isrc = isrc_tagger
        self._embed_lyrics = lyrics_embedder
        self._cancel_event = asyncio.Event()
        self.lyrics_embedded = 0
        self.start_time = time.monotonic()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # --- Queue intake ---

    def enqueue(self, identity: TrackIdentity, item_id: Optional[str] = None) -> QueueItem:
        if not identity.isrc:
            raise QueueError(f"An ISRC is required to queue '{identity.display_name}'.")
        return self.store.enqueue(identity, item_id)

    def enqueue_many(self, identities: Iterable[TrackIdentity]) -> List[QueueItem]:
        """Queues every identity that has an ISRC; the rest are logged and dropped."""
        queued = []
        for identity in identities:
            try:
                queued.append(self.enqueue(identity))
            except QueueError as e:
                log.warning(f"[yellow]○ Not queued: {escape(str(e))}[/yellow]")
        return queued

    async def enqueue_with_lookup(self, identity: TrackIdentity) -> QueueItem:
        """Fills in a missing ISRC from the metadata cache before queueing."""
        if self.identity_lookup is not None:
            identity = await self.identity_lookup.complete(identity)
        return self.enqueue(identity)

    # --- Processing ---

    def expected_path(self, identity: TrackIdentity) -> Path:
        return self.formatter.expected_path(self.config.output_dir, identity)

    async def download_item(self, item_id: str) -> DownloadOutcome:
        """
        Runs one queued item to a terminal state.

        Raises:
            InvalidTransitionError: If the item is not Queued, or was removed from
            the store while it was being processed.
        """
        item = self.store.start(item_id)
        identity = item.identity
        expected = self.expected_path(identity)

        try:
            lock = await self.dedup.lock_for(expected)
            async with lock:
                existing = await self.dedup.check(identity, expected)
                if existing.exists:
                    self.store.skip(item_id, str(existing.path))
                    log.info(
                        f"[yellow]○ Skipped:[/] {escape(identity.display_name)} "
                        f"({existing.reason})"
                    )
                    return DownloadOutcome(
                        item_id, ItemState.SKIPPED, str(existing.path), existing.reason
                    )

                result = await self.resolver.resolve(
                    identity,
                    expected,
                    services=self.config.services,
                    cancel_event=self._cancel_event,
                )
                await asyncio.to_thread(self._tag_isrc, str(result.path), identity.isrc)
                self.dedup.remember(identity.isrc, result.path)
                size = await asyncio.to_thread(lambda: result.size_bytes)
        except AggregateFailureError as e:
            self.store.fail(item_id, str(e))
            log.error(f"[red]✗ Failed:[/] {escape(identity.display_name)}: {escape(str(e))}")
            return DownloadOutcome(item_id, ItemState.FAILED, message=str(e))
        except QueueError:
            raise
        except Exception as e:
            message = f"Unexpected error: {e}"
            self.store.fail(item_id, message)
            log.error(
                f"[red]✗ Failed:[/] {escape(identity.display_name)}: {escape(message)}",
                exc_info=log.getEffectiveLevel() == logging.DEBUG,
            )
            return DownloadOutcome(item_id, ItemState.FAILED, message=message)

        self.store.complete(item_id, str(result.path), size)
        self._schedule_lyrics(result.path, identity)
        return DownloadOutcome(
            item_id,
            ItemState.COMPLETED,
            str(result.path),
            f"Downloaded via {result.service}",
            service=result.service,
        )

    async def download_all(
        self, item_ids: Optional[Iterable[str]] = None
    ) -> List[DownloadOutcome]:
        """
        Processes queued items (all of them by default) with at most
        ``config.max_workers`` in flight. Returns outcomes in input order.

        Raises:
            QueueError: If any item broke the queue contract (not Queued when
            started, or removed from the store mid-download). Raised after all
            admitted items have finished.
        """
        if item_ids is None:
            item_ids = [
                item.id
                for item in self.store.snapshot().items
                if item.state is ItemState.QUEUED
            ]
        ids = list(item_ids)
        if not ids:
            log.info("Nothing queued. Nothing to do.")
            return []

        indexed = await self.dedup.refresh_index()
        log.debug(f"Library index ready: {indexed} tagged file(s)")

        pool = WorkerPool(self.config.max_workers, name="download")
        results = await pool.map(self.download_item, ids, cancel_event=self._cancel_event)

        # Queue contract violations surface once every sibling has drained
        for result in results:
            if isinstance(result.error, QueueError):
                raise result.error

        outcomes = []
        for item_id, result in zip(ids, results):
            if result.ok:
                outcomes.append(result.value)
                continue
            try:
                current = self.store.get(item_id)
            except QueueError:
                # Never admitted, and dropped from the store by clear_all
                continue
            outcomes.append(
                DownloadOutcome(
                    item_id,
                    current.state,
                    current.result_path,
                    current.error or (str(result.error) if result.error else ""),
                )
            )
        return outcomes

    def cancel(self, reason: str = "Cancelled by user") -> int:
        """Stops admitting new work and marks everything still queued as skipped."""
        self._cancel_event.set()
        return self.store.cancel_pending(reason)

    # --- Lyrics (background) ---

    def _schedule_lyrics(self, path: Path, identity: TrackIdentity) -> None:
        if not self.config.embed_lyrics or self.lyrics_client is None:
            return
        if path.suffix.lower() != ".flac" or not identity.title:
            return
        self.background.submit(
            lambda: self._fetch_and_embed_lyrics(path, identity),
            label=identity.display_name,
        )

    async def _fetch_and_embed_lyrics(self, path: Path, identity: TrackIdentity) -> bool:
        try:
            lyrics = await self.lyrics_client.fetch(
                identity.title, identity.artist, identity.duration
            )
        except NotFoundError as e:
            log.debug(f"No lyrics for {identity.display_name}: {e}")
            return False
        text = to_lrc(lyrics, identity.title, identity.artist)
        if not text:
            return False
        await asyncio.to_thread(self._embed_lyrics, str(path), text)
        self.lyrics_embedded += 1
        log.debug(f"[green]✓ Lyrics embedded:[/] {escape(identity.display_name)}")
        return True

    async def wait_for_background(self) -> None:
        """Waits for all background lyrics tasks to finish."""
        if self.background.pending:
            log.info(f"Waiting for {self.background.pending} lyrics task(s)...")
        await self.background.join()

    # --- Session bookkeeping ---

    def save_session_stats(self, config_dir: Path) -> None:
        """Appends the current session's counters to a history file."""
        snapshot = self.store.snapshot()
        stats_file = Path(config_dir) / "session_history.jsonl"
        try:
            stats_file.parent.mkdir(parents=True, exist_ok=True)
            with open(stats_file, "a", encoding="utf-8") as f:
                json.dump(
                    {
                        "timestamp": int(time.time()),
                        "tracks_total": snapshot.total,
                        "tracks_completed": snapshot.completed,
                        "tracks_skipped": snapshot.skipped,
                        "tracks_failed": snapshot.failed,
                        "total_size_downloaded": snapshot.total_size_bytes,
                        "lyrics_embedded": self.lyrics_embedded,
                        "duration_seconds": round(time.monotonic() - self.start_time, 2),
                    },
                    f,
                )
                f.write("\n")
        except OSError as e:
            log.warning(f"[yellow]Could not save session stats:[/] {e}")
