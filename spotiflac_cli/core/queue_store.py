"""
Thread-safe, insertion-ordered store of queue items and their lifecycle state.

Every transition is validated against the item's current state under a single
lock. Readers only ever receive copies, and the aggregate counters on a
snapshot are always derived from the items themselves.
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Optional

from spotiflac_cli.exceptions import (
    DuplicateIDError,
    InvalidTransitionError,
    ItemNotFoundError,
)
from spotiflac_cli.models.queue import (
    ItemState,
    QueueItem,
    QueueSnapshot,
    TrackIdentity,
)

log = logging.getLogger(__name__)


def generate_item_id(isrc: str) -> str:
    """Builds a unique item id from the ISRC and a nanosecond timestamp."""
    return f"{isrc}-{time.time_ns()}"


class QueueStore:
    """Owns every queue item; all mutation goes through the transition methods."""

    def __init__(self):
        self._items: "OrderedDict[str, QueueItem]" = OrderedDict()
        self._lock = threading.Lock()
        self._session_started_at: Optional[float] = None

    def enqueue(self, identity: TrackIdentity, item_id: Optional[str] = None) -> QueueItem:
        """Adds a new item in the Queued state and returns a copy of it."""
        item_id = item_id or generate_item_id(identity.isrc)
        with self._lock:
            if item_id in self._items:
                raise DuplicateIDError(f"Queue item '{item_id}' already exists.")
            item = QueueItem(id=item_id, identity=identity)
            self._items[item_id] = item
            if self._session_started_at is None:
                self._session_started_at = item.queued_at
            log.debug(f"Enqueued {identity.display_name} as {item_id}")
            return item.copy()

    def start(self, item_id: str) -> QueueItem:
        with self._lock:
            item = self._require(item_id, ItemState.QUEUED, "start")
            item.state = ItemState.DOWNLOADING
            item.started_at = time.time()
            return item.copy()

    def complete(self, item_id: str, path: str, size_bytes: int = 0) -> QueueItem:
        with self._lock:
            item = self._require(item_id, ItemState.DOWNLOADING, "complete")
            item.state = ItemState.COMPLETED
            item.result_path = str(path)
            item.size_bytes = max(0, int(size_bytes))
            item.finished_at = time.time()
            return item.copy()

    def skip(self, item_id: str, path: str) -> QueueItem:
        with self._lock:
            item = self._require(item_id, ItemState.DOWNLOADING, "skip")
            item.state = ItemState.SKIPPED
            item.result_path = str(path)
            item.finished_at = time.time()
            return item.copy()

    def fail(self, item_id: str, message: str) -> QueueItem:
        with self._lock:
            item = self._require(item_id, ItemState.DOWNLOADING, "fail")
            item.state = ItemState.FAILED
            item.error = message
            item.finished_at = time.time()
            return item.copy()

    def cancel_pending(self, reason: str = "Cancelled") -> int:
        """
        Moves every Queued item straight to Skipped without a result path.
        Items already downloading are left to finish.
        """
        cancelled = 0
        now = time.time()
        with self._lock:
            for item in self._items.values():
                if item.state is ItemState.QUEUED:
                    item.state = ItemState.SKIPPED
                    item.error = reason
                    item.finished_at = now
                    cancelled += 1
        if cancelled:
            log.info(f"[yellow]○ Cancelled {cancelled} queued item(s)[/yellow]")
        return cancelled

    def get(self, item_id: str) -> QueueItem:
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise ItemNotFoundError(f"Queue item '{item_id}' does not exist.")
            return item.copy()

    def snapshot(self) -> QueueSnapshot:
        """Copies every item under the lock and derives the aggregates outside it."""
        with self._lock:
            items = [item.copy() for item in self._items.values()]
            started_at = self._session_started_at
        return QueueSnapshot.from_items(items, session_started_at=started_at)

    def clear_terminal(self) -> int:
        """Removes Completed, Skipped and Failed items. Returns how many were removed."""
        with self._lock:
            doomed = [k for k, v in self._items.items() if v.state.is_terminal]
            for key in doomed:
                del self._items[key]
            if not self._items:
                self._session_started_at = None
        return len(doomed)

    def clear_all(self) -> int:
        """
        Empties the store and resets the session. Items still downloading are
        dropped too; their later transitions fail with InvalidTransitionError.
        """
        with self._lock:
            removed = len(self._items)
            self._items.clear()
            self._session_started_at = None
        return removed

    @property
    def is_downloading(self) -> bool:
        with self._lock:
            return any(
                item.state is ItemState.DOWNLOADING for item in self._items.values()
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _require(self, item_id: str, expected: ItemState, action: str) -> QueueItem:
        # Caller holds self._lock
        item = self._items.get(item_id)
        if item is None:
            raise InvalidTransitionError(
                f"Cannot {action} '{item_id}': item is not in the queue."
            )
        if item.state is not expected:
            raise InvalidTransitionError(
                f"Cannot {action} '{item_id}': item is {item.state.value}, "
                f"expected {expected.value}."
            )
        return item
