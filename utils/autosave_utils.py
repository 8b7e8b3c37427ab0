"""Autosave and read-through caching of flow progress.

``AutosaveController`` periodically persists a user's progress while a flow is
being filled in. Saves are best effort: a failed save is logged and reported
through ``status``, and the next tick saves again once new changes are marked
pending. At most one save is in flight per controller; a tick that fires
while a save is outstanding is dropped.

Usage:
    controller = AutosaveController(store, navigator.snapshot, key)
    async with controller:
        ...  # record answers; controller.mark_pending() on each change
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from survey_assist_utils.logging import get_logger

from models.progress import ProgressSnapshot, SaveStatus

logger = get_logger(__name__, level="INFO")

PROGRESS_AUTOSAVE_INTERVAL = 5.0
DOCUMENT_AUTOSAVE_INTERVAL = 30.0
CACHE_TTL_SECONDS = 5 * 60
PROGRESS_ENTITY = "progress"


class TTLCache:
    """In-memory cache with a fixed time-to-live, keyed by (entity type, id).

    Each controller owns its own cache so entries never leak between sessions.
    """

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[tuple[str, str], tuple[Any, float]] = {}

    def get(self, entity_type: str, entity_id: str) -> Optional[Any]:
        """Returns the cached value, or None if absent or expired."""
        key = (entity_type, entity_id)
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, entity_type: str, entity_id: str, value: Any) -> None:
        """Stores a value with the current time."""
        self._entries[(entity_type, entity_id)] = (value, self._clock())

    def invalidate(self, entity_type: str, entity_id: str) -> None:
        """Removes an entry if present."""
        self._entries.pop((entity_type, entity_id), None)

    def clear(self) -> None:
        """Removes every entry."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class ProgressStore(Protocol):
    """Persistence collaborator used by the autosave controller."""

    async def save(self, snapshot: ProgressSnapshot) -> None:
        """Persists a progress snapshot."""

    async def load(self, key: str) -> Optional[ProgressSnapshot]:
        """Loads the snapshot stored under ``key``, if any."""


# pylint: disable=too-many-instance-attributes
class AutosaveController:
    """Debounced, periodic persistence of one user's progress through a flow.

    Attributes:
        store (ProgressStore): Where snapshots are saved and loaded.
        key (str): Storage key for this session's progress.
        interval (float): Seconds between autosave ticks.
        cache (TTLCache): Read-through cache for ``load``.
        status (SaveStatus): Outcome of the latest save.
        last_saved (Optional[datetime]): Time of the latest successful save.
        last_error (Optional[str]): Message of the latest failed save.
    """

    def __init__(  # noqa: PLR0913 pylint: disable=too-many-arguments, too-many-positional-arguments
        self,
        store: ProgressStore,
        snapshot_fn: Callable[[], ProgressSnapshot],
        key: str,
        interval: float = PROGRESS_AUTOSAVE_INTERVAL,
        cache: Optional[TTLCache] = None,
        entity_type: str = PROGRESS_ENTITY,
    ):
        self.store = store
        self.snapshot_fn = snapshot_fn
        self.key = key
        self.interval = interval
        self.cache = cache if cache is not None else TTLCache()
        self.entity_type = entity_type

        self.status = SaveStatus.SAVED
        self.last_saved: Optional[datetime] = None
        self.last_error: Optional[str] = None

        self._pending = False
        self._generation = 0
        self._inflight: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def pending(self) -> bool:
        """True if there are changes not yet handed to a save attempt."""
        return self._pending

    @property
    def is_saving(self) -> bool:
        """True while a save is in flight."""
        return self._inflight is not None and not self._inflight.done()

    @property
    def is_running(self) -> bool:
        """True while the periodic timer is active."""
        return self._timer is not None and not self._timer.done()

    def mark_pending(self) -> None:
        """Flags that the progress has changed since the last save."""
        self._pending = True
        self._generation += 1

    async def load(self) -> Optional[ProgressSnapshot]:
        """Loads the stored snapshot, serving it from the cache while fresh.

        Returns:
            Optional[ProgressSnapshot]: The stored snapshot, or None.

        Raises:
            RepositoryError: Propagated from the store.
        """
        cached = self.cache.get(self.entity_type, self.key)
        if cached is not None:
            logger.debug(f"Progress cache hit for {self.key}")
            return cached

        snapshot = await self.store.load(self.key)
        if snapshot is not None:
            self.cache.set(self.entity_type, self.key, snapshot)
        return snapshot

    async def _save(self, snapshot: ProgressSnapshot, background: bool) -> bool:
        generation = self._generation
        if not (background and self._stopped):
            self.status = SaveStatus.SAVING

        try:
            await self.store.save(snapshot)
        except Exception as err:  # pylint: disable=broad-exception-caught
            logger.error(f"Autosave failed for {self.key}: {err}")
            saved = False
            error_text: Optional[str] = str(err)
        else:
            self.cache.invalidate(self.entity_type, self.key)
            saved = True
            error_text = None
        finally:
            # Changes made while saving stay pending for the next tick
            if self._generation == generation:
                self._pending = False

        if background and self._stopped:
            logger.debug(f"Discarding autosave result for stopped session {self.key}")
            return saved

        if saved:
            self.status = SaveStatus.SAVED
            self.last_saved = datetime.now(timezone.utc)
            self.last_error = None
            logger.debug(f"Progress saved for {self.key}")
        else:
            self.status = SaveStatus.ERROR
            self.last_error = error_text
        return saved

    async def tick(self) -> bool:
        """Starts a background save if changes are pending and none is in flight.

        Returns:
            bool: True if a save was started.
        """
        if not self._pending:
            return False
        if self.is_saving:
            logger.debug(f"Autosave tick dropped, save in flight for {self.key}")
            return False

        self._inflight = asyncio.create_task(self._save(self.snapshot_fn(), True))
        return True

    async def flush(self, snapshot: Optional[ProgressSnapshot] = None) -> bool:
        """Saves immediately, after any in-flight save has finished.

        Args:
            snapshot (Optional[ProgressSnapshot]): Snapshot to save; defaults to
                the current one.

        Returns:
            bool: True if the save succeeded.
        """
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])

        task = asyncio.create_task(
            self._save(snapshot if snapshot is not None else self.snapshot_fn(), False)
        )
        self._inflight = task
        return await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception as err:  # pylint: disable=broad-exception-caught
                logger.error(f"Autosave tick failed for {self.key}: {err}")

    def start(self) -> None:
        """Starts the periodic timer on the running event loop."""
        if self.is_running:
            logger.warning(f"Autosave already running for {self.key}")
            return
        self._stopped = False
        self._timer = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Autosave started for {self.key} (interval={self.interval}s)")

    async def stop(self) -> None:
        """Cancels the periodic timer. An in-flight save is left to finish."""
        self._stopped = True
        if self._timer is None:
            return
        self._timer.cancel()
        try:
            await self._timer
        except asyncio.CancelledError:
            pass
        self._timer = None
        logger.info(f"Autosave stopped for {self.key}")

    async def __aenter__(self) -> "AutosaveController":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
